"""
Configuracion de logging estructurado.

Usamos structlog encima del modulo `logging` de la biblioteca estandar.
Cada evento se emite como UNA linea JSON, por ejemplo:

    {"event": "filter_blocked", "rule": "sql-injection", "source": "10.0.0.7",
     "logger": "todo_api.filter", "level": "warning", "timestamp": "..."}

El colaborador externo de observabilidad (CloudWatch, Datadog, etc.) lee
estas lineas y genera metricas y alarmas. La API solo ESCRIBE eventos;
nunca espera a que alguien los procese.
"""

import logging
import sys

import structlog


def configure_logging(log_level: str = "info") -> None:
    """Configura structlog y el logging estandar para toda la aplicacion."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
