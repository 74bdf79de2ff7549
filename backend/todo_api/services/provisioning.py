"""
Carga del provisioning: credenciales, planes de uso y filtros.

El provisioning es configuracion ESTATICA: se lee una vez al arrancar el
proceso y no cambia hasta el siguiente despliegue. Hay dos fuentes:

1. Archivo JSON (settings.PROVISIONING_FILE). Ver ProvisioningDocument en
   models/schemas.py para el formato.
2. Fallback de desarrollo, si no hay archivo: un unico plan "default"
   armado con DEFAULT_RATE / DEFAULT_BURST / DEFAULT_QUOTA /
   DEFAULT_QUOTA_PERIOD y, si API_KEY esta definida, una credencial "dev"
   con esa key. Sin API_KEY no hay credenciales: toda peticion a /todos
   recibe 403.

Un documento invalido (plan inexistente, burst < rate, JSON roto) lanza
una excepcion al arrancar, nunca durante una peticion.
"""

from pathlib import Path

from todo_api.config import Settings, settings as default_settings
from todo_api.logging import get_logger
from todo_api.models.schemas import (
    Credential,
    FilterSettings,
    ProvisioningDocument,
    UsagePlan,
)

logger = get_logger("todo_api.provisioning")


def load_provisioning(settings: Settings = default_settings) -> ProvisioningDocument:
    if settings.PROVISIONING_FILE:
        raw = Path(settings.PROVISIONING_FILE).read_text(encoding="utf-8")
        document = ProvisioningDocument.model_validate_json(raw)
        source = settings.PROVISIONING_FILE
    else:
        document = _development_document(settings)
        source = "environment"

    logger.info(
        "provisioning_loaded",
        source=source,
        plans=sorted(document.plans),
        credentials=len(document.credentials),
    )
    return document


def _development_document(settings: Settings) -> ProvisioningDocument:
    plan = UsagePlan(
        rate=settings.DEFAULT_RATE,
        burst=settings.DEFAULT_BURST,
        quota_limit=settings.DEFAULT_QUOTA,
        quota_period=settings.DEFAULT_QUOTA_PERIOD,
    )
    credentials = []
    if settings.API_KEY:
        credentials.append(Credential(id="dev", secret=settings.API_KEY))
    return ProvisioningDocument(
        plans={"default": plan},
        credentials=credentials,
        filters=FilterSettings(
            rate_limit=settings.FILTER_RATE_LIMIT,
            rate_window_seconds=settings.FILTER_RATE_WINDOW_SECONDS,
        ),
    )


def plan_bindings(document: ProvisioningDocument) -> dict[str, str]:
    """id de credencial -> nombre de plan."""
    return {credential.id: credential.plan for credential in document.credentials}
