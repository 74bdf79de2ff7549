"""
Modulo de limitacion de peticiones por direccion de origen (IP).

Este limite es DISTINTO del rate limiter por API key
(services/rate_limiter.py):

    - Este modulo cuenta peticiones por IP ANTES de la autenticacion.
      Frena floods de trafico anonimo sin gastar una busqueda de
      credenciales.
    - El otro cuenta peticiones por API key DESPUES de autenticar.

Como funciona?
--------------
Usamos la libreria "limits" (la misma que SlowAPI usa por debajo) con la
estrategia de ventana fija (FixedWindowRateLimiter):

    ventana de 300s, limite 2000
    |-- peticion 1 ... peticion 2000 --|-- 2001, 2002, ... -> bloqueadas --|
    ^ primera peticion de la IP                          fin de la ventana ^

Una vez superado el limite, la IP queda bloqueada por el RESTO de la
ventana; cuando la ventana expira, el contador empieza de cero.

Para identificar al cliente usamos get_remote_address de SlowAPI, que
extrae la IP de la conexion.

Nota: Los contadores viven en memoria (MemoryStorage). Con multiples
procesos o servidores, cada uno lleva su propia cuenta; para compartirla
se usaria Redis:
    storage_from_string("redis://localhost:6379")
"""

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter
from slowapi.util import get_remote_address
from starlette.requests import Request


def client_source(scope) -> str:
    """Direccion de origen de una peticion ASGI (ej: "203.0.113.9")."""
    return get_remote_address(Request(scope))


class RateBasedMatcher:
    """
    Matcher de la cadena de filtros: hace match cuando la IP de origen
    supero `limit` peticiones dentro de la ventana de `window_seconds`.

    Cada llamada a match() CUENTA la peticion.
    """

    def __init__(self, limit: int = 2000, window_seconds: int = 300, storage=None):
        self.limit = limit
        self.window_seconds = window_seconds
        # RateLimitItemPerSecond(2000, 300) = "2000 por cada 300 segundos"
        self._item = RateLimitItemPerSecond(limit, window_seconds)
        self._strategy = FixedWindowRateLimiter(storage or MemoryStorage())

    def match(self, request) -> str | None:
        if self._strategy.hit(self._item, "source", request.source):
            return None
        return f"source {request.source} exceeded {self.limit} requests per {self.window_seconds}s"
