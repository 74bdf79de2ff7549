"""
Auth Gate: valida la API key enviada en el header x-api-key.

La key se busca en el conjunto de credenciales provisionadas. Se rechaza
(Unauthenticated -> HTTP 403) si:
    - no se envio ninguna key,
    - la key no corresponde a ninguna credencial,
    - la credencial existe pero esta deshabilitada (enabled=False).

Busqueda normal vs. tiempo constante
------------------------------------
Por defecto buscamos la key en un dict (hash lookup): el tiempo NO depende
de cuantos caracteres coinciden con una key valida. Como opcion de
hardening (AUTH_CONSTANT_TIME=true) comparamos contra TODAS las keys con
hmac.compare_digest, que tarda lo mismo sin importar donde difieren.
"""

import hmac

from todo_api.errors import Unauthenticated
from todo_api.logging import get_logger
from todo_api.models.schemas import Credential

logger = get_logger("todo_api.auth")


class AuthGate:

    def __init__(self, credentials: list[Credential], constant_time: bool = False):
        self._by_secret = {credential.secret: credential for credential in credentials}
        self._constant_time = constant_time

    def _lookup(self, presented: str) -> Credential | None:
        if not self._constant_time:
            return self._by_secret.get(presented)
        found = None
        presented_bytes = presented.encode("utf-8")
        # Sin "break": recorremos siempre la lista completa.
        for secret, credential in self._by_secret.items():
            if hmac.compare_digest(secret.encode("utf-8"), presented_bytes):
                found = credential
        return found

    def authenticate(self, presented: str | None) -> str:
        """Retorna el id de la credencial o lanza Unauthenticated."""
        if not presented:
            logger.warning("auth_failed", reason="missing_key")
            raise Unauthenticated()

        credential = self._lookup(presented)
        if credential is None:
            logger.warning("auth_failed", reason="unknown_key")
            raise Unauthenticated()
        if not credential.enabled:
            logger.warning("auth_failed", reason="disabled_key", credential=credential.id)
            raise Unauthenticated()
        return credential.id
