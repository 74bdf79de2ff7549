"""
Modulo de configuracion centralizada de la aplicacion.

Este archivo define TODAS las constantes y configuraciones que el backend
necesita para funcionar. Todas se leen de variables de entorno con un valor
por defecto pensado para desarrollo local, asi la misma aplicacion corre en
desarrollo, staging y produccion sin cambiar el codigo fuente.

Grupos de configuracion:
1. **Persistencia:** tabla de DynamoDB, region y endpoint opcional
   (para DynamoDB Local).
2. **CORS:** origenes, metodos y headers permitidos en el preflight.
3. **Provisioning:** archivo JSON con API keys, planes de uso y reglas de
   filtrado. Si no existe, se usa un plan por defecto y la key de API_KEY.
4. **Filtro:** limite de peticiones por direccion de origen y tamano
   maximo del body.
5. **Logging:** nivel de log.

Patron de diseno utilizado: **Singleton implicito**
La instancia `settings` se crea UNA sola vez al importar este modulo.
Python cachea los modulos importados, asi que cada archivo que haga
`from todo_api.config import settings` recibira la MISMA instancia.
"""

import os


def _csv(value: str) -> list[str]:
    """Convierte "a, b,c" en ["a", "b", "c"] descartando entradas vacias."""
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    """
    Clase que encapsula toda la configuracion de la aplicacion.

    Usamos una clase (en vez de simples variables globales) porque agrupa
    las configuraciones relacionadas y permite que en tests podamos crear
    una instancia con valores custom.
    """

    # ---------- Persistencia (DynamoDB) ----------

    # Nombre de la tabla donde guardamos los TODOs. La clave de particion
    # es el atributo "id" (string).
    TABLE_NAME: str = os.getenv("TABLE_NAME", "todo-items")

    AWS_REGION: str = os.getenv("AWS_REGION", "us-east-1")

    # Si esta definido, boto3 habla con este endpoint en vez del de AWS.
    # Ejemplo: "http://localhost:8000" para DynamoDB Local.
    DYNAMODB_ENDPOINT_URL: str | None = os.getenv("DYNAMODB_ENDPOINT_URL") or None

    # ---------- CORS ----------

    # Mismo formato que en el frontend: origenes separados por coma.
    # SEGURIDAD: NUNCA uses "*" en produccion.
    CORS_ORIGINS: list[str] = _csv(os.getenv("CORS_ORIGINS", "http://localhost:5173"))
    CORS_METHODS: list[str] = _csv(os.getenv("CORS_METHODS", "GET,POST,PUT,DELETE,OPTIONS"))
    CORS_HEADERS: list[str] = _csv(os.getenv("CORS_HEADERS", "Content-Type,x-api-key"))

    # ---------- Provisioning ----------

    # Ruta a un JSON con credenciales, planes de uso y filtros.
    # Ver services/provisioning.py para el formato.
    PROVISIONING_FILE: str | None = os.getenv("PROVISIONING_FILE") or None

    # Key de desarrollo usada solo cuando no hay PROVISIONING_FILE.
    API_KEY: str | None = os.getenv("API_KEY") or None

    # Plan de uso por defecto (token bucket + cuota).
    # La rafaga (burst) siempre debe ser >= que la tasa sostenida.
    DEFAULT_RATE: float = float(os.getenv("DEFAULT_RATE", "10"))
    DEFAULT_BURST: int = int(os.getenv("DEFAULT_BURST", "20"))
    DEFAULT_QUOTA: int = int(os.getenv("DEFAULT_QUOTA", "1000"))
    DEFAULT_QUOTA_PERIOD: str = os.getenv("DEFAULT_QUOTA_PERIOD", "day")

    # Comparacion en tiempo constante de las API keys (opcion de hardening).
    AUTH_CONSTANT_TIME: bool = os.getenv("AUTH_CONSTANT_TIME", "false").lower() in ("1", "true", "yes")

    # ---------- Filtro por direccion de origen ----------

    # 2000 peticiones por IP cada 5 minutos. Al superarlo, la IP queda
    # bloqueada hasta que termine la ventana.
    FILTER_RATE_LIMIT: int = int(os.getenv("FILTER_RATE_LIMIT", "2000"))
    FILTER_RATE_WINDOW_SECONDS: int = int(os.getenv("FILTER_RATE_WINDOW_SECONDS", "300"))

    # Tamano maximo del body que el filtro acepta leer (64 KB). Un TODO es
    # texto corto; cualquier cosa mayor se rechaza con 413 antes de auth.
    MAX_BODY_BYTES: int = int(os.getenv("MAX_BODY_BYTES", str(64 * 1024)))

    # ---------- Logging ----------

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "info")


# Instancia unica de configuracion (patron Singleton implicito).
settings = Settings()
