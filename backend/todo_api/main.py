"""
Punto de entrada principal de la aplicacion FastAPI.

Este es el archivo "raiz" del backend. Aqui se:
1. Construyen los componentes (ItemStore, AuthGate, RateLimiter, FilterChain).
2. Configuran los middlewares (CORS y cadena de filtros).
3. Registran los exception handlers que traducen errores a codigos HTTP.
4. Registran las rutas y el health check.

Arquitectura de la aplicacion:
------------------------------
    main.py (create_app)
        |
        +-- middleware.py          (cadena de filtros, antes de rutear)
        +-- dependencies.py        (auth + rate limit por ruta)
        +-- routes/todos.py        (handlers CRUD)
        |
        +-- services/
        |    +-- filter_chain.py   (reglas de filtrado)
        |    +-- auth_gate.py      (API keys)
        |    +-- rate_limiter.py   (token bucket + cuota)
        |    +-- item_store.py     (DynamoDB)
        |    +-- provisioning.py   (credenciales, planes, filtros)
        |
        +-- limiter.py             (limite por IP para la cadena de filtros)
        +-- models/schemas.py      (Pydantic)
        +-- config.py / errors.py / logging.py

El flujo de una peticion HTTP es:
    Cliente -> CORS -> Filtro -> Router -> API key -> Rate limit -> Handler -> Respuesta

Cualquier etapa puede cortar el flujo con una respuesta final
(403 / 404 / 413 / 429). Un preflight CORS (cualquier OPTIONS) lo responde
PreflightMiddleware con un 200 fijo: nunca llega al filtro, ni consume
fichas, ni ejecuta logica de negocio.

Patron de diseno: Application Factory
-------------------------------------
create_app() recibe los componentes como parametros opcionales. En
produccion se construyen a partir de la configuracion; en tests se pasan
versiones con relojes falsos o tablas de moto. Cada componente queda en
app.state y las dependencias lo leen de ahi.
"""

import math

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from todo_api.config import Settings, settings as default_settings
from todo_api.errors import RateLimited, TodoApiError, ValidationError
from todo_api.logging import configure_logging, get_logger
from todo_api.middleware import FilterMiddleware, PreflightMiddleware
from todo_api.routes.todos import router as todos_router
from todo_api.services.auth_gate import AuthGate
from todo_api.services.filter_chain import FilterChain, build_filter_chain
from todo_api.services.item_store import ItemStore
from todo_api.services.provisioning import load_provisioning, plan_bindings
from todo_api.services.rate_limiter import RateLimiter

logger = get_logger("todo_api.main")


# ---------- Exception handlers ----------

async def handle_api_error(request, exc: TodoApiError):
    """Traduce cualquier error de la taxonomia a {"detail": ...} + status."""
    headers = None
    if isinstance(exc, RateLimited):
        # Retry-After en segundos enteros, como minimo 1.
        headers = {"Retry-After": str(max(1, math.ceil(exc.retry_after)))}
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers=headers)


async def handle_request_validation_error(request, exc: RequestValidationError):
    # FastAPI responde 422 por defecto; nuestra API usa 400 para bodies
    # invalidos o incompletos.
    logger.info("validation_failed", path=request.url.path, errors=len(exc.errors()))
    return JSONResponse(status_code=ValidationError.status_code, content={"detail": ValidationError.message})


async def handle_http_error(request, exc: StarletteHTTPException):
    # Metodo no soportado en un path existente (405) = combinacion
    # (metodo, path) sin ruta -> 404, igual que un path desconocido.
    if exc.status_code == 405:
        return JSONResponse(status_code=404, content={"detail": "Not Found"})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


async def handle_unexpected_error(request, exc: Exception):
    logger.error("unhandled_error", path=request.url.path, error=str(exc), exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ---------- Factory ----------

def create_app(
    settings: Settings = default_settings,
    item_store: ItemStore | None = None,
    auth_gate: AuthGate | None = None,
    rate_limiter: RateLimiter | None = None,
    filter_chain: FilterChain | None = None,
) -> FastAPI:
    """
    Crea la aplicacion con sus componentes.

    Los componentes que no se pasan se construyen a partir de `settings`
    y del provisioning (services/provisioning.py), que se lee UNA vez aqui.
    """
    configure_logging(settings.LOG_LEVEL)

    if auth_gate is None or rate_limiter is None or filter_chain is None:
        document = load_provisioning(settings)
        auth_gate = auth_gate or AuthGate(document.credentials, constant_time=settings.AUTH_CONSTANT_TIME)
        rate_limiter = rate_limiter or RateLimiter(document.plans, plan_bindings(document))
        filter_chain = filter_chain or build_filter_chain(document.filters)

    app = FastAPI(title="Todo API")

    # Un solo ItemStore (un solo cliente boto3) por proceso.
    app.state.item_store = item_store or ItemStore()
    app.state.auth_gate = auth_gate
    app.state.rate_limiter = rate_limiter
    app.state.filter_chain = filter_chain

    app.add_exception_handler(TodoApiError, handle_api_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    # ---------- Middlewares ----------
    # El ULTIMO middleware agregado es el mas EXTERNO (el primero en ver
    # la peticion). CORS va por fuera del filtro para que los preflight (todo
    # OPTIONS) se respondan sin pasar por ninguna otra etapa.
    app.add_middleware(FilterMiddleware, filter_chain=filter_chain, max_body_bytes=settings.MAX_BODY_BYTES)
    app.add_middleware(
        PreflightMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=settings.CORS_METHODS,
        allow_headers=settings.CORS_HEADERS,
    )

    # Health check para el load balancer. Pasa por el filtro, pero no
    # pide API key ni consume cuota.
    @app.get("/health")
    def health_check():
        return {"status": "ok"}

    app.include_router(todos_router)
    return app


app = create_app()
