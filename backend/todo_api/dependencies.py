"""
Dependencias de FastAPI que forman el pipeline de cada ruta /todos:

    require_api_key  (Auth Gate)      -> id de la credencial o 403
    enforce_usage_plan (Rate Limiter) -> 429 si no hay fichas o cuota
    get_item_store                    -> el ItemStore compartido
    todo_create_body / todo_update_body -> body validado o 400

enforce_usage_plan depende de require_api_key, asi FastAPI garantiza el
orden: primero se autentica, despues se cobra la ficha. Una peticion sin
key valida nunca consume fichas de nadie.

Todos los componentes se leen de request.app.state, donde create_app()
los dejo. No hay instancias globales escondidas.

Los bodies NO se declaran como parametros Pydantic de los handlers:
FastAPI los parsea antes de resolver cualquier dependencia, y un JSON
roto responderia 400 antes de autenticar. Las dependencias de body corren
despues de las del router, asi que el orden queda
API key -> rate limit -> validacion del body.
"""

from fastapi import Depends, Header, Request
from pydantic import ValidationError as PydanticValidationError

from todo_api.errors import ValidationError
from todo_api.models.schemas import TodoCreate, TodoUpdate
from todo_api.services.item_store import ItemStore


def require_api_key(request: Request, x_api_key: str | None = Header(default=None)) -> str:
    return request.app.state.auth_gate.authenticate(x_api_key)


def enforce_usage_plan(request: Request, credential_id: str = Depends(require_api_key)) -> str:
    request.app.state.rate_limiter.check(credential_id)
    return credential_id


def get_item_store(request: Request) -> ItemStore:
    return request.app.state.item_store


async def _parse_body(request: Request, model):
    # El body se lee aqui, DESPUES de enforce_usage_plan (dependencia del
    # router): un JSON roto sin key valida responde 403, no 400.
    try:
        return model.model_validate_json(await request.body())
    except PydanticValidationError as e:
        raise ValidationError() from e


async def todo_create_body(request: Request) -> TodoCreate:
    return await _parse_body(request, TodoCreate)


async def todo_update_body(request: Request) -> TodoUpdate:
    return await _parse_body(request, TodoUpdate)
