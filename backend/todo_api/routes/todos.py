"""
Modulo de rutas CRUD de TODOs.

    POST   /todos        -> crear         201
    GET    /todos        -> listar        200
    GET    /todos/{id}   -> obtener uno   200 / 404
    PUT    /todos/{id}   -> reemplazar    200 / 400 / 404
    DELETE /todos/{id}   -> eliminar      204 / 404

Todas las rutas del router comparten la dependencia enforce_usage_plan
(autenticacion + rate limit). Cuando el handler se ejecuta, la peticion
ya paso el filtro, la API key y el limite de su plan. El body se valida
recien despues (dependencias todo_create_body / todo_update_body).

Los handlers son funciones normales (def, no async def): boto3 es
bloqueante, y FastAPI ejecuta los handlers sincronos en su pool de hilos,
asi una llamada lenta a DynamoDB no frena a las demas peticiones.

Los errores (NotFound, StorageError) no se atrapan aqui: suben hasta los
exception handlers registrados en main.py.
"""

from fastapi import APIRouter, Depends, Response

from todo_api.dependencies import enforce_usage_plan, get_item_store, todo_create_body, todo_update_body
from todo_api.models.schemas import TodoCreate, TodoItem, TodoUpdate
from todo_api.services.item_store import ItemStore

router = APIRouter(prefix="/todos", tags=["todos"], dependencies=[Depends(enforce_usage_plan)])


@router.post("", status_code=201, response_model=TodoItem)
def create_todo(body: TodoCreate = Depends(todo_create_body), store: ItemStore = Depends(get_item_store)):
    return store.create(body.todo)


@router.get("", response_model=list[TodoItem])
def list_todos(store: ItemStore = Depends(get_item_store)):
    return store.list()


@router.get("/{item_id}", response_model=TodoItem)
def get_todo(item_id: str, store: ItemStore = Depends(get_item_store)):
    return store.get(item_id)


@router.put("/{item_id}", response_model=TodoItem)
def update_todo(item_id: str, body: TodoUpdate = Depends(todo_update_body), store: ItemStore = Depends(get_item_store)):
    # Reemplazo completo: TodoUpdate exige ambos campos.
    return store.update(item_id, body.todo, body.completed)


@router.delete("/{item_id}", status_code=204, response_class=Response)
def delete_todo(item_id: str, store: ItemStore = Depends(get_item_store)):
    # Un segundo DELETE del mismo id responde 404, no 204.
    store.delete(item_id)
    return Response(status_code=204)
