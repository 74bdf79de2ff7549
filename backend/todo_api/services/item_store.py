"""
Modulo de servicio para Amazon DynamoDB (almacen de TODOs).

Este modulo encapsula TODA la comunicacion con DynamoDB. Ningun otro archivo
del proyecto deberia llamar directamente a boto3 para leer o escribir TODOs;
todo pasa por este servicio.

Que es DynamoDB?
----------------
DynamoDB es una base de datos clave-valor administrada de AWS. Cada item
se identifica por su "partition key"; en nuestra tabla es el atributo "id".

Conceptos clave que usamos:
- **put_item / get_item / delete_item:** operaciones sobre UN item.
  DynamoDB garantiza que cada una es atomica para ese item.
- **ConditionExpression:** condicion que DynamoDB evalua ANTES de escribir.
  Si no se cumple, la escritura se cancela y boto3 lanza
  ConditionalCheckFailedException. La usamos para:
    * create: attribute_not_exists(id) -> nunca pisar un item existente.
    * update: attribute_exists(id)     -> nunca crear un item "fantasma"
      al actualizar un id inexistente.
- **scan:** lee la tabla COMPLETA, pagina por pagina (maximo 1MB por
  llamada). Es la unica forma de listar todos los items sin un indice, y
  su latencia crece con el numero de items. Es una limitacion aceptada.

Errores:
    - Item inexistente          -> NotFound
    - Cualquier otro fallo AWS  -> StorageError (SIN reintentos: el cliente
      de boto3 se configura con max_attempts=1 y el servicio no reintenta).

Patron de diseno: Inyeccion de dependencias
-------------------------------------------
El constructor acepta un `resource` opcional. En produccion se crea uno
real de boto3; en tests se pasa uno creado dentro de `mock_aws()` (moto).
La instancia se crea UNA vez en create_app() y se comparte entre todos los
handlers (un solo cliente por proceso, con connection pooling).
"""

import uuid
from datetime import datetime, timezone

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError as PydanticValidationError

from todo_api.config import settings
from todo_api.errors import NotFound, StorageError
from todo_api.logging import get_logger
from todo_api.models.schemas import TodoItem

logger = get_logger("todo_api.item_store")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_condition_failure(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class ItemStore:
    """
    Servicio que encapsula las operaciones CRUD sobre la tabla de TODOs.

    Atributos:
        table: Objeto Table de boto3 (boto3.resource("dynamodb").Table(...)).
        table_name (str): Nombre de la tabla.
    """

    def __init__(self, resource=None, table_name: str | None = None, clock=_utc_now_iso):
        """
        Parametros:
            resource: Recurso DynamoDB de boto3 opcional. Si no se
                proporciona, se crea uno con la region (y endpoint) de
                la configuracion.
            table_name (str | None): Nombre de la tabla. Por defecto
                settings.TABLE_NAME.
            clock: Funcion que retorna el timestamp de creacion. Se puede
                reemplazar en tests.
        """
        self.resource = resource or boto3.resource(
            "dynamodb",
            region_name=settings.AWS_REGION,
            endpoint_url=settings.DYNAMODB_ENDPOINT_URL,
            config=Config(retries={"max_attempts": 1, "mode": "standard"}),
        )
        self.table_name = table_name or settings.TABLE_NAME
        self.table = self.resource.Table(self.table_name)
        self._clock = clock

    def create_table(self) -> None:
        """
        Crea la tabla con clave de particion "id" (string) y facturacion
        on-demand, y espera a que este activa.
        """
        table = self.resource.create_table(
            TableName=self.table_name,
            KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
            AttributeDefinitions=[{"AttributeName": "id", "AttributeType": "S"}],
            BillingMode="PAY_PER_REQUEST",
        )
        table.wait_until_exists()

    def create(self, text: str) -> TodoItem:
        """
        Crea un TODO nuevo con id aleatorio (UUID v4, 122 bits aleatorios),
        completed=False y createdAt = ahora (UTC).
        """
        item = TodoItem(id=str(uuid.uuid4()), todo=text, completed=False, created_at=self._clock())
        try:
            self.table.put_item(
                Item=self._to_record(item),
                ConditionExpression=Attr("id").not_exists(),
            )
        except (ClientError, BotoCoreError) as e:
            raise self._storage_error("create", e, item_id=item.id) from e
        return item

    def get(self, item_id: str) -> TodoItem:
        try:
            # ConsistentRead: leer lo ultimo escrito, no una replica atrasada.
            response = self.table.get_item(Key={"id": item_id}, ConsistentRead=True)
        except (ClientError, BotoCoreError) as e:
            raise self._storage_error("get", e, item_id=item_id) from e
        record = response.get("Item")
        if record is None:
            raise NotFound()
        return self._from_record(record, "get")

    def list(self) -> list[TodoItem]:
        """
        Retorna TODOS los items (sin orden garantizado).

        scan() retorna como maximo 1MB por llamada. Si hay mas datos, la
        respuesta incluye "LastEvaluatedKey" y hay que volver a llamar
        empezando desde ahi (ExclusiveStartKey) hasta que ya no venga.
        """
        items: list[TodoItem] = []
        kwargs: dict = {}
        try:
            while True:
                page = self.table.scan(**kwargs)
                items.extend(self._from_record(record, "list") for record in page.get("Items", []))
                last_key = page.get("LastEvaluatedKey")
                if not last_key:
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except (ClientError, BotoCoreError) as e:
            raise self._storage_error("list", e) from e
        return items

    def update(self, item_id: str, text: str, completed: bool) -> TodoItem:
        """
        Reemplaza `todo` y `completed` de un item existente.

        Los nombres de atributo van como placeholders (#t, #c) para no
        chocar con la lista de palabras reservadas de DynamoDB.
        ReturnValues="ALL_NEW" retorna el item ya actualizado, asi evitamos
        un get_item extra.
        """
        try:
            response = self.table.update_item(
                Key={"id": item_id},
                UpdateExpression="SET #t = :t, #c = :c",
                ExpressionAttributeNames={"#t": "todo", "#c": "completed"},
                ExpressionAttributeValues={":t": text, ":c": completed},
                ConditionExpression=Attr("id").exists(),
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if _is_condition_failure(e):
                raise NotFound() from e
            raise self._storage_error("update", e, item_id=item_id) from e
        except BotoCoreError as e:
            raise self._storage_error("update", e, item_id=item_id) from e
        return self._from_record(response["Attributes"], "update")

    def delete(self, item_id: str) -> None:
        """
        Elimina un item.

        delete_item de DynamoDB NO falla si el item no existe (es
        idempotente). Pedimos ReturnValues="ALL_OLD" para saber si realmente
        habia algo que borrar; si no, lanzamos NotFound y el handler decide
        (nuestra API responde 404).
        """
        try:
            response = self.table.delete_item(Key={"id": item_id}, ReturnValues="ALL_OLD")
        except (ClientError, BotoCoreError) as e:
            raise self._storage_error("delete", e, item_id=item_id) from e
        if not response.get("Attributes"):
            raise NotFound()

    # ---------- Conversion item <-> registro DynamoDB ----------

    @staticmethod
    def _to_record(item: TodoItem) -> dict:
        return item.model_dump(by_alias=True)

    def _from_record(self, record: dict, operation: str) -> TodoItem:
        # Un registro escrito a mano (o por otra version) puede venir sin
        # "todo": es un fallo del almacen, no un 500 generico.
        try:
            return TodoItem(
                id=record["id"],
                todo=record["todo"],
                completed=bool(record.get("completed", False)),
                created_at=record.get("createdAt", ""),
            )
        except (KeyError, PydanticValidationError) as e:
            raise self._storage_error(operation, e, item_id=record.get("id")) from e

    def _storage_error(self, operation: str, error: Exception, **context) -> StorageError:
        # El detalle completo va al log; el cliente solo ve un 500 opaco.
        logger.error(
            "storage_error",
            operation=operation,
            table=self.table_name,
            error=str(error),
            exc_info=error,
            **context,
        )
        return StorageError()
