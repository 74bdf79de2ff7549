"""
Script para crear la tabla de TODOs en DynamoDB.

En AWS la tabla la crea la infraestructura (CDK/CloudFormation). Este
script sirve para desarrollo local contra DynamoDB Local:

    docker run -p 8000:8000 amazon/dynamodb-local
    DYNAMODB_ENDPOINT_URL=http://localhost:8000 python scripts/create_table.py

Usa el mismo ItemStore que la aplicacion, asi la tabla queda con
exactamente el esquema que la API espera (clave de particion "id").

Requisitos:
    - Credenciales AWS configuradas (con DynamoDB Local sirven valores
      ficticios: AWS_ACCESS_KEY_ID=local AWS_SECRET_ACCESS_KEY=local)
    - Permiso dynamodb:CreateTable
"""

from botocore.exceptions import ClientError

from todo_api.services.item_store import ItemStore


def create_table():
    store = ItemStore()
    try:
        store.create_table()
    except ClientError as e:
        # Correr el script dos veces no es un error.
        if e.response.get("Error", {}).get("Code") != "ResourceInUseException":
            raise
        print(f"Table already exists: {store.table_name}")
        return
    print(f"Created table: {store.table_name}")


if __name__ == "__main__":
    create_table()
