"""
Modulo de esquemas (schemas) de datos de la API.

Este archivo define la ESTRUCTURA EXACTA de los datos que entran y salen
de nuestra API, usando Pydantic. Es el "contrato" entre el frontend y
el backend.

Hay dos grupos de schemas:

1. **Schemas HTTP** (TodoItem, TodoCreate, TodoUpdate, ErrorResponse):
   lo que viaja en el body de las peticiones y respuestas.

2. **Schemas de provisioning** (Credential, UsagePlan, FilterSettings,
   ProvisioningDocument): la configuracion que se carga UNA vez al
   arrancar el proceso (API keys, planes de uso, reglas de filtrado).
   Pydantic valida las invariantes (ej: burst >= rate) al cargarla, asi
   un archivo mal escrito falla al arrancar y no en medio de una peticion.

Flujo tipico:
    JSON del cliente -> Pydantic valida -> Objeto Python -> Tu logica -> Pydantic serializa -> JSON de respuesta
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, StrictBool, model_validator


# ---------- Schemas HTTP ----------


class TodoItem(BaseModel):
    """
    Un elemento de la lista de TODOs tal como se guarda y se devuelve.

    Atributos:
        id (str): UUID v4 generado al crear el item. Inmutable.
        todo (str): Texto del TODO.
        completed (bool): Si el TODO ya se completo.
        created_at (str): Fecha de creacion en ISO-8601 (UTC).
            En el JSON aparece como "createdAt" (alias).
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str
    todo: str
    completed: bool = False
    created_at: str = Field(alias="createdAt")


class TodoCreate(BaseModel):
    """
    Body de POST /todos.

    min_length=1 hace que un texto vacio ("") sea rechazado igual que
    un campo ausente.
    """
    todo: str = Field(min_length=1)


class TodoUpdate(BaseModel):
    """
    Body de PUT /todos/{id}.

    El update es un REEMPLAZO COMPLETO: ambos campos son obligatorios.
    Un body parcial (ej: solo {"completed": true}) se rechaza con 400 en
    vez de rellenar el campo faltante con un valor por defecto.
    StrictBool evita que "yes" o 1 se conviertan silenciosamente en True.
    """
    todo: str = Field(min_length=1)
    completed: StrictBool


class ErrorResponse(BaseModel):
    """
    Schema estandar para respuestas de error.

    Todas las respuestas de error siguen este formato, sin importar en que
    capa del pipeline se originaron.
    """
    detail: str


# ---------- Schemas de provisioning ----------


class QuotaPeriod(str, Enum):
    """Periodo de la cuota. Las ventanas estan alineadas al calendario (UTC)."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class UsagePlan(BaseModel):
    """
    Plan de uso asociado a una o mas API keys.

    Atributos:
        rate (float): Tokens por segundo que se recargan en el bucket.
        burst (int): Capacidad maxima del bucket (rafaga).
        quota_limit (int): Peticiones admitidas por ventana de cuota.
        quota_period (QuotaPeriod): day, week o month.
    """
    rate: float = Field(gt=0)
    burst: int = Field(gt=0)
    quota_limit: int = Field(gt=0)
    quota_period: QuotaPeriod = QuotaPeriod.DAY

    @model_validator(mode="after")
    def _burst_covers_rate(self):
        if self.burst < self.rate:
            raise ValueError(f"burst ({self.burst}) must be >= rate ({self.rate})")
        return self


class Credential(BaseModel):
    """
    API key conocida por el Auth Gate.

    Atributos:
        id (str): Identificador publico (aparece en los logs).
        secret (str): Valor que el cliente envia en el header x-api-key.
            NUNCA se escribe en los logs.
        enabled (bool): Una key deshabilitada se rechaza igual que una
            desconocida.
        plan (str): Nombre del UsagePlan al que esta asociada.
    """
    id: str
    secret: str = Field(min_length=1)
    enabled: bool = True
    plan: str = "default"


class FilterSettings(BaseModel):
    """Parametros de las reglas de filtrado que se pueden provisionar."""
    extra_signatures: list[str] = []
    rate_limit: int = Field(default=2000, gt=0)
    rate_window_seconds: int = Field(default=300, gt=0)
    allow_ips: list[str] = []
    block_ips: list[str] = []


class ProvisioningDocument(BaseModel):
    """
    Documento completo de provisioning.

    Ejemplo de archivo JSON:

        {
          "plans": {"default": {"rate": 10, "burst": 20,
                                "quota_limit": 1000, "quota_period": "day"}},
          "credentials": [{"id": "frontend", "secret": "s3cr3t"}],
          "filters": {"extra_signatures": ["(?i)<script"]}
        }
    """
    plans: dict[str, UsagePlan]
    credentials: list[Credential] = []
    filters: FilterSettings = Field(default_factory=FilterSettings)

    @model_validator(mode="after")
    def _check_references(self):
        seen_ids: set[str] = set()
        seen_secrets: set[str] = set()
        for credential in self.credentials:
            if credential.id in seen_ids:
                raise ValueError(f"duplicate credential id '{credential.id}'")
            seen_ids.add(credential.id)
            if credential.plan not in self.plans:
                raise ValueError(
                    f"credential '{credential.id}' references unknown plan '{credential.plan}'"
                )
            if credential.secret in seen_secrets:
                raise ValueError(f"credential '{credential.id}' reuses another credential's secret")
            seen_secrets.add(credential.secret)
        return self
