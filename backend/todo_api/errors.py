"""
Taxonomia de errores de la API.

Cada capa del pipeline (filtro, autenticacion, rate limiter, almacenamiento)
lanza UNA de estas excepciones. El router (main.py) las traduce a un codigo
HTTP y a un JSON minimo {"detail": "..."}.

    ValidationError  -> 400
    NotFound         -> 404
    Unauthenticated  -> 403
    FilterBlocked    -> 403
    RateLimited      -> 429
    QuotaExceeded    -> 429
    StorageError     -> 500

El atributo `message` es lo UNICO que ve el cliente. Los detalles internos
(firma que hizo match, error de DynamoDB, etc.) van al log, nunca a la
respuesta.
"""


class TodoApiError(Exception):
    """Clase base de todos los errores de la API."""

    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationError(TodoApiError):
    status_code = 400
    message = "Invalid request body"


class NotFound(TodoApiError):
    status_code = 404
    message = "Todo item not found"


class Unauthenticated(TodoApiError):
    status_code = 403
    message = "Forbidden"


class FilterBlocked(TodoApiError):
    # Mismo mensaje generico que Unauthenticated: no revelamos que regla
    # ni que firma bloqueo la peticion.
    status_code = 403
    message = "Forbidden"


class PayloadTooLarge(TodoApiError):
    # Lo corta el middleware de filtros antes de leer el body completo.
    status_code = 413
    message = "Request body too large"


class RateLimited(TodoApiError):
    status_code = 429
    message = "Too many requests"

    def __init__(self, retry_after: float = 1.0, message: str | None = None):
        self.retry_after = retry_after
        super().__init__(message)


class QuotaExceeded(RateLimited):
    message = "Limit exceeded"


class StorageError(TodoApiError):
    status_code = 500
    message = "Internal server error"
