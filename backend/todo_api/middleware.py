"""
Middlewares ASGI del borde de la aplicacion.

    PreflightMiddleware -> responde TODO OPTIONS con un 200 fijo (CORS)
    FilterMiddleware    -> ejecuta la cadena de filtros sobre cada peticion

Por que el filtro es un middleware y no una dependencia de FastAPI?
-------------------------------------------------------------------
Las dependencias solo corren cuando una ruta hace match. El filtro tiene
que inspeccionar TODO el trafico, incluso peticiones a paths que no
existen (ej: GET /../../etc/passwd), y hacerlo antes de autenticar.

Por que ASGI "puro" y no BaseHTTPMiddleware?
--------------------------------------------
Para inspeccionar el body hay que leerlo ANTES que la aplicacion. En ASGI
el body llega como una serie de mensajes "http.request" que solo se pueden
consumir una vez. Este middleware los junta, los inspecciona y despues le
entrega a la aplicacion un `receive` que "repite" el body completo.

Como el body se lee antes de autenticar, cualquier cliente anonimo podria
mandar uno enorme. Por eso hay un tope (MAX_BODY_BYTES): al superarlo se
corta la lectura y se responde 413.
"""

from urllib.parse import unquote_plus

from fastapi.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse

from todo_api.errors import FilterBlocked, PayloadTooLarge
from todo_api.limiter import client_source
from todo_api.services.filter_chain import FilterChain, InspectedRequest


class PreflightMiddleware(CORSMiddleware):
    """
    CORSMiddleware con un preflight "enlatado".

    El CORSMiddleware de Starlette valida el preflight: un origen, metodo
    o header fuera de la lista responde 400, y un OPTIONS sin
    Access-Control-Request-Method sigue de largo hasta el router (404).
    Aqui CUALQUIER OPTIONS recibe el mismo 200 con los valores
    configurados, sin pasar por el filtro, la API key ni el rate limit.
    Es el navegador quien decide si el origen le sirve.

    Las respuestas normales siguen recibiendo los headers CORS del
    CORSMiddleware original.
    """

    def __init__(self, app, allow_origins=(), allow_methods=("GET",), allow_headers=(), max_age: int = 600):
        super().__init__(
            app,
            allow_origins=allow_origins,
            allow_methods=allow_methods,
            allow_headers=allow_headers,
            max_age=max_age,
        )
        origins = list(allow_origins)
        self.default_origin = "*" if "*" in origins else (origins[0] if origins else "null")
        self.canned_headers = {
            "Access-Control-Allow-Methods": ", ".join(allow_methods),
            "Access-Control-Allow-Headers": ", ".join(allow_headers),
            "Access-Control-Max-Age": str(max_age),
            "Vary": "Origin",
        }

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope["method"] == "OPTIONS":
            response = self.preflight_response(request_headers=Request(scope).headers)
            await response(scope, receive, send)
            return
        await super().__call__(scope, receive, send)

    def preflight_response(self, request_headers):
        # Si el origen esta permitido se refleja tal cual; si no, se
        # anuncia el origen configurado y el navegador bloquea.
        origin = request_headers.get("origin")
        headers = dict(self.canned_headers)
        headers["Access-Control-Allow-Origin"] = (
            origin if origin and self.is_allowed_origin(origin) else self.default_origin
        )
        return PlainTextResponse("OK", status_code=200, headers=headers)


class FilterMiddleware:

    def __init__(self, app, filter_chain: FilterChain, max_body_bytes: int = 64 * 1024):
        self.app = app
        self.filter_chain = filter_chain
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        # --- Paso 1: leer el body completo (con tope) ---
        declared = Request(scope).headers.get("content-length", "")
        if declared.isdigit() and int(declared) > self.max_body_bytes:
            await self._reject(PayloadTooLarge(), scope, receive, send)
            return

        chunks = []
        size = 0
        while True:
            message = await receive()
            if message["type"] != "http.request":
                break
            chunk = message.get("body", b"")
            size += len(chunk)
            if size > self.max_body_bytes:
                await self._reject(PayloadTooLarge(), scope, receive, send)
                return
            chunks.append(chunk)
            if not message.get("more_body", False):
                break
        body = b"".join(chunks)

        # --- Paso 2: evaluar la cadena ---
        request = InspectedRequest(
            method=scope["method"],
            path=scope["path"],
            query=unquote_plus(scope.get("query_string", b"").decode("latin-1")),
            headers=tuple(
                (name.decode("latin-1"), value.decode("latin-1"))
                for name, value in scope.get("headers", [])
            ),
            body=body.decode("utf-8", errors="replace"),
            source=client_source(scope),
        )
        try:
            self.filter_chain.enforce(request)
        except FilterBlocked as blocked:
            await self._reject(blocked, scope, receive, send)
            return

        # --- Paso 3: pasar la peticion con el body "repetido" ---
        replayed = False

        async def replay_receive():
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay_receive, send)

    @staticmethod
    async def _reject(error, scope, receive, send):
        response = JSONResponse(status_code=error.status_code, content={"detail": error.message})
        await response(scope, receive, send)
