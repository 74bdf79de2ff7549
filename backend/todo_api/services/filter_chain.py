"""
Cadena de filtros (firewall de aplicacion) que inspecciona cada peticion
ANTES de autenticarla.

Funcionamiento
--------------
La cadena es una lista de reglas ordenadas por `priority` ascendente
(0 se evalua primero). Para cada regla:

    si su matcher hace match -> se aplica su accion (allow/block) y se
                                DEJA de evaluar el resto
    si no                    -> se pasa a la siguiente regla

Si ninguna regla hace match se aplica la accion por defecto: allow.
Exactamente UNA regla decide cada peticion (first match wins).

Tipos de matcher
----------------
- SignatureMatcher: busca firmas de ataque conocidas (expresiones
  regulares) en el path, el query string, los headers y el body.
  Grupos incluidos: inyeccion SQL, path traversal e inyeccion de comandos.
  La lista es extensible desde el provisioning (extra_signatures).
- RateBasedMatcher (limiter.py): bloquea IPs que superan N peticiones
  en una ventana fija.
- IpSetMatcher: hace match con IPs o redes (CIDR). Sirve para listas de
  IPs confiables (allow) o bloqueadas (block).

Cuando una regla bloquea, se escribe un evento "filter_blocked" en el log
con la regla y la firma que hizo match. Al cliente solo le llega un 403
generico.
"""

import ipaddress
import re
from dataclasses import dataclass
from enum import Enum

from todo_api.errors import FilterBlocked
from todo_api.limiter import RateBasedMatcher
from todo_api.logging import get_logger
from todo_api.models.schemas import FilterSettings

logger = get_logger("todo_api.filter")


class Action(str, Enum):
    ALLOW = "allow"
    BLOCK = "block"


# ---------- Firmas de ataque ----------

SQL_INJECTION = [
    r"(?i)\bunion\b\s+(all\s+)?select\b",
    r"(?i)'\s*(or|and)\s+('?\d+'?|'\w*')\s*=\s*('?\d+'?|'\w*')",
    r"(?i);\s*(drop|truncate|alter)\s+table\b",
    r"(?i);\s*(delete\s+from|insert\s+into)\b",
    r"(?i)\b(sleep|benchmark|pg_sleep)\s*\(\s*\d+\s*\)",
    r"(?i)'\s*(--|#)",
]

PATH_TRAVERSAL = [
    r"\.\.[/\\]",
    r"(?i)%2e%2e(%2f|%5c|/|\\)",
    r"(?i)/etc/(passwd|shadow|hosts)\b",
    r"(?i)\b(boot|win)\.ini\b",
]

COMMAND_INJECTION = [
    r"(?i)(;|\|\|?|&&)\s*(rm\s+-|cat\s+/|curl\s+https?:|wget\s+https?:|bash\s+-|sh\s+-c|nc\s+-)",
    r"\$\([^)]*\)",
    r"(?i)`\s*(rm|cat|curl|wget|bash|sh|id|whoami|uname)\b[^`]*`",
    r"(?i)\$\{(jndi|ifs)\b",
]


@dataclass(frozen=True)
class InspectedRequest:
    """
    Vista de solo lectura de una peticion, lo unico que ven los matchers.

    Atributos:
        method (str): Metodo HTTP.
        path (str): Path ya decodificado (ej: "/todos/1' OR 1=1").
        query (str): Query string decodificado.
        headers (tuple[tuple[str, str], ...]): Pares (nombre, valor).
        body (str): Body como texto (bytes invalidos reemplazados).
        source (str): Direccion de origen del cliente.
    """
    method: str
    path: str
    query: str = ""
    headers: tuple[tuple[str, str], ...] = ()
    body: str = ""
    source: str = "127.0.0.1"


class SignatureMatcher:
    """
    Matcher de firmas: hace match si ALGUNA firma aparece en el path,
    el query string, algun valor de header o el body.
    """

    def __init__(self, signatures: list[str]):
        self.patterns = [re.compile(signature) for signature in signatures]

    def _targets(self, request: InspectedRequest):
        yield "path", request.path
        if request.query:
            yield "query", request.query
        for name, value in request.headers:
            yield f"header:{name}", value
        if request.body:
            yield "body", request.body

    def match(self, request: InspectedRequest) -> str | None:
        for location, text in self._targets(request):
            for pattern in self.patterns:
                if pattern.search(text):
                    return f"{location} matched {pattern.pattern}"
        return None


class IpSetMatcher:

    def __init__(self, networks: list[str]):
        self.networks = [ipaddress.ip_network(network, strict=False) for network in networks]

    def match(self, request: InspectedRequest) -> str | None:
        try:
            address = ipaddress.ip_address(request.source)
        except ValueError:
            return None
        for network in self.networks:
            if address in network:
                return f"source {address} in {network}"
        return None


@dataclass(frozen=True)
class FilterRule:
    name: str
    priority: int
    matcher: object
    action: Action = Action.BLOCK


@dataclass(frozen=True)
class Verdict:
    """Resultado de evaluar la cadena: accion y regla que decidio (None = default)."""
    action: Action
    rule: str | None = None
    detail: str | None = None


class FilterChain:
    """
    Cadena de reglas de filtrado.

    Parametros:
        rules (list[FilterRule]): Reglas en cualquier orden; se ordenan por
            prioridad. Dos reglas con la misma prioridad son un error de
            configuracion (ValueError), porque el orden seria ambiguo.
    """

    def __init__(self, rules: list[FilterRule]):
        priorities = [rule.priority for rule in rules]
        if len(priorities) != len(set(priorities)):
            raise ValueError("filter rule priorities must be unique")
        self.rules = sorted(rules, key=lambda rule: rule.priority)

    def evaluate(self, request: InspectedRequest) -> Verdict:
        for rule in self.rules:
            detail = rule.matcher.match(request)
            if detail is not None:
                return Verdict(action=rule.action, rule=rule.name, detail=detail)
        return Verdict(action=Action.ALLOW)

    def enforce(self, request: InspectedRequest) -> Verdict:
        """Evalua la peticion y lanza FilterBlocked si alguna regla la bloquea."""
        verdict = self.evaluate(request)
        if verdict.action == Action.BLOCK:
            logger.warning(
                "filter_blocked",
                rule=verdict.rule,
                detail=verdict.detail,
                source=request.source,
                method=request.method,
                path=request.path,
            )
            raise FilterBlocked()
        return verdict


def build_filter_chain(filters: FilterSettings, rate_storage=None) -> FilterChain:
    """
    Arma la cadena de filtros estandar a partir del provisioning.

    Orden de evaluacion:
        0   allow-ips          (IPs confiables, saltan el resto)
        10  block-ips
        20  rate-based         (flood por IP)
        30  sql-injection
        40  path-traversal
        50  command-injection
        60  custom-signatures  (extra_signatures del provisioning)
    """
    rules = []
    if filters.allow_ips:
        rules.append(FilterRule("allow-ips", 0, IpSetMatcher(filters.allow_ips), Action.ALLOW))
    if filters.block_ips:
        rules.append(FilterRule("block-ips", 10, IpSetMatcher(filters.block_ips)))
    rules.append(FilterRule(
        "rate-based", 20,
        RateBasedMatcher(filters.rate_limit, filters.rate_window_seconds, storage=rate_storage),
    ))
    rules.append(FilterRule("sql-injection", 30, SignatureMatcher(SQL_INJECTION)))
    rules.append(FilterRule("path-traversal", 40, SignatureMatcher(PATH_TRAVERSAL)))
    rules.append(FilterRule("command-injection", 50, SignatureMatcher(COMMAND_INJECTION)))
    if filters.extra_signatures:
        rules.append(FilterRule("custom-signatures", 60, SignatureMatcher(filters.extra_signatures)))
    return FilterChain(rules)
