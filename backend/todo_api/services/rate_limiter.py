"""
Modulo de limitacion de tasa por API key (token bucket + cuota).

Cada API key autenticada tiene DOS contadores independientes, definidos
por su plan de uso (UsagePlan):

1. **Token bucket** (limita la VELOCIDAD)
   ---------------------------------------
   Imagina un balde con capacidad `burst` fichas. Cada peticion admitida
   saca una ficha. El balde se rellena de forma CONTINUA a `rate` fichas
   por segundo (no de golpe cada segundo), sin pasar nunca de `burst`.
   Si el balde esta vacio -> RateLimited (HTTP 429).

   Ejemplo con rate=1, burst=3:
       t=0.0s  3 fichas -> 3 peticiones seguidas pasan, la 4ta recibe 429
       t=0.5s  0.5 fichas -> todavia 429
       t=1.0s  1 ficha  -> pasa una peticion mas

2. **Cuota** (limita el VOLUMEN)
   ------------------------------
   Cuenta las peticiones admitidas dentro de una ventana de calendario
   (dia, semana ISO que empieza el lunes, o mes, siempre en UTC). Al llegar
   a `quota_limit`, todas las peticiones siguientes reciben QuotaExceeded
   (HTTP 429) aunque el balde tenga fichas, hasta que empiece la ventana
   siguiente. No hay timers: el cambio de ventana se detecta comparando la
   hora actual con la ventana guardada en cada chequeo.

Orden de los chequeos: primero el balde (el mas barato), despues la cuota.
Solo una peticion ADMITIDA consume ficha y suma a la cuota.

Concurrencia
------------
Cada API key tiene su propio threading.Lock. Dos peticiones de la MISMA
key se serializan (no se pierden actualizaciones), pero keys distintas
avanzan en paralelo: no hay un lock global.
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from todo_api.errors import QuotaExceeded, RateLimited
from todo_api.logging import get_logger
from todo_api.models.schemas import QuotaPeriod, UsagePlan

logger = get_logger("todo_api.rate_limiter")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def quota_window(period: QuotaPeriod, now: datetime) -> tuple[datetime, datetime]:
    """
    Retorna (inicio, fin) de la ventana de cuota que contiene `now`.

    Ejemplo: para MONTH y now=2024-02-10T15:00Z la ventana es
    [2024-02-01T00:00Z, 2024-03-01T00:00Z).
    """
    now = now.astimezone(timezone.utc)
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == QuotaPeriod.DAY:
        return day_start, day_start + timedelta(days=1)
    if period == QuotaPeriod.WEEK:
        # weekday(): lunes=0 ... domingo=6
        start = day_start - timedelta(days=day_start.weekday())
        return start, start + timedelta(days=7)
    start = day_start.replace(day=1)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


@dataclass
class _CredentialState:
    """Estado mutable de UNA API key. Solo se toca con `lock` tomado."""
    tokens: float
    refilled_at: float
    window_start: datetime | None = None
    quota_used: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock)


class RateLimiter:
    """
    Rate limiter por API key.

    Parametros:
        plans (dict[str, UsagePlan]): Planes por nombre.
        bindings (dict[str, str]): id de credencial -> nombre de plan.
        monotonic: Reloj monotono en segundos (para el balde).
        clock: Reloj de pared UTC (para las ventanas de cuota).
            Ambos relojes se pueden reemplazar en tests.
    """

    def __init__(self, plans: dict[str, UsagePlan], bindings: dict[str, str],
                 monotonic=time.monotonic, clock=_utc_now):
        self._plans = plans
        self._bindings = bindings
        self._monotonic = monotonic
        self._clock = clock
        self._states: dict[str, _CredentialState] = {}

    def plan_for(self, credential_id: str) -> UsagePlan:
        return self._plans[self._bindings[credential_id]]

    def _state_for(self, credential_id: str, plan: UsagePlan) -> _CredentialState:
        state = self._states.get(credential_id)
        if state is None:
            # setdefault es atomico: si dos hilos llegan a la vez, ambos
            # reciben el MISMO estado.
            fresh = _CredentialState(tokens=float(plan.burst), refilled_at=self._monotonic())
            state = self._states.setdefault(credential_id, fresh)
        return state

    def check(self, credential_id: str) -> None:
        """
        Admite la peticion o lanza RateLimited / QuotaExceeded.

        Si la admite, consume una ficha y suma uno a la cuota, todo bajo el
        lock de la credencial.
        """
        plan = self.plan_for(credential_id)
        state = self._state_for(credential_id, plan)

        with state.lock:
            # --- Recarga continua del balde ---
            now = self._monotonic()
            elapsed = max(0.0, now - state.refilled_at)
            state.tokens = min(float(plan.burst), state.tokens + elapsed * plan.rate)
            state.refilled_at = now

            # --- Chequeo 1: token bucket ---
            if state.tokens < 1.0:
                retry_after = (1.0 - state.tokens) / plan.rate
                logger.warning("rate_limited", credential=credential_id, retry_after=round(retry_after, 3))
                raise RateLimited(retry_after=retry_after)

            # --- Chequeo 2: cuota ---
            wall_now = self._clock()
            window_start, window_end = quota_window(plan.quota_period, wall_now)
            if state.window_start != window_start:
                # Empezo una ventana nueva: el contador vuelve a cero.
                state.window_start = window_start
                state.quota_used = 0
            if state.quota_used >= plan.quota_limit:
                retry_after = (window_end - wall_now).total_seconds()
                logger.warning(
                    "quota_exceeded",
                    credential=credential_id,
                    quota_limit=plan.quota_limit,
                    period=plan.quota_period.value,
                )
                raise QuotaExceeded(retry_after=retry_after)

            # --- Admitida ---
            state.tokens -= 1.0
            state.quota_used += 1

    def usage(self, credential_id: str) -> dict:
        """Snapshot del estado de una key (tokens disponibles y cuota usada)."""
        state = self._states.get(credential_id)
        if state is None:
            plan = self.plan_for(credential_id)
            return {"tokens": float(plan.burst), "quota_used": 0}
        with state.lock:
            return {"tokens": state.tokens, "quota_used": state.quota_used}
