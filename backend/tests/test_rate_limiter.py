import threading
from datetime import datetime, timezone

import pytest

from todo_api.errors import QuotaExceeded, RateLimited
from todo_api.models.schemas import QuotaPeriod, UsagePlan
from todo_api.services.rate_limiter import RateLimiter, quota_window


def _limiter(clock, **plan_fields):
    plan = UsagePlan(**{"rate": 1, "burst": 3, "quota_limit": 1000, **plan_fields})
    return RateLimiter({"default": plan}, {"alice": "default", "bob": "default"},
                       monotonic=clock.monotonic, clock=clock.now)


def _admit(limiter, credential, times):
    for _ in range(times):
        limiter.check(credential)


def test_burst_plus_one_rejects_exactly_one(clock):
    limiter = _limiter(clock, rate=1, burst=3)

    _admit(limiter, "alice", 3)
    with pytest.raises(RateLimited) as excinfo:
        limiter.check("alice")
    assert not isinstance(excinfo.value, QuotaExceeded)


def test_refill_admits_one_more(clock):
    limiter = _limiter(clock, rate=2, burst=4)
    _admit(limiter, "alice", 4)

    clock.advance(0.5)  # una ficha a 2 fichas/s

    limiter.check("alice")
    with pytest.raises(RateLimited):
        limiter.check("alice")


def test_refill_is_continuous_and_capped(clock):
    limiter = _limiter(clock, rate=1, burst=3)
    _admit(limiter, "alice", 3)

    clock.advance(0.5)
    with pytest.raises(RateLimited) as excinfo:
        limiter.check("alice")
    assert excinfo.value.retry_after == pytest.approx(0.5)

    clock.advance(3600)
    _admit(limiter, "alice", 3)
    with pytest.raises(RateLimited):
        limiter.check("alice")


def test_quota_rejects_regardless_of_tokens(clock):
    limiter = _limiter(clock, rate=100, burst=100, quota_limit=5)

    _admit(limiter, "alice", 5)
    with pytest.raises(QuotaExceeded):
        limiter.check("alice")
    assert limiter.usage("alice")["tokens"] >= 1


def test_quota_rolls_over_with_calendar_day(clock):
    limiter = _limiter(clock, rate=100, burst=100, quota_limit=2)
    _admit(limiter, "alice", 2)
    with pytest.raises(QuotaExceeded) as excinfo:
        limiter.check("alice")
    # 12:00 UTC -> faltan 12 horas para la proxima ventana diaria
    assert excinfo.value.retry_after == pytest.approx(12 * 3600)

    clock.advance(12 * 3600)

    limiter.check("alice")
    assert limiter.usage("alice")["quota_used"] == 1


def test_rate_limited_request_does_not_count_against_quota(clock):
    limiter = _limiter(clock, rate=1, burst=1, quota_limit=2)
    limiter.check("alice")
    with pytest.raises(RateLimited):
        limiter.check("alice")

    assert limiter.usage("alice")["quota_used"] == 1


def test_credentials_are_independent(clock):
    limiter = _limiter(clock, rate=1, burst=2)
    _admit(limiter, "alice", 2)

    _admit(limiter, "bob", 2)
    with pytest.raises(RateLimited):
        limiter.check("alice")


def test_concurrent_checks_never_over_admit(clock):
    limiter = _limiter(clock, rate=1, burst=50)
    admitted = []
    rejected = []

    def worker():
        try:
            limiter.check("alice")
            admitted.append(1)
        except RateLimited:
            rejected.append(1)

    threads = [threading.Thread(target=worker) for _ in range(120)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(admitted) == 50
    assert len(rejected) == 70


@pytest.mark.parametrize("period, now, start, end", [
    (QuotaPeriod.DAY, datetime(2024, 3, 15, 23, 59, tzinfo=timezone.utc),
     datetime(2024, 3, 15, tzinfo=timezone.utc), datetime(2024, 3, 16, tzinfo=timezone.utc)),
    # 2024-03-17 es domingo: la semana empezo el lunes 11
    (QuotaPeriod.WEEK, datetime(2024, 3, 17, 8, 0, tzinfo=timezone.utc),
     datetime(2024, 3, 11, tzinfo=timezone.utc), datetime(2024, 3, 18, tzinfo=timezone.utc)),
    (QuotaPeriod.MONTH, datetime(2024, 12, 31, 10, 0, tzinfo=timezone.utc),
     datetime(2024, 12, 1, tzinfo=timezone.utc), datetime(2025, 1, 1, tzinfo=timezone.utc)),
])
def test_quota_window_is_calendar_aligned(period, now, start, end):
    assert quota_window(period, now) == (start, end)


def test_plan_rejects_burst_below_rate():
    with pytest.raises(ValueError):
        UsagePlan(rate=10, burst=5, quota_limit=100)
