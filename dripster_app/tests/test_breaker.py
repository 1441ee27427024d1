import pytest
from sqlalchemy.exc import OperationalError

from core.breaker import CircuitBreaker
from core.storage_errors import StorageUnavailableError


def _down():
    return OperationalError("SELECT 1", {}, Exception("connection refused"))


async def _fail(exc):
    raise exc


async def _ok():
    return "ok"


async def test_opens_after_threshold_and_fails_fast():
    breaker = CircuitBreaker(failure_threshold=2, base_recovery_time=60)

    for _ in range(2):
        with pytest.raises(OperationalError):
            await breaker.call(_fail, _down())

    assert breaker.state == "OPEN"
    with pytest.raises(StorageUnavailableError):
        await breaker.call(_ok)


async def test_application_errors_do_not_count():
    breaker = CircuitBreaker(failure_threshold=1)

    with pytest.raises(ValueError):
        await breaker.call(_fail, ValueError("bad input"))

    assert breaker.state == "CLOSED"
    assert breaker.failure_count == 0


async def test_missing_schema_does_not_trip():
    breaker = CircuitBreaker(failure_threshold=1)
    missing = OperationalError("SELECT 1", {}, Exception("no such table: messages"))

    with pytest.raises(OperationalError):
        await breaker.call(_fail, missing)

    assert breaker.state == "CLOSED"


async def test_half_open_success_closes_circuit():
    breaker = CircuitBreaker(failure_threshold=1, base_recovery_time=0)

    with pytest.raises(OperationalError):
        await breaker.call(_fail, _down())
    assert breaker.state == "OPEN"

    assert await breaker.call(_ok) == "ok"
    assert breaker.state == "CLOSED"
    assert breaker.failure_count == 0


async def test_half_open_failure_reopens():
    breaker = CircuitBreaker(failure_threshold=3, base_recovery_time=0)
    breaker.failure_count = 3
    breaker.state = "OPEN"

    with pytest.raises(OperationalError):
        await breaker.call(_fail, _down())

    assert breaker.state == "OPEN"


def test_recovery_time_backs_off_and_caps():
    breaker = CircuitBreaker(failure_threshold=2, base_recovery_time=10, max_recovery_time=60)

    breaker.failure_count = 2
    assert breaker.current_recovery_time == 10
    breaker.failure_count = 4
    assert breaker.current_recovery_time == 40
    breaker.failure_count = 9
    assert breaker.current_recovery_time == 60
