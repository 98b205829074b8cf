"""
Unit tests for the circuit breaker.
"""

import asyncio

import pytest

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException, CircuitBreakerState


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


async def fail():
    raise RuntimeError("upstream down")


async def succeed():
    return "ok"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(failure_threshold=2, recovery_timeout=30.0, name="test", clock=clock)


@pytest.mark.asyncio
async def test_opens_after_threshold(breaker):
    for _ in range(2):
        with pytest.raises(RuntimeError):
            await breaker.call(fail)

    assert breaker.is_open()
    with pytest.raises(CircuitBreakerOpenException):
        await breaker.call(succeed)


@pytest.mark.asyncio
async def test_success_resets_failure_count(breaker):
    with pytest.raises(RuntimeError):
        await breaker.call(fail)
    assert await breaker.call(succeed) == "ok"
    with pytest.raises(RuntimeError):
        await breaker.call(fail)

    assert breaker.state is CircuitBreakerState.CLOSED


@pytest.mark.asyncio
async def test_half_open_probe_closes_on_success(breaker, clock):
    for _ in range(2):
        with pytest.raises(RuntimeError):
            await breaker.call(fail)

    clock.now += 31
    assert await breaker.call(succeed) == "ok"
    assert breaker.state is CircuitBreakerState.CLOSED


@pytest.mark.asyncio
async def test_half_open_probe_reopens_on_failure(breaker, clock):
    for _ in range(2):
        with pytest.raises(RuntimeError):
            await breaker.call(fail)

    clock.now += 31
    with pytest.raises(RuntimeError):
        await breaker.call(fail)

    assert breaker.is_open()
    assert breaker.get_state()["failure_count"] == 3


@pytest.mark.asyncio
async def test_half_open_admits_single_probe(breaker, clock):
    for _ in range(2):
        with pytest.raises(RuntimeError):
            await breaker.call(fail)

    clock.now += 31
    release = asyncio.Event()
    calls = []

    async def slow_probe():
        calls.append("probe")
        await release.wait()
        return "ok"

    probe = asyncio.create_task(breaker.call(slow_probe))
    await asyncio.sleep(0)

    assert breaker.state is CircuitBreakerState.HALF_OPEN
    with pytest.raises(CircuitBreakerOpenException):
        await breaker.call(succeed)

    release.set()
    assert await probe == "ok"
    assert calls == ["probe"]
    assert breaker.state is CircuitBreakerState.CLOSED
    assert await breaker.call(succeed) == "ok"


@pytest.mark.asyncio
async def test_next_call_probes_after_failed_probe_window(breaker, clock):
    for _ in range(2):
        with pytest.raises(RuntimeError):
            await breaker.call(fail)

    clock.now += 31
    with pytest.raises(RuntimeError):
        await breaker.call(fail)
    with pytest.raises(CircuitBreakerOpenException):
        await breaker.call(succeed)

    clock.now += 31
    assert await breaker.call(succeed) == "ok"
