from __future__ import annotations

import pytest

from modloc import config
from modloc.llm import CircuitBreaker, CircuitBreakerManager, CircuitBreakerOpenError
from modloc.llm.circuit_breaker import CLOSED, HALF_OPEN, OPEN


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _fail():
    raise RuntimeError("boom")


def _trip(breaker: CircuitBreaker) -> None:
    for _ in range(breaker.failure_threshold):
        with pytest.raises(RuntimeError):
            breaker.execute(_fail)


def test_opens_after_consecutive_failures() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker("openai", failure_threshold=3, open_timeout_seconds=60, clock=clock)

    _trip(breaker)

    status = breaker.get_status()
    assert status["state"] == OPEN
    assert status["last_error"] == "boom"
    assert status["last_error_type"] == "RuntimeError"
    assert status["will_attempt_close_at"] == 1_060
    assert not status["is_allowing_requests"]

    calls = []
    with pytest.raises(CircuitBreakerOpenError) as excinfo:
        breaker.execute(lambda: calls.append(1))
    assert calls == []
    assert excinfo.value.code == "circuit_open"
    assert excinfo.value.details["provider"] == "openai"


def test_success_resets_failure_count() -> None:
    breaker = CircuitBreaker("openai", failure_threshold=2, clock=FakeClock())
    with pytest.raises(RuntimeError):
        breaker.execute(_fail)
    assert breaker.execute(lambda: "ok") == "ok"
    with pytest.raises(RuntimeError):
        breaker.execute(_fail)
    assert breaker.state == CLOSED


def test_half_open_closes_after_successes() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker("gemini", failure_threshold=1, success_threshold=2,
                             open_timeout_seconds=30, clock=clock)
    _trip(breaker)

    clock.now += 30
    assert breaker.get_status()["state"] == HALF_OPEN

    breaker.execute(lambda: None)
    assert breaker.state == HALF_OPEN
    breaker.execute(lambda: None)
    assert breaker.state == CLOSED
    assert breaker.get_status()["opened_at"] is None


def test_half_open_failure_reopens() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker("deepl", failure_threshold=1, open_timeout_seconds=10, clock=clock)
    _trip(breaker)
    clock.now += 10

    with pytest.raises(RuntimeError):
        breaker.execute(_fail)

    assert breaker.state == OPEN
    assert breaker.get_status()["opened_at"] == int(clock.now)


def test_reset_closes_breaker() -> None:
    breaker = CircuitBreaker("openai", failure_threshold=1, clock=FakeClock())
    _trip(breaker)
    breaker.reset()
    status = breaker.get_status()
    assert status["state"] == CLOSED
    assert status["last_error"] is None


def test_manager_uses_configured_thresholds() -> None:
    stored = config.load_config()
    stored["circuit_breaker"]["failure_threshold"] = 2
    config.save_config(stored)

    manager = CircuitBreakerManager(open_timeout_seconds=5, clock=FakeClock())
    breaker = manager.get_breaker("anthropic")
    assert breaker.failure_threshold == 2
    assert breaker.success_threshold == 3
    assert breaker.open_timeout_seconds == 5
    assert manager.get_breaker("anthropic") is breaker


def test_manager_status_and_reset() -> None:
    manager = CircuitBreakerManager(failure_threshold=1, clock=FakeClock())
    assert manager.get_status("openai")["state"] == CLOSED
    assert manager.get_all_statuses() == {}

    with pytest.raises(RuntimeError):
        manager.execute("openai", _fail)
    assert manager.get_status("openai")["state"] == OPEN
    assert manager.get_status("deepl")["state"] == CLOSED

    manager.reset("openai")
    assert manager.get_status("openai")["state"] == CLOSED

    with pytest.raises(RuntimeError):
        manager.execute("deepl", _fail)
    manager.reset_all()
    assert all(s["state"] == CLOSED for s in manager.get_all_statuses().values())


def test_manager_ignores_unknown_stored_settings() -> None:
    stored = config.load_config()
    stored["circuit_breaker"].update({"enabled": True, "failure_threshold": 4})
    config.save_config(stored)

    breaker = CircuitBreakerManager(clock=FakeClock()).get_breaker("openai")
    assert breaker.failure_threshold == 4
    assert breaker.state == CLOSED
