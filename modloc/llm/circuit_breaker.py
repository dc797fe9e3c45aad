"""
Circuit Breaker

Stops calling a provider that keeps failing. States:
- closed: requests pass, consecutive failures are counted
- open: requests are rejected until the timeout elapses
- half_open: requests pass; enough successes close, any failure reopens
"""

import threading
import time
from typing import Any, Callable, Dict, Optional

from modloc import config
from modloc.errors import ServiceError
from modloc.logger import get_logger

logger = get_logger(__name__)

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half_open"


class CircuitBreakerOpenError(ServiceError):
    default_code = "circuit_open"

    def __init__(self, provider: str, will_attempt_close_at: float, last_error: str = None):
        wait = max(0, int(will_attempt_close_at - time.time()))
        message = f"Circuit breaker is OPEN for {provider}. Will attempt to close in {wait}s."
        if last_error:
            message += f" Last error: {last_error}"
        super().__init__(message, details={
            "provider": provider,
            "will_attempt_close_at": int(will_attempt_close_at),
            "last_error": last_error,
        })
        self.provider = provider
        self.will_attempt_close_at = will_attempt_close_at


class CircuitBreaker:
    def __init__(self, provider: str, failure_threshold: int = 5, success_threshold: int = 3,
                 open_timeout_seconds: int = 300, clock: Callable[[], float] = time.time):
        self.provider = provider
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.open_timeout_seconds = open_timeout_seconds
        self._clock = clock
        self._lock = threading.RLock()

        self.state = CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.opened_at: Optional[float] = None
        self.last_error: Optional[str] = None
        self.last_error_type: Optional[str] = None

    def _will_attempt_close_at(self) -> Optional[float]:
        if self.opened_at is None:
            return None
        return self.opened_at + self.open_timeout_seconds

    def _refresh_state(self):
        """Move an expired open breaker to half-open."""
        if self.state == OPEN and self._clock() >= self._will_attempt_close_at():
            logger.info(f"Circuit breaker for {self.provider} is now half-open")
            self.state = HALF_OPEN
            self.failure_count = 0
            self.success_count = 0

    def _open(self):
        logger.warning(f"Circuit breaker for {self.provider} opened: {self.last_error}")
        self.state = OPEN
        self.opened_at = self._clock()
        self.failure_count = 0
        self.success_count = 0

    def _close(self):
        self.state = CLOSED
        self.opened_at = None
        self.failure_count = 0
        self.success_count = 0

    @property
    def is_allowing_requests(self) -> bool:
        with self._lock:
            self._refresh_state()
            return self.state != OPEN

    def before_call(self):
        """Raise CircuitBreakerOpenError while the breaker is open."""
        with self._lock:
            self._refresh_state()
            if self.state == OPEN:
                raise CircuitBreakerOpenError(self.provider, self._will_attempt_close_at(), self.last_error)

    def record_success(self):
        with self._lock:
            if self.state == HALF_OPEN:
                self.success_count += 1
                if self.success_count >= self.success_threshold:
                    logger.info(f"Circuit breaker for {self.provider} closed")
                    self._close()
            elif self.state == CLOSED:
                self.failure_count = 0

    def record_failure(self, error: BaseException):
        with self._lock:
            self.last_error = str(error)
            self.last_error_type = type(error).__name__
            if self.state == CLOSED:
                self.failure_count += 1
                if self.failure_count >= self.failure_threshold:
                    self._open()
            elif self.state == HALF_OPEN:
                self._open()

    def execute(self, func: Callable[[], Any]) -> Any:
        self.before_call()
        try:
            result = func()
        except Exception as e:
            self.record_failure(e)
            raise
        self.record_success()
        return result

    def reset(self):
        with self._lock:
            self._close()
            self.last_error = None
            self.last_error_type = None

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            self._refresh_state()
            close_at = self._will_attempt_close_at()
            return {
                "provider": self.provider,
                "state": self.state,
                "failure_count": self.failure_count,
                "success_count": self.success_count,
                "opened_at": int(self.opened_at) if self.opened_at is not None else None,
                "will_attempt_close_at": int(close_at) if close_at is not None else None,
                "last_error": self.last_error,
                "last_error_type": self.last_error_type,
                "is_allowing_requests": self.state != OPEN,
            }


def _closed_status(provider: str) -> Dict[str, Any]:
    return {
        "provider": provider,
        "state": CLOSED,
        "failure_count": 0,
        "success_count": 0,
        "opened_at": None,
        "will_attempt_close_at": None,
        "last_error": None,
        "last_error_type": None,
        "is_allowing_requests": True,
    }


class CircuitBreakerManager:
    """One breaker per provider, created lazily with the configured thresholds."""

    def __init__(self, failure_threshold: int = None, success_threshold: int = None,
                 open_timeout_seconds: int = None, clock: Callable[[], float] = time.time):
        self._overrides = {
            "failure_threshold": failure_threshold,
            "success_threshold": success_threshold,
            "open_timeout_seconds": open_timeout_seconds,
        }
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def _thresholds(self) -> Dict[str, int]:
        settings = dict(config.DEFAULT_CONFIG["circuit_breaker"])
        stored = config.load_config().get("circuit_breaker") or {}
        settings.update({key: stored[key] for key in config.CIRCUIT_BREAKER_KEYS if key in stored})
        for key, value in self._overrides.items():
            if value is not None:
                settings[key] = value
        return settings

    def get_breaker(self, provider: str) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(provider)
            if breaker is None:
                breaker = CircuitBreaker(provider, clock=self._clock, **self._thresholds())
                self._breakers[provider] = breaker
            return breaker

    def execute(self, provider: str, func: Callable[[], Any]) -> Any:
        return self.get_breaker(provider).execute(func)

    def get_status(self, provider: str) -> Dict[str, Any]:
        with self._lock:
            breaker = self._breakers.get(provider)
        if breaker is None:
            return _closed_status(provider)
        return breaker.get_status()

    def get_all_statuses(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            breakers = list(self._breakers.values())
        return {breaker.provider: breaker.get_status() for breaker in breakers}

    def reset(self, provider: str):
        with self._lock:
            breaker = self._breakers.get(provider)
        if breaker is not None:
            breaker.reset()
            logger.info(f"Circuit breaker for {provider} reset")

    def reset_all(self):
        with self._lock:
            breakers = list(self._breakers.values())
        for breaker in breakers:
            breaker.reset()
        logger.info("All circuit breakers reset")
