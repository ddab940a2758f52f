"""
Circuit breaking and bounded retry around completion backend calls.

- Named circuit breaker: closed -> open after ``failure_threshold`` consecutive
  failures, open -> half-open once ``reset_timeout`` elapses, half-open -> closed
  after two consecutive successes (any half-open failure reopens it).
- Retry with exponential backoff for transient network errors and 5xx responses.
  Rate limits are never retried here; they need a longer, explicit backoff.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal, TypeVar

from litellm.exceptions import APIConnectionError, RateLimitError, Timeout
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .errors import CircuitOpenError
from .llm import ChatResult, CompletionCallable

logger = logging.getLogger(__name__)

CircuitState = Literal["closed", "open", "half_open"]

T = TypeVar("T")

HALF_OPEN_SUCCESSES_TO_CLOSE = 2

_NETWORK_EXCEPTIONS: tuple[type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    APIConnectionError,
    Timeout,
)


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """
    Attributes
    ----------
    name:
        Label used in log lines and :class:`CircuitOpenError` messages.
    failure_threshold:
        Consecutive failures that open the circuit.
    reset_timeout:
        Seconds the circuit stays open before letting a probe call through.
    """

    name: str = "completion"
    failure_threshold: int = 5
    reset_timeout: float = 30.0

    @classmethod
    def from_env(cls, name: str = "completion") -> "CircuitBreakerConfig":
        defaults = cls(name=name)
        return cls(
            name=name,
            failure_threshold=int(
                os.getenv("DRAWTALE_BREAKER_THRESHOLD", defaults.failure_threshold)
            ),
            reset_timeout=float(
                os.getenv("DRAWTALE_BREAKER_RESET_SECONDS", defaults.reset_timeout)
            ),
        )


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff settings (delays in seconds)."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0

    @classmethod
    def from_env(cls) -> "RetryPolicy":
        defaults = cls()
        return cls(
            max_attempts=int(os.getenv("DRAWTALE_RETRY_ATTEMPTS", defaults.max_attempts)),
            base_delay=float(os.getenv("DRAWTALE_RETRY_BASE_DELAY", defaults.base_delay)),
            max_delay=float(os.getenv("DRAWTALE_RETRY_MAX_DELAY", defaults.max_delay)),
        )


class CircuitBreaker:
    """
    Fail fast while an external service is down instead of piling up calls.
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or CircuitBreakerConfig()
        self._clock = clock
        self._state: CircuitState = "closed"
        self._failures = 0
        self._successes = 0
        self._opened_at = 0.0

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def state(self) -> CircuitState:
        if self._state == "open" and self._reset_elapsed():
            self._state = "half_open"
            self._successes = 0
            logger.info("[CircuitBreaker:%s] Transitioning to half-open", self.name)
        return self._state

    @property
    def failures(self) -> int:
        return self._failures

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        if self.state == "open":
            retry_in = self._config.reset_timeout - (self._clock() - self._opened_at)
            raise CircuitOpenError(self.name, max(retry_in, 0.0))

        try:
            result = await fn(*args, **kwargs)
        except Exception as exc:
            self._on_failure(exc)
            raise

        self._on_success()
        return result

    def reset(self) -> None:
        self._state = "closed"
        self._failures = 0
        self._successes = 0
        self._opened_at = 0.0

    def _on_success(self) -> None:
        if self._state == "half_open":
            self._successes += 1
            if self._successes >= HALF_OPEN_SUCCESSES_TO_CLOSE:
                self.reset()
                logger.info("[CircuitBreaker:%s] Circuit closed after recovery", self.name)
        else:
            self._failures = 0

    def _on_failure(self, exc: Exception) -> None:
        self._failures += 1
        self._successes = 0

        if self._state == "half_open":
            self._open()
            logger.warning("[CircuitBreaker:%s] Recovery failed, reopening circuit", self.name)
        elif self._failures >= self._config.failure_threshold:
            self._open()
            logger.warning(
                "[CircuitBreaker:%s] Threshold reached (%d), opening circuit: %s",
                self.name,
                self._failures,
                exc,
            )

    def _open(self) -> None:
        self._state = "open"
        self._opened_at = self._clock()

    def _reset_elapsed(self) -> bool:
        return self._clock() - self._opened_at >= self._config.reset_timeout


def is_rate_limit_error(exc: BaseException) -> bool:
    if isinstance(exc, RateLimitError):
        return True
    return getattr(exc, "status_code", None) == 429


def is_retryable_error(exc: BaseException) -> bool:
    if is_rate_limit_error(exc) or isinstance(exc, CircuitOpenError):
        return False
    if isinstance(exc, _NETWORK_EXCEPTIONS):
        return True
    status = getattr(exc, "status_code", None)
    return isinstance(status, int) and 500 <= status < 600


class ResilientCompletion:
    """
    Wrap a completion callable with a circuit breaker and bounded retry.

    Instances are drop-in replacements for :data:`CompletionCallable`.
    """

    def __init__(
        self,
        completion_fn: CompletionCallable,
        *,
        breaker: CircuitBreaker | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._completion_fn = completion_fn
        self._breaker = breaker or CircuitBreaker()
        self._retry_policy = retry_policy or RetryPolicy()

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def __call__(self, **kwargs: Any) -> ChatResult:
        policy = self._retry_policy
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, policy.max_attempts)),
            wait=wait_exponential(multiplier=policy.base_delay, max=policy.max_delay),
            retry=retry_if_exception(is_retryable_error),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._breaker.call(self._completion_fn, **kwargs)
        raise RuntimeError("Retry loop exited without a result.")  # pragma: no cover
