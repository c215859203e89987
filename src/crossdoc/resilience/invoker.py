"""Concurrency-limited, rate-aware executor shared by every external call."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from crossdoc.config import InvokerConfig
from crossdoc.errors import DeadlineExceeded, RateLimited, RateLimitExceeded
from crossdoc.obs.tracing import InvocationLog

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]
ErrorClassifier = Callable[[BaseException], bool]

_RATE_LIMIT_MARKERS = ("429", "rate limit", "too many requests")


def is_rate_limited(error: BaseException) -> bool:
    """Classify an exception as a rate-limit signal.

    Recognizes the engine's own `RateLimited`, any exception (or attached
    `response`) carrying a 429 status, and provider messages mentioning it.
    """
    if isinstance(error, RateLimited):
        return True
    if isinstance(error, RateLimitExceeded):
        return False
    for candidate in (error, getattr(error, "response", None)):
        if candidate is None:
            continue
        if getattr(candidate, "status_code", None) == 429 or getattr(candidate, "status", None) == 429:
            return True
    message = str(error).lower()
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_ms: float = 1000.0
    max_delay_ms: float = 5000.0
    jitter_ms: float = 1000.0
    attempt_timeout_s: float | None = 30.0
    classifier: ErrorClassifier = is_rate_limited

    @classmethod
    def from_config(cls, config: InvokerConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay_ms=config.base_delay_ms,
            max_delay_ms=config.max_delay_ms,
            jitter_ms=config.jitter_ms,
            attempt_timeout_s=config.attempt_timeout_s,
        )


def backoff_delay(attempt: int, policy: RetryPolicy, jitter: float = 0.0) -> float:
    """Seconds to wait after the zero-based `attempt` was rate limited.

    `jitter` is a unit fraction in [0, 1) scaled by `policy.jitter_ms`.
    """
    raw_ms = policy.base_delay_ms * (2**attempt) + jitter * policy.jitter_ms
    return min(raw_ms, policy.max_delay_ms) / 1000.0


class RetryingInvoker:
    """Admission queue + rate-limit clock for one external provider.

    At most `max_in_flight` attempts run at once and consecutive attempts are
    spaced by at least `min_interval_ms`, across all callers sharing the
    instance. A slot is held per attempt, so backoff never blocks other callers.
    """

    def __init__(
        self,
        name: str = "default",
        config: InvokerConfig | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
        jitter: Callable[[], float] = random.random,
        log: InvocationLog | None = None,
    ) -> None:
        self.name = name
        self.config = config or InvokerConfig()
        self.policy = RetryPolicy.from_config(self.config)
        self._sleep = sleep
        self._clock = clock
        self._jitter = jitter
        self._log = log
        self._slots = asyncio.Semaphore(self.config.max_in_flight)
        self._spacing = asyncio.Lock()
        self._last_request_at: float | None = None
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def now(self) -> float:
        return self._clock()

    async def invoke(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        policy: RetryPolicy | None = None,
        deadline: float | None = None,
    ) -> T:
        """Run `fn` under admission control, retrying only rate-limited failures.

        Args:
            fn: Zero-argument callable producing a fresh awaitable per attempt.
            policy: Overrides the invoker's default retry policy.
            deadline: Absolute time on the invoker's clock after which no new
                attempt or backoff is started.

        Raises:
            RateLimitExceeded: every attempt was rate limited.
            DeadlineExceeded: the deadline passed between attempts.
        """

        policy = policy or self.policy
        attempts = 0
        rate_limited = 0
        started = self._clock()
        try:
            while True:
                self._check_deadline(deadline)
                attempts += 1
                try:
                    result = await self._attempt(fn, policy, deadline)
                except Exception as exc:
                    if not policy.classifier(exc):
                        raise
                    rate_limited += 1
                    if attempts >= policy.max_attempts:
                        raise RateLimitExceeded(self.name, attempts, exc) from exc
                    delay = backoff_delay(attempts - 1, policy, self._jitter())
                    if deadline is not None and self._clock() + delay >= deadline:
                        raise DeadlineExceeded(
                            f"{self.name}: deadline leaves no room for retry {attempts + 1}"
                        ) from exc
                    logger.warning(
                        "%s rate limited, retrying in %.0fms (attempt %d/%d)",
                        self.name,
                        delay * 1000.0,
                        attempts,
                        policy.max_attempts,
                    )
                    await self._sleep(delay)
                    continue
                self._record(attempts, rate_limited, started, "ok", None)
                return result
        except asyncio.CancelledError as exc:
            self._record(attempts, rate_limited, started, "cancelled", exc)
            raise
        except Exception as exc:
            self._record(attempts, rate_limited, started, type(exc).__name__, exc)
            raise

    async def _attempt(
        self,
        fn: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
        deadline: float | None,
    ) -> T:
        async with self._slots:
            await self._wait_for_spacing()
            timeout = policy.attempt_timeout_s
            if deadline is not None:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    raise DeadlineExceeded(f"{self.name}: deadline passed before attempt")
                timeout = remaining if timeout is None else min(timeout, remaining)
            self._in_flight += 1
            try:
                if timeout is None:
                    return await fn()
                return await asyncio.wait_for(fn(), timeout)
            finally:
                self._in_flight -= 1

    async def _wait_for_spacing(self) -> None:
        interval = self.config.min_interval_ms / 1000.0
        async with self._spacing:
            if self._last_request_at is not None and interval > 0:
                wait = self._last_request_at + interval - self._clock()
                if wait > 0:
                    await self._sleep(wait)
            self._last_request_at = self._clock()

    def _check_deadline(self, deadline: float | None) -> None:
        if deadline is not None and self._clock() >= deadline:
            raise DeadlineExceeded(f"{self.name}: deadline passed")

    def _record(
        self,
        attempts: int,
        rate_limited: int,
        started: float,
        outcome: str,
        error: BaseException | None,
    ) -> None:
        if self._log is None:
            return
        self._log.record(
            provider=self.name,
            attempts=attempts,
            rate_limited_attempts=rate_limited,
            latency_ms=(self._clock() - started) * 1000.0,
            outcome=outcome,
            error=error,
        )


class InvokerPool:
    """Hands out one `RetryingInvoker` per provider key.

    Keys are independent, so a rate limit on one provider never delays calls
    queued for another. The hosting application owns the pool's lifetime.
    """

    def __init__(
        self,
        config: InvokerConfig | None = None,
        *,
        overrides: dict[str, InvokerConfig] | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
        jitter: Callable[[], float] = random.random,
        log: InvocationLog | None = None,
    ) -> None:
        self.config = config or InvokerConfig()
        self.log = log or InvocationLog()
        self._overrides = dict(overrides or {})
        self._sleep = sleep
        self._clock = clock
        self._jitter = jitter
        self._invokers: dict[str, RetryingInvoker] = {}

    def get(self, key: str) -> RetryingInvoker:
        invoker = self._invokers.get(key)
        if invoker is None:
            invoker = RetryingInvoker(
                key,
                self._overrides.get(key, self.config),
                sleep=self._sleep,
                clock=self._clock,
                jitter=self._jitter,
                log=self.log,
            )
            self._invokers[key] = invoker
        return invoker

    def keys(self) -> list[str]:
        return list(self._invokers)
