"""Retry policy for remote calls.

Transient failures are retried with exponential backoff. A failure that may
have happened after the request reached the server (a read timeout, a reset
connection) is only retried for idempotent calls, so a timed-out create never
persists the same scenario twice.
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Type

from ..exceptions import RetryExhaustedError
from ..utils.logging import get_logger

logger = get_logger("retry")


@dataclass
class RetryConfig:
    """Backoff and classification settings for remote calls."""

    max_attempts: int = 3
    initial_delay: float = 0.5  # seconds
    max_delay: float = 10.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True

    # Errors worth another attempt; empty means every exception
    retryable_errors: list[Type[Exception]] = field(default_factory=list)

    # Subset known to fail before anything was sent; retried for any call
    unsent_errors: list[Type[Exception]] = field(default_factory=list)


class RetryStrategy:
    """Runs an async call under a RetryConfig.

    Example:
        strategy = RetryStrategy(RetryConfig(retryable_errors=[httpx.TransportError]))
        response = await strategy.execute(
            client.request, "POST", "/api/scenarios", label="create", idempotent=False
        )
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        on_retry: Callable[[int, Exception, float], None] | None = None,
    ):
        """Create a strategy.

        Args:
            config: Backoff and classification settings.
            on_retry: Called before each wait with (attempt, error, delay).
        """
        self._config = config or RetryConfig()
        self._on_retry = on_retry
        self._stats = {"attempts": 0, "retries": 0, "recovered": 0, "exhausted": 0}

    @property
    def config(self) -> RetryConfig:
        return self._config

    def should_retry(self, error: Exception, idempotent: bool = True) -> bool:
        """Whether ``error`` deserves another attempt."""
        retryable = self._config.retryable_errors
        if retryable and not isinstance(error, tuple(retryable)):
            return False
        if idempotent:
            return True
        return isinstance(error, tuple(self._config.unsent_errors))

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt after ``attempt`` (1-based)."""
        delay = min(
            self._config.initial_delay * self._config.exponential_base ** (attempt - 1),
            self._config.max_delay,
        )
        if self._config.jitter:
            delay *= 0.5 + random.random()
        return delay

    async def execute(
        self,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        label: str = "call",
        idempotent: bool = True,
        **kwargs: Any,
    ) -> Any:
        """Await ``func(*args, **kwargs)``, retrying transient failures.

        Args:
            func: Async callable.
            label: Name used in log messages.
            idempotent: False for calls that must not be repeated once the
                server may have seen them.

        Raises:
            RetryExhaustedError: If every attempt failed with a retryable error.
            Exception: The first error that is not retried, unchanged.
        """
        attempts = max(self._config.max_attempts, 1)

        for attempt in range(1, attempts + 1):
            self._stats["attempts"] += 1
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                if not self.should_retry(e, idempotent):
                    logger.debug(f"{label}: {type(e).__name__} is not retried")
                    raise
                if attempt == attempts:
                    self._stats["exhausted"] += 1
                    logger.error(f"{label}: giving up after {attempt} attempt(s): {e}")
                    raise RetryExhaustedError(attempt, e) from e

                delay = self.delay_for(attempt)
                self._stats["retries"] += 1
                logger.warning(
                    f"{label}: attempt {attempt}/{attempts} failed ({e}); retrying in {delay:.2f}s"
                )
                if self._on_retry:
                    self._on_retry(attempt, e, delay)
                await asyncio.sleep(delay)
            else:
                if attempt > 1:
                    self._stats["recovered"] += 1
                return result

    def get_stats(self) -> dict[str, int]:
        """Counters: attempts, retries, recovered and exhausted calls."""
        return dict(self._stats)
