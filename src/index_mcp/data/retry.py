"""Bounded-concurrency executor with retry and backoff for blocking provider SDKs."""

import asyncio
import logging
import random
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, TypeVar

from requests.exceptions import HTTPError

from index_mcp.errors import ProviderRetryError, ServiceShuttingDownError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration."""

    max_retries: int = 2
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds

    def backoff(self, attempt: int) -> float:
        """Calculate delay with exponential backoff and jitter."""
        delay = self.base_delay * (2**attempt)
        # Jitter (+/-25%)
        jitter = delay * 0.25 * (2 * random.random() - 1)
        return min(delay + jitter, self.max_delay)


def _status_code(error: Exception) -> int | None:
    """Pull an HTTP status off requests or openai exceptions."""
    if isinstance(error, HTTPError) and error.response is not None:
        return error.response.status_code
    status = getattr(error, "status_code", None)
    return status if isinstance(status, int) else None


def is_retryable_error(error: Exception) -> bool:
    """Check if an error is transient (rate limit, 5xx, connection, timeout)."""
    status = _status_code(error)
    if status is not None:
        return status == 429 or 500 <= status < 600

    error_str = f"{type(error).__name__} {error}".lower()
    retryable_patterns = [
        "rate limit",
        "ratelimit",
        "too many requests",
        "connection",
        "timeout",
        "temporary",
    ]
    return any(pattern in error_str for pattern in retryable_patterns)


@dataclass
class RetryResult:
    """Result of a retry operation with provenance tracking."""

    result: Any
    attempts: int
    total_backoff_seconds: float

    def to_provenance(self) -> dict[str, Any]:
        return {
            "attempts": self.attempts,
            "total_backoff_seconds": self.total_backoff_seconds,
        }


class BlockingExecutor:
    """
    Runs blocking SDK calls off the event loop.

    Owned by the composition root: create once, pass to providers, call
    ``shutdown()`` on teardown.
    """

    def __init__(self, max_workers: int = 4, policy: RetryPolicy | None = None):
        self.policy = policy or RetryPolicy()
        self._executor = ThreadPoolExecutor(max_workers=max_workers)
        self._semaphore = asyncio.Semaphore(max_workers)
        self._shutdown = asyncio.Event()

    @property
    def is_shut_down(self) -> bool:
        return self._shutdown.is_set()

    async def run(self, operation_name: str, sync_func: Callable[[], T]) -> RetryResult:
        """
        Execute a synchronous function with retry logic.

        Args:
            operation_name: Name for logging (e.g., "openai.quote(^NDX)")
            sync_func: Synchronous function to execute

        Returns:
            RetryResult with result and attempt counts

        Raises:
            ProviderRetryError: If all retries exhausted
            ServiceShuttingDownError: If the executor is shutting down
            Exception: Non-retryable errors from sync_func propagate unchanged
        """
        total_backoff = 0.0
        max_retries = self.policy.max_retries

        async with self._semaphore:
            for attempt in range(max_retries + 1):
                if self._shutdown.is_set():
                    raise ServiceShuttingDownError("Service is shutting down")

                try:
                    loop = asyncio.get_running_loop()
                    result = await loop.run_in_executor(self._executor, sync_func)
                    return RetryResult(
                        result=result,
                        attempts=attempt + 1,
                        total_backoff_seconds=round(total_backoff, 2),
                    )
                except Exception as e:
                    if not is_retryable_error(e):
                        raise

                    if attempt >= max_retries:
                        logger.warning(
                            f"{operation_name}: Failed after {attempt + 1} attempts. "
                            f"Last error: {e}"
                        )
                        raise ProviderRetryError(
                            f"Failed after {attempt + 1} attempts: {e}",
                            last_error=e,
                        ) from e

                    delay = self.policy.backoff(attempt)
                    total_backoff += delay
                    logger.info(
                        f"{operation_name}: Attempt {attempt + 1} failed ({e}). "
                        f"Retrying in {delay:.1f}s..."
                    )
                    await asyncio.sleep(delay)

        # Unreachable: the loop either returns or raises
        raise ProviderRetryError(f"Failed after {max_retries + 1} attempts")

    def shutdown(self) -> None:
        """Refuse new work and cancel queued calls."""
        self._shutdown.set()
        self._executor.shutdown(wait=False, cancel_futures=True)
