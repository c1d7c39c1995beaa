"""
Retrying storage decorator.

The core treats storage failures as unrecoverable. Deployments that talk
to a networked store can wrap it in RetryingStorage to get bounded
exponential backoff at the storage boundary without changing how policies
use storage.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, TypeVar

from ..errors import StorageError
from .base import PolicyStorage

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """
    Retry policy for storage calls.

    Attributes:
        max_attempts: Total attempts including the first one
        backoff_base: Delay before the first retry, in seconds
        backoff_max: Upper bound for any single delay
        retry_on: Exception types that trigger a retry
    """
    max_attempts: int = 3
    backoff_base: float = 0.05
    backoff_max: float = 2.0
    retry_on: Tuple[Type[BaseException], ...] = (ConnectionError, TimeoutError, OSError)

    def __post_init__(self):
        self.max_attempts = max(1, self.max_attempts)
        self.backoff_base = max(0.0, self.backoff_base)
        self.backoff_max = max(self.backoff_base, self.backoff_max)

    def delay(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (1-based)."""
        return min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)


class RetryingStorage(PolicyStorage):
    """
    Wraps another PolicyStorage and retries transient failures.

    Exceptions not listed in ``retry_on`` propagate immediately. When all
    attempts fail a StorageError is raised from the last error.

    Args:
        inner: Backend to delegate to
        config: Retry policy
        sleep: Awaitable sleep function, injectable for tests
    """

    def __init__(
        self,
        inner: PolicyStorage,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.inner = inner
        self.config = config or RetryConfig()
        self._sleep = sleep
        self.retry_count = 0

    @property
    def supports_export(self) -> bool:  # type: ignore[override]
        return self.inner.supports_export

    async def _call(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        attempt = 1
        while True:
            try:
                return await fn()
            except self.config.retry_on as e:
                if attempt >= self.config.max_attempts:
                    raise StorageError(
                        f"Storage {operation} failed after {attempt} attempts: {e}"
                    ) from e
                backoff = self.config.delay(attempt)
                self.retry_count += 1
                logger.warning(
                    f"Storage {operation} failed (attempt {attempt}/"
                    f"{self.config.max_attempts}): {e}. Retrying in {backoff:.2f}s"
                )
                await self._sleep(backoff)
                attempt += 1

    async def get(self, key: str) -> Optional[Any]:
        return await self._call("get", lambda: self.inner.get(key))

    async def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        await self._call("set", lambda: self.inner.set(key, value, ttl_seconds))

    async def delete(self, key: str) -> None:
        await self._call("delete", lambda: self.inner.delete(key))

    async def clear(self) -> None:
        await self._call("clear", self.inner.clear)

    async def export_data(self) -> Dict[str, Any]:
        return await self._call("export", self.inner.export_data)

    async def import_data(self, data: Dict[str, Any]) -> None:
        await self._call("import", lambda: self.inner.import_data(data))
