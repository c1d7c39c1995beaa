"""
In-memory storage backend.

Default backend when no persistent store is configured. Values are deep
copied on the way in and out so callers can never mutate stored state
behind the policy's back.
"""
from __future__ import annotations

import copy
import time
from typing import Any, Callable, Dict, Optional, Tuple

from .base import PolicyStorage


class MemoryStorage(PolicyStorage):
    """
    Dictionary-backed PolicyStorage with optional TTL support.

    Args:
        clock: Monotonic time source, injectable for tests
    """

    supports_export = True

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        # key -> (value, expires_at or None)
        self._store: Dict[str, Tuple[Any, Optional[float]]] = {}

    def _live(self, key: str) -> bool:
        entry = self._store.get(key)
        if entry is None:
            return False
        expires_at = entry[1]
        if expires_at is not None and self._clock() >= expires_at:
            del self._store[key]
            return False
        return True

    async def get(self, key: str) -> Optional[Any]:
        if not self._live(key):
            return None
        return copy.deepcopy(self._store[key][0])

    async def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
        self._store[key] = (copy.deepcopy(value), expires_at)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def clear(self) -> None:
        self._store.clear()

    async def export_data(self) -> Dict[str, Any]:
        return {
            key: copy.deepcopy(self._store[key][0])
            for key in list(self._store)
            if self._live(key)
        }

    async def import_data(self, data: Dict[str, Any]) -> None:
        for key, value in data.items():
            self._store[key] = (copy.deepcopy(value), None)

    def __len__(self) -> int:
        return sum(1 for key in list(self._store) if self._live(key))
