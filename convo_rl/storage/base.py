"""
Storage contract for learned policy state.

Policies keep no learned statistics in process; everything goes through a
PolicyStorage backend chosen at construction time. All operations are
async and may fail; the core never catches or retries storage errors.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class PolicyStorage(ABC):
    """
    Async key-value store for policy state.

    Backends that can enumerate their contents override ``export_data`` and
    ``import_data`` and report ``supports_export = True``; policies then use
    them for snapshots instead of key-by-key access.
    """

    supports_export: bool = False

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the value stored under `key`, or None."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        """Store `value` under `key`, optionally expiring after `ttl_seconds`."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove `key` if present."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove everything."""

    async def export_data(self) -> Dict[str, Any]:
        """Return all live key/value pairs."""
        raise NotImplementedError(f"{type(self).__name__} does not support export")

    async def import_data(self, data: Dict[str, Any]) -> None:
        """Store every key/value pair of `data`."""
        raise NotImplementedError(f"{type(self).__name__} does not support import")
