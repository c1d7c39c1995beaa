"""
JSON file storage backend.

Keeps the whole store in one JSON document so learned statistics survive
restarts. Writes are atomic (temp file + rename) and run in a worker
thread so the event loop is not blocked on disk I/O. Flushes are
serialized, so concurrent writers never race on the temp file.
"""
from __future__ import annotations

import asyncio
import copy
import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .base import PolicyStorage

logger = logging.getLogger(__name__)

FILE_FORMAT_VERSION = 1


class JsonFileStorage(PolicyStorage):
    """
    PolicyStorage persisted to a JSON file.

    Every mutation rewrites the file. Expiry times are stored as wall-clock
    epoch seconds so they stay meaningful across restarts.

    Example:
        >>> storage = JsonFileStorage("./state/policy.json")
        >>> bandit = ContextualBandit(BanditConfig(action_space=space), storage=storage)
    """

    supports_export = True

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._data: Dict[str, Dict[str, Any]] = {}
        # Created on first flush so it binds to the running loop
        self._flush_lock: Optional[asyncio.Lock] = None
        self._load()

    def _load(self) -> None:
        """
        Load the store from disk.

        A missing file starts an empty store. A corrupt or incompatible file
        is an error: silently starting fresh would discard learned state.
        """
        if not self.path.exists():
            return

        with open(self.path, "r", encoding="utf-8") as f:
            raw = json.load(f)

        version = raw.get("version", FILE_FORMAT_VERSION)
        if version != FILE_FORMAT_VERSION:
            raise ValueError(f"Unsupported storage file version {version} in {self.path}")

        self._data = raw.get("entries", {})
        logger.debug(f"Loaded {len(self._data)} entries from {self.path}")

    def _write(self, snapshot: Dict[str, Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump({"version": FILE_FORMAT_VERSION, "entries": snapshot}, f, indent=2)
        temp_path.replace(self.path)

    async def _flush(self) -> None:
        if self._flush_lock is None:
            self._flush_lock = asyncio.Lock()
        async with self._flush_lock:
            # Snapshot inside the lock so the last write carries the newest data
            await asyncio.to_thread(self._write, copy.deepcopy(self._data))

    def _live(self, key: str) -> bool:
        entry = self._data.get(key)
        if entry is None:
            return False
        expires_at = entry.get("expires_at")
        if expires_at is not None and time.time() >= expires_at:
            del self._data[key]
            return False
        return True

    async def get(self, key: str) -> Optional[Any]:
        if not self._live(key):
            return None
        return copy.deepcopy(self._data[key]["value"])

    async def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        expires_at = time.time() + ttl_seconds if ttl_seconds is not None else None
        self._data[key] = {"value": copy.deepcopy(value), "expires_at": expires_at}
        await self._flush()

    async def delete(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            await self._flush()

    async def clear(self) -> None:
        self._data = {}
        await self._flush()

    async def export_data(self) -> Dict[str, Any]:
        return {
            key: copy.deepcopy(self._data[key]["value"])
            for key in list(self._data)
            if self._live(key)
        }

    async def import_data(self, data: Dict[str, Any]) -> None:
        for key, value in data.items():
            self._data[key] = {"value": copy.deepcopy(value), "expires_at": None}
        await self._flush()
