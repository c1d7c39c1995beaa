"""
Pluggable async storage for learned policy state.

Backends are injected into policies at construction time:
- MemoryStorage: default, process-local
- JsonFileStorage: single JSON document with atomic writes
- RetryingStorage: opt-in retry/backoff decorator around any backend
"""

from .base import PolicyStorage
from .memory import MemoryStorage
from .file import JsonFileStorage
from .retry import RetryConfig, RetryingStorage

__all__ = [
    "PolicyStorage",
    "MemoryStorage",
    "JsonFileStorage",
    "RetryConfig",
    "RetryingStorage",
]
