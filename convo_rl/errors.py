"""
Exception types raised by the decision engine.

All errors derive from ConvoRLError so callers can catch the whole family.
Storage failures are not wrapped here; they propagate as raised by the
backend unless a RetryingStorage gives up and raises StorageError.
"""
from __future__ import annotations


class ConvoRLError(Exception):
    """Base class for all decision engine errors."""


class PolicyNotConfiguredError(ConvoRLError, RuntimeError):
    """A policy was used before a required dependency was configured."""


class NoFallbackError(ConvoRLError, RuntimeError):
    """A guardrail blocked an action and no replacement could be resolved."""

    def __init__(self, rule: str, action_type: str):
        super().__init__(
            f"Guardrail violation: {rule} blocked '{action_type}' - No fallback available"
        )
        self.rule = rule
        self.action_type = action_type


class EnvironmentNotInitializedError(ConvoRLError, RuntimeError):
    """Environment.step was called before reset()."""


class EpisodeFinishedError(ConvoRLError, RuntimeError):
    """Environment.step was called on a terminal episode."""


class UnknownRewardFunctionError(ConvoRLError, KeyError):
    """A custom reward function was invoked by a name that is not registered."""

    def __init__(self, name: str):
        super().__init__(f"Custom reward function '{name}' not found")
        self.name = name

    def __str__(self) -> str:
        return self.args[0]


class StorageError(ConvoRLError):
    """A storage operation failed after all retry attempts."""
