"""
Decision engine for conversational agents.

Chooses the next action of a voice or chat agent with a contextual
bandit, learns from turn feedback and conversation outcomes, and keeps
its own choices inside configurable guardrails.

Typical loop:
    state -> policy.select_action -> guardrails.validate -> execute
    -> Environment.step / process_outcome -> policy.update
"""

from .entities import (
    Action,
    ActionSpace,
    ActionType,
    ConversationOutcome,
    ConversationTurn,
    RewardCalculator,
    RewardConfig,
    RewardSignal,
    State,
)
from .errors import (
    ConvoRLError,
    EnvironmentNotInitializedError,
    EpisodeFinishedError,
    NoFallbackError,
    PolicyNotConfiguredError,
    StorageError,
    UnknownRewardFunctionError,
)
from .storage import JsonFileStorage, MemoryStorage, PolicyStorage, RetryingStorage
from .learning import (
    BanditConfig,
    ContextualBandit,
    EpsilonGreedy,
    EpsilonGreedyConfig,
    Policy,
    PolicyConfig,
)
from .environment import Environment, StepResult
from .safety import CommonGuardrails, GuardrailConfig, GuardrailRule, Guardrails, Monitor
from .features import Feature, StateSchema
from .config import PolicyPresets, PolicySettings, build_policy, settings_from_env

__version__ = "0.3.0"

__all__ = [
    "Action",
    "ActionSpace",
    "ActionType",
    "ConversationOutcome",
    "ConversationTurn",
    "RewardCalculator",
    "RewardConfig",
    "RewardSignal",
    "State",
    "ConvoRLError",
    "EnvironmentNotInitializedError",
    "EpisodeFinishedError",
    "NoFallbackError",
    "PolicyNotConfiguredError",
    "StorageError",
    "UnknownRewardFunctionError",
    "JsonFileStorage",
    "MemoryStorage",
    "PolicyStorage",
    "RetryingStorage",
    "BanditConfig",
    "ContextualBandit",
    "EpsilonGreedy",
    "EpsilonGreedyConfig",
    "Policy",
    "PolicyConfig",
    "Environment",
    "StepResult",
    "CommonGuardrails",
    "GuardrailConfig",
    "GuardrailRule",
    "Guardrails",
    "Monitor",
    "Feature",
    "StateSchema",
    "PolicyPresets",
    "PolicySettings",
    "build_policy",
    "settings_from_env",
]
