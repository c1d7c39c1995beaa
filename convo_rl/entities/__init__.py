"""
Value objects of the decision engine: states, actions and rewards.
"""

from .action import Action, ActionSpace, ActionType
from .state import ConversationTurn, FeatureValue, State, utc_timestamp
from .reward import (
    ConversationOutcome,
    RewardCalculator,
    RewardConfig,
    RewardSignal,
    clamp_reward,
)

__all__ = [
    "Action",
    "ActionSpace",
    "ActionType",
    "ConversationTurn",
    "FeatureValue",
    "State",
    "utc_timestamp",
    "ConversationOutcome",
    "RewardCalculator",
    "RewardConfig",
    "RewardSignal",
    "clamp_reward",
]
