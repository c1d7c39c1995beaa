"""
Learning module for adaptive action selection.

Provides:
- Policy contract and shared configuration
- ContextualBandit: UCB1 learner with storage-backed arm statistics
- EpsilonGreedy: exploration wrapper around any policy
"""

from .policy import (
    ActionAnalysis,
    Explanation,
    Policy,
    PolicyConfig,
    ScoredAction,
)
from .bandit import ArmStats, BanditConfig, ContextualBandit
from .epsilon_greedy import EpsilonGreedy, EpsilonGreedyConfig

__all__ = [
    "ActionAnalysis",
    "Explanation",
    "Policy",
    "PolicyConfig",
    "ScoredAction",
    "ArmStats",
    "BanditConfig",
    "ContextualBandit",
    "EpsilonGreedy",
    "EpsilonGreedyConfig",
]
