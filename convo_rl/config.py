"""
Policy settings and presets.

Load policy settings from JSON or YAML files (or CONVO_RL_* environment
variables) and build the configured policy without touching code.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping, Optional

import yaml

from .entities.action import ActionSpace
from .learning.bandit import BanditConfig, ContextualBandit
from .learning.epsilon_greedy import EpsilonGreedy, EpsilonGreedyConfig
from .learning.policy import Policy
from .storage.base import PolicyStorage
from .storage.file import JsonFileStorage
from .storage.memory import MemoryStorage

logger = logging.getLogger(__name__)

ENV_PREFIX = "CONVO_RL_"
ALGORITHMS = ("bandit", "epsilon_bandit")


@dataclass
class PolicySettings:
    """
    Flat, serializable description of a policy.

    Attributes:
        algorithm: "bandit" or "epsilon_bandit" (bandit wrapped in EpsilonGreedy)
        learning_rate: Step size for learners that use one
        exploration_rate: Initial bandit exploration probability
        min_exploration_rate: Floor for the decayed exploration rate
        exploration_decay: Per-step exploration decay
        seed: Random seed (None = nondeterministic)
        repetition_penalty: Penalty per recent repetition of an action
        lookback_window: Agent turns inspected for repetitions
        initial_reward: Value of untried arms
        confidence_bonus: UCB exploration coefficient
        use_ucb: Add the UCB bonus to arm averages
        epsilon: Initial epsilon for epsilon_bandit
        epsilon_min: Epsilon floor
        epsilon_decay: Epsilon decay per update
        storage_path: JSON file for learned state (in-memory if unset)
    """
    algorithm: str = "bandit"
    learning_rate: float = 0.1
    exploration_rate: float = 0.1
    min_exploration_rate: float = 0.01
    exploration_decay: float = 0.995
    seed: Optional[int] = None
    repetition_penalty: float = 1.0
    lookback_window: int = 2
    initial_reward: float = 0.0
    confidence_bonus: float = 2.0
    use_ucb: bool = True
    epsilon: float = 0.1
    epsilon_min: float = 0.01
    epsilon_decay: float = 0.995
    storage_path: Optional[str] = None

    def __post_init__(self):
        if self.algorithm not in ALGORITHMS:
            raise ValueError(
                f"Unknown algorithm '{self.algorithm}', expected one of {', '.join(ALGORITHMS)}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PolicySettings":
        """Create from dictionary, ignoring unknown keys."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

    def save(self, path: str) -> None:
        """Save settings to a JSON file."""
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> Optional["PolicySettings"]:
        """Load settings from a JSON or YAML file; None if missing or unreadable."""
        if not os.path.exists(path):
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()

            if path.endswith((".yaml", ".yml")):
                data = yaml.safe_load(content) or {}
            else:
                data = json.loads(content)

            return cls.from_dict(data)

        except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load policy settings from {path}: {e}")
            return None


class PolicyPresets:
    """Pre-configured policy settings."""

    @staticmethod
    def exploit_only() -> PolicySettings:
        """No random exploration; UCB bonus still applies."""
        return PolicySettings(exploration_rate=0.0, min_exploration_rate=0.0)

    @staticmethod
    def conservative() -> PolicySettings:
        """Little exploration, small UCB bonus."""
        return PolicySettings(
            exploration_rate=0.05,
            min_exploration_rate=0.0,
            confidence_bonus=1.0,
        )

    @staticmethod
    def balanced() -> PolicySettings:
        """Library defaults (recommended)."""
        return PolicySettings()

    @staticmethod
    def exploratory() -> PolicySettings:
        """Epsilon-greedy wrapper over an optimistic bandit."""
        return PolicySettings(
            algorithm="epsilon_bandit",
            exploration_rate=0.2,
            initial_reward=0.5,
            confidence_bonus=3.0,
            epsilon=0.3,
            epsilon_min=0.05,
        )

    @staticmethod
    def deterministic_test(seed: int = 42) -> PolicySettings:
        """Deterministic configuration for testing."""
        return PolicySettings(
            exploration_rate=0.0,
            min_exploration_rate=0.0,
            seed=seed,
        )


def _parse_env_value(raw: str, current: Any) -> Any:
    if raw.strip().lower() in ("", "none", "null"):
        return None
    if isinstance(current, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    return raw


def settings_from_env(
    base: Optional[PolicySettings] = None,
    environ: Optional[Mapping[str, str]] = None,
    prefix: str = ENV_PREFIX,
) -> PolicySettings:
    """
    Apply ``CONVO_RL_<FIELD>`` environment overrides to `base`.

    Example:
        CONVO_RL_ALGORITHM=epsilon_bandit CONVO_RL_SEED=7
    """
    environ = os.environ if environ is None else environ
    data = (base or PolicySettings()).to_dict()

    for f in fields(PolicySettings):
        raw = environ.get(f"{prefix}{f.name.upper()}")
        if raw is None:
            continue
        current = data[f.name]
        if f.name == "seed":
            current = 0
        data[f.name] = _parse_env_value(raw, current)
        logger.debug(f"Policy setting {f.name} overridden from environment")

    return PolicySettings.from_dict(data)


def build_policy(
    settings: PolicySettings,
    action_space: ActionSpace,
    storage: Optional[PolicyStorage] = None,
) -> Policy:
    """
    Construct the policy described by `settings`.

    Args:
        settings: Policy settings
        action_space: Actions to choose from
        storage: Storage backend; defaults to JsonFileStorage at
            ``settings.storage_path`` or MemoryStorage

    Returns:
        ContextualBandit, or EpsilonGreedy wrapping one
    """
    if storage is None:
        storage = JsonFileStorage(settings.storage_path) if settings.storage_path else MemoryStorage()

    bandit = ContextualBandit(
        BanditConfig(
            action_space=action_space,
            learning_rate=settings.learning_rate,
            exploration_rate=settings.exploration_rate,
            min_exploration_rate=settings.min_exploration_rate,
            exploration_decay=settings.exploration_decay,
            seed=settings.seed,
            repetition_penalty=settings.repetition_penalty,
            lookback_window=settings.lookback_window,
            initial_reward=settings.initial_reward,
            confidence_bonus=settings.confidence_bonus,
            use_ucb=settings.use_ucb,
        ),
        storage=storage,
    )

    if settings.algorithm == "bandit":
        return bandit

    return EpsilonGreedy(EpsilonGreedyConfig(
        action_space=action_space,
        seed=settings.seed,
        epsilon=settings.epsilon,
        epsilon_min=settings.epsilon_min,
        epsilon_decay=settings.epsilon_decay,
        base_policy=bandit,
    ))
