"""
Policy contract shared by all learners.

A policy picks the next Action for a State and learns from the rewards it
is credited with. Learned state lives wherever the concrete policy keeps
it (for the bandit: an injected PolicyStorage); this base class only owns
configuration, the step counter that drives exploration decay, and the
policy's seedable random generator.
"""
from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

from ..entities.action import Action, ActionSpace
from ..entities.state import State
from ..errors import PolicyNotConfiguredError


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass
class PolicyConfig:
    """
    Configuration shared by all policies.

    Attributes:
        action_space: Actions to choose from (required before first use)
        learning_rate: Step size for learners that use one
        exploration_rate: Initial probability of a random action
        min_exploration_rate: Floor for the decayed exploration rate
        exploration_decay: Multiplicative decay per step
        seed: Seed for the policy's random generator (None = nondeterministic)
        repetition_penalty: Penalty per recent repetition of an action type
        lookback_window: Agent turns inspected for repetitions
    """
    action_space: Optional[ActionSpace] = None
    learning_rate: float = 0.1
    exploration_rate: float = 0.1
    min_exploration_rate: float = 0.01
    exploration_decay: float = 0.995
    seed: Optional[int] = None
    repetition_penalty: float = 1.0
    lookback_window: int = 2

    def __post_init__(self):
        self.learning_rate = _clamp01(self.learning_rate)
        self.exploration_rate = _clamp01(self.exploration_rate)
        self.min_exploration_rate = _clamp01(self.min_exploration_rate)
        self.exploration_decay = _clamp01(self.exploration_decay)
        self.repetition_penalty = max(0.0, self.repetition_penalty)
        self.lookback_window = max(0, int(self.lookback_window))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize, rendering the action space as a list of Action dicts."""
        data: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "action_space":
                if value is not None:
                    data[f.name] = [action.to_dict() for action in value]
            elif isinstance(value, (str, int, float, bool)) or value is None:
                data[f.name] = value
        return data

    def merge(self, data: Dict[str, Any]) -> None:
        """
        Overwrite fields present in `data`, ignoring unknown keys.

        Rates are re-clamped after merging.
        """
        known = {f.name for f in fields(self)}
        for key, value in data.items():
            if key not in known:
                continue
            if key == "action_space":
                value = ActionSpace(Action.from_dict(item) for item in value or [])
            setattr(self, key, value)
        self.__post_init__()


@dataclass
class ScoredAction:
    """A candidate action with its estimated value."""
    action: Action
    value: float
    justification: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.to_dict(),
            "value": self.value,
            "justification": self.justification,
        }


@dataclass
class Explanation:
    """
    Why a policy would pick an action.

    Attributes:
        reason: Human-readable summary
        confidence: Share of belief in the chosen action, in [0, 1]
        alternatives: All candidates ranked by value, best first
    """
    reason: str
    confidence: float
    alternatives: List[ScoredAction] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason,
            "confidence": self.confidence,
            "alternatives": [alt.to_dict() for alt in self.alternatives],
        }


@dataclass
class ActionAnalysis:
    """Result of Policy.analyze_action."""
    action: Action
    explanation: Explanation

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action.to_dict(), "explanation": self.explanation.to_dict()}


class Policy(ABC):
    """
    Base class for action-selection policies.

    Subclasses implement selection, learning and snapshotting. All of those
    are coroutines because they may suspend on storage I/O.
    """

    def __init__(self, config: PolicyConfig):
        self.config = config
        self.step_count = 0
        self.rng = random.Random(config.seed)

    @property
    def action_space(self) -> ActionSpace:
        """
        The configured action space.

        Raises:
            PolicyNotConfiguredError: If no action space is set or it is empty
        """
        space = self.config.action_space
        if space is None or len(space) == 0:
            raise PolicyNotConfiguredError(
                f"{type(self).__name__} has no actions configured"
            )
        return space

    def merge_config(self, data: Dict[str, Any]) -> None:
        """Merge snapshot config; a changed seed restarts the random generator."""
        previous_seed = self.config.seed
        self.config.merge(data)
        if self.config.seed != previous_seed:
            self.rng = random.Random(self.config.seed)

    def get_exploration_rate(self) -> float:
        """Exploration rate after decay for the current step count."""
        decayed = self.config.exploration_rate * self.config.exploration_decay ** self.step_count
        return max(self.config.min_exploration_rate, decayed)

    def calculate_repetition_penalty(self, state: State, action: Action) -> float:
        """Penalty for repeating `action` within the lookback window."""
        recent = state.recent_agent_actions(self.config.lookback_window)
        return recent.count(action.type) * self.config.repetition_penalty

    def get_random_action(self) -> Action:
        """Uniformly random action from the action space."""
        return self.rng.choice(self.action_space.get_all_actions())

    def should_explore(self) -> bool:
        """Draw against the current exploration rate."""
        return self.rng.random() < self.get_exploration_rate()

    @abstractmethod
    async def select_action(self, state: State) -> Action:
        """Choose the next action for `state`."""

    @abstractmethod
    async def analyze_action(self, state: State) -> ActionAnalysis:
        """Explain which action would be chosen and how the others rank."""

    @abstractmethod
    async def update(self, state: State, action: Action, reward: float) -> None:
        """Learn from `reward` credited to taking `action` in `state`."""

    @abstractmethod
    async def reset(self) -> None:
        """Forget everything learned. Irreversible."""

    @abstractmethod
    async def to_dict(self) -> Dict[str, Any]:
        """Snapshot configuration and learned state."""

    @abstractmethod
    async def load_dict(self, data: Dict[str, Any]) -> None:
        """Restore a snapshot produced by to_dict()."""
