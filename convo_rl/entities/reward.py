"""
Reward calculator for conversation policies.

Translates raw feedback (turn-level sentiment) and conversation outcomes
(success, satisfaction, duration) into bounded scalar rewards. Immediate
and delayed signals are kept separate so the environment can distribute a
terminal outcome backward over the steps that produced it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Literal, Optional

from ..errors import UnknownRewardFunctionError

logger = logging.getLogger(__name__)

RewardType = Literal["immediate", "delayed"]
CustomRewardFn = Callable[[Any, Any, Any], float]

# Conversations longer than this many turns get a small immediate penalty
LONG_CONVERSATION_TURNS = 20
# Outcomes lasting longer than this many seconds get a delayed penalty
LONG_DURATION_SECONDS = 600


def clamp_reward(value: float) -> float:
    """Clamp a reward to [-1, 1]."""
    return max(-1.0, min(1.0, value))


@dataclass(frozen=True)
class RewardSignal:
    """
    A single reward observation.

    Attributes:
        value: Reward value in [-1, 1]
        type: "immediate" (right after an action) or "delayed" (end of conversation)
        source: Where the reward came from
        metadata: The feedback or metrics it was computed from
    """
    value: float
    type: RewardType
    source: str = ""
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class ConversationOutcome:
    """
    Outcome of a finished conversation.

    Attributes:
        success: Whether the conversation succeeded
        outcome_type: Specific outcome (e.g. "sale", "support_resolved")
        metrics: Outcome metrics; recognised keys are ``duration`` (seconds),
            ``userSatisfaction`` (0..1) and ``goalAchieved`` (bool)
    """
    success: bool
    outcome_type: Optional[str] = None
    metrics: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success, "metrics": dict(self.metrics)}
        if self.outcome_type is not None:
            data["outcomeType"] = self.outcome_type
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationOutcome":
        return cls(
            success=bool(data["success"]),
            outcome_type=data.get("outcomeType", data.get("outcome_type")),
            metrics=dict(data.get("metrics") or {}),
        )


@dataclass
class RewardConfig:
    """
    Reward weighting configuration.

    Attributes:
        immediate_weight: Weight of immediate signals in combine()
        delayed_weight: Weight of delayed signals in combine()
        discount_factor: Per-step discount for delayed credit
        custom_rewards: Named custom reward functions
    """
    immediate_weight: float = 0.3
    delayed_weight: float = 0.7
    discount_factor: float = 0.99
    custom_rewards: Dict[str, CustomRewardFn] = field(default_factory=dict)

    def __post_init__(self):
        self.discount_factor = max(0.0, min(1.0, self.discount_factor))


class RewardCalculator:
    """
    Computes immediate, delayed and combined rewards.

    Example:
        >>> calc = RewardCalculator()
        >>> calc.calculate_delayed(ConversationOutcome(success=True)).value
        1.0
    """

    def __init__(self, config: Optional[RewardConfig] = None):
        self.config = config or RewardConfig()
        # Copy so registrations never leak into a shared config
        self._custom: Dict[str, CustomRewardFn] = dict(self.config.custom_rewards)

    @property
    def discount_factor(self) -> float:
        return self.config.discount_factor

    def calculate_immediate(
        self,
        state: Any,
        action: Any = None,
        feedback: Optional[Dict[str, Any]] = None,
    ) -> RewardSignal:
        """
        Calculate the reward given right after an action.

        Args:
            state: The state before the action (anything with ``turn_number``)
            action: The action taken
            feedback: Immediate feedback, e.g. ``{"sentiment": "positive"}``

        Returns:
            Immediate RewardSignal
        """
        reward = 0.0

        sentiment = (feedback or {}).get("sentiment")
        if sentiment == "positive":
            reward += 0.5
        elif sentiment == "negative":
            reward -= 0.5

        if getattr(state, "turn_number", 0) > LONG_CONVERSATION_TURNS:
            reward -= 0.1

        return RewardSignal(
            value=self.normalize(reward),
            type="immediate",
            source="immediate_feedback",
            metadata=feedback,
        )

    def calculate_delayed(self, outcome: ConversationOutcome) -> RewardSignal:
        """
        Calculate the reward given at the end of a conversation.

        Args:
            outcome: The conversation outcome

        Returns:
            Delayed RewardSignal
        """
        metrics = outcome.metrics or {}
        reward = 1.0 if outcome.success else -1.0

        satisfaction = metrics.get("userSatisfaction")
        if satisfaction is not None:
            reward += (float(satisfaction) - 0.5) * 0.5

        if metrics.get("goalAchieved"):
            reward += 0.5

        duration = metrics.get("duration")
        if duration is not None and duration > LONG_DURATION_SECONDS:
            reward -= 0.2

        return RewardSignal(
            value=self.normalize(reward),
            type="delayed",
            source="conversation_outcome",
            metadata=dict(metrics),
        )

    def combine(self, signals: Iterable[RewardSignal]) -> float:
        """Weighted sum of signals, clamped to [-1, 1]."""
        total = 0.0
        for signal in signals:
            weight = (
                self.config.immediate_weight
                if signal.type == "immediate"
                else self.config.delayed_weight
            )
            total += signal.value * weight
        return self.normalize(total)

    def discount(self, reward: float, steps: int) -> float:
        """Discount a reward that lies `steps` steps in the future."""
        return reward * self.config.discount_factor ** steps

    @staticmethod
    def normalize(reward: float) -> float:
        return clamp_reward(reward)

    def register_custom_reward(self, name: str, fn: CustomRewardFn) -> None:
        """Register a named custom reward function."""
        self._custom[name] = fn
        logger.debug(f"Registered custom reward '{name}'")

    def has_custom_reward(self, name: str) -> bool:
        return name in self._custom

    def calculate_custom(self, name: str, state: Any, action: Any, outcome: Any) -> float:
        """
        Evaluate a registered custom reward function.

        Raises:
            UnknownRewardFunctionError: If no function is registered under `name`
        """
        fn = self._custom.get(name)
        if fn is None:
            raise UnknownRewardFunctionError(name)
        return self.normalize(fn(state, action, outcome))
