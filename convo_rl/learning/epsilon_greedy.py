"""
Epsilon-greedy exploration wrapper.

Wraps any Policy: with probability epsilon a random action is returned,
otherwise the wrapped policy decides. Epsilon decays on every update,
whether that step explored or not.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..entities.action import Action
from ..entities.state import State
from .policy import ActionAnalysis, Explanation, Policy, PolicyConfig

logger = logging.getLogger(__name__)


@dataclass
class EpsilonGreedyConfig(PolicyConfig):
    """
    Epsilon-greedy configuration.

    Attributes:
        epsilon: Initial probability of exploring
        epsilon_min: Floor for decayed and manually set epsilon
        epsilon_decay: Multiplicative decay applied on each update
        base_policy: Policy consulted when not exploring
    """
    epsilon: float = 0.1
    epsilon_min: float = 0.01
    epsilon_decay: float = 0.995
    base_policy: Optional[Policy] = None

    def __post_init__(self):
        super().__post_init__()
        self.epsilon_min = max(0.0, min(1.0, self.epsilon_min))
        self.epsilon = max(self.epsilon_min, min(1.0, self.epsilon))
        self.epsilon_decay = max(0.0, min(1.0, self.epsilon_decay))

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        # The base policy snapshots itself
        data.pop("base_policy", None)
        return data

    def merge(self, data: Dict[str, Any]) -> None:
        super().merge({k: v for k, v in data.items() if k != "base_policy"})


class EpsilonGreedy(Policy):
    """
    Decorator policy adding epsilon-greedy exploration.

    Without a base policy every selection is random. When no action space
    is configured the base policy's space is used for random draws.
    """

    def __init__(self, config: EpsilonGreedyConfig):
        if config.action_space is None and config.base_policy is not None:
            config.action_space = config.base_policy.config.action_space
        super().__init__(config)
        self.config: EpsilonGreedyConfig = config
        self._epsilon = config.epsilon

    @property
    def base_policy(self) -> Optional[Policy]:
        return self.config.base_policy

    @property
    def epsilon(self) -> float:
        return self._epsilon

    def set_epsilon(self, value: float) -> None:
        """Override epsilon, clamped to [epsilon_min, 1]."""
        self._epsilon = max(self.config.epsilon_min, min(1.0, value))

    def reset_epsilon(self) -> None:
        """Restore the configured initial epsilon."""
        self._epsilon = self.config.epsilon

    def decay_epsilon(self) -> None:
        self._epsilon = max(self.config.epsilon_min, self._epsilon * self.config.epsilon_decay)

    async def select_action(self, state: State) -> Action:
        self.step_count += 1

        if self.rng.random() < self._epsilon or self.base_policy is None:
            action = self.get_random_action()
            logger.debug(f"Exploring with epsilon {self._epsilon:.3f}: '{action.type}'")
            return action

        return await self.base_policy.select_action(state)

    async def analyze_action(self, state: State) -> ActionAnalysis:
        self.step_count += 1

        if self.base_policy is None:
            action = self.get_random_action()
            return ActionAnalysis(
                action=action,
                explanation=Explanation(
                    reason=f"No base policy; uniform random choice (epsilon={self._epsilon:.3f})",
                    confidence=1.0 / self.action_space.size(),
                ),
            )

        analysis = await self.base_policy.analyze_action(state)
        explanation = analysis.explanation
        return ActionAnalysis(
            action=analysis.action,
            explanation=Explanation(
                reason=f"{explanation.reason} (epsilon={self._epsilon:.3f})",
                confidence=explanation.confidence,
                alternatives=explanation.alternatives,
            ),
        )

    async def update(self, state: State, action: Action, reward: float) -> None:
        self.decay_epsilon()
        if self.base_policy is not None:
            await self.base_policy.update(state, action, reward)

    async def reset(self) -> None:
        self.reset_epsilon()
        self.step_count = 0
        if self.base_policy is not None:
            await self.base_policy.reset()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "epsilon": self._epsilon,
            "stepCount": self.step_count,
            "hasBasePolicy": self.base_policy is not None,
        }

    async def to_dict(self) -> Dict[str, Any]:
        return {
            "config": self.config.to_dict(),
            "epsilon": self._epsilon,
            "stepCount": self.step_count,
            "basePolicy": await self.base_policy.to_dict() if self.base_policy else None,
        }

    async def load_dict(self, data: Dict[str, Any]) -> None:
        self.merge_config(data.get("config", {}))
        self._epsilon = float(data.get("epsilon", self.config.epsilon))
        self.step_count = int(data.get("stepCount", 0))
        base_data = data.get("basePolicy")
        if base_data is not None and self.base_policy is not None:
            await self.base_policy.load_dict(base_data)
