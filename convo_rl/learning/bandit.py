"""
Contextual multi-armed bandit for action selection.

Each (context key, action type) pair is an arm with its own running mean
reward. Selection is epsilon-style exploration on top of UCB1 scores:

    value = average + confidence_bonus * sqrt(ln(context_pulls) / pulls)

Untried arms score ``initial_reward``. All statistics live in the injected
PolicyStorage; the bandit itself holds only configuration and its step
counter.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..entities.action import Action
from ..entities.state import State
from ..storage.base import PolicyStorage
from ..storage.memory import MemoryStorage
from .policy import ActionAnalysis, Explanation, Policy, PolicyConfig, ScoredAction

logger = logging.getLogger(__name__)

ARM_PREFIX = "arm:"
CONTEXT_PREFIX = "ctx:"
ARM_SEPARATOR = "::"


def arm_key(context: str, action_type: str) -> str:
    return f"{ARM_PREFIX}{context}{ARM_SEPARATOR}{action_type}"


def context_key(context: str) -> str:
    return f"{CONTEXT_PREFIX}{context}"


def parse_arm_key(key: str) -> Tuple[str, str]:
    """Split an arm key into (context, action_type)."""
    context, _, action_type = key[len(ARM_PREFIX):].rpartition(ARM_SEPARATOR)
    return context, action_type


@dataclass
class ArmStats:
    """
    Reward statistics for one arm.

    Attributes:
        pulls: Times the arm was updated
        total_reward: Sum of credited rewards
        average_reward: total_reward / pulls (initial reward while untried)
    """
    pulls: int = 0
    total_reward: float = 0.0
    average_reward: float = 0.0

    def record(self, reward: float) -> None:
        self.pulls += 1
        self.total_reward += reward
        self.average_reward = self.total_reward / self.pulls

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pulls": self.pulls,
            "totalReward": self.total_reward,
            "averageReward": self.average_reward,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArmStats":
        return cls(
            pulls=int(data.get("pulls", 0)),
            total_reward=float(data.get("totalReward", 0.0)),
            average_reward=float(data.get("averageReward", 0.0)),
        )


@dataclass
class BanditConfig(PolicyConfig):
    """
    Contextual bandit configuration.

    Attributes:
        initial_reward: Value of an untried arm
        confidence_bonus: UCB exploration coefficient
        use_ucb: Add the UCB bonus to averages (plain greedy otherwise)
    """
    initial_reward: float = 0.0
    confidence_bonus: float = 2.0
    use_ucb: bool = True

    def __post_init__(self):
        super().__post_init__()
        self.confidence_bonus = max(0.0, self.confidence_bonus)


class ContextualBandit(Policy):
    """
    UCB1 contextual bandit over an ActionSpace.

    Features:
    - Per-context arm statistics keyed by State.context_key()
    - Optimistic cold start via initial_reward
    - Repetition penalty against looping on one action
    - Decaying random exploration with a seeded generator

    Updates are an unlocked read-modify-write against storage, so two
    concurrent updates of the same arm can lose one of them.

    Example:
        >>> bandit = ContextualBandit(BanditConfig(action_space=space))
        >>> action = await bandit.select_action(state)
        >>> await bandit.update(state, action, reward=1.0)
    """

    def __init__(self, config: BanditConfig, storage: Optional[PolicyStorage] = None):
        super().__init__(config)
        self.config: BanditConfig = config
        self.storage = storage if storage is not None else MemoryStorage()

    async def _read_arm(self, context: str, action_type: str) -> Optional[ArmStats]:
        data = await self.storage.get(arm_key(context, action_type))
        return ArmStats.from_dict(data) if data is not None else None

    async def _context_pulls(self, context: str) -> int:
        return int(await self.storage.get(context_key(context)) or 0)

    def exploration_bonus(self, pulls: int, context_pulls: int) -> float:
        """UCB1 bonus for an arm pulled `pulls` times out of `context_pulls`."""
        if pulls <= 0 or context_pulls <= 0:
            return 0.0
        return self.config.confidence_bonus * math.sqrt(math.log(context_pulls) / pulls)

    def estimate_value(self, stats: Optional[ArmStats], context_pulls: int) -> float:
        """Value of an arm before the repetition penalty."""
        if stats is None or stats.pulls == 0:
            return self.config.initial_reward
        if self.config.use_ucb:
            if context_pulls == 0:
                return self.config.initial_reward
            return stats.average_reward + self.exploration_bonus(stats.pulls, context_pulls)
        return stats.average_reward

    async def _score(self, state: State) -> List[ScoredAction]:
        """Penalized value for every action, in action space order."""
        context = state.context_key()
        actions = self.action_space.get_all_actions()
        context_pulls = await self._context_pulls(context)

        scored = []
        for action in actions:
            stats = await self._read_arm(context, action.type)
            value = self.estimate_value(stats, context_pulls)
            penalty = self.calculate_repetition_penalty(state, action)
            scored.append(ScoredAction(
                action=action,
                value=value - penalty,
                justification=self._justify(stats, value, penalty, context_pulls),
            ))
        return scored

    def _justify(
        self,
        stats: Optional[ArmStats],
        value: float,
        penalty: float,
        context_pulls: int,
    ) -> str:
        if stats is None or stats.pulls == 0:
            text = f"untried, initial reward {value:.3f}"
        else:
            text = f"average {stats.average_reward:.3f} over {stats.pulls} pulls"
            bonus = value - stats.average_reward
            if self.config.use_ucb and context_pulls > 0:
                text += f", confidence bonus {bonus:.3f}"
        if penalty > 0:
            text += f", repetition penalty {penalty:.3f}"
        return text

    async def select_action(self, state: State) -> Action:
        self.step_count += 1

        if self.should_explore():
            action = self.get_random_action()
            logger.debug(f"Exploring: random action '{action.type}' at step {self.step_count}")
            return action

        scored = await self._score(state)
        best = scored[0]
        for candidate in scored[1:]:
            # Strict comparison keeps the first maximum
            if candidate.value > best.value:
                best = candidate

        logger.debug(
            f"Exploiting: '{best.action.type}' (value {best.value:.3f}) "
            f"in context '{state.context_key()}'"
        )
        return best.action

    async def analyze_action(self, state: State) -> ActionAnalysis:
        self.step_count += 1

        scored = await self._score(state)
        ranked = sorted(scored, key=lambda s: s.value, reverse=True)
        best = ranked[0]

        # Softmax share of the best value
        top = best.value
        weights = [math.exp(s.value - top) for s in ranked]
        confidence = weights[0] / sum(weights)

        context = state.context_key() or "default"
        reason = (
            f"'{best.action.type}' has the highest estimated value "
            f"({best.value:.3f}) in context '{context}'"
        )
        return ActionAnalysis(
            action=best.action,
            explanation=Explanation(reason=reason, confidence=confidence, alternatives=ranked),
        )

    async def update(self, state: State, action: Action, reward: float) -> None:
        context = state.context_key()

        stats = await self._read_arm(context, action.type)
        if stats is None:
            stats = ArmStats(average_reward=self.config.initial_reward)
        stats.record(reward)
        await self.storage.set(arm_key(context, action.type), stats.to_dict())

        context_pulls = await self._context_pulls(context)
        await self.storage.set(context_key(context), context_pulls + 1)

        logger.debug(
            f"Updated arm '{action.type}' in context '{context}': "
            f"reward {reward:+.3f}, average {stats.average_reward:.3f} over {stats.pulls} pulls"
        )

    async def get_arm_stats(self, context: str, action_type: str) -> Optional[ArmStats]:
        """Statistics for one arm, or None if it was never updated."""
        return await self._read_arm(context, action_type)

    async def get_context_stats(self, context: str) -> Dict[str, ArmStats]:
        """Statistics of every updated arm in `context`, keyed by action type."""
        result = {}
        for action in self.action_space:
            stats = await self._read_arm(context, action.type)
            if stats is not None:
                result[action.type] = stats
        return result

    async def get_best_action_for_context(self, context: str) -> Optional[Action]:
        """Action with the best observed average in `context`, ignoring untried arms."""
        best_action = None
        best_average = -math.inf
        for action_type, stats in (await self.get_context_stats(context)).items():
            if stats.pulls > 0 and stats.average_reward > best_average:
                best_average = stats.average_reward
                best_action = self.action_space.get_action(action_type)
        return best_action

    async def _export(self) -> Tuple[Dict[str, Dict[str, Dict[str, Any]]], Dict[str, int]]:
        arm_stats: Dict[str, Dict[str, Dict[str, Any]]] = {}
        context_pulls: Dict[str, int] = {}

        if not self.storage.supports_export:
            logger.warning(
                f"{type(self.storage).__name__} cannot enumerate keys; learned state not exported"
            )
            return arm_stats, context_pulls

        for key, value in (await self.storage.export_data()).items():
            if key.startswith(ARM_PREFIX):
                context, action_type = parse_arm_key(key)
                arm_stats.setdefault(context, {})[action_type] = dict(value)
            elif key.startswith(CONTEXT_PREFIX):
                context_pulls[key[len(CONTEXT_PREFIX):]] = int(value)
        return arm_stats, context_pulls

    async def get_stats(self) -> Dict[str, Any]:
        """Summary of the learner: steps, exploration rate, contexts and pulls."""
        _, context_pulls = await self._export()
        return {
            "stepCount": self.step_count,
            "explorationRate": self.get_exploration_rate(),
            "contexts": len(context_pulls),
            "totalPulls": sum(context_pulls.values()),
            "config": self.config.to_dict(),
        }

    async def to_dict(self) -> Dict[str, Any]:
        arm_stats, context_pulls = await self._export()
        return {
            "config": self.config.to_dict(),
            "armStats": arm_stats,
            "contextPulls": context_pulls,
            "stepCount": self.step_count,
        }

    async def load_dict(self, data: Dict[str, Any]) -> None:
        self.merge_config(data.get("config", {}))
        self.step_count = int(data.get("stepCount", 0))

        entries: Dict[str, Any] = {}
        for context, arms in data.get("armStats", {}).items():
            for action_type, stats in arms.items():
                entries[arm_key(context, action_type)] = ArmStats.from_dict(stats).to_dict()
        for context, pulls in data.get("contextPulls", {}).items():
            entries[context_key(context)] = int(pulls)

        await self.storage.clear()
        if self.storage.supports_export:
            await self.storage.import_data(entries)
        else:
            for key, value in entries.items():
                await self.storage.set(key, value)

        logger.info(f"Loaded bandit snapshot with {len(entries)} storage entries")

    async def reset(self) -> None:
        await self.storage.clear()
        self.step_count = 0
        logger.info("Bandit reset: all arm statistics cleared")
