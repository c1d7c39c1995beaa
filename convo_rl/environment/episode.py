"""
Conversation environment: step loop and credit assignment.

The environment advances a single conversation one exchange at a time,
records (state, action, immediate reward) for every step, and when the
conversation's outcome is known replays that record backward so each
action is credited with its immediate reward plus a discounted share of
the outcome.

Not safe to share between concurrent conversations.
"""
from __future__ import annotations

import inspect
import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from ..entities.action import Action, ActionType
from ..entities.reward import ConversationOutcome, RewardCalculator, RewardSignal
from ..entities.state import ConversationTurn, State
from ..errors import (
    EnvironmentNotInitializedError,
    EpisodeFinishedError,
    PolicyNotConfiguredError,
)
from ..learning.policy import Policy
from ..logging_config import structured

if TYPE_CHECKING:
    from ..safety.guardrails import Guardrails

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 50

SimulatorResult = Tuple[Optional[str], bool]
Simulator = Callable[[State, Action], Union[SimulatorResult, Awaitable[SimulatorResult]]]


@dataclass
class EpisodeStep:
    """One recorded step: the state acted in, the action and its immediate reward."""
    state: State
    action: Action
    reward: float


@dataclass
class StepResult:
    """
    Result of Environment.step.

    Attributes:
        next_state: State after the exchange
        reward: Immediate reward for the action
        done: Whether the conversation has ended
        info: Turn number and episode length
    """
    next_state: State
    reward: float
    done: bool
    info: Dict[str, Any] = field(default_factory=dict)


class Environment:
    """
    Drives one conversation and assigns credit for its outcome.

    Lifecycle: uninitialized until reset(), then active until a step ends
    the call or reaches max_turns, then terminal until the next reset().

    Args:
        initial_state: State to start from on the first reset()
        reward_calculator: Reward calculator (default settings if omitted)
        max_turns: Turn number at which a conversation is forced to end
        policy: Policy updated by process_outcome and used by run_episode
        guardrails: Optional guardrails applied to actions in run_episode
    """

    def __init__(
        self,
        initial_state: Optional[State] = None,
        reward_calculator: Optional[RewardCalculator] = None,
        max_turns: int = DEFAULT_MAX_TURNS,
        policy: Optional[Policy] = None,
        guardrails: Optional["Guardrails"] = None,
    ):
        self._state = initial_state
        self.reward_calculator = reward_calculator or RewardCalculator()
        self.max_turns = max_turns
        self._policy = policy
        self.guardrails = guardrails
        self._history: List[EpisodeStep] = []
        self._active = False
        self._done = False

    @property
    def state(self) -> Optional[State]:
        return self._state

    def set_state(self, state: State) -> None:
        """Replace the current state (e.g. after an external change)."""
        self._state = state

    @property
    def policy(self) -> Optional[Policy]:
        return self._policy

    def set_policy(self, policy: Policy) -> None:
        self._policy = policy

    @property
    def done(self) -> bool:
        return self._done

    @property
    def history(self) -> List[EpisodeStep]:
        """Copy of the recorded steps, oldest first."""
        return list(self._history)

    def reset(self, initial_state: Optional[State] = None) -> State:
        """
        Start a new episode.

        Args:
            initial_state: State to start from. Without one, the current
                state is rewound to turn 0 with an empty history, or a fresh
                state is created if there is none.

        Returns:
            The starting state
        """
        if initial_state is not None:
            self._state = initial_state
        elif self._state is None:
            self._state = State(conversation_id=f"conv_{uuid.uuid4().hex}")
        else:
            self._state = self._state.evolve(turn_number=0, history=())

        self._history = []
        self._active = True
        self._done = False

        logger.info(
            "Episode reset",
            extra=structured(
                convo_id=self._state.conversation_id,
                turn=0,
                subsystem="environment",
                event_type="reset",
            ),
        )
        return self._state

    def step(
        self,
        action: Action,
        user_response: Optional[str] = None,
        feedback: Optional[Dict[str, Any]] = None,
    ) -> StepResult:
        """
        Take `action` and record the exchange.

        Args:
            action: Action the agent took
            user_response: What the user said back, if anything
            feedback: Immediate feedback for the reward, e.g. ``{"sentiment": "positive"}``

        Returns:
            StepResult with the successor state and immediate reward

        Raises:
            EnvironmentNotInitializedError: If reset() was never called
            EpisodeFinishedError: If the episode already ended
        """
        if not self._active or self._state is None:
            raise EnvironmentNotInitializedError("Environment not initialized. Call reset() first.")
        if self._done:
            raise EpisodeFinishedError("Episode is finished. Call reset() to start a new one.")

        prior = self._state
        turns = [ConversationTurn(speaker="agent", text=action.name, action=action)]
        if user_response:
            turns.append(ConversationTurn(speaker="user", text=user_response))
        next_state = prior.advance(turns)

        reward = self.reward_calculator.calculate_immediate(prior, action, feedback).value

        self._done = (
            action.type == ActionType.END_CALL.value
            or next_state.turn_number >= self.max_turns
        )
        self._history.append(EpisodeStep(state=prior, action=action, reward=reward))
        self._state = next_state

        logger.debug(
            "Step taken",
            extra=structured(
                convo_id=next_state.conversation_id,
                turn=next_state.turn_number,
                subsystem="environment",
                event_type="step",
                action_type=action.type,
                reward=reward,
            ),
        )

        return StepResult(
            next_state=next_state,
            reward=reward,
            done=self._done,
            info={
                "turnNumber": next_state.turn_number,
                "historyLength": len(self._history),
            },
        )

    async def process_outcome(self, outcome: ConversationOutcome) -> List[float]:
        """
        Assign credit for the conversation outcome to every recorded step.

        The delayed reward is discounted by how many steps separate each
        action from the end, combined with the step's immediate reward, and
        passed to the policy. Steps are updated newest first.

        Args:
            outcome: Final outcome of the conversation

        Returns:
            Combined reward per step, oldest first
        """
        delayed = self.reward_calculator.calculate_delayed(outcome)
        n = len(self._history)
        combined = [0.0] * n

        for i in range(n - 1, -1, -1):
            step = self._history[i]
            steps_from_end = n - 1 - i
            discounted = self.reward_calculator.discount(delayed.value, steps_from_end)
            total = self.reward_calculator.combine([
                RewardSignal(value=step.reward, type="immediate", source="step"),
                RewardSignal(value=discounted, type="delayed", source="outcome"),
            ])
            combined[i] = total

            if self._policy is not None:
                await self._policy.update(step.state, step.action, total)

        logger.info(
            f"Outcome processed: success={outcome.success}, delayed {delayed.value:+.3f} "
            f"over {n} steps",
            extra=structured(
                convo_id=self._state.conversation_id if self._state else None,
                subsystem="environment",
                event_type="outcome",
                reward=delayed.value,
            ),
        )
        return combined

    async def run_episode(self, initial_state: State, simulator: Simulator) -> ConversationOutcome:
        """
        Play a whole conversation with the current policy.

        Args:
            initial_state: Starting state
            simulator: ``(state, action) -> (user_response, done)``, sync or async

        Returns:
            Outcome with success iff the summed immediate reward is positive

        Raises:
            PolicyNotConfiguredError: If no policy is set
        """
        if self._policy is None:
            raise PolicyNotConfiguredError("No policy set")

        self.reset(initial_state)
        total_reward = 0.0
        done = False

        while not done:
            state = self._state
            action = await self._policy.select_action(state)
            if self.guardrails is not None:
                action = await self.guardrails.validate(state, action)

            result = simulator(state, action)
            if inspect.isawaitable(result):
                result = await result
            user_response, simulator_done = result

            step = self.step(action, user_response)
            total_reward += step.reward
            done = step.done or simulator_done

        return ConversationOutcome(
            success=total_reward > 0,
            metrics={"totalReward": total_reward, "duration": len(self._history)},
        )
