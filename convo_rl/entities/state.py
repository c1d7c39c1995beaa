"""
Conversation state snapshots.

A State is the context a policy decides on. States are immutable: the
environment builds successors by copying and extending the history, so a
snapshot handed to a policy never changes under it.
"""
from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence, Tuple, Union

from .action import Action

Speaker = Literal["agent", "user"]
Sentiment = Literal["positive", "negative", "neutral"]
FeatureValue = Union[int, float, str, bool]


def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


@dataclass(frozen=True)
class ConversationTurn:
    """
    A single turn in the conversation.

    Attributes:
        speaker: Who spoke ("agent" or "user")
        text: The utterance text
        timestamp: ISO-8601 timestamp
        sentiment: Optional sentiment label of the utterance
        intent: Optional intent classification
        action: Action taken by the agent on this turn (agent turns only)
        state: Optional snapshot of features at this turn
        metadata: Custom metadata
    """
    speaker: Speaker
    text: str
    timestamp: str = field(default_factory=utc_timestamp)
    sentiment: Optional[Sentiment] = None
    intent: Optional[str] = None
    action: Optional[Action] = None
    state: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "speaker": self.speaker,
            "text": self.text,
            "timestamp": self.timestamp,
        }
        if self.sentiment is not None:
            data["sentiment"] = self.sentiment
        if self.intent is not None:
            data["intent"] = self.intent
        if self.action is not None:
            data["action"] = self.action.to_dict()
        if self.state is not None:
            data["state"] = dict(self.state)
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data


def _bucket(value: float) -> str:
    """Floor a numeric feature to 0.1 resolution; whole buckets render without ".0"."""
    if not math.isfinite(value):
        return str(value)
    bucket = math.floor(value * 10) / 10
    if bucket.is_integer():
        return str(int(bucket))
    return repr(bucket)


def _render(value: Union[str, bool]) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class State:
    """
    Snapshot of a conversation at a point in time.

    Attributes:
        conversation_id: Unique identifier for the conversation
        turn_number: Completed exchanges so far (not the history length)
        history: Chronological turns, append-only within a conversation
        features: Extracted features used for context generalization
        intent: Current conversation intent or topic
        user_info: User information supplied by the caller
        metadata: Opaque caller metadata
    """
    conversation_id: str
    turn_number: int = 0
    history: Tuple[ConversationTurn, ...] = ()
    features: Dict[str, FeatureValue] = field(default_factory=dict)
    intent: Optional[str] = None
    user_info: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.turn_number < 0:
            raise ValueError(f"turn_number must be non-negative, got {self.turn_number}")
        if not isinstance(self.history, tuple):
            object.__setattr__(self, "history", tuple(self.history))

    def context_key(self) -> str:
        """
        Build the context key used to generalize learning across states.

        The key starts with the intent (if any) followed by every feature in
        insertion order. Numeric features are floored to 0.1 buckets so that
        nearby values share statistics. History never contributes.

        Returns:
            Context key string, "" for the default context

        Examples:
            >>> State("c1", intent="billing", features={"frustration": 0.73}).context_key()
            'intent:billing|frustration:0.7'
        """
        parts: List[str] = []
        if self.intent:
            parts.append(f"intent:{self.intent}")

        for name, value in self.features.items():
            if isinstance(value, (str, bool)):
                parts.append(f"{name}:{_render(value)}")
            elif isinstance(value, (int, float)):
                parts.append(f"{name}:{_bucket(float(value))}")

        return "|".join(parts)

    def extract_features(self) -> List[float]:
        """
        Numeric feature vector for function-approximation learners.

        Turn number and history length are normalized to [0, 1]; numeric and
        boolean custom features follow in insertion order. String features are
        skipped since they would need an encoding.
        """
        vector = [
            min(self.turn_number / 10, 1.0),
            min(len(self.history) / 20, 1.0),
        ]
        for value in self.features.values():
            if isinstance(value, bool):
                vector.append(1.0 if value else 0.0)
            elif isinstance(value, (int, float)):
                vector.append(float(value))
        return vector

    def recent_agent_actions(self, window: int) -> List[str]:
        """Action types of the last `window` agent turns that carry an action."""
        if window <= 0:
            return []
        types = [
            turn.action.type
            for turn in self.history
            if turn.speaker == "agent" and turn.action is not None
        ]
        return types[-window:]

    def agent_action_count(self, action_type: str) -> int:
        """How often the agent took `action_type` in this conversation."""
        return sum(
            1 for turn in self.history
            if turn.speaker == "agent" and turn.action is not None
            and turn.action.type == action_type
        )

    def last_user_turn(self) -> Optional[ConversationTurn]:
        for turn in reversed(self.history):
            if turn.speaker == "user":
                return turn
        return None

    def advance(self, turns: Sequence[ConversationTurn]) -> "State":
        """Successor state with `turns` appended and the turn counter incremented."""
        return replace(
            self,
            turn_number=self.turn_number + 1,
            history=self.history + tuple(turns),
        )

    def evolve(self, **changes: Any) -> "State":
        """Copy of this state with the given fields replaced."""
        return replace(self, **changes)

    def clone(self) -> "State":
        """Deep copy, detaching all nested mappings."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the ConversationState JSON contract."""
        data: Dict[str, Any] = {
            "conversationId": self.conversation_id,
            "turnNumber": self.turn_number,
            "history": [turn.to_dict() for turn in self.history],
            "features": dict(self.features),
        }
        if self.intent is not None:
            data["intent"] = self.intent
        if self.user_info is not None:
            data["userInfo"] = dict(self.user_info)
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "State":
        """
        Deserialize from the ConversationState JSON contract.

        Input is validated by the pydantic payload models; both camelCase and
        snake_case field names are accepted.

        Raises:
            pydantic.ValidationError: If the payload does not match the contract
        """
        from ..schema import ConversationStatePayload

        return ConversationStatePayload.model_validate(data).to_state()
