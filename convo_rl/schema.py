"""
Pydantic models for the JSON boundary contract.

Adapters outside this package produce ConversationState JSON and consume
Action JSON. These models validate that shape on the way in and convert it
into the immutable entities the core works with. Both camelCase (wire) and
snake_case field names are accepted.
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .entities.action import Action
from .entities.reward import ConversationOutcome
from .entities.state import ConversationTurn, State, utc_timestamp


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ActionPayload(_Payload):
    """Action JSON: ``{type, name, description, parameters?, metadata?}``."""
    type: str = Field(..., min_length=1)
    name: Optional[str] = None
    description: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_action(self) -> Action:
        return Action(
            type=self.type,
            name=self.name or self.type,
            description=self.description,
            parameters=dict(self.parameters),
            metadata=dict(self.metadata),
        )


class TurnPayload(_Payload):
    """One entry of ``history[]``."""
    speaker: Literal["agent", "user"]
    text: str = ""
    timestamp: str = Field(default_factory=utc_timestamp)
    sentiment: Optional[Literal["positive", "negative", "neutral"]] = None
    intent: Optional[str] = None
    action: Optional[ActionPayload] = None
    state: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_turn(self) -> ConversationTurn:
        return ConversationTurn(
            speaker=self.speaker,
            text=self.text,
            timestamp=self.timestamp,
            sentiment=self.sentiment,
            intent=self.intent,
            action=self.action.to_action() if self.action else None,
            state=self.state,
            metadata=dict(self.metadata),
        )


class ConversationStatePayload(_Payload):
    """
    ConversationState JSON.

    ``{conversationId, turnNumber, history[], intent?, features, userInfo?, metadata?}``
    """
    conversation_id: str = Field(..., alias="conversationId", min_length=1)
    turn_number: int = Field(0, alias="turnNumber", ge=0)
    history: List[TurnPayload] = Field(default_factory=list)
    intent: Optional[str] = None
    # bool first so JSON true/false are not coerced to 1/0
    features: Dict[str, Union[bool, int, float, str]] = Field(default_factory=dict)
    user_info: Optional[Dict[str, Any]] = Field(None, alias="userInfo")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("intent", mode="before")
    @classmethod
    def _blank_intent_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def to_state(self) -> State:
        return State(
            conversation_id=self.conversation_id,
            turn_number=self.turn_number,
            history=tuple(turn.to_turn() for turn in self.history),
            features=dict(self.features),
            intent=self.intent,
            user_info=self.user_info,
            metadata=dict(self.metadata),
        )


class OutcomePayload(_Payload):
    """Conversation outcome JSON: ``{success, outcomeType?, metrics?}``."""
    success: bool
    outcome_type: Optional[str] = Field(None, alias="outcomeType")
    metrics: Dict[str, Any] = Field(default_factory=dict)

    def to_outcome(self) -> ConversationOutcome:
        return ConversationOutcome(
            success=self.success,
            outcome_type=self.outcome_type,
            metrics=dict(self.metrics),
        )


def parse_state(data: Dict[str, Any]) -> State:
    """Validate a ConversationState JSON object and build a State."""
    return ConversationStatePayload.model_validate(data).to_state()


def parse_action(data: Dict[str, Any]) -> Action:
    """Validate an Action JSON object and build an Action."""
    return ActionPayload.model_validate(data).to_action()


def parse_outcome(data: Dict[str, Any]) -> ConversationOutcome:
    """Validate a conversation outcome JSON object."""
    return OutcomePayload.model_validate(data).to_outcome()
