"""
Actions an agent can take and the space they are chosen from.

An action's ``type`` is its identity: two actions with the same type are the
same arm for learning purposes, whatever their parameters say.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional


class ActionType(str, Enum):
    """Common action types for voice and chat agents."""
    ASK_QUESTION = "ask_question"
    PROVIDE_INFO = "provide_info"
    TRANSFER_CALL = "transfer_call"
    SCHEDULE_CALLBACK = "schedule_callback"
    END_CALL = "end_call"
    CLARIFY = "clarify"
    CONFIRM = "confirm"
    APOLOGIZE = "apologize"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Action:
    """
    A decision the agent can make.

    Attributes:
        type: Unique identifier of the action kind (the identity key)
        name: Human-readable name
        description: What the action does
        parameters: Action arguments (e.g. the question to ask)
        metadata: Free-form annotations
    """
    type: str
    name: str
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # Accept ActionType members but store the plain string value
        if isinstance(self.type, ActionType):
            object.__setattr__(self, "type", self.type.value)

    def __hash__(self) -> int:
        return hash((self.type, self.name, self.description))

    @property
    def id(self) -> str:
        """Identity key of this action."""
        return self.type

    def has_parameter(self, key: str) -> bool:
        return key in self.parameters

    def get_parameter(self, key: str, default: Any = None) -> Any:
        value = self.parameters.get(key)
        return default if value is None else value

    def with_parameters(self, **params: Any) -> "Action":
        """
        Create a new action with merged parameters.

        The original action is left untouched; type, name, description and
        metadata are shared with the copy.
        """
        return Action(
            type=self.type,
            name=self.name,
            description=self.description,
            parameters={**self.parameters, **params},
            metadata=dict(self.metadata),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the Action JSON shape."""
        return {
            "type": self.type,
            "name": self.name,
            "description": self.description,
            "parameters": dict(self.parameters),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Action":
        """Deserialize from the Action JSON shape."""
        return cls(
            type=data["type"],
            name=data.get("name", data["type"]),
            description=data.get("description", ""),
            parameters=dict(data.get("parameters") or {}),
            metadata=dict(data.get("metadata") or {}),
        )

    @classmethod
    def create(
        cls,
        action_type: str,
        name: str,
        description: str = "",
        parameters: Optional[Dict[str, Any]] = None,
    ) -> "Action":
        """Create a standard action."""
        return cls(
            type=action_type,
            name=name,
            description=description,
            parameters=dict(parameters or {}),
        )


class ActionSpace:
    """
    Ordered set of actions keyed by type.

    Adding an action whose type is already present replaces it in its
    original slot. Iteration follows insertion order, which policies use
    as the deterministic tie-break when scoring.
    """

    def __init__(self, actions: Optional[Iterable[Action]] = None):
        self._actions: Dict[str, Action] = {}
        for action in actions or []:
            self.add_action(action)

    def add_action(self, action: Action) -> None:
        self._actions[action.type] = action

    def get_action(self, action_type: str) -> Optional[Action]:
        return self._actions.get(action_type)

    def get_all_actions(self) -> List[Action]:
        """Snapshot of all actions in insertion order."""
        return list(self._actions.values())

    def has_action(self, action_type: str) -> bool:
        return action_type in self._actions

    def remove_action(self, action_type: str) -> bool:
        """Remove an action, returning whether it was present."""
        return self._actions.pop(action_type, None) is not None

    def size(self) -> int:
        return len(self._actions)

    def types(self) -> List[str]:
        return list(self._actions.keys())

    def __len__(self) -> int:
        return len(self._actions)

    def __iter__(self) -> Iterator[Action]:
        return iter(self.get_all_actions())

    def __contains__(self, item: object) -> bool:
        if isinstance(item, Action):
            return item.type in self._actions
        return item in self._actions

    def __repr__(self) -> str:
        return f"ActionSpace({self.types()!r})"
