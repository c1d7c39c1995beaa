"""
Ready-made guardrail rules.

Per-conversation counts are read from the state's own history rather than
kept in closures, so every check is a pure function of (state, action).
"""
from __future__ import annotations

import re
from typing import Iterable, Optional

from ..entities.action import Action, ActionType
from ..entities.state import State
from .guardrails import GuardrailRule

CONFIRMATION_PATTERN = re.compile(r"\b(yes|confirm|proceed|ok)\b", re.IGNORECASE)


class CommonGuardrails:
    """Factory methods for common rules."""

    @staticmethod
    def max_turns(max_turns: int, fallback_action: Optional[Action] = None) -> GuardrailRule:
        """Force the call to end once `max_turns` is reached."""
        def check(state: State, action: Action) -> bool:
            return state.turn_number >= max_turns and action.type != ActionType.END_CALL.value

        return GuardrailRule(
            name="max_turns",
            description=f"Prevent conversations longer than {max_turns} turns",
            check=check,
            fallback_action=fallback_action or Action.create(
                ActionType.END_CALL.value,
                "End Call",
                "Maximum conversation length reached",
            ),
        )

    @staticmethod
    def no_repeat(max_repeats: int = 3) -> GuardrailRule:
        """Block an action type once it was taken `max_repeats` times."""
        def check(state: State, action: Action) -> bool:
            return state.agent_action_count(action.type) + 1 > max_repeats

        return GuardrailRule(
            name="no_repeat",
            description=f"Prevent same action more than {max_repeats} times",
            check=check,
        )

    @staticmethod
    def require_confirmation(critical_actions: Iterable[str]) -> GuardrailRule:
        """Block critical actions unless the user's last turn confirmed."""
        critical = set(critical_actions)

        def check(state: State, action: Action) -> bool:
            if action.type not in critical:
                return False
            last = state.last_user_turn()
            if last is None:
                return True
            return CONFIRMATION_PATTERN.search(last.text) is None

        return GuardrailRule(
            name="require_confirmation",
            description="Require confirmation before critical actions",
            check=check,
        )

    @staticmethod
    def rate_limit(action_type: str, max_per_conversation: int) -> GuardrailRule:
        """Allow `action_type` at most `max_per_conversation` times per conversation."""
        def check(state: State, action: Action) -> bool:
            if action.type != action_type:
                return False
            return state.agent_action_count(action_type) + 1 > max_per_conversation

        return GuardrailRule(
            name=f"rate_limit_{action_type}",
            description=f"Limit {action_type} to {max_per_conversation} per conversation",
            check=check,
        )
