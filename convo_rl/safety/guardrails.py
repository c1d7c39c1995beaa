"""
Guardrails for safe policy execution.

Validates actions chosen by a policy against an allow list, a block list
and an ordered set of rules, and substitutes a fallback action when a
blocking rule fires. Every violation is recorded with a timestamp.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..entities.action import Action
from ..entities.state import State, utc_timestamp
from ..errors import NoFallbackError
from ..learning.policy import Policy
from ..logging_config import structured

logger = logging.getLogger(__name__)

RuleCheck = Callable[[State, Action], bool]

WHITELIST_RULE = "whitelist"
BLACKLIST_RULE = "blacklist"


@dataclass
class GuardrailRule:
    """
    A named safety rule.

    Attributes:
        name: Unique rule name
        check: Returns True when (state, action) violates the rule
        description: What the rule enforces
        fallback_action: Replacement used when this rule blocks
        blocking: Whether a violation replaces the action or is only recorded
    """
    name: str
    check: RuleCheck
    description: str = ""
    fallback_action: Optional[Action] = None
    blocking: bool = True


@dataclass
class Violation:
    """A recorded rule violation."""
    rule: str
    action: Action
    state: State
    timestamp: str = field(default_factory=utc_timestamp)
    fallback_used: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule": self.rule,
            "action": self.action.to_dict(),
            "conversationId": self.state.conversation_id,
            "turnNumber": self.state.turn_number,
            "timestamp": self.timestamp,
            "fallbackUsed": self.fallback_used,
        }


@dataclass
class GuardrailConfig:
    """
    Guardrail configuration.

    Attributes:
        rules: Rules evaluated in order
        whitelist: If non-empty, the only allowed action types
        blacklist: Action types that are never allowed
        fallback_policy: Policy asked for a replacement as a last resort
        default_fallback: Replacement used when the rule has none
        log_violations: Emit a warning log line per violation
    """
    rules: List[GuardrailRule] = field(default_factory=list)
    whitelist: List[str] = field(default_factory=list)
    blacklist: List[str] = field(default_factory=list)
    fallback_policy: Optional[Policy] = None
    default_fallback: Optional[Action] = None
    log_violations: bool = True


class Guardrails:
    """
    Validates and, when needed, replaces policy actions.

    Example:
        >>> guardrails = Guardrails(GuardrailConfig(blacklist=["transfer_call"],
        ...                                         default_fallback=clarify))
        >>> safe_action = await guardrails.validate(state, action)
    """

    def __init__(self, config: Optional[GuardrailConfig] = None):
        self.config = config or GuardrailConfig()
        self._rules: List[GuardrailRule] = []
        for rule in self.config.rules:
            self.add_rule(rule)
        self._violations: List[Violation] = []

    @property
    def rules(self) -> List[GuardrailRule]:
        return list(self._rules)

    def add_rule(self, rule: GuardrailRule) -> None:
        """Append a rule, or replace the rule with the same name in place."""
        for i, existing in enumerate(self._rules):
            if existing.name == rule.name:
                self._rules[i] = rule
                return
        self._rules.append(rule)

    def remove_rule(self, name: str) -> bool:
        for i, rule in enumerate(self._rules):
            if rule.name == name:
                del self._rules[i]
                return True
        return False

    def _whitelist_miss(self, action: Action) -> bool:
        return bool(self.config.whitelist) and action.type not in self.config.whitelist

    def _blacklist_hit(self, action: Action) -> bool:
        return action.type in self.config.blacklist

    def is_safe(self, state: State, action: Action) -> bool:
        """Whether `action` passes all checks. Records nothing."""
        if self._whitelist_miss(action) or self._blacklist_hit(action):
            return False
        return not any(rule.blocking and rule.check(state, action) for rule in self._rules)

    async def validate(self, state: State, action: Action) -> Action:
        """
        Return `action` if it is allowed, otherwise a replacement.

        Replacement order: the violated rule's fallback, the default
        fallback, then the fallback policy's choice.

        Raises:
            NoFallbackError: If an action is blocked and no replacement exists
        """
        if self._whitelist_miss(action):
            return await self._handle_violation(state, action, WHITELIST_RULE)

        if self._blacklist_hit(action):
            return await self._handle_violation(state, action, BLACKLIST_RULE)

        for rule in self._rules:
            if not rule.check(state, action):
                continue
            if rule.blocking:
                return await self._handle_violation(state, action, rule.name, rule.fallback_action)
            self._record(state, action, rule.name, fallback_used=False)

        return action

    async def _handle_violation(
        self,
        state: State,
        action: Action,
        rule_name: str,
        fallback_action: Optional[Action] = None,
    ) -> Action:
        self._record(state, action, rule_name, fallback_used=True)

        if fallback_action is not None:
            return fallback_action
        if self.config.default_fallback is not None:
            return self.config.default_fallback
        if self.config.fallback_policy is not None:
            return await self.config.fallback_policy.select_action(state)

        raise NoFallbackError(rule_name, action.type)

    def _record(self, state: State, action: Action, rule_name: str, fallback_used: bool) -> None:
        self._violations.append(Violation(
            rule=rule_name,
            action=action,
            state=state,
            fallback_used=fallback_used,
        ))
        if self.config.log_violations:
            logger.warning(
                f"Guardrail violation: {rule_name} - Action: {action.type}",
                extra=structured(
                    convo_id=state.conversation_id,
                    turn=state.turn_number,
                    subsystem="guardrails",
                    event_type="violation",
                    action_type=action.type,
                    rule=rule_name,
                    blocking=fallback_used,
                ),
            )

    @property
    def violations(self) -> List[Violation]:
        return list(self._violations)

    def clear_violations(self) -> None:
        self._violations = []

    def allow_action(self, action_type: str) -> None:
        """Add an action type to the whitelist."""
        if action_type not in self.config.whitelist:
            self.config.whitelist.append(action_type)

    def block_action(self, action_type: str) -> None:
        """Add an action type to the blacklist."""
        if action_type not in self.config.blacklist:
            self.config.blacklist.append(action_type)

    def get_stats(self) -> Dict[str, Any]:
        by_rule: Dict[str, int] = {}
        for violation in self._violations:
            by_rule[violation.rule] = by_rule.get(violation.rule, 0) + 1

        return {
            "totalViolations": len(self._violations),
            "violationsByRule": by_rule,
            "whitelistSize": len(self.config.whitelist),
            "blacklistSize": len(self.config.blacklist),
            "rulesCount": len(self._rules),
        }
