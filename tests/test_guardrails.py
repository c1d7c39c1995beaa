"""
Tests for guardrails and the common rules.
"""
import logging

import pytest

from convo_rl.entities import Action, State
from convo_rl.errors import NoFallbackError
from convo_rl.learning import Policy, PolicyConfig
from convo_rl.safety import CommonGuardrails, GuardrailConfig, GuardrailRule, Guardrails

from conftest import agent_turn, user_turn


class FixedPolicy(Policy):
    """Always returns the given action and counts calls."""

    def __init__(self, action):
        super().__init__(PolicyConfig())
        self.action = action
        self.calls = 0

    async def select_action(self, state):
        self.calls += 1
        return self.action

    async def analyze_action(self, state):
        raise NotImplementedError

    async def update(self, state, action, reward):
        pass

    async def reset(self):
        pass

    async def to_dict(self):
        return {}

    async def load_dict(self, data):
        pass


def always(name, fallback=None, blocking=True):
    return GuardrailRule(name=name, check=lambda s, a: True, fallback_action=fallback, blocking=blocking)


def never(name):
    return GuardrailRule(name=name, check=lambda s, a: False)


class TestIsSafe:
    """Tests for is_safe."""

    def test_whitelist_is_exclusive(self, ask, end):
        """Anything outside a non-empty whitelist is unsafe, whatever else is set."""
        guardrails = Guardrails(GuardrailConfig(whitelist=["end_call"], rules=[never("noop")]))
        assert not guardrails.is_safe(State("c1"), ask)
        assert guardrails.is_safe(State("c1"), end)

    def test_blacklist(self, ask, end):
        guardrails = Guardrails(GuardrailConfig(blacklist=["ask_question"]))
        assert not guardrails.is_safe(State("c1"), ask)
        assert guardrails.is_safe(State("c1"), end)

    def test_only_blocking_rules_count(self, ask):
        guardrails = Guardrails(GuardrailConfig(rules=[always("soft", blocking=False)]))
        assert guardrails.is_safe(State("c1"), ask)

        guardrails.add_rule(always("hard"))
        assert not guardrails.is_safe(State("c1"), ask)

    def test_is_safe_records_nothing(self, ask):
        guardrails = Guardrails(GuardrailConfig(rules=[always("hard")]))
        guardrails.is_safe(State("c1"), ask)
        assert guardrails.violations == []


class TestValidate:
    """Tests for validate and fallback resolution."""

    @pytest.mark.asyncio
    async def test_safe_action_passes_through(self, ask):
        guardrails = Guardrails(GuardrailConfig(rules=[never("x")]))
        assert await guardrails.validate(State("c1"), ask) is ask

    @pytest.mark.asyncio
    async def test_rule_fallback_wins(self, ask, end, clarify):
        """The rule's own fallback is used; default and policy are never consulted."""
        policy = FixedPolicy(clarify)
        guardrails = Guardrails(GuardrailConfig(
            rules=[always("hard", fallback=end)],
            default_fallback=clarify,
            fallback_policy=policy,
        ))

        assert await guardrails.validate(State("c1"), ask) is end
        assert policy.calls == 0

    @pytest.mark.asyncio
    async def test_default_fallback_before_policy(self, ask, clarify, end):
        policy = FixedPolicy(end)
        guardrails = Guardrails(GuardrailConfig(
            rules=[always("hard")],
            default_fallback=clarify,
            fallback_policy=policy,
        ))

        assert await guardrails.validate(State("c1"), ask) is clarify
        assert policy.calls == 0

    @pytest.mark.asyncio
    async def test_fallback_policy_is_awaited(self, ask, end):
        policy = FixedPolicy(end)
        guardrails = Guardrails(GuardrailConfig(blacklist=["ask_question"], fallback_policy=policy))

        assert await guardrails.validate(State("c1"), ask) is end
        assert policy.calls == 1

    @pytest.mark.asyncio
    async def test_no_fallback_raises(self, ask):
        guardrails = Guardrails(GuardrailConfig(rules=[always("hard")]))

        with pytest.raises(NoFallbackError) as exc_info:
            await guardrails.validate(State("c1"), ask)

        assert exc_info.value.rule == "hard"
        assert exc_info.value.action_type == "ask_question"
        assert "No fallback available" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_whitelist_checked_before_blacklist(self, ask, end):
        guardrails = Guardrails(GuardrailConfig(
            whitelist=["end_call"], blacklist=["ask_question"], default_fallback=end,
        ))
        await guardrails.validate(State("c1"), ask)
        assert guardrails.violations[0].rule == "whitelist"

    @pytest.mark.asyncio
    async def test_non_blocking_violations_are_recorded(self, ask, end, caplog):
        guardrails = Guardrails(GuardrailConfig(rules=[
            always("soft", blocking=False),
            always("hard", fallback=end),
        ]))

        with caplog.at_level(logging.WARNING, logger="convo_rl.safety.guardrails"):
            result = await guardrails.validate(State("c1"), ask)

        assert result is end
        assert [(v.rule, v.fallback_used) for v in guardrails.violations] == [
            ("soft", False),
            ("hard", True),
        ]
        assert "Guardrail violation: soft" in caplog.text
        assert guardrails.violations[0].timestamp

    @pytest.mark.asyncio
    async def test_rules_run_in_registration_order(self, ask, end, clarify):
        guardrails = Guardrails()
        guardrails.add_rule(always("first", fallback=end))
        guardrails.add_rule(always("second", fallback=clarify))

        assert await guardrails.validate(State("c1"), ask) is end

    @pytest.mark.asyncio
    async def test_add_rule_replaces_in_place(self, ask, end, clarify):
        guardrails = Guardrails(GuardrailConfig(rules=[
            always("first", fallback=end),
            always("second", fallback=clarify),
        ]))
        guardrails.add_rule(never("first"))

        assert [r.name for r in guardrails.rules] == ["first", "second"]
        assert await guardrails.validate(State("c1"), ask) is clarify

    def test_remove_rule(self):
        guardrails = Guardrails(GuardrailConfig(rules=[never("x")]))
        assert guardrails.remove_rule("x")
        assert not guardrails.remove_rule("x")

    def test_allow_and_block(self, ask):
        guardrails = Guardrails()
        guardrails.allow_action("end_call")
        guardrails.allow_action("end_call")
        guardrails.block_action("transfer_call")

        assert guardrails.config.whitelist == ["end_call"]
        assert not guardrails.is_safe(State("c1"), ask)

    @pytest.mark.asyncio
    async def test_stats_and_clear(self, ask, end):
        guardrails = Guardrails(GuardrailConfig(
            rules=[always("hard", fallback=end)], blacklist=["transfer_call"],
        ))
        await guardrails.validate(State("c1"), ask)
        await guardrails.validate(State("c1"), ask)

        stats = guardrails.get_stats()
        assert stats == {
            "totalViolations": 2,
            "violationsByRule": {"hard": 2},
            "whitelistSize": 0,
            "blacklistSize": 1,
            "rulesCount": 1,
        }

        guardrails.clear_violations()
        assert guardrails.get_stats()["totalViolations"] == 0


class TestCommonGuardrails:
    """Tests for the ready-made rules."""

    def test_max_turns(self, ask, end):
        rule = CommonGuardrails.max_turns(5)
        assert not rule.check(State("c1", turn_number=4), ask)
        assert rule.check(State("c1", turn_number=5), ask)
        assert not rule.check(State("c1", turn_number=9), end)
        assert rule.fallback_action.type == "end_call"

    def test_no_repeat_counts_history(self, ask, end):
        rule = CommonGuardrails.no_repeat(max_repeats=2)
        once = State("c1", history=(agent_turn(ask),))
        twice = State("c1", history=(agent_turn(ask), user_turn("?"), agent_turn(ask)))

        assert not rule.check(once, ask)
        assert rule.check(twice, ask)
        assert not rule.check(twice, end)

    def test_no_repeat_is_pure(self, ask):
        rule = CommonGuardrails.no_repeat(max_repeats=1)
        state = State("c1")
        assert [rule.check(state, ask) for _ in range(5)] == [False] * 5

    def test_rate_limit_is_per_conversation(self, ask):
        transfer = Action.create("transfer_call", "transfer")
        rule = CommonGuardrails.rate_limit("transfer_call", 1)
        used = State("c1", history=(agent_turn(transfer),))

        assert rule.name == "rate_limit_transfer_call"
        assert rule.check(used, transfer)
        assert not rule.check(State("c2"), transfer)
        assert not rule.check(used, ask)

    def test_require_confirmation(self, ask):
        transfer = Action.create("transfer_call", "transfer")
        rule = CommonGuardrails.require_confirmation(["transfer_call"])

        assert rule.check(State("c1"), transfer)
        assert rule.check(State("c1", history=(user_turn("not now"),)), transfer)
        assert not rule.check(State("c1", history=(user_turn("Yes, please"),)), transfer)
        assert not rule.check(State("c1"), ask)

    @pytest.mark.asyncio
    async def test_common_rules_in_guardrails(self, ask):
        guardrails = Guardrails(GuardrailConfig(rules=[CommonGuardrails.max_turns(3)]))
        action = await guardrails.validate(State("c1", turn_number=3), ask)
        assert action.type == "end_call"
