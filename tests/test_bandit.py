"""
Tests for the contextual bandit.

Validates that the bandit:
- Keeps exact running means per (context, action)
- Scores untried arms at the initial reward
- Shrinks the UCB bonus as an arm is pulled
- Penalizes recent repetitions
- Is reproducible given a seed
- Snapshots and restores its learned state
"""
import asyncio
import math
import random

import pytest

from convo_rl.entities import ActionSpace, State
from convo_rl.errors import PolicyNotConfiguredError
from convo_rl.learning import ArmStats, BanditConfig, ContextualBandit
from convo_rl.storage import MemoryStorage

from conftest import agent_turn, user_turn


def greedy_config(space, **overrides):
    """Bandit config with random exploration switched off."""
    params = dict(
        action_space=space,
        initial_reward=0.0,
        confidence_bonus=2.0,
        use_ucb=True,
        exploration_rate=0.0,
        min_exploration_rate=0.0,
    )
    params.update(overrides)
    return BanditConfig(**params)


class SlowStorage(MemoryStorage):
    """Yields to the event loop after every read."""

    async def get(self, key):
        value = await super().get(key)
        await asyncio.sleep(0)
        return value


class BrokenStorage(MemoryStorage):
    async def get(self, key):
        raise ConnectionError("store unavailable")


class TestBanditSelection:
    """Tests for select_action."""

    @pytest.mark.asyncio
    async def test_positive_arm_beats_untried_arm(self, two_action_space, state_a, ask):
        """One rewarded 'ask' outranks 'end' still at the initial reward."""
        bandit = ContextualBandit(greedy_config(two_action_space))
        await bandit.update(state_a, ask, 1.0)

        assert (await bandit.select_action(state_a)).type == "ask_question"

    @pytest.mark.asyncio
    async def test_ties_go_to_first_action(self, action_space):
        bandit = ContextualBandit(greedy_config(action_space))
        assert (await bandit.select_action(State("c1"))).type == "ask_question"

    @pytest.mark.asyncio
    async def test_repetition_penalty_breaks_loops(self, two_action_space, ask):
        bandit = ContextualBandit(greedy_config(two_action_space))
        await bandit.update(State("c1"), ask, 1.0)

        looping = State("c1", turn_number=2, history=(
            agent_turn(ask), user_turn("hm"), agent_turn(ask),
        ))
        # ask: 1.0 - 2 * 1.0 penalty, end: 0.0
        assert (await bandit.select_action(looping)).type == "end_call"

    @pytest.mark.asyncio
    async def test_learning_is_per_context(self, two_action_space, end):
        bandit = ContextualBandit(greedy_config(two_action_space))
        billing = State("c1", intent="billing")
        sales = State("c2", intent="sales")
        await bandit.update(billing, end, 1.0)

        assert (await bandit.select_action(billing)).type == "end_call"
        assert (await bandit.select_action(sales)).type == "ask_question"

    @pytest.mark.asyncio
    async def test_step_counter_increments(self, two_action_space):
        bandit = ContextualBandit(greedy_config(two_action_space))
        await bandit.select_action(State("c1"))
        await bandit.select_action(State("c1"))
        assert bandit.step_count == 2

    @pytest.mark.asyncio
    async def test_seeded_exploration_is_reproducible(self, action_space):
        config = dict(exploration_rate=1.0, min_exploration_rate=1.0, seed=7)
        first = ContextualBandit(greedy_config(action_space, **config))
        second = ContextualBandit(greedy_config(action_space, **config))

        state = State("c1")
        picks_a = [(await first.select_action(state)).type for _ in range(20)]
        picks_b = [(await second.select_action(state)).type for _ in range(20)]

        assert picks_a == picks_b
        assert set(picks_a) <= set(action_space.types())

    @pytest.mark.asyncio
    async def test_missing_action_space_raises(self):
        bandit = ContextualBandit(BanditConfig())
        with pytest.raises(PolicyNotConfiguredError):
            await bandit.select_action(State("c1"))

    @pytest.mark.asyncio
    async def test_empty_action_space_raises(self):
        bandit = ContextualBandit(greedy_config(ActionSpace()))
        with pytest.raises(PolicyNotConfiguredError):
            await bandit.select_action(State("c1"))

    @pytest.mark.asyncio
    async def test_storage_errors_propagate(self, two_action_space):
        bandit = ContextualBandit(greedy_config(two_action_space), storage=BrokenStorage())
        with pytest.raises(ConnectionError):
            await bandit.select_action(State("c1"))


class TestBanditValues:
    """Tests for value estimation and exploration decay."""

    def test_cold_start_uses_initial_reward(self, two_action_space):
        bandit = ContextualBandit(greedy_config(two_action_space, initial_reward=0.7))
        assert bandit.estimate_value(None, 10) == 0.7
        assert bandit.estimate_value(ArmStats(pulls=0, average_reward=-1.0), 10) == 0.7

    def test_zero_context_pulls_falls_back(self, two_action_space):
        bandit = ContextualBandit(greedy_config(two_action_space, initial_reward=0.3))
        stats = ArmStats(pulls=2, total_reward=2.0, average_reward=1.0)
        assert bandit.estimate_value(stats, 0) == 0.3

    def test_ucb_bonus_shrinks_with_pulls(self, two_action_space):
        bandit = ContextualBandit(greedy_config(two_action_space))
        bonuses = [bandit.exploration_bonus(pulls, 20) for pulls in (1, 2, 5, 10)]
        assert bonuses == sorted(bonuses, reverse=True)
        assert len(set(bonuses)) == 4
        assert bonuses[0] == pytest.approx(2.0 * math.sqrt(math.log(20)))

    def test_without_ucb_value_is_average(self, two_action_space):
        bandit = ContextualBandit(greedy_config(two_action_space, use_ucb=False))
        stats = ArmStats(pulls=4, total_reward=2.0, average_reward=0.5)
        assert bandit.estimate_value(stats, 100) == 0.5

    def test_exploration_rate_decays_to_floor(self, two_action_space):
        bandit = ContextualBandit(greedy_config(
            two_action_space,
            exploration_rate=0.5,
            min_exploration_rate=0.1,
            exploration_decay=0.5,
        ))
        assert bandit.get_exploration_rate() == 0.5
        bandit.step_count = 2
        assert bandit.get_exploration_rate() == 0.125
        bandit.step_count = 3
        assert bandit.get_exploration_rate() == 0.1

    def test_rates_are_clamped(self):
        config = BanditConfig(exploration_rate=1.5, min_exploration_rate=-0.2, confidence_bonus=-1.0)
        assert config.exploration_rate == 1.0
        assert config.min_exploration_rate == 0.0
        assert config.confidence_bonus == 0.0


class TestBanditUpdate:
    """Tests for update and the stats accessors."""

    @pytest.mark.asyncio
    async def test_running_mean(self, two_action_space, state_a, ask):
        bandit = ContextualBandit(greedy_config(two_action_space))
        rewards = [0.5, -0.2, 1.0, 0.3]
        for reward in rewards:
            await bandit.update(state_a, ask, reward)

        stats = await bandit.get_arm_stats(state_a.context_key(), "ask_question")
        assert stats.pulls == 4
        assert stats.total_reward == pytest.approx(sum(rewards))
        assert stats.average_reward == pytest.approx(sum(rewards) / 4)

    @pytest.mark.asyncio
    async def test_storage_layout(self, two_action_space, state_a, ask, end):
        storage = MemoryStorage()
        bandit = ContextualBandit(greedy_config(two_action_space), storage=storage)
        await bandit.update(state_a, ask, 1.0)
        await bandit.update(state_a, end, -1.0)

        context = state_a.context_key()
        assert await storage.get(f"arm:{context}::ask_question") == {
            "pulls": 1, "totalReward": 1.0, "averageReward": 1.0,
        }
        assert await storage.get(f"ctx:{context}") == 2

    @pytest.mark.asyncio
    async def test_context_stats_and_best_action(self, action_space, state_a, ask, end):
        bandit = ContextualBandit(greedy_config(action_space))
        context = state_a.context_key()
        assert await bandit.get_best_action_for_context(context) is None

        await bandit.update(state_a, ask, 0.2)
        await bandit.update(state_a, end, 0.9)

        stats = await bandit.get_context_stats(context)
        assert set(stats) == {"ask_question", "end_call"}
        assert (await bandit.get_best_action_for_context(context)).type == "end_call"

    @pytest.mark.asyncio
    async def test_get_stats(self, two_action_space, ask):
        bandit = ContextualBandit(greedy_config(two_action_space))
        await bandit.update(State("c1", intent="a"), ask, 1.0)
        await bandit.update(State("c2", intent="b"), ask, 1.0)
        await bandit.update(State("c3", intent="b"), ask, 1.0)

        stats = await bandit.get_stats()
        assert stats["contexts"] == 2
        assert stats["totalPulls"] == 3
        assert stats["config"]["confidence_bonus"] == 2.0

    @pytest.mark.asyncio
    async def test_concurrent_updates_can_lose_one(self, two_action_space, state_a, ask):
        """Unlocked read-modify-write: two racing updates leave one pull."""
        bandit = ContextualBandit(greedy_config(two_action_space), storage=SlowStorage())

        await asyncio.gather(
            bandit.update(state_a, ask, 1.0),
            bandit.update(state_a, ask, 0.0),
        )

        stats = await bandit.get_arm_stats(state_a.context_key(), "ask_question")
        assert stats.pulls == 1
        assert await bandit.storage.get(f"ctx:{state_a.context_key()}") == 1


class TestBanditAnalysis:
    """Tests for analyze_action."""

    @pytest.mark.asyncio
    async def test_ranks_all_candidates(self, action_space, state_a, ask, end):
        bandit = ContextualBandit(greedy_config(action_space))
        await bandit.update(state_a, end, 1.0)
        await bandit.update(state_a, ask, -0.5)

        analysis = await bandit.analyze_action(state_a)
        ranked = [alt.action.type for alt in analysis.explanation.alternatives]

        assert analysis.action.type == "end_call"
        assert ranked[0] == "end_call"
        assert set(ranked) == {"ask_question", "end_call", "clarify"}
        values = [alt.value for alt in analysis.explanation.alternatives]
        assert values == sorted(values, reverse=True)
        assert all(alt.justification for alt in analysis.explanation.alternatives)

    @pytest.mark.asyncio
    async def test_confidence_is_softmax_share(self, two_action_space, state_a, ask):
        bandit = ContextualBandit(greedy_config(two_action_space))
        await bandit.update(state_a, ask, 1.0)

        analysis = await bandit.analyze_action(state_a)
        expected = math.exp(1.0) / (math.exp(1.0) + math.exp(0.0))
        assert analysis.explanation.confidence == pytest.approx(expected)

    @pytest.mark.asyncio
    async def test_does_not_touch_learned_state(self, two_action_space, state_a, ask):
        storage = MemoryStorage()
        bandit = ContextualBandit(greedy_config(two_action_space), storage=storage)
        await bandit.update(state_a, ask, 1.0)
        before = await storage.export_data()

        await bandit.analyze_action(state_a)

        assert await storage.export_data() == before
        assert bandit.step_count == 1


class TestBanditPersistence:
    """Tests for to_dict / load_dict / reset."""

    @pytest.mark.asyncio
    async def test_snapshot_roundtrip(self, action_space, state_a, ask, end):
        bandit = ContextualBandit(greedy_config(action_space, confidence_bonus=1.5))
        await bandit.update(state_a, end, 1.0)
        await bandit.update(state_a, ask, 0.1)
        await bandit.select_action(state_a)
        snapshot = await bandit.to_dict()

        assert snapshot["armStats"][state_a.context_key()]["end_call"]["pulls"] == 1
        assert snapshot["contextPulls"] == {state_a.context_key(): 2}
        assert snapshot["stepCount"] == 1

        restored = ContextualBandit(greedy_config(action_space))
        await restored.load_dict(snapshot)

        assert restored.config.confidence_bonus == 1.5
        assert restored.step_count == 1
        assert (await restored.select_action(state_a)).type == (await bandit.select_action(state_a)).type
        assert await restored.to_dict() == await bandit.to_dict()

    @pytest.mark.asyncio
    async def test_load_replaces_existing_state(self, two_action_space, ask, end):
        bandit = ContextualBandit(greedy_config(two_action_space))
        await bandit.update(State("c1", intent="old"), ask, 1.0)

        await bandit.load_dict({
            "armStats": {"intent:new": {"end_call": {"pulls": 3, "totalReward": 1.5, "averageReward": 0.5}}},
            "contextPulls": {"intent:new": 3},
        })

        assert await bandit.get_arm_stats("intent:old", "ask_question") is None
        stats = await bandit.get_arm_stats("intent:new", "end_call")
        assert stats.pulls == 3
        assert stats.average_reward == 0.5

    @pytest.mark.asyncio
    async def test_loaded_seed_restarts_generator(self, two_action_space):
        bandit = ContextualBandit(greedy_config(two_action_space, seed=1))

        await bandit.load_dict({"config": {"seed": 7}})

        expected = random.Random(7)
        assert [bandit.rng.random() for _ in range(3)] == [expected.random() for _ in range(3)]

    @pytest.mark.asyncio
    async def test_reset_clears_everything(self, two_action_space, state_a, ask):
        bandit = ContextualBandit(greedy_config(two_action_space))
        await bandit.update(state_a, ask, 1.0)
        await bandit.select_action(state_a)

        await bandit.reset()

        assert bandit.step_count == 0
        assert await bandit.get_arm_stats(state_a.context_key(), "ask_question") is None
        assert (await bandit.get_stats())["totalPulls"] == 0
