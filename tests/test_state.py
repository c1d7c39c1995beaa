"""
Tests for conversation state snapshots and context keys.
"""
import pytest

from convo_rl.entities import Action, ConversationTurn, State

from conftest import agent_turn, user_turn


class TestContextKey:
    """Tests for State.context_key."""

    def test_empty_state_is_default_context(self):
        """No intent and no features gives the empty key."""
        assert State("c1").context_key() == ""

    def test_intent_comes_first(self):
        state = State("c1", intent="billing", features={"vip": True})
        assert state.context_key() == "intent:billing|vip:true"

    def test_numeric_features_are_floored_to_tenths(self):
        state = State("c1", features={"frustration": 0.79, "count": 3, "neg": -0.25})
        assert state.context_key() == "frustration:0.7|count:3|neg:-0.3"

    def test_values_just_below_an_edge_stay_in_the_lower_bucket(self):
        state = State("c1", features={"x": 0.29999999999999, "y": 0.6999999999999})
        assert state.context_key() == "x:0.2|y:0.6"

    def test_whole_buckets_render_without_fraction(self):
        state = State("c1", features={"n": 5, "f": 2.0, "r": 1.04})
        assert state.context_key() == "n:5|f:2|r:1"

    def test_booleans_and_strings(self):
        state = State("c1", features={"angry": False, "lang": "de"})
        assert state.context_key() == "angry:false|lang:de"

    def test_feature_order_is_insertion_order(self):
        a = State("c1", features={"a": "x", "b": "y"})
        b = State("c1", features={"b": "y", "a": "x"})
        assert a.context_key() == "a:x|b:y"
        assert b.context_key() == "b:y|a:x"

    def test_independent_of_history(self):
        """Identical intent and bucketed features give identical keys."""
        ask = Action.create("ask_question", "ask")
        a = State("c1", intent="sales", features={"score": 0.51})
        b = State(
            "c2",
            turn_number=7,
            intent="sales",
            features={"score": 0.55},
            history=(agent_turn(ask), user_turn("hello")),
        )
        assert a.context_key() == b.context_key() == "intent:sales|score:0.5"


class TestStateOperations:
    """Tests for State helpers."""

    def test_negative_turn_number_rejected(self):
        with pytest.raises(ValueError):
            State("c1", turn_number=-1)

    def test_history_list_is_converted_to_tuple(self):
        state = State("c1", history=[user_turn("hi")])
        assert isinstance(state.history, tuple)

    def test_advance_appends_and_increments(self):
        state = State("c1", turn_number=2)
        ask = Action.create("ask_question", "ask")
        nxt = state.advance([agent_turn(ask), user_turn("sure")])

        assert nxt.turn_number == 3
        assert len(nxt.history) == 2
        # Original untouched
        assert state.turn_number == 2
        assert state.history == ()

    def test_recent_agent_actions_uses_window(self):
        ask = Action.create("ask_question", "ask")
        clarify = Action.create("clarify", "clarify")
        state = State("c1", history=(
            agent_turn(ask),
            user_turn("?"),
            agent_turn(clarify),
            ConversationTurn(speaker="agent", text="no action"),
            agent_turn(ask),
        ))
        assert state.recent_agent_actions(2) == ["clarify", "ask_question"]
        assert state.recent_agent_actions(0) == []
        assert state.agent_action_count("ask_question") == 2

    def test_last_user_turn(self):
        state = State("c1", history=(user_turn("first"), user_turn("second")))
        assert state.last_user_turn().text == "second"
        assert State("c2").last_user_turn() is None

    def test_extract_features(self):
        state = State("c1", turn_number=5, features={"flag": True, "score": 0.5, "lang": "en"})
        assert state.extract_features() == [0.5, 0.0, 1.0, 0.5]

    def test_clone_is_deep(self):
        state = State("c1", features={"a": 1}, metadata={"nested": {"k": 1}})
        copy = state.clone()
        copy.metadata["nested"]["k"] = 2
        assert state.metadata["nested"]["k"] == 1


class TestStateSerialization:
    """Tests for the ConversationState JSON contract."""

    def test_to_dict_uses_camel_case(self):
        state = State("c1", turn_number=1, intent="x", user_info={"name": "Sam"})
        data = state.to_dict()
        assert data["conversationId"] == "c1"
        assert data["turnNumber"] == 1
        assert data["userInfo"] == {"name": "Sam"}

    def test_roundtrip(self):
        ask = Action.create("ask_question", "ask", parameters={"q": "why?"})
        state = State(
            "c1",
            turn_number=2,
            history=(agent_turn(ask), user_turn("because")),
            features={"angry": True, "score": 0.3},
            intent="support",
        )
        restored = State.from_dict(state.to_dict())

        assert restored.conversation_id == "c1"
        assert restored.history[0].action.get_parameter("q") == "why?"
        assert restored.features == {"angry": True, "score": 0.3}
        assert restored.context_key() == state.context_key()
