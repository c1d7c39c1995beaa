"""
Shared fixtures for the decision engine tests.
"""
import pytest

from convo_rl.entities import Action, ActionSpace, ConversationTurn, State


def agent_turn(action: Action, text: str = "") -> ConversationTurn:
    return ConversationTurn(speaker="agent", text=text or action.name, action=action)


def user_turn(text: str) -> ConversationTurn:
    return ConversationTurn(speaker="user", text=text)


@pytest.fixture
def ask():
    return Action.create("ask_question", "ask", "Ask a clarifying question")


@pytest.fixture
def end():
    return Action.create("end_call", "end", "End the call")


@pytest.fixture
def clarify():
    return Action.create("clarify", "clarify", "Clarify the last answer")


@pytest.fixture
def two_action_space(ask, end):
    return ActionSpace([ask, end])


@pytest.fixture
def action_space(ask, end, clarify):
    return ActionSpace([ask, end, clarify])


@pytest.fixture
def state_a():
    return State(conversation_id="conv-a", intent="billing", features={"frustration": 0.42})
