"""Tests for the conversation context manager."""

from health_agents.conversation import (
    ConversationContextManager,
    ConversationSummary,
    MessageRole,
    topics_in,
)
from health_agents.conversation_store import InMemoryConversationStore
from health_agents.health_values import ScalarValue, SleepSummaryValue


def add_turn(manager, question, answer="ok"):
    manager.append_turn(
        manager.make_message(MessageRole.USER, question),
        manager.make_message(MessageRole.ASSISTANT, answer),
    )


class TestMessageWindow:
    def test_turn_appends_both_messages(self, context_manager):
        add_turn(context_manager, "how are my steps?", "You walked 8000 steps")

        roles = [m.role for m in context_manager.messages]
        assert roles == [MessageRole.USER, MessageRole.ASSISTANT]

    def test_window_is_bounded(self, clock):
        manager = ConversationContextManager(max_messages=4, clock=clock)
        for i in range(5):
            add_turn(manager, f"question {i}")

        messages = manager.messages
        assert len(messages) == 4
        assert messages[0].content == "question 3"

    def test_old_messages_are_evicted(self, clock):
        manager = ConversationContextManager(max_messages=10, max_message_age=3600, clock=clock)
        add_turn(manager, "question 0")
        clock.advance(minutes=90)
        add_turn(manager, "question 1")

        assert [m.content for m in manager.messages] == ["question 1", "ok"]

    def test_recent_messages_survive_cleanup(self, clock):
        manager = ConversationContextManager(max_messages=10, max_message_age=3600, clock=clock)
        add_turn(manager, "question 0")
        clock.advance(minutes=30)
        add_turn(manager, "question 1")

        assert len(manager.messages) == 4

    def test_topics_come_from_user_messages(self, context_manager):
        add_turn(context_manager, "How did I sleep?", "Your heart rate was steady")
        assert context_manager.context.discussed_topics == {"sleep"}

    def test_topics_in_chinese(self):
        assert topics_in("我的步数和体重") == {"steps", "weight"}


class TestHealthContext:
    def test_value_rendered_for_llm(self, context_manager):
        add_turn(context_manager, "steps?", "8000")
        context_manager.update_health_context("steps", ScalarValue(8000, "steps"))

        text = context_manager.get_context_for_llm()

        assert "User: steps?" in text
        assert "Assistant: 8000" in text
        assert text.endswith("Health Context: steps: 8000 steps")

    def test_typed_values_kept(self, context_manager):
        context_manager.update_health_context("sleepDurationHours", SleepSummaryValue(hours=7.5))

        values = context_manager.get_relevant_health_values()
        assert values["sleepDurationHours"].hours == 7.5
        assert context_manager.get_relevant_health_context() == {"sleepDurationHours": "7.5 hours"}

    def test_stale_health_context_is_hidden(self, context_manager, clock):
        context_manager.update_health_context("steps", "8000 steps")
        clock.advance(hours=2)

        assert context_manager.get_relevant_health_context() == {}
        assert context_manager.get_relevant_health_values() == {}

    def test_only_last_five_messages_go_to_llm(self, context_manager):
        for i in range(4):
            add_turn(context_manager, f"question {i}", f"answer {i}")

        lines = context_manager.get_context_for_llm().splitlines()
        assert len(lines) == 5
        assert lines[0] == "Assistant: answer 1"


class TestSessions:
    def test_new_session_saves_previous(self, context_manager):
        store = InMemoryConversationStore()
        add_turn(context_manager, "How many steps did I take this week?")
        old_id = context_manager.session_id

        new_id = context_manager.start_new_session(store)

        assert new_id != old_id
        assert context_manager.messages == []
        assert store.saved[0].id == old_id
        assert store.saved[0].title == "How many steps did I take this week?"

    def test_empty_session_not_saved(self, context_manager):
        store = InMemoryConversationStore()
        context_manager.start_new_session(store)
        assert store.saved == []

    def test_summary_title_is_truncated(self, context_manager):
        add_turn(context_manager, "x" * 50)
        assert context_manager.summary().title == "x" * 40 + "..."

    def test_summary_round_trips(self, context_manager):
        add_turn(context_manager, "steps?")
        summary = context_manager.summary()
        assert ConversationSummary.from_dict(summary.to_dict()) == summary
