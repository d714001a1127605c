"""Tests for JSON conversation persistence."""

import json
from datetime import datetime

from health_agents.conversation import ConversationSummary
from health_agents.conversation_store import JsonConversationStore


def make_summary(session_id, hour=10):
    when = datetime(2025, 3, 15, hour)
    return ConversationSummary(
        id=session_id,
        start_time=when,
        last_activity=when,
        message_count=2,
        topics=["sleep"],
        metrics_discussed=["sleepDurationHours"],
        title="睡眠怎么样",
    )


class TestJsonConversationStore:
    def test_save_and_load(self, tmp_path):
        store = JsonConversationStore(tmp_path / "sessions")
        store.save(make_summary("abc"))

        loaded = store.load("abc")

        assert loaded == make_summary("abc")
        raw = json.loads((tmp_path / "sessions" / "abc.json").read_text(encoding="utf-8"))
        assert raw["title"] == "睡眠怎么样"

    def test_missing_session(self, tmp_path):
        assert JsonConversationStore(tmp_path).load("nope") is None

    def test_corrupt_file_is_skipped(self, tmp_path):
        store = JsonConversationStore(tmp_path)
        (tmp_path / "bad.json").write_text("{oops")
        store.save(make_summary("good"))

        assert store.load("bad") is None
        assert [s.id for s in store.list()] == ["good"]

    def test_list_most_recent_first(self, tmp_path):
        store = JsonConversationStore(tmp_path)
        store.save(make_summary("early", hour=8))
        store.save(make_summary("late", hour=20))

        assert [s.id for s in store.list()] == ["late", "early"]

    def test_delete(self, tmp_path):
        store = JsonConversationStore(tmp_path)
        store.save(make_summary("abc"))

        assert store.delete("abc") is True
        assert store.delete("abc") is False
