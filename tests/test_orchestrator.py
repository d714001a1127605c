"""Tests for local/remote routing, retries and fallback."""

import threading
from types import SimpleNamespace

import pytest

from health_agents.conversation import MessageRole
from health_agents.errors import (
    DataUnavailable,
    InvalidResponse,
    LocalModelError,
    RequestCancelled,
    ServerError,
)
from health_agents.llm_provider import RemoteTextProvider
from health_agents.local_model import LocalTextGenerator
from health_agents.network import ConnectivityMonitor
from health_agents.orchestrator import ResponseOrchestrator, ResponseSource
from health_agents.retry import RetryPolicy


class ScriptedRemote(RemoteTextProvider):
    """Raises queued errors in order, then replies."""

    provider_name = "scripted"

    def __init__(self, *errors, reply="Remote answer"):
        self.errors = list(errors)
        self.reply = reply
        self.prompts = []

    def complete(self, messages):
        self.prompts.append(messages[-1].content)
        if self.errors:
            raise self.errors.pop(0)
        return self.reply


class ScriptedLocal(LocalTextGenerator):
    def __init__(self, reply="Local answer", fail=False):
        super().__init__()
        self.reply = reply
        self.fail = fail
        self.calls = 0

    def _load(self):
        pass

    def _generate(self, full_prompt):
        self.calls += 1
        if self.fail:
            raise LocalModelError("model crashed")
        return self.reply


class CrashingLocal(LocalTextGenerator):
    """Engine whose inference raises a non-model error."""

    def __init__(self):
        super().__init__()
        self.calls = 0

    def _load(self):
        pass

    def _generate(self, full_prompt):
        self.calls += 1
        raise RuntimeError("inference engine crashed")


class FakeAnalyzer:
    def __init__(self, confidence=0.5, error=None):
        self.confidence = confidence
        self.error = error

    def respond(self, query):
        if self.error is not None:
            raise self.error
        return SimpleNamespace(response_text="From your own data", confidence=self.confidence)


@pytest.fixture
def sleeps():
    return []


def make(context_manager, sleeps, **kwargs):
    kwargs.setdefault("retry_policy", RetryPolicy(max_retries=3))
    return ResponseOrchestrator(context_manager, sleep=sleeps.append, **kwargs)


def assistant_messages(context_manager):
    return [m for m in context_manager.messages if m.role is MessageRole.ASSISTANT]


class TestRouting:
    def test_default_is_remote(self, context_manager, sleeps):
        assert not make(context_manager, sleeps).route("how are you").use_local

    def test_caller_preference(self, context_manager, sleeps):
        assert make(context_manager, sleeps).route("hi", prefer_local=True).use_local

    def test_offline(self, context_manager, sleeps):
        connectivity = ConnectivityMonitor(initially_online=False)
        decision = make(context_manager, sleeps, connectivity=connectivity).route("hi")
        assert decision.use_local
        assert decision.reason == "network offline"

    def test_privacy_keywords(self, context_manager, sleeps):
        assert make(context_manager, sleeps).route("我有点焦虑").use_local

    def test_health_query_needs_ready_local_model(self, context_manager, sleeps):
        local = ScriptedLocal()
        orchestrator = make(context_manager, sleeps, local=local)
        assert not orchestrator.route("我的步数").use_local

        local.load_if_needed()
        assert orchestrator.route("我的步数").use_local

    def test_settings_preference(self, context_manager, sleeps):
        assert make(context_manager, sleeps, prefer_local_model=True).route("hi").use_local


class TestRespond:
    def test_remote_success(self, context_manager, sleeps):
        response = make(context_manager, sleeps, remote=ScriptedRemote()).respond("hello")

        assert response.content == "Remote answer"
        assert response.source is ResponseSource.REMOTE_MODEL
        assert response.confidence == 0.9
        assert response.error is None
        assert sleeps == []

    def test_transient_errors_are_retried(self, context_manager, sleeps):
        remote = ScriptedRemote(ServerError(503))
        response = make(context_manager, sleeps, remote=remote).respond("hello")

        assert response.source is ResponseSource.REMOTE_MODEL
        assert len(remote.prompts) == 2
        assert sleeps == [1.0]

    def test_full_fallback_chain(self, context_manager, sleeps):
        remote = ScriptedRemote(ServerError(500), ServerError(500), ServerError(500))
        local = ScriptedLocal(fail=True)
        orchestrator = make(context_manager, sleeps, remote=remote, local=local)

        response = orchestrator.respond("hello there")

        assert response.source is ResponseSource.FALLBACK_TEMPLATE
        assert response.confidence == 0.7
        assert response.content.startswith("My AI service is temporarily unavailable.")
        assert isinstance(response.error, ServerError)
        assert response.error_message() == (
            "Server error (500). Please try again later. "
            "The AI service is temporarily unavailable. Try again later."
        )
        assert sleeps == [1.0, 2.0]
        assert len(remote.prompts) == 3
        assert local.calls == 1
        assistant = assistant_messages(context_manager)
        assert len(assistant) == 1
        assert assistant[0].metadata == {"source": "fallback_template", "intent": "fallback"}

    def test_remote_failure_falls_back_to_local(self, context_manager, sleeps):
        remote = ScriptedRemote(InvalidResponse("empty"))
        response = make(context_manager, sleeps, remote=remote, local=ScriptedLocal()).respond("hello")

        assert response.source is ResponseSource.LOCAL_MODEL
        assert response.confidence == 0.8
        assert isinstance(response.error, InvalidResponse)
        assert len(remote.prompts) == 1

    def test_local_failure_tries_remote_once(self, context_manager, sleeps):
        remote = ScriptedRemote(ServerError(500), ServerError(500))
        orchestrator = make(context_manager, sleeps, remote=remote, local=ScriptedLocal(fail=True))

        response = orchestrator.respond("hello", prefer_local=True)

        assert response.source is ResponseSource.FALLBACK_TEMPLATE
        assert len(remote.prompts) == 1
        assert sleeps == []

    def test_crashing_local_after_remote_exhausted(self, context_manager, sleeps):
        remote = ScriptedRemote(ServerError(500), ServerError(500), ServerError(500))
        local = CrashingLocal()
        orchestrator = make(context_manager, sleeps, remote=remote, local=local)

        response = orchestrator.respond("hello there")

        assert response.source is ResponseSource.FALLBACK_TEMPLATE
        assert isinstance(response.error, ServerError)
        assert local.calls == 1
        assert len(assistant_messages(context_manager)) == 1

    def test_crashing_local_when_preferred(self, context_manager, sleeps):
        remote = ScriptedRemote(reply="Remote rescue")
        local = CrashingLocal()
        orchestrator = make(context_manager, sleeps, remote=remote, local=local)

        response = orchestrator.respond("hello", prefer_local=True)

        assert response.source is ResponseSource.REMOTE_MODEL
        assert response.content == "Remote rescue"
        assert len(remote.prompts) == 1
        assert len(assistant_messages(context_manager)) == 1

    def test_duck_typed_local_crash_is_contained(self, context_manager, sleeps):
        class BareEngine:
            is_available = True

            def generate(self, prompt, health_context=None):
                raise OSError("model file missing")

        orchestrator = make(context_manager, sleeps, local=BareEngine())
        response = orchestrator.respond("hello", prefer_local=True)

        assert response.source is ResponseSource.FALLBACK_TEMPLATE
        assert len(assistant_messages(context_manager)) == 1

    def test_offline_without_local_model(self, context_manager, sleeps):
        connectivity = ConnectivityMonitor(initially_online=False)
        remote = ScriptedRemote()
        response = make(context_manager, sleeps, remote=remote, connectivity=connectivity).respond("hello there")

        assert response.content.startswith("I'm currently offline")
        assert remote.prompts == []

    def test_no_providers_at_all(self, context_manager, sleeps):
        response = make(context_manager, sleeps).respond("hello there")

        assert response.source is ResponseSource.FALLBACK_TEMPLATE
        assert response.content.startswith("I'm having trouble connecting to my AI service")

    def test_context_wraps_prompt_after_first_turn(self, context_manager, sleeps):
        remote = ScriptedRemote()
        orchestrator = make(context_manager, sleeps, remote=remote)

        first = orchestrator.respond("hello")
        second = orchestrator.respond("and now?")

        assert not first.context_used
        assert second.context_used
        assert remote.prompts[0] == "hello"
        assert "User: hello" in remote.prompts[1]
        assert remote.prompts[1].endswith(
            "Please respond considering the conversation context and any health data mentioned."
        )


class TestFallbackAnalyzer:
    def test_analyzer_answers_first(self, context_manager, sleeps):
        orchestrator = make(context_manager, sleeps, analyzer=FakeAnalyzer())
        response = orchestrator.respond("hello there")

        assert response.content == "From your own data"
        assert response.source is ResponseSource.FALLBACK_TEMPLATE

    def test_zero_confidence_uses_templates(self, context_manager, sleeps):
        orchestrator = make(context_manager, sleeps, analyzer=FakeAnalyzer(confidence=0))
        assert orchestrator.respond("sleep tips").content.startswith("Regarding sleep")

    def test_analyzer_data_error_uses_templates(self, context_manager, sleeps):
        orchestrator = make(context_manager, sleeps, analyzer=FakeAnalyzer(error=DataUnavailable("none")))
        assert orchestrator.respond("sleep tips").content.startswith("Regarding sleep")

    def test_analyzer_crash_uses_templates(self, context_manager, sleeps):
        orchestrator = make(context_manager, sleeps, analyzer=FakeAnalyzer(error=RuntimeError("boom")))
        response = orchestrator.respond("sleep tips")

        assert response.content.startswith("Regarding sleep")
        assert len(assistant_messages(context_manager)) == 1


class TestCancellation:
    def test_cancelled_turn_is_not_recorded(self, context_manager, sleeps):
        event = threading.Event()
        event.set()

        with pytest.raises(RequestCancelled):
            make(context_manager, sleeps, remote=ScriptedRemote()).respond("hello", cancel_event=event)

        assert context_manager.messages == []

    def test_cancel_during_backoff(self, context_manager):
        event = threading.Event()
        remote = ScriptedRemote(ServerError(500), ServerError(500))
        orchestrator = ResponseOrchestrator(context_manager, remote=remote, sleep=lambda s: event.set())

        with pytest.raises(RequestCancelled):
            orchestrator.respond("hello", cancel_event=event)

        assert context_manager.messages == []
