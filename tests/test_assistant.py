"""End-to-end tests for the per-turn assistant pipeline."""

import pytest

from health_agents.aggregation import MetricAggregator
from health_agents.assistant import CLARIFICATION_SOURCE, HealthAssistant
from health_agents.clarification import AmbiguousMetric, MissingContext, MissingContextKind
from health_agents.config import Settings
from health_agents.conversation import MessageRole
from health_agents.conversation_store import InMemoryConversationStore
from health_agents.errors import AuthorizationDenied
from health_agents.intent_parser import TrendIntent
from health_agents.llm_provider import GatewayTextProvider
from health_agents.local_model import OllamaHealthModel
from health_agents.metric_store import InMemoryMetricStore
from health_agents.metrics import MetricKind


@pytest.fixture
def assistant(populated_store, aggregator, context_manager):
    return HealthAssistant(aggregator, context_manager=context_manager)


def assistant_messages(context_manager):
    return [m for m in context_manager.messages if m.role is MessageRole.ASSISTANT]


class TestStructuredQuestions:
    def test_answered_from_data(self, assistant, context_manager):
        reply = assistant.ask("How are my steps over 14 days?")

        assert reply.intent == TrendIntent(MetricKind.STEPS, 14)
        assert reply.answer.startswith("Steps over the past 14 days")
        assert reply.source == "local_model"
        assert reply.confidence == 1.0
        assert not reply.needs_clarification

        messages = context_manager.messages
        assert len(messages) == 2
        assert messages[1].metadata == {"source": "local_model", "intent": "TrendIntent"}
        assert context_manager.get_relevant_health_context() == {"steps": "8600 steps"}

    def test_failed_structured_query_goes_to_orchestrator(self, assistant, context_manager):
        reply = assistant.ask("what is my weight today")

        assert reply.source == "fallback_template"
        assert reply.intent is None
        assert len(assistant_messages(context_manager)) == 1

    def test_authorization_denied_propagates(self, clock, context_manager):
        aggregator = MetricAggregator(InMemoryMetricStore(authorized=False), clock=clock)
        assistant = HealthAssistant(aggregator, context_manager=context_manager)

        with pytest.raises(AuthorizationDenied):
            assistant.ask("How are my steps over 14 days?")


class TestClarification:
    def test_generic_question_asks_back(self, assistant, context_manager):
        reply = assistant.ask("how is my health?")

        assert reply.needs_clarification
        assert reply.source == CLARIFICATION_SOURCE
        assert isinstance(reply.ambiguity, AmbiguousMetric)
        assert reply.answer == "I can help you with several health metrics. Which one are you interested in?"
        assert "steps" in [o.value for o in reply.clarification.options]
        assert assistant_messages(context_manager)[0].metadata["source"] == CLARIFICATION_SOURCE

    def test_chinese_question_gets_chinese_clarification(self, assistant):
        reply = assistant.ask("最近睡眠怎么样")
        assert reply.answer == "您想让我分析哪个时间段？"

    def test_answering_the_clarification(self, assistant, context_manager):
        first = assistant.ask("how is my health?")

        second = assistant.answer_clarification(first.ambiguity, "steps", "how is my health?")

        assert second.intent == TrendIntent(MetricKind.STEPS, 7)
        assert second.answer.startswith("Steps over the past 7 days")
        assert len(context_manager.messages) == 4

    def test_compare_without_metric(self, assistant):
        reply = assistant.ask("compare please")

        assert reply.ambiguity == MissingContext(MissingContextKind.MISSING_METRIC)
        assert reply.answer == "Which health metric would you like to discuss?"


class TestFreeForm:
    def test_no_providers_uses_analyzer(self, assistant, context_manager):
        reply = assistant.ask("tell me a joke")

        assert reply.source == "fallback_template"
        assert reply.confidence == 0.7
        assert reply.answer.startswith("Here's what I found about your health data:")
        assert reply.error_message == "API configuration is missing Please check your AI service settings."
        assert len(assistant_messages(context_manager)) == 1

    def test_to_dict(self, assistant):
        data = assistant.ask("How are my steps over 14 days?").to_dict()
        assert data["intent"] == "TrendIntent"
        assert data["result"]["kind"] == "trend"
        assert data["clarification"] is None


class TestSessions:
    def test_new_session_saves_conversation(self, populated_store, aggregator, context_manager):
        store = InMemoryConversationStore()
        assistant = HealthAssistant(aggregator, context_manager=context_manager, conversation_store=store)
        assistant.ask("How are my steps over 14 days?")

        assistant.new_session()

        assert len(store.saved) == 1
        assert store.saved[0].metrics_discussed == ["steps"]
        assert context_manager.messages == []


class TestFromSettings:
    def test_wires_providers(self, populated_store):
        settings = Settings(gateway_url="https://gw.example.com", gateway_token="t", max_retries=2)
        store = InMemoryConversationStore()

        assistant = HealthAssistant.from_settings(settings, populated_store, conversation_store=store)

        orchestrator = assistant.orchestrator
        assert isinstance(orchestrator.remote, GatewayTextProvider)
        assert isinstance(orchestrator.local, OllamaHealthModel)
        assert orchestrator.retry_policy.max_retries == 2
        assert orchestrator.connectivity.probe is not None
        assert assistant.conversation_store is store
