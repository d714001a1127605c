"""
Health Assistant for Health Buddy

The per-turn pipeline: clarify ambiguous questions, answer structured data
questions from the aggregation engine, and hand everything else to the
response orchestrator.

Flow per turn:
1. Clarification check (ask back instead of guessing)
2. Intent parsing -> QueryRunner (answers from the user's own data)
3. Free-form questions -> ResponseOrchestrator (local/remote/fallback)
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .aggregation import MetricAggregator
from .aggregation_cache import AggregationCache
from .clarification import (
    Ambiguity,
    ClarificationEngine,
    ClarificationQuestion,
    MissingContext,
    MissingContextKind,
)
from .conversation import ConversationContextManager, MessageRole
from .conversation_store import ConversationStore, JsonConversationStore
from .errors import AuthorizationDenied, HealthDataError
from .health_values import health_value_for
from .insights import Insight
from .intelligence import HealthAnalyzer
from .intent_parser import COMPARE_KEYWORDS, GOAL_KEYWORDS, Intent, detect_metric, parse_intent
from .llm_provider import LLMFactory
from .local_model import OllamaHealthModel
from .metric_store import MetricStore
from .metrics import detect_language
from .network import ConnectivityMonitor, http_probe
from .orchestrator import ResponseOrchestrator, ResponseSource
from .query_runner import QueryResult, QueryRunner
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

CLARIFICATION_SOURCE = "clarification"


@dataclass
class AssistantResponse:
    """One assistant turn as returned to a UI or the CLI."""
    answer: str
    source: str
    confidence: float
    intent: Optional[Intent] = None
    result: Optional[QueryResult] = None
    clarification: Optional[ClarificationQuestion] = None
    ambiguity: Optional[Ambiguity] = None
    insights: List[Insight] = field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def needs_clarification(self) -> bool:
        return self.clarification is not None

    def to_dict(self) -> dict:
        return {
            "answer": self.answer,
            "source": self.source,
            "confidence": self.confidence,
            "intent": type(self.intent).__name__ if self.intent else None,
            "result": self.result.to_dict() if self.result else None,
            "clarification": self.clarification.to_dict() if self.clarification else None,
            "insights": [i.to_dict() for i in self.insights],
            "error_message": self.error_message,
        }


def _missing_metric(query: str) -> Optional[Ambiguity]:
    """Compare or goal wording without any metric to apply it to."""
    lowered = query.lower()
    if detect_metric(lowered) is not None:
        return None
    if any(k in lowered for k in COMPARE_KEYWORDS + GOAL_KEYWORDS):
        return MissingContext(kind=MissingContextKind.MISSING_METRIC)
    return None


class HealthAssistant:
    """
    Conversational front door over the metric pipeline.

    Example:
        assistant = HealthAssistant.from_settings(load_settings(), CsvMetricStore("export.csv"))
        reply = assistant.ask("How did my steps change over the last 14 days?")
        print(reply.answer)
    """

    def __init__(
        self,
        aggregator: MetricAggregator,
        context_manager: Optional[ConversationContextManager] = None,
        orchestrator: Optional[ResponseOrchestrator] = None,
        clarification_engine: Optional[ClarificationEngine] = None,
        query_runner: Optional[QueryRunner] = None,
        conversation_store: Optional[ConversationStore] = None,
    ):
        """
        Initialize the assistant.

        Args:
            aggregator: Aggregation engine over the user's metric store
            context_manager: Conversation state shared with the orchestrator
            orchestrator: Free-form responder; defaults to one with no
                providers, which answers from the analyzer and templates
            clarification_engine: Ambiguity detector
            query_runner: Structured intent executor
            conversation_store: Where finished sessions are saved
        """
        self.aggregator = aggregator
        self.context_manager = context_manager or ConversationContextManager()
        self.orchestrator = orchestrator or ResponseOrchestrator(
            self.context_manager,
            analyzer=HealthAnalyzer(aggregator, self.context_manager),
        )
        self.clarification_engine = clarification_engine or ClarificationEngine()
        self.query_runner = query_runner or QueryRunner(aggregator)
        self.conversation_store = conversation_store

    @classmethod
    def from_settings(cls, settings, store: MetricStore, conversation_store: Optional[ConversationStore] = None):
        """
        Wire a full assistant from Settings.

        Args:
            settings: config.Settings
            store: The user's metric store
            conversation_store: Overrides the JSON store under settings.sessions_dir

        Raises:
            ValueError: If settings name an unknown provider
        """
        cache = AggregationCache(default_ttl=settings.cache_ttl)
        aggregator = MetricAggregator(store, cache=cache)
        context_manager = ConversationContextManager(max_messages=settings.max_messages)

        remote = LLMFactory.from_settings(settings)
        local = None
        if settings.local_model:
            local = OllamaHealthModel(
                model_name=settings.local_model,
                api_base=settings.ollama_api_base,
                timeout=settings.request_timeout,
            )

        probe = http_probe(settings.gateway_url) if settings.gateway_url else None
        connectivity = ConnectivityMonitor(probe=probe, interval=settings.probe_interval)

        orchestrator = ResponseOrchestrator(
            context_manager,
            remote=remote,
            local=local,
            connectivity=connectivity,
            analyzer=HealthAnalyzer(aggregator, context_manager),
            retry_policy=RetryPolicy(
                max_retries=settings.max_retries,
                base_delay=settings.retry_base_delay,
                max_delay=settings.retry_max_delay,
            ),
            prefer_local_model=settings.prefer_local_model,
        )

        if conversation_store is None:
            conversation_store = JsonConversationStore(settings.sessions_path)

        logger.info(f"[ASSISTANT] Wired with provider={settings.llm_provider} local={settings.local_model or 'none'}")
        return cls(
            aggregator,
            context_manager=context_manager,
            orchestrator=orchestrator,
            conversation_store=conversation_store,
        )

    # -- turns ----------------------------------------------------------

    def ask(
        self,
        query: str,
        prefer_local: bool = False,
        cancel_event=None,
        skip_clarification: bool = False,
    ) -> AssistantResponse:
        """
        Answer one user message.

        Args:
            query: The user's message
            prefer_local: Route free-form generation to the local model first
            cancel_event: Optional threading.Event checked by the orchestrator
            skip_clarification: Set when the query is already a clarified rewrite

        Returns:
            AssistantResponse; exactly one assistant message is recorded

        Raises:
            AuthorizationDenied: If the metric store refuses access
            RequestCancelled: If cancel_event is set during generation
        """
        logger.info(f"[ASSISTANT] Query: {query[:80]}")

        if not skip_clarification:
            ambiguity = self.clarification_engine.analyze(query, self.context_manager).ambiguity
            if ambiguity is None and parse_intent(query) is None:
                ambiguity = _missing_metric(query)
            if ambiguity is not None:
                return self._clarify(query, ambiguity)

        intent = parse_intent(query)
        if intent is not None:
            try:
                result = self.query_runner.run(intent)
            except AuthorizationDenied:
                raise
            except HealthDataError as e:
                logger.warning(f"[ASSISTANT] Structured query failed, using orchestrator: {e}")
            else:
                return self._structured(query, intent, result)

        response = self.orchestrator.respond(query, prefer_local=prefer_local, cancel_event=cancel_event)
        return AssistantResponse(
            answer=response.content,
            source=response.source.value,
            confidence=response.confidence,
            error_message=response.error_message(detect_language(query)),
        )

    def answer_clarification(self, ambiguity: Ambiguity, option_value: str, original_text: str) -> AssistantResponse:
        """Re-ask the original question rewritten with the user's chosen option."""
        rewritten = self.clarification_engine.resolve(ambiguity, option_value, original_text)
        logger.info(f"[ASSISTANT] Clarified '{original_text[:40]}' -> '{rewritten[:40]}'")
        return self.ask(rewritten, skip_clarification=True)

    def new_session(self) -> str:
        """Save the current conversation (when a store is set) and start fresh."""
        return self.context_manager.start_new_session(self.conversation_store)

    # -- helpers --------------------------------------------------------

    def _clarify(self, query: str, ambiguity: Ambiguity) -> AssistantResponse:
        question = self.clarification_engine.question_for(ambiguity)
        text = question.localized_text(detect_language(query))

        user_message = self.context_manager.make_message(MessageRole.USER, query)
        assistant_message = self.context_manager.make_message(
            MessageRole.ASSISTANT, text, source=CLARIFICATION_SOURCE, intent="clarification"
        )
        self.context_manager.append_turn(user_message, assistant_message)

        return AssistantResponse(
            answer=text,
            source=CLARIFICATION_SOURCE,
            confidence=1.0,
            clarification=question,
            ambiguity=ambiguity,
        )

    def _structured(self, query: str, intent: Intent, result: QueryResult) -> AssistantResponse:
        for metric, value in result.metric_values.items():
            self.context_manager.update_health_context(metric.value, health_value_for(metric, value))

        user_message = self.context_manager.make_message(MessageRole.USER, query)
        assistant_message = self.context_manager.make_message(
            MessageRole.ASSISTANT,
            result.answer,
            source=ResponseSource.LOCAL_MODEL.value,
            intent=type(intent).__name__,
        )
        self.context_manager.append_turn(user_message, assistant_message)

        return AssistantResponse(
            answer=result.answer,
            source=ResponseSource.LOCAL_MODEL.value,
            confidence=1.0,
            intent=intent,
            result=result,
            insights=list(result.insights),
        )
