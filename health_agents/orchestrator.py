"""
Response Orchestrator for Health Buddy

Routes each free-form turn to the local or remote model, retries transient
remote failures with backoff, and falls back to deterministic text so every
user message gets exactly one reply.

Fallback chain:
1. Preferred path (local, or remote with retries)
2. The other path, once
3. Health analyzer over the user's own data (when configured)
4. Keyword templates, then an error-specific lead plus general guidance
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from .conversation import ConversationContextManager, MessageRole
from .errors import (
    ApiKeyMissing,
    HealthDataError,
    LLMProviderError,
    LocalModelError,
    NetworkUnavailable,
    RequestCancelled,
    as_provider_error,
)
from .fallback import fallback_text
from .llm_provider import LLMMessage, RemoteTextProvider
from .local_model import LocalTextGenerator
from .network import ConnectivityMonitor
from .retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

PRIVACY_KEYWORDS = [
    "个人", "隐私", "敏感", "私密", "保密", "症状", "疾病",
    "药物", "治疗", "诊断", "心理", "情绪", "抑郁", "焦虑",
]

HEALTH_KEYWORDS = [
    "健康", "身体", "医疗", "症状", "疾病", "步数", "心率", "睡眠",
    "血压", "体重", "运动", "锻炼", "饮食", "营养", "体检",
]

CONTEXT_PROMPT = """Context from previous conversation:
{context}

Current user message:
{query}

Please respond considering the conversation context and any health data mentioned."""


class ResponseSource(Enum):
    LOCAL_MODEL = "local_model"
    REMOTE_MODEL = "remote_model"
    FALLBACK_TEMPLATE = "fallback_template"


CONFIDENCE = {
    ResponseSource.REMOTE_MODEL: 0.9,
    ResponseSource.LOCAL_MODEL: 0.8,
    ResponseSource.FALLBACK_TEMPLATE: 0.7,
}


@dataclass
class Response:
    content: str
    source: ResponseSource
    confidence: float
    context_used: bool = False
    error: Optional[LLMProviderError] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def error_message(self, lang: str = "en") -> Optional[str]:
        """Friendly explanation plus recovery hint, when a provider failed."""
        if self.error is None:
            return None
        return f"{self.error.description(lang)} {self.error.recovery_guidance(lang)}"


@dataclass
class RouteDecision:
    use_local: bool
    reason: str


class ResponseOrchestrator:
    """
    Produces one reply per user turn across local, remote and template sources.

    Provider errors never escape respond(); only RequestCancelled does.
    """

    def __init__(
        self,
        context_manager: ConversationContextManager,
        remote: Optional[RemoteTextProvider] = None,
        local: Optional[LocalTextGenerator] = None,
        connectivity: Optional[ConnectivityMonitor] = None,
        analyzer=None,
        retry_policy: Optional[RetryPolicy] = None,
        prefer_local_model: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the orchestrator.

        Args:
            context_manager: Conversation state; the orchestrator is its only
                writer during a free-form turn
            remote: Remote provider, or None when not configured
            local: Local generator, or None when not configured
            connectivity: Online flag; a missing monitor counts as online
            analyzer: Optional HealthAnalyzer used before static templates
            retry_policy: Remote retry attempts and backoff
            prefer_local_model: Route to the local model by default
            sleep: Sleep function used between retries
        """
        self.context_manager = context_manager
        self.remote = remote
        self.local = local
        self.connectivity = connectivity or ConnectivityMonitor()
        self.analyzer = analyzer
        self.retry_policy = retry_policy or RetryPolicy()
        self.prefer_local_model = prefer_local_model
        self.sleep = sleep

    # -- routing --------------------------------------------------------

    def route(self, query: str, prefer_local: bool = False) -> RouteDecision:
        if prefer_local:
            return RouteDecision(True, "caller prefers local model")
        if not self.connectivity.is_online:
            return RouteDecision(True, "network offline")
        if any(kw in query for kw in PRIVACY_KEYWORDS):
            return RouteDecision(True, "privacy-sensitive query")
        if any(kw in query for kw in HEALTH_KEYWORDS) and self.local is not None and self.local.is_available:
            return RouteDecision(True, "health query with local model ready")
        if self.prefer_local_model:
            return RouteDecision(True, "local model preferred in settings")
        return RouteDecision(False, "default remote")

    # -- main entry -----------------------------------------------------

    def respond(
        self,
        query: str,
        prefer_local: bool = False,
        include_context: bool = True,
        cancel_event=None,
    ) -> Response:
        """
        Answer a free-form question and record the turn.

        Args:
            query: The user's message
            prefer_local: Force the local path first
            include_context: Wrap the prompt with recent conversation
            cancel_event: Optional threading.Event; when set at an attempt
                boundary the turn is abandoned

        Returns:
            Response (never raises provider errors)

        Raises:
            RequestCancelled: If cancelled; nothing is recorded
        """
        user_message = self.context_manager.make_message(MessageRole.USER, query)
        self._check_cancelled(cancel_event)

        prompt, context_used = self._build_prompt(query, include_context)
        decision = self.route(query, prefer_local)
        logger.info(f"[ORCHESTRATOR] Routing to {'local' if decision.use_local else 'remote'}: {decision.reason}")

        response = None
        error: Optional[LLMProviderError] = None

        if decision.use_local:
            try:
                response = self._local(query, cancel_event)
            except LocalModelError as e:
                logger.warning(f"[ORCHESTRATOR] Local model failed, trying remote once: {e}")
                try:
                    response = self._remote_once(prompt, cancel_event)
                except LLMProviderError as remote_error:
                    error = remote_error
        else:
            try:
                response = self._remote_with_retry(prompt, cancel_event)
            except LLMProviderError as remote_error:
                error = remote_error
                logger.warning(f"[ORCHESTRATOR] Remote failed ({remote_error.kind.value}), trying local once")
                try:
                    response = self._local(query, cancel_event)
                except LocalModelError as e:
                    logger.warning(f"[ORCHESTRATOR] Local model failed too: {e}")

        if response is None:
            self._check_cancelled(cancel_event)
            response = self._fallback(query, error)
        else:
            response.error = error

        response.context_used = context_used
        self._record(user_message, response)
        return response

    # -- paths ----------------------------------------------------------

    def _build_prompt(self, query: str, include_context: bool):
        if not include_context or not self.context_manager.messages:
            return query, False
        context = self.context_manager.get_context_for_llm()
        return CONTEXT_PROMPT.format(context=context, query=query), True

    def _local(self, query: str, cancel_event) -> Response:
        self._check_cancelled(cancel_event)
        if self.local is None:
            raise LocalModelError("No local model configured")
        health = self.context_manager.get_relevant_health_values()
        try:
            content = self.local.generate(query, health)
        except LocalModelError:
            raise
        except Exception as e:
            raise LocalModelError(f"Local model crashed: {e}") from e
        return self._response(content, ResponseSource.LOCAL_MODEL)

    def _remote_attempt(self, prompt: str) -> str:
        if self.remote is None:
            raise ApiKeyMissing("No remote provider configured")
        if not self.connectivity.is_online:
            raise NetworkUnavailable("Device is offline")
        try:
            return self.remote.complete([LLMMessage(role="user", content=prompt)])
        except LLMProviderError:
            raise
        except Exception as e:
            raise as_provider_error(e)

    def _remote_once(self, prompt: str, cancel_event) -> Response:
        self._check_cancelled(cancel_event)
        content = self._remote_attempt(prompt)
        return self._response(content, ResponseSource.REMOTE_MODEL)

    def _remote_with_retry(self, prompt: str, cancel_event) -> Response:
        content = call_with_retry(
            lambda: self._remote_attempt(prompt),
            policy=self.retry_policy,
            sleep=self.sleep,
            cancel_event=cancel_event,
            label="remote model",
        )
        return self._response(content, ResponseSource.REMOTE_MODEL)

    def _fallback(self, query: str, error: Optional[LLMProviderError]) -> Response:
        logger.warning(f"[ORCHESTRATOR] Using fallback response ({error.kind.value if error else 'no provider'})")

        if self.analyzer is not None:
            try:
                analysis = self.analyzer.respond(query)
                if analysis.confidence > 0:
                    response = self._response(analysis.response_text, ResponseSource.FALLBACK_TEMPLATE)
                    response.error = error
                    return response
            except HealthDataError as e:
                logger.warning(f"[ORCHESTRATOR] Health analyzer unavailable: {e}")
            except Exception as e:
                logger.error(f"[ORCHESTRATOR] Health analyzer failed: {e}")

        health_context = self.context_manager.get_relevant_health_context()
        content = fallback_text(query, error, health_context)
        response = self._response(content, ResponseSource.FALLBACK_TEMPLATE)
        response.error = error
        return response

    # -- helpers --------------------------------------------------------

    @staticmethod
    def _response(content: str, source: ResponseSource) -> Response:
        return Response(content=content, source=source, confidence=CONFIDENCE[source])

    @staticmethod
    def _check_cancelled(cancel_event) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise RequestCancelled("Request cancelled by caller")

    def _record(self, user_message, response: Response) -> None:
        metadata = {"source": response.source.value}
        if response.source is ResponseSource.FALLBACK_TEMPLATE:
            metadata["intent"] = "fallback"
        assistant_message = self.context_manager.make_message(
            MessageRole.ASSISTANT, response.content, **metadata
        )
        self.context_manager.append_turn(user_message, assistant_message)
