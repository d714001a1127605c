"""Health Buddy pipeline modules."""

from .metrics import (
    METRICS,
    CORE_METRICS,
    MetricKind,
    MetricCategory,
    MetricInfo,
    Aggregation,
    display_name,
    format_value,
    health_assessment,
)
from .errors import (
    HealthDataError,
    DataUnavailable,
    AuthorizationDenied,
    QueryFailed,
    RequestCancelled,
    LLMErrorKind,
    LLMProviderError,
    NetworkUnavailable,
    RequestTimeout,
    RateLimited,
    ApiKeyMissing,
    AuthenticationFailed,
    InvalidResponse,
    ServerError,
    UnknownProviderError,
    LocalModelError,
)
from .metric_store import (
    MetricStore,
    InMemoryMetricStore,
    CsvMetricStore,
    MetricSample,
    SleepInterval,
    SleepStage,
)
from .aggregation_cache import AggregationCache
from .aggregation import MetricAggregator, Trend, Comparison
from .intent_parser import (
    Intent,
    TrendIntent,
    CompareIntent,
    SummaryIntent,
    CurrentValueIntent,
    GoalIntent,
    OverviewIntent,
    InsightsIntent,
    RecommendationIntent,
    InsightFocus,
    parse_intent,
)
from .insights import Insight, InsightType, InsightGenerator, AnalysisIntent, MetricAggregate
from .health_values import HealthValue, ScalarValue, BloodPressureValue, SleepSummaryValue, health_value_for
from .conversation import ConversationContextManager, ContextMessage, ConversationSummary, MessageRole
from .conversation_store import ConversationStore, InMemoryConversationStore, JsonConversationStore
from .clarification import (
    ClarificationEngine,
    ClarificationQuestion,
    ClarificationOption,
    ClarificationResult,
    Ambiguity,
    AmbiguousMetric,
    AmbiguousTimeframe,
    VagueQuestion,
    MissingContext,
    MultipleIntents,
)
from .retry import RetryPolicy, call_with_retry
from .llm_provider import LLMMessage, RemoteTextProvider, GatewayTextProvider, LiteLLMTextProvider, LLMFactory
from .local_model import LocalTextGenerator, OllamaHealthModel, HealthPromptBuilder, ModelStatus
from .network import ConnectivityMonitor
from .orchestrator import ResponseOrchestrator, Response, ResponseSource
from .query_runner import QueryRunner, QueryResult, ResultKind
from .intelligence import HealthAnalyzer, HealthIntelligentResponse, HealthQueryAnalysis
from .cardiac import CardiacAnalyzer, CardiacProfile, RiskLevel, HRVAnalysis
from .assistant import HealthAssistant, AssistantResponse
from .config import Settings, load_settings

__all__ = [
    # Metrics
    "METRICS",
    "CORE_METRICS",
    "MetricKind",
    "MetricCategory",
    "MetricInfo",
    "Aggregation",
    "display_name",
    "format_value",
    "health_assessment",
    # Errors
    "HealthDataError",
    "DataUnavailable",
    "AuthorizationDenied",
    "QueryFailed",
    "RequestCancelled",
    "LLMErrorKind",
    "LLMProviderError",
    "NetworkUnavailable",
    "RequestTimeout",
    "RateLimited",
    "ApiKeyMissing",
    "AuthenticationFailed",
    "InvalidResponse",
    "ServerError",
    "UnknownProviderError",
    "LocalModelError",
    # Data access and aggregation
    "MetricStore",
    "InMemoryMetricStore",
    "CsvMetricStore",
    "MetricSample",
    "SleepInterval",
    "SleepStage",
    "AggregationCache",
    "MetricAggregator",
    "Trend",
    "Comparison",
    # Intents and insights
    "Intent",
    "TrendIntent",
    "CompareIntent",
    "SummaryIntent",
    "CurrentValueIntent",
    "GoalIntent",
    "OverviewIntent",
    "InsightsIntent",
    "RecommendationIntent",
    "InsightFocus",
    "parse_intent",
    "Insight",
    "InsightType",
    "InsightGenerator",
    "AnalysisIntent",
    "MetricAggregate",
    "HealthValue",
    "ScalarValue",
    "BloodPressureValue",
    "SleepSummaryValue",
    "health_value_for",
    # Conversation
    "ConversationContextManager",
    "ContextMessage",
    "ConversationSummary",
    "MessageRole",
    "ConversationStore",
    "InMemoryConversationStore",
    "JsonConversationStore",
    "ClarificationEngine",
    "ClarificationQuestion",
    "ClarificationOption",
    "ClarificationResult",
    "Ambiguity",
    "AmbiguousMetric",
    "AmbiguousTimeframe",
    "VagueQuestion",
    "MissingContext",
    "MultipleIntents",
    # Generation
    "RetryPolicy",
    "call_with_retry",
    "LLMMessage",
    "RemoteTextProvider",
    "GatewayTextProvider",
    "LiteLLMTextProvider",
    "LLMFactory",
    "LocalTextGenerator",
    "OllamaHealthModel",
    "HealthPromptBuilder",
    "ModelStatus",
    "ConnectivityMonitor",
    "ResponseOrchestrator",
    "Response",
    "ResponseSource",
    # Pipeline
    "QueryRunner",
    "QueryResult",
    "ResultKind",
    "HealthAnalyzer",
    "HealthIntelligentResponse",
    "HealthQueryAnalysis",
    "CardiacAnalyzer",
    "CardiacProfile",
    "RiskLevel",
    "HRVAnalysis",
    "HealthAssistant",
    "AssistantResponse",
    "Settings",
    "load_settings",
]
