"""
Clarification Engine for Health Buddy

Detects questions too ambiguous to answer directly and produces a
follow-up question with selectable options. Once the user picks an option,
resolve() rewrites the original question so the intent parser can handle it.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .intent_parser import detect_metric
from .metrics import CORE_METRICS, MetricKind, detect_language, display_name, metric_from_identifier

logger = logging.getLogger(__name__)


class ConversationIntent(Enum):
    DATA_QUERY = "data_query"
    RECOMMENDATION = "recommendation"
    COMPARISON = "comparison"
    GOAL_SETTING = "goal_setting"
    GENERAL = "general"

    @property
    def description(self) -> str:
        return _INTENT_DESCRIPTIONS[self][0]

    @property
    def description_cn(self) -> str:
        return _INTENT_DESCRIPTIONS[self][1]


_INTENT_DESCRIPTIONS = {
    ConversationIntent.DATA_QUERY: ("Check my health data", "查看我的健康数据"),
    ConversationIntent.RECOMMENDATION: ("Get health recommendations", "获取健康建议"),
    ConversationIntent.COMPARISON: ("Compare my progress", "比较我的进展"),
    ConversationIntent.GOAL_SETTING: ("Set health goals", "设定健康目标"),
    ConversationIntent.GENERAL: ("General health questions", "一般健康问题"),
}


class MissingContextKind(Enum):
    PREVIOUS_REFERENCE = "previous_reference"
    MISSING_METRIC = "missing_metric"


@dataclass(frozen=True)
class Ambiguity:
    """Base class for ambiguity variants."""
    pass


@dataclass(frozen=True)
class AmbiguousMetric(Ambiguity):
    candidates: Tuple[MetricKind, ...]


@dataclass(frozen=True)
class AmbiguousTimeframe(Ambiguity):
    raw_text: str


@dataclass(frozen=True)
class VagueQuestion(Ambiguity):
    intent_guess: ConversationIntent = ConversationIntent.GENERAL


@dataclass(frozen=True)
class MissingContext(Ambiguity):
    kind: MissingContextKind


@dataclass(frozen=True)
class MultipleIntents(Ambiguity):
    candidates: Tuple[ConversationIntent, ...]


@dataclass(frozen=True)
class ClarificationResult:
    ambiguity: Optional[Ambiguity] = None

    @property
    def can_proceed(self) -> bool:
        return self.ambiguity is None

    @property
    def needs_clarification(self) -> bool:
        return self.ambiguity is not None


class QuestionType(Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    FREE_TEXT = "free_text"
    YES_NO = "yes_no"


@dataclass(frozen=True)
class ClarificationOption:
    title: str
    title_cn: str
    value: str


@dataclass
class ClarificationQuestion:
    text: str
    text_cn: str
    options: List[ClarificationOption] = field(default_factory=list)
    type: QuestionType = QuestionType.MULTIPLE_CHOICE

    def localized_text(self, lang: str = "en") -> str:
        return self.text_cn if lang.startswith("zh") else self.text

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "text_cn": self.text_cn,
            "type": self.type.value,
            "options": [{"title": o.title, "title_cn": o.title_cn, "value": o.value} for o in self.options],
        }


# Generic terms and the metrics they could mean, checked in order
GENERIC_TERMS: List[Tuple[List[str], List[MetricKind]]] = [
    (["health", "健康"], list(CORE_METRICS)),
    (["activity", "运动", "活动"], [MetricKind.STEPS, MetricKind.ACTIVE_ENERGY]),
    (["heart", "心"], [MetricKind.HEART_RATE_AVERAGE, MetricKind.RESTING_HEART_RATE]),
]

VAGUE_TIME_WORDS = ["recently", "lately", "past", "recent", "这段时间", "最近", "前段时间"]
SPECIFIC_TIME_WORDS = ["today", "yesterday", "week", "month", "今天", "昨天", "周", "月"]
VAGUE_QUESTION_WORDS = ["how", "what", "tell me", "show me", "怎么", "什么", "告诉我", "显示"]
VAGUE_QUESTION_MAX_LENGTH = 10

# "this week" and the like are time expressions, not references
_EN_PRONOUNS = re.compile(
    r"\b(?:it|them)\b|\b(?:that|this)\b(?!\s+(?:week|month|year|morning|afternoon|evening|time)\b)"
)
_CN_PRONOUNS = ["它", "这个", "那个"]

TIMEFRAME_OPTIONS = [
    ClarificationOption("Today", "今天", "today"),
    ClarificationOption("Past 3 days", "过去3天", "3days"),
    ClarificationOption("Past week", "过去一周", "7days"),
    ClarificationOption("Past month", "过去一个月", "30days"),
]

VAGUE_OPTIONS = [
    ClarificationOption("Check my recent health data", "查看最近的健康数据", "recent_data"),
    ClarificationOption("Get health recommendations", "获取健康建议", "recommendations"),
    ClarificationOption("Compare my progress", "比较我的进展", "compare"),
    ClarificationOption("Set health goals", "设定健康目标", "goals"),
]

# Rewrites that the intent parser understands without triggering clarification again
_TIMEFRAME_PHRASES = {
    "today": ("today", "今天"),
    "3days": ("3 days", "3天"),
    "7days": ("7 days", "7天"),
    "30days": ("30 days", "30天"),
}

_CANNED_QUERIES = {
    "recent_data": ("overview", "总览"),
    "recommendations": ("recommendations for me", "给我一些推荐"),
    "compare": ("compare my progress", "比较我的进展"),
    "goals": ("set a goal", "设定目标"),
    ConversationIntent.DATA_QUERY.value: ("overview", "总览"),
    ConversationIntent.RECOMMENDATION.value: ("recommendations for me", "给我一些推荐"),
    ConversationIntent.COMPARISON.value: ("compare my progress", "比较我的进展"),
    ConversationIntent.GOAL_SETTING.value: ("set a goal", "设定目标"),
}


def _has_pronoun(lowered: str) -> bool:
    if _EN_PRONOUNS.search(lowered):
        return True
    return any(p in lowered for p in _CN_PRONOUNS)


class ClarificationEngine:
    """Decides whether a message can be answered as-is."""

    def analyze(self, message: str, context_manager=None) -> ClarificationResult:
        """
        Check a message for ambiguity.

        Checks run in order (generic metric, vague timeframe, vague
        question, dangling reference) and the first hit wins.

        Args:
            message: Raw user text
            context_manager: ConversationContextManager, used for the
                dangling-reference check

        Returns:
            ClarificationResult; never raises
        """
        lowered = (message or "").strip().lower()

        ambiguity = (
            self._ambiguous_metric(lowered)
            or self._ambiguous_timeframe(lowered)
            or self._vague_question(lowered)
            or self._missing_context(lowered, context_manager)
        )
        if ambiguity is not None:
            logger.info(f"[CLARIFY] {type(ambiguity).__name__} for: {lowered[:50]}")
        return ClarificationResult(ambiguity=ambiguity)

    def _ambiguous_metric(self, lowered: str) -> Optional[Ambiguity]:
        if detect_metric(lowered) is not None:
            return None
        for terms, candidates in GENERIC_TERMS:
            if any(t in lowered for t in terms) and len(candidates) > 1:
                return AmbiguousMetric(candidates=tuple(candidates))
        return None

    def _ambiguous_timeframe(self, lowered: str) -> Optional[Ambiguity]:
        vague = next((w for w in VAGUE_TIME_WORDS if w in lowered), None)
        if vague is None:
            return None
        if any(ch.isdigit() for ch in lowered):
            return None
        if any(w in lowered for w in SPECIFIC_TIME_WORDS):
            return None
        return AmbiguousTimeframe(raw_text=vague)

    def _vague_question(self, lowered: str) -> Optional[Ambiguity]:
        if len(lowered) < VAGUE_QUESTION_MAX_LENGTH and any(w in lowered for w in VAGUE_QUESTION_WORDS):
            return VagueQuestion(intent_guess=ConversationIntent.GENERAL)
        return None

    def _missing_context(self, lowered: str, context_manager) -> Optional[Ambiguity]:
        if not _has_pronoun(lowered):
            return None
        history = len(context_manager.messages) if context_manager is not None else 0
        if history < 2:
            return MissingContext(kind=MissingContextKind.PREVIOUS_REFERENCE)
        return None

    def question_for(self, ambiguity: Ambiguity) -> ClarificationQuestion:
        if isinstance(ambiguity, AmbiguousMetric):
            return ClarificationQuestion(
                text="I can help you with several health metrics. Which one are you interested in?",
                text_cn="我可以帮您查看多个健康指标。您想了解哪一个？",
                options=[_metric_option(k) for k in ambiguity.candidates],
            )
        if isinstance(ambiguity, AmbiguousTimeframe):
            return ClarificationQuestion(
                text="What time period would you like me to analyze?",
                text_cn="您想让我分析哪个时间段？",
                options=list(TIMEFRAME_OPTIONS),
            )
        if isinstance(ambiguity, VagueQuestion):
            return ClarificationQuestion(
                text="I'd be happy to help! What would you like to know about your health?",
                text_cn="很乐意为您服务！您想了解哪方面的健康信息？",
                options=list(VAGUE_OPTIONS),
            )
        if isinstance(ambiguity, MissingContext):
            if ambiguity.kind is MissingContextKind.MISSING_METRIC:
                return ClarificationQuestion(
                    text="Which health metric would you like to discuss?",
                    text_cn="您想讨论哪个健康指标？",
                    options=[_metric_option(k) for k in CORE_METRICS],
                )
            return ClarificationQuestion(
                text="Could you be more specific about what you're referring to?",
                text_cn="您能具体说明一下指的是什么吗？",
                type=QuestionType.FREE_TEXT,
            )
        if isinstance(ambiguity, MultipleIntents):
            return ClarificationQuestion(
                text="I can help with several things. What would you like to focus on first?",
                text_cn="我可以帮您处理几件事情。您想先关注哪一个？",
                options=[
                    ClarificationOption(i.description, i.description_cn, i.value)
                    for i in ambiguity.candidates
                ],
            )
        raise TypeError(f"Unknown ambiguity: {ambiguity!r}")

    def resolve(self, ambiguity: Ambiguity, option_value: str, original_text: str) -> str:
        """
        Rewrite the original question using the selected option.

        Args:
            ambiguity: The ambiguity that was asked about
            option_value: The chosen option's value, or free text
            original_text: The question as first asked

        Returns:
            A question the intent parser can handle
        """
        lang = detect_language(original_text)
        cn = lang == "zh"

        if isinstance(ambiguity, AmbiguousMetric) or (
            isinstance(ambiguity, MissingContext)
            and ambiguity.kind is MissingContextKind.MISSING_METRIC
        ):
            kind = metric_from_identifier(option_value)
            if kind is None:
                return original_text
            return f"{original_text} {display_name(kind, lang)}".strip()

        if isinstance(ambiguity, AmbiguousTimeframe):
            phrase = _TIMEFRAME_PHRASES.get(option_value)
            if phrase is None:
                return original_text
            replacement = phrase[1] if cn else phrase[0]
            pattern = re.compile(re.escape(ambiguity.raw_text), re.IGNORECASE)
            if pattern.search(original_text):
                return pattern.sub(replacement, original_text, count=1)
            return f"{original_text} {replacement}"

        if isinstance(ambiguity, MissingContext):
            return option_value.strip() or original_text

        canned = _CANNED_QUERIES.get(option_value)
        if canned is None:
            return original_text
        return canned[1] if cn else canned[0]


def _metric_option(kind: MetricKind) -> ClarificationOption:
    return ClarificationOption(display_name(kind), display_name(kind, "zh"), kind.value)
