"""
Health Intelligence for Health Buddy

Keyword analysis of a free-form question followed by a data-grounded answer:
relevant metrics are aggregated, insights generated, and a short response
with recommendations and follow-up questions is assembled. The orchestrator
uses this as the step between failed model calls and static templates.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .aggregation import MetricAggregator
from .conversation import ConversationContextManager
from .errors import HealthDataError
from .health_values import health_value_for
from .insights import (
    AnalysisIntent,
    Insight,
    InsightGenerator,
    MetricAggregate,
    recommendations_for,
)
from .metrics import CORE_METRICS, MetricKind, display_name

logger = logging.getLogger(__name__)

IMPROVEMENT_THRESHOLD = 0.05
KEY_INSIGHTS_IN_TEXT = 3

# Checked in order; the first matching group wins
INTENT_KEYWORDS = [
    (AnalysisIntent.TREND_ANALYSIS, ["trend", "progress", "improve", "趋势", "进展", "改善"]),
    (AnalysisIntent.COMPARISON, ["compare", "vs", "versus", "better", "worse", "比较", "对比"]),
    (AnalysisIntent.CURRENT_STATUS, ["current", "now", "today", "latest", "目前", "现在", "今天", "最新"]),
    (AnalysisIntent.RECOMMENDATION, ["recommend", "suggest", "advice", "improve", "建议", "推荐", "改进"]),
    (AnalysisIntent.GOAL_SETTING, ["goal", "target", "aim", "achieve", "目标", "达成"]),
    (AnalysisIntent.INSIGHTS, ["insight", "pattern", "correlation", "洞察", "模式", "关联"]),
]

METRIC_KEYWORDS = [
    (["step", "walk", "步数", "走路"], [MetricKind.STEPS]),
    (["heart", "pulse", "心率", "脉搏"], [MetricKind.HEART_RATE_AVERAGE, MetricKind.RESTING_HEART_RATE]),
    (["sleep", "rest", "睡眠", "休息"], [MetricKind.SLEEP_DURATION_HOURS]),
    (["weight", "mass", "体重", "重量"], [MetricKind.BODY_MASS]),
    (["energy", "calorie", "burn", "能量", "卡路里", "消耗"], [MetricKind.ACTIVE_ENERGY]),
]

POSITIVE_WORDS = ["good", "great", "excellent", "improve", "better", "好", "很好", "优秀", "改善", "更好"]
NEGATIVE_WORDS = ["bad", "worse", "terrible", "decline", "poor", "不好", "更差", "糟糕", "下降", "差"]
CONCERN_WORDS = ["worried", "concern", "problem", "issue", "担心", "问题", "困扰"]

GREETINGS = {
    "positive": "I'm glad you're staying engaged with your health! ",
    "concerned": "I understand your concern. Let me help you understand your health data. ",
}
DEFAULT_GREETING = "Here's what I found about your health data: "

FOLLOW_UP_QUESTIONS = {
    AnalysisIntent.TREND_ANALYSIS: [
        "Would you like to see how this compares to previous months?",
        "Are there any specific patterns you've noticed?",
    ],
    AnalysisIntent.RECOMMENDATION: [
        "Would you like specific exercise recommendations?",
        "Should we set up some health goals together?",
    ],
    AnalysisIntent.CURRENT_STATUS: [
        "Would you like to track any of these metrics more closely?",
        "Are you curious about how these compare to healthy ranges?",
    ],
}
DEFAULT_FOLLOW_UPS = [
    "Is there a specific health goal you're working towards?",
    "Would you like recommendations for improvement?",
]


class TimeScope(Enum):
    TODAY = "today"
    YESTERDAY = "yesterday"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"

    @property
    def days(self) -> int:
        return {"today": 1, "yesterday": 1, "week": 7, "month": 30, "year": 365}[self.value]

    @property
    def description(self) -> str:
        return {
            "today": "today",
            "yesterday": "yesterday",
            "week": "past week",
            "month": "past month",
            "year": "past year",
        }[self.value]


class ComparisonType(Enum):
    PERIOD_TO_PERIOD = "period_to_period"
    TO_AVERAGE = "to_average"
    TO_GOAL = "to_goal"


class Sentiment(Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    CONCERNED = "concerned"
    NEUTRAL = "neutral"


@dataclass
class HealthQueryAnalysis:
    primary_intent: AnalysisIntent
    relevant_metrics: List[MetricKind]
    time_scope: TimeScope
    comparison_type: Optional[ComparisonType]
    sentiment: Sentiment


@dataclass
class HealthIntelligentResponse:
    query: str
    response_text: str
    insights: List[Insight] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    follow_up_questions: List[str] = field(default_factory=list)
    confidence: float = 0.0
    summary: Dict[MetricKind, MetricAggregate] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "query": self.query,
            "response_text": self.response_text,
            "insights": [i.to_dict() for i in self.insights],
            "recommendations": self.recommendations,
            "follow_up_questions": self.follow_up_questions,
            "confidence": self.confidence,
        }


def _contains_any(text: str, words: List[str]) -> bool:
    return any(w in text for w in words)


def detect_primary_intent(text: str) -> AnalysisIntent:
    lowered = text.lower()
    for intent, keywords in INTENT_KEYWORDS:
        if _contains_any(lowered, keywords):
            return intent
    return AnalysisIntent.GENERAL


def extract_relevant_metrics(text: str) -> List[MetricKind]:
    """Metrics named in the text, or all core metrics when none are."""
    lowered = text.lower()
    metrics: List[MetricKind] = []
    for keywords, kinds in METRIC_KEYWORDS:
        if _contains_any(lowered, keywords):
            metrics.extend(k for k in kinds if k not in metrics)
    return metrics or list(CORE_METRICS)


def extract_time_scope(text: str) -> TimeScope:
    lowered = text.lower()
    if _contains_any(lowered, ["today", "今天"]):
        return TimeScope.TODAY
    if _contains_any(lowered, ["yesterday", "昨天"]):
        return TimeScope.YESTERDAY
    if _contains_any(lowered, ["week", "7 day", "周", "星期"]):
        return TimeScope.WEEK
    if _contains_any(lowered, ["month", "30 day", "月", "个月"]):
        return TimeScope.MONTH
    if _contains_any(lowered, ["year", "年"]):
        return TimeScope.YEAR
    return TimeScope.WEEK


def detect_comparison_type(text: str) -> Optional[ComparisonType]:
    lowered = text.lower()
    if _contains_any(lowered, ["last week", "previous", "before", "上周", "之前", "以前"]):
        return ComparisonType.PERIOD_TO_PERIOD
    if _contains_any(lowered, ["average", "normal", "typical", "平均", "正常", "一般"]):
        return ComparisonType.TO_AVERAGE
    if _contains_any(lowered, ["goal", "target", "目标"]):
        return ComparisonType.TO_GOAL
    return None


def analyze_sentiment(text: str) -> Sentiment:
    lowered = text.lower()
    if _contains_any(lowered, POSITIVE_WORDS):
        return Sentiment.POSITIVE
    if _contains_any(lowered, NEGATIVE_WORDS):
        return Sentiment.NEGATIVE
    if _contains_any(lowered, CONCERN_WORDS):
        return Sentiment.CONCERNED
    return Sentiment.NEUTRAL


def calculate_confidence(aggregates: Dict[MetricKind, MetricAggregate]) -> float:
    """Share of expected daily points present, assuming a week per metric."""
    if not aggregates:
        return 0.0
    points = sum(len(agg.trend.points) for agg in aggregates.values())
    return min(1.0, points / (len(aggregates) * 7))


class HealthAnalyzer:
    """
    Answers free-form health questions from the user's own data.

    Example:
        analyzer = HealthAnalyzer(aggregator, context_manager)
        reply = analyzer.respond("How has my sleep been this month?")
        print(reply.response_text)
    """

    def __init__(
        self,
        aggregator: MetricAggregator,
        context_manager: Optional[ConversationContextManager] = None,
        generator: Optional[InsightGenerator] = None,
        max_workers: int = 4,
    ):
        self.aggregator = aggregator
        self.context_manager = context_manager
        self.generator = generator or InsightGenerator()
        self.max_workers = max_workers

    def analyze_query(self, text: str) -> HealthQueryAnalysis:
        return HealthQueryAnalysis(
            primary_intent=detect_primary_intent(text),
            relevant_metrics=extract_relevant_metrics(text),
            time_scope=extract_time_scope(text),
            comparison_type=detect_comparison_type(text),
            sentiment=analyze_sentiment(text),
        )

    def respond(self, text: str) -> HealthIntelligentResponse:
        """
        Build a data-grounded answer for a question.

        Metrics the store cannot provide are skipped; with no data at all
        the response still has text but a confidence of 0.
        """
        analysis = self.analyze_query(text)
        logger.info(
            f"[INTELLIGENCE] intent={analysis.primary_intent.value} "
            f"metrics={[m.value for m in analysis.relevant_metrics]} scope={analysis.time_scope.value}"
        )

        aggregates = self._gather(analysis.relevant_metrics, analysis.time_scope.days)
        self._update_context(aggregates)

        insights = self.generator.generate(aggregates, context=analysis.primary_intent)

        return HealthIntelligentResponse(
            query=text,
            response_text=self._response_text(analysis, aggregates, insights),
            insights=insights,
            recommendations=recommendations_for(insights),
            follow_up_questions=list(FOLLOW_UP_QUESTIONS.get(analysis.primary_intent, DEFAULT_FOLLOW_UPS)),
            confidence=calculate_confidence(aggregates),
            summary=aggregates,
        )

    def _gather(self, metrics: List[MetricKind], days: int) -> Dict[MetricKind, MetricAggregate]:
        def fetch(metric: MetricKind) -> MetricAggregate:
            return MetricAggregate(
                trend=self.aggregator.trend(metric, days),
                comparison=self.aggregator.compare(metric, days),
            )

        results: Dict[MetricKind, MetricAggregate] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(fetch, m): m for m in metrics}
            for future in as_completed(futures):
                metric = futures[future]
                try:
                    results[metric] = future.result()
                except HealthDataError as e:
                    logger.warning(f"[INTELLIGENCE] Failed to gather {metric}: {e}")
        return {m: results[m] for m in metrics if m in results}

    def _update_context(self, aggregates: Dict[MetricKind, MetricAggregate]) -> None:
        if self.context_manager is None:
            return
        for metric, agg in aggregates.items():
            current = agg.current_value
            if current is not None:
                self.context_manager.update_health_context(metric.value, health_value_for(metric, current))

    @staticmethod
    def _response_text(
        analysis: HealthQueryAnalysis,
        aggregates: Dict[MetricKind, MetricAggregate],
        insights: List[Insight],
    ) -> str:
        response = GREETINGS.get(analysis.sentiment.value, DEFAULT_GREETING)

        if aggregates:
            response += f"Looking at your {analysis.time_scope.description}, "
            improved = [display_name(m) for m, a in aggregates.items() if a.change_rate > IMPROVEMENT_THRESHOLD]
            declined = [display_name(m) for m, a in aggregates.items() if a.change_rate < -IMPROVEMENT_THRESHOLD]
            if improved:
                response += f"your {' and '.join(improved)} has improved. "
            if declined:
                response += f"Your {' and '.join(declined)} shows some decline that we should address. "

        if insights:
            response += "\n\nKey insights: "
            for insight in insights[:KEY_INSIGHTS_IN_TEXT]:
                response += f"• {insight.description} "

        return response.strip()
