"""
Query Runner for Health Buddy

Executes a parsed Intent against the aggregation engine and formats the
answer. Multi-metric intents fetch their metrics in parallel and skip any
metric the store cannot provide.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .aggregation import Comparison, MetricAggregator, Trend
from .errors import AuthorizationDenied, HealthDataError
from .insights import FOCUS_METRICS, AnalysisIntent, Insight, InsightGenerator, MetricAggregate
from .intent_parser import (
    CompareIntent,
    CurrentValueIntent,
    GoalIntent,
    InsightFocus,
    InsightsIntent,
    Intent,
    OverviewIntent,
    RecommendationIntent,
    SummaryIntent,
    TrendIntent,
)
from .metrics import MetricKind, display_name, unit

logger = logging.getLogger(__name__)

OVERVIEW_METRICS = [
    MetricKind.STEPS,
    MetricKind.HEART_RATE_AVERAGE,
    MetricKind.SLEEP_DURATION_HOURS,
    MetricKind.ACTIVE_ENERGY,
]

INSIGHT_WINDOW_DAYS = 7

GENERAL_RECOMMENDATIONS = """💪 Comprehensive Health Recommendations

🚶‍♂️ Daily Activity
• At least 10,000 steps daily
• 150 minutes of moderate-intensity exercise weekly

😴 Sleep Quality
• 7-9 hours of adequate sleep nightly
• Maintain regular sleep schedule

❤️ Cardiovascular Health
• Regularly monitor heart rate changes
• Moderate aerobic exercise

📊 Data Monitoring
• Develop habit of recording health data
• Regularly review and analyze trends

⚕️ Professional Advice
• Consult doctor promptly for abnormal changes
• Personal health plans should incorporate professional guidance"""


class ResultKind(Enum):
    TREND = "trend"
    COMPARISON = "comparison"
    TEXT = "text"
    INSIGHTS = "insights"


@dataclass
class QueryResult:
    """Result of running an intent, ready for presentation."""
    kind: ResultKind
    answer: str
    metric: Optional[MetricKind] = None
    trend: Optional[Trend] = None
    comparison: Optional[Comparison] = None
    insights: List[Insight] = field(default_factory=list)
    metric_values: Dict[MetricKind, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "answer": self.answer,
            "metric": self.metric.value if self.metric else None,
            "trend": self.trend.to_dict() if self.trend else None,
            "comparison": self.comparison.to_dict() if self.comparison else None,
            "insights": [i.to_dict() for i in self.insights],
            "metric_values": {k.value: v for k, v in self.metric_values.items()},
        }


def suggested_target(kind: MetricKind, current: float) -> float:
    if kind is MetricKind.STEPS:
        if current < 5000:
            return 8000.0
        if current < 10000:
            return 12000.0
        return current * 1.1
    if kind is MetricKind.SLEEP_DURATION_HOURS:
        return 8.0 if current < 7 else max(8.0, current)
    if kind is MetricKind.ACTIVE_ENERGY:
        return 300.0 if current < 200 else current * 1.15
    return current * 1.1


def brief_analysis(kind: MetricKind, average: float) -> str:
    if kind is MetricKind.STEPS:
        return "Good activity level, maintain current habits." if average >= 8000 else "Consider increasing daily activity."
    if kind is MetricKind.HEART_RATE_AVERAGE:
        return "Heart rate data is normal, continue monitoring changes."
    if kind is MetricKind.SLEEP_DURATION_HOURS:
        return "Sufficient sleep duration." if average >= 7 else "Consider ensuring adequate sleep time."
    if kind is MetricKind.ACTIVE_ENERGY:
        return "Good active energy expenditure." if average >= 300 else "Consider increasing exercise intensity."
    return "Good data recording, continue monitoring."


def metric_recommendation(kind: MetricKind, average: float) -> str:
    if kind is MetricKind.STEPS:
        if average < 5000:
            return (
                "Suggestions to increase daily walking:\n"
                "• Take stairs instead of elevators\n"
                "• Take a 20-30 minute walk after meals\n"
                "• Try walking or cycling to work\n"
                "• Set daily step goals and gradually increase them"
            )
        return (
            "Your step count performance is good! Keep it up:\n"
            "• Maintain your current activity level\n"
            "• Try new types of exercise for variety\n"
            "• Invite friends to walk together for motivation"
        )
    if kind is MetricKind.SLEEP_DURATION_HOURS:
        if average < 7:
            return (
                "Suggestions to improve sleep quality:\n"
                "• Establish regular sleep schedule\n"
                "• Avoid electronic devices 1 hour before bed\n"
                "• Keep bedroom temperature comfortable (18-22°C)\n"
                "• Avoid heavy meals or caffeinated drinks before bedtime"
            )
        return (
            "Your sleep duration is excellent! Maintain with:\n"
            "• Keep regular sleep schedule\n"
            "• Focus on sleep quality, not just duration\n"
            "• Establish a relaxing bedtime routine"
        )
    return (
        f"Based on your {display_name(kind).lower()} data, continue maintaining good health habits and "
        "regularly monitor changes. If you have concerns, please consult a healthcare professional."
    )


def _direction(change_rate: float) -> str:
    return "Increase" if change_rate >= 0 else "Decrease"


class QueryRunner:
    """Runs structured intents against a MetricAggregator."""

    def __init__(
        self,
        aggregator: MetricAggregator,
        insight_generator: Optional[InsightGenerator] = None,
        max_workers: int = 4,
    ):
        self.aggregator = aggregator
        self.insight_generator = insight_generator or InsightGenerator()
        self.max_workers = max_workers

    def run(self, intent: Intent) -> QueryResult:
        """
        Execute an intent.

        Raises:
            AuthorizationDenied: If the store refuses access
            HealthDataError: If a single-metric read fails
        """
        self.aggregator.store.authorize()
        logger.info(f"[QUERY] Running {type(intent).__name__}")

        if isinstance(intent, CompareIntent):
            return self._compare(intent.metric, intent.window_days)
        if isinstance(intent, TrendIntent):
            return self._trend(intent.metric, intent.days)
        if isinstance(intent, SummaryIntent):
            if intent.metric is not None:
                return self._metric_summary(intent.metric, intent.days)
            return self._multi_metric_summary(intent.days)
        if isinstance(intent, InsightsIntent):
            focus = intent.focus or InsightFocus.OVERALL
            metrics = FOCUS_METRICS.get(focus) or OVERVIEW_METRICS
            return self._insights(metrics, focus, "Health Insights")
        if isinstance(intent, OverviewIntent):
            return self._insights(OVERVIEW_METRICS, InsightFocus.OVERALL, "Health Overview")
        if isinstance(intent, RecommendationIntent):
            return self._recommendation(intent.metric)
        if isinstance(intent, CurrentValueIntent):
            return self._current_value(intent.metric)
        if isinstance(intent, GoalIntent):
            return self._goal(intent.metric, intent.target)
        raise TypeError(f"Unsupported intent: {intent!r}")

    # -- single metric --------------------------------------------------

    def _trend(self, metric: MetricKind, days: int) -> QueryResult:
        trend = self.aggregator.trend(metric, days)
        title = display_name(metric)
        answer = (
            f"{title} over the past {days} days: average {trend.average:.1f} {unit(metric)}, "
            f"{_direction(trend.change_rate).lower()} {abs(trend.change_rate) * 100:.1f}% "
            f"across {len(trend.points)} data points."
        )
        return QueryResult(
            kind=ResultKind.TREND,
            answer=answer,
            metric=metric,
            trend=trend,
            metric_values=_latest(metric, trend),
        )

    def _compare(self, metric: MetricKind, window_days: int) -> QueryResult:
        comparison = self.aggregator.compare(metric, window_days)
        title = display_name(metric)
        u = unit(metric)
        answer = (
            f"{title}: last {window_days} days averaged {comparison.current_average:.1f} {u} "
            f"vs {comparison.previous_average:.1f} {u} in the {window_days} days before "
            f"({comparison.delta:+.1f} {u}, {comparison.delta_rate * 100:+.1f}%)."
        )
        return QueryResult(
            kind=ResultKind.COMPARISON,
            answer=answer,
            metric=metric,
            comparison=comparison,
        )

    def _metric_summary(self, metric: MetricKind, days: int) -> QueryResult:
        trend = self.aggregator.trend(metric, days)
        answer = (
            f"{display_name(metric)} - {days} Day Summary\n\n"
            f"Average: {trend.average:.1f} {unit(metric)}\n"
            f"Trend: {_direction(trend.change_rate)} {abs(trend.change_rate) * 100:.1f}%\n"
            f"Data Points: {len(trend.points)}\n\n"
            f"{brief_analysis(metric, trend.average)}"
        )
        return QueryResult(
            kind=ResultKind.TEXT,
            answer=answer,
            metric=metric,
            trend=trend,
            metric_values=_latest(metric, trend),
        )

    def _recommendation(self, metric: Optional[MetricKind]) -> QueryResult:
        if metric is None:
            return QueryResult(kind=ResultKind.TEXT, answer=GENERAL_RECOMMENDATIONS)
        trend = self.aggregator.trend(metric, INSIGHT_WINDOW_DAYS)
        return QueryResult(
            kind=ResultKind.TEXT,
            answer=metric_recommendation(metric, trend.average),
            metric=metric,
            trend=trend,
            metric_values=_latest(metric, trend),
        )

    def _current_value(self, metric: MetricKind) -> QueryResult:
        trend = self.aggregator.trend(metric, 1)
        current = trend.latest if trend.latest is not None else 0.0
        return QueryResult(
            kind=ResultKind.TEXT,
            answer=f"Your current {display_name(metric).lower()} is {current:.1f} {unit(metric)}",
            metric=metric,
            trend=trend,
            metric_values={metric: current},
        )

    def _goal(self, metric: MetricKind, target: Optional[float]) -> QueryResult:
        trend = self.aggregator.trend(metric, INSIGHT_WINDOW_DAYS)
        current = trend.average
        title = display_name(metric)
        u = unit(metric)

        if target is not None:
            progress = current / target * 100
            if progress >= 100:
                closing = "🎉 Congratulations! You've reached your goal!"
            else:
                closing = f"💪 Keep going! You need {target - current:.1f} {u} more to reach your goal."
            answer = (
                f"{title} Goal: {target:.1f} {u}\n"
                f"Current 7-day Average: {current:.1f} {u}\n"
                f"Progress: {progress:.1f}%\n\n"
                f"{closing}"
            )
        else:
            answer = (
                f"Based on your current {title.lower()} data, recommended goal:\n\n"
                f"Current 7-day Average: {current:.1f} {u}\n"
                f"Suggested Goal: {suggested_target(metric, current):.1f} {u}\n\n"
                "This goal is both challenging and achievable. You can gradually improve and steadily "
                "reach your health goals!"
            )

        return QueryResult(
            kind=ResultKind.TEXT,
            answer=answer,
            metric=metric,
            trend=trend,
            metric_values=_latest(metric, trend),
        )

    # -- multi metric ---------------------------------------------------

    def _multi_metric_summary(self, days: int) -> QueryResult:
        trends = self._gather(OVERVIEW_METRICS, lambda m: self.aggregator.trend(m, days))

        lines = [f"Health Data Summary for Past {days} Days:", ""]
        values: Dict[MetricKind, float] = {}
        for metric in OVERVIEW_METRICS:
            trend = trends.get(metric)
            if trend is None:
                continue
            arrow = "↗️" if trend.change_rate >= 0 else "↘️"
            lines.append(
                f"{display_name(metric)}: {trend.average:.1f} {unit(metric)} "
                f"({arrow} {abs(trend.change_rate) * 100:.1f}%)"
            )
            values.update(_latest(metric, trend))
        lines.append("")
        lines.append("💡 For detailed analysis, please ask about specific metric trends or comparison data.")

        return QueryResult(kind=ResultKind.TEXT, answer="\n".join(lines), metric_values=values)

    def _insights(self, metrics: List[MetricKind], focus: InsightFocus, heading: str) -> QueryResult:
        aggregates = self.collect_aggregates(metrics)
        insights = self.insight_generator.generate(aggregates, focus=focus, context=AnalysisIntent.INSIGHTS)

        lines = [heading, ""]
        lines.extend(f"• {i.title}: {i.description}" for i in insights)

        values: Dict[MetricKind, float] = {}
        for metric, agg in aggregates.items():
            values.update(_latest(metric, agg.trend))

        return QueryResult(
            kind=ResultKind.INSIGHTS,
            answer="\n".join(lines),
            insights=insights,
            metric_values=values,
        )

    def collect_aggregates(
        self,
        metrics: List[MetricKind],
        days: int = INSIGHT_WINDOW_DAYS,
    ) -> Dict[MetricKind, MetricAggregate]:
        """Trend plus comparison for each metric, in the order given; failing metrics are left out."""
        def fetch(metric: MetricKind) -> MetricAggregate:
            return MetricAggregate(
                trend=self.aggregator.trend(metric, days),
                comparison=self.aggregator.compare(metric, days),
            )
        return self._gather(metrics, fetch)

    def _gather(self, metrics: List[MetricKind], fetch) -> dict:
        """
        Run fetch(metric) for each metric in parallel and join.

        Per-metric HealthDataErrors are logged and skipped; AuthorizationDenied
        is re-raised. The result preserves the order of `metrics`.
        """
        results = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_metric = {executor.submit(fetch, m): m for m in metrics}
            for future in as_completed(future_to_metric):
                metric = future_to_metric[future]
                try:
                    results[metric] = future.result()
                except AuthorizationDenied:
                    raise
                except HealthDataError as e:
                    logger.warning(f"[QUERY] Skipping {metric}: {e}")
        return {m: results[m] for m in metrics if m in results}


def _latest(metric: MetricKind, trend: Trend) -> Dict[MetricKind, float]:
    latest = trend.latest
    return {metric: latest} if latest is not None else {}
