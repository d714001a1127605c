"""
Insight Generator for Health Buddy

Turns per-metric aggregates into a short, ranked list of observations:
trends, out-of-range alerts, cross-metric correlations, a single
recommendation, and context-specific goal or achievement notes.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional

import numpy as np
import pandas as pd
from scipy import stats

from .aggregation import Comparison, Trend
from .intent_parser import InsightFocus
from .metrics import METRICS, MetricKind, display_name, format_value

logger = logging.getLogger(__name__)

TREND_THRESHOLD = 0.10
ACHIEVEMENT_THRESHOLD = 0.05
CORRELATION_THRESHOLD = 0.7
MIN_CORRELATION_POINTS = 3


class InsightType(Enum):
    TREND = "trend"
    ALERT = "alert"
    CORRELATION = "correlation"
    RECOMMENDATION = "recommendation"
    ACHIEVEMENT = "achievement"
    GOAL = "goal"


class AnalysisIntent(Enum):
    """What the user is trying to do with their health data."""
    TREND_ANALYSIS = "trend_analysis"
    COMPARISON = "comparison"
    CURRENT_STATUS = "current_status"
    RECOMMENDATION = "recommendation"
    GOAL_SETTING = "goal_setting"
    INSIGHTS = "insights"
    GENERAL = "general"


class Assessment(Enum):
    NORMAL = "normal"
    OUT_OF_RANGE = "out_of_range"
    UNKNOWN = "unknown"


@dataclass
class Insight:
    title: str
    description: str
    type: InsightType
    importance: float
    related_metric: Optional[MetricKind] = None
    title_cn: str = ""
    description_cn: str = ""

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "type": self.type.value,
            "importance": self.importance,
            "related_metric": self.related_metric.value if self.related_metric else None,
            "title_cn": self.title_cn,
            "description_cn": self.description_cn,
        }


@dataclass
class MetricAggregate:
    """Trend plus optional comparison for one metric."""
    trend: Trend
    comparison: Optional[Comparison] = None

    @property
    def average(self) -> float:
        return self.trend.average

    @property
    def current_value(self) -> Optional[float]:
        return self.trend.latest

    @property
    def change_rate(self) -> float:
        return self.trend.change_rate

    @property
    def has_data(self) -> bool:
        return bool(self.trend.points)


ACTIONABLE_RECOMMENDATIONS: Dict[MetricKind, str] = {
    MetricKind.STEPS: "Try taking short walks throughout the day or using stairs instead of elevators",
    MetricKind.SLEEP_DURATION_HOURS: "Aim for consistent bedtime and limit screen time before sleep",
    MetricKind.HEART_RATE_AVERAGE: "Consider regular cardio exercise and stress management techniques",
    MetricKind.RESTING_HEART_RATE: "Consider regular cardio exercise and stress management techniques",
    MetricKind.ACTIVE_ENERGY: "Incorporate more physical activities like dancing, gardening, or sports",
    MetricKind.BODY_MASS: "Focus on balanced nutrition and gradual, sustainable changes",
}

ACTIONABLE_RECOMMENDATIONS_CN: Dict[MetricKind, str] = {
    MetricKind.STEPS: "尝试在一天中多次短距离步行，或用走楼梯代替乘电梯",
    MetricKind.SLEEP_DURATION_HOURS: "保持规律的就寝时间，睡前减少屏幕使用",
    MetricKind.HEART_RATE_AVERAGE: "考虑规律的有氧运动和压力管理",
    MetricKind.RESTING_HEART_RATE: "考虑规律的有氧运动和压力管理",
    MetricKind.ACTIVE_ENERGY: "多参加跳舞、园艺或球类等体力活动",
    MetricKind.BODY_MASS: "注重均衡营养，循序渐进地做出可持续的改变",
}

GENERIC_RECOMMENDATION = "Keep tracking this metric and discuss persistent changes with your healthcare provider"
GENERIC_RECOMMENDATION_CN = "持续记录该指标，如有持续变化请咨询医疗专业人员"

FOCUS_METRICS: Dict[InsightFocus, Optional[List[MetricKind]]] = {
    InsightFocus.ACTIVITY: [MetricKind.STEPS, MetricKind.ACTIVE_ENERGY],
    InsightFocus.SLEEP: [MetricKind.SLEEP_DURATION_HOURS],
    InsightFocus.HEART: [MetricKind.HEART_RATE_AVERAGE, MetricKind.RESTING_HEART_RATE],
    InsightFocus.OVERALL: None,
}

HEART_RATE_KINDS = {
    MetricKind.HEART_RATE_AVERAGE,
    MetricKind.RESTING_HEART_RATE,
    MetricKind.WALKING_HEART_RATE_AVERAGE,
}


def actionable_recommendation(kind: Optional[MetricKind], lang: str = "en") -> str:
    if lang.startswith("zh"):
        return ACTIONABLE_RECOMMENDATIONS_CN.get(kind, GENERIC_RECOMMENDATION_CN)
    return ACTIONABLE_RECOMMENDATIONS.get(kind, GENERIC_RECOMMENDATION)


def realistic_goal(kind: MetricKind, current: float) -> float:
    """Next achievable target from the current level."""
    if kind is MetricKind.STEPS:
        return max(8000.0, current * 1.1)
    if kind is MetricKind.SLEEP_DURATION_HOURS:
        return min(9.0, max(7.0, current * 1.05))
    if kind is MetricKind.ACTIVE_ENERGY:
        return current * 1.1
    if kind in HEART_RATE_KINDS:
        return current * 0.95
    return current


def assess(kind: MetricKind, aggregate: MetricAggregate) -> Assessment:
    meta = METRICS.get(kind)
    if not aggregate.has_data or meta is None or meta.normal_range is None:
        return Assessment.UNKNOWN
    low, high = meta.normal_range
    if low <= aggregate.average <= high:
        return Assessment.NORMAL
    return Assessment.OUT_OF_RANGE


def fallback_insight() -> Insight:
    return Insight(
        title="Maintain healthy habits",
        description="Keep up a steady routine of daily activity, regular sleep and balanced meals.",
        type=InsightType.RECOMMENDATION,
        importance=0.5,
        title_cn="保持健康习惯",
        description_cn="坚持规律的日常活动、作息和均衡饮食。",
    )


def pearson_on_aligned(first: Trend, second: Trend) -> Optional[float]:
    """
    Pearson r between two daily series whose dates line up exactly.

    Returns:
        The coefficient, or None when the series differ in length or dates,
        have fewer than three points, or either has zero variance
    """
    a = pd.Series({p.date: p.value for p in first.points}, dtype=float)
    b = pd.Series({p.date: p.value for p in second.points}, dtype=float)
    if len(a) != len(b) or len(a) < MIN_CORRELATION_POINTS:
        return None
    if not a.index.equals(b.index):
        return None
    if np.std(a.values) == 0 or np.std(b.values) == 0:
        return None
    r, _ = stats.pearsonr(a.values, b.values)
    return float(r)


class InsightGenerator:
    """
    Rule-based insight generation over metric aggregates.

    Output is ranked by importance (stable, so rule order breaks ties) and
    is never empty.
    """

    def generate(
        self,
        aggregates: Mapping[MetricKind, MetricAggregate],
        focus: Optional[InsightFocus] = None,
        context: Optional[AnalysisIntent] = None,
        limit: int = 5,
    ) -> List[Insight]:
        """
        Generate ranked insights.

        Args:
            aggregates: Per-metric aggregates; missing metrics are skipped
            focus: Restricts which metrics are considered
            context: Adds goal or achievement insights for matching intents
            limit: Maximum number of insights returned

        Returns:
            Insights sorted by importance, at least one
        """
        allowed = FOCUS_METRICS.get(focus) if focus else None
        considered = {
            kind: agg for kind, agg in aggregates.items()
            if agg is not None and (allowed is None or kind in allowed)
        }

        insights: List[Insight] = []
        for kind, agg in considered.items():
            insights.extend(self._metric_insights(kind, agg))

        insights.extend(self._correlation_insights(considered))

        recommendation = self._recommendation_insight(considered)
        if recommendation is not None:
            insights.append(recommendation)

        if context is AnalysisIntent.GOAL_SETTING:
            insights.extend(self._goal_insights(considered))
        elif context is AnalysisIntent.TREND_ANALYSIS:
            achievement = self._achievement_insight(considered)
            if achievement is not None:
                insights.append(achievement)

        if not insights:
            logger.debug("[INSIGHTS] No rule fired, using fallback insight")
            return [fallback_insight()]

        ranked = sorted(insights, key=lambda i: -i.importance)
        return ranked[:max(1, limit)]

    def _metric_insights(self, kind: MetricKind, agg: MetricAggregate) -> List[Insight]:
        if not agg.has_data:
            return []

        found = []
        name = display_name(kind)
        name_cn = display_name(kind, "zh")

        if abs(agg.change_rate) > TREND_THRESHOLD:
            increasing = agg.change_rate > 0
            pct = abs(agg.change_rate) * 100
            found.append(Insight(
                title=f"{name} is {'increasing' if increasing else 'decreasing'}",
                description=f"Your {name.lower()} has {'increased' if increasing else 'decreased'} by {pct:.1f}% recently",
                type=InsightType.TREND,
                importance=0.8,
                related_metric=kind,
                title_cn=f"{name_cn}呈{'上升' if increasing else '下降'}趋势",
                description_cn=f"您的{name_cn}最近{'上升' if increasing else '下降'}了{pct:.1f}%",
            ))

        if assess(kind, agg) is Assessment.OUT_OF_RANGE:
            found.append(Insight(
                title=f"{name} needs attention",
                description=f"Your recent {name.lower()} is outside the typical healthy range",
                type=InsightType.ALERT,
                importance=0.9,
                related_metric=kind,
                title_cn=f"{name_cn}需要关注",
                description_cn=f"您最近的{name_cn}超出了典型的健康范围",
            ))

        return found

    def _correlation_insights(self, considered: Mapping[MetricKind, MetricAggregate]) -> List[Insight]:
        found = []

        steps = considered.get(MetricKind.STEPS)
        energy = considered.get(MetricKind.ACTIVE_ENERGY)
        if steps is not None and energy is not None:
            r = pearson_on_aligned(steps.trend, energy.trend)
            if r is not None and abs(r) > CORRELATION_THRESHOLD:
                found.append(Insight(
                    title="Strong activity pattern",
                    description=f"Your steps and active energy move closely together (r = {r:.2f})",
                    type=InsightType.CORRELATION,
                    importance=0.7,
                    related_metric=MetricKind.STEPS,
                    title_cn="活动模式稳定",
                    description_cn=f"您的步数与活动能量高度相关（r = {r:.2f}）",
                ))

        sleep = considered.get(MetricKind.SLEEP_DURATION_HOURS)
        resting = considered.get(MetricKind.RESTING_HEART_RATE)
        if (
            sleep is not None and resting is not None
            and sleep.has_data and resting.has_data
            and sleep.average < 7 and resting.average > 70
        ):
            found.append(Insight(
                title="Sleep may affect heart health",
                description="Shorter sleep often goes with a higher resting heart rate; more rest may help",
                type=InsightType.CORRELATION,
                importance=0.8,
                related_metric=MetricKind.SLEEP_DURATION_HOURS,
                title_cn="睡眠可能影响心脏健康",
                description_cn="睡眠不足通常伴随静息心率偏高，增加休息可能有所帮助",
            ))

        return found

    def _recommendation_insight(self, considered: Mapping[MetricKind, MetricAggregate]) -> Optional[Insight]:
        candidates = [
            (kind, agg) for kind, agg in considered.items()
            if agg.has_data and (
                assess(kind, agg) is Assessment.OUT_OF_RANGE or agg.change_rate < -TREND_THRESHOLD
            )
        ]
        if not candidates:
            return None

        kind, _ = min(candidates, key=lambda item: item[1].change_rate)
        name = display_name(kind)
        return Insight(
            title=f"Focus on {name}",
            description=actionable_recommendation(kind),
            type=InsightType.RECOMMENDATION,
            importance=0.9,
            related_metric=kind,
            title_cn=f"关注{display_name(kind, 'zh')}",
            description_cn=actionable_recommendation(kind, "zh"),
        )

    def _goal_insights(self, considered: Mapping[MetricKind, MetricAggregate]) -> List[Insight]:
        found = []
        for kind, agg in considered.items():
            if not agg.has_data:
                continue
            goal = realistic_goal(kind, agg.average)
            name = display_name(kind)
            found.append(Insight(
                title=f"Suggested {name} goal",
                description=f"Based on your current level, aim for {format_value(goal, kind)}",
                type=InsightType.GOAL,
                importance=0.7,
                related_metric=kind,
                title_cn=f"建议的{display_name(kind, 'zh')}目标",
                description_cn=f"根据您目前的水平，建议目标为{format_value(goal, kind, 'zh')}",
            ))
        return found

    def _achievement_insight(self, considered: Mapping[MetricKind, MetricAggregate]) -> Optional[Insight]:
        improved = [
            (kind, agg) for kind, agg in considered.items()
            if agg.has_data and agg.change_rate > ACHIEVEMENT_THRESHOLD
        ]
        if not improved:
            return None

        kind, agg = max(improved, key=lambda item: item[1].change_rate)
        pct = agg.change_rate * 100
        name = display_name(kind)
        return Insight(
            title=f"Great progress in {name}",
            description=f"Your {name.lower()} improved by {pct:.1f}% over this period",
            type=InsightType.ACHIEVEMENT,
            importance=0.8,
            related_metric=kind,
            title_cn=f"{display_name(kind, 'zh')}进步显著",
            description_cn=f"您的{display_name(kind, 'zh')}在此期间提升了{pct:.1f}%",
        )


def recommendations_for(insights: List[Insight], lang: str = "en") -> List[str]:
    """Actionable strings for alert and recommendation insights, de-duplicated."""
    seen = []
    for insight in insights:
        if insight.type not in (InsightType.ALERT, InsightType.RECOMMENDATION):
            continue
        if insight.type is InsightType.RECOMMENDATION and insight.related_metric is None:
            text = insight.description_cn if lang.startswith("zh") else insight.description
        else:
            text = actionable_recommendation(insight.related_metric, lang)
        if text not in seen:
            seen.append(text)
    return seen
