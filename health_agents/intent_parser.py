"""
Intent Parser for Health Buddy

Rule-based translation of a natural-language question (English or Chinese)
into a structured query intent. Pure and deterministic: no model calls, no
I/O, never raises.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from .metrics import MetricKind


class InsightFocus(Enum):
    ACTIVITY = "activity"
    SLEEP = "sleep"
    HEART = "heart"
    OVERALL = "overall"


@dataclass(frozen=True)
class Intent:
    """Base class for parsed query intents."""
    pass


@dataclass(frozen=True)
class TrendIntent(Intent):
    metric: MetricKind
    days: int = 7


@dataclass(frozen=True)
class CompareIntent(Intent):
    metric: MetricKind
    window_days: int = 7


@dataclass(frozen=True)
class SummaryIntent(Intent):
    metric: Optional[MetricKind] = None
    days: int = 7


@dataclass(frozen=True)
class CurrentValueIntent(Intent):
    metric: MetricKind


@dataclass(frozen=True)
class GoalIntent(Intent):
    metric: MetricKind
    target: Optional[float] = None


@dataclass(frozen=True)
class OverviewIntent(Intent):
    pass


@dataclass(frozen=True)
class InsightsIntent(Intent):
    focus: Optional[InsightFocus] = None


@dataclass(frozen=True)
class RecommendationIntent(Intent):
    metric: Optional[MetricKind] = None


# Order matters: resting heart rate must be checked before the generic heart rate
METRIC_KEYWORDS: List[Tuple[MetricKind, List[str]]] = [
    (MetricKind.STEPS, ["步数", "steps", "走路"]),
    (MetricKind.RESTING_HEART_RATE, ["静息心率", "resting heart"]),
    (MetricKind.HEART_RATE_AVERAGE, ["心率", "heart rate", "心跳"]),
    (MetricKind.ACTIVE_ENERGY, ["活动能量", "active energy", "卡路里", "calorie"]),
    (MetricKind.BODY_MASS, ["体重", "body mass", "weight"]),
    (MetricKind.SLEEP_DURATION_HOURS, ["睡眠", "sleep", "休息"]),
]

CURRENT_KEYWORDS = ["当前", "现在", "今天", "current", "now", "today", "最新"]
GOAL_KEYWORDS = ["目标", "设定", "达成", "goal", "target", "achieve", "设置"]
OVERVIEW_KEYWORDS = ["总览", "概况", "总体", "整体", "overview", "general", "overall", "全部"]
INSIGHT_KEYWORDS = ["洞察", "分析", "建议", "怎么样", "如何", "insight", "analysis", "suggestion"]
RECOMMENDATION_KEYWORDS = ["建议", "推荐", "应该", "recommendation", "suggest", "should", "advice"]
SUMMARY_KEYWORDS = ["总结", "汇总", "概要", "summary", "总的", "整体情况"]
COMPARE_KEYWORDS = ["对比", "比较", "compare", "vs", "相比", "对比分析"]
TREND_KEYWORDS = ["趋势", "变化", "trend", "change", "走势", "发展"]

FOCUS_KEYWORDS: List[Tuple[InsightFocus, List[str]]] = [
    (InsightFocus.ACTIVITY, ["活动", "运动", "步数", "activity"]),
    (InsightFocus.SLEEP, ["睡眠", "sleep", "休息"]),
    (InsightFocus.HEART, ["心率", "heart", "心脏"]),
]

DAY_PHRASES: List[Tuple[int, List[str]]] = [
    (30, ["30天", "30-day", "30 days", "一个月", "a month"]),
    (14, ["14天", "14-day", "14 days", "两周", "two weeks"]),
    (7, ["7天", "七天", "7-day", "7 days", "一周", "a week"]),
    (3, ["3天", "三天", "3-day", "3 days"]),
]

DEFAULT_DAYS = 7

_NUMBER = re.compile(r"\d+(?:\.\d+)?")


def _contains_any(text: str, keywords: List[str]) -> bool:
    return any(kw in text for kw in keywords)


def detect_metric(text: str) -> Optional[MetricKind]:
    """Return the first metric whose keywords appear in the text."""
    lowered = text.lower()
    for kind, keywords in METRIC_KEYWORDS:
        if _contains_any(lowered, keywords):
            return kind
    return None


def extract_days(text: str) -> int:
    lowered = text.lower()
    for days, phrases in DAY_PHRASES:
        if _contains_any(lowered, phrases):
            return days
    return DEFAULT_DAYS


def extract_target(text: str) -> Optional[float]:
    """First positive number in the text, decimals allowed."""
    for match in _NUMBER.finditer(text):
        value = float(match.group())
        if value > 0:
            return value
    return None


def detect_focus(text: str) -> InsightFocus:
    lowered = text.lower()
    for focus, keywords in FOCUS_KEYWORDS:
        if _contains_any(lowered, keywords):
            return focus
    return InsightFocus.OVERALL


def parse_intent(text: str) -> Optional[Intent]:
    """
    Parse a question into an Intent.

    Intent classes are tried in priority order: current value, goal,
    overview, insights, recommendation, summary, compare, trend. Classes
    that need a metric return None when none is named.

    Args:
        text: The user's question

    Returns:
        The parsed Intent, or None if the question is not a data query
    """
    if not text:
        return None

    lowered = text.lower().strip()
    metric = detect_metric(lowered)
    days = extract_days(lowered)

    if _contains_any(lowered, CURRENT_KEYWORDS):
        return CurrentValueIntent(metric=metric) if metric else None

    if _contains_any(lowered, GOAL_KEYWORDS):
        if metric is None:
            return None
        return GoalIntent(metric=metric, target=extract_target(lowered))

    if _contains_any(lowered, OVERVIEW_KEYWORDS):
        return OverviewIntent()

    if _contains_any(lowered, INSIGHT_KEYWORDS):
        return InsightsIntent(focus=detect_focus(lowered))

    if _contains_any(lowered, RECOMMENDATION_KEYWORDS):
        return RecommendationIntent(metric=metric)

    if _contains_any(lowered, SUMMARY_KEYWORDS):
        return SummaryIntent(metric=metric, days=days)

    if _contains_any(lowered, COMPARE_KEYWORDS):
        return CompareIntent(metric=metric, window_days=days) if metric else None

    # explicit trend wording and a bare metric mention both land here
    if metric is None:
        return None
    return TrendIntent(metric=metric, days=days)
