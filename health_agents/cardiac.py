"""
Cardiac analytics for Health Buddy.

Combines the latest cardiac readings into a heuristic 0-100 score, a risk
level, derived indicators (fitness age, cardiac efficiency, autonomic
balance), and a handful of insights and recommendations. The score is a
wellness heuristic, not a clinical risk model.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from .aggregation import MetricAggregator
from .errors import AuthorizationDenied, HealthDataError
from .metrics import MetricKind

logger = logging.getLogger(__name__)

CARDIAC_METRICS = [
    MetricKind.RESTING_HEART_RATE,
    MetricKind.HEART_RATE_VARIABILITY,
    MetricKind.HEART_RATE_RECOVERY,
    MetricKind.VO2_MAX,
    MetricKind.WALKING_HEART_RATE_AVERAGE,
    MetricKind.OXYGEN_SATURATION,
    MetricKind.BLOOD_PRESSURE_SYSTOLIC,
    MetricKind.BLOOD_PRESSURE_DIASTOLIC,
]

DEFAULT_AGE = 35
BASELINE_VO2 = 35.0
DEFAULT_RESTING_HR = 70.0


class RiskLevel(Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    VERY_HIGH = "very_high"

    @property
    def display_name(self) -> str:
        return {
            "low": "Low Risk",
            "moderate": "Moderate Risk",
            "high": "High Risk",
            "very_high": "Very High Risk",
        }[self.value]

    @property
    def display_name_cn(self) -> str:
        return {"low": "低风险", "moderate": "中等风险", "high": "高风险", "very_high": "极高风险"}[self.value]


class TrendDirection(Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class StressLevel(Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    VERY_HIGH = "very_high"


class AutonomicBalance(Enum):
    BALANCED = "balanced"
    SYMPATHETIC_DOMINANT = "sympathetic_dominant"
    PARASYMPATHETIC_DOMINANT = "parasympathetic_dominant"


class RecoveryStatus(Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


@dataclass
class CardiacMetrics:
    resting_heart_rate: Optional[float] = None
    heart_rate_variability: Optional[float] = None
    heart_rate_recovery: Optional[float] = None
    vo2_max: Optional[float] = None
    walking_heart_rate: Optional[float] = None
    oxygen_saturation: Optional[float] = None
    systolic_bp: Optional[float] = None
    diastolic_bp: Optional[float] = None
    fitness_age: Optional[float] = None
    cardiac_efficiency: Optional[float] = None
    autonomic_balance: Optional[float] = None


@dataclass
class CardiacInsight:
    type: str  # warning, improvement
    severity: str
    title: str
    title_cn: str
    message: str
    message_cn: str
    related_metrics: List[MetricKind] = field(default_factory=list)


@dataclass
class CardiacRecommendation:
    category: str  # medical, lifestyle, exercise
    priority: str
    title: str
    title_cn: str
    description: str
    description_cn: str
    actionable: bool = True


@dataclass
class CardiacProfile:
    overall_score: float
    risk_level: RiskLevel
    metrics: CardiacMetrics
    insights: List[CardiacInsight]
    recommendations: List[CardiacRecommendation]
    assessment_date: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "assessment_date": self.assessment_date.isoformat(),
            "overall_score": self.overall_score,
            "risk_level": self.risk_level.value,
            "metrics": asdict(self.metrics),
            "insights": [
                {**asdict(i), "related_metrics": [m.value for m in i.related_metrics]}
                for i in self.insights
            ],
            "recommendations": [asdict(r) for r in self.recommendations],
        }


@dataclass
class HRVAnalysis:
    average: float
    trend: TrendDirection
    stress_level: StressLevel
    autonomic_balance: AutonomicBalance
    recovery: RecoveryStatus


def fitness_age(vo2_max: Optional[float], age: int = DEFAULT_AGE) -> Optional[float]:
    """Age adjusted by distance from a baseline VO2 max, clamped to 18-80."""
    if vo2_max is None:
        return None
    return max(18.0, min(80.0, age - (vo2_max - BASELINE_VO2) * 0.5))


def cardiac_efficiency(resting_hr: Optional[float], vo2_max: Optional[float]) -> Optional[float]:
    if resting_hr is None or vo2_max is None or resting_hr == 0:
        return None
    return vo2_max / resting_hr * 100


def autonomic_balance(hrv: Optional[float], resting_hr: Optional[float]) -> Optional[float]:
    if hrv is None or resting_hr is None:
        return None
    return ((hrv / 50.0) + (100 - resting_hr) / 40.0) / 2.0 * 100


def blood_pressure_score(systolic: float, diastolic: float) -> float:
    if systolic < 120 and diastolic < 80:
        return 100.0
    if systolic < 130 and diastolic < 85:
        return 85.0
    if systolic < 140 and diastolic < 90:
        return 70.0
    return 40.0


def overall_cardiac_score(metrics: CardiacMetrics) -> float:
    """
    Weighted sum of available component scores.

    Weights: resting HR 0.2, HRV 0.25, VO2 max 0.3, recovery 0.15, blood
    pressure 0.1. Missing components contribute nothing; with none at all
    the score is 50.
    """
    score = 0.0
    components = 0

    if metrics.resting_heart_rate is not None:
        score += max(0.0, min(100.0, 100 - (metrics.resting_heart_rate - 50) * 2)) * 0.2
        components += 1
    if metrics.heart_rate_variability is not None:
        score += min(100.0, metrics.heart_rate_variability * 2) * 0.25
        components += 1
    if metrics.vo2_max is not None:
        score += min(100.0, metrics.vo2_max * 2) * 0.3
        components += 1
    if metrics.heart_rate_recovery is not None:
        score += min(100.0, metrics.heart_rate_recovery * 4) * 0.15
        components += 1
    if metrics.systolic_bp is not None and metrics.diastolic_bp is not None:
        score += blood_pressure_score(metrics.systolic_bp, metrics.diastolic_bp) * 0.1
        components += 1

    return score if components > 0 else 50.0


def risk_level(score: float, metrics: CardiacMetrics) -> RiskLevel:
    if metrics.systolic_bp is not None and metrics.systolic_bp > 160:
        return RiskLevel.VERY_HIGH
    if metrics.diastolic_bp is not None and metrics.diastolic_bp > 100:
        return RiskLevel.VERY_HIGH
    if metrics.resting_heart_rate is not None and metrics.resting_heart_rate > 100:
        return RiskLevel.HIGH

    if score >= 80:
        return RiskLevel.LOW
    if score >= 65:
        return RiskLevel.MODERATE
    if score >= 50:
        return RiskLevel.HIGH
    return RiskLevel.VERY_HIGH


def cardiac_insights(metrics: CardiacMetrics) -> List[CardiacInsight]:
    insights = []
    hrv = metrics.heart_rate_variability
    if hrv is not None:
        if hrv < 20:
            insights.append(CardiacInsight(
                type="warning",
                severity="high",
                title="Low Heart Rate Variability",
                title_cn="心率变异性偏低",
                message="Your HRV is below optimal range, indicating potential stress or fatigue.",
                message_cn="您的心率变异性低于最佳范围，可能表示压力或疲劳。",
                related_metrics=[MetricKind.HEART_RATE_VARIABILITY],
            ))
        elif hrv > 50:
            insights.append(CardiacInsight(
                type="improvement",
                severity="info",
                title="Excellent Heart Rate Variability",
                title_cn="心率变异性优秀",
                message="Your HRV indicates good recovery and low stress levels.",
                message_cn="您的心率变异性表明恢复良好且压力水平较低。",
                related_metrics=[MetricKind.HEART_RATE_VARIABILITY],
            ))

    if metrics.vo2_max is not None and metrics.vo2_max < 30:
        insights.append(CardiacInsight(
            type="warning",
            severity="moderate",
            title="Below Average Cardiovascular Fitness",
            title_cn="心血管健康水平偏低",
            message="Your VO₂ Max suggests room for cardiovascular fitness improvement.",
            message_cn="您的最大摄氧量表明心血管健康有待提高。",
            related_metrics=[MetricKind.VO2_MAX],
        ))
    return insights


def cardiac_recommendations(metrics: CardiacMetrics, level: RiskLevel) -> List[CardiacRecommendation]:
    recommendations = []
    if level in (RiskLevel.HIGH, RiskLevel.VERY_HIGH):
        recommendations.append(CardiacRecommendation(
            category="medical",
            priority="high",
            title="Consult Healthcare Provider",
            title_cn="咨询医疗专业人员",
            description="Your cardiac metrics suggest consulting with a healthcare provider for evaluation.",
            description_cn="您的心脏指标建议咨询医疗专业人员进行评估。",
        ))
    if metrics.heart_rate_variability is not None and metrics.heart_rate_variability < 30:
        recommendations.append(CardiacRecommendation(
            category="lifestyle",
            priority="medium",
            title="Stress Management",
            title_cn="压力管理",
            description="Consider meditation, yoga, or other stress-reduction techniques to improve HRV.",
            description_cn="考虑冥想、瑜伽或其他减压技巧来改善心率变异性。",
        ))
    if metrics.vo2_max is not None and metrics.vo2_max < 35:
        recommendations.append(CardiacRecommendation(
            category="exercise",
            priority="medium",
            title="Increase Aerobic Exercise",
            title_cn="增加有氧运动",
            description="Regular cardio exercise can improve your VO₂ Max and overall cardiac health.",
            description_cn="规律的有氧运动可以提高您的最大摄氧量和整体心脏健康。",
        ))
    return recommendations


class CardiacAnalyzer:
    """Builds cardiac profiles and HRV analyses from aggregated metrics."""

    def __init__(self, aggregator: MetricAggregator, age: int = DEFAULT_AGE, max_workers: int = 4):
        self.aggregator = aggregator
        self.age = age
        self.max_workers = max_workers

    def latest(self, kind: MetricKind, days: int) -> Optional[float]:
        """
        Last daily value of a metric in the window.

        Returns None when the metric is not tracked or the read fails.

        Raises:
            AuthorizationDenied: If the store refuses access
        """
        try:
            return self.aggregator.trend(kind, days).latest
        except AuthorizationDenied:
            raise
        except HealthDataError as e:
            logger.debug(f"[CARDIAC] No {kind} data: {e}")
            return None

    def profile(self, window_days: int = 30) -> CardiacProfile:
        logger.info(f"[CARDIAC] Generating cardiac profile for {window_days} days")

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {kind: executor.submit(self.latest, kind, window_days) for kind in CARDIAC_METRICS}
            values: Dict[MetricKind, Optional[float]] = {kind: f.result() for kind, f in futures.items()}

        rhr = values[MetricKind.RESTING_HEART_RATE]
        hrv = values[MetricKind.HEART_RATE_VARIABILITY]
        vo2 = values[MetricKind.VO2_MAX]

        metrics = CardiacMetrics(
            resting_heart_rate=rhr,
            heart_rate_variability=hrv,
            heart_rate_recovery=values[MetricKind.HEART_RATE_RECOVERY],
            vo2_max=vo2,
            walking_heart_rate=values[MetricKind.WALKING_HEART_RATE_AVERAGE],
            oxygen_saturation=values[MetricKind.OXYGEN_SATURATION],
            systolic_bp=values[MetricKind.BLOOD_PRESSURE_SYSTOLIC],
            diastolic_bp=values[MetricKind.BLOOD_PRESSURE_DIASTOLIC],
            fitness_age=fitness_age(vo2, self.age),
            cardiac_efficiency=cardiac_efficiency(rhr, vo2),
            autonomic_balance=autonomic_balance(hrv, rhr),
        )

        score = overall_cardiac_score(metrics)
        level = risk_level(score, metrics)
        logger.info(f"[CARDIAC] Score {score:.1f}, risk {level.value}")

        return CardiacProfile(
            overall_score=score,
            risk_level=level,
            metrics=metrics,
            insights=cardiac_insights(metrics),
            recommendations=cardiac_recommendations(metrics, level),
        )

    def analyze_hrv(self, days: int = 7) -> HRVAnalysis:
        """
        Classify recent heart rate variability.

        Raises:
            HealthDataError: If HRV data cannot be read
        """
        trend = self.aggregator.trend(MetricKind.HEART_RATE_VARIABILITY, days)
        average = trend.average

        if trend.change_rate > 0.1:
            direction = TrendDirection.IMPROVING
        elif trend.change_rate < -0.1:
            direction = TrendDirection.DECLINING
        else:
            direction = TrendDirection.STABLE

        if average > 40:
            stress = StressLevel.LOW
        elif average > 30:
            stress = StressLevel.MODERATE
        elif average > 20:
            stress = StressLevel.HIGH
        else:
            stress = StressLevel.VERY_HIGH

        if average > 45:
            recovery = RecoveryStatus.EXCELLENT
        elif average > 35:
            recovery = RecoveryStatus.GOOD
        elif average > 25:
            recovery = RecoveryStatus.FAIR
        else:
            recovery = RecoveryStatus.POOR

        resting = self.latest(MetricKind.RESTING_HEART_RATE, days)
        if resting is None:
            resting = DEFAULT_RESTING_HR
        balance_score = autonomic_balance(average, resting)
        if balance_score > 70:
            balance = AutonomicBalance.BALANCED
        elif resting > 70:
            balance = AutonomicBalance.SYMPATHETIC_DOMINANT
        else:
            balance = AutonomicBalance.PARASYMPATHETIC_DOMINANT

        return HRVAnalysis(
            average=average,
            trend=direction,
            stress_level=stress,
            autonomic_balance=balance,
            recovery=recovery,
        )
