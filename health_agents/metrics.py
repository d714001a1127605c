"""
Health Metrics Dictionary for Health Buddy

Static metadata for every supported metric kind: localized display names,
units, categories, normal ranges and the daily statistic a store should use.
The table is pure configuration and is never mutated at runtime.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple


class MetricKind(Enum):
    """Supported physiological metrics."""
    STEPS = "steps"
    HEART_RATE_AVERAGE = "heartRateAverage"
    RESTING_HEART_RATE = "restingHeartRate"
    ACTIVE_ENERGY = "activeEnergy"
    BODY_MASS = "bodyMass"
    SLEEP_DURATION_HOURS = "sleepDurationHours"
    HEART_RATE_VARIABILITY = "heartRateVariability"
    HEART_RATE_RECOVERY = "heartRateRecovery"
    VO2_MAX = "vo2Max"
    WALKING_HEART_RATE_AVERAGE = "walkingHeartRateAverage"
    OXYGEN_SATURATION = "oxygenSaturation"
    BLOOD_PRESSURE_SYSTOLIC = "bloodPressureSystolic"
    BLOOD_PRESSURE_DIASTOLIC = "bloodPressureDiastolic"
    BODY_TEMPERATURE = "bodyTemperature"
    RESPIRATORY_RATE = "respiratoryRate"

    def __str__(self) -> str:
        return self.value


class MetricCategory(Enum):
    """Grouping used for display and filtering."""
    ACTIVITY = "activity"
    VITALS = "vitals"
    BODY = "body"
    SLEEP = "sleep"
    NUTRITION = "nutrition"
    MINDFULNESS = "mindfulness"


class Aggregation(Enum):
    """Daily statistic a store computes for a metric."""
    SUM = "sum"
    AVERAGE = "average"
    INTERVALS = "intervals"  # sleep: computed from raw intervals


CATEGORY_NAMES = {
    MetricCategory.ACTIVITY: ("Activity", "活动"),
    MetricCategory.VITALS: ("Vitals", "生命体征"),
    MetricCategory.BODY: ("Body Measurements", "身体测量"),
    MetricCategory.SLEEP: ("Sleep", "睡眠"),
    MetricCategory.NUTRITION: ("Nutrition", "营养"),
    MetricCategory.MINDFULNESS: ("Mindfulness", "正念"),
}


@dataclass(frozen=True)
class MetricInfo:
    """Static description of one metric kind."""
    identifier: str
    display_name: str
    display_name_cn: str
    unit: str
    unit_cn: str
    description: str
    description_cn: str
    category: MetricCategory
    normal_range: Optional[Tuple[float, float]] = None
    higher_is_better: bool = True
    aggregation: Aggregation = Aggregation.AVERAGE
    decimals: int = 0


METRICS: Dict[MetricKind, MetricInfo] = {
    MetricKind.STEPS: MetricInfo(
        identifier="steps",
        display_name="Steps",
        display_name_cn="步数",
        unit="steps",
        unit_cn="步",
        description="Number of steps taken throughout the day",
        description_cn="一天中走的步数",
        category=MetricCategory.ACTIVITY,
        normal_range=(8000, 12000),
        higher_is_better=True,
        aggregation=Aggregation.SUM,
    ),
    MetricKind.HEART_RATE_AVERAGE: MetricInfo(
        identifier="heartRateAverage",
        display_name="Average Heart Rate",
        display_name_cn="平均心率",
        unit="bpm",
        unit_cn="次/分",
        description="Average heart rate throughout the day",
        description_cn="一天中的平均心率",
        category=MetricCategory.VITALS,
        normal_range=(60, 100),
        higher_is_better=False,
    ),
    MetricKind.RESTING_HEART_RATE: MetricInfo(
        identifier="restingHeartRate",
        display_name="Resting Heart Rate",
        display_name_cn="静息心率",
        unit="bpm",
        unit_cn="次/分",
        description="Heart rate while at rest",
        description_cn="静息时的心率",
        category=MetricCategory.VITALS,
        normal_range=(50, 90),
        higher_is_better=False,
    ),
    MetricKind.ACTIVE_ENERGY: MetricInfo(
        identifier="activeEnergy",
        display_name="Active Energy",
        display_name_cn="活动能量",
        unit="kcal",
        unit_cn="千卡",
        description="Calories burned through physical activity",
        description_cn="通过体力活动消耗的卡路里",
        category=MetricCategory.ACTIVITY,
        normal_range=(200, 800),
        higher_is_better=True,
        aggregation=Aggregation.SUM,
    ),
    MetricKind.BODY_MASS: MetricInfo(
        identifier="bodyMass",
        display_name="Body Weight",
        display_name_cn="体重",
        unit="kg",
        unit_cn="公斤",
        description="Current body weight",
        description_cn="当前体重",
        category=MetricCategory.BODY,
        higher_is_better=False,
        decimals=1,
    ),
    MetricKind.SLEEP_DURATION_HOURS: MetricInfo(
        identifier="sleepDurationHours",
        display_name="Sleep Duration",
        display_name_cn="睡眠时长",
        unit="hours",
        unit_cn="小时",
        description="Total hours of sleep per night",
        description_cn="每晚的总睡眠小时数",
        category=MetricCategory.SLEEP,
        normal_range=(7, 9),
        higher_is_better=True,
        aggregation=Aggregation.INTERVALS,
        decimals=1,
    ),
    MetricKind.HEART_RATE_VARIABILITY: MetricInfo(
        identifier="heartRateVariability",
        display_name="Heart Rate Variability",
        display_name_cn="心率变异性",
        unit="ms",
        unit_cn="毫秒",
        description="Variation in time between heartbeats (SDNN)",
        description_cn="心跳间隔时间的变化",
        category=MetricCategory.VITALS,
        normal_range=(20, 100),
        higher_is_better=True,
    ),
    MetricKind.HEART_RATE_RECOVERY: MetricInfo(
        identifier="heartRateRecovery",
        display_name="Heart Rate Recovery",
        display_name_cn="心率恢复",
        unit="bpm",
        unit_cn="次/分",
        description="Drop in heart rate one minute after exercise",
        description_cn="运动后一分钟内心率的下降",
        category=MetricCategory.VITALS,
        normal_range=(12, 60),
        higher_is_better=True,
    ),
    MetricKind.VO2_MAX: MetricInfo(
        identifier="vo2Max",
        display_name="VO2 Max",
        display_name_cn="最大摄氧量",
        unit="ml/kg/min",
        unit_cn="毫升/公斤/分",
        description="Maximum rate of oxygen consumption during exercise",
        description_cn="运动时的最大耗氧速率",
        category=MetricCategory.ACTIVITY,
        normal_range=(30, 60),
        higher_is_better=True,
        decimals=1,
    ),
    MetricKind.WALKING_HEART_RATE_AVERAGE: MetricInfo(
        identifier="walkingHeartRateAverage",
        display_name="Walking Heart Rate",
        display_name_cn="步行平均心率",
        unit="bpm",
        unit_cn="次/分",
        description="Average heart rate while walking",
        description_cn="步行时的平均心率",
        category=MetricCategory.VITALS,
        normal_range=(70, 120),
        higher_is_better=False,
    ),
    MetricKind.OXYGEN_SATURATION: MetricInfo(
        identifier="oxygenSaturation",
        display_name="Blood Oxygen",
        display_name_cn="血氧饱和度",
        unit="%",
        unit_cn="%",
        description="Percentage of oxygen-saturated hemoglobin",
        description_cn="血红蛋白的氧饱和百分比",
        category=MetricCategory.VITALS,
        normal_range=(95, 100),
        higher_is_better=True,
    ),
    MetricKind.BLOOD_PRESSURE_SYSTOLIC: MetricInfo(
        identifier="bloodPressureSystolic",
        display_name="Systolic Blood Pressure",
        display_name_cn="收缩压",
        unit="mmHg",
        unit_cn="毫米汞柱",
        description="Pressure in the arteries when the heart beats",
        description_cn="心脏搏动时的动脉压力",
        category=MetricCategory.VITALS,
        normal_range=(90, 120),
        higher_is_better=False,
    ),
    MetricKind.BLOOD_PRESSURE_DIASTOLIC: MetricInfo(
        identifier="bloodPressureDiastolic",
        display_name="Diastolic Blood Pressure",
        display_name_cn="舒张压",
        unit="mmHg",
        unit_cn="毫米汞柱",
        description="Pressure in the arteries between heartbeats",
        description_cn="心跳间隙的动脉压力",
        category=MetricCategory.VITALS,
        normal_range=(60, 80),
        higher_is_better=False,
    ),
    MetricKind.BODY_TEMPERATURE: MetricInfo(
        identifier="bodyTemperature",
        display_name="Body Temperature",
        display_name_cn="体温",
        unit="°C",
        unit_cn="°C",
        description="Core body temperature",
        description_cn="核心体温",
        category=MetricCategory.VITALS,
        normal_range=(36.1, 37.2),
        higher_is_better=False,
        decimals=1,
    ),
    MetricKind.RESPIRATORY_RATE: MetricInfo(
        identifier="respiratoryRate",
        display_name="Respiratory Rate",
        display_name_cn="呼吸频率",
        unit="breaths/min",
        unit_cn="次/分",
        description="Breaths taken per minute at rest",
        description_cn="静息时每分钟呼吸次数",
        category=MetricCategory.VITALS,
        normal_range=(12, 20),
        higher_is_better=False,
    ),
}

# Metrics the query pipeline and clarification prompts treat as primary
CORE_METRICS: List[MetricKind] = [
    MetricKind.STEPS,
    MetricKind.HEART_RATE_AVERAGE,
    MetricKind.RESTING_HEART_RATE,
    MetricKind.ACTIVE_ENERGY,
    MetricKind.BODY_MASS,
    MetricKind.SLEEP_DURATION_HOURS,
]


def _is_cn(lang: str) -> bool:
    return lang.lower().startswith("zh")


def info(kind: MetricKind) -> MetricInfo:
    """Get metadata for a metric kind."""
    return METRICS[kind]


def metrics_in_category(category: MetricCategory) -> Dict[MetricKind, MetricInfo]:
    """Get all metrics in a category."""
    return {k: v for k, v in METRICS.items() if v.category == category}


def display_name(kind: MetricKind, lang: str = "en") -> str:
    meta = METRICS.get(kind)
    if meta is None:
        return kind.value
    return meta.display_name_cn if _is_cn(lang) else meta.display_name


def unit(kind: MetricKind, lang: str = "en") -> str:
    meta = METRICS.get(kind)
    if meta is None:
        return ""
    return meta.unit_cn if _is_cn(lang) else meta.unit


def description(kind: MetricKind, lang: str = "en") -> str:
    meta = METRICS.get(kind)
    if meta is None:
        return ""
    return meta.description_cn if _is_cn(lang) else meta.description


def is_normal_range(value: float, kind: MetricKind) -> Optional[bool]:
    """
    Check whether a value falls inside the metric's normal range.

    Returns:
        True/False, or None when the metric has no configured range
    """
    meta = METRICS.get(kind)
    if meta is None or meta.normal_range is None:
        return None
    low, high = meta.normal_range
    return low <= value <= high


def health_assessment(value: float, kind: MetricKind, lang: str = "en") -> str:
    """
    Describe a value relative to the normal range.

    Below the range reads as "Below Normal" for higher-is-better metrics and
    "Excellent" otherwise; above the range is the mirror image.
    """
    cn = _is_cn(lang)
    meta = METRICS.get(kind)
    if meta is None or meta.normal_range is None:
        return "正常范围" if cn else "Normal"

    low, high = meta.normal_range
    if low <= value <= high:
        return "正常" if cn else "Normal"
    if value < low:
        if meta.higher_is_better:
            return "偏低" if cn else "Below Normal"
        return "优秀" if cn else "Excellent"
    if meta.higher_is_better:
        return "优秀" if cn else "Excellent"
    return "偏高" if cn else "Above Normal"


def format_value(value: float, kind: MetricKind, lang: str = "en") -> str:
    """Format a value with the metric's precision and localized unit."""
    meta = METRICS.get(kind)
    decimals = meta.decimals if meta else 1
    return f"{value:.{decimals}f} {unit(kind, lang)}".strip()


def metric_from_identifier(identifier: str) -> Optional[MetricKind]:
    """Look up a MetricKind by its camelCase identifier."""
    try:
        return MetricKind(identifier)
    except ValueError:
        return None


def category_name(category: MetricCategory, lang: str = "en") -> str:
    en, cn = CATEGORY_NAMES[category]
    return cn if _is_cn(lang) else en


def detect_language(text: str) -> str:
    """Return "zh" when the text contains CJK characters, else "en"."""
    for ch in text:
        if "一" <= ch <= "鿿":
            return "zh"
    return "en"
