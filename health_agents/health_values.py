"""
Typed health values used to assemble generation context.

Each variant knows how to render itself for a prompt in English or Chinese.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from .metrics import METRICS, MetricKind

BLOOD_PRESSURE_KEY = "bloodPressure"


@dataclass(frozen=True)
class ScalarValue:
    value: float
    unit: str = ""
    unit_cn: str = ""
    decimals: int = 0

    def format(self, lang: str = "en") -> str:
        unit = self.unit_cn if lang.startswith("zh") and self.unit_cn else self.unit
        return f"{self.value:.{self.decimals}f} {unit}".strip()


@dataclass(frozen=True)
class BloodPressureValue:
    systolic: float
    diastolic: float

    def format(self, lang: str = "en") -> str:
        unit = "毫米汞柱" if lang.startswith("zh") else "mmHg"
        return f"{self.systolic:.0f}/{self.diastolic:.0f} {unit}"


@dataclass(frozen=True)
class SleepSummaryValue:
    hours: float
    efficiency: Optional[float] = None

    def format(self, lang: str = "en") -> str:
        if lang.startswith("zh"):
            text = f"{self.hours:.1f} 小时"
            if self.efficiency is not None:
                text += f"（效率 {self.efficiency:.0f}%）"
            return text
        text = f"{self.hours:.1f} hours"
        if self.efficiency is not None:
            text += f" ({self.efficiency:.0f}% efficiency)"
        return text


HealthValue = Union[ScalarValue, BloodPressureValue, SleepSummaryValue]

# Order of the data section in generation prompts; unknown keys go last
PROMPT_PRIORITY: List[str] = [
    MetricKind.STEPS.value,
    MetricKind.HEART_RATE_AVERAGE.value,
    MetricKind.RESTING_HEART_RATE.value,
    BLOOD_PRESSURE_KEY,
    MetricKind.SLEEP_DURATION_HOURS.value,
    MetricKind.ACTIVE_ENERGY.value,
    MetricKind.BODY_MASS.value,
    MetricKind.HEART_RATE_VARIABILITY.value,
    MetricKind.OXYGEN_SATURATION.value,
    MetricKind.VO2_MAX.value,
]


def health_value_for(metric: MetricKind, value: float) -> HealthValue:
    """Wrap a raw metric value in the matching HealthValue variant."""
    if metric is MetricKind.SLEEP_DURATION_HOURS:
        return SleepSummaryValue(hours=value)
    meta = METRICS[metric]
    return ScalarValue(value=value, unit=meta.unit, unit_cn=meta.unit_cn, decimals=meta.decimals)


def merge_blood_pressure(values: Dict[str, HealthValue]) -> Dict[str, HealthValue]:
    """Fold separate systolic/diastolic scalars into a single BloodPressureValue."""
    systolic = values.get(MetricKind.BLOOD_PRESSURE_SYSTOLIC.value)
    diastolic = values.get(MetricKind.BLOOD_PRESSURE_DIASTOLIC.value)
    if not isinstance(systolic, ScalarValue) or not isinstance(diastolic, ScalarValue):
        return dict(values)
    merged = {
        k: v for k, v in values.items()
        if k not in (MetricKind.BLOOD_PRESSURE_SYSTOLIC.value, MetricKind.BLOOD_PRESSURE_DIASTOLIC.value)
    }
    merged[BLOOD_PRESSURE_KEY] = BloodPressureValue(systolic=systolic.value, diastolic=diastolic.value)
    return merged


def ordered_items(values: Dict[str, HealthValue]) -> List[tuple]:
    """Items sorted by PROMPT_PRIORITY, unknown keys afterwards in insertion order."""
    rank = {key: i for i, key in enumerate(PROMPT_PRIORITY)}
    return sorted(values.items(), key=lambda item: rank.get(item[0], len(rank)))
