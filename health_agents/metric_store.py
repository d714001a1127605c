"""
Metric Store Adapter for Health Buddy

Read-only boundary to the host health-data source. The pipeline only ever
authorizes and reads; producers (device sync, file imports) feed the store
from outside.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from pathlib import Path
from typing import Dict, List, Tuple, Union

import pandas as pd

from .errors import AuthorizationDenied, DataUnavailable, QueryFailed
from .metrics import METRICS, Aggregation, MetricKind, metric_from_identifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricSample:
    """One calendar day's statistic for a metric."""
    date: date
    value: float

    def to_dict(self) -> dict:
        return {"date": self.date.isoformat(), "value": self.value}

    @classmethod
    def from_dict(cls, data: dict) -> "MetricSample":
        return cls(date=date.fromisoformat(data["date"]), value=float(data["value"]))


class SleepStage(Enum):
    IN_BED = "inBed"
    AWAKE = "awake"
    ASLEEP_UNSPECIFIED = "asleepUnspecified"
    ASLEEP_CORE = "asleepCore"
    ASLEEP_REM = "asleepREM"
    ASLEEP_DEEP = "asleepDeep"
    ASLEEP = "asleep"  # legacy single asleep state

    @property
    def is_asleep(self) -> bool:
        return self in ASLEEP_STAGES


ASLEEP_STAGES = frozenset({
    SleepStage.ASLEEP_UNSPECIFIED,
    SleepStage.ASLEEP_CORE,
    SleepStage.ASLEEP_REM,
    SleepStage.ASLEEP_DEEP,
    SleepStage.ASLEEP,
})


@dataclass(frozen=True)
class SleepInterval:
    """A raw sleep-analysis segment."""
    start: datetime
    end: datetime
    stage: SleepStage = SleepStage.ASLEEP_UNSPECIFIED


class MetricStore(ABC):
    """
    Abstract read interface to the host health store.

    Implementations return one MetricSample per calendar day that has data.
    Each call returns a single result or raises once.
    """

    @abstractmethod
    def authorize(self) -> None:
        """
        Request read access.

        Raises:
            AuthorizationDenied: If access has not been granted
        """
        pass

    @abstractmethod
    def read_samples(self, kind: MetricKind, start: date, end: date) -> List[MetricSample]:
        """
        Read daily statistics for a metric, inclusive of both dates.

        Raises:
            AuthorizationDenied: If access has not been granted
            DataUnavailable: If the store does not track this metric
            QueryFailed: On any other read failure
        """
        pass

    @abstractmethod
    def read_sleep_intervals(self, start: datetime, end: datetime) -> List[SleepInterval]:
        """
        Read raw sleep segments overlapping [start, end).

        Raises:
            AuthorizationDenied: If access has not been granted
            DataUnavailable: If the store has no sleep data at all
            QueryFailed: On any other read failure
        """
        pass


def _as_datetime(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time())


class InMemoryMetricStore(MetricStore):
    """
    Process-local metric store.

    Raw readings are kept per metric and bucketed into calendar days on read,
    using the metric's configured daily statistic (sum or average).
    """

    def __init__(self, authorized: bool = True):
        self.authorized = authorized
        self._readings: Dict[MetricKind, List[Tuple[datetime, float]]] = defaultdict(list)
        self._sleep: List[SleepInterval] = []
        self._lock = threading.Lock()

    def add_sample(self, kind: MetricKind, when: Union[date, datetime], value: float) -> None:
        """Record a raw reading."""
        if kind is MetricKind.SLEEP_DURATION_HOURS:
            raise ValueError("Sleep is recorded as intervals; use add_sleep()")
        with self._lock:
            self._readings[kind].append((_as_datetime(when), float(value)))

    def add_daily(self, kind: MetricKind, day: date, value: float) -> None:
        """Record a pre-aggregated daily value."""
        self.add_sample(kind, day, value)

    def add_sleep(
        self,
        start: datetime,
        end: datetime,
        stage: SleepStage = SleepStage.ASLEEP_UNSPECIFIED,
    ) -> None:
        if end <= start:
            raise ValueError(f"Sleep interval must end after it starts: {start} -> {end}")
        with self._lock:
            self._sleep.append(SleepInterval(start=start, end=end, stage=stage))

    def authorize(self) -> None:
        if not self.authorized:
            raise AuthorizationDenied("Health data access has not been granted")

    def read_samples(self, kind: MetricKind, start: date, end: date) -> List[MetricSample]:
        self.authorize()
        if kind is MetricKind.SLEEP_DURATION_HOURS:
            raise QueryFailed("Sleep duration is computed from sleep intervals")

        with self._lock:
            readings = list(self._readings.get(kind, []))
        if not readings:
            raise DataUnavailable(f"No {kind.value} data recorded")

        buckets: Dict[date, List[float]] = defaultdict(list)
        for when, value in readings:
            day = when.date()
            if start <= day <= end:
                buckets[day].append(value)

        use_sum = METRICS[kind].aggregation == Aggregation.SUM
        samples = []
        for day in sorted(buckets):
            values = buckets[day]
            stat = sum(values) if use_sum else sum(values) / len(values)
            samples.append(MetricSample(date=day, value=stat))
        return samples

    def read_sleep_intervals(self, start: datetime, end: datetime) -> List[SleepInterval]:
        self.authorize()
        with self._lock:
            intervals = list(self._sleep)
        if not intervals:
            raise DataUnavailable("No sleep data recorded")
        return [i for i in intervals if i.end > start and i.start < end]


class CsvMetricStore(InMemoryMetricStore):
    """
    Metric store loaded from a CSV export.

    Expected columns: timestamp, metric, value. Sleep rows use
    metric=sleepAnalysis with an `end` timestamp and a `stage` column.
    """

    REQUIRED_COLUMNS = {"timestamp", "metric"}

    def __init__(self, csv_path: Union[str, Path], authorized: bool = True):
        super().__init__(authorized=authorized)
        self.csv_path = Path(csv_path)
        self._load()

    def _load(self) -> None:
        if not self.csv_path.exists():
            raise QueryFailed(f"Export file not found: {self.csv_path}")

        try:
            df = pd.read_csv(self.csv_path)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise QueryFailed(f"Could not parse export {self.csv_path.name}: {e}", cause=e)

        df.columns = [str(c).strip().lower() for c in df.columns]
        missing = self.REQUIRED_COLUMNS - set(df.columns)
        if missing:
            raise QueryFailed(f"Export is missing columns: {', '.join(sorted(missing))}")

        df["timestamp"] = pd.to_datetime(df["timestamp"], errors="coerce")
        df = df.dropna(subset=["timestamp"])

        if "value" not in df.columns:
            df = df.assign(value=float("nan"))

        sleep_rows = df[df["metric"] == "sleepAnalysis"]
        quantity_rows = df[df["metric"] != "sleepAnalysis"]

        loaded = 0
        skipped = 0
        for row in quantity_rows.itertuples(index=False):
            kind = metric_from_identifier(str(row.metric))
            if kind is None or kind is MetricKind.SLEEP_DURATION_HOURS or pd.isna(row.value):
                skipped += 1
                continue
            self.add_sample(kind, row.timestamp.to_pydatetime(), float(row.value))
            loaded += 1

        if not sleep_rows.empty:
            if "end" not in sleep_rows.columns:
                raise QueryFailed("Sleep rows require an 'end' column")
            ends = pd.to_datetime(sleep_rows["end"], errors="coerce")
            stages = sleep_rows["stage"] if "stage" in sleep_rows.columns else None
            for idx, (start_ts, end_ts) in enumerate(zip(sleep_rows["timestamp"], ends)):
                if pd.isna(end_ts) or end_ts <= start_ts:
                    skipped += 1
                    continue
                stage = SleepStage.ASLEEP_UNSPECIFIED
                if stages is not None and isinstance(stages.iloc[idx], str):
                    try:
                        stage = SleepStage(stages.iloc[idx])
                    except ValueError:
                        skipped += 1
                        continue
                self.add_sleep(start_ts.to_pydatetime(), end_ts.to_pydatetime(), stage)
                loaded += 1

        logger.info(f"Loaded {loaded} rows from {self.csv_path.name} ({skipped} skipped)")
