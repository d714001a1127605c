"""
Metric Aggregation Engine for Health Buddy

Turns daily store samples into windowed trends and period comparisons.
Results are cached by (kind, window, as_of) so repeated questions in a
conversation do not go back to the store.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, List, Optional

from .aggregation_cache import AggregationCache
from .errors import HealthDataError, QueryFailed
from .metric_store import MetricSample, MetricStore, SleepInterval
from .metrics import MetricKind

logger = logging.getLogger(__name__)

EPSILON = 1e-9


def _safe_rate(delta: float, base: float) -> float:
    return delta / max(EPSILON, abs(base))


@dataclass
class Trend:
    """Daily points for a window ending on as_of."""
    window_days: int
    points: List[MetricSample] = field(default_factory=list)
    average: float = 0.0
    change_rate: float = 0.0

    @classmethod
    def from_points(cls, window_days: int, points: List[MetricSample]) -> "Trend":
        if not points:
            return cls(window_days=window_days)
        values = [p.value for p in points]
        first, last = values[0], values[-1]
        return cls(
            window_days=window_days,
            points=list(points),
            average=sum(values) / len(values),
            change_rate=_safe_rate(last - first, first),
        )

    @property
    def latest(self) -> Optional[float]:
        return self.points[-1].value if self.points else None

    def to_dict(self) -> dict:
        return {
            "window_days": self.window_days,
            "points": [p.to_dict() for p in self.points],
            "average": self.average,
            "change_rate": self.change_rate,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Trend":
        return cls(
            window_days=int(data["window_days"]),
            points=[MetricSample.from_dict(p) for p in data["points"]],
            average=float(data["average"]),
            change_rate=float(data["change_rate"]),
        )


@dataclass
class Comparison:
    """Current window versus the adjacent previous window of the same length."""
    current_window_days: int
    previous_window_days: int
    current_average: float
    previous_average: float
    delta: float
    delta_rate: float
    current_start: date
    current_end: date
    previous_start: date
    previous_end: date

    def to_dict(self) -> dict:
        return {
            "current_window_days": self.current_window_days,
            "previous_window_days": self.previous_window_days,
            "current_average": self.current_average,
            "previous_average": self.previous_average,
            "delta": self.delta,
            "delta_rate": self.delta_rate,
            "current_start": self.current_start.isoformat(),
            "current_end": self.current_end.isoformat(),
            "previous_start": self.previous_start.isoformat(),
            "previous_end": self.previous_end.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Comparison":
        return cls(
            current_window_days=int(data["current_window_days"]),
            previous_window_days=int(data["previous_window_days"]),
            current_average=float(data["current_average"]),
            previous_average=float(data["previous_average"]),
            delta=float(data["delta"]),
            delta_rate=float(data["delta_rate"]),
            current_start=date.fromisoformat(data["current_start"]),
            current_end=date.fromisoformat(data["current_end"]),
            previous_start=date.fromisoformat(data["previous_start"]),
            previous_end=date.fromisoformat(data["previous_end"]),
        )


def normalize_samples(samples: List[MetricSample]) -> List[MetricSample]:
    """Sort ascending by date and keep the last value seen for each date."""
    by_day: Dict[date, MetricSample] = {}
    for sample in samples:
        by_day[sample.date] = sample
    return [by_day[d] for d in sorted(by_day)]


def daily_sleep_hours(intervals: List[SleepInterval], start: date, end: date) -> List[MetricSample]:
    """
    Bucket asleep time into calendar days.

    Each asleep interval is split at local midnight and the overlap is added
    to the day it falls on. Overlap outside [start, end] is dropped and every
    day in the window is present, zero when nothing was recorded.

    Args:
        intervals: Raw sleep segments, any stage
        start: First day of the window
        end: Last day of the window (inclusive)

    Returns:
        One sample per day in hours, ascending
    """
    if end < start:
        return []

    seconds: Dict[date, float] = {}
    day = start
    while day <= end:
        seconds[day] = 0.0
        day += timedelta(days=1)

    for interval in intervals:
        if not interval.stage.is_asleep or interval.end <= interval.start:
            continue
        cursor = interval.start
        while cursor < interval.end:
            next_midnight = datetime.combine(cursor.date() + timedelta(days=1), time())
            segment_end = min(next_midnight, interval.end)
            bucket = cursor.date()
            if bucket in seconds:
                seconds[bucket] += (segment_end - cursor).total_seconds()
            cursor = segment_end

    return [MetricSample(date=d, value=seconds[d] / 3600.0) for d in sorted(seconds)]


class MetricAggregator:
    """
    Computes trends and comparisons over a MetricStore.

    Every entry point checks the cache first; a hit never touches the store.
    """

    def __init__(
        self,
        store: MetricStore,
        cache: Optional[AggregationCache] = None,
        clock: Callable[[], datetime] = datetime.now,
        max_workers: int = 4,
    ):
        self.store = store
        self.cache = cache if cache is not None else AggregationCache()
        self.clock = clock
        self.max_workers = max_workers

    def today(self) -> date:
        return self.clock().date()

    def fetch_daily(
        self,
        metric: MetricKind,
        start: date,
        end: date,
        use_cache: bool = True,
    ) -> List[MetricSample]:
        """
        Daily samples for [start, end], inclusive.

        Raises:
            AuthorizationDenied: If store access is denied
            DataUnavailable: If the store does not track the metric
            QueryFailed: On any other store failure
        """
        key = AggregationCache.daily_key(metric, start, end)
        if use_cache:
            cached = self.cache.get_json(key)
            if cached is not None:
                logger.debug(f"[AGGREGATION] Cache hit {key}")
                try:
                    return [MetricSample.from_dict(p) for p in cached]
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"[AGGREGATION] Discarding bad cache entry {key}: {e}")
                    self.cache.remove(key)
            logger.debug(f"[AGGREGATION] Cache miss {key}")

        samples = self._read_store(metric, start, end)
        self.cache.set_json(key, [s.to_dict() for s in samples])
        return samples

    def trend(
        self,
        metric: MetricKind,
        days: int,
        as_of: Optional[date] = None,
        use_cache: bool = True,
    ) -> Trend:
        if days < 1:
            raise ValueError(f"Trend window must be at least one day, got {days}")
        as_of = as_of or self.today()
        key = AggregationCache.trend_key(metric, days, as_of)

        if use_cache:
            cached = self.cache.get_json(key)
            if cached is not None:
                try:
                    trend = Trend.from_dict(cached)
                    logger.debug(f"[AGGREGATION] Cache hit {key}")
                    return trend
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"[AGGREGATION] Discarding bad cache entry {key}: {e}")
                    self.cache.remove(key)

        start = as_of - timedelta(days=days - 1)
        points = self.fetch_daily(metric, start, as_of, use_cache=use_cache)
        trend = Trend.from_points(days, points)
        self.cache.set_json(key, trend.to_dict())
        logger.info(f"[AGGREGATION] {metric} trend over {days}d: {len(points)} points, avg {trend.average:.2f}")
        return trend

    def compare(
        self,
        metric: MetricKind,
        window_days: int,
        as_of: Optional[date] = None,
        use_cache: bool = True,
    ) -> Comparison:
        """
        Compare the window ending on as_of with the window just before it.

        The two windows are fetched in parallel and joined before the delta
        is computed.
        """
        if window_days < 1:
            raise ValueError(f"Comparison window must be at least one day, got {window_days}")
        as_of = as_of or self.today()
        key = AggregationCache.comparison_key(metric, window_days, as_of)

        if use_cache:
            cached = self.cache.get_json(key)
            if cached is not None:
                try:
                    comparison = Comparison.from_dict(cached)
                    logger.debug(f"[AGGREGATION] Cache hit {key}")
                    return comparison
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"[AGGREGATION] Discarding bad cache entry {key}: {e}")
                    self.cache.remove(key)

        current_end = as_of
        current_start = as_of - timedelta(days=window_days - 1)
        previous_end = current_start - timedelta(days=1)
        previous_start = previous_end - timedelta(days=window_days - 1)

        with ThreadPoolExecutor(max_workers=2) as executor:
            current_future = executor.submit(self.fetch_daily, metric, current_start, current_end, use_cache)
            previous_future = executor.submit(self.fetch_daily, metric, previous_start, previous_end, use_cache)
            current = current_future.result()
            previous = previous_future.result()

        current_avg = _average(current)
        previous_avg = _average(previous)
        delta = current_avg - previous_avg

        comparison = Comparison(
            current_window_days=window_days,
            previous_window_days=window_days,
            current_average=current_avg,
            previous_average=previous_avg,
            delta=delta,
            delta_rate=_safe_rate(delta, previous_avg),
            current_start=current_start,
            current_end=current_end,
            previous_start=previous_start,
            previous_end=previous_end,
        )
        self.cache.set_json(key, comparison.to_dict())
        return comparison

    def invalidate(self, metric: Optional[MetricKind] = None) -> None:
        """Drop cached aggregates for one metric, or all of them."""
        if metric is None:
            self.cache.clear()
        else:
            self.cache.clear_metric(metric)

    def _read_store(self, metric: MetricKind, start: date, end: date) -> List[MetricSample]:
        try:
            if metric is MetricKind.SLEEP_DURATION_HOURS:
                intervals = self.store.read_sleep_intervals(
                    datetime.combine(start, time()),
                    datetime.combine(end + timedelta(days=1), time()),
                )
                return daily_sleep_hours(intervals, start, end)
            return normalize_samples(self.store.read_samples(metric, start, end))
        except HealthDataError:
            raise
        except Exception as e:
            logger.warning(f"[AGGREGATION] Store read failed for {metric}: {e}")
            raise QueryFailed(f"Failed to read {metric} from store: {e}", cause=e)


def _average(samples: List[MetricSample]) -> float:
    if not samples:
        return 0.0
    return sum(s.value for s in samples) / len(samples)
