from datetime import date, datetime, timedelta
from pathlib import Path
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from health_agents.aggregation import MetricAggregator
from health_agents.aggregation_cache import AggregationCache
from health_agents.conversation import ConversationContextManager
from health_agents.metric_store import InMemoryMetricStore
from health_agents.metrics import MetricKind

NOW = datetime(2025, 3, 15, 12, 0, 0)
TODAY = NOW.date()


class CountingStore(InMemoryMetricStore):
    """In-memory store that counts adapter calls."""

    def __init__(self, authorized: bool = True):
        super().__init__(authorized=authorized)
        self.sample_calls = 0
        self.sleep_calls = 0

    def read_samples(self, kind, start, end):
        self.sample_calls += 1
        return super().read_samples(kind, start, end)

    def read_sleep_intervals(self, start, end):
        self.sleep_calls += 1
        return super().read_sleep_intervals(start, end)

    @property
    def calls(self) -> int:
        return self.sample_calls + self.sleep_calls


class MutableClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def days_back(n: int) -> date:
    return TODAY - timedelta(days=n)


def fill_daily(store: InMemoryMetricStore, kind: MetricKind, values, end: date = TODAY) -> None:
    """Add one value per day, the last value landing on `end`."""
    values = list(values)
    for i, value in enumerate(values):
        store.add_daily(kind, end - timedelta(days=len(values) - 1 - i), value)


@pytest.fixture
def clock():
    return MutableClock()


@pytest.fixture
def store():
    return CountingStore()


@pytest.fixture
def cache():
    return AggregationCache(default_ttl=300.0)


@pytest.fixture
def aggregator(store, cache, clock):
    return MetricAggregator(store, cache=cache, clock=clock)


@pytest.fixture
def context_manager(clock):
    return ConversationContextManager(clock=clock)


@pytest.fixture
def populated_store(store):
    """Two weeks of core metrics plus a week of sleep."""
    fill_daily(store, MetricKind.STEPS, [6000 + i * 200 for i in range(14)])
    fill_daily(store, MetricKind.HEART_RATE_AVERAGE, [78] * 7 + [72] * 7)
    fill_daily(store, MetricKind.RESTING_HEART_RATE, [64] * 14)
    fill_daily(store, MetricKind.ACTIVE_ENERGY, [350] * 14)
    for n in range(7):
        night = datetime.combine(days_back(n), datetime.min.time())
        store.add_sleep(night - timedelta(hours=1), night + timedelta(hours=6))
    return store
