"""Tests for the in-memory and CSV metric stores."""

from datetime import datetime, timedelta

import pytest

from health_agents.errors import AuthorizationDenied, DataUnavailable, QueryFailed
from health_agents.metric_store import CsvMetricStore, InMemoryMetricStore, SleepStage
from health_agents.metrics import MetricKind

from conftest import TODAY, days_back


class TestInMemoryMetricStore:
    def test_average_metrics_are_averaged_per_day(self):
        store = InMemoryMetricStore()
        base = datetime.combine(TODAY, datetime.min.time())
        store.add_sample(MetricKind.HEART_RATE_AVERAGE, base + timedelta(hours=8), 60)
        store.add_sample(MetricKind.HEART_RATE_AVERAGE, base + timedelta(hours=20), 80)

        samples = store.read_samples(MetricKind.HEART_RATE_AVERAGE, TODAY, TODAY)

        assert len(samples) == 1
        assert samples[0].value == pytest.approx(70)

    def test_window_is_inclusive(self):
        store = InMemoryMetricStore()
        for n in range(5):
            store.add_daily(MetricKind.STEPS, days_back(n), 1000)

        samples = store.read_samples(MetricKind.STEPS, days_back(3), days_back(1))

        assert [s.date for s in samples] == [days_back(3), days_back(2), days_back(1)]

    def test_unrecorded_metric_unavailable(self):
        with pytest.raises(DataUnavailable):
            InMemoryMetricStore().read_samples(MetricKind.VO2_MAX, TODAY, TODAY)

    def test_unauthorized(self):
        store = InMemoryMetricStore(authorized=False)
        with pytest.raises(AuthorizationDenied):
            store.authorize()
        with pytest.raises(AuthorizationDenied):
            store.read_samples(MetricKind.STEPS, TODAY, TODAY)

    def test_sleep_must_use_intervals(self):
        store = InMemoryMetricStore()
        with pytest.raises(ValueError, match="add_sleep"):
            store.add_daily(MetricKind.SLEEP_DURATION_HOURS, TODAY, 7)

    def test_sleep_interval_validation(self):
        start = datetime(2025, 3, 14, 23, 0)
        with pytest.raises(ValueError, match="end after"):
            InMemoryMetricStore().add_sleep(start, start)

    def test_sleep_intervals_overlapping_window(self):
        store = InMemoryMetricStore()
        store.add_sleep(datetime(2025, 3, 10, 23, 0), datetime(2025, 3, 11, 6, 0))
        store.add_sleep(datetime(2025, 3, 14, 23, 0), datetime(2025, 3, 15, 6, 0))

        intervals = store.read_sleep_intervals(datetime(2025, 3, 15), datetime(2025, 3, 16))

        assert len(intervals) == 1
        assert intervals[0].start == datetime(2025, 3, 14, 23, 0)


class TestCsvMetricStore:
    def test_loads_quantities_and_sleep(self, tmp_path):
        path = tmp_path / "export.csv"
        path.write_text(
            "timestamp,metric,value,end,stage\n"
            "2025-03-14 09:00,steps,4000,,\n"
            "2025-03-14 18:00,steps,3000,,\n"
            "2025-03-14 08:00,heartRateAverage,70,,\n"
            "2025-03-14 23:00,sleepAnalysis,,2025-03-15 06:30,asleepCore\n"
            "2025-03-14 10:00,unknownMetric,5,,\n"
        )

        store = CsvMetricStore(path)
        steps = store.read_samples(MetricKind.STEPS, days_back(1), days_back(1))
        sleep = store.read_sleep_intervals(datetime(2025, 3, 14), datetime(2025, 3, 16))

        assert steps[0].value == 7000
        assert len(sleep) == 1
        assert sleep[0].stage is SleepStage.ASLEEP_CORE

    def test_missing_file(self, tmp_path):
        with pytest.raises(QueryFailed, match="not found"):
            CsvMetricStore(tmp_path / "missing.csv")

    def test_missing_columns(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text("when,value\n2025-03-14,1\n")
        with pytest.raises(QueryFailed, match="missing columns"):
            CsvMetricStore(path)

    def test_sleep_without_end_column(self, tmp_path):
        path = tmp_path / "sleep.csv"
        path.write_text("timestamp,metric,value\n2025-03-14 23:00,sleepAnalysis,1\n")
        with pytest.raises(QueryFailed, match="end"):
            CsvMetricStore(path)
