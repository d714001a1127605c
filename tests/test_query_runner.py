"""Tests for running parsed intents against the aggregation engine."""

import pytest

from health_agents.errors import AuthorizationDenied, DataUnavailable
from health_agents.intent_parser import (
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
from health_agents.metric_store import InMemoryMetricStore
from health_agents.aggregation import MetricAggregator
from health_agents.metrics import MetricKind
from health_agents.query_runner import (
    GENERAL_RECOMMENDATIONS,
    OVERVIEW_METRICS,
    QueryRunner,
    ResultKind,
    suggested_target,
)

from conftest import fill_daily


@pytest.fixture
def runner(populated_store, aggregator):
    return QueryRunner(aggregator)


class TestSingleMetric:
    def test_trend(self, runner):
        result = runner.run(TrendIntent(MetricKind.STEPS, 7))

        assert result.kind is ResultKind.TREND
        assert result.answer == (
            "Steps over the past 7 days: average 8000.0 steps, increase 16.2% across 7 data points."
        )
        assert result.metric_values == {MetricKind.STEPS: 8600}

    def test_compare(self, runner):
        result = runner.run(CompareIntent(MetricKind.HEART_RATE_AVERAGE, 7))

        assert result.kind is ResultKind.COMPARISON
        assert result.answer == (
            "Average Heart Rate: last 7 days averaged 72.0 bpm vs 78.0 bpm "
            "in the 7 days before (-6.0 bpm, -7.7%)."
        )

    def test_current_value(self, runner):
        result = runner.run(CurrentValueIntent(MetricKind.STEPS))
        assert result.answer == "Your current steps is 8600.0 steps"

    def test_metric_summary(self, runner):
        result = runner.run(SummaryIntent(MetricKind.SLEEP_DURATION_HOURS, 7))

        assert result.answer.startswith("Sleep Duration - 7 Day Summary")
        assert "Trend: Decrease 14.3%" in result.answer
        assert result.answer.endswith("Consider ensuring adequate sleep time.")

    def test_untracked_metric_raises(self, runner):
        with pytest.raises(DataUnavailable):
            runner.run(TrendIntent(MetricKind.VO2_MAX, 7))


class TestGoals:
    def test_goal_in_progress(self, runner):
        answer = runner.run(GoalIntent(MetricKind.STEPS, 10000)).answer

        assert "Progress: 80.0%" in answer
        assert answer.endswith("You need 2000.0 steps more to reach your goal.")

    def test_goal_reached(self, runner):
        answer = runner.run(GoalIntent(MetricKind.STEPS, 7000)).answer
        assert answer.endswith("🎉 Congratulations! You've reached your goal!")

    def test_suggested_goal(self, runner):
        answer = runner.run(GoalIntent(MetricKind.STEPS)).answer
        assert "Suggested Goal: 12000.0 steps" in answer

    @pytest.mark.parametrize("kind,current,target", [
        (MetricKind.STEPS, 3000, 8000),
        (MetricKind.STEPS, 11000, 12100),
        (MetricKind.SLEEP_DURATION_HOURS, 6, 8),
        (MetricKind.SLEEP_DURATION_HOURS, 8.5, 8.5),
        (MetricKind.ACTIVE_ENERGY, 150, 300),
        (MetricKind.BODY_MASS, 70, 77),
    ])
    def test_suggested_target(self, kind, current, target):
        assert suggested_target(kind, current) == pytest.approx(target)


class TestRecommendations:
    def test_general(self, runner):
        result = runner.run(RecommendationIntent())
        assert result.answer == GENERAL_RECOMMENDATIONS
        assert result.metric is None

    def test_short_sleep(self, runner):
        answer = runner.run(RecommendationIntent(MetricKind.SLEEP_DURATION_HOURS)).answer
        assert answer.startswith("Suggestions to improve sleep quality")


class TestMultiMetric:
    def test_summary_lists_overview_metrics(self, runner):
        answer = runner.run(SummaryIntent(None, 7)).answer
        lines = answer.splitlines()

        assert lines[0] == "Health Data Summary for Past 7 Days:"
        assert "Steps: 8000.0 steps (↗️ 16.2%)" in lines
        assert "Sleep Duration: 6.9 hours (↘️ 14.3%)" in lines
        assert lines[-1].startswith("💡")

    def test_summary_skips_untracked_metrics(self, store, aggregator):
        fill_daily(store, MetricKind.STEPS, [5000] * 7)
        result = QueryRunner(aggregator).run(SummaryIntent(None, 7))

        assert "Steps: 5000.0 steps (↗️ 0.0%)" in result.answer
        assert "Sleep" not in result.answer
        assert list(result.metric_values) == [MetricKind.STEPS]

    def test_overview(self, runner):
        result = runner.run(OverviewIntent())

        assert result.kind is ResultKind.INSIGHTS
        assert result.answer.startswith("Health Overview\n\n• ")
        assert result.insights
        assert result.metric_values[MetricKind.STEPS] == 8600

    def test_focused_insights(self, runner):
        result = runner.run(InsightsIntent(InsightFocus.SLEEP))

        assert result.answer.startswith("Health Insights")
        assert all(i.related_metric in (MetricKind.SLEEP_DURATION_HOURS, None) for i in result.insights)

    def test_collect_aggregates_keeps_order(self, runner):
        order = [MetricKind.ACTIVE_ENERGY, MetricKind.VO2_MAX, MetricKind.STEPS]
        aggregates = runner.collect_aggregates(order)
        assert list(aggregates) == [MetricKind.ACTIVE_ENERGY, MetricKind.STEPS]


class TestAuthorization:
    def test_denied_before_any_read(self, clock):
        runner = QueryRunner(MetricAggregator(InMemoryMetricStore(authorized=False), clock=clock))
        with pytest.raises(AuthorizationDenied):
            runner.run(OverviewIntent())

    def test_unsupported_intent(self, runner):
        with pytest.raises(TypeError):
            runner.run(Intent())

    def test_result_to_dict(self, runner):
        data = runner.run(TrendIntent(MetricKind.STEPS, 7)).to_dict()
        assert data["kind"] == "trend"
        assert data["metric_values"] == {"steps": 8600}
        assert OVERVIEW_METRICS[0] is MetricKind.STEPS
