"""Tests for rule-based insight generation."""

import pytest

from health_agents.aggregation import Trend
from health_agents.insights import (
    ACTIONABLE_RECOMMENDATIONS,
    AnalysisIntent,
    InsightGenerator,
    InsightType,
    MetricAggregate,
    pearson_on_aligned,
    realistic_goal,
    recommendations_for,
)
from health_agents.intent_parser import InsightFocus
from health_agents.metric_store import MetricSample
from health_agents.metrics import MetricKind

from conftest import days_back


def aggregate(values, offset=0):
    """Aggregate over consecutive days ending `offset` days ago."""
    n = len(values)
    points = [MetricSample(days_back(offset + n - 1 - i), float(v)) for i, v in enumerate(values)]
    return MetricAggregate(trend=Trend.from_points(n, points))


@pytest.fixture
def generator():
    return InsightGenerator()


class TestMetricRules:
    def test_rising_low_steps(self, generator):
        insights = generator.generate({MetricKind.STEPS: aggregate([6000, 7000, 8000, 9000])})
        titles = [i.title for i in insights]

        assert "Steps needs attention" in titles
        assert "Steps is increasing" in titles
        assert "Focus on Steps" in titles
        assert insights[0].type is InsightType.ALERT

    def test_ranked_by_importance(self, generator):
        insights = generator.generate({MetricKind.STEPS: aggregate([6000, 7000, 8000, 9000])})
        importances = [i.importance for i in insights]
        assert importances == sorted(importances, reverse=True)

    def test_stable_normal_metric_falls_back(self, generator):
        insights = generator.generate({MetricKind.HEART_RATE_AVERAGE: aggregate([70, 70, 70])})

        assert len(insights) == 1
        assert insights[0].title == "Maintain healthy habits"

    def test_no_data_falls_back(self, generator):
        insights = generator.generate({MetricKind.STEPS: aggregate([])})
        assert [i.title for i in insights] == ["Maintain healthy habits"]

    def test_decline_is_recommended(self, generator):
        insights = generator.generate({MetricKind.ACTIVE_ENERGY: aggregate([600, 500, 400])})
        recommendation = next(i for i in insights if i.type is InsightType.RECOMMENDATION)

        assert recommendation.related_metric is MetricKind.ACTIVE_ENERGY
        assert recommendation.description == ACTIONABLE_RECOMMENDATIONS[MetricKind.ACTIVE_ENERGY]

    def test_limit(self, generator):
        insights = generator.generate({MetricKind.STEPS: aggregate([6000, 7000, 8000, 9000])}, limit=1)
        assert len(insights) == 1


class TestCorrelations:
    def test_steps_and_energy_move_together(self, generator):
        insights = generator.generate({
            MetricKind.STEPS: aggregate([8000, 9000, 10000, 11000]),
            MetricKind.ACTIVE_ENERGY: aggregate([300, 400, 500, 600]),
        }, limit=10)

        correlation = [i for i in insights if i.type is InsightType.CORRELATION]
        assert len(correlation) == 1
        assert "r = 1.00" in correlation[0].description

    def test_short_sleep_and_high_resting_rate(self, generator):
        insights = generator.generate({
            MetricKind.SLEEP_DURATION_HOURS: aggregate([6, 6, 6]),
            MetricKind.RESTING_HEART_RATE: aggregate([75, 75, 75]),
        }, limit=10)

        assert "Sleep may affect heart health" in [i.title for i in insights]

    def test_pearson_needs_aligned_dates(self):
        first = aggregate([1, 2, 3]).trend
        shifted = aggregate([1, 2, 3], offset=1).trend
        assert pearson_on_aligned(first, shifted) is None

    def test_pearson_needs_variance(self):
        assert pearson_on_aligned(aggregate([5, 5, 5]).trend, aggregate([1, 2, 3]).trend) is None


class TestFocusAndContext:
    def test_focus_restricts_metrics(self, generator):
        insights = generator.generate({
            MetricKind.STEPS: aggregate([6000, 7000, 8000, 9000]),
            MetricKind.SLEEP_DURATION_HOURS: aggregate([5, 5, 5]),
        }, focus=InsightFocus.SLEEP, limit=10)

        assert all(i.related_metric is MetricKind.SLEEP_DURATION_HOURS for i in insights)

    def test_goal_setting_adds_goals(self, generator):
        # average 9000, latest 9500
        insights = generator.generate(
            {MetricKind.STEPS: aggregate([8500, 9500])},
            context=AnalysisIntent.GOAL_SETTING,
        )
        goal = next(i for i in insights if i.type is InsightType.GOAL)
        assert goal.description == "Based on your current level, aim for 9900 steps"

    def test_trend_analysis_adds_achievement(self, generator):
        insights = generator.generate(
            {MetricKind.STEPS: aggregate([9000, 9500])},
            context=AnalysisIntent.TREND_ANALYSIS,
        )
        assert any(i.type is InsightType.ACHIEVEMENT for i in insights)


class TestHelpers:
    @pytest.mark.parametrize("kind,current,goal", [
        (MetricKind.STEPS, 5000, 8000),
        (MetricKind.STEPS, 10000, 11000),
        (MetricKind.SLEEP_DURATION_HOURS, 5, 7),
        (MetricKind.SLEEP_DURATION_HOURS, 10, 9),
        (MetricKind.RESTING_HEART_RATE, 80, 76),
        (MetricKind.BODY_MASS, 70, 70),
    ])
    def test_realistic_goal(self, kind, current, goal):
        assert realistic_goal(kind, current) == pytest.approx(goal)

    def test_recommendations_are_deduplicated(self, generator):
        insights = generator.generate({MetricKind.STEPS: aggregate([6000, 7000, 8000, 9000])})
        recs = recommendations_for(insights)

        assert recs == [ACTIONABLE_RECOMMENDATIONS[MetricKind.STEPS]]

    def test_recommendations_in_chinese(self, generator):
        insights = generator.generate({MetricKind.STEPS: aggregate([6000, 7000, 8000, 9000])})
        assert recommendations_for(insights, "zh")[0].startswith("尝试")
