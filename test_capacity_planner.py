#!/usr/bin/env python3
"""
Tests for the advisory capacity planner.
"""

import pytest

from smartspend.governance.capacity import DEFAULT_THRESHOLDS, CapacityPlanner


class TestAnalyzeCapacity:
    """Test utilization, bottlenecks and scaling direction."""

    def test_empty_planner_recommends_scale_down(self):
        metrics = CapacityPlanner().analyze_capacity()
        assert metrics.current_load == 0
        assert metrics.utilization_percentage == 0
        assert metrics.recommended_scaling == "down"
        assert metrics.bottlenecks == []

    def test_bottleneck_over_threshold(self):
        planner = CapacityPlanner()
        for value in [85, 90, 95]:
            planner.record_metric("cpu", value)
        planner.record_metric("memory", 40)

        metrics = planner.analyze_capacity()
        assert metrics.bottlenecks == ["cpu"]
        assert metrics.recommended_scaling == "up"
        assert metrics.current_load == pytest.approx(77.5)

    def test_unknown_component_uses_default_threshold(self):
        planner = CapacityPlanner()
        planner.record_metric("database", 71)
        assert planner.get_threshold("database") == 70
        assert planner.analyze_capacity().bottlenecks == ["database"]

    def test_moderate_load_needs_no_change(self):
        planner = CapacityPlanner()
        planner.record_metric("cpu", 50)
        assert planner.analyze_capacity().recommended_scaling == "none"

    def test_threshold_overrides(self):
        planner = CapacityPlanner(thresholds={"cpu": 40})
        assert planner.get_threshold("cpu") == 40
        assert planner.get_threshold("memory") == DEFAULT_THRESHOLDS["memory"]

    def test_history_is_bounded(self):
        planner = CapacityPlanner(history_size=100)
        for i in range(150):
            planner.record_metric("cpu", i)
        samples = planner.get_samples("cpu")
        assert len(samples) == 100
        assert samples[0] == 50


class TestRecommendations:
    """Test static scaling suggestions."""

    def test_no_recommendations_when_healthy(self):
        planner = CapacityPlanner()
        planner.record_metric("cpu", 50)
        assert planner.generate_scaling_recommendations() == []

    def test_api_and_database_recommendations(self):
        planner = CapacityPlanner()
        planner.record_metric("database", 95)

        recommendations = planner.generate_scaling_recommendations()
        components = [r.component for r in recommendations]
        assert components == ["API Endpoints", "Database"]
        assert recommendations[0].recommended_capacity == 150
        assert recommendations[1].recommended_capacity == 200

    def test_memory_recommendation(self):
        planner = CapacityPlanner()
        planner.record_metric("memory", 92)

        memory = [r for r in planner.generate_scaling_recommendations() if r.component == "Memory"]
        assert len(memory) == 1
        assert memory[0].current_capacity == 512
        assert memory[0].recommended_capacity == 1024
        assert memory[0].priority == "medium"


class TestTrends:
    """Test last-10 against previous-10 comparisons."""

    def test_needs_twenty_samples(self):
        planner = CapacityPlanner()
        for _ in range(10):
            planner.record_metric("cpu", 50)
        assert planner.calculate_trends() == {}

    def test_increasing_trend(self):
        planner = CapacityPlanner()
        for value in [50] * 10 + [60] * 10:
            planner.record_metric("cpu", value)

        trend = planner.calculate_trends()["cpu"]
        assert trend.trend == "increasing"
        assert trend.change == pytest.approx(20.0)

    def test_decreasing_and_stable(self):
        planner = CapacityPlanner()
        for value in [100] * 10 + [50] * 10:
            planner.record_metric("requests", value)
        for value in [50] * 10 + [54] * 10:
            planner.record_metric("cpu", value)

        trends = planner.calculate_trends()
        assert trends["requests"].trend == "decreasing"
        assert trends["cpu"].trend == "stable"

    def test_zero_baseline_skipped(self):
        planner = CapacityPlanner()
        for value in [0] * 10 + [5] * 10:
            planner.record_metric("errorRate", value)
        assert "errorRate" not in planner.calculate_trends()


class TestReport:
    """Test report assembly, load simulation and reset."""

    def test_report(self):
        planner = CapacityPlanner()
        planner.record_metric("memory", 90)
        report = planner.get_capacity_report()

        assert report.summary.recommended_scaling == "up"
        assert {r.component for r in report.recommendations} == {"API Endpoints", "Memory"}
        assert report.trends == {}

    @pytest.mark.asyncio
    async def test_simulate_load(self):
        planner = CapacityPlanner()
        recorded = await planner.simulate_load("cpu", duration=0.05, interval=0.01)

        samples = planner.get_samples("cpu")
        assert recorded == len(samples) >= 1
        assert all(0 <= value <= 100 for value in samples)

    def test_reset(self):
        planner = CapacityPlanner()
        planner.record_metric("cpu", 99)
        planner.reset()
        assert planner.get_samples("cpu") == []
