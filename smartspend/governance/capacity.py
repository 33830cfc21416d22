"""
Advisory capacity planning from recorded load samples.

Nothing here actuates infrastructure; the planner only summarizes samples
and produces static scaling suggestions for dashboards.
"""

from __future__ import annotations

import asyncio
import random
from collections import deque
from dataclasses import dataclass, field
from typing import Literal

MAX_SAMPLES = 100
MAX_CAPACITY = 100.0
SCALE_DOWN_UTILIZATION = 30.0
DEFAULT_THRESHOLD = 70.0
TREND_WINDOW = 10
TREND_CHANGE_PERCENT = 10.0

DEFAULT_THRESHOLDS: dict[str, float] = {
    "cpu": 70.0,  # percent
    "memory": 80.0,  # percent
    "requests": 1000.0,  # per minute
    "responseTime": 2000.0,  # milliseconds
    "errorRate": 1.0,  # percent
}

Scaling = Literal["none", "up", "down"]
Trend = Literal["increasing", "decreasing", "stable"]


@dataclass(frozen=True)
class CapacityMetrics:
    current_load: float
    max_capacity: float
    utilization_percentage: float
    recommended_scaling: Scaling
    bottlenecks: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ScalingRecommendation:
    component: str
    current_capacity: int
    recommended_capacity: int
    reasoning: str
    priority: Literal["low", "medium", "high"]
    estimated_cost: str


@dataclass(frozen=True)
class TrendSummary:
    trend: Trend
    change: float  # percent


@dataclass(frozen=True)
class CapacityReport:
    summary: CapacityMetrics
    recommendations: list[ScalingRecommendation]
    trends: dict[str, TrendSummary]


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class CapacityPlanner:
    """Rolling per-component samples summarized into scaling advice."""

    def __init__(
        self,
        thresholds: dict[str, float] | None = None,
        history_size: int = MAX_SAMPLES,
    ):
        self.thresholds = {**DEFAULT_THRESHOLDS, **(thresholds or {})}
        self.history_size = history_size
        self._metrics: dict[str, deque[float]] = {}

    def record_metric(self, component: str, value: float) -> None:
        samples = self._metrics.setdefault(component, deque(maxlen=self.history_size))
        samples.append(float(value))

    def get_samples(self, component: str) -> list[float]:
        return list(self._metrics.get(component, ()))

    def get_threshold(self, component: str) -> float:
        return self.thresholds.get(component, DEFAULT_THRESHOLD)

    def analyze_capacity(self) -> CapacityMetrics:
        all_samples = [value for samples in self._metrics.values() for value in samples]
        current_load = _mean(all_samples)
        utilization = (current_load / MAX_CAPACITY) * 100

        recommended: Scaling = "none"
        bottlenecks: list[str] = []

        for component, samples in self._metrics.items():
            if samples and _mean(list(samples)) > self.get_threshold(component):
                bottlenecks.append(component)
                recommended = "up"

        if utilization < SCALE_DOWN_UTILIZATION and not bottlenecks:
            recommended = "down"

        return CapacityMetrics(
            current_load=current_load,
            max_capacity=MAX_CAPACITY,
            utilization_percentage=utilization,
            recommended_scaling=recommended,
            bottlenecks=bottlenecks,
        )

    def generate_scaling_recommendations(self) -> list[ScalingRecommendation]:
        capacity = self.analyze_capacity()
        recommendations: list[ScalingRecommendation] = []

        if capacity.recommended_scaling == "up":
            recommendations.append(ScalingRecommendation(
                component="API Endpoints",
                current_capacity=100,
                recommended_capacity=150,
                reasoning="High request volume detected, recommend increasing API capacity",
                priority="high",
                estimated_cost="$50-100/month additional",
            ))

            if "database" in capacity.bottlenecks:
                recommendations.append(ScalingRecommendation(
                    component="Database",
                    current_capacity=100,
                    recommended_capacity=200,
                    reasoning="Database queries showing high latency",
                    priority="high",
                    estimated_cost="$100-200/month additional",
                ))

        if "memory" in capacity.bottlenecks:
            recommendations.append(ScalingRecommendation(
                component="Memory",
                current_capacity=512,
                recommended_capacity=1024,
                reasoning="Memory usage consistently above 80%",
                priority="medium",
                estimated_cost="$25-50/month additional",
            ))

        return recommendations

    def calculate_trends(self) -> dict[str, TrendSummary]:
        """Compare the last 10 samples of each component with the 10 before them."""
        trends: dict[str, TrendSummary] = {}

        for component, samples in self._metrics.items():
            values = list(samples)
            if len(values) < TREND_WINDOW:
                continue

            recent = values[-TREND_WINDOW:]
            older = values[-2 * TREND_WINDOW:-TREND_WINDOW]
            if not older:
                continue

            older_avg = _mean(older)
            if older_avg == 0:
                continue
            change = ((_mean(recent) - older_avg) / older_avg) * 100

            trend: Trend = "stable"
            if abs(change) > TREND_CHANGE_PERCENT:
                trend = "increasing" if change > 0 else "decreasing"

            trends[component] = TrendSummary(trend=trend, change=change)

        return trends

    def get_capacity_report(self) -> CapacityReport:
        return CapacityReport(
            summary=self.analyze_capacity(),
            recommendations=self.generate_scaling_recommendations(),
            trends=self.calculate_trends(),
        )

    async def simulate_load(
        self,
        component: str,
        duration: float = 60.0,
        interval: float = 1.0,
    ) -> int:
        """Record a random 0-100 sample every interval for duration seconds."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + duration
        recorded = 0
        while loop.time() < deadline:
            self.record_metric(component, random.random() * 100)
            recorded += 1
            await asyncio.sleep(interval)
        return recorded

    def reset(self) -> None:
        self._metrics.clear()
