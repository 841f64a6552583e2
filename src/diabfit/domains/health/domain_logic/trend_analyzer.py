"""Longitudinal trend analysis for stored vitals and glucose readings.

Computes per-metric trend statistics and detects divergence patterns
(metrics moving in opposite directions).
"""

from __future__ import annotations

import logging
import statistics
from datetime import datetime, timedelta
from typing import Any

from diabfit.core.storage.repository import HealthRepository
from diabfit.domains.health.domain_logic.health_models import METRIC_TYPES
from diabfit.domains.health.domain_logic.vitals import metric_title

logger = logging.getLogger(__name__)

# True: a falling value is an improvement. None: no better direction, so
# trends are reported as rising/falling instead of improving/declining.
LOWER_IS_BETTER: dict[str, bool | None] = {
    "heart_rate": True,
    "systolic_bp": True,
    "diastolic_bp": True,
    "weight": True,
    "temperature": None,
    "glucose": True,
}

# Relative change between the older and newer halves treated as noise.
STABLE_THRESHOLD = 0.03


def classify_direction(diff: float, reference: float, lower_is_better: bool | None) -> str:
    """Name the direction of ``diff`` (newer minus older) relative to ``reference``."""
    threshold = abs(reference) * STABLE_THRESHOLD
    if abs(diff) <= threshold:
        return "stable"
    if lower_is_better is None:
        return "rising" if diff > 0 else "falling"
    rising_is_good = not lower_is_better
    return "improving" if (diff > 0) == rising_is_good else "declining"


def trend_statistics(
    name: str,
    values: list[float],
    *,
    lower_is_better: bool | None = True,
) -> dict[str, Any]:
    """Trend statistics for a newest-first series of values.

    Returns:
        Dict with: metric, current, mean, median, min, max, std_dev,
        direction, volatility, data_points; or a no_data status.
    """
    if not values:
        return {"metric": name, "data_points": 0, "status": "no_data"}

    current = values[0]
    oldest = values[-1]

    # Direction: compare first half vs second half means
    if len(values) >= 4:
        mid = len(values) // 2
        recent_mean = statistics.mean(values[:mid])
        older_mean = statistics.mean(values[mid:])
        direction = classify_direction(recent_mean - older_mean, older_mean, lower_is_better)
    elif len(values) >= 2:
        direction = classify_direction(current - oldest, oldest, lower_is_better)
    else:
        direction = "insufficient_data"

    # Volatility: coefficient of variation
    mean_val = statistics.mean(values)
    std_val = statistics.stdev(values) if len(values) > 1 else 0.0
    volatility = std_val / mean_val if mean_val > 0 else 0.0

    return {
        "metric": name,
        "current": round(current, 2),
        "mean": round(mean_val, 2),
        "median": round(statistics.median(values), 2),
        "min": round(min(values), 2),
        "max": round(max(values), 2),
        "std_dev": round(std_val, 2),
        "direction": direction,
        "lower_is_better": lower_is_better,
        "volatility": round(volatility, 4),
        "data_points": len(values),
    }


class TrendAnalyzer:
    """Computes trends and patterns from a user's stored measurements.

    Usage::

        analyzer = TrendAnalyzer(repository, user_id)
        trend = analyzer.compute_metric_trend("weight", days=90)
        divergences = analyzer.detect_divergence_patterns(days=90)
    """

    def __init__(self, repository: HealthRepository, user_id: str) -> None:
        self._repo = repository
        self._user_id = user_id

    def compute_metric_trend(
        self,
        metric_type: str,
        *,
        days: int = 90,
        limit: int = 90,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Compute trend statistics for one vital sign.

        Args:
            metric_type: One of the stored metric types (e.g. 'weight').
            days: Number of days to look back.
            limit: Max data points.
            now: End of the window (defaults to the current time).
        """
        since = (now or datetime.now()) - timedelta(days=days)
        metrics = self._repo.get_health_metrics(
            self._user_id, metric_type=metric_type, since=since, limit=limit
        )
        return trend_statistics(
            metric_type,
            [m.value for m in metrics],
            lower_is_better=LOWER_IS_BETTER.get(metric_type),
        )

    def compute_glucose_trend(
        self,
        *,
        days: int = 30,
        limit: int = 500,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Trend statistics for glucose readings (mg/dL)."""
        end = now or datetime.now()
        readings = self._repo.get_glucose_readings(
            self._user_id, since=end - timedelta(days=days), until=end, limit=limit
        )
        return trend_statistics(
            "glucose",
            [float(r.level) for r in readings],
            lower_is_better=LOWER_IS_BETTER["glucose"],
        )

    def detect_divergence_patterns(
        self,
        *,
        days: int = 90,
        now: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Detect metrics trending in opposite directions.

        A divergence is when one measurement is improving while another is
        declining. These represent areas where focused attention might help.

        Returns:
            List of divergence dicts with the improving and declining metric.
        """
        trends: dict[str, dict[str, Any]] = {}
        for name in METRIC_TYPES:
            trend = self.compute_metric_trend(name, days=days, now=now)
            if trend.get("data_points", 0) >= 2:
                trends[name] = trend
        glucose = self.compute_glucose_trend(days=days, now=now)
        if glucose.get("data_points", 0) >= 2:
            trends["glucose"] = glucose

        improving = [n for n, t in trends.items() if t["direction"] == "improving"]
        declining = [n for n, t in trends.items() if t["direction"] == "declining"]

        divergences = []
        for good in improving:
            for bad in declining:
                divergences.append({
                    "improving_metric": good,
                    "declining_metric": bad,
                    "improving_current": trends[good]["current"],
                    "declining_current": trends[bad]["current"],
                    "description": (
                        f"{_display(good)} is improving while {_display(bad)} "
                        "is declining; this divergence may deserve attention."
                    ),
                })
        logger.debug("Found %d divergences across %d trends", len(divergences), len(trends))
        return divergences

    def get_history_summary(self) -> dict[str, Any]:
        """Summarize how much stored data is available for longitudinal context."""
        counts = self._repo.count_records(self._user_id)
        if not any(counts.values()):
            return {"records_available": 0, "status": "no_history"}
        return {"records_available": sum(counts.values()), "by_table": counts}


def _display(metric: str) -> str:
    return "Glucose" if metric == "glucose" else metric_title(metric)
