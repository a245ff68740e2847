"""Rate and score formulas shared by the aggregator and the daily-stat cache.

All percentages round half-up to whole numbers and never divide by zero.
"""
import math

from studyflow.config import settings


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def percent(part: float, whole: float) -> int:
    """``part / whole`` as a 0-100 integer; 0 when ``whole`` is 0."""
    if whole <= 0 or part <= 0:
        return 0
    return min(100, round_half_up(part / whole * 100))


def safe_ratio(total: float, count: float) -> int:
    if count <= 0:
        return 0
    return max(0, round_half_up(total / count))


def trend_percent(current: float, previous: float) -> int:
    """Period-over-period change. 100 when growing from nothing, 0 when flat at zero."""
    if previous <= 0:
        return 100 if current > 0 else 0
    return round_half_up((current - previous) / previous * 100)


def consistency_score(days_with_activity: int, expected_days: int) -> int:
    if expected_days <= 0:
        return 0
    return min(100, round_half_up(max(0, days_with_activity) / expected_days * 100))


def focus_score(
    task_completion_rate: float,
    consistency: float,
    task_weight: float | None = None,
    consistency_weight: float | None = None,
) -> int:
    """Weighted blend of completion rate and consistency.

    The 0.4 / 0.6 default weights are a product policy set in configuration.
    """
    if task_weight is None:
        task_weight = settings.FOCUS_SCORE_TASK_WEIGHT
    if consistency_weight is None:
        consistency_weight = settings.FOCUS_SCORE_CONSISTENCY_WEIGHT
    score = round_half_up(task_completion_rate * task_weight + consistency * consistency_weight)
    return max(0, min(100, score))
