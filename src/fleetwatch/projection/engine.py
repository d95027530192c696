"""Capacity projection from daily usage history.

Fits an ordinary least-squares line of used bytes against time (in days)
and turns the slope into a days-to-full estimate. The engine never decides
whether a projection is alarming; ``should_warn()`` carries the per-platform
threshold policy used by the alert rules.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from fleetwatch.models import (
    CapacityHistoryPoint,
    ClusterKind,
    ProjectionConfidence,
    ProjectionResult,
)

logger = logging.getLogger(__name__)

MIN_HISTORY_DAYS = 7
LOW_CONFIDENCE_R_SQUARED = 0.5
HISTORY_WINDOW_DAYS = 30

ONPREM_WARN_DAYS = 90
CLOUD_WARN_DAYS = 7

SECONDS_PER_DAY = 86400.0


class ProjectionError(ValueError):
    """Raised on negative capacity or usage inputs."""


@dataclass(frozen=True)
class LinearFit:
    slope: float
    intercept: float
    r_squared: float


def linear_regression(xs: list[float], ys: list[float]) -> LinearFit | None:
    """Least-squares fit of ``y = slope * x + intercept``.

    Returns ``None`` for fewer than two points or when every x is identical.
    A constant series fits perfectly with slope 0.
    """
    n = len(xs)
    if n < 2 or n != len(ys):
        return None

    mean_x = sum(xs) / n
    mean_y = sum(ys) / n
    sxx = sum((x - mean_x) ** 2 for x in xs)
    if sxx == 0:
        return None
    sxy = sum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys, strict=True))

    slope = sxy / sxx
    intercept = mean_y - slope * mean_x

    ss_tot = sum((y - mean_y) ** 2 for y in ys)
    if ss_tot == 0:
        return LinearFit(slope=0.0, intercept=mean_y, r_squared=1.0)
    ss_res = sum((y - (slope * x + intercept)) ** 2 for x, y in zip(xs, ys, strict=True))
    return LinearFit(slope=slope, intercept=intercept, r_squared=1.0 - ss_res / ss_tot)


def _utc(ts: datetime) -> datetime:
    return ts.replace(tzinfo=UTC) if ts.tzinfo is None else ts.astimezone(UTC)


def daily_points(history: Iterable[CapacityHistoryPoint]) -> list[CapacityHistoryPoint]:
    """Order by time and keep only the last sample of each UTC day."""
    by_day: dict[Any, CapacityHistoryPoint] = {}
    for point in sorted(history, key=lambda p: _utc(p.timestamp)):
        by_day[_utc(point.timestamp).date()] = point
    return [by_day[day] for day in sorted(by_day)]


def project(
    history: Iterable[CapacityHistoryPoint],
    total_capacity: int,
    *,
    current_used: int | None = None,
) -> ProjectionResult | None:
    """Project when used capacity reaches *total_capacity*.

    Returns ``None`` when fewer than ``MIN_HISTORY_DAYS`` distinct days are
    available. *current_used* defaults to the most recent sample.

    Raises:
        ProjectionError: On negative capacity or usage values.
    """
    if total_capacity < 0:
        raise ProjectionError(f"total capacity must not be negative: {total_capacity}")
    if current_used is not None and current_used < 0:
        raise ProjectionError(f"current usage must not be negative: {current_used}")

    points = daily_points(history)
    if any(p.used_bytes < 0 for p in points):
        raise ProjectionError("capacity history contains negative usage")

    if len(points) < MIN_HISTORY_DAYS:
        logger.debug(
            "Insufficient capacity history: %d day(s), need %d",
            len(points), MIN_HISTORY_DAYS,
        )
        return None

    origin = _utc(points[0].timestamp)
    xs = [(_utc(p.timestamp) - origin).total_seconds() / SECONDS_PER_DAY for p in points]
    ys = [float(p.used_bytes) for p in points]
    fit = linear_regression(xs, ys)
    if fit is None:
        return None

    used = current_used if current_used is not None else points[-1].used_bytes
    days_to_full: float | None = None
    if fit.slope > 0:
        days_to_full = max(total_capacity - used, 0) / fit.slope

    return ProjectionResult(
        growth_bytes_per_day=fit.slope,
        days_to_full=days_to_full,
        confidence=(
            ProjectionConfidence.LOW
            if fit.r_squared < LOW_CONFIDENCE_R_SQUARED
            else ProjectionConfidence.HIGH
        ),
        r_squared=fit.r_squared,
        sample_days=len(points),
    )


def parse_capacity_history(
    payload: Any, now: datetime | None = None,
) -> list[CapacityHistoryPoint]:
    """Convert the daily capacity-history series into points.

    Entries carry ``capacity_used`` and usually ``period_start_time`` (epoch
    seconds). Entries without a timestamp are assumed to be consecutive days
    ending today.
    """
    if not isinstance(payload, list):
        return []
    now = now or datetime.now(tz=UTC)
    count = len(payload)
    points: list[CapacityHistoryPoint] = []
    for i, entry in enumerate(payload):
        if not isinstance(entry, dict):
            continue
        try:
            used = int(entry["capacity_used"])
        except (KeyError, TypeError, ValueError):
            continue
        start = entry.get("period_start_time")
        try:
            ts = datetime.fromtimestamp(int(start), tz=UTC)
        except (TypeError, ValueError, OverflowError):
            ts = now - timedelta(days=count - 1 - i)
        points.append(CapacityHistoryPoint(timestamp=ts, used_bytes=used))
    return points


def history_begin_epoch(now: datetime | None = None) -> int:
    now = now or datetime.now(tz=UTC)
    return int((now - timedelta(days=HISTORY_WINDOW_DAYS)).timestamp())


def projection_threshold_days(kind: ClusterKind | None) -> int:
    """Days-to-full below which a projection warrants a warning."""
    if kind is not None and kind.is_cloud:
        return CLOUD_WARN_DAYS
    return ONPREM_WARN_DAYS


def should_warn(projection: ProjectionResult | None, kind: ClusterKind | None) -> bool:
    if projection is None or projection.days_to_full is None:
        return False
    return projection.days_to_full < projection_threshold_days(kind)
