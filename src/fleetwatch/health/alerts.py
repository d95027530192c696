"""Alert derivation: a fixed table of independent rules over cluster rows.

Each rule looks at one fact of one cluster and returns zero or more alerts;
a cluster can trigger several rules at once. Ordering is applied once, at
the end, by ``sort_alerts()``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

from fleetwatch.models import (
    Alert,
    AlertSeverity,
    ClusterSnapshot,
    ClusterStatus,
    HealthFacts,
    HealthLevel,
    ProjectionConfidence,
)
from fleetwatch.projection.engine import projection_threshold_days, should_warn

CATEGORY_CONNECTIVITY = "connectivity"
CATEGORY_NODE_OFFLINE = "node_offline"
CATEGORY_DATA_AT_RISK = "data_at_risk"
CATEGORY_DISK_UNHEALTHY = "disk_unhealthy"
CATEGORY_PSU_UNHEALTHY = "psu_unhealthy"
CATEGORY_PROTECTION_DEGRADED = "protection_degraded"
CATEGORY_CAPACITY_PROJECTION = "capacity_projection"

BYTES_PER_TB = 1_000_000_000_000

CACHED_SUFFIX = " (cached)"

Finding = tuple[AlertSeverity, str, str]
SnapshotRule = Callable[[ClusterSnapshot], list[Finding]]


def format_age(delta: timedelta) -> str:
    """Compact age such as ``45s``, ``12m``, ``2h 5m`` or ``3d 4h``."""
    seconds = max(int(delta.total_seconds()), 0)
    if seconds < 60:
        return f"{seconds}s"
    minutes, _ = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m"
    hours, minutes = divmod(minutes, 60)
    if hours < 24:
        return f"{hours}h {minutes}m"
    days, hours = divmod(hours, 24)
    return f"{days}d {hours}h"


# --- Snapshot rules ---


def _offline_nodes(snapshot: ClusterSnapshot) -> list[Finding]:
    return [
        (AlertSeverity.CRITICAL, CATEGORY_NODE_OFFLINE, f"Node {node_id} is offline")
        for node_id in snapshot.offline_node_ids
    ]


def _data_at_risk(snapshot: ClusterSnapshot) -> list[Finding]:
    if not snapshot.health.data_at_risk:
        return []
    return [(
        AlertSeverity.CRITICAL,
        CATEGORY_DATA_AT_RISK,
        "Data at risk: restriper reports insufficient protection",
    )]


def _unhealthy_disks(snapshot: ClusterSnapshot) -> list[Finding]:
    disks = snapshot.health.unhealthy_disks or []
    if not disks:
        return []
    locations = ", ".join(
        f"node {d.node_id} bay {d.bay} ({d.disk_type}, {d.state})" for d in disks
    )
    return [(
        AlertSeverity.WARNING,
        CATEGORY_DISK_UNHEALTHY,
        f"{len(disks)} unhealthy disk(s): {locations}",
    )]


def _unhealthy_psus(snapshot: ClusterSnapshot) -> list[Finding]:
    psus = snapshot.health.unhealthy_psus or []
    if not psus:
        return []
    locations = ", ".join(
        f"node {p.node_id} {p.name} {p.location} ({p.state})" for p in psus
    )
    return [(
        AlertSeverity.WARNING,
        CATEGORY_PSU_UNHEALTHY,
        f"{len(psus)} unhealthy PSU(s): {locations}",
    )]


def _tolerance_degraded(remaining: int | None, design: int | None) -> bool:
    if remaining is None:
        return False
    if design is None:
        return remaining <= 0
    return remaining < design


def _fault_tolerance(snapshot: ClusterSnapshot) -> list[Finding]:
    """One alert per dimension (node, drive) whose remaining failure tolerance is degraded."""
    health: HealthFacts = snapshot.health
    findings: list[Finding] = []
    for what, remaining, design in (
        ("node", health.remaining_node_failures, health.max_node_failures),
        ("drive", health.remaining_drive_failures, health.max_drive_failures),
    ):
        if not _tolerance_degraded(remaining, design):
            continue
        detail = f"{remaining} {what} failure(s) remaining"
        if design is not None:
            detail = f"{remaining} of {design} {what} failure(s) remaining"
        findings.append((
            AlertSeverity.WARNING,
            CATEGORY_PROTECTION_DEGRADED,
            f"Fault tolerance degraded ({detail})",
        ))
    return findings


def _capacity_projection(snapshot: ClusterSnapshot) -> list[Finding]:
    projection = snapshot.projection
    if projection is None or projection.days_to_full is None:
        return []
    if not should_warn(projection, snapshot.cluster_type):
        return []
    days = projection.days_to_full
    threshold = projection_threshold_days(snapshot.cluster_type)
    if snapshot.cluster_type is not None and snapshot.cluster_type.is_cloud:
        message = (
            f"Projected full in ~{days:.0f} days (under {threshold}d); "
            "consider increasing the capacity clamp"
        )
    else:
        growth_tb = projection.growth_bytes_per_day / BYTES_PER_TB
        message = (
            f"Projected full in ~{days:.0f} days at {growth_tb:.2f} TB/day "
            f"(under {threshold}d)"
        )
    if projection.confidence is ProjectionConfidence.LOW:
        message += " [low confidence]"
    return [(AlertSeverity.WARNING, CATEGORY_CAPACITY_PROJECTION, message)]


SNAPSHOT_RULES: tuple[SnapshotRule, ...] = (
    _offline_nodes,
    _data_at_risk,
    _unhealthy_disks,
    _unhealthy_psus,
    _fault_tolerance,
    _capacity_projection,
)


# --- Derivation ---


def _unreachable_alert(row: ClusterStatus, now: datetime) -> Alert:
    message = f"Cluster unreachable: {row.error or 'unknown error'}"
    if row.stale and row.last_success is not None:
        message += f" (showing cached data from {format_age(now - row.last_success)} ago)"
    elif row.snapshot is None:
        message += " (no cached data)"
    return Alert(
        severity=AlertSeverity.CRITICAL,
        cluster=row.profile,
        category=CATEGORY_CONNECTIVITY,
        message=message,
    )


def alerts_for_cluster(row: ClusterStatus, now: datetime | None = None) -> list[Alert]:
    """Apply every rule to one cluster row, in rule-table order."""
    now = now or datetime.now(tz=UTC)
    alerts: list[Alert] = []
    # Rows read straight from the cache carry no error and were never contacted.
    if not row.reachable and row.error is not None:
        alerts.append(_unreachable_alert(row, now))
    if row.snapshot is None:
        return alerts

    suffix = CACHED_SUFFIX if row.stale else ""
    for rule in SNAPSHOT_RULES:
        for severity, category, message in rule(row.snapshot):
            alerts.append(Alert(
                severity=severity,
                cluster=row.profile,
                category=category,
                message=message + suffix,
            ))
    return alerts


def sort_alerts(alerts: Iterable[Alert]) -> list[Alert]:
    """Critical before warning, then by cluster; stable within a cluster."""
    return sorted(alerts, key=lambda a: (a.severity.rank, a.cluster))


def derive_alerts(rows: Iterable[ClusterStatus], now: datetime | None = None) -> list[Alert]:
    """Derive the sorted alert list for all cluster rows.

    Deterministic for a given input: rows are visited in profile order and
    the final sort is stable.
    """
    now = now or datetime.now(tz=UTC)
    alerts: list[Alert] = []
    for row in sorted(rows, key=lambda r: r.profile):
        alerts.extend(alerts_for_cluster(row, now))
    return sort_alerts(alerts)


def health_level(alerts: Iterable[Alert]) -> HealthLevel:
    level = HealthLevel.HEALTHY
    for alert in alerts:
        if alert.severity is AlertSeverity.CRITICAL:
            return HealthLevel.CRITICAL
        level = HealthLevel.DEGRADED
    return level
