"""Fold per-cluster results into the fleet-wide report.

Stale (cache fallback) snapshots are included in the totals; each row keeps
its own ``reachable``/``stale`` flags so consumers can tell live data from
last-known data. Everything here is pure: the same results produce the same
aggregates.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime

from fleetwatch.health.alerts import derive_alerts, health_level
from fleetwatch.models import (
    Aggregates,
    Alert,
    CachedEntry,
    ClusterResult,
    ClusterState,
    ClusterStatus,
    LiveResult,
    Report,
)


def to_status(result: ClusterResult) -> ClusterStatus:
    """Convert one collection result into a report row."""
    if isinstance(result, LiveResult):
        return ClusterStatus(
            profile=result.profile,
            state=ClusterState.LIVE,
            reachable=True,
            stale=False,
            latency_ms=result.latency_ms,
            snapshot=result.snapshot,
        )
    fallback = result.fallback
    return ClusterStatus(
        profile=result.profile,
        state=result.state,
        reachable=False,
        stale=fallback is not None,
        error=result.error,
        last_success=fallback.last_success if fallback is not None else None,
        snapshot=fallback.snapshot if fallback is not None else None,
    )


def cached_status(entry: CachedEntry) -> ClusterStatus:
    """Row for a cache entry shown without contacting the cluster."""
    return ClusterStatus(
        profile=entry.profile,
        state=ClusterState.STALE,
        reachable=False,
        stale=True,
        last_success=entry.last_success,
        snapshot=entry.snapshot,
    )


def build_aggregates(rows: Iterable[ClusterStatus]) -> Aggregates:
    """Environment-wide totals over live and stale rows.

    Only live rows contribute latency samples.
    """
    agg = Aggregates()
    latencies: list[int] = []

    for row in rows:
        agg.cluster_count += 1
        if row.reachable:
            agg.healthy_count += 1
            if row.latency_ms is not None:
                latencies.append(row.latency_ms)
        else:
            agg.unreachable_count += 1
        if row.stale:
            agg.stale_count += 1

        snapshot = row.snapshot
        if snapshot is None:
            continue

        agg.total_nodes += snapshot.total_nodes
        agg.online_nodes += snapshot.online_nodes
        if snapshot.capacity is not None:
            agg.total_capacity_bytes += snapshot.capacity.total_bytes
            agg.used_capacity_bytes += snapshot.capacity.used_bytes
            agg.free_capacity_bytes += snapshot.capacity.free_bytes
        agg.snapshot_bytes += _snapshot_bytes(row)
        agg.total_files += snapshot.files.total_files or 0
        agg.total_directories += snapshot.files.total_directories or 0
        agg.total_snapshots += snapshot.snapshots.count or 0

    agg.offline_nodes = agg.total_nodes - agg.online_nodes
    if agg.total_capacity_bytes > 0:
        agg.used_pct = agg.used_capacity_bytes / agg.total_capacity_bytes * 100.0
    if latencies:
        agg.latency_min_ms = min(latencies)
        agg.latency_max_ms = max(latencies)
    return agg


def _snapshot_bytes(row: ClusterStatus) -> int:
    """Prefer the dedicated snapshot capacity read over the file-system figure."""
    snapshot = row.snapshot
    if snapshot is None:
        return 0
    if snapshot.snapshots.total_bytes is not None:
        return snapshot.snapshots.total_bytes
    if snapshot.capacity is not None:
        return snapshot.capacity.snapshot_bytes
    return 0


def _assemble(rows: Sequence[ClusterStatus], now: datetime | None) -> Report:
    now = now or datetime.now(tz=UTC)
    rows = sorted(rows, key=lambda r: r.profile)
    alerts = derive_alerts(rows, now)

    by_cluster: dict[str, list[Alert]] = {}
    for alert in alerts:
        by_cluster.setdefault(alert.cluster, []).append(alert)
    rows = [
        row.model_copy(update={"health_level": health_level(by_cluster.get(row.profile, []))})
        for row in rows
    ]

    return Report(
        timestamp=now,
        aggregates=build_aggregates(rows),
        alerts=alerts,
        clusters=rows,
    )


def build_report(results: Iterable[ClusterResult], now: datetime | None = None) -> Report:
    """Build the report for one collection run."""
    return _assemble([to_status(r) for r in results], now)


def build_cached_report(
    entries: Iterable[CachedEntry], now: datetime | None = None,
) -> Report:
    """Build a report from cache entries alone; every row is stale."""
    return _assemble([cached_status(e) for e in entries], now)
