"""Plain-text rendering of a ``Report`` for the terminal."""

from __future__ import annotations

from datetime import datetime

import click

from fleetwatch.health.alerts import format_age
from fleetwatch.models import (
    AlertSeverity,
    ClusterSnapshot,
    ClusterState,
    ClusterStatus,
    HealthLevel,
    NodeInfo,
    Report,
)

_BYTE_UNITS = ("B", "KB", "MB", "GB", "TB", "PB", "EB")
_BIT_UNITS = ("bps", "Kbps", "Mbps", "Gbps", "Tbps")

_STATE_COLORS = {
    ClusterState.LIVE: "green",
    ClusterState.STALE: "yellow",
    ClusterState.NO_DATA: "red",
}
_HEALTH_COLORS = {
    HealthLevel.HEALTHY: "green",
    HealthLevel.DEGRADED: "yellow",
    HealthLevel.CRITICAL: "red",
}


def format_bytes(value: float) -> str:
    """Decimal units: ``1_500_000_000_000 -> "1.5 TB"``."""
    size = float(value)
    if abs(size) < 1000:
        return f"{size:.0f} B"
    for unit in _BYTE_UNITS[1:]:
        size /= 1000
        if abs(size) < 1000:
            break
    return f"{size:.1f} {unit}"


def format_bps(value: float) -> str:
    rate = float(value)
    if abs(rate) < 1000:
        return f"{rate:.0f} bps"
    for unit in _BIT_UNITS[1:]:
        rate /= 1000
        if abs(rate) < 1000:
            break
    return f"{rate:.1f} {unit}"


def _summary(report: Report) -> list[str]:
    agg = report.aggregates
    lines = [
        click.style("FLEET STATUS", bold=True)
        + f"  {report.timestamp.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}",
        f"  Clusters:  {agg.cluster_count} ({agg.healthy_count} live, "
        f"{agg.unreachable_count} unreachable, {agg.stale_count} stale)",
        f"  Nodes:     {agg.online_nodes}/{agg.total_nodes} online",
        f"  Capacity:  {format_bytes(agg.used_capacity_bytes)} used of "
        f"{format_bytes(agg.total_capacity_bytes)} ({agg.used_pct:.1f}%), "
        f"{format_bytes(agg.free_capacity_bytes)} free, "
        f"{format_bytes(agg.snapshot_bytes)} in snapshots",
        f"  Files:     {agg.total_files:,} files, {agg.total_directories:,} directories, "
        f"{agg.total_snapshots:,} snapshots",
    ]
    if agg.latency_min_ms is not None and agg.latency_max_ms is not None:
        lines.append(f"  Latency:   {agg.latency_min_ms:,}ms - {agg.latency_max_ms:,}ms")
    return lines


def _alerts(report: Report) -> list[str]:
    lines = ["", click.style("ALERTS", bold=True)]
    if not report.alerts:
        lines.append("  " + click.style("No issues detected.", fg="green"))
        return lines
    width = max(len(a.cluster) for a in report.alerts)
    for alert in report.alerts:
        color = "red" if alert.severity is AlertSeverity.CRITICAL else "yellow"
        lines.append(
            "  "
            + click.style(f"{alert.severity.value.upper():<8}", fg=color)
            + f"  {alert.cluster:<{width}}  {alert.message}"
        )
    return lines


def _node_line(node: NodeInfo) -> str:
    parts = [f"    node {node.node_id:<3} {node.status:<8}"]
    if node.nic_throughput_bps is not None:
        nic = f"NIC {format_bps(node.nic_throughput_bps)}"
        if node.nic_utilization_pct is not None:
            nic += f" ({node.nic_utilization_pct:.1f}%)"
        parts.append(nic)
    if node.connections is not None:
        conns = f"{node.connections} conns"
        if node.connection_breakdown:
            detail = ", ".join(
                f"{proto} {count}" for proto, count in sorted(node.connection_breakdown.items())
            )
            conns += f" ({detail})"
        parts.append(conns)
    return "  ".join(parts)


def _snapshot_lines(snapshot: ClusterSnapshot) -> list[str]:
    ident = []
    if snapshot.cluster_name:
        ident.append(snapshot.cluster_name)
    if snapshot.cluster_type is not None:
        kind = snapshot.cluster_type.label
        if snapshot.hardware_skus:
            kind += f" ({', '.join(snapshot.hardware_skus)})"
        ident.append(kind)
    if snapshot.version:
        ident.append(f"v{snapshot.version}")

    lines = []
    if ident:
        lines.append("    " + "  ".join(ident))

    facts = []
    if snapshot.nodes is not None:
        facts.append(f"{snapshot.online_nodes}/{snapshot.total_nodes} nodes online")
    if snapshot.capacity is not None:
        facts.append(
            f"{format_bytes(snapshot.capacity.used_bytes)} / "
            f"{format_bytes(snapshot.capacity.total_bytes)} "
            f"({snapshot.capacity.used_pct:.1f}%)"
        )
    if snapshot.projection is not None and snapshot.projection.days_to_full is not None:
        facts.append(f"~{snapshot.projection.days_to_full:.0f} days to full")
    if snapshot.activity is not None:
        act = snapshot.activity
        if act.is_idle:
            facts.append("idle")
        else:
            facts.append(
                f"R {act.read_iops:,.0f} IOPS {format_bytes(act.read_throughput)}/s, "
                f"W {act.write_iops:,.0f} IOPS {format_bytes(act.write_throughput)}/s"
            )
    if facts:
        lines.append("    " + "  ".join(facts))
    if snapshot.missing_fields:
        lines.append("    unavailable: " + ", ".join(snapshot.missing_fields))
    for node in snapshot.nodes or []:
        lines.append(_node_line(node))
    return lines


def _cluster(row: ClusterStatus, now: datetime) -> list[str]:
    header = (
        "  "
        + click.style(row.profile, bold=True)
        + "  "
        + click.style(f"[{row.state.value.upper()}]", fg=_STATE_COLORS[row.state])
        + "  "
        + click.style(row.health_level.value, fg=_HEALTH_COLORS[row.health_level])
    )
    if row.latency_ms is not None:
        header += f"  {row.latency_ms:,}ms"
    if row.stale and row.last_success is not None:
        header += f"  last seen {format_age(now - row.last_success)} ago"
    lines = [header]
    if row.error:
        lines.append(f"    error: {row.error}")
    if row.snapshot is None:
        lines.append("    no data available")
    else:
        lines.extend(_snapshot_lines(row.snapshot))
    return lines


def render_report(report: Report) -> str:
    lines = _summary(report) + _alerts(report)
    lines += ["", click.style("CLUSTERS", bold=True)]
    for row in report.clusters:
        lines.extend(_cluster(row, report.timestamp))
    return "\n".join(lines)
