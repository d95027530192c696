"""Cross-iteration state for watch mode.

In watch mode each collection takes a single NIC sample. Throughput comes
from the difference between this iteration's counters and the previous
iteration's, so the previous counters are carried explicitly from one
iteration to the next instead of living in a global.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from fleetwatch.collector.parsers import throughput_bps, utilization_pct
from fleetwatch.models import ClusterSnapshot, ClusterStatus, Report


@dataclass(frozen=True)
class NicCounters:
    """Per-node cumulative NIC byte counters of one cluster at one instant."""

    sampled_at: float
    bytes_by_node: dict[int, int] = field(default_factory=dict)


@dataclass(frozen=True)
class WatchState:
    """Previous NIC counters per profile; empty on the first iteration."""

    counters: dict[str, NicCounters] = field(default_factory=dict)
    iteration: int = 0

    def apply(self, report: Report, now: float) -> tuple[Report, WatchState]:
        """Fill NIC throughput from counter deltas and return the next state.

        *now* is a monotonic timestamp for this iteration. Only live rows
        carry fresh counters; a cluster that drops to stale loses its
        previous sample so the next delta never spans a gap.
        """
        next_counters: dict[str, NicCounters] = {}
        rows: list[ClusterStatus] = []
        for row in report.clusters:
            if not row.reachable or row.snapshot is None or row.snapshot.nodes is None:
                rows.append(row)
                continue
            previous = self.counters.get(row.profile)
            rows.append(_with_throughput(row, previous, now))
            next_counters[row.profile] = NicCounters(
                sampled_at=now,
                bytes_by_node={
                    n.node_id: n.nic_bytes_total
                    for n in row.snapshot.nodes
                    if n.nic_bytes_total is not None
                },
            )

        patched = report.model_copy(update={"clusters": rows})
        return patched, WatchState(counters=next_counters, iteration=self.iteration + 1)


def _with_throughput(
    row: ClusterStatus, previous: NicCounters | None, now: float,
) -> ClusterStatus:
    snapshot = row.snapshot
    if previous is None or snapshot is None or snapshot.nodes is None:
        return row

    elapsed = now - previous.sampled_at
    nodes = []
    for node in snapshot.nodes:
        before = previous.bytes_by_node.get(node.node_id)
        if before is None or node.nic_bytes_total is None:
            nodes.append(node)
            continue
        bps = throughput_bps(before, node.nic_bytes_total, elapsed)
        nodes.append(node.model_copy(update={
            "nic_throughput_bps": bps,
            "nic_utilization_pct": utilization_pct(bps, node.nic_link_speed_bps),
        }))

    updated: ClusterSnapshot = snapshot.model_copy(update={"nodes": nodes})
    return row.model_copy(update={"snapshot": updated})
