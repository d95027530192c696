"""Per-API-call timing for ``fleetwatch status --timing``."""

from __future__ import annotations

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class ApiCallTiming:
    cluster: str
    api_call: str
    duration_ms: int


def format_duration_ms(ms: int) -> str:
    """Milliseconds with thousands separators: ``4230 -> "4,230ms"``."""
    return f"{ms:,}ms"


class TimingReport:
    """Collects API call timings from every collector thread.

    Thread-safe via a lock; workers record concurrently.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._api_calls: list[ApiCallTiming] = []
        self._wall_clock: dict[str, int] = {}

    def record_call(self, cluster: str, api_call: str, duration_ms: int) -> None:
        with self._lock:
            self._api_calls.append(ApiCallTiming(cluster, api_call, duration_ms))

    def record_cluster(self, cluster: str, wall_clock_ms: int) -> None:
        with self._lock:
            self._wall_clock[cluster] = wall_clock_ms

    def hook_for(self, cluster: str):
        """Return an ``on_timing`` callback bound to *cluster*."""

        def _hook(api_call: str, duration_ms: int) -> None:
            self.record_call(cluster, api_call, duration_ms)

        return _hook

    @property
    def api_calls(self) -> list[ApiCallTiming]:
        """Recorded calls, slowest first."""
        with self._lock:
            return sorted(self._api_calls, key=lambda c: c.duration_ms, reverse=True)

    @property
    def cluster_totals(self) -> list[tuple[str, int]]:
        """Per-cluster wall clock, slowest first."""
        with self._lock:
            return sorted(self._wall_clock.items(), key=lambda kv: kv[1], reverse=True)

    def render_lines(self) -> list[str]:
        calls = self.api_calls
        if not calls:
            return []

        cw = max(len(c.cluster) for c in calls)
        aw = max(len(c.api_call) for c in calls)
        lines = ["", "API Call Timing (sorted slowest first):"]
        for c in calls:
            lines.append(
                f"  {c.cluster:<{cw}}  {c.api_call:<{aw}}  "
                f"{format_duration_ms(c.duration_ms):>10}"
            )

        totals = self.cluster_totals
        if totals:
            nw = max(len(name) for name, _ in totals)
            lines += ["", "Cluster totals (wall clock):"]
            for i, (name, ms) in enumerate(totals):
                suffix = "  (slowest)" if i == 0 and len(totals) > 1 else ""
                lines.append(f"  {name:<{nw}}  {format_duration_ms(ms):>10}{suffix}")
        return lines
