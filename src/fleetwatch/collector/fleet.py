"""Concurrent fan-out of the cluster collector across profiles."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

from fleetwatch.collector.collector import ClusterCollector
from fleetwatch.models import ClusterResult, Profile, UnreachableResult

logger = logging.getLogger(__name__)


class FleetError(Exception):
    """Raised when the profile set cannot be collected as given."""


class FleetOrchestrator:
    """Runs one collector task per profile and joins them all.

    Wall-clock cost is bounded by the slowest cluster. Results come back in
    the order the profiles were given; a worker that raises unexpectedly is
    reported as an unreachable cluster without cached data.
    """

    def __init__(self, collector: ClusterCollector, max_workers: int | None = None) -> None:
        self._collector = collector
        self._max_workers = max_workers

    def collect_all(self, profiles: Sequence[Profile]) -> list[ClusterResult]:
        duplicates = sorted(n for n, c in Counter(p.name for p in profiles).items() if c > 1)
        if duplicates:
            raise FleetError(f"Duplicate profile(s): {', '.join(duplicates)}")
        if not profiles:
            return []

        workers = len(profiles)
        if self._max_workers is not None:
            workers = max(1, min(workers, self._max_workers))

        logger.debug("Collecting %d cluster(s) with %d worker(s)", len(profiles), workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fleetwatch") as pool:
            futures = [pool.submit(self._collector.collect, p) for p in profiles]

        results: list[ClusterResult] = []
        for profile, future in zip(profiles, futures, strict=True):
            error = future.exception()
            if error is not None:
                logger.error("Collector for %s crashed: %r", profile.name, error)
                results.append(UnreachableResult(
                    profile=profile.name, error=f"collector crashed: {error}",
                ))
            else:
                results.append(future.result())
        return results
