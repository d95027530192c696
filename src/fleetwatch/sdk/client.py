"""FleetWatch SDK: the single public entry point.

Wires configuration, the snapshot cache, the API client, the collector,
the fleet orchestrator and the aggregator behind one class.

Usage::

    from fleetwatch import FleetWatch

    fw = FleetWatch("./fleetwatch.yaml")
    report = fw.collect()
    for alert in report.alerts:
        print(alert.severity, alert.cluster, alert.message)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from pathlib import Path

from fleetwatch.aggregate.aggregator import build_cached_report, build_report
from fleetwatch.cache.store import FileSnapshotCache, SnapshotCache
from fleetwatch.client.api import ClusterClient
from fleetwatch.collector.collector import ClientFactory, ClusterCollector
from fleetwatch.collector.fleet import FleetOrchestrator
from fleetwatch.config import (
    ConfigError,
    FleetConfig,
    RunOptions,
    default_cache_path,
    load_config,
)
from fleetwatch.models import LiveResult, Profile, Report
from fleetwatch.timing import TimingReport
from fleetwatch.watch import WatchState

logger = logging.getLogger(__name__)


class FleetWatchError(Exception):
    """Raised for configuration or initialization errors."""


class FleetWatch:
    """Public API for fleetwatch.

    Loads the configuration, selects the profiles for this run and exposes
    ``collect()`` (one pass), ``watch()`` (repeating passes) and
    ``cached_report()`` (last-known state without contacting clusters).
    """

    def __init__(
        self,
        config: FleetConfig | str | Path | None = None,
        *,
        options: RunOptions | None = None,
        cache: SnapshotCache | None = None,
        client_factory: ClientFactory | None = None,
        timing: TimingReport | None = None,
    ) -> None:
        """Initialize FleetWatch.

        Args:
            config: A loaded ``FleetConfig``, or a path to ``fleetwatch.yaml``
                (auto-discovered when ``None``).
            options: Run parameters. Defaults take timeout and interval from
                the config.
            cache: Snapshot cache override. Defaults to the file cache at the
                configured path, disabled when ``options.no_cache`` is set.
            client_factory: Builds the API client per profile (tests inject
                fakes here).
            timing: Collects per-call timings when given.
        """
        if not isinstance(config, FleetConfig):
            config = load_config(config)
        self._config = config
        self._options = options or RunOptions(timeout=config.timeout, interval=config.interval)

        try:
            self._profiles = config.select(self._options.profiles)
        except ConfigError as e:
            raise FleetWatchError(str(e)) from e
        if not self._profiles:
            raise FleetWatchError(
                "No cluster profiles configured; add a 'profiles' section to fleetwatch.yaml"
            )

        self._cache: SnapshotCache
        if cache is not None:
            self._cache = cache
        else:
            self._cache = FileSnapshotCache(
                config.cache_path or default_cache_path(),
                enabled=not self._options.no_cache,
            )
        self._timing = timing
        self._client_factory = client_factory or self._default_client_factory

    @property
    def config(self) -> FleetConfig:
        return self._config

    @property
    def options(self) -> RunOptions:
        return self._options

    @property
    def profiles(self) -> list[Profile]:
        return list(self._profiles)

    @property
    def cache(self) -> SnapshotCache:
        return self._cache

    @property
    def timing(self) -> TimingReport | None:
        return self._timing

    def _default_client_factory(self, profile: Profile) -> ClusterClient:
        hook = self._timing.hook_for(profile.name) if self._timing is not None else None
        return ClusterClient(profile, timeout=self._options.timeout, on_timing=hook)

    def collect(self, *, watch_mode: bool = False) -> Report:
        """Collect every selected cluster once and build the report."""
        collector = ClusterCollector(
            self._client_factory,
            self._cache,
            nic_sample_seconds=self._config.nic_sample_seconds,
            watch_mode=watch_mode,
        )
        orchestrator = FleetOrchestrator(collector, max_workers=self._config.max_workers)
        results = orchestrator.collect_all(self._profiles)

        if self._timing is not None:
            for result in results:
                if isinstance(result, LiveResult):
                    self._timing.record_cluster(result.profile, result.latency_ms)

        report = build_report(results)
        logger.info(
            "Collected %d cluster(s): %d live, %d unreachable, %d alert(s)",
            report.aggregates.cluster_count,
            report.aggregates.healthy_count,
            report.aggregates.unreachable_count,
            len(report.alerts),
        )
        return report

    def cached_report(self) -> Report:
        """Report built from the cache alone; clusters are not contacted."""
        entries = [self._cache.get(p.name) for p in self._profiles]
        return build_cached_report(e for e in entries if e is not None)

    def watch(
        self,
        *,
        max_iterations: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> Iterator[Report]:
        """Yield a report every ``options.interval`` seconds.

        NIC throughput is derived from counter deltas between iterations,
        so it is absent on the first report.
        """
        state = WatchState()
        count = 0
        while max_iterations is None or count < max_iterations:
            report = self.collect(watch_mode=True)
            report, state = state.apply(report, monotonic())
            yield report
            count += 1
            if max_iterations is None or count < max_iterations:
                sleep(self._options.interval)
