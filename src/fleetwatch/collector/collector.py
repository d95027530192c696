"""Per-cluster collection pipeline.

``ClusterCollector.collect()`` turns one profile into exactly one
``ClusterResult``. Reads run sequentially through a ``ClusterClient``:

1. Required reads (nodes, capacity). A connectivity failure on either, or an
   API failure on both, makes the cluster unreachable and the last cached
   snapshot is returned as fallback.
2. Every other read is isolated: a failure or malformed payload only leaves
   that field empty and is recorded in ``snapshot.missing_fields``.

Snapshots carrying both required fields are written to the cache with the
collection time.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

from fleetwatch.cache.store import SnapshotCache
from fleetwatch.client.api import ClusterClient, ClusterClientError, ClusterConnectionError
from fleetwatch.collector.detection import detect_cluster_type
from fleetwatch.collector.parsers import (
    FieldUnavailable,
    NicSample,
    parse_capacity,
    parse_connections,
    parse_disk_health,
    parse_identity,
    parse_nic_samples,
    parse_nodes,
    parse_protection_status,
    parse_psu_health,
    parse_recursive_aggregates,
    parse_restriper_status,
    parse_snapshot_bytes,
    parse_snapshot_count,
    parse_version,
    sum_activity_rates,
    throughput_bps,
    utilization_pct,
)
from fleetwatch.models import (
    ActivityStatus,
    ClusterKind,
    ClusterResult,
    ClusterSnapshot,
    FileCounts,
    HealthFacts,
    LiveResult,
    NodeInfo,
    Profile,
    ProjectionResult,
    SnapshotStats,
    UnreachableResult,
)
from fleetwatch.projection.engine import (
    ProjectionError,
    history_begin_epoch,
    parse_capacity_history,
    project,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ClientFactory = Callable[[Profile], ClusterClient]

IOPS_READ = "file-iops-read"
IOPS_WRITE = "file-iops-write"
THROUGHPUT_READ = "file-throughput-read"
THROUGHPUT_WRITE = "file-throughput-write"
ACTIVITY_TYPES = (IOPS_READ, IOPS_WRITE, THROUGHPUT_READ, THROUGHPUT_WRITE)

# Payload shape errors raised while parsing count as an unavailable field.
_MALFORMED = (FieldUnavailable, TypeError, ValueError, KeyError, AttributeError)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class RequiredReadsFailed(ClusterClientError):
    """The cluster answered but neither nodes nor capacity could be read."""


class ClusterCollector:
    """Collects one snapshot per profile.

    Args:
        client_factory: Builds the API client for a profile.
        cache: Snapshot cache for fallback reads and success writes.
        nic_sample_seconds: Gap between the two NIC samples used to derive
            throughput in single-shot mode. ``0`` takes one sample only.
        watch_mode: Take a single NIC sample; throughput is derived across
            iterations by ``WatchState`` instead.
    """

    def __init__(
        self,
        client_factory: ClientFactory,
        cache: SnapshotCache | None = None,
        *,
        nic_sample_seconds: float = 1.0,
        watch_mode: bool = False,
        clock: Callable[[], datetime] = _utcnow,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client_factory = client_factory
        self._cache = cache
        self._nic_sample_seconds = nic_sample_seconds
        self._watch_mode = watch_mode
        self._clock = clock
        self._monotonic = monotonic
        self._sleep = sleep

    def collect(self, profile: Profile) -> ClusterResult:
        client = self._client_factory(profile)
        start = self._monotonic()
        try:
            snapshot = self._collect_snapshot(client, profile)
        except (ClusterConnectionError, RequiredReadsFailed) as e:
            return self._unreachable(profile, str(e))
        latency_ms = max(int((self._monotonic() - start) * 1000), 0)

        if snapshot.missing_fields:
            logger.info(
                "Collected %s with missing fields: %s",
                profile.name, ", ".join(snapshot.missing_fields),
            )
        if self._cache is not None:
            if snapshot.nodes is None or snapshot.capacity is None:
                logger.warning("Not caching incomplete snapshot for %s", profile.name)
            else:
                self._cache.put(profile.name, snapshot, self._clock())
        return LiveResult(profile=profile.name, snapshot=snapshot, latency_ms=latency_ms)

    def _unreachable(self, profile: Profile, error: str) -> UnreachableResult:
        logger.warning("Cluster %s is unreachable: %s", profile.name, error)
        fallback = self._cache.get(profile.name) if self._cache is not None else None
        if fallback is not None:
            logger.info(
                "Using cached snapshot for %s from %s",
                profile.name, fallback.last_success.isoformat(),
            )
        return UnreachableResult(profile=profile.name, error=error, fallback=fallback)

    def _read(
        self,
        profile: Profile,
        field: str,
        fetch: Callable[[], Any],
        parse: Callable[[Any], T],
        missing: list[str],
        errors: dict[str, str],
        *,
        required: bool = False,
    ) -> T | None:
        """Run one fetch+parse; on failure record *field* as missing.

        Raises:
            ClusterConnectionError: Only when *required* and the cluster
                could not be reached.
        """
        try:
            return parse(fetch())
        except ClusterConnectionError as e:
            if required:
                raise
            self._field_failed(profile, field, e, missing, errors)
        except ClusterClientError as e:
            self._field_failed(profile, field, e, missing, errors)
        except _MALFORMED as e:
            self._field_failed(profile, field, e, missing, errors)
        return None

    @staticmethod
    def _field_failed(
        profile: Profile,
        field: str,
        error: Exception,
        missing: list[str],
        errors: dict[str, str],
    ) -> None:
        logger.warning("Could not read %s from %s: %s", field, profile.name, error)
        errors.setdefault(field, str(error))
        if field not in missing:
            missing.append(field)

    def _collect_snapshot(self, client: ClusterClient, profile: Profile) -> ClusterSnapshot:
        missing: list[str] = []
        errors: dict[str, str] = {}

        def read(
            field: str,
            fetch: Callable[[], Any],
            parse: Callable[[Any], T],
            required: bool = False,
        ) -> T | None:
            return self._read(
                profile, field, fetch, parse, missing, errors, required=required,
            )

        nodes = read("nodes", client.get_cluster_nodes, parse_nodes, required=True)
        capacity = read("capacity", client.get_file_system, parse_capacity, required=True)
        if nodes is None and capacity is None:
            raise RequiredReadsFailed(
                f"nodes: {errors.get('nodes', 'unavailable')}; "
                f"capacity: {errors.get('capacity', 'unavailable')}"
            )

        identity = read("identity", client.get_cluster_settings, parse_identity)
        cluster_name, cluster_uuid = identity if identity is not None else (None, None)
        version = read("version", client.get_version, parse_version)

        cluster_type: ClusterKind | None
        skus: list[str] = []
        if nodes is not None:
            cluster_type, skus = detect_cluster_type(nodes, profile.platform)
        else:
            cluster_type = profile.platform

        health = self._read_health(client, read)
        projection = self._read_projection(profile, client, read, capacity, missing)

        if nodes is not None:
            connections = read(
                "connections", client.get_network_connections, parse_connections,
            )
            nodes = self._apply_network(
                nodes, connections,
                self._read_nics(client, read, bool(cluster_type and cluster_type.is_cloud)),
            )

        files = read(
            "files", lambda: client.get_recursive_aggregates("/"), parse_recursive_aggregates,
        )
        snapshots = SnapshotStats(
            count=read("snapshot_count", client.get_snapshots, parse_snapshot_count),
            total_bytes=read(
                "snapshot_bytes", client.get_snapshots_total_capacity, parse_snapshot_bytes,
            ),
        )
        activity = read(
            "activity",
            lambda: {t: client.get_activity(t) for t in ACTIVITY_TYPES},
            _parse_activity,
        )

        return ClusterSnapshot(
            cluster_name=cluster_name,
            cluster_uuid=cluster_uuid,
            version=version,
            cluster_type=cluster_type,
            hardware_skus=skus,
            nodes=nodes,
            capacity=capacity,
            files=files or FileCounts(),
            snapshots=snapshots,
            activity=activity,
            health=health,
            projection=projection,
            missing_fields=missing,
        )

    @staticmethod
    def _read_health(client: ClusterClient, read: Callable[..., Any]) -> HealthFacts:
        protection = read(
            "protection", client.get_protection_status, parse_protection_status,
        )
        return HealthFacts(
            unhealthy_disks=read("disk_health", client.get_cluster_slots, parse_disk_health),
            unhealthy_psus=read("psu_health", client.get_cluster_chassis, parse_psu_health),
            data_at_risk=read(
                "restriper", client.get_restriper_status, parse_restriper_status,
            ),
            **(protection or {}),
        )

    def _read_projection(
        self,
        profile: Profile,
        client: ClusterClient,
        read: Callable[..., Any],
        capacity: Any,
        missing: list[str],
    ) -> ProjectionResult | None:
        now = self._clock()
        history = read(
            "capacity_history",
            lambda: client.get_capacity_history(history_begin_epoch(now)),
            lambda payload: parse_capacity_history(payload, now),
        )
        if history is None or capacity is None:
            return None
        try:
            return project(history, capacity.total_bytes, current_used=capacity.used_bytes)
        except ProjectionError as e:
            logger.error("Capacity projection failed for %s: %s", profile.name, e)
            missing.append("projection")
            return None

    def _read_nics(
        self,
        client: ClusterClient,
        read: Callable[..., Any],
        is_cloud: bool,
    ) -> tuple[dict[int, NicSample], dict[int, int | None]] | None:
        """Sample NIC counters; in single-shot mode sample twice for throughput."""

        def parse(payload: Any) -> dict[int, NicSample]:
            return parse_nic_samples(payload, is_cloud)

        first = read("nic_stats", client.get_network_status, parse)
        if first is None:
            return None
        first_at = self._monotonic()
        if self._watch_mode or self._nic_sample_seconds <= 0:
            return first, {}

        self._sleep(self._nic_sample_seconds)
        second = read("nic_throughput", client.get_network_status, parse)
        if second is None:
            return first, {}
        elapsed = self._monotonic() - first_at
        throughput = {
            node_id: throughput_bps(first[node_id].bytes_total, sample.bytes_total, elapsed)
            for node_id, sample in second.items()
            if node_id in first
        }
        return second, throughput

    @staticmethod
    def _apply_network(
        nodes: list[NodeInfo],
        connections: dict[int, tuple[int, dict[str, int]]] | None,
        nics: tuple[dict[int, NicSample], dict[int, int | None]] | None,
    ) -> list[NodeInfo]:
        samples, throughput = nics if nics is not None else ({}, {})
        merged: list[NodeInfo] = []
        for node in nodes:
            update: dict[str, Any] = {}
            if connections is not None:
                count, breakdown = connections.get(node.node_id, (0, {}))
                update["connections"] = count
                update["connection_breakdown"] = breakdown
            sample = samples.get(node.node_id)
            if sample is not None:
                bps = throughput.get(node.node_id)
                update["nic_bytes_total"] = sample.bytes_total
                update["nic_link_speed_bps"] = sample.link_speed_bps
                update["nic_throughput_bps"] = bps
                update["nic_utilization_pct"] = utilization_pct(bps, sample.link_speed_bps)
            merged.append(node.model_copy(update=update) if update else node)
        return merged


def _parse_activity(payloads: dict[str, Any]) -> ActivityStatus:
    return ActivityStatus(
        read_iops=sum_activity_rates(payloads[IOPS_READ], IOPS_READ),
        write_iops=sum_activity_rates(payloads[IOPS_WRITE], IOPS_WRITE),
        read_throughput=sum_activity_rates(payloads[THROUGHPUT_READ], THROUGHPUT_READ),
        write_throughput=sum_activity_rates(payloads[THROUGHPUT_WRITE], THROUGHPUT_WRITE),
    )
