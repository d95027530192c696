"""Core data models for fleetwatch.

Defines the schemas for:
- Profiles (which clusters to query)
- Cluster snapshots (facts collected from one cluster at one instant)
- Collection results (live, or unreachable with optional cached fallback)
- Cache entries (last successful snapshot per profile)
- Capacity history and projections
- Alerts and the fleet-wide report
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Enums ---


class ClusterKind(enum.StrEnum):
    ON_PREM = "on_prem"
    CLOUD_AWS = "cloud_aws"
    CLOUD_AZURE = "cloud_azure"

    @property
    def is_cloud(self) -> bool:
        return self is not ClusterKind.ON_PREM

    @property
    def label(self) -> str:
        return {
            ClusterKind.ON_PREM: "On-Prem",
            ClusterKind.CLOUD_AWS: "Cloud-AWS",
            ClusterKind.CLOUD_AZURE: "Cloud-Azure",
        }[self]


class AlertSeverity(enum.StrEnum):
    CRITICAL = "critical"
    WARNING = "warning"

    @property
    def rank(self) -> int:
        """Sort rank: lower sorts first."""
        return 0 if self is AlertSeverity.CRITICAL else 1


class ProjectionConfidence(enum.StrEnum):
    HIGH = "high"
    LOW = "low"


class ClusterState(enum.StrEnum):
    LIVE = "live"
    STALE = "stale"
    NO_DATA = "no_data"


class HealthLevel(enum.StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"


# --- Profiles ---


class Profile(BaseModel):
    """Connection parameters for one target cluster.

    Loaded from the ``profiles`` mapping in ``fleetwatch.yaml``.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    host: str = Field(..., min_length=1)
    port: int = Field(8000, ge=1, le=65535)
    token: str = ""
    insecure: bool = False
    base_url: str | None = None
    platform: ClusterKind | None = None
    """Declared platform, only used when node model numbers are unavailable."""

    @property
    def url(self) -> str:
        if self.base_url:
            return self.base_url.rstrip("/")
        return f"https://{self.host}:{self.port}"


# --- Snapshot pieces ---


class NodeInfo(BaseModel):
    """A single node: status, model and per-node network details."""

    node_id: int
    status: str = "unknown"
    model_number: str = ""
    connections: int | None = None
    connection_breakdown: dict[str, int] = Field(default_factory=dict)
    nic_bytes_total: int | None = None
    """Cumulative sent+received bytes on the primary frontend NIC."""
    nic_throughput_bps: int | None = None
    nic_link_speed_bps: int | None = None
    """Link speed, reported for on-prem clusters only."""
    nic_utilization_pct: float | None = None

    @property
    def online(self) -> bool:
        return self.status.lower() == "online"


class CapacityStatus(BaseModel):
    total_bytes: int = Field(0, ge=0)
    used_bytes: int = Field(0, ge=0)
    free_bytes: int = Field(0, ge=0)
    snapshot_bytes: int = Field(0, ge=0)
    used_pct: float = 0.0


class FileCounts(BaseModel):
    total_files: int | None = None
    total_directories: int | None = None


class SnapshotStats(BaseModel):
    count: int | None = None
    total_bytes: int | None = None


class ActivityStatus(BaseModel):
    """Current IOPS and throughput, summed across the cluster."""

    read_iops: float = 0.0
    write_iops: float = 0.0
    read_throughput: float = 0.0
    write_throughput: float = 0.0

    @property
    def is_idle(self) -> bool:
        return (
            self.read_iops == 0
            and self.write_iops == 0
            and self.read_throughput == 0
            and self.write_throughput == 0
        )

    @property
    def state(self) -> str:
        return "idle" if self.is_idle else "active"


class UnhealthyDisk(BaseModel):
    node_id: int
    bay: str = ""
    disk_type: str = "unknown"
    state: str = "unknown"


class UnhealthyPsu(BaseModel):
    node_id: int
    location: str = "unknown"
    name: str = "unknown"
    state: str = "unknown"


class HealthFacts(BaseModel):
    """Raw health facts. ``None`` means the fact could not be collected."""

    unhealthy_disks: list[UnhealthyDisk] | None = None
    unhealthy_psus: list[UnhealthyPsu] | None = None
    data_at_risk: bool | None = None
    remaining_node_failures: int | None = None
    remaining_drive_failures: int | None = None
    max_node_failures: int | None = None
    max_drive_failures: int | None = None
    protection_type: str | None = None

    @property
    def disks_unhealthy(self) -> int:
        return len(self.unhealthy_disks or [])

    @property
    def psus_unhealthy(self) -> int:
        return len(self.unhealthy_psus or [])


# --- Capacity projection ---


class CapacityHistoryPoint(BaseModel):
    timestamp: datetime
    used_bytes: int


class ProjectionResult(BaseModel):
    """Linear capacity projection.

    ``days_to_full`` is ``None`` when growth is zero or negative.
    """

    growth_bytes_per_day: float
    days_to_full: float | None = None
    confidence: ProjectionConfidence
    r_squared: float
    sample_days: int


# --- Snapshot ---


class ClusterSnapshot(BaseModel):
    """Everything collected about one cluster at one instant.

    Any field may be absent when its read failed; ``missing_fields`` names
    the reads that failed so consumers can tell "zero" from "unknown".
    """

    cluster_name: str | None = None
    cluster_uuid: str | None = None
    version: str | None = None
    cluster_type: ClusterKind | None = None
    hardware_skus: list[str] = Field(default_factory=list)
    nodes: list[NodeInfo] | None = None
    capacity: CapacityStatus | None = None
    files: FileCounts = Field(default_factory=FileCounts)
    snapshots: SnapshotStats = Field(default_factory=SnapshotStats)
    activity: ActivityStatus | None = None
    health: HealthFacts = Field(default_factory=HealthFacts)
    projection: ProjectionResult | None = None
    missing_fields: list[str] = Field(default_factory=list)

    @property
    def total_nodes(self) -> int:
        return len(self.nodes or [])

    @property
    def online_nodes(self) -> int:
        return sum(1 for n in self.nodes or [] if n.online)

    @property
    def offline_node_ids(self) -> list[int]:
        return [n.node_id for n in self.nodes or [] if not n.online]


class CachedEntry(BaseModel):
    """Last successful snapshot for a profile, as persisted in the cache."""

    profile: str
    last_success: datetime
    snapshot: ClusterSnapshot

    @field_validator("last_success")
    @classmethod
    def normalize_last_success(cls, v: datetime) -> datetime:
        # Entries written without an offset are taken as UTC.
        return v.replace(tzinfo=UTC) if v.tzinfo is None else v.astimezone(UTC)


# --- Collection results ---


class LiveResult(BaseModel):
    kind: Literal["live"] = "live"
    profile: str
    snapshot: ClusterSnapshot
    latency_ms: int = Field(0, ge=0)

    @property
    def state(self) -> ClusterState:
        return ClusterState.LIVE


class UnreachableResult(BaseModel):
    kind: Literal["unreachable"] = "unreachable"
    profile: str
    error: str
    fallback: CachedEntry | None = None

    @property
    def state(self) -> ClusterState:
        return ClusterState.STALE if self.fallback is not None else ClusterState.NO_DATA


ClusterResult = Annotated[LiveResult | UnreachableResult, Field(discriminator="kind")]


# --- Report ---


class Alert(BaseModel):
    model_config = ConfigDict(frozen=True)

    severity: AlertSeverity
    cluster: str
    category: str
    message: str


class Aggregates(BaseModel):
    cluster_count: int = 0
    healthy_count: int = 0
    unreachable_count: int = 0
    stale_count: int = 0
    total_nodes: int = 0
    online_nodes: int = 0
    offline_nodes: int = 0
    total_capacity_bytes: int = 0
    used_capacity_bytes: int = 0
    free_capacity_bytes: int = 0
    snapshot_bytes: int = 0
    used_pct: float = 0.0
    total_files: int = 0
    total_directories: int = 0
    total_snapshots: int = 0
    latency_min_ms: int | None = None
    latency_max_ms: int | None = None


class ClusterStatus(BaseModel):
    """One report row: reachability flags plus the best available snapshot."""

    profile: str
    state: ClusterState
    reachable: bool
    stale: bool
    latency_ms: int | None = None
    error: str | None = None
    last_success: datetime | None = None
    health_level: HealthLevel = HealthLevel.HEALTHY
    snapshot: ClusterSnapshot | None = None


class Report(BaseModel):
    """The single artifact handed to renderers and JSON consumers."""

    timestamp: datetime
    aggregates: Aggregates
    alerts: list[Alert] = Field(default_factory=list)
    clusters: list[ClusterStatus] = Field(default_factory=list)

    @property
    def all_unreachable(self) -> bool:
        return bool(self.clusters) and self.aggregates.healthy_count == 0

    def to_json_dict(self) -> dict[str, Any]:
        """Flatten each cluster row into one object with its snapshot fields."""
        clusters: list[dict[str, Any]] = []
        for row in self.clusters:
            entry = row.model_dump(mode="json", exclude={"snapshot"})
            if row.snapshot is not None:
                entry.update(row.snapshot.model_dump(mode="json"))
                if row.snapshot.activity is not None:
                    entry["activity"]["state"] = row.snapshot.activity.state
            clusters.append(entry)
        return {
            "timestamp": self.timestamp.isoformat(),
            "aggregates": self.aggregates.model_dump(mode="json"),
            "alerts": [a.model_dump(mode="json") for a in self.alerts],
            "clusters": clusters,
        }
