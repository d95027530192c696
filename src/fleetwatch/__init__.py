"""fleetwatch: health and capacity dashboard core for storage cluster fleets."""

__version__ = "0.4.0"

from fleetwatch.aggregate.aggregator import build_aggregates, build_cached_report, build_report
from fleetwatch.cache.store import FileSnapshotCache, SnapshotCache
from fleetwatch.client.api import (
    ApiError,
    ClusterClient,
    ClusterClientError,
    ClusterConnectionError,
)
from fleetwatch.config import ConfigError, FleetConfig, RunOptions, find_config, load_config
from fleetwatch.health.alerts import derive_alerts, sort_alerts
from fleetwatch.models import (
    Aggregates,
    Alert,
    AlertSeverity,
    CachedEntry,
    ClusterKind,
    ClusterSnapshot,
    ClusterState,
    ClusterStatus,
    LiveResult,
    Profile,
    ProjectionResult,
    Report,
    UnreachableResult,
)
from fleetwatch.projection.engine import ProjectionError, project
from fleetwatch.sdk.client import FleetWatch, FleetWatchError

__all__ = [
    "Aggregates",
    "Alert",
    "AlertSeverity",
    "ApiError",
    "build_aggregates",
    "build_cached_report",
    "build_report",
    "CachedEntry",
    "ClusterClient",
    "ClusterClientError",
    "ClusterConnectionError",
    "ClusterKind",
    "ClusterSnapshot",
    "ClusterState",
    "ClusterStatus",
    "ConfigError",
    "derive_alerts",
    "FileSnapshotCache",
    "find_config",
    "FleetConfig",
    "FleetWatch",
    "FleetWatchError",
    "LiveResult",
    "load_config",
    "Profile",
    "project",
    "ProjectionError",
    "ProjectionResult",
    "Report",
    "RunOptions",
    "SnapshotCache",
    "sort_alerts",
    "UnreachableResult",
    "__version__",
]
