"""Turn raw cluster API payloads into typed snapshot pieces.

Every parser raises ``FieldUnavailable`` when the payload does not have the
expected shape, so the collector can treat a malformed answer exactly like a
failed read.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fleetwatch.models import (
    CapacityStatus,
    FileCounts,
    NodeInfo,
    UnhealthyDisk,
    UnhealthyPsu,
)

CONNECTION_TYPE_PREFIX = "CONNECTION_TYPE_"
PRIMARY_NIC = "bond0"
FRONTEND_USES = ("FRONTEND_AND_BACKEND", "FRONTEND")


class FieldUnavailable(Exception):
    """A single snapshot field could not be read or parsed."""


@dataclass(frozen=True)
class NicSample:
    """One reading of a node's primary NIC."""

    bytes_total: int
    link_speed_bps: int | None


def parse_int(value: Any, default: int | None = 0) -> int | None:
    """Parse API integers, which arrive as JSON numbers or decimal strings."""
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return default
    return default


def _expect_list(payload: Any, what: str) -> list[Any]:
    if not isinstance(payload, list):
        raise FieldUnavailable(f"{what}: expected a list, got {type(payload).__name__}")
    return payload


def _expect_dict(payload: Any, what: str) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise FieldUnavailable(f"{what}: expected an object, got {type(payload).__name__}")
    return payload


# --- Identity ---


def parse_identity(settings: Any) -> tuple[str | None, str | None]:
    data = _expect_dict(settings, "cluster settings")
    return data.get("cluster_name"), data.get("cluster_uuid")


def parse_version(version: Any) -> str:
    data = _expect_dict(version, "version")
    revision = data.get("revision_id")
    if not revision:
        raise FieldUnavailable("version: missing revision_id")
    return str(revision)


def parse_nodes(payload: Any) -> list[NodeInfo]:
    nodes: list[NodeInfo] = []
    for entry in _expect_list(payload, "cluster nodes"):
        if not isinstance(entry, dict):
            continue
        node_id = parse_int(entry.get("id"), None)
        if node_id is None:
            continue
        nodes.append(NodeInfo(
            node_id=node_id,
            status=str(entry.get("node_status") or "unknown").lower(),
            model_number=str(entry.get("model_number") or ""),
        ))
    return sorted(nodes, key=lambda n: n.node_id)


# --- Capacity ---


def parse_capacity(fs: Any) -> CapacityStatus:
    data = _expect_dict(fs, "file system")
    if "total_size_bytes" not in data:
        raise FieldUnavailable("file system: missing total_size_bytes")
    total = parse_int(data.get("total_size_bytes")) or 0
    free = parse_int(data.get("free_size_bytes")) or 0
    snapshot = parse_int(data.get("snapshot_size_bytes")) or 0
    used = max(total - free, 0)
    return CapacityStatus(
        total_bytes=total,
        used_bytes=used,
        free_bytes=free,
        snapshot_bytes=snapshot,
        used_pct=(used / total * 100.0) if total > 0 else 0.0,
    )


# --- Health ---


def parse_disk_health(slots: Any) -> list[UnhealthyDisk]:
    unhealthy: list[UnhealthyDisk] = []
    for slot in _expect_list(slots, "cluster slots"):
        if not isinstance(slot, dict):
            continue
        state = str(slot.get("state") or "unknown")
        if state.lower() != "healthy":
            unhealthy.append(UnhealthyDisk(
                node_id=parse_int(slot.get("node_id")) or 0,
                bay=str(slot.get("drive_bay") or ""),
                disk_type=str(slot.get("disk_type") or "unknown"),
                state=state,
            ))
    return unhealthy


def parse_psu_health(chassis: Any) -> list[UnhealthyPsu]:
    """Cloud clusters report empty ``psu_statuses`` arrays; that is healthy."""
    unhealthy: list[UnhealthyPsu] = []
    for node in _expect_list(chassis, "chassis"):
        if not isinstance(node, dict):
            continue
        node_id = parse_int(node.get("id")) or 0
        for psu in node.get("psu_statuses") or []:
            state = str(psu.get("state") or "unknown")
            if state.upper() != "GOOD":
                unhealthy.append(UnhealthyPsu(
                    node_id=node_id,
                    location=str(psu.get("location") or "unknown"),
                    name=str(psu.get("name") or "unknown"),
                    state=state,
                ))
    return unhealthy


def parse_protection_status(prot: Any) -> dict[str, Any]:
    data = _expect_dict(prot, "protection status")
    return {
        "remaining_node_failures": parse_int(data.get("remaining_node_failures"), None),
        "remaining_drive_failures": parse_int(data.get("remaining_drive_failures"), None),
        "max_node_failures": parse_int(data.get("max_node_failures"), None),
        "max_drive_failures": parse_int(data.get("max_drive_failures"), None),
        "protection_type": data.get("protection_system_type"),
    }


def parse_restriper_status(restriper: Any) -> bool:
    data = _expect_dict(restriper, "restriper status")
    return bool(data.get("data_at_risk", False))


# --- Network ---


def normalize_connection_type(raw: str) -> str:
    return raw.removeprefix(CONNECTION_TYPE_PREFIX)


def parse_connections(payload: Any) -> dict[int, tuple[int, dict[str, int]]]:
    """Return ``node_id -> (total_connections, {protocol: count})``."""
    result: dict[int, tuple[int, dict[str, int]]] = {}
    for node in _expect_list(payload, "network connections"):
        if not isinstance(node, dict):
            continue
        node_id = parse_int(node.get("id"), None)
        if node_id is None:
            continue
        conns = node.get("connections") or []
        breakdown: dict[str, int] = {}
        for conn in conns:
            conn_type = conn.get("type") if isinstance(conn, dict) else None
            if conn_type:
                protocol = normalize_connection_type(str(conn_type))
                breakdown[protocol] = breakdown.get(protocol, 0) + 1
        result[node_id] = (len(conns), breakdown)
    return result


def _primary_device(node: dict[str, Any]) -> dict[str, Any] | None:
    for device in node.get("devices") or []:
        if not isinstance(device, dict):
            continue
        use_for = (device.get("network_details") or {}).get("use_for", "")
        if device.get("name") == PRIMARY_NIC or use_for in FRONTEND_USES:
            return device
    return None


def parse_nic_samples(payload: Any, is_cloud: bool) -> dict[int, NicSample]:
    """Read the primary frontend NIC of every node.

    Link speed arrives in Mbps as a string; cloud clusters report a
    meaningless speed, so it is dropped for them.
    """
    samples: dict[int, NicSample] = {}
    for node in _expect_list(payload, "network status"):
        if not isinstance(node, dict):
            continue
        node_id = parse_int(node.get("node_id"), None)
        if node_id is None:
            continue
        device = _primary_device(node)
        if device is None:
            continue
        total = (parse_int(device.get("bytes_sent")) or 0) + (
            parse_int(device.get("bytes_received")) or 0
        )
        speed_mbps = parse_int(device.get("speed"), None)
        link_speed = None if is_cloud or speed_mbps is None else speed_mbps * 1_000_000
        samples[node_id] = NicSample(bytes_total=total, link_speed_bps=link_speed)
    return samples


def throughput_bps(
    previous_bytes: int, current_bytes: int, elapsed_seconds: float,
) -> int | None:
    """Bits per second between two cumulative byte counters.

    A counter that went backwards (NIC reset) counts as zero traffic.
    """
    if elapsed_seconds <= 0:
        return None
    delta = max(current_bytes - previous_bytes, 0)
    return int(delta * 8 / elapsed_seconds)


def utilization_pct(throughput: int | None, link_speed_bps: int | None) -> float | None:
    if throughput is None or not link_speed_bps:
        return None
    return throughput / link_speed_bps * 100.0


# --- Files, snapshots, activity ---


def parse_recursive_aggregates(agg: Any) -> FileCounts:
    """Sum file and directory counts across the aggregate pages."""
    pages = agg if isinstance(agg, list) else [_expect_dict(agg, "recursive aggregates")]
    total_files = 0
    total_dirs = 0
    for page in pages:
        if not isinstance(page, dict):
            continue
        entries = page.get("files")
        if entries is None:
            entries = [page]
        for entry in entries:
            total_files += parse_int(entry.get("num_files")) or 0
            total_dirs += parse_int(entry.get("num_directories")) or 0
    return FileCounts(total_files=total_files, total_directories=total_dirs)


def parse_snapshot_count(payload: Any) -> int:
    data = _expect_dict(payload, "snapshots")
    return len(data.get("entries") or [])


def parse_snapshot_bytes(payload: Any) -> int:
    data = _expect_dict(payload, "snapshot capacity")
    value = parse_int(data.get("bytes"), None)
    if value is None:
        raise FieldUnavailable("snapshot capacity: missing bytes")
    return value


def sum_activity_rates(payload: Any, activity_type: str) -> float:
    """Sum the ``rate`` of every entry of *activity_type*."""
    data = _expect_dict(payload, f"activity {activity_type}")
    total = 0.0
    for entry in data.get("entries") or []:
        if entry.get("type") == activity_type:
            total += float(entry.get("rate") or 0.0)
    return total
