"""Tests for the cluster payload parsers."""

import pytest

from fleetwatch.collector.parsers import (
    FieldUnavailable,
    NicSample,
    normalize_connection_type,
    parse_capacity,
    parse_connections,
    parse_disk_health,
    parse_identity,
    parse_int,
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

TB = 1_000_000_000_000


class TestParseInt:
    @pytest.mark.parametrize("value,expected", [
        (5, 5),
        ("605000000000000", 605_000_000_000_000),
        (2.9, 2),
        ("nope", 0),
        (None, 0),
        (True, 0),
    ])
    def test_values(self, value, expected):
        assert parse_int(value) == expected

    def test_custom_default(self):
        assert parse_int("x", None) is None


# --- Identity ---


class TestIdentity:
    def test_identity(self):
        assert parse_identity({"cluster_name": "gt", "cluster_uuid": "u"}) == ("gt", "u")

    def test_identity_requires_object(self):
        with pytest.raises(FieldUnavailable):
            parse_identity([])

    def test_version(self):
        assert parse_version({"revision_id": "7.2.3.1"}) == "7.2.3.1"

    def test_version_missing_revision(self):
        with pytest.raises(FieldUnavailable, match="revision_id"):
            parse_version({})

    def test_nodes_sorted_and_normalized(self):
        nodes = parse_nodes([
            {"id": 2, "node_status": "OFFLINE", "model_number": "C192T"},
            {"id": "1", "node_status": "online"},
            {"node_status": "online"},
            "junk",
        ])
        assert [n.node_id for n in nodes] == [1, 2]
        assert nodes[1].status == "offline"
        assert nodes[0].model_number == ""

    def test_nodes_requires_list(self):
        with pytest.raises(FieldUnavailable):
            parse_nodes({"nodes": []})


# --- Capacity ---


class TestCapacity:
    def test_string_bytes(self):
        cap = parse_capacity({
            "total_size_bytes": str(605 * TB),
            "free_size_bytes": str(11 * TB),
            "snapshot_size_bytes": str(2 * TB),
        })
        assert cap.total_bytes == 605 * TB
        assert cap.used_bytes == 594 * TB
        assert cap.snapshot_bytes == 2 * TB
        assert cap.used_pct == pytest.approx(594 / 605 * 100)

    def test_zero_total(self):
        cap = parse_capacity({"total_size_bytes": "0", "free_size_bytes": "0"})
        assert cap.used_pct == 0.0

    def test_free_above_total_clamps_used(self):
        cap = parse_capacity({"total_size_bytes": "10", "free_size_bytes": "20"})
        assert cap.used_bytes == 0

    def test_missing_total(self):
        with pytest.raises(FieldUnavailable):
            parse_capacity({"free_size_bytes": "1"})


# --- Health ---


class TestHealth:
    def test_unhealthy_disks(self):
        disks = parse_disk_health([
            {"node_id": 1, "drive_bay": "3", "disk_type": "HDD", "state": "healthy"},
            {"node_id": 2, "drive_bay": "7", "disk_type": "SSD", "state": "missing"},
        ])
        assert len(disks) == 1
        assert disks[0].node_id == 2
        assert disks[0].bay == "7"
        assert disks[0].state == "missing"

    def test_psus(self):
        psus = parse_psu_health([
            {"id": 1, "psu_statuses": [
                {"location": "left", "name": "PSU1", "state": "GOOD"},
                {"location": "right", "name": "PSU2", "state": "FAILED"},
            ]},
            {"id": 2, "psu_statuses": []},
        ])
        assert [(p.node_id, p.location, p.state) for p in psus] == [(1, "right", "FAILED")]

    def test_cloud_chassis_without_psus_is_healthy(self):
        assert parse_psu_health([{"id": 1, "psu_statuses": []}, {"id": 2}]) == []

    def test_protection_status(self):
        prot = parse_protection_status({
            "protection_system_type": "PROTECTION_SYSTEM_TYPE_EC",
            "max_node_failures": 1,
            "remaining_node_failures": "0",
        })
        assert prot["remaining_node_failures"] == 0
        assert prot["max_node_failures"] == 1
        assert prot["max_drive_failures"] is None
        assert prot["protection_type"] == "PROTECTION_SYSTEM_TYPE_EC"

    def test_restriper(self):
        assert parse_restriper_status({"data_at_risk": True}) is True
        assert parse_restriper_status({"state": "RUNNING"}) is False


# --- Network ---


class TestNetwork:
    def test_connection_type_prefix(self):
        assert normalize_connection_type("CONNECTION_TYPE_NFS") == "NFS"
        assert normalize_connection_type("SMB") == "SMB"

    def test_connections(self):
        result = parse_connections([
            {"id": 1, "connections": [
                {"type": "CONNECTION_TYPE_NFS"},
                {"type": "CONNECTION_TYPE_NFS"},
                {"type": "CONNECTION_TYPE_SMB"},
            ]},
            {"id": 2, "connections": []},
        ])
        assert result[1] == (3, {"NFS": 2, "SMB": 1})
        assert result[2] == (0, {})

    def test_nic_samples_on_prem(self):
        samples = parse_nic_samples([
            {"node_id": 1, "devices": [
                {"name": "eth9", "bytes_sent": "5", "bytes_received": "5"},
                {"name": "bond0", "bytes_sent": "100", "bytes_received": "50", "speed": "10000"},
            ]},
        ], is_cloud=False)
        assert samples == {1: NicSample(bytes_total=150, link_speed_bps=10_000_000_000)}

    def test_nic_samples_frontend_by_use(self):
        samples = parse_nic_samples([
            {"node_id": 3, "devices": [{
                "name": "ens5",
                "bytes_sent": 10,
                "bytes_received": 10,
                "speed": "25000",
                "network_details": {"use_for": "FRONTEND_AND_BACKEND"},
            }]},
        ], is_cloud=True)
        assert samples[3].bytes_total == 20
        assert samples[3].link_speed_bps is None

    def test_node_without_primary_nic_skipped(self):
        samples = parse_nic_samples([{"node_id": 1, "devices": [{"name": "eth1"}]}], False)
        assert samples == {}

    def test_throughput(self):
        assert throughput_bps(1_000_000, 2_250_000, 1.0) == 10_000_000
        assert throughput_bps(100, 50, 1.0) == 0
        assert throughput_bps(0, 100, 0) is None

    def test_utilization(self):
        assert utilization_pct(1_000_000_000, 10_000_000_000) == pytest.approx(10.0)
        assert utilization_pct(1_000, None) is None
        assert utilization_pct(None, 1_000) is None


# --- Files, snapshots, activity ---


class TestFilesAndActivity:
    def test_recursive_aggregates_pages(self):
        counts = parse_recursive_aggregates([
            {"files": [
                {"num_files": "10", "num_directories": "2"},
                {"num_files": "5", "num_directories": "1"},
            ]},
            {"files": [{"num_files": "1", "num_directories": "0"}]},
        ])
        assert counts.total_files == 16
        assert counts.total_directories == 3

    def test_recursive_aggregates_single_object(self):
        counts = parse_recursive_aggregates({"num_files": "7", "num_directories": "3"})
        assert counts.total_files == 7
        assert counts.total_directories == 3

    def test_snapshots(self):
        assert parse_snapshot_count({"entries": [{}, {}]}) == 2
        assert parse_snapshot_count({}) == 0
        assert parse_snapshot_bytes({"bytes": "2048"}) == 2048

    def test_snapshot_bytes_missing(self):
        with pytest.raises(FieldUnavailable):
            parse_snapshot_bytes({})

    def test_activity_sums_matching_type(self):
        payload = {"entries": [
            {"type": "file-iops-read", "rate": 10.5},
            {"type": "file-iops-read", "rate": 4.5},
            {"type": "file-iops-write", "rate": 99},
        ]}
        assert sum_activity_rates(payload, "file-iops-read") == pytest.approx(15.0)

    def test_activity_empty(self):
        assert sum_activity_rates({"entries": []}, "file-iops-read") == 0.0
