"""Tests for alert derivation rules and ordering."""

from __future__ import annotations

from datetime import timedelta

import pytest
from fakes import NOW, TB, hours_ago, make_snapshot

from fleetwatch.health.alerts import (
    CATEGORY_CAPACITY_PROJECTION,
    CATEGORY_CONNECTIVITY,
    CATEGORY_DATA_AT_RISK,
    CATEGORY_DISK_UNHEALTHY,
    CATEGORY_NODE_OFFLINE,
    CATEGORY_PROTECTION_DEGRADED,
    CATEGORY_PSU_UNHEALTHY,
    alerts_for_cluster,
    derive_alerts,
    format_age,
    health_level,
    sort_alerts,
)
from fleetwatch.models import (
    Alert,
    AlertSeverity,
    ClusterKind,
    ClusterSnapshot,
    ClusterState,
    ClusterStatus,
    HealthFacts,
    HealthLevel,
    ProjectionConfidence,
    ProjectionResult,
    UnhealthyDisk,
    UnhealthyPsu,
)


def _live(profile: str, snapshot: ClusterSnapshot | None = None) -> ClusterStatus:
    return ClusterStatus(
        profile=profile,
        state=ClusterState.LIVE,
        reachable=True,
        stale=False,
        latency_ms=50,
        snapshot=snapshot or make_snapshot(name=profile),
    )


def _unreachable(
    profile: str, snapshot: ClusterSnapshot | None = None, hours: float = 2,
) -> ClusterStatus:
    return ClusterStatus(
        profile=profile,
        state=ClusterState.STALE if snapshot else ClusterState.NO_DATA,
        reachable=False,
        stale=snapshot is not None,
        error="Connection refused",
        last_success=hours_ago(NOW, hours) if snapshot else None,
        snapshot=snapshot,
    )


def _projection(days: float, growth: float = 1.2 * TB, **kwargs) -> ProjectionResult:
    return ProjectionResult(
        growth_bytes_per_day=growth,
        days_to_full=days,
        confidence=kwargs.get("confidence", ProjectionConfidence.HIGH),
        r_squared=kwargs.get("r_squared", 0.99),
        sample_days=30,
    )


class TestFormatAge:
    @pytest.mark.parametrize("delta,expected", [
        (timedelta(seconds=45), "45s"),
        (timedelta(minutes=12, seconds=5), "12m"),
        (timedelta(hours=2, minutes=5), "2h 5m"),
        (timedelta(days=3, hours=4, minutes=30), "3d 4h"),
        (timedelta(seconds=-5), "0s"),
    ])
    def test_format(self, delta, expected):
        assert format_age(delta) == expected


# --- Individual rules ---


class TestRules:
    def test_healthy_cluster_has_no_alerts(self):
        assert alerts_for_cluster(_live("a"), NOW) == []

    def test_offline_nodes_one_alert_each(self):
        row = _live("a", make_snapshot(nodes_online=2, nodes_offline=2))
        alerts = alerts_for_cluster(row, NOW)
        assert [a.message for a in alerts] == ["Node 3 is offline", "Node 4 is offline"]
        assert all(a.severity is AlertSeverity.CRITICAL for a in alerts)
        assert all(a.category == CATEGORY_NODE_OFFLINE for a in alerts)

    def test_data_at_risk(self):
        row = _live("a", make_snapshot(health=HealthFacts(data_at_risk=True)))
        (alert,) = alerts_for_cluster(row, NOW)
        assert alert.severity is AlertSeverity.CRITICAL
        assert alert.category == CATEGORY_DATA_AT_RISK

    def test_unhealthy_disks_single_alert(self):
        health = HealthFacts(unhealthy_disks=[
            UnhealthyDisk(node_id=1, bay="4", disk_type="HDD", state="missing"),
            UnhealthyDisk(node_id=3, bay="9", disk_type="SSD", state="dead"),
        ])
        (alert,) = alerts_for_cluster(_live("a", make_snapshot(health=health)), NOW)
        assert alert.severity is AlertSeverity.WARNING
        assert alert.category == CATEGORY_DISK_UNHEALTHY
        assert alert.message == (
            "2 unhealthy disk(s): node 1 bay 4 (HDD, missing), node 3 bay 9 (SSD, dead)"
        )

    def test_unhealthy_psu(self):
        health = HealthFacts(unhealthy_psus=[
            UnhealthyPsu(node_id=2, location="right", name="PSU2", state="FAILED"),
        ])
        (alert,) = alerts_for_cluster(_live("a", make_snapshot(health=health)), NOW)
        assert alert.category == CATEGORY_PSU_UNHEALTHY
        assert alert.message == "1 unhealthy PSU(s): node 2 PSU2 right (FAILED)"

    def test_fault_tolerance_degraded_per_dimension(self):
        health = HealthFacts(
            remaining_node_failures=0, max_node_failures=1,
            remaining_drive_failures=1, max_drive_failures=2,
        )
        alerts = alerts_for_cluster(_live("a", make_snapshot(health=health)), NOW)
        assert [a.category for a in alerts] == [CATEGORY_PROTECTION_DEGRADED] * 2
        assert alerts[0].message == "Fault tolerance degraded (0 of 1 node failure(s) remaining)"
        assert alerts[1].message == "Fault tolerance degraded (1 of 2 drive failure(s) remaining)"

    def test_fault_tolerance_without_design_value(self):
        healthy = HealthFacts(remaining_node_failures=1)
        exhausted = HealthFacts(remaining_node_failures=0)
        assert alerts_for_cluster(_live("a", make_snapshot(health=healthy)), NOW) == []
        (alert,) = alerts_for_cluster(_live("a", make_snapshot(health=exhausted)), NOW)
        assert alert.message == "Fault tolerance degraded (0 node failure(s) remaining)"

    def test_unknown_health_raises_nothing(self):
        snap = ClusterSnapshot(cluster_type=ClusterKind.ON_PREM)
        assert alerts_for_cluster(_live("a", snap), NOW) == []

    def test_on_prem_projection_under_ninety_days(self):
        snap = make_snapshot()
        snap.projection = _projection(9.17)
        (alert,) = alerts_for_cluster(_live("a", snap), NOW)
        assert alert.severity is AlertSeverity.WARNING
        assert alert.category == CATEGORY_CAPACITY_PROJECTION
        assert alert.message == "Projected full in ~9 days at 1.20 TB/day (under 90d)"

    def test_on_prem_projection_beyond_threshold(self):
        snap = make_snapshot()
        snap.projection = _projection(120)
        assert alerts_for_cluster(_live("a", snap), NOW) == []

    def test_cloud_projection_uses_seven_days(self):
        snap = make_snapshot(kind=ClusterKind.CLOUD_AWS)
        snap.projection = _projection(30)
        assert alerts_for_cluster(_live("a", snap), NOW) == []

        snap.projection = _projection(5)
        (alert,) = alerts_for_cluster(_live("a", snap), NOW)
        assert "under 7d" in alert.message
        assert "capacity clamp" in alert.message

    def test_low_confidence_marked(self):
        snap = make_snapshot()
        snap.projection = _projection(
            40, confidence=ProjectionConfidence.LOW, r_squared=0.3,
        )
        (alert,) = alerts_for_cluster(_live("a", snap), NOW)
        assert alert.message.endswith("[low confidence]")

    def test_several_rules_fire_together(self):
        snap = make_snapshot(
            nodes_online=3, nodes_offline=1,
            health=HealthFacts(data_at_risk=True, remaining_node_failures=0, max_node_failures=1),
        )
        categories = [a.category for a in alerts_for_cluster(_live("a", snap), NOW)]
        assert categories == [
            CATEGORY_NODE_OFFLINE, CATEGORY_DATA_AT_RISK, CATEGORY_PROTECTION_DEGRADED,
        ]


# --- Unreachable and stale rows ---


class TestConnectivity:
    def test_unreachable_without_cache(self):
        (alert,) = alerts_for_cluster(_unreachable("a"), NOW)
        assert alert.severity is AlertSeverity.CRITICAL
        assert alert.category == CATEGORY_CONNECTIVITY
        assert alert.message == "Cluster unreachable: Connection refused (no cached data)"

    def test_unreachable_with_cache(self):
        (alert,) = alerts_for_cluster(_unreachable("a", make_snapshot(), hours=2), NOW)
        assert alert.message == (
            "Cluster unreachable: Connection refused (showing cached data from 2h 0m ago)"
        )

    def test_stale_snapshot_rules_are_suffixed(self):
        snap = make_snapshot(nodes_online=3, nodes_offline=1)
        alerts = alerts_for_cluster(_unreachable("a", snap), NOW)
        assert [a.category for a in alerts] == [CATEGORY_CONNECTIVITY, CATEGORY_NODE_OFFLINE]
        assert alerts[1].message == "Node 4 is offline (cached)"

    def test_cached_only_row_has_no_connectivity_alert(self):
        row = ClusterStatus(
            profile="a",
            state=ClusterState.STALE,
            reachable=False,
            stale=True,
            last_success=hours_ago(NOW, 1),
            snapshot=make_snapshot(),
        )
        assert alerts_for_cluster(row, NOW) == []


# --- Ordering ---


class TestOrdering:
    def test_empty(self):
        assert derive_alerts([], NOW) == []

    def test_critical_first_then_cluster(self):
        rows = [
            _live("zulu", make_snapshot(health=HealthFacts(data_at_risk=True))),
            _live("alpha", make_snapshot(health=HealthFacts(unhealthy_disks=[
                UnhealthyDisk(node_id=1, bay="1", state="dead"),
            ]))),
            _unreachable("mike"),
        ]
        alerts = derive_alerts(rows, NOW)
        assert [(a.severity.value, a.cluster) for a in alerts] == [
            ("critical", "mike"),
            ("critical", "zulu"),
            ("warning", "alpha"),
        ]

    def test_deterministic_regardless_of_row_order(self):
        rows = [
            _live("b", make_snapshot(nodes_online=2, nodes_offline=2)),
            _live("a", make_snapshot(nodes_online=3, nodes_offline=1)),
            _unreachable("c", make_snapshot(health=HealthFacts(data_at_risk=True))),
        ]
        assert derive_alerts(rows, NOW) == derive_alerts(list(reversed(rows)), NOW)

    def test_sort_is_stable_within_cluster(self):
        alerts = [
            Alert(severity=AlertSeverity.WARNING, cluster="a", category="x", message="first"),
            Alert(severity=AlertSeverity.CRITICAL, cluster="b", category="x", message="crit"),
            Alert(severity=AlertSeverity.WARNING, cluster="a", category="x", message="second"),
        ]
        assert [a.message for a in sort_alerts(alerts)] == ["crit", "first", "second"]


class TestHealthLevel:
    def test_levels(self):
        warning = Alert(severity=AlertSeverity.WARNING, cluster="a", category="x", message="m")
        critical = Alert(severity=AlertSeverity.CRITICAL, cluster="a", category="x", message="m")
        assert health_level([]) is HealthLevel.HEALTHY
        assert health_level([warning]) is HealthLevel.DEGRADED
        assert health_level([warning, critical]) is HealthLevel.CRITICAL
