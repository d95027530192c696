#!/usr/bin/env python3
"""Demo: a three-cluster fleet report, entirely offline.

Builds a small fleet from canned API payloads, collects it twice and shows
how a cluster that drops off the network falls back to its cached snapshot.

Run from the project root:
    python examples/demo_fleet_report.py
"""

from __future__ import annotations

import sys
import tempfile
from pathlib import Path
from typing import Any

# Add src to path for running without install
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from fleetwatch import ClusterConnectionError, FleetConfig, FleetWatch, Profile
from fleetwatch.cli.render import render_report

TB = 1_000_000_000_000
DAY = 86400
HISTORY_START = 1_767_225_600

BOLD = "\033[1m"
RESET = "\033[0m"


class CannedClient:
    """Answers every read from a fixed payload table."""

    def __init__(self, model: str, total_tb: int, used_tb: float, growth_tb: float) -> None:
        self.down = False
        self._model = model
        self._total = total_tb * TB
        self._used = int(used_tb * TB)
        self._growth = growth_tb * TB

    def _check(self) -> None:
        if self.down:
            raise ClusterConnectionError("Connection refused")

    def get_cluster_nodes(self) -> Any:
        self._check()
        return [
            {"id": i, "node_status": "online", "model_number": self._model}
            for i in range(1, 5)
        ]

    def get_file_system(self) -> Any:
        self._check()
        return {
            "total_size_bytes": str(self._total),
            "free_size_bytes": str(self._total - self._used),
        }

    def get_cluster_settings(self) -> Any:
        return {"cluster_name": self._model.lower(), "cluster_uuid": "demo"}

    def get_version(self) -> Any:
        return {"revision_id": "7.2.3.1"}

    def get_capacity_history(self, begin_time_epoch: int) -> Any:
        return [
            {
                "period_start_time": HISTORY_START + i * DAY,
                "capacity_used": str(int(self._used - (29 - i) * self._growth)),
            }
            for i in range(30)
        ]

    def get_cluster_slots(self) -> Any:
        return [{"node_id": 1, "drive_bay": "1", "disk_type": "SSD", "state": "healthy"}]

    def get_cluster_chassis(self) -> Any:
        return [{"id": i, "psu_statuses": []} for i in range(1, 5)]

    def get_protection_status(self) -> Any:
        return {"max_node_failures": 1, "remaining_node_failures": 1}

    def get_restriper_status(self) -> Any:
        return {"data_at_risk": False}

    def get_network_connections(self) -> Any:
        return [{"id": 1, "connections": [{"type": "CONNECTION_TYPE_NFS"}]}]

    def get_network_status(self) -> Any:
        return []

    def get_recursive_aggregates(self, path: str = "/") -> Any:
        return [{"files": [{"num_files": "125000", "num_directories": "4200"}]}]

    def get_snapshots(self) -> Any:
        return {"entries": [{"id": 1}, {"id": 2}]}

    def get_snapshots_total_capacity(self) -> Any:
        return {"bytes": str(TB)}

    def get_activity(self, activity_type: str) -> Any:
        return {"entries": []}


def main() -> None:
    clients = {
        "prod-east": CannedClient("C192T", total_tb=605, used_tb=594, growth_tb=1.2),
        "prod-west": CannedClient("K432T", total_tb=800, used_tb=200, growth_tb=0.5),
        "cloud-dr": CannedClient("AWS-ICELAKE", total_tb=100, used_tb=40, growth_tb=0.0),
    }

    with tempfile.TemporaryDirectory() as tmp:
        config = FleetConfig(
            profiles={name: Profile(name=name, host=f"{name}.example.com") for name in clients},
            cache_path=Path(tmp) / "status-cache.json",
            nic_sample_seconds=0,
        )
        fw = FleetWatch(config, client_factory=lambda profile: clients[profile.name])

        print(f"\n{BOLD}Pass 1: every cluster reachable{RESET}\n")
        print(render_report(fw.collect()))

        clients["prod-west"].down = True
        print(f"\n{BOLD}Pass 2: prod-west refuses connections{RESET}\n")
        print(render_report(fw.collect()))


if __name__ == "__main__":
    main()
