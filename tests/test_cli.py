"""Tests for the fleetwatch CLI."""

from __future__ import annotations

import json
import urllib.error
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner
from fakes import NOW, FakeClusterClient, make_snapshot

from fleetwatch.cache.store import FileSnapshotCache
from fleetwatch.cli.main import EXIT_ALL_UNREACHABLE, cli
from fleetwatch.cli.render import format_bps, format_bytes


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "fleetwatch.yaml"
    path.write_text(
        "nic_sample_seconds: 0\n"
        "cache_path: cache.json\n"
        "profiles:\n"
        "  east:\n"
        "    host: east.example.com\n"
        "    token: secret-east\n"
        "  west:\n"
        "    host: west.example.com\n"
        "    platform: cloud_aws\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture()
def fake_clients():
    """Route every profile to a healthy fake cluster."""

    def _client(profile, timeout, on_timing):
        if on_timing is not None:
            on_timing("cluster_nodes", 1234)
        return FakeClusterClient()

    with patch("fleetwatch.sdk.client.ClusterClient", side_effect=_client) as factory:
        yield factory


# --- Formatting helpers ---


class TestFormatting:
    @pytest.mark.parametrize("value,expected", [
        (512, "512 B"),
        (1_500, "1.5 KB"),
        (1_500_000_000_000, "1.5 TB"),
        (605_000_000_000_000, "605.0 TB"),
    ])
    def test_format_bytes(self, value, expected):
        assert format_bytes(value) == expected

    def test_format_bps(self):
        assert format_bps(800) == "800 bps"
        assert format_bps(10_000_000) == "10.0 Mbps"
        assert format_bps(2_500_000_000) == "2.5 Gbps"


# --- status ---


class TestStatus:
    def test_text_report(self, runner, config_file, fake_clients):
        result = runner.invoke(cli, ["status", "--config", str(config_file)])
        assert result.exit_code == 0, result.output
        assert "FLEET STATUS" in result.output
        assert "ALERTS" in result.output
        assert "CLUSTERS" in result.output
        assert "east" in result.output
        assert "[LIVE]" in result.output
        assert "Projected full in ~9 days" in result.output

    def test_json_report(self, runner, config_file, fake_clients):
        result = runner.invoke(cli, ["status", "--config", str(config_file), "--json-output"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["aggregates"]["cluster_count"] == 2
        assert [c["profile"] for c in data["clusters"]] == ["east", "west"]
        assert data["clusters"][0]["cluster_name"] == "gravytrain"
        assert data["clusters"][0]["reachable"] is True

    def test_profile_filter(self, runner, config_file, fake_clients):
        result = runner.invoke(
            cli, ["status", "--config", str(config_file), "-p", "west", "--json-output"],
        )
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [c["profile"] for c in data["clusters"]] == ["west"]

    def test_unknown_profile(self, runner, config_file, fake_clients):
        result = runner.invoke(cli, ["status", "--config", str(config_file), "-p", "north"])
        assert result.exit_code == 1
        assert "Unknown profile" in result.output

    def test_all_unreachable_exits_two(self, runner, config_file):
        err = urllib.error.URLError("Connection refused")
        with patch("urllib.request.urlopen", side_effect=err):
            result = runner.invoke(cli, ["status", "--config", str(config_file), "--no-cache"])
        assert result.exit_code == EXIT_ALL_UNREACHABLE
        assert "Cluster unreachable" in result.output
        assert "[NO_DATA]" in result.output

    def test_cache_written_after_collection(self, runner, config_file, fake_clients):
        runner.invoke(cli, ["status", "--config", str(config_file)])
        cache = FileSnapshotCache(config_file.parent / "cache.json")
        assert sorted(cache.get_many()) == ["east", "west"]

    def test_no_cache_skips_writes(self, runner, config_file, fake_clients):
        runner.invoke(cli, ["status", "--config", str(config_file), "--no-cache"])
        assert not (config_file.parent / "cache.json").exists()

    def test_cached_report(self, runner, config_file):
        cache = FileSnapshotCache(config_file.parent / "cache.json")
        cache.put("east", make_snapshot(name="east"), NOW)
        with patch("urllib.request.urlopen") as mock_open:
            result = runner.invoke(cli, ["status", "--config", str(config_file), "--cached"])
        assert result.exit_code == 0
        assert "[STALE]" in result.output
        assert "west" not in result.output.split("CLUSTERS", 1)[1]
        mock_open.assert_not_called()

    def test_timing_output(self, runner, config_file, fake_clients):
        result = runner.invoke(cli, ["status", "--config", str(config_file), "--timing"])
        assert result.exit_code == 0
        assert "1,234ms" in result.output
        assert "Cluster totals (wall clock):" in result.output

    def test_timing_rejected_with_watch(self, runner, config_file, fake_clients):
        result = runner.invoke(
            cli, ["status", "--config", str(config_file), "--timing", "--watch"],
        )
        assert result.exit_code == 1
        assert "--timing applies to a single live run only" in result.output
        fake_clients.assert_not_called()

    def test_invalid_interval(self, runner, config_file):
        result = runner.invoke(
            cli, ["status", "--config", str(config_file), "--interval", "0"],
        )
        assert result.exit_code == 1
        assert "invalid options" in result.output

    def test_missing_config(self, runner, tmp_path):
        result = runner.invoke(cli, ["status", "--config", str(tmp_path / "nope.yaml")])
        assert result.exit_code == 1
        assert "Error loading config" in result.output

    def test_no_profiles(self, runner, tmp_path):
        path = tmp_path / "fleetwatch.yaml"
        path.write_text("timeout: 5\n", encoding="utf-8")
        result = runner.invoke(cli, ["status", "--config", str(path)])
        assert result.exit_code == 1
        assert "No cluster profiles configured" in result.output


# --- profiles ---


class TestProfiles:
    def test_text(self, runner, config_file):
        result = runner.invoke(cli, ["profiles", "--config", str(config_file)])
        assert result.exit_code == 0
        assert "east" in result.output
        assert "https://west.example.com:8000" in result.output
        assert "Cloud-AWS" in result.output
        assert "2 profile(s)." in result.output

    def test_json_hides_token(self, runner, config_file):
        result = runner.invoke(cli, ["profiles", "--config", str(config_file), "--json-output"])
        data = json.loads(result.output)
        assert [p["name"] for p in data] == ["east", "west"]
        assert all("token" not in p for p in data)
        assert "secret-east" not in result.output

    def test_empty(self, runner, tmp_path):
        path = tmp_path / "fleetwatch.yaml"
        path.write_text("profiles: {}\n", encoding="utf-8")
        result = runner.invoke(cli, ["profiles", "--config", str(path)])
        assert "No profiles configured." in result.output


# --- cache show ---


class TestCacheShow:
    def test_empty(self, runner, config_file):
        result = runner.invoke(cli, ["cache", "show", "--config", str(config_file)])
        assert result.exit_code == 0
        assert "No cached snapshots" in result.output

    def test_entries(self, runner, config_file):
        cache = FileSnapshotCache(config_file.parent / "cache.json")
        cache.put("east", make_snapshot(name="gravytrain"), NOW)
        result = runner.invoke(cli, ["cache", "show", "--config", str(config_file)])
        assert "gravytrain" in result.output
        assert "1 cached cluster(s)" in result.output

    def test_json(self, runner, config_file):
        cache = FileSnapshotCache(config_file.parent / "cache.json")
        cache.put("east", make_snapshot(name="gravytrain"), NOW)
        result = runner.invoke(
            cli, ["cache", "show", "--config", str(config_file), "--json-output"],
        )
        data = json.loads(result.output)
        assert data[0]["profile"] == "east"
        assert data[0]["snapshot"]["cluster_name"] == "gravytrain"


class TestVersion:
    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.4.0" in result.output
