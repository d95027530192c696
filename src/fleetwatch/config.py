"""Config file loading and auto-discovery for fleetwatch.

Searches for ``fleetwatch.yaml`` in the current directory and parent
directories, parses it, validates the cluster profiles, and resolves the
cache path against the config file's location.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from fleetwatch.models import Profile

CONFIG_FILENAME = "fleetwatch.yaml"
CONFIG_ENV = "FLEETWATCH_CONFIG"
CACHE_DIR_ENV = "FLEETWATCH_CACHE_DIR"
CACHE_FILENAME = "status-cache.json"

DEFAULT_TIMEOUT = 10.0
DEFAULT_INTERVAL = 30.0
DEFAULT_NIC_SAMPLE_SECONDS = 1.0


class ConfigError(Exception):
    """Raised when the config file is invalid or names unknown profiles."""


@dataclass(frozen=True)
class FleetConfig:
    """Parsed fleetwatch configuration."""

    config_path: Path | None = None
    profiles: dict[str, Profile] = field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT
    interval: float = DEFAULT_INTERVAL
    cache_path: Path | None = None
    max_workers: int | None = None
    nic_sample_seconds: float = DEFAULT_NIC_SAMPLE_SECONDS

    def select(self, names: list[str] | tuple[str, ...] | None = None) -> list[Profile]:
        """Return profiles in name order, optionally restricted to *names*.

        Raises:
            ConfigError: If a requested profile is not configured.
        """
        if not names:
            return [self.profiles[n] for n in sorted(self.profiles)]

        unknown = [n for n in names if n not in self.profiles]
        if unknown:
            raise ConfigError(f"Unknown profile(s): {', '.join(unknown)}")
        seen: dict[str, Profile] = {}
        for n in names:
            seen.setdefault(n, self.profiles[n])
        return list(seen.values())


class RunOptions(BaseModel):
    """Run-level parameters accepted from the caller."""

    profiles: list[str] = Field(default_factory=list)
    timeout: float = Field(DEFAULT_TIMEOUT, gt=0)
    no_cache: bool = False
    watch: bool = False
    interval: float = Field(DEFAULT_INTERVAL, gt=0)


def default_cache_path() -> Path:
    """``$FLEETWATCH_CACHE_DIR`` > ``$XDG_CACHE_HOME/fleetwatch`` > ``~/.cache/fleetwatch``."""
    explicit = os.environ.get(CACHE_DIR_ENV)
    if explicit:
        return Path(explicit) / CACHE_FILENAME
    xdg = os.environ.get("XDG_CACHE_HOME")
    if xdg:
        return Path(xdg) / "fleetwatch" / CACHE_FILENAME
    return Path.home() / ".cache" / "fleetwatch" / CACHE_FILENAME


def find_config(start: Path | None = None) -> Path | None:
    """Walk from *start* (default ``cwd()``) up to the filesystem root.

    Returns the first ``fleetwatch.yaml`` found, or ``None``.
    """
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(
    path: str | Path | None = None,
    *,
    auto_discover: bool = True,
) -> FleetConfig:
    """Load a fleetwatch config file.

    Resolution order:

    1. Explicit *path* (error if it doesn't exist).
    2. ``$FLEETWATCH_CONFIG``.
    3. Auto-discover by walking parent directories.
    4. Return an empty ``FleetConfig`` (no profiles, all defaults).
    """
    config_path: Path | None = None

    if path is None and os.environ.get(CONFIG_ENV):
        path = os.environ[CONFIG_ENV]

    if path is not None:
        config_path = Path(path).resolve()
        if not config_path.is_file():
            msg = f"Config file not found: {config_path}"
            raise FileNotFoundError(msg)
    elif auto_discover:
        config_path = find_config()

    if config_path is None:
        return FleetConfig()

    return _parse_config(config_path)


def _parse_config(config_path: Path) -> FleetConfig:
    """Read and parse a YAML config file."""
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {config_path}, got {type(data).__name__}"
        raise ConfigError(msg)

    profiles = _parse_profiles(data.get("profiles") or {}, config_path)

    cache_path: Path | None = None
    if data.get("cache_path"):
        cache_path = (config_path.parent / Path(str(data["cache_path"])).expanduser()).resolve()

    try:
        return FleetConfig(
            config_path=config_path,
            profiles=profiles,
            timeout=float(data.get("timeout", DEFAULT_TIMEOUT)),
            interval=float(data.get("interval", DEFAULT_INTERVAL)),
            cache_path=cache_path,
            max_workers=_optional_int(data.get("max_workers")),
            nic_sample_seconds=float(
                data.get("nic_sample_seconds", DEFAULT_NIC_SAMPLE_SECONDS)
            ),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid setting in {config_path}: {e}") from e


def _parse_profiles(raw: Any, config_path: Path) -> dict[str, Profile]:
    if not isinstance(raw, dict):
        raise ConfigError(f"'profiles' must be a mapping: {config_path}")

    profiles: dict[str, Profile] = {}
    for name, entry in raw.items():
        if not isinstance(entry, dict):
            raise ConfigError(f"Profile '{name}' must be a mapping: {config_path}")
        try:
            profiles[str(name)] = Profile(name=str(name), **entry)
        except (ValidationError, TypeError) as e:
            raise ConfigError(f"Invalid profile '{name}' in {config_path}: {e}") from e
    return profiles


def _optional_int(value: Any) -> int | None:
    if value is None:
        return None
    return int(value)
