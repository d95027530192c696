"""Read-only REST client for a single storage cluster.

One ``ClusterClient`` per profile. Every method is a single GET that either
returns the decoded JSON body or raises a ``ClusterClientError`` subclass;
retries are left to the caller.

Uses stdlib ``urllib.request``, no extra dependencies required.
"""

from __future__ import annotations

import http.client
import json
import logging
import ssl
import time
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Callable
from typing import Any

from fleetwatch.models import Profile

logger = logging.getLogger(__name__)

TimingHook = Callable[[str, int], None]


class ClusterClientError(Exception):
    """Base class for failures talking to a cluster."""


class ClusterConnectionError(ClusterClientError):
    """The cluster could not be reached (refused, DNS, TLS or timeout)."""


class ApiError(ClusterClientError):
    """The cluster answered with a non-2xx status."""

    def __init__(self, status: int, body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(f"API error ({status}): {body[:200]}")


class ResponseError(ClusterClientError):
    """The cluster answered 2xx but the body is not valid JSON."""


class ClusterClient:
    """Typed accessors over the cluster REST API.

    Usage::

        client = ClusterClient(profile, timeout=10)
        nodes = client.get_cluster_nodes()

    *on_timing* is called with ``(call_name, duration_ms)`` after every
    request, successful or not.
    """

    def __init__(
        self,
        profile: Profile,
        timeout: float = 10.0,
        on_timing: TimingHook | None = None,
    ) -> None:
        self._profile = profile
        self._base_url = profile.url
        self._timeout = timeout
        self._on_timing = on_timing
        self._ssl_context: ssl.SSLContext | None = None
        if profile.insecure:
            self._ssl_context = ssl._create_unverified_context()  # noqa: S323

    @property
    def base_url(self) -> str:
        return self._base_url

    def request(self, path: str, call_name: str | None = None) -> Any:
        """GET *path* and return the parsed JSON body (``None`` if empty)."""
        url = self._base_url + path
        name = call_name or path
        req = urllib.request.Request(
            url,
            headers={
                "Authorization": f"Bearer {self._profile.token}",
                "Accept": "application/json",
            },
            method="GET",
        )

        logger.debug("GET %s", url)
        start = time.monotonic()
        try:
            with urllib.request.urlopen(  # noqa: S310
                req, timeout=self._timeout, context=self._ssl_context,
            ) as resp:
                raw = resp.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace") if e.fp is not None else ""
            raise ApiError(e.code, body) from e
        except urllib.error.URLError as e:
            raise ClusterConnectionError(f"request to {url} failed: {e.reason}") from e
        except (TimeoutError, ConnectionError, http.client.HTTPException) as e:
            raise ClusterConnectionError(f"request to {url} failed: {e}") from e
        finally:
            if self._on_timing is not None:
                self._on_timing(name, int((time.monotonic() - start) * 1000))

        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise ResponseError(f"failed to parse response from {url} as JSON") from e

    # --- Cluster identity and inventory ---

    def get_cluster_settings(self) -> Any:
        return self.request("/v1/cluster/settings", "cluster_settings")

    def get_version(self) -> Any:
        return self.request("/v1/version", "version")

    def get_cluster_nodes(self) -> Any:
        return self.request("/v1/cluster/nodes/", "cluster_nodes")

    # --- Capacity ---

    def get_file_system(self) -> Any:
        return self.request("/v1/file-system", "file_system")

    def get_capacity_history(self, begin_time_epoch: int) -> Any:
        query = urllib.parse.urlencode({"begin-time": begin_time_epoch, "interval": "DAILY"})
        return self.request(f"/v1/analytics/capacity-history/?{query}", "capacity_history")

    # --- Health ---

    def get_cluster_slots(self) -> Any:
        return self.request("/v1/cluster/slots/", "cluster_slots")

    def get_cluster_chassis(self) -> Any:
        return self.request("/v1/cluster/nodes/chassis/", "cluster_chassis")

    def get_protection_status(self) -> Any:
        return self.request("/v1/cluster/protection/status", "protection_status")

    def get_restriper_status(self) -> Any:
        return self.request("/v1/cluster/restriper/status", "restriper_status")

    # --- Network ---

    def get_network_connections(self) -> Any:
        return self.request("/v2/network/connections/", "network_connections")

    def get_network_status(self) -> Any:
        return self.request("/v3/network/status", "network_status")

    # --- Files, snapshots, activity ---

    def get_recursive_aggregates(self, path: str = "/") -> Any:
        ref = urllib.parse.quote(path, safe="")
        return self.request(
            f"/v1/files/{ref}/recursive-aggregates/", "recursive_aggregates",
        )

    def get_snapshots(self) -> Any:
        return self.request("/v2/snapshots/", "snapshots")

    def get_snapshots_total_capacity(self) -> Any:
        return self.request("/v1/snapshots/total-used-capacity", "snapshots_total_capacity")

    def get_activity(self, activity_type: str) -> Any:
        query = urllib.parse.urlencode({"type": activity_type})
        return self.request(
            f"/v1/analytics/activity/current?{query}", f"activity:{activity_type}",
        )
