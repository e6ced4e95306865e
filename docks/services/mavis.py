"""
Mavis: the dock rotation service.

Mavis is reachable directly over HTTP (no tunnel). It lists the docks
currently in rotation and can take a dock out of rotation; removal goes
through the dry-run gate like every other mutation.

Requires the ``httpx`` package: pip install docks[mavis]
"""

from __future__ import annotations

import ipaddress
import logging
from typing import TYPE_CHECKING, Any

from docks.dry_run import DryRunGate, GateOutcome, OperationIntent
from docks.errors import DocksError

if TYPE_CHECKING:
    from docks.config import ResolvedConfig

logger = logging.getLogger(__name__)

DOCK_PORT = 4242
_TIMEOUT = 30.0


def format_dock(dock: dict[str, Any]) -> dict[str, Any]:
    """Extract org/ip/counters from a raw mavis dock record."""
    tags = [tag.strip() for tag in str(dock.get("tags", "")).split(",")]
    host = dock["host"]
    return {
        "tags": tags,
        "org": tags[0],
        "host": host,
        "ip": host.split("//")[-1].split(":")[0],
        "builds": int(dock.get("numBuilds", 0)),
        "containers": int(dock.get("numContainers", 0)),
    }


def dock_sort_key(dock: dict[str, Any]) -> tuple:
    """
    Sort docks by org, then by IP.

    Numeric org ids sort numerically, ``default`` docks sort last.
    """
    org = dock["org"]
    if "default" in org:
        org_key: tuple = (2, 0, org)
    elif org.isdigit():
        org_key = (0, int(org), "")
    else:
        org_key = (1, 0, org)
    try:
        ip_key: Any = ipaddress.ip_address(dock["ip"])
    except ValueError:
        ip_key = ipaddress.ip_address("0.0.0.0")
    return org_key + (ip_key,)


class MavisService:
    """
    HTTP client for mavis.

    Args:
        config: Resolved configuration for the target environment.
        gate: DryRunGate used for removals.
        client: Optional ``httpx.Client`` (tests pass one with a mock
            transport). One is created per request otherwise.
    """

    def __init__(
        self,
        config: ResolvedConfig,
        gate: DryRunGate | None = None,
        client: Any = None,
    ) -> None:
        self.config = config
        self.gate = gate or DryRunGate()
        self._client = client

    @property
    def base_url(self) -> str:
        host = self.config.host("mavis")
        return host if "://" in host else f"http://{host}"

    def _request(
        self, method: str, path: str, params: dict[str, str] | None = None
    ) -> Any:
        """
        Send a request to mavis and return the response.

        Raises:
            DocksError: On transport errors and non-2xx responses.
        """
        import httpx

        url = f"{self.base_url}{path}"
        logger.debug("%s %s %s", method, url, params or "")
        try:
            if self._client is not None:
                response = self._client.request(method, url, params=params)
            else:
                with httpx.Client(timeout=_TIMEOUT) as client:
                    response = client.request(method, url, params=params)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise DocksError(f"{method} {url} failed: {exc}") from exc
        return response

    def list_docks(self, org: str | None = None) -> list[dict[str, Any]]:
        """
        Return the docks in rotation, sorted by org then IP.

        Args:
            org: Optional org-id prefix to filter by.
        """
        response = self._request("GET", "/docks")
        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, list):
            raise DocksError("Response from server was not an array.")
        docks = [format_dock(dock) for dock in data]
        if org:
            docks = [dock for dock in docks if dock["org"].startswith(org)]
        return sorted(docks, key=dock_sort_key)

    def remove(self, ip: str, intent: OperationIntent) -> GateOutcome:
        """Take the dock at *ip* out of rotation."""
        params = {"host": f"http://{ip}:{DOCK_PORT}"}
        description = f"Removed dock {ip} from rotation via {self.base_url}"

        def delete() -> int:
            return self._request("DELETE", "/docks", params=params).status_code

        return self.gate.guard(intent, delete, description)
