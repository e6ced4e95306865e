"""
Swarm: the container-orchestration data plane.

The swarm manager runs as a Kubernetes pod. Reaching it takes two steps:

1. ``kubectl get pods`` (in the environment's context) to find the pod
2. ``kubectl port-forward`` to it, then talk to the Docker API over TLS

Requires the ``docker`` package: pip install docks[swarm]
"""

from __future__ import annotations

import json
import logging
import re
import subprocess
from typing import TYPE_CHECKING, Any

from docks.dry_run import OperationIntent
from docks.errors import DocksError
from docks.secrets import devops_scripts_path
from docks.services.base import TunneledService

if TYPE_CHECKING:
    from docks.environment.connector import TunnelHandle

logger = logging.getLogger(__name__)

_NODE_FIELD = re.compile(r"^\s*└\s*(.+?)\s*$")


def parse_system_status(status: list[list[str]] | None) -> list[dict[str, Any]]:
    """
    Parse classic swarm's ``SystemStatus`` pairs into per-node dicts.

    Node rows look like ``[" node-name", "10.0.0.1:4242"]`` and are
    followed by detail rows like ``["  └ Containers", "5 (5 Running…)"]``
    and ``["  └ Labels", "org=1234, kernelversion=…"]``.

    Returns:
        ``[{"name", "ip", "org", "containers"}, …]`` in status order.
    """
    nodes: list[dict[str, Any]] = []
    current: dict[str, Any] | None = None

    for key, value in status or []:
        field_match = _NODE_FIELD.match(key)
        if field_match is None:
            if key.startswith(" ") and ":" in value:
                current = {
                    "name": key.strip(),
                    "ip": value.split(":")[0],
                    "org": None,
                    "containers": 0,
                }
                nodes.append(current)
            else:
                current = None
            continue

        if current is None:
            continue
        field_name = field_match.group(1)
        if field_name == "Containers":
            count = value.split(" ", 1)[0]
            current["containers"] = int(count) if count.isdigit() else 0
        elif field_name == "Labels":
            labels = dict(
                part.strip().split("=", 1)
                for part in value.split(",")
                if "=" in part
            )
            current["org"] = labels.get("org")

    return nodes


def container_summary(container: Any) -> dict[str, Any]:
    """Flatten a docker SDK container into the fields actions display."""
    labels = container.labels or {}
    image = container.attrs.get("Config", {}).get("Image", "")
    name = container.name or ""
    dock = name.split("/")[0] if "/" in name else ""
    image_parts = image.split("/")
    return {
        "id": container.id,
        "image": image,
        "instance_name": labels.get("instanceName", ""),
        "owner_username": labels.get("ownerUsername", ""),
        "org_id": image_parts[1] if len(image_parts) > 1 else "",
        "dock_ip": dock.removeprefix("ip-").replace("-", "."),
        "status": container.status,
    }


class SwarmService(TunneledService):
    """Queries the swarm manager through a kubectl port-forward."""

    name = "swarm"

    def find_manager_pod(self) -> str:
        """
        Return the name of the first pod matching the configured pattern.

        Raises:
            DocksError: If kubectl fails or no matching pod exists.
        """
        pattern = self.config.service(self.name).get("pod", "swarm-manager")
        cmd = ["kubectl", "--context", self.config.kube_context, "get", "pods", "-o", "json"]

        logger.debug("Looking up pod %r: %s", pattern, " ".join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as exc:
            raise DocksError(f"Could not run kubectl: {exc}") from exc
        if result.returncode != 0:
            raise DocksError(f"kubectl get pods failed: {result.stderr.strip()}")

        for pod in json.loads(result.stdout).get("items", []):
            pod_name = pod.get("metadata", {}).get("name", "")
            if pattern in pod_name:
                return pod_name
        raise DocksError(f"No pod matching {pattern!r} found")

    def connect(self, handle: TunnelHandle) -> Any:
        import docker

        certs = devops_scripts_path() / "ansible" / "roles" / "docker_client" / "files" / "certs"
        tls = docker.tls.TLSConfig(
            client_cert=(
                str(certs / "swarm-manager" / "cert.pem"),
                str(certs / "swarm-manager" / "key.pem"),
            ),
            ca_cert=str(certs / "ca.pem"),
            verify=True,
        )
        return docker.DockerClient(
            base_url=f"tcp://{handle.local_host}:{handle.local_port}", tls=tls
        )

    def list_docks(self) -> list[dict[str, Any]]:
        """Return the docks registered with the swarm manager."""

        def work(handle: TunnelHandle) -> list[dict[str, Any]]:
            client = self.connect(handle)
            try:
                return parse_system_status(client.info().get("SystemStatus"))
            finally:
                client.close()

        return self.run(
            OperationIntent.read(), work, remote_host=self.find_manager_pod()
        )

    def containers(self, org: str | None = None) -> list[dict[str, Any]]:
        """
        Return user containers across all docks.

        Containers belonging to the ``runnable`` org are infrastructure and
        are always excluded.
        """

        def work(handle: TunnelHandle) -> list[dict[str, Any]]:
            client = self.connect(handle)
            try:
                return [container_summary(c) for c in client.containers.list(all=True)]
            finally:
                client.close()

        containers = self.run(
            OperationIntent.read(), work, remote_host=self.find_manager_pod()
        )
        containers = [c for c in containers if c["org_id"] != "runnable"]
        if org:
            containers = [c for c in containers if c["org_id"] == str(org)]
        return containers
