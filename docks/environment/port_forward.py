"""
PortForwardConnector: cluster port-forwards via ``kubectl port-forward``.

The swarm manager runs as a pod; it is reached by forwarding a local
port to the pod with kubectl. ``remote_host`` holds the pod name and
``context`` (if set) the kubectl context to use.
"""

from __future__ import annotations

import logging

from docks.environment import process as process_mod
from docks.environment.connector import RemoteEndpointConfig
from docks.environment.process import ProcessHandle

logger = logging.getLogger(__name__)


def build_port_forward_command(
    config: RemoteEndpointConfig, kubectl: str = "kubectl"
) -> list[str]:
    """
    Build a ``kubectl port-forward`` command for the given endpoint.

    Command form::

        kubectl [--context CONTEXT] port-forward POD local_port:remote_port
    """
    cmd: list[str] = [kubectl]
    if config.context:
        cmd.extend(["--context", config.context])
    cmd.extend(
        [
            "port-forward",
            config.remote_host,
            f"{config.local_port}:{config.remote_port}",
        ]
    )
    return cmd


class PortForwardConnector:
    """
    Connector that forwards a local port to a pod with kubectl.

    Implements the Connector protocol.
    """

    def __init__(self, kubectl: str = "kubectl") -> None:
        self.kubectl = kubectl

    def command(self, config: RemoteEndpointConfig) -> list[str]:
        return build_port_forward_command(config, self.kubectl)

    def spawn(self, config: RemoteEndpointConfig) -> ProcessHandle:
        """
        Start the port-forward helper.

        Raises:
            OSError: If ``kubectl`` is not installed or cannot be executed.
        """
        cmd = self.command(config)
        logger.info("Starting port-forward: %s", " ".join(cmd))
        return process_mod.spawn(cmd)
