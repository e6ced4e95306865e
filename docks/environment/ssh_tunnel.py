"""
SSHTunnelConnector: SSH local-forward tunnels via subprocess.

Uses ``ssh -N -L … [-J …]`` as a managed subprocess to:
- Leverage the operator's existing SSH config, agent, and keys
- Support jump hosts (ProxyJump / -J flag)
- Optional explicit key path override

Also home to the TCP check used as the tunnel readiness check, since
the ssh helper itself never reports when the forward is usable.
"""

from __future__ import annotations

import logging
import socket

from docks.environment import process as process_mod
from docks.environment.connector import RemoteEndpointConfig
from docks.environment.process import ProcessHandle

logger = logging.getLogger(__name__)

_CONNECT_TIMEOUT: float = 1.0  # TCP connect timeout per attempt


def build_ssh_command(config: RemoteEndpointConfig) -> list[str]:
    """
    Build an ``ssh`` tunnel command for the given endpoint.

    Command form::

        ssh -N -o ExitOnForwardFailure=yes
            -L local_port:127.0.0.1:remote_port
            [-J user@gateway] [-i ssh_key] [user@]remote_host

    ``ExitOnForwardFailure`` makes ssh exit (instead of idling) when the
    local port is already bound, which the broker detects as a spawn
    failure.
    """
    cmd: list[str] = [
        "ssh",
        "-N",
        "-o",
        "ExitOnForwardFailure=yes",
        "-L",
        f"{config.local_port}:127.0.0.1:{config.remote_port}",
    ]

    # Jump host
    if config.gateway:
        gateway_spec = config.gateway
        if config.user and "@" not in gateway_spec:
            gateway_spec = f"{config.user}@{gateway_spec}"
        cmd.extend(["-J", gateway_spec])

    # Explicit key
    if config.ssh_key:
        cmd.extend(["-i", config.ssh_key])

    # Destination
    destination = config.remote_host
    if config.user:
        destination = f"{config.user}@{config.remote_host}"
    cmd.append(destination)

    return cmd


def port_is_open(host: str, port: int, timeout: float = _CONNECT_TIMEOUT) -> bool:
    """
    Check whether a TCP port is accepting connections.

    Args:
        host: Host to connect to.
        port: Port to connect to.
        timeout: Connection timeout in seconds.

    Returns:
        True if the port accepted the connection.
    """
    try:
        conn = socket.create_connection((host, port), timeout=timeout)
        conn.close()
        return True
    except OSError:
        return False


def allocate_local_port() -> int:
    """
    Ask the OS for a currently free local TCP port.

    Used when more than one tunnel is opened by the same process, since
    two helpers cannot bind the same local port.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class SSHTunnelConnector:
    """
    Connector that forwards a local port over ``ssh -L``.

    Implements the Connector protocol.
    """

    def command(self, config: RemoteEndpointConfig) -> list[str]:
        return build_ssh_command(config)

    def spawn(self, config: RemoteEndpointConfig) -> ProcessHandle:
        """
        Start ``ssh -N -L local_port:127.0.0.1:remote_port remote_host``.

        Raises:
            OSError: If ``ssh`` is not installed or cannot be executed.
        """
        cmd = self.command(config)
        logger.info("Starting SSH tunnel: %s", " ".join(cmd))
        return process_mod.spawn(cmd)
