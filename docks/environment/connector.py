"""
Connector protocols: Making remote services accessible locally.

The backing services docks talks to (broker, document store, key/value
store, swarm manager) are only reachable from inside the VPC. A Connector
starts an external helper process that forwards a local port to the
remote service:

- spawn(): start the helper for a RemoteEndpointConfig
- command(): the argv the helper is started with (for logging/display)

Implementations:
- SSHTunnelConnector: ``ssh -N -L`` via subprocess
- PortForwardConnector: ``kubectl port-forward`` via subprocess

Lifecycle (readiness, teardown) is owned by the TunnelBroker, not the
connector.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from docks.environment.process import ProcessHandle

LOCAL_HOST = "127.0.0.1"


class TunnelKind(str, enum.Enum):
    """Which external helper implements a tunnel."""

    SSH = "ssh"
    PORT_FORWARD = "port_forward"


class TunnelState(str, enum.Enum):
    """Lifecycle state of a TunnelHandle."""

    CONNECTING = "connecting"
    READY = "ready"
    CLOSED = "closed"
    FAILED = "failed"


@dataclass(frozen=True)
class RemoteEndpointConfig:
    """
    Where a tunnel should connect and which helper implements it.

    Attributes:
        remote_host: Hostname of the remote service (an SSH host alias,
            or the pod name for port-forwards).
        remote_port: Port the remote service is listening on.
        local_port: Local port to bind for the tunnel.
        tunnel_kind: Helper used to forward the port.
        user: SSH username for the connection.
        gateway: Optional jump host (SSH ProxyJump / -J flag).
        ssh_key: Path to an SSH private key (overrides agent/config).
        context: kubectl context for port-forwards.
    """

    remote_host: str
    remote_port: int
    local_port: int
    tunnel_kind: TunnelKind = TunnelKind.SSH
    user: str | None = None
    gateway: str | None = None
    ssh_key: str | None = None
    context: str | None = None


@dataclass
class TunnelHandle:
    """
    Handle for a tunnel owned by a single operation.

    Created in the CONNECTING state by the TunnelBroker, moved to READY
    once the readiness wait succeeds, and to CLOSED or FAILED on teardown.

    Attributes:
        config: The endpoint this tunnel forwards to.
        process: The helper process implementing the tunnel.
        state: Current lifecycle state.
    """

    config: RemoteEndpointConfig
    process: ProcessHandle
    state: TunnelState = TunnelState.CONNECTING

    @property
    def local_host(self) -> str:
        return LOCAL_HOST

    @property
    def local_port(self) -> int:
        return self.config.local_port

    @property
    def local_url(self) -> str:
        """URL for the local end of the tunnel."""
        return f"http://{self.local_host}:{self.local_port}"


@runtime_checkable
class Connector(Protocol):
    """
    Protocol for tunnel helpers.

    Connector implementations only know how to build and start the
    helper command. They must raise OSError (or a subclass) when the
    helper cannot be started at all.
    """

    def command(self, config: RemoteEndpointConfig) -> list[str]:
        """
        Build the helper argv for *config*.

        Args:
            config: Endpoint to forward to.

        Returns:
            Argument list suitable for :class:`subprocess.Popen`.
        """
        ...

    def spawn(self, config: RemoteEndpointConfig) -> ProcessHandle:
        """
        Start the helper process for *config*.

        Args:
            config: Endpoint to forward to.

        Returns:
            A ProcessHandle for the running helper.

        Raises:
            OSError: If the helper executable is missing or not runnable.
        """
        ...
