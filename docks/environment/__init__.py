"""
Environment module: reaching VPC-only services from the operator's machine.

Provides:
- RemoteEndpointConfig: where a tunnel goes and which helper implements it
- Connector: protocol for tunnel helpers (ssh, kubectl port-forward)
- ProcessHandle: the helper process behind a tunnel
- TunnelBroker: scoped tunnel acquisition with guaranteed teardown

Usage::

    from docks.environment import RemoteEndpointConfig, TunnelBroker

    broker = TunnelBroker()
    config = RemoteEndpointConfig("gamma-mongo-a", 27017, 27018)
    broker.with_tunnel(config, 2.0, lambda handle: query(handle.local_port))
"""

from __future__ import annotations

from docks.environment.broker import TunnelBroker, default_connectors
from docks.environment.connector import (
    Connector,
    RemoteEndpointConfig,
    TunnelHandle,
    TunnelKind,
    TunnelState,
)
from docks.environment.port_forward import PortForwardConnector
from docks.environment.process import ProcessHandle
from docks.environment.ssh_tunnel import SSHTunnelConnector, allocate_local_port

__all__ = [
    "Connector",
    "PortForwardConnector",
    "ProcessHandle",
    "RemoteEndpointConfig",
    "SSHTunnelConnector",
    "TunnelBroker",
    "TunnelHandle",
    "TunnelKind",
    "TunnelState",
    "allocate_local_port",
    "default_connectors",
]
