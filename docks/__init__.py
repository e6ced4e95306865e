"""
docks: operator tooling for the dock fleet.

Three mechanisms are shared by every backing-service integration:

- TunnelBroker: scoped SSH / port-forward tunnels with guaranteed teardown
- fetch_all: cursor pagination drained into one ordered list
- DryRunGate: one decision point for simulated mutations

Example:
    from docks import OperationIntent, ProjectConfig
    from docks.services import RabbitService

    config = ProjectConfig.load().resolve("gamma")
    outcome = RabbitService(config).publish(
        "asg.instance.terminate",
        {"ipAddress": "10.0.0.1"},
        OperationIntent.mutate(dry_run=True),
    )
    print(outcome.performed)  # False
"""

__version__ = "0.1.0"

from docks.config import ProjectConfig, ResolvedConfig
from docks.dry_run import DryRunGate, GateOutcome, IntentKind, OperationIntent
from docks.environment import (
    RemoteEndpointConfig,
    TunnelBroker,
    TunnelHandle,
    TunnelKind,
    TunnelState,
)
from docks.errors import (
    AbortedError,
    ConfigError,
    ConnectTimeout,
    DocksError,
    InvalidArgumentError,
    PaginationStalled,
    SpawnFailed,
    TeardownFailed,
    TunnelError,
)
from docks.operation import RemoteOperation
from docks.pagination import Page, PageAccumulator, fetch_all

__all__ = [
    "AbortedError",
    "ConfigError",
    "ConnectTimeout",
    "DocksError",
    "DryRunGate",
    "GateOutcome",
    "IntentKind",
    "InvalidArgumentError",
    "OperationIntent",
    "Page",
    "PageAccumulator",
    "PaginationStalled",
    "ProjectConfig",
    "RemoteEndpointConfig",
    "RemoteOperation",
    "ResolvedConfig",
    "SpawnFailed",
    "TeardownFailed",
    "TunnelBroker",
    "TunnelError",
    "TunnelHandle",
    "TunnelKind",
    "TunnelState",
    "fetch_all",
]
