"""
TunneledService: base class for backing services reached through a tunnel.

Each service (rabbit, mongo, redis, swarm) provides one subclass that
knows its config name and how to build a protocol client bound to a
ready tunnel::

    class RedisService(TunneledService):
        name = "redis"

        def connect(self, handle):
            import redis
            return redis.Redis(host=handle.local_host, port=handle.local_port)

Actions call :meth:`TunneledService.run` with an intent and a ``work``
function; tunnel lifecycle, settle delays and dry-run gating are shared.
Client libraries are imported inside :meth:`connect` so that only the
integrations an operator actually uses need to be installed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, TypeVar

from docks.dry_run import DryRunGate
from docks.operation import RemoteOperation
from docks.secrets import VariablesFile

if TYPE_CHECKING:
    from docks.config import ResolvedConfig
    from docks.dry_run import OperationIntent
    from docks.environment.connector import TunnelHandle

R = TypeVar("R")


class TunneledService:
    """
    Base class for tunneled service integrations.

    Args:
        config: Resolved configuration for the target environment.
        operation: RemoteOperation used to open tunnels.
        gate: DryRunGate used for mutations.
        variables: Source of credentials; defaults to the environment's
            ansible inventory.
    """

    name: str = ""

    def __init__(
        self,
        config: ResolvedConfig,
        operation: RemoteOperation | None = None,
        gate: DryRunGate | None = None,
        variables: VariablesFile | None = None,
    ) -> None:
        self.config = config
        self.operation = operation or RemoteOperation()
        self.gate = gate or DryRunGate()
        self.variables = variables or VariablesFile(config.inventory)

    @property
    def host(self) -> str:
        return self.config.host(self.name)

    def connect(self, handle: TunnelHandle) -> Any:
        """Build a protocol client bound to the local end of *handle*."""
        raise NotImplementedError(
            f"Service {self.name!r} does not implement connect()"
        )

    def run(
        self,
        intent: OperationIntent,
        work: Callable[[TunnelHandle], R],
        remote_host: str | None = None,
    ) -> R:
        """
        Run *work* inside a tunnel to this service.

        Args:
            intent: Caller intent (dry runs skip the settle delay).
            work: Called with the ready TunnelHandle.
            remote_host: Override the configured host (e.g. a pod name).
        """
        endpoint = self.config.endpoint(self.name, remote_host=remote_host)
        return self.operation.execute(
            endpoint,
            intent,
            work,
            settle_delay=self.config.settle_delay(self.name),
        )
