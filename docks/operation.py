"""
RemoteOperation: one logical action against a tunneled backing service.

Composes the TunnelBroker with the caller's ``work`` function. The
``work`` function receives the ready tunnel, builds its protocol client
against ``handle.local_port`` and performs one interaction: a paginated
read via :func:`docks.pagination.fetch_all`, or a mutation wrapped in
:meth:`docks.dry_run.DryRunGate.guard`.

Example::

    op = RemoteOperation()
    intent = OperationIntent.mutate(dry_run=True)

    def work(handle):
        return gate.guard(intent, lambda: publish(handle), "publish job")

    outcome = op.execute(config, intent, work, settle_delay=5.0)
"""

from __future__ import annotations

from typing import Callable, TypeVar

from docks.dry_run import OperationIntent
from docks.environment.broker import TunnelBroker
from docks.environment.connector import RemoteEndpointConfig, TunnelHandle

R = TypeVar("R")


class RemoteOperation:
    """Runs work functions inside a scoped tunnel."""

    def __init__(self, broker: TunnelBroker | None = None) -> None:
        self.broker = broker or TunnelBroker()

    def execute(
        self,
        config: RemoteEndpointConfig,
        intent: OperationIntent,
        work: Callable[[TunnelHandle], R],
        settle_delay: float = 0.0,
    ) -> R:
        """
        Open a tunnel to *config*, run *work*, tear the tunnel down.

        Suppressed intents (dry-run mutations) skip the settle delay and
        readiness check, since no real connection will be made through
        the tunnel. Dry-run reads still connect.

        Returns:
            Whatever *work* returns.

        Raises:
            SpawnFailed, ConnectTimeout: Before *work* runs.
            Any exception from *work*, unchanged, after teardown.
        """
        return self.broker.with_tunnel(
            config, settle_delay, work, dry_run=intent.suppressed
        )
