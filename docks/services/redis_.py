"""
Redis: weave peer sets per organization.

Each org's docks form a weave network whose members are tracked in the
set ``weave:peers:<org>``.

Requires the ``redis`` package: pip install docks[redis]
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from docks.dry_run import GateOutcome, OperationIntent
from docks.services.base import TunneledService

if TYPE_CHECKING:
    from docks.environment.connector import TunnelHandle


def weave_key(org: str) -> str:
    return f"weave:peers:{org}"


class RedisService(TunneledService):
    """Reads and prunes weave peer sets through an SSH tunnel."""

    name = "redis"

    def connect(self, handle: TunnelHandle) -> Any:
        import redis

        return redis.Redis(
            host=handle.local_host, port=handle.local_port, decode_responses=True
        )

    def weave_peers(self, org: str) -> list[str]:
        """Return the sorted weave peer IPs for *org*."""

        def work(handle: TunnelHandle) -> list[str]:
            client = self.connect(handle)
            try:
                return sorted(client.smembers(weave_key(org)))
            finally:
                client.close()

        return self.run(OperationIntent.read(), work)

    def remove_from_weave(
        self, ip: str, org: str, intent: OperationIntent
    ) -> GateOutcome:
        """Remove dock *ip* from *org*'s weave network."""
        description = f"Removed dock {ip} from weave network {weave_key(org)}"

        def remove(handle: TunnelHandle) -> int:
            client = self.connect(handle)
            try:
                return client.srem(weave_key(org), ip)
            finally:
                client.close()

        def work(handle: TunnelHandle) -> GateOutcome:
            return self.gate.guard(intent, lambda: remove(handle), description)

        return self.run(intent, work)
