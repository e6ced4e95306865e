"""
Rabbit: publish jobs and events to the environment's message broker.

The broker is only reachable inside the VPC, so every publish opens an
SSH tunnel to the environment's rabbit host. Publishing respects the
dry-run gate: a dry run opens (and tears down) the tunnel but never
connects to the broker.

Requires the ``pika`` package: pip install docks[rabbit]
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from docks.dry_run import GateOutcome, OperationIntent
from docks.services.base import TunneledService

if TYPE_CHECKING:
    from docks.environment.connector import TunnelHandle

logger = logging.getLogger(__name__)

KHRONOS_TASKS: dict[str, str] = {
    "Clean image-builder Containers from Docks": "khronos:containers:image-builder:prune",
    "Clean Old Images from Docks": "khronos:images:prune",
    "Clean Old Weave Containers from Docks": "khronos:weave:prune",
    "Remove Expired Context Versions from Mongo": "khronos:context-versions:prune-expired",
    "Remove Orphan Containers from Docks": "khronos:containers:orphan:prune",
}


class RabbitService(TunneledService):
    """Publishes jobs (to queues) and events (to fanout exchanges)."""

    name = "rabbit"

    def connect(self, handle: TunnelHandle) -> Any:
        import pika

        creds = self.variables.all(["rabbit_username", "rabbit_password"])
        params = pika.ConnectionParameters(
            host=handle.local_host,
            port=handle.local_port,
            credentials=pika.PlainCredentials(
                creds["rabbit_username"], creds["rabbit_password"]
            ),
        )
        return pika.BlockingConnection(params)

    def publish(
        self, queue: str, job: dict[str, Any], intent: OperationIntent
    ) -> GateOutcome:
        """
        Publish *job* into the durable queue *queue*.

        Returns:
            GateOutcome describing the published (or suppressed) job.
        """
        description = f"Published to {queue}: {json.dumps(job)}"

        def work(handle: TunnelHandle) -> GateOutcome:
            return self.gate.guard(
                intent,
                lambda: self._send(handle, job, queue=queue),
                description,
            )

        return self.run(intent, work)

    def publish_event(
        self, event: str, payload: dict[str, Any], intent: OperationIntent
    ) -> GateOutcome:
        """Publish *payload* to the fanout exchange named *event*."""
        description = f"Published event {event}: {json.dumps(payload)}"

        def work(handle: TunnelHandle) -> GateOutcome:
            return self.gate.guard(
                intent,
                lambda: self._send(handle, payload, exchange=event),
                description,
            )

        return self.run(intent, work)

    def _send(
        self,
        handle: TunnelHandle,
        body: dict[str, Any],
        queue: str | None = None,
        exchange: str | None = None,
    ) -> None:
        import pika

        connection = self.connect(handle)
        try:
            channel = connection.channel()
            if exchange is not None:
                channel.exchange_declare(
                    exchange=exchange, exchange_type="fanout", durable=True
                )
                routing_key = ""
            else:
                channel.queue_declare(queue=queue, durable=True)
                exchange, routing_key = "", queue
            channel.basic_publish(
                exchange=exchange,
                routing_key=routing_key,
                body=json.dumps(body).encode(),
                properties=pika.BasicProperties(
                    content_type="application/json", delivery_mode=2
                ),
            )
            logger.info("Published to %s", exchange or routing_key)
        finally:
            connection.close()
