"""
Mongo: read instance/container records from the API database.

Requires the ``pymongo`` package: pip install docks[mongo]
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from docks.dry_run import OperationIntent
from docks.services.base import TunneledService

if TYPE_CHECKING:
    from docks.environment.connector import TunnelHandle

_SERVER_SELECTION_TIMEOUT_MS = 10_000


class MongoService(TunneledService):
    """Queries the ``instances`` collection through an SSH tunnel."""

    name = "mongo"

    def connect(self, handle: TunnelHandle) -> Any:
        import pymongo

        return pymongo.MongoClient(
            host=handle.local_host,
            port=handle.local_port,
            serverSelectionTimeoutMS=_SERVER_SELECTION_TIMEOUT_MS,
        )

    def containers(self, org: str | None = None) -> list[dict[str, Any]]:
        """
        List instances that have a docker container.

        Args:
            org: Optional GitHub org id to filter by.

        Returns:
            Documents with ``name``, ``owner`` and ``container.dockerContainer``.
        """
        search: dict[str, Any] = {"container.dockerContainer": {"$exists": True}}
        if org:
            search["owner.github"] = _as_org_id(org)
        projection = {"container.dockerContainer": 1, "owner": 1, "name": 1}

        def work(handle: TunnelHandle) -> list[dict[str, Any]]:
            database = self.variables.get("api_mongo_database")
            client = self.connect(handle)
            try:
                cursor = client[database]["instances"].find(search, projection)
                return list(cursor)
            finally:
                client.close()

        return self.run(OperationIntent.read(), work)


def _as_org_id(org: str) -> int | str:
    """GitHub org ids are stored as numbers; pass names through untouched."""
    return int(org) if org.isdigit() else org
