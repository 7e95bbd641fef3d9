"""Create/update/destroy of resources with propagation as a side effect."""

from __future__ import annotations

import logging
from typing import Any

from resource_provider.engine import PropagationEngine
from resource_provider.repositories import ResourceRepository
from resource_provider.resourceable import Resourceable

logger = logging.getLogger(__name__)


class ResourceLifecycle:
    """Persists resources and notifies their consumers.

    Propagation never gates persistence: the record is saved first and
    consumers are told afterwards.
    """

    def __init__(self, repository: ResourceRepository, engine: PropagationEngine) -> None:
        self.repository = repository
        self.engine = engine

    async def create(self, resource: Resourceable) -> bool:
        """Persist a new resource. It has no consumers yet, so nothing is sent."""
        await self.repository.save(resource)
        logger.info(f"Created {resource!r}")
        return True

    async def update(self, resource: Resourceable, **changes: Any) -> bool:
        """Apply *changes*, persist them and fan out if the payload changed.

        The payload is compared with the stored copy, so attributes assigned
        directly on the object before this call are propagated too.
        """
        stored = await self.repository.get(resource.uuid)
        before = stored.to_transmissible() if stored is not None else None
        resource.attributes.update(changes)
        await self.repository.save(resource)
        if resource.to_transmissible() != before:
            jobs = await self.engine.resource_updated(resource)
            logger.info(f"Updated {resource!r}, {len(jobs)} consumer update(s) scheduled")
        return True

    async def destroy(self, resource: Resourceable) -> bool:
        """Remove the resource from all consumers, then delete it."""
        await self.engine.resource_destroyed(resource)
        await self.repository.delete(resource.uuid)
        logger.info(f"Destroyed {resource!r}")
        return True
