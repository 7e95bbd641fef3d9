"""
Repositories for resource documents and their consumer registries.

Registry mutations are single-row inserts and deletes guarded by the
``uq_resource_consumer`` constraint, so concurrent additions of distinct
(service, realm) pairs never overwrite each other.
"""
from __future__ import annotations

import logging
import time
from typing import List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from resource_provider.exceptions import ConsumerNotFoundError, ResourceNotFoundError
from resource_provider.models import ConsumerEntry, ResourceConsumer, ResourceDocument
from resource_provider.resourceable import Resourceable, ResourceTypeRegistry

logger = logging.getLogger(__name__)


class ResourceRepository:
    """Persistence for :class:`Resourceable` documents and consumer entries."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        types: ResourceTypeRegistry,
    ) -> None:
        self._session_factory = session_factory
        self._types = types

    # -- Documents ----------------------------------------------------------

    async def save(self, resource: Resourceable) -> Resourceable:
        """Insert or update the document's attributes. Consumers are untouched."""
        async with self._session_factory() as session:
            document = await session.get(ResourceDocument, resource.uuid)
            now = time.time()
            if document is None:
                document = ResourceDocument(
                    uuid=resource.uuid,
                    resource_type=resource.resource_type,
                    attributes=dict(resource.attributes),
                    created_at=now,
                    updated_at=now,
                )
                session.add(document)
            else:
                document.attributes = dict(resource.attributes)
                document.updated_at = now
            await session.commit()
        return resource

    async def get(self, resource_uuid: str) -> Optional[Resourceable]:
        """Load a resource with its consumer entries, or None."""
        async with self._session_factory() as session:
            document = await self._load(session, resource_uuid)
            if document is None:
                return None
            return self._hydrate(document)

    async def delete(self, resource_uuid: str) -> bool:
        """Delete a document and its registry. Returns True if it existed."""
        async with self._session_factory() as session:
            document = await self._load(session, resource_uuid)
            if document is None:
                return False
            await session.delete(document)
            await session.commit()
        return True

    # -- Consumer registry --------------------------------------------------

    async def add_consumer(
        self, resource_uuid: str, service_uuid: str, realm_uuid: str
    ) -> Tuple[ConsumerEntry, bool]:
        """Register a consumer.

        Returns the entry and whether it was newly created. Adding a pair
        that is already registered leaves the registry unchanged. Raises
        ResourceNotFoundError if the resource has not been saved.
        """
        if not service_uuid or not realm_uuid:
            raise ValueError("Both service_uuid and realm_uuid are required")
        entry = ConsumerEntry(service_uuid=service_uuid, realm_uuid=realm_uuid)
        async with self._session_factory() as session:
            if await session.get(ResourceDocument, resource_uuid) is None:
                raise ResourceNotFoundError(resource_uuid)
            session.add(
                ResourceConsumer(
                    resource_uuid=resource_uuid,
                    service_uuid=service_uuid,
                    realm_uuid=realm_uuid,
                    created_at=time.time(),
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.debug(
                    f"Consumer {service_uuid}/{realm_uuid} already registered on {resource_uuid}"
                )
                return entry, False
        return entry, True

    async def find_consumer(
        self, resource_uuid: str, service_uuid: str, realm_uuid: str
    ) -> Optional[ConsumerEntry]:
        async with self._session_factory() as session:
            row = await session.scalar(
                select(ResourceConsumer).where(
                    ResourceConsumer.resource_uuid == resource_uuid,
                    ResourceConsumer.service_uuid == service_uuid,
                    ResourceConsumer.realm_uuid == realm_uuid,
                )
            )
            if row is None:
                return None
            return ConsumerEntry(service_uuid=row.service_uuid, realm_uuid=row.realm_uuid)

    async def remove_consumer(
        self, resource_uuid: str, service_uuid: str, realm_uuid: str
    ) -> ConsumerEntry:
        """Remove a consumer. Raises ConsumerNotFoundError if it is not registered."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(ResourceConsumer).where(
                    ResourceConsumer.resource_uuid == resource_uuid,
                    ResourceConsumer.service_uuid == service_uuid,
                    ResourceConsumer.realm_uuid == realm_uuid,
                )
            )
            if result.rowcount == 0:
                await session.rollback()
                raise ConsumerNotFoundError(resource_uuid, service_uuid, realm_uuid)
            await session.commit()
        return ConsumerEntry(service_uuid=service_uuid, realm_uuid=realm_uuid)

    async def list_consumers(self, resource_uuid: str) -> List[ConsumerEntry]:
        """Return the registry of a resource in insertion order."""
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(ResourceConsumer)
                .where(ResourceConsumer.resource_uuid == resource_uuid)
                .order_by(ResourceConsumer.id)
            )
            return [
                ConsumerEntry(service_uuid=row.service_uuid, realm_uuid=row.realm_uuid)
                for row in rows
            ]

    async def clear_consumers(self, resource_uuid: str) -> int:
        """Remove every consumer of a resource. Returns the number removed."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(ResourceConsumer).where(ResourceConsumer.resource_uuid == resource_uuid)
            )
            await session.commit()
            return result.rowcount

    async def consumers_in_realm(
        self, realm_uuid: str, resource_type: Optional[str] = None
    ) -> List[Resourceable]:
        """Return resources with at least one consumer registered in *realm_uuid*."""
        query = (
            select(ResourceDocument)
            .where(
                ResourceDocument.consumers.any(ResourceConsumer.realm_uuid == realm_uuid)
            )
            .options(selectinload(ResourceDocument.consumers))
            .order_by(ResourceDocument.created_at)
        )
        if resource_type is not None:
            query = query.where(ResourceDocument.resource_type == resource_type)
        async with self._session_factory() as session:
            documents = await session.scalars(query)
            return [self._hydrate(document) for document in documents]

    # -- Internal -----------------------------------------------------------

    @staticmethod
    async def _load(session: AsyncSession, resource_uuid: str) -> Optional[ResourceDocument]:
        return await session.scalar(
            select(ResourceDocument)
            .where(ResourceDocument.uuid == resource_uuid)
            .options(selectinload(ResourceDocument.consumers))
        )

    def _hydrate(self, document: ResourceDocument) -> Resourceable:
        consumers = [
            ConsumerEntry(service_uuid=row.service_uuid, realm_uuid=row.realm_uuid)
            for row in document.consumers
        ]
        return self._types.build(
            document.resource_type,
            document.uuid,
            dict(document.attributes or {}),
            consumers,
        )
