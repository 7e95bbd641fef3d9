"""Propagation of resource state to registered consumer services.

For every (resource, consumer) pair the engine walks
``Unregistered -> Registering -> Registered -> Removing -> Unregistered``:

* adding a consumer persists the registry entry and enqueues one deferred
  ``create`` job (or ``update`` if the pair was already registered);
* updating a resource enqueues one deferred ``update`` job per registered
  consumer;
* removing a consumer or destroying a resource tells each affected consumer
  synchronously with a ``DELETE`` before returning.

Deferred jobs carry identities plus a snapshot of the transmissible fields.
When a job runs, the consumer address and the resource payload are both
resolved afresh and the registry is consulted again, so delayed or reordered
jobs still deliver the latest state. A retried delete is dropped once the
pair has been registered again.
"""

from __future__ import annotations

import json
import logging
from typing import List, Optional

from resource_provider.client import ConsumerClient, resource_path
from resource_provider.exceptions import (
    MalformedConsumerEntryError,
    RemoteDeliveryError,
    ServiceNotFoundError,
)
from resource_provider.models import (
    RESOURCE_QUEUE,
    ConsumerEntry,
    JobKind,
    PropagationJob,
    SignedEnvelope,
)
from resource_provider.queue import JobQueue
from resource_provider.repositories import ResourceRepository
from resource_provider.resourceable import Resourceable
from resource_provider.services import ServiceDirectory
from resource_provider.signing import Signer

logger = logging.getLogger(__name__)


class PropagationEngine:
    """Keeps consumer services in sync with the resources they registered for.

    All collaborators are injected: the repository holding resources and
    their registries, the directory resolving consumer addresses, the HTTP
    client, the signer, and the queue deferred jobs are submitted to.
    """

    def __init__(
        self,
        repository: ResourceRepository,
        directory: ServiceDirectory,
        client: ConsumerClient,
        signer: Signer,
        queue: JobQueue,
        service_uuid: str,
        queue_name: str = RESOURCE_QUEUE,
    ) -> None:
        self.repository = repository
        self.directory = directory
        self.client = client
        self.signer = signer
        self.queue = queue
        self.service_uuid = service_uuid
        self.queue_name = queue_name

    # -- Registry operations ------------------------------------------------

    async def add_consumer(
        self, resource: Resourceable, service_uuid: str, realm_uuid: str
    ) -> PropagationJob:
        """Register a consumer and schedule its create (or update) call."""
        entry, created = await self.repository.add_consumer(
            resource.uuid, service_uuid, realm_uuid
        )
        if created:
            resource.consumers.append(entry)
            logger.info(f"Registered consumer {service_uuid} ({realm_uuid}) on {resource!r}")
        kind = JobKind.CREATE if created else JobKind.UPDATE
        return await self._enqueue(resource, entry, kind)

    async def find_consumer(
        self, resource: Resourceable, service_uuid: str, realm_uuid: str
    ) -> Optional[ConsumerEntry]:
        return await self.repository.find_consumer(resource.uuid, service_uuid, realm_uuid)

    async def remove_consumer(
        self, resource: Resourceable, service_uuid: str, realm_uuid: str
    ) -> bool:
        """Unregister a consumer and tell it to delete its copy.

        Raises ConsumerNotFoundError before any network activity when the
        pair is not registered. Returns whether the remote delete succeeded;
        a failed delete keeps the local removal and is retried through the
        queue.
        """
        entry = await self.repository.remove_consumer(resource.uuid, service_uuid, realm_uuid)
        resource.consumers = [
            c for c in resource.consumers if not c.matches(service_uuid, realm_uuid)
        ]
        logger.info(f"Removed consumer {service_uuid} ({realm_uuid}) from {resource!r}")
        return await self._delete_on_consumer(resource, entry)

    async def refresh_consumer(
        self, resource: Resourceable, service_uuid: str, realm_uuid: str
    ) -> Optional[PropagationJob]:
        """Re-push the resource to one registered consumer.

        Does nothing for a pair that is not registered; refreshing never
        registers a consumer.
        """
        entry = await self.repository.find_consumer(resource.uuid, service_uuid, realm_uuid)
        if entry is None:
            logger.debug(f"Refresh skipped, {service_uuid} ({realm_uuid}) not on {resource!r}")
            return None
        return await self._enqueue(resource, entry, JobKind.REFRESH)

    async def consumers_in_realm(
        self, realm_uuid: str, resource_type: Optional[str] = None
    ) -> List[Resourceable]:
        return await self.repository.consumers_in_realm(realm_uuid, resource_type)

    # -- Lifecycle events ---------------------------------------------------

    async def resource_updated(self, resource: Resourceable) -> List[PropagationJob]:
        """Schedule one update job per registered consumer."""
        jobs = []
        for entry in await self._registered_entries(resource):
            jobs.append(await self._enqueue(resource, entry, JobKind.UPDATE))
        return jobs

    async def resource_destroyed(self, resource: Resourceable) -> int:
        """Delete the resource on every consumer, then clear its registry.

        Returns the number of consumers that confirmed the delete.
        """
        confirmed = 0
        for entry in await self._registered_entries(resource):
            if await self._delete_on_consumer(resource, entry):
                confirmed += 1
        await self.repository.clear_consumers(resource.uuid)
        resource.consumers = []
        return confirmed

    # -- Job execution ------------------------------------------------------

    async def execute(self, job: PropagationJob) -> None:
        """Perform the remote call described by *job*.

        Raises RemoteDeliveryError or ServiceNotFoundError so the dispatcher
        can retry.
        """
        if job.kind is JobKind.DELETE:
            entry = await self.repository.find_consumer(
                job.resource_uuid, job.service_uuid, job.realm_uuid
            )
            if entry is not None:
                logger.info(
                    f"Dropping delete job {job.id}: {job.service_uuid} consumes "
                    f"{job.resource_type}/{job.resource_uuid} again"
                )
                return
            await self._send_delete(job.resource_type, job.resource_uuid,
                                    job.service_uuid, job.realm_uuid)
            return

        resource = await self.repository.get(job.resource_uuid)
        if resource is None:
            logger.info(f"Dropping {job.kind.value} job {job.id}: resource {job.resource_uuid} is gone")
            return
        if resource.find_consumer(job.service_uuid, job.realm_uuid) is None:
            logger.info(
                f"Dropping {job.kind.value} job {job.id}: {job.service_uuid} "
                f"no longer consumes {resource!r}"
            )
            return

        endpoint = await self.directory.resolve(job.service_uuid, job.realm_uuid)
        envelope = self.build_envelope(resource, job.realm_uuid)
        url = endpoint.url_for(resource_path(resource.resource_type, resource.uuid))
        await self.client.request(job.method, url, json=envelope.model_dump())
        logger.info(f"{job.method} {resource!r} to {job.service_uuid} ({job.realm_uuid})")

    def build_envelope(self, resource: Resourceable, realm_uuid: str) -> SignedEnvelope:
        """Sign the current transmissible state of *resource* for one realm."""
        fields = {
            "resource": json.dumps(resource.to_transmissible(), separators=(",", ":")),
            "realm": realm_uuid,
            "service": self.service_uuid,
        }
        return SignedEnvelope(sign=self.signer.sign(fields), **fields)

    # -- Internal -----------------------------------------------------------

    async def _registered_entries(self, resource: Resourceable) -> List[ConsumerEntry]:
        entries = []
        for entry in await self.repository.list_consumers(resource.uuid):
            if not entry.is_valid:
                error = MalformedConsumerEntryError(resource.uuid, entry)
                logger.warning(f"Skipping consumer: {error}")
                continue
            entries.append(entry)
        return entries

    async def _enqueue(
        self, resource: Resourceable, entry: ConsumerEntry, kind: JobKind
    ) -> PropagationJob:
        job = PropagationJob(
            kind=kind,
            queue=self.queue_name,
            resource_type=resource.resource_type,
            resource_uuid=resource.uuid,
            service_uuid=entry.service_uuid,
            realm_uuid=entry.realm_uuid,
            resource=resource.to_transmissible(),
        )
        await self.queue.submit(job)
        logger.debug(f"Scheduled {kind.value} of {resource!r} for {entry.service_uuid}")
        return job

    async def _delete_on_consumer(self, resource: Resourceable, entry: ConsumerEntry) -> bool:
        try:
            await self._send_delete(resource.resource_type, resource.uuid,
                                    entry.service_uuid, entry.realm_uuid)
        except (RemoteDeliveryError, ServiceNotFoundError) as exc:
            logger.warning(
                f"Delete of {resource!r} on {entry.service_uuid} failed, scheduling retry: {exc}"
            )
            await self._enqueue(resource, entry, JobKind.DELETE)
            return False
        return True

    async def _send_delete(
        self, resource_type: str, resource_uuid: str, service_uuid: str, realm_uuid: str
    ) -> None:
        endpoint = await self.directory.resolve(service_uuid, realm_uuid)
        url = endpoint.url_for(resource_path(resource_type, resource_uuid))
        await self.client.request("DELETE", url)
        logger.info(f"DELETE {resource_type}/{resource_uuid} on {service_uuid} ({realm_uuid})")
