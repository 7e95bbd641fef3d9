"""
Wiring of a ready-to-run provider from an :class:`AppConfig`.

Usage::

    config = AppConfig()
    provider = build_provider(config, directory, types)
    await provider.start()
    await provider.lifecycle.update(resource, name="Marta")
    await provider.stop()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from resource_provider.client import ConsumerClient
from resource_provider.config import AppConfig, configure_logging
from resource_provider.db import close_db_connections, create_engine_for, init_db, make_session_factory
from resource_provider.engine import PropagationEngine
from resource_provider.lifecycle import ResourceLifecycle
from resource_provider.queue import Dispatcher, InMemoryJobQueue
from resource_provider.repositories import ResourceRepository
from resource_provider.resourceable import ResourceTypeRegistry
from resource_provider.services import ServiceDirectory
from resource_provider.signing import Signer

logger = logging.getLogger(__name__)


@dataclass
class Provider:
    """All collaborators of a running provider."""

    config: AppConfig
    db_engine: AsyncEngine
    repository: ResourceRepository
    queue: InMemoryJobQueue
    engine: PropagationEngine
    dispatcher: Dispatcher
    lifecycle: ResourceLifecycle
    client: ConsumerClient

    async def start(self, run_dispatcher: bool = True) -> None:
        """Create tables and start draining the job queue."""
        await init_db(self.db_engine)
        if run_dispatcher:
            self.dispatcher.start()
        logger.info(f"Provider {self.config.service_uuid} started")

    async def stop(self) -> None:
        await self.dispatcher.stop()
        await self.client.close()
        await close_db_connections(self.db_engine)
        logger.info(f"Provider {self.config.service_uuid} stopped")


def build_provider(
    config: AppConfig,
    directory: ServiceDirectory,
    types: ResourceTypeRegistry,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Provider:
    """Validate *config* and assemble a provider.

    Raises SignatureConfigurationError when the shared secret or the
    provider's service uuid is missing.
    """
    config.validate()
    configure_logging(config.log_level)

    signer = Signer(config.provider_secret)
    db_engine = create_engine_for(config.database_url)
    repository = ResourceRepository(make_session_factory(db_engine), types)
    queue = InMemoryJobQueue()
    client = ConsumerClient(http_client, timeout=config.delivery_timeout)
    engine = PropagationEngine(
        repository,
        directory,
        client,
        signer,
        queue,
        service_uuid=config.service_uuid,
        queue_name=config.queue_name,
    )
    dispatcher = Dispatcher(
        queue,
        engine.execute,
        queue_name=config.queue_name,
        max_attempts=config.max_attempts,
        retry_delays=config.retry_delays,
        poll_interval=config.poll_interval,
    )
    return Provider(
        config=config,
        db_engine=db_engine,
        repository=repository,
        queue=queue,
        engine=engine,
        dispatcher=dispatcher,
        lifecycle=ResourceLifecycle(repository, engine),
        client=client,
    )
