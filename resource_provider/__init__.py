"""Resource Provider.

Keeps remote consumer services eventually consistent with resources owned
by this service, through signed HTTP notifications scheduled on a job queue.
"""

from resource_provider.bootstrap import Provider, build_provider
from resource_provider.client import ConsumerClient
from resource_provider.config import AppConfig, configure_logging
from resource_provider.engine import PropagationEngine
from resource_provider.exceptions import (
    ConsumerNotFoundError,
    MalformedConsumerEntryError,
    RemoteDeliveryError,
    ResourceNotFoundError,
    ResourceProviderError,
    ResourceTypeNotFoundError,
    ServiceNotFoundError,
    SignatureConfigurationError,
)
from resource_provider.lifecycle import ResourceLifecycle
from resource_provider.models import ConsumerEntry, JobKind, PropagationJob, SignedEnvelope
from resource_provider.queue import Dispatcher, InMemoryJobQueue, JobQueue
from resource_provider.repositories import ResourceRepository
from resource_provider.resourceable import Resourceable, ResourceTypeRegistry
from resource_provider.services import ServiceDirectory, ServiceEndpoint, StaticServiceDirectory
from resource_provider.signing import Signer, sign

__all__ = [
    "AppConfig",
    "ConsumerClient",
    "ConsumerEntry",
    "ConsumerNotFoundError",
    "Dispatcher",
    "InMemoryJobQueue",
    "JobKind",
    "JobQueue",
    "MalformedConsumerEntryError",
    "PropagationEngine",
    "PropagationJob",
    "Provider",
    "RemoteDeliveryError",
    "ResourceLifecycle",
    "ResourceNotFoundError",
    "ResourceProviderError",
    "ResourceRepository",
    "ResourceTypeNotFoundError",
    "ResourceTypeRegistry",
    "Resourceable",
    "ServiceDirectory",
    "ServiceEndpoint",
    "ServiceNotFoundError",
    "SignatureConfigurationError",
    "SignedEnvelope",
    "Signer",
    "StaticServiceDirectory",
    "build_provider",
    "configure_logging",
    "sign",
]
