"""Exception hierarchy for the resource provider."""

from __future__ import annotations

from typing import Optional


class ResourceProviderError(Exception):
    """Base exception for all resource provider errors."""


class SignatureConfigurationError(ResourceProviderError):
    """Raised when the shared signing secret is missing or empty."""


class ConsumerNotFoundError(ResourceProviderError):
    """Raised when a (service, realm) pair is not registered on a resource."""

    def __init__(self, resource_uuid: str, service_uuid: str, realm_uuid: str):
        self.resource_uuid = resource_uuid
        self.service_uuid = service_uuid
        self.realm_uuid = realm_uuid
        super().__init__(
            f"No consumer {service_uuid} in realm {realm_uuid} "
            f"registered on resource {resource_uuid}"
        )


class MalformedConsumerEntryError(ResourceProviderError):
    """Raised for a registry entry lacking its service or realm identifier."""

    def __init__(self, resource_uuid: str, entry: object):
        self.resource_uuid = resource_uuid
        self.entry = entry
        super().__init__(f"Malformed consumer entry on resource {resource_uuid}: {entry!r}")


class RemoteDeliveryError(ResourceProviderError):
    """Raised when a consumer answers with a non-2xx status or cannot be reached."""

    def __init__(self, method: str, url: str, detail: str, status_code: Optional[int] = None):
        self.method = method
        self.url = url
        self.detail = detail
        self.status_code = status_code
        prefix = f"HTTP {status_code}" if status_code is not None else "Transport error"
        super().__init__(f"{prefix} on {method} {url}: {detail}")


class ServiceNotFoundError(ResourceProviderError):
    """Raised when a consumer service cannot be resolved to an address."""

    def __init__(self, service_uuid: str, realm_uuid: str):
        self.service_uuid = service_uuid
        self.realm_uuid = realm_uuid
        super().__init__(f"Service {service_uuid} is not known in realm {realm_uuid}")


class ResourceTypeNotFoundError(ResourceProviderError):
    """Raised when a resource type is not registered."""


class ResourceNotFoundError(ResourceProviderError):
    """Raised when a resource document does not exist."""

    def __init__(self, resource_uuid: str):
        self.resource_uuid = resource_uuid
        super().__init__(f"Resource {resource_uuid} not found")
