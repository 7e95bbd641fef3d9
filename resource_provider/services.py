"""Resolution of consumer services to network addresses."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from resource_provider.exceptions import ServiceNotFoundError


@dataclass(frozen=True)
class ServiceEndpoint:
    """Live address of a consumer service within a realm."""

    service_uuid: str
    realm_uuid: str
    url: str

    def url_for(self, path: str) -> str:
        return f"{self.url.rstrip('/')}/{path.lstrip('/')}"


class ServiceDirectory(ABC):
    """Looks up where a consumer service can currently be reached.

    Addresses may change between enqueueing a job and running it, so
    callers resolve at the moment of the remote call.
    """

    @abstractmethod
    async def resolve(self, service_uuid: str, realm_uuid: str) -> ServiceEndpoint:
        """Return the endpoint or raise ServiceNotFoundError."""


class StaticServiceDirectory(ServiceDirectory):
    """Thread-safe in-memory directory keyed by (service uuid, realm uuid).

    A registration with ``realm_uuid=None`` applies to every realm the
    service has no specific entry for.
    """

    def __init__(self, services: Optional[Dict[Tuple[str, Optional[str]], str]] = None) -> None:
        self._lock = threading.Lock()
        self._urls: Dict[Tuple[str, Optional[str]], str] = dict(services or {})

    def register(self, service_uuid: str, url: str, realm_uuid: Optional[str] = None) -> None:
        with self._lock:
            self._urls[(service_uuid, realm_uuid)] = url

    def unregister(self, service_uuid: str, realm_uuid: Optional[str] = None) -> bool:
        with self._lock:
            return self._urls.pop((service_uuid, realm_uuid), None) is not None

    def list_services(self) -> List[Tuple[str, Optional[str], str]]:
        with self._lock:
            return [(service, realm, url) for (service, realm), url in self._urls.items()]

    async def resolve(self, service_uuid: str, realm_uuid: str) -> ServiceEndpoint:
        with self._lock:
            url = self._urls.get((service_uuid, realm_uuid)) or self._urls.get((service_uuid, None))
        if url is None:
            raise ServiceNotFoundError(service_uuid, realm_uuid)
        return ServiceEndpoint(service_uuid=service_uuid, realm_uuid=realm_uuid, url=url)
