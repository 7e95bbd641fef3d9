"""Resourceable base class and the registry of resource types.

Any domain entity becomes propagatable by subclassing :class:`Resourceable`
and declaring a ``resource_type`` (the path segment consumers see) and,
optionally, the ``transmissible_fields`` allow-list.
"""

from __future__ import annotations

import uuid as uuid_lib
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type

from resource_provider.exceptions import ResourceTypeNotFoundError
from resource_provider.models import ConsumerEntry


def generate_uuid() -> str:
    return uuid_lib.uuid4().hex


class Resourceable:
    """An authoritative record that can be propagated to consumer services.

    Business attributes live in ``attributes`` and are also reachable as
    plain attributes (``resource.name``). ``consumers`` holds the registry
    entries as last loaded from the store.
    """

    resource_type: ClassVar[str] = ""
    transmissible_fields: ClassVar[Tuple[str, ...]] = ()

    def __init__(
        self,
        uuid: Optional[str] = None,
        consumers: Optional[List[ConsumerEntry]] = None,
        **attributes: Any,
    ) -> None:
        self.__dict__["uuid"] = uuid or generate_uuid()
        self.__dict__["attributes"] = dict(attributes)
        self.__dict__["consumers"] = list(consumers or [])

    def __getattr__(self, name: str) -> Any:
        attributes = self.__dict__.get("attributes", {})
        if name in attributes:
            return attributes[name]
        raise AttributeError(f"{type(self).__name__!r} has no attribute {name!r}")

    def __setattr__(self, name: str, value: Any) -> None:
        if name in self.__dict__ or name.startswith("_"):
            self.__dict__[name] = value
        else:
            self.attributes[name] = value

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.uuid}>"

    # -- Serialization ------------------------------------------------------

    def allowed_fields(self) -> Tuple[str, ...]:
        """Field names that may be sent to consumers, ``uuid`` included."""
        declared = self.transmissible_fields or tuple(
            name for name in self.attributes if not name.startswith("_")
        )
        return tuple(sorted(set(declared) | {"uuid"}))

    def to_transmissible(self, *args: Any, **kwargs: Any) -> Dict[str, Any]:
        """Return the ordered subset of fields safe to transmit.

        Arguments are accepted for call compatibility and ignored: the
        transmissible set belongs to the resource type, not the caller.
        """
        payload: Dict[str, Any] = {}
        for name in self.allowed_fields():
            payload[name] = self.uuid if name == "uuid" else self.attributes.get(name)
        return payload

    # -- Registry view ------------------------------------------------------

    def find_consumer(self, service_uuid: str, realm_uuid: str) -> Optional[ConsumerEntry]:
        for entry in self.consumers:
            if entry.matches(service_uuid, realm_uuid):
                return entry
        return None


class ResourceTypeRegistry:
    """Maps ``resource_type`` names to :class:`Resourceable` subclasses."""

    def __init__(self) -> None:
        self._types: Dict[str, Type[Resourceable]] = {}

    def register(self, resource_cls: Type[Resourceable]) -> Type[Resourceable]:
        """Register a resource class. Usable as a class decorator."""
        name = resource_cls.resource_type.strip()
        if not name:
            raise ValueError("Resource class must have a non-empty 'resource_type' attribute")
        self._types[name] = resource_cls
        return resource_cls

    def get(self, resource_type: str) -> Type[Resourceable]:
        """Look up a resource class. Raises ResourceTypeNotFoundError if missing."""
        cls = self._types.get(resource_type)
        if cls is None:
            available = sorted(self._types)
            raise ResourceTypeNotFoundError(
                f"Unknown resource type '{resource_type}'. Available: {available}"
            )
        return cls

    def unregister(self, resource_type: str) -> bool:
        """Remove a resource type. Returns True if it existed."""
        return self._types.pop(resource_type, None) is not None

    def list_types(self) -> List[str]:
        return sorted(self._types)

    def has(self, resource_type: str) -> bool:
        return resource_type in self._types

    def clear(self) -> None:
        self._types.clear()

    def build(
        self,
        resource_type: str,
        uuid: str,
        attributes: Dict[str, Any],
        consumers: Optional[List[ConsumerEntry]] = None,
    ) -> Resourceable:
        """Instantiate a stored document as its registered class."""
        cls = self.get(resource_type)
        return cls(uuid=uuid, consumers=consumers, **attributes)
