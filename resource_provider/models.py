"""
Database and message models for the resource provider.

This module defines SQLAlchemy ORM models for the resource documents and
their consumer registries, and Pydantic models for the registry entries,
queued propagation jobs and signed envelopes.
"""
from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import JSON, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

RESOURCE_QUEUE = "resource"


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""


class ResourceDocument(Base):
    """ORM model for a provided resource."""

    __tablename__ = "resources"

    uuid: Mapped[str] = mapped_column(String, primary_key=True)
    resource_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    attributes: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[float] = mapped_column(Float, nullable=False, default=time.time)
    updated_at: Mapped[float] = mapped_column(Float, nullable=False, default=time.time)

    consumers: Mapped[List["ResourceConsumer"]] = relationship(
        "ResourceConsumer",
        back_populates="resource",
        cascade="all, delete-orphan",
        order_by="ResourceConsumer.id",
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert ORM model to dictionary."""
        return {
            "uuid": self.uuid,
            "resource_type": self.resource_type,
            "attributes": dict(self.attributes or {}),
            "consumers": [consumer.to_dict() for consumer in self.consumers],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class ResourceConsumer(Base):
    """ORM model for one registered consumer of a resource."""

    __tablename__ = "resource_consumers"
    __table_args__ = (
        UniqueConstraint(
            "resource_uuid", "service_uuid", "realm_uuid", name="uq_resource_consumer"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    resource_uuid: Mapped[str] = mapped_column(
        String,
        ForeignKey("resources.uuid", ondelete="CASCADE"),
        nullable=False,
    )
    service_uuid: Mapped[str] = mapped_column(String, nullable=False)
    realm_uuid: Mapped[str] = mapped_column(String, nullable=False, index=True)
    created_at: Mapped[float] = mapped_column(Float, nullable=False, default=time.time)

    resource: Mapped["ResourceDocument"] = relationship(
        "ResourceDocument", back_populates="consumers"
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert ORM model to dictionary."""
        return {
            "service_uuid": self.service_uuid,
            "realm_uuid": self.realm_uuid,
        }


class ConsumerEntry(BaseModel):
    """A registered interest of one service, scoped to one realm."""

    service_uuid: Optional[str] = None
    realm_uuid: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return bool(self.service_uuid) and bool(self.realm_uuid)

    def matches(self, service_uuid: str, realm_uuid: str) -> bool:
        return self.service_uuid == service_uuid and self.realm_uuid == realm_uuid


class JobKind(str, Enum):
    """Kinds of remote calls a propagation job can perform."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    REFRESH = "refresh"


JOB_METHODS: Dict[JobKind, str] = {
    JobKind.CREATE: "POST",
    JobKind.UPDATE: "PUT",
    JobKind.REFRESH: "PUT",
    JobKind.DELETE: "DELETE",
}


class PropagationJob(BaseModel):
    """A serializable instruction to notify one consumer about one resource.

    ``resource`` holds the transmissible fields at the time the job was
    queued. Delivery re-reads the resource and sends its state at execution
    time; the snapshot is never replayed for a resource that is gone.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: JobKind
    queue: str = RESOURCE_QUEUE
    resource_type: str
    resource_uuid: str
    service_uuid: str
    realm_uuid: str
    resource: Dict[str, Any] = Field(default_factory=dict)
    created_at: float = Field(default_factory=time.time)

    @property
    def method(self) -> str:
        return JOB_METHODS[self.kind]


class SignedEnvelope(BaseModel):
    """The body sent to consumers on create, update and refresh."""

    resource: str
    realm: str
    service: str
    sign: str
