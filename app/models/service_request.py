"""
BikeShop Service Hub - Service Request Models

Service requests submitted by customers and the service records stores
keep while doing the work. Their own lifecycle is managed elsewhere; the
billing core reads them and moves the request status on quotation events.
"""

import uuid
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import ForeignKey, String, Text, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel

if TYPE_CHECKING:
    from app.models.store import Store
    from app.models.user import User


class RequestStatus(str, Enum):
    """Service request lifecycle."""
    PENDING = "pending"
    QUOTED = "quoted"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class ServiceRecordStatus(str, Enum):
    """Progress of the work carried out for a request."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"
    CANCELLED = "cancelled"


class ServiceRequest(BaseModel):
    """A customer's request to have a bike serviced at a store."""

    __tablename__ = "service_requests"

    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    store_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("stores.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    bike_description: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[RequestStatus] = mapped_column(
        SQLEnum(RequestStatus),
        default=RequestStatus.PENDING,
        nullable=False,
        index=True,
    )

    customer: Mapped["User"] = relationship("User")
    store: Mapped["Store"] = relationship("Store")
    service_records: Mapped[List["ServiceRecord"]] = relationship(
        "ServiceRecord",
        back_populates="service_request",
    )

    @property
    def can_be_quoted(self) -> bool:
        return self.status == RequestStatus.PENDING


class ServiceRecord(BaseModel):
    """Work record for a service request; invoiced once completed."""

    __tablename__ = "service_records"

    service_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("service_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[ServiceRecordStatus] = mapped_column(
        SQLEnum(ServiceRecordStatus),
        default=ServiceRecordStatus.PENDING,
        nullable=False,
    )
    work_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    service_request: Mapped["ServiceRequest"] = relationship(
        "ServiceRequest",
        back_populates="service_records",
    )
