"""
BikeShop Service Hub - Quotation Model

A priced offer for a service request. Line items are embedded as a JSON
array; money columns always mirror the ledger totals of those items.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, AuditMixin, JSONType
from app.services.ledger import LineItem, deserialize_line_items

if TYPE_CHECKING:
    from app.models.service_request import ServiceRequest


class QuotationStatus(str, Enum):
    """Quotation lifecycle."""
    DRAFT = "draft"          # Being prepared by the store
    SENT = "sent"            # Awaiting customer decision
    APPROVED = "approved"    # Accepted by the customer (final)
    REJECTED = "rejected"    # Declined by the customer (final)
    EXPIRED = "expired"      # Validity window passed (final)


ACTIVE_QUOTATION_STATUSES = (QuotationStatus.DRAFT, QuotationStatus.SENT)


class Quotation(BaseModel, AuditMixin):
    """Quotation for a service request."""

    __tablename__ = "quotations"

    quotation_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
    )
    service_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("service_requests.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Line items as [{id, description, quantity, unit_price, total}]
    line_items: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0"))

    valid_until: Mapped[datetime] = mapped_column(DateTime(), nullable=False, index=True)
    status: Mapped[QuotationStatus] = mapped_column(
        SQLEnum(QuotationStatus),
        default=QuotationStatus.DRAFT,
        nullable=False,
        index=True,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    service_request: Mapped["ServiceRequest"] = relationship("ServiceRequest")

    @property
    def items(self) -> List[LineItem]:
        return deserialize_line_items(self.line_items)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_QUOTATION_STATUSES
