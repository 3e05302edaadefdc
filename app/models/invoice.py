"""
BikeShop Service Hub - Invoice Model

Invoice for completed service work, with cumulative payment tracking.
"""

import uuid
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Date, ForeignKey, Numeric, String, Text, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, AuditMixin, JSONType
from app.services.ledger import LineItem, deserialize_line_items

if TYPE_CHECKING:
    from app.models.quotation import Quotation
    from app.models.service_request import ServiceRecord


class PaymentStatus(str, Enum):
    """Invoice payment status."""
    PENDING = "pending"        # Nothing paid yet
    PARTIAL = "partial"        # Some, not all, paid
    PAID = "paid"              # Fully paid (final)
    OVERDUE = "overdue"        # Due date passed while unpaid
    CANCELLED = "cancelled"    # Voided (final)


class Invoice(BaseModel, AuditMixin):
    """Invoice for a completed service record. At most one per record."""

    __tablename__ = "invoices"

    invoice_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
    )
    service_record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("service_records.id", ondelete="RESTRICT"),
        unique=True,
        nullable=False,
    )
    quotation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("quotations.id", ondelete="SET NULL"),
        nullable=True,
    )

    line_items: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0"))

    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus),
        default=PaymentStatus.PENDING,
        nullable=False,
        index=True,
    )
    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    paid_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    service_record: Mapped["ServiceRecord"] = relationship("ServiceRecord")
    quotation: Mapped[Optional["Quotation"]] = relationship("Quotation")

    @property
    def items(self) -> List[LineItem]:
        return deserialize_line_items(self.line_items)
