"""
BikeShop Service Hub - Invoice Schemas

Pydantic schemas for invoices and payments.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.invoice import PaymentStatus
from app.schemas.quotation import LineItemInput, LineItemResponse


class InvoiceCreate(BaseModel):
    """
    Schema for creating an invoice.

    Line items come from the request, else from the referenced quotation,
    else a single placeholder line is generated.
    """
    service_record_id: UUID
    quotation_id: Optional[UUID] = None
    line_items: Optional[List[LineItemInput]] = Field(None, min_length=1)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    due_days: Optional[int] = Field(None, gt=0, le=365)
    notes: Optional[str] = Field(None, max_length=2000)


class InvoiceUpdate(BaseModel):
    """Schema for updating an open invoice."""
    line_items: Optional[List[LineItemInput]] = Field(None, min_length=1)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    due_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=2000)


class PaymentCreate(BaseModel):
    """Schema for recording a payment."""
    amount: Decimal = Field(..., gt=0)
    payment_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=1000)


class InvoiceCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class InvoiceResponse(BaseModel):
    """Schema for invoice response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    invoice_number: str
    service_record_id: UUID
    service_request_id: UUID
    store_id: UUID
    customer_id: UUID
    quotation_id: Optional[UUID] = None
    line_items: List[LineItemResponse]
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    paid_amount: Decimal
    payment_status: PaymentStatus
    due_date: date
    paid_date: Optional[date] = None
    notes: Optional[str] = None
    created_by_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    # Derived
    remaining_amount: Decimal
    payment_percentage: Decimal
    is_overdue: bool
    days_overdue: int
    days_until_due: int
    is_due_soon: bool


class InvoiceStats(BaseModel):
    """Invoice statistics for a store or a customer."""
    total_invoices: int
    by_status: Dict[str, int]
    total_value: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    average_value: Decimal
    overdue_count: int
    due_soon_count: int
