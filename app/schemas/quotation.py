"""
BikeShop Service Hub - Quotation Schemas

Pydantic schemas for quotation requests and responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.quotation import QuotationStatus


# ===========================================
# LINE ITEM SCHEMAS
# ===========================================

class LineItemInput(BaseModel):
    """Line item as submitted by a client. The total is always derived."""
    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(..., gt=0, description="Quantity of units")
    unit_price: Decimal = Field(..., ge=0, description="Price per unit")


class LineItemResponse(BaseModel):
    id: str
    description: str
    quantity: Decimal
    unit_price: Decimal
    total: Decimal


# ===========================================
# QUOTATION SCHEMAS
# ===========================================

class QuotationCreate(BaseModel):
    """Schema for creating a quotation."""
    service_request_id: UUID
    line_items: List[LineItemInput] = Field(..., min_length=1)
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    validity_days: Optional[int] = Field(None, gt=0, le=365)
    notes: Optional[str] = Field(None, max_length=2000)


class QuotationUpdate(BaseModel):
    """Schema for updating a draft or sent quotation."""
    line_items: Optional[List[LineItemInput]] = Field(None, min_length=1)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    validity_days: Optional[int] = Field(None, gt=0, le=365)
    notes: Optional[str] = Field(None, max_length=2000)


class QuotationResponse(BaseModel):
    """Schema for quotation response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    quotation_number: str
    service_request_id: UUID
    store_id: UUID
    customer_id: UUID
    line_items: List[LineItemResponse]
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    valid_until: datetime
    status: QuotationStatus
    notes: Optional[str] = None
    created_by_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    # Derived
    is_expired: bool
    days_until_expiry: int
    is_expiring_soon: bool


class QuotationStats(BaseModel):
    """Quotation statistics for a store or a customer."""
    total_quotations: int
    by_status: Dict[str, int]
    total_value: Decimal
    average_value: Decimal
    expiring_soon: Optional[int] = None
    recent: Optional[List[QuotationResponse]] = None
