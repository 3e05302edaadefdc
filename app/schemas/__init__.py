"""
BikeShop Service Hub - Schemas Package

Pydantic schemas for request/response validation.
"""

from app.schemas.common import (
    PaginationMeta,
    ResponseMeta,
    ApiResponse,
    SweepResult,
    envelope,
)
from app.schemas.quotation import (
    LineItemInput,
    LineItemResponse,
    QuotationCreate,
    QuotationUpdate,
    QuotationResponse,
    QuotationStats,
)
from app.schemas.invoice import (
    InvoiceCreate,
    InvoiceUpdate,
    PaymentCreate,
    InvoiceCancel,
    InvoiceResponse,
    InvoiceStats,
)

__all__ = [
    # Common
    "PaginationMeta",
    "ResponseMeta",
    "ApiResponse",
    "SweepResult",
    "envelope",
    # Quotations
    "LineItemInput",
    "LineItemResponse",
    "QuotationCreate",
    "QuotationUpdate",
    "QuotationResponse",
    "QuotationStats",
    # Invoices
    "InvoiceCreate",
    "InvoiceUpdate",
    "PaymentCreate",
    "InvoiceCancel",
    "InvoiceResponse",
    "InvoiceStats",
]
