"""
BikeShop Service Hub - Invoices Router

API endpoints for invoices and payments:
- Store side: create, list, update, record payment, cancel, statistics,
  overdue and due-soon listings
- Customer side: list own invoices and statistics
"""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status

from app.config import settings
from app.dependencies import Pagination, get_current_user, get_invoice_service
from app.models.base import utcnow
from app.models.invoice import Invoice, PaymentStatus
from app.models.user import User
from app.schemas.common import ApiResponse, PaginationMeta, envelope
from app.schemas.invoice import (
    InvoiceCancel,
    InvoiceCreate,
    InvoiceResponse,
    InvoiceStats,
    InvoiceUpdate,
    PaymentCreate,
)
from app.schemas.quotation import LineItemResponse
from app.services.invoice_service import InvoiceService
from app.services.ledger import to_money
from app.services.payment_ledger import (
    days_overdue,
    days_until_due,
    is_due_soon,
    is_overdue,
    payment_percentage,
    remaining_amount,
)


router = APIRouter()


def invoice_to_response(invoice: Invoice, today: Optional[date] = None) -> InvoiceResponse:
    """Convert an Invoice model to its response schema."""
    today = today or utcnow().date()
    request = invoice.service_record.service_request
    return InvoiceResponse(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        service_record_id=invoice.service_record_id,
        service_request_id=request.id,
        store_id=request.store_id,
        customer_id=request.customer_id,
        quotation_id=invoice.quotation_id,
        line_items=[
            LineItemResponse(
                id=item.id,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total=to_money(item.total),
            )
            for item in invoice.items
        ],
        subtotal=invoice.subtotal,
        tax_rate=invoice.tax_rate,
        tax_amount=invoice.tax_amount,
        total=invoice.total,
        paid_amount=invoice.paid_amount,
        payment_status=invoice.payment_status,
        due_date=invoice.due_date,
        paid_date=invoice.paid_date,
        notes=invoice.notes,
        created_by_id=invoice.created_by_id,
        created_at=invoice.created_at,
        updated_at=invoice.updated_at,
        remaining_amount=to_money(remaining_amount(invoice.total, invoice.paid_amount)),
        payment_percentage=payment_percentage(invoice.total, invoice.paid_amount),
        is_overdue=is_overdue(invoice.payment_status, invoice.due_date, today),
        days_overdue=days_overdue(invoice.payment_status, invoice.due_date, today),
        days_until_due=days_until_due(invoice.due_date, today),
        is_due_soon=is_due_soon(
            invoice.payment_status,
            invoice.due_date,
            today,
            settings.invoice_due_soon_days,
        ),
    )


# ===========================================
# STORE ENDPOINTS
# ===========================================

@router.post(
    "/stores/{store_id}/invoices",
    response_model=ApiResponse[InvoiceResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create an invoice for a completed service record",
)
async def create_invoice(
    store_id: UUID,
    body: InvoiceCreate,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = await service.create_invoice(
        actor_id=current_user.id,
        store_id=store_id,
        service_record_id=body.service_record_id,
        line_items=[item.model_dump() for item in body.line_items] if body.line_items else None,
        quotation_id=body.quotation_id,
        tax_rate=body.tax_rate,
        due_days=body.due_days,
        notes=body.notes,
    )
    return envelope(invoice_to_response(invoice))


@router.get(
    "/stores/{store_id}/invoices",
    response_model=ApiResponse[List[InvoiceResponse]],
    summary="List invoices of a store",
)
async def list_store_invoices(
    store_id: UUID,
    payment_status: Optional[PaymentStatus] = None,
    pagination: Pagination = Depends(),
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoices, total = await service.list_store_invoices(
        actor_id=current_user.id,
        store_id=store_id,
        payment_status=payment_status,
        page=pagination.page,
        limit=pagination.limit,
    )
    today = utcnow().date()
    return envelope(
        [invoice_to_response(i, today) for i in invoices],
        PaginationMeta.build(pagination.page, pagination.limit, total),
    )


@router.get(
    "/stores/{store_id}/invoices/stats",
    response_model=ApiResponse[InvoiceStats],
    summary="Invoice statistics for a store",
)
async def get_store_invoice_stats(
    store_id: UUID,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    stats = await service.get_store_stats(current_user.id, store_id)
    return envelope(InvoiceStats(**stats))


@router.get(
    "/stores/{store_id}/invoices/overdue",
    response_model=ApiResponse[List[InvoiceResponse]],
    summary="Overdue invoices of a store",
)
async def get_overdue_invoices(
    store_id: UUID,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoices = await service.get_overdue_invoices(current_user.id, store_id)
    today = utcnow().date()
    return envelope([invoice_to_response(i, today) for i in invoices])


@router.get(
    "/stores/{store_id}/invoices/due-soon",
    response_model=ApiResponse[List[InvoiceResponse]],
    summary="Invoices falling due within the next days",
)
async def get_due_soon_invoices(
    store_id: UUID,
    days: int = Query(settings.invoice_due_soon_days, ge=1, le=90),
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoices = await service.get_due_soon_invoices(current_user.id, store_id, days=days)
    today = utcnow().date()
    return envelope([invoice_to_response(i, today) for i in invoices])


# ===========================================
# CUSTOMER ENDPOINTS
# ===========================================

@router.get(
    "/customers/me/invoices",
    response_model=ApiResponse[List[InvoiceResponse]],
    summary="List the current customer's invoices",
)
async def list_my_invoices(
    payment_status: Optional[PaymentStatus] = None,
    pagination: Pagination = Depends(),
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoices, total = await service.list_customer_invoices(
        customer_id=current_user.id,
        payment_status=payment_status,
        page=pagination.page,
        limit=pagination.limit,
    )
    today = utcnow().date()
    return envelope(
        [invoice_to_response(i, today) for i in invoices],
        PaginationMeta.build(pagination.page, pagination.limit, total),
    )


@router.get(
    "/customers/me/invoices/stats",
    response_model=ApiResponse[InvoiceStats],
    summary="Invoice statistics for the current customer",
)
async def get_my_invoice_stats(
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    stats = await service.get_customer_stats(current_user.id)
    return envelope(InvoiceStats(**stats))


# ===========================================
# SINGLE INVOICE ENDPOINTS
# ===========================================

@router.get(
    "/invoices/number/{invoice_number}",
    response_model=ApiResponse[InvoiceResponse],
    summary="Get an invoice by its number",
)
async def get_invoice_by_number(
    invoice_number: str,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = await service.get_invoice_by_number(current_user.id, invoice_number)
    return envelope(invoice_to_response(invoice))


@router.get(
    "/invoices/{invoice_id}",
    response_model=ApiResponse[InvoiceResponse],
    summary="Get an invoice",
)
async def get_invoice(
    invoice_id: UUID,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = await service.get_invoice(current_user.id, invoice_id)
    return envelope(invoice_to_response(invoice))


@router.patch(
    "/invoices/{invoice_id}",
    response_model=ApiResponse[InvoiceResponse],
    summary="Update an open invoice",
)
async def update_invoice(
    invoice_id: UUID,
    body: InvoiceUpdate,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = await service.update_invoice(
        actor_id=current_user.id,
        invoice_id=invoice_id,
        line_items=[item.model_dump() for item in body.line_items] if body.line_items is not None else None,
        tax_rate=body.tax_rate,
        due_date=body.due_date,
        notes=body.notes,
    )
    return envelope(invoice_to_response(invoice))


@router.post(
    "/invoices/{invoice_id}/payments",
    response_model=ApiResponse[InvoiceResponse],
    summary="Record a payment against an invoice",
)
async def record_payment(
    invoice_id: UUID,
    body: PaymentCreate,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = await service.record_payment(
        actor_id=current_user.id,
        invoice_id=invoice_id,
        amount=body.amount,
        payment_date=body.payment_date,
        notes=body.notes,
    )
    return envelope(invoice_to_response(invoice))


@router.post(
    "/invoices/{invoice_id}/cancel",
    response_model=ApiResponse[InvoiceResponse],
    summary="Cancel an invoice",
)
async def cancel_invoice(
    invoice_id: UUID,
    body: Optional[InvoiceCancel] = Body(None),
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = await service.cancel_invoice(
        current_user.id,
        invoice_id,
        reason=body.reason if body else None,
    )
    return envelope(invoice_to_response(invoice))
