"""
BikeShop Service Hub - Quotations Router

API endpoints for the quotation lifecycle:
- Store side: create, list, update, send, statistics, expiring soon
- Customer side: list own quotations, approve, reject
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.config import settings
from app.dependencies import Pagination, get_current_user, get_quotation_service
from app.models.base import utcnow
from app.models.quotation import Quotation, QuotationStatus
from app.models.user import User
from app.schemas.common import ApiResponse, PaginationMeta, envelope
from app.schemas.quotation import (
    LineItemResponse,
    QuotationCreate,
    QuotationResponse,
    QuotationStats,
    QuotationUpdate,
)
from app.services.ledger import to_money
from app.services.quotation_service import QuotationService
from app.services.quotation_workflow import days_until_expiry, is_expired, is_expiring_soon


router = APIRouter()


def quotation_to_response(quotation: Quotation, now: Optional[datetime] = None) -> QuotationResponse:
    """Convert a Quotation model to its response schema."""
    now = now or utcnow()
    request = quotation.service_request
    return QuotationResponse(
        id=quotation.id,
        quotation_number=quotation.quotation_number,
        service_request_id=quotation.service_request_id,
        store_id=request.store_id,
        customer_id=request.customer_id,
        line_items=[
            LineItemResponse(
                id=item.id,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total=to_money(item.total),
            )
            for item in quotation.items
        ],
        subtotal=quotation.subtotal,
        tax_rate=quotation.tax_rate,
        tax_amount=quotation.tax_amount,
        total=quotation.total,
        valid_until=quotation.valid_until,
        status=quotation.status,
        notes=quotation.notes,
        created_by_id=quotation.created_by_id,
        created_at=quotation.created_at,
        updated_at=quotation.updated_at,
        is_expired=is_expired(quotation.status, quotation.valid_until, now),
        days_until_expiry=days_until_expiry(quotation.valid_until, now),
        is_expiring_soon=is_expiring_soon(
            quotation.status,
            quotation.valid_until,
            now,
            settings.quotation_expiring_soon_days,
        ),
    )


# ===========================================
# STORE ENDPOINTS
# ===========================================

@router.post(
    "/stores/{store_id}/quotations",
    response_model=ApiResponse[QuotationResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create a quotation for a service request",
)
async def create_quotation(
    store_id: UUID,
    body: QuotationCreate,
    current_user: User = Depends(get_current_user),
    service: QuotationService = Depends(get_quotation_service),
):
    quotation = await service.create_quotation(
        actor_id=current_user.id,
        store_id=store_id,
        service_request_id=body.service_request_id,
        line_items=[item.model_dump() for item in body.line_items],
        tax_rate=body.tax_rate,
        validity_days=body.validity_days,
        notes=body.notes,
    )
    return envelope(quotation_to_response(quotation))


@router.get(
    "/stores/{store_id}/quotations",
    response_model=ApiResponse[List[QuotationResponse]],
    summary="List quotations of a store",
)
async def list_store_quotations(
    store_id: UUID,
    status_filter: Optional[QuotationStatus] = Query(None, alias="status"),
    service_request_id: Optional[UUID] = None,
    pagination: Pagination = Depends(),
    current_user: User = Depends(get_current_user),
    service: QuotationService = Depends(get_quotation_service),
):
    quotations, total = await service.list_store_quotations(
        actor_id=current_user.id,
        store_id=store_id,
        status=status_filter,
        service_request_id=service_request_id,
        page=pagination.page,
        limit=pagination.limit,
    )
    now = utcnow()
    return envelope(
        [quotation_to_response(q, now) for q in quotations],
        PaginationMeta.build(pagination.page, pagination.limit, total),
    )


@router.get(
    "/stores/{store_id}/quotations/stats",
    response_model=ApiResponse[QuotationStats],
    summary="Quotation statistics for a store",
)
async def get_store_quotation_stats(
    store_id: UUID,
    current_user: User = Depends(get_current_user),
    service: QuotationService = Depends(get_quotation_service),
):
    stats = await service.get_store_stats(current_user.id, store_id)
    return envelope(QuotationStats(**stats))


@router.get(
    "/stores/{store_id}/quotations/expiring",
    response_model=ApiResponse[List[QuotationResponse]],
    summary="Quotations expiring within the next days",
)
async def get_expiring_quotations(
    store_id: UUID,
    days: int = Query(settings.quotation_expiring_soon_days, ge=1, le=90),
    current_user: User = Depends(get_current_user),
    service: QuotationService = Depends(get_quotation_service),
):
    quotations = await service.get_expiring_quotations(current_user.id, store_id, days=days)
    now = utcnow()
    return envelope([quotation_to_response(q, now) for q in quotations])


# ===========================================
# CUSTOMER ENDPOINTS
# ===========================================

@router.get(
    "/customers/me/quotations",
    response_model=ApiResponse[List[QuotationResponse]],
    summary="List the current customer's quotations",
)
async def list_my_quotations(
    status_filter: Optional[QuotationStatus] = Query(None, alias="status"),
    pagination: Pagination = Depends(),
    current_user: User = Depends(get_current_user),
    service: QuotationService = Depends(get_quotation_service),
):
    quotations, total = await service.list_customer_quotations(
        customer_id=current_user.id,
        status=status_filter,
        page=pagination.page,
        limit=pagination.limit,
    )
    now = utcnow()
    return envelope(
        [quotation_to_response(q, now) for q in quotations],
        PaginationMeta.build(pagination.page, pagination.limit, total),
    )


@router.get(
    "/customers/me/quotations/stats",
    response_model=ApiResponse[QuotationStats],
    summary="Quotation statistics for the current customer",
)
async def get_my_quotation_stats(
    current_user: User = Depends(get_current_user),
    service: QuotationService = Depends(get_quotation_service),
):
    stats = await service.get_customer_stats(current_user.id)
    now = utcnow()
    stats["recent"] = [quotation_to_response(q, now) for q in stats["recent"]]
    return envelope(QuotationStats(**stats))


# ===========================================
# SINGLE QUOTATION ENDPOINTS
# ===========================================

@router.get(
    "/quotations/{quotation_id}",
    response_model=ApiResponse[QuotationResponse],
    summary="Get a quotation",
)
async def get_quotation(
    quotation_id: UUID,
    current_user: User = Depends(get_current_user),
    service: QuotationService = Depends(get_quotation_service),
):
    quotation = await service.get_quotation(current_user.id, quotation_id)
    return envelope(quotation_to_response(quotation))


@router.patch(
    "/quotations/{quotation_id}",
    response_model=ApiResponse[QuotationResponse],
    summary="Update a draft or sent quotation",
)
async def update_quotation(
    quotation_id: UUID,
    body: QuotationUpdate,
    current_user: User = Depends(get_current_user),
    service: QuotationService = Depends(get_quotation_service),
):
    quotation = await service.update_quotation(
        actor_id=current_user.id,
        quotation_id=quotation_id,
        line_items=[item.model_dump() for item in body.line_items] if body.line_items is not None else None,
        tax_rate=body.tax_rate,
        validity_days=body.validity_days,
        notes=body.notes,
    )
    return envelope(quotation_to_response(quotation))


@router.post(
    "/quotations/{quotation_id}/send",
    response_model=ApiResponse[QuotationResponse],
    summary="Send a quotation to the customer",
)
async def send_quotation(
    quotation_id: UUID,
    current_user: User = Depends(get_current_user),
    service: QuotationService = Depends(get_quotation_service),
):
    quotation = await service.send_quotation(current_user.id, quotation_id)
    return envelope(quotation_to_response(quotation))


@router.post(
    "/quotations/{quotation_id}/approve",
    response_model=ApiResponse[QuotationResponse],
    summary="Approve a quotation (customer)",
)
async def approve_quotation(
    quotation_id: UUID,
    current_user: User = Depends(get_current_user),
    service: QuotationService = Depends(get_quotation_service),
):
    quotation = await service.approve_quotation(current_user.id, quotation_id)
    return envelope(quotation_to_response(quotation))


@router.post(
    "/quotations/{quotation_id}/reject",
    response_model=ApiResponse[QuotationResponse],
    summary="Reject a quotation (customer)",
)
async def reject_quotation(
    quotation_id: UUID,
    current_user: User = Depends(get_current_user),
    service: QuotationService = Depends(get_quotation_service),
):
    quotation = await service.reject_quotation(current_user.id, quotation_id)
    return envelope(quotation_to_response(quotation))
