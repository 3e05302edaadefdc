"""
BikeShop Service Hub - Quotation Service

Persistence and orchestration for the quotation lifecycle. Transition
rules live in quotation_workflow; totals come from the ledger. Each
mutation loads the rows it changes with FOR UPDATE and commits the
quotation and its parent service request together.
"""

import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.models.base import utcnow
from app.models.quotation import ACTIVE_QUOTATION_STATUSES, Quotation, QuotationStatus
from app.models.service_request import RequestStatus, ServiceRequest
from app.schemas.common import SweepResult
from app.services.access_control import AccessControlGate
from app.services.ledger import (
    build_line_items,
    compute_totals,
    serialize_line_items,
    to_money,
    validate_notes,
    validate_tax_rate,
)
from app.services.quotation_workflow import (
    REQUEST_STATUS_AFTER,
    QuotationAction,
    check_editable,
    check_transition,
    validity_deadline,
)
from app.utils.error_handling import (
    AuthorizationException,
    ConflictException,
    NotFoundException,
)
from app.utils.permissions import StorePermission

logger = logging.getLogger(__name__)


class QuotationService:
    """Service for quotation operations."""

    def __init__(self, db: AsyncSession, gate: Optional[AccessControlGate] = None):
        self.db = db
        self.gate = gate or AccessControlGate(db)

    # ===========================================
    # QUOTATION NUMBER GENERATION
    # ===========================================

    async def generate_quotation_number(self, now: datetime) -> str:
        """
        Generate the next quotation number for the day.

        Format: QUO-YYYYMMDD-NNNN (e.g., QUO-20261016-0001)
        """
        prefix = f"QUO-{now:%Y%m%d}"
        result = await self.db.execute(
            select(func.count(Quotation.id))
            .where(Quotation.quotation_number.like(f"{prefix}%"))
        )
        count = result.scalar() or 0
        return f"{prefix}-{count + 1:04d}"

    # ===========================================
    # LOOKUPS
    # ===========================================

    async def get_quotation_by_id(
        self,
        quotation_id: uuid.UUID,
        for_update: bool = False,
    ) -> Optional[Quotation]:
        """Get quotation by ID with its service request loaded."""
        query = (
            select(Quotation)
            .options(selectinload(Quotation.service_request))
            .where(Quotation.id == quotation_id)
        )
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _require_quotation(
        self,
        quotation_id: uuid.UUID,
        for_update: bool = False,
    ) -> Quotation:
        quotation = await self.get_quotation_by_id(quotation_id, for_update=for_update)
        if quotation is None:
            raise NotFoundException("Quotation", quotation_id)
        return quotation

    async def _get_service_request(
        self,
        service_request_id: uuid.UUID,
        for_update: bool = False,
    ) -> Optional[ServiceRequest]:
        query = select(ServiceRequest).where(ServiceRequest.id == service_request_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _lock_service_request(self, quotation: Quotation) -> ServiceRequest:
        request = await self._get_service_request(quotation.service_request_id, for_update=True)
        if request is None:
            raise NotFoundException("ServiceRequest", quotation.service_request_id)
        return request

    async def get_active_quotation(self, service_request_id: uuid.UUID) -> Optional[Quotation]:
        """The draft or sent quotation for a service request, if any."""
        result = await self.db.execute(
            select(Quotation)
            .where(Quotation.service_request_id == service_request_id)
            .where(Quotation.status.in_(ACTIVE_QUOTATION_STATUSES))
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_quotation(self, actor_id: uuid.UUID, quotation_id: uuid.UUID) -> Quotation:
        """Get a quotation visible to the actor (its customer or store staff)."""
        quotation = await self._require_quotation(quotation_id)
        if quotation.service_request.customer_id != actor_id:
            await self.gate.require(
                actor_id,
                quotation.service_request.store_id,
                StorePermission.VIEW_QUOTATIONS,
            )
        return quotation

    # ===========================================
    # CREATE / UPDATE
    # ===========================================

    async def create_quotation(
        self,
        actor_id: uuid.UUID,
        store_id: uuid.UUID,
        service_request_id: uuid.UUID,
        line_items: Sequence[Mapping[str, Any]],
        tax_rate: Any = 0,
        validity_days: Optional[int] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Quotation:
        """
        Create a draft quotation for a pending service request.

        Raises:
            AuthorizationException: actor lacks create_quotations on the store
            NotFoundException: service request missing or in another store
            ConflictException: request not pending, or already has an active quotation
            ValidationException: bad line items, tax rate, validity or notes
        """
        await self.gate.require(actor_id, store_id, StorePermission.CREATE_QUOTATIONS)
        now = now or utcnow()

        request = await self._get_service_request(service_request_id, for_update=True)
        if request is None or request.store_id != store_id:
            raise NotFoundException("ServiceRequest", service_request_id)

        active = await self.get_active_quotation(service_request_id)
        if active is not None:
            raise ConflictException(
                f"Service request already has an active quotation ({active.quotation_number})",
                resource_type="Quotation",
                details={"quotation_id": str(active.id), "status": active.status.value},
            )

        if not request.can_be_quoted:
            raise ConflictException(
                f"Service request cannot be quoted while {request.status.value}",
                resource_type="ServiceRequest",
                details={"current_status": request.status.value},
            )

        items = build_line_items(line_items)
        rate = validate_tax_rate(tax_rate)
        totals = compute_totals(items, rate).rounded()
        if validity_days is None:
            validity_days = settings.quotation_validity_days
        valid_until = validity_deadline(now, validity_days)
        validate_notes(notes)

        quotation = Quotation(
            quotation_number=await self.generate_quotation_number(now),
            service_request_id=request.id,
            service_request=request,
            line_items=serialize_line_items(items),
            subtotal=totals.subtotal,
            tax_rate=to_money(rate),
            tax_amount=totals.tax_amount,
            total=totals.total,
            valid_until=valid_until,
            status=QuotationStatus.DRAFT,
            notes=notes,
            created_by_id=actor_id,
        )
        self.db.add(quotation)
        await self.db.commit()

        logger.info(
            f"Quotation {quotation.quotation_number} created for request {request.id} "
            f"(total {quotation.total})"
        )
        return quotation

    async def update_quotation(
        self,
        actor_id: uuid.UUID,
        quotation_id: uuid.UUID,
        line_items: Optional[Sequence[Mapping[str, Any]]] = None,
        tax_rate: Any = None,
        validity_days: Optional[int] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Quotation:
        """Update line items, tax, validity or notes of a draft/sent quotation."""
        quotation = await self._require_quotation(quotation_id, for_update=True)
        await self.gate.require(
            actor_id,
            quotation.service_request.store_id,
            StorePermission.UPDATE_QUOTATIONS,
        )
        check_editable(quotation.status)
        now = now or utcnow()

        items = build_line_items(line_items) if line_items is not None else quotation.items
        rate = validate_tax_rate(tax_rate if tax_rate is not None else quotation.tax_rate)
        totals = compute_totals(items, rate).rounded()

        quotation.line_items = serialize_line_items(items)
        quotation.tax_rate = to_money(rate)
        quotation.subtotal = totals.subtotal
        quotation.tax_amount = totals.tax_amount
        quotation.total = totals.total

        if validity_days is not None:
            quotation.valid_until = validity_deadline(now, validity_days)
        if notes is not None:
            quotation.notes = validate_notes(notes)

        await self.db.commit()
        logger.info(f"Quotation {quotation.quotation_number} updated (total {quotation.total})")
        return quotation

    # ===========================================
    # STATE TRANSITIONS
    # ===========================================

    async def _transition(
        self,
        quotation: Quotation,
        action: QuotationAction,
        now: datetime,
    ) -> Quotation:
        target = check_transition(
            quotation.quotation_number,
            quotation.status,
            quotation.valid_until,
            action,
            now,
        )
        previous = quotation.status
        quotation.status = target

        request = await self._lock_service_request(quotation)
        request.status = REQUEST_STATUS_AFTER[action]

        await self.db.commit()
        logger.info(
            f"Quotation {quotation.quotation_number}: {previous.value} -> {target.value}; "
            f"request {request.id} -> {request.status.value}"
        )
        return quotation

    async def send_quotation(
        self,
        actor_id: uuid.UUID,
        quotation_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> Quotation:
        """Send a draft (or resend a sent) quotation to the customer."""
        quotation = await self._require_quotation(quotation_id, for_update=True)
        await self.gate.require(
            actor_id,
            quotation.service_request.store_id,
            StorePermission.UPDATE_QUOTATIONS,
        )
        return await self._transition(quotation, QuotationAction.SEND, now or utcnow())

    async def _require_customer(self, actor_id: uuid.UUID, quotation: Quotation) -> None:
        user = await self.gate.get_user(actor_id)
        if user is None:
            raise NotFoundException("User", actor_id)
        if not user.is_active or quotation.service_request.customer_id != actor_id:
            raise AuthorizationException(
                message="Only the customer who made the service request can respond to its quotation",
            )

    async def approve_quotation(
        self,
        actor_id: uuid.UUID,
        quotation_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> Quotation:
        """Customer approves a sent quotation."""
        quotation = await self._require_quotation(quotation_id, for_update=True)
        await self._require_customer(actor_id, quotation)
        return await self._transition(quotation, QuotationAction.APPROVE, now or utcnow())

    async def reject_quotation(
        self,
        actor_id: uuid.UUID,
        quotation_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> Quotation:
        """Customer rejects a sent quotation; the request returns to pending."""
        quotation = await self._require_quotation(quotation_id, for_update=True)
        await self._require_customer(actor_id, quotation)
        return await self._transition(quotation, QuotationAction.REJECT, now or utcnow())

    # ===========================================
    # LISTINGS
    # ===========================================

    async def _paginate(self, query, count_query, page: int, limit: int) -> Tuple[List[Quotation], int]:
        total = (await self.db.execute(count_query)).scalar() or 0
        query = (
            query.options(selectinload(Quotation.service_request))
            .order_by(Quotation.created_at.desc(), Quotation.quotation_number.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def list_store_quotations(
        self,
        actor_id: uuid.UUID,
        store_id: uuid.UUID,
        status: Optional[QuotationStatus] = None,
        service_request_id: Optional[uuid.UUID] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Quotation], int]:
        """Get quotations of a store with filters."""
        await self.gate.require(actor_id, store_id, StorePermission.VIEW_QUOTATIONS)

        conditions = [ServiceRequest.store_id == store_id]
        if status:
            conditions.append(Quotation.status == status)
        if service_request_id:
            conditions.append(Quotation.service_request_id == service_request_id)

        query = select(Quotation).join(Quotation.service_request).where(*conditions)
        count_query = (
            select(func.count(Quotation.id))
            .join(Quotation.service_request)
            .where(*conditions)
        )
        return await self._paginate(query, count_query, page, limit)

    async def list_customer_quotations(
        self,
        customer_id: uuid.UUID,
        status: Optional[QuotationStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Quotation], int]:
        """Get quotations for the customer's own service requests."""
        conditions = [ServiceRequest.customer_id == customer_id]
        if status:
            conditions.append(Quotation.status == status)

        query = select(Quotation).join(Quotation.service_request).where(*conditions)
        count_query = (
            select(func.count(Quotation.id))
            .join(Quotation.service_request)
            .where(*conditions)
        )
        return await self._paginate(query, count_query, page, limit)

    async def get_expiring_quotations(
        self,
        actor_id: uuid.UUID,
        store_id: uuid.UUID,
        days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[Quotation]:
        """Active quotations whose validity ends within the next few days."""
        await self.gate.require(actor_id, store_id, StorePermission.VIEW_QUOTATIONS)
        now = now or utcnow()
        days = days or settings.quotation_expiring_soon_days

        result = await self.db.execute(
            select(Quotation)
            .join(Quotation.service_request)
            .options(selectinload(Quotation.service_request))
            .where(ServiceRequest.store_id == store_id)
            .where(Quotation.status.in_(ACTIVE_QUOTATION_STATUSES))
            .where(Quotation.valid_until > now)
            .where(Quotation.valid_until <= now + timedelta(days=days))
            .order_by(Quotation.valid_until.asc())
        )
        return list(result.scalars().all())

    # ===========================================
    # STATISTICS
    # ===========================================

    @staticmethod
    def _summarize(quotations: Sequence[Quotation]) -> Dict[str, Any]:
        by_status = {status.value: 0 for status in QuotationStatus}
        total_value = Decimal("0")
        for quotation in quotations:
            by_status[quotation.status.value] += 1
            total_value += quotation.total

        count = len(quotations)
        return {
            "total_quotations": count,
            "by_status": by_status,
            "total_value": to_money(total_value),
            "average_value": to_money(total_value / count) if count else Decimal("0.00"),
        }

    async def get_store_stats(
        self,
        actor_id: uuid.UUID,
        store_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Quotation statistics for a store."""
        await self.gate.require(actor_id, store_id, StorePermission.VIEW_QUOTATIONS)
        now = now or utcnow()

        result = await self.db.execute(
            select(Quotation)
            .join(Quotation.service_request)
            .where(ServiceRequest.store_id == store_id)
        )
        quotations = list(result.scalars().all())

        horizon = now + timedelta(days=settings.quotation_expiring_soon_days)
        summary = self._summarize(quotations)
        summary["expiring_soon"] = sum(
            1
            for q in quotations
            if q.status in ACTIVE_QUOTATION_STATUSES and now < q.valid_until <= horizon
        )
        return summary

    async def get_customer_stats(self, customer_id: uuid.UUID) -> Dict[str, Any]:
        """Quotation statistics for a customer, with the five most recent."""
        result = await self.db.execute(
            select(Quotation)
            .join(Quotation.service_request)
            .options(selectinload(Quotation.service_request))
            .where(ServiceRequest.customer_id == customer_id)
            .order_by(Quotation.created_at.desc(), Quotation.quotation_number.desc())
        )
        quotations = list(result.scalars().all())

        summary = self._summarize(quotations)
        summary["recent"] = quotations[:5]
        return summary

    # ===========================================
    # SCHEDULED SWEEP
    # ===========================================

    async def process_expired_quotations(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Expire every draft/sent quotation whose validity has passed.

        Each quotation is handled in its own transaction so one failure does
        not block the rest. A parent request still in 'quoted' is marked
        expired too. Running it again with no time passing changes nothing.
        """
        now = now or utcnow()
        result = await self.db.execute(
            select(Quotation.id)
            .where(Quotation.status.in_(ACTIVE_QUOTATION_STATUSES))
            .where(Quotation.valid_until < now)
        )
        candidate_ids = list(result.scalars().all())

        sweep = SweepResult()
        for quotation_id in candidate_ids:
            try:
                quotation = await self.get_quotation_by_id(quotation_id, for_update=True)
                if quotation is None:
                    continue
                if quotation.status not in ACTIVE_QUOTATION_STATUSES or quotation.valid_until >= now:
                    continue

                check_transition(
                    quotation.quotation_number,
                    quotation.status,
                    quotation.valid_until,
                    QuotationAction.EXPIRE,
                    now,
                )
                quotation.status = QuotationStatus.EXPIRED

                request = await self._lock_service_request(quotation)
                if request.status == RequestStatus.QUOTED:
                    request.status = RequestStatus.EXPIRED

                await self.db.commit()
                sweep.processed += 1
            except Exception as e:
                await self.db.rollback()
                logger.exception(f"Failed to expire quotation {quotation_id}")
                sweep.errors.append(f"Quotation {quotation_id}: {e}")

        logger.info(f"Expired {sweep.processed} quotations ({len(sweep.errors)} errors)")
        return sweep
