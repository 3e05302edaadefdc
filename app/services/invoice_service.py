"""
BikeShop Service Hub - Invoice Service

Business logic for invoices and the payment ledger.

Payment recording reads the invoice with SELECT ... FOR UPDATE and
writes the new paid amount and status in the same transaction, so the
remaining-balance check always sees a consistent row.
"""

import logging
import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import func, or_, and_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.models.base import utcnow
from app.models.invoice import Invoice, PaymentStatus
from app.models.quotation import Quotation
from app.models.service_request import ServiceRecord, ServiceRecordStatus, ServiceRequest
from app.schemas.common import SweepResult
from app.services.access_control import AccessControlGate
from app.services.ledger import (
    build_line_items,
    compute_totals,
    serialize_line_items,
    strip_line_items,
    to_money,
    validate_notes,
    validate_tax_rate,
)
from app.services.payment_ledger import (
    MAX_PAYMENT_NOTES_LENGTH,
    PaymentState,
    apply_payment,
    can_mark_overdue,
    check_cancellable,
    ensure_open,
    is_due_soon,
    is_overdue,
    reprice,
    reschedule,
)
from app.utils.error_handling import (
    ConflictException,
    NotFoundException,
    ValidationException,
)
from app.utils.permissions import StorePermission

logger = logging.getLogger(__name__)


OPEN_STATUSES = (PaymentStatus.PENDING, PaymentStatus.PARTIAL, PaymentStatus.OVERDUE)


def _state(invoice: Invoice) -> PaymentState:
    return PaymentState(
        total=invoice.total,
        paid_amount=invoice.paid_amount,
        payment_status=invoice.payment_status,
        due_date=invoice.due_date,
        paid_date=invoice.paid_date,
    )


def _write_state(invoice: Invoice, state: PaymentState) -> None:
    invoice.total = to_money(state.total)
    invoice.paid_amount = to_money(state.paid_amount)
    invoice.payment_status = state.payment_status
    invoice.due_date = state.due_date
    invoice.paid_date = state.paid_date


class InvoiceService:
    """Service for invoice operations."""

    def __init__(self, db: AsyncSession, gate: Optional[AccessControlGate] = None):
        self.db = db
        self.gate = gate or AccessControlGate(db)

    # ===========================================
    # INVOICE NUMBER GENERATION
    # ===========================================

    async def generate_invoice_number(self, today: date) -> str:
        """
        Generate the next invoice number for the day.

        Format: INV-YYYYMMDD-NNNN (e.g., INV-20261016-0001)
        """
        prefix = f"INV-{today:%Y%m%d}"
        result = await self.db.execute(
            select(func.count(Invoice.id))
            .where(Invoice.invoice_number.like(f"{prefix}%"))
        )
        count = result.scalar() or 0
        return f"{prefix}-{count + 1:04d}"

    # ===========================================
    # LOOKUPS
    # ===========================================

    @staticmethod
    def _with_context(query):
        return query.options(
            selectinload(Invoice.service_record).selectinload(ServiceRecord.service_request)
        )

    async def get_invoice_by_id(
        self,
        invoice_id: uuid.UUID,
        for_update: bool = False,
    ) -> Optional[Invoice]:
        """Get invoice by ID with its service record and request loaded."""
        query = self._with_context(select(Invoice)).where(Invoice.id == invoice_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _require_invoice(self, invoice_id: uuid.UUID, for_update: bool = False) -> Invoice:
        invoice = await self.get_invoice_by_id(invoice_id, for_update=for_update)
        if invoice is None:
            raise NotFoundException("Invoice", invoice_id)
        return invoice

    async def _authorize_view(self, actor_id: uuid.UUID, invoice: Invoice) -> None:
        request = invoice.service_record.service_request
        if request.customer_id != actor_id:
            await self.gate.require(actor_id, request.store_id, StorePermission.VIEW_INVOICES)

    async def get_invoice(self, actor_id: uuid.UUID, invoice_id: uuid.UUID) -> Invoice:
        """Get an invoice visible to the actor (its customer or store staff)."""
        invoice = await self._require_invoice(invoice_id)
        await self._authorize_view(actor_id, invoice)
        return invoice

    async def get_invoice_by_number(self, actor_id: uuid.UUID, invoice_number: str) -> Invoice:
        """Get invoice by invoice number."""
        result = await self.db.execute(
            self._with_context(select(Invoice)).where(Invoice.invoice_number == invoice_number)
        )
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise NotFoundException("Invoice", message=f"Invoice '{invoice_number}' not found")
        await self._authorize_view(actor_id, invoice)
        return invoice

    # ===========================================
    # CREATE / UPDATE / CANCEL
    # ===========================================

    async def create_invoice(
        self,
        actor_id: uuid.UUID,
        store_id: uuid.UUID,
        service_record_id: uuid.UUID,
        line_items: Optional[Sequence[Mapping[str, Any]]] = None,
        quotation_id: Optional[uuid.UUID] = None,
        tax_rate: Any = None,
        due_days: Optional[int] = None,
        notes: Optional[str] = None,
        today: Optional[date] = None,
    ) -> Invoice:
        """
        Create an invoice for a completed service record.

        Line items are taken from the request, else copied from the given
        quotation, else a single zero-priced placeholder line is used. The
        tax rate likewise falls back to the quotation's rate, then 0.

        Raises:
            AuthorizationException: actor lacks create_invoices on the store
            NotFoundException: service record (or quotation) not found
            ConflictException: record not completed, already invoiced, or
                quotation belongs to another service request
            ValidationException: bad line items, tax rate, due days or notes
        """
        await self.gate.require(actor_id, store_id, StorePermission.CREATE_INVOICES)
        today = today or utcnow().date()

        result = await self.db.execute(
            select(ServiceRecord)
            .options(selectinload(ServiceRecord.service_request))
            .where(ServiceRecord.id == service_record_id)
            .with_for_update()
        )
        record = result.scalar_one_or_none()
        if record is None or record.service_request.store_id != store_id:
            raise NotFoundException("ServiceRecord", service_record_id)

        if record.status != ServiceRecordStatus.COMPLETED:
            raise ConflictException(
                "Invoices can only be created for completed service records",
                resource_type="ServiceRecord",
                details={"current_status": record.status.value},
            )

        existing = await self.db.execute(
            select(Invoice.invoice_number).where(Invoice.service_record_id == service_record_id)
        )
        existing_number = existing.scalar_one_or_none()
        if existing_number is not None:
            raise ConflictException(
                f"Service record already has invoice {existing_number}",
                resource_type="Invoice",
            )

        quotation = None
        if quotation_id is not None:
            result = await self.db.execute(select(Quotation).where(Quotation.id == quotation_id))
            quotation = result.scalar_one_or_none()
            if quotation is None:
                raise NotFoundException("Quotation", quotation_id)
            if quotation.service_request_id != record.service_request_id:
                raise ConflictException(
                    "Quotation does not belong to the same service request",
                    resource_type="Quotation",
                )

        if line_items:
            raw_items = line_items
        elif quotation is not None:
            raw_items = strip_line_items(quotation.items)
        else:
            raw_items = [{
                "description": f"Service for {record.service_request.bike_description}",
                "quantity": 1,
                "unit_price": 0,
            }]

        if tax_rate is None:
            tax_rate = quotation.tax_rate if quotation is not None else 0

        items = build_line_items(raw_items)
        rate = validate_tax_rate(tax_rate)
        totals = compute_totals(items, rate).rounded()

        due_days = settings.invoice_due_days if due_days is None else due_days
        if due_days <= 0:
            raise ValidationException("Due days must be greater than 0", field="due_days")
        validate_notes(notes)

        invoice = Invoice(
            invoice_number=await self.generate_invoice_number(today),
            service_record_id=record.id,
            service_record=record,
            quotation_id=quotation.id if quotation is not None else None,
            line_items=serialize_line_items(items),
            subtotal=totals.subtotal,
            tax_rate=to_money(rate),
            tax_amount=totals.tax_amount,
            total=totals.total,
            paid_amount=Decimal("0.00"),
            payment_status=PaymentStatus.PENDING,
            due_date=today + timedelta(days=due_days),
            notes=notes,
            created_by_id=actor_id,
        )
        self.db.add(invoice)
        await self.db.commit()

        logger.info(
            f"Invoice {invoice.invoice_number} created for record {record.id} "
            f"(total {invoice.total}, due {invoice.due_date})"
        )
        return invoice

    async def update_invoice(
        self,
        actor_id: uuid.UUID,
        invoice_id: uuid.UUID,
        line_items: Optional[Sequence[Mapping[str, Any]]] = None,
        tax_rate: Any = None,
        due_date: Optional[date] = None,
        notes: Optional[str] = None,
        today: Optional[date] = None,
    ) -> Invoice:
        """
        Update an open invoice.

        Changing line items or tax recomputes totals and re-derives the
        payment status; a total below the amount already paid is rejected.
        """
        invoice = await self._require_invoice(invoice_id, for_update=True)
        await self.gate.require(
            actor_id,
            invoice.service_record.service_request.store_id,
            StorePermission.UPDATE_INVOICES,
        )
        ensure_open(invoice.payment_status, invoice.payment_status, "update")
        today = today or utcnow().date()

        state = _state(invoice)
        if line_items is not None or tax_rate is not None:
            items = build_line_items(line_items) if line_items is not None else invoice.items
            rate = validate_tax_rate(tax_rate if tax_rate is not None else invoice.tax_rate)
            totals = compute_totals(items, rate).rounded()
            state = reprice(state, totals.total, today)

            invoice.line_items = serialize_line_items(items)
            invoice.tax_rate = to_money(rate)
            invoice.subtotal = totals.subtotal
            invoice.tax_amount = totals.tax_amount

        if due_date is not None:
            state = reschedule(state, due_date, today)

        if notes is not None:
            invoice.notes = validate_notes(notes)

        _write_state(invoice, state)
        await self.db.commit()

        logger.info(
            f"Invoice {invoice.invoice_number} updated "
            f"(total {invoice.total}, status {invoice.payment_status.value})"
        )
        return invoice

    async def record_payment(
        self,
        actor_id: uuid.UUID,
        invoice_id: uuid.UUID,
        amount: Any,
        payment_date: Optional[date] = None,
        notes: Optional[str] = None,
        today: Optional[date] = None,
    ) -> Invoice:
        """
        Record a payment against an invoice.

        Raises:
            ValidationException: non-positive amount, future payment date,
                notes too long, or amount larger than the remaining balance
            ConflictException: invoice is paid or cancelled
        """
        invoice = await self._require_invoice(invoice_id, for_update=True)
        await self.gate.require(
            actor_id,
            invoice.service_record.service_request.store_id,
            StorePermission.UPDATE_INVOICES,
        )
        today = today or utcnow().date()
        validate_notes(notes, limit=MAX_PAYMENT_NOTES_LENGTH)

        previous = invoice.payment_status
        state = apply_payment(_state(invoice), amount, payment_date or today, today)
        _write_state(invoice, state)
        if notes:
            invoice.notes = notes

        await self.db.commit()
        logger.info(
            f"Payment of {amount} recorded on invoice {invoice.invoice_number}: "
            f"paid {invoice.paid_amount}/{invoice.total}, "
            f"{previous.value} -> {invoice.payment_status.value}"
        )
        return invoice

    async def cancel_invoice(
        self,
        actor_id: uuid.UUID,
        invoice_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> Invoice:
        """Cancel an invoice. Paid or already cancelled invoices cannot be cancelled."""
        invoice = await self._require_invoice(invoice_id, for_update=True)
        await self.gate.require(
            actor_id,
            invoice.service_record.service_request.store_id,
            StorePermission.UPDATE_INVOICES,
        )
        check_cancellable(invoice.payment_status)

        previous = invoice.payment_status
        invoice.payment_status = PaymentStatus.CANCELLED
        if reason:
            invoice.notes = f"{invoice.notes or ''}\n\nCancelled: {reason}".strip()

        await self.db.commit()
        logger.info(f"Invoice {invoice.invoice_number} cancelled (was {previous.value})")
        return invoice

    # ===========================================
    # LISTINGS
    # ===========================================

    async def _paginate(
        self,
        conditions: list,
        page: int,
        limit: int,
    ) -> Tuple[List[Invoice], int]:
        base = (
            select(Invoice)
            .join(Invoice.service_record)
            .join(ServiceRecord.service_request)
            .where(*conditions)
        )
        count_query = (
            select(func.count(Invoice.id))
            .join(Invoice.service_record)
            .join(ServiceRecord.service_request)
            .where(*conditions)
        )
        total = (await self.db.execute(count_query)).scalar() or 0

        query = (
            self._with_context(base)
            .order_by(Invoice.created_at.desc(), Invoice.invoice_number.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def list_store_invoices(
        self,
        actor_id: uuid.UUID,
        store_id: uuid.UUID,
        payment_status: Optional[PaymentStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Invoice], int]:
        """Get invoices of a store with filters."""
        await self.gate.require(actor_id, store_id, StorePermission.VIEW_INVOICES)
        conditions = [ServiceRequest.store_id == store_id]
        if payment_status:
            conditions.append(Invoice.payment_status == payment_status)
        return await self._paginate(conditions, page, limit)

    async def list_customer_invoices(
        self,
        customer_id: uuid.UUID,
        payment_status: Optional[PaymentStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Invoice], int]:
        """Get invoices for the customer's own service requests."""
        conditions = [ServiceRequest.customer_id == customer_id]
        if payment_status:
            conditions.append(Invoice.payment_status == payment_status)
        return await self._paginate(conditions, page, limit)

    async def _store_invoices(self, store_id: uuid.UUID, *conditions) -> List[Invoice]:
        result = await self.db.execute(
            self._with_context(select(Invoice))
            .join(Invoice.service_record)
            .join(ServiceRecord.service_request)
            .where(ServiceRequest.store_id == store_id)
            .where(*conditions)
            .order_by(Invoice.due_date.asc())
        )
        return list(result.scalars().all())

    async def get_overdue_invoices(
        self,
        actor_id: uuid.UUID,
        store_id: uuid.UUID,
        today: Optional[date] = None,
    ) -> List[Invoice]:
        """Invoices marked overdue or past due and still open."""
        await self.gate.require(actor_id, store_id, StorePermission.VIEW_INVOICES)
        today = today or utcnow().date()
        return await self._store_invoices(
            store_id,
            or_(
                Invoice.payment_status == PaymentStatus.OVERDUE,
                and_(
                    Invoice.due_date < today,
                    Invoice.payment_status.in_([PaymentStatus.PENDING, PaymentStatus.PARTIAL]),
                ),
            ),
        )

    async def get_due_soon_invoices(
        self,
        actor_id: uuid.UUID,
        store_id: uuid.UUID,
        days: Optional[int] = None,
        today: Optional[date] = None,
    ) -> List[Invoice]:
        """Open invoices falling due within the next few days."""
        await self.gate.require(actor_id, store_id, StorePermission.VIEW_INVOICES)
        today = today or utcnow().date()
        days = days or settings.invoice_due_soon_days
        return await self._store_invoices(
            store_id,
            Invoice.payment_status.in_(OPEN_STATUSES),
            Invoice.due_date > today,
            Invoice.due_date <= today + timedelta(days=days),
        )

    # ===========================================
    # STATISTICS
    # ===========================================

    @staticmethod
    def _summarize(invoices: Sequence[Invoice], today: date) -> Dict[str, Any]:
        summary = {
            "total_invoices": len(invoices),
            "by_status": {status.value: 0 for status in PaymentStatus},
            "total_value": Decimal("0"),
            "total_paid": Decimal("0"),
            "total_outstanding": Decimal("0"),
            "average_value": Decimal("0"),
            "overdue_count": 0,
            "due_soon_count": 0,
        }

        billable = 0
        for invoice in invoices:
            summary["by_status"][invoice.payment_status.value] += 1

            if is_overdue(invoice.payment_status, invoice.due_date, today):
                summary["overdue_count"] += 1
            if is_due_soon(invoice.payment_status, invoice.due_date, today, settings.invoice_due_soon_days):
                summary["due_soon_count"] += 1

            # Financial totals exclude cancelled invoices
            if invoice.payment_status != PaymentStatus.CANCELLED:
                billable += 1
                summary["total_value"] += invoice.total
                summary["total_paid"] += invoice.paid_amount
                summary["total_outstanding"] += max(Decimal("0"), invoice.total - invoice.paid_amount)

        if billable:
            summary["average_value"] = summary["total_value"] / billable

        for key in ("total_value", "total_paid", "total_outstanding", "average_value"):
            summary[key] = to_money(summary[key])
        return summary

    async def get_store_stats(
        self,
        actor_id: uuid.UUID,
        store_id: uuid.UUID,
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        """Invoice statistics for a store."""
        await self.gate.require(actor_id, store_id, StorePermission.VIEW_INVOICES)
        invoices = await self._store_invoices(store_id)
        return self._summarize(invoices, today or utcnow().date())

    async def get_customer_stats(
        self,
        customer_id: uuid.UUID,
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        """Invoice statistics for a customer."""
        result = await self.db.execute(
            select(Invoice)
            .join(Invoice.service_record)
            .join(ServiceRecord.service_request)
            .where(ServiceRequest.customer_id == customer_id)
        )
        invoices = list(result.scalars().all())
        return self._summarize(invoices, today or utcnow().date())

    # ===========================================
    # SCHEDULED SWEEP
    # ===========================================

    async def process_overdue_invoices(self, today: Optional[date] = None) -> SweepResult:
        """
        Mark pending/partial invoices past their due date as overdue.

        One transaction per invoice; failures are rolled back, logged and
        reported while the rest of the batch continues. Idempotent.
        """
        today = today or utcnow().date()
        result = await self.db.execute(
            select(Invoice.id)
            .where(Invoice.payment_status.in_([PaymentStatus.PENDING, PaymentStatus.PARTIAL]))
            .where(Invoice.due_date < today)
        )
        candidate_ids = list(result.scalars().all())

        sweep = SweepResult()
        for invoice_id in candidate_ids:
            try:
                invoice = await self.get_invoice_by_id(invoice_id, for_update=True)
                if invoice is None or not can_mark_overdue(_state(invoice), today):
                    continue

                invoice.payment_status = PaymentStatus.OVERDUE
                await self.db.commit()
                sweep.processed += 1
            except Exception as e:
                await self.db.rollback()
                logger.exception(f"Failed to mark invoice {invoice_id} overdue")
                sweep.errors.append(f"Invoice {invoice_id}: {e}")

        logger.info(f"Marked {sweep.processed} invoices overdue ({len(sweep.errors)} errors)")
        return sweep
