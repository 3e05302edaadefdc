"""
BikeShop Service Hub - Invoice Service Tests

Tests for invoice creation, updates, payments and cancellation.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from app.models.base import utcnow
from app.models.invoice import PaymentStatus
from app.models.service_request import ServiceRecord, ServiceRecordStatus
from app.services.invoice_service import InvoiceService
from app.services.quotation_service import QuotationService
from app.utils.error_handling import (
    ConflictException,
    ErrorCode,
    InsufficientPermissionsException,
    InvalidStateTransitionException,
    NotFoundException,
    PaymentExceedsBalanceException,
    ValidationException,
)


HUNDRED_ITEMS = [{"description": "Full service", "quantity": 1, "unit_price": 100}]


async def _invoice(db_session, actor, store, record, **kwargs):
    return await InvoiceService(db_session).create_invoice(
        actor_id=actor.id,
        store_id=store.id,
        service_record_id=record.id,
        **kwargs,
    )


class TestCreateInvoice:
    """Test cases for invoice creation."""

    @pytest.mark.asyncio
    async def test_create_with_explicit_items(self, db_session, store_owner, test_store, completed_record):
        today = utcnow().date()
        invoice = await _invoice(
            db_session, store_owner, test_store, completed_record,
            line_items=HUNDRED_ITEMS, tax_rate=5, today=today,
        )

        assert invoice.invoice_number.startswith(f"INV-{today:%Y%m%d}-")
        assert invoice.total == Decimal("105.00")
        assert invoice.paid_amount == Decimal("0.00")
        assert invoice.payment_status == PaymentStatus.PENDING
        assert invoice.due_date == today + timedelta(days=30)

    @pytest.mark.asyncio
    async def test_items_copied_from_quotation(
        self, db_session, store_owner, test_store, service_request, completed_record
    ):
        quotation = await QuotationService(db_session).create_quotation(
            actor_id=store_owner.id,
            store_id=test_store.id,
            service_request_id=service_request.id,
            line_items=[{"description": "Tune-up", "quantity": 1, "unit_price": 75}],
            tax_rate=8,
        )

        invoice = await _invoice(
            db_session, store_owner, test_store, completed_record, quotation_id=quotation.id
        )

        assert invoice.quotation_id == quotation.id
        assert invoice.total == Decimal("81.00")
        assert invoice.tax_rate == Decimal("8.00")
        assert invoice.items[0].description == "Tune-up"
        assert invoice.items[0].id != quotation.items[0].id

    @pytest.mark.asyncio
    async def test_placeholder_item_without_sources(self, db_session, store_owner, test_store, completed_record):
        invoice = await _invoice(db_session, store_owner, test_store, completed_record)

        assert invoice.items[0].description == "Service for Trek Domane SL5"
        assert invoice.total == Decimal("0.00")
        assert invoice.payment_status == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_one_invoice_per_record(self, db_session, store_owner, test_store, completed_record):
        await _invoice(db_session, store_owner, test_store, completed_record, line_items=HUNDRED_ITEMS)

        with pytest.raises(ConflictException):
            await _invoice(db_session, store_owner, test_store, completed_record, line_items=HUNDRED_ITEMS)

    @pytest.mark.asyncio
    async def test_record_must_be_completed(self, db_session, store_owner, test_store, service_request):
        record = ServiceRecord(service_request_id=service_request.id, status=ServiceRecordStatus.IN_PROGRESS)
        db_session.add(record)
        await db_session.commit()

        with pytest.raises(ConflictException):
            await _invoice(db_session, store_owner, test_store, record, line_items=HUNDRED_ITEMS)

    @pytest.mark.asyncio
    async def test_unknown_quotation_not_found(self, db_session, store_owner, test_store, completed_record):
        with pytest.raises(NotFoundException):
            await _invoice(db_session, store_owner, test_store, completed_record, quotation_id=uuid4())

    @pytest.mark.asyncio
    async def test_zero_due_days_rejected(self, db_session, store_owner, test_store, completed_record):
        with pytest.raises(ValidationException) as exc_info:
            await _invoice(
                db_session, store_owner, test_store, completed_record,
                line_items=HUNDRED_ITEMS, due_days=0,
            )
        assert exc_info.value.field == "due_days"

    @pytest.mark.asyncio
    async def test_billing_staff_with_explicit_permissions(
        self, db_session, billing_staff, staff_user, test_store, completed_record
    ):
        with pytest.raises(InsufficientPermissionsException):
            await _invoice(db_session, staff_user, test_store, completed_record, line_items=HUNDRED_ITEMS)

        invoice = await _invoice(db_session, billing_staff, test_store, completed_record, line_items=HUNDRED_ITEMS)
        assert invoice.created_by_id == billing_staff.id


class TestRecordPayment:
    """Test cases for the payment ledger through the service."""

    @pytest.mark.asyncio
    async def test_partial_then_full(self, db_session, store_owner, test_store, completed_record):
        service = InvoiceService(db_session)
        invoice = await _invoice(db_session, store_owner, test_store, completed_record, line_items=HUNDRED_ITEMS)
        today = utcnow().date()

        invoice = await service.record_payment(store_owner.id, invoice.id, Decimal("40"))
        assert invoice.paid_amount == Decimal("40.00")
        assert invoice.payment_status == PaymentStatus.PARTIAL
        assert invoice.paid_date == today

        invoice = await service.record_payment(store_owner.id, invoice.id, Decimal("60"), notes="Card")
        assert invoice.paid_amount == Decimal("100.00")
        assert invoice.payment_status == PaymentStatus.PAID
        assert invoice.paid_date == today
        assert invoice.notes == "Card"

    @pytest.mark.asyncio
    async def test_overpayment_leaves_invoice_unchanged(
        self, db_session, store_owner, test_store, completed_record
    ):
        service = InvoiceService(db_session)
        invoice = await _invoice(db_session, store_owner, test_store, completed_record, line_items=HUNDRED_ITEMS)

        with pytest.raises(PaymentExceedsBalanceException) as exc_info:
            await service.record_payment(store_owner.id, invoice.id, Decimal("150"))
        assert exc_info.value.code == ErrorCode.PAYMENT_EXCEEDS_BALANCE

        refreshed = await service.get_invoice(store_owner.id, invoice.id)
        assert refreshed.paid_amount == Decimal("0.00")
        assert refreshed.payment_status == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_payment_on_paid_invoice_rejected(self, db_session, store_owner, test_store, completed_record):
        service = InvoiceService(db_session)
        invoice = await _invoice(db_session, store_owner, test_store, completed_record, line_items=HUNDRED_ITEMS)
        await service.record_payment(store_owner.id, invoice.id, Decimal("100"))

        with pytest.raises(InvalidStateTransitionException):
            await service.record_payment(store_owner.id, invoice.id, Decimal("1"))

    @pytest.mark.asyncio
    async def test_payment_moves_overdue_invoice_to_partial(
        self, db_session, store_owner, test_store, completed_record
    ):
        service = InvoiceService(db_session)
        today = utcnow().date()
        invoice = await _invoice(
            db_session, store_owner, test_store, completed_record,
            line_items=HUNDRED_ITEMS, due_days=1, today=today,
        )
        later = today + timedelta(days=5)
        await service.process_overdue_invoices(today=later)
        assert invoice.payment_status == PaymentStatus.OVERDUE

        invoice = await service.record_payment(store_owner.id, invoice.id, Decimal("40"), today=later)
        assert invoice.payment_status == PaymentStatus.PARTIAL
        assert invoice.paid_amount == Decimal("40.00")

        # Still past due, so the next sweep marks it overdue again
        sweep = await service.process_overdue_invoices(today=later)
        assert sweep.processed == 1
        assert invoice.payment_status == PaymentStatus.OVERDUE

        invoice = await service.record_payment(store_owner.id, invoice.id, Decimal("60"), today=later)
        assert invoice.payment_status == PaymentStatus.PAID

    @pytest.mark.asyncio
    async def test_payment_notes_limit(self, db_session, store_owner, test_store, completed_record):
        service = InvoiceService(db_session)
        invoice = await _invoice(db_session, store_owner, test_store, completed_record, line_items=HUNDRED_ITEMS)

        with pytest.raises(ValidationException):
            await service.record_payment(store_owner.id, invoice.id, Decimal("10"), notes="x" * 1001)


class TestUpdateAndCancel:

    @pytest.mark.asyncio
    async def test_update_items_rederives_status(self, db_session, store_owner, test_store, completed_record):
        service = InvoiceService(db_session)
        invoice = await _invoice(db_session, store_owner, test_store, completed_record, line_items=HUNDRED_ITEMS)
        await service.record_payment(store_owner.id, invoice.id, Decimal("50"))

        invoice = await service.update_invoice(
            store_owner.id,
            invoice.id,
            line_items=[{"description": "Discounted service", "quantity": 1, "unit_price": 50}],
        )

        assert invoice.total == Decimal("50.00")
        assert invoice.payment_status == PaymentStatus.PAID

    @pytest.mark.asyncio
    async def test_update_settling_invoice_stamps_paid_date(
        self, db_session, store_owner, test_store, completed_record
    ):
        service = InvoiceService(db_session)
        today = utcnow().date()
        first_payment = today - timedelta(days=10)
        invoice = await _invoice(
            db_session, store_owner, test_store, completed_record,
            line_items=HUNDRED_ITEMS, today=first_payment,
        )
        await service.record_payment(store_owner.id, invoice.id, Decimal("40"), today=first_payment)
        assert invoice.paid_date == first_payment

        invoice = await service.update_invoice(
            store_owner.id,
            invoice.id,
            line_items=[{"description": "Agreed price", "quantity": 1, "unit_price": 40}],
            today=today,
        )

        assert invoice.payment_status == PaymentStatus.PAID
        assert invoice.paid_date == today

    @pytest.mark.asyncio
    async def test_update_below_paid_rejected(self, db_session, store_owner, test_store, completed_record):
        service = InvoiceService(db_session)
        invoice = await _invoice(db_session, store_owner, test_store, completed_record, line_items=HUNDRED_ITEMS)
        await service.record_payment(store_owner.id, invoice.id, Decimal("80"))

        with pytest.raises(ValidationException):
            await service.update_invoice(
                store_owner.id,
                invoice.id,
                line_items=[{"description": "Cheaper", "quantity": 1, "unit_price": 10}],
            )

    @pytest.mark.asyncio
    async def test_reschedule_overdue(self, db_session, store_owner, test_store, completed_record):
        service = InvoiceService(db_session)
        today = utcnow().date()
        invoice = await _invoice(
            db_session, store_owner, test_store, completed_record,
            line_items=HUNDRED_ITEMS, due_days=1, today=today - timedelta(days=5),
        )
        await service.process_overdue_invoices(today=today)

        invoice = await service.update_invoice(
            store_owner.id, invoice.id, due_date=today + timedelta(days=14), today=today
        )

        assert invoice.payment_status == PaymentStatus.PENDING
        assert invoice.due_date == today + timedelta(days=14)

    @pytest.mark.asyncio
    async def test_cancel(self, db_session, store_owner, test_store, completed_record):
        service = InvoiceService(db_session)
        invoice = await _invoice(db_session, store_owner, test_store, completed_record, line_items=HUNDRED_ITEMS)

        invoice = await service.cancel_invoice(store_owner.id, invoice.id, reason="Duplicate")

        assert invoice.payment_status == PaymentStatus.CANCELLED
        assert "Cancelled: Duplicate" in invoice.notes
        with pytest.raises(InvalidStateTransitionException):
            await service.cancel_invoice(store_owner.id, invoice.id)
        with pytest.raises(InvalidStateTransitionException):
            await service.update_invoice(store_owner.id, invoice.id, notes="reopen")


class TestInvoiceQueries:

    @pytest.mark.asyncio
    async def test_lookup_by_number_and_customer_listing(
        self, db_session, store_owner, customer, other_customer, test_store, completed_record
    ):
        service = InvoiceService(db_session)
        invoice = await _invoice(db_session, store_owner, test_store, completed_record, line_items=HUNDRED_ITEMS)

        found = await service.get_invoice_by_number(customer.id, invoice.invoice_number)
        assert found.id == invoice.id

        with pytest.raises(NotFoundException):
            await service.get_invoice_by_number(customer.id, "INV-00000000-9999")
        with pytest.raises(InsufficientPermissionsException):
            await service.get_invoice(other_customer.id, invoice.id)

        mine, total = await service.list_customer_invoices(customer.id)
        assert total == 1
        assert mine[0].id == invoice.id
        theirs, total = await service.list_customer_invoices(other_customer.id)
        assert total == 0

    @pytest.mark.asyncio
    async def test_stats_and_due_listings(self, db_session, store_owner, test_store, completed_record):
        service = InvoiceService(db_session)
        today = utcnow().date()
        invoice = await _invoice(
            db_session, store_owner, test_store, completed_record,
            line_items=HUNDRED_ITEMS, due_days=3, today=today,
        )
        await service.record_payment(store_owner.id, invoice.id, Decimal("25"), today=today)

        due_soon = await service.get_due_soon_invoices(store_owner.id, test_store.id, days=7, today=today)
        assert [i.id for i in due_soon] == [invoice.id]
        overdue = await service.get_overdue_invoices(store_owner.id, test_store.id, today=today)
        assert overdue == []

        stats = await service.get_store_stats(store_owner.id, test_store.id, today=today)
        assert stats["total_invoices"] == 1
        assert stats["by_status"]["partial"] == 1
        assert stats["total_value"] == Decimal("100.00")
        assert stats["total_paid"] == Decimal("25.00")
        assert stats["total_outstanding"] == Decimal("75.00")
        assert stats["due_soon_count"] == 1

        later = today + timedelta(days=10)
        overdue = await service.get_overdue_invoices(store_owner.id, test_store.id, today=later)
        assert [i.id for i in overdue] == [invoice.id]
