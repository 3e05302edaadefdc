"""
BikeShop Service Hub - Quotation Service Tests

Tests for the quotation lifecycle against a database.
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from app.models.base import utcnow
from app.models.quotation import QuotationStatus
from app.models.service_request import RequestStatus
from app.services.quotation_service import QuotationService
from app.utils.error_handling import (
    AuthorizationException,
    ConflictException,
    ErrorCode,
    InsufficientPermissionsException,
    InvalidStateTransitionException,
    NotFoundException,
    QuotationExpiredException,
    ValidationException,
)


TUNE_UP = [{"description": "Tune-up", "quantity": 1, "unit_price": 75}]


async def _create(service, actor, store, request, **kwargs):
    return await service.create_quotation(
        actor_id=actor.id,
        store_id=store.id,
        service_request_id=request.id,
        line_items=kwargs.pop("line_items", TUNE_UP),
        **kwargs,
    )


class TestCreateQuotation:
    """Test cases for quotation creation."""

    @pytest.mark.asyncio
    async def test_create_computes_totals(self, db_session, store_owner, test_store, service_request):
        service = QuotationService(db_session)

        quotation = await _create(service, store_owner, test_store, service_request, tax_rate=8)

        assert quotation.status == QuotationStatus.DRAFT
        assert quotation.subtotal == Decimal("75.00")
        assert quotation.tax_amount == Decimal("6.00")
        assert quotation.total == Decimal("81.00")
        assert quotation.created_by_id == store_owner.id
        assert quotation.quotation_number.startswith("QUO-")
        assert len(quotation.items) == 1

    @pytest.mark.asyncio
    async def test_default_validity_window(self, db_session, store_owner, test_store, service_request):
        service = QuotationService(db_session)
        now = utcnow()

        quotation = await _create(service, store_owner, test_store, service_request, now=now)

        assert quotation.valid_until == now + timedelta(days=30)

    @pytest.mark.asyncio
    async def test_zero_validity_rejected(self, db_session, store_owner, test_store, service_request):
        service = QuotationService(db_session)

        with pytest.raises(ValidationException) as exc_info:
            await _create(service, store_owner, test_store, service_request, validity_days=0)
        assert exc_info.value.field == "validity_days"

    @pytest.mark.asyncio
    async def test_numbers_are_sequential_per_day(
        self, db_session, store_owner, test_store, service_request, customer
    ):
        from app.models.service_request import ServiceRequest

        second_request = ServiceRequest(
            customer_id=customer.id,
            store_id=test_store.id,
            bike_description="Brompton C Line",
            status=RequestStatus.PENDING,
        )
        db_session.add(second_request)
        await db_session.commit()

        service = QuotationService(db_session)
        now = utcnow()
        first = await _create(service, store_owner, test_store, service_request, now=now)
        second = await _create(service, store_owner, test_store, second_request, now=now)

        assert first.quotation_number.endswith("-0001")
        assert second.quotation_number.endswith("-0002")

    @pytest.mark.asyncio
    async def test_second_active_quotation_conflicts(
        self, db_session, store_owner, test_store, service_request
    ):
        """A request that already has a sent quotation cannot get another one."""
        service = QuotationService(db_session)
        first = await _create(service, store_owner, test_store, service_request)
        await service.send_quotation(store_owner.id, first.id)

        with pytest.raises(ConflictException) as exc_info:
            await _create(service, store_owner, test_store, service_request)

        assert exc_info.value.status_code == 409
        assert exc_info.value.details["quotation_id"] == str(first.id)

    @pytest.mark.asyncio
    async def test_request_must_be_pending(self, db_session, store_owner, test_store, service_request):
        service_request.status = RequestStatus.IN_PROGRESS
        await db_session.commit()

        with pytest.raises(ConflictException):
            await _create(QuotationService(db_session), store_owner, test_store, service_request)

    @pytest.mark.asyncio
    async def test_request_in_other_store_not_found(
        self, db_session, other_owner, other_store, service_request
    ):
        with pytest.raises(NotFoundException):
            await _create(QuotationService(db_session), other_owner, other_store, service_request)

    @pytest.mark.asyncio
    async def test_invalid_items_rejected(self, db_session, store_owner, test_store, service_request):
        service = QuotationService(db_session)

        with pytest.raises(ValidationException):
            await _create(service, store_owner, test_store, service_request, line_items=[])
        with pytest.raises(ValidationException):
            await _create(service, store_owner, test_store, service_request, tax_rate=101)

    @pytest.mark.asyncio
    async def test_staff_without_permission_denied(
        self, db_session, staff_user, test_store, service_request
    ):
        with pytest.raises(InsufficientPermissionsException):
            await _create(QuotationService(db_session), staff_user, test_store, service_request)

    @pytest.mark.asyncio
    async def test_senior_staff_allowed(self, db_session, senior_staff, test_store, service_request):
        quotation = await _create(QuotationService(db_session), senior_staff, test_store, service_request)
        assert quotation.created_by_id == senior_staff.id


class TestQuotationTransitions:
    """Test cases for send/approve/reject and request status side effects."""

    @pytest.mark.asyncio
    async def test_send_marks_request_quoted(self, db_session, store_owner, test_store, service_request):
        service = QuotationService(db_session)
        quotation = await _create(service, store_owner, test_store, service_request)

        quotation = await service.send_quotation(store_owner.id, quotation.id)

        assert quotation.status == QuotationStatus.SENT
        assert quotation.service_request.status == RequestStatus.QUOTED

    @pytest.mark.asyncio
    async def test_approve_marks_request_approved(
        self, db_session, store_owner, customer, test_store, service_request
    ):
        service = QuotationService(db_session)
        quotation = await _create(service, store_owner, test_store, service_request)
        await service.send_quotation(store_owner.id, quotation.id)

        quotation = await service.approve_quotation(customer.id, quotation.id)

        assert quotation.status == QuotationStatus.APPROVED
        assert quotation.service_request.status == RequestStatus.APPROVED

    @pytest.mark.asyncio
    async def test_reject_returns_request_to_pending(
        self, db_session, store_owner, customer, test_store, service_request
    ):
        service = QuotationService(db_session)
        quotation = await _create(service, store_owner, test_store, service_request)
        await service.send_quotation(store_owner.id, quotation.id)

        quotation = await service.reject_quotation(customer.id, quotation.id)

        assert quotation.status == QuotationStatus.REJECTED
        assert quotation.service_request.status == RequestStatus.PENDING

        # Rejected is final, so a fresh quotation can be created
        replacement = await _create(service, store_owner, test_store, service_request)
        assert replacement.status == QuotationStatus.DRAFT

    @pytest.mark.asyncio
    async def test_approve_past_validity_is_conflict(
        self, db_session, store_owner, customer, test_store, service_request
    ):
        """Approving a sent quotation past valid_until fails before any sweep has run."""
        service = QuotationService(db_session)
        created_at = utcnow() - timedelta(days=10)
        quotation = await _create(
            service, store_owner, test_store, service_request, validity_days=2, now=created_at
        )
        await service.send_quotation(store_owner.id, quotation.id, now=created_at)

        with pytest.raises(QuotationExpiredException) as exc_info:
            await service.approve_quotation(customer.id, quotation.id)

        assert exc_info.value.code == ErrorCode.QUOTATION_EXPIRED
        refreshed = await service.get_quotation_by_id(quotation.id)
        assert refreshed.status == QuotationStatus.SENT

    @pytest.mark.asyncio
    async def test_approve_draft_rejected(self, db_session, store_owner, customer, test_store, service_request):
        service = QuotationService(db_session)
        quotation = await _create(service, store_owner, test_store, service_request)

        with pytest.raises(InvalidStateTransitionException):
            await service.approve_quotation(customer.id, quotation.id)

    @pytest.mark.asyncio
    async def test_only_requesting_customer_can_respond(
        self, db_session, store_owner, other_customer, admin_user, test_store, service_request
    ):
        service = QuotationService(db_session)
        quotation = await _create(service, store_owner, test_store, service_request)
        await service.send_quotation(store_owner.id, quotation.id)

        with pytest.raises(AuthorizationException):
            await service.approve_quotation(other_customer.id, quotation.id)
        with pytest.raises(AuthorizationException):
            await service.reject_quotation(admin_user.id, quotation.id)

    @pytest.mark.asyncio
    async def test_owner_of_other_store_cannot_send(
        self, db_session, store_owner, other_owner, test_store, service_request
    ):
        service = QuotationService(db_session)
        quotation = await _create(service, store_owner, test_store, service_request)

        with pytest.raises(InsufficientPermissionsException):
            await service.send_quotation(other_owner.id, quotation.id)


class TestUpdateQuotation:

    @pytest.mark.asyncio
    async def test_update_recomputes_totals(self, db_session, store_owner, test_store, service_request):
        service = QuotationService(db_session)
        quotation = await _create(service, store_owner, test_store, service_request, tax_rate=8)

        quotation = await service.update_quotation(
            store_owner.id,
            quotation.id,
            line_items=[
                {"description": "Tune-up", "quantity": 1, "unit_price": 75},
                {"description": "Chain", "quantity": 1, "unit_price": 25},
            ],
        )

        assert quotation.subtotal == Decimal("100.00")
        assert quotation.tax_rate == Decimal("8.00")
        assert quotation.total == Decimal("108.00")

    @pytest.mark.asyncio
    async def test_update_tax_only_keeps_items(self, db_session, store_owner, test_store, service_request):
        service = QuotationService(db_session)
        quotation = await _create(service, store_owner, test_store, service_request)
        item_id = quotation.items[0].id

        quotation = await service.update_quotation(store_owner.id, quotation.id, tax_rate=10)

        assert quotation.items[0].id == item_id
        assert quotation.total == Decimal("82.50")

    @pytest.mark.asyncio
    async def test_approved_quotation_is_not_editable(
        self, db_session, store_owner, customer, test_store, service_request
    ):
        service = QuotationService(db_session)
        quotation = await _create(service, store_owner, test_store, service_request)
        await service.send_quotation(store_owner.id, quotation.id)
        await service.approve_quotation(customer.id, quotation.id)

        with pytest.raises(InvalidStateTransitionException):
            await service.update_quotation(store_owner.id, quotation.id, notes="late change")


class TestQuotationQueries:

    @pytest.mark.asyncio
    async def test_customer_can_view_own_quotation(
        self, db_session, store_owner, customer, other_customer, test_store, service_request
    ):
        service = QuotationService(db_session)
        quotation = await _create(service, store_owner, test_store, service_request)

        assert (await service.get_quotation(customer.id, quotation.id)).id == quotation.id
        with pytest.raises(InsufficientPermissionsException):
            await service.get_quotation(other_customer.id, quotation.id)

    @pytest.mark.asyncio
    async def test_expiring_and_stats(self, db_session, store_owner, customer, test_store, service_request):
        service = QuotationService(db_session)
        now = utcnow()
        quotation = await _create(service, store_owner, test_store, service_request, validity_days=2, now=now)

        expiring = await service.get_expiring_quotations(store_owner.id, test_store.id, days=3, now=now)
        assert [q.id for q in expiring] == [quotation.id]

        stats = await service.get_store_stats(store_owner.id, test_store.id, now=now)
        assert stats["total_quotations"] == 1
        assert stats["by_status"]["draft"] == 1
        assert stats["total_value"] == Decimal("75.00")
        assert stats["expiring_soon"] == 1

        customer_stats = await service.get_customer_stats(customer.id)
        assert customer_stats["total_quotations"] == 1
        assert customer_stats["recent"][0].id == quotation.id

    @pytest.mark.asyncio
    async def test_list_store_quotations_filters(
        self, db_session, store_owner, test_store, service_request
    ):
        service = QuotationService(db_session)
        quotation = await _create(service, store_owner, test_store, service_request)

        drafts, total = await service.list_store_quotations(
            store_owner.id, test_store.id, status=QuotationStatus.DRAFT
        )
        assert total == 1
        assert drafts[0].id == quotation.id

        sent, total = await service.list_store_quotations(
            store_owner.id, test_store.id, status=QuotationStatus.SENT
        )
        assert total == 0
        assert sent == []
