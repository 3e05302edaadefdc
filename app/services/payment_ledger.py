"""
BikeShop Service Hub - Invoice Payment Ledger Rules

Pure functions over an invoice's payment state. The invoice service loads
the row (locked), builds a PaymentState snapshot, asks these functions for
the outcome and writes it back in the same transaction.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from app.models.invoice import PaymentStatus
from app.services.ledger import to_decimal, to_money
from app.utils.error_handling import (
    InvalidStateTransitionException,
    PaymentExceedsBalanceException,
    ValidationException,
)


ZERO = Decimal("0")
MAX_PAYMENT_NOTES_LENGTH = 1000
CLOSED_STATUSES = frozenset({PaymentStatus.PAID, PaymentStatus.CANCELLED})


@dataclass(frozen=True)
class PaymentState:
    total: Decimal
    paid_amount: Decimal
    payment_status: PaymentStatus
    due_date: date
    paid_date: Optional[date] = None


def remaining_amount(total: Decimal, paid_amount: Decimal) -> Decimal:
    return max(ZERO, total - paid_amount)


def payment_percentage(total: Decimal, paid_amount: Decimal) -> Decimal:
    if total == 0:
        return Decimal("100.00")
    return to_money(min(Decimal("100"), paid_amount / total * 100))


def is_overdue(status: PaymentStatus, due_date: date, today: date) -> bool:
    if status == PaymentStatus.OVERDUE:
        return True
    return due_date < today and status not in CLOSED_STATUSES


def days_until_due(due_date: date, today: date) -> int:
    return (due_date - today).days


def days_overdue(status: PaymentStatus, due_date: date, today: date) -> int:
    if not is_overdue(status, due_date, today):
        return 0
    return max(0, (today - due_date).days)


def is_due_soon(status: PaymentStatus, due_date: date, today: date, days: int = 7) -> bool:
    remaining_days = days_until_due(due_date, today)
    return 0 < remaining_days <= days and status not in CLOSED_STATUSES


def settled_status(
    total: Decimal,
    paid_amount: Decimal,
    current: PaymentStatus,
) -> PaymentStatus:
    """
    Payment status as a function of paid vs total.

    Cancelled is never left. Any amount paid gives partial or paid, so an
    overdue invoice that receives a payment leaves overdue until the next
    sweep. Overdue is only kept while nothing has been paid.
    """
    if current == PaymentStatus.CANCELLED:
        return current
    if paid_amount > 0 and paid_amount >= total:
        return PaymentStatus.PAID
    if paid_amount > 0:
        return PaymentStatus.PARTIAL
    if current == PaymentStatus.OVERDUE:
        return current
    return PaymentStatus.PENDING


def ensure_open(status: PaymentStatus, requested: PaymentStatus, action: str) -> None:
    """Reject changes to a paid or cancelled invoice."""
    if status in CLOSED_STATUSES:
        raise InvalidStateTransitionException(
            resource_type="Invoice",
            current_status=status.value,
            requested_status=requested.value,
            message=f"Cannot {action} a {status.value} invoice",
        )


def apply_payment(
    state: PaymentState,
    amount: Any,
    payment_date: date,
    today: date,
) -> PaymentState:
    """
    Apply one payment to an invoice.

    paid_date is stamped on the first payment and again when the invoice
    becomes fully paid.

    Raises:
        ValidationException: non-positive amount or payment date in the future
        PaymentExceedsBalanceException: amount larger than the remaining balance
        InvalidStateTransitionException: invoice is paid or cancelled
    """
    value = to_decimal(amount, "amount")
    if value <= 0:
        raise ValidationException("Payment amount must be greater than 0", field="amount")
    if payment_date > today:
        raise ValidationException(
            "Payment date cannot be in the future",
            field="payment_date",
        )

    ensure_open(state.payment_status, PaymentStatus.PAID, "record a payment on")

    remaining = remaining_amount(state.total, state.paid_amount)
    if value > remaining:
        raise PaymentExceedsBalanceException(value, remaining)

    paid_amount = min(state.total, state.paid_amount + value)
    status = settled_status(state.total, paid_amount, state.payment_status)

    paid_date = state.paid_date
    if state.paid_amount == 0 or status == PaymentStatus.PAID:
        paid_date = payment_date

    return PaymentState(
        total=state.total,
        paid_amount=paid_amount,
        payment_status=status,
        due_date=state.due_date,
        paid_date=paid_date,
    )


def reprice(state: PaymentState, new_total: Decimal, today: date) -> PaymentState:
    """
    Re-derive status after the invoice total changed.

    A new total below the amount already paid is rejected rather than
    settled as paid, so paid_amount never exceeds total. paid_date is
    stamped with today when the change settles the invoice.
    """
    if state.paid_amount > new_total:
        raise ValidationException(
            "Invoice total cannot be lower than the amount already paid",
            field="line_items",
            details={"paid_amount": str(state.paid_amount), "new_total": str(new_total)},
        )
    status = settled_status(new_total, state.paid_amount, state.payment_status)
    paid_date = state.paid_date
    if status == PaymentStatus.PAID and state.payment_status != PaymentStatus.PAID:
        paid_date = today

    return PaymentState(
        total=new_total,
        paid_amount=state.paid_amount,
        payment_status=status,
        due_date=state.due_date,
        paid_date=paid_date,
    )


def reschedule(state: PaymentState, new_due_date: date, today: date) -> PaymentState:
    """Move the due date; an overdue invoice given a future date is no longer overdue."""
    status = state.payment_status
    if status == PaymentStatus.OVERDUE and new_due_date >= today:
        status = PaymentStatus.PARTIAL if state.paid_amount > 0 else PaymentStatus.PENDING
    return PaymentState(
        total=state.total,
        paid_amount=state.paid_amount,
        payment_status=status,
        due_date=new_due_date,
        paid_date=state.paid_date,
    )


def check_cancellable(status: PaymentStatus) -> None:
    ensure_open(status, PaymentStatus.CANCELLED, "cancel")


def can_mark_overdue(state: PaymentState, today: date) -> bool:
    return (
        state.payment_status in (PaymentStatus.PENDING, PaymentStatus.PARTIAL)
        and state.due_date < today
    )
