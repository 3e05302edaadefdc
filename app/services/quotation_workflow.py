"""
BikeShop Service Hub - Quotation Workflow Rules

Pure transition rules for the quotation lifecycle:

    draft --send--> sent --approve--> approved
      |               |--reject----> rejected
      +--(sweep)------+--(sweep)---> expired

Quotations may be edited and (re)sent while draft or sent. Approve and
reject are customer actions on a sent quotation and fail once the validity
window has passed.
"""

import math
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, FrozenSet, Tuple

from app.models.quotation import QuotationStatus
from app.models.service_request import RequestStatus
from app.utils.error_handling import (
    InvalidStateTransitionException,
    QuotationExpiredException,
    ValidationException,
)


class QuotationAction(str, Enum):
    UPDATE = "update"
    SEND = "send"
    APPROVE = "approve"
    REJECT = "reject"
    EXPIRE = "expire"


EDITABLE_STATUSES: FrozenSet[QuotationStatus] = frozenset(
    {QuotationStatus.DRAFT, QuotationStatus.SENT}
)

# action -> (allowed source statuses, target status)
TRANSITIONS: Dict[QuotationAction, Tuple[FrozenSet[QuotationStatus], QuotationStatus]] = {
    QuotationAction.SEND: (EDITABLE_STATUSES, QuotationStatus.SENT),
    QuotationAction.APPROVE: (frozenset({QuotationStatus.SENT}), QuotationStatus.APPROVED),
    QuotationAction.REJECT: (frozenset({QuotationStatus.SENT}), QuotationStatus.REJECTED),
    QuotationAction.EXPIRE: (EDITABLE_STATUSES, QuotationStatus.EXPIRED),
}

# Parent service request status after each customer-facing transition
REQUEST_STATUS_AFTER: Dict[QuotationAction, RequestStatus] = {
    QuotationAction.SEND: RequestStatus.QUOTED,
    QuotationAction.APPROVE: RequestStatus.APPROVED,
    QuotationAction.REJECT: RequestStatus.PENDING,
}


def is_expired(status: QuotationStatus, valid_until: datetime, now: datetime) -> bool:
    return status == QuotationStatus.EXPIRED or now > valid_until


def days_until_expiry(valid_until: datetime, now: datetime) -> int:
    """Whole days left, rounded up. Negative once expired."""
    return math.ceil((valid_until - now).total_seconds() / 86400)


def is_expiring_soon(
    status: QuotationStatus,
    valid_until: datetime,
    now: datetime,
    days: int = 3,
) -> bool:
    if status not in EDITABLE_STATUSES:
        return False
    remaining = days_until_expiry(valid_until, now)
    return 0 < remaining <= days


def check_transition(
    quotation_number: str,
    status: QuotationStatus,
    valid_until: datetime,
    action: QuotationAction,
    now: datetime,
) -> QuotationStatus:
    """
    Validate an action against the current state and return the target status.

    Raises:
        QuotationExpiredException: the quotation is expired, or its validity
            window has passed and the action needs a live quotation
        InvalidStateTransitionException: action not allowed from this status
    """
    if status == QuotationStatus.EXPIRED and action != QuotationAction.EXPIRE:
        raise QuotationExpiredException(quotation_number)

    allowed, target = TRANSITIONS[action]
    if status not in allowed:
        raise InvalidStateTransitionException(
            resource_type="Quotation",
            current_status=status.value,
            requested_status=target.value,
        )

    if action == QuotationAction.EXPIRE:
        if valid_until >= now:
            raise InvalidStateTransitionException(
                resource_type="Quotation",
                current_status=status.value,
                requested_status=target.value,
                message=f"Quotation {quotation_number} is still within its validity window",
            )
    elif now > valid_until:
        raise QuotationExpiredException(quotation_number)

    return target


def check_editable(status: QuotationStatus) -> None:
    if status not in EDITABLE_STATUSES:
        raise InvalidStateTransitionException(
            resource_type="Quotation",
            current_status=status.value,
            requested_status=QuotationAction.UPDATE.value,
            message=f"Quotation cannot be updated once {status.value}",
        )


def validity_deadline(now: datetime, validity_days: int) -> datetime:
    """Compute valid_until for a validity period counted from now."""
    if validity_days is None or validity_days <= 0:
        raise ValidationException(
            "Validity days must be greater than 0",
            field="validity_days",
        )
    return now + timedelta(days=validity_days)
