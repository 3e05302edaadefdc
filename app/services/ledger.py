"""
BikeShop Service Hub - Line-Item Ledger

Pure arithmetic over quotation and invoice line items.

Totals are accumulated with Decimal and no intermediate rounding:

    subtotal   = sum(quantity * unit_price)
    tax_amount = subtotal * tax_rate / 100
    total      = subtotal + tax_amount

Rounding to cents happens only at the persistence/presentation boundary
(LedgerTotals.rounded / to_money).
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from app.utils.error_handling import ValidationException


CENT = Decimal("0.01")
HUNDRED = Decimal("100")
MAX_DESCRIPTION_LENGTH = 500


def to_money(value: Any) -> Decimal:
    """Round a monetary value to cents, half-up."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field: str) -> Decimal:
    """Convert user input to Decimal. Floats go through str() to avoid binary noise."""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationException(f"{field} must be a number", field=field)
    if not result.is_finite():
        raise ValidationException(f"{field} must be a finite number", field=field)
    return result


def new_line_item_id() -> str:
    return f"item_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class LineItem:
    """A single billable line. The total is always derived."""

    id: str
    description: str
    quantity: Decimal
    unit_price: Decimal

    @property
    def total(self) -> Decimal:
        return self.quantity * self.unit_price

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "quantity": str(self.quantity),
            "unit_price": str(self.unit_price),
            "total": str(self.total),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LineItem":
        return cls(
            id=data.get("id") or new_line_item_id(),
            description=data["description"],
            quantity=Decimal(str(data["quantity"])),
            unit_price=Decimal(str(data["unit_price"])),
        )


@dataclass(frozen=True)
class LedgerTotals:
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal

    def rounded(self) -> "LedgerTotals":
        """Cent-rounded totals; total is re-derived so it still equals subtotal + tax."""
        subtotal = to_money(self.subtotal)
        tax_amount = to_money(self.tax_amount)
        return LedgerTotals(subtotal=subtotal, tax_amount=tax_amount, total=subtotal + tax_amount)


def validate_tax_rate(tax_rate: Any) -> Decimal:
    rate = to_decimal(tax_rate, "tax_rate")
    if rate < 0 or rate > HUNDRED:
        raise ValidationException(
            "Tax rate must be between 0 and 100",
            field="tax_rate",
            details={"tax_rate": str(rate)},
        )
    return rate


def build_line_item(raw: Mapping[str, Any], index: int = 0) -> LineItem:
    """Validate one raw line item and return an immutable LineItem."""
    prefix = f"line_items[{index}]"

    description = (raw.get("description") or "").strip()
    if not description:
        raise ValidationException(
            "Line item description is required",
            field=f"{prefix}.description",
        )
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationException(
            f"Line item description cannot exceed {MAX_DESCRIPTION_LENGTH} characters",
            field=f"{prefix}.description",
        )

    quantity = to_decimal(raw.get("quantity"), f"{prefix}.quantity")
    if quantity <= 0:
        raise ValidationException(
            "Line item quantity must be greater than 0",
            field=f"{prefix}.quantity",
        )

    unit_price = to_decimal(raw.get("unit_price"), f"{prefix}.unit_price")
    if unit_price < 0:
        raise ValidationException(
            "Line item unit price cannot be negative",
            field=f"{prefix}.unit_price",
        )

    return LineItem(
        id=raw.get("id") or new_line_item_id(),
        description=description,
        quantity=quantity,
        unit_price=unit_price,
    )


def build_line_items(raw_items: Optional[Iterable[Mapping[str, Any]]]) -> List[LineItem]:
    """Validate a list of raw line items. At least one item is required."""
    items = [build_line_item(raw, index) for index, raw in enumerate(raw_items or [])]
    if not items:
        raise ValidationException("At least one line item is required", field="line_items")
    return items


def compute_totals(line_items: Sequence[LineItem], tax_rate: Any) -> LedgerTotals:
    """Compute unrounded subtotal, tax and total for a set of line items."""
    rate = validate_tax_rate(tax_rate)
    subtotal = sum((item.total for item in line_items), Decimal("0"))
    tax_amount = subtotal * rate / HUNDRED
    return LedgerTotals(subtotal=subtotal, tax_amount=tax_amount, total=subtotal + tax_amount)


def serialize_line_items(line_items: Sequence[LineItem]) -> List[dict]:
    return [item.to_dict() for item in line_items]


def deserialize_line_items(data: Optional[Iterable[Mapping[str, Any]]]) -> List[LineItem]:
    return [LineItem.from_dict(entry) for entry in (data or [])]


def strip_line_items(line_items: Sequence[LineItem]) -> List[dict]:
    """Raw copies of items without id/total, used to seed a new document."""
    return [
        {
            "description": item.description,
            "quantity": item.quantity,
            "unit_price": item.unit_price,
        }
        for item in line_items
    ]


def validate_notes(notes: Optional[str], limit: int = 2000) -> Optional[str]:
    if notes is not None and len(notes) > limit:
        raise ValidationException(
            f"Notes cannot exceed {limit} characters",
            field="notes",
        )
    return notes
