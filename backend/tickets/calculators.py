"""
Ticket financial calculator.

Pure computation of subtotal, discount, tax, suggested tip and grand total
from a set of line items. Nothing here touches the database; the calculation
service persists the result.

Formula:
    line_subtotal = round(quantity * unit_price * (1 - discount_pct / 100))
    subtotal      = sum(line_subtotal)
    tax           = round(subtotal * tax_rate)
    total         = subtotal - discount + tax
    tip_suggested = round(total * tip_rate)

Every round() is round-half-up to the currency's minor unit and happens once
per recomputation.

Usage:
    from tickets.calculators import TicketCalculator
    totals = TicketCalculator(ticket).calculate_totals()
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from tickets.exceptions import ValidationError
from tickets.money import quantize

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    tip_suggested: Decimal
    total: Decimal

    def as_dict(self) -> Dict[str, str]:
        return {
            "subtotal": str(self.subtotal),
            "discount": str(self.discount),
            "tax": str(self.tax),
            "tip_suggested": str(self.tip_suggested),
            "total": str(self.total),
        }


def _as_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value)
    except (ArithmeticError, TypeError, ValueError):
        raise ValidationError(f"'{value}' is not a valid number", field=field)


def validate_line(quantity, unit_price, discount_pct=0) -> None:
    """Reject line values the calculator cannot price."""
    if _as_decimal(quantity, "quantity") <= 0:
        raise ValidationError("Quantity must be greater than 0", field="quantity")
    if _as_decimal(unit_price, "unit_price") < 0:
        raise ValidationError("Unit price cannot be negative", field="unit_price")
    pct = _as_decimal(discount_pct or 0, "discount_pct")
    if pct < 0 or pct > HUNDRED:
        raise ValidationError("Discount percentage must be between 0 and 100", field="discount_pct")


def compute_line_subtotal(
    quantity,
    unit_price,
    discount_pct=0,
    currency: str = "CLP",
    is_complimentary: bool = False,
) -> Decimal:
    """Priced amount of a single line, rounded once to the minor unit."""
    validate_line(quantity, unit_price, discount_pct)
    if is_complimentary:
        return quantize(currency, 0)

    gross = _as_decimal(quantity, "quantity") * _as_decimal(unit_price, "unit_price")
    factor = (HUNDRED - _as_decimal(discount_pct or 0, "discount_pct")) / HUNDRED
    return quantize(currency, gross * factor)


def compute_totals(
    items: Iterable[Any],
    discount=Decimal("0"),
    tax_rate=Decimal("0"),
    tip_rate=Decimal("0"),
    currency: str = "CLP",
) -> Totals:
    """
    Compute ticket totals from line items.

    Items are duck-typed: anything with quantity, unit_price and (optionally)
    discount_pct and is_complimentary attributes. Line subtotals are always
    recomputed from those fields, never read back from storage.

    The discount is capped at the subtotal so the total never goes negative.

    Raises:
        ValidationError: negative quantity/price, out-of-range percentage,
            negative discount or rate.
    """
    subtotal = quantize(currency, 0)
    for item in items:
        subtotal += compute_line_subtotal(
            item.quantity,
            item.unit_price,
            getattr(item, "discount_pct", 0),
            currency,
            getattr(item, "is_complimentary", False),
        )

    discount = _as_decimal(discount or 0, "discount")
    if discount < 0:
        raise ValidationError("Discount cannot be negative", field="discount")
    tax_rate = _as_decimal(tax_rate, "tax_rate")
    tip_rate = _as_decimal(tip_rate, "tip_rate")
    if tax_rate < 0 or tip_rate < 0:
        raise ValidationError("Rates cannot be negative")

    discount = quantize(currency, min(discount, subtotal))
    tax = quantize(currency, subtotal * tax_rate)
    total = subtotal - discount + tax
    tip_suggested = quantize(currency, total * tip_rate)

    return Totals(
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        tip_suggested=tip_suggested,
        total=total,
    )


class TicketCalculator:
    """
    Calculator bound to a Ticket instance.

    Reads the ticket's current items, discount and snapshotted tax rate; the
    tip rate and currency come from the engine settings.
    """

    def __init__(self, ticket, items: Optional[Iterable[Any]] = None):
        self.ticket = ticket
        self._items = items

    def _get_items(self):
        if self._items is not None:
            return list(self._items)
        return list(self.ticket.items.all())

    def calculate_totals(self) -> Totals:
        from tickets.conf import ticket_settings

        return compute_totals(
            self._get_items(),
            discount=self.ticket.discount,
            tax_rate=self.ticket.tax_rate,
            tip_rate=ticket_settings.tip_rate,
            currency=ticket_settings.currency,
        )
