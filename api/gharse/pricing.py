"""Helpers for order pricing."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Protocol

PAISA = Decimal("0.01")


class PricedLine(Protocol):
    quantity: int
    price: Decimal


@dataclass(frozen=True)
class PricingBreakdown:
    subtotal: Decimal
    tax: Decimal
    delivery_fee: Decimal
    discount: Decimal
    total: Decimal


def _money(value: object) -> Decimal:
    """Convert ``value`` to a :class:`Decimal` rounded to the paisa."""

    return Decimal(str(value)).quantize(PAISA, rounding=ROUND_HALF_UP)


def calculate_pricing(
    lines: Iterable[PricedLine],
    *,
    tax_rate: Decimal | float,
    delivery_fee: Decimal | float,
    discount: Decimal | float = 0,
) -> PricingBreakdown:
    """Return the full price breakdown for ``lines``.

    The total is derived from the rounded components so that
    ``total == subtotal + tax + delivery_fee - discount`` holds exactly.
    """

    subtotal = _money(
        sum((Decimal(str(line.price)) * line.quantity for line in lines), Decimal("0"))
    )
    tax = _money(subtotal * Decimal(str(tax_rate)))
    fee = _money(delivery_fee)
    disc = _money(discount or 0)
    total = subtotal + tax + fee - disc
    return PricingBreakdown(
        subtotal=subtotal, tax=tax, delivery_fee=fee, discount=disc, total=total
    )


def line_subtotal(line: PricedLine) -> Decimal:
    return _money(Decimal(str(line.price)) * line.quantity)
