"""
utils/payment_calculations.py

Pure helpers for payment previews and header roll-ups. Shared by the checkout
screen logic and the sales/returns repositories so both agree on statuses.

Do not import repos or open DB connections here.
Only compute numbers; formatting belongs in the UI.
"""
from __future__ import annotations

from decimal import Decimal

__all__ = [
    "clamp_non_negative",
    "change_due",
    "status_from_paid",
    "sale_status",
]


def clamp_non_negative(x: Decimal) -> Decimal:
    """Return x if x > 0, else 0."""
    return x if x > 0 else Decimal("0.00")


def change_due(tendered: Decimal, grand_total: Decimal) -> Decimal:
    """Cash to hand back on a full payment; never negative."""
    return clamp_non_negative(tendered - grand_total)


def status_from_paid(total: Decimal, paid: Decimal) -> str:
    """
    Threshold helper for status badges:
      - 'paid'    if paid >= total
      - 'partial' if 0 < paid < total
      - 'unpaid'  otherwise
    """
    if paid >= total:
        return "paid"
    if paid > 0:
        return "partial"
    return "unpaid"


def sale_status(total: Decimal, paid: Decimal) -> str:
    """Same thresholds, spelled the way sales.status stores them."""
    s = status_from_paid(total, paid)
    return "partially_paid" if s == "partial" else s
