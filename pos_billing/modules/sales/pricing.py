"""
modules/sales/pricing.py

Pure cart math: per-line pricing and the cart-level discount distributor.

Everything here works on Decimal values quantized to cents so that the
distributor's conservation rule (shares sum exactly to the distributed
amount) holds by construction. Nothing in this module touches Qt, the
database or the tax service.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional, Sequence, Union

from ...utils.helpers import ZERO, clamp, money, to_decimal

HUNDRED = Decimal(100)


# ---------------------------------------------------------------------
# Discount variant
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class AmountDiscount:
    """Fixed money off."""
    value: Decimal = ZERO
    kind = "amount"


@dataclass(frozen=True)
class PercentageDiscount:
    """Percent off, clamped to [0, 100] when applied."""
    value: Decimal = ZERO
    kind = "percentage"


Discount = Union[AmountDiscount, PercentageDiscount]

NO_DISCOUNT = AmountDiscount()

_AMOUNT_KINDS = ("amount", "fixed")


def discount_from(kind: str | None, value) -> Discount:
    """
    Build a Discount from the loose (type, value) pair the sale screen keeps.
    'fixed' is the cart-level spelling of 'amount'. Unparsable values become 0.
    """
    k = (kind or "amount").strip().lower()
    v = to_decimal(value)
    if k == "percentage":
        return PercentageDiscount(v)
    if k in _AMOUNT_KINDS:
        return AmountDiscount(v)
    raise ValueError(f"Unknown discount type: {kind!r}")


def discount_amount(discount: Discount, base: Decimal) -> Decimal:
    """Money taken off `base` by `discount`, never negative and never above base."""
    base = max(ZERO, money(base))
    if isinstance(discount, PercentageDiscount):
        pct = clamp(to_decimal(discount.value), ZERO, HUNDRED)
        return money(base * pct / HUNDRED)
    if isinstance(discount, AmountDiscount):
        return money(clamp(to_decimal(discount.value), ZERO, base))
    raise TypeError(f"Unsupported discount: {discount!r}")


# ---------------------------------------------------------------------
# Line pricing
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class CartLine:
    line_id: int
    variant_id: int
    unit_price: Decimal
    quantity: int = 1
    discount: Discount = NO_DISCOUNT
    tax_category_id: Optional[int] = None
    max_stock: Optional[int] = None
    mrp: Optional[Decimal] = None
    name: str = ""


@dataclass(frozen=True)
class LinePricing:
    subtotal: Decimal
    discount_amount: Decimal
    net: Decimal


def price_line(line: CartLine) -> LinePricing:
    qty = max(0, int(line.quantity))
    subtotal = money(to_decimal(line.unit_price) * qty)
    disc = discount_amount(line.discount, subtotal)
    return LinePricing(subtotal=subtotal, discount_amount=disc, net=max(ZERO, subtotal - disc))


def cart_gross(lines: Iterable[CartLine]) -> Decimal:
    return sum((price_line(l).net for l in lines), ZERO)


# ---------------------------------------------------------------------
# Cart-level discount distribution
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class Distribution:
    amount: Decimal
    shares: tuple[Decimal, ...] = field(default_factory=tuple)


def distributed_amount(discount: Discount, gross_total: Decimal) -> Decimal:
    return discount_amount(discount, gross_total)


def distribute_discount(discount: Discount, line_nets: Sequence[Decimal]) -> Distribution:
    """
    Split a cart-level discount across lines in proportion to their nets.

    Every line but the last gets its rounded proportional share; the last
    line takes whatever is left so the shares add up to the distributed
    amount exactly. Which line is last therefore matters: reordering the
    cart can move the rounding remainder to a different line.

    No share exceeds its own line net. When rounding leaves the last line a
    remainder larger than its net, the excess moves back to earlier lines
    (nearest first), so the taxable total is always gross - amount.
    """
    nets = [max(ZERO, money(n)) for n in line_nets]
    gross = sum(nets, ZERO)
    if not nets or gross <= ZERO:
        return Distribution(amount=ZERO, shares=tuple(ZERO for _ in nets))

    amount = distributed_amount(discount, gross)
    shares: list[Decimal] = []
    running = ZERO
    for net in nets[:-1]:
        # cap keeps the remainder for the last line from going negative
        share = min(money(net / gross * amount), amount - running)
        shares.append(share)
        running += share
    shares.append(amount - running)

    excess = shares[-1] - nets[-1]
    if excess > 0:
        shares[-1] = nets[-1]
        for i in range(len(nets) - 2, -1, -1):
            take = min(nets[i] - shares[i], excess)
            shares[i] += take
            excess -= take
            if excess <= 0:
                break
    return Distribution(amount=amount, shares=tuple(shares))


@dataclass(frozen=True)
class CartPricing:
    lines: tuple[LinePricing, ...]
    gross: Decimal
    distribution: Distribution

    @property
    def discount(self) -> Decimal:
        return self.distribution.amount

    @property
    def net_after_discount(self) -> Decimal:
        return self.gross - self.distribution.amount

    def taxable_amounts(self) -> tuple[Decimal, ...]:
        return tuple(
            max(ZERO, lp.net - share)
            for lp, share in zip(self.lines, self.distribution.shares)
        )


def price_cart(lines: Sequence[CartLine], overall_discount: Discount = NO_DISCOUNT) -> CartPricing:
    priced = tuple(price_line(l) for l in lines)
    dist = distribute_discount(overall_discount, [p.net for p in priced])
    return CartPricing(lines=priced, gross=sum((p.net for p in priced), ZERO), distribution=dist)
