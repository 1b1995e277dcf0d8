"""
modules/sales/returns.py

Refunds for returned units of a persisted sale.

Each line's net-paid unit amount is rebuilt from the sale record every time:

    line_subtotal  = price_per_unit * quantity - discount_amount
    bill_subtotal  = sum(line_subtotal) over ALL lines of the sale
    line_share     = line_subtotal / bill_subtotal * sale.discount   (0 if bill_subtotal <= 0)
    unit_net_paid  = (line_subtotal - line_share) / quantity

    refund         = unit_net_paid * qty_returned   (rounded to cents per line)

The per-line shares the distributor assigned at checkout are not stored, so
this proportional rebuild can differ from them by up to a cent per line.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
import logging
import sqlite3
from typing import Any, Iterable, Mapping, Protocol

from ...database.repositories.sales_repo import DomainError, PersistedSale
from ...utils.helpers import ZERO, money
from .errors import ReturnFailed, ReturnRejected

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReturnLine:
    sale_item_id: int
    quantity: int


@dataclass(frozen=True)
class ReturnRequest:
    sale_id: int
    lines: tuple[ReturnLine, ...]
    reason: str | None = None


@dataclass(frozen=True)
class LineRefund:
    sale_item_id: int
    quantity: int
    unit_net_paid: Decimal
    refund: Decimal


@dataclass(frozen=True)
class RefundQuote:
    lines: tuple[LineRefund, ...] = field(default_factory=tuple)
    total: Decimal = ZERO


@dataclass(frozen=True)
class ReturnResult:
    return_id: int
    sale_id: int
    total_refund: Decimal
    sale_status: str | None


def make_request(sale_id: int, quantities: Mapping[int, int] | Iterable[tuple[int, int]], reason: str | None = None) -> ReturnRequest:
    """Build a ReturnRequest from {sale_item_id: qty} as the return dialog collects it."""
    pairs = quantities.items() if isinstance(quantities, Mapping) else quantities
    return ReturnRequest(
        sale_id=int(sale_id),
        lines=tuple(ReturnLine(int(iid), int(q)) for iid, q in pairs),
        reason=reason,
    )


# ---------------------------------------------------------------------
# Calculator (pure)
# ---------------------------------------------------------------------
def unit_net_paid(sale: PersistedSale) -> dict[int, Decimal]:
    subtotals = {
        it.item_id: it.price_per_unit * it.quantity - it.discount_amount
        for it in sale.items
    }
    bill_subtotal = sum(subtotals.values(), ZERO)
    out: dict[int, Decimal] = {}
    for it in sale.items:
        line_subtotal = subtotals[it.item_id]
        share = line_subtotal / bill_subtotal * sale.discount if bill_subtotal > 0 else ZERO
        out[it.item_id] = (line_subtotal - share) / it.quantity if it.quantity > 0 else ZERO
    return out


def requested_quantities(request: ReturnRequest) -> dict[int, int]:
    """Sum quantities per sale item; a dialog may send the same item twice."""
    out: dict[int, int] = {}
    for ln in request.lines:
        out[ln.sale_item_id] = out.get(ln.sale_item_id, 0) + int(ln.quantity)
    return out


def validate_return(sale: PersistedSale, request: ReturnRequest) -> dict[int, int]:
    """Return {item_id: qty} for the lines actually being returned, or raise ReturnRejected."""
    if request.sale_id != sale.sale_id:
        raise ReturnRejected(f"Return is for sale {request.sale_id}, not sale {sale.sale_id}.")
    wanted = requested_quantities(request)
    for iid, qty in wanted.items():
        item = sale.item(iid)
        if item is None:
            raise ReturnRejected(f"Sale item {iid} not found in sale {sale.sale_id}.")
        if qty < 0:
            raise ReturnRejected(f"Return quantity for item {iid} cannot be negative.")
        if qty > item.remaining_quantity:
            raise ReturnRejected(
                f"Cannot return {qty} of item {iid}. Only {item.remaining_quantity} remaining to return."
            )
    picked = {iid: qty for iid, qty in wanted.items() if qty > 0}
    if not picked:
        raise ReturnRejected("Select at least one item to return.")
    return picked


def quote_refund(sale: PersistedSale, request: ReturnRequest) -> RefundQuote:
    picked = validate_return(sale, request)
    units = unit_net_paid(sale)
    lines = tuple(
        LineRefund(
            sale_item_id=iid,
            quantity=qty,
            unit_net_paid=units[iid],
            refund=money(units[iid] * qty),
        )
        for iid, qty in picked.items()
    )
    return RefundQuote(lines=lines, total=sum((l.refund for l in lines), ZERO))


# ---------------------------------------------------------------------
# Finalizer
# ---------------------------------------------------------------------
class SaleReader(Protocol):
    def get_sale(self, sale_id: int) -> PersistedSale | None: ...


class ReturnWriter(Protocol):
    def record_return(self, request: Mapping[str, Any]) -> int: ...


class ReturnFinalizer:
    """
    Validates and quotes a return against the stored sale, then hands it to
    the returns store. A rejected selection writes nothing; a failure from the
    store is surfaced with the store's own message and the selection is left
    for the user to adjust.
    """

    def __init__(self, sales_repo: SaleReader, returns_repo: ReturnWriter):
        self.sales_repo = sales_repo
        self.returns_repo = returns_repo

    def _load(self, sale_id: int) -> PersistedSale:
        sale = self.sales_repo.get_sale(sale_id)
        if sale is None:
            raise ReturnRejected(f"Sale {sale_id} not found.")
        return sale

    def quote(self, request: ReturnRequest) -> RefundQuote:
        return quote_refund(self._load(request.sale_id), request)

    @staticmethod
    def build_payload(request: ReturnRequest, quote: RefundQuote) -> dict:
        return {
            "saleId": request.sale_id,
            "items": [
                {"saleItemId": l.sale_item_id, "quantity": l.quantity, "refundAmount": str(l.refund)}
                for l in quote.lines
            ],
            "reason": request.reason,
        }

    def submit(self, request: ReturnRequest) -> ReturnResult:
        sale = self._load(request.sale_id)
        quote = quote_refund(sale, request)
        try:
            return_id = self.returns_repo.record_return(self.build_payload(request, quote))
        except (DomainError, sqlite3.Error) as e:
            _log.error("Return for sale %d failed: %s", request.sale_id, e)
            raise ReturnFailed(str(e)) from e

        after = self.sales_repo.get_sale(request.sale_id)
        _log.info("Return %d for sale %d: refund %s", return_id, request.sale_id, quote.total)
        return ReturnResult(
            return_id=int(return_id),
            sale_id=request.sale_id,
            total_refund=quote.total,
            sale_status=after.status if after else None,
        )
