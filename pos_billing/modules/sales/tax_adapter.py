"""
modules/sales/tax_adapter.py

Keeps the active bill's tax figures in step with its contents.

Every edit to the active bill's taxed contents (items, cart discount,
customer) restarts a single-shot debounce timer; tender and payment edits keep
a current result as it is. When the timer fires, the bill is priced (line
pricing + discount distribution), turned into the tax service's invoice
request, and sent off tagged with the bill's
signature and a sequence number. A response is applied only while the slot it
was issued for still has that signature; anything else is stale and dropped.
Errors and timeouts leave the bill on its untaxed estimate and never block
editing; the next edit simply tries again.

Public interface
----------------
- TaxService protocol: calculate(request: dict, on_finished(result|None, error|None))
- build_tax_request(bill) -> dict
- parse_tax_response(data, lines) -> TaxResult
- bill_signature(bill) -> str
- bill_totals(bill) -> BillTotals
- TaxEngineAdapter(store, service, debounce_ms=..., timeout_ms=...)
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
import hashlib
import json
import logging
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence

from PySide6.QtCore import QObject, QTimer, Signal

from ...config import DEBOUNCE_MS, TIMEOUT_MS
from ...utils.helpers import ZERO, money
from ...utils.validators import try_parse_float
from .bills import Bill, BillSessionStore
from .pricing import CartLine, CartPricing, price_cart

_log = logging.getLogger(__name__)


# ---------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RuleAmount:
    rule_name: str
    amount: Decimal


@dataclass(frozen=True)
class ItemTax:
    line_ref: int
    tax_amount: Decimal
    rule_breakdown: tuple[RuleAmount, ...] = ()


@dataclass(frozen=True)
class TaxResult:
    total_tax: Decimal
    grand_total: Decimal
    per_item: tuple[ItemTax, ...] = field(default_factory=tuple)


TaxCallback = Callable[[Optional[Mapping[str, Any]], Optional[str]], None]


class TaxService(Protocol):
    def calculate(self, request: dict, on_finished: TaxCallback) -> None:
        """Answer now or later via on_finished(result, None) / on_finished(None, message)."""


# ---------------------------------------------------------------------
# Wire mapping
# ---------------------------------------------------------------------
def bill_signature(bill: Bill) -> str:
    """Hash of everything that changes the tax request; line order included."""
    payload = {
        "items": [
            [
                l.line_id,
                l.variant_id,
                str(money(l.unit_price)),
                int(l.quantity),
                l.discount.kind,
                str(l.discount.value),
                l.tax_category_id,
            ]
            for l in bill.items
        ],
        "discount": [bill.overall_discount.kind, str(bill.overall_discount.value)],
        "customer": bill.customer_id,
    }
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


def build_tax_request(bill: Bill, pricing: CartPricing | None = None) -> dict:
    """
    Invoice request with the cart-level discount already folded into each
    line's unit price, so the service taxes what the customer actually pays.
    """
    pricing = pricing or price_cart(bill.items, bill.overall_discount)
    items = []
    for line, taxable in zip(bill.items, pricing.taxable_amounts()):
        qty = int(line.quantity)
        unit = taxable / qty if qty > 0 else ZERO
        item: dict[str, Any] = {"price": float(unit), "quantity": qty}
        if line.tax_category_id is not None:
            item["tax_category_id"] = line.tax_category_id
        items.append(item)
    request: dict[str, Any] = {"invoice": {"items": items}}
    if bill.customer_id is not None:
        request["customerId"] = bill.customer_id
    return request


def _money_field(data: Mapping[str, Any], key: str) -> Decimal:
    ok, val = try_parse_float(data[key])
    if not ok:
        raise ValueError(f"{key} is not a number: {data[key]!r}")
    return money(val)


def _parse_snapshot(raw) -> tuple[RuleAmount, ...]:
    if raw in (None, ""):
        return ()
    try:
        rules = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        return tuple(RuleAmount(str(r["rule_name"]), money(r["amount"])) for r in rules or [])
    except (ValueError, TypeError, KeyError) as e:
        _log.warning("Ignoring malformed tax_rule_snapshot %r: %s", raw, e)
        return ()


def parse_tax_response(data: Mapping[str, Any], lines: Sequence[CartLine]) -> TaxResult:
    """Raises KeyError/ValueError/TypeError on a response missing its totals."""
    raw_items = data.get("items") or []
    per_item = []
    for i, line in enumerate(lines):
        raw = raw_items[i] if i < len(raw_items) and isinstance(raw_items[i], Mapping) else {}
        breakdown = _parse_snapshot(raw.get("tax_rule_snapshot"))
        if raw.get("tax_amount") is not None:
            amount = _money_field(raw, "tax_amount")
        else:
            amount = sum((r.amount for r in breakdown), ZERO)
        per_item.append(ItemTax(line_ref=line.line_id, tax_amount=amount, rule_breakdown=breakdown))
    return TaxResult(
        total_tax=_money_field(data, "total_tax"),
        grand_total=_money_field(data, "grand_total"),
        per_item=tuple(per_item),
    )


# ---------------------------------------------------------------------
# Totals shown on the sale screen
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BillTotals:
    pricing: CartPricing
    gross: Decimal
    discount: Decimal
    tax: Optional[Decimal]
    grand_total: Decimal
    tax_known: bool


def has_current_tax(bill: Bill) -> bool:
    return (
        bill.tax_status == "ready"
        and bill.tax_result is not None
        and bill.tax_signature == bill_signature(bill)
    )


def bill_totals(bill: Bill) -> BillTotals:
    """Tax-service figures when they match the bill, else the untaxed estimate."""
    pricing = price_cart(bill.items, bill.overall_discount)
    if has_current_tax(bill):
        return BillTotals(
            pricing=pricing,
            gross=pricing.gross,
            discount=pricing.discount,
            tax=bill.tax_result.total_tax,
            grand_total=bill.tax_result.grand_total,
            tax_known=True,
        )
    return BillTotals(
        pricing=pricing,
        gross=pricing.gross,
        discount=pricing.discount,
        tax=None,
        grand_total=max(ZERO, pricing.net_after_discount),
        tax_known=False,
    )


# ---------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------
@dataclass
class _InFlight:
    slot: int
    signature: str
    guard: QTimer


class TaxEngineAdapter(QObject):
    taxUpdated = Signal(int)
    taxFailed = Signal(int, str)

    def __init__(
        self,
        store: BillSessionStore,
        service: TaxService,
        *,
        debounce_ms: int = DEBOUNCE_MS,
        timeout_ms: int = TIMEOUT_MS,
        parent: QObject | None = None,
    ):
        super().__init__(parent)
        self._store = store
        self._service = service
        self._timeout_ms = timeout_ms
        self._seq = 0
        self._pending_slot: int | None = None
        self._in_flight: dict[int, _InFlight] = {}

        self._debounce = QTimer(self)
        self._debounce.setSingleShot(True)
        self._debounce.setInterval(debounce_ms)
        self._debounce.timeout.connect(self._fire)

        store.billChanged.connect(self._on_bill_changed)
        store.activeSlotChanged.connect(self._on_active_slot_changed)

    # ---- introspection -----------------------------------------------------
    @property
    def is_scheduled(self) -> bool:
        return self._debounce.isActive()

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    # ---- store wiring ------------------------------------------------------
    def _on_bill_changed(self, slot: int) -> None:
        if slot != self._store.active_slot:
            return
        bill = self._store.get(slot)
        if not bill.is_empty and not self._needs_request(slot, bill):
            # tender/payment edits leave the taxed contents as they were
            self._cancel_pending()
            return
        self._schedule(slot)

    def _on_active_slot_changed(self, slot: int) -> None:
        bill = self._store.get(slot)
        if bill.is_empty or not self._needs_request(slot, bill):
            # drop any debounce aimed at the previous slot
            self._cancel_pending()
            return
        self._schedule(slot)

    def _needs_request(self, slot: int, bill: Bill) -> bool:
        """False while the bill holds current tax or an answer for it is on the way."""
        if has_current_tax(bill):
            return False
        signature = bill_signature(bill)
        return not any(c.slot == slot and c.signature == signature for c in self._in_flight.values())

    def _cancel_pending(self) -> None:
        self._debounce.stop()
        self._pending_slot = None

    def _schedule(self, slot: int) -> None:
        self._pending_slot = slot
        self._debounce.start()

    def recompute_now(self) -> None:
        """Skip the quiet period; sends the active bill unless its tax is current or already requested."""
        self._debounce.stop()
        self._pending_slot = self._store.active_slot
        self._fire()

    # ---- request/response --------------------------------------------------
    def _fire(self) -> None:
        slot, self._pending_slot = self._pending_slot, None
        if slot is None:
            return
        bill = self._store.get(slot)
        signature = bill_signature(bill)
        if bill.is_empty:
            self._store.set_tax_state(
                slot, tax_result=None, tax_signature=signature, tax_status="idle", tax_error=None
            )
            return
        if not self._needs_request(slot, bill):
            _log.debug("Tax for slot %d is current or already requested", slot)
            return

        self._seq += 1
        seq = self._seq
        request = build_tax_request(bill)

        guard = QTimer(self)
        guard.setSingleShot(True)
        guard.setInterval(self._timeout_ms)
        guard.timeout.connect(lambda: self._on_timeout(seq))
        self._in_flight[seq] = _InFlight(slot=slot, signature=signature, guard=guard)
        self._store.set_tax_state(slot, tax_status="pending", tax_error=None)
        guard.start()

        _log.debug("Tax request #%d for slot %d (%d item(s))", seq, slot, len(bill.items))
        try:
            self._service.calculate(request, lambda result, error=None: self._on_finished(seq, result, error))
        except Exception as e:  # collaborator blew up synchronously; same as a failed call
            self._on_finished(seq, None, f"{e.__class__.__name__}: {e}")

    def _take(self, seq: int) -> _InFlight | None:
        call = self._in_flight.pop(seq, None)
        if call is not None:
            call.guard.stop()
            call.guard.deleteLater()
        return call

    def _on_finished(self, seq: int, result, error: str | None) -> None:
        call = self._take(seq)
        if call is None:
            _log.debug("Dropping tax response #%d: request already timed out", seq)
            return
        bill = self._store.get(call.slot)
        if bill_signature(bill) != call.signature:
            _log.debug("Dropping stale tax response #%d for slot %d", seq, call.slot)
            return
        if error is not None or result is None:
            self._mark_unknown(call.slot, call.signature, error or "Empty response from tax service.")
            return
        try:
            tax = parse_tax_response(result, bill.items)
        except (KeyError, TypeError, ValueError) as e:
            self._mark_unknown(call.slot, call.signature, f"Malformed tax response: {e}")
            return
        self._store.set_tax_state(
            call.slot, tax_result=tax, tax_signature=call.signature, tax_status="ready", tax_error=None
        )
        self.taxUpdated.emit(call.slot)

    def _on_timeout(self, seq: int) -> None:
        call = self._take(seq)
        if call is None:
            return
        if bill_signature(self._store.get(call.slot)) != call.signature:
            _log.debug("Tax request #%d timed out after its bill moved on", seq)
            return
        self._mark_unknown(call.slot, call.signature, f"Tax service did not answer within {self._timeout_ms} ms.")

    def _mark_unknown(self, slot: int, signature: str, message: str) -> None:
        _log.warning("Tax calculation failed for bill slot %d: %s", slot, message)
        self._store.set_tax_state(
            slot, tax_result=None, tax_signature=signature, tax_status="unknown", tax_error=message
        )
        self.taxFailed.emit(slot, message)
