"""
modules/sales/bills.py

Draft carts held open at the counter.

The store keeps a fixed number of independent bills (one per slot) and a
single active-slot pointer. Bills and their lines are frozen dataclasses;
every mutation swaps in a new Bill for the active slot, so nothing one slot
holds can be reached or changed through another.

Signals
-------
- billChanged(slot):      items/discount/customer/payment fields changed
- taxStateChanged(slot):  tax result or tax status changed (no recompute)
- activeSlotChanged(slot)
"""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from decimal import Decimal
import logging
from typing import TYPE_CHECKING, Optional

from PySide6.QtCore import QObject, Signal

from ...constants import BILL_SLOTS, MIN_EDIT_PRICE
from ...utils.helpers import ZERO, money
from ...utils.validators import try_parse_float
from .errors import BillingError
from .pricing import CartLine, Discount, NO_DISCOUNT, discount_from

if TYPE_CHECKING:  # pragma: no cover
    from .tax_adapter import TaxResult

_log = logging.getLogger(__name__)

PAYMENT_TYPES = ("full", "partial")
TAX_STATUSES = ("idle", "pending", "ready", "unknown")


@dataclass(frozen=True)
class Bill:
    slot_index: int
    items: tuple[CartLine, ...] = ()
    customer_id: Optional[int] = None
    payment_method_id: Optional[int] = None
    overall_discount: Discount = NO_DISCOUNT
    payment_type: str = "full"
    amount_tendered: str = ""
    # written by the tax adapter only
    tax_result: Optional["TaxResult"] = None
    tax_signature: Optional[str] = None
    tax_status: str = "idle"
    tax_error: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.items

    def line(self, line_id: int) -> CartLine | None:
        return next((l for l in self.items if l.line_id == line_id), None)


_TAX_FIELDS = frozenset({"tax_result", "tax_signature", "tax_status", "tax_error"})
_EDITABLE_FIELDS = frozenset(f.name for f in fields(Bill)) - _TAX_FIELDS - {"slot_index"}


class BillSessionStore(QObject):
    billChanged = Signal(int)
    taxStateChanged = Signal(int)
    activeSlotChanged = Signal(int)

    def __init__(self, slots: int = BILL_SLOTS, parent: QObject | None = None):
        super().__init__(parent)
        if slots < 1:
            raise ValueError("At least one bill slot is required.")
        self._bills: list[Bill] = [Bill(i) for i in range(slots)]
        self._active = 0
        self._next_line_id = 1

    # ---- reads -------------------------------------------------------------
    @property
    def slot_count(self) -> int:
        return len(self._bills)

    @property
    def active_slot(self) -> int:
        return self._active

    @property
    def bills(self) -> tuple[Bill, ...]:
        return tuple(self._bills)

    def get(self, slot: int) -> Bill:
        self._check_slot(slot)
        return self._bills[slot]

    def get_active(self) -> Bill:
        return self._bills[self._active]

    # ---- slot switching ----------------------------------------------------
    def set_active_slot(self, slot: int) -> None:
        self._check_slot(slot)
        if slot == self._active:
            return
        self._active = slot
        self.activeSlotChanged.emit(slot)

    # ---- active bill mutation ---------------------------------------------
    def update_active(self, **changes) -> Bill:
        """
        Merge `changes` into the active bill only. Tax fields are owned by the
        tax adapter and cannot be set here.
        """
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise TypeError(f"Cannot update bill field(s): {', '.join(sorted(unknown))}")
        if "items" in changes:
            changes["items"] = tuple(changes["items"])
        if "payment_type" in changes and changes["payment_type"] not in PAYMENT_TYPES:
            raise ValueError(f"payment_type must be one of: {', '.join(PAYMENT_TYPES)}")
        if "amount_tendered" in changes:
            changes["amount_tendered"] = "" if changes["amount_tendered"] is None else str(changes["amount_tendered"])

        slot = self._active
        self._bills[slot] = replace(self._bills[slot], **changes)
        self.billChanged.emit(slot)
        return self._bills[slot]

    def set_overall_discount(self, kind: str, value) -> Bill:
        return self.update_active(overall_discount=discount_from(kind, value))

    def reset_active(self) -> Bill:
        slot = self._active
        self._bills[slot] = Bill(slot)
        _log.debug("Bill slot %d reset", slot)
        self.billChanged.emit(slot)
        return self._bills[slot]

    # ---- cart editing ------------------------------------------------------
    def new_line_id(self) -> int:
        lid = self._next_line_id
        self._next_line_id += 1
        return lid

    def add_line(self, line: CartLine) -> Bill:
        """
        Add a catalog line to the active bill. A line for a variant already in
        the cart bumps that line's quantity instead of adding a second row.
        """
        if line.max_stock is not None and line.max_stock < 1:
            raise BillingError("Out of stock.")
        qty = max(1, int(line.quantity))
        bill = self.get_active()
        items = list(bill.items)
        for i, existing in enumerate(items):
            if existing.variant_id == line.variant_id:
                new_qty = existing.quantity + qty
                self._check_stock(existing, new_qty)
                items[i] = replace(existing, quantity=new_qty)
                return self.update_active(items=items)
        self._check_stock(line, qty)
        items.append(replace(line, quantity=qty, unit_price=self._clamp_price(line, line.unit_price)))
        return self.update_active(items=items)

    def update_line(
        self,
        line_id: int,
        *,
        quantity: int | None = None,
        unit_price=None,
        discount: Discount | None = None,
    ) -> Bill:
        bill = self.get_active()
        current = bill.line(line_id)
        if current is None:
            raise KeyError(f"No line {line_id} in bill slot {bill.slot_index}")
        updated = current
        if quantity is not None:
            qty = max(1, int(quantity))
            self._check_stock(current, qty)
            updated = replace(updated, quantity=qty)
        if unit_price is not None:
            updated = replace(updated, unit_price=self._edit_price(current, unit_price))
        if discount is not None:
            updated = replace(updated, discount=discount)
        items = [updated if l.line_id == line_id else l for l in bill.items]
        return self.update_active(items=items)

    def remove_line(self, line_id: int) -> Bill:
        bill = self.get_active()
        return self.update_active(items=[l for l in bill.items if l.line_id != line_id])

    # ---- tax state (adapter only) -----------------------------------------
    def set_tax_state(self, slot: int, **tax_fields) -> Bill:
        unknown = set(tax_fields) - _TAX_FIELDS
        if unknown:
            raise TypeError(f"Not a tax field: {', '.join(sorted(unknown))}")
        if "tax_status" in tax_fields and tax_fields["tax_status"] not in TAX_STATUSES:
            raise ValueError(f"tax_status must be one of: {', '.join(TAX_STATUSES)}")
        self._check_slot(slot)
        self._bills[slot] = replace(self._bills[slot], **tax_fields)
        self.taxStateChanged.emit(slot)
        return self._bills[slot]

    # ---- internals ---------------------------------------------------------
    def _check_slot(self, slot: int) -> None:
        if not 0 <= slot < len(self._bills):
            raise IndexError(f"Bill slot {slot} out of range 0..{len(self._bills) - 1}")

    @staticmethod
    def _check_stock(line: CartLine, qty: int) -> None:
        if line.max_stock is not None and qty > line.max_stock:
            raise BillingError("Cannot exceed stock limit.")

    @staticmethod
    def _clamp_price(line: CartLine, price) -> Decimal:
        p = max(ZERO, money(price))
        if line.mrp is not None:
            p = min(p, money(line.mrp))
        return p

    @staticmethod
    def _edit_price(line: CartLine, price) -> Decimal:
        """
        Price typed at the counter: capped at MRP, then floored at
        MIN_EDIT_PRICE so an edit can never make a line free. Unparsable
        input counts as the floor.
        """
        p = money(price) if try_parse_float(price)[0] else money(MIN_EDIT_PRICE)
        if line.mrp is not None:
            p = min(p, money(line.mrp))
        return max(money(MIN_EDIT_PRICE), p)
