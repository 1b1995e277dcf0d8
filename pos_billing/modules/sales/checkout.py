from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import logging
import sqlite3
from typing import Any, Mapping, Protocol

from ...database.repositories.sales_repo import DomainError
from ...utils.helpers import ZERO, fmt_money, money
from ...utils.payment_calculations import change_due, status_from_paid
from ...utils.validators import try_parse_float
from .bills import Bill, BillSessionStore
from .errors import CheckoutFailed, CheckoutRejected
from .tax_adapter import BillTotals, bill_totals

_log = logging.getLogger(__name__)


class SaleWriter(Protocol):
    def create_sale(self, payload: Mapping[str, Any]) -> int: ...


@dataclass(frozen=True)
class CheckoutResult:
    sale_id: int
    grand_total: Decimal
    amount_paid: Decimal
    change_due: Decimal
    payment_status: str


class CheckoutFinalizer:
    """
    Turns the active bill into a sale.

    All checks run locally first; a rejected bill never reaches the sales
    store. A sale the store refuses leaves the bill exactly as it was, and the
    store's message is passed on untouched. Creating a sale is never retried
    automatically.
    """

    def __init__(self, store: BillSessionStore, sales_repo: SaleWriter):
        self.store = store
        self.sales_repo = sales_repo

    # ---- checks ------------------------------------------------------------
    def validate(self, bill: Bill, totals: BillTotals | None = None) -> Decimal:
        """Return the tendered amount, or raise CheckoutRejected."""
        totals = totals or bill_totals(bill)
        if bill.is_empty:
            raise CheckoutRejected("Cart is empty.")
        if bill.payment_method_id is None:
            raise CheckoutRejected("Please select a payment method.")
        if bill.overall_discount.value < 0:
            raise CheckoutRejected("Discount cannot be negative.")

        ok, val = try_parse_float(bill.amount_tendered)
        if not ok:
            raise CheckoutRejected("Enter the amount tendered.")
        tendered = money(val)
        if tendered < 0:
            raise CheckoutRejected("Amount tendered cannot be negative.")

        if bill.payment_type == "full" and tendered < totals.grand_total:
            raise CheckoutRejected(
                f"Amount tendered ({fmt_money(tendered)}) is less than the grand total "
                f"({fmt_money(totals.grand_total)})."
            )
        if bill.payment_type == "partial" and tendered <= 0:
            raise CheckoutRejected("A partial payment must be greater than 0.")
        return tendered

    # ---- payload -----------------------------------------------------------
    @staticmethod
    def paid_amount(bill: Bill, totals: BillTotals, tendered: Decimal) -> Decimal:
        return totals.grand_total if bill.payment_type == "full" else tendered

    def build_payload(self, bill: Bill, totals: BillTotals | None = None, tendered: Decimal | None = None) -> dict:
        totals = totals or bill_totals(bill)
        if tendered is None:
            ok, val = try_parse_float(bill.amount_tendered)
            tendered = money(val) if ok else ZERO
        items = [
            {
                "variantId": line.variant_id,
                "quantity": int(line.quantity),
                "pricePerUnit": float(money(line.unit_price)),
                "discount": float(lp.discount_amount),
            }
            for line, lp in zip(bill.items, totals.pricing.lines)
        ]
        return {
            "items": items,
            "customerId": bill.customer_id,
            # the distributed amount itself, not a re-sum of per-line shares
            "discount": float(totals.discount),
            "payments": [
                {
                    "paymentMethodId": bill.payment_method_id,
                    "amount": float(self.paid_amount(bill, totals, tendered)),
                }
            ],
            "totalAmount": float(totals.grand_total),
        }

    # ---- submit ------------------------------------------------------------
    def finalize(self) -> CheckoutResult:
        bill = self.store.get_active()
        totals = bill_totals(bill)
        tendered = self.validate(bill, totals)
        payload = self.build_payload(bill, totals, tendered)

        try:
            sale_id = self.sales_repo.create_sale(payload)
        except (DomainError, sqlite3.Error) as e:
            _log.error("Sale creation failed for bill slot %d: %s", bill.slot_index, e)
            raise CheckoutFailed(str(e)) from e

        paid = self.paid_amount(bill, totals, tendered)
        result = CheckoutResult(
            sale_id=int(sale_id),
            grand_total=totals.grand_total,
            amount_paid=paid,
            change_due=change_due(tendered, totals.grand_total) if bill.payment_type == "full" else ZERO,
            payment_status=status_from_paid(totals.grand_total, paid),
        )
        if not totals.tax_known:
            _log.info("Sale %d completed on an untaxed estimate (tax %s)", result.sale_id, bill.tax_status)
        _log.info("Sale %d completed from bill slot %d: total %s", result.sale_id, bill.slot_index, totals.grand_total)
        self.store.reset_active()
        return result
