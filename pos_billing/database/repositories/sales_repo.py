from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
import logging
import sqlite3
from typing import Any, Mapping, Optional

from ...utils.helpers import ZERO, money, today_str
from ...utils.payment_calculations import sale_status

_log = logging.getLogger(__name__)


# Domain-level error the controller can surface directly (e.g., toast/snackbar)
class DomainError(Exception):
    pass


@dataclass(frozen=True)
class PersistedSaleItem:
    item_id: int
    variant_id: int
    price_per_unit: Decimal
    quantity: int
    discount_amount: Decimal
    returned_quantity: int = 0

    @property
    def remaining_quantity(self) -> int:
        return max(0, self.quantity - self.returned_quantity)


@dataclass(frozen=True)
class PersistedSale:
    sale_id: int
    items: tuple[PersistedSaleItem, ...]
    discount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    status: str = "unpaid"
    customer_id: Optional[int] = None
    date: str | None = None
    payments: tuple[dict, ...] = field(default_factory=tuple)

    def item(self, item_id: int) -> PersistedSaleItem | None:
        return next((it for it in self.items if it.item_id == item_id), None)


class SalesRepo:
    """
    Sales repository.

    Key behavior:
      - create_sale() takes the checkout payload as built by the sale screen
        ({items, customerId, discount, payments, totalAmount}) and writes the
        header, lines and initial payments in one transaction.
      - paid_amount/status are rolled up here from the payments written with
        the sale; returns adjust them later through ReturnsRepo.
      - Money columns are NUMERIC; reads come back as Decimal quantized to cents.
    """

    def __init__(self, conn: sqlite3.Connection):
        # ensure rows behave like dicts/tuples
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def get_header(self, sale_id: int) -> sqlite3.Row | None:
        return self.conn.execute("SELECT * FROM sales WHERE sale_id=?", (sale_id,)).fetchone()

    def list_items(self, sale_id: int) -> list[sqlite3.Row]:
        sql = """
        SELECT si.item_id, si.sale_id, si.variant_id,
               si.quantity, CAST(si.price_per_unit AS TEXT) AS price_per_unit,
               CAST(si.discount_amount AS TEXT) AS discount_amount,
               si.returned_quantity
        FROM sale_items si
        WHERE si.sale_id = ?
        ORDER BY si.item_id
        """
        return self.conn.execute(sql, (sale_id,)).fetchall()

    def list_payments(self, sale_id: int) -> list[sqlite3.Row]:
        return self.conn.execute(
            """
            SELECT payment_id, payment_method_id, CAST(amount AS TEXT) AS amount, type, date
            FROM sale_payments WHERE sale_id=? ORDER BY payment_id
            """,
            (sale_id,),
        ).fetchall()

    def get_sale(self, sale_id: int) -> PersistedSale | None:
        h = self.get_header(sale_id)
        if h is None:
            return None
        items = tuple(
            PersistedSaleItem(
                item_id=int(r["item_id"]),
                variant_id=int(r["variant_id"]),
                price_per_unit=money(r["price_per_unit"]),
                quantity=int(r["quantity"]),
                discount_amount=money(r["discount_amount"]),
                returned_quantity=int(r["returned_quantity"]),
            )
            for r in self.list_items(sale_id)
        )
        return PersistedSale(
            sale_id=int(h["sale_id"]),
            items=items,
            discount=money(h["discount"]),
            total_amount=money(h["total_amount"]),
            paid_amount=money(h["paid_amount"]),
            status=h["status"],
            customer_id=h["customer_id"],
            date=h["date"],
            payments=tuple(dict(p) for p in self.list_payments(sale_id)),
        )

    # ---------------------------------------------------------------------
    # WRITE
    # ---------------------------------------------------------------------
    def create_sale(
        self,
        payload: Mapping[str, Any],
        *,
        date: str | None = None,
        created_by: int | None = None,
    ) -> int:
        """
        Persist a sale from a checkout payload and return the new sale_id.
        Raises DomainError with a user-facing message when the payload is not
        acceptable; nothing is written in that case.
        """
        items = list(payload.get("items") or [])
        if not items:
            raise DomainError("Sale has no items.")

        rows = []
        lines_total = ZERO
        for n, it in enumerate(items, start=1):
            try:
                variant_id = int(it["variantId"])
                qty = int(it["quantity"])
                price = money(it["pricePerUnit"])
                disc = money(it.get("discount") or 0)
            except (KeyError, TypeError, ValueError) as e:
                raise DomainError(f"Item {n}: invalid or incomplete data ({e}).") from e
            if qty <= 0:
                raise DomainError(f"Item {n}: quantity must be greater than 0.")
            if price < 0:
                raise DomainError(f"Item {n}: price cannot be negative.")
            if disc < 0 or disc > price * qty:
                raise DomainError(f"Item {n}: discount must be between 0 and the line subtotal.")
            rows.append((variant_id, qty, price, disc))
            lines_total += price * qty - disc

        discount = money(payload.get("discount") or 0)
        if discount < 0 or discount > lines_total:
            raise DomainError("Sale discount must be between 0 and the items total.")

        total = money(payload["totalAmount"]) if payload.get("totalAmount") is not None else lines_total - discount

        payments = []
        for p in payload.get("payments") or []:
            amount = money(p.get("amount"))
            if amount < 0:
                raise DomainError("Payment amount cannot be negative.")
            if amount > 0:
                payments.append((p.get("paymentMethodId"), amount))
        paid = sum((a for _, a in payments), ZERO)

        d = date or today_str()
        with self.conn:
            cur = self.conn.execute(
                """
                INSERT INTO sales (customer_id, date, total_amount, discount, paid_amount, status, created_by)
                VALUES (?,?,?,?,?,?,?)
                """,
                (payload.get("customerId"), d, str(total), str(discount), str(paid),
                 sale_status(total, paid), created_by),
            )
            sale_id = int(cur.lastrowid)
            self.conn.executemany(
                """
                INSERT INTO sale_items (sale_id, variant_id, quantity, price_per_unit, discount_amount)
                VALUES (?,?,?,?,?)
                """,
                [(sale_id, v, q, str(pr), str(di)) for v, q, pr, di in rows],
            )
            self.conn.executemany(
                """
                INSERT INTO sale_payments (sale_id, payment_method_id, amount, type, date)
                VALUES (?,?,?,'payment',?)
                """,
                [(sale_id, m, str(a), d) for m, a in payments],
            )
        _log.info("Sale %d created: %d item(s), total %s, paid %s", sale_id, len(rows), total, paid)
        return sale_id
