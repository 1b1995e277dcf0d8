from __future__ import annotations
from decimal import Decimal
import logging
import sqlite3
from typing import Any, Mapping

from ...utils.helpers import ZERO, money, today_str
from .sales_repo import DomainError
from .sales_returns_helpers import get_returnable_quantities

_log = logging.getLogger(__name__)


class ReturnsRepo:
    """
    Sale returns.

    record_return() takes the return request as the returns screen sends it:

        {"saleId": 7, "reason": "damaged",
         "items": [{"saleItemId": 12, "quantity": 1, "refundAmount": "88.00"}]}

    and, in one transaction:
      - re-checks every line against the quantity still returnable,
      - writes sale_returns + sale_return_items,
      - bumps sale_items.returned_quantity,
      - records a negative 'refund' payment and lowers sales.paid_amount,
      - marks the sale 'refunded' once nothing paid remains on a non-zero sale.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def list_returns(self, sale_id: int) -> list[sqlite3.Row]:
        return self.conn.execute(
            """
            SELECT return_id, sale_id, reason, CAST(total_refund AS TEXT) AS total_refund, date
            FROM sale_returns WHERE sale_id=? ORDER BY return_id
            """,
            (sale_id,),
        ).fetchall()

    def list_return_items(self, return_id: int) -> list[sqlite3.Row]:
        return self.conn.execute(
            """
            SELECT return_item_id, sale_item_id, quantity, CAST(refund_amount AS TEXT) AS refund_amount
            FROM sale_return_items WHERE return_id=? ORDER BY return_item_id
            """,
            (return_id,),
        ).fetchall()

    def record_return(
        self,
        request: Mapping[str, Any],
        *,
        date: str | None = None,
        created_by: int | None = None,
    ) -> int:
        try:
            sale_id = int(request["saleId"])
        except (KeyError, TypeError, ValueError) as e:
            raise DomainError("Return request has no sale.") from e

        # Group requested quantities per item to validate batch totals
        requested: dict[int, int] = {}
        refunds: dict[int, Decimal] = {}
        for ln in request.get("items") or []:
            iid = int(ln["saleItemId"])
            qty = int(ln["quantity"])
            if qty < 0:
                raise DomainError(f"Return quantity for item {iid} cannot be negative.")
            if qty == 0:
                continue
            requested[iid] = requested.get(iid, 0) + qty
            refunds[iid] = refunds.get(iid, ZERO) + money(ln.get("refundAmount") or 0)
        if not requested:
            raise DomainError("Select at least one item to return.")

        d = date or today_str()
        with self.conn:
            hdr = self.conn.execute(
                "SELECT CAST(total_amount AS TEXT) AS total_amount, CAST(paid_amount AS TEXT) AS paid_amount, status "
                "FROM sales WHERE sale_id=?",
                (sale_id,),
            ).fetchone()
            if not hdr:
                raise DomainError("Sale not found.")

            remaining = get_returnable_quantities(self.conn, sale_id)
            for iid, qty in requested.items():
                if iid not in remaining:
                    raise DomainError(f"Sale item {iid} not found in sale {sale_id}.")
                if qty > remaining[iid]:
                    raise DomainError(
                        f"Cannot return {qty} of item {iid}. Only {remaining[iid]} remaining to return."
                    )

            total_refund = sum(refunds.values(), ZERO)
            cur = self.conn.execute(
                "INSERT INTO sale_returns (sale_id, reason, total_refund, date, created_by) VALUES (?,?,?,?,?)",
                (sale_id, request.get("reason"), str(total_refund), d, created_by),
            )
            return_id = int(cur.lastrowid)

            for iid, qty in requested.items():
                self.conn.execute(
                    "INSERT INTO sale_return_items (return_id, sale_item_id, quantity, refund_amount) VALUES (?,?,?,?)",
                    (return_id, iid, qty, str(refunds[iid])),
                )
                self.conn.execute(
                    "UPDATE sale_items SET returned_quantity = returned_quantity + ? WHERE item_id=?",
                    (qty, iid),
                )

            if total_refund > 0:
                # refund goes back through the method the sale was first paid with
                first = self.conn.execute(
                    "SELECT payment_method_id FROM sale_payments WHERE sale_id=? AND type='payment' "
                    "ORDER BY payment_id LIMIT 1",
                    (sale_id,),
                ).fetchone()
                self.conn.execute(
                    "INSERT INTO sale_payments (sale_id, payment_method_id, amount, type, date) "
                    "VALUES (?,?,?,'refund',?)",
                    (sale_id, first["payment_method_id"] if first else None, str(-total_refund), d),
                )

            total = money(hdr["total_amount"])
            new_paid = money(hdr["paid_amount"]) - total_refund
            status = "refunded" if new_paid <= 0 and total > 0 else hdr["status"]
            self.conn.execute(
                "UPDATE sales SET paid_amount=?, status=? WHERE sale_id=?",
                (str(new_paid), status, sale_id),
            )

        _log.info("Return %d recorded for sale %d: refund %s", return_id, sale_id, total_refund)
        return return_id
