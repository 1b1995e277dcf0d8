from __future__ import annotations

from typing import Dict
import sqlite3


def get_returnable_quantities(conn: sqlite3.Connection, sale_id: int) -> Dict[int, int]:
    """
    Compute remaining returnable quantity per sale item for a given sale.

    Returns a dict mapping item_id -> remaining_qty (clamped to >= 0).
    Reads the recorded return lines rather than trusting the
    sale_items.returned_quantity roll-up alone, and takes the larger of the two.
    """
    sql = """
    SELECT
      si.item_id,
      si.quantity AS sold_qty,
      si.returned_quantity AS rolled_up,
      COALESCE((
        SELECT SUM(ri.quantity)
        FROM sale_return_items ri
        WHERE ri.sale_item_id = si.item_id
      ), 0) AS returned_so_far
    FROM sale_items si
    WHERE si.sale_id = ?
    """
    rows = conn.execute(sql, (sale_id,)).fetchall()
    out: Dict[int, int] = {}
    for r in rows:
        if hasattr(r, "keys"):
            item_id = int(r["item_id"])
            sold_qty = int(r["sold_qty"])
            returned = max(int(r["rolled_up"]), int(r["returned_so_far"]))
        else:
            item_id = int(r[0])
            sold_qty = int(r[1])
            returned = max(int(r[2]), int(r[3]))
        out[item_id] = max(0, sold_qty - returned)
    return out
