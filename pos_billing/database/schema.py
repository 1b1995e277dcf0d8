from pathlib import Path
import logging
import sqlite3
import sys

_log = logging.getLogger(__name__)

SQL = r"""
PRAGMA foreign_keys = ON;

/* ======================== SALES ======================== */

CREATE TABLE IF NOT EXISTS sales (
    sale_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id  INTEGER,
    date         DATE    NOT NULL DEFAULT CURRENT_DATE,
    total_amount NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(total_amount AS REAL) >= 0),
    /* cart-level discount as distributed at checkout */
    discount     NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(discount AS REAL) >= 0),
    paid_amount  NUMERIC NOT NULL DEFAULT 0,
    status       TEXT    NOT NULL DEFAULT 'unpaid'
                 CHECK (status IN ('unpaid','partially_paid','paid','refunded')),
    created_by   INTEGER
);
CREATE INDEX IF NOT EXISTS idx_sales_date ON sales(date);

CREATE TABLE IF NOT EXISTS sale_items (
    item_id           INTEGER PRIMARY KEY AUTOINCREMENT,
    sale_id           INTEGER NOT NULL,
    variant_id        INTEGER NOT NULL,
    quantity          INTEGER NOT NULL CHECK (quantity > 0),
    price_per_unit    NUMERIC NOT NULL CHECK (CAST(price_per_unit AS REAL) >= 0),
    /* line-level discount money amount, not per unit */
    discount_amount   NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(discount_amount AS REAL) >= 0),
    returned_quantity INTEGER NOT NULL DEFAULT 0
                      CHECK (returned_quantity >= 0 AND returned_quantity <= quantity),
    FOREIGN KEY (sale_id) REFERENCES sales(sale_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_sale_items_sale ON sale_items(sale_id);

/* refunds are negative rows with type='refund' */
CREATE TABLE IF NOT EXISTS sale_payments (
    payment_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    sale_id           INTEGER NOT NULL,
    payment_method_id INTEGER,
    amount            NUMERIC NOT NULL,
    type              TEXT    NOT NULL DEFAULT 'payment' CHECK (type IN ('payment','refund')),
    date              DATE    NOT NULL DEFAULT CURRENT_DATE,
    FOREIGN KEY (sale_id) REFERENCES sales(sale_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_sale_payments_sale ON sale_payments(sale_id);

/* ======================== RETURNS ======================== */

CREATE TABLE IF NOT EXISTS sale_returns (
    return_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    sale_id      INTEGER NOT NULL,
    reason       TEXT,
    total_refund NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(total_refund AS REAL) >= 0),
    date         DATE    NOT NULL DEFAULT CURRENT_DATE,
    created_by   INTEGER,
    FOREIGN KEY (sale_id) REFERENCES sales(sale_id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS sale_return_items (
    return_item_id INTEGER PRIMARY KEY AUTOINCREMENT,
    return_id      INTEGER NOT NULL,
    sale_item_id   INTEGER NOT NULL,
    quantity       INTEGER NOT NULL CHECK (quantity > 0),
    refund_amount  NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(refund_amount AS REAL) >= 0),
    FOREIGN KEY (return_id)    REFERENCES sale_returns(return_id) ON DELETE CASCADE,
    FOREIGN KEY (sale_item_id) REFERENCES sale_items(item_id)
);
CREATE INDEX IF NOT EXISTS idx_sale_return_items_item ON sale_return_items(sale_item_id);
"""


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply the (idempotent) schema on an open connection."""
    conn.executescript(SQL)


def init_schema(db_path: Path | str = "pos_billing.db") -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.execute("PRAGMA journal_mode=WAL;")
        apply_schema(conn)
        conn.commit()
    _log.info("Schema applied to %s", db_path)


if __name__ == "__main__":
    target = sys.argv[1] if len(sys.argv) > 1 else Path(__file__).resolve().parents[1] / "data" / "pos_billing.db"
    logging.basicConfig(level=logging.INFO)
    init_schema(target)
