# pos_billing/tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - pytest-qt owns QApplication (use qapp/qtbot fixtures)
# - Every test gets its own in-memory SQLite DB with the schema applied
# - conn.row_factory = sqlite3.Row, PRAGMA foreign_keys=ON
# - The tax service is a recording fake; tests answer calls by hand
# - Silence benign Qt signal warnings
# ---------------------------------------------------------------------

from __future__ import annotations

from decimal import Decimal
import os
import re

import pytest

# Run Qt headless when no display is available.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PySide6 import QtCore

from pos_billing.database import get_connection
from pos_billing.modules.sales.bills import BillSessionStore
from pos_billing.modules.sales.pricing import CartLine


# ---------- Qt: let pytest-qt own the app ----------
@pytest.fixture(scope="session")
def app(qapp):  # alias to match code that expects an `app` fixture
    return qapp


# ---------- Silence benign Qt warnings ----------
_BENIGN_QT_PATTERNS = [
    r"^QObject::connect: .* already connected",
    r"^QObject::disconnect: Unexpected null parameter",
    r"^QBasicTimer::stop: Failed\. Platform timer not running\.",
]

@pytest.fixture(autouse=True, scope="session")
def _silence_benign_qt():
    """Filter common harmless Qt messages during tests."""
    original = QtCore.qInstallMessageHandler(None)
    rx = [re.compile(p) for p in _BENIGN_QT_PATTERNS]

    def handler(msg_type, context, message):
        text = str(message)
        for r in rx:
            if r.search(text):
                return  # swallow benign messages
        QtCore.qInstallMessageHandler(None)
        try:
            QtCore.qDebug(message)
        finally:
            QtCore.qInstallMessageHandler(handler)

    QtCore.qInstallMessageHandler(handler)
    try:
        yield
    finally:
        QtCore.qInstallMessageHandler(original)


# ---------- Per-test database ----------
@pytest.fixture()
def conn():
    con = get_connection(":memory:")
    try:
        yield con
    finally:
        con.close()


# ---------- Bills ----------
@pytest.fixture()
def store(qapp):
    return BillSessionStore(slots=3)


@pytest.fixture()
def make_line(store):
    """Build a CartLine with a fresh line id from the store."""
    def _make(variant_id: int, price, qty: int = 1, **extra) -> CartLine:
        return CartLine(
            line_id=store.new_line_id(),
            variant_id=variant_id,
            unit_price=Decimal(str(price)),
            quantity=qty,
            **extra,
        )
    return _make


# ---------- Tax service fake ----------
class FakeTaxService:
    """Records every calculate() call; tests answer them explicitly."""

    def __init__(self):
        self.calls: list[tuple[dict, object]] = []
        self.raise_on_call: Exception | None = None

    def calculate(self, request, on_finished):
        if self.raise_on_call is not None:
            raise self.raise_on_call
        self.calls.append((request, on_finished))

    @property
    def last_request(self) -> dict:
        return self.calls[-1][0]

    def respond(self, index: int, data: dict) -> None:
        self.calls[index][1](data, None)

    def fail(self, index: int, message: str) -> None:
        self.calls[index][1](None, message)


@pytest.fixture()
def tax_service():
    return FakeTaxService()


def tax_body(total_tax, grand_total, items=()):
    """Response body in the shape the tax service sends."""
    return {"total_tax": total_tax, "grand_total": grand_total, "items": list(items)}


@pytest.fixture()
def tax_response():
    return tax_body
