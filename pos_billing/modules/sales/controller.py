import logging
import sqlite3

from PySide6.QtCore import QObject, Signal

from ...config import DEBOUNCE_MS, TIMEOUT_MS
from ...constants import BILL_SLOTS
from ...database.repositories.returns_repo import ReturnsRepo
from ...database.repositories.sales_repo import SalesRepo
from .bills import Bill, BillSessionStore
from .checkout import CheckoutFinalizer, CheckoutResult
from .errors import BillingError
from .pricing import CartLine
from .returns import RefundQuote, ReturnFinalizer, ReturnRequest, ReturnResult
from .tax_adapter import BillTotals, TaxEngineAdapter, TaxService, bill_totals

_log = logging.getLogger(__name__)


class BillingController(QObject):
    """
    Counter-side billing: the open bill slots, live tax, checkout and returns
    over one database connection. Without a tax service the totals stay on
    the untaxed estimate.
    """

    checkoutCompleted = Signal(int)       # sale_id
    checkoutFailed = Signal(str)
    returnCompleted = Signal(int, int)    # sale_id, return_id
    returnFailed = Signal(str)

    def __init__(
        self,
        conn: sqlite3.Connection,
        tax_service: TaxService | None = None,
        *,
        slots: int = BILL_SLOTS,
        debounce_ms: int = DEBOUNCE_MS,
        timeout_ms: int = TIMEOUT_MS,
        parent: QObject | None = None,
    ):
        super().__init__(parent)
        self.conn = conn
        self.sales = SalesRepo(conn)
        self.returns = ReturnsRepo(conn)
        self.store = BillSessionStore(slots, parent=self)
        self.tax: TaxEngineAdapter | None = None
        if tax_service is not None:
            self.tax = TaxEngineAdapter(
                self.store, tax_service, debounce_ms=debounce_ms, timeout_ms=timeout_ms, parent=self
            )
        self.checkout_finalizer = CheckoutFinalizer(self.store, self.sales)
        self.return_finalizer = ReturnFinalizer(self.sales, self.returns)

    # ---- bills -------------------------------------------------------------
    @property
    def active_bill(self) -> Bill:
        return self.store.get_active()

    def switch_to(self, slot: int) -> Bill:
        self.store.set_active_slot(slot)
        _log.debug("Bill slot %d active", slot)
        return self.store.get_active()

    def add_product(self, variant_id: int, unit_price, *, quantity: int = 1, **extra) -> Bill:
        line = CartLine(
            line_id=self.store.new_line_id(),
            variant_id=int(variant_id),
            unit_price=unit_price,
            quantity=quantity,
            **extra,
        )
        return self.store.add_line(line)

    def totals(self) -> BillTotals:
        return bill_totals(self.store.get_active())

    # ---- checkout ----------------------------------------------------------
    def checkout(self) -> CheckoutResult:
        try:
            result = self.checkout_finalizer.finalize()
        except BillingError as e:
            self.checkoutFailed.emit(str(e))
            raise
        self.checkoutCompleted.emit(result.sale_id)
        return result

    # ---- returns -----------------------------------------------------------
    def quote_return(self, request: ReturnRequest) -> RefundQuote:
        return self.return_finalizer.quote(request)

    def submit_return(self, request: ReturnRequest) -> ReturnResult:
        try:
            result = self.return_finalizer.submit(request)
        except BillingError as e:
            self.returnFailed.emit(str(e))
            raise
        self.returnCompleted.emit(result.sale_id, result.return_id)
        return result
