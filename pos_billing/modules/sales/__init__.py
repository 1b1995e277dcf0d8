"""
Sales module package exports.

- BillingController: wires the pieces below over one DB connection
- BillSessionStore / Bill: the open bill slots
- TaxEngineAdapter / HttpTaxService: live tax for the active bill
- CheckoutFinalizer, ReturnFinalizer
- pricing helpers: price_line, price_cart, distribute_discount
"""

from .bills import Bill, BillSessionStore
from .checkout import CheckoutFinalizer, CheckoutResult
from .controller import BillingController
from .errors import BillingError, CheckoutFailed, CheckoutRejected, ReturnFailed, ReturnRejected
from .pricing import (
    AmountDiscount,
    CartLine,
    PercentageDiscount,
    distribute_discount,
    price_cart,
    price_line,
)
from .returns import ReturnFinalizer, ReturnLine, ReturnRequest, make_request, quote_refund
from .tax_adapter import TaxEngineAdapter, TaxResult, bill_totals
from .tax_client import HttpTaxService

__all__ = [
    "Bill",
    "BillSessionStore",
    "BillingController",
    "CheckoutFinalizer",
    "CheckoutResult",
    "BillingError",
    "CheckoutFailed",
    "CheckoutRejected",
    "ReturnFailed",
    "ReturnRejected",
    "AmountDiscount",
    "PercentageDiscount",
    "CartLine",
    "distribute_discount",
    "price_cart",
    "price_line",
    "ReturnFinalizer",
    "ReturnLine",
    "ReturnRequest",
    "make_request",
    "quote_refund",
    "TaxEngineAdapter",
    "TaxResult",
    "bill_totals",
    "HttpTaxService",
]
