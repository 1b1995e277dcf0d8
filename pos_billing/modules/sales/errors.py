from __future__ import annotations


class BillingError(Exception):
    """Business-rule problem the sale screen can show as-is."""


class CheckoutRejected(BillingError):
    """Checkout refused locally; nothing was sent to the sales store."""


class CheckoutFailed(BillingError):
    """The sales store refused the sale; message is the store's own."""


class ReturnRejected(BillingError):
    """Return refused locally; nothing was written."""


class ReturnFailed(BillingError):
    """The returns store refused the return; message is the store's own."""
