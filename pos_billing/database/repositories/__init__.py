# database/repositories/__init__.py
"""
Repository layer public API.

Usage:
    from pos_billing.database.repositories import (
        SalesRepo, PersistedSale, PersistedSaleItem, DomainError,
        ReturnsRepo, get_returnable_quantities,
    )
"""

# ------------------ Sales ------------------
from .sales_repo import SalesRepo, PersistedSale, PersistedSaleItem, DomainError

# ----------------- Returns -----------------
from .returns_repo import ReturnsRepo
from .sales_returns_helpers import get_returnable_quantities

__all__ = [
    # sales_repo
    "SalesRepo",
    "PersistedSale",
    "PersistedSaleItem",
    "DomainError",
    # returns
    "ReturnsRepo",
    "get_returnable_quantities",
]
