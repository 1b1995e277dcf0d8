"""Sale pricing, tax recomputation and returns-refund engine."""

__version__ = "0.1.0"
