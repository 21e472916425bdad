"""Domain models and rules for the trading ledger.

This package holds the in-memory (Pydantic) account and ledger models, the
fee arithmetic and the error taxonomy. They are independent from persistence
models so that business rules and tests can evolve without DB coupling.
"""

__all__ = [
    "account",
    "errors",
    "fees",
    "ledger",
    "money",
    "pricing",
    "trading_config",
]
