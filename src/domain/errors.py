from __future__ import annotations

from decimal import Decimal


class TradingError(Exception):
    """Base class for every failure the engine reports to its callers.

    ``code`` is stable and machine-checkable; the message is safe to show to
    an end user and never contains storage details.
    """

    code = "trading_error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(TradingError):
    code = "validation_error"


class UnsupportedAssetError(ValidationError):
    code = "unsupported_asset"

    def __init__(self, asset: str) -> None:
        self.asset = asset
        super().__init__(f"Unsupported asset: {asset}")


class AccountNotFoundError(TradingError):
    code = "account_not_found"

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"No account found for user {user_id}")


class BelowMinimumError(TradingError):
    code = "below_minimum"

    def __init__(self, *, kind: str, amount: Decimal, minimum: Decimal, currency: str) -> None:
        self.kind = kind
        self.amount = amount
        self.minimum = minimum
        self.currency = currency
        label = "buy amount" if kind == "buy" else "sell value"
        super().__init__(f"Minimum {label} is {currency} {minimum:,}")


class InsufficientBalanceError(TradingError):
    code = "insufficient_balance"

    def __init__(self, *, asset: str, required: Decimal, available: Decimal) -> None:
        self.asset = asset
        self.required = required
        self.available = available
        super().__init__(f"Insufficient {asset} balance")


class UpstreamUnavailableError(TradingError):
    """Raised by rate sources; RateProvider always absorbs it."""

    code = "upstream_unavailable"


class StorageConflictError(TradingError):
    code = "storage_conflict"

    def __init__(self, *, attempts: int) -> None:
        self.attempts = attempts
        super().__init__("The ledger is busy, please retry the request")


__all__ = [
    "AccountNotFoundError",
    "BelowMinimumError",
    "InsufficientBalanceError",
    "StorageConflictError",
    "TradingError",
    "UnsupportedAssetError",
    "UpstreamUnavailableError",
    "ValidationError",
]
