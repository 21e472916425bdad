from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, model_validator

from .errors import InsufficientBalanceError, UnsupportedAssetError, ValidationError
from .money import quantize_crypto, quantize_fiat


class Account(BaseModel):
    """Balances owned by one user: a single fiat balance plus one balance per asset.

    Balances never go negative. Debits that would overdraw raise
    InsufficientBalanceError and leave the account untouched.
    """

    user_id: str
    fiat_currency: str
    fiat_balance: Decimal
    assets: dict[str, Decimal]

    @model_validator(mode="after")
    def _validate_balances(self) -> Account:
        if not self.user_id:
            raise ValueError("Account.user_id must be non-empty")
        if self.fiat_balance < 0:
            raise ValueError("Account.fiat_balance must be >= 0")
        for asset, balance in self.assets.items():
            if balance < 0:
                raise ValueError(f"Account balance for {asset} must be >= 0")
        return self

    def asset_balance(self, asset: str) -> Decimal:
        try:
            return self.assets[asset]
        except KeyError as exc:
            raise UnsupportedAssetError(asset) from exc

    def debit_fiat(self, amount: Decimal) -> None:
        _require_positive(amount)
        if self.fiat_balance < amount:
            raise InsufficientBalanceError(asset=self.fiat_currency, required=amount, available=self.fiat_balance)
        self.fiat_balance = quantize_fiat(self.fiat_balance - amount)

    def credit_fiat(self, amount: Decimal) -> None:
        _require_positive(amount)
        self.fiat_balance = quantize_fiat(self.fiat_balance + amount)

    def debit_asset(self, asset: str, quantity: Decimal) -> None:
        _require_positive(quantity)
        current = self.asset_balance(asset)
        if current < quantity:
            raise InsufficientBalanceError(asset=asset, required=quantity, available=current)
        self.assets[asset] = quantize_crypto(current - quantity)

    def credit_asset(self, asset: str, quantity: Decimal) -> None:
        _require_positive(quantity)
        self.assets[asset] = quantize_crypto(self.asset_balance(asset) + quantity)

    def negative_balance(self) -> tuple[str, Decimal] | None:
        if self.fiat_balance < 0:
            return self.fiat_currency, self.fiat_balance
        for asset, balance in self.assets.items():
            if balance < 0:
                return asset, balance
        return None


def _require_positive(amount: Decimal) -> None:
    if amount <= 0:
        raise ValidationError("Balance movements must be positive")


__all__ = ["Account"]
