from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel

from db.ledger_store import LedgerStore
from domain.money import quantize_fiat
from domain.pricing import PriceProvider
from domain.trading_config import TradingConfig


class FiatHolding(BaseModel):
    balance: Decimal
    currency: str


class AssetHolding(BaseModel):
    balance: Decimal
    fiat_value: Decimal


class Portfolio(BaseModel):
    fiat: FiatHolding
    crypto: dict[str, AssetHolding]


class PortfolioView:
    def __init__(self, *, store: LedgerStore, rates: PriceProvider, trading_config: TradingConfig) -> None:
        self._store = store
        self._rates = rates
        self._config = trading_config

    def get_portfolio(self, user_id: str) -> Portfolio:
        account = self._store.get_account(user_id)
        assets = list(self._config.supported_assets)
        rates = self._rates.get_rates(assets)

        crypto = {
            asset: AssetHolding(
                balance=account.assets.get(asset, Decimal(0)),
                fiat_value=quantize_fiat(account.assets.get(asset, Decimal(0)) * rates[asset]),
            )
            for asset in assets
        }
        return Portfolio(fiat=FiatHolding(balance=account.fiat_balance, currency=account.fiat_currency), crypto=crypto)


__all__ = ["AssetHolding", "FiatHolding", "Portfolio", "PortfolioView"]
