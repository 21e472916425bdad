from __future__ import annotations

from decimal import Decimal
from functools import cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from domain.trading_config import TradingConfig

PROJECT_ROOT = Path(__file__).resolve().parents[1]
ARTIFACTS_DIR = PROJECT_ROOT / "artifacts"
DB_FILE = ARTIFACTS_DIR / "trading.db"


class AppSettings(BaseSettings):
    database_url: str = f"sqlite:///{DB_FILE}"

    fee_percentage: Decimal = Decimal("1")
    min_buy_amount: Decimal = Decimal("5000")
    min_sell_amount: Decimal = Decimal("2000")
    rate_cache_ttl_seconds: int = 60
    supported_assets: tuple[str, ...] = ("BTC", "ETH", "USDT")
    fiat_currency: str = "NGN"
    initial_fiat_balance: Decimal = Decimal("100000")

    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    coingecko_api_key: str | None = None
    coingecko_timeout_seconds: float = 10.0

    storage_max_attempts: int = 3

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    def trading_config(self) -> TradingConfig:
        return TradingConfig(
            fee_percentage=self.fee_percentage,
            min_buy_amount=self.min_buy_amount,
            min_sell_amount=self.min_sell_amount,
            rate_cache_ttl_seconds=self.rate_cache_ttl_seconds,
            supported_assets=self.supported_assets,
            fiat_currency=self.fiat_currency,
            initial_fiat_balance=self.initial_fiat_balance,
        )


@cache
def config() -> AppSettings:
    return AppSettings()
