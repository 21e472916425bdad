from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class TradingConfig(BaseModel):
    """Immutable trading rules injected into the engine components."""

    model_config = ConfigDict(frozen=True)

    fee_percentage: Decimal = Decimal("1")
    min_buy_amount: Decimal = Decimal("5000")
    min_sell_amount: Decimal = Decimal("2000")
    rate_cache_ttl_seconds: int = 60
    supported_assets: tuple[str, ...] = ("BTC", "ETH", "USDT")
    fiat_currency: str = "NGN"
    initial_fiat_balance: Decimal = Decimal("100000")

    @field_validator("supported_assets")
    @classmethod
    def _normalize_assets(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        normalized = tuple(dict.fromkeys(asset.strip().upper() for asset in value))
        if not normalized or any(not asset for asset in normalized):
            raise ValueError("supported_assets must contain at least one non-empty symbol")
        return normalized

    @field_validator("fiat_currency")
    @classmethod
    def _normalize_currency(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("fiat_currency must be non-empty")
        return value.strip().upper()

    @model_validator(mode="after")
    def _validate_ranges(self) -> TradingConfig:
        if not Decimal(0) <= self.fee_percentage < Decimal(100):
            raise ValueError("fee_percentage must be within [0, 100)")
        if self.min_buy_amount < 0 or self.min_sell_amount < 0:
            raise ValueError("minimum trade amounts must be >= 0")
        if self.rate_cache_ttl_seconds < 0:
            raise ValueError("rate_cache_ttl_seconds must be >= 0")
        if self.initial_fiat_balance < 0:
            raise ValueError("initial_fiat_balance must be >= 0")
        if self.fiat_currency in self.supported_assets:
            raise ValueError("fiat_currency cannot also be a supported asset")
        return self


__all__ = ["TradingConfig"]
