from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Protocol


class QuoteSource(StrEnum):
    LIVE = "live"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class RateQuote:
    """Fiat price of one unit of an asset, with provenance and validity window."""

    asset: str
    quote_currency: str
    rate: Decimal
    source: QuoteSource
    fetched_at: datetime
    valid_until: datetime


class PriceProvider(Protocol):
    """Lookup interface for asset→fiat rates."""

    def normalize_asset(self, asset: str) -> str: ...

    def get_rate(self, asset: str) -> Decimal: ...

    def get_rates(self, assets: list[str]) -> dict[str, Decimal]: ...


__all__ = ["PriceProvider", "QuoteSource", "RateQuote"]
