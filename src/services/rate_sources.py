from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Protocol

# NGN per unit; conservative estimates used only when the upstream is unavailable.
DEFAULT_FALLBACK_RATES: dict[str, Decimal] = {
    "BTC": Decimal("92000000"),
    "ETH": Decimal("5200000"),
    "USDT": Decimal("1570"),
}


class RateSource(Protocol):
    def fetch_rates(self, assets: Iterable[str], quote_currency: str) -> dict[str, Decimal]:
        """Return live rates for the assets it could price.

        Assets the source cannot price are left out of the result. A failure of
        the whole request raises UpstreamUnavailableError.
        """
        ...


class StaticRateTable:
    def __init__(self, rates: dict[str, Decimal] | None = None) -> None:
        resolved = DEFAULT_FALLBACK_RATES if rates is None else rates
        normalized = {asset.upper(): rate for asset, rate in resolved.items()}
        for asset, rate in normalized.items():
            if rate <= 0:
                msg = f"Fallback rate for {asset} must be > 0"
                raise ValueError(msg)
        self._rates = normalized

    def __contains__(self, asset: object) -> bool:
        return isinstance(asset, str) and asset.upper() in self._rates

    def rate(self, asset: str) -> Decimal:
        return self._rates[asset.upper()]


__all__ = ["DEFAULT_FALLBACK_RATES", "RateSource", "StaticRateTable"]
