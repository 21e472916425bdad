from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Iterable

from domain.errors import UnsupportedAssetError, UpstreamUnavailableError
from domain.pricing import PriceProvider, QuoteSource, RateQuote
from domain.trading_config import TradingConfig

from .rate_cache import RateCache, utc_now
from .rate_sources import RateSource, StaticRateTable

logger = logging.getLogger(__name__)


class RateProvider(PriceProvider):
    """Resolve asset→fiat rates: cache first, then the live source, then the static table.

    Pricing never fails for a supported asset. Upstream trouble degrades to
    the fallback table, which is cached for the same TTL so that a failing
    upstream is not hammered. Every quote records where it came from.
    """

    def __init__(
        self,
        *,
        source: RateSource,
        cache: RateCache,
        supported_assets: Iterable[str],
        quote_currency: str,
        cache_ttl_seconds: int = 60,
        fallback: StaticRateTable | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.source = source
        self.cache = cache
        self.quote_currency = quote_currency.upper()
        self.cache_ttl_seconds = cache_ttl_seconds
        self.fallback = fallback or StaticRateTable()
        self._clock = clock
        self._supported = tuple(dict.fromkeys(asset.upper() for asset in supported_assets))
        missing = [asset for asset in self._supported if asset not in self.fallback]
        if missing:
            msg = f"No fallback rate configured for {', '.join(missing)}"
            raise ValueError(msg)

    @classmethod
    def from_config(
        cls,
        trading_config: TradingConfig,
        *,
        source: RateSource,
        cache: RateCache,
        fallback: StaticRateTable | None = None,
    ) -> RateProvider:
        return cls(
            source=source,
            cache=cache,
            supported_assets=trading_config.supported_assets,
            quote_currency=trading_config.fiat_currency,
            cache_ttl_seconds=trading_config.rate_cache_ttl_seconds,
            fallback=fallback,
        )

    @property
    def supported_assets(self) -> tuple[str, ...]:
        return self._supported

    def normalize_asset(self, asset: str) -> str:
        normalized = asset.strip().upper()
        if normalized not in self._supported:
            raise UnsupportedAssetError(asset)
        return normalized

    def get_rate(self, asset: str) -> Decimal:
        return self.get_quote(asset).rate

    def get_rates(self, assets: list[str]) -> dict[str, Decimal]:
        return {asset: quote.rate for asset, quote in self.get_quotes(assets).items()}

    def get_quote(self, asset: str) -> RateQuote:
        normalized = self.normalize_asset(asset)
        return self.get_quotes([normalized])[normalized]

    def get_quotes(self, assets: list[str]) -> dict[str, RateQuote]:
        """Quote several assets with at most one upstream request for the cache misses."""
        requested = [self.normalize_asset(asset) for asset in assets]

        quotes: dict[str, RateQuote] = {}
        misses: list[str] = []
        for asset in dict.fromkeys(requested):
            cached, hit = self.cache.get(self._key(asset))
            if hit and cached is not None:
                quotes[asset] = cached
            else:
                misses.append(asset)

        if misses:
            for asset, quote in self._resolve(misses).items():
                self.cache.put(self._key(asset), quote, self.cache_ttl_seconds)
                quotes[asset] = quote
        return quotes

    def _resolve(self, assets: list[str]) -> dict[str, RateQuote]:
        try:
            live = self.source.fetch_rates(assets, self.quote_currency)
        except UpstreamUnavailableError as exc:
            logger.warning("Rate source unavailable for %s: %s", ", ".join(assets), exc)
            live = {}

        now = self._clock()
        valid_until = now + timedelta(seconds=self.cache_ttl_seconds)
        resolved: dict[str, RateQuote] = {}
        for asset in assets:
            rate = live.get(asset)
            source = QuoteSource.LIVE
            if rate is None or rate <= 0:
                rate = self.fallback.rate(asset)
                source = QuoteSource.FALLBACK
                logger.warning(
                    "Using fallback rate for %s/%s: %s",
                    asset,
                    self.quote_currency,
                    rate,
                )
            resolved[asset] = RateQuote(
                asset=asset,
                quote_currency=self.quote_currency,
                rate=rate,
                source=source,
                fetched_at=now,
                valid_until=valid_until,
            )
        return resolved

    def _key(self, asset: str) -> tuple[str, str]:
        return asset, self.quote_currency


__all__ = ["RateProvider"]
