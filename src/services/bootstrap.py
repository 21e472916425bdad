from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import Engine

from config import AppSettings
from db.db import create_db_engine, create_session_factory
from db.ledger_store import LedgerStore
from domain.fees import FeeCalculator

from .coingecko_source import CoinGeckoSource, _CoinGeckoClient
from .portfolio import PortfolioView
from .rate_cache import InMemoryRateCache
from .rate_provider import RateProvider
from .rate_sources import RateSource
from .trade_engine import TradeEngine


@dataclass(frozen=True)
class TradingServices:
    store: LedgerStore
    rates: RateProvider
    engine: TradeEngine
    portfolio: PortfolioView
    db_engine: Engine

    def close(self) -> None:
        self.db_engine.dispose()


def build_services(settings: AppSettings, *, source: RateSource | None = None) -> TradingServices:
    trading_config = settings.trading_config()
    db_engine = create_db_engine(settings.database_url)
    store = LedgerStore(
        create_session_factory(db_engine),
        trading_config=trading_config,
        max_attempts=settings.storage_max_attempts,
    )
    resolved_source = source or CoinGeckoSource(
        client=_CoinGeckoClient(
            base_url=settings.coingecko_base_url,
            timeout=settings.coingecko_timeout_seconds,
            api_key=settings.coingecko_api_key,
        )
    )
    rates = RateProvider.from_config(trading_config, source=resolved_source, cache=InMemoryRateCache())
    engine = TradeEngine(
        store=store,
        rates=rates,
        fees=FeeCalculator.from_config(trading_config),
        trading_config=trading_config,
    )
    portfolio = PortfolioView(store=store, rates=rates, trading_config=trading_config)
    return TradingServices(store=store, rates=rates, engine=engine, portfolio=portfolio, db_engine=db_engine)


__all__ = ["TradingServices", "build_services"]
