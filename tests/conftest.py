from decimal import Decimal
from pathlib import Path
from typing import Iterator

import pytest
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.db import create_db_engine, create_session_factory
from db.ledger_store import LedgerStore
from domain.fees import FeeCalculator
from domain.trading_config import TradingConfig
from services.portfolio import PortfolioView
from services.rate_cache import InMemoryRateCache
from services.bootstrap import TradingServices
from services.rate_provider import RateProvider
from services.trade_engine import TradeEngine
from tests.helpers.stub_rate_source import StubRateSource

DEFAULT_RATES = {
    "BTC": Decimal("85000000"),
    "ETH": Decimal("5000000"),
    "USDT": Decimal("1500"),
}


@pytest.fixture(scope="function")
def trading_config() -> TradingConfig:
    return TradingConfig()


@pytest.fixture(scope="function")
def db_engine(tmp_path: Path) -> Iterator[Engine]:
    # A file database: every thread gets its own connection to the same data.
    engine = create_db_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(db_engine)


@pytest.fixture(scope="function")
def store(session_factory: sessionmaker[Session], trading_config: TradingConfig) -> LedgerStore:
    return LedgerStore(session_factory, trading_config=trading_config)


@pytest.fixture(scope="function")
def rate_source() -> StubRateSource:
    return StubRateSource(DEFAULT_RATES)


@pytest.fixture(scope="function")
def rate_provider(rate_source: StubRateSource, trading_config: TradingConfig) -> RateProvider:
    return RateProvider.from_config(trading_config, source=rate_source, cache=InMemoryRateCache())


@pytest.fixture(scope="function")
def engine(store: LedgerStore, rate_provider: RateProvider, trading_config: TradingConfig) -> TradeEngine:
    return TradeEngine(
        store=store,
        rates=rate_provider,
        fees=FeeCalculator.from_config(trading_config),
        trading_config=trading_config,
    )


@pytest.fixture(scope="function")
def portfolio_view(store: LedgerStore, rate_provider: RateProvider, trading_config: TradingConfig) -> PortfolioView:
    return PortfolioView(store=store, rates=rate_provider, trading_config=trading_config)


@pytest.fixture(scope="function")
def services(
    store: LedgerStore,
    rate_provider: RateProvider,
    engine: TradeEngine,
    portfolio_view: PortfolioView,
    db_engine: Engine,
) -> TradingServices:
    return TradingServices(
        store=store, rates=rate_provider, engine=engine, portfolio=portfolio_view, db_engine=db_engine
    )
