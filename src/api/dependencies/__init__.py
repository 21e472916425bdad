from typing import Annotated

from fastapi import Depends, Header, Request

from db.ledger_store import LedgerStore
from domain.errors import ValidationError
from services.bootstrap import TradingServices
from services.portfolio import PortfolioView
from services.trade_engine import TradeEngine


def get_services(request: Request) -> TradingServices:
    return request.app.state.services


def get_user_id(x_user_id: Annotated[str | None, Header()] = None) -> str:
    # Authentication happens upstream; the header carries the verified identity.
    if not x_user_id:
        raise ValidationError("Missing authenticated user identity", code="unauthenticated")
    return x_user_id


def get_trade_engine(services: Annotated[TradingServices, Depends(get_services)]) -> TradeEngine:
    return services.engine


def get_portfolio_view(services: Annotated[TradingServices, Depends(get_services)]) -> PortfolioView:
    return services.portfolio


def get_ledger_store(services: Annotated[TradingServices, Depends(get_services)]) -> LedgerStore:
    return services.store
