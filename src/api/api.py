import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from time import perf_counter
from typing import Annotated, AsyncGenerator, Awaitable, Callable

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from api.dependencies import get_ledger_store, get_portfolio_view, get_trade_engine, get_user_id
from config import config
from db.ledger_store import MAX_PER_PAGE, LedgerStore
from domain.account import Account
from domain.errors import (
    AccountNotFoundError,
    BelowMinimumError,
    InsufficientBalanceError,
    StorageConflictError,
    TradingError,
    ValidationError,
)
from domain.ledger import EntryKind, LedgerPage
from services.bootstrap import build_services
from services.portfolio import Portfolio, PortfolioView
from services.trade_engine import BuyResult, SellResult, TradeEngine

logger = logging.getLogger(__name__)

ERROR_STATUS: list[tuple[type[TradingError], int]] = [
    (AccountNotFoundError, 404),
    (StorageConflictError, 409),
    (BelowMinimumError, 422),
    (InsufficientBalanceError, 422),
    (ValidationError, 422),
]


class TradeRequest(BaseModel):
    asset: str
    amount: Decimal


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI) -> AsyncGenerator[None, None]:
    services = build_services(config())
    fastapi_app.state.services = services
    yield
    services.close()


app = FastAPI(lifespan=lifespan)


@app.middleware("http")
async def log_process_time(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    start_time = perf_counter()
    response = await call_next(request)
    process_time = perf_counter() - start_time
    logger.info("Request time: %s %s: %.4fs", request.method, request.url.path, process_time)
    return response


@app.exception_handler(TradingError)
async def trading_error_handler(request: Request, exc: TradingError) -> JSONResponse:
    status_code = next((status for error_type, status in ERROR_STATUS if isinstance(exc, error_type)), 400)
    if exc.code == "unauthenticated":
        status_code = 401
    return JSONResponse(status_code=status_code, content={"code": exc.code, "message": exc.message})


@app.post("/accounts", status_code=201)
def provision_account(
    user_id: Annotated[str, Depends(get_user_id)],
    store: Annotated[LedgerStore, Depends(get_ledger_store)],
) -> Account:
    return store.provision_account(user_id)


@app.post("/trade/buy")
def buy(
    body: TradeRequest,
    user_id: Annotated[str, Depends(get_user_id)],
    engine: Annotated[TradeEngine, Depends(get_trade_engine)],
) -> BuyResult:
    return engine.buy(user_id, body.asset, body.amount)


@app.post("/trade/sell")
def sell(
    body: TradeRequest,
    user_id: Annotated[str, Depends(get_user_id)],
    engine: Annotated[TradeEngine, Depends(get_trade_engine)],
) -> SellResult:
    return engine.sell(user_id, body.asset, body.amount)


@app.get("/portfolio")
def portfolio(
    user_id: Annotated[str, Depends(get_user_id)],
    view: Annotated[PortfolioView, Depends(get_portfolio_view)],
) -> Portfolio:
    return view.get_portfolio(user_id)


@app.get("/ledger")
def ledger(
    user_id: Annotated[str, Depends(get_user_id)],
    store: Annotated[LedgerStore, Depends(get_ledger_store)],
    entry_type: Annotated[EntryKind | None, Query(alias="type")] = None,
    asset: str | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    per_page: Annotated[int, Query(ge=1, le=MAX_PER_PAGE)] = 15,
) -> LedgerPage:
    return store.list_entries(user_id, kind=entry_type, asset=asset, page=page, per_page=per_page)
