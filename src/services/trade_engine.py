from __future__ import annotations

import logging
from decimal import Decimal

from pydantic import BaseModel

from db.ledger_store import LedgerStore, LedgerTransaction
from domain.errors import BelowMinimumError, InsufficientBalanceError, TradingError, ValidationError
from domain.fees import FeeCalculator
from domain.ledger import (
    AccountId,
    BuyMetadata,
    EntryKind,
    FeeMetadata,
    LedgerEntry,
    SellMetadata,
)
from domain.money import quantize_crypto, quantize_fiat, to_decimal
from domain.pricing import PriceProvider
from domain.trading_config import TradingConfig

logger = logging.getLogger(__name__)


class TradeBalances(BaseModel):
    fiat: Decimal
    crypto: Decimal


class BuyResult(BaseModel):
    entry: LedgerEntry
    fee_entry: LedgerEntry
    crypto_amount: Decimal
    rate: Decimal
    fee: Decimal
    balances: TradeBalances


class SellResult(BaseModel):
    entry: LedgerEntry
    fee_entry: LedgerEntry
    fiat_value: Decimal
    rate: Decimal
    fee: Decimal
    credit: Decimal
    balances: TradeBalances


class TradeEngine:
    """Execute buys and sells against one account at a single quoted rate.

    All validation that does not need the locked account happens before the
    ledger transaction opens, and the rate is resolved before it opens too,
    so no network I/O runs while the account row is locked. A rejected trade
    writes nothing.
    """

    def __init__(
        self,
        *,
        store: LedgerStore,
        rates: PriceProvider,
        fees: FeeCalculator,
        trading_config: TradingConfig,
    ) -> None:
        self._store = store
        self._rates = rates
        self._fees = fees
        self._config = trading_config

    def buy(self, user_id: str, asset: str, fiat_amount: Decimal | int | str) -> BuyResult:
        try:
            result = self._buy(user_id, asset, fiat_amount)
        except TradingError as exc:
            logger.info("Buy rejected for user %s asset %s: %s", user_id, asset, exc.code)
            raise
        logger.info(
            "Buy committed for user %s: %s %s at %s (refs %s, %s)",
            user_id,
            result.crypto_amount,
            result.entry.asset,
            result.rate,
            result.entry.reference,
            result.fee_entry.reference,
        )
        return result

    def sell(self, user_id: str, asset: str, crypto_amount: Decimal | int | str) -> SellResult:
        try:
            result = self._sell(user_id, asset, crypto_amount)
        except TradingError as exc:
            logger.info("Sell rejected for user %s asset %s: %s", user_id, asset, exc.code)
            raise
        logger.info(
            "Sell committed for user %s: %s %s at %s (refs %s, %s)",
            user_id,
            result.entry.amount,
            result.entry.asset,
            result.rate,
            result.entry.reference,
            result.fee_entry.reference,
        )
        return result

    def _buy(self, user_id: str, asset: str, fiat_amount: Decimal | int | str) -> BuyResult:
        symbol = self._rates.normalize_asset(asset)
        requested = self._positive_amount(fiat_amount)
        # Compared before rounding so 4999.995 cannot round up past the floor.
        if requested < self._config.min_buy_amount:
            raise BelowMinimumError(
                kind="buy",
                amount=requested,
                minimum=self._config.min_buy_amount,
                currency=self._config.fiat_currency,
            )
        amount = quantize_fiat(requested)

        rate = self._rates.get_rate(symbol)
        cost = self._fees.buy_total(amount)
        crypto_amount = quantize_crypto(amount / rate)
        if crypto_amount <= 0:
            raise ValidationError(f"Amount is too small to buy any {symbol}")

        def apply(tx: LedgerTransaction) -> BuyResult:
            account = tx.account
            account.debit_fiat(cost.total)
            account.credit_asset(symbol, crypto_amount)

            trade_entry = LedgerEntry(
                account_id=AccountId(account.user_id),
                kind=EntryKind.BUY,
                asset=symbol,
                amount=crypto_amount,
                fee=cost.fee,
                rate=rate,
                metadata=BuyMetadata(fiat_amount=cost.amount, total=cost.total),
            )
            fee_entry = self._fee_entry(account.user_id, account.fiat_currency, cost.fee, trade_entry, "purchase")
            tx.append([trade_entry, fee_entry])

            return BuyResult(
                entry=trade_entry,
                fee_entry=fee_entry,
                crypto_amount=crypto_amount,
                rate=rate,
                fee=cost.fee,
                balances=TradeBalances(fiat=account.fiat_balance, crypto=account.asset_balance(symbol)),
            )

        return self._store.with_transaction(user_id, apply)

    def _sell(self, user_id: str, asset: str, crypto_amount: Decimal | int | str) -> SellResult:
        symbol = self._rates.normalize_asset(asset)
        quantity = quantize_crypto(self._positive_amount(crypto_amount))
        if quantity <= 0:
            raise ValidationError("Amount must be greater than zero")

        # Snapshot check; debit_asset repeats it under the row lock.
        available = self._store.get_account(user_id).asset_balance(symbol)
        if available < quantity:
            raise InsufficientBalanceError(asset=symbol, required=quantity, available=available)

        rate = self._rates.get_rate(symbol)
        fiat_value = quantize_fiat(quantity * rate)
        # The floor applies to the value at the pulled rate, not to the raw quantity.
        if fiat_value < self._config.min_sell_amount:
            raise BelowMinimumError(
                kind="sell",
                amount=fiat_value,
                minimum=self._config.min_sell_amount,
                currency=self._config.fiat_currency,
            )
        proceeds = self._fees.sell_credit(fiat_value)
        if proceeds.credit <= 0:
            raise ValidationError("Sale value does not cover the trading fee")

        def apply(tx: LedgerTransaction) -> SellResult:
            account = tx.account
            account.debit_asset(symbol, quantity)
            account.credit_fiat(proceeds.credit)

            trade_entry = LedgerEntry(
                account_id=AccountId(account.user_id),
                kind=EntryKind.SELL,
                asset=symbol,
                amount=quantity,
                fee=proceeds.fee,
                rate=rate,
                metadata=SellMetadata(fiat_value=proceeds.amount, credit=proceeds.credit),
            )
            fee_entry = self._fee_entry(account.user_id, account.fiat_currency, proceeds.fee, trade_entry, "sale")
            tx.append([trade_entry, fee_entry])

            return SellResult(
                entry=trade_entry,
                fee_entry=fee_entry,
                fiat_value=proceeds.amount,
                rate=rate,
                fee=proceeds.fee,
                credit=proceeds.credit,
                balances=TradeBalances(fiat=account.fiat_balance, crypto=account.asset_balance(symbol)),
            )

        return self._store.with_transaction(user_id, apply)

    @staticmethod
    def _fee_entry(
        user_id: str,
        fiat_currency: str,
        fee: Decimal,
        parent: LedgerEntry,
        action: str,
    ) -> LedgerEntry:
        return LedgerEntry(
            account_id=AccountId(user_id),
            kind=EntryKind.FEE,
            asset=fiat_currency,
            amount=fee,
            metadata=FeeMetadata(
                parent_reference=parent.reference,
                description=f"Trading fee for {parent.asset} {action}",
            ),
        )

    @staticmethod
    def _positive_amount(value: Decimal | int | str) -> Decimal:
        try:
            amount = to_decimal(value)
        except ValueError as exc:
            raise ValidationError("Amount must be a number") from exc
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero")
        return amount


__all__ = ["BuyResult", "SellResult", "TradeBalances", "TradeEngine"]
