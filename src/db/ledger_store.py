from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from db.repositories import AccountRepository, LedgerEntryRepository
from domain.account import Account
from domain.errors import InsufficientBalanceError, StorageConflictError, ValidationError
from domain.ledger import (
    AccountId,
    DepositMetadata,
    EntryKind,
    LedgerEntry,
    LedgerPage,
)
from domain.money import quantize_fiat
from domain.trading_config import TradingConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_PER_PAGE = 100


class LedgerTransaction:
    """Mutable view handed to ``LedgerStore.with_transaction`` callbacks."""

    def __init__(self, account: Account) -> None:
        self.account = account
        self.entries: list[LedgerEntry] = []

    def append(self, entries: list[LedgerEntry]) -> None:
        for entry in entries:
            if entry.account_id != self.account.user_id:
                msg = f"Entry {entry.reference} belongs to {entry.account_id}, not {self.account.user_id}"
                raise ValueError(msg)
        self.entries.extend(entries)


class LedgerStore:
    """Durable balances plus the append-only ledger, mutated only inside atomic transactions."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        trading_config: TradingConfig,
        max_attempts: int = 3,
    ) -> None:
        if max_attempts <= 0:
            msg = "max_attempts must be > 0"
            raise ValueError(msg)
        self._session_factory = session_factory
        self._config = trading_config
        self._max_attempts = max_attempts

    def with_transaction(self, user_id: str, fn: Callable[[LedgerTransaction], T]) -> T:
        """Run ``fn`` against a locked copy of the account and commit its effects atomically.

        Balance changes made on ``tx.account`` and entries passed to ``tx.append``
        are written together or not at all. Exceptions raised by ``fn`` roll the
        transaction back and propagate unchanged. Lock contention and lost-update
        conflicts re-run ``fn`` on fresh state; after ``max_attempts`` they surface
        as StorageConflictError.
        """
        last_error: Exception | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                with self._session_factory() as session, session.begin():
                    accounts = AccountRepository(session)
                    orm_account = accounts.lock(user_id)
                    tx = LedgerTransaction(AccountRepository.to_domain(orm_account))

                    result = fn(tx)

                    self._check_invariants(tx.account)
                    accounts.apply(orm_account, tx.account)
                    LedgerEntryRepository(session).append_many(tx.entries)
                return result
            except (StaleDataError, OperationalError, IntegrityError) as exc:
                last_error = exc
                logger.warning(
                    "Ledger transaction for user %s failed on attempt %d/%d: %s",
                    user_id,
                    attempt,
                    self._max_attempts,
                    type(exc).__name__,
                )
        raise StorageConflictError(attempts=self._max_attempts) from last_error

    def get_account(self, user_id: str) -> Account:
        with self._session_factory() as session:
            return AccountRepository.to_domain(AccountRepository(session).get(user_id))

    def provision_account(self, user_id: str, *, initial_fiat_balance: Decimal | None = None) -> Account:
        """Create the fiat balance and one zero balance per supported asset for a new user.

        A positive seed balance is recorded as a ``deposit`` entry so the ledger
        explains every fiat unit in the account.
        """
        if not user_id:
            raise ValidationError("user_id must be non-empty")
        seed = quantize_fiat(self._config.initial_fiat_balance if initial_fiat_balance is None else initial_fiat_balance)
        if seed < 0:
            raise ValidationError("Initial fiat balance must be >= 0")

        account = Account(
            user_id=user_id,
            fiat_currency=self._config.fiat_currency,
            fiat_balance=seed,
            assets={asset: Decimal(0) for asset in self._config.supported_assets},
        )
        now = datetime.now(timezone.utc)
        try:
            with self._session_factory() as session, session.begin():
                accounts = AccountRepository(session)
                if accounts.exists(user_id):
                    raise ValidationError(f"Account for user {user_id} already exists", code="account_exists")
                accounts.create(account, created_at=now)
                # Flush the account row first; the ledger references it.
                session.flush()
                if seed > 0:
                    deposit = LedgerEntry(
                        account_id=AccountId(user_id),
                        kind=EntryKind.DEPOSIT,
                        asset=self._config.fiat_currency,
                        amount=seed,
                        metadata=DepositMetadata(description="Initial balance"),
                        created_at=now,
                    )
                    LedgerEntryRepository(session).append_many([deposit])
        except IntegrityError as exc:
            raise ValidationError(f"Account for user {user_id} already exists", code="account_exists") from exc

        logger.info("Provisioned account for user %s with %s %s", user_id, self._config.fiat_currency, seed)
        return account

    def list_entries(
        self,
        user_id: str,
        *,
        kind: EntryKind | None = None,
        asset: str | None = None,
        page: int = 1,
        per_page: int = 15,
    ) -> LedgerPage:
        if page < 1:
            raise ValidationError("page must be >= 1")
        if not 1 <= per_page <= MAX_PER_PAGE:
            raise ValidationError(f"per_page must be between 1 and {MAX_PER_PAGE}")

        with self._session_factory() as session:
            AccountRepository(session).get(user_id)
            items, total = LedgerEntryRepository(session).list(
                user_id,
                kind=kind,
                asset=asset,
                offset=(page - 1) * per_page,
                limit=per_page,
            )
        return LedgerPage(items=items, page=page, per_page=per_page, total=total)

    @staticmethod
    def _check_invariants(account: Account) -> None:
        negative = account.negative_balance()
        if negative is not None:
            asset, balance = negative
            raise InsufficientBalanceError(asset=asset, required=-balance, available=Decimal(0))
