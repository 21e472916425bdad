from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from db.ledger_store import LedgerStore, LedgerTransaction
from domain.errors import (
    AccountNotFoundError,
    InsufficientBalanceError,
    StorageConflictError,
    ValidationError,
)
from domain.ledger import AccountId, DepositMetadata, EntryKind, LedgerEntry
from domain.trading_config import TradingConfig


def _deposit(user_id: str, amount: str, created_at: datetime, asset: str = "NGN") -> LedgerEntry:
    return LedgerEntry(
        account_id=AccountId(user_id),
        kind=EntryKind.DEPOSIT,
        asset=asset,
        amount=Decimal(amount),
        metadata=DepositMetadata(description="top up"),
        created_at=created_at,
    )


def test_provision_creates_balances_and_deposit_entry(store: LedgerStore) -> None:
    account = store.provision_account("alice")

    assert account.fiat_balance == Decimal("100000.00")
    assert account.fiat_currency == "NGN"
    assert account.assets == {"BTC": Decimal(0), "ETH": Decimal(0), "USDT": Decimal(0)}

    stored = store.get_account("alice")
    assert stored == account

    page = store.list_entries("alice")
    assert page.total == 1
    deposit = page.items[0]
    assert deposit.kind == EntryKind.DEPOSIT
    assert deposit.amount == Decimal("100000.00")
    assert deposit.rate is None
    assert deposit.metadata == DepositMetadata(description="Initial balance")


def test_provision_with_zero_seed_writes_no_entry(store: LedgerStore) -> None:
    store.provision_account("bob", initial_fiat_balance=Decimal(0))

    assert store.get_account("bob").fiat_balance == Decimal(0)
    assert store.list_entries("bob").total == 0


def test_duplicate_provisioning_is_rejected(store: LedgerStore) -> None:
    store.provision_account("alice")

    with pytest.raises(ValidationError) as exc_info:
        store.provision_account("alice", initial_fiat_balance=Decimal("5"))

    assert exc_info.value.code == "account_exists"
    assert store.get_account("alice").fiat_balance == Decimal("100000.00")
    assert store.list_entries("alice").total == 1


def test_negative_seed_is_rejected(store: LedgerStore) -> None:
    with pytest.raises(ValidationError):
        store.provision_account("alice", initial_fiat_balance=Decimal("-1"))

    with pytest.raises(AccountNotFoundError):
        store.get_account("alice")


def test_missing_account_raises(store: LedgerStore) -> None:
    with pytest.raises(AccountNotFoundError):
        store.get_account("ghost")
    with pytest.raises(AccountNotFoundError):
        store.list_entries("ghost")
    with pytest.raises(AccountNotFoundError):
        store.with_transaction("ghost", lambda tx: None)


def test_with_transaction_commits_balances_and_entries_together(store: LedgerStore) -> None:
    store.provision_account("alice")
    now = datetime.now(timezone.utc)

    def top_up(tx: LedgerTransaction) -> str:
        tx.account.credit_fiat(Decimal("250.50"))
        entry = _deposit("alice", "250.50", now)
        tx.append([entry])
        return entry.reference

    reference = store.with_transaction("alice", top_up)

    assert store.get_account("alice").fiat_balance == Decimal("100250.50")
    newest = store.list_entries("alice").items[0]
    assert newest.reference == reference
    assert newest.created_at == now


def test_exception_rolls_back_everything(store: LedgerStore) -> None:
    store.provision_account("alice")

    def failing(tx: LedgerTransaction) -> None:
        tx.account.credit_fiat(Decimal("1000"))
        tx.append([_deposit("alice", "1000", datetime.now(timezone.utc))])
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        store.with_transaction("alice", failing)

    assert store.get_account("alice").fiat_balance == Decimal("100000.00")
    assert store.list_entries("alice").total == 1


def test_negative_balance_is_never_committed(store: LedgerStore) -> None:
    store.provision_account("alice")

    def overdraw(tx: LedgerTransaction) -> None:
        tx.account.fiat_balance = Decimal("-1")

    with pytest.raises(InsufficientBalanceError):
        store.with_transaction("alice", overdraw)

    assert store.get_account("alice").fiat_balance == Decimal("100000.00")


def test_entries_for_another_account_are_rejected(store: LedgerStore) -> None:
    store.provision_account("alice")

    def foreign(tx: LedgerTransaction) -> None:
        tx.append([_deposit("bob", "1", datetime.now(timezone.utc))])

    with pytest.raises(ValueError):
        store.with_transaction("alice", foreign)


def test_conflicts_are_retried_then_surfaced(
    session_factory: sessionmaker[Session], trading_config: TradingConfig
) -> None:
    store = LedgerStore(session_factory, trading_config=trading_config, max_attempts=2)
    store.provision_account("alice")
    attempts: list[int] = []

    def conflicting(tx: LedgerTransaction) -> None:
        attempts.append(1)
        raise StaleDataError("row changed underneath")

    with pytest.raises(StorageConflictError) as exc_info:
        store.with_transaction("alice", conflicting)

    assert len(attempts) == 2
    assert exc_info.value.attempts == 2


def test_conflict_then_success_returns_result(store: LedgerStore) -> None:
    store.provision_account("alice")
    attempts: list[int] = []

    def flaky(tx: LedgerTransaction) -> Decimal:
        attempts.append(1)
        if len(attempts) == 1:
            raise StaleDataError("row changed underneath")
        tx.account.credit_fiat(Decimal("1"))
        return tx.account.fiat_balance

    assert store.with_transaction("alice", flaky) == Decimal("100001.00")
    assert len(attempts) == 2


def test_list_entries_pages_newest_first_with_filters(store: LedgerStore) -> None:
    store.provision_account("alice")
    base = datetime.now(timezone.utc) + timedelta(minutes=1)

    def record(tx: LedgerTransaction) -> None:
        entries = [_deposit("alice", str(index + 1), base + timedelta(minutes=index)) for index in range(5)]
        entries.append(_deposit("alice", "7", base + timedelta(minutes=10), asset="USDT"))
        tx.append(entries)

    store.with_transaction("alice", record)

    first = store.list_entries("alice", page=1, per_page=3)
    second = store.list_entries("alice", page=2, per_page=3)
    third = store.list_entries("alice", page=3, per_page=3)

    assert first.total == 7
    assert [entry.amount for entry in first.items] == [Decimal("7"), Decimal("5"), Decimal("4")]
    assert [entry.amount for entry in second.items] == [Decimal("3"), Decimal("2"), Decimal("1")]
    assert [entry.metadata for entry in third.items] == [DepositMetadata(description="Initial balance")]

    usdt = store.list_entries("alice", asset="usdt")
    assert usdt.total == 1
    assert usdt.items[0].asset == "USDT"

    assert store.list_entries("alice", kind=EntryKind.BUY).total == 0
    assert store.list_entries("alice", kind=EntryKind.DEPOSIT).total == 7


@pytest.mark.parametrize(("page", "per_page"), [(0, 15), (1, 0), (1, 101)])
def test_list_entries_rejects_bad_paging(store: LedgerStore, page: int, per_page: int) -> None:
    store.provision_account("alice")

    with pytest.raises(ValidationError):
        store.list_entries("alice", page=page, per_page=per_page)
