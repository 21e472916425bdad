from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from db import models
from domain.account import Account
from domain.errors import AccountNotFoundError
from domain.ledger import AccountId, EntryKind, EntryStatus, LedgerEntry, Reference, parse_metadata


class AccountRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def exists(self, user_id: str) -> bool:
        return self._session.get(models.AccountOrm, user_id) is not None

    def create(self, account: Account, *, created_at: datetime) -> None:
        orm_account = models.AccountOrm(
            user_id=account.user_id,
            fiat_currency=account.fiat_currency,
            fiat_balance=account.fiat_balance,
            created_at=created_at,
        )
        orm_account.asset_balances = [
            models.AssetBalanceOrm(asset=asset, balance=balance) for asset, balance in account.assets.items()
        ]
        self._session.add(orm_account)

    def get(self, user_id: str) -> models.AccountOrm:
        orm_account = self._session.get(models.AccountOrm, user_id)
        if orm_account is None:
            raise AccountNotFoundError(user_id)
        return orm_account

    def lock(self, user_id: str) -> models.AccountOrm:
        """Load the account row with a write lock held until the transaction ends."""
        orm_account = self._session.get(models.AccountOrm, user_id, with_for_update=True)
        if orm_account is None:
            raise AccountNotFoundError(user_id)
        return orm_account

    def apply(self, orm_account: models.AccountOrm, account: Account) -> None:
        orm_account.fiat_balance = account.fiat_balance
        # Accounts never gain assets after provisioning, so every balance already has a row.
        for row in orm_account.asset_balances:
            balance = account.assets[row.asset]
            if row.balance != balance:
                row.balance = balance

    @staticmethod
    def to_domain(orm_account: models.AccountOrm) -> Account:
        return Account(
            user_id=orm_account.user_id,
            fiat_currency=orm_account.fiat_currency,
            fiat_balance=orm_account.fiat_balance,
            assets={row.asset: row.balance for row in sorted(orm_account.asset_balances, key=lambda r: r.asset)},
        )


class LedgerEntryRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def append_many(self, entries: list[LedgerEntry]) -> None:
        self._session.add_all(
            [
                models.LedgerEntryOrm(
                    reference=entry.reference,
                    account_id=entry.account_id,
                    kind=entry.kind.value,
                    asset=entry.asset,
                    amount=entry.amount,
                    fee=entry.fee,
                    rate=entry.rate,
                    status=entry.status.value,
                    entry_metadata=entry.metadata.to_payload(),
                    created_at=entry.created_at,
                )
                for entry in entries
            ]
        )

    def list(
        self,
        account_id: str,
        *,
        kind: EntryKind | None = None,
        asset: str | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> tuple[list[LedgerEntry], int]:
        """Return one page of the account's entries, newest first, plus the total match count."""
        conditions = [models.LedgerEntryOrm.account_id == account_id]
        if kind is not None:
            conditions.append(models.LedgerEntryOrm.kind == kind.value)
        if asset is not None:
            conditions.append(models.LedgerEntryOrm.asset == asset.upper())

        total = self._session.scalar(select(func.count()).select_from(models.LedgerEntryOrm).where(*conditions)) or 0

        stmt = (
            select(models.LedgerEntryOrm)
            .where(*conditions)
            .order_by(models.LedgerEntryOrm.created_at.desc(), models.LedgerEntryOrm.id.desc())
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [self._to_domain(entry) for entry in self._session.scalars(stmt)], total

    @staticmethod
    def _to_domain(orm_entry: models.LedgerEntryOrm) -> LedgerEntry:
        created_at = orm_entry.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)

        kind = EntryKind(orm_entry.kind)
        return LedgerEntry(
            reference=Reference(orm_entry.reference),
            account_id=AccountId(orm_entry.account_id),
            kind=kind,
            asset=orm_entry.asset,
            amount=orm_entry.amount,
            fee=orm_entry.fee,
            rate=orm_entry.rate,
            status=EntryStatus(orm_entry.status),
            metadata=parse_metadata(kind, orm_entry.entry_metadata),
            created_at=created_at,
        )
