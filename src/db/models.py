from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator


class DecimalAsString(TypeDecorator):
    impl = String
    cache_ok = True

    def process_bind_param(self, value: Decimal | None, dialect: object) -> str | None:
        if value is None:
            return None
        return str(value)

    def process_result_value(self, value: str | None, dialect: object) -> Decimal | None:
        if value is None:
            return None
        return Decimal(value)


class Base(DeclarativeBase):
    pass


class AccountOrm(Base):
    __tablename__ = "accounts"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    fiat_currency: Mapped[str] = mapped_column(String(10), nullable=False)
    fiat_balance: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    asset_balances: Mapped[list["AssetBalanceOrm"]] = relationship(
        cascade="all, delete-orphan", back_populates="account", lazy="selectin"
    )

    __mapper_args__ = {"version_id_col": version_id}


class AssetBalanceOrm(Base):
    __tablename__ = "asset_balances"
    __table_args__ = (UniqueConstraint("account_id", "asset", name="uq_asset_balances_account_asset"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(String, ForeignKey("accounts.user_id"), nullable=False)
    asset: Mapped[str] = mapped_column(String(10), nullable=False)
    balance: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)

    account: Mapped[AccountOrm] = relationship(back_populates="asset_balances")


class LedgerEntryOrm(Base):
    __tablename__ = "ledger_entries"
    __table_args__ = (Index("ix_ledger_entries_account_kind_asset", "account_id", "kind", "asset"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reference: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    account_id: Mapped[str] = mapped_column(String, ForeignKey("accounts.user_id"), nullable=False)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    asset: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    fee: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    rate: Mapped[Decimal | None] = mapped_column(DecimalAsString, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False)
    # "metadata" is reserved on declarative classes.
    entry_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
