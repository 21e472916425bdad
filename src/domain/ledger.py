from __future__ import annotations

import secrets
from datetime import datetime, timezone
from decimal import Decimal
from enum import StrEnum
from typing import Any, Literal, NewType

from pydantic import BaseModel, ConfigDict, Field, model_validator

AccountId = NewType("AccountId", str)
Reference = NewType("Reference", str)


class EntryKind(StrEnum):
    BUY = "buy"
    SELL = "sell"
    FEE = "fee"
    DEPOSIT = "deposit"


class EntryStatus(StrEnum):
    COMPLETED = "completed"


def generate_reference(now: datetime | None = None) -> Reference:
    """Return a fresh ``TXN_<unix-seconds>_<random>`` idempotency key."""
    timestamp = int((now or datetime.now(timezone.utc)).timestamp())
    return Reference(f"TXN_{timestamp}_{secrets.token_hex(8)}")


class _EntryMetadata(BaseModel):
    """Typed entry context, serialized under the legacy JSON keys (the field aliases)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    version: Literal[1] = 1

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class BuyMetadata(_EntryMetadata):
    fiat_amount: Decimal = Field(alias="naira_amount")
    total: Decimal = Field(alias="total_debited")


class SellMetadata(_EntryMetadata):
    fiat_value: Decimal = Field(alias="naira_value")
    credit: Decimal = Field(alias="credit_received")


class FeeMetadata(_EntryMetadata):
    parent_reference: str = Field(alias="parent_transaction")
    description: str


class DepositMetadata(_EntryMetadata):
    description: str


EntryMetadata = BuyMetadata | SellMetadata | FeeMetadata | DepositMetadata

METADATA_TYPES: dict[EntryKind, type[EntryMetadata]] = {
    EntryKind.BUY: BuyMetadata,
    EntryKind.SELL: SellMetadata,
    EntryKind.FEE: FeeMetadata,
    EntryKind.DEPOSIT: DepositMetadata,
}


def parse_metadata(kind: EntryKind, payload: dict[str, Any]) -> EntryMetadata:
    return METADATA_TYPES[kind].model_validate(payload)


class LedgerEntry(BaseModel):
    """Immutable audit record of one financial event.

    Trade entries (buy/sell) carry the rate they executed at; fee and deposit
    entries never do. Amounts are unsigned, the kind gives direction.
    """

    model_config = ConfigDict(frozen=True)

    reference: Reference = Field(default_factory=generate_reference)
    account_id: AccountId
    kind: EntryKind
    asset: str
    amount: Decimal
    fee: Decimal = Decimal(0)
    rate: Decimal | None = None
    status: EntryStatus = EntryStatus.COMPLETED
    metadata: EntryMetadata
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _validate_fields(self) -> LedgerEntry:
        if not self.reference:
            raise ValueError("LedgerEntry.reference must be non-empty")
        # A zero-fee configuration still records its (zero) fee entry.
        if self.amount < 0 or (self.amount == 0 and self.kind != EntryKind.FEE):
            raise ValueError("LedgerEntry.amount must be > 0")
        if self.fee < 0:
            raise ValueError("LedgerEntry.fee must be >= 0")
        is_trade = self.kind in (EntryKind.BUY, EntryKind.SELL)
        if is_trade and (self.rate is None or self.rate <= 0):
            raise ValueError(f"{self.kind} entries require a positive rate")
        if not is_trade and self.rate is not None:
            raise ValueError(f"{self.kind} entries do not carry a rate")
        if not isinstance(self.metadata, METADATA_TYPES[self.kind]):
            raise ValueError(f"{self.kind} entries require {METADATA_TYPES[self.kind].__name__}")
        return self


class LedgerPage(BaseModel):
    items: list[LedgerEntry]
    page: int
    per_page: int
    total: int


__all__ = [
    "AccountId",
    "BuyMetadata",
    "DepositMetadata",
    "EntryKind",
    "EntryMetadata",
    "EntryStatus",
    "FeeMetadata",
    "LedgerEntry",
    "LedgerPage",
    "METADATA_TYPES",
    "Reference",
    "SellMetadata",
    "generate_reference",
    "parse_metadata",
]
