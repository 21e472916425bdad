from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from domain.ledger import (
    AccountId,
    BuyMetadata,
    DepositMetadata,
    EntryKind,
    EntryStatus,
    FeeMetadata,
    LedgerEntry,
    SellMetadata,
    generate_reference,
    parse_metadata,
)


def _buy_entry(**overrides: object) -> LedgerEntry:
    fields: dict[str, object] = {
        "account_id": AccountId("user-1"),
        "kind": EntryKind.BUY,
        "asset": "BTC",
        "amount": Decimal("0.00058824"),
        "fee": Decimal("500"),
        "rate": Decimal("85000000"),
        "metadata": BuyMetadata(fiat_amount=Decimal("50000"), total=Decimal("50500")),
    }
    fields.update(overrides)
    return LedgerEntry(**fields)  # type: ignore[arg-type]


def test_reference_format() -> None:
    reference = generate_reference(datetime(2025, 1, 1, tzinfo=timezone.utc))

    assert re.fullmatch(r"TXN_1735689600_[0-9a-f]{16}", reference)


def test_references_do_not_repeat() -> None:
    references = {generate_reference() for _ in range(10_000)}

    assert len(references) == 10_000


def test_entry_defaults() -> None:
    entry = _buy_entry()

    assert entry.reference.startswith("TXN_")
    assert entry.status == EntryStatus.COMPLETED
    assert entry.created_at.tzinfo is not None


def test_entries_are_immutable() -> None:
    entry = _buy_entry()

    with pytest.raises(ValueError):
        entry.amount = Decimal("1")  # type: ignore[misc]


def test_trade_entries_require_rate() -> None:
    with pytest.raises(ValueError):
        _buy_entry(rate=None)


def test_fee_entries_reject_rate() -> None:
    with pytest.raises(ValueError):
        LedgerEntry(
            account_id=AccountId("user-1"),
            kind=EntryKind.FEE,
            asset="NGN",
            amount=Decimal("500"),
            rate=Decimal("1"),
            metadata=FeeMetadata(parent_reference="TXN_1_abc", description="fee"),
        )


def test_metadata_must_match_kind() -> None:
    with pytest.raises(ValueError):
        _buy_entry(metadata=SellMetadata(fiat_value=Decimal("1"), credit=Decimal("1")))


def test_zero_amount_is_only_allowed_for_fees() -> None:
    fee = LedgerEntry(
        account_id=AccountId("user-1"),
        kind=EntryKind.FEE,
        asset="NGN",
        amount=Decimal("0"),
        metadata=FeeMetadata(parent_reference="TXN_1_abc", description="fee"),
    )

    assert fee.amount == 0
    with pytest.raises(ValueError):
        _buy_entry(amount=Decimal("0"))


def test_metadata_serializes_under_legacy_keys() -> None:
    buy = BuyMetadata(fiat_amount=Decimal("50000.00"), total=Decimal("50500.00"))
    fee = FeeMetadata(parent_reference="TXN_1_abc", description="Trading fee for BTC purchase")

    assert buy.to_payload() == {"version": 1, "naira_amount": "50000.00", "total_debited": "50500.00"}
    assert fee.to_payload() == {
        "version": 1,
        "parent_transaction": "TXN_1_abc",
        "description": "Trading fee for BTC purchase",
    }


def test_parse_metadata_picks_variant_by_kind() -> None:
    sell = parse_metadata(EntryKind.SELL, {"version": 1, "naira_value": "100000.00", "credit_received": "99000.00"})
    deposit = parse_metadata(EntryKind.DEPOSIT, {"version": 1, "description": "Initial balance"})

    assert sell == SellMetadata(fiat_value=Decimal("100000"), credit=Decimal("99000"))
    assert isinstance(deposit, DepositMetadata)


def test_parse_metadata_rejects_unknown_keys() -> None:
    with pytest.raises(ValueError):
        parse_metadata(EntryKind.DEPOSIT, {"version": 1, "description": "x", "extra": True})
