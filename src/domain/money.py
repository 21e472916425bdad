"""Fixed-point helpers for fiat and crypto amounts.

Fiat amounts carry 2 fractional digits (kobo), crypto amounts carry 8
(satoshi-sized units). All rounding is ROUND_HALF_UP.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

FIAT_QUANTUM = Decimal("0.01")
CRYPTO_QUANTUM = Decimal("0.00000001")


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, float):
        # str() keeps the shortest repr, avoiding the binary expansion.
        value = str(value)
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValueError(f"Not a decimal amount: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    return result


def quantize_fiat(value: Decimal) -> Decimal:
    return value.quantize(FIAT_QUANTUM, rounding=ROUND_HALF_UP)


def quantize_crypto(value: Decimal) -> Decimal:
    return value.quantize(CRYPTO_QUANTUM, rounding=ROUND_HALF_UP)


__all__ = ["CRYPTO_QUANTUM", "FIAT_QUANTUM", "quantize_crypto", "quantize_fiat", "to_decimal"]
