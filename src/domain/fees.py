from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from .money import quantize_fiat
from .trading_config import TradingConfig

_HUNDRED = Decimal(100)


@dataclass(frozen=True)
class BuyCost:
    amount: Decimal
    fee: Decimal
    total: Decimal


@dataclass(frozen=True)
class SellProceeds:
    amount: Decimal
    fee: Decimal
    credit: Decimal


class FeeCalculator:
    """Percentage fee arithmetic, always settled in fiat.

    Buy: the fee is added on top of the amount the user spends.
    Sell: the fee is deducted from the proceeds the user receives.
    """

    def __init__(self, *, fee_percentage: Decimal) -> None:
        if not Decimal(0) <= fee_percentage < _HUNDRED:
            msg = "fee_percentage must be within [0, 100)"
            raise ValueError(msg)
        self.fee_percentage = fee_percentage

    @classmethod
    def from_config(cls, trading_config: TradingConfig) -> FeeCalculator:
        return cls(fee_percentage=trading_config.fee_percentage)

    def fee_for(self, amount: Decimal) -> Decimal:
        return quantize_fiat(amount * self.fee_percentage / _HUNDRED)

    def buy_total(self, amount: Decimal) -> BuyCost:
        amount = quantize_fiat(amount)
        fee = self.fee_for(amount)
        return BuyCost(amount=amount, fee=fee, total=amount + fee)

    def sell_credit(self, value: Decimal) -> SellProceeds:
        value = quantize_fiat(value)
        fee = self.fee_for(value)
        return SellProceeds(amount=value, fee=fee, credit=value - fee)


__all__ = ["BuyCost", "FeeCalculator", "SellProceeds"]
