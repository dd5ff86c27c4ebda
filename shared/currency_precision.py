"""
Currency Precision Configuration Module

Precision rules for the two assets the sweeper moves: the native TRX coin
and the USDT TRC-20 token. Amounts are Decimals in display units and
integers in smallest units on chain.
"""

from decimal import Decimal, ROUND_DOWN
from typing import NamedTuple

from shared.config import TOKEN_DECIMALS


class PrecisionConfig(NamedTuple):
    """Currency precision configuration"""
    currency_code: str
    smallest_unit_name: str
    decimal_places: int
    smallest_unit_per_base: int  # How many smallest units = 1 base unit


CURRENCY_PRECISION = {
    'TRX': PrecisionConfig('TRX', 'sun', 6, 10**6),
    'USDT': PrecisionConfig('USDT', 'units', TOKEN_DECIMALS, 10**TOKEN_DECIMALS),
}


class AmountConverter:
    """Utility class for converting between display amounts and smallest units"""

    @staticmethod
    def to_smallest_units(amount: Decimal, currency: str) -> int:
        """Convert a display amount to smallest units, discarding any excess precision"""
        if currency not in CURRENCY_PRECISION:
            raise ValueError(f"Unsupported currency: {currency}")

        config = CURRENCY_PRECISION[currency]
        scaled = Decimal(amount) * config.smallest_unit_per_base
        return int(scaled.to_integral_value(rounding=ROUND_DOWN))

    @staticmethod
    def from_smallest_units(smallest_units: int, currency: str) -> Decimal:
        """Convert smallest units to display amount"""
        if currency not in CURRENCY_PRECISION:
            raise ValueError(f"Unsupported currency: {currency}")

        config = CURRENCY_PRECISION[currency]
        amount = Decimal(int(smallest_units)) / Decimal(config.smallest_unit_per_base)
        return amount.quantize(Decimal('0.' + '0' * config.decimal_places))

    @staticmethod
    def format_display_amount(amount: Decimal, currency: str) -> str:
        config = CURRENCY_PRECISION[currency]
        return f"{Decimal(amount):.{config.decimal_places}f} {currency}"
