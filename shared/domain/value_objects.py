"""
Currency amounts

Every rounding decision in the system goes through ``currency_decimals``
so JPY is never rendered or charged with a fractional part.
"""

from decimal import ROUND_HALF_UP, Decimal

SUPPORTED_CURRENCIES = ('GBP', 'USD', 'EUR', 'NGN', 'JPY', 'CNY', 'GHS', 'KES', 'ZAR')

ZERO_DECIMAL_CURRENCIES = frozenset({'JPY'})


def currency_decimals(currency: str) -> int:
    return 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2


def minor_unit_multiplier(currency: str) -> int:
    return 1 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 100


def quantize_amount(amount, currency: str) -> Decimal:
    """Round half-up to the number of decimals the currency allows."""
    exponent = Decimal(1).scaleb(-currency_decimals(currency))
    return Decimal(str(amount)).quantize(exponent, rounding=ROUND_HALF_UP)


def to_minor_units(amount, currency: str) -> int:
    """
    Convert a major-unit amount to the integer the card processor expects.

    >>> to_minor_units(Decimal('45.00'), 'GBP')
    4500
    >>> to_minor_units(Decimal('4500'), 'JPY')
    4500
    """
    scaled = Decimal(str(amount)) * minor_unit_multiplier(currency)
    return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int, currency: str) -> Decimal:
    return quantize_amount(Decimal(amount) / minor_unit_multiplier(currency), currency)
