"""
Monetary precision helpers for ticket totals.

All amounts are Decimals quantized to the currency's minor unit. Rounding is
ROUND_HALF_UP and happens once per computed amount; nothing is accumulated
from previously rounded values, so repeated recomputation cannot drift.

Key Principles:
1. NEVER use float for money
2. Quantize once per derived amount (line subtotal, tax, tip)
3. Allocations are done in integer minor units and must sum exactly
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import List, Union

# Currency minor unit exponents (how many decimal places)
CURRENCY_EXPONENT = {
    # Zero-decimal currencies
    "CLP": 0,  # Chilean Peso (no subunit)
    "JPY": 0,  # Japanese Yen
    "KRW": 0,  # South Korean Won
    "PYG": 0,  # Paraguayan Guarani

    # 2-decimal currencies
    "USD": 2,
    "EUR": 2,
    "GBP": 2,
    "ARS": 2,
    "MXN": 2,
    "PEN": 2,
    "COP": 2,

    # 3-decimal currencies
    "KWD": 3,
    "BHD": 3,
}

Number = Union[Decimal, str, int]


def currency_exponent(currency: str) -> int:
    """
    Get the number of decimal places for a currency.

    Examples:
        >>> currency_exponent("CLP")
        0
        >>> currency_exponent("USD")
        2
    """
    return CURRENCY_EXPONENT.get(currency.upper(), 2)


def quantize_decimal(currency: str) -> Decimal:
    """Smallest unit of the currency as a Decimal (Decimal('1') for CLP, Decimal('0.01') for USD)."""
    return Decimal(10) ** -currency_exponent(currency)


def quantize(currency: str, amount: Number) -> Decimal:
    """
    Round to currency decimals using round-half-up.

    Examples:
        >>> quantize("USD", "10.125")
        Decimal('10.13')
        >>> quantize("CLP", "474.5")
        Decimal('475')
    """
    if isinstance(amount, float):
        raise TypeError("Money amounts must not be floats")
    return Decimal(amount).quantize(quantize_decimal(currency), rounding=ROUND_HALF_UP)


def to_minor(currency: str, amount: Number) -> int:
    """
    Convert to integer minor units after quantization.

    Examples:
        >>> to_minor("USD", "10.127")
        1013
        >>> to_minor("CLP", "2975")
        2975
    """
    quantized = quantize(currency, amount)
    exponent = currency_exponent(currency)
    return int((quantized * (10 ** exponent)).to_integral_value())


def from_minor(currency: str, minor: int) -> Decimal:
    """
    Convert integer minor units back to a quantized Decimal.

    Examples:
        >>> from_minor("USD", 1013)
        Decimal('10.13')
    """
    exponent = currency_exponent(currency)
    return quantize(currency, Decimal(minor) / (10 ** exponent))


def allocate_minor(weights: List[int], total_minor: int) -> List[int]:
    """
    Allocate total_minor across slots proportionally by weights.

    Each slot gets the floor of its exact share; the remaining units go to the
    slots with the largest remainders, ties broken by position. Integer
    arithmetic throughout.

    Guarantees:
    - sum(result) == total_minor
    - Deterministic for the same inputs

    Examples:
        >>> allocate_minor([100, 100, 100], 100)
        [34, 33, 33]
        >>> allocate_minor([2000, 500], 250)
        [200, 50]
    """
    total_weight = sum(weights)

    if total_weight == 0 or total_minor == 0:
        return [0] * len(weights)

    floors = []
    remainders = []
    for index, weight in enumerate(weights):
        share, remainder = divmod(weight * total_minor, total_weight)
        floors.append(share)
        remainders.append((-remainder, index))

    leftover = total_minor - sum(floors)
    remainders.sort()

    result = floors[:]
    for i in range(leftover):
        _, idx = remainders[i]
        result[idx] += 1

    return result


def validate_minor_sum(
    components: List[int],
    expected_total: int,
    context: str = "",
    tolerance: int = 0,
) -> None:
    """
    Validate that sum of components equals expected total.

    Raises ValueError on mismatch.

    Examples:
        >>> validate_minor_sum([50, 30, 20], 100)
        >>> validate_minor_sum([50, 30, 21], 100)
        Traceback (most recent call last):
        ...
        ValueError: Minor unit sum mismatch: expected 100, got 101 (diff: +1)
    """
    actual = sum(components)
    diff = actual - expected_total

    if abs(diff) > tolerance:
        sign = "+" if diff > 0 else ""
        raise ValueError(
            f"Minor unit sum mismatch{' ' + context if context else ''}: "
            f"expected {expected_total}, got {actual} "
            f"(diff: {sign}{diff})"
        )
