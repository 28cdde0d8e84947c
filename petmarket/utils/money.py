"""
petmarket/utils/money.py
------------------------
Minor-unit (cent) helpers.

Every amount that takes part in invoice arithmetic is an int number of
minor units. Decimal only appears at the edges: catalog prices stored as
NUMERIC(10,2) and human-readable formatting.
"""
from decimal import Decimal, ROUND_HALF_UP

MINOR_PER_MAJOR = 100
BASIS_POINTS = 10_000

Q = Decimal('0.01')


def to_minor(amount) -> int:
    """Decimal / str / int major units → int minor units (half-up to the cent)."""
    if isinstance(amount, float):
        raise TypeError('float amounts are not accepted; use Decimal or str')
    value = Decimal(str(amount)).quantize(Q, rounding=ROUND_HALF_UP)
    return int(value * MINOR_PER_MAJOR)


def format_minor(minor: int) -> str:
    """1050 → '10.50'."""
    return str((Decimal(minor) / MINOR_PER_MAJOR).quantize(Q))


def apply_basis_points(amount: int, rate_bp: int) -> int:
    """
    amount × rate_bp / 10000, rounded half-up, in pure integer arithmetic.
    Both arguments must be non-negative.
    """
    if amount < 0 or rate_bp < 0:
        raise ValueError('amount and rate must be non-negative')
    return (amount * rate_bp + BASIS_POINTS // 2) // BASIS_POINTS
