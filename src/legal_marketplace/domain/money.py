"""Integer minor-unit money arithmetic.

All amounts in the engine are ``int`` counts of the smallest currency unit.
Rates are ``Decimal`` fractions. Every rounding step is round-half-up, so
``apply_rate(10_000, Decimal("0.15")) == 1500`` and
``apply_rate(45_001, Decimal("0.5")) == 22501``.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

_UNIT = Decimal("1")


def apply_rate(amount: int, rate: Decimal) -> int:
    """Return ``amount * rate`` rounded half-up to a whole minor unit."""
    return int((Decimal(amount) * Decimal(rate)).quantize(_UNIT, rounding=ROUND_HALF_UP))


def percent_of(amount: int, percent: int) -> int:
    return apply_rate(amount, Decimal(percent) / Decimal(100))


def split_fee(amount: int, fee_rate: Decimal) -> tuple[int, int]:
    """Split a gross amount into ``(platform_fee, net_amount)``.

    ``net_amount`` is always ``amount - platform_fee``, never rounded on its own.
    """
    platform_fee = apply_rate(amount, fee_rate)
    return platform_fee, amount - platform_fee
