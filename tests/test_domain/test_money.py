"""Tests for integer minor-unit money arithmetic."""

from __future__ import annotations

from decimal import Decimal

import pytest

from legal_marketplace.domain.money import apply_rate, percent_of, split_fee


class TestApplyRate:
    def test_platform_fee(self) -> None:
        assert apply_rate(10_000, Decimal("0.15")) == 1500

    def test_rounds_half_up(self) -> None:
        # 45001 * 0.5 = 22500.5
        assert apply_rate(45_001, Decimal("0.5")) == 22_501
        # 3 * 0.15 = 0.45
        assert apply_rate(3, Decimal("0.15")) == 0
        # 10 * 0.15 = 1.5
        assert apply_rate(10, Decimal("0.15")) == 2

    def test_zero_rate(self) -> None:
        assert apply_rate(12_345, Decimal("0")) == 0


class TestSplitFee:
    @pytest.mark.parametrize("amount", [1, 10, 999, 10_000, 45_001, 1_234_567])
    def test_parts_always_add_up(self, amount: int) -> None:
        fee, net = split_fee(amount, Decimal("0.15"))
        assert fee + net == amount

    def test_scenario_amount(self) -> None:
        assert split_fee(10_000, Decimal("0.15")) == (1500, 8500)


class TestPercentOf:
    def test_dispute_share(self) -> None:
        assert percent_of(22_500, 60) == 13_500

    def test_half_unit_rounds_up(self) -> None:
        # 33% of 25 = 8.25, 35% of 25 = 8.75, 50% of 25 = 12.5
        assert percent_of(25, 33) == 8
        assert percent_of(25, 35) == 9
        assert percent_of(25, 50) == 13
