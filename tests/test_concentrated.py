"""Tests for concentrated liquidity math"""

from decimal import Decimal

import pytest

from hyperprobe.amm.concentrated import (
    MAX_SQRT_RATIO,
    MAX_TICK,
    MIN_SQRT_RATIO,
    MIN_TICK,
    Q96,
    compute_swap_within_tick,
    get_sqrt_ratio_at_tick,
    price_to_sqrt_price_x96,
    price_to_tick,
    quote_from_sqrt_price,
    sqrt_price_x96_to_price,
    tick_to_price,
)
from hyperprobe.errors import InsufficientLiquidityError


class TestSqrtRatioAtTick:
    """Test the integer tick math"""

    def test_tick_zero(self):
        assert get_sqrt_ratio_at_tick(0) == Q96

    def test_bounds(self):
        assert get_sqrt_ratio_at_tick(MIN_TICK) == MIN_SQRT_RATIO
        assert get_sqrt_ratio_at_tick(MAX_TICK) == MAX_SQRT_RATIO

    def test_out_of_range(self):
        with pytest.raises(ValueError):
            get_sqrt_ratio_at_tick(MAX_TICK + 1)
        with pytest.raises(ValueError):
            get_sqrt_ratio_at_tick(MIN_TICK - 1)

    @pytest.mark.parametrize("tick", [-50000, -1, 1, 60, 50000])
    def test_matches_float_approximation(self, tick):
        expected = 1.0001 ** (tick / 2)
        assert get_sqrt_ratio_at_tick(tick) / Q96 == pytest.approx(expected, rel=1e-9)

    def test_monotonic(self):
        ratios = [get_sqrt_ratio_at_tick(t) for t in (-1000, -10, 0, 10, 1000)]
        assert ratios == sorted(ratios)


class TestPriceConversions:
    """Test sqrtPriceX96 and tick price conversions"""

    def test_unit_price(self):
        assert sqrt_price_x96_to_price(Q96, 18, 18) == 1

    def test_decimals_adjustment(self):
        # token0 with 18 decimals against token1 with 6 decimals
        assert sqrt_price_x96_to_price(Q96, 18, 6) == Decimal(10) ** 12

    def test_price_to_sqrt_price_unit(self):
        assert price_to_sqrt_price_x96(1, 18, 18) == Q96

    def test_price_round_trip(self):
        sqrt_price = price_to_sqrt_price_x96("2500", 18, 6)
        price = sqrt_price_x96_to_price(sqrt_price, 18, 6)
        assert abs(price - Decimal(2500)) < Decimal("0.000001")

    def test_invalid_sqrt_price(self):
        with pytest.raises(ValueError):
            sqrt_price_x96_to_price(0, 18, 18)

    def test_invalid_price(self):
        with pytest.raises(ValueError):
            price_to_sqrt_price_x96(-1, 18, 18)

    def test_tick_zero_price(self):
        assert tick_to_price(0, 18, 18) == 1

    @pytest.mark.parametrize("tick", [-100, 0, 100, 69080])
    def test_tick_round_trip(self, tick):
        assert price_to_tick(tick_to_price(tick, 18, 18), 18, 18) == tick

    def test_price_between_ticks_floors(self):
        assert price_to_tick("1.00005", 18, 18) == 0
        assert price_to_tick("0.99995", 18, 18) == -1

    def test_tick_out_of_range(self):
        with pytest.raises(ValueError):
            tick_to_price(MAX_TICK + 1, 18, 18)


class TestSwapEstimates:
    """Test spot and in-tick swap estimates"""

    def test_quote_from_sqrt_price_at_parity(self):
        assert quote_from_sqrt_price(10**18, Q96, True, 3000) == 997 * 10**15
        assert quote_from_sqrt_price(10**18, Q96, False, 3000) == 997 * 10**15

    def test_quote_from_sqrt_price_no_fee(self):
        # sqrt price of 2 means token0 is worth 4 token1
        assert quote_from_sqrt_price(10**6, 2 * Q96, True, 0) == 4 * 10**6
        assert quote_from_sqrt_price(4 * 10**6, 2 * Q96, False, 0) == 10**6

    def test_quote_invalid_fee(self):
        with pytest.raises(ValueError):
            quote_from_sqrt_price(10**18, Q96, True, 1_000_000)

    def test_swap_zero_for_one_moves_price_down(self):
        amount_out, sqrt_after = compute_swap_within_tick(Q96, 10**24, 10**18, 3000, True)

        assert sqrt_after < Q96
        assert 996 * 10**15 < amount_out < 997 * 10**15

    def test_swap_one_for_zero_moves_price_up(self):
        amount_out, sqrt_after = compute_swap_within_tick(Q96, 10**24, 10**18, 3000, False)

        assert sqrt_after > Q96
        assert 996 * 10**15 < amount_out < 997 * 10**15

    def test_in_tick_output_below_spot_estimate(self):
        spot = quote_from_sqrt_price(10**20, Q96, True, 3000)
        in_tick, _ = compute_swap_within_tick(Q96, 10**22, 10**20, 3000, True)

        assert in_tick < spot

    def test_zero_liquidity_raises(self):
        with pytest.raises(InsufficientLiquidityError):
            compute_swap_within_tick(Q96, 0, 10**18, 3000, True)

    def test_dust_amount_returns_unchanged_price(self):
        assert compute_swap_within_tick(Q96, 10**24, 0, 3000, True) == (0, Q96)

    def test_swap_leaving_price_range_raises(self):
        with pytest.raises(InsufficientLiquidityError):
            compute_swap_within_tick(Q96, 1, 10**40, 3000, False)
