"""Tests for gas price analysis"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from hyperprobe.chains.gas import (
    GWEI,
    BlockGasSample,
    Congestion,
    GasPriceCalculator,
    GasStrategy,
    PriorityFeeStats,
)
from hyperprobe.errors import RPCError


def _sample(ratio):
    return BlockGasSample(block_number=1, base_fee_per_gas=GWEI, gas_used_ratio=ratio)


@pytest.fixture
def gas_connector(mock_connector):
    latest = {
        "number": 100,
        "baseFeePerGas": 2 * GWEI,
        "gasUsed": 9_500_000,
        "gasLimit": 10_000_000,
        "transactions": [],
    }

    async def get_block(block_number="latest", full_transactions=False):
        if block_number == "latest":
            return latest
        if block_number == 98:
            raise RPCError("block unavailable")
        return {
            "number": block_number,
            "baseFeePerGas": 2 * GWEI,
            "gasUsed": 9_500_000,
            "gasLimit": 10_000_000,
            "transactions": ["0x01", "0x02", "0x03"],
        }

    fees = {"0x01": 1 * GWEI, "0x02": 3 * GWEI, "0x03": None}

    async def get_transaction(tx_hash):
        return {"hash": tx_hash, "maxPriorityFeePerGas": fees[tx_hash]}

    mock_connector.get_block = AsyncMock(side_effect=get_block)
    mock_connector.get_transaction = AsyncMock(side_effect=get_transaction)
    return mock_connector


class TestPriorityFeeStats:
    """Test percentile statistics"""

    def test_defaults_without_samples(self):
        stats = GasPriceCalculator.calculate_priority_fee_stats([])

        assert stats.min == 1 * GWEI
        assert stats.max == 5 * GWEI
        assert stats.median == 2 * GWEI
        assert stats.p25 == 1_500_000_000
        assert stats.p75 == 3 * GWEI

    def test_percentiles(self):
        fees = [i * GWEI for i in range(10, 0, -1)]

        stats = GasPriceCalculator.calculate_priority_fee_stats(fees)

        assert stats.min == 1 * GWEI
        assert stats.max == 10 * GWEI
        assert stats.median == 6 * GWEI
        assert stats.p25 == 3 * GWEI
        assert stats.p75 == 8 * GWEI
        assert stats.average == 5_500_000_000


@pytest.mark.parametrize(
    "ratios,expected",
    [
        ([], Congestion.MEDIUM),
        ([0.1, 0.2], Congestion.LOW),
        ([0.4, 0.5], Congestion.MEDIUM),
        ([0.7, 0.8], Congestion.HIGH),
        ([0.95, 1.0], Congestion.VERY_HIGH),
    ],
)
def test_assess_congestion(ratios, expected):
    assert GasPriceCalculator.assess_congestion([_sample(r) for r in ratios]) == expected


class TestStrategyPrices:
    """Test per-strategy fee derivation"""

    @pytest.fixture
    def stats(self):
        return GasPriceCalculator.calculate_priority_fee_stats([])

    def test_low_congestion(self, stats):
        prices = GasPriceCalculator.calculate_strategy_prices(GWEI, stats, Congestion.LOW, 7)

        safe = prices[GasStrategy.SAFE]
        assert safe.gas_price == 2_700_000_000
        assert safe.max_fee_per_gas == 3_000_000_000
        assert safe.max_priority_fee_per_gas == 1_500_000_000
        assert safe.block_number == 7

    def test_congestion_scales_priority_fee(self, stats):
        prices = GasPriceCalculator.calculate_strategy_prices(GWEI, stats, Congestion.HIGH)

        standard = prices[GasStrategy.STANDARD]
        assert standard.max_priority_fee_per_gas == 3 * GWEI
        assert standard.gas_price == 3_300_000_000
        assert standard.max_fee_per_gas == 5 * GWEI

        # Safe stays unscaled
        assert prices[GasStrategy.SAFE].max_priority_fee_per_gas == 1_500_000_000

    def test_strategies_are_ordered(self, stats):
        prices = GasPriceCalculator.calculate_strategy_prices(GWEI, stats, Congestion.MEDIUM)

        ordered = [prices[s].gas_price for s in GasStrategy]
        assert ordered == sorted(ordered)

    def test_missing_base_fee_uses_fallback(self):
        stats = PriorityFeeStats(min=0, max=0, median=0, p25=0, p75=0, average=0)

        prices = GasPriceCalculator.calculate_strategy_prices(0, stats, Congestion.LOW)

        assert prices[GasStrategy.INSTANT].gas_price == 2 * GWEI
        assert prices[GasStrategy.INSTANT].base_fee == 0


class TestCostHelpers:
    def test_estimate_transaction_cost(self):
        cost = GasPriceCalculator.estimate_transaction_cost(21000, 2 * GWEI, Decimal("40"))

        assert cost.cost_wei == 42_000 * GWEI
        assert cost.cost_gwei == Decimal(42000)
        assert cost.cost_native == Decimal("0.000042")
        assert cost.cost_usd == Decimal("0.00168")

    def test_estimate_without_price(self):
        assert GasPriceCalculator.estimate_transaction_cost(21000, GWEI).cost_usd is None

    def test_format_gas_price(self):
        assert GasPriceCalculator.format_gas_price(1_500_000_000) == "1.50 Gwei"


class TestNetworkAnalysis:
    """Test sampling recent blocks through the connector"""

    @pytest.mark.asyncio
    async def test_analyze_network(self, gas_connector):
        calculator = GasPriceCalculator(gas_connector, sample_blocks=3)

        analysis = await calculator.analyze_network_gas_prices()

        assert analysis.block_number == 100
        assert analysis.current_base_fee == 2 * GWEI
        # Block 98 failed and is skipped
        assert [b.block_number for b in analysis.recent_blocks] == [100, 99]
        assert analysis.recent_blocks[0].priority_fees == [1 * GWEI, 3 * GWEI]
        assert analysis.congestion == Congestion.VERY_HIGH
        assert analysis.recommendation["strategy"] == "instant"
        assert set(analysis.suggested) == set(GasStrategy)

    @pytest.mark.asyncio
    async def test_analysis_is_cached(self, gas_connector):
        calculator = GasPriceCalculator(gas_connector, sample_blocks=2)

        first = await calculator.analyze_network_gas_prices()
        calls = gas_connector.get_block.await_count
        second = await calculator.analyze_network_gas_prices()

        assert first is second
        assert gas_connector.get_block.await_count == calls

    @pytest.mark.asyncio
    async def test_cache_expires(self, gas_connector):
        calculator = GasPriceCalculator(gas_connector, cache_ttl_seconds=0, sample_blocks=1)

        first = await calculator.analyze_network_gas_prices()
        second = await calculator.analyze_network_gas_prices()

        assert first is not second

    @pytest.mark.asyncio
    async def test_strategy_lookup_accepts_string(self, gas_connector):
        calculator = GasPriceCalculator(gas_connector, sample_blocks=1)

        info = await calculator.get_gas_price_for_strategy("fast")

        assert info.strategy == GasStrategy.FAST

    @pytest.mark.asyncio
    async def test_latest_block_failure_propagates(self, mock_connector):
        mock_connector.get_block = AsyncMock(side_effect=RPCError("down"))
        calculator = GasPriceCalculator(mock_connector)

        with pytest.raises(RPCError):
            await calculator.analyze_network_gas_prices()


def test_gas_strategy_from_value():
    assert GasStrategy("standard") is GasStrategy.STANDARD
