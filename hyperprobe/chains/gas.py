"""Gas price analysis for HyperEVM (EIP-1559 fee market)"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

import structlog

from hyperprobe.chains.connector import ChainConnector
from hyperprobe.errors import RPCError

logger = structlog.get_logger()

GWEI = 10**9
WEI_PER_NATIVE = Decimal(10**18)

# Base fee used when the latest block reports none
FALLBACK_BASE_FEE_WEI = 1 * GWEI

# Transactions sampled per block for priority fees
MAX_SAMPLED_TRANSACTIONS = 20


class GasStrategy(str, Enum):
    """Fee aggressiveness levels"""

    SAFE = "safe"
    STANDARD = "standard"
    FAST = "fast"
    INSTANT = "instant"


class Congestion(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


CONGESTION_MULTIPLIERS: Dict[Congestion, Decimal] = {
    Congestion.LOW: Decimal("1.0"),
    Congestion.MEDIUM: Decimal("1.2"),
    Congestion.HIGH: Decimal("1.5"),
    Congestion.VERY_HIGH: Decimal("2.0"),
}

RECOMMENDATIONS: Dict[Congestion, Dict[str, str]] = {
    Congestion.LOW: {
        "strategy": GasStrategy.SAFE.value,
        "reason": "Network is quiet; a low gas price is sufficient",
        "estimated_confirmation": "1-2 min",
    },
    Congestion.MEDIUM: {
        "strategy": GasStrategy.STANDARD.value,
        "reason": "Standard gas price gives stable confirmation times",
        "estimated_confirmation": "30 s - 1 min",
    },
    Congestion.HIGH: {
        "strategy": GasStrategy.FAST.value,
        "reason": "Network is congested; a higher gas price is recommended",
        "estimated_confirmation": "15-30 s",
    },
    Congestion.VERY_HIGH: {
        "strategy": GasStrategy.INSTANT.value,
        "reason": "Network is heavily congested; top priority is required",
        "estimated_confirmation": "5-15 s",
    },
}


@dataclass
class PriorityFeeStats:
    """Distribution of sampled max priority fees (wei)"""

    min: int
    max: int
    median: int
    p25: int
    p75: int
    average: int


@dataclass
class BlockGasSample:
    """Fee data of one recent block"""

    block_number: int
    base_fee_per_gas: int
    gas_used_ratio: float
    priority_fees: List[int] = field(default_factory=list)


@dataclass
class GasPriceInfo:
    """Suggested legacy and EIP-1559 fee fields for one strategy"""

    strategy: GasStrategy
    gas_price: int
    base_fee: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    block_number: int
    timestamp: str


@dataclass
class NetworkGasAnalysis:
    """Result of a gas market analysis"""

    current_base_fee: int
    block_number: int
    congestion: Congestion
    priority_fee_stats: PriorityFeeStats
    suggested: Dict[GasStrategy, GasPriceInfo]
    recent_blocks: List[BlockGasSample]
    recommendation: Dict[str, str]


@dataclass
class TransactionCost:
    gas_limit: int
    gas_price_wei: int
    cost_wei: int
    cost_gwei: Decimal
    cost_native: Decimal
    cost_usd: Optional[Decimal] = None


class GasPriceCalculator:
    """Derives strategy gas prices from recent block fee data"""

    def __init__(
        self,
        connector: ChainConnector,
        cache_ttl_seconds: float = 30.0,
        sample_blocks: int = 10,
    ):
        self.connector = connector
        self.cache_ttl_seconds = cache_ttl_seconds
        self.sample_blocks = sample_blocks
        self._cache: Optional[NetworkGasAnalysis] = None
        self._cache_time: float = 0.0
        self._logger = logger.bind(component="gas_calculator", chain=connector.chain_name)

    async def analyze_network_gas_prices(self) -> NetworkGasAnalysis:
        """
        Analyze the current gas market.

        Results are cached for ``cache_ttl_seconds``.

        Raises:
            RPCError: if the latest block cannot be read
        """
        if self._cache and time.time() - self._cache_time < self.cache_ttl_seconds:
            return self._cache

        latest = await self.connector.get_block("latest")
        block_number = latest["number"]
        current_base_fee = int(latest.get("baseFeePerGas") or 0)

        recent_blocks = await self._sample_recent_blocks(block_number)
        all_fees = [fee for sample in recent_blocks for fee in sample.priority_fees]
        stats = self.calculate_priority_fee_stats(all_fees)
        congestion = self.assess_congestion(recent_blocks)
        suggested = self.calculate_strategy_prices(
            current_base_fee, stats, congestion, block_number
        )

        analysis = NetworkGasAnalysis(
            current_base_fee=current_base_fee,
            block_number=block_number,
            congestion=congestion,
            priority_fee_stats=stats,
            suggested=suggested,
            recent_blocks=recent_blocks,
            recommendation=RECOMMENDATIONS[congestion],
        )

        self._cache = analysis
        self._cache_time = time.time()

        self._logger.info(
            "gas_analysis_completed",
            block_number=block_number,
            base_fee_gwei=float(Decimal(current_base_fee) / GWEI),
            congestion=congestion.value,
            sampled_blocks=len(recent_blocks),
            sampled_fees=len(all_fees),
        )
        return analysis

    async def get_gas_price_for_strategy(self, strategy: GasStrategy) -> GasPriceInfo:
        analysis = await self.analyze_network_gas_prices()
        return analysis.suggested[GasStrategy(strategy)]

    async def _sample_recent_blocks(self, latest_block_number: int) -> List[BlockGasSample]:
        samples: List[BlockGasSample] = []

        for offset in range(self.sample_blocks):
            number = latest_block_number - offset
            if number < 0:
                break
            try:
                block = await self.connector.get_block(number)
            except RPCError as e:
                self._logger.warning("gas_block_sample_failed", block_number=number, error=str(e))
                continue

            gas_limit = block.get("gasLimit") or 0
            gas_used_ratio = block.get("gasUsed", 0) / gas_limit if gas_limit else 0.0

            samples.append(
                BlockGasSample(
                    block_number=block["number"],
                    base_fee_per_gas=int(block.get("baseFeePerGas") or 0),
                    gas_used_ratio=gas_used_ratio,
                    priority_fees=await self._block_priority_fees(block),
                )
            )

        return samples

    async def _block_priority_fees(self, block) -> List[int]:
        fees: List[int] = []
        for tx_hash in list(block.get("transactions", []))[:MAX_SAMPLED_TRANSACTIONS]:
            try:
                tx = await self.connector.get_transaction(tx_hash)
            except RPCError as e:
                self._logger.debug("gas_tx_sample_failed", error=str(e))
                continue
            priority_fee = tx.get("maxPriorityFeePerGas")
            if priority_fee:
                fees.append(int(priority_fee))
        return fees

    @staticmethod
    def calculate_priority_fee_stats(fees: List[int]) -> PriorityFeeStats:
        """Percentile statistics of priority fees, with defaults when none were sampled"""
        if not fees:
            return PriorityFeeStats(
                min=1 * GWEI,
                max=5 * GWEI,
                median=2 * GWEI,
                p25=1_500_000_000,
                p75=3 * GWEI,
                average=2 * GWEI,
            )

        ordered = sorted(fees)
        n = len(ordered)
        return PriorityFeeStats(
            min=ordered[0],
            max=ordered[-1],
            median=ordered[n // 2],
            p25=ordered[int(n * 0.25)],
            p75=ordered[int(n * 0.75)],
            average=sum(ordered) // n,
        )

    @staticmethod
    def assess_congestion(blocks: List[BlockGasSample]) -> Congestion:
        if not blocks:
            return Congestion.MEDIUM

        avg_ratio = sum(b.gas_used_ratio for b in blocks) / len(blocks)
        if avg_ratio < 0.3:
            return Congestion.LOW
        if avg_ratio < 0.6:
            return Congestion.MEDIUM
        if avg_ratio < 0.9:
            return Congestion.HIGH
        return Congestion.VERY_HIGH

    @staticmethod
    def calculate_strategy_prices(
        base_fee: int,
        stats: PriorityFeeStats,
        congestion: Congestion,
        block_number: int = 0,
    ) -> Dict[GasStrategy, GasPriceInfo]:
        base = Decimal(base_fee or FALLBACK_BASE_FEE_WEI)
        m = CONGESTION_MULTIPLIERS.get(congestion, Decimal("1.2"))
        timestamp = datetime.now(timezone.utc).isoformat()

        # (gas price multiplier, max fee multiplier, priority fee, congestion-scaled)
        table = {
            GasStrategy.SAFE: (Decimal("1.2"), Decimal("1.5"), stats.p25, False),
            GasStrategy.STANDARD: (Decimal("1.3"), Decimal("2"), stats.median, True),
            GasStrategy.FAST: (Decimal("1.5"), Decimal("2.5"), stats.p75, True),
            GasStrategy.INSTANT: (Decimal("2"), Decimal("3"), stats.max, True),
        }

        prices: Dict[GasStrategy, GasPriceInfo] = {}
        for strategy, (gas_mult, max_mult, priority, scaled) in table.items():
            priority_fee = Decimal(priority) * m if scaled else Decimal(priority)
            prices[strategy] = GasPriceInfo(
                strategy=strategy,
                gas_price=int(base * gas_mult + priority),
                base_fee=base_fee,
                max_fee_per_gas=int(base * max_mult + priority_fee),
                max_priority_fee_per_gas=int(priority_fee),
                block_number=block_number,
                timestamp=timestamp,
            )
        return prices

    @staticmethod
    def estimate_transaction_cost(
        gas_limit: int,
        gas_price_wei: int,
        native_usd: Optional[Decimal] = None,
    ) -> TransactionCost:
        """Cost of a transaction in wei, gwei, HYPE and optionally USD"""
        cost_wei = gas_limit * gas_price_wei
        cost_native = Decimal(cost_wei) / WEI_PER_NATIVE
        return TransactionCost(
            gas_limit=gas_limit,
            gas_price_wei=gas_price_wei,
            cost_wei=cost_wei,
            cost_gwei=Decimal(cost_wei) / GWEI,
            cost_native=cost_native,
            cost_usd=cost_native * Decimal(native_usd) if native_usd is not None else None,
        )

    @staticmethod
    def format_gas_price(wei: int) -> str:
        return f"{Decimal(wei) / GWEI:.2f} Gwei"
