"""Bidirectional rate comparison and round-trip arbitrage detection"""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Union

import structlog

from hyperprobe.chains.gas import GasPriceCalculator
from hyperprobe.dex.quoter import DexManager, QuoteParams, QuoteResult, classify_exclusion
from hyperprobe.dex.tokens import TokenRegistry

logger = structlog.get_logger()

# Rates below this are treated as broken quotes, not as real prices
MIN_SANE_RATE = Decimal("0.000001")

__all__ = [
    "ArbitrageDetector",
    "BidirectionalReport",
    "RoundTrip",
    "classify_exclusion",
]


@dataclass
class BidirectionalReport:
    """Quotes for A->B and B->A of the same human amount on every venue and tier"""

    token_a: str
    token_b: str
    amount: Decimal
    a_to_b: List[QuoteResult] = field(default_factory=list)
    b_to_a: List[QuoteResult] = field(default_factory=list)

    @staticmethod
    def _sane(results: List[QuoteResult]) -> List[QuoteResult]:
        return [r for r in results if r.success and r.rate >= MIN_SANE_RATE]

    def best(self, direction: str = "a_to_b") -> Optional[QuoteResult]:
        results = self._sane(getattr(self, direction))
        return max(results, key=lambda r: r.rate) if results else None

    def spread_pct(self, direction: str = "a_to_b") -> Decimal:
        """(best - worst) / worst * 100 over sane successful quotes"""
        results = self._sane(getattr(self, direction))
        if len(results) < 2:
            return Decimal(0)
        best = max(r.rate for r in results)
        worst = min(r.rate for r in results)
        return (best - worst) / worst * 100

    def excluded(self) -> List[QuoteResult]:
        return [r for r in self.a_to_b + self.b_to_a if not r.success]


@dataclass
class RoundTrip:
    """Sell A for B on one venue, then B back to A on another"""

    buy: QuoteResult
    sell: QuoteResult
    initial_amount: Decimal
    final_amount: Decimal
    profit: Decimal
    profit_pct: Decimal
    gas_estimate: int
    gas_cost_native: Optional[Decimal] = None

    @property
    def route(self) -> str:
        return f"{self.buy.dex_name} -> {self.sell.dex_name}"


class ArbitrageDetector:
    """
    Compares rates across venues in both directions.

    Round trips are simulated with real quotes: the B->A leg is quoted with
    the exact output of the A->B leg, so price impact is accounted for.
    """

    def __init__(
        self,
        dex_manager: DexManager,
        registry: Optional[TokenRegistry] = None,
        gas_calculator: Optional[GasPriceCalculator] = None,
    ):
        self.dex_manager = dex_manager
        self.registry = registry or dex_manager.registry
        self.gas_calculator = gas_calculator
        self._logger = logger.bind(component="arbitrage_detector", network=dex_manager.network)

    async def _venue_quotes(self, params: QuoteParams) -> List[QuoteResult]:
        """One result per active V2 venue and per tier of each V3/CL venue"""
        dexes = self.dex_manager.loader.get_active_dexes(self.dex_manager.network)
        tasks = []
        for dex_id, dex in dexes.items():
            if dex.type == "v3":
                tasks.append(self.dex_manager.get_v3_tier_quotes(dex_id, params))
            else:
                tasks.append(self._single(dex_id, params))

        results: List[QuoteResult] = []
        for venue_results in await asyncio.gather(*tasks):
            results.extend(venue_results)
        return results

    async def _single(self, dex_id: str, params: QuoteParams) -> List[QuoteResult]:
        return [await self.dex_manager.get_quote(dex_id, params)]

    async def check_bidirectional_rates(
        self, token_a: str, token_b: str, amount: Union[Decimal, str]
    ) -> BidirectionalReport:
        """Quote the same human amount A->B and B->A on every venue concurrently"""
        amount = Decimal(str(amount))
        forward = QuoteParams(token_in=token_a, token_out=token_b, amount_in=amount)
        a_to_b, b_to_a = await asyncio.gather(
            self._venue_quotes(forward),
            self._venue_quotes(forward.reversed(amount)),
        )

        report = BidirectionalReport(
            token_a=token_a,
            token_b=token_b,
            amount=amount,
            a_to_b=a_to_b,
            b_to_a=b_to_a,
        )

        self._logger.info(
            "bidirectional_rates_checked",
            token_a=token_a,
            token_b=token_b,
            a_to_b_ok=len(report._sane(a_to_b)),
            b_to_a_ok=len(report._sane(b_to_a)),
            spread_a_to_b_pct=str(report.spread_pct("a_to_b")),
            spread_b_to_a_pct=str(report.spread_pct("b_to_a")),
        )
        return report

    async def find_round_trips(
        self,
        token_a: str,
        token_b: str,
        amount: Union[Decimal, str],
        threshold_pct: Union[Decimal, float, str] = Decimal("1.0"),
    ) -> List[RoundTrip]:
        """
        Round trips A->B->A whose profit percentage reaches threshold_pct.

        Returns:
            Trips sorted by profit_pct, highest first
        """
        amount = Decimal(str(amount))
        threshold = Decimal(str(threshold_pct))
        forward = QuoteParams(token_in=token_a, token_out=token_b, amount_in=amount)

        buys = [
            q
            for q in await self._venue_quotes(forward)
            if q.success and q.rate >= MIN_SANE_RATE
        ]
        if not buys:
            self._logger.info("round_trip_no_forward_quotes", token_a=token_a, token_b=token_b)
            return []

        sell_legs = await asyncio.gather(
            *(self._venue_quotes(forward.reversed(buy.amount_out_formatted)) for buy in buys)
        )

        gas_price_wei = None
        if self.gas_calculator is not None:
            gas_price_wei = (
                await self.gas_calculator.get_gas_price_for_strategy("standard")
            ).gas_price

        trips: List[RoundTrip] = []
        for buy, sells in zip(buys, sell_legs):
            for sell in sells:
                if not sell.success or sell.rate < MIN_SANE_RATE:
                    continue
                final_amount = sell.amount_out_formatted
                profit = final_amount - amount
                profit_pct = profit / amount * 100
                if profit_pct < threshold:
                    continue

                gas_estimate = buy.gas_estimate + sell.gas_estimate
                gas_cost_native = None
                if gas_price_wei is not None:
                    gas_cost_native = GasPriceCalculator.estimate_transaction_cost(
                        gas_estimate, gas_price_wei
                    ).cost_native

                trips.append(
                    RoundTrip(
                        buy=buy,
                        sell=sell,
                        initial_amount=amount,
                        final_amount=final_amount,
                        profit=profit,
                        profit_pct=profit_pct,
                        gas_estimate=gas_estimate,
                        gas_cost_native=gas_cost_native,
                    )
                )

        trips.sort(key=lambda t: t.profit_pct, reverse=True)

        self._logger.info(
            "round_trips_evaluated",
            token_a=token_a,
            token_b=token_b,
            forward_venues=len(buys),
            profitable=len(trips),
            threshold_pct=str(threshold),
        )
        return trips

    @staticmethod
    def classify_exclusion(error_message: Optional[str]) -> str:
        return classify_exclusion(error_message)
