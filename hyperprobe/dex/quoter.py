"""Multi-DEX quoting through V2 routers and V3/CL quoters"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

import structlog

from hyperprobe.abis import V2_ROUTER_ABI, quoter_abi_for
from hyperprobe.chains.connector import ChainConnector
from hyperprobe.config.loader import ConfigLoader
from hyperprobe.config.models import DexConfig
from hyperprobe.dex.tokens import TokenInfo, TokenRegistry, from_base_units, to_base_units
from hyperprobe.errors import ConfigError, QuoteError
from hyperprobe.monitoring import metrics

logger = structlog.get_logger()

DEFAULT_V3_FEE = 3000

# Substring of the failure message -> human-readable exclusion reason
EXCLUSION_REASONS = (
    ("execution reverted", "Pool does not exist or insufficient liquidity"),
    ("missing revert data", "Contract call failed - likely no pool"),
    ("INSUFFICIENT_OUTPUT_AMOUNT", "Insufficient output amount"),
    ("INSUFFICIENT_LIQUIDITY", "Insufficient liquidity"),
)


def classify_exclusion(error_message: Optional[str]) -> str:
    """Map a raw quote failure message to the reason a venue is excluded"""
    if not error_message:
        return "Unknown error"
    for needle, reason in EXCLUSION_REASONS:
        if needle in error_message:
            return reason
    return "Unknown error"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class QuoteParams:
    """Quote request; amount_in is in human units of token_in"""

    token_in: str
    token_out: str
    amount_in: Decimal
    fee: Optional[int] = None
    tick_spacing: Optional[int] = None

    def __post_init__(self) -> None:
        self.amount_in = Decimal(str(self.amount_in))

    def reversed(self, amount_in: Union[Decimal, str]) -> "QuoteParams":
        return QuoteParams(
            token_in=self.token_out,
            token_out=self.token_in,
            amount_in=Decimal(str(amount_in)),
            fee=self.fee,
            tick_spacing=self.tick_spacing,
        )


@dataclass
class QuoteResult:
    """Outcome of one quote on one venue (and tier, for V3/CL pools)"""

    dex_id: str
    dex_name: str
    token_in: str
    token_out: str
    amount_in: int
    amount_out: int
    amount_in_formatted: Decimal
    amount_out_formatted: Decimal
    rate: Decimal
    gas_estimate: int
    success: bool
    fee: Optional[int] = None
    tick_spacing: Optional[int] = None
    timestamp: str = field(default_factory=_utc_now)
    error: Optional[str] = None
    exclusion_reason: Optional[str] = None

    @property
    def tier(self) -> Optional[int]:
        return self.fee if self.fee is not None else self.tick_spacing

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dex_id": self.dex_id,
            "dex_name": self.dex_name,
            "token_in": self.token_in,
            "token_out": self.token_out,
            "amount_in": str(self.amount_in),
            "amount_out": str(self.amount_out),
            "amount_in_formatted": str(self.amount_in_formatted),
            "amount_out_formatted": str(self.amount_out_formatted),
            "rate": str(self.rate),
            "fee": self.fee,
            "tick_spacing": self.tick_spacing,
            "gas_estimate": self.gas_estimate,
            "timestamp": self.timestamp,
            "success": self.success,
            "error": self.error,
            "exclusion_reason": self.exclusion_reason,
        }


@dataclass
class ArbitrageOpportunity:
    """Two venues quoting the same direction at sufficiently different rates"""

    buy: QuoteResult
    sell: QuoteResult
    spread: Decimal
    profit: Decimal


class DexManager:
    """
    Queries configured DEXes for quotes.

    Every public quoting method returns failed QuoteResults instead of
    raising, so one broken venue never aborts a comparison.
    """

    def __init__(
        self,
        connector: ChainConnector,
        loader: ConfigLoader,
        network: Optional[str] = None,
    ):
        self.connector = connector
        self.loader = loader
        self.network = network or loader.default_network
        self.registry = TokenRegistry(connector, loader, self.network)
        self._logger = logger.bind(component="dex_manager", network=self.network)

    def _dex_name(self, dex_id: str) -> str:
        try:
            return self.loader.get_dex_by_id(dex_id, self.network).name
        except ConfigError:
            return dex_id

    def _failed(
        self,
        dex_id: str,
        dex_name: str,
        params: QuoteParams,
        error: Exception,
        amount_in: int = 0,
        fee: Optional[int] = None,
        tick_spacing: Optional[int] = None,
    ) -> QuoteResult:
        message = getattr(error, "message", None) or str(error) or type(error).__name__
        return QuoteResult(
            dex_id=dex_id,
            dex_name=dex_name,
            token_in=params.token_in,
            token_out=params.token_out,
            amount_in=amount_in,
            amount_out=0,
            amount_in_formatted=params.amount_in,
            amount_out_formatted=Decimal(0),
            rate=Decimal(0),
            gas_estimate=0,
            success=False,
            fee=fee,
            tick_spacing=tick_spacing,
            error=message,
            exclusion_reason=classify_exclusion(message),
        )

    def _success(
        self,
        dex_id: str,
        dex_name: str,
        params: QuoteParams,
        token_in: TokenInfo,
        token_out: TokenInfo,
        amount_in: int,
        amount_out: int,
        gas_estimate: int,
        fee: Optional[int] = None,
        tick_spacing: Optional[int] = None,
    ) -> QuoteResult:
        amount_in_formatted = from_base_units(amount_in, token_in.decimals)
        amount_out_formatted = from_base_units(amount_out, token_out.decimals)
        return QuoteResult(
            dex_id=dex_id,
            dex_name=dex_name,
            token_in=params.token_in,
            token_out=params.token_out,
            amount_in=amount_in,
            amount_out=amount_out,
            amount_in_formatted=amount_in_formatted,
            amount_out_formatted=amount_out_formatted,
            rate=amount_out_formatted / amount_in_formatted,
            gas_estimate=gas_estimate,
            success=True,
            fee=fee,
            tick_spacing=tick_spacing,
        )

    async def _prepare(
        self, dex_id: str, params: QuoteParams
    ) -> Tuple[DexConfig, TokenInfo, TokenInfo, int]:
        dex = self.loader.get_dex_by_id(dex_id, self.network)
        token_in = await self.registry.resolve(params.token_in)
        token_out = await self.registry.resolve(params.token_out)

        if token_in.address == token_out.address:
            raise QuoteError(
                f"Cannot quote {params.token_in} against itself",
                {"token": token_in.address},
            )

        amount_in = to_base_units(params.amount_in, token_in.decimals)
        if amount_in <= 0:
            raise QuoteError(
                f"Amount {params.amount_in} is zero in base units of {token_in.symbol}",
                {"amount_in": str(params.amount_in)},
            )
        return dex, token_in, token_out, amount_in

    def _record(self, dex_id: str, result: QuoteResult, start_time: float) -> QuoteResult:
        status = "success" if result.success else "failed"
        metrics.quotes_total.labels(dex=dex_id, status=status).inc()
        metrics.quote_latency.labels(dex=dex_id).observe(time.time() - start_time)

        if result.success:
            self._logger.debug(
                "quote_received",
                dex=dex_id,
                token_in=result.token_in,
                token_out=result.token_out,
                rate=str(result.rate),
                fee=result.fee,
                tick_spacing=result.tick_spacing,
            )
        else:
            self._logger.info(
                "quote_failed",
                dex=dex_id,
                token_in=result.token_in,
                token_out=result.token_out,
                error=result.error,
                reason=result.exclusion_reason,
            )
        return result

    async def get_quote(self, dex_id: str, params: QuoteParams) -> QuoteResult:
        """
        Quote params on one DEX.

        V2 venues are quoted through the router's getAmountsOut. V3/CL venues
        are quoted on every configured tier (or only params.fee /
        params.tick_spacing when given) and the best successful tier wins.

        Returns:
            QuoteResult; success is False when no quote could be obtained
        """
        start_time = time.time()
        amount_in = 0
        try:
            dex, token_in, token_out, amount_in = await self._prepare(dex_id, params)

            if dex.type == "v2":
                result = await self._get_v2_quote(dex_id, dex, token_in, token_out, amount_in, params)
            else:
                tier_results = await self._get_v3_quotes(
                    dex_id, dex, token_in, token_out, amount_in, params
                )
                successful = [r for r in tier_results if r.success]
                if successful:
                    result = max(successful, key=lambda r: r.rate)
                else:
                    last_error = tier_results[-1].error if tier_results else None
                    raise QuoteError(
                        f"No liquidity found in any tier: {last_error}",
                        {"dex_id": dex_id, "tiers": [r.tier for r in tier_results]},
                    )
        except Exception as e:
            result = self._failed(dex_id, self._dex_name(dex_id), params, e, amount_in=amount_in)

        return self._record(dex_id, result, start_time)

    async def get_v3_tier_quotes(self, dex_id: str, params: QuoteParams) -> List[QuoteResult]:
        """Per-tier results (successful and failed) of a V3/CL venue"""
        start_time = time.time()
        try:
            dex, token_in, token_out, amount_in = await self._prepare(dex_id, params)
            if dex.type != "v3":
                raise QuoteError(f"DEX '{dex_id}' is not a V3/CL venue", {"dex_id": dex_id})
            results = await self._get_v3_quotes(dex_id, dex, token_in, token_out, amount_in, params)
        except Exception as e:
            results = [self._failed(dex_id, self._dex_name(dex_id), params, e)]

        return [self._record(dex_id, result, start_time) for result in results]

    async def _get_v2_quote(
        self,
        dex_id: str,
        dex: DexConfig,
        token_in: TokenInfo,
        token_out: TokenInfo,
        amount_in: int,
        params: QuoteParams,
    ) -> QuoteResult:
        if not dex.router:
            raise QuoteError(f"V2 DEX '{dex_id}' has no router address", {"dex_id": dex_id})

        amounts = await self.connector.call_function(
            dex.router,
            V2_ROUTER_ABI,
            "getAmountsOut",
            amount_in,
            [token_in.address, token_out.address],
        )
        if len(amounts) < 2 or amounts[-1] <= 0:
            raise QuoteError("Router returned no output amount", {"amounts": list(amounts)})

        return self._success(
            dex_id,
            dex.name,
            params,
            token_in,
            token_out,
            amount_in,
            int(amounts[-1]),
            dex.gas_estimate,
        )

    def _tiers(self, dex: DexConfig, params: QuoteParams) -> List[int]:
        if dex.tier_param == "tickSpacing":
            if params.tick_spacing is not None:
                return [params.tick_spacing]
            return dex.tiers
        if params.fee is not None:
            return [params.fee]
        return dex.tiers or [DEFAULT_V3_FEE]

    async def _get_v3_quotes(
        self,
        dex_id: str,
        dex: DexConfig,
        token_in: TokenInfo,
        token_out: TokenInfo,
        amount_in: int,
        params: QuoteParams,
    ) -> List[QuoteResult]:
        if not dex.quoter:
            raise QuoteError(f"V3 DEX '{dex_id}' has no quoter address", {"dex_id": dex_id})

        tiers = self._tiers(dex, params)
        if not tiers:
            raise QuoteError(f"V3 DEX '{dex_id}' defines no tiers", {"dex_id": dex_id})

        return list(
            await asyncio.gather(
                *(
                    self._quote_tier(dex_id, dex, token_in, token_out, amount_in, tier, params)
                    for tier in tiers
                )
            )
        )

    async def _quote_tier(
        self,
        dex_id: str,
        dex: DexConfig,
        token_in: TokenInfo,
        token_out: TokenInfo,
        amount_in: int,
        tier: int,
        params: QuoteParams,
    ) -> QuoteResult:
        by_tick_spacing = dex.tier_param == "tickSpacing"
        fee = None if by_tick_spacing else tier
        tick_spacing = tier if by_tick_spacing else None
        if by_tick_spacing:
            dex_name = f"{dex.name} (ts {tier})"
        else:
            dex_name = f"{dex.name} ({tier / 100:g}bps)"

        try:
            abi = quoter_abi_for(dex)
            if dex.quoter_style == "flat":
                amount_out = await self.connector.call_function(
                    dex.quoter,
                    abi,
                    "quoteExactInputSingle",
                    token_in.address,
                    token_out.address,
                    tier,
                    amount_in,
                    0,
                )
                gas_estimate = dex.gas_estimate
            else:
                # QuoterV2 returns (amountOut, sqrtPriceX96After, initializedTicksCrossed, gasEstimate)
                quoted = await self.connector.call_function(
                    dex.quoter,
                    abi,
                    "quoteExactInputSingle",
                    (token_in.address, token_out.address, amount_in, tier, 0),
                )
                amount_out = quoted[0]
                gas_estimate = int(quoted[3]) if len(quoted) > 3 and quoted[3] else dex.gas_estimate

            if amount_out <= 0:
                raise QuoteError("Quoter returned zero output", {"tier": tier})

            return self._success(
                dex_id,
                dex_name,
                params,
                token_in,
                token_out,
                amount_in,
                int(amount_out),
                gas_estimate,
                fee=fee,
                tick_spacing=tick_spacing,
            )
        except Exception as e:
            return self._failed(
                dex_id,
                dex_name,
                params,
                e,
                amount_in=amount_in,
                fee=fee,
                tick_spacing=tick_spacing,
            )

    async def _quote_many(self, dex_ids: List[str], params: QuoteParams) -> List[QuoteResult]:
        return list(await asyncio.gather(*(self.get_quote(dex_id, params) for dex_id in dex_ids)))

    async def get_all_quotes(self, params: QuoteParams) -> List[QuoteResult]:
        """Quote every active DEX concurrently"""
        return await self._quote_many(list(self.loader.get_active_dexes(self.network)), params)

    async def get_quotes_by_protocol(self, protocol: str, params: QuoteParams) -> List[QuoteResult]:
        dexes = self.loader.get_dexes_by_protocol(protocol, self.network)
        return await self._quote_many(list(dexes), params)

    async def get_best_quote(self, params: QuoteParams) -> Optional[QuoteResult]:
        """Highest-rate successful quote across active DEXes, or None"""
        successful = [q for q in await self.get_all_quotes(params) if q.success]
        if not successful:
            return None
        return max(successful, key=lambda q: q.rate)

    async def find_arbitrage_opportunities(
        self,
        token_a: str,
        token_b: str,
        amount: Union[Decimal, str],
        min_spread: Union[Decimal, str, float] = Decimal("0.01"),
    ) -> List[ArbitrageOpportunity]:
        """
        Pairs of venues whose A->B rates differ by at least min_spread.

        spread = |r1 - r2| / min(r1, r2); profit = (sell.rate - buy.rate) * amount.
        Results are ordered by profit, highest first.
        """
        min_spread = Decimal(str(min_spread))
        params = QuoteParams(token_in=token_a, token_out=token_b, amount_in=amount)
        successful = [q for q in await self.get_all_quotes(params) if q.success]

        opportunities: List[ArbitrageOpportunity] = []
        for i, first in enumerate(successful):
            for second in successful[i + 1 :]:
                low, high = sorted((first, second), key=lambda q: q.rate)
                if low.rate <= 0:
                    continue
                spread = (high.rate - low.rate) / low.rate
                if spread >= min_spread:
                    opportunities.append(
                        ArbitrageOpportunity(
                            buy=low,
                            sell=high,
                            spread=spread,
                            profit=(high.rate - low.rate) * params.amount_in,
                        )
                    )

        opportunities.sort(key=lambda o: o.profit, reverse=True)
        if opportunities:
            self._logger.info(
                "arbitrage_candidates_found",
                token_a=token_a,
                token_b=token_b,
                count=len(opportunities),
                best_spread=str(opportunities[0].spread),
            )
        return opportunities

    def switch_network(self, network: str, connector: Optional[ChainConnector] = None) -> None:
        """
        Point the manager at another configured network.

        Raises:
            ConfigError: if the network is not configured
        """
        self.loader.get_network_info(network)
        if connector is not None:
            self.connector = connector
        self.network = network
        self.registry = TokenRegistry(self.connector, self.loader, network)
        self._logger = logger.bind(component="dex_manager", network=network)
        self._logger.info("network_switched", chain_id=self.connector.chain_id)

    def get_config_info(self) -> Dict[str, Any]:
        dexes = self.loader.get_dex_config(self.network)
        tokens = self.loader.get_token_config(self.network)
        return {
            "network": self.network,
            "dex_count": len(dexes),
            "token_count": len(tokens),
            "protocols": self.loader.get_supported_protocols(),
        }
