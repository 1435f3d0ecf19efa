"""Direct pool inspection for V2 pairs and V3/CL pools"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional, Tuple

import structlog
from web3 import Web3

from hyperprobe.abis import (
    V2_FACTORY_ABI,
    V2_PAIR_ABI,
    V2_ROUTER_ABI,
    V3_FACTORY_ABI,
    V3_POOL_ABI,
)
from hyperprobe.amm.concentrated import (
    compute_swap_within_tick,
    quote_from_sqrt_price,
    sqrt_price_x96_to_price,
)
from hyperprobe.amm.constant_product import get_amount_out
from hyperprobe.chains.connector import ChainConnector
from hyperprobe.errors import PoolNotFoundError

logger = structlog.get_logger()

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def sort_tokens(token_a: str, token_b: str) -> Tuple[str, str]:
    """Order two token addresses the way pools assign token0/token1"""
    a = Web3.to_checksum_address(token_a.lower())
    b = Web3.to_checksum_address(token_b.lower())
    if a.lower() == b.lower():
        raise ValueError(f"identical token addresses: {a}")
    return (a, b) if int(a, 16) < int(b, 16) else (b, a)


@dataclass
class V2PoolState:
    """Constant product pair snapshot"""

    pair_address: str
    token0: str
    token1: str
    reserve0: int
    reserve1: int
    block_timestamp_last: int
    total_supply: int

    @property
    def has_liquidity(self) -> bool:
        return self.reserve0 > 0 and self.reserve1 > 0

    def reserves_for(self, token_in: str) -> Tuple[int, int]:
        """(reserve_in, reserve_out) when selling token_in"""
        token_in = token_in.lower()
        if token_in == self.token0.lower():
            return self.reserve0, self.reserve1
        if token_in == self.token1.lower():
            return self.reserve1, self.reserve0
        raise ValueError(f"token {token_in} is not part of pair {self.pair_address}")


@dataclass
class V3PoolState:
    """Concentrated liquidity pool snapshot (slot0 and active liquidity)"""

    pool_address: str
    token0: str
    token1: str
    fee: int
    tick_spacing: int
    sqrt_price_x96: int
    tick: int
    liquidity: int
    unlocked: bool

    @property
    def has_liquidity(self) -> bool:
        return self.liquidity > 0 and self.sqrt_price_x96 > 0

    def price(self, decimals0: int, decimals1: int) -> Decimal:
        """Price of token0 in token1 units"""
        return sqrt_price_x96_to_price(self.sqrt_price_x96, decimals0, decimals1)


@dataclass
class ManualV3Quote:
    spot_amount_out: int
    in_tick_amount_out: Optional[int]
    sqrt_price_after: Optional[int]
    price_before: Decimal
    price_after: Optional[Decimal]


class PoolInspector:
    """Reads pool state straight from factories and pools, bypassing routers"""

    def __init__(self, connector: ChainConnector):
        self.connector = connector
        self._logger = logger.bind(component="pool_inspector", chain=connector.chain_name)

    async def get_v2_pair(self, factory: str, token_a: str, token_b: str) -> str:
        """
        Look up the pair address of two tokens.

        Raises:
            PoolNotFoundError: if the factory reports no pair
        """
        pair = await self.connector.call_function(
            factory,
            V2_FACTORY_ABI,
            "getPair",
            Web3.to_checksum_address(token_a.lower()),
            Web3.to_checksum_address(token_b.lower()),
        )
        if not pair or int(pair, 16) == 0:
            raise PoolNotFoundError(
                f"No V2 pair for {token_a}/{token_b}",
                {"factory": factory, "token_a": token_a, "token_b": token_b},
            )
        return Web3.to_checksum_address(pair)

    async def get_v2_pool_state(self, pair_address: str) -> V2PoolState:
        call = self.connector.call_function
        reserves, token0, token1, total_supply = await asyncio.gather(
            call(pair_address, V2_PAIR_ABI, "getReserves"),
            call(pair_address, V2_PAIR_ABI, "token0"),
            call(pair_address, V2_PAIR_ABI, "token1"),
            call(pair_address, V2_PAIR_ABI, "totalSupply"),
        )

        state = V2PoolState(
            pair_address=Web3.to_checksum_address(pair_address),
            token0=Web3.to_checksum_address(token0),
            token1=Web3.to_checksum_address(token1),
            reserve0=int(reserves[0]),
            reserve1=int(reserves[1]),
            block_timestamp_last=int(reserves[2]),
            total_supply=int(total_supply),
        )

        self._logger.debug(
            "pool_reserves_fetched",
            pair_address=state.pair_address,
            reserve0=state.reserve0,
            reserve1=state.reserve1,
        )
        return state

    async def get_v3_pool(self, factory: str, token_a: str, token_b: str, fee: int) -> str:
        """
        Look up a V3 pool by fee tier (tick spacing for CL factories).

        Raises:
            PoolNotFoundError: if the factory reports no pool
        """
        pool = await self.connector.call_function(
            factory,
            V3_FACTORY_ABI,
            "getPool",
            Web3.to_checksum_address(token_a.lower()),
            Web3.to_checksum_address(token_b.lower()),
            fee,
        )
        if not pool or int(pool, 16) == 0:
            raise PoolNotFoundError(
                f"No V3 pool for {token_a}/{token_b} at tier {fee}",
                {"factory": factory, "fee": fee},
            )
        return Web3.to_checksum_address(pool)

    async def get_v3_pool_state(self, pool_address: str) -> V3PoolState:
        call = self.connector.call_function
        slot0, liquidity, token0, token1, fee, tick_spacing = await asyncio.gather(
            call(pool_address, V3_POOL_ABI, "slot0"),
            call(pool_address, V3_POOL_ABI, "liquidity"),
            call(pool_address, V3_POOL_ABI, "token0"),
            call(pool_address, V3_POOL_ABI, "token1"),
            call(pool_address, V3_POOL_ABI, "fee"),
            call(pool_address, V3_POOL_ABI, "tickSpacing"),
        )

        state = V3PoolState(
            pool_address=Web3.to_checksum_address(pool_address),
            token0=Web3.to_checksum_address(token0),
            token1=Web3.to_checksum_address(token1),
            fee=int(fee),
            tick_spacing=int(tick_spacing),
            sqrt_price_x96=int(slot0[0]),
            tick=int(slot0[1]),
            liquidity=int(liquidity),
            unlocked=bool(slot0[-1]),
        )

        self._logger.debug(
            "pool_slot0_fetched",
            pool_address=state.pool_address,
            sqrt_price_x96=state.sqrt_price_x96,
            tick=state.tick,
            liquidity=state.liquidity,
        )
        return state

    @staticmethod
    def manual_v2_quote(
        state: V2PoolState,
        token_in: str,
        amount_in: int,
        fee_numerator: int = 997,
        fee_denominator: int = 1000,
    ) -> int:
        """Constant product output computed from the pair's own reserves"""
        reserve_in, reserve_out = state.reserves_for(token_in)
        return get_amount_out(amount_in, reserve_in, reserve_out, fee_numerator, fee_denominator)

    @staticmethod
    def manual_v3_quote(
        state: V3PoolState,
        token_in: str,
        amount_in: int,
        decimals_in: int,
        decimals_out: int,
    ) -> ManualV3Quote:
        """
        Spot and in-tick output estimates from slot0 and active liquidity.

        The in-tick estimate is omitted when the pool has no active liquidity.
        """
        zero_for_one = token_in.lower() == state.token0.lower()
        if not zero_for_one and token_in.lower() != state.token1.lower():
            raise ValueError(f"token {token_in} is not part of pool {state.pool_address}")

        decimals0, decimals1 = (
            (decimals_in, decimals_out) if zero_for_one else (decimals_out, decimals_in)
        )
        spot = quote_from_sqrt_price(amount_in, state.sqrt_price_x96, zero_for_one, state.fee)

        in_tick_amount_out = None
        sqrt_price_after = None
        price_after = None
        if state.liquidity > 0:
            in_tick_amount_out, sqrt_price_after = compute_swap_within_tick(
                state.sqrt_price_x96, state.liquidity, amount_in, state.fee, zero_for_one
            )
            price_after = sqrt_price_x96_to_price(sqrt_price_after, decimals0, decimals1)

        return ManualV3Quote(
            spot_amount_out=spot,
            in_tick_amount_out=in_tick_amount_out,
            sqrt_price_after=sqrt_price_after,
            price_before=state.price(decimals0, decimals1),
            price_after=price_after,
        )

    async def get_router_factory(self, router: str) -> str:
        factory = await self.connector.call_function(router, V2_ROUTER_ABI, "factory")
        return Web3.to_checksum_address(factory)

    async def verify_router_factory(self, router: str, factory: str) -> Dict[str, object]:
        """Check that a router points at the expected factory"""
        actual = await self.get_router_factory(router)
        expected = Web3.to_checksum_address(factory.lower())
        matches = actual == expected
        if not matches:
            self._logger.warning(
                "router_factory_mismatch",
                router=router,
                expected=expected,
                actual=actual,
            )
        return {"router": router, "expected": expected, "actual": actual, "matches": matches}
