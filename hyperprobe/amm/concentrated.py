"""Concentrated liquidity (Uniswap V3-style) price and swap math"""

import math
from decimal import Decimal, localcontext
from typing import Tuple, Union

from hyperprobe.errors import InsufficientLiquidityError

Q96 = 2**96
Q192 = 2**192

MIN_TICK = -887272
MAX_TICK = 887272
MIN_SQRT_RATIO = 4295128739
MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970342

# Fees are expressed in hundredths of a bip (3000 = 0.3%)
FEE_DENOMINATOR = 1_000_000

_PRECISION = 80
_TICK_BASE = Decimal("1.0001")

# Multipliers of sqrt(1.0001)^-(2^i) in Q128, one per bit of |tick|
_TICK_FACTORS = (
    (0x2, 0xFFF97272373D413259A46990580E213A),
    (0x4, 0xFFF2E50F5F656932EF12357CF3C7FDCC),
    (0x8, 0xFFE5CACA7E10E4E61C3624EAA0941CD0),
    (0x10, 0xFFCB9843D60F6159C9DB58835C926644),
    (0x20, 0xFF973B41FA98C081472E6896DFB254C0),
    (0x40, 0xFF2EA16466C96A3843EC78B326B52861),
    (0x80, 0xFE5DEE046A99A2A811C461F1969C3053),
    (0x100, 0xFCBE86C7900A88AEDCFFC83B479AA3A4),
    (0x200, 0xF987A7253AC413176F2B074CF7815E54),
    (0x400, 0xF3392B0822B70005940C7A398E4B70F3),
    (0x800, 0xE7159475A2C29B7443B29C7FA6E889D9),
    (0x1000, 0xD097F3BDFD2022B8845AD8F792AA5825),
    (0x2000, 0xA9F746462D870FDF8A65DC1F90E061E5),
    (0x4000, 0x70D869A156D2A1B890BB3DF62BAF32F7),
    (0x8000, 0x31BE135F97D08FD981231505542FCFA6),
    (0x10000, 0x9AA508B5B7A84E1C677DE54F3E99BC9),
    (0x20000, 0x5D6AF8DEDB81196699C329225EE604),
    (0x40000, 0x2216E584F5FA1EA926041BEDFE98),
    (0x80000, 0x48A170391F7DC42444E8FA2),
)

Number = Union[int, float, str, Decimal]


def _check_sqrt_price(sqrt_price_x96: int) -> None:
    if sqrt_price_x96 <= 0:
        raise ValueError(f"sqrt_price_x96 must be positive, got {sqrt_price_x96}")


def sqrt_price_x96_to_price(sqrt_price_x96: int, decimals0: int, decimals1: int) -> Decimal:
    """
    Price of one token0 in token1 (human units) from a pool's sqrtPriceX96.

    price = (sqrtPriceX96 / 2^96)^2 * 10^(decimals0 - decimals1)
    """
    _check_sqrt_price(sqrt_price_x96)
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        raw = Decimal(sqrt_price_x96) ** 2 / Decimal(Q192)
        price = raw * Decimal(10) ** (decimals0 - decimals1)
    return +price


def price_to_sqrt_price_x96(price: Number, decimals0: int, decimals1: int) -> int:
    """Inverse of sqrt_price_x96_to_price, rounded down"""
    price = Decimal(str(price))
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        raw = price / Decimal(10) ** (decimals0 - decimals1)
        return int(raw.sqrt() * Q96)


def tick_to_price(tick: int, decimals0: int, decimals1: int) -> Decimal:
    """Price of token0 in token1 at a tick: 1.0001^tick adjusted for decimals"""
    if not MIN_TICK <= tick <= MAX_TICK:
        raise ValueError(f"tick {tick} out of range [{MIN_TICK}, {MAX_TICK}]")
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        price = _TICK_BASE**tick * Decimal(10) ** (decimals0 - decimals1)
    return +price


def price_to_tick(price: Number, decimals0: int, decimals1: int) -> int:
    """Greatest tick whose price does not exceed ``price``"""
    price = Decimal(str(price))
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        raw = price / Decimal(10) ** (decimals0 - decimals1)
        exact = raw.ln() / _TICK_BASE.ln()
        # Absorb rounding noise when price sits exactly on a tick
        tick = math.floor(exact + Decimal("1e-12"))
    return max(MIN_TICK, min(MAX_TICK, tick))


def get_sqrt_ratio_at_tick(tick: int) -> int:
    """
    sqrt(1.0001^tick) * 2^96 computed with the exact integer TickMath algorithm.

    Raises:
        ValueError: if tick is outside [MIN_TICK, MAX_TICK]
    """
    abs_tick = abs(tick)
    if abs_tick > MAX_TICK:
        raise ValueError(f"tick {tick} out of range [{MIN_TICK}, {MAX_TICK}]")

    if abs_tick & 0x1:
        ratio = 0xFFFCB933BD6FAD37AA2D162D1A594001
    else:
        ratio = 0x100000000000000000000000000000000

    for bit, factor in _TICK_FACTORS:
        if abs_tick & bit:
            ratio = (ratio * factor) >> 128

    if tick > 0:
        ratio = (2**256 - 1) // ratio

    # Q128.128 -> Q64.96, rounding up
    return (ratio >> 32) + (0 if ratio % (1 << 32) == 0 else 1)


def quote_from_sqrt_price(
    amount_in: int,
    sqrt_price_x96: int,
    zero_for_one: bool,
    fee_pips: int = 3000,
) -> int:
    """
    Spot-price output estimate that ignores price movement during the swap.

    Args:
        amount_in: Raw input amount
        sqrt_price_x96: Current pool sqrtPriceX96
        zero_for_one: True when token0 is sold for token1
        fee_pips: Pool fee in hundredths of a bip

    Returns:
        Raw output amount, rounded down
    """
    _check_sqrt_price(sqrt_price_x96)
    if amount_in < 0:
        raise ValueError(f"amount_in must be non-negative, got {amount_in}")
    if not 0 <= fee_pips < FEE_DENOMINATOR:
        raise ValueError(f"fee must be in [0, {FEE_DENOMINATOR}), got {fee_pips}")

    amount_less_fee = amount_in * (FEE_DENOMINATOR - fee_pips)
    price_x192 = sqrt_price_x96 * sqrt_price_x96
    if zero_for_one:
        return amount_less_fee * price_x192 // (FEE_DENOMINATOR * Q192)
    return amount_less_fee * Q192 // (FEE_DENOMINATOR * price_x192)


def compute_swap_within_tick(
    sqrt_price_x96: int,
    liquidity: int,
    amount_in: int,
    fee_pips: int,
    zero_for_one: bool,
) -> Tuple[int, int]:
    """
    Exact-input swap that stays inside the current initialized tick range.

    The fee is taken from the input, the next sqrt price follows from the
    remaining input and the output is the matching token delta, rounded
    down as the pool does.

    Returns:
        (amount_out, sqrt_price_after)

    Raises:
        InsufficientLiquidityError: on zero liquidity or when the swap would
            leave the valid sqrt price range
    """
    _check_sqrt_price(sqrt_price_x96)
    if liquidity <= 0:
        raise InsufficientLiquidityError("Insufficient liquidity", {"liquidity": liquidity})
    if amount_in < 0:
        raise ValueError(f"amount_in must be non-negative, got {amount_in}")
    if not 0 <= fee_pips < FEE_DENOMINATOR:
        raise ValueError(f"fee must be in [0, {FEE_DENOMINATOR}), got {fee_pips}")

    amount_less_fee = amount_in * (FEE_DENOMINATOR - fee_pips) // FEE_DENOMINATOR
    if amount_less_fee == 0:
        return 0, sqrt_price_x96

    liquidity_x96 = liquidity << 96
    if zero_for_one:
        # token0 in: price moves down, rounded up so the pool never under-charges
        numerator = liquidity_x96 * sqrt_price_x96
        denominator = liquidity_x96 + amount_less_fee * sqrt_price_x96
        sqrt_price_after = -(-numerator // denominator)
        if sqrt_price_after <= MIN_SQRT_RATIO:
            raise InsufficientLiquidityError(
                "Swap exceeds available liquidity",
                {"sqrt_price_after": sqrt_price_after},
            )
        amount_out = liquidity * (sqrt_price_x96 - sqrt_price_after) // Q96
    else:
        # token1 in: price moves up
        sqrt_price_after = sqrt_price_x96 + amount_less_fee * Q96 // liquidity
        if sqrt_price_after >= MAX_SQRT_RATIO:
            raise InsufficientLiquidityError(
                "Swap exceeds available liquidity",
                {"sqrt_price_after": sqrt_price_after},
            )
        amount_out = (
            liquidity_x96 * (sqrt_price_after - sqrt_price_x96) // sqrt_price_after // sqrt_price_x96
        )

    return amount_out, sqrt_price_after
