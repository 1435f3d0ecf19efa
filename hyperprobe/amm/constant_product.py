"""Uniswap V2-style constant product (x * y = k) swap math"""

from decimal import Decimal
from typing import List, Sequence, Tuple

from hyperprobe.errors import InsufficientLiquidityError

DEFAULT_FEE_NUMERATOR = 997
DEFAULT_FEE_DENOMINATOR = 1000


def _check_fee(fee_numerator: int, fee_denominator: int) -> None:
    if fee_denominator <= 0 or not 0 < fee_numerator <= fee_denominator:
        raise ValueError(f"invalid fee fraction {fee_numerator}/{fee_denominator}")


def get_amount_out(
    amount_in: int,
    reserve_in: int,
    reserve_out: int,
    fee_numerator: int = DEFAULT_FEE_NUMERATOR,
    fee_denominator: int = DEFAULT_FEE_DENOMINATOR,
) -> int:
    """
    Output amount for an exact input swap against a constant product pool.

    amountOut = amountIn * fn * reserveOut / (reserveIn * fd + amountIn * fn)

    Args:
        amount_in: Input amount in raw token units
        reserve_in: Pool reserve of the input token
        reserve_out: Pool reserve of the output token
        fee_numerator: Fraction of input kept after the fee (997 for 0.3%)
        fee_denominator: Fee fraction denominator

    Returns:
        Output amount in raw units, rounded down

    Raises:
        InsufficientLiquidityError: if either reserve is zero
        ValueError: on negative input or an invalid fee fraction
    """
    if amount_in < 0:
        raise ValueError(f"amount_in must be non-negative, got {amount_in}")
    _check_fee(fee_numerator, fee_denominator)
    if reserve_in <= 0 or reserve_out <= 0:
        raise InsufficientLiquidityError(
            "Insufficient liquidity",
            {"reserve_in": reserve_in, "reserve_out": reserve_out},
        )
    if amount_in == 0:
        return 0

    amount_in_with_fee = amount_in * fee_numerator
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * fee_denominator + amount_in_with_fee
    return numerator // denominator


def get_amount_in(
    amount_out: int,
    reserve_in: int,
    reserve_out: int,
    fee_numerator: int = DEFAULT_FEE_NUMERATOR,
    fee_denominator: int = DEFAULT_FEE_DENOMINATOR,
) -> int:
    """
    Input amount required to receive exactly ``amount_out``.

    Rounded up by one unit as the V2 library does.

    Raises:
        InsufficientLiquidityError: if reserves are zero or amount_out >= reserve_out
    """
    if amount_out < 0:
        raise ValueError(f"amount_out must be non-negative, got {amount_out}")
    _check_fee(fee_numerator, fee_denominator)
    if reserve_in <= 0 or reserve_out <= 0 or amount_out >= reserve_out:
        raise InsufficientLiquidityError(
            "Insufficient liquidity",
            {"amount_out": amount_out, "reserve_out": reserve_out},
        )

    numerator = reserve_in * amount_out * fee_denominator
    denominator = (reserve_out - amount_out) * fee_numerator
    return numerator // denominator + 1


def get_amounts_out(
    amount_in: int,
    reserves_path: Sequence[Tuple[int, int]],
    fee_numerator: int = DEFAULT_FEE_NUMERATOR,
    fee_denominator: int = DEFAULT_FEE_DENOMINATOR,
) -> List[int]:
    """
    Chain get_amount_out over consecutive hops.

    Args:
        amount_in: Input amount of the first hop
        reserves_path: (reserve_in, reserve_out) for each hop in order

    Returns:
        Amounts at every step, starting with amount_in (router getAmountsOut layout)
    """
    if not reserves_path:
        raise ValueError("reserves_path must contain at least one hop")

    amounts = [amount_in]
    for reserve_in, reserve_out in reserves_path:
        amounts.append(
            get_amount_out(amounts[-1], reserve_in, reserve_out, fee_numerator, fee_denominator)
        )
    return amounts


def spot_price(reserve_in: int, reserve_out: int, decimals_in: int, decimals_out: int) -> Decimal:
    """Marginal price of one input token in output tokens (human units, no fee)"""
    if reserve_in <= 0 or reserve_out <= 0:
        raise InsufficientLiquidityError(
            "Insufficient liquidity",
            {"reserve_in": reserve_in, "reserve_out": reserve_out},
        )
    return (Decimal(reserve_out) / Decimal(10**decimals_out)) / (
        Decimal(reserve_in) / Decimal(10**decimals_in)
    )


def price_impact(
    amount_in: int,
    reserve_in: int,
    reserve_out: int,
    fee_numerator: int = DEFAULT_FEE_NUMERATOR,
    fee_denominator: int = DEFAULT_FEE_DENOMINATOR,
) -> Decimal:
    """
    Percentage shortfall of the execution price versus the spot price.

    Includes the swap fee, so a tiny trade reports roughly the fee itself.
    """
    if amount_in <= 0:
        raise ValueError(f"amount_in must be positive, got {amount_in}")

    amount_out = get_amount_out(amount_in, reserve_in, reserve_out, fee_numerator, fee_denominator)
    spot = Decimal(reserve_out) / Decimal(reserve_in)
    execution = Decimal(amount_out) / Decimal(amount_in)
    return (spot - execution) / spot * 100


def fee_fraction_from_bps(bps: int) -> Tuple[int, int]:
    """Convert a fee in basis points to (numerator, denominator); 30 -> (997, 1000)"""
    if not 0 <= bps < 10000:
        raise ValueError(f"fee must be in [0, 10000) bps, got {bps}")
    if bps % 10 == 0:
        return 1000 - bps // 10, 1000
    return 10000 - bps, 10000
