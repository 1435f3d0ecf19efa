"""Offline AMM pricing math"""

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
from hyperprobe.amm.constant_product import (
    fee_fraction_from_bps,
    get_amount_in,
    get_amount_out,
    get_amounts_out,
    price_impact,
    spot_price,
)

__all__ = [
    "MAX_SQRT_RATIO",
    "MAX_TICK",
    "MIN_SQRT_RATIO",
    "MIN_TICK",
    "Q96",
    "compute_swap_within_tick",
    "fee_fraction_from_bps",
    "get_amount_in",
    "get_amount_out",
    "get_amounts_out",
    "get_sqrt_ratio_at_tick",
    "price_impact",
    "price_to_sqrt_price_x96",
    "price_to_tick",
    "quote_from_sqrt_price",
    "spot_price",
    "sqrt_price_x96_to_price",
    "tick_to_price",
]
