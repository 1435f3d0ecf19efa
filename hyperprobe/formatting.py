"""Console rendering of quotes, pools, round trips and gas analysis"""

import csv
import io
import json
from decimal import Decimal
from typing import List, Optional, Sequence, Union

from tabulate import tabulate

from hyperprobe.amm.concentrated import sqrt_price_x96_to_price
from hyperprobe.chains.gas import GasPriceCalculator, NetworkGasAnalysis
from hyperprobe.detectors.arbitrage import RoundTrip
from hyperprobe.dex.pools import V2PoolState, V3PoolState
from hyperprobe.dex.quoter import QuoteResult

OUTPUT_FORMATS = ("table", "json", "csv")

CSV_HEADER = [
    "dex",
    "token_in",
    "token_out",
    "amount_in",
    "amount_out",
    "rate",
    "fee",
    "gas_estimate",
    "timestamp",
]


def _fmt(value: Decimal, places: int = 8) -> str:
    return f"{value:.{places}f}".rstrip("0").rstrip(".") if value else "0"


def _tier_label(result: QuoteResult) -> str:
    if result.fee is not None:
        return str(result.fee)
    if result.tick_spacing is not None:
        return f"ts {result.tick_spacing}"
    return "-"


def _ranked(results: Sequence[QuoteResult]) -> List[QuoteResult]:
    return sorted((r for r in results if r.success), key=lambda r: r.rate, reverse=True)


def _quotes_table(results: Sequence[QuoteResult]) -> str:
    ranked = _ranked(results)
    failed = [r for r in results if not r.success]

    rows = []
    for index, result in enumerate(ranked):
        rows.append(
            [
                "*" if index == 0 else "",
                result.dex_name,
                f"{_fmt(result.amount_in_formatted)} {result.token_in}",
                f"{_fmt(result.amount_out_formatted)} {result.token_out}",
                _fmt(result.rate),
                _tier_label(result),
                result.gas_estimate,
            ]
        )
    for result in failed:
        rows.append(["x", result.dex_name, "", "", "", _tier_label(result), result.exclusion_reason])

    lines = [
        tabulate(
            rows,
            headers=["", "DEX", "Amount in", "Amount out", "Rate", "Tier", "Gas"],
            tablefmt="grid",
        )
    ]

    if ranked:
        best, worst = ranked[0], ranked[-1]
        lines.append(f"Best rate: {_fmt(best.rate)} on {best.dex_name}")
        if len(ranked) > 1 and worst.rate > 0:
            spread = (best.rate - worst.rate) / worst.rate * 100
            lines.append(f"Spread: {spread:.2f}% ({best.dex_name} vs {worst.dex_name})")
    else:
        lines.append("No successful quotes")

    return "\n".join(lines)


def _quotes_csv(results: Sequence[QuoteResult]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for result in _ranked(results):
        writer.writerow(
            [
                result.dex_name,
                result.token_in,
                result.token_out,
                str(result.amount_in_formatted),
                str(result.amount_out_formatted),
                str(result.rate),
                result.tier if result.tier is not None else "",
                result.gas_estimate,
                result.timestamp,
            ]
        )
    return buffer.getvalue()


def render_quotes(results: Sequence[QuoteResult], fmt: str = "table") -> str:
    """
    Render quote results.

    Args:
        results: Quote results, successful and failed
        fmt: "table", "json" or "csv"; csv holds successful quotes only

    Raises:
        ValueError: on an unknown format
    """
    if fmt == "table":
        return _quotes_table(results)
    if fmt == "json":
        return json.dumps([r.to_dict() for r in results], indent=2)
    if fmt == "csv":
        return _quotes_csv(results)
    raise ValueError(f"Unknown output format '{fmt}', expected one of {', '.join(OUTPUT_FORMATS)}")


def render_pool_state(
    state: Union[V2PoolState, V3PoolState],
    decimals0: Optional[int] = None,
    decimals1: Optional[int] = None,
) -> str:
    """Key/value table of a pool snapshot; prices are shown when decimals are known"""
    known = decimals0 is not None and decimals1 is not None

    if isinstance(state, V2PoolState):
        rows = [
            ["Pair", state.pair_address],
            ["token0", state.token0],
            ["token1", state.token1],
            ["reserve0", state.reserve0],
            ["reserve1", state.reserve1],
            ["totalSupply", state.total_supply],
            ["blockTimestampLast", state.block_timestamp_last],
            ["Liquidity", "yes" if state.has_liquidity else "no"],
        ]
        if known and state.has_liquidity:
            price = (Decimal(state.reserve1) / Decimal(10) ** decimals1) / (
                Decimal(state.reserve0) / Decimal(10) ** decimals0
            )
            rows.append(["Price token0 in token1", _fmt(price)])
    else:
        rows = [
            ["Pool", state.pool_address],
            ["token0", state.token0],
            ["token1", state.token1],
            ["fee", state.fee],
            ["tickSpacing", state.tick_spacing],
            ["sqrtPriceX96", state.sqrt_price_x96],
            ["tick", state.tick],
            ["liquidity", state.liquidity],
            ["unlocked", state.unlocked],
            ["Liquidity", "yes" if state.has_liquidity else "no"],
        ]
        if known and state.sqrt_price_x96 > 0:
            price = sqrt_price_x96_to_price(state.sqrt_price_x96, decimals0, decimals1)
            rows.append(["Price token0 in token1", _fmt(price)])

    return tabulate(rows, tablefmt="simple")


def render_round_trips(trips: Sequence[RoundTrip]) -> str:
    if not trips:
        return "No round trips above threshold"

    rows = [
        [
            trip.buy.dex_name,
            trip.sell.dex_name,
            _fmt(trip.initial_amount),
            _fmt(trip.final_amount),
            _fmt(trip.profit),
            f"{trip.profit_pct:.3f}%",
            trip.gas_estimate,
            _fmt(trip.gas_cost_native) if trip.gas_cost_native is not None else "-",
        ]
        for trip in trips
    ]
    return tabulate(
        rows,
        headers=["Buy on", "Sell on", "Start", "End", "Profit", "Profit %", "Gas", "Gas (HYPE)"],
        tablefmt="grid",
    )


def render_gas_analysis(analysis: NetworkGasAnalysis) -> str:
    fmt = GasPriceCalculator.format_gas_price
    rows = [
        [
            strategy.value,
            fmt(info.gas_price),
            fmt(info.max_fee_per_gas),
            fmt(info.max_priority_fee_per_gas),
        ]
        for strategy, info in analysis.suggested.items()
    ]

    lines = [
        f"Block: {analysis.block_number}",
        f"Base fee: {fmt(analysis.current_base_fee)}",
        f"Congestion: {analysis.congestion.value}",
        tabulate(
            rows,
            headers=["Strategy", "Gas price", "Max fee", "Priority fee"],
            tablefmt="grid",
        ),
        (
            f"Recommended: {analysis.recommendation['strategy']} "
            f"({analysis.recommendation['reason']}, "
            f"~{analysis.recommendation['estimated_confirmation']})"
        ),
    ]
    return "\n".join(lines)
