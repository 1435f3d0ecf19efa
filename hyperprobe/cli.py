"""hyperprobe command line interface"""

import asyncio
import json
from decimal import Decimal, InvalidOperation
from typing import Any, Coroutine, List, Optional, Tuple

import click
from dotenv import load_dotenv
from tabulate import tabulate
from web3 import Web3

from hyperprobe.amm.concentrated import (
    compute_swap_within_tick,
    quote_from_sqrt_price,
    sqrt_price_x96_to_price,
)
from hyperprobe.amm.constant_product import (
    fee_fraction_from_bps,
    get_amount_out,
    price_impact,
    spot_price,
)
from hyperprobe.chains.gas import GasPriceCalculator, GasStrategy
from hyperprobe.chains.hyperevm_connector import HyperEVMConnector
from hyperprobe.config.loader import ConfigLoader
from hyperprobe.config.models import ChainConfig, DexConfig, Settings
from hyperprobe.detectors.arbitrage import ArbitrageDetector
from hyperprobe.dex.pools import PoolInspector
from hyperprobe.dex.quoter import DexManager, QuoteParams
from hyperprobe.dex.tokens import TokenInfo, from_base_units, to_base_units
from hyperprobe.errors import ConfigError, HyperProbeError
from hyperprobe.formatting import (
    OUTPUT_FORMATS,
    render_gas_analysis,
    render_pool_state,
    render_quotes,
    render_round_trips,
)
from hyperprobe.monitors.rate_monitor import RateMonitor, RateSnapshot
from hyperprobe.utils.logging import get_logger, setup_logging

logger = get_logger("hyperprobe.cli")


class AppContext:
    """Lazily built services shared by subcommands"""

    def __init__(
        self,
        settings: Settings,
        network: str,
        rpc_url: Optional[str] = None,
        config_dir: Optional[str] = None,
    ):
        self.settings = settings
        self.network = network
        self.rpc_url = rpc_url
        self.loader = ConfigLoader(config_dir or settings.config_dir)
        self._connector: Optional[HyperEVMConnector] = None
        self._dex_manager: Optional[DexManager] = None

    def chain_config(self) -> ChainConfig:
        config = self.settings.get_chain_config(self.network)
        if self.rpc_url:
            config = config.model_copy(update={"rpc_urls": [self.rpc_url]})
        return config

    @property
    def connector(self) -> HyperEVMConnector:
        if self._connector is None:
            try:
                self._connector = HyperEVMConnector(self.chain_config())
            except (HyperProbeError, ValueError) as e:
                logger.debug("connector_init_failed", error=str(e), network=self.network)
                raise click.ClickException(str(e)) from e
        return self._connector

    @property
    def dex_manager(self) -> DexManager:
        if self._dex_manager is None:
            self._dex_manager = DexManager(self.connector, self.loader, self.network)
        return self._dex_manager


pass_app = click.make_pass_decorator(AppContext)


def _run(coro: Coroutine) -> Any:
    """Run a coroutine, turning domain errors into click errors"""
    try:
        return asyncio.run(coro)
    except HyperProbeError as e:
        logger.debug("command_failed", error=e.message, details=e.details)
        raise click.ClickException(e.message) from e


def _parse_pair(ctx, param, value: Optional[str]) -> Optional[Tuple[str, str]]:
    if value is None:
        return None
    parts = [p.strip() for p in value.split(",")]
    if len(parts) != 2 or not all(parts):
        raise click.BadParameter("expected two tokens separated by a comma, e.g. WHYPE,UBTC")
    if parts[0].upper() == parts[1].upper():
        raise click.BadParameter("tokens must differ")
    return parts[0], parts[1]


def _parse_amount(ctx, param, value: str) -> Decimal:
    try:
        amount = Decimal(value)
    except InvalidOperation:
        raise click.BadParameter(f"'{value}' is not a number")
    if amount <= 0:
        raise click.BadParameter("amount must be positive")
    return amount


def _check_network(app: AppContext) -> None:
    try:
        app.loader.get_network_info(app.network)
    except ConfigError as e:
        raise click.BadParameter(e.message, param_hint="--network")


def _check_tokens(app: AppContext, tokens: Tuple[str, str]) -> None:
    _check_network(app)
    for token in tokens:
        if Web3.is_address(token.lower()):
            continue
        try:
            app.loader.get_token_by_id(token, app.network)
        except ConfigError:
            raise click.BadParameter(f"unknown token '{token}'", param_hint="--tokens")


def _check_dex(app: AppContext, dex_id: Optional[str], dex_type: Optional[str] = None) -> None:
    if dex_id is None:
        return
    _check_network(app)
    try:
        dex = app.loader.get_dex_by_id(dex_id, app.network)
    except ConfigError:
        raise click.BadParameter(f"unknown DEX '{dex_id}'", param_hint="--dex")
    if dex_type and dex.type != dex_type:
        raise click.BadParameter(f"DEX '{dex_id}' is not a {dex_type} venue", param_hint="--dex")


tokens_option = click.option(
    "--tokens", required=True, callback=_parse_pair, help="Token pair, e.g. WHYPE,UBTC"
)
amount_option = click.option(
    "--amount", default="1", show_default=True, callback=_parse_amount, help="Input amount"
)


@click.group()
@click.option("--network", default=None, help="Network id (default from HYPERPROBE_NETWORK)")
@click.option("--rpc-url", default=None, help="Override the RPC endpoint")
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
@click.option("--config-dir", default=None, help="Directory holding dex/token config JSON")
@click.pass_context
def cli(ctx, network, rpc_url, log_level, config_dir):
    """Probe HyperEVM DEX rates, pools and gas."""
    load_dotenv()
    settings = Settings()
    setup_logging(log_level or settings.log_level, json_logs=False)
    ctx.obj = AppContext(settings, network or settings.network, rpc_url, config_dir)


@cli.command()
@tokens_option
@amount_option
@click.option("--dex", "dex_id", default=None, help="Only quote this DEX id")
@click.option("--output", "fmt", type=click.Choice(OUTPUT_FORMATS), default="table")
@click.option("--monitor", is_flag=True, help="Keep polling")
@click.option("--interval", default=30.0, show_default=True, help="Polling interval (seconds)")
@click.option("--alert-threshold", default=0.05, show_default=True, help="Spread alert ratio")
@pass_app
def rates(app, tokens, amount, dex_id, fmt, monitor, interval, alert_threshold):
    """Compare swap rates across DEXes."""
    _check_tokens(app, tokens)
    _check_dex(app, dex_id)
    token_in, token_out = tokens

    if monitor:
        def show(snapshot: RateSnapshot) -> None:
            click.echo(f"[{snapshot.timestamp}]")
            click.echo(render_quotes(snapshot.results + snapshot.failed, fmt))
            if snapshot.alert:
                click.secho(f"ALERT: spread {snapshot.spread:.2%} exceeds threshold", fg="red")

        rate_monitor = RateMonitor(
            app.dex_manager,
            token_in,
            token_out,
            amount,
            interval_seconds=interval,
            alert_threshold=alert_threshold,
            dex_filter=dex_id,
            on_update=show,
        )
        try:
            _run(rate_monitor.run_forever())
        except KeyboardInterrupt:
            click.echo("Stopped")
        return

    params = QuoteParams(token_in=token_in, token_out=token_out, amount_in=amount)

    async def quote():
        if dex_id:
            return [await app.dex_manager.get_quote(dex_id, params)]
        return await app.dex_manager.get_all_quotes(params)

    click.echo(render_quotes(_run(quote()), fmt))


@cli.command()
@tokens_option
@amount_option
@click.option("--dex", "dex_id", default=None, help="V3/CL DEX id (default: all)")
@click.option("--output", "fmt", type=click.Choice(OUTPUT_FORMATS), default="table")
@pass_app
def tiers(app, tokens, amount, dex_id, fmt):
    """Compare every fee tier or tick spacing of V3/CL venues."""
    _check_tokens(app, tokens)
    _check_dex(app, dex_id, "v3")
    params = QuoteParams(token_in=tokens[0], token_out=tokens[1], amount_in=amount)

    dex_ids = [dex_id] if dex_id else [
        d for d, dex in app.loader.get_active_dexes(app.network).items() if dex.type == "v3"
    ]

    async def quote():
        per_dex = await asyncio.gather(
            *(app.dex_manager.get_v3_tier_quotes(d, params) for d in dex_ids)
        )
        return [result for results in per_dex for result in results]

    click.echo(render_quotes(_run(quote()), fmt))


@cli.group()
def pool():
    """Inspect pools directly and compare with router/quoter quotes."""


def _default_dex(app: AppContext, dex_type: str) -> str:
    for dex_id, dex in app.loader.get_active_dexes(app.network).items():
        if dex.type == dex_type:
            return dex_id
    raise click.UsageError(f"No active {dex_type} DEX on {app.network}")


def _require_factory(dex_id: str, dex: DexConfig) -> str:
    if not dex.factory:
        raise click.UsageError(f"DEX '{dex_id}' has no factory address configured")
    return dex.factory


@pool.command("v2")
@tokens_option
@amount_option
@click.option("--dex", "dex_id", default=None, help="V2 DEX id")
@pass_app
def pool_v2(app, tokens, amount, dex_id):
    """Show a V2 pair and compare a manual quote with the router."""
    _check_tokens(app, tokens)
    _check_dex(app, dex_id, "v2")
    dex_id = dex_id or _default_dex(app, "v2")
    dex = app.loader.get_dex_by_id(dex_id, app.network)
    factory = _require_factory(dex_id, dex)

    async def inspect_pool():
        manager = app.dex_manager
        token_in: TokenInfo = await manager.registry.resolve(tokens[0])
        token_out: TokenInfo = await manager.registry.resolve(tokens[1])
        inspector = PoolInspector(app.connector)
        pair = await inspector.get_v2_pair(factory, token_in.address, token_out.address)
        state = await inspector.get_v2_pool_state(pair)
        token0_is_in = state.token0 == token_in.address
        decimals0, decimals1 = (
            (token_in.decimals, token_out.decimals)
            if token0_is_in
            else (token_out.decimals, token_in.decimals)
        )

        amount_raw = to_base_units(amount, token_in.decimals)
        manual = None
        if state.has_liquidity:
            manual = inspector.manual_v2_quote(
                state, token_in.address, amount_raw, dex.fee_numerator, dex.fee_denominator
            )
        router = await manager.get_quote(
            dex_id, QuoteParams(token_in=tokens[0], token_out=tokens[1], amount_in=amount)
        )
        return state, decimals0, decimals1, token_out, manual, router

    state, decimals0, decimals1, token_out, manual, router = _run(inspect_pool())
    click.echo(render_pool_state(state, decimals0, decimals1))
    click.echo("")
    rows = [
        [
            "manual (reserves)",
            str(from_base_units(manual, token_out.decimals)) if manual is not None else "-",
        ],
        [
            "router getAmountsOut",
            str(router.amount_out_formatted) if router.success else router.exclusion_reason,
        ],
    ]
    click.echo(tabulate(rows, headers=["Source", f"Out ({token_out.symbol})"], tablefmt="grid"))


@pool.command("v3")
@tokens_option
@amount_option
@click.option("--fee", type=int, required=True, help="Fee tier (tick spacing for CL venues)")
@click.option("--dex", "dex_id", default=None, help="V3/CL DEX id")
@pass_app
def pool_v3(app, tokens, amount, fee, dex_id):
    """Show a V3/CL pool's slot0 and compare estimates with the quoter."""
    _check_tokens(app, tokens)
    _check_dex(app, dex_id, "v3")
    dex_id = dex_id or _default_dex(app, "v3")
    dex = app.loader.get_dex_by_id(dex_id, app.network)
    factory = _require_factory(dex_id, dex)

    async def inspect_pool():
        manager = app.dex_manager
        token_in: TokenInfo = await manager.registry.resolve(tokens[0])
        token_out: TokenInfo = await manager.registry.resolve(tokens[1])
        inspector = PoolInspector(app.connector)
        address = await inspector.get_v3_pool(factory, token_in.address, token_out.address, fee)
        state = await inspector.get_v3_pool_state(address)
        amount_raw = to_base_units(amount, token_in.decimals)
        manual = inspector.manual_v3_quote(
            state, token_in.address, amount_raw, token_in.decimals, token_out.decimals
        )
        tier = {"tick_spacing": fee} if dex.tier_param == "tickSpacing" else {"fee": fee}
        quoted = await manager.get_quote(
            dex_id,
            QuoteParams(token_in=tokens[0], token_out=tokens[1], amount_in=amount, **tier),
        )
        zero_for_one = state.token0 == token_in.address
        decimals0, decimals1 = (
            (token_in.decimals, token_out.decimals)
            if zero_for_one
            else (token_out.decimals, token_in.decimals)
        )
        return state, decimals0, decimals1, token_out, manual, quoted

    state, decimals0, decimals1, token_out, manual, quoted = _run(inspect_pool())
    click.echo(render_pool_state(state, decimals0, decimals1))
    click.echo("")

    def human(raw: Optional[int]) -> str:
        return str(from_base_units(raw, token_out.decimals)) if raw is not None else "-"

    rows = [
        ["spot price estimate", human(manual.spot_amount_out)],
        ["in-tick swap estimate", human(manual.in_tick_amount_out)],
        ["quoter", human(quoted.amount_out) if quoted.success else quoted.exclusion_reason],
    ]
    click.echo(tabulate(rows, headers=["Source", f"Out ({token_out.symbol})"], tablefmt="grid"))


@cli.group()
def calc():
    """Offline AMM math (no RPC)."""


@calc.command("v2")
@click.option("--reserve-in", type=int, required=True, help="Raw reserve of the input token")
@click.option("--reserve-out", type=int, required=True, help="Raw reserve of the output token")
@click.option("--amount-in", type=int, required=True, help="Raw input amount")
@click.option("--fee-bps", type=int, default=30, show_default=True)
@click.option("--decimals-in", type=int, default=18, show_default=True)
@click.option("--decimals-out", type=int, default=18, show_default=True)
def calc_v2(reserve_in, reserve_out, amount_in, fee_bps, decimals_in, decimals_out):
    """Constant product output for given reserves."""
    try:
        numerator, denominator = fee_fraction_from_bps(fee_bps)
        amount_out = get_amount_out(amount_in, reserve_in, reserve_out, numerator, denominator)
        rows = [
            ["amountOut (raw)", amount_out],
            ["amountOut", str(from_base_units(amount_out, decimals_out))],
            ["fee", f"{numerator}/{denominator}"],
            ["spot price", str(spot_price(reserve_in, reserve_out, decimals_in, decimals_out))],
        ]
        if amount_in > 0:
            impact = price_impact(amount_in, reserve_in, reserve_out, numerator, denominator)
            rows.append(["price impact", f"{impact:.4f}%"])
    except (HyperProbeError, ValueError) as e:
        raise click.ClickException(str(e))
    click.echo(tabulate(rows, tablefmt="simple", disable_numparse=True))


@calc.command("v3")
@click.option("--sqrt-price-x96", type=int, required=True)
@click.option("--decimals0", type=int, required=True)
@click.option("--decimals1", type=int, required=True)
@click.option("--liquidity", type=int, default=None, help="Active liquidity for an in-tick swap")
@click.option("--amount-in", type=int, default=None, help="Raw input amount")
@click.option("--fee", type=int, default=3000, show_default=True, help="Fee in hundredths of a bip")
@click.option("--zero-for-one/--one-for-zero", default=True, show_default=True)
def calc_v3(sqrt_price_x96, decimals0, decimals1, liquidity, amount_in, fee, zero_for_one):
    """Price from sqrtPriceX96 and optional swap estimates."""
    try:
        price = sqrt_price_x96_to_price(sqrt_price_x96, decimals0, decimals1)
        rows = [
            ["price token0 in token1", str(price)],
            ["price token1 in token0", str(1 / price) if price else "-"],
        ]
        if amount_in is not None:
            rows.append(
                ["spot estimate (raw)", quote_from_sqrt_price(amount_in, sqrt_price_x96, zero_for_one, fee)]
            )
            if liquidity is not None:
                amount_out, sqrt_after = compute_swap_within_tick(
                    sqrt_price_x96, liquidity, amount_in, fee, zero_for_one
                )
                rows.append(["in-tick amountOut (raw)", amount_out])
                rows.append(["sqrtPriceX96 after", sqrt_after])
                rows.append(
                    ["price after", str(sqrt_price_x96_to_price(sqrt_after, decimals0, decimals1))]
                )
    except (HyperProbeError, ValueError) as e:
        raise click.ClickException(str(e))
    click.echo(tabulate(rows, tablefmt="simple", disable_numparse=True))


@cli.group()
def tokens():
    """Configured tokens."""


@tokens.command("list")
@pass_app
def tokens_list(app):
    """List configured tokens of the network."""
    try:
        configured = app.loader.get_token_config(app.network)
    except ConfigError as e:
        raise click.ClickException(e.message)
    rows = [
        [t.symbol, t.address, t.decimals, t.type, t.note or ""]
        for t in configured.values()
    ]
    click.echo(
        tabulate(rows, headers=["Symbol", "Address", "Decimals", "Type", "Note"], tablefmt="grid")
    )


@tokens.command("verify")
@click.argument("symbols", nargs=-1)
@pass_app
def tokens_verify(app, symbols):
    """Compare configured decimals with on-chain decimals()."""
    try:
        targets: List[str] = list(symbols) or list(app.loader.get_token_config(app.network))
        for symbol in targets:
            app.loader.get_token_by_id(symbol, app.network)
    except ConfigError as e:
        raise click.BadParameter(e.message, param_hint="SYMBOLS")

    async def verify():
        registry = app.dex_manager.registry
        return await asyncio.gather(*(registry.verify_decimals(s) for s in targets))

    checks = _run(verify())
    rows = [
        [
            c.symbol,
            c.configured,
            c.on_chain if c.on_chain is not None else "-",
            "ok" if c.matches else (c.error or "MISMATCH"),
        ]
        for c in checks
    ]
    click.echo(tabulate(rows, headers=["Symbol", "Config", "On-chain", "Status"], tablefmt="grid"))
    if not all(c.matches for c in checks):
        raise SystemExit(1)


@cli.command()
@click.option(
    "--strategy",
    type=click.Choice([s.value for s in GasStrategy]),
    default=None,
    help="Show only this strategy",
)
@click.option("--gas-limit", type=int, default=None, help="Also estimate cost for this gas limit")
@pass_app
def gas(app, strategy, gas_limit):
    """Analyze current gas prices."""
    calculator = GasPriceCalculator(app.connector)
    analysis = _run(calculator.analyze_network_gas_prices())

    if strategy:
        info = analysis.suggested[GasStrategy(strategy)]
        fmt = GasPriceCalculator.format_gas_price
        click.echo(
            tabulate(
                [
                    ["gasPrice", fmt(info.gas_price)],
                    ["maxFeePerGas", fmt(info.max_fee_per_gas)],
                    ["maxPriorityFeePerGas", fmt(info.max_priority_fee_per_gas)],
                ],
                tablefmt="simple",
            )
        )
    else:
        info = analysis.suggested[GasStrategy(analysis.recommendation["strategy"])]
        click.echo(render_gas_analysis(analysis))

    if gas_limit:
        cost = GasPriceCalculator.estimate_transaction_cost(gas_limit, info.gas_price)
        click.echo(f"Estimated cost for {gas_limit} gas: {cost.cost_native} HYPE")


@cli.command()
@tokens_option
@amount_option
@click.option("--threshold", default=1.0, show_default=True, help="Minimum round-trip profit (%)")
@click.option("--with-gas", is_flag=True, help="Price gas with the standard strategy")
@click.option("--output", "fmt", type=click.Choice(["table", "json"]), default="table")
@pass_app
def arbitrage(app, tokens, amount, threshold, with_gas, fmt):
    """Find profitable A->B->A round trips across venues."""
    _check_tokens(app, tokens)
    gas_calculator = GasPriceCalculator(app.connector) if with_gas else None
    detector = ArbitrageDetector(app.dex_manager, gas_calculator=gas_calculator)

    async def detect():
        report = await detector.check_bidirectional_rates(tokens[0], tokens[1], amount)
        trips = await detector.find_round_trips(tokens[0], tokens[1], amount, threshold)
        return report, trips

    report, trips = _run(detect())

    if fmt == "json":
        payload = {
            "spread_a_to_b_pct": str(report.spread_pct("a_to_b")),
            "spread_b_to_a_pct": str(report.spread_pct("b_to_a")),
            "round_trips": [
                {
                    "route": t.route,
                    "initial_amount": str(t.initial_amount),
                    "final_amount": str(t.final_amount),
                    "profit": str(t.profit),
                    "profit_pct": str(t.profit_pct),
                    "gas_estimate": t.gas_estimate,
                }
                for t in trips
            ],
            "excluded": [
                {"dex": r.dex_name, "reason": r.exclusion_reason} for r in report.excluded()
            ],
        }
        click.echo(json.dumps(payload, indent=2))
        return

    click.echo(f"{tokens[0]} -> {tokens[1]}")
    click.echo(render_quotes(report.a_to_b))
    click.echo(f"\n{tokens[1]} -> {tokens[0]}")
    click.echo(render_quotes(report.b_to_a))
    click.echo("\nRound trips")
    click.echo(render_round_trips(trips))


@cli.group("config")
def config_group():
    """Inspect the DEX and token configuration."""


@config_group.command("validate")
@pass_app
def config_validate(app):
    """Check both configuration files for consistency."""
    valid, errors = app.loader.validate_config()
    if valid:
        click.echo("Configuration is valid")
        return
    for error in errors:
        click.echo(f"- {error}", err=True)
    raise click.ClickException(f"{len(errors)} configuration problem(s) found")


@config_group.command("show")
@pass_app
def config_show(app):
    """Summarize the selected network's configuration."""
    try:
        network = app.loader.get_network_info(app.network)
        protocols = app.loader.get_supported_protocols()
    except ConfigError as e:
        raise click.ClickException(e.message)

    click.echo(f"Network: {app.network} (chain id {network.chain_id})")
    click.echo(f"Protocols: {', '.join(protocols)}")
    rows = [
        [
            dex_id,
            dex.name,
            dex.type,
            dex.router or dex.quoter or "-",
            ", ".join(str(t) for t in dex.tiers) or "-",
            dex.status,
        ]
        for dex_id, dex in network.dexes.items()
    ]
    click.echo(
        tabulate(
            rows,
            headers=["Id", "Name", "Type", "Router/Quoter", "Tiers", "Status"],
            tablefmt="grid",
        )
    )
    click.echo(f"Tokens: {len(network.tokens)}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
