"""Periodic DEX rate polling with spread alerts"""

import asyncio
import inspect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, List, Optional, Union

import structlog

from hyperprobe.dex.quoter import DexManager, QuoteParams, QuoteResult
from hyperprobe.monitoring import metrics

logger = structlog.get_logger()

ERROR_BACKOFF_SECONDS = 5.0


@dataclass
class RateSnapshot:
    """Result of one poll"""

    pair: str
    timestamp: str
    results: List[QuoteResult] = field(default_factory=list)
    failed: List[QuoteResult] = field(default_factory=list)
    spread: Decimal = Decimal(0)
    alert: bool = False

    @property
    def best(self) -> Optional[QuoteResult]:
        return self.results[0] if self.results else None


class RateMonitor:
    """
    Polls quotes for one pair on an interval.

    An alert is raised when (best - worst) / worst across successful
    venues exceeds alert_threshold.
    """

    def __init__(
        self,
        dex_manager: DexManager,
        token_in: str,
        token_out: str,
        amount: Union[Decimal, str],
        interval_seconds: float = 30.0,
        alert_threshold: Union[Decimal, float, str] = Decimal("0.05"),
        dex_filter: Optional[str] = None,
        on_update: Optional[Callable[[RateSnapshot], Any]] = None,
    ):
        """
        Initialize rate monitor.

        Args:
            dex_manager: Quoting backend
            token_in: Input token symbol or address
            token_out: Output token symbol or address
            amount: Human-readable input amount
            interval_seconds: Seconds between polls
            alert_threshold: Relative spread that triggers an alert (0.05 = 5%)
            dex_filter: Only quote DEXes whose id or protocol equals this value
            on_update: Callback (plain or coroutine function) receiving each snapshot
        """
        self.dex_manager = dex_manager
        self.params = QuoteParams(token_in=token_in, token_out=token_out, amount_in=amount)
        self.interval_seconds = interval_seconds
        self.alert_threshold = Decimal(str(alert_threshold))
        self.dex_filter = dex_filter
        self.on_update = on_update
        self.pair = f"{token_in}/{token_out}"

        self._logger = logger.bind(component="rate_monitor", pair=self.pair)
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.poll_count = 0
        self.alert_count = 0

    def _selected_dexes(self) -> List[str]:
        dexes = self.dex_manager.loader.get_active_dexes(self.dex_manager.network)
        if not self.dex_filter:
            return list(dexes)
        return [
            dex_id
            for dex_id, dex in dexes.items()
            if dex_id == self.dex_filter or dex.protocol == self.dex_filter
        ]

    def check_alert(self, results: List[QuoteResult]) -> Decimal:
        """
        Relative spread between the best and worst successful rate.

        Returns:
            Spread ratio, 0 when fewer than two venues quoted
        """
        rates = [r.rate for r in results if r.success and r.rate > 0]
        if len(rates) < 2:
            return Decimal(0)
        worst = min(rates)
        return (max(rates) - worst) / worst

    async def poll_once(self) -> RateSnapshot:
        """Quote every selected DEX once, update metrics and evaluate the alert"""
        dex_ids = self._selected_dexes()
        quotes = list(
            await asyncio.gather(*(self.dex_manager.get_quote(d, self.params) for d in dex_ids))
        )

        successful = sorted((q for q in quotes if q.success), key=lambda q: q.rate, reverse=True)
        failed = [q for q in quotes if not q.success]
        spread = self.check_alert(successful)
        alert = len(successful) >= 2 and spread > self.alert_threshold

        snapshot = RateSnapshot(
            pair=self.pair,
            timestamp=datetime.now(timezone.utc).isoformat(),
            results=successful,
            failed=failed,
            spread=spread,
            alert=alert,
        )
        self.poll_count += 1

        metrics.monitor_polls.labels(pair=self.pair, status="success").inc()
        metrics.rate_spread.labels(pair=self.pair).set(float(spread))
        if snapshot.best:
            metrics.best_rate.labels(pair=self.pair).set(float(snapshot.best.rate))

        if alert:
            self.alert_count += 1
            metrics.rate_alerts.labels(pair=self.pair).inc()
            self._logger.warning(
                "rate_spread_alert",
                spread=str(spread),
                threshold=str(self.alert_threshold),
                best_dex=successful[0].dex_name,
                best_rate=str(successful[0].rate),
                worst_dex=successful[-1].dex_name,
                worst_rate=str(successful[-1].rate),
            )
        else:
            self._logger.info(
                "rates_polled",
                quoted=len(successful),
                failed=len(failed),
                spread=str(spread),
            )

        if self.on_update:
            outcome = self.on_update(snapshot)
            if inspect.isawaitable(outcome):
                await outcome

        return snapshot

    async def start(self) -> None:
        """Start polling loop"""
        if self._running:
            self._logger.warning("rate_monitor_already_running")
            return

        self._running = True
        self._task = asyncio.create_task(self._poll_loop())

        self._logger.info(
            "rate_monitor_started",
            interval_seconds=self.interval_seconds,
            alert_threshold=str(self.alert_threshold),
            dex_filter=self.dex_filter,
        )

    async def stop(self) -> None:
        """Stop polling loop"""
        if not self._running:
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        self._logger.info(
            "rate_monitor_stopped",
            polls=self.poll_count,
            alerts=self.alert_count,
        )

    async def run_forever(self) -> None:
        """Start and block until the polling task ends"""
        await self.start()
        if self._task:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _poll_loop(self) -> None:
        """Internal polling loop"""
        while self._running:
            try:
                await self.poll_once()
                delay = self.interval_seconds
            except Exception as e:
                metrics.monitor_polls.labels(pair=self.pair, status="error").inc()
                self._logger.error("rate_poll_error", error=str(e))
                delay = ERROR_BACKOFF_SECONDS

            await asyncio.sleep(delay)
