"""Long-running rate monitor service"""

import asyncio
import signal
import sys
from typing import List, Optional

import structlog
from dotenv import load_dotenv

from hyperprobe.chains.hyperevm_connector import HyperEVMConnector
from hyperprobe.config.loader import ConfigLoader
from hyperprobe.config.models import Settings
from hyperprobe.dex.quoter import DexManager
from hyperprobe.monitoring.metrics import start_metrics_server
from hyperprobe.monitors.rate_monitor import RateMonitor
from hyperprobe.utils.logging import setup_logging

logger = structlog.get_logger()


class Application:
    """Main application orchestrator"""

    def __init__(self, settings: Optional[Settings] = None):
        """Initialize application components"""
        self.settings = settings
        self.loader: Optional[ConfigLoader] = None
        self.connector: Optional[HyperEVMConnector] = None
        self.dex_manager: Optional[DexManager] = None
        self.monitors: List[RateMonitor] = []

        # Shutdown flag
        self._shutdown_event = asyncio.Event()

        self._logger = logger.bind(component="application")

    async def initialize(self) -> None:
        """Initialize all application components"""
        self._logger.info("application_initializing")

        try:
            if self.settings is None:
                self.settings = Settings()

            setup_logging(self.settings.log_level)
            self._logger.info(
                "settings_loaded",
                network=self.settings.network,
                log_level=self.settings.log_level.upper(),
                interval_seconds=self.settings.monitor_interval_seconds,
            )

            self.loader = ConfigLoader(self.settings.config_dir)
            valid, errors = self.loader.validate_config()
            if not valid:
                self._logger.warning("config_validation_errors", errors=errors)

            chain_config = self.settings.get_chain_config(self.settings.network)
            self.connector = HyperEVMConnector(chain_config)
            self.dex_manager = DexManager(self.connector, self.loader, self.settings.network)

            available = self.loader.get_token_config(self.settings.network)
            available_upper = {symbol.upper() for symbol in available}
            for token_a, token_b in self.loader.get_common_pairs():
                if token_a.upper() not in available_upper or token_b.upper() not in available_upper:
                    self._logger.info("pair_skipped_not_configured", pair=f"{token_a}/{token_b}")
                    continue
                self.monitors.append(
                    RateMonitor(
                        self.dex_manager,
                        token_a,
                        token_b,
                        self.settings.monitor_amount,
                        interval_seconds=self.settings.monitor_interval_seconds,
                        alert_threshold=self.settings.alert_threshold,
                    )
                )

            self._logger.info("application_initialized", monitors=len(self.monitors))

        except Exception as e:
            self._logger.error(
                "application_initialization_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

    async def start(self) -> None:
        """Start all application components"""
        self._logger.info("application_starting")

        self._logger.info("starting_metrics_server", port=self.settings.prometheus_port)
        start_metrics_server(port=self.settings.prometheus_port)

        for monitor in self.monitors:
            await monitor.start()

        self._logger.info("application_started")

    async def stop(self) -> None:
        """Stop all application components gracefully"""
        self._logger.info("application_stopping")

        for monitor in self.monitors:
            try:
                await monitor.stop()
            except Exception as e:
                self._logger.error(
                    "monitor_stop_error",
                    pair=monitor.pair,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        self._logger.info("application_stopped")

    def setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown"""
        def signal_handler(signum, frame):
            """Handle shutdown signals"""
            signal_name = signal.Signals(signum).name
            self._logger.info(
                "shutdown_signal_received",
                signal=signal_name,
            )
            self._shutdown_event.set()

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)

        self._logger.info("signal_handlers_registered")

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def wait_for_shutdown(self) -> None:
        """Wait for shutdown signal"""
        await self._shutdown_event.wait()


async def main() -> None:
    """Main application entry point"""
    load_dotenv()
    app = Application()

    try:
        await app.initialize()
        app.setup_signal_handlers()
        await app.start()

        await app.wait_for_shutdown()

        await app.stop()
        logger.info("application_shutdown_complete")

    except KeyboardInterrupt:
        logger.info("keyboard_interrupt_received")
        await app.stop()
    except Exception as e:
        logger.error(
            "application_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        await app.stop()
        sys.exit(1)


def run() -> None:
    """Run the application"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("application_terminated")
