"""Shared fixtures"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from hyperprobe.config.loader import ConfigLoader


@pytest.fixture
def loader():
    """Loader over the bundled configuration files"""
    return ConfigLoader()


@pytest.fixture
def mock_connector():
    connector = MagicMock()
    connector.chain_name = "HyperEVM"
    connector.chain_id = 999
    connector.call_function = AsyncMock()
    return connector


@pytest.fixture
def make_quote():
    """Factory for QuoteResult objects with consistent formatted amounts"""
    from decimal import Decimal

    from hyperprobe.dex.quoter import QuoteResult

    def factory(
        dex_id,
        rate,
        amount_in="1",
        token_in="WHYPE",
        token_out="UBTC",
        success=True,
        gas_estimate=150000,
        fee=None,
        tick_spacing=None,
        dex_name=None,
        error=None,
    ):
        amount_in = Decimal(str(amount_in))
        rate = Decimal(str(rate)) if success else Decimal(0)
        return QuoteResult(
            dex_id=dex_id,
            dex_name=dex_name or dex_id,
            token_in=token_in,
            token_out=token_out,
            amount_in=int(amount_in * 10**18),
            amount_out=int(amount_in * rate * 10**8),
            amount_in_formatted=amount_in,
            amount_out_formatted=amount_in * rate,
            rate=rate,
            gas_estimate=gas_estimate if success else 0,
            success=success,
            fee=fee,
            tick_spacing=tick_spacing,
            error=error,
            exclusion_reason=None if success else "Pool does not exist or insufficient liquidity",
        )

    return factory


@pytest.fixture
def mock_dex_manager(loader, mock_connector):
    manager = MagicMock()
    manager.loader = loader
    manager.network = "hyperevm-mainnet"
    manager.connector = mock_connector
    manager.get_quote = AsyncMock()
    manager.get_v3_tier_quotes = AsyncMock()
    return manager
