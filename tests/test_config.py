"""Tests for configuration models"""

import pytest
from pydantic import ValidationError
from web3 import Web3

from hyperprobe.config.models import (
    MAINNET,
    TESTNET,
    ChainConfig,
    DexConfig,
    TokenConfig,
    Settings,
)
from hyperprobe.errors import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "HYPEREVM_RPC_URL",
        "HYPEREVM_RPC_FALLBACK",
        "HYPERLIQUID_TESTNET_RPC",
        "HYPERPROBE_NETWORK",
        "MONITOR_INTERVAL_SECONDS",
        "ALERT_THRESHOLD",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_chain_config_creation():
    """Test ChainConfig model creation"""
    config = ChainConfig(
        name="HyperEVM",
        chain_id=999,
        rpc_urls=["https://rpc.hyperliquid.xyz/evm"],
        block_time_seconds=2.0,
        native_token="HYPE",
    )

    assert config.name == "HyperEVM"
    assert config.chain_id == 999
    assert len(config.rpc_urls) == 1
    assert config.wrapped_native is None


def test_settings_defaults():
    settings = Settings(_env_file=None)

    assert settings.network == MAINNET
    assert settings.hyperevm_rpc_url == "https://rpc.hyperliquid.xyz/evm"
    assert settings.monitor_interval_seconds == 30.0
    assert settings.alert_threshold == 0.05


def test_settings_with_env_vars(monkeypatch):
    """Test Settings loading from environment variables"""
    monkeypatch.setenv("HYPEREVM_RPC_URL", "https://primary.example.com")
    monkeypatch.setenv("HYPEREVM_RPC_FALLBACK", "https://fallback.example.com")
    monkeypatch.setenv("HYPERPROBE_NETWORK", TESTNET)
    monkeypatch.setenv("MONITOR_INTERVAL_SECONDS", "10")
    monkeypatch.setenv("ALERT_THRESHOLD", "0.02")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    settings = Settings(_env_file=None)

    assert settings.hyperevm_rpc_url == "https://primary.example.com"
    assert settings.hyperevm_rpc_fallback == "https://fallback.example.com"
    assert settings.network == TESTNET
    assert settings.monitor_interval_seconds == 10.0
    assert settings.alert_threshold == 0.02
    assert settings.log_level == "DEBUG"


def test_mainnet_chain_config_includes_fallback(monkeypatch):
    monkeypatch.setenv("HYPEREVM_RPC_FALLBACK", "https://fallback.example.com")

    config = Settings(_env_file=None).get_chain_config(MAINNET)

    assert config.chain_id == 999
    assert config.rpc_urls == [
        "https://rpc.hyperliquid.xyz/evm",
        "https://fallback.example.com",
    ]
    assert config.native_token == "HYPE"


def test_testnet_chain_config():
    config = Settings(_env_file=None).get_chain_config(TESTNET)

    assert config.chain_id == 998
    assert config.rpc_urls == ["https://rpc.hyperliquid-testnet.xyz/evm"]


def test_unknown_network_rejected():
    with pytest.raises(ConfigError, match="Unknown network"):
        Settings(_env_file=None).get_chain_config("arbitrum")


def test_token_config_recomputes_checksum():
    token = TokenConfig(
        symbol="UBTC",
        address="0x9fdbda0a5e284c32744d2f17ee5c74b284993463",
        decimals=8,
        type="bridged",
    )

    assert token.address != "0x9fdbda0a5e284c32744d2f17ee5c74b284993463"
    assert Web3.is_checksum_address(token.address)


def test_token_config_rejects_bad_address():
    with pytest.raises(ValidationError):
        TokenConfig(symbol="BAD", address="0x1234", decimals=18)


def test_token_config_rejects_bad_decimals():
    with pytest.raises(ValidationError):
        TokenConfig(
            symbol="BAD",
            address="0x5555555555555555555555555555555555555555",
            decimals=40,
        )


def test_dex_config_aliases_and_tiers():
    dex = DexConfig.model_validate(
        {
            "name": "KittenSwap CL",
            "protocol": "kittenswap",
            "type": "v3",
            "quoter": "0xd9949cb0655e8d5167373005bd85f814c8e0c9bf",
            "quoterStyle": "struct",
            "tierParam": "tickSpacing",
            "tickSpacings": [1, 10, 50],
            "gasEstimate": 250000,
        }
    )

    assert Web3.is_checksum_address(dex.quoter)
    assert dex.tiers == [1, 10, 50]
    assert dex.gas_estimate == 250000
    assert dex.router is None


def test_dex_config_fee_tiers_used_by_default():
    dex = DexConfig(name="V3", protocol="hyperswap", type="v3", fee_tiers=[500, 3000])

    assert dex.tier_param == "fee"
    assert dex.tiers == [500, 3000]


def test_dex_config_rejects_bad_fee_fraction():
    with pytest.raises(ValidationError, match="fee numerator"):
        DexConfig(
            name="Broken",
            protocol="hyperswap",
            type="v2",
            fee_numerator=1001,
            fee_denominator=1000,
        )
