"""Configuration models for chain settings, DEX and token definitions"""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from web3 import Web3

from hyperprobe.errors import ConfigError

MAINNET = "hyperevm-mainnet"
TESTNET = "hyperevm-testnet"

MAINNET_CHAIN_ID = 999
TESTNET_CHAIN_ID = 998


class ChainConfig(BaseSettings):
    """Configuration for a blockchain network"""

    name: str
    chain_id: int
    rpc_urls: List[str]
    block_time_seconds: float
    native_token: str
    wrapped_native: Optional[str] = None

    model_config = SettingsConfigDict(frozen=True)


def _checksum(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    # Input casing is not trusted; checksum is always recomputed
    candidate = value.lower()
    if not Web3.is_address(candidate):
        raise ValueError(f"invalid address: {value}")
    return Web3.to_checksum_address(candidate)


class TokenConfig(BaseModel):
    """Token descriptor: symbol, on-chain address and decimal precision"""

    symbol: str
    name: str = ""
    address: str
    decimals: int = Field(ge=0, le=36)
    type: Literal["native", "wrapped-native", "erc20", "stablecoin", "bridged"] = "erc20"
    category: str = "other"
    note: Optional[str] = None

    @field_validator("address")
    @classmethod
    def checksum_address(cls, value: str) -> str:
        return _checksum(value)


class DexConfig(BaseModel):
    """DEX deployment: contract addresses, quoting style and fee tiers"""

    name: str
    protocol: str
    type: Literal["v2", "v3"]
    router: Optional[str] = None
    quoter: Optional[str] = None
    factory: Optional[str] = None
    abi: Optional[str] = None
    fee_tiers: List[int] = Field(default_factory=list, alias="feeTiers")
    tick_spacings: List[int] = Field(default_factory=list, alias="tickSpacings")
    quoter_style: Literal["struct", "flat"] = Field(default="struct", alias="quoterStyle")
    tier_param: Literal["fee", "tickSpacing"] = Field(default="fee", alias="tierParam")
    fee_numerator: int = Field(default=997, alias="feeNumerator")
    fee_denominator: int = Field(default=1000, alias="feeDenominator")
    gas_estimate: int = Field(default=150000, alias="gasEstimate")
    status: Literal["active", "deprecated", "testing"] = "active"

    model_config = {"populate_by_name": True}

    @field_validator("router", "quoter", "factory")
    @classmethod
    def checksum_addresses(cls, value: Optional[str]) -> Optional[str]:
        return _checksum(value)

    @model_validator(mode="after")
    def check_fee_fraction(self) -> "DexConfig":
        if not 0 < self.fee_numerator <= self.fee_denominator:
            raise ValueError(
                f"fee numerator {self.fee_numerator} must be in (0, {self.fee_denominator}]"
            )
        return self

    @property
    def tiers(self) -> List[int]:
        """Fee tiers or tick spacings, whichever this quoter is keyed by"""
        if self.tier_param == "tickSpacing":
            return list(self.tick_spacings)
        return list(self.fee_tiers)


class NetworkConfig(BaseModel):
    """Per-network DEX and token tables"""

    chain_id: int = Field(alias="chainId")
    rpc_url: str = Field(alias="rpcUrl")
    dexes: Dict[str, DexConfig] = Field(default_factory=dict)
    tokens: Dict[str, TokenConfig] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # RPC endpoints
    hyperevm_rpc_url: str = Field(
        default="https://rpc.hyperliquid.xyz/evm", alias="HYPEREVM_RPC_URL"
    )
    hyperevm_rpc_fallback: Optional[str] = Field(default=None, alias="HYPEREVM_RPC_FALLBACK")
    hyperliquid_testnet_rpc: str = Field(
        default="https://rpc.hyperliquid-testnet.xyz/evm", alias="HYPERLIQUID_TESTNET_RPC"
    )

    # Config selection
    network: str = Field(default=MAINNET, alias="HYPERPROBE_NETWORK")
    config_dir: Optional[str] = Field(default=None, alias="HYPERPROBE_CONFIG_DIR")

    # Monitoring
    monitor_interval_seconds: float = Field(default=30.0, alias="MONITOR_INTERVAL_SECONDS")
    monitor_amount: str = Field(default="1", alias="MONITOR_AMOUNT")
    alert_threshold: float = Field(default=0.05, alias="ALERT_THRESHOLD")
    prometheus_port: int = Field(default=9090, alias="PROMETHEUS_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def get_mainnet_config(self) -> ChainConfig:
        """Get HyperEVM mainnet chain configuration"""
        rpc_urls = [self.hyperevm_rpc_url]
        if self.hyperevm_rpc_fallback:
            rpc_urls.append(self.hyperevm_rpc_fallback)
        return ChainConfig(
            name="HyperEVM",
            chain_id=MAINNET_CHAIN_ID,
            rpc_urls=rpc_urls,
            block_time_seconds=2.0,
            native_token="HYPE",
            wrapped_native="0x5555555555555555555555555555555555555555",
        )

    def get_testnet_config(self) -> ChainConfig:
        """Get HyperEVM testnet chain configuration"""
        return ChainConfig(
            name="HyperEVM Testnet",
            chain_id=TESTNET_CHAIN_ID,
            rpc_urls=[self.hyperliquid_testnet_rpc],
            block_time_seconds=2.0,
            native_token="HYPE",
            wrapped_native="0x5555555555555555555555555555555555555555",
        )

    def get_chain_config(self, network: Optional[str] = None) -> ChainConfig:
        """Get chain configuration for a network id (defaults to the configured network)"""
        target = network or self.network
        if target == MAINNET:
            return self.get_mainnet_config()
        if target == TESTNET:
            return self.get_testnet_config()
        raise ConfigError(f"Unknown network: {target}", {"network": target})
