"""HyperEVM chain connector implementation"""

from typing import Any, Dict

from hyperprobe.chains.connector import ChainConnector
from hyperprobe.config.models import MAINNET_CHAIN_ID, TESTNET_CHAIN_ID, ChainConfig

WHYPE_ADDRESS = "0x5555555555555555555555555555555555555555"


class HyperEVMConnector(ChainConnector):
    """HyperEVM-specific blockchain connector (mainnet or testnet)"""

    def __init__(self, config: ChainConfig, max_retries: int = 3):
        """Initialize HyperEVM connector with configuration"""
        if config.chain_id not in (MAINNET_CHAIN_ID, TESTNET_CHAIN_ID):
            raise ValueError(
                f"Invalid chain_id for HyperEVM: {config.chain_id}, "
                f"expected {MAINNET_CHAIN_ID} or {TESTNET_CHAIN_ID}"
            )

        super().__init__(config, max_retries=max_retries)

    @property
    def is_testnet(self) -> bool:
        return self.chain_id == TESTNET_CHAIN_ID

    def get_chain_specific_config(self) -> Dict[str, Any]:
        """Get HyperEVM-specific configuration"""
        return {
            "chain_name": self.chain_name,
            "chain_id": self.chain_id,
            "testnet": self.is_testnet,
            "native_token": "HYPE",
            "wrapped_native": {
                "symbol": "WHYPE",
                "address": self.config.wrapped_native or WHYPE_ADDRESS,
            },
            "block_time_seconds": self.config.block_time_seconds,
            "rpc_url": self.current_rpc_url,
        }
