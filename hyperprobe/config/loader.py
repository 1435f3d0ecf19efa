"""Loader for the bundled DEX and token JSON configuration"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog
from pydantic import ValidationError
from web3 import Web3

from hyperprobe.config.models import DexConfig, NetworkConfig, TokenConfig
from hyperprobe.errors import ConfigError

logger = structlog.get_logger()

DEFAULT_CONFIG_DIR = Path(__file__).parent / "data"
DEX_CONFIG_FILE = "dex-config.json"
TOKEN_CONFIG_FILE = "token-config.json"


class ConfigLoader:
    """
    Lazily loads and caches dex-config.json and token-config.json.

    Both files share the layout ``{"networks": {<network id>: {...}}}``; the
    DEX file also names the ``defaultNetwork`` and ``supportedProtocols``,
    the token file may list ``commonPairs``.
    """

    def __init__(self, config_dir: Optional[str] = None):
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self._dex_config: Optional[Dict[str, Any]] = None
        self._token_config: Optional[Dict[str, Any]] = None
        self._networks: Dict[str, NetworkConfig] = {}
        self._logger = logger.bind(component="config_loader")

    def _read_json(self, filename: str) -> Dict[str, Any]:
        path = self.config_dir / filename
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}", {"path": str(path)})
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Malformed config file {path}: {e}", {"path": str(path)}) from e
        if not isinstance(data, dict) or "networks" not in data:
            raise ConfigError(f"Config file {path} has no 'networks' section", {"path": str(path)})
        self._logger.debug("config_file_loaded", path=str(path))
        return data

    def load_dex_config(self) -> Dict[str, Any]:
        """Load dex-config.json (cached)"""
        if self._dex_config is None:
            self._dex_config = self._read_json(DEX_CONFIG_FILE)
        return self._dex_config

    def load_token_config(self) -> Dict[str, Any]:
        """Load token-config.json (cached)"""
        if self._token_config is None:
            self._token_config = self._read_json(TOKEN_CONFIG_FILE)
        return self._token_config

    @property
    def default_network(self) -> str:
        return self.load_dex_config().get("defaultNetwork", "hyperevm-mainnet")

    def _resolve_network(self, network: Optional[str]) -> str:
        return network or self.default_network

    def get_network_info(self, network: Optional[str] = None) -> NetworkConfig:
        """
        Get the merged DEX and token configuration of a network.

        Raises:
            ConfigError: if the network is unknown or fails validation
        """
        target = self._resolve_network(network)
        if target in self._networks:
            return self._networks[target]

        dex_networks = self.load_dex_config()["networks"]
        if target not in dex_networks:
            raise ConfigError(f"Network '{target}' is not configured", {"network": target})

        raw = dict(dex_networks[target])
        token_network = self.load_token_config()["networks"].get(target, {})
        raw["tokens"] = token_network.get("tokens", {})

        try:
            network_config = NetworkConfig.model_validate(raw)
        except ValidationError as e:
            raise ConfigError(
                f"Invalid configuration for network '{target}': {e}",
                {"network": target},
            ) from e

        self._networks[target] = network_config
        return network_config

    def get_dex_config(self, network: Optional[str] = None) -> Dict[str, DexConfig]:
        """Get all DEX definitions of a network"""
        return self.get_network_info(network).dexes

    def get_token_config(self, network: Optional[str] = None) -> Dict[str, TokenConfig]:
        """Get all token definitions of a network"""
        tokens = self.get_network_info(network).tokens
        if not tokens:
            raise ConfigError(
                f"No token configuration for network '{self._resolve_network(network)}'"
            )
        return tokens

    def get_dex_by_id(self, dex_id: str, network: Optional[str] = None) -> DexConfig:
        dexes = self.get_dex_config(network)
        if dex_id not in dexes:
            raise ConfigError(f"DEX '{dex_id}' is not configured", {"dex_id": dex_id})
        return dexes[dex_id]

    def get_token_by_id(self, symbol: str, network: Optional[str] = None) -> TokenConfig:
        """Look up a token by symbol (case-insensitive)"""
        tokens = self.get_token_config(network)
        if symbol in tokens:
            return tokens[symbol]
        for key, token in tokens.items():
            if key.upper() == symbol.upper():
                return token
        raise ConfigError(f"Token '{symbol}' is not configured", {"symbol": symbol})

    def get_token_by_address(
        self, address: str, network: Optional[str] = None
    ) -> Optional[TokenConfig]:
        """Reverse lookup of a token by address"""
        if not Web3.is_address(address.lower()):
            return None
        checksum = Web3.to_checksum_address(address.lower())
        for token in self.get_token_config(network).values():
            if token.address == checksum:
                return token
        return None

    def get_dexes_by_protocol(
        self, protocol: str, network: Optional[str] = None
    ) -> Dict[str, DexConfig]:
        return {
            dex_id: dex
            for dex_id, dex in self.get_dex_config(network).items()
            if dex.protocol == protocol
        }

    def get_active_dexes(self, network: Optional[str] = None) -> Dict[str, DexConfig]:
        return {
            dex_id: dex
            for dex_id, dex in self.get_dex_config(network).items()
            if dex.status == "active"
        }

    def get_supported_protocols(self) -> List[str]:
        return list(self.load_dex_config().get("supportedProtocols", []))

    def get_common_pairs(self) -> List[List[str]]:
        return [list(pair) for pair in self.load_token_config().get("commonPairs", [])]

    def reload_config(self) -> None:
        """Drop cached files so the next access re-reads them"""
        self._dex_config = None
        self._token_config = None
        self._networks.clear()
        self._logger.info("config_cache_cleared")

    def validate_config(self) -> Tuple[bool, List[str]]:
        """
        Check structural consistency of both configuration files.

        Returns:
            (valid, errors) where errors lists every problem found
        """
        errors: List[str] = []

        try:
            dex_networks = self.load_dex_config()["networks"]
            token_networks = self.load_token_config()["networks"]
        except ConfigError as e:
            return False, [f"Config load error: {e.message}"]

        if not dex_networks:
            errors.append("DEX config defines no networks")
        if not token_networks:
            errors.append("Token config defines no networks")

        for network_id in dex_networks:
            if network_id not in token_networks:
                errors.append(f"Network '{network_id}' has no token configuration")

            try:
                network = self.get_network_info(network_id)
            except ConfigError as e:
                errors.append(e.message)
                continue

            for dex_id, dex in network.dexes.items():
                if dex.type == "v2" and not dex.router:
                    errors.append(f"V2 DEX '{dex_id}' has no router address")
                if dex.type == "v3" and not dex.quoter:
                    errors.append(f"V3 DEX '{dex_id}' has no quoter address")
                if dex.type == "v3" and not dex.tiers:
                    errors.append(f"V3 DEX '{dex_id}' defines no fee tiers or tick spacings")
                if dex.abi and not Path(dex.abi).exists():
                    errors.append(f"ABI file for DEX '{dex_id}' not found: {dex.abi}")

        if errors:
            self._logger.warning("config_validation_failed", error_count=len(errors))
        return len(errors) == 0, errors
