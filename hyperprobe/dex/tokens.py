"""Token resolution and decimal handling"""

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal, localcontext
from typing import Dict, Literal, Optional, Union

import structlog
from web3 import Web3

from hyperprobe.abis import ERC20_ABI
from hyperprobe.chains.connector import ChainConnector
from hyperprobe.config.loader import ConfigLoader
from hyperprobe.errors import ConfigError

logger = structlog.get_logger()

NATIVE_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class TokenInfo:
    """Resolved token: where its metadata came from matters for trust"""

    address: str
    symbol: str
    name: str
    decimals: int
    source: Literal["config", "chain"] = "config"


@dataclass(frozen=True)
class DecimalsCheck:
    symbol: str
    address: str
    configured: int
    on_chain: Optional[int]
    error: Optional[str] = None

    @property
    def matches(self) -> bool:
        return self.on_chain is not None and self.configured == self.on_chain


def to_base_units(amount: Union[Decimal, str, int, float], decimals: int) -> int:
    """
    Convert a human-readable amount to raw token units.

    Digits beyond the token's precision are truncated.
    """
    value = Decimal(str(amount))
    if value < 0:
        raise ValueError(f"amount must be non-negative, got {amount}")
    # scaleb rounds to context precision, so widen it to hold every digit
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(value.as_tuple().digits) + abs(decimals))
        scaled = value.scaleb(decimals).to_integral_value(rounding=ROUND_DOWN)
    return int(scaled)


def from_base_units(raw: int, decimals: int) -> Decimal:
    """Convert raw token units to an exact Decimal amount"""
    value = Decimal(int(raw))
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(value.as_tuple().digits))
        return value.scaleb(-decimals)


class TokenRegistry:
    """
    Resolves symbols or addresses to TokenInfo.

    Configured tokens are authoritative for symbol lookup; unknown address
    literals are resolved by reading ERC20 metadata from the chain.
    """

    def __init__(
        self,
        connector: ChainConnector,
        loader: ConfigLoader,
        network: Optional[str] = None,
    ):
        self.connector = connector
        self.loader = loader
        self.network = network or loader.default_network
        self._chain_cache: Dict[str, TokenInfo] = {}
        self._logger = logger.bind(component="token_registry", network=self.network)

    async def resolve(self, token: str) -> TokenInfo:
        """
        Resolve a symbol (case-insensitive) or address.

        Raises:
            ConfigError: if the symbol is unknown and the value is not an address
        """
        if Web3.is_address(token.lower()):
            configured = self.loader.get_token_by_address(token, self.network)
            if configured:
                return self._from_config(configured)
            return await self.fetch_token_info(token)

        return self._from_config(self.loader.get_token_by_id(token, self.network))

    @staticmethod
    def _from_config(token) -> TokenInfo:
        return TokenInfo(
            address=token.address,
            symbol=token.symbol,
            name=token.name or token.symbol,
            decimals=token.decimals,
            source="config",
        )

    async def fetch_token_info(self, address: str) -> TokenInfo:
        """Read decimals, symbol and name from the ERC20 contract (cached per address)"""
        checksum_address = Web3.to_checksum_address(address.lower())
        if checksum_address in self._chain_cache:
            return self._chain_cache[checksum_address]

        if checksum_address == NATIVE_ADDRESS:
            raise ConfigError(
                "Native HYPE has no ERC20 contract; use WHYPE for quotes",
                {"address": checksum_address},
            )

        decimals = await self.connector.call_function(checksum_address, ERC20_ABI, "decimals")
        symbol = await self.connector.call_function(checksum_address, ERC20_ABI, "symbol")
        name = await self.connector.call_function(checksum_address, ERC20_ABI, "name")

        info = TokenInfo(
            address=checksum_address,
            symbol=symbol,
            name=name,
            decimals=int(decimals),
            source="chain",
        )
        self._chain_cache[checksum_address] = info

        self._logger.debug(
            "token_info_fetched",
            address=checksum_address,
            symbol=symbol,
            decimals=info.decimals,
        )
        return info

    async def verify_decimals(self, symbol: str) -> DecimalsCheck:
        """Compare a configured token's decimals with the value reported on-chain"""
        configured = self.loader.get_token_by_id(symbol, self.network)

        if configured.type == "native":
            return DecimalsCheck(
                symbol=configured.symbol,
                address=configured.address,
                configured=configured.decimals,
                on_chain=configured.decimals,
            )

        try:
            on_chain = await self.connector.call_function(
                configured.address, ERC20_ABI, "decimals"
            )
        except Exception as e:
            self._logger.warning(
                "token_decimals_check_failed",
                symbol=configured.symbol,
                address=configured.address,
                error=str(e),
            )
            return DecimalsCheck(
                symbol=configured.symbol,
                address=configured.address,
                configured=configured.decimals,
                on_chain=None,
                error=str(e),
            )

        check = DecimalsCheck(
            symbol=configured.symbol,
            address=configured.address,
            configured=configured.decimals,
            on_chain=int(on_chain),
        )
        if not check.matches:
            self._logger.warning(
                "token_decimals_mismatch",
                symbol=configured.symbol,
                configured=configured.decimals,
                on_chain=check.on_chain,
            )
        return check

    to_base_units = staticmethod(to_base_units)
    from_base_units = staticmethod(from_base_units)
