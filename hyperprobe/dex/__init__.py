"""DEX quoting, token resolution and pool inspection"""

from hyperprobe.dex.pools import PoolInspector, V2PoolState, V3PoolState, sort_tokens
from hyperprobe.dex.quoter import (
    ArbitrageOpportunity,
    DexManager,
    QuoteParams,
    QuoteResult,
    classify_exclusion,
)
from hyperprobe.dex.tokens import DecimalsCheck, TokenInfo, TokenRegistry

__all__ = [
    "ArbitrageOpportunity",
    "DecimalsCheck",
    "DexManager",
    "PoolInspector",
    "QuoteParams",
    "QuoteResult",
    "TokenInfo",
    "TokenRegistry",
    "V2PoolState",
    "V3PoolState",
    "classify_exclusion",
    "sort_tokens",
]
