"""Typed exceptions raised by hyperprobe components"""

from typing import Any, Dict, Optional


class HyperProbeError(Exception):
    """Base exception for hyperprobe"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigError(HyperProbeError):
    """Configuration file missing, malformed or referencing unknown entries"""


class RPCError(HyperProbeError):
    """JSON-RPC endpoint unavailable or call failed after retries"""


class QuoteError(HyperProbeError):
    """Quote could not be obtained from a router or quoter"""


class PoolNotFoundError(HyperProbeError):
    """Factory returned the zero address for a token pair"""


class InsufficientLiquidityError(HyperProbeError):
    """Pool reserves or liquidity are zero or too small for the trade"""
