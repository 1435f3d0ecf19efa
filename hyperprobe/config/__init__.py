"""Configuration module"""

from .loader import ConfigLoader
from .models import ChainConfig, DexConfig, NetworkConfig, Settings, TokenConfig

__all__ = [
    "ChainConfig",
    "ConfigLoader",
    "DexConfig",
    "NetworkConfig",
    "Settings",
    "TokenConfig",
]
