"""Blockchain interaction layer"""

from hyperprobe.chains.connector import ChainConnector, CircuitBreaker, CircuitState
from hyperprobe.chains.gas import GasPriceCalculator, GasStrategy
from hyperprobe.chains.hyperevm_connector import HyperEVMConnector

__all__ = [
    "ChainConnector",
    "HyperEVMConnector",
    "CircuitBreaker",
    "CircuitState",
    "GasPriceCalculator",
    "GasStrategy",
]
