"""HyperEVM DEX probing toolkit"""

__version__ = "0.1.0"
