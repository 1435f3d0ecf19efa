"""Detectors for cross-venue arbitrage"""

from hyperprobe.detectors.arbitrage import (
    ArbitrageDetector,
    BidirectionalReport,
    RoundTrip,
    classify_exclusion,
)

__all__ = ["ArbitrageDetector", "BidirectionalReport", "RoundTrip", "classify_exclusion"]
