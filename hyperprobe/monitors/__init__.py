"""Long-running monitors"""

from hyperprobe.monitors.rate_monitor import RateMonitor, RateSnapshot

__all__ = ["RateMonitor", "RateSnapshot"]
