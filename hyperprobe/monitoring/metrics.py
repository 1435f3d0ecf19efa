"""Prometheus metrics for RPC health and quoting activity"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, start_http_server

# Chain Health Metrics
chain_rpc_latency = Histogram(
    'chain_rpc_latency_seconds',
    'RPC call latency in seconds',
    ['chain', 'endpoint', 'method'],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0)
)

chain_rpc_errors = Counter(
    'chain_rpc_errors_total',
    'Total number of RPC errors',
    ['chain', 'error_type']
)

chain_rpc_failovers = Counter(
    'chain_rpc_failovers_total',
    'Total number of RPC endpoint failovers',
    ['chain']
)

# Quoting Metrics
quotes_total = Counter(
    'dex_quotes_total',
    'Total number of quote attempts',
    ['dex', 'status']
)

quote_latency = Histogram(
    'dex_quote_latency_seconds',
    'Quote latency in seconds',
    ['dex'],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0)
)

# Rate Monitor Metrics
best_rate = Gauge(
    'dex_best_rate',
    'Best observed output/input rate for a pair',
    ['pair']
)

rate_spread = Gauge(
    'dex_rate_spread_ratio',
    'Relative spread between best and worst rate for a pair',
    ['pair']
)

rate_alerts = Counter(
    'dex_rate_alerts_total',
    'Total number of spread alerts raised',
    ['pair']
)

monitor_polls = Counter(
    'dex_monitor_polls_total',
    'Total number of rate monitor polls',
    ['pair', 'status']
)


def get_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format.

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest()


def start_metrics_server(port: int = 9090) -> None:
    """
    Start Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default 9090)
    """
    start_http_server(port)
