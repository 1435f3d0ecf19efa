"""Unit tests for monitoring metrics"""

from hyperprobe.monitoring import metrics


class TestMetricsEmission:
    """Test that metrics are properly emitted"""

    def test_chain_rpc_latency_emission(self):
        """Test chain_rpc_latency histogram emission"""
        metrics.chain_rpc_latency.labels(
            chain="HyperEVM",
            endpoint="https://rpc.hyperliquid.xyz/evm",
            method="get_block"
        ).observe(0.5)

        metric_output = metrics.get_metrics().decode('utf-8')
        assert 'chain_rpc_latency_seconds_count{chain="HyperEVM"' in metric_output
        assert 'endpoint="https://rpc.hyperliquid.xyz/evm"' in metric_output
        assert 'method="get_block"' in metric_output

    def test_chain_rpc_errors_emission(self):
        """Test chain_rpc_errors counter emission"""
        metrics.chain_rpc_errors.labels(chain="HyperEVM", error_type="ConnectionError").inc()

        metric_output = metrics.get_metrics().decode('utf-8')
        assert 'chain_rpc_errors_total{chain="HyperEVM",error_type="ConnectionError"}' in metric_output

    def test_chain_rpc_failovers_emission(self):
        metrics.chain_rpc_failovers.labels(chain="HyperEVM Testnet").inc()

        metric_output = metrics.get_metrics().decode('utf-8')
        assert 'chain_rpc_failovers_total{chain="HyperEVM Testnet"}' in metric_output

    def test_quotes_total_emission(self):
        """Test quote counter emission"""
        metrics.quotes_total.labels(dex="metrics_test_dex", status="success").inc()

        metric_output = metrics.get_metrics().decode('utf-8')
        assert 'dex_quotes_total{dex="metrics_test_dex",status="success"} 1.0' in metric_output

    def test_quote_latency_emission(self):
        metrics.quote_latency.labels(dex="metrics_test_dex").observe(0.2)

        metric_output = metrics.get_metrics().decode('utf-8')
        assert 'dex_quote_latency_seconds_count{dex="metrics_test_dex"}' in metric_output

    def test_best_rate_gauge(self):
        """Test gauge holds the last value set"""
        metrics.best_rate.labels(pair="METRICS/TEST").set(1.5)
        metrics.best_rate.labels(pair="METRICS/TEST").set(2.5)

        metric_output = metrics.get_metrics().decode('utf-8')
        assert 'dex_best_rate{pair="METRICS/TEST"} 2.5' in metric_output

    def test_rate_spread_and_alerts(self):
        metrics.rate_spread.labels(pair="SPREAD/TEST").set(0.25)
        metrics.rate_alerts.labels(pair="SPREAD/TEST").inc()

        metric_output = metrics.get_metrics().decode('utf-8')
        assert 'dex_rate_spread_ratio{pair="SPREAD/TEST"} 0.25' in metric_output
        assert 'dex_rate_alerts_total{pair="SPREAD/TEST"} 1.0' in metric_output

    def test_monitor_polls_emission(self):
        metrics.monitor_polls.labels(pair="POLL/TEST", status="error").inc()

        metric_output = metrics.get_metrics().decode('utf-8')
        assert 'dex_monitor_polls_total{pair="POLL/TEST",status="error"} 1.0' in metric_output


class TestMetricsFormat:
    """Test the exposition output"""

    def test_get_metrics_returns_bytes(self):
        assert isinstance(metrics.get_metrics(), bytes)

    def test_help_and_type_lines_present(self):
        metric_output = metrics.get_metrics().decode('utf-8')

        assert '# HELP dex_quotes_total Total number of quote attempts' in metric_output
        assert '# TYPE dex_best_rate gauge' in metric_output
        assert '# TYPE dex_quote_latency_seconds histogram' in metric_output
