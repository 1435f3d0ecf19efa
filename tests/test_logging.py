"""Tests for logging configuration"""

from hyperprobe.utils.logging import get_logger, setup_logging


def test_setup_logging_default():
    """Test logging setup with default level"""
    setup_logging()
    logger = get_logger("test")

    # Logger should be a structlog logger (proxy or bound)
    assert hasattr(logger, 'info')
    assert hasattr(logger, 'error')


def test_setup_logging_custom_level():
    """Test logging setup with custom level"""
    setup_logging(log_level="DEBUG")
    logger = get_logger("test")

    assert hasattr(logger, 'info')
    assert hasattr(logger, 'error')


def test_setup_logging_console_renderer():
    setup_logging(log_level="INFO", json_logs=False)
    logger = get_logger()

    assert hasattr(logger, 'warning')


def test_logs_go_to_stderr(capsys):
    setup_logging(log_level="INFO")
    logger = get_logger("test")

    logger.info("quote_received", dex="hyperswap_v2", amount_out="1.5")

    captured = capsys.readouterr()
    assert captured.out == ""
    assert "quote_received" in captured.err


def test_logger_can_log_messages():
    """Test that logger can log messages with context"""
    setup_logging(log_level="INFO")
    logger = get_logger("test")

    # These should not raise exceptions
    logger.info("test_message", key="value", number=42)
    logger.warning("warning_message", network="hyperevm-mainnet")
    logger.error("error_message", error="test_error")
