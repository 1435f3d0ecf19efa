"""Tests for chain connectors"""

import time
from unittest.mock import AsyncMock, MagicMock, PropertyMock, patch

import pytest
from web3.exceptions import ContractLogicError, Web3Exception

from hyperprobe.chains import ChainConnector, CircuitState, HyperEVMConnector
from hyperprobe.config.models import ChainConfig
from hyperprobe.errors import RPCError


@pytest.fixture
def hyperevm_config():
    """HyperEVM mainnet configuration for testing"""
    return ChainConfig(
        name="HyperEVM",
        chain_id=999,
        rpc_urls=[
            "https://rpc.hyperliquid.xyz/evm",
            "https://hyperevm-fallback.example.com",
        ],
        block_time_seconds=2.0,
        native_token="HYPE",
        wrapped_native="0x5555555555555555555555555555555555555555",
    )


@pytest.fixture
def mock_w3():
    w3 = MagicMock()
    w3.is_connected.return_value = True
    return w3


@pytest.fixture
def no_sleep():
    with patch("hyperprobe.chains.connector.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


class TestCircuitBreaker:
    """Test circuit breaker functionality"""

    def test_circuit_breaker_initial_state(self):
        """Test circuit breaker starts in CLOSED state"""
        from hyperprobe.chains.connector import CircuitBreaker

        cb = CircuitBreaker()
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0
        assert cb.can_attempt() is True

    def test_circuit_breaker_opens_after_threshold(self):
        """Test circuit breaker opens after failure threshold"""
        from hyperprobe.chains.connector import CircuitBreaker

        cb = CircuitBreaker(failure_threshold=3)

        for _ in range(3):
            cb.record_failure()

        assert cb.state == CircuitState.OPEN
        assert cb.failure_count == 3
        assert cb.can_attempt() is False

    def test_circuit_breaker_half_open_after_timeout(self):
        """Test circuit breaker transitions to HALF_OPEN after timeout"""
        from hyperprobe.chains.connector import CircuitBreaker

        cb = CircuitBreaker(failure_threshold=3, timeout_seconds=60)
        for _ in range(3):
            cb.record_failure()
        assert cb.state == CircuitState.OPEN

        # Pretend the timeout elapsed
        cb.last_failure_time = time.time() - 61

        assert cb.can_attempt() is True
        assert cb.state == CircuitState.HALF_OPEN

    def test_circuit_breaker_closes_on_success_from_half_open(self):
        """Test circuit breaker closes after successful call from HALF_OPEN"""
        from hyperprobe.chains.connector import CircuitBreaker

        cb = CircuitBreaker(failure_threshold=3, timeout_seconds=60)
        for _ in range(3):
            cb.record_failure()
        cb.last_failure_time = time.time() - 61
        cb.can_attempt()
        assert cb.state == CircuitState.HALF_OPEN

        cb.record_success()
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0

    def test_circuit_breaker_reopens_on_failure_from_half_open(self):
        """Test circuit breaker reopens after failure from HALF_OPEN"""
        from hyperprobe.chains.connector import CircuitBreaker

        cb = CircuitBreaker(failure_threshold=3, timeout_seconds=60)
        for _ in range(3):
            cb.record_failure()
        cb.last_failure_time = time.time() - 61
        cb.can_attempt()
        assert cb.state == CircuitState.HALF_OPEN

        cb.record_failure()
        assert cb.state == CircuitState.OPEN
        assert cb.failure_count == 4
        assert cb.can_attempt() is False


class TestHyperEVMConnector:
    """Test HyperEVM connector construction"""

    def test_connector_initialization(self, hyperevm_config, mock_w3):
        with patch("hyperprobe.chains.connector.Web3") as mock_web3_class:
            mock_web3_class.return_value = mock_w3

            connector = HyperEVMConnector(hyperevm_config)

            assert isinstance(connector, ChainConnector)
            assert connector.chain_name == "HyperEVM"
            assert connector.chain_id == 999
            assert len(connector._circuit_breakers) == 2
            assert connector.current_rpc_url == "https://rpc.hyperliquid.xyz/evm"

    def test_testnet_chain_id_accepted(self, hyperevm_config, mock_w3):
        config = hyperevm_config.model_copy(update={"chain_id": 998, "name": "HyperEVM Testnet"})
        with patch("hyperprobe.chains.connector.Web3") as mock_web3_class:
            mock_web3_class.return_value = mock_w3

            connector = HyperEVMConnector(config)

            assert connector.is_testnet is True

    def test_wrong_chain_id_rejected(self, hyperevm_config):
        config = hyperevm_config.model_copy(update={"chain_id": 56})
        with pytest.raises(ValueError, match="Invalid chain_id"):
            HyperEVMConnector(config)

    def test_chain_specific_config(self, hyperevm_config, mock_w3):
        with patch("hyperprobe.chains.connector.Web3") as mock_web3_class:
            mock_web3_class.return_value = mock_w3

            info = HyperEVMConnector(hyperevm_config).get_chain_specific_config()

            assert info["native_token"] == "HYPE"
            assert info["wrapped_native"]["symbol"] == "WHYPE"
            assert info["wrapped_native"]["address"] == "0x5555555555555555555555555555555555555555"
            assert info["block_time_seconds"] == 2.0
            assert info["testnet"] is False

    def test_initial_connection_fails_over_to_backup(self, hyperevm_config):
        primary = MagicMock()
        primary.is_connected.return_value = False
        backup = MagicMock()
        backup.is_connected.return_value = True

        with patch("hyperprobe.chains.connector.Web3") as mock_web3_class:
            mock_web3_class.side_effect = [primary, backup]

            connector = HyperEVMConnector(hyperevm_config)

            assert connector.current_rpc_index == 1
            assert connector.w3 is backup

    def test_no_reachable_endpoint_raises(self, hyperevm_config):
        down = MagicMock()
        down.is_connected.return_value = False

        with patch("hyperprobe.chains.connector.Web3") as mock_web3_class:
            mock_web3_class.return_value = down

            with pytest.raises(RPCError, match="No reachable RPC endpoint"):
                HyperEVMConnector(hyperevm_config)


class TestRPCFailover:
    """Test RPC failover mechanism"""

    def test_failover_to_backup(self, hyperevm_config, mock_w3):
        with patch("hyperprobe.chains.connector.Web3") as mock_web3_class:
            mock_web3_class.return_value = mock_w3

            connector = HyperEVMConnector(hyperevm_config)

            assert connector._failover() is True
            assert connector.current_rpc_index == 1

    def test_failover_respects_circuit_breaker(self, hyperevm_config, mock_w3):
        with patch("hyperprobe.chains.connector.Web3") as mock_web3_class:
            mock_web3_class.return_value = mock_w3

            connector = HyperEVMConnector(hyperevm_config)
            backup_url = hyperevm_config.rpc_urls[1]
            connector._circuit_breakers[backup_url].state = CircuitState.OPEN
            connector._circuit_breakers[backup_url].last_failure_time = time.time()

            connector._failover()

            # Backup is skipped; the primary is the only candidate left
            assert connector.current_rpc_index == 0

    @pytest.mark.asyncio
    async def test_retry_with_failover_on_web3_exception(self, hyperevm_config, mock_w3, no_sleep):
        type(mock_w3.eth).block_number = PropertyMock(
            side_effect=[Web3Exception("Connection timeout"), 12345]
        )
        with patch("hyperprobe.chains.connector.Web3") as mock_web3_class:
            mock_web3_class.return_value = mock_w3

            connector = HyperEVMConnector(hyperevm_config)
            block_number = await connector.get_latest_block()

            assert block_number == 12345
            assert connector.current_rpc_index == 1
            no_sleep.assert_awaited_once_with(1)

    @pytest.mark.asyncio
    async def test_all_retries_fail_raises_rpc_error(self, hyperevm_config, mock_w3, no_sleep):
        type(mock_w3.eth).block_number = PropertyMock(side_effect=Web3Exception("down"))
        with patch("hyperprobe.chains.connector.Web3") as mock_web3_class:
            mock_web3_class.return_value = mock_w3

            connector = HyperEVMConnector(hyperevm_config)

            with pytest.raises(RPCError) as exc_info:
                await connector.get_latest_block()

            assert exc_info.value.details["operation"] == "get_latest_block"
            assert isinstance(exc_info.value.__cause__, Web3Exception)

    @pytest.mark.asyncio
    async def test_connection_recovery_after_network_outage(self, hyperevm_config, mock_w3, no_sleep):
        type(mock_w3.eth).block_number = PropertyMock(
            side_effect=[
                ConnectionError("Network unreachable"),
                ConnectionError("Network unreachable"),
                12345,
            ]
        )
        with patch("hyperprobe.chains.connector.Web3") as mock_web3_class:
            mock_web3_class.return_value = mock_w3

            connector = HyperEVMConnector(hyperevm_config)

            assert await connector.get_latest_block() == 12345
            assert no_sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_successful_call_resets_circuit_breaker(self, hyperevm_config, mock_w3):
        mock_w3.eth.block_number = 12345
        with patch("hyperprobe.chains.connector.Web3") as mock_web3_class:
            mock_web3_class.return_value = mock_w3

            connector = HyperEVMConnector(hyperevm_config)
            cb = connector._circuit_breakers[hyperevm_config.rpc_urls[0]]
            cb.record_failure()
            cb.record_failure()

            assert await connector.get_latest_block() == 12345
            assert cb.failure_count == 0

    @pytest.mark.asyncio
    async def test_contract_revert_is_not_retried(self, hyperevm_config, mock_w3, no_sleep):
        with patch("hyperprobe.chains.connector.Web3") as mock_web3_class:
            mock_web3_class.return_value = mock_w3
            connector = HyperEVMConnector(hyperevm_config)

        call = MagicMock(side_effect=ContractLogicError("execution reverted"))
        contract = MagicMock()
        contract.functions.getAmountsOut.return_value.call = call

        with patch.object(connector, "contract", return_value=contract):
            with pytest.raises(ContractLogicError):
                await connector.call_function("0xrouter", [], "getAmountsOut", 1, [])

        assert call.call_count == 1
        no_sleep.assert_not_awaited()


class TestReadOperations:
    """Test read helpers built on the retry wrapper"""

    @pytest.fixture
    def connector(self, hyperevm_config, mock_w3):
        with patch("hyperprobe.chains.connector.Web3") as mock_web3_class:
            mock_web3_class.return_value = mock_w3
            return HyperEVMConnector(hyperevm_config)

    @pytest.mark.asyncio
    async def test_call_function_passes_arguments(self, connector):
        contract = MagicMock()
        contract.functions.getAmountsOut.return_value.call.return_value = [10, 20]

        with patch.object(connector, "contract", return_value=contract) as build:
            result = await connector.call_function("0xrouter", ["abi"], "getAmountsOut", 10, ["a", "b"])

        assert result == [10, 20]
        build.assert_called_once_with("0xrouter", ["abi"])
        contract.functions.getAmountsOut.assert_called_once_with(10, ["a", "b"])

    @pytest.mark.asyncio
    async def test_get_block(self, connector, mock_w3):
        mock_w3.eth.get_block.return_value = {"number": 100, "transactions": []}

        block = await connector.get_block(100)

        assert block["number"] == 100
        mock_w3.eth.get_block.assert_called_once_with(100, full_transactions=False)

    @pytest.mark.asyncio
    async def test_get_transaction(self, connector, mock_w3):
        mock_w3.eth.get_transaction.return_value = {"hash": "0xabc", "maxPriorityFeePerGas": 7}

        tx = await connector.get_transaction("0xabc")

        assert tx["maxPriorityFeePerGas"] == 7

    @pytest.mark.asyncio
    async def test_get_gas_price(self, connector, mock_w3):
        mock_w3.eth.gas_price = 1_000_000_000

        assert await connector.get_gas_price() == 1_000_000_000

    @pytest.mark.asyncio
    async def test_is_contract(self, connector):
        with patch.object(connector, "get_code", new=AsyncMock(return_value=b"\x60\x80")):
            assert await connector.is_contract("0x5555555555555555555555555555555555555555") is True

        with patch.object(connector, "get_code", new=AsyncMock(return_value=b"")):
            assert await connector.is_contract("0x5555555555555555555555555555555555555555") is False
