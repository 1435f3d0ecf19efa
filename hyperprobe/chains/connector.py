"""Base chain connector with RPC connection management and circuit breaker"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import structlog
from web3 import Web3
from web3.contract import Contract
from web3.exceptions import ContractLogicError, Web3Exception
from web3.types import BlockData, TxData

from hyperprobe.abis import ABI
from hyperprobe.config.models import ChainConfig
from hyperprobe.errors import RPCError
from hyperprobe.monitoring import metrics

logger = structlog.get_logger()


class CircuitState(Enum):
    """Circuit breaker states"""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failures detected, stop calling
    HALF_OPEN = "half_open"  # Testing recovery


@dataclass
class CircuitBreaker:
    """Circuit breaker for RPC endpoint"""

    failure_threshold: int = 5
    timeout_seconds: int = 60
    failure_count: int = 0
    state: CircuitState = CircuitState.CLOSED
    last_failure_time: float = 0.0

    def record_success(self) -> None:
        """Record successful call"""
        self.failure_count = 0
        if self.state == CircuitState.HALF_OPEN:
            self.state = CircuitState.CLOSED
            logger.info("circuit_breaker_closed", state=self.state.value)

    def record_failure(self) -> None:
        """Record failed call"""
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == CircuitState.HALF_OPEN:
            self.state = CircuitState.OPEN
            logger.warning(
                "circuit_breaker_reopened",
                state=self.state.value,
                failure_count=self.failure_count,
            )
        elif self.failure_count >= self.failure_threshold and self.state == CircuitState.CLOSED:
            self.state = CircuitState.OPEN
            logger.warning(
                "circuit_breaker_opened",
                state=self.state.value,
                failure_count=self.failure_count,
            )

    def can_attempt(self) -> bool:
        """Check if call can be attempted"""
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            # Check if timeout has elapsed
            if time.time() - self.last_failure_time >= self.timeout_seconds:
                self.state = CircuitState.HALF_OPEN
                logger.info("circuit_breaker_half_open", state=self.state.value)
                return True
            return False

        # HALF_OPEN state - allow one attempt
        return True


class ChainConnector(ABC):
    """
    JSON-RPC accessor with endpoint failover and circuit breaker.

    Wraps the recurring "build a contract handle from an ABI and address,
    call a read function" pattern behind retrying async methods.
    """

    def __init__(self, config: ChainConfig, max_retries: int = 3):
        if not config.rpc_urls:
            raise ValueError(f"No RPC URLs configured for {config.name}")

        self.config = config
        self.chain_name = config.name
        self.chain_id = config.chain_id
        self.rpc_urls = config.rpc_urls
        self.current_rpc_index = 0
        self.max_retries = max_retries

        # Initialize Web3 connection
        self.w3: Optional[Web3] = None
        self._circuit_breakers: Dict[str, CircuitBreaker] = {
            url: CircuitBreaker() for url in self.rpc_urls
        }
        try:
            self._connect()
        except ConnectionError:
            self._circuit_breakers[self.current_rpc_url].record_failure()
            if not self._failover():
                raise RPCError(
                    f"No reachable RPC endpoint for {self.chain_name}",
                    {"rpc_urls": list(self.rpc_urls)},
                )

    @property
    def current_rpc_url(self) -> str:
        return self.rpc_urls[self.current_rpc_index]

    def _connect(self) -> None:
        """Establish connection to RPC endpoint"""
        rpc_url = self.current_rpc_url
        try:
            self.w3 = Web3(Web3.HTTPProvider(rpc_url))
            if self.w3.is_connected():
                logger.info(
                    "rpc_connected",
                    chain=self.chain_name,
                    rpc_url=rpc_url,
                    index=self.current_rpc_index,
                )
            else:
                raise ConnectionError(f"Failed to connect to {rpc_url}")
        except Exception as e:
            logger.error(
                "rpc_connection_failed",
                chain=self.chain_name,
                rpc_url=rpc_url,
                error=str(e),
            )
            raise ConnectionError(str(e)) from e

    def _failover(self) -> bool:
        """Attempt failover to next RPC endpoint"""
        original_index = self.current_rpc_index

        # Try all available RPC endpoints
        for _ in range(len(self.rpc_urls)):
            self.current_rpc_index = (self.current_rpc_index + 1) % len(self.rpc_urls)
            rpc_url = self.current_rpc_url

            # Check circuit breaker
            circuit_breaker = self._circuit_breakers[rpc_url]
            if not circuit_breaker.can_attempt():
                logger.debug(
                    "rpc_circuit_breaker_open",
                    chain=self.chain_name,
                    rpc_url=rpc_url,
                )
                continue

            try:
                self._connect()
                if self.w3 and self.w3.is_connected():
                    logger.info(
                        "rpc_failover_success",
                        chain=self.chain_name,
                        from_index=original_index,
                        to_index=self.current_rpc_index,
                        rpc_url=rpc_url,
                    )
                    metrics.chain_rpc_failovers.labels(chain=self.chain_name).inc()
                    circuit_breaker.record_success()
                    return True
            except Exception as e:
                logger.warning(
                    "rpc_failover_attempt_failed",
                    chain=self.chain_name,
                    rpc_url=rpc_url,
                    error=str(e),
                )
                circuit_breaker.record_failure()
                continue

        logger.error(
            "rpc_failover_exhausted",
            chain=self.chain_name,
            attempted_endpoints=len(self.rpc_urls),
        )
        return False

    async def _retry_with_failover(self, operation: str, func, *args, **kwargs) -> Any:
        """
        Execute operation with retry and automatic failover.

        Contract reverts are not retried: they are deterministic for a given
        block and propagate immediately.
        """
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            start_time = time.time()
            current_rpc_url = self.current_rpc_url
            circuit_breaker = self._circuit_breakers[current_rpc_url]

            if not circuit_breaker.can_attempt():
                logger.debug(
                    "rpc_circuit_breaker_blocking",
                    chain=self.chain_name,
                    operation=operation,
                    rpc_url=current_rpc_url,
                )
                if not self._failover():
                    last_error = ConnectionError("All RPC endpoints unavailable")
                    break
                continue

            try:
                result = func(*args, **kwargs)

                latency = time.time() - start_time
                metrics.chain_rpc_latency.labels(
                    chain=self.chain_name,
                    endpoint=current_rpc_url,
                    method=operation,
                ).observe(latency)

                circuit_breaker.record_success()
                return result

            except ContractLogicError:
                circuit_breaker.record_success()
                raise

            except (Web3Exception, ConnectionError, TimeoutError) as e:
                last_error = e
                circuit_breaker.record_failure()

                metrics.chain_rpc_errors.labels(
                    chain=self.chain_name,
                    error_type=type(e).__name__,
                ).inc()

                logger.warning(
                    "rpc_operation_failed",
                    chain=self.chain_name,
                    operation=operation,
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    error=str(e),
                    rpc_url=current_rpc_url,
                )

                if attempt < self.max_retries - 1:
                    if self._failover():
                        # Exponential backoff
                        await asyncio.sleep(2**attempt)
                        continue
                    break

        logger.error(
            "rpc_operation_failed_all_retries",
            chain=self.chain_name,
            operation=operation,
            max_retries=self.max_retries,
            error=str(last_error),
        )
        raise RPCError(
            f"{operation} failed on {self.chain_name}: {last_error}",
            {"operation": operation, "error_type": type(last_error).__name__},
        ) from last_error

    async def get_latest_block(self) -> int:
        """Get latest block number from chain"""
        return await self._retry_with_failover(
            "get_latest_block",
            lambda: self.w3.eth.block_number,
        )

    async def get_block(self, block_number: Any = "latest", full_transactions: bool = False) -> BlockData:
        """Get block data by block number or tag"""
        return await self._retry_with_failover(
            "get_block",
            lambda: self.w3.eth.get_block(block_number, full_transactions=full_transactions),
        )

    async def get_transaction(self, tx_hash: Any) -> TxData:
        """Get transaction by hash"""
        return await self._retry_with_failover(
            "get_transaction",
            lambda: self.w3.eth.get_transaction(tx_hash),
        )

    async def get_gas_price(self) -> int:
        """Get the node's legacy gas price suggestion in wei"""
        return await self._retry_with_failover(
            "get_gas_price",
            lambda: self.w3.eth.gas_price,
        )

    async def get_code(self, address: str) -> bytes:
        """Get deployed bytecode at address"""
        checksum_address = Web3.to_checksum_address(address)
        return await self._retry_with_failover(
            "get_code",
            lambda: self.w3.eth.get_code(checksum_address),
        )

    async def is_contract(self, address: str) -> bool:
        """Check whether any bytecode is deployed at address"""
        code = await self.get_code(address)
        return len(code) > 0

    def contract(self, address: str, abi: ABI) -> Contract:
        """Build a contract handle from an address and ABI"""
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=abi,
        )

    async def call_function(self, address: str, abi: ABI, function_name: str, *args: Any) -> Any:
        """
        Call a read-only contract function.

        Args:
            address: Contract address (any casing)
            abi: Contract ABI containing function_name
            function_name: Name of the view function
            *args: Positional call arguments

        Returns:
            Decoded return value
        """
        contract = self.contract(address, abi)
        return await self._retry_with_failover(
            function_name,
            lambda: getattr(contract.functions, function_name)(*args).call(),
        )

    @abstractmethod
    def get_chain_specific_config(self) -> Dict[str, Any]:
        """Get chain-specific configuration (implemented by subclasses)"""
        pass
