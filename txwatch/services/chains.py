"""Chain clients and the per-chain client registry."""
import asyncio
import logging
from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterator, Mapping, Optional, Tuple, TypeVar

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential
from web3 import AsyncWeb3
from web3.exceptions import TransactionNotFound

from txwatch.config import Settings
from txwatch.exceptions import ChainClientNotFoundError, ChainQueryError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Transport failures worth another attempt; everything else is final
TRANSIENT_ERRORS = (asyncio.TimeoutError, ConnectionError, OSError)


class BaseChainClient(ABC):
    """Read-only view of one chain, as needed by the monitor."""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def transaction_by_hash(self, tx_hash: str) -> Tuple[Dict[str, Any], bool]:
        """
        Fetch a transaction.

        Returns:
            The transaction and whether it is still pending (not yet mined).

        Raises:
            ChainQueryError: unknown hash or unreachable endpoint
        """
        pass

    @abstractmethod
    async def transaction_receipt(self, tx_hash: str) -> Dict[str, Any]:
        """
        Fetch the receipt of a mined transaction.

        Raises:
            ChainQueryError: receipt missing or unreachable endpoint
        """
        pass

    @abstractmethod
    async def chain_id(self) -> int:
        """Chain id reported by the endpoint, used as a reachability probe."""
        pass


class Web3ChainClient(BaseChainClient):
    """Chain client for an EVM JSON-RPC endpoint."""

    def __init__(
        self,
        name: str,
        endpoint: str,
        timeout: float = 10.0,
        retry_attempts: int = 3,
        web3: Optional[AsyncWeb3] = None,
    ):
        super().__init__(name)
        self.endpoint = endpoint
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.web3 = web3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(endpoint))

    @staticmethod
    def _normalize_hash(tx_hash: str) -> str:
        tx_hash = tx_hash.strip()
        if not tx_hash.lower().startswith("0x"):
            tx_hash = "0x" + tx_hash
        return tx_hash

    async def _call(self, operation: str, func: Callable[[], Awaitable[T]]) -> T:
        """Run one RPC call with a timeout, retrying transient failures."""
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
                retry=retry_if_exception_type(TRANSIENT_ERRORS),
                reraise=True,
            ):
                with attempt:
                    return await asyncio.wait_for(func(), timeout=self.timeout)
        except TransactionNotFound as e:
            raise ChainQueryError(str(e)) from e
        except asyncio.TimeoutError as e:
            raise ChainQueryError(
                f"{operation} on {self.name} timed out after {self.timeout}s"
            ) from e
        except Exception as e:
            logger.warning(f"{operation} on {self.name} failed: {e}")
            raise ChainQueryError(str(e) or type(e).__name__) from e

    async def transaction_by_hash(self, tx_hash: str) -> Tuple[Dict[str, Any], bool]:
        tx_hash = self._normalize_hash(tx_hash)
        tx = await self._call(
            "get_transaction", lambda: self.web3.eth.get_transaction(tx_hash)
        )
        tx = dict(tx)
        return tx, tx.get("blockNumber") is None

    async def transaction_receipt(self, tx_hash: str) -> Dict[str, Any]:
        tx_hash = self._normalize_hash(tx_hash)
        receipt = await self._call(
            "get_transaction_receipt",
            lambda: self.web3.eth.get_transaction_receipt(tx_hash),
        )
        return dict(receipt)

    async def chain_id(self) -> int:
        return await self._call("chain_id", self._fetch_chain_id)

    async def _fetch_chain_id(self) -> int:
        return await self.web3.eth.chain_id


class ChainClientRegistry(Mapping[str, BaseChainClient]):
    """Immutable chain name -> client mapping, shared by all workers."""

    def __init__(self, clients: Mapping[str, BaseChainClient]):
        self._clients = MappingProxyType(dict(clients))

    @classmethod
    def from_endpoints(
        cls,
        endpoints: Mapping[str, str],
        timeout: float = 10.0,
        retry_attempts: int = 3,
    ) -> "ChainClientRegistry":
        clients = {}
        for name, endpoint in endpoints.items():
            # Hide any auth in URL
            logger.info(f"Configuring chain client={name} host={endpoint.split('@')[-1]}")
            clients[name] = Web3ChainClient(
                name, endpoint, timeout=timeout, retry_attempts=retry_attempts
            )
        return cls(clients)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChainClientRegistry":
        """Build from ETH_ENDPOINTS; raises ConfigurationError when malformed."""
        return cls.from_endpoints(
            settings.chain_endpoints,
            timeout=settings.chain_rpc_timeout_seconds,
            retry_attempts=settings.chain_rpc_retry_attempts,
        )

    def resolve(self, name: str) -> BaseChainClient:
        try:
            return self._clients[name]
        except KeyError:
            raise ChainClientNotFoundError(name) from None

    def __getitem__(self, name: str) -> BaseChainClient:
        return self._clients[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._clients)

    def __len__(self) -> int:
        return len(self._clients)
