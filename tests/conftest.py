"""Pytest configuration and fixtures."""
import asyncio
from typing import AsyncGenerator, Dict, Any, List, Optional, Tuple

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from txwatch.database import Base, get_db
from txwatch.exceptions import ChainQueryError
from txwatch.main import app
from txwatch.models import Transaction, TxState
from txwatch.services.chains import BaseChainClient, ChainClientRegistry
from txwatch.services.monitor import TransactionMonitor


class FakeChainClient(BaseChainClient):
    """In-memory chain with a fixed answer for every hash."""

    def __init__(
        self,
        name: str = "eth",
        pending: bool = False,
        status: int = 1,
        tx_error: Optional[str] = None,
        receipt_error: Optional[str] = None,
        chain_error: Optional[str] = None,
        delay: float = 0.0,
    ):
        super().__init__(name)
        self.pending = pending
        self.status = status
        self.tx_error = tx_error
        self.receipt_error = receipt_error
        self.chain_error = chain_error
        self.delay = delay
        self.tx_calls: List[str] = []
        self.receipt_calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def transaction_by_hash(self, tx_hash: str) -> Tuple[Dict[str, Any], bool]:
        self.tx_calls.append(tx_hash)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

        if self.tx_error:
            raise ChainQueryError(self.tx_error)
        return {"hash": tx_hash, "blockNumber": None if self.pending else 100}, self.pending

    async def transaction_receipt(self, tx_hash: str) -> Dict[str, Any]:
        self.receipt_calls.append(tx_hash)
        if self.receipt_error:
            raise ChainQueryError(self.receipt_error)
        return {"transactionHash": tx_hash, "status": self.status, "blockNumber": 100}

    async def chain_id(self) -> int:
        if self.chain_error:
            raise ChainQueryError(self.chain_error)
        return 1


def tx_hash(n: int) -> str:
    """Deterministic 32-byte transaction hash."""
    return "0x" + format(n, "064x")


async def add_transaction(session_maker, txid: str, chain: str = "eth", **fields) -> Transaction:
    """Insert a record directly, bypassing the API."""
    tx = Transaction(id=txid, chain=chain, tx_metadata=fields.pop("tx_metadata", {}), **fields)
    async with session_maker() as session:
        session.add(tx)
        await session.commit()
    return tx


async def load_transaction(session_maker, txid: str) -> Optional[Transaction]:
    async with session_maker() as session:
        return await session.get(Transaction, txid)


@pytest.fixture(autouse=True)
def checks_threshold(monkeypatch):
    """Default abandonment threshold for every test."""
    monkeypatch.setenv("CHECKS_THRESHOLD", "5")


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Create test database engine on a file so concurrent sessions share it."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'txwatch.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def eth_client() -> FakeChainClient:
    return FakeChainClient("eth")


@pytest.fixture
def registry(eth_client) -> ChainClientRegistry:
    return ChainClientRegistry({"eth": eth_client})


@pytest.fixture
def monitor(session_maker, registry) -> TransactionMonitor:
    return TransactionMonitor(session_maker, registry, workers=4)


@pytest_asyncio.fixture(scope="function")
async def client(session_maker, registry, monitor) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    # Override database dependency
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.chain_registry = registry
    app.state.monitor = monitor

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
