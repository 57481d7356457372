"""
WalletLink Hub: pytest fixtures and configuration.

Provides:
- Deterministic wallet keys
- Isolated SQLite database per test
- ASGI-backed async HTTP client with the app's DB dependency overridden
- Account / token helpers
"""
import hashlib
import os
import tempfile
import uuid
from pathlib import Path
from typing import AsyncGenerator

# Settings are read at import time; pin a safe test environment first.
_TMP_DIR = Path(tempfile.mkdtemp(prefix="walletlink-tests-"))
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{(_TMP_DIR / 'app.db').as_posix()}")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("SITE_NAME", "WalletLink Test")
os.environ.setdefault("SITE_DOMAIN", "testserver")

import pytest
import pytest_asyncio
from eth_account import Account as EthAccount
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from walletlink.api import deps
from walletlink.core.accounts.service import AccountService
from walletlink.core.wallet.nonce_store import reset_memory_store
from walletlink.db.session import create_engine_for, create_tables
from walletlink.main import app
from walletlink.utils.security import create_access_token

# =============================================================================
# Constants
# =============================================================================
TEST_SEED = os.environ.get("TEST_SEED", "2026-walletlink-test")


# =============================================================================
# Deterministic Wallet Keys
# =============================================================================
def deterministic_private_key(seed: str, index: int) -> str:
    """secp256k1 private key derived from `seed:index` (0 = Alice, 1 = Bob, ...)."""
    return "0x" + hashlib.sha256(f"{seed}:{index}".encode()).hexdigest()


def wallet(index: int):
    return EthAccount.from_key(deterministic_private_key(TEST_SEED, index))


@pytest.fixture
def alice_wallet():
    return wallet(0)


@pytest.fixture
def bob_wallet():
    return wallet(1)


@pytest.fixture
def carol_wallet():
    return wallet(2)


# =============================================================================
# Database
# =============================================================================
@pytest_asyncio.fixture
async def db_engine(tmp_path: Path):
    engine = create_engine_for(f"sqlite+aiosqlite:///{(tmp_path / 'test.db').as_posix()}")
    await create_tables(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def _reset_process_state():
    reset_memory_store()
    deps.reset_rate_limits()
    yield
    reset_memory_store()
    deps.reset_rate_limits()


# =============================================================================
# HTTP Client
# =============================================================================
@pytest_asyncio.fixture
async def client_factory(session_factory):
    """
    Build extra in-process clients ("browsers"), each with its own cookie jar.

    Every request gets its own session on the per-test database, like the
    real `get_db` dependency does.
    """

    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[deps.get_db] = _override_get_db
    opened: list[AsyncClient] = []

    def _make() -> AsyncClient:
        ac = AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://testserver",
            headers={"X-Request-ID": f"test-{uuid.uuid4().hex[:12]}"},
        )
        opened.append(ac)
        return ac

    try:
        yield _make
    finally:
        for ac in opened:
            await ac.aclose()
        app.dependency_overrides.pop(deps.get_db, None)


@pytest.fixture
def client(client_factory) -> AsyncClient:
    return client_factory()


# =============================================================================
# Accounts
# =============================================================================
@pytest_asyncio.fixture
async def account(db_session: AsyncSession):
    return await AccountService(db_session).create_account(
        username="alice",
        display_name="Alice",
        email="alice@example.com",
    )


@pytest_asyncio.fixture
async def other_account(db_session: AsyncSession):
    return await AccountService(db_session).create_account(
        username="bob",
        display_name="Bob",
        email="bob@example.com",
    )


def bearer(account_id) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(account_id)}"}


@pytest.fixture
def auth_headers(account) -> dict[str, str]:
    return bearer(account.id)


@pytest.fixture
def other_auth_headers(other_account) -> dict[str, str]:
    return bearer(other_account.id)
