import pytest
from sqlalchemy import func, select

from walletlink.core.accounts.service import AccountService
from walletlink.core.wallet.bindings import BindingStore
from walletlink.core.wallet.nonce_store import InMemoryNonceStore
from walletlink.core.wallet.service import WalletAuthService
from walletlink.db.models.account import Account
from walletlink.utils.exceptions import ConflictException

ADDRESS = "0x" + "d4" * 20


def _service(db_session) -> WalletAuthService:
    return WalletAuthService(db_session, nonce_store=InMemoryNonceStore())


async def _account_count(db_session) -> int:
    return await db_session.scalar(select(func.count(Account.id)))


@pytest.mark.asyncio
async def test_register_creates_account_and_binding(db_session):
    account, created = await _service(db_session)._register(ADDRESS, "0xproof")

    assert created is True
    assert await BindingStore(db_session).find_by_account(account.id) == ADDRESS


@pytest.mark.asyncio
async def test_register_returns_existing_owner(db_session, other_account):
    await BindingStore(db_session).bind(other_account.id, ADDRESS, "0xproof")

    account, created = await _service(db_session)._register(ADDRESS, "0xproof")

    assert created is False
    assert account.id == other_account.id
    assert await _account_count(db_session) == 1


@pytest.mark.asyncio
async def test_register_drops_own_account_when_wallet_bound_elsewhere_first(
    db_session, session_factory, other_account, monkeypatch
):
    service = _service(db_session)
    register_by_wallet = service.accounts.register_by_wallet

    async def _register_then_lose_race(address: str):
        account = await register_by_wallet(address)
        # Another hub process binds the wallet before this one does.
        async with session_factory() as other:
            await BindingStore(other).bind(other_account.id, address, "0xwinner")
        return account

    monkeypatch.setattr(service.accounts, "register_by_wallet", _register_then_lose_race)

    account, created = await service._register(ADDRESS, "0xproof")

    assert created is False
    assert account.id == other_account.id
    assert await _account_count(db_session) == 1


@pytest.mark.asyncio
async def test_register_drops_own_account_when_bind_conflicts(db_session, monkeypatch):
    service = _service(db_session)

    async def _conflicting_bind(*args, **kwargs):
        raise ConflictException("Wallet binding changed concurrently; please retry")

    monkeypatch.setattr(service.bindings, "bind", _conflicting_bind)

    with pytest.raises(ConflictException):
        await service._register(ADDRESS, "0xproof")

    assert await _account_count(db_session) == 0


@pytest.mark.asyncio
async def test_register_by_wallet_retries_when_username_taken_concurrently(db_session, monkeypatch):
    service = AccountService(db_session)
    first = await service.register_by_wallet(ADDRESS)
    first_id, first_username = first.id, first.username

    async def _stale_check(username: str) -> bool:
        return False

    monkeypatch.setattr(service, "_username_taken", _stale_check)

    second = await service.register_by_wallet(ADDRESS)

    assert second.id != first_id
    assert second.username.startswith(f"{first_username}_")
