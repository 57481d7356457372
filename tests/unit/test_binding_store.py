import asyncio

import pytest
from sqlalchemy import func, select

from walletlink.core.accounts.service import AccountService
from walletlink.core.wallet.bindings import SOURCE_REGISTRATION, BindingStore
from walletlink.db.models.wallet_binding import WalletBinding
from walletlink.utils.exceptions import AddressAlreadyBoundException, InvalidAddressException

ADDR_1 = "0x" + "1a" * 20
ADDR_2 = "0x" + "2b" * 20


async def _count(db) -> int:
    return (await db.execute(select(func.count()).select_from(WalletBinding))).scalar_one()


@pytest.mark.asyncio
async def test_bind_normalizes_and_round_trips(db_session, account):
    store = BindingStore(db_session)

    binding = await store.bind(account.id, ADDR_1.upper().replace("0X", "0x"), "0xproof")

    assert binding.address == ADDR_1
    assert await store.find_by_address(ADDR_1) == account.id
    assert await store.find_by_account(account.id) == ADDR_1
    assert binding.source == "link"


@pytest.mark.asyncio
async def test_rebinding_same_pair_refreshes_proof(db_session, account):
    store = BindingStore(db_session)
    await store.bind(account.id, ADDR_1, "0xfirst")
    again = await store.bind(account.id, ADDR_1, "0xsecond")

    assert again.signature_proof == "0xsecond"
    assert await _count(db_session) == 1


@pytest.mark.asyncio
async def test_new_address_replaces_previous_one(db_session, account):
    store = BindingStore(db_session)
    await store.bind(account.id, ADDR_1, "0xp1")
    await store.bind(account.id, ADDR_2, "0xp2", source=SOURCE_REGISTRATION)

    assert await store.find_by_account(account.id) == ADDR_2
    assert await store.find_by_address(ADDR_1) is None
    assert await _count(db_session) == 1


@pytest.mark.asyncio
async def test_address_owned_by_someone_else_is_rejected(db_session, account, other_account):
    store = BindingStore(db_session)
    await store.bind(account.id, ADDR_1, "0xp1")

    with pytest.raises(AddressAlreadyBoundException) as exc_info:
        await store.bind(other_account.id, ADDR_1, "0xp2")

    assert exc_info.value.owner_hint == "alice"
    assert await store.find_by_address(ADDR_1) == account.id
    assert await store.find_by_account(other_account.id) is None


@pytest.mark.asyncio
async def test_invalid_address_is_rejected_before_any_write(db_session, account):
    with pytest.raises(InvalidAddressException):
        await BindingStore(db_session).bind(account.id, "0x1234", "0xp")
    assert await _count(db_session) == 0


@pytest.mark.asyncio
async def test_unbind_is_idempotent(db_session, account):
    store = BindingStore(db_session)
    await store.bind(account.id, ADDR_1, "0xp1")

    assert await store.unbind(account.id) == ADDR_1
    assert await store.unbind(account.id) is None
    assert await store.find_by_address(ADDR_1) is None


@pytest.mark.asyncio
async def test_concurrent_binds_of_one_address_have_one_winner(session_factory):
    async with session_factory() as db:
        accounts = [
            await AccountService(db).create_account(username=f"user{i}", display_name=f"User {i}")
            for i in range(5)
        ]

    async def attempt(account_id):
        async with session_factory() as db:
            try:
                await BindingStore(db).bind(account_id, ADDR_1, "0xp")
                return "bound"
            except AddressAlreadyBoundException:
                return "rejected"

    outcomes = await asyncio.gather(*(attempt(a.id) for a in accounts))

    assert outcomes.count("bound") == 1
    assert outcomes.count("rejected") == 4
    async with session_factory() as db:
        assert await _count(db) == 1
