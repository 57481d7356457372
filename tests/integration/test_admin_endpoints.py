from __future__ import annotations

import uuid

import pytest
from httpx import AsyncClient

from walletlink.config import settings
from walletlink.core.wallet.bindings import SOURCE_LINK, BindingStore

ADMIN = {"X-Admin-Token": settings.ADMIN_TOKEN}


@pytest.mark.asyncio
async def test_admin_requires_token(client: AsyncClient):
    resp = await client.get("/api/v1/admin/wallets")
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "E006"

    resp = await client.get("/api/v1/admin/wallets", headers={"X-Admin-Token": "wrong"})
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_admin_lists_wallet_bindings(
    client: AsyncClient, db_session, account, other_account, alice_wallet, bob_wallet
):
    store = BindingStore(db_session)
    await store.bind(account.id, alice_wallet.address, "0xproof", source=SOURCE_LINK)
    await store.bind(other_account.id, bob_wallet.address, "0xproof", source=SOURCE_LINK)

    resp = await client.get("/api/v1/admin/wallets", headers=ADMIN)
    assert resp.status_code == 200, resp.text
    payload = resp.json()
    assert payload["total"] == 2
    assert {item["username"] for item in payload["items"]} == {"alice", "bob"}

    resp = await client.get("/api/v1/admin/wallets", params={"q": "BOB"}, headers=ADMIN)
    assert resp.status_code == 200, resp.text
    items = resp.json()["items"]
    assert [item["address"] for item in items] == [bob_wallet.address.lower()]
    assert items[0]["source"] == "link"

    prefix = alice_wallet.address.lower()[:12]
    resp = await client.get("/api/v1/admin/wallets", params={"q": prefix}, headers=ADMIN)
    assert [item["username"] for item in resp.json()["items"]] == ["alice"]


@pytest.mark.asyncio
async def test_admin_wallets_pagination(client: AsyncClient, db_session, account, other_account, alice_wallet, bob_wallet):
    store = BindingStore(db_session)
    await store.bind(account.id, alice_wallet.address, "0xproof")
    await store.bind(other_account.id, bob_wallet.address, "0xproof")

    resp = await client.get("/api/v1/admin/wallets", params={"page": 2, "per_page": 1}, headers=ADMIN)
    assert resp.status_code == 200, resp.text
    payload = resp.json()
    assert payload["page"] == 2
    assert payload["per_page"] == 1
    assert payload["total"] == 2
    assert len(payload["items"]) == 1


@pytest.mark.asyncio
async def test_admin_removes_wallet_with_reason(client: AsyncClient, db_session, account, alice_wallet):
    await BindingStore(db_session).bind(account.id, alice_wallet.address, "0xproof")

    resp = await client.request(
        "DELETE",
        f"/api/v1/admin/accounts/{account.id}/wallet",
        json={"reason": "lost device"},
        headers=ADMIN,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json() == {
        "account_id": str(account.id),
        "was_linked": True,
        "address": alice_wallet.address.lower(),
    }

    resp = await client.get(f"/api/v1/wallet/accounts/{alice_wallet.address}")
    assert resp.json()["account_id"] is None

    resp = await client.get(
        "/api/v1/admin/audit-log",
        params={"action": "admin.wallet.remove"},
        headers=ADMIN,
    )
    assert resp.status_code == 200, resp.text
    items = resp.json()["items"]
    assert len(items) == 1
    assert items[0]["reason"] == "lost device"
    assert items[0]["object_id"] == alice_wallet.address.lower()
    assert items[0]["before_state"] == {"account_id": str(account.id), "address": alice_wallet.address.lower()}


@pytest.mark.asyncio
async def test_admin_remove_without_binding_is_noop(client: AsyncClient, account):
    resp = await client.delete(f"/api/v1/admin/accounts/{account.id}/wallet", headers=ADMIN)
    assert resp.status_code == 200, resp.text
    assert resp.json()["was_linked"] is False

    resp = await client.get("/api/v1/admin/audit-log", params={"action": "admin.wallet.remove"}, headers=ADMIN)
    assert resp.json()["total"] == 0


@pytest.mark.asyncio
async def test_admin_remove_unknown_account_is_404(client: AsyncClient):
    resp = await client.delete(f"/api/v1/admin/accounts/{uuid.uuid4()}/wallet", headers=ADMIN)
    assert resp.status_code == 404, resp.text
    assert resp.json()["error"]["code"] == "E017"
