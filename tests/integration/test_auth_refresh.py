from datetime import datetime, timedelta, timezone
import uuid

import jwt
import pytest
from httpx import AsyncClient

from walletlink.config import settings
from walletlink.core.wallet.signature import sign_message


async def _wallet_login_return_tokens(client: AsyncClient, wallet) -> dict:
    resp = await client.post("/api/v1/wallet/challenge", json={"purpose": "login", "address": wallet.address})
    assert resp.status_code == 200, resp.text
    challenge = resp.json()

    resp = await client.post(
        "/api/v1/wallet/login",
        json={
            "address": wallet.address,
            "signature": sign_message(wallet.key, challenge["message"]),
            "nonce": challenge["nonce"],
        },
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


@pytest.mark.asyncio
async def test_auth_refresh_rotates_and_reuse_is_rejected(client: AsyncClient, alice_wallet):
    tokens = await _wallet_login_return_tokens(client, alice_wallet)

    refresh_token_1 = tokens["refresh_token"]

    resp = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token_1})
    assert resp.status_code == 200, resp.text

    tokens2 = resp.json()
    assert tokens2["access_token"]
    assert tokens2["refresh_token"]
    assert tokens2["refresh_token"] != refresh_token_1
    assert tokens2["account"]["id"] == tokens["account"]["id"]

    claims = jwt.decode(tokens2["access_token"], settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    assert claims["wallet"] == alice_wallet.address.lower()
    assert claims["iss"] == settings.SITE_DOMAIN

    # Reuse of old refresh token must fail (rotation).
    resp = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token_1})
    assert resp.status_code == 401, resp.text
    assert resp.json()["error"]["code"] == "E005"


@pytest.mark.asyncio
async def test_auth_refresh_rejects_access_token(client: AsyncClient, alice_wallet):
    tokens = await _wallet_login_return_tokens(client, alice_wallet)

    # Passing access token where refresh is expected must fail.
    resp = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert resp.status_code == 401, resp.text


@pytest.mark.asyncio
async def test_access_token_expiry_returns_401_and_refresh_recovers(client: AsyncClient, alice_wallet):
    tokens = await _wallet_login_return_tokens(client, alice_wallet)
    account_id = tokens["account"]["id"]

    expired_access = jwt.encode(
        {
            "exp": datetime.now(timezone.utc) - timedelta(minutes=1),
            "sub": account_id,
            "type": "access",
            "jti": uuid.uuid4().hex,
        },
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )

    resp = await client.get(
        "/api/v1/accounts/me",
        headers={"Authorization": f"Bearer {expired_access}"},
    )
    assert resp.status_code == 401, resp.text

    # Refresh should mint a new access token that works.
    resp = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert resp.status_code == 200, resp.text
    new_tokens = resp.json()

    resp = await client.get(
        "/api/v1/accounts/me",
        headers={"Authorization": f"Bearer {new_tokens['access_token']}"},
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["wallet_address"] == alice_wallet.address.lower()


@pytest.mark.asyncio
async def test_logout_revokes_refresh_token(client: AsyncClient, alice_wallet):
    tokens = await _wallet_login_return_tokens(client, alice_wallet)

    resp = await client.post("/api/v1/auth/logout", json={"refresh_token": tokens["refresh_token"]})
    assert resp.status_code == 200, resp.text
    assert resp.json() == {"success": True}

    resp = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert resp.status_code == 401, resp.text


@pytest.mark.asyncio
async def test_logout_with_garbage_token_is_bad_request(client: AsyncClient):
    resp = await client.post("/api/v1/auth/logout", json={"refresh_token": "not-a-jwt"})

    assert resp.status_code == 400, resp.text
    assert resp.json()["error"]["code"] == "E009"
