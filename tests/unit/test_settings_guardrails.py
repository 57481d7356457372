import pytest

from walletlink.config import Settings


def test_settings_guardrail_prod_rejects_default_jwt_secret() -> None:
    with pytest.raises(RuntimeError, match=r"JWT_SECRET"):
        Settings(
            ENV="prod",
            JWT_SECRET=Settings.DEFAULT_JWT_SECRET,
            ADMIN_TOKEN="some-non-default-admin-token",
            FLOW_SESSION_SECRET="some-flow-secret",
        )


def test_settings_guardrail_prod_rejects_default_admin_token() -> None:
    with pytest.raises(RuntimeError, match=r"ADMIN_TOKEN"):
        Settings(
            ENV="prod",
            JWT_SECRET="some-non-default-jwt-secret-32chars-min",
            ADMIN_TOKEN=Settings.DEFAULT_ADMIN_TOKEN,
            FLOW_SESSION_SECRET="some-flow-secret",
        )


def test_settings_guardrail_prod_rejects_default_flow_session_secret() -> None:
    with pytest.raises(RuntimeError, match=r"FLOW_SESSION_SECRET"):
        Settings(
            ENV="prod",
            JWT_SECRET="some-non-default-jwt-secret-32chars-min",
            ADMIN_TOKEN="some-non-default-admin-token",
        )


def test_settings_guardrail_test_allows_default_secrets() -> None:
    Settings(
        ENV="test",
        JWT_SECRET=Settings.DEFAULT_JWT_SECRET,
        ADMIN_TOKEN=Settings.DEFAULT_ADMIN_TOKEN,
    )


@pytest.mark.parametrize("nonce_bytes", [0, 8, 15])
def test_settings_guardrail_rejects_short_nonces(nonce_bytes: int) -> None:
    with pytest.raises(RuntimeError, match=r"WALLET_NONCE_BYTES"):
        Settings(ENV="test", WALLET_NONCE_BYTES=nonce_bytes)


def test_settings_guardrail_rejects_non_positive_ttl() -> None:
    with pytest.raises(RuntimeError, match=r"WALLET_NONCE_TTL_SECONDS"):
        Settings(ENV="test", WALLET_NONCE_TTL_SECONDS=0)


def test_admin_addresses_are_normalized() -> None:
    s = Settings(ENV="test", WALLET_ADMIN_ADDRESSES=" 0xABC , ,0xdef")
    assert s.admin_addresses() == frozenset({"0xabc", "0xdef"})


def test_settings_guardrail_prod_rejects_localhost_domain() -> None:
    with pytest.raises(RuntimeError, match=r"SITE_DOMAIN"):
        Settings(
            ENV="prod",
            JWT_SECRET="some-non-default-jwt-secret-32chars-min",
            ADMIN_TOKEN="some-non-default-admin-token",
            FLOW_SESSION_SECRET="some-flow-secret",
            SITE_DOMAIN="localhost",
        )


def test_settings_guardrail_prod_accepts_configured_deployment() -> None:
    s = Settings(
        ENV="prod",
        JWT_SECRET="some-non-default-jwt-secret-32chars-min",
        ADMIN_TOKEN="some-non-default-admin-token",
        FLOW_SESSION_SECRET="some-flow-secret",
        SITE_DOMAIN="wallet.example.org",
    )
    assert s.SITE_DOMAIN == "wallet.example.org"
