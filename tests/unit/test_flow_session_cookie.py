"""Signed flow-session cookie: creation, validation, expiry, forgery."""
import pytest

from walletlink.core.flow_session import (
    COOKIE_VERSION,
    FlowSession,
    _sign,
    create_flow_session,
    validate_flow_session,
)

SECRET = "test-secret-for-unit-tests"
TTL_SEC = 3600
CLOCK_SKEW = 300
NOW = 1_800_000_000


def test_create_flow_session_format() -> None:
    session = create_flow_session(SECRET, now=NOW)

    assert isinstance(session, FlowSession)
    parts = session.cookie_value.split(".")
    assert len(parts) == 4
    assert parts[0] == COOKIE_VERSION
    assert session.iat == NOW
    assert session.flow_id == session.sid


def test_create_flow_session_unique_sids() -> None:
    assert create_flow_session(SECRET).sid != create_flow_session(SECRET).sid


def test_validate_round_trip() -> None:
    session = create_flow_session(SECRET, now=NOW)
    result = validate_flow_session(session.cookie_value, SECRET, TTL_SEC, CLOCK_SKEW, now=NOW + 10)

    assert result is not None
    assert result.sid == session.sid
    assert result.iat == NOW


def test_validate_rejects_tampered_signature() -> None:
    parts = create_flow_session(SECRET, now=NOW).cookie_value.split(".")
    parts[-1] = "A" * 43
    assert validate_flow_session(".".join(parts), SECRET, TTL_SEC, CLOCK_SKEW, now=NOW) is None


def test_validate_rejects_swapped_sid() -> None:
    parts = create_flow_session(SECRET, now=NOW).cookie_value.split(".")
    parts[1] = create_flow_session(SECRET, now=NOW).sid
    assert validate_flow_session(".".join(parts), SECRET, TTL_SEC, CLOCK_SKEW, now=NOW) is None


def test_validate_rejects_wrong_secret() -> None:
    session = create_flow_session(SECRET, now=NOW)
    assert validate_flow_session(session.cookie_value, "other-secret", TTL_SEC, CLOCK_SKEW, now=NOW) is None


def test_validate_expired() -> None:
    session = create_flow_session(SECRET, now=NOW)
    assert validate_flow_session(session.cookie_value, SECRET, TTL_SEC, CLOCK_SKEW, now=NOW + TTL_SEC) is not None
    assert validate_flow_session(session.cookie_value, SECRET, TTL_SEC, CLOCK_SKEW, now=NOW + TTL_SEC + 1) is None


def test_validate_clock_skew() -> None:
    future_iat = NOW + CLOCK_SKEW
    payload = f"{COOKIE_VERSION}.somesid.{future_iat}"
    cookie = f"{payload}.{_sign(SECRET, payload)}"
    assert validate_flow_session(cookie, SECRET, TTL_SEC, CLOCK_SKEW, now=NOW) is not None

    too_far = NOW + CLOCK_SKEW + 1
    payload = f"{COOKIE_VERSION}.somesid.{too_far}"
    cookie = f"{payload}.{_sign(SECRET, payload)}"
    assert validate_flow_session(cookie, SECRET, TTL_SEC, CLOCK_SKEW, now=NOW) is None


@pytest.mark.parametrize(
    "value",
    [None, "", "garbage", "v1.a.b", "v2.sid.1.sig", "v1..1.sig", "v1.sid.notanint.sig"],
)
def test_validate_bad_format(value) -> None:
    assert validate_flow_session(value, SECRET, TTL_SEC, CLOCK_SKEW, now=NOW) is None
