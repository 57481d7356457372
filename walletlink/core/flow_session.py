"""Signed cookie naming one browser flow.

The nonce store is keyed by the flow id carried here, so a challenge issued to
one browser can only be redeemed by the same browser.

Cookie format: v1.<sid_b64url>.<iat_decimal>.<sig_b64url>
- sid: 16 random bytes, base64url-encoded (no padding)
- iat: issued-at unix timestamp (integer)
- sig: HMAC-SHA256(secret, "v1.<sid>.<iat>"), base64url-encoded (no padding)
"""

import base64
import hashlib
import hmac
import os
import time
from dataclasses import dataclass
from typing import Optional

COOKIE_NAME = "walletlink_sid"
COOKIE_VERSION = "v1"
# Non-browser clients may send the cookie value in this header instead.
HEADER_NAME = "X-Flow-Session"


@dataclass
class FlowSession:
    sid: str
    iat: int
    cookie_value: str

    @property
    def flow_id(self) -> str:
        return self.sid


def create_flow_session(secret: str, *, now: int | None = None) -> FlowSession:
    sid = base64.urlsafe_b64encode(os.urandom(16)).rstrip(b"=").decode("ascii")
    iat = int(time.time()) if now is None else int(now)
    payload = f"{COOKIE_VERSION}.{sid}.{iat}"
    return FlowSession(sid=sid, iat=iat, cookie_value=f"{payload}.{_sign(secret, payload)}")


def validate_flow_session(
    cookie_value: str | None,
    secret: str,
    ttl_sec: int,
    clock_skew_sec: int = 300,
    *,
    now: int | None = None,
) -> Optional[FlowSession]:
    """Return the FlowSession, or None if the value is malformed, forged or expired."""
    if not cookie_value:
        return None
    parts = cookie_value.split(".")
    if len(parts) != 4:
        return None
    version, sid, iat_str, sig = parts
    if version != COOKIE_VERSION or not sid:
        return None
    try:
        iat = int(iat_str)
    except ValueError:
        return None

    expected_sig = _sign(secret, f"{version}.{sid}.{iat_str}")
    if not hmac.compare_digest(sig, expected_sig):
        return None

    # Expired when now - iat > ttl; skew only tolerates iat slightly in the future.
    current = int(time.time()) if now is None else int(now)
    if current - iat > ttl_sec:
        return None
    if iat > current + clock_skew_sec:
        return None

    return FlowSession(sid=sid, iat=iat, cookie_value=cookie_value)


def _sign(secret: str, payload: str) -> str:
    sig_bytes = hmac.new(secret.encode(), payload.encode(), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(sig_bytes).rstrip(b"=").decode("ascii")
