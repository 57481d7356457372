"""Bearer tokens for accounts authenticated by wallet signature.

Access and refresh tokens are HS256 JWTs carrying the account id (`sub`), a
`type` claim, a unique `jti` and the site domain as issuer. Refresh tokens are
single use: rotation and logout put their `jti` on a revocation list that
lives in Redis when enabled, in process memory otherwise.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from walletlink.config import settings


TOKEN_ACCESS = "access"
TOKEN_REFRESH = "refresh"

_REVOKED_KEY_PREFIX = "walletlink:jwt:revoked:"


def _exp_to_epoch_seconds(exp: Any) -> int:
    if isinstance(exp, (int, float)):
        return int(exp)
    if isinstance(exp, datetime):
        return int(exp.replace(tzinfo=timezone.utc).timestamp())
    return 0


class RevocationList:
    """Revoked token ids, each kept until the token would have expired anyway."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._memory: dict[str, int] = {}
        self.redis: Any = None

    def _use_redis(self) -> bool:
        return bool(settings.REDIS_ENABLED) and self.redis is not None

    async def revoke(self, jti: str, *, exp: Any) -> None:
        if not jti:
            return

        exp_epoch = _exp_to_epoch_seconds(exp)
        now_epoch = int(time.time())
        if exp_epoch and exp_epoch <= now_epoch:
            return

        if self._use_redis():
            ttl = exp_epoch - now_epoch if exp_epoch else int(settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS * 24 * 3600)
            await self.redis.set(f"{_REVOKED_KEY_PREFIX}{jti}", "1", ex=max(1, int(ttl)))
            return

        async with self._lock:
            for stale in [k for k, e in self._memory.items() if e and e <= now_epoch]:
                self._memory.pop(stale, None)
            self._memory[jti] = exp_epoch

    async def is_revoked(self, jti: str) -> bool:
        if not jti:
            return False

        if self._use_redis():
            return bool(await self.redis.exists(f"{_REVOKED_KEY_PREFIX}{jti}"))

        async with self._lock:
            exp_epoch = self._memory.get(jti)
        if exp_epoch is None:
            return False
        return not exp_epoch or exp_epoch > int(time.time())


revoked_tokens = RevocationList()


def set_redis_client(client) -> None:
    revoked_tokens.redis = client


async def revoke_jti(jti: str, *, exp: Any) -> None:
    await revoked_tokens.revoke(jti, exp=exp)


async def is_jti_revoked(jti: str) -> bool:
    return await revoked_tokens.is_revoked(jti)


def _encode(subject: Any, *, token_type: str, expires_in: timedelta, extra: dict[str, Any] | None) -> str:
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "iat": now,
        "exp": now + expires_in,
        "iss": settings.SITE_DOMAIN,
        "sub": str(subject),
        "type": token_type,
        "jti": uuid.uuid4().hex,
    }
    if extra:
        payload.update(extra)
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_access_token(subject: str | Any, *, role: str | None = None, wallet: str | None = None) -> str:
    extra: dict[str, Any] = {}
    if role:
        extra["role"] = role
    if wallet:
        extra["wallet"] = wallet
    return _encode(
        subject,
        token_type=TOKEN_ACCESS,
        expires_in=timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES),
        extra=extra,
    )


def create_refresh_token(subject: str | Any) -> str:
    return _encode(
        subject,
        token_type=TOKEN_REFRESH,
        expires_in=timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS),
        extra=None,
    )


def issue_token_pair(subject: str | Any, *, role: str | None = None, wallet: str | None = None) -> dict[str, Any]:
    return {
        "access_token": create_access_token(subject, role=role, wallet=wallet),
        "refresh_token": create_refresh_token(subject),
        "token_type": "Bearer",
        "expires_in": int(settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES) * 60,
    }


async def decode_token(token: str, *, expected_type: str = TOKEN_ACCESS) -> dict[str, Any] | None:
    """Verified claims, or None for a bad, expired, revoked or wrong-type token.

    Tokens without `iss` (minted before the issuer claim existed) are still
    accepted; a present issuer must match the configured site domain.
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["exp", "sub", "type"]},
        )
    except jwt.PyJWTError:
        return None

    if payload.get("type") != expected_type:
        return None
    if "iss" in payload and payload["iss"] != settings.SITE_DOMAIN:
        return None

    jti = payload.get("jti")
    if isinstance(jti, str) and jti:
        if await revoked_tokens.is_revoked(jti):
            return None
    return payload
