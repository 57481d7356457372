"""Short-lived storage for pending wallet challenges.

One slot per (flow, purpose): putting a new challenge replaces the previous
one and `take` hands a challenge out at most once. The in-memory store is used
for single-process deployments and tests; with REDIS_ENABLED the slot lives in
Redis and `take` relies on GETDEL for atomicity across hub processes.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from walletlink.config import settings


logger = logging.getLogger(__name__)

PURPOSE_LOGIN = "login"
PURPOSE_LINK = "link"
PURPOSES = frozenset({PURPOSE_LOGIN, PURPOSE_LINK})

_KEY_PREFIX = "walletlink:nonce"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Challenge:
    nonce: str
    message: str
    purpose: str
    flow_id: str
    issued_at: datetime
    expires_at: datetime
    account_id: Optional[str] = None
    address: Optional[str] = None

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or _utc_now()) >= self.expires_at

    def ttl_seconds(self, now: datetime | None = None) -> int:
        remaining = (self.expires_at - (now or _utc_now())).total_seconds()
        return max(0, int(remaining))

    def to_json(self) -> str:
        data = asdict(self)
        data["issued_at"] = self.issued_at.isoformat()
        data["expires_at"] = self.expires_at.isoformat()
        return json.dumps(data, separators=(",", ":"), sort_keys=True)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "Challenge":
        data = json.loads(raw)
        data["issued_at"] = datetime.fromisoformat(data["issued_at"])
        data["expires_at"] = datetime.fromisoformat(data["expires_at"])
        return cls(**data)


def nonce_key(flow_id: str, purpose: str) -> str:
    return f"{_KEY_PREFIX}:{purpose}:{flow_id}"


class NonceStore(ABC):
    @abstractmethod
    async def put(self, challenge: Challenge) -> None:
        """Store `challenge`, replacing any pending one for the same flow and purpose."""

    @abstractmethod
    async def take(self, flow_id: str, purpose: str) -> Challenge | None:
        """Remove and return the pending challenge; None when absent or expired."""

    @abstractmethod
    async def peek(self, flow_id: str, purpose: str) -> Challenge | None:
        ...

    async def discard(self, flow_id: str, purpose: str) -> None:
        await self.take(flow_id, purpose)


class InMemoryNonceStore(NonceStore):
    def __init__(self, *, clock: Callable[[], datetime] = _utc_now) -> None:
        self._lock = asyncio.Lock()
        self._items: dict[str, Challenge] = {}
        self._clock = clock

    def _purge_expired_locked(self, now: datetime) -> None:
        expired = [k for k, c in self._items.items() if c.is_expired(now)]
        for k in expired:
            self._items.pop(k, None)

    async def put(self, challenge: Challenge) -> None:
        key = nonce_key(challenge.flow_id, challenge.purpose)
        async with self._lock:
            self._purge_expired_locked(self._clock())
            replaced = self._items.get(key)
            self._items[key] = challenge
        if replaced is not None:
            logger.debug("nonce.replaced flow=%s purpose=%s", challenge.flow_id, challenge.purpose)

    async def take(self, flow_id: str, purpose: str) -> Challenge | None:
        async with self._lock:
            challenge = self._items.pop(nonce_key(flow_id, purpose), None)
        if challenge is None or challenge.is_expired(self._clock()):
            return None
        return challenge

    async def peek(self, flow_id: str, purpose: str) -> Challenge | None:
        async with self._lock:
            challenge = self._items.get(nonce_key(flow_id, purpose))
        if challenge is None or challenge.is_expired(self._clock()):
            return None
        return challenge

    async def clear(self) -> None:
        async with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


class RedisNonceStore(NonceStore):
    def __init__(self, redis_client: Any) -> None:
        self._redis = redis_client

    async def put(self, challenge: Challenge) -> None:
        ttl = max(1, challenge.ttl_seconds())
        await self._redis.set(nonce_key(challenge.flow_id, challenge.purpose), challenge.to_json(), ex=ttl)

    async def take(self, flow_id: str, purpose: str) -> Challenge | None:
        raw = await self._redis.getdel(nonce_key(flow_id, purpose))
        if raw is None:
            return None
        challenge = Challenge.from_json(raw)
        if challenge.is_expired():
            return None
        return challenge

    async def peek(self, flow_id: str, purpose: str) -> Challenge | None:
        raw = await self._redis.get(nonce_key(flow_id, purpose))
        if raw is None:
            return None
        challenge = Challenge.from_json(raw)
        if challenge.is_expired():
            return None
        return challenge


_memory_store = InMemoryNonceStore()


def get_nonce_store(redis_client: Any = None) -> NonceStore:
    if settings.REDIS_ENABLED and redis_client is not None:
        return RedisNonceStore(redis_client)
    return _memory_store


def reset_memory_store() -> None:
    _memory_store._items.clear()
