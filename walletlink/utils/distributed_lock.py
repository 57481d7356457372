from __future__ import annotations

import asyncio
import logging
import secrets
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from walletlink.utils.exceptions import ConflictException


logger = logging.getLogger(__name__)


_UNLOCK_LUA = """
if redis.call('get', KEYS[1]) == ARGV[1] then
  return redis.call('del', KEYS[1])
else
  return 0
end
""".strip()


@asynccontextmanager
async def redis_distributed_lock(
    redis_client: Optional[Any],
    key: str,
    *,
    ttl_seconds: int = 15,
    wait_timeout_seconds: float = 2.0,
    poll_interval_seconds: float = 0.05,
) -> AsyncIterator[None]:
    """Best-effort distributed lock.

    If redis_client is None, this becomes a no-op.

    Raises ConflictException if the lock can't be acquired within wait_timeout_seconds.
    """
    if redis_client is None:
        yield
        return

    if ttl_seconds <= 0:
        raise ValueError("ttl_seconds must be positive")
    if wait_timeout_seconds < 0:
        raise ValueError("wait_timeout_seconds must be non-negative")
    if poll_interval_seconds <= 0:
        raise ValueError("poll_interval_seconds must be positive")

    token = secrets.token_urlsafe(16)
    deadline = time.monotonic() + wait_timeout_seconds

    acquired = False
    try:
        while True:
            ok = await redis_client.set(key, token, nx=True, ex=int(ttl_seconds))
            if ok:
                acquired = True
                break

            if time.monotonic() >= deadline:
                raise ConflictException(
                    "Resource is busy",
                    details={
                        "lock_key": key,
                        "wait_timeout_seconds": wait_timeout_seconds,
                    },
                )

            await asyncio.sleep(poll_interval_seconds)

        yield
    finally:
        if acquired:
            try:
                await redis_client.eval(_UNLOCK_LUA, 1, key, token)
            except Exception:
                # The key still expires after ttl_seconds; never mask the original error.
                logger.warning("lock.release_failed key=%s", key, exc_info=True)


class KeyedLocks:
    """In-process asyncio locks, one per key, dropped when nobody holds or waits on them."""

    def __init__(self) -> None:
        self._guard = asyncio.Lock()
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        async with self._guard:
            lock = self._locks.setdefault(key, asyncio.Lock())
            self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            async with self._guard:
                remaining = self._users.get(key, 1) - 1
                if remaining <= 0:
                    self._users.pop(key, None)
                    self._locks.pop(key, None)
                else:
                    self._users[key] = remaining

    def __len__(self) -> int:
        return len(self._locks)


@asynccontextmanager
async def keyed_lock(
    local_locks: KeyedLocks,
    redis_client: Optional[Any],
    key: str,
    *,
    ttl_seconds: int = 15,
    wait_timeout_seconds: float = 2.0,
) -> AsyncIterator[None]:
    """Serialize work on `key` within this process and, when Redis is available, across processes."""
    async with local_locks.hold(key):
        async with redis_distributed_lock(
            redis_client,
            key,
            ttl_seconds=ttl_seconds,
            wait_timeout_seconds=wait_timeout_seconds,
        ):
            yield
