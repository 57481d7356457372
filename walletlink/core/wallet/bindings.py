from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from walletlink.config import settings
from walletlink.core.wallet.address import normalize_address
from walletlink.db.models.account import Account
from walletlink.db.models.wallet_binding import WalletBinding
from walletlink.utils.distributed_lock import KeyedLocks, keyed_lock
from walletlink.utils.exceptions import AddressAlreadyBoundException, ConflictException
from walletlink.utils.metrics import BINDING_EVENTS_TOTAL, emit
from walletlink.utils.observability import log_duration


logger = logging.getLogger(__name__)

SOURCE_LINK = "link"
SOURCE_REGISTRATION = "registration"
SOURCE_LEGACY = "legacy"

# Process-wide: every BindingStore instance must share the same per-address locks.
_bind_locks = KeyedLocks()


def _as_uuid(value: uuid.UUID | str) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


class BindingStore:
    """Durable address <-> account mapping.

    Both directions are unique. `bind` is serialized per address and the
    table's unique constraints decide any race that slips past the lock.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        redis_client: Optional[Any] = None,
        locks: KeyedLocks | None = None,
    ):
        self.db = db
        self.redis = redis_client if settings.REDIS_ENABLED else None
        self.locks = locks or _bind_locks

    async def get_by_address(self, address: str) -> WalletBinding | None:
        address = normalize_address(address)
        result = await self.db.execute(select(WalletBinding).where(WalletBinding.address == address))
        return result.scalar_one_or_none()

    async def get_by_account(self, account_id: uuid.UUID | str) -> WalletBinding | None:
        result = await self.db.execute(
            select(WalletBinding).where(WalletBinding.account_id == _as_uuid(account_id))
        )
        return result.scalar_one_or_none()

    async def find_by_address(self, address: str) -> uuid.UUID | None:
        binding = await self.get_by_address(address)
        return binding.account_id if binding is not None else None

    async def find_by_account(self, account_id: uuid.UUID | str) -> str | None:
        binding = await self.get_by_account(account_id)
        return binding.address if binding is not None else None

    async def owner_hint(self, account_id: uuid.UUID) -> str:
        result = await self.db.execute(select(Account.username).where(Account.id == account_id))
        username = result.scalar_one_or_none()
        return username or "another account"

    async def bind(
        self,
        account_id: uuid.UUID | str,
        address: str,
        proof: str,
        *,
        source: str = SOURCE_LINK,
    ) -> WalletBinding:
        account_id = _as_uuid(account_id)
        address = normalize_address(address)

        with log_duration(logger, "wallet.bind", address=address):
            async with keyed_lock(
                self.locks,
                self.redis,
                f"walletlink:bind:{address}",
                ttl_seconds=settings.WALLET_BIND_LOCK_TTL_SECONDS,
                wait_timeout_seconds=settings.WALLET_BIND_LOCK_WAIT_SECONDS,
            ):
                return await self._bind_locked(account_id, address, proof, source=source)

    async def _bind_locked(
        self, account_id: uuid.UUID, address: str, proof: str, *, source: str
    ) -> WalletBinding:
        now = datetime.now(timezone.utc)

        existing = await self.get_by_address(address)
        if existing is not None:
            if existing.account_id != account_id:
                hint = await self.owner_hint(existing.account_id)
                emit(BINDING_EVENTS_TOTAL, event="bind", result="already_bound")
                raise AddressAlreadyBoundException(owner_hint=hint, details={"address": address})

            # Re-linking the same pair refreshes the proof only.
            existing.signature_proof = proof
            existing.linked_at = now
            await self.db.commit()
            emit(BINDING_EVENTS_TOTAL, event="bind", result="refreshed")
            return existing

        # One slot per account: a new address replaces the previous one.
        await self.db.execute(delete(WalletBinding).where(WalletBinding.account_id == account_id))

        binding = WalletBinding(
            address=address,
            account_id=account_id,
            signature_proof=proof,
            source=source,
            linked_at=now,
        )
        self.db.add(binding)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            owner = await self.find_by_address(address)
            if owner is not None and owner != account_id:
                hint = await self.owner_hint(owner)
                emit(BINDING_EVENTS_TOTAL, event="bind", result="already_bound")
                raise AddressAlreadyBoundException(owner_hint=hint, details={"address": address})
            emit(BINDING_EVENTS_TOTAL, event="bind", result="conflict")
            raise ConflictException(
                "Wallet binding changed concurrently; please retry",
                details={"address": address},
            )

        emit(BINDING_EVENTS_TOTAL, event="bind", result="created")
        return binding

    async def unbind(self, account_id: uuid.UUID | str) -> str | None:
        """Remove the account's binding. Returns the address that was unbound, if any."""
        account_id = _as_uuid(account_id)
        binding = await self.get_by_account(account_id)
        if binding is None:
            emit(BINDING_EVENTS_TOTAL, event="unbind", result="noop")
            return None

        address = binding.address
        await self.db.execute(delete(WalletBinding).where(WalletBinding.account_id == account_id))
        await self.db.commit()
        emit(BINDING_EVENTS_TOTAL, event="unbind", result="removed")
        return address
