from __future__ import annotations

import hmac
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from walletlink.config import settings
from walletlink.core.accounts.service import AccountService
from walletlink.core.wallet.address import normalize_address
from walletlink.core.wallet.bindings import SOURCE_LINK, SOURCE_REGISTRATION, BindingStore
from walletlink.core.wallet.challenge import ChallengeIssuer
from walletlink.core.wallet.nonce_store import PURPOSE_LINK, PURPOSE_LOGIN, Challenge, NonceStore
from walletlink.core.wallet.signature import recover_address
from walletlink.db.models.account import Account
from walletlink.db.models.wallet_binding import WalletBinding
from walletlink.utils.distributed_lock import KeyedLocks, keyed_lock
from walletlink.utils.exceptions import (
    AddressAlreadyBoundException,
    AddressMismatchException,
    ConflictException,
    ForbiddenException,
    NonceInvalidException,
    RegistrationClosedException,
    UnauthorizedException,
)
from walletlink.utils.metrics import CHALLENGE_EVENTS_TOTAL, LOGIN_EVENTS_TOTAL, emit
from walletlink.utils.security import issue_token_pair


logger = logging.getLogger(__name__)

# Serializes first logins of the same wallet across requests in this process.
_register_locks = KeyedLocks()


@dataclass
class IssuedChallenge:
    challenge: Challenge
    already_linked: bool = False


@dataclass
class WalletLogin:
    account: Account
    address: str
    tokens: dict[str, Any]
    is_new: bool


class WalletAuthService:
    """Challenge/verify protocol on top of the nonce store and the binding table.

    Every verification consumes the flow's pending challenge before anything
    else is checked, so a nonce is good for exactly one attempt. The signer is
    always recovered here; nothing the client claims about the signature is
    trusted.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        nonce_store: NonceStore,
        redis_client: Optional[Any] = None,
        issuer: ChallengeIssuer | None = None,
    ):
        self.db = db
        self.nonce_store = nonce_store
        self.issuer = issuer or ChallengeIssuer(nonce_store)
        self.bindings = BindingStore(db, redis_client=redis_client)
        self.accounts = AccountService(db)

    async def issue_challenge(
        self,
        flow_id: str,
        *,
        purpose: str,
        account: Account | None = None,
        address: str | None = None,
    ) -> IssuedChallenge:
        if address is not None:
            address = normalize_address(address)

        already_linked = False
        if purpose == PURPOSE_LINK:
            if account is None:
                raise UnauthorizedException("You must be logged in to link a wallet")
            if address is not None:
                owner = await self.bindings.find_by_address(address)
                if owner is not None and owner != account.id:
                    hint = await self.bindings.owner_hint(owner)
                    emit(CHALLENGE_EVENTS_TOTAL, purpose=purpose, result="already_bound")
                    raise AddressAlreadyBoundException(owner_hint=hint, details={"address": address})
                already_linked = owner == account.id

        challenge = await self.issuer.issue(
            flow_id,
            purpose=purpose,
            account_id=str(account.id) if account is not None else None,
            address=address,
        )
        return IssuedChallenge(challenge=challenge, already_linked=already_linked)

    async def _consume(self, flow_id: str | None, purpose: str, nonce: str, message: str | None) -> Challenge:
        challenge = None
        if flow_id:
            challenge = await self.nonce_store.take(flow_id, purpose)

        if challenge is None:
            emit(CHALLENGE_EVENTS_TOTAL, purpose=purpose, result="missing")
            raise NonceInvalidException(details={"reason": "missing_or_expired"})
        if not hmac.compare_digest(str(nonce or ""), challenge.nonce):
            emit(CHALLENGE_EVENTS_TOTAL, purpose=purpose, result="stale")
            raise NonceInvalidException(details={"reason": "nonce_mismatch"})
        if message is not None and message != challenge.message:
            emit(CHALLENGE_EVENTS_TOTAL, purpose=purpose, result="message_mismatch")
            raise NonceInvalidException(details={"reason": "message_mismatch"})

        emit(CHALLENGE_EVENTS_TOTAL, purpose=purpose, result="consumed")
        return challenge

    def _verify_signer(self, challenge: Challenge, claimed_address: str, signature: str) -> str:
        claimed = normalize_address(claimed_address)
        if challenge.address is not None and challenge.address != claimed:
            raise AddressMismatchException(
                "The challenge was issued for a different wallet",
                details={"expected": challenge.address, "claimed": claimed},
            )

        recovered = recover_address(challenge.message, signature)
        if recovered != claimed:
            raise AddressMismatchException(details={"claimed": claimed, "recovered": recovered})
        return claimed

    async def verify_and_bind(
        self,
        flow_id: str | None,
        account: Account,
        *,
        address: str,
        signature: str,
        nonce: str,
        message: str | None = None,
    ) -> WalletBinding:
        challenge = await self._consume(flow_id, PURPOSE_LINK, nonce, message)
        if challenge.account_id != str(account.id):
            raise NonceInvalidException(details={"reason": "identity_mismatch"})

        verified = self._verify_signer(challenge, address, signature)
        binding = await self.bindings.bind(account.id, verified, signature, source=SOURCE_LINK)
        logger.info("wallet.link success account=%s address=%s", account.id, verified)
        return binding

    async def login(
        self,
        flow_id: str | None,
        *,
        address: str,
        signature: str,
        nonce: str,
        message: str | None = None,
    ) -> WalletLogin:
        try:
            challenge = await self._consume(flow_id, PURPOSE_LOGIN, nonce, message)
            verified = self._verify_signer(challenge, address, signature)

            is_new = False
            account_id = await self.bindings.find_by_address(verified)
            if account_id is None:
                if not settings.WALLET_ALLOW_REGISTRATION:
                    raise RegistrationClosedException(details={"address": verified})
                account, is_new = await self._register(verified, signature)
            else:
                account = await self.accounts.get_account(account_id)

            if account.status != "active":
                raise ForbiddenException("Account is not active")

            account = await self.accounts.sync_role_for_wallet(account, verified)
        except Exception:
            emit(LOGIN_EVENTS_TOTAL, result="failed")
            raise

        emit(LOGIN_EVENTS_TOTAL, result="registered" if is_new else "success")
        tokens = issue_token_pair(account.id, role=account.role, wallet=verified)
        return WalletLogin(account=account, address=verified, tokens=tokens, is_new=is_new)

    async def _register(self, address: str, signature: str) -> tuple[Account, bool]:
        """Find-or-register under a per-address lock; returns (account, created)."""
        async with keyed_lock(
            _register_locks,
            self.bindings.redis,
            f"walletlink:register:{address}",
            ttl_seconds=settings.WALLET_BIND_LOCK_TTL_SECONDS,
            wait_timeout_seconds=settings.WALLET_BIND_LOCK_WAIT_SECONDS,
        ):
            owner = await self.bindings.find_by_address(address)
            if owner is not None:
                return await self.accounts.get_account(owner), False

            account = await self.accounts.register_by_wallet(address)
            account_id, username = account.id, account.username
            try:
                await self.bindings.bind(account_id, address, signature, source=SOURCE_REGISTRATION)
            except AddressAlreadyBoundException:
                # Another hub process registered this wallet first; log into its account.
                await self._discard_orphan(account_id, username)
                owner = await self.bindings.find_by_address(address)
                if owner is None:
                    raise
                return await self.accounts.get_account(owner), False
            except ConflictException:
                await self._discard_orphan(account_id, username)
                raise
            return account, True

    async def _discard_orphan(self, account_id: uuid.UUID, username: str) -> None:
        await self.db.execute(delete(Account).where(Account.id == account_id))
        await self.db.commit()
        logger.info("account.orphan_removed account=%s username=%s", account_id, username)

    async def unbind(self, account_id: uuid.UUID | str) -> str | None:
        removed = await self.bindings.unbind(account_id)
        if removed is not None:
            logger.info("wallet.unlink success account=%s address=%s", account_id, removed)
        return removed

    async def check_binding(self, account: Account, candidate: str) -> dict[str, Any]:
        candidate = normalize_address(candidate)
        bound = await self.bindings.find_by_account(account.id)
        return {"is_linked": bound == candidate, "bound_address": bound}

    async def lookup_account(self, address: str) -> uuid.UUID | None:
        return await self.bindings.find_by_address(address)
