from __future__ import annotations

import logging
import secrets
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from walletlink.config import settings
from walletlink.db.models.account import Account
from walletlink.utils.exceptions import ConflictException, NotFoundException


logger = logging.getLogger(__name__)

ROLE_ADMINISTRATOR = "administrator"
USERNAME_PREFIX = "wallet_"


def username_for_address(address: str) -> str:
    return f"{USERNAME_PREFIX}{address[2:10]}"


class AccountService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_account(self, account_id: uuid.UUID | str) -> Account:
        if not isinstance(account_id, uuid.UUID):
            try:
                account_id = uuid.UUID(str(account_id))
            except ValueError:
                raise NotFoundException(f"Account {account_id} not found")
        account = await self.db.get(Account, account_id)
        if account is None:
            raise NotFoundException(f"Account {account_id} not found")
        return account

    async def _username_taken(self, username: str) -> bool:
        result = await self.db.execute(select(Account.id).where(Account.username == username))
        return result.scalar_one_or_none() is not None

    async def create_account(
        self,
        *,
        username: str,
        display_name: str,
        email: Optional[str] = None,
        role: Optional[str] = None,
    ) -> Account:
        if await self._username_taken(username):
            raise ConflictException("Account already exists", details={"username": username})

        account = Account(
            username=username,
            display_name=display_name,
            email=email,
            role=role or settings.WALLET_DEFAULT_ROLE,
            status="active",
        )
        self.db.add(account)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictException("Account already exists", details={"username": username})
        await self.db.refresh(account)
        return account

    def role_for_address(self, address: str) -> str:
        if address.lower() in settings.admin_addresses():
            return ROLE_ADMINISTRATOR
        return settings.WALLET_DEFAULT_ROLE

    async def register_by_wallet(self, address: str) -> Account:
        """Create an account whose identity is `address` (already normalized)."""
        base = username_for_address(address)
        username = base
        if await self._username_taken(username):
            username = f"{base}_{secrets.token_hex(3)}"

        try:
            account = await self._create_wallet_account(username, address)
        except ConflictException:
            # Another process took the derived username between the check and the insert.
            username = f"{base}_{secrets.token_hex(3)}"
            account = await self._create_wallet_account(username, address)
        logger.info("account.registered_by_wallet account=%s username=%s address=%s", account.id, username, address)
        return account

    async def _create_wallet_account(self, username: str, address: str) -> Account:
        domain = settings.SITE_DOMAIN.removeprefix("www.")
        return await self.create_account(
            username=username,
            display_name=f"Wallet User {address[:10]}...",
            email=f"{username}@{domain}",
            role=self.role_for_address(address),
        )

    async def sync_role_for_wallet(self, account: Account, address: str) -> Account:
        """Promote configured admin wallets; never demote an existing administrator."""
        target = self.role_for_address(address)
        if target != ROLE_ADMINISTRATOR or account.role == target:
            return account

        previous = account.role
        account.role = target
        await self.db.commit()
        logger.info("account.role_synced account=%s from=%s to=%s", account.id, previous, target)
        return account
