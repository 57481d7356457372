from sqlalchemy.ext.asyncio import AsyncSession

from walletlink.core.accounts.service import AccountService
from walletlink.core.wallet.bindings import BindingStore
from walletlink.db.models.account import Account
from walletlink.utils.exceptions import (
    BadRequestException,
    ForbiddenException,
    NotFoundException,
    UnauthorizedException,
)
from walletlink.utils.security import decode_token, issue_token_pair, revoke_jti


class AuthService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def refresh_tokens(self, refresh_token: str) -> tuple[Account, dict]:
        """Rotate a refresh token: the presented one is revoked and a new pair issued."""
        payload = await decode_token(refresh_token, expected_type="refresh")
        if not payload:
            raise UnauthorizedException("Invalid refresh token")

        try:
            account = await AccountService(self.db).get_account(payload["sub"])
        except NotFoundException:
            raise UnauthorizedException("Account not found")
        if account.status != "active":
            raise ForbiddenException("Account is not active")

        jti = payload.get("jti")
        if isinstance(jti, str) and jti:
            await revoke_jti(jti, exp=payload.get("exp"))

        wallet = await BindingStore(self.db).find_by_account(account.id)
        return account, issue_token_pair(account.id, role=account.role, wallet=wallet)

    async def revoke_refresh_token(self, refresh_token: str) -> None:
        payload = await decode_token(refresh_token, expected_type="refresh")
        if not payload:
            raise BadRequestException("Invalid refresh token")

        jti = payload.get("jti")
        if not isinstance(jti, str) or not jti:
            raise BadRequestException("Refresh token missing jti")

        await revoke_jti(jti, exp=payload.get("exp"))
