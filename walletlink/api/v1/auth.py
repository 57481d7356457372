import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from walletlink.api import deps
from walletlink.core.auth.service import AuthService
from walletlink.schemas.account import AccountPublic
from walletlink.schemas.auth import LogoutRequest, RefreshRequest, TokenPair
from walletlink.utils.exceptions import WalletLinkException

router = APIRouter()

logger = logging.getLogger(__name__)


@router.post("/refresh", response_model=TokenPair)
async def refresh(
    request: RefreshRequest,
    http_request: Request,
    db: AsyncSession = Depends(deps.get_db),
):
    service = AuthService(db)
    client_host = (http_request.client.host if http_request.client else None) or "unknown"
    try:
        account, tokens = await service.refresh_tokens(request.refresh_token)
    except WalletLinkException:
        logger.warning("auth.refresh failed ip=%s", client_host)
        raise
    except Exception:
        logger.exception("auth.refresh crashed ip=%s", client_host)
        raise

    logger.info("auth.refresh success account=%s ip=%s", account.id, client_host)
    return TokenPair(**tokens, account=AccountPublic.model_validate(account))


@router.post("/logout")
async def logout(
    request: LogoutRequest,
    db: AsyncSession = Depends(deps.get_db),
):
    await AuthService(db).revoke_refresh_token(request.refresh_token)
    return {"success": True}
