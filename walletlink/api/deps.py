import asyncio
import time
import uuid
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, Request, Response
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from walletlink.config import settings
from walletlink.core.flow_session import (
    COOKIE_NAME,
    HEADER_NAME,
    FlowSession,
    create_flow_session,
    validate_flow_session,
)
from walletlink.core.wallet.nonce_store import NonceStore, get_nonce_store as _get_nonce_store
from walletlink.db.models.account import Account
from walletlink.db.session import get_db_session
from walletlink.utils.exceptions import (
    ForbiddenException,
    TooManyRequestsException,
    UnauthorizedException,
)
from walletlink.utils.security import decode_token

reusable_oauth2 = OAuth2PasswordBearer(tokenUrl="/api/v1/wallet/login")
optional_oauth2 = OAuth2PasswordBearer(tokenUrl="/api/v1/wallet/login", auto_error=False)


_rate_limit_lock = asyncio.Lock()
_rate_limit_counters: dict[tuple[int, str], int] = {}


async def rate_limit(request: Request) -> None:
    if not settings.RATE_LIMIT_ENABLED:
        return

    client_host = (request.client.host if request.client else None) or "unknown"
    window_seconds = max(1, int(settings.RATE_LIMIT_WINDOW_SECONDS))
    limit = max(1, int(settings.RATE_LIMIT_REQUESTS_PER_WINDOW))

    redis_client = await get_redis_client(request)
    if settings.REDIS_ENABLED and redis_client is not None:
        bucket = int(time.time() // window_seconds)
        key = f"walletlink:rl:{client_host}:{bucket}"

        current = await redis_client.incr(key)
        if current == 1:
            # Ensure key expires after the window.
            await redis_client.expire(key, window_seconds + 1)
    else:
        bucket = int(time.monotonic() // window_seconds)
        async with _rate_limit_lock:
            current = _rate_limit_counters.get((bucket, client_host), 0) + 1
            _rate_limit_counters[(bucket, client_host)] = current
            _rate_limit_counters.pop((bucket - 1, client_host), None)

    if current > limit:
        raise TooManyRequestsException(
            details={
                "window_seconds": window_seconds,
                "limit": limit,
            }
        )


def reset_rate_limits() -> None:
    _rate_limit_counters.clear()


async def get_redis_client(request: Request):
    state = getattr(getattr(request, "app", None), "state", None)
    return getattr(state, "redis", None)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_db_session():
        yield session


async def get_nonce_store(redis_client=Depends(get_redis_client)) -> NonceStore:
    return _get_nonce_store(redis_client)


async def _account_from_token(db: AsyncSession, token: str) -> Account:
    payload = await decode_token(token)
    if not payload:
        raise UnauthorizedException("Could not validate credentials")

    sub = payload.get("sub")
    try:
        account_id = uuid.UUID(str(sub))
    except ValueError:
        raise UnauthorizedException("Could not validate credentials")

    account = await db.get(Account, account_id)
    if not account:
        raise UnauthorizedException("Account not found")

    if account.status != 'active':
        raise ForbiddenException("Account is not active")

    return account


async def get_current_account(
    db: AsyncSession = Depends(get_db),
    token: str = Depends(reusable_oauth2),
) -> Account:
    return await _account_from_token(db, token)


async def get_optional_account(
    db: AsyncSession = Depends(get_db),
    token: Optional[str] = Depends(optional_oauth2),
) -> Optional[Account]:
    if not token:
        return None
    return await _account_from_token(db, token)


async def require_admin(
    x_admin_token: str | None = Header(default=None, alias="X-Admin-Token"),
) -> None:
    if x_admin_token is None or x_admin_token != settings.ADMIN_TOKEN:
        raise ForbiddenException("Admin token required")


def _read_flow_session(request: Request) -> Optional[FlowSession]:
    raw = request.cookies.get(COOKIE_NAME) or request.headers.get(HEADER_NAME)
    return validate_flow_session(
        raw,
        settings.FLOW_SESSION_SECRET,
        settings.FLOW_SESSION_TTL_SEC,
        settings.FLOW_SESSION_CLOCK_SKEW_SEC,
    )


async def get_flow_session(request: Request) -> Optional[FlowSession]:
    return _read_flow_session(request)


async def ensure_flow_session(request: Request, response: Response) -> FlowSession:
    """Return the caller's flow session, minting one (and its cookie) when absent."""
    session = _read_flow_session(request)
    if session is None:
        session = create_flow_session(settings.FLOW_SESSION_SECRET)
        response.set_cookie(
            COOKIE_NAME,
            session.cookie_value,
            max_age=int(settings.FLOW_SESSION_TTL_SEC),
            httponly=True,
            samesite="lax",
            secure=bool(settings.FLOW_SESSION_COOKIE_SECURE),
        )
    response.headers[HEADER_NAME] = session.cookie_value
    return session
