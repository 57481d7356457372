import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from walletlink.api import deps
from walletlink.core.audit import record_audit
from walletlink.core.flow_session import FlowSession
from walletlink.core.wallet.address import normalize_address
from walletlink.core.wallet.nonce_store import NonceStore
from walletlink.core.wallet.service import WalletAuthService
from walletlink.db.models.account import Account
from walletlink.schemas.account import AccountPublic
from walletlink.schemas.common import error_responses
from walletlink.schemas.wallet import (
    AccountLookupResponse,
    ChallengeRequest,
    ChallengeResponse,
    CheckBindingRequest,
    CheckBindingResponse,
    LinkResponse,
    SignedChallenge,
    UnlinkResponse,
    WalletLoginResponse,
)
from walletlink.utils.exceptions import WalletLinkException

router = APIRouter()

logger = logging.getLogger(__name__)


def _client_host(http_request: Request) -> str:
    return (http_request.client.host if http_request.client else None) or "unknown"


def _service(db: AsyncSession, nonce_store: NonceStore, http_request: Request) -> WalletAuthService:
    redis_client = getattr(http_request.app.state, "redis", None)
    return WalletAuthService(db, nonce_store=nonce_store, redis_client=redis_client)


@router.post("/challenge", response_model=ChallengeResponse, responses=error_responses(400, 401, 409))
async def issue_challenge(
    request: ChallengeRequest,
    http_request: Request,
    db: AsyncSession = Depends(deps.get_db),
    nonce_store: NonceStore = Depends(deps.get_nonce_store),
    flow: FlowSession = Depends(deps.ensure_flow_session),
    account: Optional[Account] = Depends(deps.get_optional_account),
):
    service = _service(db, nonce_store, http_request)
    issued = await service.issue_challenge(
        flow.flow_id,
        purpose=request.purpose,
        account=account,
        address=request.address,
    )
    challenge = issued.challenge
    return ChallengeResponse(
        message=challenge.message,
        nonce=challenge.nonce,
        purpose=challenge.purpose,
        address=challenge.address,
        issued_at=challenge.issued_at,
        expires_at=challenge.expires_at,
        already_linked=issued.already_linked,
    )


@router.post("/link", response_model=LinkResponse, responses=error_responses(400, 401, 409))
async def link_wallet(
    request: SignedChallenge,
    http_request: Request,
    db: AsyncSession = Depends(deps.get_db),
    nonce_store: NonceStore = Depends(deps.get_nonce_store),
    flow: Optional[FlowSession] = Depends(deps.get_flow_session),
    account: Account = Depends(deps.get_current_account),
):
    service = _service(db, nonce_store, http_request)
    client_host = _client_host(http_request)
    try:
        binding = await service.verify_and_bind(
            flow.flow_id if flow else None,
            account,
            address=request.address,
            signature=request.signature,
            nonce=request.nonce,
            message=request.message,
        )
    except WalletLinkException as exc:
        logger.warning(
            "wallet.link failed account=%s address=%s code=%s ip=%s",
            account.id,
            request.address,
            exc.code,
            client_host,
        )
        raise
    except Exception:
        logger.exception("wallet.link crashed account=%s ip=%s", account.id, client_host)
        raise

    response = LinkResponse(bound_address=binding.address, linked_at=binding.linked_at)
    await record_audit(
        db,
        http_request,
        action="wallet.link",
        object_id=binding.address,
        actor_id=account.id,
        actor_role=account.role,
        after_state={"account_id": str(account.id), "address": binding.address},
    )
    return response


@router.delete("/link", response_model=UnlinkResponse)
async def unlink_wallet(
    http_request: Request,
    db: AsyncSession = Depends(deps.get_db),
    nonce_store: NonceStore = Depends(deps.get_nonce_store),
    account: Account = Depends(deps.get_current_account),
):
    service = _service(db, nonce_store, http_request)
    removed = await service.unbind(account.id)
    if removed is not None:
        await record_audit(
            db,
            http_request,
            action="wallet.unlink",
            object_id=removed,
            actor_id=account.id,
            actor_role=account.role,
            before_state={"account_id": str(account.id), "address": removed},
        )
    return UnlinkResponse(was_linked=removed is not None, address=removed)


@router.post("/link/check", response_model=CheckBindingResponse)
async def check_binding(
    request: CheckBindingRequest,
    http_request: Request,
    db: AsyncSession = Depends(deps.get_db),
    nonce_store: NonceStore = Depends(deps.get_nonce_store),
    account: Account = Depends(deps.get_current_account),
):
    service = _service(db, nonce_store, http_request)
    return CheckBindingResponse(**await service.check_binding(account, request.address))


@router.get("/accounts/{address}", response_model=AccountLookupResponse)
async def lookup_account_by_address(
    address: str,
    http_request: Request,
    db: AsyncSession = Depends(deps.get_db),
    nonce_store: NonceStore = Depends(deps.get_nonce_store),
):
    normalized = normalize_address(address)
    service = _service(db, nonce_store, http_request)
    account_id = await service.lookup_account(normalized)
    return AccountLookupResponse(address=normalized, account_id=account_id)


@router.post("/login", response_model=WalletLoginResponse, responses=error_responses(400, 403))
async def login_with_wallet(
    request: SignedChallenge,
    http_request: Request,
    db: AsyncSession = Depends(deps.get_db),
    nonce_store: NonceStore = Depends(deps.get_nonce_store),
    flow: Optional[FlowSession] = Depends(deps.get_flow_session),
):
    service = _service(db, nonce_store, http_request)
    client_host = _client_host(http_request)
    try:
        result = await service.login(
            flow.flow_id if flow else None,
            address=request.address,
            signature=request.signature,
            nonce=request.nonce,
            message=request.message,
        )
    except WalletLinkException as exc:
        logger.warning("wallet.login failed address=%s code=%s ip=%s", request.address, exc.code, client_host)
        raise
    except Exception:
        logger.exception("wallet.login crashed address=%s ip=%s", request.address, client_host)
        raise

    logger.info(
        "wallet.login success account=%s address=%s new=%s ip=%s",
        result.account.id,
        result.address,
        result.is_new,
        client_host,
    )
    response = WalletLoginResponse(
        **result.tokens,
        account=AccountPublic.model_validate(result.account),
        wallet_address=result.address,
        is_new=result.is_new,
    )
    if result.is_new:
        await record_audit(
            db,
            http_request,
            action="wallet.register",
            object_id=result.address,
            actor_id=result.account.id,
            actor_role=result.account.role,
            after_state={"account_id": str(result.account.id), "address": result.address},
        )
    return response
