from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Body, Depends, Query, Request
from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from walletlink.api import deps
from walletlink.core.accounts.service import AccountService
from walletlink.core.audit import record_audit
from walletlink.core.wallet.bindings import BindingStore
from walletlink.db.models.account import Account
from walletlink.db.models.audit_log import AuditLog
from walletlink.db.models.wallet_binding import WalletBinding
from walletlink.schemas.admin import (
    AdminAuditLogListResponse,
    AdminRemoveWalletRequest,
    AdminRemoveWalletResponse,
    AdminWalletBindingItem,
    AdminWalletBindingsListResponse,
)

router = APIRouter(prefix="/admin", dependencies=[Depends(deps.require_admin)])

logger = logging.getLogger(__name__)


@router.get("/wallets", response_model=AdminWalletBindingsListResponse)
async def list_wallet_bindings(
    q: str | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(deps.get_db),
) -> AdminWalletBindingsListResponse:
    base = select(WalletBinding, Account.username).join(Account, Account.id == WalletBinding.account_id)
    if q:
        needle = f"%{q.strip().lower()}%"
        base = base.where(WalletBinding.address.ilike(needle) | Account.username.ilike(needle))

    total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar_one()

    stmt = base.order_by(desc(WalletBinding.linked_at)).limit(per_page).offset((page - 1) * per_page)
    rows = (await db.execute(stmt)).all()
    items = [
        AdminWalletBindingItem(
            address=binding.address,
            account_id=binding.account_id,
            username=username,
            source=binding.source,
            linked_at=binding.linked_at,
        )
        for binding, username in rows
    ]
    return AdminWalletBindingsListResponse(items=items, page=page, per_page=per_page, total=int(total))


@router.delete("/accounts/{account_id}/wallet", response_model=AdminRemoveWalletResponse)
async def remove_account_wallet(
    account_id: uuid.UUID,
    http_request: Request,
    body: AdminRemoveWalletRequest | None = Body(default=None),
    db: AsyncSession = Depends(deps.get_db),
) -> AdminRemoveWalletResponse:
    await AccountService(db).get_account(account_id)
    redis_client = getattr(http_request.app.state, "redis", None)
    removed = await BindingStore(db, redis_client=redis_client).unbind(account_id)

    if removed is not None:
        logger.info("admin.wallet_removed account=%s address=%s", account_id, removed)
        await record_audit(
            db,
            http_request,
            action="admin.wallet.remove",
            object_id=removed,
            actor_role="admin",
            reason=body.reason if body else None,
            before_state={"account_id": str(account_id), "address": removed},
        )
    return AdminRemoveWalletResponse(account_id=account_id, was_linked=removed is not None, address=removed)


@router.get("/audit-log", response_model=AdminAuditLogListResponse)
async def list_audit_log(
    action: str | None = None,
    object_id: str | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(deps.get_db),
) -> AdminAuditLogListResponse:
    base = select(AuditLog)
    if action:
        base = base.where(AuditLog.action == action)
    if object_id:
        base = base.where(AuditLog.object_id == object_id)

    total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar_one()

    stmt = base.order_by(desc(AuditLog.timestamp)).limit(per_page).offset((page - 1) * per_page)
    items = (await db.execute(stmt)).scalars().all()
    return AdminAuditLogListResponse(items=items, page=page, per_page=per_page, total=int(total))
