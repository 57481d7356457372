from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from walletlink.db.models.audit_log import AuditLog
from walletlink.utils.observability import request_id_var


logger = logging.getLogger(__name__)


async def record_audit(
    db: AsyncSession,
    http_request: Request,
    *,
    action: str,
    object_id: str,
    actor_id: Optional[uuid.UUID] = None,
    actor_role: Optional[str] = None,
    object_type: str = "wallet_binding",
    reason: Optional[str] = None,
    before_state: Optional[dict[str, Any]] = None,
    after_state: Optional[dict[str, Any]] = None,
) -> None:
    """Best-effort audit entry written after the operation has committed."""
    client_host = (http_request.client.host if http_request.client else None) or "unknown"
    try:
        db.add(
            AuditLog(
                actor_id=actor_id,
                actor_role=actor_role,
                action=action,
                object_type=object_type,
                object_id=object_id,
                reason=reason,
                before_state=before_state,
                after_state=after_state,
                request_id=request_id_var.get() or http_request.headers.get("X-Request-ID"),
                ip_address=client_host,
                user_agent=http_request.headers.get("user-agent"),
            )
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.warning("audit.write_failed action=%s object=%s", action, object_id, exc_info=True)
