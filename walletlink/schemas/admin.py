from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StrictInt


class AdminPaginatedMeta(BaseModel):
    page: StrictInt = Field(..., ge=1)
    per_page: StrictInt = Field(..., ge=1, le=200)
    total: StrictInt = Field(..., ge=0)


class AdminWalletBindingItem(BaseModel):
    address: str
    account_id: UUID
    username: str
    source: str
    linked_at: datetime


class AdminWalletBindingsListResponse(AdminPaginatedMeta):
    items: list[AdminWalletBindingItem]


class AdminRemoveWalletRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class AdminRemoveWalletResponse(BaseModel):
    account_id: UUID
    was_linked: bool
    address: Optional[str] = None


class AdminAuditLogItem(BaseModel):
    id: UUID
    timestamp: datetime
    actor_id: Optional[UUID] = None
    actor_role: Optional[str] = None
    action: str
    object_type: Optional[str] = None
    object_id: Optional[str] = None
    reason: Optional[str] = None
    before_state: Optional[dict[str, Any]] = None
    after_state: Optional[dict[str, Any]] = None
    request_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AdminAuditLogListResponse(AdminPaginatedMeta):
    items: list[AdminAuditLogItem]
