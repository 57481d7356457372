from typing import Optional
from pydantic import BaseModel, Field

from walletlink.schemas.account import AccountPublic


class RefreshRequest(BaseModel):
    refresh_token: str


class LogoutRequest(BaseModel):
    refresh_token: str


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = Field(default="Bearer", json_schema_extra={"example": "Bearer"})
    expires_in: int
    account: Optional[AccountPublic] = None
