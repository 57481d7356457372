import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from walletlink.schemas.auth import TokenPair


class ChallengeRequest(BaseModel):
    purpose: str = Field(default="login", pattern="^(login|link)$")
    address: Optional[str] = Field(default=None, max_length=64)


class ChallengeResponse(BaseModel):
    message: str
    nonce: str
    purpose: str
    address: Optional[str] = None
    issued_at: datetime
    expires_at: datetime
    already_linked: bool = False


class SignedChallenge(BaseModel):
    address: str = Field(..., max_length=64)
    signature: str = Field(..., min_length=1, max_length=256)
    nonce: str = Field(..., min_length=1, max_length=256)
    # Optional echo of the signed text; when present it must match the issued message.
    message: Optional[str] = Field(default=None, max_length=2048)


class LinkResponse(BaseModel):
    bound_address: str
    linked_at: datetime


class UnlinkResponse(BaseModel):
    success: bool = True
    was_linked: bool
    address: Optional[str] = None


class CheckBindingRequest(BaseModel):
    address: str = Field(..., max_length=64)


class CheckBindingResponse(BaseModel):
    is_linked: bool
    bound_address: Optional[str] = None


class AccountLookupResponse(BaseModel):
    address: str
    account_id: Optional[uuid.UUID] = None


class WalletLoginResponse(TokenPair):
    wallet_address: str
    is_new: bool = False
