import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from pydantic.config import ConfigDict


class AccountPublic(BaseModel):
    id: uuid.UUID
    username: str
    display_name: str
    role: str
    status: str

    model_config = ConfigDict(from_attributes=True)


class Account(AccountPublic):
    email: Optional[str] = None
    created_at: Optional[datetime] = None


class AccountWithWallet(Account):
    wallet_address: Optional[str] = None
    wallet_linked_at: Optional[datetime] = None
