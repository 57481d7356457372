import uuid
from sqlalchemy import DateTime, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column
from walletlink.db.base import Base

class WalletBinding(Base):
    """One row per linked wallet.

    `address` and `account_id` are both unique: an address belongs to at most
    one account and an account holds at most one address.
    """

    __tablename__ = "wallet_bindings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    address: Mapped[str] = mapped_column(String(42), nullable=False, unique=True, index=True)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False, unique=True
    )
    signature_proof: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False, default='link')
    linked_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

