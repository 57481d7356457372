from walletlink.db.base import Base
from .account import Account
from .wallet_binding import WalletBinding
from .audit_log import AuditLog

__all__ = [
    "Base",
    "Account",
    "WalletBinding",
    "AuditLog",
]
