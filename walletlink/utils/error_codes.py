from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Standard WalletLink error codes."""

    E001 = "E001"  # Protocol: Nonce missing, expired or mismatched
    E002 = "E002"  # Protocol: Invalid signature
    E003 = "E003"  # Protocol: Recovered address differs from claimed address
    E004 = "E004"  # Conflict: Address already bound to another account
    E005 = "E005"  # Auth: Not authenticated
    E006 = "E006"  # Auth: Insufficient permissions
    E007 = "E007"  # Timeout: Wallet did not answer in time
    E008 = "E008"  # Conflict: State conflict / resource busy
    E009 = "E009"  # Validation: Invalid input
    E010 = "E010"  # Internal: Internal error
    E011 = "E011"  # Wallet: User rejected the request
    E012 = "E012"  # Flow: Cancelled
    E013 = "E013"  # Wallet: No wallet detected
    E014 = "E014"  # Transport: Network failure
    E015 = "E015"  # Registration: Wallet not linked and registration closed
    E016 = "E016"  # Rate limit: Too many requests
    E017 = "E017"  # Lookup: Not found


class ErrorCategory(str, Enum):
    PROTOCOL = "protocol"
    CONFLICT = "conflict"
    TRANSIENT = "transient"
    USER_DECLINED = "user_declined"
    MISSING_CAPABILITY = "missing_capability"


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.E001: "Invalid or expired nonce. Please request a new message to sign.",
    ErrorCode.E002: "Invalid signature",
    ErrorCode.E003: "Signature does not match the wallet address",
    ErrorCode.E004: "This wallet is already linked to another account",
    ErrorCode.E005: "Not authenticated",
    ErrorCode.E006: "Insufficient permissions",
    ErrorCode.E007: "The wallet did not respond in time",
    ErrorCode.E008: "State conflict",
    ErrorCode.E009: "Validation error",
    ErrorCode.E010: "Internal server error",
    ErrorCode.E011: "Request was rejected in the wallet",
    ErrorCode.E012: "Operation cancelled",
    ErrorCode.E013: "No wallet detected. Please install a browser wallet.",
    ErrorCode.E014: "Network error",
    ErrorCode.E015: (
        "This wallet is not linked to any account. "
        "Please log in via email first and connect your wallet."
    ),
    ErrorCode.E016: "Too many requests",
    ErrorCode.E017: "Not found",
}


ERROR_CATEGORIES: dict[ErrorCode, ErrorCategory] = {
    ErrorCode.E001: ErrorCategory.PROTOCOL,
    ErrorCode.E002: ErrorCategory.PROTOCOL,
    ErrorCode.E003: ErrorCategory.PROTOCOL,
    ErrorCode.E004: ErrorCategory.CONFLICT,
    ErrorCode.E005: ErrorCategory.PROTOCOL,
    ErrorCode.E006: ErrorCategory.PROTOCOL,
    ErrorCode.E007: ErrorCategory.TRANSIENT,
    ErrorCode.E008: ErrorCategory.TRANSIENT,
    ErrorCode.E009: ErrorCategory.PROTOCOL,
    ErrorCode.E010: ErrorCategory.TRANSIENT,
    ErrorCode.E011: ErrorCategory.USER_DECLINED,
    ErrorCode.E012: ErrorCategory.USER_DECLINED,
    ErrorCode.E013: ErrorCategory.MISSING_CAPABILITY,
    ErrorCode.E014: ErrorCategory.TRANSIENT,
    ErrorCode.E015: ErrorCategory.CONFLICT,
    ErrorCode.E016: ErrorCategory.TRANSIENT,
    ErrorCode.E017: ErrorCategory.PROTOCOL,
}
