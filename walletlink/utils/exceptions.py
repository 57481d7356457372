from __future__ import annotations

from typing import Any, Optional

from walletlink.utils.error_codes import (
    ERROR_CATEGORIES,
    ERROR_MESSAGES,
    ErrorCategory,
    ErrorCode,
)


def _normalize_error_code(value: ErrorCode | str | None) -> ErrorCode:
    if value is None:
        return ErrorCode.E010
    if isinstance(value, ErrorCode):
        return value
    try:
        return ErrorCode(str(value))
    except ValueError:
        return ErrorCode.E010


class WalletLinkException(Exception):
    """Base exception for the WalletLink hub and client.

    API response format is handled by the global exception handler.
    """

    def __init__(
        self,
        message: str | None = None,
        *,
        code: ErrorCode | str = ErrorCode.E010,
        details: Optional[dict[str, Any]] = None,
        status_code: int = 500,
    ):
        normalized = _normalize_error_code(code)
        if message is None:
            message = ERROR_MESSAGES.get(normalized, ERROR_MESSAGES[ErrorCode.E010])

        self.message = message
        self.code = normalized.value
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)

    @property
    def category(self) -> ErrorCategory:
        return ERROR_CATEGORIES.get(ErrorCode(self.code), ErrorCategory.TRANSIENT)

    @property
    def is_retryable(self) -> bool:
        """True when the same action may simply be tried again.

        Protocol errors need a fresh challenge first; conflicts and missing
        capabilities are terminal until something outside the flow changes.
        """
        return self.category in (ErrorCategory.TRANSIENT, ErrorCategory.USER_DECLINED)

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message, "details": self.details}}


class BadRequestException(WalletLinkException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.E009, details=details, status_code=400)


class InvalidAddressException(BadRequestException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message or "Invalid wallet address", details=details)


class UnauthorizedException(WalletLinkException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message or "Unauthorized", code=ErrorCode.E005, details=details, status_code=401)


class ForbiddenException(WalletLinkException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message or "Forbidden", code=ErrorCode.E006, details=details, status_code=403)


class NotFoundException(WalletLinkException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message or "Not Found", code=ErrorCode.E017, details=details, status_code=404)


class ConflictException(WalletLinkException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.E008, details=details, status_code=409)


class TooManyRequestsException(WalletLinkException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.E016, details=details, status_code=429)


class NonceInvalidException(WalletLinkException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.E001, details=details, status_code=400)


class InvalidSignatureException(WalletLinkException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.E002, details=details, status_code=400)


class AddressMismatchException(WalletLinkException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.E003, details=details, status_code=400)


class AddressAlreadyBoundException(WalletLinkException):
    def __init__(
        self,
        message: str | None = None,
        *,
        owner_hint: str | None = None,
        details: Optional[dict[str, Any]] = None,
    ):
        details = dict(details or {})
        if owner_hint is not None:
            details.setdefault("owner_hint", owner_hint)
            if message is None:
                message = f"This wallet is already linked to another account ({owner_hint})."
        self.owner_hint = details.get("owner_hint")
        super().__init__(message, code=ErrorCode.E004, details=details, status_code=409)


class WalletTimeoutException(WalletLinkException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.E007, details=details, status_code=504)


class UserRejectedException(WalletLinkException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.E011, details=details, status_code=400)


class CancelledException(WalletLinkException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.E012, details=details, status_code=400)


class NoWalletDetectedException(WalletLinkException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.E013, details=details, status_code=400)


class NetworkException(WalletLinkException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.E014, details=details, status_code=503)


class RegistrationClosedException(WalletLinkException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.E015, details=details, status_code=403)


_EXCEPTIONS_BY_CODE: dict[str, type[WalletLinkException]] = {
    ErrorCode.E001.value: NonceInvalidException,
    ErrorCode.E002.value: InvalidSignatureException,
    ErrorCode.E003.value: AddressMismatchException,
    ErrorCode.E004.value: AddressAlreadyBoundException,
    ErrorCode.E005.value: UnauthorizedException,
    ErrorCode.E006.value: ForbiddenException,
    ErrorCode.E007.value: WalletTimeoutException,
    ErrorCode.E008.value: ConflictException,
    ErrorCode.E009.value: BadRequestException,
    ErrorCode.E011.value: UserRejectedException,
    ErrorCode.E012.value: CancelledException,
    ErrorCode.E013.value: NoWalletDetectedException,
    ErrorCode.E014.value: NetworkException,
    ErrorCode.E015.value: RegistrationClosedException,
    ErrorCode.E016.value: TooManyRequestsException,
    ErrorCode.E017.value: NotFoundException,
}


def exception_from_envelope(status_code: int, payload: Any) -> WalletLinkException:
    """Rebuild a typed exception from an `{"error": {...}}` response body."""
    error = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(error, dict):
        return WalletLinkException(
            f"Unexpected response (HTTP {status_code})",
            code=ErrorCode.E010,
            status_code=status_code,
        )

    code = str(error.get("code") or "")
    message = error.get("message") or None
    details = error.get("details") if isinstance(error.get("details"), dict) else None

    cls = _EXCEPTIONS_BY_CODE.get(code)
    if cls is None:
        return WalletLinkException(message, code=code, details=details, status_code=status_code)
    return cls(message, details=details)
