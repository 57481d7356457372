import pytest

from walletlink.utils.error_codes import ERROR_CATEGORIES, ERROR_MESSAGES, ErrorCategory, ErrorCode
from walletlink.utils.exceptions import (
    AddressAlreadyBoundException,
    AddressMismatchException,
    CancelledException,
    NetworkException,
    NonceInvalidException,
    RegistrationClosedException,
    UserRejectedException,
    WalletLinkException,
    WalletTimeoutException,
    exception_from_envelope,
)


def test_every_code_has_message_and_category() -> None:
    for code in ErrorCode:
        assert ERROR_MESSAGES.get(code)
        assert code in ERROR_CATEGORIES


def test_to_dict_matches_api_envelope() -> None:
    exc = NonceInvalidException(details={"reason": "nonce_mismatch"})
    assert exc.to_dict() == {
        "error": {
            "code": "E001",
            "message": ERROR_MESSAGES[ErrorCode.E001],
            "details": {"reason": "nonce_mismatch"},
        }
    }
    assert exc.status_code == 400


def test_already_bound_message_carries_owner_hint() -> None:
    exc = AddressAlreadyBoundException(owner_hint="alice")
    assert "alice" in exc.message
    assert exc.details["owner_hint"] == "alice"
    assert exc.status_code == 409
    assert exc.category == ErrorCategory.CONFLICT


@pytest.mark.parametrize(
    "exc, retryable",
    [
        (WalletTimeoutException(), True),
        (NetworkException(), True),
        (UserRejectedException(), True),
        (CancelledException(), True),
        (NonceInvalidException(), False),
        (AddressMismatchException(), False),
        (AddressAlreadyBoundException(), False),
        (RegistrationClosedException(), False),
    ],
)
def test_retryable_categories(exc: WalletLinkException, retryable: bool) -> None:
    assert exc.is_retryable is retryable


def test_unknown_code_falls_back_to_internal() -> None:
    exc = WalletLinkException("boom", code="E999")
    assert exc.code == "E010"


def test_envelope_maps_back_to_typed_exception() -> None:
    payload = AddressAlreadyBoundException(owner_hint="bob", details={"address": "0x" + "1" * 40}).to_dict()
    exc = exception_from_envelope(409, payload)

    assert isinstance(exc, AddressAlreadyBoundException)
    assert exc.owner_hint == "bob"
    assert exc.details["address"] == "0x" + "1" * 40


def test_envelope_without_error_object_is_internal() -> None:
    exc = exception_from_envelope(502, "<html>bad gateway</html>")
    assert type(exc) is WalletLinkException
    assert exc.code == "E010"
    assert exc.status_code == 502
