import pytest

from walletlink.core.wallet.address import (
    addresses_equal,
    is_valid_address,
    normalize_address,
    short_address,
)
from walletlink.utils.exceptions import InvalidAddressException

CHECKSUMMED = "0x52908400098527886E0F7030069857D2E4169EE7"


@pytest.mark.parametrize(
    "candidate",
    [
        "0x" + "0" * 40,
        "0x" + "a" * 40,
        "0x" + "F" * 40,
        CHECKSUMMED,
    ],
)
def test_is_valid_address_accepts_40_hex_digits(candidate: str) -> None:
    assert is_valid_address(candidate)


@pytest.mark.parametrize(
    "candidate",
    [
        "",
        "0x",
        "0x" + "a" * 39,
        "0x" + "a" * 41,
        "a" * 42,
        "0X" + "a" * 40,
        "0x" + "g" * 40,
        " 0x" + "a" * 40,
        None,
        123,
    ],
)
def test_is_valid_address_rejects_everything_else(candidate) -> None:
    assert is_valid_address(candidate) is False


def test_normalize_lowercases_and_is_idempotent() -> None:
    once = normalize_address(CHECKSUMMED)
    assert once == CHECKSUMMED.lower()
    assert normalize_address(once) == once


def test_normalize_tolerates_surrounding_whitespace() -> None:
    assert normalize_address(f"  {CHECKSUMMED}\n") == CHECKSUMMED.lower()


def test_normalize_rejects_invalid_input_with_e009() -> None:
    with pytest.raises(InvalidAddressException) as exc_info:
        normalize_address("0x1234")
    assert exc_info.value.code == "E009"
    assert exc_info.value.status_code == 400


def test_addresses_equal_ignores_case_only() -> None:
    assert addresses_equal(CHECKSUMMED, CHECKSUMMED.lower())
    assert not addresses_equal(CHECKSUMMED, "0x" + "0" * 40)
    assert not addresses_equal("nope", "nope")


def test_short_address() -> None:
    assert short_address(CHECKSUMMED) == "0x5290...9EE7"
    assert short_address("not-an-address") == "not-an-address"
