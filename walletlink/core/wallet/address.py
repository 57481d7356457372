import re
from typing import Any

from walletlink.utils.exceptions import InvalidAddressException


_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$", flags=re.ASCII)


def is_valid_address(candidate: Any) -> bool:
    """`0x` followed by exactly 40 hex digits (any case). Never raises."""
    if not isinstance(candidate, str):
        return False
    return _ADDRESS_RE.fullmatch(candidate) is not None


def normalize_address(candidate: Any) -> str:
    """Validate and return the canonical lowercase form.

    Surrounding whitespace is tolerated; anything else that fails
    `is_valid_address` raises InvalidAddressException.
    """
    value = candidate.strip() if isinstance(candidate, str) else candidate
    if not is_valid_address(value):
        raise InvalidAddressException(details={"address": str(candidate)[:64]})
    return value.lower()


def addresses_equal(a: str, b: str) -> bool:
    return is_valid_address(a) and is_valid_address(b) and a.lower() == b.lower()


def short_address(address: str) -> str:
    if not is_valid_address(address):
        return address
    return f"{address[:6]}...{address[-4:]}"
