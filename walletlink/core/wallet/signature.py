"""EIP-191 (`personal_sign`) signature recovery.

The wallet signs ``"\\x19Ethereum Signed Message:\\n" + len(message) + message``
with secp256k1; recovery yields the signer address without any I/O.
"""

from __future__ import annotations

import binascii

from eth_account import Account
from eth_account.messages import encode_defunct

from walletlink.utils.exceptions import InvalidSignatureException


SIGNATURE_LENGTH = 65
_VALID_V = frozenset({0, 1, 27, 28})


def _signature_bytes(signature: str | bytes) -> bytes:
    if isinstance(signature, (bytes, bytearray)):
        raw = bytes(signature)
    elif isinstance(signature, str):
        text = signature.strip()
        if text[:2] in ("0x", "0X"):
            text = text[2:]
        try:
            raw = binascii.unhexlify(text)
        except (binascii.Error, ValueError):
            raise InvalidSignatureException("Signature is not valid hex")
    else:
        raise InvalidSignatureException("Signature must be a hex string or bytes")

    if len(raw) != SIGNATURE_LENGTH:
        raise InvalidSignatureException(
            "Signature has the wrong length",
            details={"expected_bytes": SIGNATURE_LENGTH, "got_bytes": len(raw)},
        )
    if raw[-1] not in _VALID_V:
        raise InvalidSignatureException("Signature recovery id is invalid")

    # Some wallets (hardware, older Ledger firmware) emit v as 0/1.
    if raw[-1] in (0, 1):
        raw = raw[:-1] + bytes([raw[-1] + 27])
    return raw


def recover_address(message: str, signature: str | bytes) -> str:
    """Return the lowercase address that produced `signature` over `message`.

    Raises InvalidSignatureException on malformed input; never returns None.
    """
    if not isinstance(message, str) or not message:
        raise InvalidSignatureException("Message to verify is empty")

    raw = _signature_bytes(signature)
    try:
        recovered = Account.recover_message(encode_defunct(text=message), signature=raw)
    except Exception as exc:
        # eth-keys raises BadSignature/ValidationError for off-curve points and bad s/r.
        raise InvalidSignatureException(
            "Signature could not be verified",
            details={"reason": type(exc).__name__},
        ) from exc
    return recovered.lower()


def sign_message(private_key: str | bytes, message: str) -> str:
    """Produce a `personal_sign` signature (0x-hex). Used by tooling and tests."""
    signed = Account.sign_message(encode_defunct(text=message), private_key=private_key)
    return "0x" + bytes(signed.signature).hex()
