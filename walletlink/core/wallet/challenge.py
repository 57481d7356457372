from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from walletlink.config import settings
from walletlink.core.wallet.nonce_store import (
    PURPOSE_LINK,
    PURPOSE_LOGIN,
    PURPOSES,
    Challenge,
    NonceStore,
)
from walletlink.utils.exceptions import BadRequestException, UnauthorizedException
from walletlink.utils.metrics import CHALLENGE_EVENTS_TOTAL, emit


logger = logging.getLogger(__name__)


def _format_ts(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_login_message(
    *, site_name: str, domain: str, nonce: str, issued_at: datetime, address: str | None = None
) -> str:
    return (
        f"Sign this message to authenticate with {site_name}.\n\n"
        f"Domain: {domain}\n"
        f"Wallet: {address or '-'}\n"
        f"Nonce: {nonce}\n"
        f"Issued At: {_format_ts(issued_at)}\n\n"
        "This request will not trigger a blockchain transaction or cost any gas fees."
    )


def build_link_message(
    *, site_name: str, domain: str, nonce: str, issued_at: datetime, address: str, account_id: str
) -> str:
    return (
        f"I confirm that I am linking this wallet ({address}) to my {site_name} account ({account_id}).\n\n"
        f"Domain: {domain}\n"
        f"Nonce: {nonce}\n"
        f"Issued At: {_format_ts(issued_at)}"
    )


class ChallengeIssuer:
    """Mints single-use nonces and the text the wallet is asked to sign.

    The challenge is stored before it is returned, so a verification request
    can never race ahead of the nonce it presents.
    """

    def __init__(
        self,
        store: NonceStore,
        *,
        site_name: str | None = None,
        domain: str | None = None,
        ttl_seconds: int | None = None,
        nonce_bytes: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.site_name = site_name or settings.SITE_NAME
        self.domain = domain or settings.SITE_DOMAIN
        self.ttl_seconds = int(ttl_seconds or settings.WALLET_NONCE_TTL_SECONDS)
        self.nonce_bytes = max(16, int(nonce_bytes or settings.WALLET_NONCE_BYTES))
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def new_nonce(self) -> str:
        return secrets.token_hex(self.nonce_bytes)

    async def issue(
        self,
        flow_id: str,
        *,
        purpose: str,
        account_id: Optional[str] = None,
        address: Optional[str] = None,
    ) -> Challenge:
        if purpose not in PURPOSES:
            raise BadRequestException("Unknown challenge purpose", details={"purpose": purpose})
        if not flow_id:
            raise BadRequestException("Missing flow session")

        if purpose == PURPOSE_LINK:
            if not account_id:
                raise UnauthorizedException("You must be logged in to link a wallet")
            if not address:
                raise BadRequestException("Wallet address is required to link a wallet")

        nonce = self.new_nonce()
        issued_at = self._clock()
        if purpose == PURPOSE_LOGIN:
            message = build_login_message(
                site_name=self.site_name,
                domain=self.domain,
                nonce=nonce,
                issued_at=issued_at,
                address=address,
            )
        else:
            message = build_link_message(
                site_name=self.site_name,
                domain=self.domain,
                nonce=nonce,
                issued_at=issued_at,
                address=address,
                account_id=account_id,
            )

        challenge = Challenge(
            nonce=nonce,
            message=message,
            purpose=purpose,
            flow_id=flow_id,
            issued_at=issued_at,
            expires_at=issued_at + timedelta(seconds=self.ttl_seconds),
            account_id=account_id,
            address=address,
        )
        await self.store.put(challenge)
        emit(CHALLENGE_EVENTS_TOTAL, purpose=purpose, result="issued")
        logger.info(
            "wallet.challenge issued purpose=%s flow=%s account=%s address=%s",
            purpose,
            flow_id,
            account_id,
            address,
        )
        return challenge
