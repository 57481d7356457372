"""One-shot import of wallet addresses stored under the legacy meta keys.

Older deployments kept the address twice per user, under
`metamask_wallet_address` (written by wallet login) and
`connected_wallet_address` (written by the link form). Both collapse into one
`wallet_bindings` row; the login key wins when the two disagree.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from walletlink.core.wallet.address import is_valid_address, normalize_address
from walletlink.core.wallet.bindings import SOURCE_LEGACY, BindingStore
from walletlink.db.models.account import Account
from walletlink.utils.exceptions import AddressAlreadyBoundException, ConflictException


logger = logging.getLogger(__name__)

LEGACY_LOGIN_KEY = "metamask_wallet_address"
LEGACY_LINK_KEY = "connected_wallet_address"
LEGACY_PROOF = "legacy-import"


@dataclass
class LegacyImportReport:
    imported: int = 0
    unchanged: int = 0
    skipped: list[dict[str, Any]] = field(default_factory=list)
    conflicts: list[dict[str, Any]] = field(default_factory=list)

    def skip(self, record: dict[str, Any], reason: str) -> None:
        self.skipped.append({"record": record, "reason": reason})


def pick_legacy_address(record: dict[str, Any]) -> str | None:
    """Return the address a legacy record resolves to, or None."""
    for key in (LEGACY_LOGIN_KEY, LEGACY_LINK_KEY):
        value = str(record.get(key) or "").strip()
        if value and is_valid_address(value):
            return normalize_address(value)
    return None


async def _resolve_account(db: AsyncSession, record: dict[str, Any]) -> Account | None:
    raw_id = record.get("account_id")
    if raw_id:
        try:
            return await db.get(Account, uuid.UUID(str(raw_id)))
        except ValueError:
            return None

    for column, key in ((Account.username, "username"), (Account.email, "email")):
        value = record.get(key)
        if value:
            result = await db.execute(select(Account).where(column == str(value)))
            found = result.scalar_one_or_none()
            if found is not None:
                return found
    return None


async def import_legacy_bindings(
    db: AsyncSession,
    records: Iterable[dict[str, Any]],
    *,
    dry_run: bool = False,
) -> LegacyImportReport:
    report = LegacyImportReport()
    bindings = BindingStore(db)

    for record in records:
        address = pick_legacy_address(record)
        if address is None:
            report.skip(record, "no_valid_address")
            continue

        login_value = str(record.get(LEGACY_LOGIN_KEY) or "").strip().lower()
        link_value = str(record.get(LEGACY_LINK_KEY) or "").strip().lower()
        if login_value and link_value and login_value != link_value:
            logger.warning(
                "legacy.keys_disagree login=%s link=%s chosen=%s", login_value, link_value, address
            )

        account = await _resolve_account(db, record)
        if account is None:
            report.skip(record, "account_not_found")
            continue

        current = await bindings.find_by_account(account.id)
        if current == address:
            report.unchanged += 1
            continue

        owner = await bindings.find_by_address(address)
        if owner is not None and owner != account.id:
            report.conflicts.append(
                {"account_id": str(account.id), "address": address, "owner_id": str(owner)}
            )
            continue

        if dry_run:
            report.imported += 1
            continue

        try:
            await bindings.bind(account.id, address, LEGACY_PROOF, source=SOURCE_LEGACY)
        except (AddressAlreadyBoundException, ConflictException) as exc:
            report.conflicts.append(
                {"account_id": str(account.id), "address": address, "code": exc.code}
            )
            continue
        report.imported += 1

    logger.info(
        "legacy.import done imported=%s unchanged=%s skipped=%s conflicts=%s dry_run=%s",
        report.imported,
        report.unchanged,
        len(report.skipped),
        len(report.conflicts),
        dry_run,
    )
    return report
