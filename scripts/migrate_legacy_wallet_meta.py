"""Import legacy wallet meta (JSON export) into wallet_bindings.

Input is a JSON list of objects, one per user, identified by `account_id`,
`username` or `email`, carrying `metamask_wallet_address` and/or
`connected_wallet_address`.

    python scripts/migrate_legacy_wallet_meta.py export.json --dry-run
"""

import argparse
import asyncio
import json
import os
import sys
from typing import Any

# Add repo root to import path (so `import walletlink` works when run as a script)
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from walletlink.config import settings  # noqa: E402
from walletlink.core.wallet.legacy import import_legacy_bindings  # noqa: E402
from walletlink.db.session import AsyncSessionLocal, create_tables, engine  # noqa: E402
from walletlink.utils.observability import configure_logging  # noqa: E402


def _load_records(path: str) -> list[dict[str, Any]]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("users") or data.get("items") or []
    if not isinstance(data, list):
        raise SystemExit(f"{path}: expected a JSON list of user records")
    return [r for r in data if isinstance(r, dict)]


async def _run(args: argparse.Namespace) -> int:
    records = _load_records(args.path)

    if args.create_tables:
        await create_tables()

    try:
        async with AsyncSessionLocal() as db:
            report = await import_legacy_bindings(db, records, dry_run=args.dry_run)
    finally:
        await engine.dispose()

    print(f"records:   {len(records)}")
    print(f"imported:  {report.imported}{' (dry run)' if args.dry_run else ''}")
    print(f"unchanged: {report.unchanged}")
    print(f"skipped:   {len(report.skipped)}")
    print(f"conflicts: {len(report.conflicts)}")
    for conflict in report.conflicts:
        print("  conflict:", json.dumps(conflict, ensure_ascii=False))
    return 1 if report.conflicts else 0


def main() -> None:
    p = argparse.ArgumentParser(description="Import legacy wallet meta into wallet_bindings")
    p.add_argument("path", help="JSON export of legacy user meta")
    p.add_argument("--dry-run", action="store_true", help="Report what would change without writing")
    p.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables first (dev SQLite databases without migrations)",
    )
    args = p.parse_args()

    configure_logging(settings.LOG_LEVEL)
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    raise SystemExit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
