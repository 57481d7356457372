"""Liveness and readiness probes.

`/health/db` goes through the request's DB session, so it checks the same
database the wallet endpoints write to, including that the binding table is
migrated. `/health/redis` reports whether the shared nonce store is usable.
"""

from __future__ import annotations

import logging
import os
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from walletlink.api import deps
from walletlink.config import settings
from walletlink.db.models.wallet_binding import WalletBinding


router = APIRouter()

logger = logging.getLogger(__name__)

_START_TIME = time.time()


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _version() -> str:
    return (os.getenv("WALLETLINK_VERSION") or os.getenv("APP_VERSION") or "").strip() or "dev"


def _nonce_backend(request: Request) -> str:
    if settings.REDIS_ENABLED and getattr(request.app.state, "redis", None) is not None:
        return "redis"
    return "memory"


@router.get("/health")
async def health_check(request: Request):
    return {
        "status": "ok",
        "version": _version(),
        "environment": (settings.ENV or "dev").strip() or "dev",
        "site_domain": settings.SITE_DOMAIN,
        "nonce_store": _nonce_backend(request),
        "registration_open": bool(settings.WALLET_ALLOW_REGISTRATION),
        "uptime_seconds": int(max(0.0, time.time() - _START_TIME)),
        "timestamp": _utc_now_iso(),
    }


@router.get("/healthz")
async def healthz_check():
    return {"status": "ok"}


@router.get("/health/db")
async def health_db_check(db: AsyncSession = Depends(deps.get_db)):
    dialect = db.get_bind().dialect.name
    t0 = time.perf_counter()
    try:
        bindings = (await db.execute(select(func.count()).select_from(WalletBinding))).scalar_one()
    except SQLAlchemyError as exc:
        logger.warning("health.db_unreachable dialect=%s error=%s", dialect, type(exc).__name__)
        return JSONResponse(
            status_code=503,
            content={
                "status": "error",
                "db": {"dialect": dialect, "reachable": False, "latency_ms": None},
                "details": str(exc),
                "timestamp": _utc_now_iso(),
            },
        )

    latency_ms = int(round((time.perf_counter() - t0) * 1000.0))
    return {
        "status": "ok",
        "db": {"dialect": dialect, "reachable": True, "latency_ms": latency_ms},
        "wallet_bindings": int(bindings),
        "timestamp": _utc_now_iso(),
    }


@router.get("/health/redis")
async def health_redis_check(request: Request):
    client = getattr(request.app.state, "redis", None)
    if not settings.REDIS_ENABLED or client is None:
        return {"status": "ok", "redis": {"enabled": False}, "nonce_store": "memory"}

    try:
        await client.ping()
    except Exception as exc:
        logger.warning("health.redis_unreachable error=%s", type(exc).__name__)
        return JSONResponse(
            status_code=503,
            content={"status": "error", "redis": {"enabled": True, "reachable": False}, "details": str(exc)},
        )
    return {"status": "ok", "redis": {"enabled": True, "reachable": True}, "nonce_store": "redis"}
