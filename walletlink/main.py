from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.routing import Match

from walletlink.api.router import api_router
from walletlink.api.v1 import health
from walletlink.config import settings
from walletlink.db.session import engine
from walletlink.utils.error_codes import ERROR_MESSAGES, ErrorCode
from walletlink.utils import security
from walletlink.utils.exceptions import WalletLinkException
from walletlink.utils.metrics import observe_http_request
from walletlink.utils.observability import (
    configure_logging,
    new_request_id,
    request_id_var,
    validate_request_id,
)


logger = logging.getLogger(__name__)


async def open_shared_redis():
    """Connect the Redis that shares nonces, bind locks, rate limits and revoked tokens across hub processes."""
    import redis.asyncio as redis

    client = redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
    try:
        await client.ping()
    except redis.RedisError as exc:
        await client.aclose()
        raise RuntimeError(f"REDIS_ENABLED is set but {settings.REDIS_URL} is unreachable") from exc
    return client


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    app.state.redis = await open_shared_redis() if settings.REDIS_ENABLED else None
    security.set_redis_client(app.state.redis)

    logger.info(
        "lifespan.started env=%s domain=%s nonce_store=%s registration=%s",
        settings.ENV,
        settings.SITE_DOMAIN,
        "redis" if app.state.redis is not None else "memory",
        settings.WALLET_ALLOW_REGISTRATION,
    )

    try:
        yield
    finally:
        security.set_redis_client(None)
        redis_client, app.state.redis = app.state.redis, None
        try:
            if redis_client is not None:
                await redis_client.aclose()
        finally:
            await engine.dispose()


app = FastAPI(title="WalletLink Hub", debug=settings.DEBUG, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=settings.CORS_ALLOW_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Flow-Session"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    incoming_rid = request.headers.get("X-Request-ID")
    rid = validate_request_id(incoming_rid) or new_request_id()
    token = request_id_var.set(rid)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)

    response.headers["X-Request-ID"] = rid
    return response


def route_template(request: Request) -> str | None:
    """Path template of the route serving `request`, e.g. `/api/v1/wallet/accounts/{address}`."""
    route = request.scope.get("route")
    if route is None:
        # Middleware runs outside the router, so the matched route may not be on this scope.
        for candidate in request.app.router.routes:
            match, _ = candidate.matches(request.scope)
            if match == Match.FULL:
                route = candidate
                break
    return getattr(route, "path", None)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    if not settings.METRICS_ENABLED:
        return await call_next(request)

    start = time.perf_counter()
    response = await call_next(request)
    observe_http_request(
        request.method,
        route_template(request),
        getattr(response, "status_code", 0),
        time.perf_counter() - start,
    )
    return response


@app.exception_handler(WalletLinkException)
async def walletlink_exception_handler(request: Request, exc: WalletLinkException):
    if exc.status_code >= 500:
        logger.error("request.failed path=%s code=%s message=%s", request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
):
    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": ErrorCode.E009.value,
                "message": ERROR_MESSAGES[ErrorCode.E009],
                "details": {"errors": jsonable_encoder(exc.errors())},
            }
        },
    )


app.include_router(api_router, prefix="/api/v1")
app.include_router(health.router, tags=["Health"])


if settings.METRICS_ENABLED:

    @app.get("/metrics")
    async def metrics():
        from walletlink.utils.metrics import render_metrics

        payload, content_type = render_metrics()
        return Response(content=payload, media_type=content_type)
