"""FastAPI application exposing batch ingestion and per-action replay."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from core.errors import AuthenticationError, RateLimitError, SyncError, ValidationError
from core.logs import ensure_logger
from core.settings import SERVER, SERVER_LOG_PATH, ServerSettings
from server.auth import Authenticator, BearerTokenAuthenticator, client_identity
from server.dispatcher import OperationDispatcher
from server.ingest import parse_batch, process_batch
from server.rate_limit import RateLimitResult, SlidingWindowRateLimiter


def _ensure_logger() -> logging.Logger:
    return ensure_logger("fieldsync.server", SERVER_LOG_PATH)


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as exc:
        raise ValidationError("Invalid JSON body") from exc


def create_app(
    dispatcher: Optional[OperationDispatcher] = None,
    *,
    authenticator: Optional[Authenticator] = None,
    rate_limiter: Optional[SlidingWindowRateLimiter] = None,
    settings: ServerSettings = SERVER,
) -> FastAPI:
    logger = _ensure_logger()
    dispatcher = dispatcher or OperationDispatcher()
    authenticator = authenticator or BearerTokenAuthenticator(settings.api_tokens)
    rate_limiter = rate_limiter or SlidingWindowRateLimiter(settings.rate_limit, settings.rate_window_sec)

    app = FastAPI(title="Fieldsync sync server")
    app.state.dispatcher = dispatcher
    app.state.rate_limiter = rate_limiter

    @app.exception_handler(SyncError)
    async def _sync_error(request: Request, exc: SyncError) -> JSONResponse:
        headers = exc.headers if isinstance(exc, RateLimitError) else None
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse({"error": exc.message}, status_code=exc.status_code, headers=headers)

    def _authenticate(request: Request) -> str:
        principal = authenticator(request)
        if not principal:
            raise AuthenticationError()
        return principal

    def _throttle(request: Request) -> RateLimitResult:
        identity = client_identity(request)
        result = rate_limiter.hit(f"sync:{identity}")
        if not result.allowed:
            logger.warning("Rate limit hit for %s", identity)
            raise RateLimitError(headers=result.headers(), retry_after=result.retry_after)
        return result

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.post("/sync")
    async def sync(request: Request) -> JSONResponse:
        principal = _authenticate(request)
        limit = _throttle(request)
        mutations = parse_batch(await _read_json(request), settings.max_batch_size)
        outcome = await process_batch(dispatcher, mutations)
        logger.info(
            "Batch from %s: %d synced, %d failed",
            principal,
            outcome.synced,
            outcome.failed,
        )
        return JSONResponse(outcome.model_dump(exclude_none=True), headers=limit.headers())

    @app.post("/actions/{action}")
    async def run_action(action: str, request: Request) -> dict:
        _authenticate(request)
        payload = await _read_json(request)
        if not isinstance(payload, dict):
            raise ValidationError("payload must be a JSON object")
        await dispatcher.dispatch(action, payload)
        return {"action": action, "status": "ok"}

    return app


__all__ = ["create_app"]
