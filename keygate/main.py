"""KeyGate FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app()        — testable application factory
  - lifespan            — @asynccontextmanager startup/shutdown sequence
  - attach_components() — builds the shared store, manager, gate and commands
  - request_context     — binds a per-request id into every log entry
  - app = create_app()  — module-level instance for uvicorn

Startup sequence:
  1. load_config()                 → app.state.config (unless preset)
  2. CredentialStore(path).load()  → app.state.store
  3. lifecycle manager, gate and command surface built around that one store
                                   → app.state.manager / .gate / .commands
  4. app.state.ready = True

Shutdown: app.state.ready = False → in-flight notifications drained (bounded)
→ final store save.
"""

from __future__ import annotations

import os
import secrets
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from keygate.admin.commands import CredentialCommands
from keygate.config import Config, load_config
from keygate.constants import REQUEST_ID_HEADER
from keygate.credentials.lifecycle import CredentialLifecycleManager
from keygate.credentials.store import CredentialStore
from keygate.gate.access import AccessGate
from keygate.health import router as health_router
from keygate.images import ImageCache
from keygate.limiter import limiter
from keygate.notify import Notifier, drain_notifications
from keygate.resource import ResourceProducer, router as resource_router
from keygate.utils.logger import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


# ─── Component wiring ─────────────────────────────────────────────────────────


def attach_components(
    app: FastAPI,
    config: Config,
    notifier: Optional[Notifier] = None,
) -> CredentialStore:
    """Build the shared store and everything that uses it, onto app.state.

    Exactly one CredentialStore is created here; the manager, the gate and
    the command surface all receive that instance.
    """
    store = CredentialStore(config.store.path)
    store.load()

    manager = CredentialLifecycleManager(store, notifier=notifier)
    app.state.config = config
    app.state.store = store
    app.state.manager = manager
    app.state.gate = AccessGate(store, master_key=config.gate.master_key)
    app.state.commands = CredentialCommands(manager, config)
    return store


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("KeyGate starting up...")

    # load_config() raises SystemExit on an invalid file, before ready=True.
    config: Config = getattr(app.state, "config", None) or load_config()
    store = attach_components(app, config, notifier=getattr(app.state, "notifier", None))

    app.state.ready = True
    logger.info(
        "KeyGate ready",
        store_path=str(store.path),
        identities=len(store),
        credentials=store.credential_count(),
    )

    yield

    logger.info("KeyGate shutting down...")
    app.state.ready = False
    await drain_notifications()
    store.save()
    logger.info("KeyGate shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app(
    config: Optional[Config] = None,
    producer: Optional[ResourceProducer] = None,
    notifier: Optional[Notifier] = None,
) -> FastAPI:
    """Create and configure the KeyGate FastAPI application.

    Args:
        config:   Preset configuration; loaded from disk at startup when None.
        producer: Gated resource producer; /image answers 503 without one.
        notifier: Credential delivery channel; NullNotifier when None.
    """
    # Docs expose the full API schema; only serve them with DEBUG=true.
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="KeyGate",
        description="Per-identity API credentials gating a resource endpoint",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    application.state.ready = False
    application.state.config = config
    application.state.producer = producer
    application.state.images = ImageCache()
    application.state.notifier = notifier

    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    application.add_middleware(SlowAPIMiddleware)

    application.include_router(health_router)
    application.include_router(resource_router)

    @application.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or secrets.token_hex(8)
        bind_request_context(request_id, path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @application.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.debug(
            "HTTP exception",
            status_code=exc.status_code,
            path=str(request.url.path),
        )
        content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
        return JSONResponse(status_code=exc.status_code, content=content)

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=500, content={"error": "Internal server error"}
        )

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────

app = create_app()
