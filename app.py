"""
FastAPI application factory.
create_app() is the single entry point for building the app.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.asynchronous.mongo_client import AsyncMongoClient
from pymongo.errors import PyMongoError

from config import AppSettings
from dependencies import ensure_indexes
from errors import register_error_handlers
from infrastructure.email.renderer import OtpEmailRenderer
from infrastructure.http_client import HttpClient
from routes.health_routes import router as health_router
from routes.otp_routes import router as otp_router
from shared.logging import get_logger, setup_logging

log = get_logger(__name__)


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if settings is None:
        settings = AppSettings()

    setup_logging(settings.logging)

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        app.state.settings = settings
        app.state.email_renderer = OtpEmailRenderer(settings.app_name)
        app.state.email_http = HttpClient(timeout=10.0)
        app.state.sms_http = HttpClient(timeout=10.0)

        # Without a URI the app still boots; OTP endpoints answer 500
        mongo_client: Optional[AsyncMongoClient] = None
        app.state.db = None
        if settings.db.mongodb_uri:
            mongo_client = AsyncMongoClient(settings.db.mongodb_uri, tz_aware=True)
            app.state.db = mongo_client[settings.db.db_name]
            try:
                await ensure_indexes(app.state.db)
            except PyMongoError as exc:
                log.warning("ensure_indexes_failed", error=str(exc), error_type=type(exc).__name__)
        else:
            log.warning("mongodb_not_configured")
        app.state.mongo_client = mongo_client

        log.info("app_started", env=settings.env, app_name=settings.app_name)

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        await app.state.email_http.aclose()
        await app.state.sms_http.aclose()
        if mongo_client is not None:
            await mongo_client.close()

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    # Storefront, seller and admin frontends all call these endpoints cross-origin.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )

    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(otp_router)

    return app
