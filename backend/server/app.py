"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware and logging
- Initialize shared resources (settings store, webhook HTTP client)
- Register routes
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from adapters.transport.webhook import WebhookTransport
from config import AppConfig
from observability.logger import configure_logging, log_event
from session.settings_store import SettingsRepository

from server.routes import register_routes


def create_app(config: AppConfig | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with different configurations
    - Environment-specific setup
    - ASGI server compatibility
    """
    if config is None:
        config = AppConfig.load_from_env()

    configure_logging(enable_json_logs=config.enable_json_logs)

    settings = SettingsRepository(config.settings_path)
    settings.seed(webhook_url=config.webhook_url, auth_token=config.webhook_token)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # One HTTP client per process, shared by every session
        async with httpx.AsyncClient(timeout=config.transport_timeout_s) as client:
            app.state.transport = WebhookTransport(client=client)
            log_event({
                "event_type": "APP_STARTED",
                "env": config.env,
                "settings_path": config.settings_path,
            })
            yield
        log_event({"event_type": "APP_STOPPED", "env": config.env})

    app = FastAPI(title="Voice Session API", lifespan=lifespan)

    app.state.config = config
    app.state.settings = settings

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app
