"""
Route registration for the voice session API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire gateway to WebSocket lifecycle
- Pull dependencies from app.state
"""

from __future__ import annotations

import asyncio
import json

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from adapters.transport.base import ConversationTransport
from observability.logger import log_event
from session.controller import verify_connection
from session.gateway import GatewayResult, SessionGateway
from session.settings_store import SettingsRepository


class SettingsUpdate(BaseModel):
    """Partial settings update; omitted fields are left unchanged."""
    webhook_url: str | None = None
    auth_token: str | None = None
    hotword_enabled: bool | None = None
    tts_enabled: bool | None = None
    continuous_mode: bool | None = None


class ConnectionTestRequest(BaseModel):
    """Values to probe; omitted fields fall back to the stored settings."""
    webhook_url: str | None = None
    auth_token: str | None = None


def _apply_update(settings: SettingsRepository, update: SettingsUpdate) -> None:
    if update.webhook_url is not None:
        settings.webhook_url = update.webhook_url.strip()
    if update.auth_token is not None:
        settings.auth_token = update.auth_token.strip()
    if update.hotword_enabled is not None:
        settings.hotword_enabled = update.hotword_enabled
    if update.tts_enabled is not None:
        settings.tts_enabled = update.tts_enabled
    if update.continuous_mode is not None:
        settings.continuous_mode = update.continuous_mode


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @app.get("/settings")
    async def get_settings() -> dict[str, object]: # pyright: ignore[reportUnusedFunction]
        settings: SettingsRepository = app.state.settings
        return settings.as_dict()

    @app.put("/settings")
    async def put_settings(update: SettingsUpdate) -> dict[str, object]: # pyright: ignore[reportUnusedFunction]
        settings: SettingsRepository = app.state.settings
        _apply_update(settings, update)
        log_event({
            "event_type": "SETTINGS_UPDATED",
            "fields": sorted(update.model_dump(exclude_none=True)),
        })
        return settings.as_dict()

    @app.post("/settings/reset-session")
    async def reset_session() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        settings: SettingsRepository = app.state.settings
        return {"session_id": settings.reset_session()}

    @app.post("/settings/test-connection")
    async def test_connection( # pyright: ignore[reportUnusedFunction]
        request: ConnectionTestRequest,
    ) -> dict[str, object]:
        settings: SettingsRepository = app.state.settings
        transport: ConversationTransport = app.state.transport

        result = await verify_connection(
            transport,
            settings,
            url=request.webhook_url,
            token=request.auth_token,
        )

        return {
            "success": result.ok,
            "error": result.error,
            "settings": settings.as_dict(),
        }

    # ------------------------------------------------------------------
    # Conversation session
    # ------------------------------------------------------------------

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        gateway = SessionGateway(
            config=app.state.config,
            settings=app.state.settings,
            transport=app.state.transport,
        )
        send_lock = asyncio.Lock()
        pump: asyncio.Task[None] | None = None

        try:
            result = await gateway.on_ws_connect()
            await _flush_gateway_result(ws, result)

            pump = asyncio.create_task(_pump_outbound(ws, gateway, send_lock))

            while True:
                text = await ws.receive_text()
                # Held across the call so replies keep their order
                async with send_lock:
                    result = await gateway.on_json_message(text)
                    await _flush_gateway_result(ws, result)

        except WebSocketDisconnect:
            await _stop_pump(pump)
            await gateway.on_ws_disconnect(reason="client_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "session_id": gateway.session.session_id if gateway.session else None,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            await _stop_pump(pump)
            await gateway.on_ws_disconnect(reason="server_error")


async def _pump_outbound(
    ws: WebSocket,
    gateway: SessionGateway,
    send_lock: asyncio.Lock,
) -> None:
    """Push control messages produced by service tasks and timers."""
    while True:
        await gateway.wait_outbound_ready()
        async with send_lock:
            await _flush_gateway_result(ws, gateway.drain_outbound())


async def _stop_pump(pump: asyncio.Task[None] | None) -> None:
    if pump is None:
        return
    pump.cancel()
    await asyncio.gather(pump, return_exceptions=True)


async def _flush_gateway_result(
    ws: WebSocket,
    result: GatewayResult,
) -> None:
    """Send all outbound messages produced by gateway, in order."""
    for msg in result.outbound_json:
        await ws.send_text(json.dumps(msg, ensure_ascii=False))
