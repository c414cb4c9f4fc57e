"""
Webhook conversation transport.

Role in the system:
- POSTs one user message per call to the configured webhook URL.
- Extracts the assistant text from the response.
- Converts every failure (network, HTTP status, bad URL) into a
  TransportResult.failure.

Wire format (conceptual "submit text, receive text"):
- Request:  {"message": <text>, "session_id": <id>}
            Authorization: Bearer <token> when a token is configured
- Response: JSON with the text under one of spec.RESPONSE_TEXT_KEYS
            (top level, then under "data"), or a plain-text body
"""

from __future__ import annotations

from typing import Any

import httpx

from adapters.transport.base import ConversationTransport, TransportResult
from observability.logger import log_event
from spec import (
    CONNECTION_TEST_MESSAGE,
    CONNECTION_TEST_SESSION_ID,
    RESPONSE_TEXT_KEYS,
)


def _auth_headers(token: str | None) -> dict[str, str]:
    if token and token.strip():
        return {"Authorization": f"Bearer {token.strip()}"}
    return {}


def _find_text(payload: Any) -> str | None:
    if isinstance(payload, str):
        return payload if payload.strip() else None

    if isinstance(payload, list):
        for item in payload:
            text = _find_text(item)
            if text is not None:
                return text
        return None

    if isinstance(payload, dict):
        for key in RESPONSE_TEXT_KEYS:
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value
        nested = payload.get("data")
        if isinstance(nested, (dict, list)):
            return _find_text(nested)

    return None


def extract_response_text(response: httpx.Response) -> str | None:
    """
    Extract the assistant text from a webhook response.

    Returns None if the response carries no usable text.
    """
    try:
        payload = response.json()
    except ValueError:
        text = response.text.strip()
        return text or None
    return _find_text(payload)


class WebhookTransport(ConversationTransport):
    """
    httpx-based webhook client.

    The AsyncClient is injected; the app owns it (one per process) and
    closes it on shutdown.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
    ) -> None:
        self._client = client

    async def test_connection(self, url: str, token: str | None) -> TransportResult:
        return await self._post(
            url,
            token,
            {
                "message": CONNECTION_TEST_MESSAGE,
                "session_id": CONNECTION_TEST_SESSION_ID,
            },
            session_id=CONNECTION_TEST_SESSION_ID,
        )

    async def send_message(
        self,
        url: str,
        message: str,
        session_id: str,
        token: str | None,
    ) -> TransportResult:
        return await self._post(
            url,
            token,
            {"message": message, "session_id": session_id},
            session_id=session_id,
        )

    async def _post(
        self,
        url: str,
        token: str | None,
        body: dict[str, str],
        *,
        session_id: str,
    ) -> TransportResult:
        if not url.strip():
            return TransportResult.failure("Webhook URL is not configured")

        try:
            response = await self._client.post(
                url.strip(),
                json=body,
                headers=_auth_headers(token),
            )
        except httpx.HTTPError as exc:
            reason = str(exc) or type(exc).__name__
            log_event({
                "event_type": "transport_request_failed",
                "session_id": session_id,
                "exception": type(exc).__name__,
                "reason": reason,
            })
            return TransportResult.failure(reason)

        if not response.is_success:
            log_event({
                "event_type": "transport_http_error",
                "session_id": session_id,
                "status_code": response.status_code,
            })
            return TransportResult.failure(f"HTTP {response.status_code}")

        return TransportResult.success(extract_response_text(response))
