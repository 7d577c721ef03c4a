"""Chat proxy: forwards widget messages to the automation webhook.

The webhook is an n8n-style workflow whose reply shape depends on how the
workflow was built. It may answer with a bare object, a one-element list, or
put the text under ``output``/``text``/... , sometimes one level down under a
wrapper key. Everything here reduces those shapes to a ``ChatResponse``.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional

import httpx

from errors import (
    ClientInputError,
    ConfigurationError,
    UpstreamMalformedResponse,
    UpstreamServerError,
    UpstreamTimeout,
)
from logger import logger
from models import ChatRequest, ChatResponse
from settings import Settings

# checked in this order, first non-blank string wins
REPLY_FIELDS = ("response", "output", "text", "message", "answer")
WRAPPER_KEYS = ("data", "json", "body", "result")
SUGGESTION_FIELD = "suggestions"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def unwrap_payload(data: Any) -> Optional[Dict[str, Any]]:
    """Return the object the reply lives in, or None when there is none."""
    if isinstance(data, list):
        # only the first element is read; later elements are left alone
        data = data[0] if data else None
    return data if isinstance(data, dict) else None


def _lookup_scopes(payload: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    yield payload
    for key in WRAPPER_KEYS:
        nested = payload.get(key)
        if isinstance(nested, dict):
            yield nested


def extract_reply_text(payload: Dict[str, Any]) -> Optional[str]:
    for scope in _lookup_scopes(payload):
        for field in REPLY_FIELDS:
            value = scope.get(field)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def _echoed(payload: Dict[str, Any], key: str) -> Optional[str]:
    # workflows may echo numbers (epoch ms, numeric ids); only strings are kept
    value = payload.get(key)
    return value if isinstance(value, str) and value.strip() else None


def extract_suggestions(payload: Dict[str, Any]) -> List[str]:
    for scope in _lookup_scopes(payload):
        value = scope.get(SUGGESTION_FIELD)
        if isinstance(value, list):
            chips = [item.strip() for item in value if isinstance(item, str) and item.strip()]
            if chips:
                return chips
    return []


class WebhookChatProxy:
    """One instance per inbound request; holds no state between calls."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self._transport = transport
        self._sleep = sleep

    async def forward(self, req: ChatRequest) -> ChatResponse:
        if not req.message or not req.message.strip():
            raise ClientInputError("Message is required")

        if not self.settings.N8N_WEBHOOK_URL:
            logger.error("N8N_WEBHOOK_URL not configured")
            raise ConfigurationError("N8N_WEBHOOK_URL not configured")

        outbound = {
            "message": req.message,
            "timestamp": req.timestamp or utc_now_iso(),
            "sessionId": req.sessionId or "unknown",
        }
        data = await self._post_with_retry(outbound)

        payload = unwrap_payload(data)
        if payload is None:
            logger.error("Empty payload from webhook", payload_type=type(data).__name__)
            raise UpstreamMalformedResponse("Empty response from webhook")

        text = extract_reply_text(payload)
        if text is None:
            logger.error("No recognizable text field in webhook payload", keys=sorted(payload))
            raise UpstreamMalformedResponse("No response text in webhook payload")

        return ChatResponse(
            response=text,
            sessionId=_echoed(payload, "sessionId") or req.sessionId,
            timestamp=_echoed(payload, "timestamp") or utc_now_iso(),
            suggestions=extract_suggestions(payload),
        )

    async def _post_with_retry(self, outbound: Dict[str, Any]) -> Any:
        attempts = max(1, self.settings.CHAT_MAX_ATTEMPTS)
        deadline = self.settings.CHAT_ATTEMPT_TIMEOUT_SECONDS

        async with httpx.AsyncClient(timeout=deadline, transport=self._transport) as client:
            for attempt in range(1, attempts + 1):
                try:
                    response = await asyncio.wait_for(
                        client.post(self.settings.N8N_WEBHOOK_URL, json=outbound),
                        timeout=deadline,
                    )
                except (httpx.TimeoutException, asyncio.TimeoutError) as e:
                    # a second attempt would overrun the function ceiling
                    logger.error("Webhook timed out", attempt=attempt, timeout=deadline)
                    raise UpstreamTimeout(f"Webhook did not answer within {deadline:g}s") from e
                except httpx.RequestError as e:
                    logger.error("Webhook request failed", attempt=attempt, error=str(e))
                    raise UpstreamServerError(f"Webhook request failed: {e}") from e

                if response.status_code >= 500 and attempt < attempts:
                    logger.warning(
                        "Webhook returned server error, retrying",
                        attempt=attempt,
                        status_code=response.status_code,
                        backoff=self.settings.CHAT_RETRY_BACKOFF_SECONDS,
                    )
                    await self._sleep(self.settings.CHAT_RETRY_BACKOFF_SECONDS)
                    continue

                if response.is_error:
                    logger.error(
                        "Webhook returned error status",
                        attempt=attempt,
                        status_code=response.status_code,
                        body=response.text[:300],
                    )
                    raise UpstreamServerError(
                        f"n8n webhook error: {response.status_code}",
                        upstream_status=response.status_code,
                    )

                try:
                    return response.json()
                except ValueError as e:
                    logger.error("Failed to parse webhook response as JSON", body=response.text[:300])
                    raise UpstreamMalformedResponse("Invalid JSON response from webhook") from e

        # unreachable: the last attempt either returns or raises
        raise UpstreamServerError("Webhook attempts exhausted")
