"""Shared fixtures: scripted upstreams and an app wired to them."""

from typing import Any, Callable, List, Union

import httpx
import pytest
from fastapi.testclient import TestClient

from chat_proxy import WebhookChatProxy
from main import app, get_chat_proxy, get_transcriber
from settings import Settings, get_settings
from transcription_proxy import DeepgramTranscriber

WEBHOOK_URL = "https://hooks.example.com/webhook/chat"

Reply = Union[httpx.Response, Callable[[httpx.Request], Any]]


class Upstream:
    """Scripted stand-in for an external HTTP collaborator.

    Queued items are either responses or callables taking the request, which
    may raise (to simulate timeouts and connection errors) or be async.
    """

    def __init__(self) -> None:
        self.replies: List[Reply] = []
        self.requests: List[httpx.Request] = []

    def queue(self, *replies: Reply) -> None:
        self.replies.extend(replies)

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.replies:
            return httpx.Response(500)
        reply = self.replies.pop(0)
        if callable(reply):
            result = reply(request)
            if hasattr(result, "__await__"):
                result = await result
            return result
        return reply

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)


async def no_sleep(_: float) -> None:
    return None


@pytest.fixture
def settings():
    return Settings(
        N8N_WEBHOOK_URL=WEBHOOK_URL,
        DEEPGRAM_API_KEY="dg-test-key",
        CHAT_RETRY_BACKOFF_SECONDS=0,
    )


@pytest.fixture
def webhook():
    return Upstream()


@pytest.fixture
def deepgram():
    return Upstream()


@pytest.fixture
def proxy_app(settings, webhook, deepgram):
    """The FastAPI app with collaborators pointed at the scripted upstreams."""
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_chat_proxy] = lambda: WebhookChatProxy(
        settings, transport=webhook.transport, sleep=no_sleep
    )
    app.dependency_overrides[get_transcriber] = lambda: DeepgramTranscriber(
        settings, transport=deepgram.transport
    )
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(proxy_app):
    with TestClient(proxy_app) as test_client:
        yield test_client
