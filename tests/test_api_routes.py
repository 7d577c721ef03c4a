"""Tests for the HTTP surface of the two proxy endpoints."""

import base64
import json

import httpx
import pytest

from chat_proxy import WebhookChatProxy
from errors import GENERIC_FALLBACK, TIMEOUT_FALLBACK
from main import app, get_chat_proxy
from settings import Settings, get_settings

DEEPGRAM_OK = {"results": {"channels": [{"alternatives": [{"transcript": "hello there"}]}]}}


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class TestCommonBehaviour:
    def test_healthz(self, client):
        assert client.get("/healthz").json() == {"ok": True}

    @pytest.mark.parametrize("path", ["/api/chat", "/api/transcribe"])
    def test_non_post_is_rejected(self, client, path):
        response = client.get(path)

        assert response.status_code == 405
        assert response.json() == {"error": "Method not allowed"}

    @pytest.mark.parametrize("path", ["/api/chat", "/api/transcribe"])
    def test_bare_options_gets_empty_200(self, client, path):
        response = client.options(path)

        assert response.status_code == 200
        assert response.content == b""

    def test_cors_preflight_allows_any_origin(self, client):
        response = client.options(
            "/api/chat",
            headers={
                "Origin": "https://shop.example.org",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert "POST" in response.headers["access-control-allow-methods"]

    def test_cors_header_on_post(self, client, webhook):
        webhook.queue(httpx.Response(200, json={"response": "hi"}))

        response = client.post("/api/chat", json={"message": "Hi"}, headers={"Origin": "https://a.example"})

        assert response.headers["access-control-allow-origin"] == "*"


class TestChatRoute:
    def test_hi_scenario(self, client, webhook):
        webhook.queue(httpx.Response(200, json=[{"response": "Hello!"}]))

        response = client.post(
            "/api/chat",
            json={"message": "Hi", "timestamp": "2026-10-19T10:00:00.000Z", "sessionId": "session_1_abc"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["response"] == "Hello!"
        assert body["sessionId"] == "session_1_abc"
        assert body["suggestions"] == []
        assert json.loads(webhook.requests[0].content) == {
            "message": "Hi",
            "timestamp": "2026-10-19T10:00:00.000Z",
            "sessionId": "session_1_abc",
        }

    def test_payload_suggestions_pass_through(self, client, webhook):
        webhook.queue(httpx.Response(200, json={"data": {"output": "Sure."}, "suggestions": ["Pricing"]}))

        body = client.post("/api/chat", json={"message": "Hi"}).json()

        assert body["response"] == "Sure."
        assert body["suggestions"] == ["Pricing"]

    def test_non_string_echoed_fields_are_replaced(self, client, webhook):
        webhook.queue(
            httpx.Response(200, json=[{"response": "Hello!", "timestamp": 1729350000000}]),
            httpx.Response(200, json={"output": "Hello!", "sessionId": 42, "timestamp": "  "}),
        )

        first = client.post("/api/chat", json={"message": "Hi", "sessionId": "session_1_abc"})
        second = client.post("/api/chat", json={"message": "Hi", "sessionId": "session_1_abc"})

        for response in (first, second):
            assert response.status_code == 200
            body = response.json()
            assert body["response"] == "Hello!"
            assert body["sessionId"] == "session_1_abc"
            assert isinstance(body["timestamp"], str) and body["timestamp"].endswith("Z")

    def test_missing_message(self, client, webhook):
        response = client.post("/api/chat", json={"sessionId": "s"})

        assert response.status_code == 400
        assert response.json() == {"error": "Message is required"}
        assert webhook.requests == []

    def test_invalid_json_body(self, client):
        response = client.post(
            "/api/chat", content="{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid JSON body"}

    def test_two_503s_exhaust_retries(self, client, webhook):
        webhook.queue(httpx.Response(503), httpx.Response(503))

        response = client.post("/api/chat", json={"message": "Hi"})

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Failed to process message"
        assert body["response"] == GENERIC_FALLBACK
        assert "503" in body["message"]
        assert len(webhook.requests) == 2

    def test_timeout_envelope(self, client, webhook):
        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        webhook.queue(slow)

        response = client.post("/api/chat", json={"message": "Hi"})

        assert response.status_code == 504
        assert response.json()["response"] == TIMEOUT_FALLBACK

    def test_missing_configuration(self, client, webhook):
        unconfigured = Settings(N8N_WEBHOOK_URL="")
        app.dependency_overrides[get_chat_proxy] = lambda: WebhookChatProxy(
            unconfigured, transport=webhook.transport
        )

        response = client.post("/api/chat", json={"message": "Hi"})

        assert response.status_code == 500
        assert response.json()["error"] == "Server configuration error"
        assert response.json()["response"] == GENERIC_FALLBACK
        assert webhook.requests == []

    def test_body_limit(self, client, settings):
        app.dependency_overrides[get_settings] = lambda: settings.model_copy(
            update={"CHAT_BODY_LIMIT_BYTES": 64}
        )

        response = client.post("/api/chat", json={"message": "x" * 200})

        assert response.status_code == 413
        assert response.json()["error"] == "Request body too large"


class TestTranscribeRoute:
    def test_transcribes_base64_audio(self, client, deepgram):
        deepgram.queue(httpx.Response(200, json=DEEPGRAM_OK))

        response = client.post(
            "/api/transcribe", json={"audio": b64(b"\x1aE\xdf\xa3webm"), "mimeType": "audio/webm;codecs=opus"}
        )

        assert response.status_code == 200
        assert response.json() == {"transcript": "hello there", "success": True}
        sent = deepgram.requests[0]
        assert sent.content == b"\x1aE\xdf\xa3webm"
        assert sent.headers["content-type"] == "audio/webm"
        assert sent.headers["authorization"] == "Token dg-test-key"
        assert sent.url.params["model"] == "nova-2"
        assert sent.url.params["smart_format"] == "true"

    def test_data_url_mime_overrides_declared(self, client, deepgram):
        deepgram.queue(httpx.Response(200, json=DEEPGRAM_OK))

        client.post(
            "/api/transcribe",
            json={"audio": f"data:video/webm;base64,{b64(b'abc')}", "mimeType": "audio/ogg"},
        )

        assert deepgram.requests[0].headers["content-type"] == "audio/webm"

    def test_no_speech_is_not_an_error(self, client, deepgram):
        deepgram.queue(httpx.Response(200, json={"results": {"channels": [{"alternatives": [{"transcript": ""}]}]}}))

        response = client.post("/api/transcribe", json={"audio": b64(b"silence")})

        assert response.status_code == 200
        assert response.json() == {"transcript": "", "success": True}

    def test_missing_audio(self, client, deepgram):
        response = client.post("/api/transcribe", json={"mimeType": "audio/webm"})

        assert response.status_code == 400
        assert response.json() == {"error": "Audio data is required"}
        assert deepgram.requests == []

    def test_audio_that_decodes_to_nothing(self, client, deepgram):
        response = client.post("/api/transcribe", json={"audio": "!!!!"})

        assert response.status_code == 400
        assert deepgram.requests == []

    def test_malformed_data_url(self, client, deepgram):
        response = client.post("/api/transcribe", json={"audio": "data:audio/webm,not-base64"})

        assert response.status_code == 400
        assert response.json() == {"error": "Malformed audio data URL"}

    def test_engine_failure(self, client, deepgram):
        deepgram.queue(httpx.Response(401, text='{"err_msg":"Invalid credentials."}'))

        response = client.post("/api/transcribe", json={"audio": b64(b"abc")})

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Transcription failed"
        assert "401" in body["message"]
        assert "response" not in body
