"""Proxy error taxonomy.

Every failure the proxies can hit is raised as a ``ProxyError`` subclass and
turned into one JSON envelope by the handler in ``main.py``::

    {"error": <summary>, "message": <machine detail>, "response": <fallback>}

``response`` is a sentence the widget can show as-is, so the browser never
needs to know which upstream failed or how.
"""

from typing import Any, Dict, Optional

GENERIC_FALLBACK = "I ran into a hiccup, please try again in a moment."
TIMEOUT_FALLBACK = "I'm taking longer than usual, please try sending your message again."


class ProxyError(Exception):
    """Base class for errors surfaced by the proxy endpoints."""

    status_code = 500
    error = "Failed to process message"
    fallback: Optional[str] = GENERIC_FALLBACK

    def __init__(
        self,
        detail: str,
        *,
        error: Optional[str] = None,
        fallback: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(detail)
        self.detail = detail
        if error is not None:
            self.error = error
        if fallback is not None:
            self.fallback = fallback
        if status_code is not None:
            self.status_code = status_code

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error, "message": self.detail}
        if self.fallback:
            body["response"] = self.fallback
        return body


class ClientInputError(ProxyError):
    """The caller sent something unusable (missing message, bad audio). Not retried."""

    status_code = 400
    fallback = None

    def __init__(self, error: str, detail: Optional[str] = None) -> None:
        super().__init__(detail or error, error=error)

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        if self.detail != self.error:
            body["message"] = self.detail
        return body


class ConfigurationError(ProxyError):
    """A required environment variable is missing."""

    error = "Server configuration error"


class UpstreamTimeout(ProxyError):
    """The external collaborator did not answer before the attempt deadline."""

    status_code = 504
    fallback = TIMEOUT_FALLBACK


class UpstreamServerError(ProxyError):
    """The external collaborator kept answering with a non-2xx status."""

    def __init__(self, detail: str, upstream_status: Optional[int] = None, **kwargs: Any) -> None:
        super().__init__(detail, **kwargs)
        self.upstream_status = upstream_status


class UpstreamMalformedResponse(ProxyError):
    """The external collaborator answered 2xx but the body was unusable."""


class TranscriptionFailed(ProxyError):
    """The speech-to-text engine call failed; the widget shows its own text."""

    error = "Transcription failed"
    fallback = None
