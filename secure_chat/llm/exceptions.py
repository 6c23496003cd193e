"""
Error types for chat completion requests.

This module provides error handling with enough context to render a
user-facing message:
- Upstream HTTP status and body
- Transport failures (connection drops, read errors)
- Stream payloads that could not be parsed
"""

from __future__ import annotations


class ChatError(Exception):
    """Base chat error with request context."""

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        model: str = "unknown",
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.status_code = status_code
        self.response_data = response_data or {}


class StreamingError(ChatError):
    """Streaming-specific errors."""


class PayloadParseError(StreamingError):
    """An SSE event payload is not a valid chat completion chunk."""

    def __init__(self, message: str, payload: str, **kwargs):
        super().__init__(message, **kwargs)
        self.payload = payload


class UpstreamHTTPError(ChatError):
    """The upstream answered with a non-success status."""


class TransportError(ChatError):
    """The secure transport failed before or while reading the response."""


class ResponseFormatError(ChatError):
    """A non-streamed response body is not the expected JSON."""
