"""
Chat completion integration over a secure transport.

This package provides:
- Typed request and response models
- An httpx-based transport
- Incremental SSE decoding of streamed replies
- Error types with request context

The client itself lives in `secure_chat.llm.client`.
"""

from __future__ import annotations

from .exceptions import (
    ChatError,
    PayloadParseError,
    ResponseFormatError,
    StreamingError,
    TransportError,
    UpstreamHTTPError,
)
from .models import ChatCompletion, ChatMessage, ChatRequest

__all__ = [
    # Models
    "ChatCompletion",
    # Exceptions
    "ChatError",
    "ChatMessage",
    "ChatRequest",
    "PayloadParseError",
    "ResponseFormatError",
    "StreamingError",
    "TransportError",
    "UpstreamHTTPError",
]
