"""
Streaming support for chat completion responses.

This package contains:
- Incremental SSE decoding
- Chat delta parsing
- Stream termination handling
"""

from __future__ import annotations

from .models import ChatDelta, DecoderStats, DeltaKind, StreamState, TerminationReason
from .parser import StreamingEventDecoder, extract_payload, parse_payload

__all__ = [
    "ChatDelta",
    "DecoderStats",
    "DeltaKind",
    "StreamState",
    "StreamingEventDecoder",
    "TerminationReason",
    "extract_payload",
    "parse_payload",
]
