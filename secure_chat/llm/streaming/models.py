"""
Streaming-specific dataclasses and wire models.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, field_validator

DONE_SENTINEL = "[DONE]"


class StreamState(Enum):
    """Decoder lifecycle states."""
    STREAMING = "streaming"
    DONE = "done"


class TerminationReason(Enum):
    """Why a decoder left the STREAMING state."""
    SENTINEL = "sentinel"
    ERROR = "error"
    END_OF_INPUT = "end_of_input"
    CANCELLED = "cancelled"


class DeltaKind(Enum):
    """Variants of a parsed event payload."""
    DONE = "done"
    CONTENT = "content"
    ERROR = "error"
    EMPTY = "empty"


# Wire models. Only a payload that is not a JSON object fails validation;
# fields of an unexpected type are read as absent.

def _text_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _object_or_none(value: Any) -> dict | None:
    return value if isinstance(value, dict) else None


class ContentPart(BaseModel):
    role: Any = None
    content: str | None = None

    content_as_text = field_validator("content", mode="before")(_text_or_none)


class ChunkChoice(BaseModel):
    index: Any = None
    delta: ContentPart | None = None
    message: ContentPart | None = None
    finish_reason: str | None = None

    parts_as_objects = field_validator("delta", "message", mode="before")(_object_or_none)
    finish_reason_as_text = field_validator("finish_reason", mode="before")(_text_or_none)


class UpstreamError(BaseModel):
    message: str | None = None
    type: Any = None
    code: Any = None

    message_as_text = field_validator("message", mode="before")(_text_or_none)


class ChatCompletionChunk(BaseModel):
    """One `data:` payload of an OpenAI-compatible completion stream."""
    id: Any = None
    model: Any = None
    choices: list[ChunkChoice] | None = None
    error: UpstreamError | str | None = None

    @field_validator("choices", mode="before")
    @classmethod
    def choices_as_objects(cls, value: Any) -> list[dict] | None:
        if not isinstance(value, list):
            return None
        return [item if isinstance(item, dict) else {} for item in value]

    @field_validator("error", mode="before")
    @classmethod
    def error_shape(cls, value: Any) -> dict | str | None:
        if isinstance(value, dict | str):
            return value
        return None


@dataclass(frozen=True)
class ChatDelta:
    """Parsed payload of a single SSE event."""
    delta_content: str | None = None
    message_content: str | None = None
    error_message: str | None = None
    finish_reason: str | None = None
    is_done: bool = False

    @classmethod
    def done(cls) -> ChatDelta:
        return cls(is_done=True)

    @classmethod
    def from_chunk(cls, chunk: ChatCompletionChunk) -> ChatDelta:
        """Flatten a validated chunk, looking only at the first choice."""
        delta_content = message_content = finish_reason = None
        if chunk.choices:
            choice = chunk.choices[0]
            finish_reason = choice.finish_reason
            if choice.delta is not None:
                delta_content = choice.delta.content
            if choice.message is not None:
                message_content = choice.message.content

        error = chunk.error
        error_message = error.message if isinstance(error, UpstreamError) else error

        return cls(
            delta_content=delta_content,
            message_content=message_content,
            error_message=error_message,
            finish_reason=finish_reason,
        )

    @property
    def text(self) -> str:
        """Delta content if present, else full message content."""
        if self.delta_content is not None:
            return self.delta_content
        return self.message_content or ""

    @property
    def kind(self) -> DeltaKind:
        if self.is_done:
            return DeltaKind.DONE
        if self.error_message:
            return DeltaKind.ERROR
        if self.text:
            return DeltaKind.CONTENT
        return DeltaKind.EMPTY


@dataclass(frozen=True)
class DecoderStats:
    """Snapshot of a decoder's counters."""
    bytes_received: int
    events: int
    keepalive_events: int
    malformed_events: int
    fragments: int
    state: StreamState
    termination_reason: TerminationReason | None
