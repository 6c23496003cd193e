"""
Request and response models for the chat completions endpoint.

This module provides OpenAI-compatible shapes for:
- Chat messages
- Completion requests
- Non-streamed completion responses
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from .streaming.models import ChunkChoice

Role = Literal["system", "user", "assistant"]

NO_CONTENT = "No content"


class ChatMessage(BaseModel):
    """OpenAI-compatible message structure."""
    role: Role
    content: str


class ChatRequest(BaseModel):
    """Body of a POST to the chat completions endpoint."""
    model: str
    messages: list[ChatMessage]
    stream: bool = True
    temperature: float | None = None
    max_tokens: int | None = Field(default=None, gt=0)


class ChatCompletion(BaseModel):
    """Full (non-streamed) completion response."""
    id: str | None = None
    model: str | None = None
    choices: list[ChunkChoice] | None = None

    @property
    def content(self) -> str:
        """First choice's message content, or a placeholder."""
        if self.choices:
            message = self.choices[0].message
            if message is not None and message.content is not None:
                return message.content
        return NO_CONTENT
