"""
Chat completion client on top of a secure transport.

Sends a single user message, then renders the answer either from an SSE
stream (fragment by fragment) or from a full JSON body, depending on the
content type the upstream chose.
"""

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
from pydantic import ValidationError

from secure_chat.logging_utils import operation_context

from .exceptions import (
    ChatError,
    ResponseFormatError,
    TransportError,
    UpstreamHTTPError,
)
from .models import ChatCompletion, ChatMessage, ChatRequest
from .streaming.parser import StreamingEventDecoder
from .transport import SecureTransport

DEFAULT_COMPLETIONS_PATH = "/v1/chat/completions"
EVENT_STREAM_CONTENT_TYPE = "text/event-stream"


class ChatClient:
    """Client for one chat completions endpoint behind a secure transport."""

    def __init__(
        self,
        transport: SecureTransport,
        *,
        model: str,
        completions_path: str = DEFAULT_COMPLETIONS_PATH,
        extra_headers: dict[str, str] | None = None,
        provider: str = "secure-transport",
    ) -> None:
        self.transport = transport
        self.model = model
        self.completions_path = completions_path
        self.extra_headers = dict(extra_headers or {})
        self.provider = provider
        self.last_response_headers: httpx.Headers | None = None

    def _request_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": EVENT_STREAM_CONTENT_TYPE,
            **self.extra_headers,
        }

    async def send_message(
        self, text: str, on_fragment: Callable[[str], None]
    ) -> str | None:
        """
        Send one user message and deliver the reply to `on_fragment`.

        Args:
            text: The user's message. Blank input is ignored.
            on_fragment: Called once per reply fragment, in arrival order.

        Returns:
            The full reply text, or None if the input was blank.

        Raises:
            UpstreamHTTPError: The endpoint answered with a non-2xx status.
            TransportError: Channel setup, the request or the body read failed.
            ResponseFormatError: A non-streamed body was not valid JSON.
        """
        text = text.strip()
        if not text:
            return None

        request = ChatRequest(
            model=self.model,
            messages=[ChatMessage(role="user", content=text)],
            stream=True,
        )
        context = {"model": self.model, "path": self.completions_path}

        async with operation_context("chat_completion", context=context) as log:
            try:
                await self.transport.ready()
            except ChatError:
                raise
            except Exception as e:
                raise self._transport_error(e) from e

            try:
                response = await self.transport.fetch(
                    self.completions_path,
                    method="POST",
                    headers=self._request_headers(),
                    content=request.model_dump_json(exclude_none=True).encode(),
                )
            except httpx.HTTPError as e:
                raise self._transport_error(e) from e

            try:
                self.last_response_headers = response.headers
                await self._raise_for_status(response)

                content_type = response.headers.get("content-type", "")
                if EVENT_STREAM_CONTENT_TYPE in content_type:
                    reply = await self._read_stream(response, on_fragment)
                else:
                    reply = await self._read_json(response)
                    on_fragment(reply)

                log.debug("Reply received", characters=len(reply))
                return reply

            except httpx.HTTPError as e:
                raise self._transport_error(e) from e
            finally:
                await response.aclose()

    async def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return

        body = (await response.aread()).decode("utf-8", errors="replace")
        raise UpstreamHTTPError(
            body or f"HTTP {response.status_code}",
            provider=self.provider,
            model=self.model,
            status_code=response.status_code,
        )

    async def _read_stream(
        self, response: httpx.Response, on_fragment: Callable[[str], None]
    ) -> str:
        parts: list[str] = []

        def emit(fragment: str) -> None:
            parts.append(fragment)
            on_fragment(fragment)

        decoder = StreamingEventDecoder()
        await decoder.decode(response.aiter_bytes(), emit)
        return "".join(parts)

    async def _read_json(self, response: httpx.Response) -> str:
        await response.aread()
        try:
            completion = ChatCompletion.model_validate(response.json())
        except (json.JSONDecodeError, ValidationError) as e:
            raise ResponseFormatError(
                f"Unexpected response format: {e}",
                provider=self.provider,
                model=self.model,
                status_code=response.status_code,
            ) from e
        return completion.content

    def _transport_error(self, error: Exception) -> TransportError:
        return TransportError(
            str(error) or type(error).__name__,
            provider=self.provider,
            model=self.model,
        )
