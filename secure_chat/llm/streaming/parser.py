"""
Incremental SSE decoder for chat completion streams.

Turns the raw byte chunks of a `text/event-stream` response body into the
ordered text fragments of the assistant's reply:
- UTF-8 decoding that carries split multi-byte characters across chunks
- Event framing on blank lines, with the trailing partial event retained
- `[DONE]` sentinel and upstream error payloads end the stream
- Malformed payloads are logged and skipped
"""

from __future__ import annotations

import codecs
import contextlib
from collections.abc import AsyncGenerator, AsyncIterable, Callable, Iterable

import structlog
from pydantic import ValidationError

from ..exceptions import PayloadParseError
from .models import (
    DONE_SENTINEL,
    ChatCompletionChunk,
    ChatDelta,
    DecoderStats,
    StreamState,
    TerminationReason,
)

# Constants
EVENT_BOUNDARY = "\n\n"
DATA_MARKER = "data:"
ERROR_PREFIX = "\nError: "

FragmentCallback = Callable[[str], None]

logger = structlog.get_logger(__name__)


def parse_payload(payload: str) -> ChatDelta:
    """
    Parse one event payload into a ChatDelta.

    Raises:
        PayloadParseError: If the payload is not a JSON chat completion chunk.
    """
    if payload == DONE_SENTINEL:
        return ChatDelta.done()

    try:
        chunk = ChatCompletionChunk.model_validate_json(payload)
    except ValidationError as e:
        raise PayloadParseError(
            f"Invalid SSE payload: {e.errors()[0]['msg']}", payload
        ) from e

    return ChatDelta.from_chunk(chunk)


def extract_payload(segment: str) -> str | None:
    """Join the `data:` lines of one event, or None if it has none."""
    data_lines = [
        line[len(DATA_MARKER):].strip()
        for line in segment.split("\n")
        if line.startswith(DATA_MARKER)
    ]
    if not data_lines:
        return None
    return "\n".join(data_lines)


class StreamingEventDecoder:
    """
    Decoder for a single chat completion event stream.

    One instance owns one buffer and serves exactly one response body. The
    push API (`feed` / `finish` / `cancel`) has no I/O of its own, so the
    same object works from an event loop, a worker thread, or a test.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._scan_from = 0
        self._pending_cr = False
        self.state = StreamState.STREAMING
        self.termination_reason: TerminationReason | None = None
        self._counters = {
            "bytes_received": 0,
            "events": 0,
            "keepalive_events": 0,
            "malformed_events": 0,
            "fragments": 0,
        }

    @property
    def finished(self) -> bool:
        return self.state is StreamState.DONE

    def feed(self, data: bytes) -> list[str]:
        """Consume one chunk of the body and return the fragments it completes."""
        if self.finished:
            return []

        self._counters["bytes_received"] += len(data)
        self._append(self._decoder.decode(data))
        return self._flush()

    def finish(self) -> list[str]:
        """
        Handle end of input.

        Flushes the UTF-8 decoder and treats whatever is still buffered as a
        complete event before entering DONE.
        """
        if self.finished:
            return []

        self._append(self._decoder.decode(b"", final=True), final=True)
        fragments = self._flush(final=True)
        if not self.finished:
            self._close(TerminationReason.END_OF_INPUT)
        return fragments

    def cancel(self) -> None:
        """Abandon the stream. Later calls to feed/finish yield nothing."""
        if not self.finished:
            self._close(TerminationReason.CANCELLED)

    async def iter_fragments(
        self, chunks: AsyncIterable[bytes]
    ) -> AsyncGenerator[str]:
        """
        Read chunks until the stream is done and yield its fragments.

        Awaiting the next chunk is the only suspension point. No further
        chunk is requested once the decoder is DONE, and the decoder is
        cancelled if the consumer stops early or the read fails.
        """
        try:
            async for chunk in chunks:
                for fragment in self.feed(chunk):
                    yield fragment
                if self.finished:
                    return

            for fragment in self.finish():
                yield fragment
        finally:
            self.cancel()

    async def decode(
        self, chunks: AsyncIterable[bytes], on_fragment: FragmentCallback
    ) -> None:
        """Drive `iter_fragments`, calling `on_fragment` once per fragment."""
        async with contextlib.aclosing(self.iter_fragments(chunks)) as fragments:
            async for fragment in fragments:
                on_fragment(fragment)

    def decode_sync(
        self, chunks: Iterable[bytes], on_fragment: FragmentCallback
    ) -> None:
        """Blocking variant of `decode` for worker threads."""
        try:
            for chunk in chunks:
                for fragment in self.feed(chunk):
                    on_fragment(fragment)
                if self.finished:
                    return

            for fragment in self.finish():
                on_fragment(fragment)
        finally:
            self.cancel()

    def get_stats(self) -> DecoderStats:
        """Get decoder statistics for monitoring."""
        return DecoderStats(
            **self._counters,
            state=self.state,
            termination_reason=self.termination_reason,
        )

    def _append(self, text: str, final: bool = False) -> None:
        # A trailing CR is held back until the next chunk shows whether it
        # starts a CRLF pair, so only new text is normalised.
        if self._pending_cr:
            text = "\r" + text
            self._pending_cr = False
        if text.endswith("\r") and not final:
            text = text[:-1]
            self._pending_cr = True
        self._buffer += text.replace("\r\n", "\n")

    def _flush(self, final: bool = False) -> list[str]:
        if not final and self._buffer.find(EVENT_BOUNDARY, self._scan_from) == -1:
            self._scan_from = max(len(self._buffer) - 1, 0)
            return []

        segments = self._buffer.split(EVENT_BOUNDARY)
        self._buffer = "" if final else segments.pop()
        # The retained tail holds no boundary; only its last character can
        # start one.
        self._scan_from = max(len(self._buffer) - 1, 0)

        fragments: list[str] = []
        for segment in segments:
            payload = extract_payload(segment)
            if payload is None:
                if segment.strip():
                    self._counters["keepalive_events"] += 1
                continue

            self._counters["events"] += 1
            self._handle_payload(payload, fragments)
            if self.finished:
                break

        self._counters["fragments"] += len(fragments)
        return fragments

    def _handle_payload(self, payload: str, fragments: list[str]) -> None:
        try:
            delta = parse_payload(payload)
        except PayloadParseError as e:
            self._counters["malformed_events"] += 1
            logger.warning(
                "Could not parse SSE chunk", payload=payload, error=str(e)
            )
            return

        if delta.is_done:
            self._close(TerminationReason.SENTINEL)
            return

        if text := delta.text:
            fragments.append(text)

        if delta.error_message:
            fragments.append(f"{ERROR_PREFIX}{delta.error_message}")
            self._close(TerminationReason.ERROR)

    def _close(self, reason: TerminationReason) -> None:
        self.state = StreamState.DONE
        self.termination_reason = reason
        self._buffer = ""
        logger.debug(
            "SSE stream finished",
            reason=reason.value,
            events=self._counters["events"],
            malformed_events=self._counters["malformed_events"],
        )
