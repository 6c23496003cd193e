#!/usr/bin/env python3
"""
Tests for ChatClient against an in-process httpx mock transport.
"""

import asyncio
import json

import httpx
import pytest

from secure_chat.llm.client import ChatClient
from secure_chat.llm.exceptions import (
    ResponseFormatError,
    TransportError,
    UpstreamHTTPError,
)
from secure_chat.llm.models import NO_CONTENT
from secure_chat.llm.transport import HttpTransport, SecureTransport

BASE_URL = "http://proxy.test"
SSE_HEADERS = {"content-type": "text/event-stream; charset=utf-8"}


def sse_body(*contents: str, done: bool = True) -> bytes:
    events = [
        "data: " + json.dumps({"choices": [{"delta": {"content": c}}]}) + "\n\n"
        for c in contents
    ]
    if done:
        events.append("data: [DONE]\n\n")
    return "".join(events).encode()


def make_client(handler, **kwargs) -> tuple[ChatClient, HttpTransport]:
    http_client = httpx.AsyncClient(
        base_url=BASE_URL, transport=httpx.MockTransport(handler)
    )
    transport = HttpTransport(BASE_URL, client=http_client)
    return ChatClient(transport, model="test-model", **kwargs), transport


class RecordingTransport:
    """Transport double that records the order of calls."""

    def __init__(self, inner: HttpTransport):
        self.inner = inner
        self.calls: list[str] = []

    async def ready(self) -> None:
        self.calls.append("ready")
        await self.inner.ready()

    async def fetch(self, path, **kwargs) -> httpx.Response:
        self.calls.append("fetch")
        return await self.inner.fetch(path, **kwargs)


class ScriptedStream(httpx.AsyncByteStream):
    """Response body that yields its chunks, then optionally stalls or fails."""

    def __init__(self, *chunks: bytes, error: Exception | None = None, stall=None):
        self.chunks = chunks
        self.error = error
        self.stall = stall
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        if self.stall is not None:
            await self.stall.wait()
        if self.error is not None:
            raise self.error

    async def aclose(self) -> None:
        self.closed = True


class UnreadyTransport:
    """Transport whose channel setup fails."""

    def __init__(self, error: Exception):
        self.error = error
        self.fetched = False

    async def ready(self) -> None:
        raise self.error

    async def fetch(self, path, **kwargs) -> httpx.Response:
        self.fetched = True
        raise AssertionError("fetch must not run after a failed ready()")


class TestStreaming:
    """Test streamed replies."""

    @pytest.mark.asyncio
    async def test_streamed_reply(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, headers=SSE_HEADERS, content=sse_body("Hel", "lo"))

        client, transport = make_client(
            handler, extra_headers={"Your-Custom-Request-Header": "custom-value"}
        )
        fragments = []
        async with transport:
            reply = await client.send_message("  Say hello  ", fragments.append)

        assert reply == "Hello"
        assert fragments == ["Hel", "lo"]

        request = requests[0]
        assert request.method == "POST"
        assert request.url.path == "/v1/chat/completions"
        assert request.headers["accept"] == "text/event-stream"
        assert request.headers["content-type"] == "application/json"
        assert request.headers["your-custom-request-header"] == "custom-value"

        body = json.loads(request.content)
        assert body == {
            "model": "test-model",
            "messages": [{"role": "user", "content": "Say hello"}],
            "stream": True,
        }

    @pytest.mark.asyncio
    async def test_stream_error_event_becomes_fragment(self):
        def handler(request: httpx.Request) -> httpx.Response:
            content = (
                sse_body("partial", done=False)
                + b'data: {"error":{"message":"model overloaded"}}\n\n'
            )
            return httpx.Response(200, headers=SSE_HEADERS, content=content)

        client, transport = make_client(handler)
        fragments = []
        async with transport:
            reply = await client.send_message("hi", fragments.append)

        assert fragments == ["partial", "\nError: model overloaded"]
        assert reply == "partial\nError: model overloaded"

    @pytest.mark.asyncio
    async def test_response_headers_are_kept(self):
        def handler(request: httpx.Request) -> httpx.Response:
            headers = {**SSE_HEADERS, "Your-Custom-Response-Header": "seen"}
            return httpx.Response(200, headers=headers, content=sse_body("ok"))

        client, transport = make_client(handler)
        async with transport:
            await client.send_message("hi", lambda fragment: None)

        assert client.last_response_headers["your-custom-response-header"] == "seen"

    @pytest.mark.asyncio
    async def test_ready_is_awaited_before_fetch(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers=SSE_HEADERS, content=sse_body("ok"))

        _, inner = make_client(handler)
        recording = RecordingTransport(inner)
        assert isinstance(recording, SecureTransport)

        client = ChatClient(recording, model="test-model")
        async with inner:
            await client.send_message("hi", lambda fragment: None)

        assert recording.calls == ["ready", "fetch"]


class TestNonStreaming:
    """Test full JSON replies."""

    @pytest.mark.asyncio
    async def test_json_reply(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"choices": [{"message": {"role": "assistant", "content": "Hi"}}]}
            )

        client, transport = make_client(handler)
        fragments = []
        async with transport:
            reply = await client.send_message("hello", fragments.append)

        assert reply == "Hi"
        assert fragments == ["Hi"]

    @pytest.mark.asyncio
    async def test_json_reply_without_content(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"choices": []})

        client, transport = make_client(handler)
        async with transport:
            reply = await client.send_message("hello", lambda fragment: None)

        assert reply == NO_CONTENT

    @pytest.mark.asyncio
    async def test_invalid_json_reply(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, headers={"content-type": "text/plain"}, content=b"not json"
            )

        client, transport = make_client(handler)
        async with transport:
            with pytest.raises(ResponseFormatError):
                await client.send_message("hello", lambda fragment: None)


class TestErrors:
    """Test input validation and error propagation."""

    @pytest.mark.asyncio
    async def test_blank_input_sends_nothing(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200)

        client, transport = make_client(handler)
        fragments = []
        async with transport:
            assert await client.send_message("   \n", fragments.append) is None

        assert requests == []
        assert fragments == []

    @pytest.mark.asyncio
    async def test_http_error_uses_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, content=b"invalid api key")

        client, transport = make_client(handler)
        async with transport:
            with pytest.raises(UpstreamHTTPError) as exc_info:
                await client.send_message("hi", lambda fragment: None)

        assert str(exc_info.value) == "invalid api key"
        assert exc_info.value.status_code == 401
        assert exc_info.value.model == "test-model"

    @pytest.mark.asyncio
    async def test_http_error_without_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502)

        client, transport = make_client(handler)
        async with transport:
            with pytest.raises(UpstreamHTTPError, match="HTTP 502"):
                await client.send_message("hi", lambda fragment: None)

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client, transport = make_client(handler)
        async with transport:
            with pytest.raises(TransportError, match="connection refused"):
                await client.send_message("hi", lambda fragment: None)

    @pytest.mark.asyncio
    async def test_failed_ready_becomes_transport_error(self):
        transport = UnreadyTransport(RuntimeError("attestation failed"))
        client = ChatClient(transport, model="test-model")

        with pytest.raises(TransportError, match="attestation failed") as exc_info:
            await client.send_message("hi", lambda fragment: None)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert transport.fetched is False

    @pytest.mark.asyncio
    async def test_undecodable_body_becomes_transport_error(self):
        body = ScriptedStream(b"this is not gzip data")

        def handler(request: httpx.Request) -> httpx.Response:
            headers = {**SSE_HEADERS, "content-encoding": "gzip"}
            return httpx.Response(200, headers=headers, stream=body)

        client, transport = make_client(handler)
        async with transport:
            with pytest.raises(TransportError) as exc_info:
                await client.send_message("hi", lambda fragment: None)

        assert isinstance(exc_info.value.__cause__, httpx.DecodingError)
        assert body.closed

    @pytest.mark.asyncio
    async def test_read_failure_mid_stream(self):
        body = ScriptedStream(
            sse_body("a", done=False), error=httpx.ReadError("connection reset")
        )

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers=SSE_HEADERS, stream=body)

        client, transport = make_client(handler)
        fragments = []
        async with transport:
            with pytest.raises(TransportError, match="connection reset"):
                await client.send_message("hi", fragments.append)

        # Fragments delivered before the failure stay delivered
        assert fragments == ["a"]
        assert body.closed


class TestCancellation:
    """Test cancelling a request while the reply is streaming."""

    @pytest.mark.asyncio
    async def test_cancel_mid_stream(self):
        stall = asyncio.Event()
        body = ScriptedStream(
            sse_body("a", done=False), stall=stall, error=httpx.ReadError("late")
        )

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers=SSE_HEADERS, stream=body)

        client, transport = make_client(handler)
        fragments = []
        first = asyncio.Event()

        def on_fragment(fragment: str) -> None:
            fragments.append(fragment)
            first.set()

        async with transport:
            task = asyncio.create_task(client.send_message("hi", on_fragment))
            await asyncio.wait_for(first.wait(), timeout=1)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

            stall.set()
            await asyncio.sleep(0.01)

        assert task.cancelled()
        assert fragments == ["a"]
        assert body.closed
