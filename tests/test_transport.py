"""
Stream Transport Tests
======================

SSE framing over a mocked httpx transport, and scheme-based selection.
"""

import httpx
import pytest

from conftest import run
from timeline_agent.errors import StreamTransportError
from timeline_agent.stream.transport import (
    SSETransport,
    WebSocketTransport,
    make_transport,
)


STREAM_URL = "http://localhost:3030/stream/frames"


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def _collect(transport) -> list:
    return [payload async for payload in transport.events()]


class TestSSETransport:
    """Server-Sent Events framing."""

    def test_data_lines_become_events(self):
        """Verify each blank-line-terminated event yields its data."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            seen["accept"] = request.headers["accept"]
            body = (
                ": comment\n"
                "data: keep-alive-text\n"
                "\n"
                "event: frame\n"
                "id: 7\n"
                'data: {"timestamp": "2024-11-27T09:00:00Z",\n'
                'data: "devices": []}\n'
                "\n"
                "data: trailing-without-terminator\n"
            )
            return httpx.Response(200, content=body.encode())

        async def scenario():
            client = _client(handler)
            transport = SSETransport(
                STREAM_URL,
                params={"start_time": "a", "end_time": "b", "order": "descending"},
                client=client,
            )
            events = await _collect(transport)
            await client.aclose()
            return events

        events = run(scenario())

        assert events == [
            "keep-alive-text",
            '{"timestamp": "2024-11-27T09:00:00Z",\n"devices": []}',
        ]
        assert seen["params"] == {"start_time": "a", "end_time": "b", "order": "descending"}
        assert seen["accept"] == "text/event-stream"

    def test_error_status_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, content=b"unavailable")

        async def scenario():
            client = _client(handler)
            try:
                await _collect(SSETransport(STREAM_URL, client=client))
            finally:
                await client.aclose()

        with pytest.raises(StreamTransportError, match="HTTP 503"):
            run(scenario())

    def test_connection_failure_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async def scenario():
            client = _client(handler)
            try:
                await _collect(SSETransport(STREAM_URL, client=client))
            finally:
                await client.aclose()

        with pytest.raises(StreamTransportError):
            run(scenario())

    def test_close_is_idempotent(self):
        async def scenario():
            transport = SSETransport(STREAM_URL)
            await transport.close()
            await transport.close()

        run(scenario())


class TestMakeTransport:
    """Transport selection by URL scheme."""

    def test_http_is_sse(self):
        assert isinstance(make_transport(STREAM_URL), SSETransport)
        assert isinstance(make_transport("https://example.com/stream"), SSETransport)

    def test_ws_is_websocket(self):
        transport = make_transport(
            "ws://localhost:3030/ws/frames",
            params={"order": "descending"},
        )
        assert isinstance(transport, WebSocketTransport)
        assert transport.url == "ws://localhost:3030/ws/frames?order=descending"

    def test_unknown_scheme_rejected(self):
        with pytest.raises(ValueError, match="ftp"):
            make_transport("ftp://localhost/frames")
