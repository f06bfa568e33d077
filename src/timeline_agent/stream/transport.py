"""
Stream Transports
=================

Raw event transports for the frame streaming endpoint.

A transport yields the payload string of each event and nothing else.
It signals the two terminal conditions differently:

    - Clean end (server finished the backfill, connection closed normally):
      the iterator simply stops.
    - Anything else (refused connection, HTTP error status, abnormal close):
      StreamTransportError is raised.

Transports:
    - SSETransport: Server-Sent Events over HTTP (httpx streaming)
    - WebSocketTransport: one JSON message per frame (websockets)

Design Rules:
    - Does NOT parse payloads (that is the ingestor's job)
    - Does NOT retry or reconnect
    - close() is idempotent
"""

import logging
from typing import AsyncIterator, Dict, List, Optional, Protocol

import httpx
import websockets
from websockets.exceptions import (
    ConnectionClosedError,
    ConnectionClosedOK,
    WebSocketException,
)

from timeline_agent.errors import StreamTransportError


logger = logging.getLogger(__name__)


class FrameTransport(Protocol):
    """
    Protocol for frame stream transports.

    Implemented by:
        - SSETransport
        - WebSocketTransport
        - in-memory fakes in the test-suite
    """

    def events(self) -> AsyncIterator[str]:
        """Yield raw event payloads until the stream ends."""
        ...

    async def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        ...


class SSETransport:
    """
    Server-Sent Events consumer built on httpx streaming responses.

    Only `data:` fields are used; multi-line data is joined with newlines
    and dispatched on the blank line that ends an event. Comment lines
    (`:` prefix) and `event:`/`id:`/`retry:` fields are ignored.

    Attributes:
        url: Endpoint URL (http or https)
        params: Query parameters sent with the request
    """

    def __init__(
        self,
        url: str,
        params: Optional[Dict[str, str]] = None,
        connect_timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize SSE transport.

        Args:
            url: Streaming endpoint URL
            params: Query parameters (start_time, end_time, order)
            connect_timeout: Seconds allowed to establish the connection
            client: Pre-built client (tests inject a MockTransport here)
        """
        self.url = url
        self.params = params or {}
        self.connect_timeout = connect_timeout

        self._client = client
        self._owns_client = client is None
        self._closed = False

    async def events(self) -> AsyncIterator[str]:
        if self._client is None:
            # Read timeout disabled: the server may stay quiet between frames
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(None, connect=self.connect_timeout)
            )

        try:
            async with self._client.stream(
                "GET",
                self.url,
                params=self.params,
                headers={"Accept": "text/event-stream"},
            ) as response:
                if response.status_code != 200:
                    raise StreamTransportError(
                        f"Stream endpoint returned HTTP {response.status_code}"
                    )
                logger.info(f"SSE stream opened: {response.url}")

                data_lines: List[str] = []
                async for line in response.aiter_lines():
                    if not line:
                        if data_lines:
                            yield "\n".join(data_lines)
                            data_lines = []
                        continue
                    if line.startswith(":"):
                        continue

                    field, _, value = line.partition(":")
                    if value.startswith(" "):
                        value = value[1:]
                    if field == "data":
                        data_lines.append(value)

                # A trailing event without its blank line is incomplete
                if data_lines:
                    logger.debug("Discarding unterminated SSE event at end of stream")

        except httpx.HTTPError as e:
            raise StreamTransportError(f"SSE transport failed: {e}") from e
        finally:
            await self.close()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._owns_client and self._client is not None:
            await self._client.aclose()


class WebSocketTransport:
    """
    WebSocket consumer: every text message is one event payload.

    A normal close frame ends the stream cleanly; an abnormal close,
    a refused handshake or a socket error raises StreamTransportError.
    """

    def __init__(
        self,
        url: str,
        params: Optional[Dict[str, str]] = None,
        connect_timeout: float = 10.0,
    ) -> None:
        self.url = str(httpx.URL(url, params=params or {}))
        self.connect_timeout = connect_timeout

        self._websocket = None
        self._closed = False

    async def events(self) -> AsyncIterator[str]:
        try:
            async with websockets.connect(
                self.url,
                open_timeout=self.connect_timeout,
                ping_interval=20,
                ping_timeout=10,
                close_timeout=5,
            ) as ws:
                self._websocket = ws
                logger.info(f"WebSocket stream opened: {self.url}")
                try:
                    async for message in ws:
                        if isinstance(message, bytes):
                            message = message.decode("utf-8", errors="replace")
                        yield message
                except ConnectionClosedOK:
                    logger.info("WebSocket closed normally")

        except ConnectionClosedError as e:
            raise StreamTransportError(f"WebSocket closed with error: {e}") from e
        except (WebSocketException, OSError) as e:
            raise StreamTransportError(f"WebSocket transport failed: {e}") from e
        finally:
            self._websocket = None

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._websocket is not None:
            await self._websocket.close()


def make_transport(
    url: str,
    params: Optional[Dict[str, str]] = None,
    connect_timeout: float = 10.0,
) -> FrameTransport:
    """
    Pick a transport from the URL scheme.

    Raises:
        ValueError: If the scheme is neither http(s) nor ws(s)
    """
    scheme = httpx.URL(url).scheme
    if scheme in ("http", "https"):
        return SSETransport(url, params=params, connect_timeout=connect_timeout)
    if scheme in ("ws", "wss"):
        return WebSocketTransport(url, params=params, connect_timeout=connect_timeout)
    raise ValueError(f"Unsupported stream URL scheme: {scheme!r}")
