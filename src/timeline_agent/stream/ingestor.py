"""
Frame Stream Ingestor
=====================

Live consumer of the frame streaming endpoint.

This module provides the FrameStreamIngestor class which:
    - Opens one streaming connection for a [start, end] window
    - Parses and validates every event payload
    - Drops keep-alive sentinels silently
    - Inserts valid batches into the FrameStore (deduped, time-ordered)
    - Tracks loading / error flags for the UI
    - Exposes metrics for health monitoring

Failure Semantics:
    - Malformed event: logged, counted, dropped; the stream continues
    - Clean end of stream: backfill complete, loading clears, no retry
    - Transport failure: error set, loading clears, connection torn down,
      user notified once. There is NO automatic reconnect: a retry is
      a manual refresh().

Design Rules:
    - Single writer of the FrameStore
    - Does NOT decode images
    - stop() is idempotent
"""

import asyncio
import json
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Tuple

from pydantic import ValidationError

from timeline_agent.collaborators import Clock, Notifier
from timeline_agent.errors import FramePayloadError, StreamTransportError
from timeline_agent.models.frames import FrameBatch, format_utc
from timeline_agent.stream.store import FrameStore
from timeline_agent.stream.transport import FrameTransport, make_transport
from timeline_agent.timeaxis.mapper import todays_window


logger = logging.getLogger(__name__)


KEEP_ALIVE_SENTINEL = "keep-alive-text"
RETRY_PENDING_MESSAGE = "connection lost. retrying..."

TransportFactory = Callable[[str, Dict[str, str]], FrameTransport]


class FrameIngestorMetrics:
    """Metrics for FrameStreamIngestor observability."""

    __slots__ = (
        "events_received",
        "frames_inserted",
        "duplicates_dropped",
        "keep_alives",
        "parse_errors",
        "transport_errors",
        "sessions_started",
        "last_timestamp",
    )

    def __init__(self) -> None:
        self.events_received: int = 0
        self.frames_inserted: int = 0
        self.duplicates_dropped: int = 0
        self.keep_alives: int = 0
        self.parse_errors: int = 0
        self.transport_errors: int = 0
        self.sessions_started: int = 0
        self.last_timestamp: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "events_received": self.events_received,
            "frames_inserted": self.frames_inserted,
            "duplicates_dropped": self.duplicates_dropped,
            "keep_alives": self.keep_alives,
            "parse_errors": self.parse_errors,
            "transport_errors": self.transport_errors,
            "sessions_started": self.sessions_started,
            "last_timestamp": (
                format_utc(self.last_timestamp) if self.last_timestamp else None
            ),
        }


class FrameStreamIngestor:
    """
    Streaming consumer that keeps the FrameStore up to date.

    Attributes:
        url: Streaming endpoint (http(s) for SSE, ws(s) for WebSocket)
        store: FrameStore populated by this ingestor
        loading: True until the first batch arrives or the stream ends cleanly
        error: Human-readable message after a transport failure, else None
        metrics: Operational metrics

    Example:
        ingestor = FrameStreamIngestor(
            url="http://localhost:3030/stream/frames",
            clock=SystemClock(),
        )
        await ingestor.refresh()

        # Later
        await ingestor.stop()
    """

    def __init__(
        self,
        url: str,
        clock: Clock,
        store: Optional[FrameStore] = None,
        notifier: Optional[Notifier] = None,
        transport_factory: Optional[TransportFactory] = None,
        end_margin: timedelta = timedelta(minutes=2),
        order: str = "descending",
        keep_alive_sentinel: str = KEEP_ALIVE_SENTINEL,
        connect_timeout: float = 10.0,
    ) -> None:
        """
        Initialize frame stream ingestor.

        Args:
            url: Streaming endpoint URL
            clock: Viewer clock, used to compute the refresh window
            store: Store to populate (a fresh one if None)
            notifier: Receives the transport failure notice
            transport_factory: Builds a transport from (url, params);
                defaults to picking SSE or WebSocket from the URL scheme
            end_margin: Gap kept before "now" when refreshing
            order: Ordering hint sent to the server
            keep_alive_sentinel: Payload value that carries no frame
            connect_timeout: Seconds allowed to open the connection
        """
        self.url = url
        self.clock = clock
        self.store = store if store is not None else FrameStore()
        self.notifier = notifier
        self.end_margin = end_margin
        self.order = order
        self.keep_alive_sentinel = keep_alive_sentinel

        if transport_factory is None:
            def transport_factory(url: str, params: Dict[str, str]) -> FrameTransport:
                return make_transport(url, params, connect_timeout=connect_timeout)
        self._transport_factory = transport_factory

        # State
        self._transport: Optional[FrameTransport] = None
        self._task: Optional[asyncio.Task] = None
        self._loading: bool = False
        self._error: Optional[str] = None
        self._window: Optional[Tuple[datetime, datetime]] = None

        # Metrics
        self.metrics = FrameIngestorMetrics()

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def running(self) -> bool:
        """Whether a stream connection is currently being consumed."""
        return self._task is not None and not self._task.done()

    @property
    def window(self) -> Optional[Tuple[datetime, datetime]]:
        """(start, end) of the window requested by the last start()."""
        return self._window

    async def start(self, window_start: datetime, window_end: datetime) -> None:
        """
        Open a stream for all batches with timestamp in [window_start, window_end].

        Any previous connection is released first. The store is kept;
        use refresh() to rebuild it from scratch.
        """
        await self.stop()

        params = {
            "start_time": format_utc(window_start),
            "end_time": format_utc(window_end),
            "order": self.order,
        }
        self._window = (window_start, window_end)
        self._loading = True
        self._error = None
        self.metrics.sessions_started += 1

        logger.info(
            f"Starting frame stream: {self.url} "
            f"[{params['start_time']} .. {params['end_time']}]"
        )
        self._transport = self._transport_factory(self.url, params)
        self._task = asyncio.create_task(
            self._consume(self._transport),
            name="frame_stream_ingestor",
        )

    async def stop(self) -> None:
        """
        Release the connection. Safe to call when already stopped.
        """
        task, self._task = self._task, None
        transport, self._transport = self._transport, None

        if task is not None and not task.done():
            logger.info("Stopping frame stream...")
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            self._loading = False

        if transport is not None:
            await transport.close()

    async def refresh(self) -> None:
        """
        Manual refresh: clear everything and re-ingest today's window.

        Window is local midnight of today up to now minus end_margin.
        """
        await self.stop()
        cleared = self.store.clear()
        self._error = None
        self._loading = True
        logger.info(f"Refreshing frame stream (cleared {cleared} batches)")

        window_start, window_end = todays_window(self.clock.now(), self.end_margin)
        await self.start(window_start, window_end)

    async def wait_closed(self) -> None:
        """Wait for the current stream to finish (clean end or failure)."""
        task = self._task
        if task is not None:
            await asyncio.shield(task)

    def handle_payload(self, raw: str) -> bool:
        """
        Process one raw event payload.

        Args:
            raw: Event data as received from the transport

        Returns:
            True if a new batch was inserted into the store.
        """
        self.metrics.events_received += 1

        try:
            batch = self._parse(raw)
        except FramePayloadError as e:
            self.metrics.parse_errors += 1
            logger.warning(f"Failed to parse frame data: {e}")
            return False

        if batch is None:
            self.metrics.keep_alives += 1
            return False

        self._loading = False
        inserted = self.store.insert(batch)
        if inserted:
            self.metrics.frames_inserted += 1
            if (
                self.metrics.last_timestamp is None
                or batch.timestamp > self.metrics.last_timestamp
            ):
                self.metrics.last_timestamp = batch.timestamp
        else:
            self.metrics.duplicates_dropped += 1
        return inserted

    def _parse(self, raw: str) -> Optional[FrameBatch]:
        """
        Parse a payload into a FrameBatch.

        Returns:
            The batch, or None for a keep-alive sentinel.

        Raises:
            FramePayloadError: If the payload is not a well-formed batch
        """
        if raw.strip() == self.keep_alive_sentinel:
            return None

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise FramePayloadError(f"invalid JSON: {e}") from e

        if data == self.keep_alive_sentinel:
            return None

        if not isinstance(data, dict):
            raise FramePayloadError(f"expected an object, got {type(data).__name__}")
        if not data.get("timestamp") or not data.get("devices"):
            raise FramePayloadError("payload has no timestamp or no devices")

        try:
            return FrameBatch.model_validate(data)
        except ValidationError as e:
            raise FramePayloadError(
                f"invalid frame batch ({e.error_count()} errors): {e.errors()[0]['msg']}"
            ) from e

    async def _consume(self, transport: FrameTransport) -> None:
        """Read the transport until it ends, fails or is cancelled."""
        try:
            async for raw in transport.events():
                self.handle_payload(raw)
        except StreamTransportError as e:
            self._on_transport_error(e)
            return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Unexpected error in frame stream")
            self._on_transport_error(e)
            return
        finally:
            await transport.close()

        self._loading = False
        logger.info(
            f"Frame stream ended (expected behavior): "
            f"{len(self.store)} batches loaded"
        )

    def _on_transport_error(self, error: Exception) -> None:
        self.metrics.transport_errors += 1
        self._error = RETRY_PENDING_MESSAGE
        self._loading = False
        logger.error(f"Frame stream error: {error}")

        if self.notifier is not None:
            self.notifier.notify_failure(
                "Lost connection to the frame stream. Refresh to retry."
            )
