"""
Stream Module
=============

Frame stream consumption and ordered storage.

This module provides the ingestion layer for the timeline agent:
    - FrameStore: Timestamp-descending, deduplicated batch store + cursor
    - FrameStreamIngestor: Stream client with validation, no auto-retry
    - SSETransport / WebSocketTransport: raw event transports

Example:
    from timeline_agent.stream import FrameStore, FrameStreamIngestor

    store = FrameStore()
    ingestor = FrameStreamIngestor(
        url="http://localhost:3030/stream/frames",
        clock=SystemClock(),
        store=store,
    )

    # Ingest today's window in the background
    await ingestor.refresh()

    # Read frames at any time
    latest = store.snapshot()[:10]
"""

from timeline_agent.stream.store import FrameStore
from timeline_agent.stream.ingestor import (
    KEEP_ALIVE_SENTINEL,
    RETRY_PENDING_MESSAGE,
    FrameIngestorMetrics,
    FrameStreamIngestor,
)
from timeline_agent.stream.transport import (
    FrameTransport,
    SSETransport,
    WebSocketTransport,
    make_transport,
)


__all__ = [
    "FrameStore",
    "FrameStreamIngestor",
    "FrameIngestorMetrics",
    "KEEP_ALIVE_SENTINEL",
    "RETRY_PENDING_MESSAGE",
    "FrameTransport",
    "SSETransport",
    "WebSocketTransport",
    "make_transport",
]
