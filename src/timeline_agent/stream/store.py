"""
Ordered Frame Store
===================

In-memory, timestamp-ordered collection of FrameBatches plus the playback
cursor.

This module provides the FrameStore class, the only interface between the
ingestor (single writer) and everything that reads frames: the range
selector, the context reducers and the HTTP layer.

Design Rules:
    - Always sorted by timestamp, most recent first
    - At most one batch per distinct timestamp (duplicates are no-ops)
    - Server ordering is never trusted; every insert places the batch itself
    - Readers get snapshots, never the live list
    - Cursor is None when empty, otherwise within [0, len - 1]
"""

import bisect
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from timeline_agent.models.frames import FrameBatch, format_utc
from timeline_agent.models.selection import SelectionRange


logger = logging.getLogger(__name__)


def _descending_key(batch: FrameBatch) -> float:
    return -batch.timestamp.timestamp()


class FrameStore:
    """
    Timestamp-descending frame collection with dedupe and a playback cursor.

    Insertion uses a binary search on the descending key, so the store stays
    sorted without re-sorting the whole list on every batch.

    Example:
        store = FrameStore()
        store.insert(batch)
        latest = store.snapshot()[0]
    """

    def __init__(self) -> None:
        self._batches: List[FrameBatch] = []
        self._by_timestamp: Dict[datetime, FrameBatch] = {}
        self._cursor: Optional[int] = None
        self._total_inserted: int = 0
        self._duplicates: int = 0

    def __len__(self) -> int:
        return len(self._batches)

    def __contains__(self, timestamp: datetime) -> bool:
        return timestamp in self._by_timestamp

    @property
    def cursor(self) -> Optional[int]:
        """Index of the displayed batch, or None when nothing is displayed."""
        return self._cursor

    @property
    def current(self) -> Optional[FrameBatch]:
        """Batch under the playback cursor."""
        if self._cursor is None:
            return None
        return self._batches[self._cursor]

    @property
    def duplicates(self) -> int:
        return self._duplicates

    @property
    def total_inserted(self) -> int:
        return self._total_inserted

    def insert(self, batch: FrameBatch) -> bool:
        """
        Insert a batch at its chronological position.

        Args:
            batch: Parsed batch from the stream

        Returns:
            True if inserted, False if a batch with the same timestamp
            was already present (store left unchanged).
        """
        if batch.timestamp in self._by_timestamp:
            self._duplicates += 1
            logger.debug(f"Duplicate batch ignored: {batch.timestamp_iso}")
            return False

        bisect.insort(self._batches, batch, key=_descending_key)
        self._by_timestamp[batch.timestamp] = batch
        self._total_inserted += 1

        if self._cursor is None:
            self._cursor = 0
        return True

    def snapshot(self) -> List[FrameBatch]:
        """Copy of the batches, most recent first."""
        return list(self._batches)

    def in_range(self, selection: SelectionRange) -> List[FrameBatch]:
        """Batches whose timestamp lies inside the selection, most recent first."""
        return [batch for batch in self._batches if selection.contains(batch.timestamp)]

    def seek(self, index: int) -> Optional[FrameBatch]:
        """
        Move the cursor to an absolute index, clamped to the store.

        Returns:
            The batch now under the cursor, or None if the store is empty.
        """
        if not self._batches:
            self._cursor = None
            return None
        self._cursor = max(0, min(index, len(self._batches) - 1))
        return self._batches[self._cursor]

    def step(self, delta: int) -> Optional[FrameBatch]:
        """Move the cursor by delta positions (positive = older)."""
        if self._cursor is None:
            return self.seek(0)
        return self.seek(self._cursor + delta)

    def loaded_range(self) -> Optional[Tuple[datetime, datetime]]:
        """(earliest, latest) timestamps held, or None when empty."""
        if not self._batches:
            return None
        return self._batches[-1].timestamp, self._batches[0].timestamp

    def clear(self) -> int:
        """
        Drop all batches and the cursor.

        Returns:
            Number of batches cleared.
        """
        cleared = len(self._batches)
        self._batches.clear()
        self._by_timestamp.clear()
        self._cursor = None
        return cleared

    def metrics(self) -> dict:
        """
        Get store metrics for observability.

        Returns:
            Dict with size, cursor, duplicates, total_inserted and range
        """
        loaded = self.loaded_range()
        return {
            "size": len(self._batches),
            "cursor": self._cursor,
            "duplicates": self._duplicates,
            "total_inserted": self._total_inserted,
            "earliest": format_utc(loaded[0]) if loaded else None,
            "latest": format_utc(loaded[1]) if loaded else None,
        }
