"""
External Collaborators
======================

Small interfaces the core talks to but does not own.

    - Clock: current instant, timezone name and UTC offset
    - Notifier: single-shot "operation failed" notices for the user

Both are Protocols so tests (and embedding applications) can swap them.
"""

import logging
import time
from collections import deque
from datetime import datetime, timedelta, tzinfo
from typing import Deque, List, Optional, Protocol
from zoneinfo import ZoneInfo


logger = logging.getLogger(__name__)


# =============================================================================
# Clock
# =============================================================================

class Clock(Protocol):
    """Source of wall-clock time in the viewer's timezone."""

    @property
    def tzinfo(self) -> tzinfo:
        ...

    def now(self) -> datetime:
        """Current instant, timezone-aware, in the viewer's timezone."""
        ...

    def timezone_name(self) -> str:
        ...

    def utc_offset(self) -> timedelta:
        ...


class SystemClock:
    """
    Clock backed by the host clock.

    Args:
        timezone: IANA name (e.g. "Europe/Paris"). None uses the
            host's local timezone.
    """

    def __init__(self, timezone: Optional[str] = None) -> None:
        self._zone: Optional[ZoneInfo] = ZoneInfo(timezone) if timezone else None

    @property
    def tzinfo(self) -> tzinfo:
        if self._zone is not None:
            return self._zone
        return datetime.now().astimezone().tzinfo

    def now(self) -> datetime:
        return datetime.now(self.tzinfo)

    def timezone_name(self) -> str:
        if self._zone is not None:
            return self._zone.key
        return self.now().tzname() or "UTC"

    def utc_offset(self) -> timedelta:
        return self.now().utcoffset() or timedelta(0)


def format_utc_offset(offset: timedelta) -> str:
    """Render an offset as +HH:MM / -HH:MM."""
    total_minutes = int(offset.total_seconds() // 60)
    sign = "+" if total_minutes >= 0 else "-"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


# =============================================================================
# Notifier
# =============================================================================

class Notifier(Protocol):
    """Receives user-facing failure notices. Never drives retries."""

    def notify_failure(self, message: str) -> None:
        ...


class NoticeBoard:
    """
    Notifier that logs each notice and keeps the most recent ones
    for the HTTP layer to hand to the UI.
    """

    def __init__(self, maxlen: int = 50) -> None:
        self._notices: Deque[dict] = deque(maxlen=maxlen)

    def notify_failure(self, message: str) -> None:
        logger.warning(f"User notice: {message}")
        self._notices.append({
            "title": "Error",
            "message": message,
            "time": time.time(),
        })

    def notices(self) -> List[dict]:
        return list(self._notices)

    def clear(self) -> None:
        self._notices.clear()
