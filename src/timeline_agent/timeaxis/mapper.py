"""
Time Axis Mapper
================

Pure conversions between a position on a fixed 24-hour axis and
calendar/UTC timestamps.

Axis:
    0%   -> 00:00 local
    100% -> 24:00 local (1440 minutes)

Projection:
    Selections are built from the *local* wall-clock reading and then stamped
    as UTC without shifting the calendar fields. A drag to 14:30 local
    produces 14:30Z. Selection bounds are only exact when the viewer's and
    the data's calendar day coincide.

No state, no I/O. Every percent is clamped to [0, 100] before use.
"""

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Tuple

from timeline_agent.models.frames import FrameBatch, to_utc


MINUTES_PER_DAY = 24 * 60
SECONDS_PER_DAY = MINUTES_PER_DAY * 60


def clamp_percent(percent: float) -> float:
    """Clamp an axis position into [0, 100]."""
    return max(0.0, min(100.0, float(percent)))


def position_to_local_time(percent: float) -> Tuple[int, int]:
    """
    Map an axis position to a local wall-clock (hour, minute).

    Example:
        position_to_local_time(50) -> (12, 0)
        position_to_local_time(100) -> (24, 0)
    """
    minutes_from_midnight = clamp_percent(percent) * MINUTES_PER_DAY / 100
    hour = int(minutes_from_midnight // 60)
    minute = int(minutes_from_midnight % 60)
    return hour, minute


def local_time_to_utc(hour: int, minute: int, reference_date: date) -> datetime:
    """
    Stamp a local wall-clock reading on reference_date as UTC.

    The local calendar fields are reinterpreted as UTC fields; hour 24
    rolls over to midnight of the next day.
    """
    midnight = datetime.combine(reference_date, time(0, 0), tzinfo=timezone.utc)
    return midnight + timedelta(hours=hour, minutes=minute)


def percent_to_utc(percent: float, reference_date: date) -> datetime:
    """Axis position straight to its projected UTC instant."""
    hour, minute = position_to_local_time(percent)
    return local_time_to_utc(hour, minute, reference_date)


def percent_for_instant(instant: datetime, tz: Optional[tzinfo] = None) -> float:
    """
    Position of a true instant on the viewer's local 24-hour axis.

    Used for the "now" marker and for frame positions.

    Args:
        instant: Timezone-aware instant (naive values are taken as UTC)
        tz: Viewer's timezone (None = host local timezone)
    """
    local = to_utc(instant).astimezone(tz)
    seconds = (
        local.hour * 3600
        + local.minute * 60
        + local.second
        + local.microsecond / 1_000_000
    )
    return clamp_percent(seconds / SECONDS_PER_DAY * 100)


def batch_instant(batch: FrameBatch, tz: Optional[tzinfo] = None) -> datetime:
    """
    Instant used to place a batch on the axis.

    Prefers the first device's embedded metadata timestamp and falls back
    to the batch timestamp when it is missing or unparseable. An embedded
    timestamp without an offset is a local wall-clock reading in tz
    (None = host local timezone).
    """
    embedded = batch.devices[0].metadata.timestamp if batch.devices else ""
    if embedded:
        try:
            parsed = datetime.fromisoformat(embedded)
        except ValueError:
            return batch.timestamp
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=tz) if tz is not None else parsed.astimezone()
        return to_utc(parsed)
    return batch.timestamp


def percent_for_batch(batch: FrameBatch, tz: Optional[tzinfo] = None) -> float:
    return percent_for_instant(batch_instant(batch, tz), tz)


def todays_window(
    now: datetime,
    end_margin: timedelta = timedelta(minutes=2),
) -> Tuple[datetime, datetime]:
    """
    Ingestion window for a manual refresh.

    Args:
        now: Current instant in the viewer's timezone
        end_margin: Gap kept before now so partially written data is skipped

    Returns:
        (local midnight of today, now - end_margin), both converted to UTC
    """
    local_midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    end = now - end_margin
    if end < local_midnight:
        end = local_midnight
    return to_utc(local_midnight), to_utc(end)
