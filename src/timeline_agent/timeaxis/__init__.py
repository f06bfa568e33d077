"""
Time Axis Module
================

24-hour axis arithmetic and the gesture-driven range selector.

    - mapper: pure position <-> time conversions
    - RangeSelector: IDLE / DRAGGING / COMMITTED state machine
"""

from timeline_agent.timeaxis.mapper import (
    clamp_percent,
    local_time_to_utc,
    percent_for_batch,
    percent_for_instant,
    percent_to_utc,
    position_to_local_time,
    todays_window,
)
from timeline_agent.timeaxis.selector import RangeSelector, SelectorState


__all__ = [
    "clamp_percent",
    "position_to_local_time",
    "local_time_to_utc",
    "percent_to_utc",
    "percent_for_instant",
    "percent_for_batch",
    "todays_window",
    "RangeSelector",
    "SelectorState",
]
