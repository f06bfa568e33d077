"""
Range Selector
==============

Gesture-driven state machine turning axis positions into a committed
SelectionRange.

States:
    IDLE       no selection
    DRAGGING   pointer down, anchor recorded, selection follows the pointer
    COMMITTED  pointer released, selection frozen

Transitions:
    pointer_down: any      -> DRAGGING   (prior selection discarded,
                                          selection = {anchor, anchor})
    pointer_move: DRAGGING -> DRAGGING   (selection = {min, max} of anchor
                                          and pointer)
    pointer_up:   DRAGGING -> COMMITTED
    dismiss:      any      -> IDLE

pointer_move and pointer_up outside DRAGGING are ignored. Resetting the
conversation on dismiss is the owning session's job.
"""

import logging
from datetime import date
from enum import Enum
from typing import Callable, Optional, Tuple

from timeline_agent.models.selection import SelectionRange
from timeline_agent.timeaxis.mapper import clamp_percent, percent_to_utc


logger = logging.getLogger(__name__)


class SelectorState(str, Enum):
    """Range selector states."""

    IDLE = "IDLE"
    DRAGGING = "DRAGGING"
    COMMITTED = "COMMITTED"


class RangeSelector:
    """
    Turns pointer gestures on the 24-hour axis into a SelectionRange.

    Attributes:
        state: Current SelectorState
        selection: Live (DRAGGING) or frozen (COMMITTED) range, None when IDLE

    Example:
        selector = RangeSelector(reference_date=lambda: date.today())
        selector.pointer_down(70)
        selector.pointer_move(30)
        selection = selector.pointer_up()
    """

    def __init__(self, reference_date: Callable[[], date]) -> None:
        """
        Initialize selector.

        Args:
            reference_date: Returns the viewer's local calendar day; read
                on every gesture so a long-running session follows the day
        """
        self._reference_date = reference_date

        self._state = SelectorState.IDLE
        self._anchor: Optional[float] = None
        self._current: Optional[float] = None
        self._selection: Optional[SelectionRange] = None

    @property
    def state(self) -> SelectorState:
        return self._state

    @property
    def selection(self) -> Optional[SelectionRange]:
        return self._selection

    @property
    def committed(self) -> Optional[SelectionRange]:
        """The selection, only once the gesture has been released."""
        if self._state is SelectorState.COMMITTED:
            return self._selection
        return None

    @property
    def percent_range(self) -> Optional[Tuple[float, float]]:
        """(start, end) axis positions of the selection, clamped."""
        if self._anchor is None or self._current is None:
            return None
        return min(self._anchor, self._current), max(self._anchor, self._current)

    def pointer_down(self, percent: float) -> SelectionRange:
        anchor = clamp_percent(percent)
        self._state = SelectorState.DRAGGING
        self._anchor = anchor
        self._current = anchor
        self._selection = self._build(anchor, anchor)
        logger.debug(f"Selection started at {anchor:.2f}%")
        return self._selection

    def pointer_move(self, percent: float) -> Optional[SelectionRange]:
        if self._state is not SelectorState.DRAGGING:
            return self._selection
        self._current = clamp_percent(percent)
        start, end = self.percent_range
        self._selection = self._build(start, end)
        return self._selection

    def pointer_up(self) -> Optional[SelectionRange]:
        if self._state is not SelectorState.DRAGGING:
            return self._selection
        self._state = SelectorState.COMMITTED
        start, end = self.percent_range
        logger.info(
            f"Selection committed: {start:.2f}%-{end:.2f}% "
            f"({self._selection.start.isoformat()} - {self._selection.end.isoformat()})"
        )
        return self._selection

    def dismiss(self) -> None:
        self._state = SelectorState.IDLE
        self._anchor = None
        self._current = None
        self._selection = None

    def _build(self, start_percent: float, end_percent: float) -> SelectionRange:
        day = self._reference_date()
        return SelectionRange(
            start=percent_to_utc(start_percent, day),
            end=percent_to_utc(end_percent, day),
        )

    def to_dict(self) -> dict:
        percents = self.percent_range
        return {
            "state": self._state.value,
            "selection": self._selection.to_dict() if self._selection else None,
            "start_percent": percents[0] if percents else None,
            "end_percent": percents[1] if percents else None,
        }
