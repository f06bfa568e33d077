"""
Selection Range
===============

The committed UTC interval used to filter frames for a query.

Both bounds are UTC even though they are derived from local-clock gestures
(see timeaxis.mapper for the projection).
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from timeline_agent.models.frames import format_utc, to_utc


class SelectionRange(BaseModel):
    """
    Closed time interval [start, end] in UTC.

    Attributes:
        start: Inclusive lower bound
        end: Inclusive upper bound, never before start
    """

    start: datetime = Field(..., description="Inclusive lower bound (UTC)")
    end: datetime = Field(..., description="Inclusive upper bound (UTC)")

    model_config = {"frozen": True}

    @field_validator("start", "end")
    @classmethod
    def _normalise(cls, value: datetime) -> datetime:
        return to_utc(value)

    @model_validator(mode="after")
    def _check_order(self) -> "SelectionRange":
        if self.start > self.end:
            raise ValueError("selection start must not be after end")
        return self

    def contains(self, instant: datetime) -> bool:
        """Whether instant lies inside the range, bounds included."""
        return self.start <= to_utc(instant) <= self.end

    @property
    def width_seconds(self) -> float:
        return (self.end - self.start).total_seconds()

    def to_dict(self) -> dict:
        return {
            "start": format_utc(self.start),
            "end": format_utc(self.end),
        }
