"""
Data Models
===========

Pydantic models for the timeline agent.

Models:
    Frames:
        - FrameBatch: One timestamped group of device captures
        - DeviceFrame, DeviceMetadata, AudioSegment: its parts

    Selection:
        - SelectionRange: Committed UTC interval

    Conversation:
        - Role, Message: Chat history entries
        - StreamingAccumulator: Live assistant message
        - Conversation: History with a single live message
"""

from timeline_agent.models.frames import (
    AudioSegment,
    DeviceFrame,
    DeviceMetadata,
    FrameBatch,
    format_utc,
    to_utc,
)
from timeline_agent.models.selection import SelectionRange
from timeline_agent.models.conversation import (
    Conversation,
    Message,
    Role,
    StreamingAccumulator,
)

__all__ = [
    # Frames
    "AudioSegment",
    "DeviceMetadata",
    "DeviceFrame",
    "FrameBatch",
    "format_utc",
    "to_utc",
    # Selection
    "SelectionRange",
    # Conversation
    "Role",
    "Message",
    "StreamingAccumulator",
    "Conversation",
]
