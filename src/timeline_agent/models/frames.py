"""
Frame Stream Schema
===================

Pydantic models for the frame batches pushed by the streaming endpoint.

Input Contract (one event):
    {
        "timestamp": "2024-11-27T14:03:05.123Z",
        "devices": [
            {
                "device_id": "monitor_1",
                "frame": "<base64 PNG>",
                "metadata": {
                    "file_path": "...",
                    "app_name": "Code",
                    "window_name": "main.py",
                    "ocr_text": "...",
                    "timestamp": "2024-11-27T14:03:05.123Z"
                },
                "audio": [
                    {
                        "device_name": "MacBook Microphone",
                        "is_input": true,
                        "transcription": "...",
                        "audio_file_path": "...",
                        "duration_secs": 30.0,
                        "start_offset": 0.0
                    }
                ]
            }
        ]
    }

Design Rules:
    - timestamp is the unique key of a batch and is always timezone-aware UTC
    - devices must be non-empty
    - frame is passed through unchanged (never decoded here)
    - null optional fields are read as their empty defaults
"""

from datetime import datetime, timezone
from typing import List

from pydantic import BaseModel, Field, field_validator


def to_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and normalise aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_utc(value: datetime) -> str:
    """ISO-8601 with a trailing Z, millisecond precision."""
    return to_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class AudioSegment(BaseModel):
    """One transcribed audio chunk attached to a device frame."""

    device_name: str = Field(default="", description="Capturing audio device")
    is_input: bool = Field(default=True, description="True for microphones, False for output")
    transcription: str = Field(default="", description="Transcribed text")
    audio_file_path: str = Field(default="", description="Path of the audio file on disk")
    duration_secs: float = Field(default=0.0, ge=0, description="Segment duration")
    start_offset: float = Field(default=0.0, description="Offset into the audio file")

    @field_validator("device_name", "transcription", "audio_file_path", mode="before")
    @classmethod
    def _null_text(cls, value):
        return "" if value is None else value

    @field_validator("duration_secs", "start_offset", mode="before")
    @classmethod
    def _null_number(cls, value):
        return 0.0 if value is None else value

    @field_validator("is_input", mode="before")
    @classmethod
    def _null_flag(cls, value):
        return True if value is None else value


class DeviceMetadata(BaseModel):
    """Capture metadata for one device frame."""

    file_path: str = Field(default="", description="Video chunk holding the frame")
    app_name: str = Field(default="", description="Focused application")
    window_name: str = Field(default="", description="Focused window title")
    ocr_text: str = Field(default="", description="Text recognised on screen")
    timestamp: str = Field(
        default="",
        description="Capture time as reported by the device (kept verbatim)",
    )

    @field_validator("file_path", "app_name", "window_name", "ocr_text", "timestamp", mode="before")
    @classmethod
    def _null_text(cls, value):
        return "" if value is None else value


class DeviceFrame(BaseModel):
    """One device's capture inside a FrameBatch."""

    device_id: str = Field(..., description="Capturing device identifier")
    frame: str = Field(default="", description="Base64-encoded image, not decoded")
    metadata: DeviceMetadata = Field(default_factory=DeviceMetadata)
    audio: List[AudioSegment] = Field(default_factory=list)

    @field_validator("frame", mode="before")
    @classmethod
    def _null_frame(cls, value):
        return "" if value is None else value

    @field_validator("metadata", mode="before")
    @classmethod
    def _null_metadata(cls, value):
        return {} if value is None else value

    @field_validator("audio", mode="before")
    @classmethod
    def _null_audio(cls, value):
        return [] if value is None else value

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the full image."""
        return (
            f"DeviceFrame(device_id={self.device_id!r}, "
            f"app_name={self.metadata.app_name!r}, "
            f"audio={len(self.audio)})"
        )


class FrameBatch(BaseModel):
    """
    One timestamped group of device captures (StreamTimeSeriesEntry).

    Attributes:
        timestamp: UTC instant of the batch, used as the unique key
        devices: Ordered device captures, never empty
    """

    timestamp: datetime = Field(..., description="UTC instant of the batch")
    devices: List[DeviceFrame] = Field(..., min_length=1)

    @field_validator("timestamp")
    @classmethod
    def _normalise_timestamp(cls, value: datetime) -> datetime:
        return to_utc(value)

    @property
    def timestamp_iso(self) -> str:
        """Timestamp as sent back to the completion service."""
        return format_utc(self.timestamp)

    def __repr__(self) -> str:
        return f"FrameBatch(timestamp={self.timestamp_iso}, devices={len(self.devices)})"
