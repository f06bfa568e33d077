"""
Test Configuration
==================

Pytest fixtures and in-memory fakes for the timeline agent.
"""

import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from timeline_agent.models.frames import FrameBatch


# Viewer is two hours ahead of UTC
VIEWER_TZ = timezone(timedelta(hours=2), "CEST")


class FixedClock:
    """Clock frozen at a given instant."""

    def __init__(self, now: datetime) -> None:
        self._now = now

    @property
    def tzinfo(self):
        return self._now.tzinfo

    def now(self) -> datetime:
        return self._now

    def timezone_name(self) -> str:
        return "Europe/Paris"

    def utc_offset(self) -> timedelta:
        return self._now.utcoffset()


class RecordingNotifier:
    """Notifier that only remembers what it was told."""

    def __init__(self) -> None:
        self.messages: List[str] = []

    def notify_failure(self, message: str) -> None:
        self.messages.append(message)


class FakeTransport:
    """
    Transport replaying canned payloads.

    Args:
        payloads: Raw event payloads, yielded in order
        error: Raised after the payloads (None = clean end)
        hold_open: Keep the stream open after the payloads until cancelled
    """

    def __init__(
        self,
        payloads: List[str],
        error: Optional[Exception] = None,
        hold_open: bool = False,
    ) -> None:
        self.payloads = payloads
        self.error = error
        self.hold_open = hold_open
        self.close_calls = 0

    async def events(self):
        for payload in self.payloads:
            await asyncio.sleep(0)
            yield payload
        if self.error is not None:
            raise self.error
        if self.hold_open:
            await asyncio.sleep(3600)

    async def close(self) -> None:
        self.close_calls += 1


class FakeTransportFactory:
    """Hands out FakeTransports and records the requests made."""

    def __init__(self, *transports: FakeTransport) -> None:
        self._transports = list(transports)
        self.requests: List[Dict[str, str]] = []
        self.created: List[FakeTransport] = []

    def __call__(self, url: str, params: Dict[str, str]) -> FakeTransport:
        self.requests.append({"url": url, **params})
        transport = self._transports.pop(0) if self._transports else FakeTransport([])
        self.created.append(transport)
        return transport


class FakeCompletionClient:
    """
    Completion client yielding canned deltas.

    Args:
        deltas: Text chunks to stream
        error: Raised after the deltas
        hang: Block after the deltas until cancelled
    """

    def __init__(
        self,
        deltas: List[str],
        error: Optional[Exception] = None,
        hang: bool = False,
    ) -> None:
        self.deltas = deltas
        self.error = error
        self.hang = hang
        self.requests: List[List[dict]] = []

    async def stream(self, messages: List[dict]):
        self.requests.append(messages)
        for delta in self.deltas:
            await asyncio.sleep(0)
            yield delta
        if self.error is not None:
            raise self.error
        if self.hang:
            await asyncio.sleep(3600)


def make_batch_payload(
    timestamp: str,
    app_name: str = "Code",
    window_name: str = "main.py",
    ocr_text: str = "def main():",
    audio: Optional[List[dict]] = None,
    device_id: str = "monitor_1",
) -> dict:
    """Raw frame batch as sent by the streaming endpoint."""
    return {
        "timestamp": timestamp,
        "devices": [
            {
                "device_id": device_id,
                "frame": "iVBORw0KGgo=",
                "metadata": {
                    "file_path": "/data/monitor_1_2024-11-27.mp4",
                    "app_name": app_name,
                    "window_name": window_name,
                    "ocr_text": ocr_text,
                    "timestamp": timestamp,
                },
                "audio": audio or [],
            }
        ],
    }


def make_batch(timestamp: str, **kwargs) -> FrameBatch:
    return FrameBatch.model_validate(make_batch_payload(timestamp, **kwargs))


def run(coro):
    """Drive a coroutine to completion from a plain test."""
    return asyncio.run(coro)


@pytest.fixture
def viewer_now() -> datetime:
    """2024-11-27 14:30 local (12:30 UTC)."""
    return datetime(2024, 11, 27, 14, 30, tzinfo=VIEWER_TZ)


@pytest.fixture
def clock(viewer_now) -> FixedClock:
    return FixedClock(viewer_now)


@pytest.fixture
def reference_date() -> date:
    return date(2024, 11, 27)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def sample_audio() -> List[dict]:
    return [
        {
            "device_name": "MacBook Microphone",
            "is_input": True,
            "transcription": "let's ship the release today",
            "audio_file_path": "/data/audio_1.mp4",
            "duration_secs": 30.0,
            "start_offset": 0.0,
        }
    ]


@pytest.fixture
def sample_frames(sample_audio) -> List[FrameBatch]:
    """Three batches, newest first, two devices on the middle one."""
    middle = make_batch_payload("2024-11-27T09:00:01.000Z", app_name="Slack", ocr_text="")
    middle["devices"].append(
        make_batch_payload(
            "2024-11-27T09:00:01.000Z",
            device_id="monitor_2",
            app_name="Chrome",
            window_name="Release notes",
            ocr_text="v2.0 changelog",
            audio=sample_audio,
        )["devices"][0]
    )
    return [
        make_batch("2024-11-27T09:00:02.000Z", audio=sample_audio),
        FrameBatch.model_validate(middle),
        make_batch("2024-11-27T09:00:00.000Z", app_name="Terminal", window_name="zsh"),
    ]
