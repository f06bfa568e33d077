"""
Timeline Session Tests
======================

Wiring from settings and the selection -> context -> query flow.
"""

import asyncio
import json

import pytest

from conftest import (
    FakeCompletionClient,
    FakeTransport,
    FakeTransportFactory,
    make_batch_payload,
    run,
)
from timeline_agent.config import Settings
from timeline_agent.errors import QueryRejected
from timeline_agent.query.engine import QueryOutcome
from timeline_agent.session import TimelineSession


def _session(clock, notifier, completion, events=()):
    settings = Settings.model_validate({
        "stream": {"url": "http://capture:3030/stream/frames", "end_margin_minutes": 0},
        "agents": {"default_agent": "voice-analyzer"},
    })
    factory = FakeTransportFactory(FakeTransport(list(events)))
    session = TimelineSession.from_settings(
        settings,
        transport_factory=factory,
        completion_client=completion,
        clock=clock,
        notifier=notifier,
    )
    return session, factory


class TestWiring:
    """Construction from settings."""

    def test_from_settings(self, clock, notifier):
        session, factory = _session(clock, notifier, FakeCompletionClient([]))

        assert session.active_agent.id == "voice-analyzer"
        assert session.ingestor.url == "http://capture:3030/stream/frames"
        assert session.ingestor.notifier is notifier
        assert session.engine.notifier is notifier

        async def scenario():
            await session.start()
            await session.ingestor.wait_closed()
            await session.stop()

        run(scenario())

        assert factory.requests[0]["end_time"] == "2024-11-27T12:30:00.000Z"

    def test_now_percent(self, clock, notifier):
        session, _ = _session(clock, notifier, FakeCompletionClient([]))
        # 14:30 local
        assert round(session.now_percent(), 4) == round(14.5 / 24 * 100, 4)
        assert session.current_percent() is None


class TestAsk:
    """Questions about the committed selection."""

    def test_context_snapshot_uses_active_agent(self, clock, notifier, sample_audio):
        events = [
            json.dumps(make_batch_payload("2024-11-27T09:00:00Z", audio=sample_audio)),
            json.dumps(make_batch_payload("2024-11-27T13:00:00Z")),
        ]
        completion = FakeCompletionClient(["You discussed the release."])
        session, _ = _session(clock, notifier, completion, events)

        async def scenario():
            await session.start()
            await session.ingestor.wait_closed()

            session.pointer_down(37.5)
            session.pointer_move(40)
            session.pointer_up()
            assert len(session.frames_in_selection()) == 1

            handle = await session.ask("what did I talk about?")
            outcome = await handle.wait()
            await session.stop()
            return outcome

        assert run(scenario()) is QueryOutcome.COMPLETED

        context = completion.requests[0][-1]["content"]
        assert "let's ship the release today" in context
        assert '"ocr_text"' not in context

    def test_dismiss_aborts_and_clears(self, clock, notifier):
        completion = FakeCompletionClient(["partial"], hang=True)
        session, _ = _session(clock, notifier, completion)

        async def scenario():
            session.pointer_down(10)
            session.pointer_up()
            handle = await session.ask("anything?")
            while not handle.text:
                await asyncio.sleep(0)
            await session.dismiss()
            return handle

        handle = run(scenario())

        assert handle.outcome is QueryOutcome.CANCELLED
        assert len(session.engine.conversation) == 0
        assert session.selector.committed is None
        assert session.frames_in_selection() == []

    def test_rejected_question_keeps_active_agent(self, clock, notifier):
        """Verify a rejected ask does not switch the active agent."""
        completion = FakeCompletionClient(["never"])
        session, _ = _session(clock, notifier, completion)
        session.pointer_down(10)
        session.pointer_up()

        async def scenario():
            with pytest.raises(QueryRejected):
                await session.ask("   ", agent_id="window-tracker")

        run(scenario())

        assert session.active_agent.id == "voice-analyzer"
        assert completion.requests == []

    def test_accepted_question_switches_agent(self, clock, notifier):
        completion = FakeCompletionClient(["ok"])
        session, _ = _session(clock, notifier, completion)
        session.pointer_down(10)
        session.pointer_up()

        async def scenario():
            handle = await session.ask("what window?", agent_id="window-tracker")
            return await handle.wait()

        assert run(scenario()) is QueryOutcome.COMPLETED
        assert session.active_agent.id == "window-tracker"
