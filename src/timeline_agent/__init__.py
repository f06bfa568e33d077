"""
TimelineQueryAgent
==================

Live frame timeline with windowed, streaming AI queries.

This package ingests the time-ordered screen/audio frames pushed by a capture
server, lets a user select a time window on a 24-hour axis, and answers
natural-language questions about that window through an OpenAI-compatible
completion service.

Components:
    - stream: Frame stream ingestion and the ordered frame store
    - timeaxis: 24-hour axis mapping and the range selector
    - context: Context agents reducing frames to prompt payloads
    - query: Cancellable streaming query engine
    - session: TimelineSession tying the above together

Example:
    from timeline_agent.config import settings
    from timeline_agent.session import TimelineSession

    session = TimelineSession.from_settings(settings)
    await session.start()
    session.pointer_down(40)
    session.pointer_move(45)
    session.pointer_up()
    handle = await session.ask("what was I working on?")
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
