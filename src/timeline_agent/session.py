"""
Timeline Session
================

Explicit owner of one timeline view: frame ingestion, range selection,
context agents and the AI conversation.

Each session is independent; nothing here lives at module level, so
several sessions can coexist and the caller controls their lifetime.

Control Flow:
    gesture -> selector -> (committed range)
    ask()   -> store snapshot -> agent reducer -> query engine
    dismiss -> selector IDLE + conversation reset + in-flight query aborted
"""

import logging
from datetime import timedelta
from typing import List, Optional

from timeline_agent.collaborators import Clock, NoticeBoard, Notifier, SystemClock
from timeline_agent.config import Settings
from timeline_agent.context.registry import ContextAgent, ContextSelectorRegistry
from timeline_agent.models.frames import FrameBatch
from timeline_agent.models.selection import SelectionRange
from timeline_agent.query.client import CompletionClient, OpenAICompletionClient
from timeline_agent.query.engine import QueryEngine, QueryHandle
from timeline_agent.stream.ingestor import FrameStreamIngestor, TransportFactory
from timeline_agent.stream.store import FrameStore
from timeline_agent.timeaxis.mapper import percent_for_batch, percent_for_instant
from timeline_agent.timeaxis.selector import RangeSelector


logger = logging.getLogger(__name__)


class TimelineSession:
    """
    One timeline + AI panel.

    Attributes:
        ingestor: Live frame stream consumer (single writer of the store)
        selector: Range selection state machine
        registry: Available context agents
        engine: Streaming query engine and its conversation
        clock: Viewer clock
        notifier: Receives user-facing failure notices
    """

    def __init__(
        self,
        ingestor: FrameStreamIngestor,
        engine: QueryEngine,
        registry: Optional[ContextSelectorRegistry] = None,
        clock: Optional[Clock] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.ingestor = ingestor
        self.engine = engine
        self.registry = registry or ContextSelectorRegistry()
        self.clock = clock or ingestor.clock
        self.notifier = notifier
        self.selector = RangeSelector(reference_date=lambda: self.clock.now().date())

        self._active_agent: ContextAgent = self.registry.default

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport_factory: Optional[TransportFactory] = None,
        completion_client: Optional[CompletionClient] = None,
        clock: Optional[Clock] = None,
        notifier: Optional[Notifier] = None,
    ) -> "TimelineSession":
        """
        Build a session wired from configuration.

        Collaborators passed explicitly replace the configured ones.
        """
        clock = clock or SystemClock(settings.clock.timezone)
        notifier = notifier or NoticeBoard()

        ingestor = FrameStreamIngestor(
            url=settings.stream.url,
            clock=clock,
            store=FrameStore(),
            notifier=notifier,
            transport_factory=transport_factory,
            end_margin=timedelta(minutes=settings.stream.end_margin_minutes),
            order=settings.stream.order,
            keep_alive_sentinel=settings.stream.keep_alive_sentinel,
            connect_timeout=settings.stream.connect_timeout_seconds,
        )

        if completion_client is None:
            completion_client = OpenAICompletionClient(
                api_key=settings.completion.api_key,
                model=settings.completion.model,
                base_url=settings.completion.base_url,
            )
        engine = QueryEngine(client=completion_client, clock=clock, notifier=notifier)

        registry = ContextSelectorRegistry(default_id=settings.agents.default_agent)

        return cls(
            ingestor=ingestor,
            engine=engine,
            registry=registry,
            clock=clock,
            notifier=notifier,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def store(self) -> FrameStore:
        return self.ingestor.store

    async def start(self) -> None:
        """Begin ingesting today's window."""
        logger.info("Timeline session starting")
        await self.ingestor.refresh()

    async def refresh(self) -> None:
        await self.ingestor.refresh()

    async def stop(self) -> None:
        """Abort any query and release the stream. Idempotent."""
        await self.engine.cancel()
        await self.ingestor.stop()
        logger.info("Timeline session stopped")

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def pointer_down(self, percent: float) -> SelectionRange:
        return self.selector.pointer_down(percent)

    def pointer_move(self, percent: float) -> Optional[SelectionRange]:
        return self.selector.pointer_move(percent)

    def pointer_up(self) -> Optional[SelectionRange]:
        return self.selector.pointer_up()

    async def dismiss(self) -> None:
        """Clear the selection, abort any live query and reset the conversation."""
        self.selector.dismiss()
        await self.engine.reset()

    def frames_in_selection(self) -> List[FrameBatch]:
        selection = self.selector.committed
        if selection is None:
            return []
        return self.store.in_range(selection)

    # -------------------------------------------------------------------------
    # Agents and queries
    # -------------------------------------------------------------------------

    @property
    def active_agent(self) -> ContextAgent:
        return self._active_agent

    def select_agent(self, agent_id: str) -> ContextAgent:
        self._active_agent = self.registry.resolve(agent_id)
        return self._active_agent

    async def open_conversation(self) -> None:
        """Start a fresh query session on the current selection."""
        await self.engine.reset()

    async def ask(self, question: str, agent_id: Optional[str] = None) -> QueryHandle:
        """
        Ask about the committed selection.

        The store is read once here; frames arriving afterwards do not
        affect the running query.

        Raises:
            QueryRejected: Blank question or no committed selection
        """
        agent = self.registry.resolve(agent_id) if agent_id else self._active_agent
        selection = self.selector.committed
        frames = self.store.in_range(selection) if selection is not None else []
        payload = agent.select(frames)

        logger.debug(f"Context for query: agent={agent.id}, frames={len(frames)}")
        handle = await self.engine.submit(question, payload, agent, selection)
        self._active_agent = agent
        return handle

    async def stop_query(self) -> bool:
        return await self.engine.cancel()

    # -------------------------------------------------------------------------
    # Axis helpers
    # -------------------------------------------------------------------------

    def now_percent(self) -> float:
        """Position of the "now" marker on the axis."""
        return percent_for_instant(self.clock.now(), self.clock.tzinfo)

    def current_percent(self) -> Optional[float]:
        """Position of the batch under the playback cursor."""
        batch = self.store.current
        if batch is None:
            return None
        return percent_for_batch(batch, self.clock.tzinfo)
