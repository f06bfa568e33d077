"""
AI Streaming Query Engine
=========================

Turns a context payload plus a user question into an incrementally
rendered assistant answer.

State Machine:
    IDLE -> AWAITING_FIRST_TOKEN   submit() accepted, nothing rendered yet
    AWAITING_FIRST_TOKEN -> STREAMING   first delta arrived
    STREAMING -> IDLE              stream ended or was cancelled
    any active -> ERRORED -> IDLE  transport/upstream failure, notice sent

Rules:
    - One query in flight per conversation; a second submit() cancels
      the first before starting
    - Each delta rewrites the single live assistant message with the
      cumulative text; it is committed to history when the round ends
    - Partial output is kept on cancel and on failure
    - Failures are surfaced once through the notifier, never retried
"""

import asyncio
import logging
import uuid
from enum import Enum
from typing import Any, AsyncIterator, Optional

from timeline_agent.collaborators import Clock, Notifier
from timeline_agent.context.registry import ContextAgent
from timeline_agent.errors import QueryRejected
from timeline_agent.models.conversation import Conversation
from timeline_agent.models.selection import SelectionRange
from timeline_agent.query.client import CompletionClient
from timeline_agent.query.prompt import build_messages


logger = logging.getLogger(__name__)


GENERIC_FAILURE_MESSAGE = "Failed to generate AI response. Please try again."


class QueryState(str, Enum):
    """Query engine states."""

    IDLE = "IDLE"
    AWAITING_FIRST_TOKEN = "AWAITING_FIRST_TOKEN"
    STREAMING = "STREAMING"
    ERRORED = "ERRORED"


class QueryOutcome(str, Enum):
    """How a query round ended."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class QueryHandle:
    """
    Caller's view of one in-flight query.

    Deltas are buffered, so a consumer that starts iterating late
    still receives every delta in order.

    Example:
        handle = await engine.submit(question, payload, agent, selection)
        async for delta in handle.deltas():
            print(delta, end="")
    """

    def __init__(self) -> None:
        self.query_id = uuid.uuid4().hex[:12]
        self._queue: asyncio.Queue = asyncio.Queue()
        self._done = asyncio.Event()
        self._text = ""
        self._outcome: Optional[QueryOutcome] = None

    @property
    def text(self) -> str:
        """Cumulative answer so far."""
        return self._text

    @property
    def outcome(self) -> Optional[QueryOutcome]:
        return self._outcome

    @property
    def done(self) -> bool:
        return self._done.is_set()

    async def deltas(self) -> AsyncIterator[str]:
        while True:
            delta = await self._queue.get()
            if delta is None:
                return
            yield delta

    async def wait(self) -> QueryOutcome:
        await self._done.wait()
        return self._outcome

    def _push(self, delta: str) -> None:
        self._text += delta
        self._queue.put_nowait(delta)

    def _finish(self, outcome: QueryOutcome) -> None:
        self._outcome = outcome
        self._queue.put_nowait(None)
        self._done.set()


class QueryEngine:
    """
    Cancellable streaming query runner bound to one Conversation.

    Attributes:
        conversation: Chat history this engine writes assistant turns into
        state: Current QueryState
    """

    def __init__(
        self,
        client: CompletionClient,
        clock: Clock,
        conversation: Optional[Conversation] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        """
        Initialize query engine.

        Args:
            client: Streaming completion client
            clock: Viewer clock for the system instruction
            conversation: History to write into (a fresh one if None)
            notifier: Receives the generic failure notice
        """
        self.client = client
        self.clock = clock
        self.conversation = conversation if conversation is not None else Conversation()
        self.notifier = notifier

        self._state = QueryState.IDLE
        self._task: Optional[asyncio.Task] = None
        self._handle: Optional[QueryHandle] = None
        # Held from the busy check until the new task exists
        self._submit_lock = asyncio.Lock()

    @property
    def state(self) -> QueryState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state in (QueryState.AWAITING_FIRST_TOKEN, QueryState.STREAMING)

    @property
    def current(self) -> Optional[QueryHandle]:
        """Handle of the latest query, finished or not."""
        return self._handle

    async def submit(
        self,
        question: str,
        context_payload: Any,
        agent: ContextAgent,
        selection: Optional[SelectionRange],
    ) -> QueryHandle:
        """
        Start a query round.

        Args:
            question: User question, must be non-empty after trimming
            context_payload: Reduced context for the selected frames
            agent: Agent whose description frames the system instruction
            selection: Committed selection the context was built from

        Returns:
            Handle streaming the answer's deltas.

        Raises:
            QueryRejected: If the question is blank or nothing is selected.
                The conversation is left untouched.
        """
        if not question or not question.strip():
            raise QueryRejected("question is empty")
        if selection is None:
            raise QueryRejected("no committed selection")

        async with self._submit_lock:
            if self._task is not None and not self._task.done():
                logger.info("New query submitted while streaming, cancelling the previous one")
                await self.cancel()

            prior_turns = self.conversation.history
            self.conversation.append_user(question)
            messages = build_messages(prior_turns, question, context_payload, agent, self.clock)

            handle = QueryHandle()
            self._handle = handle
            self._state = QueryState.AWAITING_FIRST_TOKEN
            self._task = asyncio.create_task(
                self._run(handle, messages),
                name=f"completion_stream_{handle.query_id}",
            )

        logger.info(
            f"Query {handle.query_id} submitted: agent={agent.id}, "
            f"prior_turns={len(prior_turns)}, "
            f"context_chars={len(messages[-1]['content'])}"
        )
        return handle

    async def cancel(self) -> bool:
        """
        Abort the in-flight query, keeping any partial answer.

        Returns:
            True if a query was cancelled, False if nothing was running.
        """
        task = self._task
        if task is None or task.done():
            return False

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        # A task cancelled before its first step never enters _run
        handle = self._handle
        if handle is not None and not handle.done:
            self.conversation.commit_live(keep_empty=False)
            self._state = QueryState.IDLE
            handle._finish(QueryOutcome.CANCELLED)
        return True

    async def reset(self) -> None:
        """Cancel anything in flight and wipe the conversation."""
        await self.cancel()
        self.conversation.clear()
        self._handle = None
        logger.info("Conversation reset")

    async def _run(self, handle: QueryHandle, messages: list) -> None:
        live = None
        outcome = QueryOutcome.COMPLETED

        try:
            live = self.conversation.begin_assistant()
            async for delta in self.client.stream(messages):
                if not delta:
                    continue
                live.append(delta)
                self._state = QueryState.STREAMING
                handle._push(delta)

        except asyncio.CancelledError:
            outcome = QueryOutcome.CANCELLED
            logger.info(f"Query {handle.query_id} cancelled after {len(handle.text)} chars")
            raise

        except Exception as e:
            outcome = QueryOutcome.FAILED
            self._state = QueryState.ERRORED
            logger.error(f"Error generating AI response (query {handle.query_id}): {e}")
            if self.notifier is not None:
                self.notifier.notify_failure(GENERIC_FAILURE_MESSAGE)

        finally:
            if live is not None:
                self.conversation.commit_live(keep_empty=outcome is QueryOutcome.COMPLETED)
            self._state = QueryState.IDLE
            handle._finish(outcome)

        logger.info(f"Query {handle.query_id} {outcome.value}: {len(handle.text)} chars")
