"""
Timeline Agent Main Application
===============================

FastAPI entry point for the live timeline and windowed AI query engine.

Endpoints:
    GET    /                   - Service information
    GET    /health             - Liveness probe
    GET    /ready              - Readiness probe (frames loaded, no stream error)
    GET    /metrics            - Ingestion and query metrics
    GET    /frames             - Ordered frame store (newest first)
    GET    /frames/current     - Batch under the playback cursor
    POST   /frames/cursor      - Move the playback cursor
    POST   /refresh            - Clear and re-ingest today's window
    POST   /selection/pointer  - Pointer gesture on the 24h axis
    GET    /selection          - Current selection
    DELETE /selection          - Dismiss selection (resets the conversation)
    GET    /agents             - Available context agents
    POST   /agents/active      - Choose the active agent
    POST   /conversation       - Start a fresh conversation
    GET    /conversation       - Conversation so far (live message included)
    POST   /query              - Ask about the selection (streams text deltas)
    POST   /query/stop         - Abort the in-flight query
    GET    /notices            - User-facing failure notices
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Literal, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from timeline_agent.collaborators import NoticeBoard
from timeline_agent.config import settings
from timeline_agent.errors import QueryRejected
from timeline_agent.models.frames import FrameBatch, format_utc
from timeline_agent.session import TimelineSession
from timeline_agent.timeaxis.mapper import percent_for_batch


logger = logging.getLogger(__name__)


# =============================================================================
# Request Models
# =============================================================================

class PointerEvent(BaseModel):
    """Pointer gesture on the timeline axis."""

    action: Literal["down", "move", "up"]
    percent: float = Field(default=0.0, description="Horizontal position, 0-100")


class CursorMove(BaseModel):
    """Absolute (index) or relative (delta) cursor move."""

    index: Optional[int] = None
    delta: Optional[int] = None


class AgentChoice(BaseModel):
    agent_id: str


class QueryRequest(BaseModel):
    question: str
    agent_id: Optional[str] = None


# =============================================================================
# Serialisation helpers
# =============================================================================

def _batch_summary(batch: FrameBatch, session: TimelineSession, include_images: bool) -> dict:
    devices = []
    for device in batch.devices:
        entry = {
            "device_id": device.device_id,
            "app_name": device.metadata.app_name,
            "window_name": device.metadata.window_name,
            "audio_segments": len(device.audio),
        }
        if include_images:
            entry["frame"] = device.frame
        devices.append(entry)

    return {
        "timestamp": batch.timestamp_iso,
        "percent": round(percent_for_batch(batch, session.clock.tzinfo), 4),
        "devices": devices,
    }


def _session(request: Request) -> TimelineSession:
    return request.app.state.session


# =============================================================================
# Application Factory
# =============================================================================

def create_app(
    session_factory: Optional[Callable[[], TimelineSession]] = None,
    autostart: Optional[bool] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        session_factory: Builds the session at startup (default: from settings)
        autostart: Start ingestion at startup (default: stream.autostart)
    """
    if session_factory is None:
        def session_factory() -> TimelineSession:
            return TimelineSession.from_settings(settings)
    if autostart is None:
        autostart = settings.stream.autostart

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan: one session per process, stopped on shutdown."""
        app.state.started_at = time.time()
        logger.info(f"Starting {settings.service.name} {settings.service.version}")

        session = session_factory()
        app.state.session = session
        if autostart:
            await session.start()

        yield

        logger.info("Shutting down gracefully...")
        await session.stop()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="TimelineQueryAgent",
        description="Live frame timeline with windowed AI queries",
        version=settings.service.version,
        lifespan=lifespan,
    )

    # -------------------------------------------------------------------------
    # Service endpoints
    # -------------------------------------------------------------------------

    @app.get("/")
    async def root() -> JSONResponse:
        """Service information endpoint."""
        return JSONResponse({
            "service": settings.service.name,
            "version": settings.service.version,
            "stream_url": settings.stream.url,
            "model": settings.completion.model,
            "status": "running",
        })

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        """Liveness probe - always 200 while the process is up."""
        return JSONResponse({
            "status": "healthy",
            "uptime_seconds": round(time.time() - request.app.state.started_at, 1),
        })

    @app.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        """
        Readiness probe.

        Returns 200 once the stream has delivered frames or finished its
        backfill without error, 503 while loading or after a stream error.
        """
        ingestor = _session(request).ingestor
        body = {
            "loading": ingestor.loading,
            "error": ingestor.error,
            "frames": len(ingestor.store),
            "stream_running": ingestor.running,
        }
        if ingestor.loading or ingestor.error:
            return JSONResponse({"status": "not_ready", **body}, status_code=503)
        return JSONResponse({"status": "ready", **body})

    @app.get("/metrics")
    async def metrics(request: Request) -> JSONResponse:
        """Detailed metrics for observability."""
        session = _session(request)
        return JSONResponse({
            "uptime_seconds": round(time.time() - request.app.state.started_at, 1),
            "stream": session.ingestor.metrics.to_dict(),
            "store": session.store.metrics(),
            "query_state": session.engine.state.value,
            "conversation_length": len(session.engine.conversation),
        })

    # -------------------------------------------------------------------------
    # Frames
    # -------------------------------------------------------------------------

    @app.get("/frames")
    async def frames(
        request: Request,
        limit: int = 100,
        offset: int = 0,
        include_images: bool = False,
    ) -> JSONResponse:
        session = _session(request)
        snapshot = session.store.snapshot()
        page = snapshot[max(0, offset):max(0, offset) + max(0, limit)]
        return JSONResponse({
            "total": len(snapshot),
            "loading": session.ingestor.loading,
            "error": session.ingestor.error,
            "cursor": session.store.cursor,
            "now_percent": round(session.now_percent(), 4),
            "frames": [_batch_summary(batch, session, include_images) for batch in page],
        })

    @app.get("/frames/current")
    async def current_frame(request: Request) -> JSONResponse:
        session = _session(request)
        batch = session.store.current
        if batch is None:
            return JSONResponse({"error": "No frame loaded yet"}, status_code=404)
        return JSONResponse({
            "cursor": session.store.cursor,
            "percent": session.current_percent(),
            "batch": batch.model_dump(mode="json"),
        })

    @app.post("/frames/cursor")
    async def move_cursor(request: Request, move: CursorMove) -> JSONResponse:
        session = _session(request)
        if move.index is not None:
            batch = session.store.seek(move.index)
        else:
            batch = session.store.step(move.delta or 0)
        return JSONResponse({
            "cursor": session.store.cursor,
            "timestamp": batch.timestamp_iso if batch else None,
        })

    @app.post("/refresh")
    async def refresh(request: Request) -> JSONResponse:
        session = _session(request)
        await session.refresh()
        start, end = session.ingestor.window
        return JSONResponse({
            "status": "refreshing",
            "start_time": format_utc(start),
            "end_time": format_utc(end),
        })

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    @app.post("/selection/pointer")
    async def pointer(request: Request, event: PointerEvent) -> JSONResponse:
        session = _session(request)
        if event.action == "down":
            session.pointer_down(event.percent)
        elif event.action == "move":
            session.pointer_move(event.percent)
        else:
            session.pointer_up()
        return JSONResponse(session.selector.to_dict())

    @app.get("/selection")
    async def get_selection(request: Request) -> JSONResponse:
        session = _session(request)
        return JSONResponse({
            **session.selector.to_dict(),
            "frames": len(session.frames_in_selection()),
        })

    @app.delete("/selection")
    async def dismiss_selection(request: Request) -> JSONResponse:
        session = _session(request)
        await session.dismiss()
        return JSONResponse(session.selector.to_dict())

    # -------------------------------------------------------------------------
    # Agents, conversation and queries
    # -------------------------------------------------------------------------

    @app.get("/agents")
    async def agents(request: Request) -> JSONResponse:
        session = _session(request)
        return JSONResponse({
            "active": session.active_agent.id,
            "agents": [agent.to_dict() for agent in session.registry.agents()],
        })

    @app.post("/agents/active")
    async def choose_agent(request: Request, choice: AgentChoice) -> JSONResponse:
        agent = _session(request).select_agent(choice.agent_id)
        return JSONResponse({"active": agent.id})

    @app.post("/conversation")
    async def open_conversation(request: Request) -> JSONResponse:
        await _session(request).open_conversation()
        return JSONResponse({"messages": []})

    @app.get("/conversation")
    async def conversation(request: Request) -> JSONResponse:
        engine = _session(request).engine
        return JSONResponse({
            "state": engine.state.value,
            "messages": engine.conversation.to_list(),
        })

    @app.post("/query")
    async def query(request: Request, body: QueryRequest):
        """Ask about the committed selection; the answer streams as plain text."""
        session = _session(request)
        try:
            handle = await session.ask(body.question, body.agent_id)
        except QueryRejected as e:
            return JSONResponse({"error": str(e)}, status_code=400)

        return StreamingResponse(
            handle.deltas(),
            media_type="text/plain; charset=utf-8",
            headers={"X-Query-Id": handle.query_id},
        )

    @app.post("/query/stop")
    async def stop_query(request: Request) -> JSONResponse:
        session = _session(request)
        cancelled = await session.stop_query()
        return JSONResponse({
            "cancelled": cancelled,
            "state": session.engine.state.value,
        })

    @app.get("/notices")
    async def notices(request: Request) -> JSONResponse:
        notifier = _session(request).notifier
        if isinstance(notifier, NoticeBoard):
            return JSONResponse({"notices": notifier.notices()})
        return JSONResponse({"notices": []})

    return app


app = create_app()


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "timeline_agent.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=False,
    )
