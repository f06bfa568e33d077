"""
HTTP API Tests
==============

End-to-end checks of the FastAPI surface with in-memory collaborators.
"""

import json
import time

import pytest
from fastapi.testclient import TestClient

from conftest import (
    FakeCompletionClient,
    FakeTransport,
    FakeTransportFactory,
    FixedClock,
    make_batch_payload,
)
from timeline_agent.collaborators import NoticeBoard
from timeline_agent.errors import StreamTransportError
from timeline_agent.main import create_app
from timeline_agent.query.engine import QueryEngine
from timeline_agent.session import TimelineSession
from timeline_agent.stream.ingestor import KEEP_ALIVE_SENTINEL, FrameStreamIngestor


# 09:00 is 37.5% of the axis
NINE_AM = 37.5
QUARTER_PAST_NINE = 38.5416667


def _events() -> list:
    return [
        KEEP_ALIVE_SENTINEL,
        json.dumps(make_batch_payload("2024-11-27T09:00:00.000Z", app_name="Terminal")),
        json.dumps(make_batch_payload("2024-11-27T09:00:02.000Z", app_name="Code")),
        json.dumps(make_batch_payload("2024-11-27T09:00:01.000Z", app_name="Slack")),
        json.dumps(make_batch_payload("2024-11-27T11:00:00.000Z", app_name="Mail")),
    ]


def _session_factory(viewer_now, transport, completion):
    def factory() -> TimelineSession:
        clock = FixedClock(viewer_now)
        notifier = NoticeBoard()
        ingestor = FrameStreamIngestor(
            url="http://localhost:3030/stream/frames",
            clock=clock,
            notifier=notifier,
            transport_factory=FakeTransportFactory(transport),
        )
        engine = QueryEngine(completion, clock, notifier=notifier)
        return TimelineSession(ingestor, engine, clock=clock, notifier=notifier)

    return factory


def _wait_for(client: TestClient, predicate, attempts: int = 100) -> dict:
    for _ in range(attempts):
        body = client.get("/ready").json()
        if predicate(body):
            return body
        time.sleep(0.01)
    raise AssertionError(f"condition never met, last readiness: {body}")


def _select(client: TestClient, start: float, end: float) -> dict:
    client.post("/selection/pointer", json={"action": "down", "percent": start})
    client.post("/selection/pointer", json={"action": "move", "percent": end})
    return client.post("/selection/pointer", json={"action": "up"}).json()


@pytest.fixture
def completion() -> FakeCompletionClient:
    return FakeCompletionClient(["Mostly ", "coding."])


@pytest.fixture
def client(viewer_now, completion):
    factory = _session_factory(viewer_now, FakeTransport(_events()), completion)
    app = create_app(session_factory=factory, autostart=True)
    with TestClient(app) as test_client:
        _wait_for(test_client, lambda body: body["status"] == "ready")
        yield test_client


class TestServiceEndpoints:
    """Service info, probes and metrics."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, client):
        body = client.get("/").json()
        assert body["status"] == "running"
        assert "stream_url" in body

    def test_ready_after_backfill(self, client):
        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json()["frames"] == 4
        assert response.json()["error"] is None

    def test_metrics(self, client):
        body = client.get("/metrics").json()
        assert body["stream"]["frames_inserted"] == 4
        assert body["stream"]["keep_alives"] == 1
        assert body["store"]["size"] == 4
        assert body["query_state"] == "IDLE"


class TestFrames:
    """Frame listing and playback cursor."""

    def test_frames_are_newest_first(self, client):
        body = client.get("/frames").json()

        assert body["total"] == 4
        assert [f["timestamp"] for f in body["frames"]] == [
            "2024-11-27T11:00:00.000Z",
            "2024-11-27T09:00:02.000Z",
            "2024-11-27T09:00:01.000Z",
            "2024-11-27T09:00:00.000Z",
        ]
        assert "frame" not in body["frames"][0]["devices"][0]

    def test_frames_paging_and_images(self, client):
        body = client.get("/frames", params={"limit": 1, "offset": 1, "include_images": True}).json()
        assert len(body["frames"]) == 1
        assert body["frames"][0]["devices"][0]["frame"] == "iVBORw0KGgo="

    def test_frame_percent_is_local(self, client):
        # 11:00Z is 13:00 for the viewer
        body = client.get("/frames", params={"limit": 1}).json()
        assert body["frames"][0]["percent"] == pytest.approx(13 / 24 * 100, abs=1e-3)

    def test_cursor_moves(self, client):
        current = client.get("/frames/current").json()
        assert current["cursor"] == 0
        assert current["batch"]["devices"][0]["metadata"]["app_name"] == "Mail"

        moved = client.post("/frames/cursor", json={"delta": 2}).json()
        assert moved == {"cursor": 2, "timestamp": "2024-11-27T09:00:01.000Z"}

        moved = client.post("/frames/cursor", json={"index": 99}).json()
        assert moved["cursor"] == 3


class TestSelectionAndQuery:
    """Selection gestures feeding the query engine."""

    def test_query_without_selection_is_rejected(self, client, completion):
        response = client.post("/query", json={"question": "what happened?"})
        assert response.status_code == 400
        assert completion.requests == []
        assert client.get("/conversation").json()["messages"] == []

    def test_blank_question_is_rejected(self, client):
        _select(client, NINE_AM, QUARTER_PAST_NINE)
        response = client.post("/query", json={"question": "  "})
        assert response.status_code == 400

    def test_selection_counts_frames(self, client):
        body = _select(client, QUARTER_PAST_NINE, NINE_AM)
        assert body["state"] == "COMMITTED"
        assert body["selection"] == {
            "start": "2024-11-27T09:00:00.000Z",
            "end": "2024-11-27T09:15:00.000Z",
        }
        assert client.get("/selection").json()["frames"] == 3

    def test_query_streams_answer(self, client, completion):
        _select(client, NINE_AM, QUARTER_PAST_NINE)

        response = client.post(
            "/query",
            json={"question": "what was I doing?", "agent_id": "window-tracker"},
        )
        assert response.status_code == 200
        assert response.text == "Mostly coding."
        assert response.headers["x-query-id"]

        sent = completion.requests[0]
        assert '"window tracker"' in sent[0]["content"]
        context = sent[-1]["content"]
        assert '"app_name":"Code"' in context
        assert '"app_name":"Mail"' not in context
        assert "iVBORw0KGgo=" not in context

        conversation = client.get("/conversation").json()
        assert conversation["state"] == "IDLE"
        assert [m["role"] for m in conversation["messages"]] == ["user", "assistant"]
        assert conversation["messages"][1]["content"] == "Mostly coding."

    def test_dismiss_resets_conversation(self, client):
        _select(client, NINE_AM, QUARTER_PAST_NINE)
        client.post("/query", json={"question": "what was I doing?"})

        body = client.delete("/selection").json()
        assert body["state"] == "IDLE"
        assert client.get("/conversation").json()["messages"] == []

    def test_open_conversation_starts_fresh(self, client):
        _select(client, NINE_AM, QUARTER_PAST_NINE)
        client.post("/query", json={"question": "first"})

        assert client.post("/conversation").json() == {"messages": []}
        assert client.get("/conversation").json()["messages"] == []
        assert client.get("/selection").json()["state"] == "COMMITTED"

    def test_stop_when_idle(self, client):
        body = client.post("/query/stop").json()
        assert body == {"cancelled": False, "state": "IDLE"}


class TestAgents:
    """Agent listing and choice."""

    def test_list_agents(self, client):
        body = client.get("/agents").json()
        assert body["active"] == "context-master"
        assert [a["id"] for a in body["agents"]] == [
            "context-master",
            "window-tracker",
            "text-scanner",
            "voice-analyzer",
        ]

    def test_choose_agent(self, client):
        assert client.post("/agents/active", json={"agent_id": "text-scanner"}).json() == {
            "active": "text-scanner"
        }
        assert client.get("/agents").json()["active"] == "text-scanner"

    def test_unknown_agent_falls_back(self, client):
        body = client.post("/agents/active", json={"agent_id": "psychic"}).json()
        assert body == {"active": "context-master"}


class TestStreamFailure:
    """A dropped stream is reported, not retried."""

    def test_failure_is_reported_once(self, viewer_now, completion):
        transport = FakeTransport([], error=StreamTransportError("connection reset"))
        factory = _session_factory(viewer_now, transport, completion)
        app = create_app(session_factory=factory, autostart=True)

        with TestClient(app) as client:
            body = _wait_for(client, lambda body: body["error"] is not None)
            assert body["error"] == "connection lost. retrying..."
            assert body["loading"] is False
            assert client.get("/ready").status_code == 503

            notices = client.get("/notices").json()["notices"]
            assert len(notices) == 1
            assert notices[0]["title"] == "Error"

    def test_refresh_after_failure(self, viewer_now, completion):
        transport = FakeTransport([], error=StreamTransportError("connection reset"))
        factory = _session_factory(viewer_now, transport, completion)
        app = create_app(session_factory=factory, autostart=True)

        with TestClient(app) as client:
            _wait_for(client, lambda body: body["error"] is not None)
            body = client.post("/refresh").json()

            assert body["status"] == "refreshing"
            assert body["start_time"] == "2024-11-26T22:00:00.000Z"
            assert body["end_time"] == "2024-11-27T12:28:00.000Z"
            ready = _wait_for(client, lambda body: body["status"] == "ready")
            assert ready["frames"] == 0
