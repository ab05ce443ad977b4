"""Unit tests for the HTTP API."""

from datetime import date, time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from app.core.outreach.bookings import BookingLedger, get_booking_ledger
from app.core.outreach.calendar import CalendarSourceError, get_calendar_source
from app.core.outreach.models import (
    BusyEvent,
    ComponentScores,
    ScoredOffer,
    TimeWindow,
)
from app.core.outreach.orchestrator import (
    MissionError,
    MissionSnapshot,
    MissionStatus,
    get_orchestrator,
)
from app.core.outreach.scoring import ScoringError
from app.core.outreach.state import CallStatus
from app.infra.redis import RedisClient
from app.main import app


SLOT = TimeWindow(day=date(2026, 2, 10), start=time(9), end=time(10))

START_BODY = {
    "description": "Annual checkup",
    "category": "medical",
    "location": "San Francisco",
    "availability": [{"day": "2026-02-10", "start": "08:00", "end": "12:00"}],
    "busy_events": [{"start": "2026-02-10T09:00:00", "end": "2026-02-10T10:00:00"}],
    "request_id": "req-1",
}


def snapshot(status: MissionStatus = MissionStatus.RUNNING, results=None) -> MissionSnapshot:
    return MissionSnapshot(
        mission_id="m-1",
        request_id="req-1",
        status=status,
        calls=(),
        completed=0,
        total=2,
        results=results,
    )


@pytest.fixture
def handle(booking_request):
    mock_handle = MagicMock()
    mock_handle.mission_id = "m-1"
    mock_handle.request = booking_request
    mock_handle.status = MissionStatus.RUNNING
    mock_handle.results = None
    mock_handle.snapshot.return_value = snapshot()
    return mock_handle


@pytest.fixture
def orchestrator(handle):
    mock_orchestrator = MagicMock()
    mock_orchestrator.current = handle
    mock_orchestrator.start_mission = AsyncMock(return_value=handle)
    mock_orchestrator.stop_mission = AsyncMock(return_value=snapshot(MissionStatus.STOPPED))
    return mock_orchestrator


@pytest.fixture
def calendar():
    source = MagicMock()
    source.list_busy_events = AsyncMock(return_value=[])
    source.close = AsyncMock()
    return source


@pytest.fixture
def ledger():
    with patch("app.core.outreach.bookings.get_redis", AsyncMock(return_value=None)):
        yield BookingLedger()


@pytest.fixture
def client(orchestrator, calendar, ledger):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_calendar_source] = lambda: calendar
    app.dependency_overrides[get_booking_ledger] = lambda: ledger

    with patch.object(RedisClient, "get_client", AsyncMock(return_value=None)):
        with TestClient(app) as test_client:
            yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def scored_offer(make_provider) -> ScoredOffer:
    return ScoredOffer(
        provider=make_provider(),
        slot=SLOT,
        scores=ComponentScores(availability=100, rating=96, distance=65, total=92),
    )


class TestPlanningRoutes:
    """Tests for /planning."""

    def test_free_windows(self, client):
        response = client.post("/planning/free-windows", json={
            "availability": [{"day": "2026-02-10", "start": "08:00", "end": "18:00"}],
            "busy_events": [{"start": "2026-02-10T09:00:00", "end": "2026-02-10T10:00:00"}],
        })

        assert response.status_code == 200
        assert response.json()["free_windows"] == [
            {"day": "2026-02-10", "start": "08:00", "end": "09:00"},
            {"day": "2026-02-10", "start": "10:00", "end": "18:00"},
        ]

    def test_free_windows_reads_calendar(self, client, calendar):
        calendar.list_busy_events = AsyncMock(return_value=[
            BusyEvent("2026-02-10", "2026-02-11", all_day=True),
        ])

        response = client.post("/planning/free-windows", json={
            "availability": [{"day": "2026-02-10", "start": "08:00", "end": "18:00"}],
            "calendar_token": "token-123",
        })

        assert response.status_code == 200
        assert response.json()["free_windows"] == []
        calendar.list_busy_events.assert_called_once_with("token-123")

    def test_calendar_failure_is_bad_gateway(self, client, calendar):
        calendar.list_busy_events = AsyncMock(side_effect=CalendarSourceError("down"))

        response = client.post("/planning/free-windows", json={
            "availability": [{"day": "2026-02-10", "start": "08:00", "end": "18:00"}],
            "calendar_token": "token-123",
        })

        assert response.status_code == 502

    def test_inverted_window_rejected(self, client):
        response = client.post("/planning/free-windows", json={
            "availability": [{"day": "2026-02-10", "start": "18:00", "end": "08:00"}],
        })

        assert response.status_code == 422

    def test_offset_window_rejected(self, client):
        response = client.post("/planning/free-windows", json={
            "availability": [{"day": "2026-02-10", "start": "08:00Z", "end": "18:00Z"}],
        })

        assert response.status_code == 422

    def test_score(self, client):
        response = client.post("/planning/score", json={
            "offers": [
                {
                    "provider": {"id": "b", "name": "B", "category": "medical",
                                 "rating": 4.5, "distance": 2.4},
                    "slot": {"day": "2026-02-10", "start": "09:00", "end": "10:00"},
                },
                {
                    "provider": {"id": "a", "name": "A", "category": "medical",
                                 "rating": 4.8, "distance": 1.2},
                    "slot": {"day": "2026-02-10", "start": "09:00", "end": "10:00"},
                },
            ],
            "free_windows": [{"day": "2026-02-10", "start": "08:00", "end": "18:00"}],
        })

        assert response.status_code == 200
        results = response.json()["results"]
        assert [r["provider"]["id"] for r in results] == ["a", "b"]
        assert results[0]["scores"]["total"] == 92

    def test_score_bad_weights(self, client):
        response = client.post("/planning/score", json={
            "offers": [],
            "weights": {"availability": 0, "rating": 0, "distance": 0},
        })

        assert response.status_code == 422


class TestMissionRoutes:
    """Tests for /missions."""

    def test_start_mission(self, client, orchestrator):
        response = client.post("/missions", json=START_BODY)

        assert response.status_code == 201
        data = response.json()
        assert data["mission_id"] == "m-1"
        assert data["free_windows"] == [
            {"day": "2026-02-10", "start": "08:00", "end": "09:00"},
            {"day": "2026-02-10", "start": "10:00", "end": "12:00"},
        ]

        request = orchestrator.start_mission.call_args.args[0]
        assert request.id == "req-1"
        assert request.category.value == "medical"
        assert len(request.free_windows) == 2

    def test_start_requires_availability(self, client):
        response = client.post("/missions", json={**START_BODY, "availability": []})
        assert response.status_code == 422

    def test_start_bad_weights(self, client, orchestrator):
        orchestrator.start_mission = AsyncMock(side_effect=ScoringError("weights sum to zero"))

        response = client.post("/missions", json=START_BODY)

        assert response.status_code == 422

    def test_start_conflict(self, client, orchestrator):
        orchestrator.start_mission = AsyncMock(side_effect=MissionError("busy"))

        response = client.post("/missions", json=START_BODY)

        assert response.status_code == 409

    def test_current(self, client):
        response = client.get("/missions/current")

        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_current_without_mission(self, client, orchestrator):
        orchestrator.current = None

        assert client.get("/missions/current").status_code == 404
        assert client.post("/missions/current/stop").status_code == 404

    def test_stop(self, client, orchestrator):
        response = client.post("/missions/current/stop")

        assert response.status_code == 200
        assert response.json()["status"] == "stopped"
        orchestrator.stop_mission.assert_called_once()

    def test_takeover_and_resume(self, client, orchestrator):
        orchestrator.take_over.return_value = ["med-1"]
        orchestrator.resume.return_value = ["med-1"]

        taken = client.post("/missions/current/takeover", json={"provider_id": "med-1"})
        resumed = client.post("/missions/current/resume", json={})

        assert taken.json() == {"suspended": ["med-1"]}
        assert resumed.json() == {"resumed": ["med-1"]}
        orchestrator.take_over.assert_called_once_with("med-1")
        orchestrator.resume.assert_called_once_with(None)

    def test_takeover_rejected(self, client, orchestrator):
        orchestrator.take_over.side_effect = MissionError("Mission is done")

        response = client.post("/missions/current/takeover", json={})

        assert response.status_code == 409

    def test_send_message(self, client, orchestrator):
        utterance = MagicMock()
        utterance.to_dict.return_value = {"role": "user", "text": "Do you have Friday?"}
        orchestrator.send_message.return_value = utterance

        response = client.post(
            "/missions/current/calls/med-1/messages",
            json={"text": "Do you have Friday?"},
        )

        assert response.status_code == 201
        assert response.json()["role"] == "user"
        orchestrator.send_message.assert_called_once_with("med-1", "Do you have Friday?")

    def test_resolve_call(self, client, orchestrator):
        orchestrator.resolve_call.return_value = CallStatus.COMPLETE

        response = client.post(
            "/missions/current/calls/med-1/resolve",
            json={"slots": [{"day": "2026-02-10", "start": "09:00", "end": "10:00"}]},
        )

        assert response.status_code == 200
        assert response.json() == {"provider_id": "med-1", "status": "complete"}
        orchestrator.resolve_call.assert_called_once_with("med-1", [SLOT])

    def test_results_before_done(self, client):
        response = client.get("/missions/current/results")
        assert response.status_code == 409

    def test_results(self, client, handle, scored_offer):
        handle.results = (scored_offer,)
        handle.status = MissionStatus.DONE

        response = client.get("/missions/current/results")

        assert response.status_code == 200
        assert response.json()["results"][0]["provider"]["id"] == "med-1"


class TestBookingRoutes:
    """Tests for /bookings."""

    def test_confirm_list_cancel(self, client, handle, scored_offer):
        handle.results = (scored_offer,)
        handle.status = MissionStatus.DONE

        created = client.post("/bookings", json={
            "provider_id": "med-1",
            "slot": {"day": "2026-02-10", "start": "09:00", "end": "10:00"},
        })

        assert created.status_code == 201
        booking = created.json()
        assert booking["status"] == "confirmed"
        assert booking["request_id"] == "req-1"

        listed = client.get("/bookings").json()["bookings"]
        assert [b["id"] for b in listed] == [booking["id"]]

        cancelled = client.delete(f"/bookings/{booking['id']}")
        assert cancelled.json()["status"] == "cancelled"

    def test_confirm_before_done(self, client):
        response = client.post("/bookings", json={
            "provider_id": "med-1",
            "slot": {"day": "2026-02-10", "start": "09:00", "end": "10:00"},
        })
        assert response.status_code == 409

    def test_confirm_unknown_offer(self, client, handle, scored_offer):
        handle.results = (scored_offer,)
        handle.status = MissionStatus.DONE

        response = client.post("/bookings", json={
            "provider_id": "med-1",
            "slot": {"day": "2026-02-10", "start": "11:00", "end": "12:00"},
        })

        assert response.status_code == 404

    def test_cancel_unknown(self, client):
        assert client.delete("/bookings/missing").status_code == 404


class TestHealthRoutes:
    """Tests for /health."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_live(self, client):
        assert client.get("/health/live").status_code == 200

    def test_health_reports_mission(self, client, orchestrator):
        assert client.get("/health").json()["mission"] == "running"

        orchestrator.current = None
        assert client.get("/health").json()["mission"] == "idle"

    def test_ready(self, client):
        with patch("app.api.routes.health.check_redis_health", AsyncMock(return_value=True)), \
                patch("app.api.routes.health.settings") as mock_settings:
            mock_settings.anthropic_api_key = "sk-test"
            response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["checks"] == {"redis": "ok", "oracle": "ok"}

    def test_not_ready_without_oracle_key(self, client):
        with patch("app.api.routes.health.check_redis_health", AsyncMock(return_value=True)), \
                patch("app.api.routes.health.settings") as mock_settings:
            mock_settings.anthropic_api_key = None
            response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["checks"]["oracle"] == "not_configured"
