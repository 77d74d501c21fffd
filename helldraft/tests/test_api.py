"""
Tests for the API service and the FastAPI bridge.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from ..api import APIService, create_app
from ..api.schemas import (
    ActionEnvelope,
    ActionResponse,
    CreateSessionRequest,
    ErrorCode,
    ErrorResponse,
    JoinRequest,
    KickRequest,
    PlayerRequest,
    StartRunRequest,
    SubmitActionRequest,
)
from ..config import Settings


def run(coro):
    return asyncio.run(coro)


def submit(player_id, action_type, **payload):
    return SubmitActionRequest(
        player_id=player_id,
        action=ActionEnvelope(type=action_type, payload=payload),
    )


@pytest.fixture
def service():
    return APIService()


@pytest.fixture
def session_id(service):
    """A lobby hosted by hana with bob seated."""
    async def scenario():
        session = await service.create_session(CreateSessionRequest(host_id="hana", host_name="Hana"))
        await service.join(session.session_id, JoinRequest(player_id="bob", name="Bob"))
        return session.session_id
    return run(scenario())


@pytest.fixture
def running(service, session_id):
    result = run(service.start_run(session_id, StartRunRequest(host_id="hana")))
    assert result.success, result.error
    return session_id


class TestSessions:

    def test_create(self, service):
        response = run(service.create_session(CreateSessionRequest(host_id="hana")))
        assert response.host_id == "hana"
        assert response.phase == "lobby"
        assert [p.slot for p in response.players] == [0]
        assert response.version == 1
        assert service.list_sessions() == [response.session_id]

    def test_unknown_session(self, service):
        result = run(service.get_session("missing"))
        assert isinstance(result, ErrorResponse)
        assert result.error_code == ErrorCode.SESSION_NOT_FOUND

    def test_only_host_ends(self, service, session_id):
        result = run(service.end_session(session_id, "bob"))
        assert result.error_code == ErrorCode.NOT_HOST
        assert run(service.end_session(session_id, "hana")) is True
        assert service.list_sessions() == []

    def test_host_leaving_ends_session(self, service, session_id):
        result = run(service.leave(session_id, PlayerRequest(player_id="hana")))
        assert result.error_code == ErrorCode.SESSION_NOT_FOUND
        assert service.list_sessions() == []


class TestLobby:

    def test_join(self, service, session_id):
        response = run(service.get_session(session_id))
        assert [p.player_id for p in response.players] == ["hana", "bob"]
        assert response.available_slots == [2, 3]

    def test_slot_taken(self, service, session_id):
        result = run(service.join(session_id, JoinRequest(player_id="cy", requested_slot=1)))
        assert result.error_code == ErrorCode.SLOT_TAKEN

    def test_kick_connected_refused(self, service, session_id):
        result = run(service.kick(session_id, KickRequest(host_id="hana", player_id="bob")))
        assert result.error_code == ErrorCode.PLAYER_CONNECTED

    def test_kick_after_disconnect(self, service, session_id):
        run(service.disconnect(session_id, PlayerRequest(player_id="bob")))
        response = run(service.kick(session_id, KickRequest(host_id="hana", player_id="bob")))
        assert [p.player_id for p in response.players] == ["hana"]


class TestRun:

    def test_start_requires_host(self, service, session_id):
        result = run(service.start_run(session_id, StartRunRequest(host_id="bob")))
        assert result.error_code == ErrorCode.NOT_HOST

    def test_start_seats_every_player(self, service, running):
        state = run(service.get_state(running)).state
        assert state["phase"] == "dashboard"
        assert [p["id"] for p in state["players"]] == ["hana", "bob"]

    def test_host_only_action_refused(self, service, running):
        result = run(service.submit_action(running, submit("bob", "complete_mission")))
        assert result.error_code == ErrorCode.ACTION_NOT_ALLOWED

    def test_acting_for_another_slot_refused(self, service, running):
        result = run(service.submit_action(
            running, submit("bob", "set_player_extracted", player_index=0, enabled=False)
        ))
        assert result.error_code == ErrorCode.ACTION_NOT_ALLOWED

    def test_own_slot_action(self, service, running):
        result = run(service.submit_action(running, submit("bob", "set_player_extracted", enabled=False)))
        assert isinstance(result, ActionResponse)
        assert result.success
        state = run(service.get_state(running)).state
        assert state["players"][1]["extracted"] is False

    def test_rejected_action_is_not_an_error(self, service, running):
        result = run(service.submit_action(running, submit("hana", "close_event")))
        assert isinstance(result, ActionResponse)
        assert not result.success
        assert result.error_code == "ACTION_REJECTED"
        assert result.phase == "dashboard"

    def test_host_drives_the_mission(self, service, running):
        result = run(service.submit_action(running, submit("hana", "complete_mission")))
        assert result.success
        assert result.phase == "draft"

    def test_stranger_refused(self, service, running):
        result = run(service.submit_action(running, submit("eve", "skip_draft")))
        assert result.error_code == ErrorCode.PLAYER_NOT_FOUND

    def test_late_join_adds_player(self, service, running):
        run(service.join(running, JoinRequest(player_id="cy", name="Cy")))
        state = run(service.get_state(running)).state
        assert [p["id"] for p in state["players"]] == ["hana", "bob", "cy"]


class TestSaves:

    def test_save_and_load(self, service, running):
        saved = run(service.save(running))
        run(service.submit_action(running, submit("hana", "complete_mission")))
        result = run(service.load(running, saved.run_id))
        assert result.success
        assert result.phase == "dashboard"

    def test_missing_save(self, service, running):
        assert run(service.load(running, "nope")).error_code == ErrorCode.SAVE_NOT_FOUND

    def test_export_import(self, service, running):
        text = service.export_save(running)
        run(service.submit_action(running, submit("hana", "fail_mission")))
        result = run(service.import_save(running, text))
        assert result.success
        assert result.phase == "dashboard"

    def test_bad_import(self, service, running):
        result = run(service.import_save(running, "not a save"))
        assert result.error_code == ErrorCode.INVALID_SAVE

    def test_finished_run_in_history(self, service, running):
        run(service.submit_action(running, submit("hana", "fail_mission")))
        history = service.run_history()
        assert [entry.outcome for entry in history] == ["gameover"]


class TestHTTP:

    @pytest.fixture
    def client(self):
        app = create_app(service=APIService(), settings=Settings())
        with TestClient(app) as client:
            yield client

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["store_ready"] is True

    def test_session_flow(self, client):
        created = client.post("/api/v1/sessions", json={"host_id": "hana"}).json()
        session_id = created["session_id"]

        joined = client.post(f"/api/v1/sessions/{session_id}/join", json={"player_id": "bob"})
        assert joined.status_code == 200

        started = client.post(f"/api/v1/sessions/{session_id}/start", json={"host_id": "hana"})
        assert started.json()["phase"] == "dashboard"

        action = {"player_id": "bob", "action": {"type": "complete_mission"}}
        refused = client.post(f"/api/v1/sessions/{session_id}/actions", json=action)
        assert refused.status_code == 403
        assert refused.json()["error_code"] == "ACTION_NOT_ALLOWED"

    def test_unknown_session_is_404(self, client):
        assert client.get("/api/v1/sessions/missing").status_code == 404

    def test_malformed_action_is_422(self, client):
        created = client.post("/api/v1/sessions", json={"host_id": "hana"}).json()
        action = {"player_id": "hana", "action": {"type": "teleport"}}
        response = client.post(f"/api/v1/sessions/{created['session_id']}/actions", json=action)
        assert response.status_code == 422
