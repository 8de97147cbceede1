"""
Tests for the HTTP and WebSocket endpoints.

Run with: pytest test_main.py -v
"""

import pytest
from fastapi.testclient import TestClient

import main
from predictor import Action
from routers.health import set_health_dependencies
from table import Table, TableSettings


@pytest.fixture
def table(monkeypatch):
    """Fresh table wired into the app in place of the module-level one."""
    fresh = Table(TableSettings())
    monkeypatch.setattr(main, "table", fresh)
    set_health_dependencies(table=fresh)
    yield fresh
    set_health_dependencies(table=None)


@pytest.fixture
def client(table):
    return TestClient(main.app)


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_ready_with_free_seats(self, client):
        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json()["checks"]["table"] == {"status": "ok", "free_seats": 2}

    def test_ready_when_full(self, client, table):
        table.players[0].connection_id = "a"
        table.players[1].connection_id = "b"
        response = client.get("/ready")
        assert response.status_code == 503
        assert response.json()["checks"]["table"]["status"] == "full"

    def test_metrics(self, client):
        data = client.get("/metrics").json()
        assert data["phase"] == "waiting_for_players"
        assert data["occupied_seats"] == 0
        assert data["classifier_seats"] == []


class TestPlayerSocket:

    def test_join_sends_seat(self, client, table):
        with client.websocket_connect("/ws") as ws:
            joined = ws.receive_json()
            assert joined["type"] == "joined"
            assert joined["seat_index"] == 0
            assert ws.receive_json() == {"type": "connection_state", "seat_index": 0, "connected": True}
            assert table.occupancy() == 1

    def test_full_table_rejected(self, client, table):
        table.players[0].connection_id = "a"
        table.players[1].connection_id = "b"
        with client.websocket_connect("/ws") as ws:
            assert ws.receive_json() == {"type": "error", "message": "Table is full"}

    def test_client_actions_disabled(self, client, table, monkeypatch):
        monkeypatch.setattr(main.config, "ALLOW_CLIENT_ACTIONS", False)
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.receive_json()
            ws.send_json({"type": "action", "action": "clench"})
            assert ws.receive_json()["type"] == "error"


class TestPredictorSocket:

    def test_invalid_message_answered_with_error(self, client):
        with client.websocket_connect("/ws/predictor") as ws:
            ws.send_json({"seat_index": 0, "action": "wave"})
            assert ws.receive_json() == {"type": "error", "message": "Invalid prediction"}

    def test_non_json_frame_keeps_socket_open(self, client, table):
        with client.websocket_connect("/ws") as player_ws:
            player_ws.receive_json()
            player_ws.receive_json()
            with client.websocket_connect("/ws/predictor") as ws:
                ws.send_text("not json")
                assert ws.receive_json() == {"type": "error", "message": "Invalid prediction"}

                ws.send_json({"seat_index": 0, "action": "right"})
                ws.send_json({"seat_index": -1})
                assert ws.receive_json()["type"] == "error"

            assert table.client_for_seat(0).read_action() is Action.RIGHT

    def test_push_reaches_seat(self, client, table):
        with client.websocket_connect("/ws") as player_ws:
            player_ws.receive_json()
            player_ws.receive_json()
            with client.websocket_connect("/ws/predictor") as ws:
                ws.send_json({"seat_index": 0, "action": "left"})
                # An invalid message afterwards proves the push was handled
                ws.send_json({"seat_index": -1})
                ws.receive_json()

            seat_client = table.client_for_seat(0)
            assert seat_client.read_action() is Action.LEFT
