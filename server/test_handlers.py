"""
Test suite for WebSocket message handlers.

Tests the player-socket handlers against a real Table with mock sockets.

Run with: pytest test_handlers.py -v
"""

import pytest

from handlers import HANDLERS, ConnectionContext, handle_action, handle_sync
from predictor import Action
from table import Table, TableSettings


# =============================================================================
# Mock helpers
# =============================================================================

class MockWebSocket:
    """Mock WebSocket that collects sent messages."""

    def __init__(self):
        self.messages: list[dict] = []

    async def send_json(self, data: dict):
        self.messages.append(data)

    async def close(self, code: int = 1000, reason: str = ""):
        pass

    def last_message(self) -> dict:
        return self.messages[-1] if self.messages else {}

    def messages_of_type(self, msg_type: str) -> list[dict]:
        return [m for m in self.messages if m.get("type") == msg_type]


async def seated_ctx(table: Table, connection_id: str = "conn_123") -> ConnectionContext:
    """Join a table and return the handler context for the new seat."""
    ws = MockWebSocket()
    await table.join(ws, connection_id)
    return ConnectionContext(websocket=ws, connection_id=connection_id)


# =============================================================================
# action
# =============================================================================

class TestHandleAction:

    @pytest.mark.asyncio
    async def test_disabled_by_default(self):
        table = Table(TableSettings())
        ctx = await seated_ctx(table)

        await handle_action({"type": "action", "action": "clench"}, ctx, table=table, allow_client_actions=False)

        assert ctx.websocket.last_message()["type"] == "error"
        assert table.clients["conn_123"].read_action() is None

    @pytest.mark.asyncio
    async def test_pushes_to_own_seat(self):
        table = Table(TableSettings())
        ctx = await seated_ctx(table)

        await handle_action({"type": "action", "action": "Left"}, ctx, table=table, allow_client_actions=True)

        assert table.clients["conn_123"].read_action() is Action.LEFT
        assert not ctx.websocket.messages_of_type("error")

    @pytest.mark.asyncio
    async def test_none_clears_action(self):
        table = Table(TableSettings())
        ctx = await seated_ctx(table)
        table.push_action("conn_123", Action.RIGHT)

        await handle_action({"type": "action", "action": "none"}, ctx, table=table, allow_client_actions=True)

        assert table.clients["conn_123"].read_action() is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", ["wave", 42])
    async def test_unknown_action(self, value):
        table = Table(TableSettings())
        ctx = await seated_ctx(table)

        await handle_action({"type": "action", "action": value}, ctx, table=table, allow_client_actions=True)

        error = ctx.websocket.last_message()
        assert error["type"] == "error"
        assert "Unknown action" in error["message"]

    @pytest.mark.asyncio
    async def test_unseated_connection_ignored(self):
        table = Table(TableSettings())
        ctx = ConnectionContext(websocket=MockWebSocket(), connection_id="ghost")

        await handle_action({"type": "action", "action": "left"}, ctx, table=table, allow_client_actions=True)

        assert ctx.websocket.messages == []


# =============================================================================
# sync
# =============================================================================

class TestHandleSync:

    @pytest.mark.asyncio
    async def test_resends_joined(self):
        table = Table(TableSettings())
        ctx = await seated_ctx(table)
        ctx.websocket.messages.clear()

        await handle_sync({"type": "sync"}, ctx, table=table, allow_client_actions=False)

        joined = ctx.websocket.messages_of_type("joined")
        assert len(joined) == 1
        assert joined[0]["seat_index"] == 0
        # No round yet, so no card view
        assert not ctx.websocket.messages_of_type("card_played")

    def test_dispatch_table(self):
        assert HANDLERS["sync"] is handle_sync
        assert HANDLERS["action"] is handle_action
