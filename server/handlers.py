"""WebSocket message handlers for player connections.

Players normally act only through the gesture classifier, so the player
socket carries very little inbound traffic. Each handler corresponds to a
single message type and is dispatched via the HANDLERS dict in main.py.
"""

import logging
from dataclasses import dataclass
from typing import Any

from predictor import parse_action
from table import Table

logger = logging.getLogger(__name__)


@dataclass
class ConnectionContext:
    """State tracked per player WebSocket connection."""

    websocket: Any
    connection_id: str


async def handle_sync(data: dict, ctx: ConnectionContext, *, table: Table, **kw) -> None:
    await table.sync(ctx.connection_id)


async def handle_action(data: dict, ctx: ConnectionContext, *, table: Table, allow_client_actions: bool, **kw) -> None:
    """Push a gesture from the player socket (development without a classifier)."""
    if not allow_client_actions:
        await ctx.websocket.send_json({
            "type": "error",
            "message": "Client actions are disabled",
        })
        return

    try:
        action = parse_action(data.get("action"))
    except (ValueError, AttributeError):
        await ctx.websocket.send_json({
            "type": "error",
            "message": f"Unknown action: {data.get('action')!r}",
        })
        return

    if not table.push_action(ctx.connection_id, action):
        logger.debug(f"Action from unseated connection {ctx.connection_id} dropped")


HANDLERS = {
    "sync": handle_sync,
    "action": handle_action,
}
