"""
Connection binding for a seat.

A GameClient ties one live player connection to one seat and holds the
latest classification pushed for that seat. The table reads the action
cell on every poll tick; the classifier overwrites it whenever it has a
new reading.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from predictor import Action

logger = logging.getLogger(__name__)


@dataclass
class GameClient:
    """
    A player connection bound to a seat.

    A Clench that has been consumed (it confirmed a play or opened a round)
    stays latched and reads as no action until the classifier reports
    something other than Clench. A held jaw clench therefore confirms once.

    Attributes:
        seat_index: Seat this connection occupies.
        connection_id: Unique ID for the connection.
        websocket: The player's WebSocket (anything with send_json/close).
        last_action: Most recent classification, or None.
        last_distribution: Most recent class probabilities, if the
            classifier sends them.
    """

    seat_index: int
    connection_id: str
    websocket: Any
    last_action: Optional[Action] = None
    last_distribution: Optional[list[float]] = None
    _clench_latched: bool = field(default=False, repr=False)

    def on_prediction(self, action: Optional[Action]) -> None:
        """Overwrite the action cell with the newest classification."""
        logger.debug(f"Seat {self.seat_index} predicted {action.value if action else 'none'}")
        self.last_action = action
        if action is not Action.CLENCH:
            self._clench_latched = False

    def on_distribution(self, distribution: list[float]) -> None:
        logger.debug(f"Seat {self.seat_index} distribution {distribution}")
        self.last_distribution = list(distribution)

    def read_action(self) -> Optional[Action]:
        """Non-blocking read of the latest unconsumed action."""
        action = self.last_action
        if action is Action.CLENCH and self._clench_latched:
            return None
        return action

    def consume_clench(self) -> None:
        """Latch the current Clench so it cannot confirm twice."""
        if self.last_action is Action.CLENCH:
            self._clench_latched = True

    async def send(self, message: dict) -> bool:
        """
        Send a message to this connection.

        Returns:
            False if the socket is gone; the disconnect path cleans up.
        """
        try:
            await self.websocket.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Send to seat {self.seat_index} failed: {e}")
            return False

    async def close(self, code: int = 1000, reason: str = "") -> None:
        try:
            await self.websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.debug(f"Close for seat {self.seat_index} failed: {e}")
