"""
Gesture classifier input.

An external classifier watches each player's continuous signal and pushes
its latest classification for a seat. The hub routes each push to whatever
binding is attached to that seat. Pushes are last-value-wins: nothing is
queued, and a reader only ever sees the most recent classification.

Classifier processes talk to the server over the /ws/predictor socket with
messages like:

    {"seat_index": 0, "action": "clench"}
    {"seat_index": 1, "action": "none"}
    {"seat_index": 1, "distribution": [0.1, 0.2, 0.7]}
"""

import logging
from enum import Enum
from typing import Optional, Protocol

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# Strings a classifier may send for "no gesture"
NO_ACTION_NAMES = frozenset({"", "none", "rest", "neutral"})


class Action(str, Enum):
    """Discrete gestures a seat can perform."""

    LEFT = "left"
    RIGHT = "right"
    CLENCH = "clench"


def parse_action(value: Optional[str]) -> Optional[Action]:
    """
    Convert a classifier label to an Action.

    Returns:
        The Action, or None for "no gesture".

    Raises:
        ValueError: If the label is not a known gesture.
    """
    if value is None:
        return None
    name = value.strip().lower()
    if name in NO_ACTION_NAMES:
        return None
    return Action(name)


class PredictionMessage(BaseModel):
    """A single classification pushed by the classifier."""

    seat_index: int = Field(ge=0)
    action: Optional[Action] = None
    distribution: Optional[list[float]] = None

    @field_validator("action", mode="before")
    @classmethod
    def normalize_action(cls, value):
        if isinstance(value, str):
            return parse_action(value)
        return value


class PredictionSink(Protocol):
    """Receiver for one seat's classifications."""

    def on_prediction(self, action: Optional[Action]) -> None:
        ...

    def on_distribution(self, distribution: list[float]) -> None:
        ...


class PredictorHub:
    """
    Routes classifier pushes to the binding attached to each seat.

    A push for a seat with no attached sink is dropped.
    """

    def __init__(self, num_seats: int) -> None:
        self.num_seats = num_seats
        self._sinks: dict[int, PredictionSink] = {}

    def attach(self, seat_index: int, sink: PredictionSink) -> None:
        """Register ``sink`` as the receiver for a seat's classifications."""
        if not 0 <= seat_index < self.num_seats:
            raise ValueError(f"Seat index out of range: {seat_index}")
        self._sinks[seat_index] = sink
        logger.debug(f"Predictor attached to seat {seat_index}")

    def detach(self, seat_index: int) -> None:
        """Unregister a seat. Detaching an unattached seat is a no-op."""
        if self._sinks.pop(seat_index, None) is not None:
            logger.debug(f"Predictor detached from seat {seat_index}")

    def is_attached(self, seat_index: int) -> bool:
        return seat_index in self._sinks

    def push(self, seat_index: int, action: Optional[Action]) -> bool:
        """
        Deliver a classification to a seat.

        Returns:
            True if a sink received it, False if the seat is unattached.
        """
        sink = self._sinks.get(seat_index)
        if sink is None:
            return False
        sink.on_prediction(action)
        return True

    def push_distribution(self, seat_index: int, distribution: list[float]) -> bool:
        """Deliver a class probability distribution to a seat."""
        sink = self._sinks.get(seat_index)
        if sink is None:
            return False
        sink.on_distribution(distribution)
        return True

    def publish(self, message: PredictionMessage) -> bool:
        """Deliver a validated classifier message."""
        delivered = False
        if message.distribution is not None:
            delivered = self.push_distribution(message.seat_index, message.distribution)
            # A distribution-only message carries no gesture
            if "action" not in message.model_fields_set:
                return delivered
        return self.push(message.seat_index, message.action) or delivered
