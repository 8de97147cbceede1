"""
Table orchestration for gesture UNO.

The Table owns every seat, every connection binding, and the round state,
and it is the only thing that mutates them or broadcasts. It runs the
session as one asyncio task:

    WAITING_FOR_PLAYERS -> READY_CHECK -> PLAYING -> ROUND_ENDING -> PLAYING ...

Any seat dropping out sends the table back to WAITING_FOR_PLAYERS and the
running round is abandoned. Every wait in the session task is a poll loop
that sleeps between ticks and re-checks the session, so a disconnect only
has to bump the session counter for stale loops to bail out.

Only two things race at round end: the close timer and the readiness poll.
Both go through _transition(), a check-and-set on the phase that runs
without yielding, so exactly one of them wins.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from client import GameClient
from config import ServerConfig
from constants import DRAW_FROM_DECK
from game import DrawPolicy, GameState, Deck, Player, play_card, resolve_special
from logging_config import connection_id_var, get_logger
from predictor import Action, PredictorHub

logger = logging.getLogger(__name__)
log = get_logger(__name__)


class GamePhase(Enum):
    """
    Phases of a table session.

    Flow: WAITING_FOR_PLAYERS -> READY_CHECK -> PLAYING -> ROUND_ENDING
    ROUND_ENDING loops back to PLAYING when everyone is ready again.
    """

    WAITING_FOR_PLAYERS = "waiting_for_players"  # Seats still free
    READY_CHECK = "ready_check"                  # All seats taken, waiting for clenches
    PLAYING = "playing"                          # Turns in progress
    ROUND_ENDING = "round_ending"                # Winner shown, waiting for next round


class RoundAborted(Exception):
    """The running round cannot continue (stale session or broken seat)."""


@dataclass
class TableSettings:
    """
    Game-affecting settings for one table.

    Durations are in seconds.
    """

    num_seats: int = 2
    hand_size: int = 7
    turn_poll: float = 0.25
    ready_poll: float = 0.1
    round_close_timeout: float = 60.0
    turn_delay: float = 2.0
    draw_policy: DrawPolicy = DrawPolicy.WHEN_STUCK

    @classmethod
    def from_config(cls, cfg: ServerConfig) -> "TableSettings":
        try:
            draw_policy = DrawPolicy(cfg.DRAW_POLICY)
        except ValueError:
            logger.warning(f"Unknown DRAW_POLICY {cfg.DRAW_POLICY!r}, using when_stuck")
            draw_policy = DrawPolicy.WHEN_STUCK
        return cls(
            num_seats=cfg.NUM_SEATS,
            hand_size=cfg.HAND_SIZE,
            turn_poll=cfg.TURN_POLL_MS / 1000,
            ready_poll=cfg.READY_POLL_MS / 1000,
            round_close_timeout=float(cfg.ROUND_CLOSE_TIMEOUT_S),
            turn_delay=cfg.TURN_DELAY_MS / 1000,
            draw_policy=draw_policy,
        )


class Table:
    """
    The game orchestrator.

    Attributes:
        settings: Table settings.
        predictor: Hub routing classifier pushes to bindings.
        players: One Player per seat, fixed size.
        clients: Bound connections by connection ID.
        state: Current round state (None before the first round).
        phase: Current session phase.
        current_seat: Seat whose turn it is.
        winner: Winning seat of the last finished round.
        rounds_played: Rounds started since the server came up.
    """

    def __init__(
        self,
        settings: Optional[TableSettings] = None,
        predictor: Optional[PredictorHub] = None,
    ) -> None:
        self.settings = settings or TableSettings()
        self.predictor = predictor or PredictorHub(self.settings.num_seats)
        self.players: list[Player] = [Player(seat_index=i) for i in range(self.settings.num_seats)]
        self.clients: dict[str, GameClient] = {}
        self.state: Optional[GameState] = None
        self.phase = GamePhase.WAITING_FOR_PLAYERS
        self.current_seat = 0
        self.winner: Optional[int] = None
        self.rounds_played = 0

        self._session = 0
        self._game_task: Optional[asyncio.Task] = None
        self._close_task: Optional[asyncio.Task] = None

    # -------------------------------------------------------------------------
    # Seats & connections
    # -------------------------------------------------------------------------

    def available_seats(self) -> list[int]:
        """Free seat indices, lowest first."""
        return [p.seat_index for p in self.players if not p.is_occupied]

    def occupancy(self) -> int:
        return len(self.clients)

    def is_full(self) -> bool:
        return self.occupancy() == self.settings.num_seats

    def client_for_seat(self, seat_index: int) -> Optional[GameClient]:
        """The connection bound to a seat, or None."""
        connection_id = self.players[seat_index].connection_id
        if connection_id is None:
            return None
        return self.clients.get(connection_id)

    def roster(self) -> list[dict]:
        """Per-seat connection and readiness flags for clients."""
        return [
            {
                "seat_index": p.seat_index,
                "connected": p.is_occupied,
                "ready": p.ready,
            }
            for p in self.players
        ]

    async def join(self, websocket: Any, connection_id: str) -> Optional[GameClient]:
        """
        Seat a new connection at the lowest free seat.

        Args:
            websocket: The player's connection.
            connection_id: Unique ID for the connection.

        Returns:
            The new binding, or None if every seat is taken.
        """
        free = self.available_seats()
        if not free:
            logger.info(f"Table full, rejecting connection {connection_id}")
            return None

        seat = free[0]
        client = GameClient(seat_index=seat, connection_id=connection_id, websocket=websocket)
        self.clients[connection_id] = client
        player = self.players[seat]
        player.connection_id = connection_id
        player.ready = False
        self.predictor.attach(seat, client)
        log.with_context(seat_index=seat).info(
            f"Connection joined ({self.occupancy()}/{self.settings.num_seats} seats taken)"
        )

        await client.send(self.joined_message(seat))
        await self.broadcast({
            "type": "connection_state",
            "seat_index": seat,
            "connected": True,
        })

        if self.is_full():
            self._start_session()
        return client

    async def leave(self, connection_id: str, reason: str = "") -> None:
        """
        Unbind a connection. Calling this twice for one connection is a no-op.

        The seat's binding and ready flag are cleared before anything
        yields, so an in-flight turn sees the seat as unbound on its next
        read.
        """
        client = self.clients.pop(connection_id, None)
        if client is None:
            return

        seat = client.seat_index
        self.predictor.detach(seat)
        player = self.players[seat]
        player.connection_id = None
        player.ready = False
        log.with_context(seat_index=seat).info(f"Connection left: {reason or 'disconnected'}")

        if self.phase != GamePhase.WAITING_FOR_PLAYERS and not self.is_full():
            self._drop_to_waiting(f"seat {seat} disconnected")

        await self.broadcast({
            "type": "connection_state",
            "seat_index": seat,
            "connected": False,
        })

    def push_action(self, connection_id: str, action: Optional[Action]) -> bool:
        """Push an action on behalf of a connection's seat."""
        client = self.clients.get(connection_id)
        if client is None:
            return False
        return self.predictor.push(client.seat_index, action)

    # -------------------------------------------------------------------------
    # Messaging
    # -------------------------------------------------------------------------

    def joined_message(self, seat_index: int) -> dict:
        return {
            "type": "joined",
            "seat_index": seat_index,
            "num_seats": self.settings.num_seats,
            "players": self.roster(),
        }

    async def broadcast(self, message: dict) -> None:
        """Send a message to every bound connection."""
        for client in list(self.clients.values()):
            await client.send(message)

    async def send_hands(self, client: GameClient, player: Player) -> None:
        """Send a seat its possible and impossible hands (never broadcast)."""
        await client.send({
            "type": "possible_cards",
            "cards": player.cards_to_dict(player.possible_hand),
            "selected": player.selected,
        })
        await client.send({
            "type": "impossible_cards",
            "cards": player.cards_to_dict(player.impossible_hand),
        })

    async def sync(self, connection_id: str) -> None:
        """Resend a connection everything it needs to redraw its view."""
        client = self.clients.get(connection_id)
        if client is None:
            return
        await client.send(self.joined_message(client.seat_index))
        if self.phase != GamePhase.PLAYING:
            return
        if self.state is not None and self.state.top_card is not None:
            await client.send({
                "type": "card_played",
                "seat_index": None,
                "card": self.state.top_card.to_dict(),
                "top_card": self.state.top_card.to_dict(),
                "next_seat": self.current_seat,
            })
        if client.seat_index == self.current_seat:
            await self.send_hands(client, self.players[client.seat_index])

    def hand_sizes(self) -> list[int]:
        return [len(p.hand) for p in self.players]

    # -------------------------------------------------------------------------
    # Session control
    # -------------------------------------------------------------------------

    def _transition(self, session: int, expected: GamePhase, new: GamePhase) -> bool:
        """
        Move from ``expected`` to ``new`` if the session is still current.

        Returns:
            False if the session moved on or the phase is no longer
            ``expected``.
        """
        if session != self._session or self.phase != expected:
            return False
        self._set_phase(new)
        return True

    def _set_phase(self, new: GamePhase, reason: str = "") -> None:
        suffix = f" ({reason})" if reason else ""
        log.with_context(phase=new.value).info(f"Phase {self.phase.value} -> {new.value}{suffix}")
        self.phase = new

    def _check_session(self, session: int) -> None:
        if session != self._session:
            raise RoundAborted("session ended")

    def _start_session(self) -> None:
        """Enter READY_CHECK and launch the session task."""
        if self.phase != GamePhase.WAITING_FOR_PLAYERS:
            return
        self._session += 1
        self._set_phase(GamePhase.READY_CHECK)
        # The task must not inherit the joining connection's log context
        token = connection_id_var.set(None)
        try:
            self._game_task = asyncio.create_task(self._run(self._session))
        finally:
            connection_id_var.reset(token)

    def _drop_to_waiting(self, reason: str) -> None:
        """Abandon the session and wait for seats to fill."""
        self._set_phase(GamePhase.WAITING_FOR_PLAYERS, reason)
        self._session += 1
        self._cancel_close_timer()
        for player in self.players:
            player.ready = False

    def _cancel_close_timer(self) -> None:
        task, self._close_task = self._close_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _recover(self, session: int) -> None:
        """Reset after a broken round and start over if still full."""
        if session != self._session:
            return
        self._drop_to_waiting("round aborted")
        if self.is_full():
            self._start_session()

    async def _pause(self, session: int, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        self._check_session(session)

    async def _run(self, session: int) -> None:
        """Session task: ready check, then rounds until something ends it."""
        log.with_context(phase=self.phase.value).debug(f"Session {session} started")
        try:
            await self.broadcast({"type": "ready_listen"})
            if not await self._wait_for_ready(session, GamePhase.READY_CHECK):
                return
            if not self._transition(session, GamePhase.READY_CHECK, GamePhase.PLAYING):
                return
            while True:
                winner = await self._play_round(session)
                if not await self._end_round(session, winner):
                    return
        except RoundAborted as e:
            if session == self._session:
                logger.warning(f"Round aborted: {e}")
            else:
                logger.info(f"Stale session {session} stopped: {e}")
            self._recover(session)
        except Exception:
            logger.exception("Unexpected error in game session")
            self._recover(session)

    async def shutdown(self) -> None:
        """Stop the session task and close timer."""
        self._session += 1
        self._cancel_close_timer()
        task, self._game_task = self._game_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    # -------------------------------------------------------------------------
    # Readiness
    # -------------------------------------------------------------------------

    async def _wait_for_ready(self, session: int, phase: GamePhase) -> bool:
        """
        Poll until every occupied seat reads Clench in the same tick.

        Readiness changes are broadcast as they are observed. On success
        every Clench is consumed so it cannot also confirm a play.

        Returns:
            True when all seats are ready, False if the session or phase
            moved on first.
        """
        while session == self._session and self.phase == phase:
            # Read every seat before yielding so the check is one instant
            readings: dict[int, bool] = {}
            for player in self.players:
                client = self.client_for_seat(player.seat_index)
                if client is not None:
                    readings[player.seat_index] = client.read_action() is Action.CLENCH

            for seat, ready in readings.items():
                player = self.players[seat]
                if player.ready != ready:
                    player.ready = ready
                    log.with_context(seat_index=seat).debug(f"Ready: {ready}")
                    await self.broadcast({
                        "type": "ready_state",
                        "seat_index": seat,
                        "ready": ready,
                    })

            if session != self._session or self.phase != phase:
                return False
            if readings and all(readings.values()):
                for client in self.clients.values():
                    client.consume_clench()
                return True

            await asyncio.sleep(self.settings.ready_poll)
        return False

    # -------------------------------------------------------------------------
    # Rounds & turns
    # -------------------------------------------------------------------------

    def _deal(self) -> None:
        """Build a fresh shuffled deck and deal every seat."""
        self.state = GameState(deck=Deck())
        self.winner = None
        for player in self.players:
            player.reset_for_round()
        for player in self.players:
            self.state.deal_to(player, self.settings.hand_size)
        self.state.reveal()
        self.current_seat = 0
        self.rounds_played += 1

    async def _play_round(self, session: int) -> int:
        """
        Play one round to completion.

        Returns:
            The seat that emptied its hand.
        """
        self._deal()
        logger.info(f"Round {self.rounds_played} started (deck seed {self.state.deck.seed})")

        await self.broadcast({
            "type": "round_started",
            "round": self.rounds_played,
            "hand_sizes": self.hand_sizes(),
        })
        top = self.state.top_card
        await self.broadcast({
            "type": "card_played",
            "seat_index": None,
            "card": top.to_dict() if top else None,
            "top_card": top.to_dict() if top else None,
            "next_seat": self.current_seat,
        })
        self._check_session(session)

        # Everyone gets an initial view of their hand
        if top is not None:
            for player in self.players:
                client = self.client_for_seat(player.seat_index)
                if client is not None:
                    player.recompute_hands(top, self.settings.draw_policy)
                    await self.send_hands(client, player)
            self._check_session(session)

        await self._pause(session, self.settings.turn_delay)

        while True:
            winner = await self._take_turn(session)
            if winner is not None:
                return winner
            await self._pause(session, self.settings.turn_delay)

    async def _take_turn(self, session: int) -> Optional[int]:
        """
        Run one seat's turn: recompute, select, resolve, broadcast.

        Returns:
            The acting seat if its hand is now empty, else None.
        """
        seat = self.current_seat
        player = self.players[seat]
        client = self.client_for_seat(seat)
        if client is None:
            raise RoundAborted(f"seat {seat} has no bound connection")
        top = self.state.top_card
        if top is None:
            raise RoundAborted("no card on the discard pile")

        player.recompute_hands(top, self.settings.draw_policy)
        if player.selected_card() is None:
            raise RoundAborted(f"seat {seat} has no legal selection")
        await self.send_hands(client, player)

        await self._select(session, player, client)

        selected = play_card(player, self.state)
        client.consume_clench()
        drew = selected.rank == DRAW_FROM_DECK
        self.current_seat = resolve_special(selected, seat, self.players, self.state)
        log.with_context(seat_index=seat).info(
            f"{'Drew a card' if drew else f'Played {selected.color.value} {selected.rank}'}"
            f", next seat {self.current_seat}"
        )

        await client.send({
            "type": "play_resolved",
            "seat_index": seat,
            "card": None if drew else selected.to_dict(),
            "drew": drew,
            "hand": player.cards_to_dict(player.hand),
        })
        await self.broadcast({
            "type": "card_played",
            "seat_index": seat,
            "card": None if drew else selected.to_dict(),
            "drew": drew,
            "top_card": self.state.top_card.to_dict(),
            "next_seat": self.current_seat,
            "hand_sizes": self.hand_sizes(),
        })
        self._check_session(session)

        if not player.hand:
            return seat
        return None

    async def _select(self, session: int, player: Player, client: GameClient) -> None:
        """Poll the seat's actions until it confirms with a Clench."""
        while True:
            self._check_session(session)
            if self.client_for_seat(player.seat_index) is not client:
                raise RoundAborted(f"seat {player.seat_index} lost its connection")

            action = client.read_action()
            if action is Action.CLENCH:
                return
            if action in (Action.LEFT, Action.RIGHT):
                step = -1 if action is Action.LEFT else 1
                player.move_selection(step)
                await client.send({
                    "type": "direction",
                    "direction": action.value,
                    "selected": player.selected,
                })
            await asyncio.sleep(self.settings.turn_poll)

    # -------------------------------------------------------------------------
    # Round end
    # -------------------------------------------------------------------------

    async def _end_round(self, session: int, winner: int) -> bool:
        """
        Announce the winner and wait for the next round.

        The close timer and the readiness poll race; whichever transitions
        out of ROUND_ENDING first wins and the other backs off.

        Returns:
            True if everyone readied up and the next round should start.
        """
        if not self._transition(session, GamePhase.PLAYING, GamePhase.ROUND_ENDING):
            return False
        self.winner = winner
        log.with_context(seat_index=winner).info(f"Round {self.rounds_played} won")
        await self.broadcast({"type": "round_ended", "winner": winner})

        self._close_task = asyncio.create_task(
            self._close_after(session, self.settings.round_close_timeout)
        )
        if not await self._wait_for_ready(session, GamePhase.ROUND_ENDING):
            return False
        if not self._transition(session, GamePhase.ROUND_ENDING, GamePhase.PLAYING):
            return False
        self._cancel_close_timer()
        return True

    async def _close_after(self, session: int, delay: float) -> None:
        """Close the table if nobody readied up in time."""
        await asyncio.sleep(delay)
        if not self._transition(session, GamePhase.ROUND_ENDING, GamePhase.WAITING_FOR_PLAYERS):
            return
        self._close_task = None
        self._session += 1
        logger.info("Round close timer fired, closing table")

        await self.broadcast({"type": "round_closed"})
        for connection_id, client in list(self.clients.items()):
            await self.leave(connection_id, "round closed")
            await client.close(code=1000, reason="Round closed")

    def snapshot(self) -> dict:
        """Operational view of the table for metrics."""
        return {
            "phase": self.phase.value,
            "occupied_seats": self.occupancy(),
            "num_seats": self.settings.num_seats,
            "current_seat": self.current_seat if self.phase == GamePhase.PLAYING else None,
            "deck_size": len(self.state.deck) if self.state else 0,
            "discard_size": len(self.state.discard_pile) if self.state else 0,
            "rounds_played": self.rounds_played,
            "winner": self.winner,
        }
