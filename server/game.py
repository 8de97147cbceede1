"""
Game logic for gesture UNO.

This module implements the card model and the rules that do not depend on
connections or timing: the deck, the shared discard state, per-seat hands,
legal-move resolution, play resolution, and special-card routing.

Rules Summary:
    - Each seat is dealt 7 cards; one card is revealed to start the discard pile
    - A held card is playable if it matches the top card's color or rank,
      or if it is wild
    - After a wild (12 or 13) the same seat picks a color from four
      solid-color placeholders (rank 15)
    - Skip, draw-two, and both wilds keep the turn with the acting seat;
      everything else passes it on
    - A round ends as soon as some seat holds no cards

Cards are compared by identity. Two red sevens are different physical cards,
so removing "the selected card" from a hand must never pick its twin.
"""

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from constants import (
    CHOOSE_COLOR,
    DRAW_FOUR,
    DRAW_FROM_DECK,
    DRAW_PENALTIES,
    MAX_COLORED_RANK,
    MAX_NUMBER_RANK,
    MAX_RANK,
    SOLID_COLOR,
    SPECIAL_PLACEMENT_RANKS,
    SENTINEL_RANKS,
    WILD_COPIES,
    WILD_RANKS,
)


class Color(str, Enum):
    """Card colors. WILD cards match any color."""

    RED = "red"
    YELLOW = "yellow"
    GREEN = "green"
    BLUE = "blue"
    WILD = "wild"


# Fixed order used for dealing and for the wild color choice
SUIT_COLORS: tuple[Color, ...] = (Color.RED, Color.YELLOW, Color.GREEN, Color.BLUE)


class DrawPolicy(str, Enum):
    """
    When the draw-from-deck entry is offered in a possible hand.

    WHEN_STUCK: offered when no held card is legal (including an empty hand)
    ALWAYS: offered first on every recompute outside a color choice
    EMPTY_HAND: offered only when the hand is empty
    """

    WHEN_STUCK = "when_stuck"
    ALWAYS = "always"
    EMPTY_HAND = "empty_hand"


@dataclass(frozen=True, eq=False)
class Card:
    """
    An immutable card.

    Attributes:
        color: Card color (WILD for ranks 12-14).
        rank: 0-9 for number cards, 10-15 for special behaviors
            (see constants.py).
        is_special_placement: True for ranks that can be placed on any
            color (12, 13, 15). Derived from rank.
    """

    color: Color
    rank: int
    is_special_placement: bool = field(init=False)

    def __post_init__(self) -> None:
        if not 0 <= self.rank <= MAX_RANK:
            raise ValueError(f"Card rank out of range: {self.rank}")
        object.__setattr__(self, "is_special_placement", self.rank in SPECIAL_PLACEMENT_RANKS)

    @property
    def is_sentinel(self) -> bool:
        """True for synthesized entries that never live in a hand or pile."""
        return self.rank in SENTINEL_RANKS

    def to_dict(self) -> dict:
        """Convert card to dictionary for JSON serialization."""
        return {
            "color": self.color.value,
            "rank": self.rank,
            "special": self.is_special_placement,
        }


def draw_option() -> Card:
    """Create the selectable "take a card instead of playing" entry."""
    return Card(Color.WILD, DRAW_FROM_DECK)


def color_choices() -> list[Card]:
    """Create the four solid-color placeholders offered after a wild."""
    return [Card(color, SOLID_COLOR) for color in SUIT_COLORS]


class Deck:
    """
    The ordered draw pile. Cards are drawn from the end of the list.

    A fresh deck holds each of the four colors in ranks 0-11 plus four
    wild copies each of ranks 12 and 13 (56 cards). The deck can be
    initialized with a seed for a reproducible shuffle.
    """

    def __init__(self, seed: Optional[int] = None, shuffle: bool = True) -> None:
        """
        Initialize a new deck.

        Args:
            seed: Optional random seed. If None, a random seed is generated
                  and stored.
            shuffle: Whether to permute the cards right away.
        """
        self.seed: int = seed if seed is not None else random.randint(0, 2**31 - 1)
        self.cards: list[Card] = self.build_cards()
        if shuffle:
            self.shuffle()

    @staticmethod
    def build_cards() -> list[Card]:
        """Build the unshuffled card list in a deterministic order."""
        cards = []
        for rank in range(MAX_COLORED_RANK + 1):
            for color in SUIT_COLORS:
                cards.append(Card(color, rank))
        for rank in (DRAW_FOUR, CHOOSE_COLOR):
            for _ in range(WILD_COPIES):
                cards.append(Card(Color.WILD, rank))
        return cards

    def shuffle(self) -> None:
        """Randomize the order of cards using the deck's seed."""
        random.Random(self.seed).shuffle(self.cards)

    def draw(self) -> Optional[Card]:
        """
        Draw the top card from the deck.

        Returns:
            The drawn Card, or None if the deck is empty.
        """
        if self.cards:
            return self.cards.pop()
        return None

    def cards_remaining(self) -> int:
        """Return the number of cards left in the deck."""
        return len(self.cards)

    def __len__(self) -> int:
        return len(self.cards)


@dataclass
class GameState:
    """
    Shared per-round state: the deck and the discard pile.

    Attributes:
        deck: The draw pile.
        discard_pile: Played cards, oldest first.
        placeholder: Solid-color card chosen after a wild. It covers the
            discard pile as the effective top card until the next real
            play and is never stored in the pile.
    """

    deck: Deck = field(default_factory=Deck)
    discard_pile: list[Card] = field(default_factory=list)
    placeholder: Optional[Card] = None

    @property
    def top_card(self) -> Optional[Card]:
        """The card the next play is matched against."""
        if self.placeholder is not None:
            return self.placeholder
        if self.discard_pile:
            return self.discard_pile[-1]
        return None

    def reveal(self) -> Optional[Card]:
        """Turn the top of the deck onto the discard pile to start a round."""
        card = self.deck.draw()
        if card:
            self.discard_pile.append(card)
        return card

    def discard(self, card: Card) -> None:
        """Place a played card on the pile, clearing any color placeholder."""
        self.placeholder = None
        self.discard_pile.append(card)

    def deal_to(self, player: "Player", count: int = 1) -> int:
        """
        Move up to ``count`` cards from the deck into a hand.

        An exhausted deck is not an error; the hand just receives fewer cards.

        Returns:
            Number of cards actually dealt.
        """
        dealt = 0
        for _ in range(count):
            card = self.deck.draw()
            if card is None:
                break
            player.hand.append(card)
            dealt += 1
        return dealt

    def card_count(self, players: list["Player"]) -> int:
        """Total physical cards across deck, pile, and hands."""
        return len(self.deck) + len(self.discard_pile) + sum(len(p.hand) for p in players)


def is_playable(card: Card, top_card: Card) -> bool:
    """Check whether a held card may be placed on the top card."""
    return (
        card.color == top_card.color
        or card.color == Color.WILD
        or card.rank == top_card.rank
    )


def resolve_hand(
    hand: list[Card],
    top_card: Card,
    policy: DrawPolicy = DrawPolicy.WHEN_STUCK,
) -> tuple[list[Card], list[Card]]:
    """
    Split a hand into the cards that may be played and those that may not.

    While a wild on top still awaits its color choice, the possible hand is
    exactly the four color placeholders and the real hand is not evaluated.

    Args:
        hand: Cards currently held by the seat.
        top_card: Effective top of the discard pile.
        policy: When the draw-from-deck entry is offered.

    Returns:
        Tuple of (possible_hand, impossible_hand).
    """
    if top_card.rank in WILD_RANKS:
        return color_choices(), []

    possible: list[Card] = []
    impossible: list[Card] = []
    for card in hand:
        if is_playable(card, top_card):
            possible.append(card)
        else:
            impossible.append(card)

    if policy == DrawPolicy.ALWAYS:
        offer_draw = True
    elif policy == DrawPolicy.EMPTY_HAND:
        offer_draw = not hand
    else:
        offer_draw = not possible

    if offer_draw:
        possible.insert(0, draw_option())
    return possible, impossible


@dataclass
class Player:
    """
    A seat at the table.

    Attributes:
        seat_index: Fixed position at the table.
        hand: Cards currently held (unordered).
        possible_hand: Legal selections, recomputed at the start of each turn.
        impossible_hand: Held cards that may not be played this turn.
        selected: Selection cursor into possible_hand.
        ready: Whether the seat passed the last readiness poll.
        connection_id: ID of the bound connection, or None if unoccupied.
    """

    seat_index: int
    hand: list[Card] = field(default_factory=list)
    possible_hand: list[Card] = field(default_factory=list)
    impossible_hand: list[Card] = field(default_factory=list)
    selected: int = 0
    ready: bool = False
    connection_id: Optional[str] = None

    @property
    def is_occupied(self) -> bool:
        return self.connection_id is not None

    def reset_for_round(self) -> None:
        """Drop all round-scoped state."""
        self.hand = []
        self.possible_hand = []
        self.impossible_hand = []
        self.selected = 0

    def recompute_hands(self, top_card: Card, policy: DrawPolicy = DrawPolicy.WHEN_STUCK) -> None:
        """Recompute possible/impossible hands and recenter the cursor."""
        self.possible_hand, self.impossible_hand = resolve_hand(self.hand, top_card, policy)
        self.selected = len(self.possible_hand) // 2

    def move_selection(self, step: int) -> int:
        """
        Move the cursor by ``step`` with wraparound.

        Returns:
            The new cursor position.
        """
        if self.possible_hand:
            self.selected = (self.selected + step) % len(self.possible_hand)
        return self.selected

    def selected_card(self) -> Optional[Card]:
        """The card under the cursor, or None if the cursor is invalid."""
        if 0 <= self.selected < len(self.possible_hand):
            return self.possible_hand[self.selected]
        return None

    def remove_card(self, card: Card) -> None:
        """
        Remove a specific physical card from the hand.

        Raises:
            ValueError: If this exact card object is not held.
        """
        for i, held in enumerate(self.hand):
            if held is card:
                del self.hand[i]
                return
        raise ValueError(f"Seat {self.seat_index} does not hold {card!r}")

    def cards_to_dict(self, cards: list[Card]) -> list[dict]:
        return [card.to_dict() for card in cards]


def play_card(player: Player, state: GameState) -> Card:
    """
    Resolve the seat's current selection.

    - Draw-from-deck entry: the seat takes the top of the deck (if any);
      the top card is unchanged.
    - Solid-color placeholder: becomes the effective top card.
    - Any real card: moves from the hand onto the discard pile.

    Args:
        player: The acting seat, with a valid cursor.
        state: The round state.

    Returns:
        The selected entry. A rank-14 result means no card was played.

    Raises:
        ValueError: If the cursor does not point into the possible hand.
    """
    selected = player.selected_card()
    if selected is None:
        raise ValueError(f"Seat {player.seat_index} has no valid selection")

    if selected.rank == DRAW_FROM_DECK:
        state.deal_to(player, 1)
        return selected

    del player.possible_hand[player.selected]
    if selected.rank == SOLID_COLOR:
        state.placeholder = selected
    else:
        player.remove_card(selected)
        state.discard(selected)
    return selected


def next_seat(seat_index: int, num_seats: int) -> int:
    """The seat that follows ``seat_index`` in turn order."""
    return (seat_index + 1) % num_seats


def resolve_special(
    card: Card,
    seat_index: int,
    players: list[Player],
    state: GameState,
) -> int:
    """
    Apply a played card's effect and decide who acts next.

    Draw penalties are dealt to the next seat in turn order. Ranks strictly
    between 9 and 14 keep the turn with the acting seat; everything else
    passes it on.

    Returns:
        Index of the seat whose turn is next.
    """
    opponent = next_seat(seat_index, len(players))

    penalty = DRAW_PENALTIES.get(card.rank, 0)
    if penalty:
        state.deal_to(players[opponent], penalty)

    if MAX_NUMBER_RANK < card.rank < DRAW_FROM_DECK:
        return seat_index
    return opponent
