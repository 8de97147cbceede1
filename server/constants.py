"""
Rank constants for the gesture UNO deck.

This module is the single source of truth for what each card rank means.
Ranks 0-9 are ordinary number cards; everything above encodes a behavior:

    10  skip               - acting seat keeps the turn
    11  draw two           - next seat draws 2, acting seat keeps the turn
    12  draw four (wild)   - next seat draws 4, acting seat picks a color
    13  choose color (wild)- acting seat picks a color
    14  draw from deck     - selectable "take a card instead" entry, never held
    15  solid color        - color choice offered after a wild, never held
"""

MAX_NUMBER_RANK = 9

SKIP = 10
DRAW_TWO = 11
DRAW_FOUR = 12
CHOOSE_COLOR = 13
DRAW_FROM_DECK = 14
SOLID_COLOR = 15

MAX_RANK = SOLID_COLOR

# Highest rank that is dealt in each of the four colors
MAX_COLORED_RANK = DRAW_TWO

# Copies of each wild rank in a fresh deck
WILD_COPIES = 4

# Ranks that can be placed on any color
SPECIAL_PLACEMENT_RANKS = frozenset({DRAW_FOUR, CHOOSE_COLOR, SOLID_COLOR})

# A top card of one of these ranks means the acting seat still owes a color choice
WILD_RANKS = frozenset({DRAW_FOUR, CHOOSE_COLOR})

# Ranks that are synthesized on demand and never stored in deck, hand, or pile
SENTINEL_RANKS = frozenset({DRAW_FROM_DECK, SOLID_COLOR})

# Cards the next seat must draw when one of these is played
DRAW_PENALTIES: dict[int, int] = {
    DRAW_TWO: 2,
    DRAW_FOUR: 4,
}
