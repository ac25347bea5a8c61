"""Game rules and constants for the Salem moderator."""

from enum import Enum


class CardRole(str, Enum):
    """Role printed on a trial card."""

    NOT_A_WITCH = "NOT_A_WITCH"
    WITCH = "WITCH"
    CONSTABLE = "CONSTABLE"


class Phase(str, Enum):
    """Current game phase."""

    LOBBY = "LOBBY"
    SETUP = "SETUP"
    NIGHT_INITIAL_WITCH = "NIGHT_INITIAL_WITCH"
    DAY = "DAY"
    CONSPIRACY = "CONSPIRACY"
    NIGHT_WITCH_VOTE = "NIGHT_WITCH_VOTE"
    NIGHT_CONSTABLE = "NIGHT_CONSTABLE"
    NIGHT_CONFESSION = "NIGHT_CONFESSION"
    NIGHT_RESOLUTION = "NIGHT_RESOLUTION"
    GAME_OVER = "GAME_OVER"


class ActionKind(str, Enum):
    """Player action tags accepted on the wire."""

    ACCUSE_START = "ACCUSE_START"
    ACCUSE_ACCEPT = "ACCUSE_ACCEPT"
    ACCUSE_CANCEL = "ACCUSE_CANCEL"
    ACCUSE_REVEAL = "ACCUSE_REVEAL"
    NIGHT_CONFIRM = "NIGHT_CONFIRM"
    KILL_VOTE = "KILL_VOTE"
    BLACK_CAT = "BLACK_CAT"
    GUARD_VOTE = "GUARD_VOTE"
    GUARD_SKIP = "GUARD_SKIP"
    SELF_REVEAL = "SELF_REVEAL"
    CONFESSION_PASS = "CONFESSION_PASS"
    SHUFFLE_HAND = "SHUFFLE_HAND"
    SHUFFLE_GHOST = "SHUFFLE_GHOST"
    NIGHT_DAMAGE_SELECT = "NIGHT_DAMAGE_SELECT"
    TRIGGER_CONSPIRACY = "TRIGGER_CONSPIRACY"
    CONSPIRACY_SELECT = "CONSPIRACY_SELECT"
    CONSPIRACY_SELECT_FOR_OTHER = "CONSPIRACY_SELECT_FOR_OTHER"


class Winner(str, Enum):
    """Side that won the game."""

    TOWN_WIN = "TOWN_WIN"
    WITCH_WIN = "WITCH_WIN"


# Night sub-phases; night confirmations are cleared on entry to each of them
NIGHT_PHASES = (
    Phase.NIGHT_INITIAL_WITCH,
    Phase.NIGHT_WITCH_VOTE,
    Phase.NIGHT_CONSTABLE,
    Phase.NIGHT_CONFESSION,
    Phase.NIGHT_RESOLUTION,
)

# Rulebook card distribution: player count -> (witch, constable, not_a_witch)
CARD_DISTRIBUTION: dict[int, tuple[int, int, int]] = {
    4: (1, 1, 18),
    5: (1, 1, 23),
    6: (2, 1, 27),
    7: (2, 1, 32),
    8: (2, 1, 29),
    9: (2, 1, 33),
    10: (2, 1, 27),
    11: (2, 1, 30),
    12: (2, 1, 33),
}

# Real (non-ghost) participants needed to start; 2-3 play the small game with ghosts
MIN_PLAYERS = 2
MAX_PLAYERS = 12
SMALL_GAME_MAX_PLAYERS = 3

# Sentinel stored as the constable guard target when protection is skipped
GUARD_SKIP = "SKIP"

# Cards revealed by a night attack in the small game
NIGHT_DAMAGE_CARDS = 2

WINNER_MESSAGES = {
    Winner.TOWN_WIN: "Town Win!",
    Winner.WITCH_WIN: "Witches Win!",
}
