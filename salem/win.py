"""Win-condition evaluation: a pure predicate over the roster."""

from typing import Optional

from salem.rules import CardRole, Winner
from salem.state import Entity


def check_win_condition(entities: list[Entity], is_small_game: bool = False) -> Optional[Winner]:
    """Return the winning side, or None while the game goes on."""
    if is_small_game:
        return _check_small_game(entities)

    alive = [e for e in entities if not e.is_dead]
    if not any(e.holds_unrevealed(CardRole.WITCH) for e in alive):
        return Winner.TOWN_WIN
    if all(e.has_ever_held_witch for e in alive):
        return Winner.WITCH_WIN
    return None


def _check_small_game(entities: list[Entity]) -> Optional[Winner]:
    witch_cards = [c for e in entities for c in e.cards if c.role == CardRole.WITCH]
    if witch_cards and any(c.revealed for c in witch_cards):
        return Winner.TOWN_WIN

    # Any full elimination is a witch win in the small game
    if any(e.cards and all(c.revealed for c in e.cards) for e in entities):
        return Winner.WITCH_WIN

    living_humans = [e for e in entities if not e.is_ghost and not e.is_dead]
    if living_humans and all(e.has_ever_held_witch for e in living_humans):
        return Winner.WITCH_WIN
    return None
