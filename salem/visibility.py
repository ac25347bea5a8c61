"""State visibility: the public broadcast view and per-participant private views."""

import copy
import random
from dataclasses import dataclass, field
from typing import Optional

from salem.rules import Phase
from salem.state import Card, GameState, WitchVote


@dataclass
class PrivateView:
    """What one human participant may see beyond the public view."""

    entity_id: str
    cards: list[Card] = field(default_factory=list)
    is_witch_aligned: bool = False
    witch_votes: list[WitchVote] = field(default_factory=list)  # witch-aligned viewers only


def public_view(state: GameState) -> GameState:
    """
    Return a copy safe to broadcast to everyone: unrevealed roles nulled,
    witch alignment and witch votes dropped, night choices hidden until resolution.
    """
    view = copy.deepcopy(state)
    for entity in view.entities:
        entity.has_ever_held_witch = False
        for card in entity.cards:
            if not card.revealed:
                card.role = None
    view.witch_votes = []
    view.conspiracy_selections = []
    if view.phase != Phase.NIGHT_RESOLUTION:
        view.night_kill_target_id = None
        view.constable_guard_id = None
    return view


def private_view(state: GameState, entity_id: str) -> Optional[PrivateView]:
    """Return entity_id's true hand (and witch votes if witch-aligned), or None for ghosts/unknown ids."""
    entity = state.get_entity(entity_id)
    if entity is None or entity.is_ghost:
        return None
    view = PrivateView(
        entity_id=entity.id,
        cards=copy.deepcopy(entity.cards),
        is_witch_aligned=entity.has_ever_held_witch,
    )
    if entity.has_ever_held_witch:
        view.witch_votes = copy.deepcopy(state.witch_votes)
    return view


def peek_ghost_card(
    state: GameState,
    viewer_id: str,
    ghost_id: str,
    rng: Optional[random.Random] = None,
) -> Optional[Card]:
    """Small game: show a living player one random hidden card of a living ghost."""
    if not state.is_small_game or state.phase in (Phase.LOBBY, Phase.GAME_OVER):
        return None
    viewer = state.get_entity(viewer_id)
    ghost = state.get_entity(ghost_id)
    if viewer is None or viewer.is_ghost or viewer.is_dead:
        return None
    if ghost is None or not ghost.is_ghost or ghost.is_dead:
        return None
    hidden = ghost.hidden_cards()
    if not hidden:
        return None
    rng = rng if rng is not None else random.Random()
    return copy.deepcopy(rng.choice(hidden))
