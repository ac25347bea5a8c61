"""Game engine: lobby management and the phase state machine. Pure state transitions."""

import copy
import logging
import random
from typing import Optional

from salem.dealer import deal_hands, synthesize_ghosts
from salem.rules import (
    CardRole,
    GUARD_SKIP,
    MAX_PLAYERS,
    MIN_PLAYERS,
    NIGHT_DAMAGE_CARDS,
    NIGHT_PHASES,
    Phase,
    SMALL_GAME_MAX_PLAYERS,
    Winner,
    WINNER_MESSAGES,
)
from salem.state import Entity, GameState, NightDamageSelection
from salem.win import check_win_condition

logger = logging.getLogger(__name__)


def _rng(rng: Optional[random.Random]) -> random.Random:
    return rng if rng is not None else random.Random()


def set_phase(state: GameState, phase: Phase) -> None:
    """Switch phase (mutates state); entering a night sub-phase clears confirmations."""
    logger.info("Room %s: %s -> %s", state.room_id or "-", state.phase.value, phase.value)
    state.phase = phase
    if phase in NIGHT_PHASES:
        state.night_confirmations = set()


def apply_win_check(state: GameState) -> Optional[Winner]:
    """
    Evaluate the win condition and, on a result, force GAME_OVER and log the
    winner (mutates state). Lobby and finished games are left alone.
    """
    if state.phase in (Phase.LOBBY, Phase.GAME_OVER):
        return None
    winner = check_win_condition(state.entities, state.is_small_game)
    if winner is None:
        return None
    state.winner = winner
    state.add_log(WINNER_MESSAGES[winner])
    set_phase(state, Phase.GAME_OVER)
    return winner


def left_neighbor_id(state: GameState, entity_id: str) -> Optional[str]:
    """Return the previous living entity in seating order (ring wraps), or None."""
    living = state.get_living()
    for index, entity in enumerate(living):
        if entity.id == entity_id:
            return living[index - 1].id
    return None


# --- Lobby -------------------------------------------------------------------


def create_game(room_id: str) -> GameState:
    """Create an empty lobby."""
    return GameState(room_id=room_id)


def add_entity(
    state: GameState,
    name: str,
    address: str,
    entity_id: Optional[str] = None,
    is_host: bool = False,
) -> GameState:
    """Seat a new participant at the end of the ring. Returns new state."""
    entity_id = entity_id or address
    if state.get_entity(entity_id) is not None:
        return state
    state = copy.deepcopy(state)
    state.entities.append(Entity(id=entity_id, name=name, address=address, is_host=is_host))
    state.add_log(f"{name} joined.")
    return state


def remove_entity(state: GameState, entity_id: str) -> GameState:
    """Drop a participant from the lobby; after the start it is only marked disconnected."""
    if state.get_entity(entity_id) is None:
        return state
    if state.phase != Phase.LOBBY:
        return mark_disconnected(state, entity_id, "A player left the game.")
    state = copy.deepcopy(state)
    state.entities = [e for e in state.entities if e.id != entity_id]
    state.add_log("A player left the game.")
    return state


def mark_disconnected(state: GameState, entity_id: str, message: Optional[str] = None) -> GameState:
    """Flag an entity as disconnected; hand and role stay untouched for a rejoin."""
    entity = state.get_entity(entity_id)
    if entity is None or entity.is_ghost:
        return state
    state = copy.deepcopy(state)
    entity = state.get_entity(entity_id)
    entity.is_disconnected = True
    state.add_log(message or f"{entity.name} disconnected.")
    return state


def reconnect_entity(state: GameState, entity_id: str, address: str) -> GameState:
    """Attach a new transport address to an existing entity."""
    entity = state.get_entity(entity_id)
    if entity is None or entity.is_ghost:
        return state
    state = copy.deepcopy(state)
    entity = state.get_entity(entity_id)
    entity.address = address
    entity.is_disconnected = False
    state.add_log(f"{entity.name} reconnected.")
    return state


def move_entity(state: GameState, index: int, offset: int) -> GameState:
    """Swap the seat at index with its neighbour at index + offset (lobby only)."""
    new_index = index + offset
    if state.phase != Phase.LOBBY:
        return state
    if not (0 <= index < len(state.entities) and 0 <= new_index < len(state.entities)):
        return state
    state = copy.deepcopy(state)
    seats = state.entities
    seats[index], seats[new_index] = seats[new_index], seats[index]
    return state


def start_game(state: GameState, rng: Optional[random.Random] = None) -> GameState:
    """
    Leave the lobby: pad small tables with ghosts, deal hands and enter SETUP.
    Returns the input unchanged when the table size is not playable.
    """
    if state.phase != Phase.LOBBY:
        return state
    humans = state.get_humans()
    if not MIN_PLAYERS <= len(humans) <= MAX_PLAYERS:
        logger.warning(
            "Room %s: cannot start with %d players (%d-%d allowed)",
            state.room_id or "-", len(humans), MIN_PLAYERS, MAX_PLAYERS,
        )
        return state

    rng = _rng(rng)
    state = copy.deepcopy(state)
    small = len(humans) <= SMALL_GAME_MAX_PLAYERS
    seats = synthesize_ghosts(humans, rng) if small else humans
    state.entities = deal_hands(seats, rng)
    state.is_small_game = small
    state.turn_counter = 0
    state.night_kill_target_id = None
    state.constable_guard_id = None
    state.witch_votes = []
    state.pending_accusation = None
    state.conspiracy_selections = []
    state.night_confirmations = set()
    state.fake_vote_tally = {}
    state.night_damage_selection = None
    state.winner = None
    if small:
        ghosts = len(seats) - len(humans)
        plural = "s" if ghosts > 1 else ""
        state.add_log(
            f"Small Game Started ({len(humans)} players + {ghosts} ghost{plural}). Cards distributed."
        )
    else:
        state.add_log("Game Started. Cards distributed.")
    set_phase(state, Phase.SETUP)
    return state


# --- Phase state machine -------------------------------------------------------


def _only_ghost_witches(state: GameState) -> bool:
    """True when every living witch-aligned entity is a ghost (and there is one)."""
    witches = [e for e in state.get_living() if e.has_ever_held_witch]
    return bool(witches) and all(e.is_ghost for e in witches)


def advance_phase(state: GameState, rng: Optional[random.Random] = None) -> GameState:
    """
    Advance to the next phase on the host's signal. Returns new state.
    LOBBY, CONSPIRACY, NIGHT_RESOLUTION and GAME_OVER are not advanced here.
    """
    phase = state.phase
    if phase not in (
        Phase.SETUP,
        Phase.NIGHT_INITIAL_WITCH,
        Phase.DAY,
        Phase.NIGHT_WITCH_VOTE,
        Phase.NIGHT_CONSTABLE,
        Phase.NIGHT_CONFESSION,
    ):
        return state
    rng = _rng(rng)
    state = copy.deepcopy(state)

    if phase == Phase.SETUP:
        set_phase(state, Phase.NIGHT_INITIAL_WITCH)
        if state.is_small_game and _only_ghost_witches(state):
            # Silent on purpose: a log line would out the ghost witch
            targets = [e for e in state.get_living() if not e.is_ghost]
            if targets:
                chosen = rng.choice(targets)
                for e in state.entities:
                    e.has_black_cat = e.id == chosen.id

    elif phase == Phase.NIGHT_INITIAL_WITCH:
        state.turn_counter += 1
        state.witch_votes = []
        state.night_confirmations = set()
        set_phase(state, Phase.DAY)

    elif phase == Phase.DAY:
        state.pending_accusation = None
        set_phase(state, Phase.NIGHT_WITCH_VOTE)
        if state.is_small_game and _only_ghost_witches(state):
            targets = [e for e in state.get_living() if not e.is_ghost]
            if targets:
                state.night_kill_target_id = rng.choice(targets).id

    elif phase == Phase.NIGHT_WITCH_VOTE:
        # A ghost constable still gets the phase so its presence reveals nothing
        active_constable = any(e.holds_unrevealed(CardRole.CONSTABLE) for e in state.get_living())
        if active_constable:
            set_phase(state, Phase.NIGHT_CONSTABLE)
        else:
            state.add_log("No Constable to protect tonight.")
            set_phase(state, Phase.NIGHT_CONFESSION)

    elif phase == Phase.NIGHT_CONSTABLE:
        if not state.constable_guard_id:
            ghost_constable = any(
                e.is_ghost and e.holds_unrevealed(CardRole.CONSTABLE) for e in state.get_living()
            )
            if ghost_constable:
                state.constable_guard_id = GUARD_SKIP
        set_phase(state, Phase.NIGHT_CONFESSION)

    elif phase == Phase.NIGHT_CONFESSION:
        state.add_log("Confession period has ended.")
        set_phase(state, Phase.NIGHT_RESOLUTION)

    return state


def set_night_target(state: GameState, target_id: Optional[str]) -> GameState:
    """Host override of tonight's witch target (None clears it)."""
    if state.phase not in (
        Phase.NIGHT_WITCH_VOTE,
        Phase.NIGHT_CONSTABLE,
        Phase.NIGHT_CONFESSION,
        Phase.NIGHT_RESOLUTION,
    ):
        return state
    if state.night_damage_selection is not None:
        return state
    if target_id is not None:
        target = state.get_entity(target_id)
        if target is None or target.is_dead:
            return state
    state = copy.deepcopy(state)
    state.night_kill_target_id = target_id
    return state


def finish_night(state: GameState) -> None:
    """
    Close the night (mutates state): clear night bookkeeping, then either end
    the game or move to the next day.
    """
    for e in state.entities:
        e.is_immune = False
    state.night_kill_target_id = None
    state.constable_guard_id = None
    state.witch_votes = []
    state.night_damage_selection = None
    if apply_win_check(state) is None:
        state.turn_counter += 1
        set_phase(state, Phase.DAY)


def _damage_chooser(state: GameState, target: Entity) -> Optional[str]:
    """Nearest living human to the target's left; any living human for a ghost target."""
    living = state.get_living()
    if target.is_ghost:
        return next((e.id for e in living if not e.is_ghost), None)
    index = next(i for i, e in enumerate(living) if e.id == target.id)
    # Ghosts cannot act, so walk past them
    for step in range(1, len(living)):
        candidate = living[index - step]
        if not candidate.is_ghost:
            return candidate.id
    return None


def resolve_night(state: GameState, target_dies: bool) -> GameState:
    """
    Settle the witches' attack. In the small game a fatal attack becomes a
    pending two-card reveal chosen by the target's left neighbour instead.
    """
    if state.phase != Phase.NIGHT_RESOLUTION or state.night_damage_selection is not None:
        return state
    state = copy.deepcopy(state)
    target = state.get_entity(state.night_kill_target_id) if state.night_kill_target_id else None
    if target is not None and target.is_dead:
        target = None

    if target is None:
        state.add_log("The witches did not select a target.")
        finish_night(state)
        return state

    if state.is_small_game and target_dies:
        chooser_id = _damage_chooser(state, target)
        if chooser_id:
            chooser = state.get_entity(chooser_id)
            count = min(NIGHT_DAMAGE_CARDS, len(target.hidden_cards()))
            state.add_log(f"{target.name} was attacked! {chooser.name} must choose {count} cards to reveal.")
            for e in state.entities:
                e.is_immune = False
            state.night_damage_selection = NightDamageSelection(
                target_id=target.id,
                chooser_id=chooser_id,
            )
            apply_win_check(state)
            return state

    if target_dies:
        target.is_dead = True
        for card in target.cards:
            card.revealed = True
        state.add_log(f"{target.name} was killed in the night.")
    else:
        state.add_log(f"{target.name} was targeted but survived the night!")
    finish_night(state)
    return state
