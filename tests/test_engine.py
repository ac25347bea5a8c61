"""Engine tests: lobby management, phase transitions and night resolution."""

import random

from salem.actions import NightDamageSelect, process_action
from salem.engine import (
    add_entity,
    advance_phase,
    create_game,
    left_neighbor_id,
    move_entity,
    remove_entity,
    resolve_night,
    set_night_target,
    start_game,
)
from salem.rules import GUARD_SKIP, CardRole, Phase, Winner
from salem.state import Card, Entity, GameState, PendingAccusation

W = CardRole.WITCH
T = CardRole.NOT_A_WITCH
C = CardRole.CONSTABLE


def _lobby(n: int) -> GameState:
    state = create_game("ROOM")
    for i in range(n):
        state = add_entity(state, f"P{i}", f"a{i}", entity_id=f"p{i}")
    return state


def _entity(entity_id, roles, revealed=(), ghost=False, dead=False):
    return Entity(
        id=entity_id,
        name=entity_id.upper(),
        address="" if ghost else f"addr-{entity_id}",
        cards=[Card(id=f"{entity_id}-{i}", role=r, revealed=i in revealed) for i, r in enumerate(roles)],
        has_ever_held_witch=W in roles,
        is_ghost=ghost,
        is_dead=dead,
    )


def _state(phase, entities, small=False) -> GameState:
    return GameState(room_id="ROOM", phase=phase, entities=entities, is_small_game=small)


def _standard_table(phase=Phase.NIGHT_RESOLUTION) -> GameState:
    return _state(phase, [
        _entity("w", [W, T, T]),
        _entity("a", [T, T, C]),
        _entity("b", [T, T, T]),
        _entity("c", [T, T, T]),
    ])


def _small_table(phase, ghost_roles=((W, T, T, T, T), (T, T, T, T, T))) -> GameState:
    return _state(phase, [
        _entity("p1", [T, T, T, T, T]),
        _entity("g1", list(ghost_roles[0]), ghost=True),
        _entity("p2", [T, T, T, T, T]),
        _entity("g2", list(ghost_roles[1]), ghost=True),
    ], small=True)


def _messages(state: GameState) -> list[str]:
    return [entry.message for entry in state.log]


# --- Lobby -----------------------------------------------------------------------------


def test_add_entity_seats_at_end_and_logs():
    state = _lobby(2)
    assert [e.id for e in state.entities] == ["p0", "p1"]
    assert _messages(state) == ["P0 joined.", "P1 joined."]
    assert add_entity(state, "Again", "a9", entity_id="p0") is state


def test_remove_entity_in_lobby_drops_seat():
    state = remove_entity(_lobby(3), "p1")
    assert [e.id for e in state.entities] == ["p0", "p2"]
    assert _messages(state)[-1] == "A player left the game."


def test_remove_entity_after_start_marks_disconnected():
    state = start_game(_lobby(4), random.Random(1))
    state = remove_entity(state, "p2")
    leaver = state.get_entity("p2")
    assert leaver is not None
    assert leaver.is_disconnected is True
    assert len(leaver.cards) == 5


def test_move_entity_swaps_in_lobby_only():
    state = move_entity(_lobby(3), 0, 1)
    assert [e.id for e in state.entities] == ["p1", "p0", "p2"]
    assert move_entity(state, 2, 1) is state
    started = start_game(_lobby(4), random.Random(1))
    assert move_entity(started, 0, 1) is started


def test_start_game_rejects_bad_table_sizes():
    one = _lobby(1)
    assert start_game(one) is one
    thirteen = _lobby(13)
    assert start_game(thirteen) is thirteen


def test_start_game_only_from_lobby():
    started = start_game(_lobby(5), random.Random(4))
    assert start_game(started) is started


def test_start_game_standard_table():
    state = start_game(_lobby(5), random.Random(4))
    assert state.phase == Phase.SETUP
    assert state.is_small_game is False
    assert state.turn_counter == 0
    assert all(len(e.cards) == 5 for e in state.entities)
    assert _messages(state)[-1] == "Game Started. Cards distributed."


def test_left_neighbor_wraps_and_skips_dead():
    state = _standard_table()
    assert left_neighbor_id(state, "w") == "c"
    assert left_neighbor_id(state, "b") == "a"
    state.get_entity("a").is_dead = True
    assert left_neighbor_id(state, "b") == "w"
    assert left_neighbor_id(state, "a") is None


# --- Phase machine ----------------------------------------------------------------------


def test_full_round_of_phases():
    rng = random.Random(5)
    state = start_game(_lobby(5), rng)
    state = advance_phase(state, rng)
    assert state.phase == Phase.NIGHT_INITIAL_WITCH
    state = advance_phase(state, rng)
    assert state.phase == Phase.DAY
    assert state.turn_counter == 1
    state = advance_phase(state, rng)
    assert state.phase == Phase.NIGHT_WITCH_VOTE
    state = advance_phase(state, rng)
    assert state.phase == Phase.NIGHT_CONSTABLE
    state = advance_phase(state, rng)
    assert state.phase == Phase.NIGHT_CONFESSION
    state = advance_phase(state, rng)
    assert state.phase == Phase.NIGHT_RESOLUTION
    assert _messages(state)[-1] == "Confession period has ended."


def test_advance_phase_ignores_host_driven_phases():
    for phase in (Phase.LOBBY, Phase.CONSPIRACY, Phase.NIGHT_RESOLUTION, Phase.GAME_OVER):
        state = _standard_table(phase)
        assert advance_phase(state) is state


def test_no_constable_skips_to_confession():
    state = _standard_table(Phase.NIGHT_WITCH_VOTE)
    state.get_entity("a").cards[2].revealed = True
    state = advance_phase(state)
    assert state.phase == Phase.NIGHT_CONFESSION
    assert "No Constable to protect tonight." in _messages(state)


def test_dead_constable_skips_to_confession():
    state = _standard_table(Phase.NIGHT_WITCH_VOTE)
    state.get_entity("a").is_dead = True
    assert advance_phase(state).phase == Phase.NIGHT_CONFESSION


def test_entering_night_phase_clears_confirmations():
    state = _standard_table(Phase.NIGHT_WITCH_VOTE)
    state.night_confirmations = {"w", "a"}
    state = advance_phase(state)
    assert state.night_confirmations == set()


def test_day_to_night_clears_pending_accusation():
    rng = random.Random(8)
    state = advance_phase(advance_phase(start_game(_lobby(4), rng), rng), rng)
    assert state.phase == Phase.DAY
    state.pending_accusation = PendingAccusation("p0", "P0", "p1", "P1")
    state = advance_phase(state, rng)
    assert state.pending_accusation is None


def test_ghost_only_witches_pick_black_cat_silently():
    state = _small_table(Phase.SETUP)
    before = len(state.log)
    state = advance_phase(state, random.Random(3))
    cats = [e for e in state.entities if e.has_black_cat]
    assert state.phase == Phase.NIGHT_INITIAL_WITCH
    assert len(cats) == 1
    assert not cats[0].is_ghost
    assert len(state.log) == before


def test_ghost_only_witches_pick_night_target():
    state = advance_phase(_small_table(Phase.DAY), random.Random(3))
    assert state.phase == Phase.NIGHT_WITCH_VOTE
    assert state.night_kill_target_id in ("p1", "p2")


def test_human_witch_gets_no_automatic_target():
    state = _small_table(Phase.DAY, ghost_roles=((T, T, T, T, T), (C, T, T, T, T)))
    state.entities[0].cards[0].role = W
    state.entities[0].has_ever_held_witch = True
    assert advance_phase(state, random.Random(3)).night_kill_target_id is None


def test_ghost_constable_skips_protection():
    state = _small_table(Phase.NIGHT_CONSTABLE, ghost_roles=((W, T, T, T, T), (C, T, T, T, T)))
    state = advance_phase(state)
    assert state.constable_guard_id == GUARD_SKIP
    assert state.phase == Phase.NIGHT_CONFESSION


def test_ghost_constable_still_gets_constable_phase():
    state = _small_table(Phase.NIGHT_WITCH_VOTE, ghost_roles=((W, T, T, T, T), (C, T, T, T, T)))
    assert advance_phase(state).phase == Phase.NIGHT_CONSTABLE


# --- Night resolution --------------------------------------------------------------------


def test_set_night_target_override():
    state = _standard_table()
    state = set_night_target(state, "b")
    assert state.night_kill_target_id == "b"
    assert set_night_target(state, None).night_kill_target_id is None
    assert set_night_target(state, "nobody") is state
    day = _standard_table(Phase.DAY)
    assert set_night_target(day, "b") is day


def test_resolve_night_without_target():
    state = resolve_night(_standard_table(), target_dies=True)
    assert "The witches did not select a target." in _messages(state)
    assert state.phase == Phase.DAY
    assert state.turn_counter == 1


def test_resolve_night_kill():
    state = _standard_table()
    state.night_kill_target_id = "b"
    state.constable_guard_id = "a"
    state.get_entity("c").is_immune = True
    state = resolve_night(state, target_dies=True)
    victim = state.get_entity("b")
    assert victim.is_dead
    assert all(c.revealed for c in victim.cards)
    assert "B was killed in the night." in _messages(state)
    assert state.phase == Phase.DAY
    assert state.night_kill_target_id is None
    assert state.constable_guard_id is None
    assert not any(e.is_immune for e in state.entities)


def test_resolve_night_survival():
    state = _standard_table()
    state.night_kill_target_id = "b"
    state = resolve_night(state, target_dies=False)
    assert not state.get_entity("b").is_dead
    assert "B was targeted but survived the night!" in _messages(state)
    assert state.phase == Phase.DAY


def test_resolve_night_kill_can_end_game():
    state = _standard_table()
    state.get_entity("a").is_dead = True
    state.get_entity("b").is_dead = True
    state.night_kill_target_id = "c"
    state = resolve_night(state, target_dies=True)
    assert state.phase == Phase.GAME_OVER
    assert state.winner == Winner.WITCH_WIN
    assert _messages(state)[-1] == "Witches Win!"


def test_resolve_night_only_in_resolution_phase():
    state = _standard_table(Phase.NIGHT_CONFESSION)
    state.night_kill_target_id = "b"
    assert resolve_night(state, target_dies=True) is state


def test_small_game_attack_reveals_two_then_last_card():
    state = _small_table(Phase.NIGHT_RESOLUTION)
    p2 = state.get_entity("p2")
    p2.cards[0].revealed = True
    p2.cards[1].revealed = True
    state.night_kill_target_id = "p2"

    state = resolve_night(state, target_dies=True)
    selection = state.night_damage_selection
    assert selection is not None
    # Left of P2 is a ghost, so the nearest human chooses
    assert selection.chooser_id == "p1"
    assert "P2 was attacked! P1 must choose 2 cards to reveal." in _messages(state)
    assert resolve_night(state, target_dies=True) is state

    hidden = [c.id for c in state.get_entity("p2").hidden_cards()]
    state = process_action(state, "p1", NightDamageSelect(card_ids=tuple(hidden[:2])))
    p2 = state.get_entity("p2")
    assert not p2.is_dead
    assert len(p2.hidden_cards()) == 1
    assert "P2 lost 2 card(s) to the night attack." in _messages(state)
    assert state.phase == Phase.DAY
    assert state.night_damage_selection is None

    state.phase = Phase.NIGHT_RESOLUTION
    state.night_kill_target_id = "p2"
    state = resolve_night(state, target_dies=True)
    assert "P2 was attacked! P1 must choose 1 cards to reveal." in _messages(state)
    last = state.get_entity("p2").hidden_cards()[0].id
    state = process_action(state, "p1", NightDamageSelect(card_ids=(last,)))
    assert state.get_entity("p2").is_dead
    assert "P2 had all their cards revealed and has been eliminated!" in _messages(state)
    assert state.winner == Winner.WITCH_WIN
    assert state.phase == Phase.GAME_OVER


def test_small_game_attack_on_ghost_chosen_by_first_human():
    state = _small_table(Phase.NIGHT_RESOLUTION)
    state.night_kill_target_id = "g2"
    state = resolve_night(state, target_dies=True)
    assert state.night_damage_selection.chooser_id == "p1"


def test_night_damage_select_requires_chooser_and_exact_count():
    state = _small_table(Phase.NIGHT_RESOLUTION)
    state.night_kill_target_id = "p2"
    state = resolve_night(state, target_dies=True)
    hidden = [c.id for c in state.get_entity("p2").hidden_cards()]
    assert process_action(state, "p2", NightDamageSelect(card_ids=tuple(hidden[:2]))) is state
    assert process_action(state, "p1", NightDamageSelect(card_ids=(hidden[0],))) is state
    assert process_action(state, "p1", NightDamageSelect(card_ids=(hidden[0], hidden[0]))) is state
