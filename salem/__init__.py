"""Game engine for the Salem moderator."""

from salem.actions import Action, InvalidAction, parse_action, process_action
from salem.dealer import build_deck, deal_hands, hand_size_for, synthesize_ghosts
from salem.engine import (
    add_entity,
    advance_phase,
    create_game,
    left_neighbor_id,
    mark_disconnected,
    move_entity,
    reconnect_entity,
    remove_entity,
    resolve_night,
    set_night_target,
    start_game,
)
from salem.rules import ActionKind, CardRole, Phase, Winner
from salem.state import Card, Entity, GameState, LogEntry
from salem.visibility import PrivateView, peek_ghost_card, private_view, public_view
from salem.win import check_win_condition

__all__ = [
    "Action",
    "InvalidAction",
    "parse_action",
    "process_action",
    "build_deck",
    "deal_hands",
    "hand_size_for",
    "synthesize_ghosts",
    "add_entity",
    "advance_phase",
    "create_game",
    "left_neighbor_id",
    "mark_disconnected",
    "move_entity",
    "reconnect_entity",
    "remove_entity",
    "resolve_night",
    "set_night_target",
    "start_game",
    "ActionKind",
    "CardRole",
    "Phase",
    "Winner",
    "Card",
    "Entity",
    "GameState",
    "LogEntry",
    "PrivateView",
    "peek_ghost_card",
    "private_view",
    "public_view",
    "check_win_condition",
]
