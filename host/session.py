"""Host message routing: turn inbound network messages into state changes and outbound messages."""

import logging
import random
from dataclasses import dataclass, field
from typing import Iterable, Optional

from pydantic import ValidationError

from host.models import (
    ActionMessage,
    JoinMessage,
    LeaveMessage,
    OutboundMessage,
    PeekGhostMessage,
    RejoinMessage,
    error,
    ghost_peek,
    inbound_message_adapter,
    update_hand,
    update_state,
    welcome,
)
from salem.actions import InvalidAction, parse_action, process_action
from salem.engine import add_entity, mark_disconnected, reconnect_entity, remove_entity
from salem.rules import MAX_PLAYERS, Phase
from salem.state import Entity, GameState
from salem.visibility import peek_ghost_card, private_view

logger = logging.getLogger(__name__)

MALFORMED_MESSAGE = "Malformed message."
GAME_IN_PROGRESS = "Game has already started. Cannot join as a new player."
ROOM_FULL = "The room is full."


@dataclass
class Outbound:
    """One message addressed to one transport address."""

    address: str
    message: OutboundMessage


@dataclass
class HandleResult:
    """New state plus direct replies; broadcast is needed when the state changed."""

    state: GameState
    replies: list[Outbound] = field(default_factory=list)
    changed: bool = False


def _entity_at(state: GameState, address: str) -> Optional[Entity]:
    for e in state.entities:
        if not e.is_ghost and e.address == address:
            return e
    return None


def _result(old: GameState, new: GameState, replies: Optional[list[Outbound]] = None) -> HandleResult:
    return HandleResult(state=new, replies=replies or [], changed=new is not old)


def _join(state: GameState, address: str, name: str, entity_id: Optional[str] = None) -> HandleResult:
    existing = _entity_at(state, address)
    if existing is not None:
        return _result(state, state, [Outbound(address, welcome(state, existing.id))])

    if state.phase != Phase.LOBBY:
        match = state.find_by_name(name)
        if match is None or not match.is_disconnected:
            return _result(state, state, [Outbound(address, error(GAME_IN_PROGRESS))])
        new_state = reconnect_entity(state, match.id, address)
        return _result(state, new_state, [Outbound(address, welcome(new_state, match.id))])

    if state.find_by_name(name) is not None:
        message = f'Name "{name}" is already taken. Please choose a different name.'
        return _result(state, state, [Outbound(address, error(message))])
    if len(state.get_humans()) >= MAX_PLAYERS:
        return _result(state, state, [Outbound(address, error(ROOM_FULL))])

    new_state = add_entity(state, name, address, entity_id=entity_id)
    joined = new_state.entities[-1].id
    return _result(state, new_state, [Outbound(address, welcome(new_state, joined))])


def handle_join(state: GameState, address: str, name: str) -> HandleResult:
    """JOIN: seat a new participant, or reattach a disconnected one after the start."""
    return _join(state, address, name)


def handle_rejoin(state: GameState, address: str, name: str, entity_id: str) -> HandleResult:
    """REJOIN: reattach by entity id; an unknown id is treated as a fresh join."""
    entity = state.get_entity(entity_id)
    if entity is None or entity.is_ghost:
        logger.info("Room %s: unknown entity %s on rejoin; joining fresh", state.room_id or "-", entity_id)
        return _join(state, address, name, entity_id=entity_id)
    new_state = reconnect_entity(state, entity_id, address)
    return _result(state, new_state, [Outbound(address, welcome(new_state, entity_id))])


def handle_leave(state: GameState, address: str, entity_id: str) -> HandleResult:
    """LEAVE: remove in the lobby, otherwise mark disconnected. Only the entity itself may leave."""
    entity = _entity_at(state, address)
    if entity is None or entity.id != entity_id:
        return _result(state, state)
    return _result(state, remove_entity(state, entity_id))


def handle_disconnect(state: GameState, address: str) -> HandleResult:
    """Transport lost the connection at address."""
    entity = _entity_at(state, address)
    if entity is None or entity.is_disconnected:
        return _result(state, state)
    return _result(state, mark_disconnected(state, entity.id))


def handle_action(
    state: GameState,
    address: str,
    action_kind: str,
    payload: Optional[dict],
    rng: Optional[random.Random] = None,
) -> HandleResult:
    """ACTION: route to the action processor on behalf of the entity at address."""
    entity = _entity_at(state, address)
    if entity is None:
        return _result(state, state)
    try:
        action = parse_action(action_kind, payload)
    except InvalidAction as e:
        logger.debug("Malformed action from %s: %s", entity.id, e)
        return _result(state, state, [Outbound(address, error(MALFORMED_MESSAGE))])
    return _result(state, process_action(state, entity.id, action, rng))


def handle_peek(
    state: GameState,
    address: str,
    ghost_id: str,
    rng: Optional[random.Random] = None,
) -> HandleResult:
    """PEEK_GHOST: privately show the requester one hidden ghost card."""
    entity = _entity_at(state, address)
    if entity is None:
        return _result(state, state)
    card = peek_ghost_card(state, entity.id, ghost_id, rng)
    if card is None:
        return _result(state, state)
    return _result(state, state, [Outbound(address, ghost_peek(ghost_id, card))])


def handle_message(
    state: GameState,
    address: str,
    raw: object,
    rng: Optional[random.Random] = None,
) -> HandleResult:
    """Validate a raw inbound message and dispatch it."""
    try:
        message = inbound_message_adapter.validate_python(raw)
    except ValidationError as e:
        logger.debug("Malformed message from %s: %s", address, e)
        return _result(state, state, [Outbound(address, error(MALFORMED_MESSAGE))])

    if isinstance(message, JoinMessage):
        return handle_join(state, address, message.payload.name)
    if isinstance(message, RejoinMessage):
        return handle_rejoin(state, address, message.payload.name, message.payload.entity_id)
    if isinstance(message, ActionMessage):
        return handle_action(
            state, address, message.payload.action_kind, message.payload.payload, rng
        )
    if isinstance(message, LeaveMessage):
        return handle_leave(state, address, message.payload.entity_id)
    if isinstance(message, PeekGhostMessage):
        return handle_peek(state, address, message.payload.ghost_id, rng)
    return _result(state, state)


def broadcast(state: GameState, addresses: Iterable[str]) -> list[Outbound]:
    """
    UPDATE_STATE (masked) to every connected address, then UPDATE_HAND to each
    connected participant with only that participant's own cards.
    """
    addresses = list(addresses)
    state_message = update_state(state)
    out = [Outbound(address, state_message) for address in addresses]
    connected = set(addresses)
    for entity in state.get_humans():
        if entity.address not in connected or entity.is_disconnected:
            continue
        view = private_view(state, entity.id)
        if view is not None:
            out.append(Outbound(entity.address, update_hand(view)))
    return out
