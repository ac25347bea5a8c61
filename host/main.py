"""FastAPI app: WebSocket transport for participants and host control routes."""

import json
import logging
import secrets
import uuid

from fastapi import FastAPI, Header, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from host import room_store
from host.config import configure_logging, get_cors_origins, make_rng
from host.models import (
    GameStateWire,
    HostActionRequest,
    NightTargetRequest,
    ResolveNightRequest,
    RoomCreateRequest,
    RoomCreateResponse,
    SeatMoveRequest,
    UpdateHandMessage,
    public_game_state,
    update_hand,
)
from host.room_store import Room
from host.session import Outbound, broadcast, handle_disconnect, handle_message
from salem.actions import InvalidAction, parse_action, process_action
from salem.engine import (
    add_entity,
    advance_phase,
    create_game,
    move_entity,
    resolve_night,
    set_night_target,
    start_game,
)
from salem.state import GameState
from salem.visibility import private_view

logger = logging.getLogger(__name__)

configure_logging()

app = FastAPI(title="Salem Moderator API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_room(room_id: str) -> Room:
    room = room_store.get(room_id)
    if room is None:
        raise HTTPException(404, "Room not found")
    return room


def _get_host_room(room_id: str, host_token: str | None) -> Room:
    room = _get_room(room_id)
    if not host_token or not secrets.compare_digest(host_token, room.host_token):
        raise HTTPException(403, "Host token required")
    return room


async def _send(room: Room, messages: list[Outbound]) -> None:
    for out in messages:
        ws = room.connections.get(out.address)
        if ws is None:
            continue
        try:
            await ws.send_json(out.message.model_dump(mode="json", by_alias=True))
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.info("Dropping connection %s in room %s: %s", out.address, room.room_id, e)
            room.connections.pop(out.address, None)


async def _commit(room: Room, state: GameState) -> None:
    """Store the new state and push views to every connection."""
    room_store.update(room.room_id, state)
    await _send(room, broadcast(state, list(room.connections)))


async def _host_command(room: Room, new_state: GameState, old_state: GameState, what: str) -> GameStateWire:
    if new_state is old_state:
        raise HTTPException(400, f"Cannot {what} in phase {old_state.phase.value}")
    await _commit(room, new_state)
    return public_game_state(new_state)


@app.post("/rooms", response_model=RoomCreateResponse, tags=["Rooms"], summary="Create room")
def create_room(body: RoomCreateRequest):
    """Create a room with the host seated. Returns room id, host entity id and host token."""
    room_id = uuid.uuid4().hex[:6].upper()
    host_entity_id = uuid.uuid4().hex[:8]
    state = add_entity(create_game(room_id), body.host_name, "", entity_id=host_entity_id, is_host=True)
    host_token = secrets.token_urlsafe(16)
    room_store.create(room_id, state, host_entity_id, host_token, rng=make_rng())
    logger.info("Created room %s", room_id)
    return RoomCreateResponse(room_id=room_id, host_entity_id=host_entity_id, host_token=host_token)


@app.get("/rooms", response_model=list[str], tags=["Rooms"], summary="List room IDs")
def list_rooms_route():
    return room_store.list_rooms()


@app.get("/rooms/{room_id}", response_model=GameStateWire, tags=["Rooms"], summary="Get public state")
def get_room(room_id: str):
    """Masked game state, as broadcast to every participant."""
    return public_game_state(_get_room(room_id).state)


@app.get("/rooms/{room_id}/hand", response_model=UpdateHandMessage, tags=["Host"], summary="Get host hand")
def host_hand(room_id: str, x_host_token: str | None = Header(default=None)):
    """The host's own cards; the host has no socket to receive UPDATE_HAND on."""
    room = _get_host_room(room_id, x_host_token)
    view = private_view(room.state, room.host_entity_id)
    if view is None:
        raise HTTPException(404, "Host is not seated")
    return update_hand(view)


@app.post("/rooms/{room_id}/start", response_model=GameStateWire, tags=["Host"], summary="Start game")
async def start_room(room_id: str, x_host_token: str | None = Header(default=None)):
    room = _get_host_room(room_id, x_host_token)
    async with room.lock:
        state = room.state
        return await _host_command(room, start_game(state, room.rng), state, "start the game")


@app.post("/rooms/{room_id}/advance", response_model=GameStateWire, tags=["Host"], summary="Next phase")
async def advance_room(room_id: str, x_host_token: str | None = Header(default=None)):
    room = _get_host_room(room_id, x_host_token)
    async with room.lock:
        state = room.state
        return await _host_command(room, advance_phase(state, room.rng), state, "advance")


@app.post("/rooms/{room_id}/resolve-night", response_model=GameStateWire, tags=["Host"], summary="Resolve night")
async def resolve_night_route(
    room_id: str,
    body: ResolveNightRequest,
    x_host_token: str | None = Header(default=None),
):
    room = _get_host_room(room_id, x_host_token)
    async with room.lock:
        state = room.state
        new_state = resolve_night(state, body.target_dies)
        return await _host_command(room, new_state, state, "resolve the night")


@app.post("/rooms/{room_id}/night-target", response_model=GameStateWire, tags=["Host"], summary="Override night target")
async def night_target_route(
    room_id: str,
    body: NightTargetRequest,
    x_host_token: str | None = Header(default=None),
):
    room = _get_host_room(room_id, x_host_token)
    async with room.lock:
        state = room.state
        new_state = set_night_target(state, body.target_id)
        return await _host_command(room, new_state, state, "set the night target")


@app.post("/rooms/{room_id}/seat", response_model=GameStateWire, tags=["Host"], summary="Move a seat")
async def seat_route(
    room_id: str,
    body: SeatMoveRequest,
    x_host_token: str | None = Header(default=None),
):
    room = _get_host_room(room_id, x_host_token)
    async with room.lock:
        state = room.state
        new_state = move_entity(state, body.index, body.offset)
        return await _host_command(room, new_state, state, "move seats")


@app.post("/rooms/{room_id}/action", response_model=GameStateWire, tags=["Host"], summary="Host action")
async def host_action_route(
    room_id: str,
    body: HostActionRequest,
    x_host_token: str | None = Header(default=None),
):
    """Submit an action as the host entity (e.g. TRIGGER_CONSPIRACY)."""
    room = _get_host_room(room_id, x_host_token)
    try:
        action = parse_action(body.action_kind, body.payload)
    except InvalidAction as e:
        raise HTTPException(400, str(e))
    async with room.lock:
        state = room.state
        new_state = process_action(state, room.host_entity_id, action, room.rng)
        return await _host_command(room, new_state, state, body.action_kind.value)


@app.delete("/rooms/{room_id}", tags=["Host"], summary="End session")
async def delete_room(room_id: str, x_host_token: str | None = Header(default=None)):
    room = _get_host_room(room_id, x_host_token)
    for ws in list(room.connections.values()):
        try:
            await ws.close()
        except RuntimeError as e:
            logger.debug("Connection already closed in room %s: %s", room_id, e)
    room_store.delete(room_id)
    return {"deleted": room_id}


@app.websocket("/rooms/{room_id}/ws")
async def room_socket(websocket: WebSocket, room_id: str):
    """Participant transport: inbound JOIN/REJOIN/ACTION/LEAVE/PEEK_GHOST, outbound views."""
    room = room_store.get(room_id)
    await websocket.accept()
    if room is None:
        await websocket.send_json({"type": "ERROR", "payload": {"message": "Room not found"}})
        await websocket.close()
        return
    address = uuid.uuid4().hex
    room.connections[address] = websocket
    try:
        while True:
            text = await websocket.receive_text()
            try:
                raw = json.loads(text)
            except ValueError:
                raw = None
            async with room.lock:
                result = handle_message(room.state, address, raw, room.rng)
                await _send(room, result.replies)
                if result.changed:
                    await _commit(room, result.state)
    except WebSocketDisconnect:
        pass
    finally:
        room.connections.pop(address, None)
        async with room.lock:
            result = handle_disconnect(room.state, address)
            if result.changed:
                await _commit(room, result.state)


@app.get("/health", tags=["System"], summary="Health check")
def health():
    return {"status": "ok"}
