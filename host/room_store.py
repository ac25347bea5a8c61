"""In-memory room store with optional JSON session snapshots on disk."""

import asyncio
import logging
import os
import random
import time
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from host.config import get_session_dir, get_session_expiry_seconds, make_rng
from salem.state import GameState

logger = logging.getLogger(__name__)


class SessionSnapshot(BaseModel):
    """What the host persists after each mutation; enough to rebuild a room at any phase."""

    entity_id: str
    display_name: str
    room_id: str
    is_host: bool = True
    game_state: GameState
    host_token: str | None = Field(default=None, description="Host-local only; never sent to clients")
    timestamp: float = Field(default_factory=time.time)


@dataclass
class Room:
    room_id: str
    state: GameState
    host_entity_id: str
    host_token: str
    rng: random.Random = field(default_factory=random.Random)
    connections: dict[str, Any] = field(default_factory=dict)  # address -> WebSocket
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


# room_id -> Room
_store: dict[str, Room] = {}


def _snapshot_path(directory: str, room_id: str) -> str:
    safe = "".join(ch for ch in room_id if ch.isalnum() or ch in "-_")
    return os.path.join(directory, f"{safe}.json")


def save_snapshot(snapshot: SessionSnapshot, directory: str) -> str:
    """Write snapshot as JSON; returns the file path."""
    os.makedirs(directory, exist_ok=True)
    path = _snapshot_path(directory, snapshot.room_id)
    with open(path, "w", encoding="utf-8") as f:
        f.write(snapshot.model_dump_json())
    return path


def load_snapshot(
    room_id: str,
    directory: str,
    expiry_seconds: int,
    now: float | None = None,
) -> SessionSnapshot | None:
    """Read a snapshot; missing, unreadable or expired snapshots yield None."""
    path = _snapshot_path(directory, room_id)
    if not os.path.exists(path):
        return None
    try:
        with open(path, encoding="utf-8") as f:
            snapshot = SessionSnapshot.model_validate_json(f.read())
    except (OSError, ValidationError) as e:
        logger.warning("Failed to load session snapshot %s: %s", path, e)
        return None
    now = time.time() if now is None else now
    if now - snapshot.timestamp > expiry_seconds:
        logger.info("Session snapshot for room %s expired", room_id)
        return None
    return snapshot


def _persist(room: Room) -> None:
    directory = get_session_dir()
    if not directory:
        return
    host = room.state.get_entity(room.host_entity_id)
    snapshot = SessionSnapshot(
        entity_id=room.host_entity_id,
        display_name=host.name if host else "",
        room_id=room.room_id,
        game_state=room.state,
        host_token=room.host_token,
    )
    try:
        save_snapshot(snapshot, directory)
    except OSError as e:
        logger.warning("Failed to save session snapshot for room %s: %s", room.room_id, e)


def create(
    room_id: str,
    state: GameState,
    host_entity_id: str,
    host_token: str,
    rng: random.Random | None = None,
) -> Room:
    room = Room(
        room_id=room_id,
        state=state,
        host_entity_id=host_entity_id,
        host_token=host_token,
        rng=rng or make_rng(),
    )
    _store[room_id] = room
    _persist(room)
    return room


def restore(room_id: str) -> Room | None:
    """Rebuild a room from its snapshot in the session directory, if any."""
    directory = get_session_dir()
    if not directory:
        return None
    snapshot = load_snapshot(room_id, directory, get_session_expiry_seconds())
    if snapshot is None or not snapshot.host_token:
        return None
    room = Room(
        room_id=room_id,
        state=snapshot.game_state,
        host_entity_id=snapshot.entity_id,
        host_token=snapshot.host_token,
        rng=make_rng(),
    )
    _store[room_id] = room
    logger.info("Restored room %s in phase %s", room_id, room.state.phase.value)
    return room


def get(room_id: str) -> Room | None:
    return _store.get(room_id) or restore(room_id)


def update(room_id: str, state: GameState) -> None:
    room = _store.get(room_id)
    if room is not None:
        room.state = state
        _persist(room)


def delete(room_id: str) -> None:
    """Forget the room and its snapshot so it cannot be restored."""
    _store.pop(room_id, None)
    directory = get_session_dir()
    if not directory:
        return
    path = _snapshot_path(directory, room_id)
    try:
        if os.path.exists(path):
            os.remove(path)
    except OSError as e:
        logger.warning("Failed to remove session snapshot %s: %s", path, e)


def list_rooms() -> list[str]:
    return list(_store.keys())
