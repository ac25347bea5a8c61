"""API route tests: host HTTP routes, the participant WebSocket and session snapshots."""

import random

from fastapi.testclient import TestClient

from host import room_store
from host.main import app
from host.room_store import SessionSnapshot, load_snapshot, save_snapshot
from salem.engine import add_entity, create_game, start_game

client = TestClient(app)


def _create_room(host_name: str = "Hostess") -> dict:
    r = client.post("/rooms", json={"host_name": host_name})
    assert r.status_code == 200
    return r.json()


def _host(room: dict) -> dict:
    return {"X-Host-Token": room["host_token"]}


def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_create_room():
    room = _create_room()
    r = client.get(f"/rooms/{room['room_id']}")
    assert r.status_code == 200
    state = r.json()
    assert state["roomId"] == room["room_id"]
    assert state["phase"] == "LOBBY"
    assert [e["name"] for e in state["entities"]] == ["Hostess"]
    assert state["entities"][0]["isHost"] is True
    assert state["entities"][0]["id"] == room["host_entity_id"]
    assert room["room_id"] in client.get("/rooms").json()


def test_create_room_validation():
    r = client.post("/rooms", json={"host_name": ""})
    assert r.status_code == 422


def test_get_room_404():
    r = client.get("/rooms/NOPE00")
    assert r.status_code == 404


def test_host_routes_need_token():
    room = _create_room()
    rid = room["room_id"]
    assert client.post(f"/rooms/{rid}/start").status_code == 403
    assert client.post(f"/rooms/{rid}/start", headers={"X-Host-Token": "wrong"}).status_code == 403
    assert client.post(f"/rooms/{rid}/advance", headers={"X-Host-Token": "wrong"}).status_code == 403


def test_host_commands_rejected_in_wrong_phase():
    room = _create_room()
    rid = room["room_id"]
    # Only the host is seated
    r = client.post(f"/rooms/{rid}/start", headers=_host(room))
    assert r.status_code == 400
    assert client.post(f"/rooms/{rid}/advance", headers=_host(room)).status_code == 400
    r = client.post(f"/rooms/{rid}/resolve-night", json={"target_dies": True}, headers=_host(room))
    assert r.status_code == 400
    r = client.post(f"/rooms/{rid}/seat", json={"index": 0, "offset": 1}, headers=_host(room))
    assert r.status_code == 400
    r = client.post(
        f"/rooms/{rid}/action",
        json={"action_kind": "TRIGGER_CONSPIRACY", "payload": {}},
        headers=_host(room),
    )
    assert r.status_code == 400


def test_host_action_with_bad_payload():
    room = _create_room()
    r = client.post(
        f"/rooms/{room['room_id']}/action",
        json={"action_kind": "ACCUSE_START", "payload": {}},
        headers=_host(room),
    )
    assert r.status_code == 400


def test_websocket_join_then_start():
    room = _create_room()
    rid = room["room_id"]
    with client.websocket_connect(f"/rooms/{rid}/ws") as ws:
        ws.send_json({"type": "JOIN", "payload": {"name": "Bob"}})
        welcome = ws.receive_json()
        assert welcome["type"] == "WELCOME"
        entity_id = welcome["payload"]["entityId"]
        assert [e["name"] for e in welcome["payload"]["gameState"]["entities"]] == ["Hostess", "Bob"]
        update = ws.receive_json()
        assert update["type"] == "UPDATE_STATE"
        hand = ws.receive_json()
        assert hand["type"] == "UPDATE_HAND"
        assert hand["payload"]["cards"] == []

        r = client.post(f"/rooms/{rid}/seat", json={"index": 0, "offset": 1}, headers=_host(room))
        assert r.status_code == 200
        assert [e["name"] for e in r.json()["entities"]] == ["Bob", "Hostess"]
        assert ws.receive_json()["type"] == "UPDATE_STATE"
        assert ws.receive_json()["type"] == "UPDATE_HAND"

        r = client.post(f"/rooms/{rid}/start", headers=_host(room))
        assert r.status_code == 200
        state = r.json()
        assert state["phase"] == "SETUP"
        assert state["isSmallGame"] is True
        assert len(state["entities"]) == 4

        update = ws.receive_json()
        assert update["type"] == "UPDATE_STATE"
        hand = ws.receive_json()
        assert hand["type"] == "UPDATE_HAND"
        assert len(hand["payload"]["cards"]) == 5
        assert all(c["role"] is not None for c in hand["payload"]["cards"])
        public_bob = next(e for e in update["payload"]["gameState"]["entities"] if e["id"] == entity_id)
        assert all(c["role"] is None for c in public_bob["cards"])


def test_host_hand_is_private_to_the_host():
    room = _create_room()
    rid = room["room_id"]
    assert client.get(f"/rooms/{rid}/hand").status_code == 403
    r = client.get(f"/rooms/{rid}/hand", headers=_host(room))
    assert r.status_code == 200
    assert r.json() == {"type": "UPDATE_HAND", "payload": {"cards": [], "isWitchAligned": False, "witchVotes": []}}

    with client.websocket_connect(f"/rooms/{rid}/ws") as ws:
        ws.send_json({"type": "JOIN", "payload": {"name": "Bob"}})
        for _ in range(3):
            ws.receive_json()
        assert client.post(f"/rooms/{rid}/start", headers=_host(room)).status_code == 200

    hand = client.get(f"/rooms/{rid}/hand", headers=_host(room)).json()
    assert hand["type"] == "UPDATE_HAND"
    assert len(hand["payload"]["cards"]) == 5
    assert all(c["role"] is not None for c in hand["payload"]["cards"])
    public_host = client.get(f"/rooms/{rid}").json()["entities"]
    host_cards = next(e for e in public_host if e["id"] == room["host_entity_id"])["cards"]
    assert [c["id"] for c in host_cards] == [c["id"] for c in hand["payload"]["cards"]]


def test_websocket_malformed_message():
    room = _create_room()
    with client.websocket_connect(f"/rooms/{room['room_id']}/ws") as ws:
        ws.send_text("not json")
        reply = ws.receive_json()
        assert reply == {"type": "ERROR", "payload": {"message": "Malformed message."}}


def test_websocket_unknown_room():
    with client.websocket_connect("/rooms/NOPE00/ws") as ws:
        reply = ws.receive_json()
        assert reply["type"] == "ERROR"


def test_delete_room():
    room = _create_room()
    rid = room["room_id"]
    assert client.delete(f"/rooms/{rid}").status_code == 403
    r = client.delete(f"/rooms/{rid}", headers=_host(room))
    assert r.status_code == 200
    assert client.get(f"/rooms/{rid}").status_code == 404


# --- Snapshots ---------------------------------------------------------------------------------


def _started_state():
    state = create_game("SNAP01")
    for i in range(5):
        state = add_entity(state, f"P{i}", f"a{i}", entity_id=f"p{i}")
    return start_game(state, random.Random(12))


def test_snapshot_round_trip(tmp_path):
    state = _started_state()
    snapshot = SessionSnapshot(
        entity_id="p0", display_name="P0", room_id="SNAP01", game_state=state, timestamp=1000.0
    )
    path = save_snapshot(snapshot, str(tmp_path))
    assert path.endswith("SNAP01.json")

    loaded = load_snapshot("SNAP01", str(tmp_path), expiry_seconds=60, now=1030.0)
    assert loaded is not None
    assert loaded.game_state == state
    assert loaded.is_host is True


def test_snapshot_expiry_and_missing(tmp_path):
    snapshot = SessionSnapshot(
        entity_id="p0", display_name="P0", room_id="SNAP01", game_state=_started_state(), timestamp=1000.0
    )
    save_snapshot(snapshot, str(tmp_path))
    assert load_snapshot("SNAP01", str(tmp_path), expiry_seconds=60, now=1061.0) is None
    assert load_snapshot("OTHER", str(tmp_path), expiry_seconds=60) is None


def test_snapshot_file_is_not_valid_json(tmp_path):
    (tmp_path / "BROKEN.json").write_text("{not json", encoding="utf-8")
    assert load_snapshot("BROKEN", str(tmp_path), expiry_seconds=60) is None


def test_room_restored_from_session_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("SALEM_SESSION_DIR", str(tmp_path))
    room = _create_room("Persisted")
    rid = room["room_id"]
    assert (tmp_path / f"{rid}.json").exists()

    room_store._store.pop(rid)
    r = client.get(f"/rooms/{rid}")
    assert r.status_code == 200
    assert r.json()["entities"][0]["name"] == "Persisted"
    assert client.post(f"/rooms/{rid}/advance", headers=_host(room)).status_code == 400


def test_deleted_room_is_not_restored(tmp_path, monkeypatch):
    monkeypatch.setenv("SALEM_SESSION_DIR", str(tmp_path))
    room = _create_room("Persisted")
    rid = room["room_id"]
    assert (tmp_path / f"{rid}.json").exists()

    assert client.delete(f"/rooms/{rid}", headers=_host(room)).status_code == 200
    assert not (tmp_path / f"{rid}.json").exists()
    assert client.get(f"/rooms/{rid}").status_code == 404


def test_restored_room_uses_configured_seed(tmp_path, monkeypatch):
    monkeypatch.setenv("SALEM_SESSION_DIR", str(tmp_path))
    monkeypatch.setenv("SALEM_RANDOM_SEED", "7")
    rid = _create_room()["room_id"]

    room_store._store.pop(rid)
    assert room_store.get(rid).rng.random() == random.Random(7).random()
