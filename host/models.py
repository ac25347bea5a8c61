"""Pydantic wire models: network messages, masked views and host HTTP bodies."""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from salem.rules import ActionKind
from salem.state import Card, GameState
from salem.visibility import PrivateView, public_view

MAX_PLAYER_NAME_LENGTH = 50


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Views -------------------------------------------------------------------------


class CardWire(WireModel):
    id: str
    role: str | None = Field(default=None, description="Null while the card is hidden from the recipient")
    revealed: bool


class EntityWire(WireModel):
    id: str
    name: str
    is_host: bool
    is_dead: bool
    has_black_cat: bool
    cards: list[CardWire]
    is_immune: bool
    is_disconnected: bool
    is_ghost: bool


class LogEntryWire(WireModel):
    id: str
    message: str
    timestamp: float


class PendingAccusationWire(WireModel):
    accuser_id: str
    accuser_name: str
    target_id: str
    target_name: str
    accepted: bool


class NightDamageSelectionWire(WireModel):
    target_id: str
    chooser_id: str
    pending_reveal: bool


class WitchVoteWire(WireModel):
    voter_id: str
    voter_name: str
    target_id: str
    target_name: str


class GameStateWire(WireModel):
    """Public (masked) game state as broadcast to every participant."""

    room_id: str
    phase: str
    entities: list[EntityWire]
    log: list[LogEntryWire]
    night_kill_target_id: str | None = Field(default=None, description="Only set during NIGHT_RESOLUTION")
    constable_guard_id: str | None = Field(default=None, description="Only set during NIGHT_RESOLUTION")
    turn_counter: int
    pending_accusation: PendingAccusationWire | None = None
    night_confirmations: list[str] = Field(default_factory=list)
    fake_vote_tally: dict[str, int] = Field(default_factory=dict)
    is_small_game: bool = False
    night_damage_selection: NightDamageSelectionWire | None = None
    winner: str | None = None


def card_to_wire(card: Card) -> CardWire:
    return CardWire(id=card.id, role=card.role.value if card.role else None, revealed=card.revealed)


def public_game_state(state: GameState) -> GameStateWire:
    """Mask the authoritative state and convert it for broadcast."""
    view = public_view(state)
    pending = view.pending_accusation
    damage = view.night_damage_selection
    return GameStateWire(
        room_id=view.room_id,
        phase=view.phase.value,
        entities=[
            EntityWire(
                id=e.id,
                name=e.name,
                is_host=e.is_host,
                is_dead=e.is_dead,
                has_black_cat=e.has_black_cat,
                cards=[card_to_wire(c) for c in e.cards],
                is_immune=e.is_immune,
                is_disconnected=e.is_disconnected,
                is_ghost=e.is_ghost,
            )
            for e in view.entities
        ],
        log=[LogEntryWire(id=entry.id, message=entry.message, timestamp=entry.timestamp) for entry in view.log],
        night_kill_target_id=view.night_kill_target_id,
        constable_guard_id=view.constable_guard_id,
        turn_counter=view.turn_counter,
        pending_accusation=PendingAccusationWire(
            accuser_id=pending.accuser_id,
            accuser_name=pending.accuser_name,
            target_id=pending.target_id,
            target_name=pending.target_name,
            accepted=pending.accepted,
        ) if pending else None,
        night_confirmations=sorted(view.night_confirmations),
        fake_vote_tally=dict(view.fake_vote_tally),
        is_small_game=view.is_small_game,
        night_damage_selection=NightDamageSelectionWire(
            target_id=damage.target_id,
            chooser_id=damage.chooser_id,
            pending_reveal=damage.pending_reveal,
        ) if damage else None,
        winner=view.winner.value if view.winner else None,
    )


# --- Inbound messages (client -> host) ---------------------------------------------


class JoinPayload(WireModel):
    name: str = Field(..., min_length=1, max_length=MAX_PLAYER_NAME_LENGTH)


class RejoinPayload(WireModel):
    name: str = Field(..., min_length=1, max_length=MAX_PLAYER_NAME_LENGTH)
    entity_id: str = Field(..., min_length=1)


class ActionPayload(WireModel):
    action_kind: ActionKind
    payload: dict = Field(default_factory=dict, description="Kind-specific fields, e.g. {targetId} or {cardIds}")


class LeavePayload(WireModel):
    entity_id: str


class PeekGhostPayload(WireModel):
    ghost_id: str


class JoinMessage(WireModel):
    type: Literal["JOIN"]
    payload: JoinPayload


class RejoinMessage(WireModel):
    type: Literal["REJOIN"]
    payload: RejoinPayload


class ActionMessage(WireModel):
    type: Literal["ACTION"]
    payload: ActionPayload


class LeaveMessage(WireModel):
    type: Literal["LEAVE"]
    payload: LeavePayload


class PeekGhostMessage(WireModel):
    type: Literal["PEEK_GHOST"]
    payload: PeekGhostPayload


InboundMessage = Annotated[
    Union[JoinMessage, RejoinMessage, ActionMessage, LeaveMessage, PeekGhostMessage],
    Field(discriminator="type"),
]

inbound_message_adapter = TypeAdapter(InboundMessage)


# --- Outbound messages (host -> client) --------------------------------------------


class WelcomePayload(WireModel):
    game_state: GameStateWire
    entity_id: str


class UpdateStatePayload(WireModel):
    game_state: GameStateWire


class UpdateHandPayload(WireModel):
    cards: list[CardWire]
    is_witch_aligned: bool = False
    witch_votes: list[WitchVoteWire] = Field(default_factory=list)


class ErrorPayload(WireModel):
    message: str


class GhostPeekPayload(WireModel):
    ghost_id: str
    card: CardWire


class WelcomeMessage(WireModel):
    type: Literal["WELCOME"] = "WELCOME"
    payload: WelcomePayload


class UpdateStateMessage(WireModel):
    type: Literal["UPDATE_STATE"] = "UPDATE_STATE"
    payload: UpdateStatePayload


class UpdateHandMessage(WireModel):
    type: Literal["UPDATE_HAND"] = "UPDATE_HAND"
    payload: UpdateHandPayload


class ErrorMessage(WireModel):
    type: Literal["ERROR"] = "ERROR"
    payload: ErrorPayload


class GhostPeekMessage(WireModel):
    type: Literal["GHOST_PEEK"] = "GHOST_PEEK"
    payload: GhostPeekPayload


OutboundMessage = Union[WelcomeMessage, UpdateStateMessage, UpdateHandMessage, ErrorMessage, GhostPeekMessage]


def welcome(state: GameState, entity_id: str) -> WelcomeMessage:
    return WelcomeMessage(payload=WelcomePayload(game_state=public_game_state(state), entity_id=entity_id))


def update_state(state: GameState) -> UpdateStateMessage:
    return UpdateStateMessage(payload=UpdateStatePayload(game_state=public_game_state(state)))


def update_hand(view: PrivateView) -> UpdateHandMessage:
    return UpdateHandMessage(
        payload=UpdateHandPayload(
            cards=[card_to_wire(c) for c in view.cards],
            is_witch_aligned=view.is_witch_aligned,
            witch_votes=[
                WitchVoteWire(
                    voter_id=v.voter_id,
                    voter_name=v.voter_name,
                    target_id=v.target_id,
                    target_name=v.target_name,
                )
                for v in view.witch_votes
            ],
        )
    )


def error(message: str) -> ErrorMessage:
    return ErrorMessage(payload=ErrorPayload(message=message))


def ghost_peek(ghost_id: str, card: Card) -> GhostPeekMessage:
    return GhostPeekMessage(payload=GhostPeekPayload(ghost_id=ghost_id, card=card_to_wire(card)))


# --- Host HTTP bodies --------------------------------------------------------------


class RoomCreateRequest(BaseModel):
    """Body for POST /rooms."""

    host_name: str = Field(..., min_length=1, max_length=MAX_PLAYER_NAME_LENGTH)


class RoomCreateResponse(BaseModel):
    room_id: str
    host_entity_id: str
    host_token: str = Field(description="Send as X-Host-Token on host-only routes")


class ResolveNightRequest(BaseModel):
    target_dies: bool


class NightTargetRequest(BaseModel):
    target_id: str | None = Field(default=None, description="Living entity id, or null to clear")


class SeatMoveRequest(BaseModel):
    index: int = Field(..., ge=0)
    offset: Literal[-1, 1]


class HostActionRequest(BaseModel):
    """Body for POST /rooms/{id}/action: the host acting as a participant."""

    action_kind: ActionKind
    payload: dict = Field(default_factory=dict)
