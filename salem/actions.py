"""Action processor: validate and apply one player action to the authoritative state."""

import copy
import dataclasses
import logging
import random
from dataclasses import dataclass
from typing import Callable, ClassVar, Optional, Union

from salem.engine import apply_win_check, finish_night, set_phase
from salem.rules import (
    ActionKind,
    CardRole,
    GUARD_SKIP,
    NIGHT_DAMAGE_CARDS,
    Phase,
)
from salem.state import (
    ConspiracySelection,
    Entity,
    GameState,
    PendingAccusation,
    WitchVote,
)

logger = logging.getLogger(__name__)

# Night sub-phases in which players submit (real or decoy) choices
CONFIRMABLE_PHASES = (
    Phase.NIGHT_INITIAL_WITCH,
    Phase.NIGHT_WITCH_VOTE,
    Phase.NIGHT_CONSTABLE,
    Phase.NIGHT_CONFESSION,
)


class InvalidAction(ValueError):
    """Raised when a wire action cannot be parsed into a typed action."""


# --- Typed actions -----------------------------------------------------------------


@dataclass(frozen=True)
class AccuseStart:
    kind: ClassVar[ActionKind] = ActionKind.ACCUSE_START
    target_id: str


@dataclass(frozen=True)
class AccuseAccept:
    kind: ClassVar[ActionKind] = ActionKind.ACCUSE_ACCEPT


@dataclass(frozen=True)
class AccuseCancel:
    kind: ClassVar[ActionKind] = ActionKind.ACCUSE_CANCEL


@dataclass(frozen=True)
class AccuseReveal:
    kind: ClassVar[ActionKind] = ActionKind.ACCUSE_REVEAL
    card_id: str


@dataclass(frozen=True)
class NightConfirm:
    """Decoy or real 'I have moved' signal; the fake target is cosmetic."""

    kind: ClassVar[ActionKind] = ActionKind.NIGHT_CONFIRM
    fake_target_id: Optional[str] = None


@dataclass(frozen=True)
class KillVote:
    kind: ClassVar[ActionKind] = ActionKind.KILL_VOTE
    target_id: str


@dataclass(frozen=True)
class BlackCat:
    kind: ClassVar[ActionKind] = ActionKind.BLACK_CAT
    target_id: str


@dataclass(frozen=True)
class GuardVote:
    kind: ClassVar[ActionKind] = ActionKind.GUARD_VOTE
    target_id: str


@dataclass(frozen=True)
class GuardSkip:
    kind: ClassVar[ActionKind] = ActionKind.GUARD_SKIP


@dataclass(frozen=True)
class SelfReveal:
    kind: ClassVar[ActionKind] = ActionKind.SELF_REVEAL
    card_id: str


@dataclass(frozen=True)
class ConfessionPass:
    kind: ClassVar[ActionKind] = ActionKind.CONFESSION_PASS


@dataclass(frozen=True)
class ShuffleHand:
    kind: ClassVar[ActionKind] = ActionKind.SHUFFLE_HAND


@dataclass(frozen=True)
class ShuffleGhost:
    kind: ClassVar[ActionKind] = ActionKind.SHUFFLE_GHOST
    ghost_id: str


@dataclass(frozen=True)
class NightDamageSelect:
    kind: ClassVar[ActionKind] = ActionKind.NIGHT_DAMAGE_SELECT
    card_ids: tuple[str, ...]


@dataclass(frozen=True)
class TriggerConspiracy:
    kind: ClassVar[ActionKind] = ActionKind.TRIGGER_CONSPIRACY


@dataclass(frozen=True)
class ConspiracySelect:
    kind: ClassVar[ActionKind] = ActionKind.CONSPIRACY_SELECT
    card_id: str


@dataclass(frozen=True)
class ConspiracySelectForOther:
    """A living player picks on behalf of a ghost."""

    kind: ClassVar[ActionKind] = ActionKind.CONSPIRACY_SELECT_FOR_OTHER
    for_entity_id: str
    card_id: str


Action = Union[
    AccuseStart,
    AccuseAccept,
    AccuseCancel,
    AccuseReveal,
    NightConfirm,
    KillVote,
    BlackCat,
    GuardVote,
    GuardSkip,
    SelfReveal,
    ConfessionPass,
    ShuffleHand,
    ShuffleGhost,
    NightDamageSelect,
    TriggerConspiracy,
    ConspiracySelect,
    ConspiracySelectForOther,
]

ACTION_TYPES: dict[ActionKind, type] = {
    cls.kind: cls
    for cls in (
        AccuseStart,
        AccuseAccept,
        AccuseCancel,
        AccuseReveal,
        NightConfirm,
        KillVote,
        BlackCat,
        GuardVote,
        GuardSkip,
        SelfReveal,
        ConfessionPass,
        ShuffleHand,
        ShuffleGhost,
        NightDamageSelect,
        TriggerConspiracy,
        ConspiracySelect,
        ConspiracySelectForOther,
    )
}

# Older clients name the ghost on whose behalf they pick "forPlayerId"
_PAYLOAD_ALIASES = {"for_entity_id": ("forEntityId", "forPlayerId")}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _payload_value(payload: dict, name: str):
    for key in (name, _camel(name), *_PAYLOAD_ALIASES.get(name, ())):
        if key in payload:
            return payload[key]
    return None


def parse_action(kind: Union[ActionKind, str], payload: Optional[dict] = None) -> Action:
    """
    Build a typed action from a wire tag and payload (camelCase or snake_case keys).
    Raises InvalidAction on unknown kinds or malformed payloads.
    """
    try:
        kind = ActionKind(kind)
    except ValueError as e:
        raise InvalidAction(f"Unknown action kind: {kind!r}") from e
    payload = payload or {}
    if not isinstance(payload, dict):
        raise InvalidAction("Action payload must be an object")
    cls = ACTION_TYPES[kind]
    values = {}
    for f in dataclasses.fields(cls):
        value = _payload_value(payload, f.name)
        if f.name == "card_ids":
            if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
                raise InvalidAction(f"{kind.value}: cardIds must be a list of card ids")
            value = tuple(value)
        elif f.default is None:
            if value is not None and not isinstance(value, str):
                raise InvalidAction(f"{kind.value}: {_camel(f.name)} must be a string")
        elif not isinstance(value, str) or not value:
            raise InvalidAction(f"{kind.value}: {_camel(f.name)} is required")
        values[f.name] = value
    return cls(**values)


# --- Helpers --------------------------------------------------------------------------


def _living(state: GameState, entity_id: Optional[str]) -> Optional[Entity]:
    entity = state.get_entity(entity_id) if entity_id else None
    if entity is None or entity.is_dead:
        return None
    return entity


def _confirm(state: GameState, entity: Entity) -> None:
    state.night_confirmations.add(entity.id)


def _shuffle_hidden(entity: Entity, rng: random.Random) -> None:
    """Shuffle the hidden cards among their own slots; revealed cards keep their place."""
    slots = [i for i, c in enumerate(entity.cards) if not c.revealed]
    hidden = [entity.cards[i] for i in slots]
    rng.shuffle(hidden)
    cards = list(entity.cards)
    for i, card in zip(slots, hidden):
        cards[i] = card
    entity.cards = cards


def _record_witch_vote(state: GameState, voter: Entity, target: Entity) -> None:
    """Replace the voter's vote; every living ghost witch mirrors it."""
    voters = [voter] + [
        e for e in state.get_living()
        if e.is_ghost and e.has_ever_held_witch and e.id != voter.id
    ]
    voter_ids = {v.id for v in voters}
    state.witch_votes = [v for v in state.witch_votes if v.voter_id not in voter_ids]
    for v in voters:
        state.witch_votes.append(
            WitchVote(voter_id=v.id, voter_name=v.name, target_id=target.id, target_name=target.name)
        )


def _can_witch_vote(actor: Entity) -> bool:
    return not actor.is_dead and actor.has_ever_held_witch


def _is_constable(actor: Entity) -> bool:
    return not actor.is_dead and actor.holds_unrevealed(CardRole.CONSTABLE)


# --- Handlers: mutate the working copy and return True when applied ---------------------


def _accuse_start(state: GameState, actor: Entity, action: AccuseStart, rng: random.Random) -> bool:
    if state.phase != Phase.DAY or state.pending_accusation is not None or actor.is_dead:
        return False
    target = _living(state, action.target_id)
    if target is None or target.id == actor.id:
        return False
    state.pending_accusation = PendingAccusation(
        accuser_id=actor.id,
        accuser_name=actor.name,
        target_id=target.id,
        target_name=target.name,
        accepted=target.is_ghost,  # ghosts cannot respond
    )
    state.add_log(f"{actor.name} accuses {target.name}!")
    if target.is_ghost:
        state.add_log("The ghost cannot object...")
    return True


def _accuse_accept(state: GameState, actor: Entity, action: AccuseAccept, rng: random.Random) -> bool:
    pending = state.pending_accusation
    if pending is None or pending.accepted or pending.target_id != actor.id:
        return False
    pending.accepted = True
    state.add_log(f"{pending.target_name} accepts the accusation.")
    return True


def _accuse_cancel(state: GameState, actor: Entity, action: AccuseCancel, rng: random.Random) -> bool:
    pending = state.pending_accusation
    if pending is None:
        return False
    if actor.id not in (pending.accuser_id, pending.target_id) and not actor.is_host:
        return False
    state.add_log(f"Accusation against {pending.target_name} was withdrawn.")
    state.pending_accusation = None
    return True


def _accuse_reveal(state: GameState, actor: Entity, action: AccuseReveal, rng: random.Random) -> bool:
    pending = state.pending_accusation
    if pending is None or not pending.accepted or pending.accuser_id != actor.id:
        return False
    target = _living(state, pending.target_id)
    if target is None:
        return False
    card = next((c for c in target.hidden_cards() if c.id == action.card_id), None)
    if card is None:
        return False
    card.revealed = True
    state.add_log(f"{target.name} revealed {card.role.value}!")
    if card.role == CardRole.WITCH:
        target.is_dead = True
        for c in target.cards:
            c.revealed = True
        state.add_log(f"{target.name} was a witch and has been hanged!")
    elif not target.hidden_cards():
        target.is_dead = True
        state.add_log(f"{target.name} has no hidden cards left and has been eliminated.")
    state.pending_accusation = None
    return True


def _night_confirm(state: GameState, actor: Entity, action: NightConfirm, rng: random.Random) -> bool:
    if state.phase not in CONFIRMABLE_PHASES or actor.is_dead:
        return False
    if actor.id in state.night_confirmations:
        return False
    _confirm(state, actor)
    if action.fake_target_id and state.get_entity(action.fake_target_id) is not None:
        tally = state.fake_vote_tally
        tally[action.fake_target_id] = tally.get(action.fake_target_id, 0) + 1
    return True


def _kill_vote(state: GameState, actor: Entity, action: KillVote, rng: random.Random) -> bool:
    if state.phase != Phase.NIGHT_WITCH_VOTE or not _can_witch_vote(actor):
        return False
    target = _living(state, action.target_id)
    if target is None:
        return False
    _record_witch_vote(state, actor, target)
    # Last vote wins; the host may still override before resolution
    state.night_kill_target_id = target.id
    _confirm(state, actor)
    return True


def _black_cat(state: GameState, actor: Entity, action: BlackCat, rng: random.Random) -> bool:
    if state.phase != Phase.NIGHT_INITIAL_WITCH or not _can_witch_vote(actor):
        return False
    target = _living(state, action.target_id)
    if target is None:
        return False
    _record_witch_vote(state, actor, target)
    for e in state.entities:
        e.has_black_cat = e.id == target.id
    _confirm(state, actor)
    return True


def _guard_vote(state: GameState, actor: Entity, action: GuardVote, rng: random.Random) -> bool:
    if state.phase != Phase.NIGHT_CONSTABLE or not _is_constable(actor):
        return False
    target = _living(state, action.target_id)
    if target is None:
        return False
    state.constable_guard_id = target.id
    _confirm(state, actor)
    return True


def _guard_skip(state: GameState, actor: Entity, action: GuardSkip, rng: random.Random) -> bool:
    if not state.is_small_game or state.phase != Phase.NIGHT_CONSTABLE or not _is_constable(actor):
        return False
    state.constable_guard_id = GUARD_SKIP
    _confirm(state, actor)
    return True


def _self_reveal(state: GameState, actor: Entity, action: SelfReveal, rng: random.Random) -> bool:
    if state.phase != Phase.NIGHT_CONFESSION or actor.is_dead:
        return False
    if actor.id in state.night_confirmations:
        return False
    card = next((c for c in actor.hidden_cards() if c.id == action.card_id), None)
    if card is None or card.role == CardRole.WITCH:
        return False
    card.revealed = True
    actor.is_immune = True
    state.add_log(f"{actor.name} confessed to seek safety.")
    _confirm(state, actor)
    return True


def _confession_pass(state: GameState, actor: Entity, action: ConfessionPass, rng: random.Random) -> bool:
    if state.phase != Phase.NIGHT_CONFESSION or actor.is_dead:
        return False
    if actor.id in state.night_confirmations:
        return False
    _confirm(state, actor)
    return True


def _shuffle_hand(state: GameState, actor: Entity, action: ShuffleHand, rng: random.Random) -> bool:
    if not actor.hidden_cards():
        return False
    _shuffle_hidden(actor, rng)
    return True


def _shuffle_ghost(state: GameState, actor: Entity, action: ShuffleGhost, rng: random.Random) -> bool:
    if not state.is_small_game or actor.is_dead:
        return False
    ghost = _living(state, action.ghost_id)
    if ghost is None or not ghost.is_ghost:
        return False
    _shuffle_hidden(ghost, rng)
    return True


def _night_damage_select(
    state: GameState, actor: Entity, action: NightDamageSelect, rng: random.Random
) -> bool:
    selection = state.night_damage_selection
    if not state.is_small_game or state.phase != Phase.NIGHT_RESOLUTION or selection is None:
        return False
    if selection.chooser_id != actor.id:
        return False
    target = state.get_entity(selection.target_id)
    if target is None:
        return False
    hidden_ids = {c.id for c in target.hidden_cards()}
    chosen = set(action.card_ids)
    expected = min(NIGHT_DAMAGE_CARDS, len(hidden_ids))
    if len(chosen) != len(action.card_ids) or len(chosen) != expected or not chosen <= hidden_ids:
        return False
    for card in target.cards:
        if card.id in chosen:
            card.revealed = True
    if not target.hidden_cards():
        target.is_dead = True
        state.add_log(f"{target.name} had all their cards revealed and has been eliminated!")
    else:
        state.add_log(f"{target.name} lost {len(chosen)} card(s) to the night attack.")
    finish_night(state)
    return True


def _trigger_conspiracy(
    state: GameState, actor: Entity, action: TriggerConspiracy, rng: random.Random
) -> bool:
    if not actor.is_host or state.phase != Phase.DAY:
        return False
    state.pending_accusation = None
    state.conspiracy_selections = []
    state.add_log("Conspiracy begins! Each player selects a hidden card from their left neighbor.")
    set_phase(state, Phase.CONSPIRACY)
    # Nobody may be able to select at all
    _maybe_resolve_conspiracy(state, rng)
    return True


def _conspiracy_ring(state: GameState) -> list[Entity]:
    """
    Living entities that still hold a hidden card, in seating order. Only they
    pass and receive, so every hand keeps its size. Fewer than two means no exchange.
    """
    ring = [e for e in state.get_living() if e.hidden_cards()]
    return ring if len(ring) > 1 else []


def _conspiracy_source(state: GameState, entity_id: str) -> Optional[Entity]:
    """Left neighbour within the conspiracy ring, or None if entity_id is not in it."""
    ring = _conspiracy_ring(state)
    for index, entity in enumerate(ring):
        if entity.id == entity_id:
            return ring[index - 1]
    return None


def _select_from_left(state: GameState, selector: Entity, card_id: str) -> bool:
    neighbor = _conspiracy_source(state, selector.id)
    if neighbor is None:
        return False
    if card_id not in {c.id for c in neighbor.hidden_cards()}:
        return False
    state.conspiracy_selections = [
        s for s in state.conspiracy_selections if s.entity_id != selector.id
    ]
    state.conspiracy_selections.append(ConspiracySelection(entity_id=selector.id, card_id=card_id))
    return True


def _conspiracy_select(
    state: GameState, actor: Entity, action: ConspiracySelect, rng: random.Random
) -> bool:
    if state.phase != Phase.CONSPIRACY or actor.is_dead:
        return False
    if not _select_from_left(state, actor, action.card_id):
        return False
    _maybe_resolve_conspiracy(state, rng)
    return True


def _conspiracy_select_for_other(
    state: GameState, actor: Entity, action: ConspiracySelectForOther, rng: random.Random
) -> bool:
    if state.phase != Phase.CONSPIRACY or actor.is_dead:
        return False
    ghost = _living(state, action.for_entity_id)
    if ghost is None or not ghost.is_ghost:
        return False
    if not _select_from_left(state, ghost, action.card_id):
        return False
    _maybe_resolve_conspiracy(state, rng)
    return True


def _maybe_resolve_conspiracy(state: GameState, rng: random.Random) -> None:
    ring = _conspiracy_ring(state)
    selected = {s.entity_id for s in state.conspiracy_selections}
    if not all(e.id in selected for e in ring if not e.is_ghost):
        return

    for ghost in ring:
        if not ghost.is_ghost or ghost.id in selected:
            continue
        card = rng.choice(_conspiracy_source(state, ghost.id).hidden_cards())
        state.conspiracy_selections.append(ConspiracySelection(entity_id=ghost.id, card_id=card.id))

    # Work out every transfer before moving any card
    transfers = []
    for s in state.conspiracy_selections:
        source = _conspiracy_source(state, s.entity_id)
        if source is not None:
            transfers.append((source.id, s.entity_id, s.card_id))

    hands = {e.id: list(e.cards) for e in state.entities}
    recipients: set[str] = set()
    infected: set[str] = set()
    for source_id, receiver_id, card_id in transfers:
        source = hands[source_id]
        index = next((i for i, c in enumerate(source) if c.id == card_id), None)
        if index is None:
            continue
        card = source.pop(index)
        hands[receiver_id].append(card)
        recipients.add(receiver_id)
        if card.role == CardRole.WITCH:
            infected.add(receiver_id)

    for e in state.entities:
        e.cards = hands[e.id]
        if e.id in recipients:
            _shuffle_hidden(e, rng)
        if e.id in infected:
            e.has_ever_held_witch = True

    state.conspiracy_selections = []
    state.add_log("Conspiracy complete! Cards have been passed.")
    set_phase(state, Phase.DAY)


Handler = Callable[[GameState, Entity, Action, random.Random], bool]

_HANDLERS: dict[type, Handler] = {
    AccuseStart: _accuse_start,
    AccuseAccept: _accuse_accept,
    AccuseCancel: _accuse_cancel,
    AccuseReveal: _accuse_reveal,
    NightConfirm: _night_confirm,
    KillVote: _kill_vote,
    BlackCat: _black_cat,
    GuardVote: _guard_vote,
    GuardSkip: _guard_skip,
    SelfReveal: _self_reveal,
    ConfessionPass: _confession_pass,
    ShuffleHand: _shuffle_hand,
    ShuffleGhost: _shuffle_ghost,
    NightDamageSelect: _night_damage_select,
    TriggerConspiracy: _trigger_conspiracy,
    ConspiracySelect: _conspiracy_select,
    ConspiracySelectForOther: _conspiracy_select_for_other,
}


def process_action(
    state: GameState,
    actor_id: str,
    action: Action,
    rng: Optional[random.Random] = None,
) -> GameState:
    """
    Apply one action for actor_id and re-check the win condition.
    Returns new state; a rejected action returns the input state unchanged.
    """
    handler = _HANDLERS.get(type(action))
    actor = state.get_entity(actor_id)
    if handler is None or actor is None or actor.is_ghost:
        logger.debug("Rejected %r from %s", action, actor_id)
        return state
    if state.phase in (Phase.LOBBY, Phase.GAME_OVER):
        logger.debug("Rejected %s from %s in %s", action.kind.value, actor_id, state.phase.value)
        return state

    new_state = copy.deepcopy(state)
    actor = new_state.get_entity(actor_id)
    if not handler(new_state, actor, action, rng if rng is not None else random.Random()):
        logger.debug("Rejected %s from %s in %s", action.kind.value, actor_id, state.phase.value)
        return state
    apply_win_check(new_state)
    return new_state
