"""Game state types for the Salem moderator."""

import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from salem.rules import CardRole, Phase, Winner


@dataclass
class Card:
    """A trial card. Role is None only in masked views."""

    id: str
    role: Optional[CardRole]
    revealed: bool = False


@dataclass
class Entity:
    """A seated participant or a ghost placeholder."""

    id: str
    name: str
    address: str = ""
    is_host: bool = False
    is_dead: bool = False
    has_black_cat: bool = False
    cards: list[Card] = field(default_factory=list)
    has_ever_held_witch: bool = False  # sticky for the rest of the game
    is_immune: bool = False  # confessed tonight
    is_disconnected: bool = False
    is_ghost: bool = False

    def hidden_cards(self) -> list[Card]:
        """Return unrevealed cards in hand order."""
        return [c for c in self.cards if not c.revealed]

    def holds_unrevealed(self, role: CardRole) -> bool:
        return any(c.role == role and not c.revealed for c in self.cards)


@dataclass
class WitchVote:
    """One witch-aligned entity's current night choice."""

    voter_id: str
    voter_name: str
    target_id: str
    target_name: str


@dataclass
class PendingAccusation:
    """The single live accusation of the day."""

    accuser_id: str
    accuser_name: str
    target_id: str
    target_name: str
    accepted: bool = False


@dataclass
class ConspiracySelection:
    """Hidden card an entity takes from its left neighbor."""

    entity_id: str
    card_id: str


@dataclass
class NightDamageSelection:
    """Small-game partial elimination awaiting the chooser's picks."""

    target_id: str
    chooser_id: str
    pending_reveal: bool = True


@dataclass
class LogEntry:
    """A single public log line."""

    message: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: float = field(default_factory=time.time)


@dataclass
class GameState:
    """Full authoritative game state."""

    room_id: str = ""
    phase: Phase = Phase.LOBBY
    entities: list[Entity] = field(default_factory=list)  # seating order is the ring
    log: list[LogEntry] = field(default_factory=list)
    night_kill_target_id: Optional[str] = None
    constable_guard_id: Optional[str] = None  # entity id or GUARD_SKIP
    turn_counter: int = 0
    witch_votes: list[WitchVote] = field(default_factory=list)
    pending_accusation: Optional[PendingAccusation] = None
    conspiracy_selections: list[ConspiracySelection] = field(default_factory=list)
    night_confirmations: set[str] = field(default_factory=set)
    fake_vote_tally: dict[str, int] = field(default_factory=dict)  # cosmetic only
    is_small_game: bool = False
    night_damage_selection: Optional[NightDamageSelection] = None
    winner: Optional[Winner] = None

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        """Return entity by id or None."""
        for e in self.entities:
            if e.id == entity_id:
                return e
        return None

    def get_living(self) -> list[Entity]:
        """Return living entities in seating order (ghosts included)."""
        return [e for e in self.entities if not e.is_dead]

    def get_humans(self) -> list[Entity]:
        """Return real (non-ghost) entities."""
        return [e for e in self.entities if not e.is_ghost]

    def find_by_name(self, name: str) -> Optional[Entity]:
        for e in self.entities:
            if e.name == name and not e.is_ghost:
                return e
        return None

    def add_log(self, message: str) -> None:
        """Append a log entry (mutates state)."""
        self.log.append(LogEntry(message=message))
