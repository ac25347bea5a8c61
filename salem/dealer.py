"""Dealer: deck construction, dealing and ghost synthesis."""

import random
import uuid
from typing import Optional

from salem.rules import CARD_DISTRIBUTION, CardRole
from salem.state import Card, Entity


def hand_size_for(participant_count: int) -> int:
    """Cards per entity: 5 up to 7 entities, 4 for 8-9, 3 beyond."""
    if participant_count <= 7:
        return 5
    if participant_count <= 9:
        return 4
    return 3


def build_deck(participant_count: int) -> list[CardRole]:
    """
    Return the (unshuffled) card roles for participant_count entities.
    Uses the rulebook table for 4-12; other counts get 1 witch (2 above five
    entities), one constable and not-a-witch cards for the rest.
    """
    if participant_count in CARD_DISTRIBUTION:
        witches, constables, town = CARD_DISTRIBUTION[participant_count]
    else:
        witches = 1 if participant_count <= 5 else 2
        constables = 1
        total = participant_count * hand_size_for(participant_count)
        town = max(0, total - witches - constables)
    deck: list[CardRole] = []
    deck.extend([CardRole.WITCH] * witches)
    deck.extend([CardRole.CONSTABLE] * constables)
    deck.extend([CardRole.NOT_A_WITCH] * town)
    return deck


def shuffle_deck(deck: list, rng: random.Random) -> list:
    """Return a uniformly shuffled copy (Fisher-Yates via Random.shuffle)."""
    shuffled = list(deck)
    rng.shuffle(shuffled)
    return shuffled


def _card_id(rng: random.Random, used: set[str]) -> str:
    while True:
        card_id = f"{rng.getrandbits(32):08x}"
        if card_id not in used:
            used.add(card_id)
            return card_id


def deal_hands(entities: list[Entity], rng: Optional[random.Random] = None) -> list[Entity]:
    """
    Deal a fresh shuffled deck round-robin, one card at a time, until every
    entity holds its allotment. Returns new Entity objects; inputs are untouched.
    """
    rng = rng or random.Random()
    count = len(entities)
    per_entity = hand_size_for(count)
    deck = shuffle_deck(build_deck(count), rng)
    used: set[str] = set()
    dealt = [
        Entity(
            id=e.id,
            name=e.name,
            address=e.address,
            is_host=e.is_host,
            is_disconnected=e.is_disconnected,
            is_ghost=e.is_ghost,
        )
        for e in entities
    ]
    position = 0
    for _ in range(per_entity):
        for entity in dealt:
            role = deck[position]
            position += 1
            entity.cards.append(Card(id=_card_id(rng, used), role=role))
            if role == CardRole.WITCH:
                entity.has_ever_held_witch = True
    return dealt


def _ghost(name: str, rng: random.Random) -> Entity:
    suffix = uuid.UUID(int=rng.getrandbits(128)).hex[:7]
    return Entity(id=f"ghost-{suffix}", name=name, is_ghost=True)


def synthesize_ghosts(entities: list[Entity], rng: Optional[random.Random] = None) -> list[Entity]:
    """
    Pad a 2-3 player table to four seats with ghosts.
    Two players sit P1, Ghost 1, P2, Ghost 2; three players get one ghost last.
    """
    rng = rng or random.Random()
    if len(entities) == 2:
        return [entities[0], _ghost("Ghost 1", rng), entities[1], _ghost("Ghost 2", rng)]
    if len(entities) == 3:
        return list(entities) + [_ghost("Ghost", rng)]
    return list(entities)
