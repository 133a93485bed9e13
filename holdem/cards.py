from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from .errors import DeckExhausted

RANKS = tuple(range(2, 15))
SUITS = "shdc"
RANK_LABELS = {10: "T", 11: "J", 12: "Q", 13: "K", 14: "A"}
LABEL_RANKS = {label: rank for rank, label in RANK_LABELS.items()}
LABEL_RANKS.update({str(rank): rank for rank in range(2, 10)})


@dataclass(frozen=True)
class Card:
    rank: int
    suit: str

    def __post_init__(self) -> None:
        if self.rank not in RANKS:
            raise ValueError(f"Invalid rank: {self.rank}")
        if self.suit not in SUITS:
            raise ValueError(f"Invalid suit: {self.suit}")

    @property
    def label(self) -> str:
        return f"{RANK_LABELS.get(self.rank, str(self.rank))}{self.suit}"

    def __str__(self) -> str:
        return self.label


class Deck:
    """A shuffled 52-card deck dealt from the top."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()
        self._cards: List[Card] = [Card(rank, suit) for suit in SUITS for rank in RANKS]
        # random.shuffle is an in-place Fisher-Yates pass.
        self._rng.shuffle(self._cards)

    def __len__(self) -> int:
        return len(self._cards)

    def draw(self) -> Card:
        if not self._cards:
            raise DeckExhausted("Not enough cards left in deck")
        return self._cards.pop()

    def deal(self, count: int) -> List[Card]:
        if len(self._cards) < count:
            raise DeckExhausted("Not enough cards left in deck")
        return [self.draw() for _ in range(count)]


def cards_to_labels(cards: Iterable[Card]) -> List[str]:
    return [card.label for card in cards]


def parse_label(label: str) -> Card:
    if len(label) not in (2, 3):
        raise ValueError(f"Invalid card label: {label}")
    rank_part, suit = label[:-1], label[-1]
    if rank_part == "10":
        rank_part = "T"
    rank = LABEL_RANKS.get(rank_part.upper())
    if rank is None:
        raise ValueError(f"Invalid rank: {rank_part}")
    return Card(rank, suit.lower())


def parse_cards(labels: Sequence[str]) -> List[Card]:
    return [parse_label(label) for label in labels]
