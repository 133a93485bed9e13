from __future__ import annotations

from collections import Counter, defaultdict
from enum import IntEnum
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from .cards import Card
from .errors import InvalidHandSize

WHEEL = (14, 5, 4, 3, 2)


class HandCategory(IntEnum):
    HIGH_CARD = 0
    PAIR = 1
    TWO_PAIR = 2
    TRIPS = 3
    STRAIGHT = 4
    FLUSH = 5
    FULL_HOUSE = 6
    QUADS = 7
    STRAIGHT_FLUSH = 8

    @property
    def label(self) -> str:
        return _CATEGORY_LABELS[self]


_CATEGORY_LABELS = {
    HandCategory.HIGH_CARD: "High Card",
    HandCategory.PAIR: "Pair",
    HandCategory.TWO_PAIR: "Two Pair",
    HandCategory.TRIPS: "Three of a Kind",
    HandCategory.STRAIGHT: "Straight",
    HandCategory.FLUSH: "Flush",
    HandCategory.FULL_HOUSE: "Full House",
    HandCategory.QUADS: "Four of a Kind",
    HandCategory.STRAIGHT_FLUSH: "Straight Flush",
}


class HandRank(NamedTuple):
    """Strength of a best five-card hand. Tuples compare category first."""

    category: HandCategory
    tiebreak_key: Tuple[int, ...]

    @property
    def name(self) -> str:
        return self.category.label


def evaluate(cards: Sequence[Card]) -> HandRank:
    """Rank the best five-card hand out of 5 to 7 cards."""
    if not 5 <= len(cards) <= 7:
        raise InvalidHandSize(f"Expected 5 to 7 cards, got {len(cards)}")

    ranks = sorted((card.rank for card in cards), reverse=True)

    by_suit: Dict[str, List[int]] = defaultdict(list)
    for card in cards:
        by_suit[card.suit].append(card.rank)
    flush_ranks: Optional[List[int]] = None
    for suited in by_suit.values():
        if len(suited) >= 5:
            flush_ranks = sorted(suited, reverse=True)
            break

    if flush_ranks:
        high = _straight_high(flush_ranks)
        if high:
            return HandRank(HandCategory.STRAIGHT_FLUSH, (high,))

    counts = Counter(ranks)
    # (count, rank) descending: quads before trips before pairs, high before low.
    groups = sorted(((count, rank) for rank, count in counts.items()), reverse=True)
    trips = [rank for count, rank in groups if count >= 3]
    pairs = [rank for count, rank in groups if count == 2]

    if groups[0][0] == 4:
        quad = groups[0][1]
        return HandRank(HandCategory.QUADS, (quad, _kickers(ranks, {quad}, 1)[0]))

    if trips and (len(trips) > 1 or pairs):
        top = trips[0]
        pair = max(trips[1:] + pairs)
        return HandRank(HandCategory.FULL_HOUSE, (top, pair))

    if flush_ranks:
        return HandRank(HandCategory.FLUSH, tuple(flush_ranks[:5]))

    high = _straight_high(ranks)
    if high:
        return HandRank(HandCategory.STRAIGHT, (high,))

    if trips:
        top = trips[0]
        return HandRank(HandCategory.TRIPS, (top, *_kickers(ranks, {top}, 2)))

    if len(pairs) >= 2:
        high_pair, low_pair = pairs[0], pairs[1]
        kicker = _kickers(ranks, {high_pair, low_pair}, 1)[0]
        return HandRank(HandCategory.TWO_PAIR, (high_pair, low_pair, kicker))

    if pairs:
        pair = pairs[0]
        return HandRank(HandCategory.PAIR, (pair, *_kickers(ranks, {pair}, 3)))

    return HandRank(HandCategory.HIGH_CARD, tuple(ranks[:5]))


def compare(a: HandRank, b: HandRank) -> int:
    if a > b:
        return 1
    if a < b:
        return -1
    return 0


def _kickers(ranks: Sequence[int], exclude: set, count: int) -> List[int]:
    return [rank for rank in ranks if rank not in exclude][:count]


def _straight_high(ranks: Sequence[int]) -> Optional[int]:
    distinct = sorted(set(ranks), reverse=True)
    for idx in range(len(distinct) - 4):
        window = distinct[idx : idx + 5]
        if window[0] - window[4] == 4:
            return window[0]
    if set(WHEEL).issubset(distinct):
        return 5
    return None
