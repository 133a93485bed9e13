"""Texas Hold'em hand engine used by the room host."""

from .cards import Card, Deck, RANKS, SUITS, cards_to_labels, parse_cards, parse_label
from .errors import ActionError, HoldemError
from .evaluator import HandCategory, HandRank, compare, evaluate
from .game import HandState
from .models import (
    Action,
    ActionType,
    HandResult,
    Player,
    PotLayer,
    Seat,
    SeatActionWindow,
    SeatStatus,
    Stage,
    TableConfig,
)

__all__ = [
    "Card",
    "Deck",
    "RANKS",
    "SUITS",
    "cards_to_labels",
    "parse_cards",
    "parse_label",
    "ActionError",
    "HoldemError",
    "HandCategory",
    "HandRank",
    "compare",
    "evaluate",
    "HandState",
    "Action",
    "ActionType",
    "HandResult",
    "Player",
    "PotLayer",
    "Seat",
    "SeatActionWindow",
    "SeatStatus",
    "Stage",
    "TableConfig",
]
