from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .cards import Card
from .errors import InvalidAction


class Stage(str, Enum):
    PREFLOP = "preflop"
    FLOP = "flop"
    TURN = "turn"
    RIVER = "river"
    SHOWDOWN = "showdown"
    FINISHED = "finished"


class SeatStatus(str, Enum):
    ACTIVE = "active"
    FOLDED = "folded"
    ALL_IN = "all_in"


class ActionType(str, Enum):
    FOLD = "fold"
    CHECK = "check"
    CALL = "call"
    BET = "bet"
    RAISE = "raise"
    ALL_IN = "all_in"


# Wire aliases accepted by Action.from_payload.
_ACTION_ALIASES = {
    "allin": ActionType.ALL_IN,
    "all-in": ActionType.ALL_IN,
    "raise_to": ActionType.RAISE,
}


@dataclass(frozen=True)
class Action:
    type: ActionType
    amount: Optional[int] = None

    @classmethod
    def fold(cls) -> "Action":
        return cls(ActionType.FOLD)

    @classmethod
    def check(cls) -> "Action":
        return cls(ActionType.CHECK)

    @classmethod
    def call(cls) -> "Action":
        return cls(ActionType.CALL)

    @classmethod
    def bet(cls, amount: int) -> "Action":
        return cls(ActionType.BET, amount)

    @classmethod
    def raise_to(cls, amount: int) -> "Action":
        return cls(ActionType.RAISE, amount)

    @classmethod
    def all_in(cls) -> "Action":
        return cls(ActionType.ALL_IN)

    @classmethod
    def from_payload(cls, payload: Any) -> "Action":
        """Build an action from a client payload.

        Clients send either a bare name (``"check"``) or an object such as
        ``{"type": "raise", "amount": 120}``. Bets and raises must carry a
        positive integer amount; other actions ignore it.
        """
        amount = None
        if isinstance(payload, str):
            name = payload
        elif isinstance(payload, dict):
            name = payload.get("type") or payload.get("action")
            amount = payload.get("amount")
        else:
            raise InvalidAction("Action must be a string or an object")
        if not isinstance(name, str):
            raise InvalidAction("Action type required")

        key = name.strip().lower()
        try:
            action_type = _ACTION_ALIASES.get(key) or ActionType(key)
        except ValueError:
            raise InvalidAction(f"Unknown action: {name}") from None

        if action_type in (ActionType.BET, ActionType.RAISE):
            if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
                raise InvalidAction(f"{action_type.value} requires a positive integer amount")
            return cls(action_type, amount)
        return cls(action_type)


@dataclass
class TableConfig:
    small_blind: int = 10
    big_blind: int = 20
    min_players: int = 2
    max_players: int = 9
    starting_stack: int = 1_000
    reveal_folded_hands: bool = False
    move_time_ms: int = 30_000
    next_hand_delay_ms: int = 5_000


@dataclass
class Player:
    id: str
    name: str
    chips: int


@dataclass
class Seat:
    id: str
    name: str
    stack: int
    hole_cards: List[Card] = field(default_factory=list)
    street_bet: int = 0
    total_contributed: int = 0
    status: SeatStatus = SeatStatus.ACTIVE
    has_acted_this_street: bool = False

    @property
    def is_active(self) -> bool:
        return self.status == SeatStatus.ACTIVE

    @property
    def is_folded(self) -> bool:
        return self.status == SeatStatus.FOLDED

    @property
    def is_all_in(self) -> bool:
        return self.status == SeatStatus.ALL_IN

    def commit(self, amount: int) -> int:
        amount = min(amount, self.stack)
        self.stack -= amount
        self.street_bet += amount
        self.total_contributed += amount
        if self.stack == 0:
            self.status = SeatStatus.ALL_IN
        return amount

    def reset_for_street(self) -> None:
        self.street_bet = 0
        self.has_acted_this_street = False


@dataclass
class PotLayer:
    amount: int
    eligible_seat_ids: List[str]

    def to_dict(self) -> Dict[str, object]:
        return {"amount": self.amount, "eligible_seat_ids": list(self.eligible_seat_ids)}


@dataclass
class SeatActionWindow:
    legal: List[ActionType]
    call_amount: Optional[int]
    min_raise_to: Optional[int]
    max_raise_to: Optional[int]

    def to_dict(self) -> Dict[str, object]:
        return {
            "legal": [action.value for action in self.legal],
            "call_amount": self.call_amount,
            "min_raise_to": self.min_raise_to,
            "max_raise_to": self.max_raise_to,
        }


@dataclass
class HandResult:
    # "fold" when everyone else folded, "showdown" otherwise.
    reason: str
    pot_layers: List[PotLayer]
    payouts: Dict[str, int]
    hand_names: Dict[str, str] = field(default_factory=dict)
    winning_hand_name: Optional[str] = None

    @property
    def winners(self) -> List[str]:
        return [seat_id for seat_id, amount in self.payouts.items() if amount > 0]
