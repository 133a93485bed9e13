from __future__ import annotations

import copy
import random
from typing import Dict, List, Optional, Sequence

from holdem.cards import Card, Deck, RANKS, SUITS, parse_cards
from holdem.game import HandState
from holdem.models import Action, ActionType, Player, SeatActionWindow, TableConfig


def make_players(*chips: int) -> List[Player]:
    return [Player(id=f"p{idx}", name=f"Player{idx}", chips=amount) for idx, amount in enumerate(chips)]


def start_hand(
    *chips: int,
    config: Optional[TableConfig] = None,
    previous_dealer_id: Optional[str] = None,
) -> HandState:
    hand = HandState(config or TableConfig(), rng=random.Random(42))
    hand.start_hand(make_players(*chips), previous_dealer_id=previous_dealer_id)
    return hand


class StackedDeck(Deck):
    """Deals the given labels first, then the rest of the pack."""

    def __init__(self, labels: Sequence[str]) -> None:
        chosen = parse_cards(labels)
        rest = [Card(rank, suit) for suit in SUITS for rank in RANKS if Card(rank, suit) not in chosen]
        self._rng = random.Random(0)
        self._cards = list(reversed(chosen + rest))


def stack_deck(monkeypatch, holes: Sequence[Sequence[str]], board: Sequence[str] = ()) -> None:
    """Rig the next hand. ``holes`` are listed in deal order, starting left of the dealer."""
    labels = [hole[0] for hole in holes] + [hole[1] for hole in holes] + list(board)
    monkeypatch.setattr("holdem.game.Deck", lambda rng=None: StackedDeck(labels))


def passive_action(window: SeatActionWindow) -> Action:
    if ActionType.CHECK in window.legal:
        return Action.check()
    if ActionType.CALL in window.legal:
        return Action.call()
    return Action.fold()


def random_action(window: SeatActionWindow, rng: random.Random) -> Action:
    choice = rng.choice(window.legal)
    if choice == ActionType.BET:
        return Action.bet(rng.randint(window.min_raise_to, window.max_raise_to))
    if choice == ActionType.RAISE:
        return Action.raise_to(rng.randint(window.min_raise_to, window.max_raise_to))
    return Action(choice)


def play_out(hand: HandState) -> None:
    """Check or call every remaining decision until the hand ends."""
    while not hand.finished:
        seat = hand.acting_seat
        assert seat is not None
        hand.apply_action(seat.id, passive_action(hand.legal_actions(seat.id)))


def snapshot(hand: HandState) -> Dict[str, object]:
    return {
        "seats": copy.deepcopy(hand.seats),
        "stage": hand.stage,
        "community": list(hand.community_cards),
        "current_bet": hand.current_bet,
        "min_raise_size": hand.min_raise_size,
        "acting_index": hand.acting_index,
        "last_aggressor_index": hand.last_aggressor_index,
        "winners": list(hand.winners),
        "finished": hand.finished,
        "deck_left": len(hand.deck) if hand.deck else None,
    }
