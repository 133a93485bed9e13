from __future__ import annotations

import random
from typing import Optional

from holdem.game import HandState
from holdem.models import Action, ActionType

_RNG = random.Random()

CHECK_PROBABILITY = 0.8
FOLD_PROBABILITY = 0.3


def decide_action(hand: HandState, seat_id: str, rng: Optional[random.Random] = None) -> Action:
    """House bot: mostly checks, opens for the minimum now and then, folds a third of the time when facing a bet."""
    rng = rng or _RNG
    window = hand.legal_actions(seat_id)
    if not window.legal:
        raise ValueError(f"Seat {seat_id} is not the one to act")

    if ActionType.CHECK in window.legal:
        if ActionType.BET in window.legal and window.min_raise_to and rng.random() >= CHECK_PROBABILITY:
            return Action.bet(window.min_raise_to)
        return Action.check()

    if rng.random() < FOLD_PROBABILITY:
        return Action.fold()
    return Action.call()
