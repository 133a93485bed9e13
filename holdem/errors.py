from __future__ import annotations


class HoldemError(Exception):
    """Base error. ``code`` is the stable identifier sent to clients."""

    code = "HOLDEM_ERROR"

    def __init__(self, msg: str = "") -> None:
        super().__init__(msg or self.code)
        self.msg = msg or self.code


class NotEnoughPlayers(HoldemError):
    code = "NOT_ENOUGH_PLAYERS"


class TableFull(HoldemError):
    code = "TABLE_FULL"


class UnknownSeat(HoldemError):
    code = "UNKNOWN_SEAT"


# Action rejections. Raising one of these never leaves the hand modified.


class ActionError(HoldemError):
    code = "INVALID_ACTION"


class HandNotStarted(ActionError):
    code = "HAND_NOT_STARTED"


class HandFinished(ActionError):
    code = "HAND_FINISHED"


class NotYourTurn(ActionError):
    code = "NOT_YOUR_TURN"


class IllegalCheck(ActionError):
    code = "ILLEGAL_CHECK"


class NothingToCall(ActionError):
    code = "NOTHING_TO_CALL"


class IllegalBetSize(ActionError):
    code = "ILLEGAL_BET_SIZE"


class InsufficientChips(ActionError):
    code = "INSUFFICIENT_CHIPS"


class IllegalAction(ActionError):
    code = "ILLEGAL_ACTION"


class InvalidAction(ActionError):
    code = "INVALID_ACTION"


# Programming errors: callers that hit these have a bug.


class InvalidHandSize(HoldemError, ValueError):
    code = "INVALID_HAND_SIZE"


class DeckExhausted(HoldemError, ValueError):
    code = "DECK_EXHAUSTED"
