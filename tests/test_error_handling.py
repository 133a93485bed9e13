import pytest

from holdem.errors import (
    HandFinished,
    HandNotStarted,
    IllegalAction,
    IllegalBetSize,
    IllegalCheck,
    InsufficientChips,
    InvalidAction,
    NothingToCall,
    NotYourTurn,
    UnknownSeat,
)
from holdem.game import HandState
from holdem.models import Action, ActionType

from .helpers import snapshot, start_hand


def flop_hand() -> HandState:
    hand = start_hand(1000, 1000)
    hand.apply_action("p1", Action.call())
    hand.apply_action("p0", Action.check())
    return hand


def test_check_when_facing_bet_is_rejected_without_side_effects():
    hand = start_hand(1000, 1000, 1000)
    before = snapshot(hand)
    with pytest.raises(IllegalCheck, match="Cannot check"):
        hand.apply_action("p0", Action.check())
    assert snapshot(hand) == before


def test_out_of_turn_and_unknown_seats_are_rejected():
    hand = start_hand(1000, 1000, 1000)
    before = snapshot(hand)
    with pytest.raises(NotYourTurn):
        hand.apply_action("p1", Action.fold())
    with pytest.raises(NotYourTurn):
        hand.apply_action("nobody", Action.fold())
    assert snapshot(hand) == before


def test_actions_before_start_and_after_finish_are_rejected():
    with pytest.raises(HandNotStarted):
        HandState().apply_action("p0", Action.fold())

    hand = start_hand(1000, 1000)
    hand.apply_action("p1", Action.fold())
    assert hand.finished
    with pytest.raises(HandFinished):
        hand.apply_action("p0", Action.check())


def test_call_with_nothing_owed_is_rejected():
    hand = flop_hand()
    with pytest.raises(NothingToCall):
        hand.apply_action("p1", Action.call())


def test_bet_rules():
    preflop = start_hand(1000, 1000, 1000)
    with pytest.raises(IllegalAction, match="raise instead"):
        preflop.apply_action("p0", Action.bet(100))

    hand = flop_hand()
    before = snapshot(hand)
    with pytest.raises(IllegalBetSize, match="at least 20"):
        hand.apply_action("p1", Action.bet(10))
    with pytest.raises(InsufficientChips):
        hand.apply_action("p1", Action.bet(5_000))
    assert snapshot(hand) == before


def test_raise_rules():
    hand = start_hand(1000, 1000, 1000)
    before = snapshot(hand)
    with pytest.raises(IllegalBetSize, match="minimum of 40"):
        hand.apply_action("p0", Action.raise_to(30))
    with pytest.raises(IllegalBetSize, match="exceed current bet"):
        hand.apply_action("p0", Action.raise_to(20))
    with pytest.raises(InsufficientChips):
        hand.apply_action("p0", Action.raise_to(1_001))
    assert snapshot(hand) == before

    flop = flop_hand()
    with pytest.raises(IllegalAction, match="bet instead"):
        flop.apply_action("p1", Action.raise_to(40))


def test_short_stack_may_raise_all_in_below_minimum():
    hand = start_hand(1000, 1000, 30)
    hand.apply_action("p0", Action.call())
    hand.apply_action("p1", Action.call())
    # Big blind has 10 behind: raising to 30 is all-in for less than a full raise.
    hand.apply_action("p2", Action.raise_to(30))
    assert hand.current_bet == 30
    assert hand.min_raise_size == 20


def test_seat_that_acted_cannot_reraise_a_short_all_in():
    hand = start_hand(1000, 130, 1000)
    hand.apply_action("p0", Action.raise_to(100))
    hand.apply_action("p1", Action.all_in())
    hand.apply_action("p2", Action.call())
    before = snapshot(hand)
    with pytest.raises(IllegalAction, match="not reopened"):
        hand.apply_action("p0", Action.raise_to(400))
    with pytest.raises(IllegalAction, match="not reopened"):
        hand.apply_action("p0", Action.all_in())
    assert snapshot(hand) == before


def test_legal_actions_and_views_for_unknown_seat():
    hand = start_hand(1000, 1000)
    with pytest.raises(UnknownSeat):
        hand.legal_actions("ghost")
    with pytest.raises(UnknownSeat):
        hand.private_view("ghost")
    assert hand.legal_actions("p0").legal == []


def test_apply_action_rejects_non_action_payload():
    hand = start_hand(1000, 1000)
    with pytest.raises(InvalidAction, match="Unsupported action"):
        hand.apply_action("p1", "call")  # type: ignore[arg-type]


def test_action_payload_parsing():
    assert Action.from_payload("fold") == Action.fold()
    assert Action.from_payload(" Check ") == Action.check()
    assert Action.from_payload({"type": "raise", "amount": 120}) == Action.raise_to(120)
    assert Action.from_payload({"action": "bet", "amount": 40}) == Action.bet(40)
    assert Action.from_payload({"type": "allin"}) == Action.all_in()
    assert Action.from_payload({"type": "call", "amount": 999}).amount is None
    assert Action.from_payload("all_in").type == ActionType.ALL_IN

    for bad in (None, 12, {"type": 3}, "shove", {"type": "raise"}, {"type": "bet", "amount": -5}, {"type": "bet", "amount": True}):
        with pytest.raises(InvalidAction):
            Action.from_payload(bad)
