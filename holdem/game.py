from __future__ import annotations

import random
from typing import Dict, Iterable, List, Optional

from .cards import Card, Deck, cards_to_labels
from .errors import (
    HandFinished,
    HandNotStarted,
    IllegalAction,
    IllegalBetSize,
    IllegalCheck,
    InsufficientChips,
    InvalidAction,
    NotEnoughPlayers,
    NothingToCall,
    NotYourTurn,
    TableFull,
    UnknownSeat,
)
from .evaluator import HandRank, evaluate
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

# HandState keeps one hand in memory. No networking or timers live here, only
# poker rules, chip accounting and betting order.

Event = Dict[str, object]

_NEXT_STREET = {
    Stage.PREFLOP: (Stage.FLOP, 3),
    Stage.FLOP: (Stage.TURN, 1),
    Stage.TURN: (Stage.RIVER, 1),
}


class HandState:
    """No-Limit Texas Hold'em state machine for a single hand."""

    def __init__(self, config: Optional[TableConfig] = None, rng: Optional[random.Random] = None) -> None:
        self.config = config or TableConfig()
        self._rng = rng
        self.deck: Optional[Deck] = None
        self.seats: List[Seat] = []
        self.dealer_index = 0
        self.small_blind_index: Optional[int] = None
        self.big_blind_index: Optional[int] = None
        self.stage = Stage.PREFLOP
        self.community_cards: List[Card] = []
        self.current_bet = 0
        self.min_raise_size = self.config.big_blind
        self.acting_index: Optional[int] = None
        self.last_aggressor_index: Optional[int] = None
        self.winners: List[str] = []
        self.pot_layers: List[PotLayer] = []
        self.result: Optional[HandResult] = None
        self.started = False
        self.finished = False

    @property
    def pot(self) -> int:
        return sum(seat.total_contributed for seat in self.seats)

    @property
    def acting_seat(self) -> Optional[Seat]:
        if self.acting_index is None:
            return None
        return self.seats[self.acting_index]

    def seat(self, seat_id: str) -> Seat:
        idx = self._index_of(seat_id)
        if idx is None:
            raise UnknownSeat(f"Seat {seat_id} is not in this hand")
        return self.seats[idx]

    # Hand lifecycle --------------------------------------------------

    def start_hand(self, players: Iterable[Player], previous_dealer_id: Optional[str] = None) -> List[Event]:
        if self.started:
            raise RuntimeError("Hand already started")

        players = list(players)
        eligible = [player for player in players if player.chips > 0]
        if len(eligible) < self.config.min_players:
            raise NotEnoughPlayers(f"Need at least {self.config.min_players} players with chips")
        if len(eligible) > self.config.max_players:
            raise TableFull(f"At most {self.config.max_players} players can be dealt in")
        if len({player.id for player in eligible}) != len(eligible):
            raise ValueError("Duplicate player id")

        self.seats = [Seat(id=player.id, name=player.name, stack=player.chips) for player in eligible]
        self.dealer_index = self._pick_dealer(players, previous_dealer_id)
        self.deck = Deck(self._rng)
        self.started = True

        events: List[Event] = [{"ev": "START_HAND", "dealer": self.seats[self.dealer_index].id}]
        self._deal_hole_cards()
        events.append(self._post_blinds())

        if self._round_complete():
            # Blinds alone put everyone able to act all-in.
            events.extend(self._advance_street())
        else:
            self.acting_index = self._next_to_act(self.big_blind_index)
        return events

    def _pick_dealer(self, players: List[Player], previous_dealer_id: Optional[str]) -> int:
        seat_ids = [seat.id for seat in self.seats]
        order = [player.id for player in players]
        if previous_dealer_id is None or previous_dealer_id not in order:
            return 0
        start = order.index(previous_dealer_id)
        for step in range(1, len(order) + 1):
            candidate = order[(start + step) % len(order)]
            if candidate in seat_ids:
                return seat_ids.index(candidate)
        return 0

    def _deal_hole_cards(self) -> None:
        assert self.deck is not None
        ordered = self._order_after(self.dealer_index)
        for _ in range(2):
            for idx in ordered:
                self.seats[idx].hole_cards.append(self.deck.draw())

    def _post_blinds(self) -> Event:
        self.small_blind_index = self._next_index(self.dealer_index)
        self.big_blind_index = self._next_index(self.small_blind_index)
        sb_seat = self.seats[self.small_blind_index]
        bb_seat = self.seats[self.big_blind_index]

        sb_posted = sb_seat.commit(self.config.small_blind)
        bb_posted = bb_seat.commit(self.config.big_blind)

        self.current_bet = self.config.big_blind
        self.min_raise_size = self.config.big_blind
        self.last_aggressor_index = self.big_blind_index
        return {
            "ev": "POST_BLINDS",
            "sb_seat": sb_seat.id,
            "bb_seat": bb_seat.id,
            "sb": sb_posted,
            "bb": bb_posted,
        }

    # Action handling -------------------------------------------------

    def legal_actions(self, seat_id: str) -> SeatActionWindow:
        idx = self._index_of(seat_id)
        if idx is None:
            raise UnknownSeat(f"Seat {seat_id} is not in this hand")
        if self.finished or idx != self.acting_index:
            return SeatActionWindow(legal=[], call_amount=None, min_raise_to=None, max_raise_to=None)

        seat = self.seats[idx]
        legal = [ActionType.FOLD]
        to_call = self.current_bet - seat.street_bet
        if to_call <= 0:
            legal.append(ActionType.CHECK)
        else:
            legal.append(ActionType.CALL)

        max_to = seat.stack + seat.street_bet
        min_raise_to = None
        max_raise_to = None
        can_raise = max_to > self.current_bet and not seat.has_acted_this_street
        if can_raise:
            if self.current_bet == 0:
                legal.append(ActionType.BET)
                min_raise_to = min(self.config.big_blind, max_to)
            else:
                legal.append(ActionType.RAISE)
                min_raise_to = min(self.current_bet + self.min_raise_size, max_to)
            max_raise_to = max_to
        if can_raise or max_to <= self.current_bet:
            legal.append(ActionType.ALL_IN)

        call_amount = min(to_call, seat.stack) if to_call > 0 else None
        return SeatActionWindow(legal=legal, call_amount=call_amount, min_raise_to=min_raise_to, max_raise_to=max_raise_to)

    def apply_action(self, seat_id: str, action: Action) -> List[Event]:
        if not self.started:
            raise HandNotStarted("Hand not in progress")
        if self.finished:
            raise HandFinished("Hand already finished")
        if not isinstance(action, Action):
            raise InvalidAction(f"Unsupported action {action!r}")
        idx = self._index_of(seat_id)
        if idx is None or idx != self.acting_index:
            raise NotYourTurn("Not your turn")

        seat = self.seats[idx]
        events: List[Event] = []

        # Every handler validates fully before touching any state.
        if action.type == ActionType.FOLD:
            seat.status = SeatStatus.FOLDED
            events.append({"ev": "FOLD", "seat": seat.id})
        elif action.type == ActionType.CHECK:
            if seat.street_bet != self.current_bet:
                raise IllegalCheck("Cannot check when facing a bet")
            events.append({"ev": "CHECK", "seat": seat.id})
        elif action.type == ActionType.CALL:
            to_call = self.current_bet - seat.street_bet
            if to_call <= 0:
                raise NothingToCall("Nothing to call")
            paid = seat.commit(to_call)
            events.append({"ev": "CALL", "seat": seat.id, "amount": paid, "all_in": seat.is_all_in})
        elif action.type == ActionType.BET:
            events.append(self._bet(idx, seat, action.amount))
        elif action.type == ActionType.RAISE:
            events.append(self._raise(idx, seat, action.amount))
        elif action.type == ActionType.ALL_IN:
            events.append(self._all_in(idx, seat))
        else:
            raise InvalidAction(f"Unsupported action {action.type}")

        seat.has_acted_this_street = True
        events.extend(self._advance_after_action(idx))
        return events

    def _bet(self, idx: int, seat: Seat, amount: Optional[int]) -> Event:
        if self.current_bet != 0:
            raise IllegalAction("Cannot bet when facing a bet; raise instead")
        if amount is None or amount <= 0:
            raise IllegalBetSize("Bet requires a positive amount")
        if amount > seat.stack:
            raise InsufficientChips("Bet exceeds stack")
        if amount < self.config.big_blind and amount != seat.stack:
            raise IllegalBetSize(f"Bet must be at least {self.config.big_blind}")
        return self._put_in(idx, seat, amount, "BET")

    def _raise(self, idx: int, seat: Seat, to_amount: Optional[int]) -> Event:
        if self.current_bet == 0:
            raise IllegalAction("Nothing to raise; bet instead")
        if to_amount is None:
            raise IllegalBetSize("Raise requires amount")
        max_to = seat.stack + seat.street_bet
        if to_amount > max_to:
            raise InsufficientChips("Raise exceeds stack")
        if to_amount <= self.current_bet:
            raise IllegalBetSize("Raise must exceed current bet")
        if to_amount < self.current_bet + self.min_raise_size and to_amount != max_to:
            raise IllegalBetSize(f"Raise below minimum of {self.current_bet + self.min_raise_size}")
        if seat.has_acted_this_street:
            raise IllegalAction("Betting was not reopened; call or fold")
        return self._put_in(idx, seat, to_amount, "RAISE")

    def _all_in(self, idx: int, seat: Seat) -> Event:
        total = seat.stack + seat.street_bet
        if total <= self.current_bet:
            paid = seat.commit(seat.stack)
            return {"ev": "CALL", "seat": seat.id, "amount": paid, "all_in": True}
        if self.current_bet > 0 and seat.has_acted_this_street:
            raise IllegalAction("Betting was not reopened; call or fold")
        return self._put_in(idx, seat, total, "ALL_IN")

    def _put_in(self, idx: int, seat: Seat, to_amount: int, ev: str) -> Event:
        previous_bet = self.current_bet
        paid = seat.commit(to_amount - seat.street_bet)
        self.current_bet = to_amount
        full = previous_bet == 0 or to_amount - previous_bet >= self.min_raise_size
        if full:
            self.min_raise_size = max(to_amount - previous_bet, self.config.big_blind)
            self.last_aggressor_index = idx
            for other_idx, other in enumerate(self.seats):
                if other_idx != idx and other.is_active:
                    other.has_acted_this_street = False
        return {
            "ev": ev,
            "seat": seat.id,
            "to": to_amount,
            "amount": paid,
            "all_in": seat.is_all_in,
            "reopens": full,
        }

    def _advance_after_action(self, idx: int) -> List[Event]:
        contesting = [seat for seat in self.seats if not seat.is_folded]
        if len(contesting) == 1:
            return self._award_fold_win(contesting[0])
        if self._round_complete():
            return self._advance_street()
        self.acting_index = self._next_to_act(idx)
        return []

    def _needs_action(self, seat: Seat) -> bool:
        if not seat.is_active:
            return False
        return not (seat.has_acted_this_street and seat.street_bet == self.current_bet)

    def _round_complete(self) -> bool:
        contesting = [seat for seat in self.seats if not seat.is_folded]
        able = [seat for seat in contesting if seat.is_active]
        if not able:
            return True
        if len(able) == 1:
            # Nobody left to bet against once the last able seat has matched.
            others = max((seat.street_bet for seat in contesting if seat is not able[0]), default=0)
            if able[0].street_bet >= others:
                return True
        return all(not self._needs_action(seat) for seat in able)

    def _advance_street(self) -> List[Event]:
        assert self.deck is not None
        events: List[Event] = []
        self.acting_index = None
        while True:
            for seat in self.seats:
                seat.reset_for_street()
            self.current_bet = 0
            self.min_raise_size = self.config.big_blind
            self.last_aggressor_index = None

            if self.stage not in _NEXT_STREET:
                events.extend(self._showdown())
                return events

            self.stage, count = _NEXT_STREET[self.stage]
            cards = self.deck.deal(count)
            self.community_cards.extend(cards)
            events.append({"ev": self.stage.value.upper(), "cards": cards_to_labels(cards)})

            able = [seat for seat in self.seats if seat.is_active]
            if len(able) >= 2:
                self.acting_index = self._next_to_act(self.dealer_index)
                return events
            # Fewer than two seats can bet: run the board out.

    # Settlement ------------------------------------------------------

    def build_pot_layers(self) -> List[PotLayer]:
        """Split contributions into a main pot and side pots.

        Levels are the distinct totals of seats still in the hand. Each layer
        collects every seat's chips between two consecutive levels, folded
        seats included, but only seats that reached the level may win it.
        """
        contesting = [seat for seat in self.seats if not seat.is_folded]
        levels = sorted({seat.total_contributed for seat in contesting if seat.total_contributed > 0})
        layers: List[PotLayer] = []
        previous = 0
        for position, level in enumerate(levels):
            amount = sum(
                min(seat.total_contributed, level) - min(seat.total_contributed, previous)
                for seat in self.seats
            )
            if position == len(levels) - 1:
                amount += sum(max(seat.total_contributed - level, 0) for seat in self.seats)
            eligible = [seat.id for seat in contesting if seat.total_contributed >= level]
            if amount > 0:
                layers.append(PotLayer(amount=amount, eligible_seat_ids=eligible))
            previous = level
        return layers

    def _showdown(self) -> List[Event]:
        self.stage = Stage.SHOWDOWN
        self.acting_index = None
        events: List[Event] = []

        ranks: Dict[str, HandRank] = {}
        for seat in self.seats:
            if seat.is_folded:
                continue
            rank = evaluate(seat.hole_cards + self.community_cards)
            ranks[seat.id] = rank
            events.append(
                {
                    "ev": "SHOWDOWN",
                    "seat": seat.id,
                    "hand": cards_to_labels(seat.hole_cards),
                    "board": cards_to_labels(self.community_cards),
                    "rank": rank.name,
                }
            )

        layers = self.build_pot_layers()
        payouts = {seat.id: 0 for seat in self.seats}
        order = [self.seats[idx].id for idx in self._order_after(self.dealer_index)]
        best_overall: Optional[HandRank] = None
        for layer in layers:
            best = max(ranks[seat_id] for seat_id in layer.eligible_seat_ids)
            layer_winners = [seat_id for seat_id in order if seat_id in layer.eligible_seat_ids and ranks[seat_id] == best]
            share, remainder = divmod(layer.amount, len(layer_winners))
            for position, seat_id in enumerate(layer_winners):
                # Odd chips go to the first winner left of the dealer.
                payouts[seat_id] += share + (remainder if position == 0 else 0)
            if best_overall is None or best > best_overall:
                best_overall = best

        result = HandResult(
            reason="showdown",
            pot_layers=layers,
            payouts=payouts,
            hand_names={seat_id: rank.name for seat_id, rank in ranks.items()},
            winning_hand_name=best_overall.name if best_overall else None,
        )
        events.extend(self._settle(result))
        return events

    def _award_fold_win(self, winner: Seat) -> List[Event]:
        layers = [PotLayer(amount=self.pot, eligible_seat_ids=[winner.id])]
        payouts = {seat.id: 0 for seat in self.seats}
        payouts[winner.id] = self.pot
        return self._settle(HandResult(reason="fold", pot_layers=layers, payouts=payouts, winning_hand_name="Fold win"))

    def _settle(self, result: HandResult) -> List[Event]:
        events: List[Event] = []
        for seat in self.seats:
            won = result.payouts.get(seat.id, 0)
            if won:
                seat.stack += won
                events.append({"ev": "POT_AWARD", "seat": seat.id, "amount": won})
        self.pot_layers = result.pot_layers
        self.winners = result.winners
        self.result = result
        self.stage = Stage.FINISHED
        self.acting_index = None
        self.finished = True
        events.append({"ev": "HAND_END", "reason": result.reason, "winners": list(self.winners)})
        return events

    # Views -----------------------------------------------------------

    def public_view(self) -> Dict[str, object]:
        acting = self.acting_seat
        if self.current_bet:
            min_raise_to = self.current_bet + self.min_raise_size
        else:
            min_raise_to = self.config.big_blind
        return {
            "stage": self.stage.value,
            "community_cards": cards_to_labels(self.community_cards),
            "pot": self.pot,
            "current_bet": self.current_bet,
            "min_raise_to": min_raise_to,
            "acting_seat_id": acting.id if acting else None,
            "dealer_seat_id": self.seats[self.dealer_index].id if self.seats else None,
            "small_blind": self.config.small_blind,
            "big_blind": self.config.big_blind,
            "finished": self.finished,
            "winners": list(self.winners),
            "winning_hand_name": self.result.winning_hand_name if self.result else None,
            "pot_layers": [layer.to_dict() for layer in self.pot_layers],
            "seats": [self._public_seat(idx, seat) for idx, seat in enumerate(self.seats)],
        }

    def _public_seat(self, idx: int, seat: Seat) -> Dict[str, object]:
        entry: Dict[str, object] = {
            "id": seat.id,
            "name": seat.name,
            "chips": seat.stack,
            "street_bet": seat.street_bet,
            "total_contributed": seat.total_contributed,
            "folded": seat.is_folded,
            "all_in": seat.is_all_in,
            "is_dealer": idx == self.dealer_index,
        }
        revealed = self._revealed_hand(seat)
        if revealed is not None:
            entry["revealed_hand"] = revealed
        return entry

    def _revealed_hand(self, seat: Seat) -> Optional[Dict[str, object]]:
        if not self.finished or self.result is None:
            return None
        if seat.is_folded:
            if not self.config.reveal_folded_hands:
                return None
            return {"cards": cards_to_labels(seat.hole_cards), "name": None}
        if self.result.reason != "showdown":
            return None
        return {"cards": cards_to_labels(seat.hole_cards), "name": self.result.hand_names.get(seat.id)}

    def private_view(self, seat_id: str) -> Dict[str, object]:
        seat = self.seat(seat_id)
        payload: Dict[str, object] = {"seat_id": seat.id, "hole_cards": cards_to_labels(seat.hole_cards)}
        if self.acting_seat is seat:
            payload.update(self.legal_actions(seat_id).to_dict())
        return payload

    def final_chips(self) -> Dict[str, int]:
        return {seat.id: seat.stack for seat in self.seats}

    # Seat order helpers ----------------------------------------------

    def _index_of(self, seat_id: str) -> Optional[int]:
        for idx, seat in enumerate(self.seats):
            if seat.id == seat_id:
                return idx
        return None

    def _next_index(self, idx: int) -> int:
        return (idx + 1) % len(self.seats)

    def _order_after(self, idx: int) -> List[int]:
        count = len(self.seats)
        return [(idx + step) % count for step in range(1, count + 1)]

    def _next_to_act(self, start: Optional[int]) -> Optional[int]:
        if start is None:
            raise RuntimeError("No start seat defined")
        for idx in self._order_after(start):
            if self._needs_action(self.seats[idx]):
                return idx
        return None
