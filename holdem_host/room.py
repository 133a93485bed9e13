from __future__ import annotations

import asyncio
import logging
import random
import string
from dataclasses import dataclass
from typing import Dict, List, Optional

from holdem.errors import HandNotStarted, HoldemError
from holdem.game import Event, HandState
from holdem.models import Action, Player, TableConfig

from .bots import decide_action

LOGGER = logging.getLogger("holdem_host")

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits

# A Room is one table: who sits there, their chips between hands and whose
# turn it is to deal. Each hand is delegated to a fresh HandState.


class RoomError(HoldemError):
    code = "ROOM_ERROR"


class RoomNotFound(RoomError):
    code = "ROOM_NOT_FOUND"


class RoomFull(RoomError):
    code = "ROOM_FULL"


class TooManyRooms(RoomError):
    code = "TOO_MANY_ROOMS"


class HandInProgress(RoomError):
    code = "HAND_IN_PROGRESS"


@dataclass
class RoomPlayer:
    id: str
    name: str
    chips: int
    is_bot: bool = False
    connected: bool = True
    # Left mid-hand: folds when the action reaches them, removed afterwards.
    left: bool = False


class Room:
    def __init__(
        self,
        code: str,
        config: TableConfig,
        host_id: Optional[str] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.code = code
        self.config = config
        self.host_id = host_id
        self.players: List[RoomPlayer] = []
        self.hand: Optional[HandState] = None
        self.dealer_id: Optional[str] = None
        self.hands_played = 0
        self.lock = asyncio.Lock()
        self._rng = rng

    # Membership ------------------------------------------------------

    def get_player(self, player_id: str) -> Optional[RoomPlayer]:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def add_player(self, player_id: str, name: str, chips: Optional[int] = None, is_bot: bool = False) -> RoomPlayer:
        existing = self.get_player(player_id)
        if existing:
            existing.name = name
            existing.connected = True
            existing.left = False
            return existing
        if len(self.players) >= self.config.max_players:
            raise RoomFull(f"Room {self.code} is full")

        player = RoomPlayer(
            id=player_id,
            name=name,
            chips=self.config.starting_stack if chips is None else chips,
            is_bot=is_bot,
        )
        self.players.append(player)
        LOGGER.info("Room %s: %s joined (chips=%s)", self.code, name, player.chips)
        return player

    def remove_player(self, player_id: str) -> List[Event]:
        player = self.get_player(player_id)
        if player is None:
            return []
        if self.in_hand(player_id):
            player.left = True
            player.connected = False
            LOGGER.info("Room %s: %s left mid-hand", self.code, player.name)
            return self._after_hand_change()
        self.players.remove(player)
        self._reassign_host()
        LOGGER.info("Room %s: %s left", self.code, player.name)
        return []

    def _reassign_host(self) -> None:
        if self.get_player(self.host_id or "") is None:
            humans = [p for p in self.players if not p.is_bot]
            self.host_id = humans[0].id if humans else None

    def has_humans(self) -> bool:
        return any(not player.is_bot and not player.left for player in self.players)

    def in_hand(self, player_id: str) -> bool:
        if self.hand is None or self.hand.finished:
            return False
        return any(seat.id == player_id for seat in self.hand.seats)

    # Hands -----------------------------------------------------------

    def hand_in_progress(self) -> bool:
        return self.hand is not None and not self.hand.finished

    def can_start(self) -> bool:
        ready = [player for player in self.players if player.chips > 0 and not player.left]
        return not self.hand_in_progress() and len(ready) >= self.config.min_players

    def start_hand(self) -> List[Event]:
        if self.hand_in_progress():
            raise HandInProgress("Hand already in progress")
        hand = HandState(self.config, rng=self._rng)
        players = [Player(id=p.id, name=p.name, chips=p.chips) for p in self.players if not p.left]
        events = hand.start_hand(players, previous_dealer_id=self.dealer_id)
        self.hand = hand
        self.dealer_id = hand.seats[hand.dealer_index].id
        self.hands_played += 1
        LOGGER.info("Room %s: hand %s started, dealer=%s", self.code, self.hands_played, self.dealer_id)
        events.extend(self._after_hand_change())
        return events

    def handle_action(self, player_id: str, action: Action) -> List[Event]:
        if self.hand is None:
            raise HandNotStarted("Game not started")
        events = self.hand.apply_action(player_id, action)
        events.extend(self._after_hand_change())
        return events

    def timeout_acting(self) -> List[Event]:
        """Fold the seat whose move clock ran out."""
        if not self.hand_in_progress():
            return []
        assert self.hand is not None
        seat = self.hand.acting_seat
        if seat is None:
            return []
        LOGGER.info("Room %s: %s timed out, folding", self.code, seat.name)
        events = self.hand.apply_action(seat.id, Action.fold())
        events.extend(self._after_hand_change())
        return events

    def run_bots(self, rng: Optional[random.Random] = None) -> List[Event]:
        events: List[Event] = []
        while self.hand_in_progress():
            assert self.hand is not None
            seat = self.hand.acting_seat
            player = self.get_player(seat.id) if seat else None
            if player is None or not player.is_bot:
                break
            action = decide_action(self.hand, player.id, rng)
            LOGGER.debug("Room %s: bot %s plays %s", self.code, player.name, action)
            events.extend(self.hand.apply_action(player.id, action))
            events.extend(self._after_hand_change())
        return events

    def _after_hand_change(self) -> List[Event]:
        events = self._fold_departed()
        if self.hand is not None and self.hand.finished:
            self._settle_chips()
        return events

    def _fold_departed(self) -> List[Event]:
        events: List[Event] = []
        while self.hand_in_progress():
            assert self.hand is not None
            seat = self.hand.acting_seat
            player = self.get_player(seat.id) if seat else None
            if player is None or not player.left:
                break
            events.extend(self.hand.apply_action(player.id, Action.fold()))
        return events

    def _settle_chips(self) -> None:
        assert self.hand is not None
        for seat_id, chips in self.hand.final_chips().items():
            player = self.get_player(seat_id)
            if player:
                player.chips = chips
        for player in [p for p in self.players if p.left]:
            self.players.remove(player)
        self._reassign_host()
        LOGGER.info(
            "Room %s: hand %s finished; winners=%s chips=%s",
            self.code,
            self.hands_played,
            self.hand.winners,
            {p.id: p.chips for p in self.players},
        )

    # Views -----------------------------------------------------------

    def public_state(self) -> Optional[Dict[str, object]]:
        return self.hand.public_view() if self.hand else None

    def private_state(self, player_id: str) -> Optional[Dict[str, object]]:
        if self.hand is None or all(seat.id != player_id for seat in self.hand.seats):
            return None
        return self.hand.private_view(player_id)

    def is_finished(self) -> bool:
        return bool(self.hand and self.hand.finished)

    def summary(self) -> Dict[str, object]:
        return {
            "code": self.code,
            "host_id": self.host_id,
            "in_hand": self.hand_in_progress(),
            "hands_played": self.hands_played,
            "players": [
                {
                    "id": player.id,
                    "name": player.name,
                    "chips": player.chips,
                    "is_bot": player.is_bot,
                    "connected": player.connected,
                }
                for player in self.players
            ],
        }


class RoomManager:
    """Owns every open room, keyed by its join code."""

    def __init__(
        self,
        config: TableConfig,
        max_rooms: int = 100,
        code_length: int = 5,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config
        self.max_rooms = max_rooms
        self.code_length = code_length
        self.rooms: Dict[str, Room] = {}
        self._rng = rng or random.Random()

    def _generate_code(self) -> str:
        while True:
            code = "".join(self._rng.choice(ROOM_CODE_ALPHABET) for _ in range(self.code_length))
            if code not in self.rooms:
                return code

    def create_room(self, host_id: str, host_name: str) -> Room:
        if len(self.rooms) >= self.max_rooms:
            raise TooManyRooms("No more rooms can be opened")
        room = Room(self._generate_code(), self.config, host_id=host_id)
        room.add_player(host_id, host_name)
        self.rooms[room.code] = room
        LOGGER.info("Room %s created by %s", room.code, host_name)
        return room

    def get(self, code: str) -> Room:
        room = self.rooms.get(code.strip().upper())
        if room is None:
            raise RoomNotFound(f"Room {code} not found")
        return room

    def join(self, code: str, player_id: str, name: str) -> Room:
        room = self.get(code)
        room.add_player(player_id, name)
        return room

    def leave(self, code: str, player_id: str) -> List[Event]:
        room = self.get(code)
        events = room.remove_player(player_id)
        if not room.has_humans():
            # Let the bots play out whatever is left of the hand.
            events.extend(room.run_bots())
        if not room.has_humans() and not room.hand_in_progress():
            self.rooms.pop(room.code, None)
            LOGGER.info("Room %s closed", room.code)
        return events
