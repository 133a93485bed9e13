from __future__ import annotations

import asyncio
import itertools
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

import websockets
from websockets.asyncio.server import ServerConnection, serve

from holdem.errors import HoldemError
from holdem.game import Event
from holdem.models import Action, TableConfig

from .room import Room, RoomManager, RoomNotFound

LOGGER = logging.getLogger("holdem_host")

# HostServer glues rooms to WebSocket clients. Every network concern lives
# here; Room and HandState stay free of sockets and clocks.


class BadMessage(HoldemError):
    code = "BAD_SCHEMA"


@dataclass
class ClientSession:
    user_id: str
    name: str
    websocket: Any
    room_code: Optional[str] = None


class HostServer:
    def __init__(
        self,
        config: TableConfig,
        max_rooms: int = 100,
        auto_next_hand: bool = True,
    ) -> None:
        self.config = config
        self.rooms = RoomManager(config, max_rooms=max_rooms)
        self.sessions: Dict[str, ClientSession] = {}
        self.auto_next_hand = auto_next_hand
        self.move_timers: Dict[str, asyncio.Task] = {}
        self.next_hand_tasks: Dict[str, asyncio.Task] = {}
        self._bot_ids = itertools.count(1)
        self._closing: Set[asyncio.Task] = set()

    async def start(self, host: str = "0.0.0.0", port: int = 3000) -> None:
        async with serve(self._handle_connection, host, port):
            LOGGER.info("Host server listening on %s:%s", host, port)
            await asyncio.Future()

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        # First message must be "hello" so we know who we are talking to.
        hello = await self._read_message(websocket)
        user = hello.get("user") if hello else None
        if not hello or hello.get("type") != "hello" or not isinstance(user, dict):
            await self._send_error(websocket, code="BAD_HELLO", msg="Expected hello")
            await websocket.close()
            return
        user_id = user.get("id")
        name = user.get("name")
        if not isinstance(user_id, str) or not user_id.strip() or not isinstance(name, str) or not name.strip():
            await self._send_error(websocket, code="BAD_HELLO", msg="user id and name required")
            await websocket.close()
            return

        session = self.register(str(user_id).strip(), name.strip(), websocket)
        previous = session.room_code
        await self._send_json(websocket, "welcome", {"user_id": session.user_id, "config": self._config_payload()})
        if previous:
            await self._send_room_state(session)

        try:
            async for raw in websocket:
                await self.handle_message(session, self._decode(raw))
        except websockets.ConnectionClosed:
            pass
        finally:
            if self.sessions.get(session.user_id) is session:
                self.sessions.pop(session.user_id, None)
                await self._leave_room(session)
            LOGGER.info("%s (%s) disconnected", session.name, session.user_id)

    def register(self, user_id: str, name: str, websocket: Any) -> ClientSession:
        previous = self.sessions.get(user_id)
        session = ClientSession(user_id=user_id, name=name, websocket=websocket)
        if previous:
            # Reconnect: the new socket takes over the seat.
            session.room_code = previous.room_code
            task = asyncio.ensure_future(previous.websocket.close(code=4000, reason="Replaced by new connection"))
            self._closing.add(task)
            task.add_done_callback(self._close_done)
        self.sessions[user_id] = session
        LOGGER.info("%s (%s) connected", name, user_id)
        return session

    def _close_done(self, task: asyncio.Task) -> None:
        self._closing.discard(task)
        if not task.cancelled() and task.exception() is not None:
            LOGGER.warning("Closing replaced connection failed: %s", task.exception())

    async def handle_message(self, session: ClientSession, message: Dict[str, object]) -> None:
        handlers = {
            "create_room": self._on_create_room,
            "join_room": self._on_join_room,
            "leave_room": self._on_leave_room,
            "add_bot": self._on_add_bot,
            "start_game": self._on_start_game,
            "action": self._on_action,
            "get_my_cards": self._on_get_my_cards,
        }
        msg_type = message.get("type")
        handler = handlers.get(msg_type) if isinstance(msg_type, str) else None
        if handler is None:
            LOGGER.warning("Unsupported message from %s: %r", session.user_id, msg_type)
            await self._send_error(session.websocket, code="UNKNOWN_TYPE", msg="Unsupported message type")
            return
        try:
            await handler(session, message)
        except HoldemError as exc:
            LOGGER.warning("Rejected %s from %s: %s", message.get("type"), session.user_id, exc)
            await self._send_error(session.websocket, code=exc.code, msg=exc.msg)

    # Handlers --------------------------------------------------------

    async def _on_create_room(self, session: ClientSession, message: Dict[str, object]) -> None:
        if session.room_code:
            await self._leave_room(session)
        room = self.rooms.create_room(session.user_id, session.name)
        session.room_code = room.code
        await self._send_json(session.websocket, "room_joined", room.summary())
        await self._publish_room(room)

    async def _on_join_room(self, session: ClientSession, message: Dict[str, object]) -> None:
        code = message.get("code")
        if not isinstance(code, str) or not code.strip():
            raise BadMessage("code required")
        room = self.rooms.get(code)
        if session.room_code and session.room_code != room.code:
            await self._leave_room(session)
        async with room.lock:
            room.add_player(session.user_id, session.name)
        session.room_code = room.code
        await self._send_json(session.websocket, "room_joined", room.summary())
        await self._publish_room(room)
        await self._send_room_state(session)

    async def _on_leave_room(self, session: ClientSession, message: Dict[str, object]) -> None:
        await self._leave_room(session)

    async def _on_add_bot(self, session: ClientSession, message: Dict[str, object]) -> None:
        room = self._current_room(session)
        number = next(self._bot_ids)
        async with room.lock:
            room.add_player(f"bot-{number}", f"Bot {number}", is_bot=True)
        await self._publish_room(room)

    async def _on_start_game(self, session: ClientSession, message: Dict[str, object]) -> None:
        room = self._current_room(session)
        async with room.lock:
            events = room.start_hand()
            events.extend(room.run_bots())
        await self._publish_hand(room, events)

    async def _on_action(self, session: ClientSession, message: Dict[str, object]) -> None:
        room = self._current_room(session)
        action = Action.from_payload(message.get("action"))
        async with room.lock:
            events = room.handle_action(session.user_id, action)
            self._cancel_timer(self.move_timers, room.code)
            events.extend(room.run_bots())
        LOGGER.debug("Applied action room=%s seat=%s action=%s", room.code, session.user_id, action)
        await self._publish_hand(room, events)

    async def _on_get_my_cards(self, session: ClientSession, message: Dict[str, object]) -> None:
        room = self._current_room(session)
        private = room.private_state(session.user_id)
        if private is not None:
            await self._send_json(session.websocket, "my_cards", private)

    # Room flow -------------------------------------------------------

    def _current_room(self, session: ClientSession) -> Room:
        if not session.room_code:
            raise RoomNotFound("Not in a room")
        return self.rooms.get(session.room_code)

    async def _leave_room(self, session: ClientSession) -> None:
        code = session.room_code
        session.room_code = None
        if not code or code not in self.rooms.rooms:
            return
        room = self.rooms.rooms[code]
        async with room.lock:
            events = self.rooms.leave(code, session.user_id)
            if room.code in self.rooms.rooms:
                events.extend(room.run_bots())
        if room.code not in self.rooms.rooms:
            self._cancel_timer(self.move_timers, room.code)
            self._cancel_timer(self.next_hand_tasks, room.code)
            return
        await self._publish_room(room)
        if events:
            await self._publish_hand(room, events)

    async def _publish_hand(self, room: Room, events: List[Event]) -> None:
        state = room.public_state()
        if state is None:
            return
        await self._broadcast(room, "game_state", {"state": state, "events": events})
        for player in room.players:
            session = self.sessions.get(player.id)
            private = room.private_state(player.id)
            if session and private is not None:
                await self._send_json(session.websocket, "my_cards", private)

        if room.is_finished():
            self._cancel_timer(self.move_timers, room.code)
            await self._broadcast(room, "hand_end", {"state": state, "room": room.summary()})
            await self._publish_room(room)
            if self.auto_next_hand:
                self._schedule_next_hand(room)
        else:
            self._arm_move_timer(room)

    def _arm_move_timer(self, room: Room) -> None:
        self._cancel_timer(self.move_timers, room.code)
        if self.config.move_time_ms <= 0 or room.hand is None or room.hand.acting_seat is None:
            return
        hand, seat_id = room.hand, room.hand.acting_seat.id
        self.move_timers[room.code] = asyncio.ensure_future(self._move_timeout(room, hand, seat_id))

    async def _move_timeout(self, room: Room, hand: object, seat_id: str) -> None:
        await asyncio.sleep(self.config.move_time_ms / 1000)
        async with room.lock:
            acting = room.hand.acting_seat if room.hand else None
            if room.hand is not hand or acting is None or acting.id != seat_id:
                return
            self.move_timers.pop(room.code, None)
            events = room.timeout_acting()
            events.extend(room.run_bots())
        await self._publish_hand(room, events)

    def _schedule_next_hand(self, room: Room) -> None:
        self._cancel_timer(self.next_hand_tasks, room.code)
        self.next_hand_tasks[room.code] = asyncio.ensure_future(self._next_hand(room))

    async def _next_hand(self, room: Room) -> None:
        await asyncio.sleep(self.config.next_hand_delay_ms / 1000)
        async with room.lock:
            self.next_hand_tasks.pop(room.code, None)
            if room.code not in self.rooms.rooms or not room.has_humans() or not room.can_start():
                return
            events = room.start_hand()
            events.extend(room.run_bots())
        await self._publish_hand(room, events)

    def _cancel_timer(self, tasks: Dict[str, asyncio.Task], code: str) -> None:
        task = tasks.pop(code, None)
        if task and task is not asyncio.current_task():
            task.cancel()

    # Messaging -------------------------------------------------------

    async def _send_room_state(self, session: ClientSession) -> None:
        room = self._current_room(session)
        state = room.public_state()
        if state is not None:
            await self._send_json(session.websocket, "game_state", {"state": state, "events": []})
        private = room.private_state(session.user_id)
        if private is not None:
            await self._send_json(session.websocket, "my_cards", private)

    async def _publish_room(self, room: Room) -> None:
        await self._broadcast(room, "room_update", room.summary())

    async def _broadcast(self, room: Room, msg_type: str, payload: Dict[str, object]) -> None:
        targets = [
            self.sessions[player.id].websocket
            for player in room.players
            if player.id in self.sessions and self.sessions[player.id].room_code == room.code
        ]
        if not targets:
            return
        message = self._envelope(msg_type, payload)
        await asyncio.gather(*(socket.send(message) for socket in targets), return_exceptions=True)

    def _config_payload(self) -> Dict[str, object]:
        return {
            "small_blind": self.config.small_blind,
            "big_blind": self.config.big_blind,
            "min_players": self.config.min_players,
            "max_players": self.config.max_players,
            "starting_stack": self.config.starting_stack,
            "move_time_ms": self.config.move_time_ms,
        }

    async def _send_json(self, websocket: Any, msg_type: str, payload: Dict[str, object]) -> None:
        try:
            await websocket.send(self._envelope(msg_type, payload))
        except websockets.ConnectionClosed:
            pass

    async def _send_error(self, websocket: Any, code: str, msg: str) -> None:
        await self._send_json(websocket, "error", {"code": code, "msg": msg})

    def _envelope(self, msg_type: str, payload: Dict[str, object]) -> str:
        body = {"type": msg_type, "v": 1, "ts": datetime.now(timezone.utc).isoformat()}
        body.update(payload)
        return json.dumps(body)

    async def _read_message(self, websocket: ServerConnection) -> Optional[Dict[str, object]]:
        try:
            raw = await asyncio.wait_for(websocket.recv(), timeout=5)
        except (asyncio.TimeoutError, websockets.ConnectionClosed):
            return None
        return self._decode(raw)

    def _decode(self, raw: Any) -> Dict[str, object]:
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return {}
        return message if isinstance(message, dict) else {}
