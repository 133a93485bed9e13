import asyncio
import json
from typing import Dict, List, Optional

from holdem.models import TableConfig
from holdem_host.server import ClientSession, HostServer


class DummyWebSocket:
    def __init__(self) -> None:
        self.sent: List[str] = []
        self.closed = False

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True

    def messages(self, msg_type: Optional[str] = None) -> List[Dict[str, object]]:
        decoded = [json.loads(raw) for raw in self.sent]
        return [msg for msg in decoded if msg_type is None or msg["type"] == msg_type]


class ScriptedWebSocket(DummyWebSocket):
    """Replays queued client frames, then behaves like a closed connection."""

    def __init__(self, *frames: Dict[str, object]) -> None:
        super().__init__()
        self.incoming = [json.dumps(frame) for frame in frames]

    async def recv(self) -> str:
        return self.incoming.pop(0)

    def __aiter__(self):
        return self._frames()

    async def _frames(self):
        while self.incoming:
            yield self.incoming.pop(0)


def make_server(auto_next_hand: bool = False, **config) -> HostServer:
    config.setdefault("move_time_ms", 0)
    return HostServer(TableConfig(**config), auto_next_hand=auto_next_hand)


def connect(server: HostServer, user_id: str, name: str) -> ClientSession:
    return server.register(user_id, name, DummyWebSocket())


async def seat_two(server: HostServer):
    alice = connect(server, "a", "Alice")
    bob = connect(server, "b", "Bob")
    await server.handle_message(alice, {"type": "create_room"})
    await server.handle_message(bob, {"type": "join_room", "code": alice.room_code.lower()})
    return alice, bob


def test_create_and_join_room():
    async def scenario():
        server = make_server()
        alice, bob = await seat_two(server)
        joined = alice.websocket.messages("room_joined")[0]
        assert joined["code"] == alice.room_code
        assert joined["v"] == 1 and "ts" in joined
        assert bob.room_code == alice.room_code

        update = alice.websocket.messages("room_update")[-1]
        assert [p["id"] for p in update["players"]] == ["a", "b"]
        assert update["host_id"] == "a"

    asyncio.run(scenario())


def test_start_game_sends_private_cards_to_their_owner_only():
    async def scenario():
        server = make_server()
        alice, bob = await seat_two(server)
        await server.handle_message(alice, {"type": "start_game"})

        state = bob.websocket.messages("game_state")[-1]
        assert state["state"]["stage"] == "preflop"
        assert state["state"]["acting_seat_id"] == "b"
        assert [ev["ev"] for ev in state["events"]] == ["START_HAND", "POST_BLINDS"]
        assert all("hole_cards" not in seat for seat in state["state"]["seats"])

        alice_cards = alice.websocket.messages("my_cards")
        bob_cards = bob.websocket.messages("my_cards")
        assert {msg["seat_id"] for msg in alice_cards} == {"a"}
        assert {msg["seat_id"] for msg in bob_cards} == {"b"}
        assert len(bob_cards[-1]["hole_cards"]) == 2
        assert "legal" in bob_cards[-1]
        assert "legal" not in alice_cards[-1]

        await server.handle_message(alice, {"type": "get_my_cards"})
        assert alice.websocket.messages("my_cards")[-1]["hole_cards"] == alice_cards[-1]["hole_cards"]

    asyncio.run(scenario())


def test_action_errors_are_reported_to_the_sender():
    async def scenario():
        server = make_server()
        alice, bob = await seat_two(server)
        await server.handle_message(alice, {"type": "start_game"})

        await server.handle_message(alice, {"type": "action", "action": "call"})
        assert alice.websocket.messages("error")[-1]["code"] == "NOT_YOUR_TURN"

        await server.handle_message(bob, {"type": "action", "action": "shove"})
        assert bob.websocket.messages("error")[-1]["code"] == "INVALID_ACTION"

        await server.handle_message(bob, {"type": "action", "action": "check"})
        assert bob.websocket.messages("error")[-1]["code"] == "ILLEGAL_CHECK"

        await server.handle_message(alice, {"type": "start_game"})
        assert alice.websocket.messages("error")[-1]["code"] == "HAND_IN_PROGRESS"

    asyncio.run(scenario())


def test_fold_ends_hand_and_updates_chips():
    async def scenario():
        server = make_server()
        alice, bob = await seat_two(server)
        await server.handle_message(alice, {"type": "start_game"})
        await server.handle_message(bob, {"type": "action", "action": {"type": "fold"}})

        for session in (alice, bob):
            end = session.websocket.messages("hand_end")[-1]
            assert end["state"]["winners"] == ["a"]
            assert end["state"]["winning_hand_name"] == "Fold win"
            chips = {p["id"]: p["chips"] for p in end["room"]["players"]}
            assert chips == {"a": 1010, "b": 990}

    asyncio.run(scenario())


def test_malformed_messages():
    async def scenario():
        server = make_server()
        alice = connect(server, "a", "Alice")
        await server.handle_message(alice, {"type": "dance"})
        assert alice.websocket.messages("error")[-1]["code"] == "UNKNOWN_TYPE"

        await server.handle_message(alice, {"type": "join_room"})
        assert alice.websocket.messages("error")[-1]["code"] == "BAD_SCHEMA"

        await server.handle_message(alice, {"type": "join_room", "code": "QQQQQ"})
        assert alice.websocket.messages("error")[-1]["code"] == "ROOM_NOT_FOUND"

        await server.handle_message(alice, {"type": "action", "action": "fold"})
        assert alice.websocket.messages("error")[-1]["msg"] == "Not in a room"

    asyncio.run(scenario())

    server = make_server()
    assert server._decode("not json") == {}
    assert server._decode("[1, 2]") == {}
    assert server._decode('{"type": "hello"}') == {"type": "hello"}


def test_leaving_updates_remaining_players_and_closes_empty_rooms():
    async def scenario():
        server = make_server()
        alice, bob = await seat_two(server)
        code = alice.room_code
        await server.handle_message(bob, {"type": "leave_room"})
        assert bob.room_code is None
        update = alice.websocket.messages("room_update")[-1]
        assert [p["id"] for p in update["players"]] == ["a"]

        await server.handle_message(alice, {"type": "leave_room"})
        assert code not in server.rooms.rooms

    asyncio.run(scenario())


def test_bots_act_until_a_human_is_to_move():
    async def scenario():
        server = make_server()
        alice = connect(server, "a", "Alice")
        await server.handle_message(alice, {"type": "create_room"})
        await server.handle_message(alice, {"type": "add_bot"})
        await server.handle_message(alice, {"type": "add_bot"})
        room = server.rooms.get(alice.room_code)
        assert [p.is_bot for p in room.players] == [False, True, True]
        assert room.players[1].name == "Bot 1"

        await server.handle_message(alice, {"type": "start_game"})
        assert room.is_finished() or room.hand.acting_seat.id == "a"

    asyncio.run(scenario())


def test_move_timer_folds_a_slow_player():
    async def scenario():
        server = make_server(move_time_ms=20)
        alice, bob = await seat_two(server)
        await server.handle_message(alice, {"type": "start_game"})
        await asyncio.sleep(0.2)
        end = alice.websocket.messages("hand_end")[-1]
        assert end["state"]["winners"] == ["a"]

    asyncio.run(scenario())


def test_reconnect_replaces_socket_and_keeps_room():
    async def scenario():
        server = make_server()
        alice, _ = await seat_two(server)
        old_socket = alice.websocket
        again = connect(server, "a", "Alice")
        await asyncio.sleep(0.01)
        assert old_socket.closed
        assert again.room_code == alice.room_code
        assert server.sessions["a"] is again
        assert not server._closing

    asyncio.run(scenario())


def test_first_frame_must_be_hello():
    async def scenario():
        server = make_server()
        socket = ScriptedWebSocket({"type": "create_room"})
        await server._handle_connection(socket)
        assert socket.messages("error")[-1]["code"] == "BAD_HELLO"
        assert socket.closed
        assert not server.sessions

        nameless = ScriptedWebSocket({"type": "hello", "user": {"id": "a", "name": " "}})
        await server._handle_connection(nameless)
        assert nameless.messages("error")[-1]["code"] == "BAD_HELLO"
        assert nameless.closed

    asyncio.run(scenario())


def test_hello_then_messages_until_disconnect():
    async def scenario():
        server = make_server()
        socket = ScriptedWebSocket(
            {"type": "hello", "user": {"id": "a", "name": "Alice"}},
            {"type": "create_room"},
        )
        await server._handle_connection(socket)
        assert [msg["type"] for msg in socket.messages()] == ["welcome", "room_joined", "room_update"]
        welcome = socket.messages("welcome")[0]
        assert welcome["user_id"] == "a"
        assert welcome["config"]["big_blind"] == 20
        # Disconnecting drops the session and the now empty room.
        assert "a" not in server.sessions
        assert not server.rooms.rooms

    asyncio.run(scenario())


def test_returning_player_gets_the_table_replayed():
    async def scenario():
        server = make_server()
        alice, bob = await seat_two(server)
        await server.handle_message(alice, {"type": "start_game"})

        socket = ScriptedWebSocket({"type": "hello", "user": {"id": "b", "name": "Bob"}})
        await server._handle_connection(socket)
        await asyncio.sleep(0)
        assert bob.websocket.closed
        assert [msg["type"] for msg in socket.messages()][:3] == ["welcome", "game_state", "my_cards"]
        assert socket.messages("my_cards")[0]["seat_id"] == "b"

    asyncio.run(scenario())


def test_next_hand_starts_after_delay_with_rotated_dealer():
    async def scenario():
        server = make_server(auto_next_hand=True, next_hand_delay_ms=10)
        alice, bob = await seat_two(server)
        await server.handle_message(alice, {"type": "start_game"})
        room = server.rooms.get(alice.room_code)
        await server.handle_message(bob, {"type": "action", "action": "fold"})
        assert room.code in server.next_hand_tasks

        await asyncio.sleep(0.1)
        assert room.hands_played == 2
        assert room.dealer_id == "b"
        assert room.hand_in_progress()
        assert room.code not in server.next_hand_tasks
        assert alice.websocket.messages("game_state")[-1]["state"]["dealer_seat_id"] == "b"

    asyncio.run(scenario())


def test_closing_a_room_cancels_the_pending_hand():
    async def scenario():
        server = make_server(auto_next_hand=True, next_hand_delay_ms=50)
        alice, bob = await seat_two(server)
        await server.handle_message(alice, {"type": "start_game"})
        room = server.rooms.get(alice.room_code)
        await server.handle_message(bob, {"type": "action", "action": "fold"})
        task = server.next_hand_tasks[room.code]

        await server.handle_message(bob, {"type": "leave_room"})
        await server.handle_message(alice, {"type": "leave_room"})
        assert room.code not in server.rooms.rooms
        assert room.code not in server.next_hand_tasks

        await asyncio.sleep(0.1)
        assert task.cancelled()
        assert room.hands_played == 1

    asyncio.run(scenario())


def test_non_string_message_type_is_rejected():
    async def scenario():
        server = make_server()
        alice = connect(server, "a", "Alice")
        for bad in (["x"], {"nested": 1}, None):
            await server.handle_message(alice, {"type": bad})
            assert alice.websocket.messages("error")[-1]["code"] == "UNKNOWN_TYPE"
        assert len(alice.websocket.messages("error")) == 3

    asyncio.run(scenario())
