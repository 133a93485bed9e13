"""Room host package: wraps the hand engine with rooms and WebSockets."""

from .room import Room, RoomManager, RoomPlayer
from .server import HostServer

__all__ = ["HostServer", "Room", "RoomManager", "RoomPlayer"]
