import asyncio
import contextlib
import logging
from dataclasses import dataclass

from telehealth.signaling.connection import Connection
from telehealth.signaling.errors import RoomFull

logger = logging.getLogger(__name__)

ROOM_CAPACITY = 2


@dataclass(frozen=True)
class Admission:
    size: int
    evicted: Connection | None = None


class SessionRegistry:
    """In-memory room membership, keyed by room id and then by user id.

    Membership changes for one room are serialized through that room's lock,
    so two near-simultaneous joins can never both pass the capacity check.
    Nothing here is persisted; a restart starts with every room empty.
    """

    def __init__(self, capacity: int = ROOM_CAPACITY):
        self.capacity = capacity
        self._rooms: dict[str, dict[str, Connection]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def _room_lock(self, room_id: str):
        # Dropped once nobody holds or waits on it and the room is empty.
        lock = self._locks.setdefault(room_id, asyncio.Lock())
        self._lock_users[room_id] = self._lock_users.get(room_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[room_id] -= 1
            if not self._lock_users[room_id]:
                del self._lock_users[room_id]
                if room_id not in self._rooms:
                    del self._locks[room_id]

    async def admit(self, room_id: str, connection: Connection, user_id: str, role: str) -> Admission:
        """Seat ``connection`` in the room as ``user_id``.

        A user already seated is replaced rather than counted twice; the stale
        connection is returned so the caller can close it. Raises ``RoomFull``
        when a new identity would exceed the room's capacity.
        """
        async with self._room_lock(room_id):
            members = self._rooms.setdefault(room_id, {})
            stale = members.get(user_id)

            if stale is None and len(members) >= self.capacity:
                raise RoomFull()

            connection.mark_joined(room_id, user_id, role)
            members[user_id] = connection
            size = len(members)

        if stale is not None and stale is not connection:
            logger.info('User %s reconnected to room %s; replacing %r', user_id, room_id, stale)
            return Admission(size=size, evicted=stale)
        return Admission(size=size)

    def members_of(self, room_id: str, exclude: Connection | None = None) -> list[Connection]:
        members = self._rooms.get(room_id, {})
        return [member for member in members.values() if member is not exclude]

    def size(self, room_id: str) -> int:
        return len(self._rooms.get(room_id, {}))

    def rooms(self) -> list[str]:
        return list(self._rooms)

    async def remove(self, connection: Connection) -> bool:
        room_id = connection.room_id
        if room_id is None or connection.user_id is None:
            return False

        async with self._room_lock(room_id):
            members = self._rooms.get(room_id)
            # A newer connection for the same user may already hold the seat.
            if not members or members.get(connection.user_id) is not connection:
                return False
            del members[connection.user_id]
            if not members:
                del self._rooms[room_id]
        return True

    async def clear(self, room_id: str) -> list[Connection]:
        async with self._room_lock(room_id):
            members = self._rooms.pop(room_id, {})
        return list(members.values())

