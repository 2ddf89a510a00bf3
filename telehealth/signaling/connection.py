import asyncio
import enum
import logging
import uuid

from fastapi import WebSocketDisconnect

logger = logging.getLogger(__name__)

CLOSE_NORMAL = 1000
CLOSE_POLICY_VIOLATION = 1008
CLOSE_REPLACED = 4001


class ConnectionState(enum.Enum):
    UNJOINED = 'unjoined'
    JOINED = 'joined'
    LEFT = 'left'


class Connection:
    """One client's live socket plus the room membership it has claimed.

    Frames sent to a connection are written one at a time, so every sender's
    messages reach this client in the order they were sent.
    """

    def __init__(self, websocket, authenticated_user_id: str | None = None):
        self.websocket = websocket
        self.connection_id = uuid.uuid4().hex[:12]
        self.authenticated_user_id = authenticated_user_id
        self.state = ConnectionState.UNJOINED
        self.user_id: str | None = None
        self.role: str | None = None
        self.room_id: str | None = None
        self._send_lock = asyncio.Lock()

    def __repr__(self) -> str:
        return (
            f'<Connection {self.connection_id} user={self.user_id} '
            f'room={self.room_id} state={self.state.value}>'
        )

    @property
    def is_joined(self) -> bool:
        return self.state is ConnectionState.JOINED

    def mark_joined(self, room_id: str, user_id: str, role: str) -> None:
        self.room_id = room_id
        self.user_id = user_id
        self.role = role
        self.state = ConnectionState.JOINED

    def mark_unjoined(self) -> None:
        self.room_id = None
        self.user_id = None
        self.role = None
        self.state = ConnectionState.UNJOINED

    def mark_left(self) -> None:
        self.state = ConnectionState.LEFT

    async def send(self, frame: dict) -> bool:
        async with self._send_lock:
            try:
                await self.websocket.send_json(frame)
            except (WebSocketDisconnect, RuntimeError) as exc:
                # The client is gone; its own receive loop reports the disconnect.
                logger.debug('Dropped %s frame for %r: %s', frame.get('type'), self, exc)
                return False
        return True

    async def close(self, code: int = CLOSE_NORMAL) -> None:
        self.mark_left()
        try:
            await self.websocket.close(code=code)
        except RuntimeError:
            logger.debug('Socket for %r was already closed', self)
