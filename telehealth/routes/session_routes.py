import asyncio
import logging

import jwt
from fastapi import APIRouter, Depends, Query, WebSocket

from telehealth.auth import jwt_handler
from telehealth.core import config
from telehealth.signaling.connection import CLOSE_POLICY_VIOLATION, Connection, ConnectionState
from telehealth.signaling.coordinator import SessionCoordinator
from telehealth.signaling.errors import InvalidMessage, Unauthorized

router = APIRouter(tags=['sessions'])

logger = logging.getLogger(__name__)


def get_coordinator(websocket: WebSocket) -> SessionCoordinator:
    return websocket.app.state.coordinator


def get_join_timeout(websocket: WebSocket) -> float:
    return getattr(websocket.app.state, 'join_timeout_seconds', config.JOIN_TIMEOUT_SECONDS)


def get_require_token(websocket: WebSocket) -> bool:
    return getattr(websocket.app.state, 'require_token', config.SIGNALING_REQUIRE_TOKEN)


@router.websocket('/ws/consultation')
async def consultation_socket(
    websocket: WebSocket,
    token: str | None = Query(default=None),
    coordinator: SessionCoordinator = Depends(get_coordinator),
    join_timeout: float = Depends(get_join_timeout),
    require_token: bool = Depends(get_require_token),
):
    """Signaling channel for one participant of a consultation room.

    Clients send JSON text frames such as
    ``{"type": "join-room", "roomId": ..., "userId": ...}`` followed by
    ``offer``/``answer``/``ice-candidate``/``send-message`` frames, and
    ``leave-room`` or ``end-session`` to finish.
    """
    await websocket.accept()

    authenticated_user_id = None
    if token:
        try:
            authenticated_user_id = jwt_handler.resolve_subject(token)
        except jwt.InvalidTokenError:
            await websocket.send_json(Unauthorized('Invalid or expired token.').to_frame())
            await websocket.close(code=CLOSE_POLICY_VIOLATION)
            return
    elif require_token:
        await websocket.send_json(Unauthorized('A token is required to join consultations.').to_frame())
        await websocket.close(code=CLOSE_POLICY_VIOLATION)
        return

    connection = Connection(websocket, authenticated_user_id=authenticated_user_id)
    loop = asyncio.get_running_loop()
    join_deadline = loop.time() + join_timeout
    logger.debug('Opened %r', connection)

    try:
        while True:
            if connection.state is ConnectionState.UNJOINED:
                remaining = join_deadline - loop.time()
                if remaining <= 0:
                    raise asyncio.TimeoutError
                message = await asyncio.wait_for(websocket.receive(), timeout=remaining)
            else:
                message = await websocket.receive()

            if message['type'] == 'websocket.disconnect':
                break

            text = message.get('text')
            if text is None:
                await connection.send(InvalidMessage('Binary frames are not supported.').to_frame())
                continue

            await coordinator.dispatch(connection, text)
            if connection.state is ConnectionState.LEFT:
                await connection.close()
                break
    except asyncio.TimeoutError:
        logger.info('Closing %r: no successful join within %.0fs', connection, join_timeout)
        await connection.send(Unauthorized('Join the room before the connection times out.').to_frame())
        await connection.close(code=CLOSE_POLICY_VIOLATION)
    finally:
        await coordinator.disconnect(connection)
        logger.debug('Closed %r', connection)
