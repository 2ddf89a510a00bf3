"""Per-connection message dispatch for consultation rooms.

Each client frame is parsed once, checked against the connection's state
(unjoined -> joined -> left) and routed through a single handler table.
Every failure is reported back to the sender as an ``error`` frame.
"""

import logging
from datetime import datetime
from typing import Any, Callable

from pydantic import BaseModel, Field, ValidationError

from telehealth.core import config
from telehealth.signaling.authorization import AuthorizationGate
from telehealth.signaling.connection import Connection, ConnectionState
from telehealth.signaling.errors import (
    AlreadyJoined,
    InvalidMessage,
    NotJoined,
    SignalingError,
    Unauthorized,
)
from telehealth.signaling.lifecycle import SessionLifecycle
from telehealth.signaling.registry import SessionRegistry
from telehealth.signaling.relay import RELAYED_KINDS, SignalingRelay
from telehealth.signaling.store import AppointmentStore

logger = logging.getLogger(__name__)


class ClientMessage(BaseModel):
    type: str
    room_id: str | None = Field(default=None, alias='roomId')
    user_id: str | None = Field(default=None, alias='userId')
    payload: Any = None

    class Config:
        populate_by_name = True


class SessionCoordinator:
    def __init__(
        self,
        gate: AuthorizationGate,
        registry: SessionRegistry,
        relay: SignalingRelay,
        lifecycle: SessionLifecycle,
    ):
        self.gate = gate
        self.registry = registry
        self.relay = relay
        self.lifecycle = lifecycle

        joined = {ConnectionState.JOINED}
        self._handlers = {
            'join-room': (self._handle_join, {ConnectionState.UNJOINED}),
            'leave-room': (self._handle_leave, joined),
            'end-session': (self._handle_end, joined),
        }
        for kind in RELAYED_KINDS:
            self._handlers[kind] = (self._handle_relay, joined)

    async def dispatch(self, connection: Connection, raw: str) -> None:
        try:
            message = self._parse(raw)
            handler, allowed_states = self._handlers.get(message.type, (None, None))
            if handler is None:
                raise InvalidMessage(f'Unknown message type {message.type!r}.')
            if connection.state not in allowed_states:
                if connection.is_joined:
                    raise AlreadyJoined()
                raise NotJoined()
            await handler(connection, message)
        except SignalingError as exc:
            logger.info('Rejected %s from %r: %s', exc.code, connection, exc.reason)
            await connection.send(exc.to_frame())
        except Exception:
            logger.exception('Unhandled error while processing a frame from %r', connection)
            await connection.send(SignalingError('An unexpected error occurred. Please retry.').to_frame())

    async def disconnect(self, connection: Connection) -> None:
        await self.lifecycle.leave(connection)

    def _parse(self, raw: str) -> ClientMessage:
        try:
            return ClientMessage.model_validate_json(raw)
        except ValidationError as exc:
            raise InvalidMessage('Messages must be JSON objects with a "type" field.') from exc

    def _check_room(self, connection: Connection, message: ClientMessage) -> str:
        if message.room_id is not None and message.room_id != connection.room_id:
            raise Unauthorized(f'This connection has not joined room {message.room_id}.')
        return connection.room_id

    async def _handle_join(self, connection: Connection, message: ClientMessage) -> None:
        claimed_user_id = message.user_id or connection.authenticated_user_id
        if not message.room_id or not claimed_user_id:
            raise InvalidMessage('join-room requires roomId and userId.')
        if connection.authenticated_user_id and claimed_user_id != connection.authenticated_user_id:
            raise Unauthorized('The claimed user does not match the connection credential.')

        authorization = await self.gate.authorize(message.room_id, claimed_user_id)
        await self.lifecycle.join(connection, authorization)

    async def _handle_relay(self, connection: Connection, message: ClientMessage) -> None:
        room_id = self._check_room(connection, message)
        await self.relay.relay(room_id, connection, message.type, message.payload)

    async def _handle_leave(self, connection: Connection, message: ClientMessage) -> None:
        self._check_room(connection, message)
        await self.lifecycle.leave(connection)

    async def _handle_end(self, connection: Connection, message: ClientMessage) -> None:
        room_id = self._check_room(connection, message)
        if message.user_id is not None and message.user_id != connection.user_id:
            raise Unauthorized('Only the doctor can end the session.')
        await self.lifecycle.end(connection, room_id)


def build_coordinator(
    store: AppointmentStore,
    clock: Callable[[], datetime] = datetime.now,
    window_minutes: int = config.SESSION_WINDOW_MINUTES,
    write_attempts: int = config.STORE_WRITE_ATTEMPTS,
    retry_delay: float = config.STORE_RETRY_DELAY_SECONDS,
) -> SessionCoordinator:
    registry = SessionRegistry()
    return SessionCoordinator(
        gate=AuthorizationGate(store, clock=clock, window_minutes=window_minutes),
        registry=registry,
        relay=SignalingRelay(registry),
        lifecycle=SessionLifecycle(
            store,
            registry,
            clock=clock,
            write_attempts=write_attempts,
            retry_delay=retry_delay,
        ),
    )
