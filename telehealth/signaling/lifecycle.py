"""Session lifecycle: what joining, leaving and ending a room do to an appointment.

Per appointment the session moves Scheduled -> Active -> Ended. Active is
reached when the second participant is seated and is only reflected in the
store as ``session_start``; Ended is the ``completed`` status. Disconnects and
explicit leaves never change the appointment, so a dropped party can rejoin
while the window is open.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable

from telehealth.core import config
from telehealth.signaling.authorization import Authorization
from telehealth.signaling.connection import CLOSE_NORMAL, CLOSE_REPLACED, Connection
from telehealth.signaling.errors import RoomNotFound, SessionClosed, StoreUnavailable, Unauthorized
from telehealth.signaling.registry import SessionRegistry
from telehealth.signaling.store import AppointmentRecord, AppointmentStore

logger = logging.getLogger(__name__)


class SessionLifecycle:
    def __init__(
        self,
        store: AppointmentStore,
        registry: SessionRegistry,
        clock: Callable[[], datetime] = datetime.now,
        write_attempts: int = config.STORE_WRITE_ATTEMPTS,
        retry_delay: float = config.STORE_RETRY_DELAY_SECONDS,
    ):
        self._store = store
        self._registry = registry
        self._clock = clock
        self._write_attempts = write_attempts
        self._retry_delay = retry_delay

    async def join(self, connection: Connection, authorization: Authorization) -> None:
        appointment = authorization.appointment
        room_id = appointment.room_id
        user_id = appointment.patient_id if authorization.role == 'patient' else appointment.doctor_id

        admission = await self._registry.admit(room_id, connection, user_id, authorization.role)
        if admission.evicted is not None:
            await admission.evicted.close(code=CLOSE_REPLACED)

        # Ends write the status before clearing the room, so a seat taken after
        # that clear sees the terminal status here and is given back.
        try:
            appointment = await self._retry(self._store.find_by_room_id, room_id)
        except StoreUnavailable:
            await self._unseat(connection)
            raise
        if appointment is None or appointment.status != 'scheduled':
            await self._unseat(connection)
            raise SessionClosed('This consultation has already ended.')

        peers = self._registry.members_of(room_id, exclude=connection)
        await connection.send({
            'type': 'room-joined',
            'roomId': room_id,
            'role': authorization.role,
            'peers': [peer.user_id for peer in peers],
        })
        logger.info('%s %s joined room %s (%d/%d)', authorization.role, user_id, room_id, admission.size, self._registry.capacity)

        if admission.size < self._registry.capacity:
            return

        for peer in peers:
            await peer.send({'type': 'user-connected', 'userId': user_id})

        if appointment.session_start is None:
            try:
                await self._retry(self._store.set_session_start, room_id, self._clock())
            except StoreUnavailable:
                logger.exception('Could not record session start for room %s', room_id)

    async def leave(self, connection: Connection) -> bool:
        """Handle an explicit leave or an abrupt disconnect."""
        was_seated = await self._registry.remove(connection)
        connection.mark_left()
        if not was_seated:
            return False

        logger.info('User %s left room %s', connection.user_id, connection.room_id)
        for peer in self._registry.members_of(connection.room_id):
            await peer.send({'type': 'user-disconnected', 'userId': connection.user_id})
        return True

    async def end(self, connection: Connection, room_id: str) -> datetime:
        appointment = await self._store.find_by_room_id(room_id)
        if appointment is None:
            raise RoomNotFound()
        if connection.user_id != appointment.doctor_id:
            raise Unauthorized('Only the doctor can end the session.')
        if appointment.status not in ('scheduled', 'completed'):
            raise SessionClosed(f'This appointment is {appointment.status}.')

        ended_at = appointment.session_end or self._clock()
        if appointment.status == 'scheduled':
            await self._retry(self._store.set_session_end, room_id, ended_at)
            await self._retry(self._store.release_slot, room_id)
            await self._retry(self._store.set_status, room_id, 'completed')
            logger.info('Session %s ended by doctor %s', room_id, connection.user_id)

        await self._close_room(room_id, ended_at)
        return ended_at

    async def expire(self, appointment: AppointmentRecord) -> str:
        """Close out an appointment whose window elapsed without an explicit end.

        Returns the status the appointment holds afterwards. An appointment
        that was ended or cancelled since it was listed keeps its status, and
        its slot is left alone.
        """
        room_id = appointment.room_id
        now = self._clock()
        status = 'completed' if appointment.session_start is not None else 'missed'

        if await self._retry(self._store.set_status, room_id, status):
            if status == 'completed':
                await self._retry(self._store.set_session_end, room_id, now)
            await self._retry(self._store.release_slot, room_id)
            logger.info('Appointment %s marked %s after its window elapsed', room_id, status)
        else:
            current = await self._retry(self._store.find_by_room_id, room_id)
            if current is not None:
                status = current.status
            logger.info('Appointment %s was already %s when its window elapsed', room_id, status)

        if self._registry.size(room_id):
            await self._close_room(room_id, now)
        return status

    async def _close_room(self, room_id: str, ended_at: datetime) -> None:
        members = await self._registry.clear(room_id)
        frame = {
            'type': 'session-ended',
            'message': 'The session has ended',
            'roomId': room_id,
            'endTime': ended_at.isoformat(),
        }
        for member in members:
            await member.send(frame)
        for member in members:
            await member.close(code=CLOSE_NORMAL)

    async def _retry(self, operation, *args):
        for attempt in range(1, self._write_attempts + 1):
            try:
                return await operation(*args)
            except StoreUnavailable:
                if attempt == self._write_attempts:
                    raise
                logger.warning('%s failed (attempt %d/%d); retrying', operation.__name__, attempt, self._write_attempts)
                await asyncio.sleep(self._retry_delay * attempt)

    async def _unseat(self, connection: Connection) -> None:
        await self._registry.remove(connection)
        if connection.is_joined:
            connection.mark_unjoined()
