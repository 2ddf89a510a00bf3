import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from telehealth.core import config
from telehealth.signaling.errors import (
    InvalidSchedule,
    RoomNotFound,
    SessionClosed,
    TooEarly,
    TooLate,
    Unauthorized,
)
from telehealth.signaling.schedule import window_bounds
from telehealth.signaling.store import AppointmentRecord, AppointmentStore

logger = logging.getLogger(__name__)

PATIENT_ROLE = 'patient'
DOCTOR_ROLE = 'doctor'


@dataclass(frozen=True)
class Authorization:
    appointment: AppointmentRecord
    role: str


def session_window(appointment: AppointmentRecord, window_minutes: int) -> tuple[datetime, datetime]:
    try:
        return window_bounds(appointment.appointment_date, appointment.time_slot, window_minutes)
    except ValueError as exc:
        raise InvalidSchedule() from exc


class AuthorizationGate:
    """Decides whether an identity may enter an appointment's room right now.

    Read-only: it never writes to the store or the registry, so both parties
    may call it concurrently and repeatedly.
    """

    def __init__(
        self,
        store: AppointmentStore,
        clock: Callable[[], datetime] = datetime.now,
        window_minutes: int = config.SESSION_WINDOW_MINUTES,
    ):
        self._store = store
        self._clock = clock
        self._window_minutes = window_minutes

    async def authorize(self, room_id: str, claimed_user_id: str) -> Authorization:
        appointment = await self._store.find_by_room_id(room_id)
        if appointment is None:
            raise RoomNotFound()

        if claimed_user_id == appointment.patient_id:
            role = PATIENT_ROLE
        elif claimed_user_id == appointment.doctor_id:
            role = DOCTOR_ROLE
        else:
            logger.info('Rejected user %s for room %s: not a party to the appointment', claimed_user_id, room_id)
            raise Unauthorized()

        if appointment.status != 'scheduled':
            raise SessionClosed(f'This appointment is {appointment.status}.')

        window_start, window_end = session_window(appointment, self._window_minutes)
        now = self._clock()
        if now < window_start:
            raise TooEarly(f'The consultation opens at {window_start.isoformat(timespec="minutes")}.')
        if now > window_end:
            raise TooLate(f'The consultation window closed at {window_end.isoformat(timespec="minutes")}.')

        return Authorization(appointment=appointment, role=role)
