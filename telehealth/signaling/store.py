"""Appointment storage as seen by the consultation coordinator.

The coordinator only reads appointments and performs a handful of
single-row, conditional writes on them. Each write is safe to repeat: a
retried write after an unacknowledged success changes nothing.
"""

import logging
from datetime import date, datetime
from typing import Protocol

from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from telehealth.database import SessionLocal
from telehealth.models.appointment import APPOINTMENT_STATUSES, Appointment
from telehealth.models.availability import Availability
from telehealth.signaling.errors import StoreUnavailable
from telehealth.signaling.schedule import split_slot_label, weekday_name

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = set(APPOINTMENT_STATUSES) - {'scheduled'}


class AppointmentRecord(BaseModel):
    room_id: str
    patient_id: str
    doctor_id: str
    appointment_date: date
    time_slot: str
    status: str
    session_start: datetime | None = None
    session_end: datetime | None = None

    class Config:
        from_attributes = True
        frozen = True


class AppointmentStore(Protocol):
    async def find_by_room_id(self, room_id: str) -> AppointmentRecord | None: ...

    async def set_status(self, room_id: str, status: str) -> bool: ...

    async def set_session_start(self, room_id: str, started_at: datetime) -> bool: ...

    async def set_session_end(self, room_id: str, ended_at: datetime) -> bool: ...

    async def release_slot(self, room_id: str) -> bool: ...

    async def list_scheduled(self, on_or_before: date) -> list[AppointmentRecord]: ...


class SqlAppointmentStore:
    """`AppointmentStore` backed by the SQLAlchemy models.

    ORM calls are blocking, so every operation runs in the threadpool and
    ``SQLAlchemyError`` is reported as the retryable ``StoreUnavailable``.
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    async def _run(self, operation, *args):
        return await run_in_threadpool(self._execute, operation, *args)

    def _execute(self, operation, *args):
        db: Session = self._session_factory()
        try:
            return operation(db, *args)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning('Appointment store operation %s failed: %s', operation.__name__, exc)
            raise StoreUnavailable() from exc
        finally:
            db.close()

    async def find_by_room_id(self, room_id: str) -> AppointmentRecord | None:
        return await self._run(_find_by_room_id, room_id)

    async def set_status(self, room_id: str, status: str) -> bool:
        if status not in TERMINAL_STATUSES:
            raise ValueError(f'Appointments cannot be moved back to {status!r}.')
        return await self._run(_set_status, room_id, status)

    async def set_session_start(self, room_id: str, started_at: datetime) -> bool:
        return await self._run(_set_timestamp, room_id, Appointment.session_start, started_at)

    async def set_session_end(self, room_id: str, ended_at: datetime) -> bool:
        return await self._run(_set_timestamp, room_id, Appointment.session_end, ended_at)

    async def release_slot(self, room_id: str) -> bool:
        return await self._run(_release_slot, room_id)

    async def list_scheduled(self, on_or_before: date) -> list[AppointmentRecord]:
        return await self._run(_list_scheduled, on_or_before)


def _find_by_room_id(db: Session, room_id: str) -> AppointmentRecord | None:
    appointment = db.query(Appointment).filter(Appointment.room_id == room_id).first()
    if appointment is None:
        return None
    return AppointmentRecord.model_validate(appointment)


def _set_status(db: Session, room_id: str, status: str) -> bool:
    updated = db.query(Appointment).filter(
        Appointment.room_id == room_id,
        Appointment.status == 'scheduled',
    ).update({Appointment.status: status}, synchronize_session=False)
    db.commit()
    return updated > 0


def _set_timestamp(db: Session, room_id: str, column, value: datetime) -> bool:
    updated = db.query(Appointment).filter(
        Appointment.room_id == room_id,
        column.is_(None),
    ).update({column: value}, synchronize_session=False)
    db.commit()
    return updated > 0


def _release_slot(db: Session, room_id: str) -> bool:
    appointment = db.query(Appointment).filter(Appointment.room_id == room_id).first()
    if appointment is None:
        return False
    released = release_appointment_slot(db, appointment)
    db.commit()
    return released


def release_appointment_slot(db: Session, appointment: Appointment) -> bool:
    """Mark the doctor slot an appointment was booked into as free again. Does not commit."""
    day, clock_label = split_slot_label(appointment.time_slot)
    updated = db.query(Availability).filter(
        Availability.doctor_id == appointment.doctor_id,
        Availability.day == (day or weekday_name(appointment.appointment_date)),
        Availability.time == clock_label,
        Availability.is_booked.is_(True),
    ).update({Availability.is_booked: False}, synchronize_session=False)
    return updated > 0


def _list_scheduled(db: Session, on_or_before: date) -> list[AppointmentRecord]:
    appointments = db.query(Appointment).filter(
        Appointment.status == 'scheduled',
        Appointment.appointment_date <= on_or_before,
    ).order_by(Appointment.appointment_date.asc()).all()
    return [AppointmentRecord.model_validate(appointment) for appointment in appointments]
