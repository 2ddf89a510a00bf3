import uuid
from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telehealth.auth.dependencies import get_current_user
from telehealth.database import SessionLocal, ensure_availability_schema, ensure_appointment_schema
from telehealth.models.appointment import Appointment
from telehealth.models.availability import Availability
from telehealth.models.user import User
from telehealth.signaling.schedule import WEEKDAYS, format_slot_label, parse_clock_time, weekday_name
from telehealth.signaling.store import release_appointment_slot

router = APIRouter(tags=['availability'])

CONSULTATION_TYPES = ('Video Consultation', 'Audio Call', 'In-Person')
DEFAULT_REASON = 'General consultation'
MAX_APPOINTMENT_NOTES_LENGTH = 600
DATABASE_UNAVAILABLE = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def normalize_clock_label(value: str) -> str:
    try:
        return parse_clock_time(value).strftime('%I:%M %p')
    except ValueError as exc:
        raise ValueError('Time must look like "10:00 AM" or "14:30".') from exc


class CreateSlotRequest(BaseModel):
    day: str
    time: str

    @field_validator('day')
    @classmethod
    def validate_day(cls, value: str) -> str:
        normalized = value.strip().capitalize()
        if normalized not in WEEKDAYS:
            raise ValueError('Day must be a weekday name such as "Monday".')
        return normalized

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return normalize_clock_label(value)


class SlotResponse(BaseModel):
    id: int
    doctor_id: str
    day: str
    time: str
    is_booked: bool

    class Config:
        from_attributes = True


class CreateAppointmentRequest(BaseModel):
    doctor_id: str
    date: date
    time: str
    reason: str | None = None
    consultation_type: str = 'Video Consultation'
    notes: str | None = None

    @field_validator('doctor_id')
    @classmethod
    def validate_doctor_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Doctor is required.')
        return normalized

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return normalize_clock_label(value)

    @field_validator('consultation_type')
    @classmethod
    def validate_consultation_type(cls, value: str) -> str:
        if value not in CONSULTATION_TYPES:
            raise ValueError('Invalid consultation type.')
        return value

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

        return normalized


class AppointmentResponse(BaseModel):
    room_id: str
    patient_id: str
    doctor_id: str
    appointment_date: date
    time_slot: str
    consultation_type: str | None = None
    reason: str | None = None
    status: str
    session_start: datetime | None = None
    session_end: datetime | None = None
    notes: str | None = None

    class Config:
        from_attributes = True


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def require_role(user: User, role: str, detail: str) -> None:
    if (user.role or '').strip().lower() != role:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def get_party_appointment(room_id: str, user: User, db: Session) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.room_id == room_id).first()
    if not appointment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Appointment not found.',
        )
    if user.id not in (appointment.patient_id, appointment.doctor_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only the patient or doctor on this appointment can access it.',
        )
    return appointment


@router.post('/slots', response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
def create_slot(
    data: CreateSlotRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, 'doctor', 'Only doctors can publish consultation slots.')
    ensure_database_ready()

    try:
        existing_slot = db.query(Availability).filter(
            Availability.doctor_id == current_user.id,
            Availability.day == data.day,
            Availability.time == data.time,
        ).first()
        if existing_slot:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='This slot already exists.',
            )

        slot = Availability(doctor_id=current_user.id, day=data.day, time=data.time, is_booked=False)
        db.add(slot)
        db.commit()
        db.refresh(slot)

        return slot
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.delete('/slots/{slot_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_slot(
    slot_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        slot = db.query(Availability).filter(
            Availability.id == slot_id,
            Availability.doctor_id == current_user.id,
        ).first()

        if not slot:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Slot not found.',
            )
        if slot.is_booked:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='Booked slots cannot be removed.',
            )

        db.delete(slot)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.get('/doctors/{doctor_id}/slots', response_model=list[SlotResponse])
def list_doctor_slots(doctor_id: str, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        slots = db.query(Availability).filter(
            Availability.doctor_id == doctor_id,
        ).all()
        day_order = {day: index for index, day in enumerate(WEEKDAYS)}
        return sorted(slots, key=lambda slot: (day_order.get(slot.day, len(WEEKDAYS)), parse_clock_time(slot.time)))
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.post('/appointments', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, 'patient', 'Only patients can book appointments.')
    ensure_database_ready()

    if data.date < date.today():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Appointments must be scheduled in the future.',
        )

    try:
        day = weekday_name(data.date)
        # Claim the slot with a conditional update so two bookings cannot both win it.
        claimed = db.query(Availability).filter(
            Availability.doctor_id == data.doctor_id,
            Availability.day == day,
            Availability.time == data.time,
            Availability.is_booked.is_(False),
        ).update({Availability.is_booked: True}, synchronize_session=False)
        if not claimed:
            db.rollback()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Selected time slot is unavailable.',
            )

        appointment = Appointment(
            room_id=uuid.uuid4().hex,
            patient_id=current_user.id,
            doctor_id=data.doctor_id,
            appointment_date=data.date,
            time_slot=format_slot_label(day, data.time),
            consultation_type=data.consultation_type,
            reason=data.reason or DEFAULT_REASON,
            notes=data.notes,
            status='scheduled',
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)

        return appointment
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_my_appointments(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return db.query(Appointment).filter(
            (Appointment.patient_id == current_user.id)
            | (Appointment.doctor_id == current_user.id)
        ).order_by(Appointment.appointment_date.asc()).all()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.get('/appointments/{room_id}', response_model=AppointmentResponse)
def get_appointment(
    room_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return get_party_appointment(room_id, current_user, db)
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.patch('/appointments/{room_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    room_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = get_party_appointment(room_id, current_user, db)
        if appointment.status != 'scheduled':
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Cannot cancel an appointment that is not scheduled.',
            )

        appointment.status = 'cancelled'
        release_appointment_slot(db, appointment)
        db.commit()
        db.refresh(appointment)

        return appointment
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc
