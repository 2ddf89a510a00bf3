"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String
from telehealth.database import Base

APPOINTMENT_STATUSES = ('scheduled', 'completed', 'cancelled', 'missed')


class Appointment(Base):
    """Represents a booked consultation and the room it is held in."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    room_id = Column(String, unique=True, index=True, nullable=False)
    patient_id = Column(String, ForeignKey("users.id"), nullable=False)
    doctor_id = Column(String, ForeignKey("users.id"), nullable=False)
    appointment_date = Column(Date, nullable=False)
    time_slot = Column(String, nullable=False)  # e.g. "Monday 10:00 AM"
    consultation_type = Column(String, default='Video Consultation')
    reason = Column(String, default='General consultation')
    status = Column(String, default='scheduled', nullable=False)
    session_start = Column(DateTime)
    session_end = Column(DateTime)
    notes = Column(String)
    created_at = Column(DateTime, default=datetime.now)
