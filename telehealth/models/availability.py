"""Availability model definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from telehealth.database import Base


class Availability(Base):
    """Represents a doctor's recurring weekly consultation slot."""
    __tablename__ = "availability"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(String, ForeignKey("users.id"), index=True)
    day = Column(String)  # weekday name, e.g. "Monday"
    time = Column(String)  # clock label, e.g. "10:00 AM"
    is_booked = Column(Boolean, default=False)
