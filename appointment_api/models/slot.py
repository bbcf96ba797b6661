"""Slot model definitions."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer

from appointment_api.database import Base


class Slot(Base):
    """A doctor's bookable time unit.

    ``is_available`` is cleared when a booking reserves the slot and set again
    when that booking expires or is cancelled.
    """
    __tablename__ = "slots"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
