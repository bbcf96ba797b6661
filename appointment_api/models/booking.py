"""Booking model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from appointment_api.core.clock import utc_now
from appointment_api.database import Base

PENDING = "pending"
CONFIRMED = "confirmed"
EXPIRED = "expired"
CANCELLED = "cancelled"

ACTIVE_STATUSES = (PENDING, CONFIRMED)


class Booking(Base):
    """A patient's reservation of a slot.

    Rows are never deleted; the status moves pending -> confirmed, expired
    or cancelled, and confirmed -> cancelled.
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True)
    slot_id = Column(Integer, ForeignKey("slots.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(String, nullable=False, default=PENDING)
    notes = Column(String)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    expires_at = Column(DateTime, nullable=False)
    confirmed_at = Column(DateTime)
    cancelled_at = Column(DateTime)
    expired_at = Column(DateTime)
