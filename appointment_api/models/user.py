"""User model definitions."""

from sqlalchemy import Column, DateTime, Integer, String

from appointment_api.core.clock import utc_now
from appointment_api.database import Base

PATIENT_ROLE = "patient"
DOCTOR_ROLE = "doctor"
ADMIN_ROLE = "admin"


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String, nullable=False, default=PATIENT_ROLE)  # patient/doctor/admin
    created_at = Column(DateTime, default=utc_now)
