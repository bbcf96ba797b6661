"""Doctor model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String

from appointment_api.database import Base


class Doctor(Base):
    """A doctor who offers bookable slots."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=True)
    name = Column(String, nullable=False)
    specialization = Column(String, nullable=False, index=True)
    bio = Column(String)
