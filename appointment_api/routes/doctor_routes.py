from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from appointment_api.auth.dependencies import get_current_user, require_role
from appointment_api.database import database_unavailable, get_db
from appointment_api.models.doctor import Doctor
from appointment_api.models.user import ADMIN_ROLE, DOCTOR_ROLE, User

router = APIRouter(tags=['doctors'])

MAX_BIO_LENGTH = 1000


class CreateDoctorRequest(BaseModel):
    name: str
    specialization: str
    bio: str | None = None
    user_id: int | None = None

    @field_validator('name', 'specialization')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Field is required.')
        return normalized

    @field_validator('bio')
    @classmethod
    def validate_bio(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_BIO_LENGTH:
            raise ValueError(f'Bio must be {MAX_BIO_LENGTH} characters or fewer.')

        return normalized


class DoctorResponse(BaseModel):
    id: int
    name: str
    specialization: str
    bio: str | None = None
    user_id: int | None = None

    class Config:
        from_attributes = True


@router.get('/', response_model=list[DoctorResponse])
def list_doctors(
    specialization: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    try:
        query = db.query(Doctor)
        if specialization and specialization.strip():
            query = query.filter(func.lower(Doctor.specialization) == specialization.strip().lower())
        return query.order_by(Doctor.name.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{doctor_id}', response_model=DoctorResponse)
def get_doctor(doctor_id: int, db: Session = Depends(get_db)):
    try:
        doctor = db.query(Doctor).filter(Doctor.id == doctor_id).first()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    if doctor is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Doctor not found.')
    return doctor


@router.post('/', response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
def create_doctor(
    data: CreateDoctorRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ADMIN_ROLE, detail='Only admins can add doctors.')

    try:
        if data.user_id is not None:
            linked_user = db.query(User).filter(User.id == data.user_id).first()
            if linked_user is None or linked_user.role != DOCTOR_ROLE:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail='Linked user must exist and have the doctor role.',
                )
            if db.query(Doctor).filter(Doctor.user_id == data.user_id).first():
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail='This user already has a doctor profile.',
                )

        doctor = Doctor(
            name=data.name,
            specialization=data.specialization,
            bio=data.bio,
            user_id=data.user_id,
        )
        db.add(doctor)
        db.commit()
        db.refresh(doctor)
        return doctor
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
