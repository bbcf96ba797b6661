from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from appointment_api.auth.dependencies import get_current_user
from appointment_api.core.clock import to_naive_utc, utc_now
from appointment_api.database import database_unavailable, get_db
from appointment_api.models.booking import Booking
from appointment_api.models.doctor import Doctor
from appointment_api.models.slot import Slot
from appointment_api.models.user import ADMIN_ROLE, DOCTOR_ROLE, User

router = APIRouter(tags=['slots'])

MAX_SLOT_DURATION_MINUTES = 240


class CreateSlotRequest(BaseModel):
    doctor_id: int
    start_time: datetime
    end_time: datetime

    @model_validator(mode='after')
    def validate_time_range(self) -> 'CreateSlotRequest':
        self.start_time = to_naive_utc(self.start_time).replace(second=0, microsecond=0)
        self.end_time = to_naive_utc(self.end_time).replace(second=0, microsecond=0)
        if self.end_time <= self.start_time:
            raise ValueError('Slot end time must be after its start time.')
        if self.end_time - self.start_time > timedelta(minutes=MAX_SLOT_DURATION_MINUTES):
            raise ValueError(f'Slots can be at most {MAX_SLOT_DURATION_MINUTES} minutes long.')
        return self


class SlotResponse(BaseModel):
    id: int
    doctor_id: int
    start_time: datetime
    end_time: datetime
    is_available: bool

    class Config:
        from_attributes = True


def ensure_can_manage_doctor(user: User, doctor: Doctor) -> None:
    if user.role == ADMIN_ROLE:
        return
    if user.role == DOCTOR_ROLE and doctor.user_id == user.id:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Only admins or the doctor can manage this doctor's slots.",
    )


@router.get('/', response_model=list[SlotResponse])
def list_available_slots(
    doctor_id: int | None = Query(default=None),
    day: date | None = Query(default=None, alias='date'),
    db: Session = Depends(get_db),
):
    try:
        query = db.query(Slot).filter(
            Slot.is_available.is_(True),
            Slot.start_time > utc_now(),
        )
        if doctor_id is not None:
            query = query.filter(Slot.doctor_id == doctor_id)
        if day is not None:
            day_start = datetime.combine(day, datetime.min.time())
            query = query.filter(
                Slot.start_time >= day_start,
                Slot.start_time < day_start + timedelta(days=1),
            )
        return query.order_by(Slot.start_time.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/', response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
def create_slot(
    data: CreateSlotRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if data.start_time <= utc_now():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Slots must start in the future.',
        )

    try:
        doctor = db.query(Doctor).filter(Doctor.id == data.doctor_id).first()
        if doctor is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Doctor not found.')

        ensure_can_manage_doctor(current_user, doctor)

        overlapping_slot = db.query(Slot).filter(
            Slot.doctor_id == data.doctor_id,
            Slot.start_time < data.end_time,
            Slot.end_time > data.start_time,
        ).first()
        if overlapping_slot:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='This slot overlaps an existing slot for the doctor.',
            )

        slot = Slot(
            doctor_id=data.doctor_id,
            start_time=data.start_time,
            end_time=data.end_time,
            is_available=True,
        )
        db.add(slot)
        db.commit()
        db.refresh(slot)
        return slot
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{slot_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_slot(
    slot_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        slot = db.query(Slot).filter(Slot.id == slot_id).first()
        if slot is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Slot not found.')

        doctor = db.query(Doctor).filter(Doctor.id == slot.doctor_id).first()
        ensure_can_manage_doctor(current_user, doctor)

        if db.query(Booking).filter(Booking.slot_id == slot_id).first():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='This slot has bookings and cannot be removed.',
            )

        db.delete(slot)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
