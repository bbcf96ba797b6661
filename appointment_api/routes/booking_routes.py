from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from appointment_api.auth.dependencies import get_current_user, require_role
from appointment_api.core import config
from appointment_api.core.clock import utc_now
from appointment_api.database import database_unavailable, get_db
from appointment_api.models.booking import ACTIVE_STATUSES, CANCELLED, CONFIRMED, PENDING, Booking
from appointment_api.models.doctor import Doctor
from appointment_api.models.slot import Slot
from appointment_api.models.user import ADMIN_ROLE, PATIENT_ROLE, User

router = APIRouter(tags=['bookings'])

MAX_BOOKING_NOTES_LENGTH = 600


class CreateBookingRequest(BaseModel):
    slot_id: int
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_BOOKING_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_BOOKING_NOTES_LENGTH} characters or fewer.')

        return normalized


class BookingResponse(BaseModel):
    id: int
    slot_id: int
    patient_id: int
    status: str
    notes: str | None = None
    created_at: datetime
    expires_at: datetime
    confirmed_at: datetime | None = None
    cancelled_at: datetime | None = None
    expired_at: datetime | None = None

    class Config:
        from_attributes = True


def get_booking_or_404(booking_id: int, db: Session) -> Booking:
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if booking is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Booking not found.')
    return booking


def ensure_booking_owner(user: User, booking: Booking, action: str) -> None:
    if user.role == ADMIN_ROLE or booking.patient_id == user.id:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=f'Only the patient who made this booking can {action} it.',
    )


def is_slot_doctor(user: User, booking: Booking, db: Session) -> bool:
    doctor = (
        db.query(Doctor)
        .join(Slot, Slot.doctor_id == Doctor.id)
        .filter(Slot.id == booking.slot_id)
        .first()
    )
    return doctor is not None and doctor.user_id == user.id


@router.post('/', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: CreateBookingRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, PATIENT_ROLE, detail='Only patients can book appointments.')

    try:
        now = utc_now()
        slot = db.query(Slot).filter(Slot.id == data.slot_id).first()
        if slot is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Slot not found.')

        if slot.start_time <= now:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='This slot has already started.',
            )

        reserved = db.execute(
            update(Slot)
            .where(Slot.id == data.slot_id, Slot.is_available.is_(True))
            .values(is_available=False)
            .execution_options(synchronize_session=False)
        )
        if reserved.rowcount != 1:
            db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='This slot is already booked.',
            )

        booking = Booking(
            slot_id=data.slot_id,
            patient_id=current_user.id,
            status=PENDING,
            notes=data.notes,
            created_at=now,
            expires_at=now + timedelta(minutes=config.BOOKING_HOLD_MINUTES),
        )
        db.add(booking)
        db.commit()
        db.refresh(booking)
        return booking
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/me', response_model=list[BookingResponse])
def list_my_bookings(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return db.query(Booking).filter(
            Booking.patient_id == current_user.id,
        ).order_by(Booking.created_at.desc(), Booking.id.desc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{booking_id}', response_model=BookingResponse)
def get_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        booking = get_booking_or_404(booking_id, db)
        if current_user.role != ADMIN_ROLE and booking.patient_id != current_user.id:
            if not is_slot_doctor(current_user, booking, db):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail='You do not have access to this booking.',
                )
        return booking
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{booking_id}/confirm', response_model=BookingResponse)
def confirm_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        booking = get_booking_or_404(booking_id, db)
        ensure_booking_owner(current_user, booking, 'confirm')

        now = utc_now()
        confirmed = db.execute(
            update(Booking)
            .where(
                Booking.id == booking_id,
                Booking.status == PENDING,
                Booking.expires_at >= now,
            )
            .values(status=CONFIRMED, confirmed_at=now)
            .execution_options(synchronize_session=False)
        )
        if confirmed.rowcount != 1:
            db.rollback()
            db.refresh(booking)
            if booking.status == PENDING:
                detail = 'The hold on this booking has lapsed.'
            else:
                detail = f'Booking is already {booking.status}.'
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)

        db.commit()
        db.refresh(booking)
        return booking
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{booking_id}/cancel', response_model=BookingResponse)
def cancel_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        booking = get_booking_or_404(booking_id, db)
        ensure_booking_owner(current_user, booking, 'cancel')

        now = utc_now()
        cancelled = db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.status.in_(ACTIVE_STATUSES))
            .values(status=CANCELLED, cancelled_at=now)
            .execution_options(synchronize_session=False)
        )
        if cancelled.rowcount != 1:
            db.rollback()
            db.refresh(booking)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f'Booking is already {booking.status}.',
            )

        db.execute(
            update(Slot)
            .where(Slot.id == booking.slot_id)
            .values(is_available=True)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        db.refresh(booking)
        return booking
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
