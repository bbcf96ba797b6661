from datetime import timedelta

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from appointment_api.core import config
from appointment_api.core.clock import utc_now
from appointment_api.jobs.booking_expiry import expire_pending_bookings
from appointment_api.models.booking import CANCELLED, CONFIRMED, EXPIRED, PENDING, Booking
from appointment_api.models.slot import Slot
from appointment_api.models.user import ADMIN_ROLE, DOCTOR_ROLE
from appointment_api.routes.booking_routes import (
    CreateBookingRequest,
    cancel_booking,
    confirm_booking,
    create_booking,
    get_booking,
    list_my_bookings,
)


@pytest.fixture
def patient(factory):
    return factory.user()


@pytest.fixture
def slot(factory):
    doctor = factory.doctor()
    return factory.slot(doctor.id)


def test_create_booking_request_normalizes_notes() -> None:
    request = CreateBookingRequest(slot_id=1, notes='   ')

    assert request.notes is None


def test_create_booking_request_rejects_long_notes() -> None:
    with pytest.raises(ValidationError):
        CreateBookingRequest(slot_id=1, notes='x' * 601)


def test_create_booking_holds_slot_with_pending_status(db, patient, slot) -> None:
    before = utc_now()

    booking = create_booking(CreateBookingRequest(slot_id=slot.id, notes='Follow-up'), current_user=patient, db=db)

    assert booking.status == PENDING
    assert booking.patient_id == patient.id
    assert booking.notes == 'Follow-up'
    assert booking.expires_at - booking.created_at == timedelta(minutes=config.BOOKING_HOLD_MINUTES)
    assert booking.created_at >= before.replace(microsecond=0)
    db.expire_all()
    assert db.query(Slot).filter(Slot.id == slot.id).one().is_available is False


def test_create_booking_rejects_taken_slot(db, factory, patient, slot) -> None:
    create_booking(CreateBookingRequest(slot_id=slot.id), current_user=patient, db=db)
    other_patient = factory.user(email='other@example.com')

    with pytest.raises(HTTPException) as exception_info:
        create_booking(CreateBookingRequest(slot_id=slot.id), current_user=other_patient, db=db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'This slot is already booked.'
    assert db.query(Booking).count() == 1


def test_create_booking_rejects_non_patient(db, factory, slot) -> None:
    doctor_user = factory.user(email='doc@example.com', role=DOCTOR_ROLE)

    with pytest.raises(HTTPException) as exception_info:
        create_booking(CreateBookingRequest(slot_id=slot.id), current_user=doctor_user, db=db)

    assert exception_info.value.status_code == 403


def test_create_booking_rejects_missing_and_started_slots(db, factory, patient) -> None:
    doctor = factory.doctor()
    started = factory.slot(doctor.id, start_time=utc_now() - timedelta(minutes=5))

    with pytest.raises(HTTPException) as missing:
        create_booking(CreateBookingRequest(slot_id=999), current_user=patient, db=db)
    with pytest.raises(HTTPException) as past:
        create_booking(CreateBookingRequest(slot_id=started.id), current_user=patient, db=db)

    assert missing.value.status_code == 404
    assert past.value.status_code == 400
    assert past.value.detail == 'This slot has already started.'


def test_confirm_booking_within_hold(db, patient, slot) -> None:
    booking = create_booking(CreateBookingRequest(slot_id=slot.id), current_user=patient, db=db)

    confirmed = confirm_booking(booking_id=booking.id, current_user=patient, db=db)

    assert confirmed.status == CONFIRMED
    assert confirmed.confirmed_at is not None


def test_confirm_booking_after_hold_lapsed_is_rejected(db, factory, patient, slot) -> None:
    booking = factory.booking(slot, patient.id, created_at=utc_now() - timedelta(hours=1))

    with pytest.raises(HTTPException) as exception_info:
        confirm_booking(booking_id=booking.id, current_user=patient, db=db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'The hold on this booking has lapsed.'


def test_confirm_booking_rejects_expired_booking(database, db, factory, patient, slot) -> None:
    booking = factory.booking(slot, patient.id, created_at=utc_now() - timedelta(hours=1))
    expire_pending_bookings(database)

    with pytest.raises(HTTPException) as exception_info:
        confirm_booking(booking_id=booking.id, current_user=patient, db=db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == f'Booking is already {EXPIRED}.'


def test_confirm_booking_rejects_other_patient(db, factory, patient, slot) -> None:
    booking = create_booking(CreateBookingRequest(slot_id=slot.id), current_user=patient, db=db)
    stranger = factory.user(email='stranger@example.com')

    with pytest.raises(HTTPException) as exception_info:
        confirm_booking(booking_id=booking.id, current_user=stranger, db=db)

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Only the patient who made this booking can confirm it.'


def test_cancel_confirmed_booking_releases_slot(db, patient, slot) -> None:
    booking = create_booking(CreateBookingRequest(slot_id=slot.id), current_user=patient, db=db)
    confirm_booking(booking_id=booking.id, current_user=patient, db=db)

    cancelled = cancel_booking(booking_id=booking.id, current_user=patient, db=db)

    assert cancelled.status == CANCELLED
    assert cancelled.cancelled_at is not None
    db.expire_all()
    assert db.query(Slot).filter(Slot.id == slot.id).one().is_available is True


def test_cancel_twice_is_rejected(db, factory, patient, slot) -> None:
    admin = factory.user(email='admin@example.com', role=ADMIN_ROLE)
    booking = create_booking(CreateBookingRequest(slot_id=slot.id), current_user=patient, db=db)
    cancel_booking(booking_id=booking.id, current_user=admin, db=db)

    with pytest.raises(HTTPException) as exception_info:
        cancel_booking(booking_id=booking.id, current_user=patient, db=db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == f'Booking is already {CANCELLED}.'


def test_expired_slot_can_be_booked_again(database, db, factory, patient, slot) -> None:
    factory.booking(slot, patient.id, created_at=utc_now() - timedelta(hours=1))
    expire_pending_bookings(database)
    db.expire_all()
    other_patient = factory.user(email='next@example.com')

    booking = create_booking(CreateBookingRequest(slot_id=slot.id), current_user=other_patient, db=db)

    assert booking.status == PENDING


def test_list_my_bookings_only_returns_callers_bookings(db, factory, patient) -> None:
    doctor = factory.doctor()
    first = factory.slot(doctor.id, start_time=utc_now() + timedelta(days=1))
    second = factory.slot(doctor.id, start_time=utc_now() + timedelta(days=2))
    other_patient = factory.user(email='other@example.com')
    create_booking(CreateBookingRequest(slot_id=first.id), current_user=patient, db=db)
    create_booking(CreateBookingRequest(slot_id=second.id), current_user=other_patient, db=db)

    bookings = list_my_bookings(current_user=patient, db=db)

    assert [booking.slot_id for booking in bookings] == [first.id]


def test_get_booking_allows_slot_doctor_and_rejects_strangers(db, factory, patient) -> None:
    doctor_user = factory.user(email='doc@example.com', role=DOCTOR_ROLE)
    doctor = factory.doctor(user_id=doctor_user.id)
    slot = factory.slot(doctor.id)
    booking = create_booking(CreateBookingRequest(slot_id=slot.id), current_user=patient, db=db)
    stranger = factory.user(email='stranger@example.com')

    assert get_booking(booking_id=booking.id, current_user=doctor_user, db=db).id == booking.id
    with pytest.raises(HTTPException) as exception_info:
        get_booking(booking_id=booking.id, current_user=stranger, db=db)

    assert exception_info.value.status_code == 403
