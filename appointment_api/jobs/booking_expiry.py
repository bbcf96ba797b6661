"""Expire pending bookings whose hold window has lapsed.

Each booking is expired in its own transaction: a conditional update moves it
from pending to expired and, only when that update changed the row, the slot
is released. Concurrent or repeated runs therefore never expire a booking
twice or release its slot twice, and a run that dies halfway leaves the
remaining candidates for the next one.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from appointment_api.core import config
from appointment_api.core.clock import utc_now
from appointment_api.database import DatabaseConnection
from appointment_api.models.booking import EXPIRED, PENDING, Booking
from appointment_api.models.slot import Slot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpiryCandidate:
    booking_id: int
    slot_id: int


@dataclass
class ExpiryResult:
    expired: int = 0
    skipped: int = 0
    failed: int = 0


def find_expired_candidates(db: Session, now: datetime, limit: int) -> list[ExpiryCandidate]:
    rows = db.execute(
        select(Booking.id, Booking.slot_id)
        .where(Booking.status == PENDING, Booking.expires_at < now)
        .order_by(Booking.expires_at.asc())
        .limit(limit)
    ).all()
    return [ExpiryCandidate(booking_id=booking_id, slot_id=slot_id) for booking_id, slot_id in rows]


def expire_booking(database: DatabaseConnection, candidate: ExpiryCandidate, now: datetime) -> bool:
    """Expire one booking and release its slot.

    Returns False when the booking was no longer pending, i.e. another run,
    a confirmation or a cancellation got there first.
    """
    db = database.session()
    try:
        result = db.execute(
            update(Booking)
            .where(
                Booking.id == candidate.booking_id,
                Booking.status == PENDING,
                Booking.expires_at < now,
            )
            .values(status=EXPIRED, expired_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            return False

        db.execute(
            update(Slot)
            .where(Slot.id == candidate.slot_id)
            .values(is_available=True)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return True
    except SQLAlchemyError:
        db.rollback()
        raise
    finally:
        db.close()


def expire_pending_bookings(
    database: DatabaseConnection,
    now: datetime | None = None,
    batch_size: int | None = None,
) -> ExpiryResult:
    """Run one expiry pass.

    Raises when the candidate query itself fails; per-booking failures are
    logged and counted in the result instead.
    """
    now = now or utc_now()
    limit = config.BOOKING_EXPIRY_BATCH_SIZE if batch_size is None else batch_size
    if limit <= 0:
        raise ValueError('batch_size must be a positive number.')

    db = database.session()
    try:
        candidates = find_expired_candidates(db, now, limit)
    finally:
        db.close()

    result = ExpiryResult()
    for candidate in candidates:
        try:
            if expire_booking(database, candidate, now):
                result.expired += 1
            else:
                result.skipped += 1
        except SQLAlchemyError:
            result.failed += 1
            logger.exception('Failed to expire booking %s', candidate.booking_id)

    logger.info(
        'Booking expiry pass: %d candidates, %d expired, %d skipped, %d failed',
        len(candidates),
        result.expired,
        result.skipped,
        result.failed,
    )
    return result
