import os
from datetime import timedelta

import pytest

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('APP_ENV', 'test')

from appointment_api.auth.passwords import hash_password  # noqa: E402
from appointment_api.core.clock import utc_now  # noqa: E402
from appointment_api.database import DatabaseConnection  # noqa: E402
from appointment_api.models.booking import PENDING, Booking  # noqa: E402
from appointment_api.models.doctor import Doctor  # noqa: E402
from appointment_api.models.slot import Slot  # noqa: E402
from appointment_api.models.user import PATIENT_ROLE, User  # noqa: E402


class Factory:
    def __init__(self, db) -> None:
        self.db = db

    def _save(self, instance):
        self.db.add(instance)
        self.db.commit()
        self.db.refresh(instance)
        return instance

    def user(self, email='patient@example.com', role=PATIENT_ROLE, password='correct-horse', name='Pat Ient') -> User:
        return self._save(User(email=email, name=name, role=role, hashed_password=hash_password(password)))

    def doctor(self, name='Dr. House', specialization='Diagnostics', user_id=None) -> Doctor:
        return self._save(Doctor(name=name, specialization=specialization, user_id=user_id))

    def slot(self, doctor_id, start_time=None, minutes=30, is_available=True) -> Slot:
        start_time = start_time or utc_now().replace(second=0, microsecond=0) + timedelta(days=1)
        return self._save(
            Slot(
                doctor_id=doctor_id,
                start_time=start_time,
                end_time=start_time + timedelta(minutes=minutes),
                is_available=is_available,
            )
        )

    def booking(self, slot, patient_id, created_at, hold_minutes=15, status=PENDING) -> Booking:
        if status == PENDING:
            slot.is_available = False
        return self._save(
            Booking(
                slot_id=slot.id,
                patient_id=patient_id,
                status=status,
                created_at=created_at,
                expires_at=created_at + timedelta(minutes=hold_minutes),
            )
        )


@pytest.fixture
def database(tmp_path):
    connection = DatabaseConnection(f'sqlite:///{tmp_path / "appointments.db"}')
    connection.initialize()
    try:
        yield connection
    finally:
        connection.dispose()


@pytest.fixture
def db(database):
    session = database.session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def factory(db):
    return Factory(db)
