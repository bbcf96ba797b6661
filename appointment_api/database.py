import logging
from threading import Lock

from fastapi import HTTPException, Request, status
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from appointment_api.core import config


Base = declarative_base()

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL.'

INDEX_STATEMENTS = [
    'CREATE INDEX IF NOT EXISTS idx_bookings_status_expires ON bookings(status, expires_at)',
    'CREATE INDEX IF NOT EXISTS idx_bookings_patient_created ON bookings(patient_id, created_at)',
    'CREATE INDEX IF NOT EXISTS idx_slots_doctor_start ON slots(doctor_id, start_time)',
    'CREATE INDEX IF NOT EXISTS idx_slots_available_start ON slots(is_available, start_time)',
]


class DatabaseConnection:
    """Owns the engine and session factory for one database.

    ``initialize`` must complete before the first query; it is safe to call
    repeatedly and from several threads.
    """

    def __init__(self, url: str, **engine_options) -> None:
        if url.startswith('sqlite'):
            engine_options.setdefault('connect_args', {'check_same_thread': False})
        self.url = url
        self.engine = create_engine(url, **engine_options)
        self._session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
        )
        self._lock = Lock()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return

            # Registers every table on Base.metadata.
            from appointment_api.models import booking, doctor, slot, user  # noqa: F401

            Base.metadata.create_all(bind=self.engine)
            with self.engine.begin() as connection:
                for statement in INDEX_STATEMENTS:
                    connection.execute(text(statement))

            self._initialized = True
            logger.info('Database initialized (%s)', self.engine.url.render_as_string(hide_password=True))

    def session(self) -> Session:
        return self._session_factory()

    def dispose(self) -> None:
        self.engine.dispose()
        self._initialized = False


def create_database() -> DatabaseConnection:
    return DatabaseConnection(config.DATABASE_URL, echo=config.DATABASE_ECHO)


def get_database(request: Request) -> DatabaseConnection:
    return request.app.state.database


def ensure_database_ready(database: DatabaseConnection) -> None:
    # Serverless runtimes may skip the lifespan hook, so initialize lazily.
    try:
        database.initialize()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def get_db(request: Request):
    database = get_database(request)
    ensure_database_ready(database)
    db = database.session()
    try:
        yield db
    finally:
        db.close()


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )
