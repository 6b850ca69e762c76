import logging
from contextlib import contextmanager
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from carebook.core import config
from carebook.core.errors import ConflictError, InternalError

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def build_engine(url: str, **kwargs):
    if url.startswith('sqlite'):
        kwargs.setdefault('connect_args', {'check_same_thread': False})
    return create_engine(url, echo=config.DATABASE_ECHO, **kwargs)


engine = build_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_schedule_schema_checked = False
_appointment_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def database_guard(db: Session, action: str, conflict: str | None = None):
    """Roll back and surface an ``InternalError`` on any database failure.

    With ``conflict`` set, constraint violations become a ``ConflictError``
    carrying that message instead.
    """
    try:
        yield
    except IntegrityError as exc:
        db.rollback()
        if conflict is None:
            logger.exception('Integrity error while %s', action)
            raise InternalError(DATABASE_UNAVAILABLE) from exc
        logger.info('Constraint violation while %s: %s', action, conflict)
        raise ConflictError(conflict) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Database error while %s', action)
        raise InternalError(DATABASE_UNAVAILABLE) from exc


def ensure_schedule_schema() -> None:
    global _schedule_schema_checked

    if _schedule_schema_checked:
        return

    with _schema_lock:
        if _schedule_schema_checked:
            return

        inspector = inspect(engine)

        if 'schedules' not in inspector.get_table_names():
            _schedule_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('schedules')}
        migration_steps = [
            ('is_available', 'ALTER TABLE schedules ADD COLUMN is_available BOOLEAN DEFAULT TRUE'),
            ('updated_at', 'ALTER TABLE schedules ADD COLUMN updated_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    logger.info('Adding column schedules.%s', column_name)
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_schedules_doctor_day ON schedules(doctor_id, day)')
            )

        _schedule_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('notes', 'ALTER TABLE appointments ADD COLUMN notes VARCHAR'),
            ('updated_at', 'ALTER TABLE appointments ADD COLUMN updated_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    logger.info('Adding column appointments.%s', column_name)
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_patient_date ON appointments(patient_id, date)')
            )
            # Older tables predate the active-slot constraint.
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_slot '
                    "ON appointments(doctor_id, date, start_time) WHERE status != 'cancelled'"
                )
            )

        _appointment_schema_checked = True


def ensure_database_ready() -> None:
    try:
        ensure_schedule_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        logger.exception('Schema check failed')
        raise InternalError(DATABASE_UNAVAILABLE) from exc
