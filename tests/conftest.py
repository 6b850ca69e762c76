import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('JWT_SECRET_KEY', 'test-secret')
os.environ.setdefault('BCRYPT_ROUNDS', '4')

from carebook.auth.passwords import hash_password  # noqa: E402
from carebook.database import Base  # noqa: E402
from carebook.models.appointment import Appointment  # noqa: E402,F401
from carebook.models.category import Category  # noqa: E402
from carebook.models.doctor import Doctor  # noqa: E402
from carebook.models.schedule import Schedule  # noqa: E402
from carebook.models.user import ADMIN_ROLE, DOCTOR_ROLE, PATIENT_ROLE, User  # noqa: E402


@pytest.fixture
def db_engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(db_engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('carebook.routes.appointment_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr('carebook.routes.schedule_routes.ensure_database_ready', lambda: None)


@pytest.fixture
def make_user(db):
    def _make_user(
        email: str = 'patient@example.com',
        role: str = PATIENT_ROLE,
        password: str = 'password123',
        first_name: str = 'Pat',
        last_name: str = 'Patient',
    ) -> User:
        user = User(
            first_name=first_name,
            last_name=last_name,
            email=email,
            hashed_password=hash_password(password),
            role=role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_doctor(db, make_user):
    def _make_doctor(email: str = 'doctor@example.com', category_name: str = 'Cardiology') -> Doctor:
        category = db.query(Category).filter(Category.name == category_name).first()
        if category is None:
            category = Category(name=category_name, description=f'{category_name} department')
            db.add(category)
            db.commit()

        user = make_user(email=email, role=DOCTOR_ROLE, first_name='Dana', last_name='Doctor')
        doctor = Doctor(user_id=user.id, category_id=category.id, specialization='Heart health', experience=7)
        db.add(doctor)
        db.commit()
        db.refresh(doctor)
        return doctor

    return _make_doctor


@pytest.fixture
def make_window(db):
    def _make_window(doctor: Doctor, day, start_time, end_time, is_available: bool = True) -> Schedule:
        window = Schedule(
            doctor_id=doctor.id,
            day=day,
            start_time=start_time,
            end_time=end_time,
            is_available=is_available,
        )
        db.add(window)
        db.commit()
        db.refresh(window)
        return window

    return _make_window


@pytest.fixture
def patient(make_user) -> User:
    return make_user()


@pytest.fixture
def admin(make_user) -> User:
    return make_user(email='admin@example.com', role=ADMIN_ROLE, first_name='Ada', last_name='Admin')


@pytest.fixture
def doctor(make_doctor) -> Doctor:
    return make_doctor()
