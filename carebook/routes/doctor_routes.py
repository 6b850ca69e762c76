import logging
from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from carebook.auth.dependencies import require_roles
from carebook.auth.passwords import hash_password
from carebook.core import config
from carebook.core.errors import ConflictError, InternalError, NotFoundError, ValidationError
from carebook.core.responses import ApiResponse, MessageResponse, envelope
from carebook.database import DATABASE_UNAVAILABLE, database_guard, get_db
from carebook.models.category import Category
from carebook.models.doctor import Doctor
from carebook.models.user import ADMIN_ROLE, DOCTOR_ROLE, User
from carebook.routes.user_routes import delete_user_records, ensure_email_available, normalize_email, normalize_name

logger = logging.getLogger(__name__)

router = APIRouter(tags=['doctors'])

MAX_BIO_LENGTH = 500


class CreateDoctorRequest(BaseModel):
    first_name: str
    last_name: str
    email: str
    password: str
    category_id: str
    specialization: str
    experience: int = Field(ge=0)
    bio: str | None = Field(default=None, max_length=MAX_BIO_LENGTH)
    avatar: str | None = None

    @field_validator('first_name', 'last_name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        return normalize_name(value)

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        if len(value) < config.MIN_PASSWORD_LENGTH:
            raise ValueError(f'Password must be at least {config.MIN_PASSWORD_LENGTH} characters long')
        return value

    @field_validator('specialization')
    @classmethod
    def validate_specialization(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Specialization is required.')
        return normalized


class UpdateDoctorRequest(BaseModel):
    category_id: str | None = None
    specialization: str | None = None
    experience: int | None = Field(default=None, ge=0)
    bio: str | None = Field(default=None, max_length=MAX_BIO_LENGTH)
    avatar: str | None = None


class DoctorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    category_id: str
    specialization: str
    experience: int
    bio: str | None = None
    avatar: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    category_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


def get_doctor_or_404(db: Session, doctor_id: str) -> Doctor:
    doctor = db.query(Doctor).filter(Doctor.id == doctor_id).first()
    if doctor is None:
        raise NotFoundError('Doctor not found')
    return doctor


def ensure_category_exists(db: Session, category_id: str) -> None:
    if db.query(Category.id).filter(Category.id == category_id).first() is None:
        raise NotFoundError('Category not found')


@router.get('', response_model=ApiResponse[list[DoctorResponse]])
def list_doctors(db: Session = Depends(get_db)):
    with database_guard(db, 'listing doctors'):
        doctors = db.query(Doctor).order_by(Doctor.created_at.asc()).all()
        return envelope([DoctorResponse.model_validate(doctor) for doctor in doctors])


@router.get('/category/{category_id}', response_model=ApiResponse[list[DoctorResponse]])
def list_doctors_by_category(category_id: str, db: Session = Depends(get_db)):
    with database_guard(db, 'listing doctors by category'):
        doctors = db.query(Doctor).filter(Doctor.category_id == category_id).all()
        return envelope([DoctorResponse.model_validate(doctor) for doctor in doctors])


@router.get('/{doctor_id}', response_model=ApiResponse[DoctorResponse])
def get_doctor(doctor_id: str, db: Session = Depends(get_db)):
    return envelope(DoctorResponse.model_validate(get_doctor_or_404(db, doctor_id)))


@router.post('', response_model=ApiResponse[DoctorResponse], status_code=status.HTTP_201_CREATED)
def create_doctor(
    data: CreateDoctorRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ADMIN_ROLE)),
):
    # User and doctor rows are written in a single transaction.
    try:
        ensure_email_available(db, data.email)
        ensure_category_exists(db, data.category_id)

        user = User(
            first_name=data.first_name,
            last_name=data.last_name,
            email=data.email,
            hashed_password=hash_password(data.password),
            role=DOCTOR_ROLE,
        )
        db.add(user)
        db.flush()

        doctor = Doctor(
            user_id=user.id,
            category_id=data.category_id,
            specialization=data.specialization,
            experience=data.experience,
            bio=data.bio or None,
            avatar=data.avatar or None,
        )
        db.add(doctor)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError('Email already in use') from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to create doctor')
        raise InternalError(DATABASE_UNAVAILABLE) from exc
    except Exception:
        db.rollback()
        raise

    logger.info('Created doctor %s for user %s', doctor.id, user.id)
    return envelope(DoctorResponse.model_validate(get_doctor_or_404(db, doctor.id)))


@router.put('/{doctor_id}', response_model=ApiResponse[DoctorResponse])
def update_doctor(
    doctor_id: str,
    data: UpdateDoctorRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ADMIN_ROLE)),
):
    changes = data.model_dump(exclude_none=True)
    if not changes:
        raise ValidationError('At least one field must be provided.')

    with database_guard(db, 'updating doctor'):
        doctor = get_doctor_or_404(db, doctor_id)
        if 'category_id' in changes:
            ensure_category_exists(db, changes['category_id'])
        for field_name, value in changes.items():
            setattr(doctor, field_name, value)
        db.commit()
        db.refresh(doctor)
        return envelope(DoctorResponse.model_validate(doctor))


@router.delete('/{doctor_id}', response_model=MessageResponse)
def delete_doctor(
    doctor_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ADMIN_ROLE)),
):
    doctor = get_doctor_or_404(db, doctor_id)
    user_id = doctor.user_id

    with database_guard(db, 'deleting doctor'):
        delete_user_records(db, user_id)
        db.commit()

    logger.info('Deleted doctor %s and user %s', doctor_id, user_id)
    return MessageResponse(message='Doctor deleted successfully')
