from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.orm import Session

from carebook.auth.dependencies import get_current_user, require_roles
from carebook.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from carebook.core.responses import ApiResponse, MessageResponse, envelope
from carebook.database import database_guard, get_db
from carebook.models.appointment import Appointment
from carebook.models.doctor import Doctor
from carebook.models.schedule import Schedule
from carebook.models.user import ADMIN_ROLE, User

router = APIRouter(tags=['users'])


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    first_name: str
    last_name: str
    email: str
    role: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


def normalize_email(value: str) -> str:
    normalized = value.strip().lower()
    if '@' not in normalized or normalized.startswith('@') or normalized.endswith('@'):
        raise ValueError('A valid email address is required.')
    return normalized


def normalize_name(value: str) -> str:
    normalized = value.strip()
    if not 2 <= len(normalized) <= 100:
        raise ValueError('Names must be between 2 and 100 characters.')
    return normalized


class UpdateUserRequest(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None

    @field_validator('first_name', 'last_name')
    @classmethod
    def validate_name(cls, value: str | None) -> str | None:
        return None if value is None else normalize_name(value)

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str | None) -> str | None:
        return None if value is None else normalize_email(value)


def ensure_admin_or_self(current_user: User, user_id: str) -> None:
    if current_user.role != ADMIN_ROLE and current_user.id != user_id:
        raise ForbiddenError('Access denied. You can only access your own resources.')


def ensure_email_available(db: Session, email: str, exclude_user_id: str | None = None) -> None:
    query = db.query(User.id).filter(User.email == email)
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    if query.first() is not None:
        raise ConflictError('Email already in use')


def apply_user_update(db: Session, user: User, data: UpdateUserRequest) -> User:
    changes = data.model_dump(exclude_none=True)
    if not changes:
        raise ValidationError('At least one field must be provided.')

    with database_guard(db, 'updating user', conflict='Email already in use'):
        if 'email' in changes:
            ensure_email_available(db, changes['email'], exclude_user_id=user.id)
        for field_name, value in changes.items():
            setattr(user, field_name, value)
        db.commit()
        db.refresh(user)
    return user


def delete_user_records(db: Session, user_id: str) -> None:
    """Delete a user together with its doctor profile, windows and appointments.

    Runs in the caller's transaction; dependents are removed explicitly since
    SQLite does not enforce ``ON DELETE CASCADE`` by default.
    """
    doctor_ids = [row.id for row in db.query(Doctor.id).filter(Doctor.user_id == user_id).all()]
    if doctor_ids:
        db.query(Appointment).filter(Appointment.doctor_id.in_(doctor_ids)).delete(synchronize_session=False)
        db.query(Schedule).filter(Schedule.doctor_id.in_(doctor_ids)).delete(synchronize_session=False)
        db.query(Doctor).filter(Doctor.id.in_(doctor_ids)).delete(synchronize_session=False)
    db.query(Appointment).filter(Appointment.patient_id == user_id).delete(synchronize_session=False)
    db.query(User).filter(User.id == user_id).delete(synchronize_session=False)


@router.get('', response_model=ApiResponse[list[UserResponse]])
def list_users(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ADMIN_ROLE)),
):
    with database_guard(db, 'listing users'):
        users = db.query(User).order_by(User.created_at.desc()).all()
    return envelope([UserResponse.model_validate(user) for user in users])


@router.get('/{user_id}', response_model=ApiResponse[UserResponse])
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_admin_or_self(current_user, user_id)
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError('User not found')
    return envelope(UserResponse.model_validate(user))


@router.put('/{user_id}', response_model=ApiResponse[UserResponse])
def update_user(
    user_id: str,
    data: UpdateUserRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_admin_or_self(current_user, user_id)
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError('User not found')
    return envelope(UserResponse.model_validate(apply_user_update(db, user, data)))


@router.delete('/{user_id}', response_model=MessageResponse)
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ADMIN_ROLE)),
):
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError('User not found')

    with database_guard(db, 'deleting user'):
        delete_user_records(db, user.id)
        db.commit()
    return MessageResponse(message='User deleted successfully')
