import logging

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from carebook.auth import jwt_handler
from carebook.auth.dependencies import get_current_user
from carebook.auth.passwords import hash_password, verify_password
from carebook.core import config
from carebook.core.errors import AuthError
from carebook.core.responses import ApiResponse, envelope
from carebook.database import database_guard, get_db
from carebook.models.user import PATIENT_ROLE, User
from carebook.routes.user_routes import UserResponse, ensure_email_available, normalize_email, normalize_name

logger = logging.getLogger(__name__)

router = APIRouter(tags=['auth'])

# bcrypt only considers the first 72 bytes.
MAX_PASSWORD_LENGTH = 72


class RegisterRequest(BaseModel):
    first_name: str
    last_name: str
    email: str
    password: str

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
        if len(value.encode('utf-8')) > MAX_PASSWORD_LENGTH:
            raise ValueError(f'Password must be at most {MAX_PASSWORD_LENGTH} bytes long')
        return value


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return value.strip().lower()


class AuthResponse(BaseModel):
    id: str
    email: str
    role: str
    first_name: str
    last_name: str
    token: str


def build_auth_response(user: User) -> AuthResponse:
    return AuthResponse(
        id=user.id,
        email=user.email,
        role=user.role,
        first_name=user.first_name,
        last_name=user.last_name,
        token=jwt_handler.create_user_token(user),
    )


@router.post('/register', response_model=ApiResponse[AuthResponse], status_code=status.HTTP_201_CREATED)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    with database_guard(db, 'registering user', conflict='Email already in use'):
        ensure_email_available(db, data.email)

        user = User(
            first_name=data.first_name,
            last_name=data.last_name,
            email=data.email,
            hashed_password=hash_password(data.password),
            role=PATIENT_ROLE,
        )
        db.add(user)
        db.commit()
        db.refresh(user)

    logger.info('Registered patient %s', user.id)
    return envelope(build_auth_response(user))


@router.post('/login', response_model=ApiResponse[AuthResponse])
def login(data: LoginRequest, db: Session = Depends(get_db)):
    with database_guard(db, 'logging in'):
        user = db.query(User).filter(User.email == data.email).first()

    if user is None or not verify_password(data.password, user.hashed_password):
        raise AuthError('Invalid email or password')

    return envelope(build_auth_response(user))


@router.get('/me', response_model=ApiResponse[UserResponse])
def me(current_user: User = Depends(get_current_user)):
    return envelope(UserResponse.model_validate(current_user))
