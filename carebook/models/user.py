"""User model definitions."""

import uuid

from sqlalchemy import Column, DateTime, String, func
from carebook.database import Base

ADMIN_ROLE = 'admin'
DOCTOR_ROLE = 'doctor'
PATIENT_ROLE = 'patient'
USER_ROLES = (ADMIN_ROLE, DOCTOR_ROLE, PATIENT_ROLE)


def generate_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String, nullable=False, default=PATIENT_ROLE)  # admin/doctor/patient
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    @property
    def full_name(self) -> str:
        return f'{self.first_name} {self.last_name}'
