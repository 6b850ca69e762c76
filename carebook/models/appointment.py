"""Appointment model definitions."""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, String, Text, Time, func, text
from sqlalchemy.orm import relationship
from carebook.database import Base
from carebook.models.doctor import Doctor
from carebook.models.user import User, generate_id

PENDING = 'pending'
CONFIRMED = 'confirmed'
COMPLETED = 'completed'
CANCELLED = 'cancelled'
APPOINTMENT_STATUSES = (PENDING, CONFIRMED, COMPLETED, CANCELLED)

_ACTIVE_SLOT = text("status != 'cancelled'")


class Appointment(Base):
    """Represents a booked (or requested) appointment slot."""
    __tablename__ = "appointments"
    __table_args__ = (
        # At most one non-cancelled appointment per doctor, date and start time.
        Index(
            'uq_appointments_active_slot',
            'doctor_id',
            'date',
            'start_time',
            unique=True,
            sqlite_where=_ACTIVE_SLOT,
            postgresql_where=_ACTIVE_SLOT,
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    doctor_id = Column(String(36), ForeignKey("doctors.id", ondelete="CASCADE"), index=True, nullable=False)
    patient_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(String, nullable=False, default=PENDING)
    notes = Column(Text)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    doctor = relationship(Doctor)
    patient = relationship(User)

    @property
    def doctor_name(self) -> str | None:
        if self.doctor is None or self.doctor.user is None:
            return None
        return self.doctor.user.full_name

    @property
    def patient_name(self) -> str | None:
        return self.patient.full_name if self.patient else None
