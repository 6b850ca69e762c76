"""Schedule window model definitions."""

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, String, Time, func
from sqlalchemy.orm import relationship
from carebook.database import Base
from carebook.models.doctor import Doctor
from carebook.models.user import generate_id


class Schedule(Base):
    """One contiguous availability interval for a doctor on a calendar date."""
    __tablename__ = "schedules"
    __table_args__ = (
        CheckConstraint('start_time < end_time', name='ck_schedules_time_order'),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    doctor_id = Column(String(36), ForeignKey("doctors.id", ondelete="CASCADE"), index=True, nullable=False)
    day = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    doctor = relationship(Doctor)

    @property
    def doctor_name(self) -> str | None:
        if self.doctor is None or self.doctor.user is None:
            return None
        return self.doctor.user.full_name
