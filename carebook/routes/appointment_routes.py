from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.orm import Session

from carebook.auth.dependencies import get_current_user, require_roles
from carebook.core import config
from carebook.core.errors import ForbiddenError, NotFoundError, ValidationError
from carebook.core.responses import ApiResponse, envelope
from carebook.database import database_guard, ensure_database_ready, get_db
from carebook.models.appointment import Appointment
from carebook.models.user import ADMIN_ROLE, DOCTOR_ROLE, PATIENT_ROLE, User
from carebook.routes.schedule_routes import resolve_doctor_for_user
from carebook.scheduling import booking
from carebook.scheduling.availability import ClockTime

router = APIRouter(tags=['appointments'])

MAX_APPOINTMENT_NOTES_LENGTH = 600


def normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')
    return normalized


class CreateAppointmentRequest(BaseModel):
    doctor_id: str
    date: date
    start_time: ClockTime
    end_time: ClockTime | None = None
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return normalize_notes(value) or None

    def resolved_end_time(self):
        if self.end_time is not None:
            return self.end_time
        start = datetime.combine(self.date, self.start_time)
        return (start + timedelta(minutes=config.SLOT_INTERVAL_MINUTES)).time()


class UpdateAppointmentRequest(BaseModel):
    status: str | None = None
    notes: str | None = Field(default=None)

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str | None) -> str | None:
        return None if value is None else value.strip().lower()

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return normalize_notes(value)


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    doctor_id: str
    patient_id: str
    date: date
    start_time: ClockTime
    end_time: ClockTime
    status: str
    notes: str | None = None
    doctor_name: str | None = None
    patient_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


def serialize_appointments(appointments: list[Appointment]) -> dict:
    return envelope([AppointmentResponse.model_validate(appointment) for appointment in appointments])


def ordered_appointments(db: Session):
    return db.query(Appointment).order_by(Appointment.date.asc(), Appointment.start_time.asc())


@router.get('', response_model=ApiResponse[list[AppointmentResponse]])
def list_appointments(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ADMIN_ROLE)),
):
    ensure_database_ready()

    with database_guard(db, 'listing appointments'):
        return serialize_appointments(ordered_appointments(db).all())


@router.get('/doctor', response_model=ApiResponse[list[AppointmentResponse]])
def list_my_doctor_appointments(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(DOCTOR_ROLE)),
):
    ensure_database_ready()
    doctor = resolve_doctor_for_user(db, current_user)

    with database_guard(db, 'listing doctor appointments'):
        return serialize_appointments(ordered_appointments(db).filter(Appointment.doctor_id == doctor.id).all())


@router.get('/patient', response_model=ApiResponse[list[AppointmentResponse]])
def list_my_patient_appointments(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_database_ready()

    with database_guard(db, 'listing patient appointments'):
        return serialize_appointments(ordered_appointments(db).filter(Appointment.patient_id == current_user.id).all())


@router.get('/doctor/{doctor_id}', response_model=ApiResponse[list[AppointmentResponse]])
def list_doctor_appointments(doctor_id: str, db: Session = Depends(get_db)):
    ensure_database_ready()

    with database_guard(db, 'listing appointments by doctor'):
        return serialize_appointments(ordered_appointments(db).filter(Appointment.doctor_id == doctor_id).all())


@router.post('', response_model=ApiResponse[AppointmentResponse], status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(PATIENT_ROLE)),
):
    ensure_database_ready()

    appointment = booking.create_appointment(
        db,
        doctor_id=data.doctor_id,
        patient_id=current_user.id,
        appointment_date=data.date,
        start_time=data.start_time,
        end_time=data.resolved_end_time(),
        notes=data.notes,
    )
    return envelope(AppointmentResponse.model_validate(appointment))


@router.put('/{appointment_id}', response_model=ApiResponse[AppointmentResponse])
def update_appointment(
    appointment_id: str,
    data: UpdateAppointmentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ADMIN_ROLE, DOCTOR_ROLE)),
):
    if data.status is None and data.notes is None:
        raise ValidationError('At least one field must be provided.')

    ensure_database_ready()

    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise NotFoundError('Appointment not found')
    if not booking.can_manage_appointment(db, appointment, current_user):
        raise ForbiddenError('Access denied. Only the assigned doctor or an admin can update this appointment.')

    updated = booking.update_appointment_status(db, appointment_id, data.status, notes=data.notes)
    return envelope(AppointmentResponse.model_validate(updated))


@router.delete('/{appointment_id}', response_model=ApiResponse[AppointmentResponse])
def cancel_appointment(
    appointment_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_database_ready()

    cancelled = booking.cancel_appointment(db, appointment_id, current_user)
    return envelope(AppointmentResponse.model_validate(cancelled))
