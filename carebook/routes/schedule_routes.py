import logging
from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, model_validator
from sqlalchemy.orm import Session

from carebook.auth.dependencies import require_roles
from carebook.core import config
from carebook.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from carebook.core.responses import ApiResponse, MessageResponse, envelope
from carebook.database import database_guard, ensure_database_ready, get_db
from carebook.models.appointment import CANCELLED, Appointment
from carebook.models.doctor import Doctor
from carebook.models.schedule import Schedule
from carebook.models.user import ADMIN_ROLE, DOCTOR_ROLE, User
from carebook.routes.doctor_routes import get_doctor_or_404
from carebook.scheduling.availability import ClockTime, DaySchedule, compute_day_schedules

logger = logging.getLogger(__name__)

router = APIRouter(tags=['schedules'])

DUPLICATE_SCHEDULE = 'Schedule already exists for this time slot'
MAX_SLOT_RANGE_DAYS = 31


class CreateScheduleRequest(BaseModel):
    doctor_id: str | None = None
    day: date
    start_time: ClockTime
    end_time: ClockTime
    is_available: bool = True

    @model_validator(mode='after')
    def validate_time_order(self):
        if self.start_time >= self.end_time:
            raise ValueError('Start time must be before end time.')
        return self


class UpdateScheduleRequest(BaseModel):
    is_available: bool


class ScheduleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    doctor_id: str
    day: date
    start_time: ClockTime
    end_time: ClockTime
    is_available: bool
    doctor_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


def resolve_doctor_for_user(db: Session, user: User) -> Doctor | None:
    if user.role != DOCTOR_ROLE:
        return None
    doctor = db.query(Doctor).filter(Doctor.user_id == user.id).first()
    if doctor is None:
        raise NotFoundError('Doctor not found')
    return doctor


def get_schedule_for_editor(db: Session, schedule_id: str, user: User) -> Schedule:
    schedule = db.query(Schedule).filter(Schedule.id == schedule_id).first()
    if schedule is None:
        raise NotFoundError('Schedule not found')

    own_doctor = resolve_doctor_for_user(db, user)
    if own_doctor is not None and schedule.doctor_id != own_doctor.id:
        raise ForbiddenError('Access denied. You can only manage your own schedule.')
    return schedule


def load_available_windows(db: Session, doctor_id: str) -> list[Schedule]:
    # Ordered so that first-window-wins picks the earliest window of a day.
    return (
        db.query(Schedule)
        .filter(Schedule.doctor_id == doctor_id, Schedule.is_available.is_(True))
        .order_by(Schedule.day.asc(), Schedule.start_time.asc())
        .all()
    )


@router.get('', response_model=ApiResponse[list[ScheduleResponse]])
def list_schedules(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ADMIN_ROLE)),
):
    ensure_database_ready()

    with database_guard(db, 'listing schedules'):
        schedules = db.query(Schedule).order_by(Schedule.day.asc(), Schedule.start_time.asc()).all()
        return envelope([ScheduleResponse.model_validate(schedule) for schedule in schedules])


@router.get('/doctor/{doctor_id}', response_model=ApiResponse[list[ScheduleResponse]])
def list_doctor_schedule(doctor_id: str, db: Session = Depends(get_db)):
    ensure_database_ready()
    get_doctor_or_404(db, doctor_id)

    with database_guard(db, 'listing doctor schedule'):
        schedules = (
            db.query(Schedule)
            .filter(Schedule.doctor_id == doctor_id)
            .order_by(Schedule.day.asc(), Schedule.start_time.asc())
            .all()
        )
        return envelope([ScheduleResponse.model_validate(schedule) for schedule in schedules])


@router.get('/doctor/{doctor_id}/available', response_model=ApiResponse[list[ScheduleResponse]])
def list_available_windows(doctor_id: str, db: Session = Depends(get_db)):
    ensure_database_ready()
    get_doctor_or_404(db, doctor_id)

    with database_guard(db, 'listing available windows'):
        windows = load_available_windows(db, doctor_id)
        return envelope([ScheduleResponse.model_validate(window) for window in windows])


@router.get('/doctor/{doctor_id}/slots', response_model=ApiResponse[list[DaySchedule]])
def list_day_schedules(
    doctor_id: str,
    start: date | None = Query(default=None),
    days: int = Query(default=config.SLOT_RANGE_DAYS, ge=1, le=MAX_SLOT_RANGE_DAYS),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    get_doctor_or_404(db, doctor_id)

    range_start = start or date.today()
    with database_guard(db, 'computing day schedules'):
        windows = load_available_windows(db, doctor_id)
        appointments = (
            db.query(Appointment)
            .filter(Appointment.doctor_id == doctor_id, Appointment.status != CANCELLED)
            .all()
        )

    return envelope(compute_day_schedules(doctor_id, windows, appointments, range_start, days))


@router.post('', response_model=ApiResponse[ScheduleResponse], status_code=status.HTTP_201_CREATED)
def create_schedule(
    data: CreateScheduleRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ADMIN_ROLE, DOCTOR_ROLE)),
):
    ensure_database_ready()

    own_doctor = resolve_doctor_for_user(db, current_user)
    if own_doctor is not None:
        if data.doctor_id is not None and data.doctor_id != own_doctor.id:
            raise ForbiddenError('Access denied. You can only manage your own schedule.')
        doctor_id = own_doctor.id
    else:
        if data.doctor_id is None:
            raise ValidationError('doctor_id is required.')
        doctor_id = get_doctor_or_404(db, data.doctor_id).id

    with database_guard(db, 'creating schedule', conflict=DUPLICATE_SCHEDULE):
        existing = db.query(Schedule.id).filter(
            Schedule.doctor_id == doctor_id,
            Schedule.day == data.day,
            Schedule.start_time == data.start_time,
        ).first()
        if existing is not None:
            raise ConflictError(DUPLICATE_SCHEDULE)

        schedule = Schedule(
            doctor_id=doctor_id,
            day=data.day,
            start_time=data.start_time,
            end_time=data.end_time,
            is_available=data.is_available,
        )
        db.add(schedule)
        db.commit()
        db.refresh(schedule)

        logger.info('Created schedule window %s for doctor %s on %s', schedule.id, doctor_id, data.day)
        return envelope(ScheduleResponse.model_validate(schedule))


@router.put('/{schedule_id}', response_model=ApiResponse[ScheduleResponse])
def update_schedule(
    schedule_id: str,
    data: UpdateScheduleRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ADMIN_ROLE, DOCTOR_ROLE)),
):
    ensure_database_ready()

    with database_guard(db, 'updating schedule'):
        schedule = get_schedule_for_editor(db, schedule_id, current_user)
        schedule.is_available = data.is_available
        db.commit()
        db.refresh(schedule)
        return envelope(ScheduleResponse.model_validate(schedule))


@router.delete('/{schedule_id}', response_model=MessageResponse)
def delete_schedule(
    schedule_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ADMIN_ROLE, DOCTOR_ROLE)),
):
    ensure_database_ready()

    with database_guard(db, 'deleting schedule'):
        schedule = get_schedule_for_editor(db, schedule_id, current_user)
        db.delete(schedule)
        db.commit()
    return MessageResponse(message='Schedule deleted successfully')
