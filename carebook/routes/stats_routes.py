from datetime import date

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import and_, case, func
from sqlalchemy.orm import Session

from carebook.auth.dependencies import require_roles
from carebook.core.responses import ApiResponse, envelope
from carebook.database import database_guard, get_db
from carebook.models.appointment import COMPLETED, CONFIRMED, PENDING, Appointment
from carebook.models.doctor import Doctor
from carebook.models.user import ADMIN_ROLE, DOCTOR_ROLE, PATIENT_ROLE, User
from carebook.routes.schedule_routes import resolve_doctor_for_user

admin_router = APIRouter(tags=['stats'])
doctor_router = APIRouter(tags=['stats'])
patient_router = APIRouter(tags=['stats'])


class StatsModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AppointmentStats(StatsModel):
    total_appointments: int = 0
    pending_appointments: int = 0
    completed_appointments: int = 0


class AdminStats(AppointmentStats):
    total_patients: int = 0
    total_doctors: int = 0
    today_appointments: int = 0


class DoctorStats(AppointmentStats):
    today_appointments: int = 0


class PatientStats(AppointmentStats):
    upcoming_appointments: int = 0


def count_when(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


def is_active_today(today: date):
    return and_(Appointment.date == today, Appointment.status.in_((PENDING, CONFIRMED)))


def compute_admin_stats(db: Session, today: date) -> AdminStats:
    total_patients = db.query(func.count(User.id)).filter(User.role == PATIENT_ROLE).scalar()
    total_doctors = db.query(func.count(Doctor.id)).scalar()
    row = db.query(
        func.count(Appointment.id),
        count_when(Appointment.status == PENDING),
        count_when(Appointment.status == COMPLETED),
        count_when(is_active_today(today)),
    ).one()

    return AdminStats(
        total_patients=total_patients or 0,
        total_doctors=total_doctors or 0,
        total_appointments=row[0] or 0,
        pending_appointments=row[1] or 0,
        completed_appointments=row[2] or 0,
        today_appointments=row[3] or 0,
    )


def compute_doctor_stats(db: Session, doctor_id: str, today: date) -> DoctorStats:
    row = db.query(
        func.count(Appointment.id),
        count_when(Appointment.status == PENDING),
        count_when(Appointment.status == COMPLETED),
        count_when(is_active_today(today)),
    ).filter(Appointment.doctor_id == doctor_id).one()

    return DoctorStats(
        total_appointments=row[0] or 0,
        pending_appointments=row[1] or 0,
        completed_appointments=row[2] or 0,
        today_appointments=row[3] or 0,
    )


def compute_patient_stats(db: Session, patient_id: str, today: date) -> PatientStats:
    row = db.query(
        func.count(Appointment.id),
        count_when(Appointment.status == PENDING),
        count_when(Appointment.status == COMPLETED),
        count_when(and_(Appointment.status == CONFIRMED, Appointment.date >= today)),
    ).filter(Appointment.patient_id == patient_id).one()

    return PatientStats(
        total_appointments=row[0] or 0,
        pending_appointments=row[1] or 0,
        completed_appointments=row[2] or 0,
        upcoming_appointments=row[3] or 0,
    )


@admin_router.get('/stats', response_model=ApiResponse[AdminStats])
def get_admin_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ADMIN_ROLE)),
):
    with database_guard(db, 'computing admin stats'):
        return envelope(compute_admin_stats(db, date.today()))


@doctor_router.get('/stats', response_model=ApiResponse[DoctorStats])
def get_doctor_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(DOCTOR_ROLE)),
):
    doctor = resolve_doctor_for_user(db, current_user)
    with database_guard(db, 'computing doctor stats'):
        return envelope(compute_doctor_stats(db, doctor.id, date.today()))


@patient_router.get('/stats', response_model=ApiResponse[PatientStats])
def get_patient_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(PATIENT_ROLE)),
):
    with database_guard(db, 'computing patient stats'):
        return envelope(compute_patient_stats(db, current_user.id, date.today()))
