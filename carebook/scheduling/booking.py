"""Appointment booking and status transitions."""

import logging
from datetime import date, time

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from carebook.core.errors import (
    ConflictError,
    ForbiddenError,
    InternalError,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from carebook.database import DATABASE_UNAVAILABLE
from carebook.models.appointment import (
    APPOINTMENT_STATUSES,
    CANCELLED,
    COMPLETED,
    CONFIRMED,
    PENDING,
    Appointment,
)
from carebook.models.doctor import Doctor
from carebook.models.user import ADMIN_ROLE, DOCTOR_ROLE, User
from carebook.scheduling.availability import to_minute

logger = logging.getLogger(__name__)

SLOT_UNAVAILABLE = 'Time slot is not available'

ALLOWED_TRANSITIONS = {
    PENDING: frozenset({CONFIRMED, CANCELLED}),
    CONFIRMED: frozenset({COMPLETED, CANCELLED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
}


def can_transition(current_status: str, new_status: str) -> bool:
    return new_status in ALLOWED_TRANSITIONS.get(current_status, frozenset())


def find_active_appointment(db: Session, doctor_id: str, appointment_date: date, start_time: time) -> Appointment | None:
    return (
        db.query(Appointment)
        .filter(
            Appointment.doctor_id == doctor_id,
            Appointment.date == appointment_date,
            Appointment.start_time == start_time,
            Appointment.status != CANCELLED,
        )
        .with_for_update()
        .first()
    )


def create_appointment(
    db: Session,
    doctor_id: str,
    patient_id: str,
    appointment_date: date,
    start_time: time | str,
    end_time: time | str,
    notes: str | None = None,
) -> Appointment:
    """Book a slot for a patient.

    The existence check locks matching rows where the backend supports it, and
    the partial unique index on active slots rejects whichever concurrent
    insert loses the race; both paths end in ``ConflictError``.
    """
    start_time = to_minute(start_time)
    end_time = to_minute(end_time)
    if end_time <= start_time:
        raise ValidationError('End time must be after start time.')

    try:
        if db.query(Doctor.id).filter(Doctor.id == doctor_id).first() is None:
            raise NotFoundError('Doctor not found')

        if find_active_appointment(db, doctor_id, appointment_date, start_time) is not None:
            db.rollback()
            logger.info('Rejected booking for doctor %s on %s at %s: slot taken', doctor_id, appointment_date, start_time)
            raise ConflictError(SLOT_UNAVAILABLE)

        appointment = Appointment(
            doctor_id=doctor_id,
            patient_id=patient_id,
            date=appointment_date,
            start_time=start_time,
            end_time=end_time,
            notes=notes,
            status=PENDING,
        )
        db.add(appointment)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info('Rejected booking for doctor %s on %s at %s: lost insert race', doctor_id, appointment_date, start_time)
        raise ConflictError(SLOT_UNAVAILABLE) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to create appointment')
        raise InternalError(DATABASE_UNAVAILABLE) from exc

    created = db.query(Appointment).filter(Appointment.id == appointment.id).first()
    logger.info('Booked appointment %s for doctor %s on %s at %s', created.id, doctor_id, appointment_date, start_time)
    return created


def update_appointment_status(
    db: Session,
    appointment_id: str,
    new_status: str | None,
    notes: str | None = None,
) -> Appointment:
    if new_status is not None and new_status not in APPOINTMENT_STATUSES:
        raise ValidationError(f'Unknown appointment status: {new_status}.')

    try:
        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).with_for_update().first()
        if appointment is None:
            raise NotFoundError('Appointment not found')

        if new_status is not None and new_status != appointment.status:
            if not can_transition(appointment.status, new_status):
                db.rollback()
                logger.warning(
                    'Rejected transition %s -> %s for appointment %s',
                    appointment.status,
                    new_status,
                    appointment_id,
                )
                raise InvalidTransition(f'Cannot change appointment status from {appointment.status} to {new_status}.')
            appointment.status = new_status

        if notes is not None:
            appointment.notes = notes

        db.commit()
        db.refresh(appointment)
        return appointment
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to update appointment %s', appointment_id)
        raise InternalError(DATABASE_UNAVAILABLE) from exc


def can_manage_appointment(db: Session, appointment: Appointment, user: User) -> bool:
    if user.role == ADMIN_ROLE:
        return True
    if user.role == DOCTOR_ROLE:
        doctor = db.query(Doctor).filter(Doctor.user_id == user.id).first()
        return doctor is not None and doctor.id == appointment.doctor_id
    return False


def cancel_appointment(db: Session, appointment_id: str, user: User) -> Appointment:
    """Soft-cancel an appointment; the row stays for history and stats."""
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise NotFoundError('Appointment not found')

    if appointment.patient_id != user.id and not can_manage_appointment(db, appointment, user):
        raise ForbiddenError('Access denied. You can only cancel your own appointments.')

    return update_appointment_status(db, appointment_id, CANCELLED)
