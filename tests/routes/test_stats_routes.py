from datetime import date, datetime, time, timedelta

from carebook.models.appointment import Appointment
from carebook.routes.stats_routes import (
    AdminStats,
    compute_admin_stats,
    compute_doctor_stats,
    compute_patient_stats,
)

TODAY = date(2024, 6, 10)
TOMORROW = date(2024, 6, 11)
YESTERDAY = date(2024, 6, 9)


def add_appointment(db, doctor, patient, day, start, status) -> Appointment:
    appointment = Appointment(
        doctor_id=doctor.id,
        patient_id=patient.id,
        date=day,
        start_time=start,
        end_time=(datetime.combine(day, start) + timedelta(minutes=30)).time(),
        status=status,
    )
    db.add(appointment)
    db.commit()
    return appointment


def seed(db, doctor, patient, other_patient) -> None:
    add_appointment(db, doctor, patient, TODAY, time(9, 0), 'pending')
    add_appointment(db, doctor, patient, TODAY, time(9, 30), 'confirmed')
    add_appointment(db, doctor, other_patient, TODAY, time(10, 0), 'cancelled')
    add_appointment(db, doctor, patient, YESTERDAY, time(9, 0), 'completed')
    add_appointment(db, doctor, patient, TOMORROW, time(11, 0), 'confirmed')
    add_appointment(db, doctor, other_patient, YESTERDAY, time(10, 0), 'confirmed')


def test_admin_stats(db, doctor, patient, admin, make_user) -> None:
    seed(db, doctor, patient, make_user(email='other@example.com'))

    stats = compute_admin_stats(db, TODAY)

    assert stats == AdminStats(
        total_patients=2,
        total_doctors=1,
        total_appointments=6,
        pending_appointments=1,
        completed_appointments=1,
        today_appointments=2,
    )


def test_doctor_stats_only_count_own_appointments(db, doctor, patient, make_doctor, make_user) -> None:
    seed(db, doctor, patient, make_user(email='other@example.com'))
    other_doctor = make_doctor(email='other.doctor@example.com')
    add_appointment(db, other_doctor, patient, TODAY, time(14, 0), 'pending')

    stats = compute_doctor_stats(db, doctor.id, TODAY)

    assert stats.total_appointments == 6
    assert stats.pending_appointments == 1
    assert stats.completed_appointments == 1
    assert stats.today_appointments == 2


def test_patient_stats_count_upcoming_confirmed_visits(db, doctor, patient, make_user) -> None:
    seed(db, doctor, patient, make_user(email='other@example.com'))

    stats = compute_patient_stats(db, patient.id, TODAY)

    assert stats.total_appointments == 4
    assert stats.pending_appointments == 1
    assert stats.completed_appointments == 1
    assert stats.upcoming_appointments == 2


def test_stats_for_empty_database(db, doctor) -> None:
    stats = compute_doctor_stats(db, doctor.id, TODAY)

    assert stats.total_appointments == 0
    assert stats.today_appointments == 0


def test_stats_serialize_with_camel_case_keys() -> None:
    payload = AdminStats(total_patients=3).model_dump(by_alias=True)

    assert payload['totalPatients'] == 3
    assert 'todayAppointments' in payload
