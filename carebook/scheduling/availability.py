"""Slot availability computation.

Turns a doctor's per-date schedule windows plus the existing bookings into
discrete bookable start times. Everything here is a pure function of its
inputs so the same code backs the server endpoint and the API client.

Windows and appointments may be ORM rows, pydantic models or plain mappings
decoded from JSON; times may be ``time`` objects or ``HH:MM[:SS]`` strings.
"""

from datetime import date, datetime, time, timedelta
from typing import Annotated, Any, Iterable

from pydantic import AfterValidator, BaseModel, PlainSerializer

from carebook.core import config

CANCELLED_STATUS = 'cancelled'
CLOCK_FORMAT = '%H:%M'


class TimeSlot(BaseModel):
    time: str
    available: bool


class DaySchedule(BaseModel):
    date: date
    slots: list[TimeSlot]


def field_value(record: Any, name: str) -> Any:
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def to_time(value: time | str) -> time:
    if isinstance(value, datetime):
        return value.time()
    if isinstance(value, time):
        return value
    return time.fromisoformat(str(value).strip())


def to_minute(value: time | str) -> time:
    """Parse a clock value and drop anything finer than minutes."""
    parsed = to_time(value)
    return time(parsed.hour, parsed.minute)


def to_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    # Accepts full ISO timestamps as emitted by some JSON encoders.
    return date.fromisoformat(str(value).strip()[:10])


def format_clock(value: time) -> str:
    return value.strftime(CLOCK_FORMAT)


# 24-hour clock value exchanged as "HH:MM".
ClockTime = Annotated[time, AfterValidator(to_minute), PlainSerializer(format_clock, return_type=str)]


def iterate_slot_times(
    start_time: time | str,
    end_time: time | str,
    interval_minutes: int | None = None,
) -> list[time]:
    step = timedelta(minutes=interval_minutes or config.SLOT_INTERVAL_MINUTES)
    current = datetime.combine(date.min, to_minute(start_time))
    end = datetime.combine(date.min, to_minute(end_time))

    slot_times: list[time] = []
    while current < end:
        slot_times.append(current.time())
        current += step

    return slot_times


def same_doctor(record: Any, doctor_id: Any) -> bool:
    return str(field_value(record, 'doctor_id')) == str(doctor_id)


def booked_slot_keys(doctor_id: Any, appointments: Iterable[Any]) -> set[tuple[date, time]]:
    booked: set[tuple[date, time]] = set()
    for appointment in appointments:
        if not same_doctor(appointment, doctor_id):
            continue
        if field_value(appointment, 'status') == CANCELLED_STATUS:
            continue
        booked.add((to_date(field_value(appointment, 'date')), to_minute(field_value(appointment, 'start_time'))))
    return booked


def find_window(doctor_id: Any, schedule_windows: Iterable[Any], day: date) -> Any | None:
    """Return the first available window for ``day``; overlapping windows are not merged."""
    for window in schedule_windows:
        if not same_doctor(window, doctor_id):
            continue
        if not field_value(window, 'is_available'):
            continue
        if to_date(field_value(window, 'day')) == day:
            return window
    return None


def compute_day_schedules(
    doctor_id: Any,
    schedule_windows: Iterable[Any],
    existing_appointments: Iterable[Any],
    range_start_date: date | str,
    num_days: int | None = None,
) -> list[DaySchedule]:
    num_days = config.SLOT_RANGE_DAYS if num_days is None else num_days
    windows = list(schedule_windows)
    booked = booked_slot_keys(doctor_id, existing_appointments)
    first_day = to_date(range_start_date)

    day_schedules: list[DaySchedule] = []
    for offset in range(num_days):
        current_day = first_day + timedelta(days=offset)
        window = find_window(doctor_id, windows, current_day)
        if window is None:
            day_schedules.append(DaySchedule(date=current_day, slots=[]))
            continue

        slots = [
            TimeSlot(time=format_clock(slot_time), available=(current_day, slot_time) not in booked)
            for slot_time in iterate_slot_times(field_value(window, 'start_time'), field_value(window, 'end_time'))
        ]
        day_schedules.append(DaySchedule(date=current_day, slots=slots))

    return day_schedules
