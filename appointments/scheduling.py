# appointments/scheduling.py
"""
Conflict detection for practitioner calendars.

Intervals are half-open: an appointment occupies [start, start + duration),
so back-to-back bookings (09:00-10:00 then 10:00-10:30) never collide.
"""
import logging

from django.contrib.auth import get_user_model

from core.exceptions import BusinessValidationError, NotFoundError, SchedulingConflictError, data_access
from core.utils import MINUTES_PER_DAY, add_minutes, minutes_since_midnight

from .models import Appointment

logger = logging.getLogger(__name__)


def end_time_for(start_time, duration_minutes):
    return add_minutes(start_time, duration_minutes)


def intervals_overlap(start_a, duration_a, start_b, duration_b):
    """True when [start_a, start_a+duration_a) and [start_b, start_b+duration_b) intersect"""
    s_a = minutes_since_midnight(start_a)
    s_b = minutes_since_midnight(start_b)
    e_a = s_a + duration_a
    e_b = s_b + duration_b
    return s_a < e_b and s_b < e_a and duration_a > 0 and duration_b > 0


def validate_slot(start_time, duration_minutes):
    """Reject non-positive durations and bookings that run past midnight"""
    if duration_minutes is None or duration_minutes <= 0:
        raise BusinessValidationError('Duration must be greater than 0 minutes', field='duration_minutes')

    if minutes_since_midnight(start_time) + duration_minutes > MINUTES_PER_DAY:
        raise BusinessValidationError(
            'Appointment cannot extend past midnight',
            field='duration_minutes',
            details={
                'start_time': start_time.strftime('%H:%M'),
                'duration_minutes': duration_minutes,
            }
        )


def find_conflicts(dentist_id, appointment_date, start_time, duration_minutes, exclude_appointment_id=None):
    """
    Appointments of `dentist_id` on `appointment_date` that overlap the proposed slot.

    Cancelled and no-show appointments never block a slot.
    """
    with data_access('checking appointment conflicts'):
        candidates = Appointment.objects.blocking().filter(
            dentist_id=dentist_id,
            appointment_date=appointment_date,
        ).order_by('start_time')

        if exclude_appointment_id:
            candidates = candidates.exclude(pk=exclude_appointment_id)

        return [
            appointment for appointment in candidates
            if intervals_overlap(start_time, duration_minutes,
                                 appointment.start_time, appointment.duration_minutes)
        ]


def has_conflict(dentist_id, appointment_date, start_time, duration_minutes, exclude_appointment_id=None):
    return bool(find_conflicts(dentist_id, appointment_date, start_time, duration_minutes,
                               exclude_appointment_id=exclude_appointment_id))


def lock_practitioner(dentist_id, require_practice=True):
    """
    Lock and return the practitioner's user row.

    Holding this lock for the rest of the transaction serialises every
    booking for the practitioner, so check-then-insert cannot interleave.
    Must be called inside transaction.atomic().
    """
    User = get_user_model()
    try:
        dentist = User.objects.select_for_update().get(pk=dentist_id)
    except User.DoesNotExist:
        raise NotFoundError(f"Dentist {dentist_id} not found", field='dentist_id')

    if require_practice and not dentist.can_practice:
        raise BusinessValidationError(f"{dentist.full_name} cannot be booked for appointments",
                                      field='dentist_id')
    return dentist


def ensure_slot_available(dentist_id, appointment_date, start_time, duration_minutes, exclude_appointment_id=None):
    """Raise SchedulingConflictError when the slot overlaps another booking"""
    conflicts = find_conflicts(dentist_id, appointment_date, start_time, duration_minutes,
                               exclude_appointment_id=exclude_appointment_id)
    if conflicts:
        logger.info(
            f"Scheduling conflict for dentist {dentist_id} on {appointment_date} "
            f"{start_time.strftime('%H:%M')}: {[a.appointment_number for a in conflicts]}"
        )
        raise SchedulingConflictError(
            'The selected time overlaps an existing appointment',
            conflicts=conflicts,
        )
