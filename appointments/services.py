# appointments/services.py
"""
Booking entry points. Transitions on an existing appointment live on the
model (confirm, start, cancel, reschedule, complete, mark_no_show).
"""
import logging
from datetime import timedelta

from django.db import transaction

from core.exceptions import NotFoundError, data_access
from core.models import AuditLog, SystemSetting
from core.sequences import next_number
from core.utils import get_local_today
from patients.models import Patient
from services.models import Service

from .models import Appointment
from .scheduling import ensure_slot_available, lock_practitioner, validate_slot

logger = logging.getLogger(__name__)


def next_appointment_number(on=None):
    return next_number('appointment', 'A', on=on)


def get_appointment(appointment_id):
    try:
        with data_access('loading appointment'):
            return Appointment.objects.select_related('patient', 'dentist', 'service').get(pk=appointment_id)
    except Appointment.DoesNotExist:
        raise NotFoundError(f"Appointment {appointment_id} not found")


def get_appointment_by_number(appointment_number):
    try:
        with data_access('loading appointment'):
            return Appointment.objects.select_related('patient', 'dentist', 'service').get(
                appointment_number=appointment_number
            )
    except Appointment.DoesNotExist:
        raise NotFoundError(f"Appointment {appointment_number} not found")


def schedule_appointment(patient_id, dentist_id, appointment_date, start_time, duration_minutes=None,
                         service_id=None, appointment_type='consultation', chief_complaint='',
                         notes='', created_by=None):
    """
    Book a new appointment in the 'scheduled' state.

    Duration falls back to the service's default, then to the
    default_appointment_duration setting. The practitioner row stays locked
    from the conflict check until the insert commits.

    Raises:
        NotFoundError: patient, dentist or service does not exist
        BusinessValidationError: inactive patient/dentist, bad duration
        SchedulingConflictError: slot overlaps another booking
    """
    with transaction.atomic():
        try:
            patient = Patient.objects.get(pk=patient_id)
        except Patient.DoesNotExist:
            raise NotFoundError(f"Patient {patient_id} not found", field='patient_id')
        if not patient.is_active:
            raise NotFoundError(f"Patient {patient.patient_number} is not active", field='patient_id')

        service = None
        if service_id:
            try:
                service = Service.objects.get(pk=service_id)
            except Service.DoesNotExist:
                raise NotFoundError(f"Service {service_id} not found", field='service_id')

        if duration_minutes is None:
            if service:
                duration_minutes = service.duration_minutes
            else:
                duration_minutes = SystemSetting.get_int_setting('default_appointment_duration', 60)

        validate_slot(start_time, duration_minutes)
        dentist = lock_practitioner(dentist_id)
        ensure_slot_available(dentist.pk, appointment_date, start_time, duration_minutes)

        appointment = Appointment.objects.create(
            appointment_number=next_appointment_number(),
            patient=patient,
            dentist=dentist,
            service=service,
            appointment_date=appointment_date,
            start_time=start_time,
            duration_minutes=duration_minutes,
            appointment_type=appointment_type,
            chief_complaint=chief_complaint or '',
            notes=notes or '',
            created_by=created_by if created_by and created_by.is_authenticated else None,
        )

        logger.info(
            f"Appointment {appointment.appointment_number} scheduled for {patient.patient_number} "
            f"with {dentist.username} on {appointment.appointment_date} {appointment.time_display}"
        )
        AuditLog.log_action(
            user=created_by,
            action='create',
            model_instance=appointment,
            description=f"Scheduled for {appointment.appointment_date} {appointment.time_display}",
        )
    return appointment


def for_date(appointment_date, dentist_id=None):
    """All appointments on a date, in start-time order"""
    with data_access('listing appointments for date'):
        return list(
            Appointment.objects.select_related('patient', 'dentist', 'service')
            .filter(appointment_date=appointment_date)
            .for_dentist(dentist_id)
            .order_by('start_time')
        )


def upcoming(days=7, dentist_id=None):
    """Scheduled/confirmed appointments from today through `days` ahead"""
    today = get_local_today()
    with data_access('listing upcoming appointments'):
        return list(
            Appointment.objects.select_related('patient', 'dentist', 'service')
            .filter(
                appointment_date__gte=today,
                appointment_date__lte=today + timedelta(days=days),
                status__in=[Appointment.STATUS_SCHEDULED, Appointment.STATUS_CONFIRMED],
            )
            .for_dentist(dentist_id)
            .order_by('appointment_date', 'start_time')
        )
