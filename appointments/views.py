# appointments/views.py - JSON endpoints for scheduling
import logging

from django.http import JsonResponse

from core.api import api_view, get_date, get_int, get_time, require_fields
from core.exceptions import BusinessValidationError
from core.utils import get_local_today

from . import services
from .models import Appointment
from .scheduling import find_conflicts, validate_slot

logger = logging.getLogger(__name__)


def _appointment_response(appointment, message=None, status=200):
    body = {'success': True, 'appointment': appointment.as_dict()}
    if message:
        body['message'] = message
    return JsonResponse(body, status=status)


@api_view('appointments')
def appointment_list(request):
    """Filter by ?date= or ?date_from=/?date_to= (YYYY-MM-DD), ?patient_id=, ?dentist_id= and ?status="""
    params = request.GET
    appointments = Appointment.objects.select_related('patient', 'dentist', 'service')

    day = get_date(params, 'date', required=False)
    if day:
        appointments = appointments.filter(appointment_date=day)

    date_from = get_date(params, 'date_from', required=False)
    date_to = get_date(params, 'date_to', required=False)
    if date_from and date_to and date_from > date_to:
        raise BusinessValidationError('date_to cannot be before date_from', field='date_to')
    if date_from:
        appointments = appointments.filter(appointment_date__gte=date_from)
    if date_to:
        appointments = appointments.filter(appointment_date__lte=date_to)

    patient_id = get_int(params, 'patient_id', required=False)
    if patient_id:
        appointments = appointments.filter(patient_id=patient_id)

    appointments = appointments.for_dentist(get_int(params, 'dentist_id', required=False))

    status = params.get('status')
    if status:
        if status not in dict(Appointment.STATUS_CHOICES):
            raise BusinessValidationError(f"Unknown status '{status}'", field='status')
        appointments = appointments.filter(status=status)

    return JsonResponse({
        'success': True,
        'appointments': [appointment.as_dict() for appointment in appointments],
    })


@api_view('appointments', methods=('POST',))
def appointment_create(request):
    data = request.data
    require_fields(data, 'patient_id', 'dentist_id', 'appointment_date', 'start_time')

    appointment = services.schedule_appointment(
        patient_id=get_int(data, 'patient_id'),
        dentist_id=get_int(data, 'dentist_id'),
        appointment_date=get_date(data, 'appointment_date'),
        start_time=get_time(data, 'start_time'),
        duration_minutes=get_int(data, 'duration_minutes', required=False),
        service_id=get_int(data, 'service_id', required=False),
        appointment_type=data.get('appointment_type') or 'consultation',
        chief_complaint=data.get('chief_complaint', ''),
        notes=data.get('notes', ''),
        created_by=request.user,
    )
    return _appointment_response(appointment, 'Appointment scheduled', status=201)


@api_view('appointments')
def appointment_detail(request, pk):
    return _appointment_response(services.get_appointment(pk))


@api_view('appointments')
def appointment_by_number(request, number):
    return _appointment_response(services.get_appointment_by_number(number))


@api_view('appointments', methods=('POST',))
def appointment_confirm(request, pk):
    appointment = services.get_appointment(pk).confirm(performed_by=request.user)
    return _appointment_response(appointment, 'Appointment confirmed')


@api_view('appointments', methods=('POST',))
def appointment_start(request, pk):
    appointment = services.get_appointment(pk).start(performed_by=request.user)
    return _appointment_response(appointment, 'Appointment started')


@api_view('appointments', methods=('POST',))
def appointment_cancel(request, pk):
    appointment = services.get_appointment(pk).cancel(
        reason=request.data.get('reason'),
        performed_by=request.user,
    )
    return _appointment_response(appointment, 'Appointment cancelled')


@api_view('appointments', methods=('POST',))
def appointment_reschedule(request, pk):
    data = request.data
    appointment = services.get_appointment(pk).reschedule(
        new_date=get_date(data, 'appointment_date'),
        new_time=get_time(data, 'start_time'),
        new_dentist_id=get_int(data, 'dentist_id', required=False),
        reason=data.get('reason'),
        performed_by=request.user,
    )
    return _appointment_response(appointment, 'Appointment rescheduled')


@api_view('appointments', methods=('POST',))
def appointment_complete(request, pk):
    appointment = services.get_appointment(pk).complete(
        treatment_notes=request.data.get('treatment_notes'),
        performed_by=request.user,
    )
    return _appointment_response(appointment, 'Appointment completed')


@api_view('appointments', methods=('POST',))
def appointment_no_show(request, pk):
    appointment = services.get_appointment(pk).mark_no_show(
        notes=request.data.get('notes'),
        performed_by=request.user,
    )
    return _appointment_response(appointment, 'Appointment marked as no-show')


@api_view('appointments', methods=('POST',))
def check_availability(request):
    """Report whether a slot is free without booking it"""
    data = request.data
    require_fields(data, 'dentist_id', 'appointment_date', 'start_time', 'duration_minutes')
    start_time = get_time(data, 'start_time')
    duration_minutes = get_int(data, 'duration_minutes')
    validate_slot(start_time, duration_minutes)

    conflicts = find_conflicts(
        get_int(data, 'dentist_id'),
        get_date(data, 'appointment_date'),
        start_time,
        duration_minutes,
        exclude_appointment_id=get_int(data, 'exclude_appointment_id', required=False),
    )
    return JsonResponse({
        'success': True,
        'available': not conflicts,
        'conflicts': [appointment.as_dict() for appointment in conflicts],
    })


@api_view('appointments')
def upcoming_appointments(request):
    days = get_int(request.GET, 'days', required=False)
    if days is None:
        days = 7
    elif days < 0:
        raise BusinessValidationError('days cannot be negative', field='days')
    appointments = services.upcoming(days=days, dentist_id=get_int(request.GET, 'dentist_id', required=False))
    return JsonResponse({
        'success': True,
        'from': get_local_today().isoformat(),
        'appointments': [appointment.as_dict() for appointment in appointments],
    })
