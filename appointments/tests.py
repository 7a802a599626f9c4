# appointments/tests.py
"""
Tests for conflict detection, numbering and the appointment lifecycle
"""
import json
from datetime import date, time
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.test import TestCase
from django.urls import reverse

from core.exceptions import (
    BusinessValidationError,
    DataAccessError,
    InvalidTransitionError,
    NotFoundError,
    SchedulingConflictError,
)
from core.models import AuditLog, SystemSetting
from patients.models import Patient
from services.models import Service
from users.models import Role

from .models import Appointment
from .scheduling import find_conflicts, has_conflict, intervals_overlap, validate_slot
from .services import schedule_appointment, upcoming

User = get_user_model()

MARCH_1 = date(2025, 3, 1)


class SchedulingTestMixin:
    """Shared fixtures: one practitioner, one staff user, one patient"""

    def setUp(self):
        self.dentist_role = Role.objects.create(name=Role.DENTIST, display_name='Dentist', is_default=True)
        self.staff_role = Role.objects.create(name=Role.STAFF, display_name='Staff', is_default=True)
        self.dentist = User.objects.create_user(
            username='drsmith', password='pass12345', first_name='Anna', last_name='Smith',
            role=self.dentist_role, is_practitioner=True,
        )
        self.other_dentist = User.objects.create_user(
            username='drjones', password='pass12345', role=self.dentist_role, is_practitioner=True,
        )
        self.staff = User.objects.create_user(username='frontdesk', password='pass12345', role=self.staff_role)
        self.patient = Patient.objects.create(first_name='Maria', last_name='Garcia')

    def book(self, start, duration=60, day=MARCH_1, dentist=None, **kwargs):
        return schedule_appointment(
            patient_id=self.patient.pk,
            dentist_id=(dentist or self.dentist).pk,
            appointment_date=day,
            start_time=start,
            duration_minutes=duration,
            **kwargs
        )


class IntervalOverlapTest(TestCase):
    def test_partial_overlap(self):
        self.assertTrue(intervals_overlap(time(9, 0), 60, time(9, 30), 30))

    def test_touching_boundaries_do_not_overlap(self):
        self.assertFalse(intervals_overlap(time(9, 0), 60, time(10, 0), 30))
        self.assertFalse(intervals_overlap(time(10, 0), 30, time(9, 0), 60))

    def test_containment_overlaps(self):
        self.assertTrue(intervals_overlap(time(9, 0), 120, time(9, 30), 15))

    def test_zero_length_never_overlaps(self):
        self.assertFalse(intervals_overlap(time(9, 0), 60, time(9, 30), 0))

    def test_validate_slot_rejects_non_positive_duration(self):
        with self.assertRaises(BusinessValidationError) as ctx:
            validate_slot(time(9, 0), 0)
        self.assertEqual(ctx.exception.field, 'duration_minutes')

    def test_validate_slot_rejects_past_midnight(self):
        with self.assertRaises(BusinessValidationError) as ctx:
            validate_slot(time(23, 30), 60)
        self.assertEqual(ctx.exception.field, 'duration_minutes')

    def test_validate_slot_allows_ending_at_midnight(self):
        validate_slot(time(23, 0), 60)


class ConflictDetectionTest(SchedulingTestMixin, TestCase):
    """Practitioner has 09:00-10:00 on 2025-03-01"""

    def setUp(self):
        super().setUp()
        self.existing = self.book(time(9, 0), 60)

    def test_overlapping_request_conflicts(self):
        self.assertTrue(has_conflict(self.dentist.pk, MARCH_1, time(9, 30), 30))

    def test_touching_request_does_not_conflict(self):
        self.assertFalse(has_conflict(self.dentist.pk, MARCH_1, time(10, 0), 30))

    def test_other_date_does_not_conflict(self):
        self.assertFalse(has_conflict(self.dentist.pk, date(2025, 3, 2), time(9, 30), 30))

    def test_other_dentist_does_not_conflict(self):
        self.assertFalse(has_conflict(self.other_dentist.pk, MARCH_1, time(9, 30), 30))

    def test_excluded_appointment_is_ignored(self):
        self.assertFalse(has_conflict(self.dentist.pk, MARCH_1, time(9, 30), 30,
                                      exclude_appointment_id=self.existing.pk))

    def test_cancelled_and_no_show_do_not_block(self):
        self.existing.cancel()
        self.assertFalse(has_conflict(self.dentist.pk, MARCH_1, time(9, 0), 60))

        later = self.book(time(11, 0), 30)
        later.mark_no_show()
        self.assertFalse(has_conflict(self.dentist.pk, MARCH_1, time(11, 0), 30))

    def test_find_conflicts_returns_appointments(self):
        conflicts = find_conflicts(self.dentist.pk, MARCH_1, time(8, 30), 60)
        self.assertEqual([a.pk for a in conflicts], [self.existing.pk])

    def test_store_failure_becomes_data_access_error(self):
        with patch.object(Appointment.objects, 'blocking', side_effect=DatabaseError('connection lost')):
            with self.assertRaises(DataAccessError) as ctx:
                find_conflicts(self.dentist.pk, MARCH_1, time(9, 0), 30)
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertNotIn('connection lost', ctx.exception.message)


class ScheduleAppointmentTest(SchedulingTestMixin, TestCase):
    def test_schedule_creates_scheduled_appointment(self):
        appointment = self.book(time(9, 0), 45, chief_complaint='Toothache', created_by=self.staff)

        self.assertEqual(appointment.status, Appointment.STATUS_SCHEDULED)
        self.assertEqual(appointment.end_time, time(9, 45))
        self.assertEqual(appointment.created_by, self.staff)
        self.assertTrue(appointment.appointment_number.startswith('A'))
        self.assertTrue(AuditLog.objects.filter(action='create', model_name='appointment',
                                                object_id=appointment.pk).exists())

    def test_conflicting_booking_is_rejected_and_not_inserted(self):
        first = self.book(time(9, 0), 60)

        with self.assertRaises(SchedulingConflictError) as ctx:
            self.book(time(9, 30), 30)

        error = ctx.exception
        self.assertEqual(error.status_code, 409)
        self.assertEqual(error.code, 'APPOINTMENT_CONFLICT')
        conflicting = error.details['conflicting_appointments']
        self.assertEqual(conflicting[0]['appointment_number'], first.appointment_number)
        self.assertEqual(conflicting[0]['end_time'], '10:00')
        self.assertEqual(Appointment.objects.count(), 1)

    def test_back_to_back_bookings_are_allowed(self):
        self.book(time(9, 0), 60)
        self.book(time(10, 0), 30)
        self.assertEqual(Appointment.objects.count(), 2)

    def test_no_overlap_among_blocking_appointments(self):
        for start, duration in [(time(8, 0), 30), (time(8, 15), 30), (time(8, 30), 60),
                                (time(9, 0), 15), (time(9, 30), 45), (time(10, 15), 15)]:
            try:
                self.book(start, duration)
            except SchedulingConflictError:
                pass

        booked = list(Appointment.objects.blocking().filter(dentist=self.dentist, appointment_date=MARCH_1))
        for i, a in enumerate(booked):
            for b in booked[i + 1:]:
                self.assertFalse(intervals_overlap(a.start_time, a.duration_minutes,
                                                   b.start_time, b.duration_minutes))

    def test_past_midnight_is_rejected(self):
        with self.assertRaises(BusinessValidationError):
            self.book(time(23, 30), 60)
        self.assertFalse(Appointment.objects.exists())

    def test_missing_patient_raises_not_found(self):
        with self.assertRaises(NotFoundError) as ctx:
            schedule_appointment(patient_id=99999, dentist_id=self.dentist.pk,
                                 appointment_date=MARCH_1, start_time=time(9, 0), duration_minutes=30)
        self.assertEqual(ctx.exception.field, 'patient_id')

    def test_inactive_patient_raises_not_found(self):
        self.patient.is_active = False
        self.patient.save()
        with self.assertRaises(NotFoundError):
            self.book(time(9, 0), 30)

    def test_missing_dentist_raises_not_found(self):
        with self.assertRaises(NotFoundError) as ctx:
            schedule_appointment(patient_id=self.patient.pk, dentist_id=99999,
                                 appointment_date=MARCH_1, start_time=time(9, 0), duration_minutes=30)
        self.assertEqual(ctx.exception.field, 'dentist_id')

    def test_non_practitioner_cannot_be_booked(self):
        with self.assertRaises(BusinessValidationError) as ctx:
            self.book(time(9, 0), 30, dentist=self.staff)
        self.assertEqual(ctx.exception.field, 'dentist_id')

    def test_duration_defaults_to_service_then_setting(self):
        service = Service.objects.create(name='Cleaning', price='110.00', duration_minutes=45)
        appointment = schedule_appointment(patient_id=self.patient.pk, dentist_id=self.dentist.pk,
                                           appointment_date=MARCH_1, start_time=time(9, 0),
                                           service_id=service.pk)
        self.assertEqual(appointment.duration_minutes, 45)

        SystemSetting.set_setting('default_appointment_duration', 20)
        appointment = schedule_appointment(patient_id=self.patient.pk, dentist_id=self.dentist.pk,
                                           appointment_date=MARCH_1, start_time=time(11, 0))
        self.assertEqual(appointment.duration_minutes, 20)


class AppointmentNumberingTest(SchedulingTestMixin, TestCase):
    def book_on(self, today, start):
        with patch('core.sequences.get_local_today', return_value=today):
            return self.book(start, 30)

    def test_numbers_are_sequential_within_month(self):
        first = self.book_on(date(2025, 3, 3), time(9, 0))
        second = self.book_on(date(2025, 3, 20), time(10, 0))

        self.assertEqual(first.appointment_number, 'A2025030001')
        self.assertEqual(second.appointment_number, 'A2025030002')

    def test_monthly_rollover_restarts_counter(self):
        march = self.book_on(date(2025, 3, 31), time(9, 0))
        april = self.book_on(date(2025, 4, 1), time(10, 0))
        march_again = self.book_on(date(2025, 3, 31), time(11, 0))

        self.assertEqual(march.appointment_number, 'A2025030001')
        self.assertEqual(april.appointment_number, 'A2025040001')
        self.assertEqual(march_again.appointment_number, 'A2025030002')

    def test_failed_booking_does_not_consume_number(self):
        self.book_on(date(2025, 3, 3), time(9, 0))
        with self.assertRaises(SchedulingConflictError):
            self.book_on(date(2025, 3, 3), time(9, 15))
        second = self.book_on(date(2025, 3, 3), time(10, 0))
        self.assertEqual(second.appointment_number, 'A2025030002')


class AppointmentLifecycleTest(SchedulingTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.appointment = self.book(time(9, 0), 60)

    def test_confirm_then_start_then_complete(self):
        self.appointment.confirm(performed_by=self.staff)
        self.assertEqual(self.appointment.status, Appointment.STATUS_CONFIRMED)
        self.assertIsNotNone(self.appointment.confirmed_at)

        self.appointment.start()
        self.assertEqual(self.appointment.status, Appointment.STATUS_IN_PROGRESS)
        self.assertIsNotNone(self.appointment.started_at)

        self.appointment.complete(treatment_notes='Prophylaxis done')
        self.appointment.refresh_from_db()
        self.assertEqual(self.appointment.status, Appointment.STATUS_COMPLETED)
        self.assertEqual(self.appointment.treatment_notes, 'Prophylaxis done')
        self.assertIsNotNone(self.appointment.completed_at)

        log = AuditLog.objects.filter(model_name='appointment', object_id=self.appointment.pk,
                                      action='status_change').order_by('id').first()
        self.assertEqual(log.changes['status'], {'old': 'scheduled', 'new': 'confirmed'})
        self.assertEqual(log.user, self.staff)

    def test_confirm_requires_scheduled(self):
        self.appointment.confirm()
        with self.assertRaises(InvalidTransitionError):
            self.appointment.confirm()

    def test_start_from_completed_is_rejected(self):
        self.appointment.complete()
        with self.assertRaises(InvalidTransitionError):
            self.appointment.start()

    def test_cancel_appends_reason(self):
        self.appointment.cancel(reason='Patient travelling')
        self.appointment.refresh_from_db()
        self.assertEqual(self.appointment.status, Appointment.STATUS_CANCELLED)
        self.assertIn('Cancellation reason: Patient travelling', self.appointment.treatment_notes)
        self.assertIsNotNone(self.appointment.cancelled_at)

    def test_cancel_twice_raises(self):
        self.appointment.cancel()
        with self.assertRaises(InvalidTransitionError) as ctx:
            self.appointment.cancel()
        self.assertEqual(ctx.exception.code, 'INVALID_STATE_TRANSITION')

    def test_cancel_completed_raises(self):
        self.appointment.complete()
        with self.assertRaises(InvalidTransitionError):
            self.appointment.cancel()

    def test_reschedule_excludes_own_slot_and_appends_note(self):
        self.appointment.reschedule(MARCH_1, time(9, 30), reason='Dentist running late')
        self.appointment.refresh_from_db()

        self.assertEqual(self.appointment.start_time, time(9, 30))
        self.assertIn('Rescheduled from 2025-03-01 09:00 to 2025-03-01 09:30', self.appointment.treatment_notes)
        self.assertIn('Dentist running late', self.appointment.treatment_notes)
        self.assertTrue(AuditLog.objects.filter(action='reschedule', object_id=self.appointment.pk).exists())

    def test_reschedule_into_conflict_leaves_appointment_unchanged(self):
        self.book(time(11, 0), 60)
        with self.assertRaises(SchedulingConflictError):
            self.appointment.reschedule(MARCH_1, time(10, 30))

        self.appointment.refresh_from_db()
        self.assertEqual(self.appointment.start_time, time(9, 0))
        self.assertEqual(self.appointment.treatment_notes, '')

    def test_reschedule_to_other_dentist(self):
        self.appointment.reschedule(date(2025, 3, 2), time(14, 0), new_dentist_id=self.other_dentist.pk)
        self.appointment.refresh_from_db()
        self.assertEqual(self.appointment.dentist, self.other_dentist)
        self.assertEqual(self.appointment.appointment_date, date(2025, 3, 2))

    def test_reschedule_to_unknown_dentist_raises_not_found(self):
        with self.assertRaises(NotFoundError):
            self.appointment.reschedule(MARCH_1, time(14, 0), new_dentist_id=99999)

    def test_reschedule_cancelled_is_rejected(self):
        self.appointment.cancel()
        with self.assertRaises(InvalidTransitionError):
            self.appointment.reschedule(MARCH_1, time(14, 0))

    def test_complete_twice_raises(self):
        self.appointment.complete()
        with self.assertRaises(InvalidTransitionError):
            self.appointment.complete()

    def test_reviving_cancelled_requires_free_slot(self):
        self.appointment.cancel()
        self.book(time(9, 0), 30)

        with self.assertRaises(SchedulingConflictError):
            self.appointment.complete()
        self.appointment.refresh_from_db()
        self.assertEqual(self.appointment.status, Appointment.STATUS_CANCELLED)

    def test_reviving_no_show_with_free_slot(self):
        self.appointment.mark_no_show()
        self.appointment.complete()
        self.assertEqual(self.appointment.status, Appointment.STATUS_COMPLETED)

    def test_mark_no_show_appends_notes(self):
        self.appointment.mark_no_show(notes='No answer on phone')
        self.appointment.refresh_from_db()
        self.assertEqual(self.appointment.status, Appointment.STATUS_NO_SHOW)
        self.assertIn('No-show notes: No answer on phone', self.appointment.notes)

    def test_mark_no_show_from_cancelled_or_no_show_raises(self):
        self.appointment.mark_no_show()
        with self.assertRaises(InvalidTransitionError):
            self.appointment.mark_no_show()

        other = self.book(time(13, 0), 30)
        other.cancel()
        with self.assertRaises(InvalidTransitionError):
            other.mark_no_show()

    def test_stale_instance_sees_current_status(self):
        stale = Appointment.objects.get(pk=self.appointment.pk)
        self.appointment.cancel()
        with self.assertRaises(InvalidTransitionError):
            stale.cancel()


class UpcomingAppointmentsTest(SchedulingTestMixin, TestCase):
    def test_upcoming_lists_active_appointments_in_window(self):
        today = date(2025, 3, 1)
        soon = self.book(time(9, 0), 30, day=date(2025, 3, 3))
        self.book(time(9, 0), 30, day=date(2025, 3, 20))
        cancelled = self.book(time(10, 0), 30, day=date(2025, 3, 2))
        cancelled.cancel()

        with patch('appointments.services.get_local_today', return_value=today):
            result = upcoming(days=7)

        self.assertEqual([a.pk for a in result], [soon.pk])


class AppointmentApiTest(SchedulingTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client.force_login(self.staff)

    def post(self, name, data=None, **kwargs):
        return self.client.post(reverse(f'appointments:{name}', kwargs=kwargs),
                                data=json.dumps(data or {}), content_type='application/json')

    def test_create_and_conflict(self):
        payload = {
            'patient_id': self.patient.pk,
            'dentist_id': self.dentist.pk,
            'appointment_date': '2025-03-01',
            'start_time': '09:00',
            'duration_minutes': 60,
        }
        response = self.post('appointment_create', payload)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['appointment']['end_time'], '10:00')

        payload['start_time'] = '09:30'
        response = self.post('appointment_create', payload)
        self.assertEqual(response.status_code, 409)
        body = response.json()
        self.assertFalse(body['success'])
        self.assertEqual(body['code'], 'APPOINTMENT_CONFLICT')
        self.assertEqual(len(body['details']['conflicting_appointments']), 1)

    def test_validation_error_names_field(self):
        response = self.post('appointment_create', {
            'patient_id': self.patient.pk,
            'dentist_id': self.dentist.pk,
            'appointment_date': '2025-03-01',
            'start_time': '9am',
        })
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['field'], 'start_time')

    def test_unknown_appointment_is_404(self):
        response = self.client.get(reverse('appointments:appointment_detail', kwargs={'pk': 99999}))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['code'], 'NOT_FOUND')

    def test_cancel_twice_is_409(self):
        appointment = self.book(time(9, 0), 30)
        self.assertEqual(self.post('appointment_cancel', {'reason': 'Sick'}, pk=appointment.pk).status_code, 200)
        response = self.post('appointment_cancel', pk=appointment.pk)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['code'], 'INVALID_STATE_TRANSITION')

    def test_availability(self):
        self.book(time(9, 0), 60)
        response = self.post('check_availability', {
            'dentist_id': self.dentist.pk,
            'appointment_date': '2025-03-01',
            'start_time': '10:00',
            'duration_minutes': 30,
        })
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['available'])

    def test_lookup_by_number(self):
        appointment = self.book(time(9, 0), 30)
        response = self.client.get(reverse('appointments:appointment_by_number',
                                           kwargs={'number': appointment.appointment_number}))
        self.assertEqual(response.json()['appointment']['id'], appointment.pk)

    def test_list_filters_by_date_and_status(self):
        kept = self.book(time(9, 0), 30)
        self.book(time(9, 0), 30, day=date(2025, 3, 2))
        response = self.client.get(reverse('appointments:appointment_list'),
                                   {'date': '2025-03-01', 'status': 'scheduled'})
        self.assertEqual([a['id'] for a in response.json()['appointments']], [kept.pk])

    def test_list_filters_by_patient_and_date_range(self):
        other_patient = Patient.objects.create(first_name='Ana', last_name='Lopez')
        first = self.book(time(9, 0), 30)
        second = self.book(time(9, 0), 30, day=date(2025, 3, 5))
        self.book(time(9, 0), 30, day=date(2025, 3, 10))
        schedule_appointment(patient_id=other_patient.pk, dentist_id=self.dentist.pk,
                             appointment_date=date(2025, 3, 5), start_time=time(11, 0), duration_minutes=30)

        response = self.client.get(reverse('appointments:appointment_list'), {
            'patient_id': self.patient.pk, 'date_from': '2025-03-01', 'date_to': '2025-03-05',
        })
        self.assertEqual([a['id'] for a in response.json()['appointments']], [first.pk, second.pk])

        response = self.client.get(reverse('appointments:appointment_list'), {'patient_id': other_patient.pk})
        self.assertEqual(len(response.json()['appointments']), 1)

    def test_list_rejects_inverted_date_range(self):
        response = self.client.get(reverse('appointments:appointment_list'),
                                   {'date_from': '2025-03-05', 'date_to': '2025-03-01'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['field'], 'date_to')

    def test_upcoming_with_zero_days_is_today_only(self):
        today_appointment = self.book(time(9, 0), 30)
        self.book(time(9, 0), 30, day=date(2025, 3, 2))
        with patch('appointments.services.get_local_today', return_value=MARCH_1):
            response = self.client.get(reverse('appointments:upcoming_appointments'), {'days': '0'})
        self.assertEqual([a['id'] for a in response.json()['appointments']], [today_appointment.pk])

        response = self.client.get(reverse('appointments:upcoming_appointments'), {'days': '-1'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['field'], 'days')

    def test_anonymous_is_401(self):
        self.client.logout()
        response = self.client.get(reverse('appointments:appointment_list'))
        self.assertEqual(response.status_code, 401)

    def test_missing_permission_is_403(self):
        self.staff_role.permissions = {'appointments': False}
        self.staff_role.save()
        response = self.client.get(reverse('appointments:appointment_list'))
        self.assertEqual(response.status_code, 403)

    def test_wrong_method_is_405(self):
        response = self.client.get(reverse('appointments:appointment_create'))
        self.assertEqual(response.status_code, 405)

    def test_malformed_json_is_400(self):
        response = self.client.post(reverse('appointments:appointment_create'),
                                    data='{not json', content_type='application/json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'INVALID_JSON')

    def test_database_failure_is_generic_500(self):
        with patch('appointments.views.services.get_appointment', side_effect=DatabaseError('disk I/O error')):
            response = self.client.get(reverse('appointments:appointment_detail', kwargs={'pk': 1}))
        self.assertEqual(response.status_code, 500)
        body = response.json()
        self.assertEqual(body['code'], 'DATA_ACCESS_ERROR')
        self.assertNotIn('details', body)
