# core/tests.py
from datetime import date, datetime, time
from decimal import Decimal
from io import StringIO
from types import SimpleNamespace

from django.contrib.auth.models import AnonymousUser
from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase
from django.urls import reverse

from services.models import Service
from users.models import Role, User

from .api import get_decimal
from .exceptions import (
    BusinessValidationError,
    DataAccessError,
    InvalidTransitionError,
    NotFoundError,
    SchedulingConflictError,
    data_access,
)
from .models import AuditLog, NumberSequence, SystemSetting
from .sequences import next_number
from .utils import add_minutes, minutes_since_midnight, parse_date, parse_time


class NumberSequenceTest(TestCase):
    def test_numbers_increment_within_month(self):
        self.assertEqual(next_number('invoice', 'INV', on=date(2025, 3, 5)), 'INV2025030001')
        self.assertEqual(next_number('invoice', 'INV', on=date(2025, 3, 28)), 'INV2025030002')

    def test_scopes_are_independent(self):
        next_number('invoice', 'INV', on=date(2025, 3, 5))
        self.assertEqual(next_number('payment', 'PAY', on=date(2025, 3, 5)), 'PAY2025030001')

    def test_counter_resets_each_month(self):
        next_number('invoice', 'INV', on=date(2025, 3, 31))
        self.assertEqual(next_number('invoice', 'INV', on=date(2025, 4, 1)), 'INV2025040001')
        self.assertEqual(NumberSequence.objects.filter(scope='invoice').count(), 2)

    def test_counter_widens_past_pad_width(self):
        NumberSequence.objects.create(scope='invoice', period='202503', last_value=9999)
        self.assertEqual(next_number('invoice', 'INV', on=date(2025, 3, 5)), 'INV20250310000')

    def test_custom_pad_width(self):
        self.assertEqual(next_number('plan', 'TP', on=date(2025, 3, 5), pad_width=6), 'TP202503000001')


class SystemSettingTest(TestCase):
    def test_missing_setting_returns_default(self):
        self.assertEqual(SystemSetting.get_setting('nope', 'fallback'), 'fallback')
        self.assertEqual(SystemSetting.get_int_setting('nope', 15), 15)

    def test_set_and_update(self):
        SystemSetting.set_setting('invoice_due_days', 14)
        self.assertEqual(SystemSetting.get_int_setting('invoice_due_days'), 14)
        SystemSetting.set_setting('invoice_due_days', 21)
        self.assertEqual(SystemSetting.get_int_setting('invoice_due_days'), 21)
        self.assertEqual(SystemSetting.objects.filter(key='invoice_due_days').count(), 1)

    def test_inactive_and_malformed_settings_fall_back(self):
        SystemSetting.objects.create(key='default_tax_rate', value='0.08', is_active=False)
        SystemSetting.objects.create(key='invoice_due_days', value='thirty')
        self.assertEqual(SystemSetting.get_decimal_setting('default_tax_rate', 0), 0)
        self.assertEqual(SystemSetting.get_int_setting('invoice_due_days', 30), 30)

    def test_initialize_defaults_only_creates_missing(self):
        SystemSetting.set_setting('default_tax_rate', '0.07')
        created, skipped = SystemSetting.initialize_defaults()
        self.assertEqual((created, skipped), (len(SystemSetting.DEFAULTS) - 1, 1))
        self.assertEqual(SystemSetting.get_setting('default_tax_rate'), '0.07')


class ManagementCommandTest(TestCase):
    def test_initialize_settings(self):
        out = StringIO()
        call_command('initialize_settings', stdout=out)
        self.assertIn('created', out.getvalue())
        self.assertEqual(SystemSetting.objects.count(), len(SystemSetting.DEFAULTS))

        out = StringIO()
        call_command('initialize_settings', stdout=out)
        self.assertIn('already initialized', out.getvalue())

    def test_setup_initial_data(self):
        call_command('setup_initial_data', admin_password='s3cret-pass', stdout=StringIO())

        self.assertEqual(Role.objects.filter(is_default=True).count(), 3)
        admin = User.objects.get(username='admin')
        self.assertTrue(admin.is_superuser)
        self.assertTrue(admin.check_password('s3cret-pass'))
        self.assertTrue(Service.objects.filter(code='D1110').exists())
        self.assertTrue(Role.objects.get(name=Role.ADMIN).permissions['refunds'])
        self.assertFalse(Role.objects.get(name=Role.STAFF).permissions['refunds'])

        services = Service.objects.count()
        call_command('setup_initial_data', admin_password='other', stdout=StringIO())
        self.assertEqual(Service.objects.count(), services)
        self.assertEqual(Role.objects.count(), 3)

    def test_setup_without_password_skips_admin(self):
        call_command('setup_initial_data', admin_password='', skip_services=True, stdout=StringIO())
        self.assertFalse(User.objects.filter(username='admin').exists())
        self.assertFalse(Service.objects.exists())


class DomainErrorTest(TestCase):
    def test_to_dict(self):
        error = BusinessValidationError('Amount must be positive', field='amount', details={'minimum': '0.01'})
        self.assertEqual(error.status_code, 400)
        self.assertEqual(error.to_dict(), {
            'success': False,
            'code': 'VALIDATION_ERROR',
            'message': 'Amount must be positive',
            'field': 'amount',
            'details': {'minimum': '0.01'},
        })

    def test_status_codes(self):
        self.assertEqual(NotFoundError('x').status_code, 404)
        self.assertEqual(InvalidTransitionError('x').status_code, 409)
        self.assertEqual(DataAccessError().status_code, 500)
        self.assertNotIn('field', NotFoundError('x').to_dict())

    def test_scheduling_conflict_lists_overlaps(self):
        existing = SimpleNamespace(
            pk=7,
            appointment_number='A2025030001',
            appointment_date=date(2025, 3, 10),
            start_time=time(10, 0),
            end_time=time(11, 0),
            duration_minutes=60,
        )
        error = SchedulingConflictError('Overlap', conflicts=[existing])

        self.assertEqual(error.status_code, 409)
        self.assertEqual(error.code, 'APPOINTMENT_CONFLICT')
        self.assertEqual(error.details['conflicting_appointments'], [{
            'id': 7,
            'appointment_number': 'A2025030001',
            'appointment_date': '2025-03-10',
            'start_time': '10:00',
            'end_time': '11:00',
            'duration_minutes': 60,
        }])

    def test_data_access_translates_database_errors(self):
        with self.assertRaises(DataAccessError) as ctx:
            with self.assertLogs('core.exceptions', level='ERROR'):
                with data_access('loading invoice'):
                    raise DatabaseError('connection refused')
        self.assertEqual(ctx.exception.details, {'operation': 'loading invoice'})
        self.assertIsInstance(ctx.exception.__cause__, DatabaseError)
        self.assertNotIn('connection refused', ctx.exception.message)

    def test_data_access_leaves_other_errors_alone(self):
        with self.assertRaises(ValueError):
            with data_access('parsing'):
                raise ValueError('bad')


class UtilsTest(TestCase):
    def test_add_minutes_wraps_like_a_clock(self):
        self.assertEqual(add_minutes(time(9, 30), 45), time(10, 15))
        self.assertEqual(add_minutes(time(23, 30), 60), time(0, 30))
        self.assertEqual(minutes_since_midnight(time(23, 30)), 1410)

    def test_parse_time(self):
        self.assertEqual(parse_time('09:30'), time(9, 30))
        self.assertEqual(parse_time('09:30:00'), time(9, 30))
        with self.assertRaises(ValueError):
            parse_time('9.30am')

    def test_parse_date(self):
        self.assertEqual(parse_date('2025-03-01'), date(2025, 3, 1))
        self.assertEqual(parse_date(date(2025, 3, 1)), date(2025, 3, 1))
        parsed = parse_date(datetime(2025, 3, 1, 14, 45))
        self.assertEqual(parsed, date(2025, 3, 1))
        self.assertNotIsInstance(parsed, datetime)

    def test_get_decimal_rejects_non_finite_values(self):
        self.assertEqual(get_decimal({'amount': '12.50'}, 'amount'), Decimal('12.50'))
        for value in ('NaN', 'Infinity', '-inf'):
            with self.assertRaises(BusinessValidationError) as ctx:
                get_decimal({'amount': value}, 'amount')
            self.assertEqual(ctx.exception.field, 'amount')


class AuditLogTest(TestCase):
    def test_anonymous_user_is_recorded_as_system(self):
        service = Service.objects.create(name='Exam', price='50.00')
        entry = AuditLog.log_action(AnonymousUser(), 'create', service, description='Seeded')
        self.assertIsNone(entry.user)
        self.assertEqual(entry.model_name, 'service')
        self.assertEqual(entry.object_id, service.pk)
        self.assertEqual(AuditLog.status_change('draft', 'sent'), {'status': {'old': 'draft', 'new': 'sent'}})


class HealthCheckTest(TestCase):
    def test_health_check(self):
        response = self.client.get(reverse('core:health_check'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'ok')

    def test_health_check_rejects_post(self):
        response = self.client.post(reverse('core:health_check'))
        self.assertEqual(response.status_code, 405)
