# billing/tests.py
"""
Tests for invoice totals, payment application, voids and refunds
"""
import json
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse

from core.exceptions import (
    BusinessValidationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
)
from core.models import AuditLog, SystemSetting
from patients.models import Patient
from services.models import Service
from users.models import Role

from . import services
from .models import Invoice, InvoiceItem, Payment
from .payments import (
    apply_payment,
    get_payment_by_number,
    payments_for_patient,
    refund_payment,
    void_payment,
)
from .totals import compute_totals, line_total, recalculate

User = get_user_model()

FILLING_ITEMS = [
    {'item_type': 'service', 'description': 'Composite filling', 'quantity': 2, 'unit_price': Decimal('50.00')},
    {'item_type': 'service', 'description': 'Bitewing X-rays', 'quantity': 1, 'unit_price': Decimal('25.00')},
]


class BillingTestMixin:
    def setUp(self):
        self.staff_role = Role.objects.create(name=Role.STAFF, display_name='Staff', is_default=True)
        self.admin_role = Role.objects.create(name=Role.ADMIN, display_name='Administrator', is_default=True)
        self.staff = User.objects.create_user(username='frontdesk', password='pass12345', role=self.staff_role)
        self.manager = User.objects.create_user(username='manager', password='pass12345', role=self.admin_role)
        self.patient = Patient.objects.create(first_name='Maria', last_name='Garcia')

    def create_filling_invoice(self):
        """2 x 50.00 + 1 x 25.00, 8% tax, 10.00 discount"""
        return services.create_invoice(
            patient_id=self.patient.pk,
            items=FILLING_ITEMS,
            tax_rate=Decimal('0.08'),
            discount_amount=Decimal('10.00'),
            invoice_date=date(2025, 3, 1),
        )

    def reload(self, invoice):
        return Invoice.objects.get(pk=invoice.pk)

    def assertBalanced(self, invoice):
        invoice = self.reload(invoice)
        expected_tax = (invoice.subtotal * invoice.tax_rate).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
        self.assertEqual(invoice.tax_amount, expected_tax)
        self.assertEqual(invoice.total_amount, invoice.subtotal + invoice.tax_amount - invoice.discount_amount)
        self.assertGreaterEqual(invoice.total_amount, 0)
        self.assertEqual(invoice.balance_due, invoice.total_amount - invoice.amount_paid)
        paid = sum((p.amount for p in invoice.payments.exclude(status=Payment.STATUS_VOIDED)), Decimal('0.00'))
        self.assertEqual(invoice.amount_paid, paid)


class TotalsCalculationTest(TestCase):
    def test_line_totals_round_half_up(self):
        self.assertEqual(line_total(3, Decimal('0.335')), Decimal('1.01'))
        self.assertEqual(line_total(2, Decimal('50.00')), Decimal('100.00'))

    def test_tax_is_rounded_once_on_subtotal(self):
        totals = compute_totals([Decimal('10.05'), Decimal('10.05')], Decimal('0.0725'), 0, [])
        self.assertEqual(totals.subtotal, Decimal('20.10'))
        self.assertEqual(totals.tax_amount, Decimal('1.46'))

    def test_discount_is_clamped_to_gross(self):
        totals = compute_totals([Decimal('40.00')], Decimal('0'), Decimal('55.00'), [])
        self.assertEqual(totals.discount_amount, Decimal('40.00'))
        self.assertEqual(totals.total_amount, Decimal('0.00'))
        self.assertTrue(totals.discount_clamped)

    def test_negative_discount_is_clamped_to_zero(self):
        totals = compute_totals([Decimal('40.00')], Decimal('0'), Decimal('-5.00'), [])
        self.assertEqual(totals.discount_amount, Decimal('0.00'))
        self.assertTrue(totals.discount_clamped)

    def test_refunds_reduce_amount_paid(self):
        totals = compute_totals([Decimal('125.00')], Decimal('0'), 0,
                                [Decimal('60.00'), Decimal('65.00'), Decimal('-20.00')])
        self.assertEqual(totals.amount_paid, Decimal('105.00'))
        self.assertEqual(totals.balance_due, Decimal('20.00'))
        self.assertFalse(totals.discount_clamped)


class InvoiceTest(BillingTestMixin, TestCase):
    def test_totals_with_tax_and_discount(self):
        invoice = self.reload(self.create_filling_invoice())

        self.assertEqual(invoice.subtotal, Decimal('125.00'))
        self.assertEqual(invoice.tax_amount, Decimal('10.00'))
        self.assertEqual(invoice.discount_amount, Decimal('10.00'))
        self.assertEqual(invoice.total_amount, Decimal('125.00'))
        self.assertEqual(invoice.balance_due, Decimal('125.00'))
        self.assertEqual(invoice.status, Invoice.STATUS_DRAFT)
        self.assertEqual(invoice.items.count(), 2)
        self.assertBalanced(invoice)

    def test_defaults_come_from_settings(self):
        SystemSetting.set_setting('default_tax_rate', '0.05')
        SystemSetting.set_setting('invoice_due_days', '14')
        invoice = services.create_invoice(patient_id=self.patient.pk, invoice_date=date(2025, 3, 1))

        self.assertEqual(invoice.tax_rate, Decimal('0.05'))
        self.assertEqual(invoice.due_date, date(2025, 3, 15))
        self.assertEqual(invoice.payment_terms, 'Net 30')

    def test_invoice_numbering(self):
        with patch('core.sequences.get_local_today', return_value=date(2025, 3, 5)):
            first = services.create_invoice(patient_id=self.patient.pk)
            second = services.create_invoice(patient_id=self.patient.pk)
        self.assertEqual(first.invoice_number, 'INV2025030001')
        self.assertEqual(second.invoice_number, 'INV2025030002')

    def test_unknown_references_raise_not_found(self):
        with self.assertRaises(NotFoundError):
            services.create_invoice(patient_id=99999)
        with self.assertRaises(NotFoundError) as ctx:
            services.create_invoice(patient_id=self.patient.pk, appointment_id=99999)
        self.assertEqual(ctx.exception.field, 'appointment_id')

    def test_invalid_tax_rate(self):
        with self.assertRaises(BusinessValidationError) as ctx:
            services.create_invoice(patient_id=self.patient.pk, tax_rate=Decimal('1.5'))
        self.assertEqual(ctx.exception.field, 'tax_rate')

    def test_recalculate_is_idempotent(self):
        invoice = self.create_filling_invoice()
        apply_payment(invoice.pk, Decimal('60.00'), 'cash')

        first = recalculate(self.reload(invoice))
        snapshot = (first.subtotal, first.tax_amount, first.total_amount, first.amount_paid,
                    first.balance_due, first.status)
        second = recalculate(self.reload(invoice))
        self.assertEqual(snapshot, (second.subtotal, second.tax_amount, second.total_amount,
                                    second.amount_paid, second.balance_due, second.status))

    def test_add_and_remove_item(self):
        invoice = self.create_filling_invoice()
        service = Service.objects.create(name='Fluoride', price='30.00')

        item, invoice = services.add_item(invoice.pk, 'service', 'Fluoride', 1, Decimal('30.00'),
                                          item_id=service.pk, tooth_number='14')
        self.assertEqual(item.line_total, Decimal('30.00'))
        self.assertEqual(invoice.subtotal, Decimal('155.00'))
        self.assertBalanced(invoice)

        invoice = services.remove_item(invoice.pk, item.pk)
        self.assertEqual(invoice.subtotal, Decimal('125.00'))
        self.assertBalanced(invoice)

    def test_add_item_validation(self):
        invoice = self.create_filling_invoice()
        with self.assertRaises(BusinessValidationError) as ctx:
            services.add_item(invoice.pk, 'service', 'Bad', 0, Decimal('10.00'))
        self.assertEqual(ctx.exception.field, 'quantity')

        with self.assertRaises(BusinessValidationError) as ctx:
            services.add_item(invoice.pk, 'gift', 'Bad', 1, Decimal('10.00'))
        self.assertEqual(ctx.exception.field, 'item_type')

        with self.assertRaises(BusinessValidationError) as ctx:
            services.add_item(invoice.pk, 'product', 'Bad', 1, Decimal('-1.00'))
        self.assertEqual(ctx.exception.field, 'unit_price')

        with self.assertRaises(NotFoundError):
            services.add_item(invoice.pk, 'product', 'Missing', 1, Decimal('5.00'), item_id=99999)

    def test_remove_item_from_other_invoice_raises_not_found(self):
        invoice = self.create_filling_invoice()
        other = self.create_filling_invoice()
        with self.assertRaises(NotFoundError):
            services.remove_item(invoice.pk, other.items.first().pk)

    def test_discount_validation(self):
        invoice = self.create_filling_invoice()
        with self.assertRaises(BusinessValidationError):
            services.apply_discount(invoice.pk, Decimal('-1.00'))
        with self.assertRaises(BusinessValidationError):
            services.apply_discount(invoice.pk, Decimal('135.01'))

        invoice = services.apply_discount(invoice.pk, Decimal('135.00'))
        self.assertEqual(invoice.total_amount, Decimal('0.00'))
        self.assertBalanced(invoice)

    def test_removing_items_clamps_existing_discount(self):
        invoice = services.create_invoice(
            patient_id=self.patient.pk,
            items=[{'item_type': 'service', 'description': 'Exam', 'quantity': 1, 'unit_price': Decimal('20.00')},
                   {'item_type': 'service', 'description': 'Crown', 'quantity': 1, 'unit_price': Decimal('80.00')}],
            discount_amount=Decimal('50.00'),
        )
        crown = invoice.items.get(description='Crown')
        invoice = services.remove_item(invoice.pk, crown.pk)

        self.assertEqual(invoice.discount_amount, Decimal('20.00'))
        self.assertEqual(invoice.total_amount, Decimal('0.00'))
        self.assertBalanced(invoice)

    def test_set_tax_rate_recalculates(self):
        invoice = self.create_filling_invoice()
        invoice = services.set_tax_rate(invoice.pk, Decimal('0.10'))
        self.assertEqual(invoice.tax_amount, Decimal('12.50'))
        self.assertEqual(invoice.total_amount, Decimal('127.50'))

    def test_tax_rate_is_stored_at_four_places(self):
        invoice = services.create_invoice(
            patient_id=self.patient.pk,
            items=[{'item_type': 'service', 'description': 'Implant', 'quantity': 1, 'unit_price': Decimal('1000.00')}],
            tax_rate=Decimal('0.08125'),
        )
        self.assertEqual(invoice.tax_rate, Decimal('0.0813'))
        self.assertEqual(invoice.tax_amount, Decimal('81.30'))
        self.assertBalanced(invoice)

        stored = self.reload(invoice)
        self.assertEqual(stored.tax_rate, Decimal('0.0813'))
        recalculated = recalculate(stored)
        self.assertEqual(recalculated.tax_amount, Decimal('81.30'))
        self.assertEqual(recalculated.total_amount, Decimal('1081.30'))

    def test_set_tax_rate_rounds_extra_precision(self):
        invoice = self.create_filling_invoice()
        invoice = services.set_tax_rate(invoice.pk, '0.066666')
        self.assertEqual(self.reload(invoice).tax_rate, Decimal('0.0667'))
        self.assertEqual(invoice.tax_amount, Decimal('8.34'))
        self.assertBalanced(invoice)

    def test_non_finite_amounts_are_rejected(self):
        invoice = self.create_filling_invoice()
        with self.assertRaises(BusinessValidationError) as ctx:
            services.apply_discount(invoice.pk, Decimal('NaN'))
        self.assertEqual(ctx.exception.field, 'discount_amount')

        with self.assertRaises(BusinessValidationError) as ctx:
            services.set_tax_rate(invoice.pk, Decimal('NaN'))
        self.assertEqual(ctx.exception.field, 'tax_rate')

        with self.assertRaises(BusinessValidationError) as ctx:
            services.add_item(invoice.pk, 'service', 'Bad', 1, Decimal('Infinity'))
        self.assertEqual(ctx.exception.field, 'unit_price')
        self.assertBalanced(invoice)

    def test_get_invoice_by_number(self):
        invoice = self.create_filling_invoice()
        self.assertEqual(services.get_invoice_by_number(invoice.invoice_number).pk, invoice.pk)
        with self.assertRaises(NotFoundError):
            services.get_invoice_by_number('INV2000010001')

    def test_mark_sent_only_from_draft(self):
        invoice = services.mark_sent(self.create_filling_invoice().pk)
        self.assertEqual(invoice.status, Invoice.STATUS_SENT)
        self.assertIsNotNone(invoice.sent_at)
        with self.assertRaises(InvalidTransitionError):
            services.mark_sent(invoice.pk)

    def test_cancel_invoice(self):
        invoice = services.cancel_invoice(self.create_filling_invoice().pk, reason='Duplicate')
        self.assertEqual(invoice.status, Invoice.STATUS_CANCELLED)
        self.assertIn('Cancellation reason: Duplicate', invoice.notes)

        with self.assertRaises(InvalidTransitionError):
            services.cancel_invoice(invoice.pk)
        with self.assertRaises(InvalidTransitionError):
            services.add_item(invoice.pk, 'service', 'Late item', 1, Decimal('5.00'))
        with self.assertRaises(InvalidTransitionError):
            apply_payment(invoice.pk, Decimal('5.00'), 'cash')

    def test_paid_invoice_cannot_be_cancelled(self):
        invoice = self.create_filling_invoice()
        apply_payment(invoice.pk, Decimal('125.00'), 'cash')
        with self.assertRaises(InvalidTransitionError):
            services.cancel_invoice(invoice.pk)

    def test_delete_invoice(self):
        invoice = self.create_filling_invoice()
        services.delete_invoice(invoice.pk)
        self.assertFalse(Invoice.objects.filter(pk=invoice.pk).exists())
        self.assertFalse(InvoiceItem.objects.filter(invoice_id=invoice.pk).exists())

    def test_delete_invoice_with_payments_is_conflict(self):
        invoice = self.create_filling_invoice()
        payment, _ = apply_payment(invoice.pk, Decimal('10.00'), 'cash')
        void_payment(payment.pk)

        with self.assertRaises(ConflictError) as ctx:
            services.delete_invoice(invoice.pk)
        self.assertEqual(ctx.exception.status_code, 409)
        self.assertTrue(Invoice.objects.filter(pk=invoice.pk).exists())

    def test_overdue(self):
        invoice = services.create_invoice(patient_id=self.patient.pk, items=FILLING_ITEMS,
                                          invoice_date=date(2025, 1, 1), due_date=date(2025, 1, 31))
        services.mark_sent(invoice.pk)
        draft = services.create_invoice(patient_id=self.patient.pk, items=FILLING_ITEMS,
                                        invoice_date=date(2025, 1, 1), due_date=date(2025, 1, 31))

        overdue = services.overdue_invoices(today=date(2025, 2, 10))
        self.assertEqual([i.pk for i in overdue], [invoice.pk])
        self.assertNotIn(draft.pk, [i.pk for i in overdue])

        with patch('billing.models.get_local_today', return_value=date(2025, 2, 10)):
            self.assertTrue(self.reload(invoice).is_overdue)
            self.assertEqual(self.reload(invoice).days_overdue, 10)


class PaymentTest(BillingTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.invoice = self.create_filling_invoice()

    def test_partial_then_full_payment(self):
        payment, invoice = apply_payment(self.invoice.pk, Decimal('60.00'), 'cash', recorded_by=self.staff)
        self.assertEqual(invoice.amount_paid, Decimal('60.00'))
        self.assertEqual(invoice.balance_due, Decimal('65.00'))
        self.assertEqual(invoice.status, Invoice.STATUS_PARTIAL)
        self.assertEqual(payment.status, Payment.STATUS_COMPLETED)
        self.assertEqual(payment.recorded_by, self.staff)
        self.assertTrue(payment.payment_number.startswith('PAY'))

        _, invoice = apply_payment(self.invoice.pk, Decimal('65.00'), 'credit_card')
        self.assertEqual(invoice.balance_due, Decimal('0.00'))
        self.assertEqual(invoice.status, Invoice.STATUS_PAID)
        self.assertBalanced(invoice)

    def test_refund_recalculates_balance(self):
        apply_payment(self.invoice.pk, Decimal('60.00'), 'cash')
        second, _ = apply_payment(self.invoice.pk, Decimal('65.00'), 'cash')

        refund = refund_payment(second.pk, Decimal('20.00'), reason='Billing error', refunded_by=self.manager)

        self.assertEqual(refund.amount, Decimal('-20.00'))
        self.assertEqual(refund.refund_of, second)
        self.assertEqual(refund.payment_reference, f"REFUND-{second.payment_number}")
        second.refresh_from_db()
        self.assertEqual(second.status, Payment.STATUS_REFUNDED)
        self.assertIn('Refund reason: Billing error', second.notes)

        invoice = self.reload(self.invoice)
        self.assertEqual(invoice.amount_paid, Decimal('105.00'))
        self.assertEqual(invoice.balance_due, Decimal('20.00'))
        self.assertEqual(invoice.status, Invoice.STATUS_PARTIAL)
        self.assertBalanced(invoice)
        self.assertTrue(AuditLog.objects.filter(action='refund', user=self.manager).exists())

    def test_refund_defaults_to_full_amount(self):
        payment, _ = apply_payment(self.invoice.pk, Decimal('60.00'), 'cash')
        refund = refund_payment(payment.pk)
        self.assertEqual(refund.amount, Decimal('-60.00'))
        invoice = self.reload(self.invoice)
        self.assertEqual(invoice.amount_paid, Decimal('0.00'))
        self.assertEqual(invoice.status, Invoice.STATUS_DRAFT)

    def test_refund_limits(self):
        payment, _ = apply_payment(self.invoice.pk, Decimal('60.00'), 'cash')

        with self.assertRaises(BusinessValidationError) as ctx:
            refund_payment(payment.pk, Decimal('60.01'))
        self.assertEqual(ctx.exception.field, 'refund_amount')
        with self.assertRaises(BusinessValidationError):
            refund_payment(payment.pk, Decimal('0'))

        refund = refund_payment(payment.pk, Decimal('10.00'))
        with self.assertRaises(InvalidTransitionError):
            refund_payment(payment.pk, Decimal('10.00'))
        with self.assertRaises(InvalidTransitionError):
            refund_payment(refund.pk)

    def test_overpayment_leaves_credit(self):
        _, invoice = apply_payment(self.invoice.pk, Decimal('200.00'), 'bank_transfer')
        self.assertEqual(invoice.status, Invoice.STATUS_PAID)
        self.assertEqual(invoice.balance_due, Decimal('-75.00'))
        self.assertBalanced(invoice)

    def test_payment_validation(self):
        with self.assertRaises(BusinessValidationError) as ctx:
            apply_payment(self.invoice.pk, Decimal('0'), 'cash')
        self.assertEqual(ctx.exception.field, 'amount')

        with self.assertRaises(BusinessValidationError) as ctx:
            apply_payment(self.invoice.pk, Decimal('10.00'), 'bitcoin')
        self.assertEqual(ctx.exception.field, 'method')

        with self.assertRaises(BusinessValidationError) as ctx:
            apply_payment(self.invoice.pk, Decimal('NaN'), 'cash')
        self.assertEqual(ctx.exception.field, 'amount')

        with self.assertRaises(NotFoundError):
            apply_payment(99999, Decimal('10.00'), 'cash')
        self.assertFalse(Payment.objects.exists())

    def test_void_removes_amount_from_invoice(self):
        first, _ = apply_payment(self.invoice.pk, Decimal('60.00'), 'cash')
        apply_payment(self.invoice.pk, Decimal('65.00'), 'cash')

        voided = void_payment(first.pk, reason='Entered twice')
        self.assertEqual(voided.status, Payment.STATUS_VOIDED)
        self.assertIn('Void reason: Entered twice', voided.notes)

        invoice = self.reload(self.invoice)
        self.assertEqual(invoice.amount_paid, Decimal('65.00'))
        self.assertEqual(invoice.balance_due, Decimal('60.00'))
        self.assertEqual(invoice.status, Invoice.STATUS_PARTIAL)
        self.assertBalanced(invoice)

        with self.assertRaises(InvalidTransitionError):
            void_payment(first.pk)

    def test_voiding_last_payment_returns_to_sent(self):
        services.mark_sent(self.invoice.pk)
        payment, _ = apply_payment(self.invoice.pk, Decimal('125.00'), 'cash')
        void_payment(payment.pk)
        self.assertEqual(self.reload(self.invoice).status, Invoice.STATUS_SENT)

    def test_voiding_refund_reinstates_original(self):
        payment, _ = apply_payment(self.invoice.pk, Decimal('125.00'), 'cash')
        refund = refund_payment(payment.pk, Decimal('25.00'))
        self.assertEqual(self.reload(self.invoice).balance_due, Decimal('25.00'))

        void_payment(refund.pk)
        payment.refresh_from_db()
        self.assertEqual(payment.status, Payment.STATUS_COMPLETED)
        invoice = self.reload(self.invoice)
        self.assertEqual(invoice.balance_due, Decimal('0.00'))
        self.assertEqual(invoice.status, Invoice.STATUS_PAID)
        self.assertBalanced(invoice)


    def test_lookup_by_number_and_patient(self):
        first, _ = apply_payment(self.invoice.pk, Decimal('60.00'), 'cash', payment_date=date(2025, 3, 2))
        second, _ = apply_payment(self.invoice.pk, Decimal('20.00'), 'card', payment_date=date(2025, 3, 9))
        other_patient = Patient.objects.create(first_name='Ana', last_name='Lopez')
        other_invoice = services.create_invoice(patient_id=other_patient.pk, items=FILLING_ITEMS)
        apply_payment(other_invoice.pk, Decimal('5.00'), 'cash')

        self.assertEqual(get_payment_by_number(first.payment_number).pk, first.pk)
        with self.assertRaises(NotFoundError):
            get_payment_by_number('PAY2000010001')

        self.assertEqual([p.pk for p in payments_for_patient(self.patient.pk)], [second.pk, first.pk])
        self.assertEqual(payments_for_patient(99999), [])


class BillingApiTest(BillingTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client.force_login(self.staff)

    def post(self, name, data=None, **kwargs):
        return self.client.post(reverse(f'billing:{name}', kwargs=kwargs),
                                data=json.dumps(data or {}), content_type='application/json')

    def test_create_invoice_and_pay(self):
        response = self.post('invoice_list', {
            'patient_id': self.patient.pk,
            'tax_rate': '0.08',
            'discount_amount': '10.00',
            'items': [
                {'item_type': 'service', 'description': 'Filling', 'quantity': 2, 'unit_price': '50.00'},
                {'item_type': 'service', 'description': 'X-rays', 'quantity': 1, 'unit_price': '25.00'},
            ],
        })
        self.assertEqual(response.status_code, 201)
        invoice = response.json()['invoice']
        self.assertEqual(invoice['total_amount'], '125.00')
        self.assertEqual(len(invoice['items']), 2)

        response = self.post('invoice_payments', {'amount': '60.00', 'payment_method': 'cash'}, pk=invoice['id'])
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['invoice']['balance_due'], '65.00')
        self.assertEqual(response.json()['invoice']['status'], 'partial')

        response = self.client.get(reverse('billing:invoice_payments', kwargs={'pk': invoice['id']}))
        self.assertEqual(len(response.json()['payments']), 1)

    def test_refund_requires_refund_permission(self):
        invoice = self.create_filling_invoice()
        payment, _ = apply_payment(invoice.pk, Decimal('60.00'), 'cash')

        response = self.post('payment_refund', {'refund_amount': '20.00'}, pk=payment.pk)
        self.assertEqual(response.status_code, 403)

        self.client.force_login(self.manager)
        response = self.post('payment_refund', {'refund_amount': '20.00'}, pk=payment.pk)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['invoice']['balance_due'], '85.00')

    def test_delete_with_payments_is_409(self):
        invoice = self.create_filling_invoice()
        apply_payment(invoice.pk, Decimal('60.00'), 'cash')
        response = self.post('invoice_delete', pk=invoice.pk)
        self.assertEqual(response.status_code, 409)

    def test_bad_amount_names_field(self):
        invoice = self.create_filling_invoice()
        response = self.post('invoice_payments', {'amount': '-5', 'payment_method': 'cash'}, pk=invoice.pk)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['field'], 'amount')

    def test_overdue_listing(self):
        invoice = services.create_invoice(patient_id=self.patient.pk, items=FILLING_ITEMS,
                                          invoice_date=date(2025, 1, 1), due_date=date(2025, 1, 31))
        services.mark_sent(invoice.pk)
        response = self.client.get(reverse('billing:overdue_invoices'), {'today': '2025-02-01'})
        self.assertEqual([i['id'] for i in response.json()['invoices']], [invoice.pk])

    def test_unknown_invoice_is_404(self):
        response = self.client.get(reverse('billing:invoice_detail', kwargs={'pk': 99999}))
        self.assertEqual(response.status_code, 404)


    def test_nan_amount_is_400(self):
        invoice = self.create_filling_invoice()
        response = self.post('invoice_payments', {'amount': 'NaN', 'payment_method': 'cash'}, pk=invoice.pk)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['field'], 'amount')
        self.assertFalse(Payment.objects.exists())

    def test_zero_quantity_item_is_400(self):
        invoice = self.create_filling_invoice()
        response = self.post('invoice_add_item', {
            'item_type': 'service', 'description': 'Sealant', 'quantity': 0, 'unit_price': '15.00',
        }, pk=invoice.pk)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['field'], 'quantity')
        self.assertEqual(invoice.items.count(), 2)

    def test_missing_quantity_defaults_to_one(self):
        invoice = self.create_filling_invoice()
        response = self.post('invoice_add_item', {
            'item_type': 'service', 'description': 'Sealant', 'unit_price': '15.00',
        }, pk=invoice.pk)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(invoice.items.get(description='Sealant').quantity, 1)

    def test_invoice_by_number(self):
        invoice = self.create_filling_invoice()
        response = self.client.get(reverse('billing:invoice_by_number', kwargs={'number': invoice.invoice_number}))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['invoice']['id'], invoice.pk)

        response = self.client.get(reverse('billing:invoice_by_number', kwargs={'number': 'INV0000000000'}))
        self.assertEqual(response.status_code, 404)

    def test_payment_lookups(self):
        invoice = self.create_filling_invoice()
        payment, _ = apply_payment(invoice.pk, Decimal('60.00'), 'cash')

        response = self.client.get(reverse('billing:payment_by_number', kwargs={'number': payment.payment_number}))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['payment']['id'], payment.pk)

        response = self.client.get(reverse('billing:payment_list'), {'patient_id': self.patient.pk})
        self.assertEqual([p['id'] for p in response.json()['payments']], [payment.pk])

        response = self.client.get(reverse('billing:payment_list'))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['field'], 'patient_id')


class InvoiceDueDateTest(BillingTestMixin, TestCase):
    def test_due_date_before_invoice_date_is_rejected(self):
        with self.assertRaises(BusinessValidationError):
            services.create_invoice(patient_id=self.patient.pk, invoice_date=date(2025, 3, 1),
                                    due_date=date(2025, 3, 1) - timedelta(days=1))
