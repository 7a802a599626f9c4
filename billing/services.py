"""Invoice operations.

Every mutation runs in one transaction with the invoice row locked by
select_for_update(), and finishes with totals.recalculate().
"""
import logging
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

from django.db import transaction
from django.utils import timezone

from core.exceptions import (
    BusinessValidationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    data_access,
)
from core.models import AuditLog, SystemSetting
from core.sequences import next_number
from core.utils import get_local_today
from patients.models import Patient, TreatmentPlan
from services.models import Product, Service

from .models import Invoice, InvoiceItem
from .totals import ZERO, compute_totals, outstanding_total, quantize_money, recalculate

logger = logging.getLogger(__name__)

CATALOGUE_MODELS = {
    InvoiceItem.TYPE_SERVICE: Service,
    InvoiceItem.TYPE_PRODUCT: Product,
}

# Invoice.tax_rate stores four decimal places
RATE_PLACES = Decimal('0.0001')


def next_invoice_number(on=None):
    return next_number('invoice', 'INV', on=on)


def get_invoice(invoice_id):
    try:
        with data_access('loading invoice'):
            return Invoice.objects.get(pk=invoice_id)
    except Invoice.DoesNotExist:
        raise NotFoundError(f"Invoice {invoice_id} not found")


def get_invoice_by_number(invoice_number):
    try:
        with data_access('loading invoice'):
            return Invoice.objects.get(invoice_number=invoice_number)
    except Invoice.DoesNotExist:
        raise NotFoundError(f"Invoice {invoice_number} not found")


def lock_invoice(invoice_id):
    """Fetch the invoice under select_for_update(); call inside transaction.atomic()"""
    try:
        return Invoice.objects.select_for_update().get(pk=invoice_id)
    except Invoice.DoesNotExist:
        raise NotFoundError(f"Invoice {invoice_id} not found")


def _ensure_editable(invoice, action):
    if invoice.status == Invoice.STATUS_CANCELLED:
        raise InvalidTransitionError(
            f"Cannot {action} on cancelled invoice {invoice.invoice_number}",
            details={'invoice_number': invoice.invoice_number, 'status': invoice.status},
        )


def _validate_tax_rate(tax_rate):
    """Return the rate rounded to the stored precision so totals match what is saved"""
    try:
        tax_rate = Decimal(str(tax_rate))
    except ArithmeticError:
        raise BusinessValidationError('Tax rate must be a number', field='tax_rate')
    if not tax_rate.is_finite() or tax_rate < 0 or tax_rate > 1:
        raise BusinessValidationError('Tax rate must be between 0 and 1', field='tax_rate')
    return tax_rate.quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


def _money(value, field):
    try:
        return quantize_money(value)
    except ArithmeticError:
        raise BusinessValidationError(f"{field} must be a finite number", field=field)


def _validate_item(item_type, quantity, unit_price, item_id=None):
    if item_type not in CATALOGUE_MODELS:
        raise BusinessValidationError(f"Item type must be one of {', '.join(CATALOGUE_MODELS)}",
                                      field='item_type')
    if quantity is None or int(quantity) < 1:
        raise BusinessValidationError('Quantity must be at least 1', field='quantity')
    if unit_price is None or _money(unit_price, 'unit_price') < 0:
        raise BusinessValidationError('Unit price cannot be negative', field='unit_price')

    if item_id is not None:
        model = CATALOGUE_MODELS[item_type]
        if not model.objects.filter(pk=item_id).exists():
            raise NotFoundError(f"{item_type.title()} {item_id} not found", field='item_id')


def _create_item(invoice, item_type, description, quantity, unit_price, item_id=None, tooth_number=''):
    _validate_item(item_type, quantity, unit_price, item_id)
    return InvoiceItem.objects.create(
        invoice=invoice,
        item_type=item_type,
        item_id=item_id,
        description=description,
        quantity=int(quantity),
        unit_price=quantize_money(unit_price),
        tooth_number=tooth_number or '',
    )


def create_invoice(patient_id, appointment_id=None, treatment_plan_id=None, items=(), tax_rate=None,
                   discount_amount=0, invoice_date=None, due_date=None, payment_terms=None, notes='',
                   created_by=None):
    """
    Create a draft invoice with optional initial items.

    items: iterable of dicts with item_type, description, quantity,
    unit_price and optionally item_id / tooth_number.
    """
    from appointments.models import Appointment

    with transaction.atomic():
        try:
            patient = Patient.objects.get(pk=patient_id)
        except Patient.DoesNotExist:
            raise NotFoundError(f"Patient {patient_id} not found", field='patient_id')

        appointment = None
        if appointment_id:
            try:
                appointment = Appointment.objects.get(pk=appointment_id)
            except Appointment.DoesNotExist:
                raise NotFoundError(f"Appointment {appointment_id} not found", field='appointment_id')

        treatment_plan = None
        if treatment_plan_id:
            try:
                treatment_plan = TreatmentPlan.objects.get(pk=treatment_plan_id)
            except TreatmentPlan.DoesNotExist:
                raise NotFoundError(f"Treatment plan {treatment_plan_id} not found", field='treatment_plan_id')

        if tax_rate is None:
            tax_rate = SystemSetting.get_decimal_setting('default_tax_rate', Decimal('0'))
        tax_rate = _validate_tax_rate(tax_rate)

        discount_amount = _money(discount_amount or 0, 'discount_amount')
        if discount_amount < 0:
            raise BusinessValidationError('Discount cannot be negative', field='discount_amount')

        invoice_date = invoice_date or get_local_today()
        if due_date is None:
            due_date = invoice_date + timedelta(days=SystemSetting.get_int_setting('invoice_due_days', 30))
        if due_date < invoice_date:
            raise BusinessValidationError('Due date cannot be before the invoice date', field='due_date')

        invoice = Invoice.objects.create(
            invoice_number=next_invoice_number(),
            patient=patient,
            appointment=appointment,
            treatment_plan=treatment_plan,
            invoice_date=invoice_date,
            due_date=due_date,
            tax_rate=tax_rate,
            discount_amount=discount_amount,
            payment_terms=payment_terms or SystemSetting.get_setting('default_payment_terms', 'Net 30'),
            notes=notes or '',
            created_by=created_by if created_by and created_by.is_authenticated else None,
        )

        for item in items:
            _create_item(
                invoice,
                item_type=item.get('item_type'),
                description=item.get('description', ''),
                quantity=item.get('quantity', 1),
                unit_price=item.get('unit_price'),
                item_id=item.get('item_id'),
                tooth_number=item.get('tooth_number', ''),
            )

        gross = compute_totals([i.line_total for i in invoice.items.all()], tax_rate, 0, ()).total_amount
        if discount_amount > gross:
            raise BusinessValidationError('Discount cannot exceed subtotal plus tax', field='discount_amount')

        recalculate(invoice)
        logger.info(f"Invoice {invoice.invoice_number} created for {patient.patient_number}: {invoice.total_amount}")
        AuditLog.log_action(user=created_by, action='create', model_instance=invoice,
                            description=f"Invoice created, total {invoice.total_amount}")
    return invoice


def add_item(invoice_id, item_type, description, quantity, unit_price, item_id=None, tooth_number=''):
    with transaction.atomic():
        invoice = lock_invoice(invoice_id)
        _ensure_editable(invoice, 'add items')
        item = _create_item(invoice, item_type, description, quantity, unit_price, item_id, tooth_number)
        recalculate(invoice)
        logger.info(f"Invoice {invoice.invoice_number}: added {item} ({item.line_total})")
    return item, invoice


def remove_item(invoice_id, item_pk):
    with transaction.atomic():
        invoice = lock_invoice(invoice_id)
        _ensure_editable(invoice, 'remove items')
        try:
            item = invoice.items.get(pk=item_pk)
        except InvoiceItem.DoesNotExist:
            raise NotFoundError(f"Item {item_pk} is not on invoice {invoice.invoice_number}", field='item_id')
        item.delete()
        recalculate(invoice)
        logger.info(f"Invoice {invoice.invoice_number}: removed item {item_pk}")
    return invoice


def apply_discount(invoice_id, amount, performed_by=None):
    """Set the invoice discount; it may not exceed subtotal plus tax"""
    with transaction.atomic():
        invoice = lock_invoice(invoice_id)
        _ensure_editable(invoice, 'change the discount')

        amount = _money(amount, 'discount_amount')
        if amount < 0:
            raise BusinessValidationError('Discount cannot be negative', field='discount_amount')
        if amount > invoice.subtotal + invoice.tax_amount:
            raise BusinessValidationError(
                'Discount cannot exceed subtotal plus tax',
                field='discount_amount',
                details={'maximum': str(invoice.subtotal + invoice.tax_amount)},
            )

        old_discount = invoice.discount_amount
        invoice.discount_amount = amount
        recalculate(invoice)
        logger.info(f"Invoice {invoice.invoice_number}: discount {old_discount} -> {amount}")
        AuditLog.log_action(user=performed_by, action='update', model_instance=invoice,
                            changes={'discount_amount': {'old': str(old_discount), 'new': str(amount)}})
    return invoice


def set_tax_rate(invoice_id, tax_rate):
    with transaction.atomic():
        invoice = lock_invoice(invoice_id)
        _ensure_editable(invoice, 'change the tax rate')
        invoice.tax_rate = _validate_tax_rate(tax_rate)
        invoice.save(update_fields=['tax_rate', 'updated_at'])
        recalculate(invoice)
    return invoice


def mark_sent(invoice_id, performed_by=None):
    """draft -> sent. Delivery itself (email/PDF) happens elsewhere."""
    with transaction.atomic():
        invoice = lock_invoice(invoice_id)
        if invoice.status != Invoice.STATUS_DRAFT:
            raise InvalidTransitionError(
                f"Only draft invoices can be sent; {invoice.invoice_number} is {invoice.get_status_display().lower()}",
                details={'status': invoice.status},
            )
        invoice.status = Invoice.STATUS_SENT
        invoice.sent_at = timezone.now()
        invoice.save(update_fields=['status', 'sent_at', 'updated_at'])
        logger.info(f"Invoice {invoice.invoice_number} marked as sent")
        AuditLog.log_action(user=performed_by, action='status_change', model_instance=invoice,
                            changes=AuditLog.status_change(Invoice.STATUS_DRAFT, Invoice.STATUS_SENT))
    return invoice


def cancel_invoice(invoice_id, reason=None, performed_by=None):
    with transaction.atomic():
        invoice = lock_invoice(invoice_id)
        if invoice.status in (Invoice.STATUS_PAID, Invoice.STATUS_CANCELLED):
            raise InvalidTransitionError(
                f"Cannot cancel invoice {invoice.invoice_number}: it is {invoice.get_status_display().lower()}",
                details={'status': invoice.status},
            )
        old_status = invoice.status
        invoice.status = Invoice.STATUS_CANCELLED
        if reason:
            invoice.notes = f"{invoice.notes}\n\nCancellation reason: {reason}" if invoice.notes \
                else f"Cancellation reason: {reason}"
        invoice.save(update_fields=['status', 'notes', 'updated_at'])
        logger.info(f"Invoice {invoice.invoice_number} cancelled")
        AuditLog.log_action(user=performed_by, action='cancel', model_instance=invoice,
                            changes=AuditLog.status_change(old_status, invoice.status),
                            description=reason or '')
    return invoice


def delete_invoice(invoice_id, performed_by=None):
    """Delete an invoice and its items. Invoices with payments are kept."""
    with transaction.atomic():
        invoice = lock_invoice(invoice_id)
        if invoice.payments.exists():
            raise ConflictError(
                f"Invoice {invoice.invoice_number} has payments and cannot be deleted",
                code='INVOICE_HAS_PAYMENTS',
            )
        number = invoice.invoice_number
        AuditLog.log_action(user=performed_by, action='delete', model_instance=invoice,
                            description=f"Invoice {number} deleted")
        invoice.delete()
        logger.info(f"Invoice {number} deleted")
    return number


def overdue_invoices(today=None):
    with data_access('listing overdue invoices'):
        return list(Invoice.objects.overdue(today).select_related('patient').order_by('due_date'))


def outstanding_balance(patient_id):
    """Total still owed by a patient across open invoices"""
    with data_access('summing patient balance'):
        total = outstanding_total(Invoice.objects.open().filter(patient_id=patient_id))
    return max(total, ZERO)
