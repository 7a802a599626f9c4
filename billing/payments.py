"""Payment recording, voiding and refunds.

Each operation locks the owning invoice row, so payments against one
invoice are applied one at a time, and recalculates the invoice before
the transaction commits.
"""
import logging

from django.db import transaction

from core.exceptions import BusinessValidationError, InvalidTransitionError, NotFoundError, data_access
from core.models import AuditLog
from core.sequences import next_number
from core.utils import get_local_today

from .models import Invoice, Payment
from .services import lock_invoice
from .totals import quantize_money, recalculate

logger = logging.getLogger(__name__)

PAYMENT_METHODS = [value for value, _ in Payment.METHOD_CHOICES]


def next_payment_number(on=None):
    return next_number('payment', 'PAY', on=on)


def _append_note(existing, text):
    return f"{existing}\n\n{text}" if existing else text


def _recorder(user):
    return user if user is not None and user.is_authenticated else None


def _lock_payment(payment_id):
    """
    Lock the payment's invoice, then the payment itself.

    The invoice is always locked first so payment operations and invoice
    edits acquire rows in the same order.
    """
    try:
        invoice_id = Payment.objects.values_list('invoice_id', flat=True).get(pk=payment_id)
    except Payment.DoesNotExist:
        raise NotFoundError(f"Payment {payment_id} not found")

    invoice = lock_invoice(invoice_id)
    payment = Payment.objects.select_for_update().get(pk=payment_id)
    return payment, invoice


@transaction.atomic
def apply_payment(invoice_id, amount, method, reference='', notes='', transaction_id='',
                  payment_date=None, recorded_by=None):
    """
    Record money received against an invoice.

    Overpayment is accepted: the invoice becomes 'paid' with a negative
    balance_due representing the patient's credit.

    Returns:
        (payment, invoice) with the invoice already recalculated
    """
    try:
        amount = quantize_money(amount)
    except ArithmeticError:
        raise BusinessValidationError('Payment amount must be a number', field='amount')
    if amount <= 0:
        raise BusinessValidationError('Payment amount must be greater than 0', field='amount')
    if method not in PAYMENT_METHODS:
        raise BusinessValidationError(f"Payment method must be one of {', '.join(PAYMENT_METHODS)}",
                                      field='method')

    invoice = lock_invoice(invoice_id)
    if invoice.status == Invoice.STATUS_CANCELLED:
        raise InvalidTransitionError(f"Cannot record a payment on cancelled invoice {invoice.invoice_number}",
                                     details={'status': invoice.status})

    payment = Payment.objects.create(
        payment_number=next_payment_number(),
        invoice=invoice,
        patient_id=invoice.patient_id,
        payment_date=payment_date or get_local_today(),
        amount=amount,
        payment_method=method,
        payment_reference=reference or '',
        transaction_id=transaction_id or '',
        notes=notes or '',
        recorded_by=_recorder(recorded_by),
    )
    recalculate(invoice)

    if invoice.balance_due < 0:
        logger.info(f"Invoice {invoice.invoice_number} overpaid, credit {-invoice.balance_due}")
    logger.info(
        f"Payment {payment.payment_number} of {amount} ({method}) applied to {invoice.invoice_number}; "
        f"balance {invoice.balance_due}"
    )
    AuditLog.log_action(
        user=recorded_by,
        action='payment',
        model_instance=payment,
        changes={'amount_paid': {'old': str(invoice.amount_paid - amount), 'new': str(invoice.amount_paid)}},
        description=f"Payment of {amount} on {invoice.invoice_number}",
    )
    return payment, invoice


@transaction.atomic
def void_payment(payment_id, reason=None, voided_by=None):
    """
    Void a completed payment; its amount leaves the invoice's amount_paid.

    Voiding a refund record reinstates the refunded payment.
    """
    payment, invoice = _lock_payment(payment_id)
    if payment.status != Payment.STATUS_COMPLETED:
        raise InvalidTransitionError(
            f"Only completed payments can be voided; {payment.payment_number} is {payment.status}",
            details={'status': payment.status},
        )

    payment.status = Payment.STATUS_VOIDED
    if reason:
        payment.notes = _append_note(payment.notes, f"Void reason: {reason}")
    payment.save(update_fields=['status', 'notes', 'updated_at'])

    if payment.refund_of_id:
        original = Payment.objects.select_for_update().get(pk=payment.refund_of_id)
        if original.status == Payment.STATUS_REFUNDED:
            original.status = Payment.STATUS_COMPLETED
            original.save(update_fields=['status', 'updated_at'])
            logger.info(f"Payment {original.payment_number} reinstated after refund {payment.payment_number} was voided")

    recalculate(invoice)
    logger.info(f"Payment {payment.payment_number} voided; invoice {invoice.invoice_number} balance {invoice.balance_due}")
    AuditLog.log_action(
        user=voided_by,
        action='void',
        model_instance=payment,
        changes=AuditLog.status_change(Payment.STATUS_COMPLETED, Payment.STATUS_VOIDED),
        description=reason or '',
    )
    return payment


@transaction.atomic
def refund_payment(payment_id, refund_amount=None, reason=None, refunded_by=None):
    """
    Refund part or all of a completed payment.

    A new payment row with the negated amount is recorded against the same
    invoice and the original is marked 'refunded'. The invoice is
    recalculated, so its balance_due grows by the refunded amount.

    Returns:
        The refund payment record
    """
    original, invoice = _lock_payment(payment_id)
    if original.status != Payment.STATUS_COMPLETED or original.amount <= 0 or original.is_refund:
        raise InvalidTransitionError(
            f"Payment {original.payment_number} cannot be refunded",
            details={'status': original.status},
        )

    if refund_amount is None:
        refund_amount = original.amount
    try:
        refund_amount = quantize_money(refund_amount)
    except ArithmeticError:
        raise BusinessValidationError('Refund amount must be a number', field='refund_amount')
    if refund_amount <= 0:
        raise BusinessValidationError('Refund amount must be greater than 0', field='refund_amount')
    if refund_amount > original.amount:
        raise BusinessValidationError(
            f"Refund amount cannot exceed the original payment of {original.amount}",
            field='refund_amount',
            details={'maximum': str(original.amount)},
        )

    refund = Payment.objects.create(
        payment_number=next_payment_number(),
        invoice=invoice,
        patient_id=original.patient_id,
        payment_date=get_local_today(),
        amount=-refund_amount,
        payment_method=original.payment_method,
        payment_reference=f"REFUND-{original.payment_number}",
        refund_of=original,
        notes=f"Refund reason: {reason}" if reason else '',
        recorded_by=_recorder(refunded_by),
    )

    original.status = Payment.STATUS_REFUNDED
    if reason:
        original.notes = _append_note(original.notes, f"Refund reason: {reason}")
    original.save(update_fields=['status', 'notes', 'updated_at'])

    recalculate(invoice)
    logger.info(
        f"Refund {refund.payment_number} of {refund_amount} against {original.payment_number}; "
        f"invoice {invoice.invoice_number} balance {invoice.balance_due}"
    )
    AuditLog.log_action(
        user=refunded_by,
        action='refund',
        model_instance=refund,
        changes={'amount': {'old': None, 'new': str(-refund_amount)}},
        description=f"Refund of {refund_amount} against {original.payment_number}",
    )
    return refund


def payments_for_invoice(invoice_id):
    return list(Payment.objects.filter(invoice_id=invoice_id).select_related('refund_of'))


def payments_for_patient(patient_id):
    """Every payment recorded for the patient, newest first"""
    with data_access('listing patient payments'):
        return list(
            Payment.objects.filter(patient_id=patient_id)
            .select_related('invoice', 'refund_of')
            .order_by('-payment_date', '-pk')
        )


def get_payment_by_number(payment_number):
    try:
        with data_access('loading payment'):
            return Payment.objects.select_related('invoice', 'refund_of').get(payment_number=payment_number)
    except Payment.DoesNotExist:
        raise NotFoundError(f"Payment {payment_number} not found")
