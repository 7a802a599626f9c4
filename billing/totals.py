"""Invoice totals and balance reconciliation.

Rounding policy: every line total is rounded to cents (ROUND_HALF_UP), the
subtotal is the exact sum of rounded lines, and tax is rounded once on the
subtotal.
"""
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.db.models import Sum

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0.00')


def quantize_money(value):
    """Round to cents. NaN and infinities raise InvalidOperation."""
    value = Decimal(str(value))
    if not value.is_finite():
        raise InvalidOperation(f"{value} is not a finite amount")
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(quantity, unit_price):
    return quantize_money(Decimal(quantity) * Decimal(str(unit_price)))


@dataclass(frozen=True)
class InvoiceTotals:
    """Derived money columns of an invoice"""

    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    discount_clamped: bool = False


def compute_totals(line_totals, tax_rate, discount_amount, payment_amounts):
    """
    Pure totals calculation.

    The discount is clamped to [0, subtotal + tax] so total_amount never
    goes negative; discount_clamped reports when that happened.
    amount_paid is the signed sum of payment_amounts (refunds are negative).
    """
    subtotal = quantize_money(sum((Decimal(v) for v in line_totals), ZERO))
    tax_amount = quantize_money(subtotal * Decimal(str(tax_rate)))
    gross = subtotal + tax_amount

    requested = quantize_money(discount_amount or 0)
    discount = min(max(requested, ZERO), gross)

    total_amount = gross - discount
    amount_paid = quantize_money(sum((Decimal(v) for v in payment_amounts), ZERO))

    return InvoiceTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        discount_amount=discount,
        total_amount=total_amount,
        amount_paid=amount_paid,
        balance_due=total_amount - amount_paid,
        discount_clamped=discount != requested,
    )


def settle_status(current_status, amount_paid, balance_due, sent_at=None):
    """
    Status implied by the paid amount. Cancelled invoices keep their status.

    Returns:
        'paid' when fully (or over) paid, 'partial' when something is paid,
        and 'sent'/'draft' when payments drop back to zero.
    """
    from .models import Invoice

    if current_status == Invoice.STATUS_CANCELLED:
        return current_status
    if amount_paid > 0:
        return Invoice.STATUS_PAID if balance_due <= 0 else Invoice.STATUS_PARTIAL
    if current_status in (Invoice.STATUS_PARTIAL, Invoice.STATUS_PAID):
        return Invoice.STATUS_SENT if sent_at else Invoice.STATUS_DRAFT
    return current_status


def recalculate(invoice):
    """
    Recompute and save the invoice's money columns and status.

    Reads items and non-voided payments from the database, so call it inside
    the transaction that changed them. Idempotent.
    """
    from .models import Payment

    line_totals = [item.line_total for item in invoice.items.all()]
    payment_amounts = (
        invoice.payments.exclude(status=Payment.STATUS_VOIDED)
        .values_list('amount', flat=True)
    )

    totals = compute_totals(line_totals, invoice.tax_rate, invoice.discount_amount, payment_amounts)
    if totals.discount_clamped:
        logger.warning(
            f"Invoice {invoice.invoice_number}: discount {invoice.discount_amount} "
            f"clamped to {totals.discount_amount}"
        )

    old_status = invoice.status
    invoice.subtotal = totals.subtotal
    invoice.tax_amount = totals.tax_amount
    invoice.discount_amount = totals.discount_amount
    invoice.total_amount = totals.total_amount
    invoice.amount_paid = totals.amount_paid
    invoice.balance_due = totals.balance_due
    invoice.status = settle_status(invoice.status, totals.amount_paid, totals.balance_due, invoice.sent_at)
    invoice.save(update_fields=[
        'subtotal', 'tax_amount', 'discount_amount', 'total_amount',
        'amount_paid', 'balance_due', 'status', 'updated_at',
    ])

    if old_status != invoice.status:
        logger.info(f"Invoice {invoice.invoice_number} status {old_status} -> {invoice.status}")
    return invoice


def outstanding_total(queryset):
    """Sum of balance_due across a queryset of invoices"""
    return queryset.aggregate(total=Sum('balance_due'))['total'] or ZERO
