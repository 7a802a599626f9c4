# billing/views.py - JSON endpoints for invoices and payments
import logging

from django.http import JsonResponse

from core.api import api_view, get_date, get_decimal, get_int, require_fields
from core.exceptions import BusinessValidationError

from . import payments, services
from .models import Invoice

logger = logging.getLogger(__name__)


def _invoice_response(invoice, message=None, status=200):
    body = {'success': True, 'invoice': invoice.as_dict(include_lines=True)}
    if message:
        body['message'] = message
    return JsonResponse(body, status=status)


@api_view('billing', methods=('GET', 'POST'))
def invoice_list(request):
    """GET lists invoices (?patient_id=, ?status=); POST creates one"""
    if request.method == 'POST':
        return _create_invoice(request)

    invoices = Invoice.objects.select_related('patient')
    patient_id = get_int(request.GET, 'patient_id', required=False)
    if patient_id:
        invoices = invoices.filter(patient_id=patient_id)

    status = request.GET.get('status')
    if status:
        if status not in dict(Invoice.STATUS_CHOICES):
            raise BusinessValidationError(f"Unknown status '{status}'", field='status')
        invoices = invoices.filter(status=status)

    body = {'success': True, 'invoices': [invoice.as_dict() for invoice in invoices]}
    if patient_id:
        body['outstanding_balance'] = str(services.outstanding_balance(patient_id))
    return JsonResponse(body)


def _create_invoice(request):
    data = request.data
    require_fields(data, 'patient_id')

    items = data.get('items') or []
    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        raise BusinessValidationError('items must be a list of objects', field='items')

    tax_rate = get_decimal(data, 'tax_rate', required=False)
    invoice = services.create_invoice(
        patient_id=get_int(data, 'patient_id'),
        appointment_id=get_int(data, 'appointment_id', required=False),
        treatment_plan_id=get_int(data, 'treatment_plan_id', required=False),
        items=[_item_kwargs(item) for item in items],
        tax_rate=tax_rate,
        discount_amount=get_decimal(data, 'discount_amount', required=False) or 0,
        invoice_date=get_date(data, 'invoice_date', required=False),
        due_date=get_date(data, 'due_date', required=False),
        payment_terms=data.get('payment_terms'),
        notes=data.get('notes', ''),
        created_by=request.user,
    )
    return _invoice_response(invoice, 'Invoice created', status=201)


def _item_kwargs(data):
    require_fields(data, 'item_type', 'description', 'unit_price')
    quantity = get_int(data, 'quantity', required=False)
    return {
        'item_type': data.get('item_type'),
        'description': data.get('description'),
        'quantity': 1 if quantity is None else quantity,
        'unit_price': get_decimal(data, 'unit_price'),
        'item_id': get_int(data, 'item_id', required=False),
        'tooth_number': data.get('tooth_number', ''),
    }


@api_view('billing')
def invoice_detail(request, pk):
    return _invoice_response(services.get_invoice(pk))


@api_view('billing')
def invoice_by_number(request, number):
    return _invoice_response(services.get_invoice_by_number(number))


@api_view('billing')
def overdue_invoices(request):
    today = get_date(request.GET, 'today', required=False)
    invoices = services.overdue_invoices(today)
    return JsonResponse({
        'success': True,
        'invoices': [invoice.as_dict() for invoice in invoices],
    })


@api_view('billing', methods=('POST',))
def invoice_add_item(request, pk):
    item_data = _item_kwargs(request.data)
    item, invoice = services.add_item(pk, **item_data)
    return _invoice_response(invoice, f"Added {item.description}", status=201)


@api_view('billing', methods=('POST', 'DELETE'))
def invoice_remove_item(request, pk, item_pk):
    invoice = services.remove_item(pk, item_pk)
    return _invoice_response(invoice, 'Item removed')


@api_view('billing', methods=('POST',))
def invoice_discount(request, pk):
    invoice = services.apply_discount(pk, get_decimal(request.data, 'discount_amount'),
                                      performed_by=request.user)
    return _invoice_response(invoice, 'Discount applied')


@api_view('billing', methods=('POST',))
def invoice_tax_rate(request, pk):
    invoice = services.set_tax_rate(pk, get_decimal(request.data, 'tax_rate'))
    return _invoice_response(invoice, 'Tax rate updated')


@api_view('billing', methods=('POST',))
def invoice_send(request, pk):
    invoice = services.mark_sent(pk, performed_by=request.user)
    return _invoice_response(invoice, 'Invoice marked as sent')


@api_view('billing', methods=('POST',))
def invoice_cancel(request, pk):
    invoice = services.cancel_invoice(pk, reason=request.data.get('reason'), performed_by=request.user)
    return _invoice_response(invoice, 'Invoice cancelled')


@api_view('billing', methods=('POST', 'DELETE'))
def invoice_delete(request, pk):
    number = services.delete_invoice(pk, performed_by=request.user)
    return JsonResponse({'success': True, 'message': f"Invoice {number} deleted"})


@api_view('billing', methods=('GET', 'POST'))
def invoice_payments(request, pk):
    """GET lists payments on the invoice; POST applies a new one"""
    if request.method == 'GET':
        services.get_invoice(pk)
        return JsonResponse({
            'success': True,
            'payments': [payment.as_dict() for payment in payments.payments_for_invoice(pk)],
        })

    data = request.data
    require_fields(data, 'amount', 'payment_method')
    payment, invoice = payments.apply_payment(
        pk,
        amount=get_decimal(data, 'amount'),
        method=data.get('payment_method'),
        reference=data.get('payment_reference', ''),
        notes=data.get('notes', ''),
        transaction_id=data.get('transaction_id', ''),
        payment_date=get_date(data, 'payment_date', required=False),
        recorded_by=request.user,
    )
    return JsonResponse({
        'success': True,
        'message': f"Payment {payment.payment_number} recorded",
        'payment': payment.as_dict(),
        'invoice': invoice.as_dict(),
    }, status=201)


@api_view('billing')
def payment_list(request):
    """Payments for ?patient_id=, newest first"""
    patient_id = get_int(request.GET, 'patient_id')
    return JsonResponse({
        'success': True,
        'payments': [payment.as_dict() for payment in payments.payments_for_patient(patient_id)],
    })


@api_view('billing')
def payment_by_number(request, number):
    payment = payments.get_payment_by_number(number)
    return JsonResponse({'success': True, 'payment': payment.as_dict()})


@api_view('billing', methods=('POST',))
def payment_void(request, pk):
    payment = payments.void_payment(pk, reason=request.data.get('reason'), voided_by=request.user)
    return JsonResponse({
        'success': True,
        'message': f"Payment {payment.payment_number} voided",
        'payment': payment.as_dict(),
        'invoice': services.get_invoice(payment.invoice_id).as_dict(),
    })


@api_view('refunds', methods=('POST',))
def payment_refund(request, pk):
    refund = payments.refund_payment(
        pk,
        refund_amount=get_decimal(request.data, 'refund_amount', required=False),
        reason=request.data.get('reason'),
        refunded_by=request.user,
    )
    return JsonResponse({
        'success': True,
        'message': f"Refund {refund.payment_number} recorded",
        'payment': refund.as_dict(),
        'invoice': services.get_invoice(refund.invoice_id).as_dict(),
    }, status=201)
