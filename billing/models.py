# billing/models.py
from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from core.utils import get_local_today


class InvoiceQuerySet(models.QuerySet):
    def open(self):
        return self.filter(status__in=Invoice.OPEN_STATUSES)

    def overdue(self, today=None):
        """Open invoices past their due date with money still owed"""
        today = today or get_local_today()
        return self.open().filter(due_date__lt=today, balance_due__gt=0)


class Invoice(models.Model):
    """
    Patient invoice. Money columns are derived by billing.totals.recalculate()
    from the items and non-voided payments; never edit them directly.
    """
    STATUS_DRAFT = 'draft'
    STATUS_SENT = 'sent'
    STATUS_PARTIAL = 'partial'
    STATUS_PAID = 'paid'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_SENT, 'Sent'),
        (STATUS_PARTIAL, 'Partially Paid'),
        (STATUS_PAID, 'Paid'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    OPEN_STATUSES = [STATUS_SENT, STATUS_PARTIAL]

    invoice_number = models.CharField(max_length=20, unique=True)
    patient = models.ForeignKey('patients.Patient', on_delete=models.PROTECT, related_name='invoices')
    appointment = models.ForeignKey('appointments.Appointment', on_delete=models.SET_NULL, null=True, blank=True,
                                    related_name='invoices')
    treatment_plan = models.ForeignKey('patients.TreatmentPlan', on_delete=models.SET_NULL, null=True, blank=True,
                                       related_name='invoices')

    invoice_date = models.DateField()
    due_date = models.DateField()

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    tax_rate = models.DecimalField(max_digits=5, decimal_places=4, default=0,
                                   validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('1'))],
                                   help_text="Fraction, e.g. 0.0800 for 8%")
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    balance_due = models.DecimalField(max_digits=12, decimal_places=2, default=0,
                                      help_text="Negative when the patient holds a credit")

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT)
    payment_terms = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)

    created_by = models.ForeignKey('users.User', on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='created_invoices')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = InvoiceQuerySet.as_manager()

    class Meta:
        ordering = ['-invoice_date', '-invoice_number']
        indexes = [
            models.Index(fields=['status'], name='invoice_status_idx'),
            models.Index(fields=['patient'], name='invoice_patient_idx'),
            models.Index(fields=['due_date'], name='invoice_due_date_idx'),
        ]

    def __str__(self):
        return f"{self.invoice_number} - {self.total_amount}"

    @property
    def is_overdue(self):
        return (self.status in self.OPEN_STATUSES
                and self.balance_due > 0
                and self.due_date < get_local_today())

    @property
    def days_overdue(self):
        if not self.is_overdue:
            return 0
        return (get_local_today() - self.due_date).days

    def as_dict(self, include_lines=False):
        data = {
            'id': self.pk,
            'invoice_number': self.invoice_number,
            'patient_id': self.patient_id,
            'appointment_id': self.appointment_id,
            'treatment_plan_id': self.treatment_plan_id,
            'invoice_date': self.invoice_date.isoformat(),
            'due_date': self.due_date.isoformat(),
            'subtotal': str(self.subtotal),
            'tax_rate': str(self.tax_rate),
            'tax_amount': str(self.tax_amount),
            'discount_amount': str(self.discount_amount),
            'total_amount': str(self.total_amount),
            'amount_paid': str(self.amount_paid),
            'balance_due': str(self.balance_due),
            'status': self.status,
            'status_display': self.get_status_display(),
            'payment_terms': self.payment_terms,
            'notes': self.notes,
            'sent_at': self.sent_at.isoformat() if self.sent_at else None,
            'is_overdue': self.is_overdue,
            'days_overdue': self.days_overdue,
        }
        if include_lines:
            data['items'] = [item.as_dict() for item in self.items.all()]
            data['payments'] = [payment.as_dict() for payment in self.payments.all()]
        return data


class InvoiceItem(models.Model):
    """Invoice line for a catalogue service or product"""
    TYPE_SERVICE = 'service'
    TYPE_PRODUCT = 'product'

    ITEM_TYPE_CHOICES = [
        (TYPE_SERVICE, 'Service'),
        (TYPE_PRODUCT, 'Product'),
    ]

    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='items')
    item_type = models.CharField(max_length=10, choices=ITEM_TYPE_CHOICES)
    item_id = models.PositiveIntegerField(null=True, blank=True,
                                          help_text="Service or product id; kept even if the catalogue entry changes")
    description = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(max_digits=10, decimal_places=2,
                                     validators=[MinValueValidator(Decimal('0.00'))])
    line_total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    tooth_number = models.CharField(max_length=10, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.description} x{self.quantity}"

    def save(self, *args, **kwargs):
        from .totals import line_total
        self.line_total = line_total(self.quantity, self.unit_price)
        super().save(*args, **kwargs)

    def as_dict(self):
        return {
            'id': self.pk,
            'item_type': self.item_type,
            'item_id': self.item_id,
            'description': self.description,
            'quantity': self.quantity,
            'unit_price': str(self.unit_price),
            'line_total': str(self.line_total),
            'tooth_number': self.tooth_number,
        }


class Payment(models.Model):
    """
    Money received against an invoice. Refunds are separate rows with a
    negative amount pointing at the refunded payment through refund_of.
    """
    STATUS_COMPLETED = 'completed'
    STATUS_VOIDED = 'voided'
    STATUS_REFUNDED = 'refunded'

    STATUS_CHOICES = [
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_VOIDED, 'Voided'),
        (STATUS_REFUNDED, 'Refunded'),
    ]

    METHOD_CHOICES = [
        ('cash', 'Cash'),
        ('credit_card', 'Credit Card'),
        ('debit_card', 'Debit Card'),
        ('check', 'Check'),
        ('bank_transfer', 'Bank Transfer'),
        ('insurance', 'Insurance'),
    ]

    payment_number = models.CharField(max_length=20, unique=True)
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name='payments')
    patient = models.ForeignKey('patients.Patient', on_delete=models.PROTECT, related_name='payments')

    payment_date = models.DateField()
    amount = models.DecimalField(max_digits=12, decimal_places=2, help_text="Negative for refunds")
    payment_method = models.CharField(max_length=20, choices=METHOD_CHOICES)
    payment_reference = models.CharField(max_length=100, blank=True)
    transaction_id = models.CharField(max_length=100, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_COMPLETED)
    refund_of = models.ForeignKey('self', on_delete=models.PROTECT, null=True, blank=True,
                                  related_name='refunds')
    notes = models.TextField(blank=True)

    recorded_by = models.ForeignKey('users.User', on_delete=models.SET_NULL, null=True, blank=True,
                                    related_name='recorded_payments')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['payment_date', 'id']
        indexes = [
            models.Index(fields=['status'], name='payment_status_idx'),
            models.Index(fields=['invoice', 'status'], name='payment_invoice_status_idx'),
            models.Index(fields=['payment_date'], name='payment_date_idx'),
        ]

    def __str__(self):
        return f"{self.payment_number} - {self.amount}"

    @property
    def is_refund(self):
        return self.refund_of_id is not None

    def as_dict(self):
        return {
            'id': self.pk,
            'payment_number': self.payment_number,
            'invoice_id': self.invoice_id,
            'patient_id': self.patient_id,
            'payment_date': self.payment_date.isoformat(),
            'amount': str(self.amount),
            'payment_method': self.payment_method,
            'payment_reference': self.payment_reference,
            'transaction_id': self.transaction_id,
            'status': self.status,
            'refund_of_id': self.refund_of_id,
            'notes': self.notes,
        }
