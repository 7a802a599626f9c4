# billing/admin.py
from django.contrib import admin
from .models import Invoice, InvoiceItem, Payment


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0
    fields = ['item_type', 'item_id', 'description', 'quantity', 'unit_price', 'line_total', 'tooth_number']
    readonly_fields = ['line_total']


class PaymentInline(admin.TabularInline):
    model = Payment
    fk_name = 'invoice'
    extra = 0
    fields = ['payment_number', 'payment_date', 'amount', 'payment_method', 'status', 'refund_of']
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ['invoice_number', 'patient', 'invoice_date', 'due_date', 'total_amount', 'balance_due', 'status']
    list_filter = ['status', 'invoice_date']
    search_fields = ['invoice_number', 'patient__first_name', 'patient__last_name', 'patient__patient_number']
    date_hierarchy = 'invoice_date'
    inlines = [InvoiceItemInline, PaymentInline]
    # Money columns are maintained by billing.totals.recalculate()
    readonly_fields = ['invoice_number', 'subtotal', 'tax_amount', 'total_amount', 'amount_paid',
                       'balance_due', 'sent_at', 'created_by', 'created_at', 'updated_at']


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['payment_number', 'invoice', 'patient', 'payment_date', 'amount', 'payment_method', 'status']
    list_filter = ['status', 'payment_method', 'payment_date']
    search_fields = ['payment_number', 'payment_reference', 'invoice__invoice_number']
    readonly_fields = ['payment_number', 'invoice', 'patient', 'amount', 'status', 'refund_of',
                       'recorded_by', 'created_at', 'updated_at']

    def has_delete_permission(self, request, obj=None):
        return False
