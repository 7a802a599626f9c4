# billing/urls.py
from django.urls import path
from . import views

app_name = 'billing'

urlpatterns = [
    # Invoices
    path('invoices/', views.invoice_list, name='invoice_list'),
    path('invoices/overdue/', views.overdue_invoices, name='overdue_invoices'),
    path('invoices/number/<str:number>/', views.invoice_by_number, name='invoice_by_number'),
    path('invoices/<int:pk>/', views.invoice_detail, name='invoice_detail'),
    path('invoices/<int:pk>/items/', views.invoice_add_item, name='invoice_add_item'),
    path('invoices/<int:pk>/items/<int:item_pk>/remove/', views.invoice_remove_item, name='invoice_remove_item'),
    path('invoices/<int:pk>/discount/', views.invoice_discount, name='invoice_discount'),
    path('invoices/<int:pk>/tax-rate/', views.invoice_tax_rate, name='invoice_tax_rate'),
    path('invoices/<int:pk>/send/', views.invoice_send, name='invoice_send'),
    path('invoices/<int:pk>/cancel/', views.invoice_cancel, name='invoice_cancel'),
    path('invoices/<int:pk>/delete/', views.invoice_delete, name='invoice_delete'),

    # Payments
    path('invoices/<int:pk>/payments/', views.invoice_payments, name='invoice_payments'),
    path('payments/', views.payment_list, name='payment_list'),
    path('payments/number/<str:number>/', views.payment_by_number, name='payment_by_number'),
    path('payments/<int:pk>/void/', views.payment_void, name='payment_void'),
    path('payments/<int:pk>/refund/', views.payment_refund, name='payment_refund'),
]
