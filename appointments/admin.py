# appointments/admin.py
from django.contrib import admin
from .models import Appointment


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ['appointment_number', 'patient', 'dentist', 'appointment_date', 'time_range', 'status', 'appointment_type']
    list_filter = ['status', 'appointment_type', 'dentist', 'appointment_date']
    search_fields = ['appointment_number', 'patient__first_name', 'patient__last_name', 'chief_complaint']
    date_hierarchy = 'appointment_date'
    readonly_fields = ['appointment_number', 'status', 'confirmed_at', 'started_at', 'completed_at',
                       'cancelled_at', 'created_by', 'created_at', 'updated_at']

    fieldsets = (
        ('Booking', {
            'fields': ('appointment_number', 'patient', 'dentist', 'service', 'appointment_type')
        }),
        ('Date & Time', {
            'fields': ('appointment_date', 'start_time', 'duration_minutes')
        }),
        ('Status', {
            'fields': ('status', 'confirmed_at', 'started_at', 'completed_at', 'cancelled_at')
        }),
        ('Clinical Notes', {
            'fields': ('chief_complaint', 'treatment_notes', 'next_appointment_recommended',
                       'next_appointment_notes', 'notes')
        }),
        ('Audit', {
            'fields': ('created_by', 'created_at', 'updated_at'),
            'classes': ['collapse']
        }),
    )

    def time_range(self, obj):
        return obj.time_display
    time_range.short_description = 'Time'

    def has_delete_permission(self, request, obj=None):
        # Appointments are cancelled, never deleted
        return False
