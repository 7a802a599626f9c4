# patients/admin.py
from django.contrib import admin
from .models import Patient, TreatmentPlan


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ['patient_number', 'last_name', 'first_name', 'email', 'phone', 'is_active']
    list_filter = ['is_active']
    search_fields = ['patient_number', 'first_name', 'last_name', 'email']
    readonly_fields = ['patient_number', 'created_at', 'updated_at']


@admin.register(TreatmentPlan)
class TreatmentPlanAdmin(admin.ModelAdmin):
    list_display = ['plan_number', 'patient', 'dentist', 'title', 'status', 'estimated_cost']
    list_filter = ['status']
    search_fields = ['plan_number', 'title', 'patient__last_name']
    readonly_fields = ['plan_number', 'created_at', 'updated_at']
