# patients/models.py
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models


class Patient(models.Model):
    """Patient record referenced by appointments and invoices"""
    patient_number = models.CharField(max_length=20, unique=True)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    date_of_birth = models.DateField(null=True, blank=True)
    address = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['last_name', 'first_name']
        indexes = [
            models.Index(fields=['last_name', 'first_name'], name='patient_name_idx'),
            models.Index(fields=['email'], name='patient_email_idx'),
        ]

    def __str__(self):
        return f"{self.full_name} ({self.patient_number})"

    def save(self, *args, **kwargs):
        if not self.patient_number:
            from core.sequences import next_number
            self.patient_number = next_number('patient', 'P')
        super().save(*args, **kwargs)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()


class TreatmentPlan(models.Model):
    """
    Planned course of treatment for a patient.
    Invoices may reference the plan they bill against.
    """
    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('active', 'Active'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    plan_number = models.CharField(max_length=20, unique=True)
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='treatment_plans')
    dentist = models.ForeignKey('users.User', on_delete=models.PROTECT, null=True, blank=True,
                                related_name='treatment_plans')
    title = models.CharField(max_length=200)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='draft')
    estimated_cost = models.DecimalField(max_digits=10, decimal_places=2, default=0,
                                         validators=[MinValueValidator(Decimal('0'))])
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.plan_number} - {self.title}"

    def save(self, *args, **kwargs):
        if not self.plan_number:
            from core.sequences import next_number
            self.plan_number = next_number('treatment_plan', 'TP')
        super().save(*args, **kwargs)
