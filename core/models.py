# core/models.py
from decimal import Decimal, InvalidOperation

from django.db import models


class SystemSetting(models.Model):
    """Clinic-wide key/value settings (tax rate, invoice terms, default durations)"""
    key = models.CharField(max_length=100, unique=True)
    value = models.TextField()
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    DEFAULTS = {
        'default_tax_rate': ('0', 'Tax rate applied to new invoices, as a fraction (0.08 = 8%)'),
        'invoice_due_days': ('30', 'Days between invoice date and due date'),
        'default_payment_terms': ('Net 30', 'Payment terms printed on new invoices'),
        'default_appointment_duration': ('60', 'Appointment length in minutes when none is given'),
    }

    class Meta:
        verbose_name = 'System Setting'
        verbose_name_plural = 'System Settings'
        ordering = ['key']

    def __str__(self):
        return f"{self.key}: {self.value}"

    @classmethod
    def get_setting(cls, key, default=None):
        """Get a setting value by key"""
        try:
            setting = cls.objects.get(key=key, is_active=True)
            return setting.value
        except cls.DoesNotExist:
            return default

    @classmethod
    def get_int_setting(cls, key, default=0):
        """Get an integer setting value"""
        try:
            setting = cls.objects.get(key=key, is_active=True)
            return int(setting.value)
        except (cls.DoesNotExist, ValueError):
            return default

    @classmethod
    def get_decimal_setting(cls, key, default=Decimal('0')):
        """Get a decimal setting value (money amounts and rates)"""
        try:
            setting = cls.objects.get(key=key, is_active=True)
            return Decimal(setting.value.strip())
        except (cls.DoesNotExist, InvalidOperation):
            return default

    @classmethod
    def set_setting(cls, key, value, description=''):
        """Set or update a setting"""
        setting, created = cls.objects.get_or_create(
            key=key,
            defaults={
                'value': str(value),
                'description': description,
                'is_active': True
            }
        )
        if not created:
            setting.value = str(value)
            setting.description = description
            setting.is_active = True
            setting.save()
        return setting

    @classmethod
    def initialize_defaults(cls):
        """Create any missing default settings. Returns (created, skipped) counts."""
        created_count = 0
        for key, (value, description) in cls.DEFAULTS.items():
            _, created = cls.objects.get_or_create(
                key=key,
                defaults={
                    'value': value,
                    'description': description,
                    'is_active': True
                }
            )
            if created:
                created_count += 1
        return created_count, len(cls.DEFAULTS) - created_count


class AuditLog(models.Model):
    """Audit trail of scheduling and billing actions"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('status_change', 'Status Change'),
        ('cancel', 'Cancel'),
        ('reschedule', 'Reschedule'),
        ('payment', 'Payment'),
        ('void', 'Void'),
        ('refund', 'Refund'),
    ]

    user = models.ForeignKey('users.User', on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)

    model_name = models.CharField(max_length=50)
    object_id = models.PositiveIntegerField(null=True, blank=True)
    object_repr = models.CharField(max_length=200, blank=True)

    changes = models.JSONField(default=dict, blank=True)
    description = models.TextField(blank=True, help_text="Human-readable description of the change")

    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['user', 'timestamp'], name='audit_user_ts_idx'),
            models.Index(fields=['model_name', 'timestamp'], name='audit_model_ts_idx'),
            models.Index(fields=['action', 'timestamp'], name='audit_action_ts_idx'),
        ]
        verbose_name = 'Audit Log'
        verbose_name_plural = 'Audit Logs'

    def __str__(self):
        user_str = self.user.username if self.user else 'System'
        return f"{user_str} {self.action} {self.model_name} at {self.timestamp}"

    @classmethod
    def log_action(cls, user, action, model_instance, changes=None, description=''):
        """
        Log an action with optional change details

        Args:
            user: User who performed the action (None for system actions)
            action: Action type (create, status_change, payment, ...)
            model_instance: The model instance that was changed
            changes: Dict of field changes {field_name: {'old': ..., 'new': ...}}
            description: Human-readable description
        """
        if user is not None and not getattr(user, 'is_authenticated', False):
            user = None

        return cls.objects.create(
            user=user,
            action=action,
            model_name=model_instance._meta.model_name,
            object_id=model_instance.pk,
            object_repr=str(model_instance)[:200],
            changes=changes or {},
            description=description
        )

    @classmethod
    def status_change(cls, old_status, new_status):
        return {'status': {'old': old_status, 'new': new_status}}


class NumberSequence(models.Model):
    """
    Monthly counter behind human-readable numbers (A2025030001, INV2025030001, ...).
    One row per (scope, YYYYMM); rows are locked while incremented.
    """
    scope = models.CharField(max_length=30, help_text="Counter scope, e.g. 'appointment', 'invoice'")
    period = models.CharField(max_length=6, help_text="Calendar month as YYYYMM")
    last_value = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['scope', 'period']
        constraints = [
            models.UniqueConstraint(fields=['scope', 'period'], name='unique_sequence_scope_period'),
        ]

    def __str__(self):
        return f"{self.scope} {self.period}: {self.last_value}"
