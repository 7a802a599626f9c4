# services/models.py
from django.db import models
from django.core.validators import MinValueValidator
from django.core.exceptions import ValidationError
from decimal import Decimal


class ActiveManager(models.Manager):
    def get_queryset(self):
        return super().get_queryset().filter(is_active=True)


class Service(models.Model):
    """Billable dental procedure"""
    name = models.CharField(max_length=200)
    code = models.CharField(max_length=20, blank=True, help_text="Procedure code (e.g., D1110)")
    description = models.TextField(blank=True)
    duration_minutes = models.PositiveIntegerField(
        default=60,
        validators=[MinValueValidator(1)],
        help_text="Default appointment length for this service in minutes"
    )
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Default price"
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = models.Manager()  # Default manager
    active = ActiveManager()  # Custom manager for active services only

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    def clean(self):
        """Model-level validation"""
        if self.duration_minutes is not None and self.duration_minutes <= 0:
            raise ValidationError({
                'duration_minutes': 'Duration must be greater than 0 minutes.'
            })

    @property
    def duration_display(self):
        """Display duration in human-readable format"""
        hours = self.duration_minutes // 60
        minutes = self.duration_minutes % 60

        if hours > 0 and minutes > 0:
            return f"{hours}h {minutes}m"
        elif hours > 0:
            return f"{hours}h"
        else:
            return f"{minutes}m"


class Product(models.Model):
    """Product/Supply model for dental materials and retail items"""
    name = models.CharField(max_length=200)
    sku = models.CharField(max_length=50, blank=True)
    description = models.TextField(blank=True)
    unit_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Unit price"
    )
    stock_quantity = models.IntegerField(default=0)
    is_active = models.BooleanField(
        default=True,
        help_text="Inactive products are hidden from selection"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = models.Manager()
    active = ActiveManager()

    class Meta:
        ordering = ['name']
        indexes = [
            models.Index(fields=['name'], name='product_name_idx'),
        ]

    def __str__(self):
        return self.name
