# users/models.py
from django.contrib.auth.models import AbstractUser
from django.db import models


class Role(models.Model):
    ADMIN = 'admin'
    DENTIST = 'dentist'
    STAFF = 'staff'

    ROLE_CHOICES = [
        (ADMIN, 'Admin'),
        (DENTIST, 'Dentist'),
        (STAFF, 'Staff'),
    ]

    DEFAULT_PERMISSIONS = {
        ADMIN: {
            'dashboard': True,
            'appointments': True,
            'patients': True,
            'billing': True,
            'refunds': True,
            'catalog': True,
            'reports': True,
            'maintenance': True,
        },
        DENTIST: {
            'dashboard': True,
            'appointments': True,
            'patients': True,
            'billing': True,
            'refunds': False,
            'catalog': True,
            'reports': False,
            'maintenance': False,
        },
        STAFF: {
            'dashboard': True,
            'appointments': True,
            'patients': True,
            'billing': True,
            'refunds': False,
            'catalog': False,
            'reports': False,
            'maintenance': False,
        },
    }

    name = models.CharField(max_length=50, unique=True)
    display_name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    permissions = models.JSONField(default=dict, help_text="Module permissions")
    is_default = models.BooleanField(default=False)
    is_archived = models.BooleanField(default=False, help_text="Archived roles are hidden from user assignment")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.display_name

    def is_protected(self):
        """Only admin role is protected from editing"""
        return self.name == self.ADMIN

    def save(self, *args, **kwargs):
        # Default roles get their permission map only if none was given
        if self.is_default and not self.permissions:
            self.permissions = dict(self.DEFAULT_PERMISSIONS.get(self.name, {}))
        super().save(*args, **kwargs)


class User(AbstractUser):

    role = models.ForeignKey(Role, on_delete=models.PROTECT, null=True, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    is_practitioner = models.BooleanField(default=False, help_text="Can be booked for appointments")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.get_full_name()} ({self.username})"

    def has_permission(self, module_name):
        """Check if user has permission for a specific module"""
        if self.is_superuser:
            return True
        if not self.role or self.role.is_archived:  # Users with archived roles lose access
            return False
        return self.role.permissions.get(module_name, False)

    @property
    def can_practice(self):
        """Active practitioner whose role has not been archived"""
        if not self.is_active or not self.is_practitioner:
            return False
        return not (self.role and self.role.is_archived)

    @property
    def full_name(self):
        return self.get_full_name() or self.username
