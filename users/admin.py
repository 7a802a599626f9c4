# users/admin.py
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import Role, User


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ['display_name', 'name', 'is_default', 'is_archived']
    list_filter = ['is_default', 'is_archived']


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['username', 'get_full_name', 'role', 'is_practitioner', 'is_active']
    list_filter = ['role', 'is_practitioner', 'is_active']
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Practice', {'fields': ('role', 'phone', 'is_practitioner')}),
    )
