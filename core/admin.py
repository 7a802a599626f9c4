# core/admin.py
from django.contrib import admin
from .models import AuditLog, NumberSequence, SystemSetting


@admin.register(SystemSetting)
class SystemSettingAdmin(admin.ModelAdmin):
    list_display = ['key', 'value', 'is_active', 'updated_at']
    list_filter = ['is_active']
    search_fields = ['key', 'description']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['timestamp', 'user', 'action', 'model_name', 'object_repr']
    list_filter = ['action', 'model_name']
    search_fields = ['object_repr', 'description', 'user__username']
    readonly_fields = ['user', 'action', 'model_name', 'object_id', 'object_repr', 'changes', 'description', 'timestamp']
    date_hierarchy = 'timestamp'

    def has_add_permission(self, request):
        return False


@admin.register(NumberSequence)
class NumberSequenceAdmin(admin.ModelAdmin):
    list_display = ['scope', 'period', 'last_value', 'updated_at']
    list_filter = ['scope']
    readonly_fields = ['updated_at']
