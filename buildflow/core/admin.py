from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import AuditLog, LoginAttempt, Setting, User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['email', 'username', 'role', 'agency', 'is_active', 'two_factor_enabled', 'date_joined']
    list_filter = ['is_active', 'role', 'two_factor_enabled', 'agency']
    search_fields = ['username', 'email', 'first_name', 'last_name']
    ordering = ['email']
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Agency', {'fields': ('agency', 'role', 'phone')}),
        ('Two-factor', {'fields': ('two_factor_enabled', 'two_factor_verified_at')}),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ('Agency', {'fields': ('email', 'agency', 'role')}),
    )
    readonly_fields = ['two_factor_verified_at']


@admin.register(Setting)
class SettingAdmin(admin.ModelAdmin):
    list_display = ['key', 'agency', 'value', 'updated_at']
    list_filter = ['agency']
    search_fields = ['key', 'value']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['created_at', 'agency', 'user', 'action', 'model_name', 'object_id', 'object_name']
    list_filter = ['action', 'model_name', 'agency']
    search_fields = ['object_id', 'object_name', 'object_reference', 'user__email']
    readonly_fields = [field.name for field in AuditLog._meta.fields]
    date_hierarchy = 'created_at'


@admin.register(LoginAttempt)
class LoginAttemptAdmin(admin.ModelAdmin):
    list_display = ['attempted_at', 'email', 'success', 'failure_reason', 'ip_address']
    list_filter = ['success', 'failure_reason']
    search_fields = ['email', 'ip_address']
