from django.contrib import admin

from .models import Agency


@admin.register(Agency)
class AgencyAdmin(admin.ModelAdmin):
    list_display = ['name', 'domain', 'database_name', 'subscription_plan', 'is_active', 'created_at']
    list_filter = ['is_active', 'subscription_plan']
    search_fields = ['name', 'domain', 'database_name']
    readonly_fields = ['id', 'created_at', 'updated_at']
