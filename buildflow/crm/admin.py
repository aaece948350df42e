from django.contrib import admin

from .models import Client, CrmActivity, Lead, LeadSource


@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ['name', 'company_name', 'email', 'status', 'created_at']
    list_filter = ['status']
    search_fields = ['name', 'company_name', 'email']


@admin.register(LeadSource)
class LeadSourceAdmin(admin.ModelAdmin):
    list_display = ['name', 'is_active']


@admin.register(Lead)
class LeadAdmin(admin.ModelAdmin):
    list_display = ['lead_number', 'company_name', 'status', 'priority', 'estimated_value', 'created_at']
    list_filter = ['status', 'priority']
    search_fields = ['lead_number', 'company_name', 'contact_name']


@admin.register(CrmActivity)
class CrmActivityAdmin(admin.ModelAdmin):
    list_display = ['subject', 'activity_type', 'status', 'activity_date']
    list_filter = ['activity_type', 'status']
