from django.contrib.auth.models import AbstractUser
from django.db import models

from .roles import ROLE_CHOICES


class User(AbstractUser):
    """Platform user. ``agency`` is empty only for platform super admins."""
    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=20, blank=True, null=True)
    role = models.CharField(max_length=50, choices=ROLE_CHOICES, default='employee')
    agency = models.ForeignKey(
        'agencies.Agency', on_delete=models.CASCADE, null=True, blank=True, related_name='users'
    )
    two_factor_enabled = models.BooleanField(default=False)
    two_factor_secret = models.CharField(max_length=64, blank=True, null=True)
    recovery_codes = models.JSONField(default=list, blank=True)
    two_factor_verified_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def is_super_admin(self):
        return self.role == 'super_admin' or self.is_superuser

    @property
    def agency_database(self):
        return self.agency.database_name if self.agency_id else None

    class Meta:
        db_table = 'users'
        indexes = [
            models.Index(fields=['agency', 'role'], name='users_agency_role_idx'),
        ]


class Setting(models.Model):
    """Key/value settings, either platform wide or per agency"""
    agency = models.ForeignKey(
        'agencies.Agency', on_delete=models.CASCADE, null=True, blank=True, related_name='settings'
    )
    key = models.CharField(max_length=100)
    value = models.TextField()
    description = models.TextField(blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.key

    class Meta:
        db_table = 'settings'
        unique_together = [['agency', 'key']]


class AuditLog(models.Model):
    """Audit log for critical operations"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('login', 'Login'),
        ('two_factor_enable', 'Two-Factor Enabled'),
        ('two_factor_disable', 'Two-Factor Disabled'),
        ('stock_adjust', 'Stock Adjustment'),
        ('status_change', 'Status Change'),
        ('goods_receipt', 'Goods Received'),
        ('lead_convert', 'Lead Converted'),
        ('agency_provision', 'Agency Provisioned'),
    ]

    agency = models.ForeignKey(
        'agencies.Agency', on_delete=models.SET_NULL, null=True, blank=True, related_name='audit_logs'
    )
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True)
    object_reference = models.CharField(max_length=255, blank=True, null=True)
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='audit_logs_created_idx'),
            models.Index(fields=['action'], name='audit_logs_action_idx'),
            models.Index(fields=['model_name'], name='audit_logs_model_idx'),
            models.Index(fields=['object_reference'], name='audit_logs_ref_idx'),
        ]


class LoginAttempt(models.Model):
    """Every login attempt, used for account lockout"""
    email = models.EmailField()
    user = models.ForeignKey(User, on_delete=models.CASCADE, null=True, blank=True, related_name='login_attempts')
    success = models.BooleanField(default=False)
    failure_reason = models.CharField(max_length=50, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=255, blank=True)
    attempted_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'login_attempts'
        ordering = ['-attempted_at']
        indexes = [
            models.Index(fields=['email', '-attempted_at'], name='login_attempts_email_idx'),
        ]
