from django.urls import path

from .views import (
    CustomTokenRefreshView, login, register, user_me,
    two_factor_setup, two_factor_verify_and_enable, two_factor_verify,
    two_factor_disable, two_factor_status,
    user_list, user_detail,
    setting_list_create, setting_detail,
    audit_log_list,
)

urlpatterns = [
    # Auth endpoints
    path('auth/login/', login, name='auth-login'),
    path('auth/refresh/', CustomTokenRefreshView.as_view(), name='auth-refresh'),
    path('auth/register/', register, name='auth-register'),
    path('auth/me/', user_me, name='auth-me'),

    # Two-factor endpoints
    path('two-factor/setup/', two_factor_setup, name='two-factor-setup'),
    path('two-factor/verify-and-enable/', two_factor_verify_and_enable, name='two-factor-verify-and-enable'),
    path('two-factor/verify/', two_factor_verify, name='two-factor-verify'),
    path('two-factor/disable/', two_factor_disable, name='two-factor-disable'),
    path('two-factor/status/', two_factor_status, name='two-factor-status'),

    # User endpoints
    path('users/', user_list, name='user-list'),
    path('users/<int:pk>/', user_detail, name='user-detail'),

    # Setting endpoints
    path('settings/', setting_list_create, name='setting-list-create'),
    path('settings/<int:pk>/', setting_detail, name='setting-detail'),

    # AuditLog endpoints
    path('audit-logs/', audit_log_list, name='audit-log-list'),
]
