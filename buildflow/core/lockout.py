"""Failed-login tracking and temporary account lockout"""
import logging
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from .models import LoginAttempt
from .utils import get_client_ip

logger = logging.getLogger(__name__)


def _window_start():
    return timezone.now() - timedelta(minutes=settings.LOGIN_LOCKOUT_MINUTES)


def recent_failures(email):
    """Failed attempts inside the lockout window since the last successful login"""
    email = email.strip().lower()
    attempts = LoginAttempt.objects.filter(email__iexact=email, attempted_at__gte=_window_start())
    last_success = attempts.filter(success=True).order_by('-attempted_at').first()
    failures = attempts.filter(success=False)
    if last_success:
        failures = failures.filter(attempted_at__gt=last_success.attempted_at)
    return failures


def lockout_until(email):
    """Return the time the lock on ``email`` lifts, or None when not locked"""
    failures = recent_failures(email).order_by('-attempted_at')
    if failures.count() < settings.LOGIN_LOCKOUT_ATTEMPTS:
        return None
    latest = failures.first()
    return latest.attempted_at + timedelta(minutes=settings.LOGIN_LOCKOUT_MINUTES)


def record_attempt(request, email, success, user=None, failure_reason=''):
    attempt = LoginAttempt.objects.create(
        email=email.strip().lower(),
        user=user,
        success=success,
        failure_reason=failure_reason,
        ip_address=get_client_ip(request),
        user_agent=(request.META.get('HTTP_USER_AGENT') or '')[:255],
    )
    if not success:
        logger.warning(f"Failed login for {email}: {failure_reason}")
    return attempt
