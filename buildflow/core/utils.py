"""Utility functions for audit logging"""
import logging

from .models import AuditLog

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """Extract client IP address from request"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


def get_request_agency(request):
    """Agency the request acts for: the header's agency, else the user's own"""
    agency = getattr(request, 'agency', None)
    if agency is not None:
        return agency
    user = getattr(request, 'user', None)
    if user is not None and user.is_authenticated:
        return user.agency
    return None


def create_audit_log(request=None, action=None, model_name=None, object_id=None,
                     changes=None, user=None, object_name=None, object_reference=None,
                     agency=None):
    """
    Create an audit log entry

    Args:
        request: Django/DRF request (for user, agency and IP), optional if user is given
        action: Action type (create, update, delete, stock_adjust, ...)
        model_name: Name of the model being acted upon
        object_id: ID of the object
        changes: Dictionary of changes made
        user: Optional user override (defaults to request.user)
        object_name: Human-readable name of the object
        object_reference: Reference identifier (e.g. order number, SKU)
        agency: Optional agency override (defaults to the request's agency)
    """
    try:
        audit_user = user
        if audit_user is None and request is not None and hasattr(request, 'user'):
            audit_user = request.user

        if agency is None and request is not None:
            agency = get_request_agency(request)

        if not action or not model_name or object_id is None:
            logger.warning(
                f"Audit log creation skipped: missing required fields "
                f"(action={action}, model_name={model_name}, object_id={object_id})"
            )
            return None

        return AuditLog.objects.create(
            agency=agency,
            user=audit_user if audit_user and audit_user.is_authenticated else None,
            action=action,
            model_name=model_name,
            object_id=str(object_id),
            object_name=object_name,
            object_reference=object_reference,
            changes=changes or {},
            ip_address=get_client_ip(request) if request else None,
        )
    except Exception as e:
        # Don't fail the main operation if audit logging fails
        logger.error(f"Failed to create audit log: {str(e)}")
        return None
