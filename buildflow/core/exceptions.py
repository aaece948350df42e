"""
API exceptions and the DRF exception handler that renders them
"""
import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.db import IntegrityError, OperationalError
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler, set_rollback

from .responses import default_error_code, error_body

logger = logging.getLogger(__name__)


class ApiException(exceptions.APIException):
    """Base class for domain errors that carry their own status and code"""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Request could not be processed.'
    default_code = 'BAD_REQUEST'

    def __init__(self, message=None, code=None, details=None, status_code=None):
        super().__init__(message or self.default_detail, code or self.default_code)
        self.error_code = code or self.default_code
        self.details = details
        if status_code is not None:
            self.status_code = status_code


class InvalidCredentials(ApiException):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Invalid email or password.'
    default_code = 'AUTH_INVALID_CREDENTIALS'


class InvalidTwoFactorCode(ApiException):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Invalid two-factor authentication code.'
    default_code = 'AUTH_INVALID_2FA'


class AccountLocked(ApiException):
    status_code = status.HTTP_423_LOCKED
    default_detail = 'Account temporarily locked due to too many failed login attempts.'
    default_code = 'ACCOUNT_LOCKED'


class InsufficientStock(ApiException):
    default_detail = 'Insufficient stock for this operation.'
    default_code = 'INSUFFICIENT_STOCK'


class InvalidStatusTransition(ApiException):
    default_detail = 'Status change not allowed.'
    default_code = 'INVALID_STATUS_TRANSITION'


class AgencyDatabaseNotFound(ApiException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Agency database not found.'
    default_code = 'AGENCY_DB_NOT_FOUND'


def _missing_database(exc):
    cause = getattr(exc, '__cause__', None)
    sqlstate = getattr(cause, 'sqlstate', None) or getattr(cause, 'pgcode', None)
    if sqlstate == '3D000':
        return True
    message = str(exc).lower()
    return 'database' in message and 'does not exist' in message


def buildflow_exception_handler(exc, context):
    """Map any exception raised by a view to an enveloped error response"""
    # Imported lazily: records imports core for its own errors.
    from buildflow.records.builder import QueryBuilderError
    from buildflow.records.service import RecordError, RecordNotFound, TableNotAllowed

    if not isinstance(exc, (Http404, DjangoPermissionDenied, exceptions.APIException)):
        set_rollback()

    if isinstance(exc, ApiException):
        set_rollback()
        return Response(
            error_body(exc.error_code, str(exc.detail), exc.details),
            status=exc.status_code,
        )

    if isinstance(exc, QueryBuilderError):
        return Response(error_body('INVALID_QUERY', str(exc)), status=status.HTTP_400_BAD_REQUEST)

    if isinstance(exc, (RecordNotFound, TableNotAllowed)):
        return Response(error_body('NOT_FOUND', str(exc)), status=status.HTTP_404_NOT_FOUND)

    if isinstance(exc, RecordError):
        return Response(error_body('RECORD_ERROR', str(exc)), status=status.HTTP_400_BAD_REQUEST)

    if isinstance(exc, IntegrityError):
        logger.warning(f"Integrity error: {str(exc)}")
        return Response(
            error_body('INTEGRITY_ERROR', 'The change conflicts with existing data.'),
            status=status.HTTP_409_CONFLICT,
        )

    if isinstance(exc, OperationalError) and _missing_database(exc):
        logger.error(f"Agency database unavailable: {str(exc)}")
        return Response(
            error_body('AGENCY_DB_NOT_FOUND', 'Agency database not found.'),
            status=status.HTTP_404_NOT_FOUND,
        )

    if isinstance(exc, (Http404, DjangoPermissionDenied, exceptions.APIException)):
        response = exception_handler(exc, context)
        if response is not None:
            response.data = error_body(
                _api_error_code(exc, response.status_code),
                _api_error_message(exc, response.data),
                _api_error_details(exc, response.data),
            )
            return response

    view = context.get('view')
    logger.exception(f"Unhandled error in {view.__class__.__name__ if view else 'view'}: {str(exc)}")
    return Response(
        error_body('SERVER_ERROR', 'An unexpected error occurred.'),
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def _api_error_code(exc, status_code):
    if isinstance(exc, exceptions.ValidationError):
        return 'VALIDATION_ERROR'
    if isinstance(exc, exceptions.Throttled):
        return 'RATE_LIMITED'
    if isinstance(exc, exceptions.AuthenticationFailed):
        return 'AUTH_INVALID_TOKEN'
    if isinstance(exc, exceptions.NotAuthenticated):
        return 'AUTH_REQUIRED'
    if isinstance(exc, exceptions.PermissionDenied):
        codes = exc.get_codes()
        if isinstance(codes, str) and codes.isupper():
            return codes
        return 'FORBIDDEN'
    return default_error_code(status_code)


def _api_error_message(exc, data):
    if isinstance(exc, exceptions.ValidationError):
        return 'Invalid input.'
    if isinstance(data, dict) and 'detail' in data:
        return str(data['detail'])
    return str(getattr(exc, 'detail', exc))


def _api_error_details(exc, data):
    if isinstance(exc, exceptions.ValidationError):
        return data
    if isinstance(exc, exceptions.Throttled):
        return {'retry_after': exc.wait}
    return None
