"""Helpers for the {success, data, error} response envelope"""
from rest_framework.response import Response

STATUS_ERROR_CODES = {
    400: 'VALIDATION_ERROR',
    401: 'AUTH_REQUIRED',
    403: 'FORBIDDEN',
    404: 'NOT_FOUND',
    405: 'METHOD_NOT_ALLOWED',
    409: 'CONFLICT',
    415: 'UNSUPPORTED_MEDIA_TYPE',
    423: 'ACCOUNT_LOCKED',
    429: 'RATE_LIMITED',
}


def default_error_code(status_code):
    if status_code >= 500:
        return 'SERVER_ERROR'
    return STATUS_ERROR_CODES.get(status_code, 'REQUEST_FAILED')


def error_body(code, message, details=None):
    return {
        'success': False,
        'data': None,
        'error': {
            'code': code,
            'message': message,
            'details': details,
        },
    }


def success_body(data):
    return {'success': True, 'data': data, 'error': None}


def is_envelope(data):
    return isinstance(data, dict) and 'success' in data and 'error' in data and 'data' in data


def error_response(code, message, status_code, details=None, headers=None):
    """Return an already enveloped error response"""
    return Response(error_body(code, message, details), status=status_code, headers=headers)
