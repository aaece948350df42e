import logging

from django.conf import settings
from django.http import JsonResponse

from buildflow.core.responses import error_body

from .context import activate, deactivate
from .db import InvalidDatabaseName, validate_database_name
from .models import Agency

logger = logging.getLogger(__name__)


class AgencyContextMiddleware:
    """
    Selects the agency database named by the X-Agency-Database header.

    The agency is stored on ``request.agency`` and its database is active
    until the response is returned.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request.agency = None
        database_name = None

        header = request.headers.get(settings.AGENCY_DATABASE_HEADER)
        if header:
            try:
                database_name = validate_database_name(header)
            except InvalidDatabaseName as e:
                logger.warning(f"Rejected agency database header {header!r}: {str(e)}")
                return JsonResponse(
                    error_body('INVALID_AGENCY_DATABASE', str(e)),
                    status=400,
                )

            agency = Agency.objects.filter(database_name=database_name, is_active=True).first()
            if agency is None:
                logger.warning(f"Unknown agency database requested: {database_name}")
                return JsonResponse(
                    error_body('AGENCY_DB_NOT_FOUND', f'Agency database "{database_name}" not found.'),
                    status=404,
                )
            request.agency = agency

        token = activate(database_name)
        try:
            return self.get_response(request)
        finally:
            nested_token = getattr(request, 'agency_token', None)
            if nested_token is not None:
                deactivate(nested_token)
            deactivate(token)
