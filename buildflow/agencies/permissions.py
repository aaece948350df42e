from rest_framework.permissions import BasePermission

from .context import activate
from .models import Agency


def token_agency_database(request):
    """``agency_database`` claim of the JWT, falling back to the user's agency"""
    token = getattr(request, 'auth', None)
    if token is not None and hasattr(token, 'get'):
        return token.get('agency_database')
    user = getattr(request, 'user', None)
    if user is not None and user.is_authenticated:
        return user.agency_database
    return None


class RequireAgencyContext(BasePermission):
    """
    The caller must belong to an agency, and any agency selected with the
    X-Agency-Database header must be the caller's own.
    """
    message = 'Agency context required.'
    code = 'RBAC_NO_AGENCY_CONTEXT'

    def has_permission(self, request, view):
        claimed = token_agency_database(request)
        if not claimed:
            self.message = 'No agency context for this user.'
            self.code = 'RBAC_NO_AGENCY_CONTEXT'
            return False

        agency = getattr(request, 'agency', None)
        if agency is not None:
            if agency.database_name != claimed:
                self.message = 'Agency database does not match the authenticated user.'
                self.code = 'RBAC_AGENCY_MISMATCH'
                return False
            return True

        # No header: act on the agency from the token
        agency = Agency.objects.filter(database_name=claimed, is_active=True).first()
        if agency is None:
            self.message = 'No agency context for this user.'
            self.code = 'RBAC_NO_AGENCY_CONTEXT'
            return False
        request._request.agency = agency
        # released by AgencyContextMiddleware
        request._request.agency_token = activate(agency.database_name)
        return True
