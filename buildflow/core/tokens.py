from rest_framework_simplejwt.tokens import RefreshToken


class AgencyRefreshToken(RefreshToken):
    """Refresh token carrying the user's identity, role and agency database"""

    @classmethod
    def for_user(cls, user):
        token = super().for_user(user)
        token['email'] = user.email
        token['role'] = user.role
        token['agency_id'] = str(user.agency_id) if user.agency_id else None
        token['agency_database'] = user.agency_database
        return token


def issue_tokens(user):
    """Return an access/refresh pair for ``user``"""
    refresh = AgencyRefreshToken.for_user(user)
    return {
        'access': str(refresh.access_token),
        'refresh': str(refresh),
    }
