from rest_framework import status
from rest_framework.permissions import BasePermission

from .responses import error_response
from .roles import has_role_or_higher


def user_role(user):
    if user.is_superuser:
        return 'super_admin'
    return getattr(user, 'role', None)


class IsSuperAdmin(BasePermission):
    """Platform super admins only"""
    message = 'Super admin access required.'

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user_role(user) == 'super_admin')


class RequireRole(BasePermission):
    """
    Allows users whose role is ``minimum_role`` or anything above it.

    Use ``RequireRole.at_least('admin')`` to build a permission class for a
    given minimum role.
    """
    minimum_role = 'employee'
    code = 'RBAC_INSUFFICIENT_ROLE'

    @property
    def message(self):
        return f'Requires role {self.minimum_role} or higher.'

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        return has_role_or_higher(user_role(user), self.minimum_role)

    @classmethod
    def at_least(cls, minimum_role):
        name = f"Require{''.join(part.title() for part in minimum_role.split('_'))}"
        return type(name, (cls,), {'minimum_role': minimum_role})


IsAgencyAdmin = RequireRole.at_least('admin')
IsManager = RequireRole.at_least('project_manager')


def role_denied(request, minimum_role):
    """Error response when the caller is below ``minimum_role``, else None"""
    if has_role_or_higher(user_role(request.user), minimum_role):
        return None
    return error_response('RBAC_INSUFFICIENT_ROLE', f'Requires role {minimum_role} or higher.',
                          status.HTTP_403_FORBIDDEN)
