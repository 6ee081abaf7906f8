from rest_framework.permissions import BasePermission


def is_admin_user(user):
    """
    Check if user is an admin user.
    Returns True for the 'admin' role, superusers and staff.
    """
    if not user or not user.is_authenticated:
        return False
    return getattr(user, 'is_admin', False)


def can_manage_budget(user):
    return is_admin_user(user) or getattr(user, 'role', None) == 'manager'


class IsAdminRole(BasePermission):
    """Allow access only to admin users"""
    message = 'Permission denied'

    def has_permission(self, request, view):
        return is_admin_user(request.user)

