from rest_framework.permissions import BasePermission

from stockscribe.core.permissions import can_manage_budget
from .models import Approver


def approver_from_request(request):
    return request.auth if isinstance(request.auth, Approver) else None


class IsAuthenticatedOrApprover(BasePermission):
    """Signed-in users and approver sessions"""
    message = 'Permission denied'

    def has_permission(self, request, view):
        if request.user and request.user.is_authenticated:
            return True
        return approver_from_request(request) is not None


class CanDecideBudget(BasePermission):
    """Approver sessions, managers and admins may approve or reject"""
    message = 'Permission denied'

    def has_permission(self, request, view):
        if approver_from_request(request) is not None:
            return True
        return can_manage_budget(request.user)
