"""
Custom permission classes for role based access control.
"""
from rest_framework.permissions import BasePermission

from .models import User

STAFF_ROLES = {User.ROLE_ADMIN, User.ROLE_DOCTOR, User.ROLE_STAFF}


def _role(request):
    user = getattr(request, "user", None)
    if not (user and user.is_authenticated):
        return None
    return getattr(user, "role", None)


class IsStaffRole(BasePermission):
    """Clinic personnel: administrators, doctors and front-desk staff."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) in STAFF_ROLES

