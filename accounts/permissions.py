# accounts/permissions.py

from rest_framework.permissions import BasePermission

from .models import is_admin, is_approved


class IsApproved(BasePermission):
    """
    Approved workspace member (validator or admin).
    """
    message = "Account missing or pending approval."

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and is_approved(user))


class IsAdminRole(IsApproved):
    """
    Admin-only views (user management).
    """
    message = "Admin role required."

    def has_permission(self, request, view):
        return super().has_permission(request, view) and is_admin(request.user)
