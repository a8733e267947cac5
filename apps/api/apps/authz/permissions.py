"""
Authz permissions based on the principal's single role.

Every role permission also requires an approved, active account, so
tokens issued before a suspension stop working immediately.
"""
from rest_framework import permissions
from apps.authz.models import RoleChoices
from apps.core.observability.correlation import bind_user


class IsApprovedUser(permissions.BasePermission):
    """Authenticated principal with an approved account."""
    message = 'Account is not approved.'

    def has_permission(self, request, view):
        user = request.user
        bind_user(user)
        if not user or not user.is_authenticated or not user.is_active:
            return False
        return user.is_approved or user.role == RoleChoices.ADMIN


class HasRole(IsApprovedUser):
    """Approved principal whose role is in ``allowed_roles``."""
    allowed_roles = frozenset()
    message = 'Your role is not allowed to perform this action.'

    def has_permission(self, request, view):
        if not super().has_permission(request, view):
            return False
        return request.user.role in self.allowed_roles


class IsAdmin(HasRole):
    """
    Permission class that only allows Admin role users.

    Used for user administration endpoints.
    """
    allowed_roles = frozenset({RoleChoices.ADMIN})


class IsManagement(HasRole):
    allowed_roles = frozenset({RoleChoices.MANAGEMENT})


class IsManagementOrAdmin(HasRole):
    allowed_roles = frozenset({RoleChoices.MANAGEMENT, RoleChoices.ADMIN})
