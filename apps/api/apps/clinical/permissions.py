"""
Clinical permissions for API endpoints.

Coarse role gates only. Per-record checks (assigned doctor, owning
patient, authoring manager) are enforced by the lifecycle services so
that every caller gets them, not just the REST surface.
"""
from rest_framework import permissions

from apps.authz.models import RoleChoices
from apps.authz.permissions import IsApprovedUser


class MedicalRecordPermission(IsApprovedUser):
    """
    - Any approved principal: read (scoped by role in the queryset)
    - Management: create, attach images
    - Doctor: verify, reject, edit, attach images
    - Admin: soft-delete
    """

    WRITE_ROLES = {
        'create': {RoleChoices.MANAGEMENT},
        'verify': {RoleChoices.DOCTOR},
        'reject': {RoleChoices.DOCTOR},
        'edit': {RoleChoices.DOCTOR},
        'images': {RoleChoices.MANAGEMENT, RoleChoices.DOCTOR},
        'destroy': {RoleChoices.ADMIN},
    }

    def has_permission(self, request, view):
        if not super().has_permission(request, view):
            return False
        if request.method in permissions.SAFE_METHODS:
            return True
        allowed_roles = self.WRITE_ROLES.get(view.action)
        return bool(allowed_roles) and request.user.role in allowed_roles


class CorrectionRequestPermission(IsApprovedUser):
    """
    - Patient: file requests, read own
    - Doctor: read and resolve requests addressed to them
    - Admin: read all
    """

    def has_permission(self, request, view):
        if not super().has_permission(request, view):
            return False
        role = request.user.role
        if request.method in permissions.SAFE_METHODS:
            return role in {RoleChoices.PATIENT, RoleChoices.DOCTOR, RoleChoices.ADMIN}
        if view.action == 'create':
            return role == RoleChoices.PATIENT
        if view.action == 'resolve':
            return role == RoleChoices.DOCTOR
        return False
