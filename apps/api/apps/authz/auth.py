"""
JWT authentication rules.
"""
from apps.authz.models import RoleChoices


def approved_user_authentication_rule(user):
    """
    Only approved, active accounts may obtain tokens.

    Admin accounts are exempt so a mis-set status can never lock every
    administrator out.
    """
    if user is None or not user.is_active:
        return False
    return user.is_approved or user.role == RoleChoices.ADMIN
