"""
Account services: registration, admin account decisions, directories.

Admin decisions (approve/reject/suspend/change role) lock the target row,
write a UserAuditLog entry and notify the affected user in one transaction.
"""
import logging
from typing import Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import models, transaction
from django.db.models import Count
from django.utils import timezone

from apps.authz.models import (
    AccountStatusChoices,
    RoleChoices,
    User,
    UserAuditActionChoices,
    UserAuditLog,
)
from apps.core.exceptions import (
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from apps.core.observability import log_domain_event, metrics
from apps.notifications.models import NotificationTypeChoices
from apps.notifications.services import notify

logger = logging.getLogger(__name__)


# Which account statuses an admin may move a user between
_ALLOWED_STATUS_TRANSITIONS = {
    AccountStatusChoices.PENDING: {AccountStatusChoices.APPROVED, AccountStatusChoices.REJECTED},
    AccountStatusChoices.APPROVED: {AccountStatusChoices.SUSPENDED},
    AccountStatusChoices.SUSPENDED: {AccountStatusChoices.APPROVED},
    AccountStatusChoices.REJECTED: {AccountStatusChoices.APPROVED},
}

# Roles that may self-register; admins are created by other admins or ensure_admin
SELF_REGISTRATION_ROLES = {RoleChoices.PATIENT, RoleChoices.DOCTOR, RoleChoices.MANAGEMENT}


def _get_client_ip(request):
    if request is None:
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def _lock_user(user_id, operation):
    try:
        return User.objects.select_for_update().get(id=user_id)
    except (User.DoesNotExist, ValueError, TypeError, DjangoValidationError):
        raise NotFoundError('User not found', operation=operation)


def _require_admin(actor, operation):
    if actor.role != RoleChoices.ADMIN:
        raise AuthorizationError('Only admins can manage accounts', operation=operation)


@transaction.atomic
def register_user(email, password, role, request=None, **profile) -> User:
    """
    Self-registration.

    Every new account waits in pending for an admin decision. Active
    admins are notified in the same transaction.
    """
    if role not in SELF_REGISTRATION_ROLES:
        raise ValidationError(f'Role "{role}" cannot self-register', operation='register')
    if User.objects.filter(email__iexact=email).exists():
        raise ValidationError('An account with this email already exists', operation='register')

    status = AccountStatusChoices.PENDING
    user = User.objects.create_user(email=email, password=password, role=role, status=status, **profile)

    UserAuditLog.objects.create(
        actor_user=user,
        target_user=user,
        action=UserAuditActionChoices.REGISTER,
        metadata={
            'role': role,
            'status': status,
            'ip_address': _get_client_ip(request),
        }
    )

    admins = User.objects.filter(role=RoleChoices.ADMIN, is_active=True).exclude(id=user.id)
    for admin in admins:
        notify(
            admin,
            NotificationTypeChoices.USER_APPROVAL,
            'New User Registration',
            f'New {role} account registered: {user.full_name}',
            metadata={
                'user_id': str(user.id),
                'user_role': role,
                'user_email': user.email,
            },
        )

    log_domain_event(
        'account_registered',
        entity_type='User',
        entity_id=str(user.id),
        role=role,
        status=status,
    )
    return user


def _change_status(admin, user_id, new_status, action, notification_type, title, message,
                   reason='', request=None):
    operation = action.value if hasattr(action, 'value') else action
    _require_admin(admin, operation)
    user = _lock_user(user_id, operation)

    if user.id == admin.id:
        raise AuthorizationError('Admins cannot change their own account status', operation=operation)

    old_status = user.status
    if new_status not in _ALLOWED_STATUS_TRANSITIONS.get(old_status, set()):
        raise InvalidStateError(
            f'Cannot change account status from {old_status} to {new_status}',
            operation=operation,
        )

    user.status = new_status
    user.status_changed_by = admin
    user.status_changed_at = timezone.now()
    user.rejection_reason = reason if new_status != AccountStatusChoices.APPROVED else ''
    user.save(update_fields=[
        'status', 'status_changed_by', 'status_changed_at', 'rejection_reason', 'updated_at'
    ])

    UserAuditLog.objects.create(
        actor_user=admin,
        target_user=user,
        action=action,
        metadata={
            'before': {'status': old_status},
            'after': {'status': new_status},
            'reason': reason,
            'ip_address': _get_client_ip(request),
        }
    )

    notify(
        user,
        notification_type,
        title,
        message,
        metadata={'status': new_status, 'reason': reason},
    )

    metrics.account_transitions_total.labels(action=operation).inc()
    log_domain_event(
        'account_status_changed',
        entity_type='User',
        entity_id=str(user.id),
        entity_ids={'admin_id': str(admin.id)},
        from_status=old_status,
        to_status=new_status,
    )
    return user


@transaction.atomic
def approve_user(admin, user_id, request=None) -> User:
    return _change_status(
        admin, user_id,
        AccountStatusChoices.APPROVED,
        UserAuditActionChoices.APPROVE_USER,
        NotificationTypeChoices.ACCOUNT_VERIFIED,
        'Account Verified',
        'Your account has been verified. You can now access all features.',
        request=request,
    )


@transaction.atomic
def reject_user(admin, user_id, reason, request=None) -> User:
    if not reason or not reason.strip():
        raise ValidationError('A rejection reason is required', operation='reject_user')
    return _change_status(
        admin, user_id,
        AccountStatusChoices.REJECTED,
        UserAuditActionChoices.REJECT_USER,
        NotificationTypeChoices.ACCOUNT_REJECTED,
        'Account Registration Rejected',
        f'Your account registration has been rejected. Reason: {reason}',
        reason=reason,
        request=request,
    )


@transaction.atomic
def suspend_user(admin, user_id, reason, request=None) -> User:
    if not reason or not reason.strip():
        raise ValidationError('A suspension reason is required', operation='suspend_user')
    return _change_status(
        admin, user_id,
        AccountStatusChoices.SUSPENDED,
        UserAuditActionChoices.SUSPEND_USER,
        NotificationTypeChoices.ACCOUNT_SUSPENDED,
        'Account Suspended',
        f'Your account has been suspended. Reason: {reason}',
        reason=reason,
        request=request,
    )


@transaction.atomic
def change_role(admin, user_id, new_role, request=None) -> User:
    operation = UserAuditActionChoices.CHANGE_ROLE.value
    _require_admin(admin, operation)
    if new_role not in RoleChoices.values:
        raise ValidationError(f'Unknown role "{new_role}"', operation=operation)

    user = _lock_user(user_id, operation)
    if user.id == admin.id:
        raise AuthorizationError('Admins cannot change their own role', operation=operation)

    old_role = user.role
    if old_role == new_role:
        raise InvalidStateError(f'User already has role {new_role}', operation=operation)

    user.role = new_role
    user.save(update_fields=['role', 'updated_at'])

    UserAuditLog.objects.create(
        actor_user=admin,
        target_user=user,
        action=UserAuditActionChoices.CHANGE_ROLE,
        metadata={
            'before': {'role': old_role},
            'after': {'role': new_role},
            'ip_address': _get_client_ip(request),
        }
    )

    notify(
        user,
        NotificationTypeChoices.ROLE_UPDATED,
        'Role Updated',
        f'Your role has been updated to {RoleChoices(new_role).label}.',
        metadata={'old_role': old_role, 'new_role': new_role},
    )

    metrics.account_transitions_total.labels(action=operation).inc()
    log_domain_event(
        'account_role_changed',
        entity_type='User',
        entity_id=str(user.id),
        entity_ids={'admin_id': str(admin.id)},
        from_role=old_role,
        to_role=new_role,
    )
    return user


def user_statistics():
    """Account totals by status and by role."""
    by_status = dict(
        User.objects.values_list('status').annotate(n=Count('id')).order_by()
    )
    by_role = dict(
        User.objects.values_list('role').annotate(n=Count('id')).order_by()
    )
    return {
        'total': sum(by_status.values()),
        'by_status': {s: by_status.get(s, 0) for s in AccountStatusChoices.values},
        'by_role': {r: by_role.get(r, 0) for r in RoleChoices.values},
        'pending_approvals': by_status.get(AccountStatusChoices.PENDING, 0),
    }


def approved_doctors():
    return User.objects.filter(
        role=RoleChoices.DOCTOR,
        status=AccountStatusChoices.APPROVED,
        is_active=True,
    ).order_by('last_name', 'first_name')


def search_patients(query: Optional[str] = None):
    """Approved patients matching ``query`` on email, name or phone."""
    queryset = User.objects.filter(
        role=RoleChoices.PATIENT,
        status=AccountStatusChoices.APPROVED,
        is_active=True,
    )
    if query:
        queryset = queryset.filter(
            models.Q(email__icontains=query) |
            models.Q(first_name__icontains=query) |
            models.Q(last_name__icontains=query) |
            models.Q(phone__icontains=query)
        )
    return queryset.order_by('last_name', 'first_name')
