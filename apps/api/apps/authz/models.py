"""
Authz models: auth_user, user_audit_log

Every principal carries exactly one role and an account status.
"""
import uuid
from django.db import models
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin


# ============================================================================
# Enums
# ============================================================================

class RoleChoices(models.TextChoices):
    """Principal roles."""
    PATIENT = 'patient', 'Patient'
    DOCTOR = 'doctor', 'Doctor'
    MANAGEMENT = 'management', 'Management'
    ADMIN = 'admin', 'Admin'


class AccountStatusChoices(models.TextChoices):
    """
    Account approval status.

    - PENDING: registered, waiting for an admin decision
    - APPROVED: may sign in and act in its role
    - REJECTED: registration refused by an admin
    - SUSPENDED: previously approved, access revoked by an admin
    """
    PENDING = 'pending', 'Pending'
    APPROVED = 'approved', 'Approved'
    REJECTED = 'rejected', 'Rejected'
    SUSPENDED = 'suspended', 'Suspended'


# ============================================================================
# User Management
# ============================================================================

class UserManager(BaseUserManager):
    """Custom user manager for email-based authentication."""

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('Email is required')
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)
        extra_fields.setdefault('role', RoleChoices.ADMIN)
        extra_fields.setdefault('status', AccountStatusChoices.APPROVED)
        return self.create_user(email, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom user model for authentication.

    Fields:
    - id: UUID PK
    - email: unique, login name
    - role: patient|doctor|management|admin
    - status: pending|approved|rejected|suspended
    - specialization: doctors only
    - date_of_birth: patients only
    - status_changed_by / status_changed_at / rejection_reason: last admin decision
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True, max_length=255)
    first_name = models.CharField(max_length=150, blank=True)
    last_name = models.CharField(max_length=150, blank=True)
    phone = models.CharField(max_length=32, blank=True)

    role = models.CharField(
        max_length=20,
        choices=RoleChoices.choices,
        default=RoleChoices.PATIENT
    )
    status = models.CharField(
        max_length=20,
        choices=AccountStatusChoices.choices,
        default=AccountStatusChoices.PENDING
    )
    specialization = models.CharField(max_length=150, blank=True)
    date_of_birth = models.DateField(null=True, blank=True)

    rejection_reason = models.TextField(blank=True)
    status_changed_by = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        help_text='Admin who made the last status decision'
    )
    status_changed_at = models.DateTimeField(null=True, blank=True)

    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)  # Required for Django admin access
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    class Meta:
        db_table = 'auth_user'
        verbose_name = 'User'
        verbose_name_plural = 'Users'
        indexes = [
            models.Index(fields=['email'], name='idx_user_email'),
            models.Index(fields=['role', 'status'], name='idx_user_role_status'),
        ]

    def __str__(self):
        return self.email

    @property
    def full_name(self):
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.email

    @property
    def is_approved(self):
        return self.status == AccountStatusChoices.APPROVED

    def has_role(self, *roles):
        return self.role in roles


# ============================================================================
# User Administration Audit Log
# ============================================================================

class UserAuditActionChoices(models.TextChoices):
    """Actions that can be audited for user administration."""
    REGISTER = 'register', 'Register'
    UPDATE_USER = 'update_user', 'Update User'
    APPROVE_USER = 'approve_user', 'Approve User'
    REJECT_USER = 'reject_user', 'Reject User'
    SUSPEND_USER = 'suspend_user', 'Suspend User'
    CHANGE_ROLE = 'change_role', 'Change Role'


class UserAuditLog(models.Model):
    """
    Audit trail for account administration actions.

    Fields:
    - actor_user: admin who made the change (the user itself for registration)
    - target_user: user being modified
    - action: see UserAuditActionChoices
    - metadata: JSON with before/after values, reason, IP, etc.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)

    actor_user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        related_name='admin_actions',
        help_text='User who performed the action'
    )

    target_user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='audit_logs',
        help_text='User who was affected by the action'
    )

    action = models.CharField(
        max_length=20,
        choices=UserAuditActionChoices.choices
    )

    metadata = models.JSONField(
        default=dict,
        help_text='Before/after values, reason, IP address, etc.'
    )

    class Meta:
        db_table = 'user_audit_log'
        verbose_name = 'User Audit Log'
        verbose_name_plural = 'User Audit Logs'
        indexes = [
            models.Index(fields=['created_at'], name='idx_user_audit_created'),
            models.Index(fields=['actor_user'], name='idx_user_audit_actor'),
            models.Index(fields=['target_user'], name='idx_user_audit_target'),
            models.Index(fields=['action'], name='idx_user_audit_action'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        actor = self.actor_user.email if self.actor_user else 'system'
        return f"{self.action} on {self.target_user.email} by {actor}"
