"""
Notification models: notification

A notification is written in the same transaction as the transition that
caused it. E-mail delivery is tracked on the row and performed after commit.
"""
import uuid
from django.conf import settings
from django.db import models


class NotificationTypeChoices(models.TextChoices):
    # Record lifecycle
    NEW_RECORD_VERIFICATION = 'new_record_verification', 'New Record Awaiting Verification'
    RECORD_ADDED = 'record_added', 'Record Added'
    RECORD_VERIFIED = 'record_verified', 'Record Verified'
    RECORD_REJECTED = 'record_rejected', 'Record Rejected'
    RECORD_UPDATED = 'record_updated', 'Record Updated'
    # Correction requests
    CORRECTION_REQUESTED = 'correction_requested', 'Correction Requested'
    CORRECTION_APPROVED = 'correction_approved', 'Correction Approved'
    CORRECTION_REJECTED = 'correction_rejected', 'Correction Rejected'
    # Account administration
    ACCOUNT_VERIFIED = 'account_verified', 'Account Verified'
    ACCOUNT_REJECTED = 'account_rejected', 'Account Rejected'
    ACCOUNT_SUSPENDED = 'account_suspended', 'Account Suspended'
    ROLE_UPDATED = 'role_updated', 'Role Updated'
    USER_APPROVAL = 'user_approval', 'New User Awaiting Approval'
    # Record entry consent
    CONSENT_VERIFIED = 'consent_verified', 'Patient Consent Verified'


class EmailStatusChoices(models.TextChoices):
    PENDING = 'pending', 'Pending'
    SENT = 'sent', 'Sent'
    FAILED = 'failed', 'Failed'
    SKIPPED = 'skipped', 'Skipped'


class Notification(models.Model):
    """
    One-way message recorded against a recipient.

    Mutated only by the recipient marking it read and by the e-mail
    delivery bookkeeping.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications'
    )
    type = models.CharField(max_length=40, choices=NotificationTypeChoices.choices)
    title = models.CharField(max_length=255)
    message = models.TextField()

    record = models.ForeignKey(
        'clinical.MedicalRecord',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='notifications'
    )
    correction_request = models.ForeignKey(
        'clinical.CorrectionRequest',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='notifications'
    )
    metadata = models.JSONField(default=dict, blank=True)

    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)

    email_status = models.CharField(
        max_length=10,
        choices=EmailStatusChoices.choices,
        default=EmailStatusChoices.PENDING
    )
    email_attempts = models.PositiveSmallIntegerField(default=0)
    emailed_at = models.DateTimeField(null=True, blank=True)
    email_error = models.CharField(max_length=500, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'notification'
        verbose_name = 'Notification'
        verbose_name_plural = 'Notifications'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['recipient', 'is_read'], name='idx_notification_unread'),
            models.Index(fields=['recipient', '-created_at'], name='idx_notification_recent'),
            models.Index(fields=['email_status'], name='idx_notification_email'),
            models.Index(fields=['created_at'], name='idx_notification_created'),
        ]

    def __str__(self):
        return f"{self.type} -> {self.recipient_id}"
