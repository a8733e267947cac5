"""
Consent models: record_entry_consent

Before management staff may enter a record for a patient, the patient
confirms in person with their password and a one-time code e-mailed to
them. Each verified consent authorises exactly one record.
"""
import uuid
from datetime import timedelta

from django.conf import settings
from django.db import models
from django.utils import timezone


class ConsentStateChoices(models.TextChoices):
    """
    - PENDING: OTP sent, waiting for verification
    - VERIFIED: OTP matched, may be consumed by one record entry
    - CONSUMED: used to create a record
    - LOCKED: too many wrong codes; only a resend unlocks it
    """
    PENDING = 'pending', 'Pending'
    VERIFIED = 'verified', 'Verified'
    CONSUMED = 'consumed', 'Consumed'
    LOCKED = 'locked', 'Locked'


class RecordEntryConsent(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='record_entry_consents'
    )
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='initiated_record_entry_consents',
        help_text='Management user who started the consent session'
    )

    otp_hash = models.CharField(max_length=128, help_text='Hashed one-time code (never stored in clear)')
    expires_at = models.DateTimeField()
    attempts = models.PositiveSmallIntegerField(default=0)
    resend_count = models.PositiveSmallIntegerField(default=0)

    state = models.CharField(
        max_length=10,
        choices=ConsentStateChoices.choices,
        default=ConsentStateChoices.PENDING
    )
    verified_at = models.DateTimeField(null=True, blank=True)
    consumed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'record_entry_consent'
        verbose_name = 'Record Entry Consent'
        verbose_name_plural = 'Record Entry Consents'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['requested_by', 'state'], name='idx_consent_requester_state'),
            models.Index(fields=['patient', 'state'], name='idx_consent_patient_state'),
            models.Index(fields=['expires_at'], name='idx_consent_expires'),
        ]

    def __str__(self):
        return f"Consent {self.state} for {self.patient_id}"

    @property
    def is_expired(self):
        return timezone.now() > self.expires_at

    @property
    def usable_until(self):
        """Deadline for consuming a verified consent."""
        if self.verified_at is None:
            return None
        return self.verified_at + timedelta(minutes=settings.RECORD_ENTRY_CONSENT_TTL_MINUTES)
