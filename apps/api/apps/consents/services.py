"""
Record entry consent services.

Flow:
1. initiate_consent(): management supplies the patient's e-mail and
   password; a 6-digit code is e-mailed to the patient.
2. verify_consent(): management types the code the patient reads out.
3. consume_consent(): called by create_record, binds the consent to
   exactly one new record.

Codes are stored hashed, expire after RECORD_ENTRY_OTP_TTL_MINUTES and
lock the session after RECORD_ENTRY_OTP_MAX_ATTEMPTS wrong guesses.
"""
import logging
import secrets
import smtplib
from datetime import timedelta

from django.conf import settings
from django.contrib.auth.hashers import check_password, make_password
from django.core.mail import send_mail
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from apps.authz.models import RoleChoices, User
from apps.consents.models import ConsentStateChoices, RecordEntryConsent
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

OTP_LENGTH = 6


def generate_otp():
    return f'{secrets.randbelow(10 ** OTP_LENGTH):0{OTP_LENGTH}d}'


def _otp_expiry():
    return timezone.now() + timedelta(minutes=settings.RECORD_ENTRY_OTP_TTL_MINUTES)


def _send_otp_email(consent_id, email, otp):
    """Runs after commit; delivery failure leaves the session resendable."""
    try:
        send_mail(
            subject='Your medical record entry verification code',
            message=(
                f'Your verification code is {otp}. '
                f'It expires in {settings.RECORD_ENTRY_OTP_TTL_MINUTES} minutes. '
                'Share it only with the clinic staff entering your medical record.'
            ),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[email],
            fail_silently=False,
        )
    except (smtplib.SMTPException, OSError):
        metrics.consent_otp_events_total.labels(event='email', result='failed').inc()
        logger.error(
            'Consent OTP e-mail delivery failed',
            exc_info=True,
            extra={'event': 'consent_otp_email_failed', 'consent_id': str(consent_id)}
        )
        return False
    metrics.consent_otp_events_total.labels(event='email', result='sent').inc()
    return True


def _issue_otp(consent):
    """Set a fresh hashed code on ``consent`` and schedule its e-mail."""
    otp = generate_otp()
    consent.otp_hash = make_password(otp)
    consent.expires_at = _otp_expiry()
    consent.attempts = 0
    consent.state = ConsentStateChoices.PENDING

    consent_id, email = consent.id, consent.patient.email
    transaction.on_commit(lambda: _send_otp_email(consent_id, email, otp))


def _require_management(actor, operation):
    if actor.role != RoleChoices.MANAGEMENT:
        raise AuthorizationError('Only management staff can collect patient consent', operation=operation)


def _lock_consent(actor, consent_id, operation):
    try:
        consent = (
            RecordEntryConsent.objects
            .select_for_update()
            .select_related('patient')
            .get(id=consent_id)
        )
    except (RecordEntryConsent.DoesNotExist, ValueError, TypeError, DjangoValidationError):
        raise NotFoundError('Consent session not found', operation=operation)
    if consent.requested_by_id != actor.id:
        raise AuthorizationError('Consent session belongs to another user', operation=operation)
    return consent


@transaction.atomic
def initiate_consent(actor, patient_email, patient_password) -> RecordEntryConsent:
    """
    Authenticate the patient and e-mail them a one-time code.

    Raises:
        AuthorizationError: actor is not management, or wrong patient password
        NotFoundError: no account with that e-mail
        ValidationError: account is not a patient
        InvalidStateError: patient account not approved
    """
    operation = 'initiate_consent'
    _require_management(actor, operation)

    patient = User.objects.filter(email__iexact=patient_email).first()
    if patient is None:
        metrics.consent_otp_events_total.labels(event='initiate', result='not_found').inc()
        raise NotFoundError('Patient not found with this email', operation=operation)
    if patient.role != RoleChoices.PATIENT:
        raise ValidationError('User is not a patient', operation=operation)
    if not patient.is_approved:
        raise InvalidStateError('Patient account is not verified', operation=operation)
    if not patient.check_password(patient_password):
        metrics.consent_otp_events_total.labels(event='initiate', result='bad_credentials').inc()
        log_domain_event(
            'consent_initiate_bad_credentials',
            entity_type='User',
            entity_id=str(patient.id),
            result='blocked',
            actor_id=str(actor.id),
        )
        raise AuthorizationError('Invalid patient credentials', operation=operation)

    consent = RecordEntryConsent(patient=patient, requested_by=actor)
    _issue_otp(consent)
    consent.save()

    metrics.consent_otp_events_total.labels(event='initiate', result='success').inc()
    log_domain_event(
        'consent_initiated',
        entity_type='RecordEntryConsent',
        entity_id=str(consent.id),
        entity_ids={'patient_id': str(patient.id), 'actor_id': str(actor.id)},
        expires_at=consent.expires_at.isoformat(),
    )
    return consent


def verify_consent(actor, consent_id, otp) -> RecordEntryConsent:
    """
    Check the code the patient received.

    A wrong code is counted even though the call fails, so the attempt
    counter is committed before the error is raised.
    """
    operation = 'verify_consent'
    _require_management(actor, operation)
    failure = None

    with transaction.atomic():
        consent = _lock_consent(actor, consent_id, operation)

        if consent.state in (ConsentStateChoices.VERIFIED, ConsentStateChoices.CONSUMED):
            raise InvalidStateError('OTP has already been used', operation=operation)
        if consent.state == ConsentStateChoices.LOCKED:
            raise InvalidStateError('Too many invalid attempts, request a new OTP', operation=operation)
        if consent.is_expired:
            raise InvalidStateError('OTP has expired', operation=operation)

        if check_password(str(otp), consent.otp_hash):
            consent.state = ConsentStateChoices.VERIFIED
            consent.verified_at = timezone.now()
            consent.save(update_fields=['state', 'verified_at', 'updated_at'])
            notify(
                actor,
                NotificationTypeChoices.CONSENT_VERIFIED,
                'OTP Verified - Ready to Add Record',
                f'Patient {consent.patient.full_name} has verified the OTP. You can now add their medical record.',
                metadata={
                    'consent_id': str(consent.id),
                    'patient_id': str(consent.patient_id),
                    'patient_email': consent.patient.email,
                },
            )
        else:
            consent.attempts += 1
            if consent.attempts >= settings.RECORD_ENTRY_OTP_MAX_ATTEMPTS:
                consent.state = ConsentStateChoices.LOCKED
            consent.save(update_fields=['attempts', 'state', 'updated_at'])
            failure = ValidationError('Invalid OTP', operation=operation)

    if failure is not None:
        metrics.consent_otp_events_total.labels(event='verify', result='invalid').inc()
        log_domain_event(
            'consent_verify_failed',
            entity_type='RecordEntryConsent',
            entity_id=str(consent.id),
            result='blocked',
            attempts=consent.attempts,
            locked=consent.state == ConsentStateChoices.LOCKED,
        )
        raise failure

    metrics.consent_otp_events_total.labels(event='verify', result='success').inc()
    log_domain_event(
        'consent_verified',
        entity_type='RecordEntryConsent',
        entity_id=str(consent.id),
        entity_ids={'patient_id': str(consent.patient_id), 'actor_id': str(actor.id)},
    )
    return consent


@transaction.atomic
def resend_otp(actor, consent_id) -> RecordEntryConsent:
    """Issue a new code for a pending or locked session."""
    operation = 'resend_otp'
    _require_management(actor, operation)
    consent = _lock_consent(actor, consent_id, operation)

    if consent.state in (ConsentStateChoices.VERIFIED, ConsentStateChoices.CONSUMED):
        raise InvalidStateError('Consent already verified', operation=operation)

    _issue_otp(consent)
    consent.resend_count += 1
    consent.save(update_fields=[
        'otp_hash', 'expires_at', 'attempts', 'state', 'resend_count', 'updated_at'
    ])

    metrics.consent_otp_events_total.labels(event='resend', result='success').inc()
    log_domain_event(
        'consent_otp_resent',
        entity_type='RecordEntryConsent',
        entity_id=str(consent.id),
        resend_count=consent.resend_count,
    )
    return consent


def consume_consent(consent_id, author, patient, operation='create_record') -> RecordEntryConsent:
    """
    Mark a verified consent as used for one record.

    Must run inside the record creation transaction.
    """
    try:
        consent = RecordEntryConsent.objects.select_for_update().get(id=consent_id)
    except (RecordEntryConsent.DoesNotExist, ValueError, TypeError, DjangoValidationError):
        raise NotFoundError('Consent session not found', operation=operation)

    if consent.requested_by_id != author.id:
        raise AuthorizationError('Consent session belongs to another user', operation=operation)
    if consent.patient_id != patient.id:
        raise ValidationError('Consent was given by a different patient', operation=operation)
    if consent.state != ConsentStateChoices.VERIFIED:
        raise InvalidStateError(f'Consent is {consent.state}, expected verified', operation=operation)
    if timezone.now() > consent.usable_until:
        raise InvalidStateError('Consent has expired, verify the patient again', operation=operation)

    consent.state = ConsentStateChoices.CONSUMED
    consent.consumed_at = timezone.now()
    consent.save(update_fields=['state', 'consumed_at', 'updated_at'])
    return consent


def purge_expired_consents():
    """
    Delete sessions that can no longer be used.

    Consumed sessions are kept as evidence for the record they created.

    Returns:
        Number of sessions deleted.
    """
    now = timezone.now()
    unverified = RecordEntryConsent.objects.filter(
        state__in=[ConsentStateChoices.PENDING, ConsentStateChoices.LOCKED],
        expires_at__lt=now,
    )
    stale_verified = RecordEntryConsent.objects.filter(
        state=ConsentStateChoices.VERIFIED,
        verified_at__lt=now - timedelta(minutes=settings.RECORD_ENTRY_CONSENT_TTL_MINUTES),
    )
    deleted = unverified.delete()[0] + stale_verified.delete()[0]
    logger.info('Expired consents purged', extra={'event': 'consents_purged', 'deleted': deleted})
    return deleted
