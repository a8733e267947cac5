"""
Record lifecycle engine.

Every operation takes the acting principal explicitly and runs in one
transaction that:
1. locks the rows it mutates (select_for_update)
2. checks existence, authorization and state, in that order
3. applies the transition and bumps row_version
4. writes the clinical audit entry and the in-app notifications

Notifications are therefore committed atomically with the state change;
their e-mail copies are sent after commit (see apps.notifications.services).

Callers may pass ``expected_version`` (the row_version they last read);
a mismatch raises ConflictError instead of silently overwriting.
"""
import logging
from typing import Any, Dict, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.authz.models import AccountStatusChoices, RoleChoices, User
from apps.clinical import lifecycle
from apps.clinical.image_utils import store_report_image, validate_report_image
from apps.clinical.models import (
    AuditActionChoices,
    CorrectionPriorityChoices,
    CorrectionRequest,
    CorrectionStateChoices,
    MedicalRecord,
    RecordStateChoices,
    log_clinical_audit,
)
from apps.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from apps.core.observability import metrics
from apps.core.observability.events import log_correction_transition, log_record_transition

logger = logging.getLogger(__name__)

CORRECTION_ACTIONS = ('approve', 'reject')


# ============================================================================
# Helpers
# ============================================================================

def _lock_record(record_id, operation, include_deleted=False) -> MedicalRecord:
    queryset = MedicalRecord.objects.select_for_update().select_related('patient', 'doctor')
    if not include_deleted:
        queryset = queryset.filter(is_deleted=False)
    try:
        return queryset.get(id=record_id)
    except (MedicalRecord.DoesNotExist, ValueError, TypeError, DjangoValidationError):
        raise NotFoundError('Medical record not found', operation=operation)


def _check_version(record, expected_version, operation):
    if expected_version is not None and int(expected_version) != record.row_version:
        raise ConflictError(
            f'Record was modified concurrently (version {record.row_version}, '
            f'expected {expected_version}); reload and retry',
            operation=operation,
        )


def _save_record(record, fields):
    record.row_version += 1
    record.save(update_fields=list(fields) + ['row_version', 'updated_at'])


def _get_user(user_id, role, operation, label):
    try:
        user = User.objects.get(id=user_id)
    except (User.DoesNotExist, ValueError, TypeError, DjangoValidationError):
        raise NotFoundError(f'{label} not found', operation=operation)
    if user.role != role:
        raise ValidationError(f'Selected user is not a {role}', operation=operation)
    if user.status != AccountStatusChoices.APPROVED or not user.is_active:
        raise InvalidStateError(f'{label} account is not approved', operation=operation)
    return user


def _apply_edit(doctor, record, changes, operation, allow_noop=False):
    """
    Apply clinical field changes with edit semantics.

    A verified record drops back to pending_verification: any edit after
    verification invalidates it. Rejected records cannot be edited.

    Returns:
        (changed_fields, before, after, reopened). Nothing is saved.
    """
    if record.state == RecordStateChoices.REJECTED:
        raise InvalidStateError('Rejected records cannot be edited', operation=operation)

    cleaned, changed_fields = lifecycle.resolve_record_changes(record, changes, operation)
    if not changed_fields:
        if allow_noop:
            return [], {}, {}, False
        raise ValidationError('Changes do not differ from the current record', operation=operation)

    before = {k: v for k, v in record.clinical_snapshot().items() if k in changed_fields}
    for field in changed_fields:
        setattr(record, field, cleaned[field])
    after = {k: v for k, v in record.clinical_snapshot().items() if k in changed_fields}

    reopened = record.state == RecordStateChoices.VERIFIED
    if reopened:
        record.transition_state(RecordStateChoices.PENDING_VERIFICATION, doctor, operation=operation)

    record.edited_by = doctor
    record.edited_at = timezone.now()
    return changed_fields, before, after, reopened


_EDIT_SAVE_FIELDS = ('state', 'verified_by', 'verified_at', 'edited_by', 'edited_at')


# ============================================================================
# Record operations
# ============================================================================

@transaction.atomic
def create_record(
    author,
    patient_id,
    doctor_id,
    fields: Dict[str, Any],
    consent_id=None,
    require_consent: bool = False,
    request=None,
) -> MedicalRecord:
    """
    Management enters a record for a patient, addressed to a doctor.

    Produces a record in pending_verification and notifies the doctor
    (new_record_verification) and the patient (record_added).

    Args:
        author: Management principal
        patient_id / doctor_id: target principals
        fields: clinical fields (diagnosed_disease and prescriptions required)
        consent_id: verified RecordEntryConsent to consume, if any
        require_consent: refuse to create without a consent
    """
    operation = 'create_record'
    lifecycle.require_role(author, RoleChoices.MANAGEMENT, operation)

    cleaned = lifecycle.clean_clinical_fields(fields, operation)
    patient = _get_user(patient_id, RoleChoices.PATIENT, operation, 'Patient')
    doctor = _get_user(doctor_id, RoleChoices.DOCTOR, operation, 'Doctor')

    consent = None
    if consent_id is not None:
        from apps.consents.services import consume_consent
        consent = consume_consent(consent_id, author, patient, operation=operation)
    elif require_consent:
        raise ValidationError('Patient consent (verified OTP) is required', operation=operation)

    record = MedicalRecord.objects.create(
        patient=patient,
        doctor=doctor,
        created_by=author,
        consent=consent,
        state=RecordStateChoices.PENDING_VERIFICATION,
        **cleaned
    )

    log_clinical_audit(
        author, record, AuditActionChoices.CREATE,
        after=record.clinical_snapshot(),
        request=request,
        consent_id=str(consent.id) if consent else None,
    )
    lifecycle.emit_notifications(operation, record)

    metrics.record_transitions_total.labels(
        operation=operation, from_state='none', to_state=record.state
    ).inc()
    log_record_transition(record, 'created', None, record.state, author)
    return record


@transaction.atomic
def verify_record(doctor, record_id, expected_version: Optional[int] = None, request=None) -> MedicalRecord:
    """
    The assigned doctor verifies a pending record; the patient is notified.

    Raises:
        NotFoundError, AuthorizationError, InvalidStateError, ConflictError
    """
    operation = 'verify_record'
    record = _lock_record(record_id, operation)
    lifecycle.require_assigned_doctor(doctor, record, operation)
    _check_version(record, expected_version, operation)

    from_state = record.state
    if from_state != RecordStateChoices.PENDING_VERIFICATION:
        raise InvalidStateError(f'Record is {from_state}, only pending records can be verified', operation=operation)

    record.transition_state(RecordStateChoices.VERIFIED, doctor, operation=operation)
    _save_record(record, ['state', 'verified_by', 'verified_at'])

    log_clinical_audit(
        doctor, record, AuditActionChoices.VERIFY,
        before={'state': from_state}, after={'state': record.state},
        request=request, row_version=record.row_version,
    )
    lifecycle.emit_notifications(operation, record)

    metrics.record_transitions_total.labels(operation=operation, from_state=from_state, to_state=record.state).inc()
    log_record_transition(record, 'verified', from_state, record.state, doctor)
    return record


@transaction.atomic
def reject_record(doctor, record_id, reason: str, expected_version: Optional[int] = None,
                  request=None) -> MedicalRecord:
    """
    The assigned doctor rejects a pending record with a reason; the
    patient is notified.
    """
    operation = 'reject_record'
    record = _lock_record(record_id, operation)
    lifecycle.require_assigned_doctor(doctor, record, operation)
    _check_version(record, expected_version, operation)

    from_state = record.state
    if from_state != RecordStateChoices.PENDING_VERIFICATION:
        raise InvalidStateError(f'Record is {from_state}, only pending records can be rejected', operation=operation)

    reason = (reason or '').strip()
    if not reason:
        raise ValidationError('A rejection reason is required', operation=operation)

    record.transition_state(RecordStateChoices.REJECTED, doctor, operation=operation)
    record.rejection_reason = reason
    _save_record(record, ['state', 'verified_by', 'verified_at', 'rejected_by', 'rejected_at', 'rejection_reason'])

    log_clinical_audit(
        doctor, record, AuditActionChoices.REJECT,
        before={'state': from_state}, after={'state': record.state},
        request=request, reason=reason, row_version=record.row_version,
    )
    lifecycle.emit_notifications(operation, record, reason=reason)

    metrics.record_transitions_total.labels(operation=operation, from_state=from_state, to_state=record.state).inc()
    log_record_transition(record, 'rejected', from_state, record.state, doctor)
    return record


@transaction.atomic
def edit_record(doctor, record_id, field_changes: Dict[str, Any], expected_version: Optional[int] = None,
                request=None) -> MedicalRecord:
    """
    The assigned doctor changes clinical fields.

    Editing a verified record resets it to pending_verification. The
    patient is notified with record_updated.
    """
    operation = 'edit_record'
    record = _lock_record(record_id, operation)
    lifecycle.require_assigned_doctor(doctor, record, operation)
    _check_version(record, expected_version, operation)

    from_state = record.state
    changed_fields, before, after, reopened = _apply_edit(doctor, record, field_changes, operation)
    _save_record(record, changed_fields + list(_EDIT_SAVE_FIELDS))

    log_clinical_audit(
        doctor, record, AuditActionChoices.UPDATE,
        before=before, after=after, changed_fields=changed_fields,
        request=request, reopened=reopened, row_version=record.row_version,
    )
    lifecycle.emit_notifications(operation, record, record_reopened=reopened)

    metrics.record_transitions_total.labels(operation=operation, from_state=from_state, to_state=record.state).inc()
    log_record_transition(record, 'edited', from_state, record.state, doctor, changed_fields=changed_fields)
    return record


@transaction.atomic
def edit_and_reverify_record(doctor, record_id, field_changes: Dict[str, Any],
                             expected_version: Optional[int] = None, request=None) -> MedicalRecord:
    """
    Edit a record and verify it again in one step.

    A verified record ends verified with a refreshed verified_at /
    verified_by pair; the patient receives record_updated then
    record_verified.
    """
    record = edit_record(doctor, record_id, field_changes, expected_version=expected_version, request=request)
    return verify_record(doctor, record.id, expected_version=record.row_version, request=request)


@transaction.atomic
def attach_record_image(actor, record_id, uploaded_file, request=None) -> MedicalRecord:
    """
    Attach a JPEG/PNG report image to a record awaiting verification.

    Allowed for the management author and the assigned doctor.
    """
    operation = 'attach_image'
    record = _lock_record(record_id, operation)
    if actor.id not in (record.created_by_id, record.doctor_id):
        raise AuthorizationError('Only the record author or assigned doctor can attach images', operation=operation)
    if record.state != RecordStateChoices.PENDING_VERIFICATION:
        raise InvalidStateError('Images can only be attached before verification', operation=operation)

    try:
        validate_report_image(uploaded_file)
    except ValidationError:
        metrics.record_images_uploaded_total.labels(result='invalid').inc()
        raise

    image_ref = store_report_image(record, uploaded_file)
    record.report_images = list(record.report_images or []) + [image_ref]
    _save_record(record, ['report_images'])

    log_clinical_audit(
        actor, record, AuditActionChoices.ATTACH_IMAGE,
        request=request, path=image_ref['path'], size=image_ref['size'],
    )
    metrics.record_images_uploaded_total.labels(result='success').inc()
    return record


@transaction.atomic
def soft_delete_record(admin, record_id, request=None) -> MedicalRecord:
    """Admin hides a record. The row and its history are kept."""
    operation = 'delete_record'
    lifecycle.require_role(admin, RoleChoices.ADMIN, operation)
    record = _lock_record(record_id, operation)

    record.is_deleted = True
    record.deleted_at = timezone.now()
    record.deleted_by = admin
    _save_record(record, ['is_deleted', 'deleted_at', 'deleted_by'])

    log_clinical_audit(admin, record, AuditActionChoices.DELETE, request=request)
    log_record_transition(record, 'deleted', record.state, record.state, admin)
    return record


# ============================================================================
# Correction request operations
# ============================================================================

@transaction.atomic
def request_correction(
    patient,
    record_id,
    reason: str,
    proposed_changes: Optional[Dict[str, Any]] = None,
    priority: str = CorrectionPriorityChoices.MEDIUM,
    description: str = '',
    request=None,
) -> CorrectionRequest:
    """
    A patient asks the record's doctor to correct a verified record.

    Raises:
        ConflictError: a pending request already exists for the record
    """
    operation = 'request_correction'
    record = _lock_record(record_id, operation)
    lifecycle.require_record_owner(patient, record, operation)

    if record.state != RecordStateChoices.VERIFIED:
        raise InvalidStateError('Corrections can only be requested for verified records', operation=operation)

    reason = (reason or '').strip()
    if not reason:
        raise ValidationError('A reason is required', operation=operation)
    if priority not in CorrectionPriorityChoices.values:
        raise ValidationError(
            f'priority must be one of {", ".join(CorrectionPriorityChoices.values)}',
            operation=operation,
        )
    if proposed_changes is None:
        proposed_changes = {}
    if not isinstance(proposed_changes, dict):
        raise ValidationError('proposed_changes must be an object', operation=operation)

    pending_exists = CorrectionRequest.objects.filter(
        record=record, state=CorrectionStateChoices.PENDING
    ).exists()
    if pending_exists:
        metrics.correction_requests_total.labels(operation='request', result='conflict').inc()
        raise ConflictError('A correction request is already pending for this record', operation=operation)

    try:
        with transaction.atomic():
            correction = CorrectionRequest.objects.create(
                record=record,
                patient=patient,
                doctor_id=record.doctor_id,
                reason=reason,
                description=(description or '').strip(),
                proposed_changes=proposed_changes,
                priority=priority,
                original_snapshot=record.clinical_snapshot(),
            )
    except IntegrityError:
        metrics.correction_requests_total.labels(operation='request', result='conflict').inc()
        raise ConflictError('A correction request is already pending for this record', operation=operation)

    record.correction_requested = True
    _save_record(record, ['correction_requested'])

    log_clinical_audit(
        patient, correction, AuditActionChoices.REQUEST_CORRECTION,
        after={'state': correction.state, 'priority': priority},
        request=request, reason=reason,
    )
    lifecycle.emit_notifications(operation, record, correction_request=correction, reason=reason)

    metrics.correction_requests_total.labels(operation='request', result='success').inc()
    log_correction_transition(correction, 'requested', None, correction.state, patient, priority=priority)
    return correction


@transaction.atomic
def resolve_correction(
    doctor,
    request_id,
    action: str,
    response_text: str = '',
    record_changes: Optional[Dict[str, Any]] = None,
    request=None,
) -> CorrectionRequest:
    """
    The record's doctor approves or rejects a pending correction request.

    approve: request -> approved, correction flag cleared, and
    ``record_changes`` (if any) applied with edit semantics, which
    reopens verification of a verified record.
    reject: request -> rejected, correction flag cleared, record
    clinical fields and state untouched.

    The patient is notified with correction_approved / correction_rejected.
    """
    operation = f'{action}_correction' if action in CORRECTION_ACTIONS else 'resolve_correction'

    try:
        record_id = CorrectionRequest.objects.values_list('record_id', flat=True).get(id=request_id)
    except (CorrectionRequest.DoesNotExist, ValueError, TypeError, DjangoValidationError):
        raise NotFoundError('Correction request not found', operation=operation)

    # Lock order: record, then request
    record = _lock_record(record_id, operation, include_deleted=True)
    correction = CorrectionRequest.objects.select_for_update().get(id=request_id)

    lifecycle.require_role(doctor, RoleChoices.DOCTOR, operation)
    if correction.doctor_id != doctor.id:
        raise AuthorizationError('This correction request is addressed to another doctor', operation=operation)
    if correction.state != CorrectionStateChoices.PENDING:
        raise InvalidStateError(f'Correction request is already {correction.state}', operation=operation)
    if action not in CORRECTION_ACTIONS:
        raise ValidationError('action must be approve or reject', operation=operation)

    response_text = (response_text or '').strip()
    from_record_state = record.state
    changed_fields, before, after, reopened = [], {}, {}, False

    if action == 'approve':
        if record_changes:
            if record.is_deleted:
                raise InvalidStateError('Cannot change a deleted record', operation=operation)
            changed_fields, before, after, reopened = _apply_edit(
                doctor, record, record_changes, operation, allow_noop=True
            )
            if changed_fields:
                record.corrected_by = doctor
                record.corrected_at = timezone.now()
        correction.state = CorrectionStateChoices.APPROVED
    else:
        correction.state = CorrectionStateChoices.REJECTED

    correction.doctor_response = response_text
    correction.responded_by = doctor
    correction.responded_at = timezone.now()
    correction.save(update_fields=['state', 'doctor_response', 'responded_by', 'responded_at', 'updated_at'])

    record.correction_requested = False
    record_fields = ['correction_requested']
    if changed_fields:
        record_fields += changed_fields + list(_EDIT_SAVE_FIELDS) + ['corrected_by', 'corrected_at']
    _save_record(record, record_fields)

    audit_action = (
        AuditActionChoices.APPROVE_CORRECTION if action == 'approve' else AuditActionChoices.REJECT_CORRECTION
    )
    log_clinical_audit(
        doctor, correction, audit_action,
        before=before, after=after, changed_fields=changed_fields,
        request=request, reopened=reopened, record_row_version=record.row_version,
    )
    lifecycle.emit_notifications(
        operation, record,
        correction_request=correction,
        response_text=response_text or 'No response provided',
        record_reopened=reopened,
    )

    metrics.correction_requests_total.labels(operation=action, result='success').inc()
    if reopened:
        metrics.record_transitions_total.labels(
            operation=operation, from_state=from_record_state, to_state=record.state
        ).inc()
    log_correction_transition(
        correction, action + 'd', CorrectionStateChoices.PENDING, correction.state, doctor,
        record_reopened=reopened, changed_fields=changed_fields,
    )
    return correction
