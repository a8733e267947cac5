"""
Record lifecycle rules: clinical field validation, authorization
predicates and the notification side-effect table.

Nothing here touches the database except through ``emit_notifications``,
which delegates to the notifier inside the caller's transaction.
"""
import copy
import datetime

from django.utils.dateparse import parse_date

from apps.authz.models import AccountStatusChoices, RoleChoices
from apps.clinical.models import (
    CLINICAL_FIELDS,
    PRESCRIPTION_FIELDS,
    PRESCRIPTION_REQUIRED_FIELDS,
    CaseStatusChoices,
)
from apps.core.exceptions import AuthorizationError, ValidationError
from apps.notifications.models import NotificationTypeChoices
from apps.notifications.services import notify


# ============================================================================
# Clinical field validation
# ============================================================================

def _clean_text(value, field, operation, required=False, max_length=None):
    if value is None:
        value = ''
    if not isinstance(value, str):
        raise ValidationError(f'{field} must be a string', operation=operation)
    value = value.strip()
    if required and not value:
        raise ValidationError(f'{field} is required', operation=operation)
    if max_length and len(value) > max_length:
        raise ValidationError(f'{field} must be at most {max_length} characters', operation=operation)
    return value


def _clean_prescriptions(value, operation):
    if not isinstance(value, list) or not value:
        raise ValidationError('At least one prescription is required', operation=operation)

    cleaned = []
    for index, item in enumerate(value):
        if not isinstance(item, dict):
            raise ValidationError(f'prescriptions[{index}] must be an object', operation=operation)
        unknown = set(item) - set(PRESCRIPTION_FIELDS)
        if unknown:
            raise ValidationError(
                f'prescriptions[{index}] has unknown fields: {", ".join(sorted(unknown))}',
                operation=operation,
            )
        cleaned.append({
            key: _clean_text(
                item.get(key),
                f'prescriptions[{index}].{key}',
                operation,
                required=key in PRESCRIPTION_REQUIRED_FIELDS,
                max_length=255,
            )
            for key in PRESCRIPTION_FIELDS
        })
    return cleaned


def _clean_visit_date(value, operation):
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    parsed = parse_date(value) if isinstance(value, str) else None
    if parsed is None:
        raise ValidationError('visit_date must be a date (YYYY-MM-DD)', operation=operation)
    return parsed


def clean_clinical_fields(fields, operation, partial=False):
    """
    Validate and normalise clinical field values.

    With ``partial`` only the supplied fields are checked; otherwise the
    fields required at record creation must be present.

    Raises:
        ValidationError
    """
    unknown = set(fields) - set(CLINICAL_FIELDS)
    if unknown:
        raise ValidationError(f'Unknown record fields: {", ".join(sorted(unknown))}', operation=operation)

    if not partial:
        if not fields.get('diagnosed_disease'):
            raise ValidationError('diagnosed_disease is required', operation=operation)
        if not fields.get('prescriptions'):
            raise ValidationError('At least one prescription is required', operation=operation)

    cleaned = {}
    for field, value in fields.items():
        if field == 'diagnosed_disease':
            cleaned[field] = _clean_text(value, field, operation, required=True, max_length=255)
        elif field in ('symptoms', 'recommendations'):
            cleaned[field] = _clean_text(value, field, operation)
        elif field == 'prescriptions':
            cleaned[field] = _clean_prescriptions(value, operation)
        elif field == 'case_status':
            if value not in CaseStatusChoices.values:
                raise ValidationError(
                    f'case_status must be one of {", ".join(CaseStatusChoices.values)}',
                    operation=operation,
                )
            cleaned[field] = value
        elif field == 'vital_signs':
            if value is None:
                value = {}
            if not isinstance(value, dict):
                raise ValidationError('vital_signs must be an object', operation=operation)
            cleaned[field] = value
        elif field == 'visit_date':
            cleaned[field] = _clean_visit_date(value, operation)
    return cleaned


def resolve_record_changes(record, changes, operation):
    """
    Turn a change request into validated clinical field values.

    Besides clinical fields, ``changes`` may carry prescription item keys
    (medicine, dosage, frequency, interval) at top level; they patch the
    item at ``prescription_index`` (default 0). A full ``prescriptions``
    list replaces the list instead.

    Returns:
        (cleaned_values, changed_fields) where changed_fields lists only
        fields whose value differs from the record.
    """
    if not isinstance(changes, dict) or not changes:
        raise ValidationError('No changes supplied', operation=operation)

    changes = dict(changes)
    prescription_index = changes.pop('prescription_index', 0)
    item_changes = {key: changes.pop(key) for key in PRESCRIPTION_FIELDS if key in changes}

    if item_changes:
        if 'prescriptions' in changes:
            raise ValidationError(
                'Send either a prescriptions list or prescription item fields, not both',
                operation=operation,
            )
        prescriptions = copy.deepcopy(record.prescriptions or [])
        if not isinstance(prescription_index, int) or isinstance(prescription_index, bool):
            raise ValidationError('prescription_index must be an integer', operation=operation)
        if prescription_index == len(prescriptions):
            prescriptions.append({})
        elif not 0 <= prescription_index < len(prescriptions):
            raise ValidationError(f'No prescription at index {prescription_index}', operation=operation)
        prescriptions[prescription_index].update(item_changes)
        changes['prescriptions'] = prescriptions

    cleaned = clean_clinical_fields(changes, operation, partial=True)
    changed_fields = [field for field, value in cleaned.items() if getattr(record, field) != value]
    return cleaned, changed_fields


# ============================================================================
# Authorization predicates
# ============================================================================

def require_role(principal, role, operation):
    """Principal must hold ``role`` with an approved account."""
    if principal is None or principal.role != role:
        raise AuthorizationError(
            f'Only users with role {role} can perform {operation}',
            operation=operation,
        )
    if principal.status != AccountStatusChoices.APPROVED:
        raise AuthorizationError('Account is not approved', operation=operation)


def require_assigned_doctor(doctor, record, operation):
    require_role(doctor, RoleChoices.DOCTOR, operation)
    if record.doctor_id != doctor.id:
        raise AuthorizationError('You are not the doctor assigned to this record', operation=operation)


def require_record_owner(patient, record, operation):
    require_role(patient, RoleChoices.PATIENT, operation)
    if record.patient_id != patient.id:
        raise AuthorizationError('You can only act on your own records', operation=operation)


# ============================================================================
# Notification side-effect table
# ============================================================================

# operation -> [(notification type, recipient attribute, title, message template)]
NOTIFICATION_TABLE = {
    'create_record': [
        (
            NotificationTypeChoices.NEW_RECORD_VERIFICATION,
            'doctor',
            'New Medical Record for Verification',
            'A new medical record for {patient_name} from {visit_date} requires your verification.',
        ),
        (
            NotificationTypeChoices.RECORD_ADDED,
            'patient',
            'New Medical Record Added',
            'A new medical record from {visit_date} has been added to your profile. '
            'It is pending verification by Dr. {doctor_name}.',
        ),
    ],
    'verify_record': [
        (
            NotificationTypeChoices.RECORD_VERIFIED,
            'patient',
            'Medical Record Verified',
            'Your medical record from {visit_date} has been verified by Dr. {doctor_name}.',
        ),
    ],
    'reject_record': [
        (
            NotificationTypeChoices.RECORD_REJECTED,
            'patient',
            'Medical Record Rejected',
            'Your medical record from {visit_date} was rejected by Dr. {doctor_name}. Reason: {reason}',
        ),
    ],
    'edit_record': [
        (
            NotificationTypeChoices.RECORD_UPDATED,
            'patient',
            'Medical Record Updated',
            'Your medical record from {visit_date} has been updated by Dr. {doctor_name}.',
        ),
    ],
    'request_correction': [
        (
            NotificationTypeChoices.CORRECTION_REQUESTED,
            'doctor',
            'Correction Request',
            '{patient_name} has requested a correction to the record from {visit_date}. Reason: {reason}',
        ),
    ],
    'approve_correction': [
        (
            NotificationTypeChoices.CORRECTION_APPROVED,
            'patient',
            'Correction Request Approved',
            'Your correction request for the record from {visit_date} has been approved. '
            'Doctor response: {response_text}',
        ),
    ],
    'reject_correction': [
        (
            NotificationTypeChoices.CORRECTION_REJECTED,
            'patient',
            'Correction Request Rejected',
            'Your correction request for the record from {visit_date} has been rejected. '
            'Doctor response: {response_text}',
        ),
    ],
}


def emit_notifications(operation, record, correction_request=None, **context):
    """
    Create the notifications ``operation`` produces.

    Must run inside the operation's transaction.

    Returns:
        List of created notifications.
    """
    values = {
        'patient_name': record.patient.full_name,
        'doctor_name': record.doctor.full_name,
        'visit_date': record.visit_date,
        'reason': '',
        'response_text': '',
    }
    values.update(context)

    metadata = {
        'record_id': str(record.id),
        'record_state': record.state,
    }
    if correction_request is not None:
        metadata['correction_request_id'] = str(correction_request.id)
    for key in ('reason', 'response_text', 'record_reopened'):
        if key in context:
            metadata[key] = context[key]

    notifications = []
    for notification_type, recipient_attr, title, template in NOTIFICATION_TABLE[operation]:
        notifications.append(notify(
            getattr(record, recipient_attr),
            notification_type,
            title,
            template.format(**values),
            record=record,
            correction_request=correction_request,
            metadata=metadata,
        ))
    return notifications
