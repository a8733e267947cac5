"""
Clinical models: medical_record, correction_request, clinical_audit_log

A medical record is entered by management staff on behalf of a patient,
addressed to one doctor, and moves through the verification lifecycle:

    pending_verification --verify--> verified
    pending_verification --reject--> rejected
    verified --edit / approved correction--> pending_verification

A patient may file one pending correction request at a time against a
verified record; the record's doctor resolves it.
"""
import uuid
from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from apps.core.exceptions import InvalidStateError


# ============================================================================
# Enums
# ============================================================================

class RecordStateChoices(models.TextChoices):
    PENDING_VERIFICATION = 'pending_verification', 'Pending Verification'
    VERIFIED = 'verified', 'Verified'
    REJECTED = 'rejected', 'Rejected'


class CaseStatusChoices(models.TextChoices):
    IMPROVING = 'improving', 'Improving'
    STABLE = 'stable', 'Stable'
    DETERIORATING = 'deteriorating', 'Deteriorating'


class CorrectionStateChoices(models.TextChoices):
    PENDING = 'pending', 'Pending'
    APPROVED = 'approved', 'Approved'
    REJECTED = 'rejected', 'Rejected'


class CorrectionPriorityChoices(models.TextChoices):
    LOW = 'low', 'Low'
    MEDIUM = 'medium', 'Medium'
    HIGH = 'high', 'High'


# Free-form clinical fields; the only fields an edit or approved correction may change
CLINICAL_FIELDS = (
    'visit_date',
    'diagnosed_disease',
    'symptoms',
    'prescriptions',
    'recommendations',
    'case_status',
    'vital_signs',
)

# Keys of one prescription item
PRESCRIPTION_FIELDS = ('medicine', 'dosage', 'frequency', 'interval')
PRESCRIPTION_REQUIRED_FIELDS = ('medicine', 'dosage', 'frequency')


# ============================================================================
# Medical Record
# ============================================================================

class MedicalRecord(models.Model):
    """
    A medical encounter entry subject to doctor verification.

    Fields:
    - patient / doctor / created_by: patient, assigned doctor, management author
    - clinical fields: see CLINICAL_FIELDS
    - prescriptions: ordered list of {medicine, dosage, frequency, interval}
    - report_images: ordered list of {path, file_name, content_type, size, uploaded_at}
    - state: pending_verification|verified|rejected
    - verified_by/verified_at: set iff state == verified
    - correction_requested: true while a pending CorrectionRequest exists
    - row_version int default 1 (optimistic locking)
    - is_deleted, deleted_at, deleted_by (records are never hard-deleted)
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    patient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='patient_records'
    )
    doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='doctor_records'
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='authored_records',
        help_text='Management user who entered the record'
    )
    consent = models.OneToOneField(
        'consents.RecordEntryConsent',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='record',
        help_text='Patient consent session consumed to create this record'
    )

    # Clinical fields
    visit_date = models.DateField(default=timezone.localdate)
    diagnosed_disease = models.CharField(max_length=255)
    symptoms = models.TextField(blank=True)
    prescriptions = models.JSONField(default=list)
    recommendations = models.TextField(blank=True)
    case_status = models.CharField(
        max_length=20,
        choices=CaseStatusChoices.choices,
        default=CaseStatusChoices.STABLE
    )
    vital_signs = models.JSONField(default=dict, blank=True)
    report_images = models.JSONField(default=list, blank=True)

    # Lifecycle
    state = models.CharField(
        max_length=25,
        choices=RecordStateChoices.choices,
        default=RecordStateChoices.PENDING_VERIFICATION
    )
    verified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    verified_at = models.DateTimeField(null=True, blank=True)
    rejected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    rejected_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True)
    edited_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    edited_at = models.DateTimeField(null=True, blank=True)
    corrected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        help_text='Doctor who last applied an approved correction'
    )
    corrected_at = models.DateTimeField(null=True, blank=True)
    correction_requested = models.BooleanField(default=False)

    row_version = models.IntegerField(default=1)

    # Soft delete
    is_deleted = models.BooleanField(default=False)
    deleted_at = models.DateTimeField(null=True, blank=True)
    deleted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    # BUSINESS RULE: Allowed state transitions
    _ALLOWED_TRANSITIONS = {
        RecordStateChoices.PENDING_VERIFICATION: [RecordStateChoices.VERIFIED, RecordStateChoices.REJECTED],
        RecordStateChoices.VERIFIED: [RecordStateChoices.PENDING_VERIFICATION],
        RecordStateChoices.REJECTED: [],  # Terminal state
    }

    class Meta:
        db_table = 'medical_record'
        verbose_name = 'Medical Record'
        verbose_name_plural = 'Medical Records'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['patient', 'state'], name='idx_record_patient_state'),
            models.Index(fields=['doctor', 'state'], name='idx_record_doctor_state'),
            models.Index(fields=['created_by', '-created_at'], name='idx_record_author'),
            models.Index(fields=['visit_date'], name='idx_record_visit_date'),
            models.Index(fields=['is_deleted'], name='idx_record_deleted'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(state=RecordStateChoices.VERIFIED, verified_by__isnull=False, verified_at__isnull=False)
                    | (~Q(state=RecordStateChoices.VERIFIED) & Q(verified_by__isnull=True, verified_at__isnull=True))
                ),
                name='chk_record_verified_pair',
            ),
        ]

    def __str__(self):
        return f"Record {self.visit_date} - {self.diagnosed_disease} ({self.state})"

    def can_transition_to(self, new_state):
        return new_state in self._ALLOWED_TRANSITIONS.get(self.state, [])

    def transition_state(self, new_state, user, operation=None):
        """
        Move the record to ``new_state`` and keep the verification pair consistent.

        Does not save; the caller saves with the fields it touched.

        Raises:
            InvalidStateError: transition not allowed from the current state
        """
        if not self.can_transition_to(new_state):
            raise InvalidStateError(
                f'Cannot transition record from {self.state} to {new_state}',
                operation=operation,
            )

        now = timezone.now()
        self.state = new_state

        if new_state == RecordStateChoices.VERIFIED:
            self.verified_by = user
            self.verified_at = now
        else:
            self.verified_by = None
            self.verified_at = None

        if new_state == RecordStateChoices.REJECTED:
            self.rejected_by = user
            self.rejected_at = now

    def clinical_snapshot(self):
        """Clinical field values, JSON-safe."""
        snapshot = {field: getattr(self, field) for field in CLINICAL_FIELDS}
        if snapshot['visit_date'] is not None:
            snapshot['visit_date'] = str(snapshot['visit_date'])
        return snapshot


# ============================================================================
# Correction Request
# ============================================================================

class CorrectionRequest(models.Model):
    """
    A patient-initiated change proposal against one verified record.

    BUSINESS RULES:
    - At most one pending request per record (partial unique index)
    - doctor is copied from the record at creation time
    - Never deleted
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    record = models.ForeignKey(
        MedicalRecord,
        on_delete=models.PROTECT,
        related_name='correction_requests'
    )
    patient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='correction_requests'
    )
    doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='assigned_correction_requests'
    )

    reason = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    proposed_changes = models.JSONField(default=dict, blank=True)
    priority = models.CharField(
        max_length=10,
        choices=CorrectionPriorityChoices.choices,
        default=CorrectionPriorityChoices.MEDIUM
    )
    original_snapshot = models.JSONField(
        default=dict,
        blank=True,
        help_text='Clinical fields of the record when the request was filed'
    )

    state = models.CharField(
        max_length=10,
        choices=CorrectionStateChoices.choices,
        default=CorrectionStateChoices.PENDING
    )
    doctor_response = models.TextField(blank=True)
    responded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    responded_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'correction_request'
        verbose_name = 'Correction Request'
        verbose_name_plural = 'Correction Requests'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['doctor', 'state'], name='idx_correction_doctor_state'),
            models.Index(fields=['patient', '-created_at'], name='idx_correction_patient'),
            models.Index(fields=['record'], name='idx_correction_record'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['record'],
                condition=Q(state='pending'),
                name='uniq_pending_correction_per_record',
            ),
        ]

    def __str__(self):
        return f"Correction {self.state} on record {str(self.record_id)[:8]}"


# ============================================================================
# Clinical Audit Log
# ============================================================================

class AuditActionChoices(models.TextChoices):
    CREATE = 'create', 'Create'
    VERIFY = 'verify', 'Verify'
    REJECT = 'reject', 'Reject'
    UPDATE = 'update', 'Update'
    ATTACH_IMAGE = 'attach_image', 'Attach Image'
    DELETE = 'delete', 'Delete'
    REQUEST_CORRECTION = 'request_correction', 'Request Correction'
    APPROVE_CORRECTION = 'approve_correction', 'Approve Correction'
    REJECT_CORRECTION = 'reject_correction', 'Reject Correction'


class AuditEntityTypeChoices(models.TextChoices):
    MEDICAL_RECORD = 'MedicalRecord', 'Medical Record'
    CORRECTION_REQUEST = 'CorrectionRequest', 'Correction Request'


class ClinicalAuditLog(models.Model):
    """
    Audit trail for medical record and correction request transitions.

    Fields:
    - actor_user: who made the change
    - action: see AuditActionChoices
    - entity_type / entity_id: audited entity
    - patient / record: related entities for easier querying
    - metadata: JSON with changed_fields, before/after snapshots, request info
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)

    actor_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='clinical_audit_logs',
        help_text='User who performed the action (null for system actions)'
    )
    action = models.CharField(max_length=20, choices=AuditActionChoices.choices)
    entity_type = models.CharField(max_length=50, choices=AuditEntityTypeChoices.choices)
    entity_id = models.UUIDField(help_text='UUID of the entity that was changed')

    patient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='+',
        help_text='Patient the audited entity belongs to'
    )
    record = models.ForeignKey(
        MedicalRecord,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='audit_logs'
    )

    metadata = models.JSONField(
        default=dict,
        help_text='Changed fields, before/after snapshots, request metadata'
    )

    class Meta:
        db_table = 'clinical_audit_log'
        verbose_name = 'Clinical Audit Log'
        verbose_name_plural = 'Clinical Audit Logs'
        indexes = [
            models.Index(fields=['created_at'], name='idx_audit_created_at'),
            models.Index(fields=['actor_user'], name='idx_audit_actor'),
            models.Index(fields=['entity_type', 'entity_id'], name='idx_audit_entity'),
            models.Index(fields=['patient'], name='idx_audit_patient'),
            models.Index(fields=['action'], name='idx_audit_action'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        actor = self.actor_user.email if self.actor_user else 'system'
        return f"{self.action} on {self.entity_type}[{str(self.entity_id)[:8]}] by {actor}"


# ============================================================================
# Audit Helper Functions
# ============================================================================

def log_clinical_audit(
    actor,
    instance,
    action,
    before=None,
    after=None,
    changed_fields=None,
    request=None,
    **extra
):
    """
    Helper function to create clinical audit log entries.

    Args:
        actor: User instance or None for system actions
        instance: MedicalRecord or CorrectionRequest being audited
        action: AuditActionChoices value
        before: Dict of field values before change
        after: Dict of field values after change
        changed_fields: List of field names that changed
        request: Django request object (to capture IP/user-agent)
        **extra: Additional metadata (reason, row_version, ...)

    Returns:
        ClinicalAuditLog instance
    """
    from apps.core.observability import metrics

    entity_type = instance.__class__.__name__
    record = instance if isinstance(instance, MedicalRecord) else getattr(instance, 'record', None)

    metadata = dict(extra)

    if changed_fields:
        metadata['changed_fields'] = list(changed_fields)

    if before:
        metadata['before'] = before

    if after:
        metadata['after'] = after

    if request is not None:
        metadata['request'] = {
            'ip': request.META.get('REMOTE_ADDR'),
            'user_agent': request.META.get('HTTP_USER_AGENT', '')[:200],
        }

    audit_log = ClinicalAuditLog.objects.create(
        actor_user=actor,
        action=action,
        entity_type=entity_type,
        entity_id=instance.pk,
        patient_id=getattr(instance, 'patient_id', None),
        record=record,
        metadata=metadata,
    )
    metrics.clinical_auditlog_created_total.labels(entity_type=entity_type, action=action).inc()

    return audit_log
