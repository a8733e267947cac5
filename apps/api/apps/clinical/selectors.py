"""
Read-side queries: role-scoped record lists, dashboards and patient history.
"""
from collections import Counter
from datetime import timedelta

from django.db.models import Count
from django.utils import timezone

from apps.authz.models import RoleChoices, User
from apps.clinical.models import (
    ClinicalAuditLog,
    CorrectionRequest,
    CorrectionStateChoices,
    MedicalRecord,
    RecordStateChoices,
)
from apps.notifications.models import EmailStatusChoices, Notification
from apps.notifications.services import unread_count

RECENT_LIMIT = 5


def records_visible_to(principal):
    """Records ``principal`` may read; patients never see unverified records."""
    queryset = MedicalRecord.objects.filter(is_deleted=False).select_related(
        'patient', 'doctor', 'created_by', 'verified_by'
    )
    if principal.role == RoleChoices.ADMIN:
        return queryset
    if principal.role == RoleChoices.DOCTOR:
        return queryset.filter(doctor=principal)
    if principal.role == RoleChoices.MANAGEMENT:
        return queryset.filter(created_by=principal)
    if principal.role == RoleChoices.PATIENT:
        return queryset.filter(patient=principal, state=RecordStateChoices.VERIFIED)
    return queryset.none()


def corrections_visible_to(principal):
    queryset = CorrectionRequest.objects.select_related('record', 'patient', 'doctor')
    if principal.role == RoleChoices.ADMIN:
        return queryset
    if principal.role == RoleChoices.DOCTOR:
        return queryset.filter(doctor=principal)
    if principal.role == RoleChoices.PATIENT:
        return queryset.filter(patient=principal)
    return queryset.none()


def _state_counts(queryset):
    rows = queryset.order_by().values('state').annotate(n=Count('id'))
    counts = {row['state']: row['n'] for row in rows}
    return {state: counts.get(state, 0) for state in RecordStateChoices.values}


def doctor_dashboard(doctor):
    records = MedicalRecord.objects.filter(doctor=doctor, is_deleted=False)
    counts = _state_counts(records)
    return {
        'total_records': sum(counts.values()),
        'pending_verification': counts[RecordStateChoices.PENDING_VERIFICATION],
        'verified': counts[RecordStateChoices.VERIFIED],
        'rejected': counts[RecordStateChoices.REJECTED],
        'pending_corrections': CorrectionRequest.objects.filter(
            doctor=doctor, state=CorrectionStateChoices.PENDING
        ).count(),
        'unread_notifications': unread_count(doctor),
    }


def management_dashboard(author):
    records = MedicalRecord.objects.filter(created_by=author, is_deleted=False)
    counts = _state_counts(records)
    recent = records.select_related('patient', 'doctor').order_by('-created_at')[:RECENT_LIMIT]
    return {
        'total_records': sum(counts.values()),
        'records_today': records.filter(created_at__date=timezone.localdate()).count(),
        'pending_verification': counts[RecordStateChoices.PENDING_VERIFICATION],
        'verified': counts[RecordStateChoices.VERIFIED],
        'rejected': counts[RecordStateChoices.REJECTED],
        'recent_records': [
            {
                'id': str(record.id),
                'patient_name': record.patient.full_name,
                'doctor_name': record.doctor.full_name,
                'diagnosed_disease': record.diagnosed_disease,
                'state': record.state,
                'created_at': record.created_at.isoformat(),
            }
            for record in recent
        ],
    }


def admin_dashboard(days=7):
    since = timezone.now() - timedelta(days=days)
    records = MedicalRecord.objects.filter(is_deleted=False)
    activity = (
        ClinicalAuditLog.objects
        .filter(created_at__gte=since)
        .order_by()
        .values('action')
        .annotate(n=Count('id'))
    )
    return {
        'users': {
            'total': User.objects.count(),
            'pending_approvals': User.objects.filter(status='pending').count(),
            'by_role': {
                row['role']: row['n']
                for row in User.objects.order_by().values('role').annotate(n=Count('id'))
            },
        },
        'records': _state_counts(records),
        'pending_corrections': CorrectionRequest.objects.filter(state=CorrectionStateChoices.PENDING).count(),
        'notifications': {
            'total': Notification.objects.count(),
            'unread': Notification.objects.filter(is_read=False).count(),
            'email_failed': Notification.objects.filter(email_status=EmailStatusChoices.FAILED).count(),
        },
        'activity_last_days': days,
        'activity': {row['action']: row['n'] for row in activity},
    }


def patient_history_summary(patient):
    """
    Summary of a patient's verified history.

    Returns:
        dict with total_records, unique_diseases, doctors_consulted,
        case_status_breakdown, last_visit and recent_records.
    """
    records = MedicalRecord.objects.filter(
        patient=patient, state=RecordStateChoices.VERIFIED, is_deleted=False
    ).select_related('doctor').order_by('-visit_date', '-created_at')

    diseases = set()
    doctors = {}
    case_status = Counter()
    for record in records:
        diseases.add(record.diagnosed_disease.strip().lower())
        doctors[record.doctor_id] = record.doctor.full_name
        case_status[record.case_status] += 1

    latest = records.first()
    return {
        'total_records': len(records),
        'unique_diseases': len(diseases),
        'doctors_consulted': sorted(doctors.values()),
        'case_status_breakdown': dict(case_status),
        'last_visit': str(latest.visit_date) if latest else None,
        'recent_records': [
            {
                'id': str(record.id),
                'visit_date': str(record.visit_date),
                'diagnosed_disease': record.diagnosed_disease,
                'doctor_name': record.doctor.full_name,
                'case_status': record.case_status,
            }
            for record in records[:RECENT_LIMIT]
        ],
    }
