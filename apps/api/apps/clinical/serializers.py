"""
Clinical serializers for MedicalRecord and CorrectionRequest.

Write serializers only shape the request payload; field rules and
lifecycle checks live in apps.clinical.lifecycle / services so the
same errors come back whichever surface calls them.
"""
from rest_framework import serializers

from apps.clinical.image_utils import report_image_url
from apps.clinical.models import (
    CLINICAL_FIELDS,
    PRESCRIPTION_FIELDS,
    CorrectionPriorityChoices,
    CorrectionRequest,
    MedicalRecord,
)


class UserSummarySerializer(serializers.Serializer):
    """Nested read-only user reference"""
    id = serializers.UUIDField(read_only=True)
    full_name = serializers.CharField(read_only=True)
    email = serializers.EmailField(read_only=True)


class ReportImageSerializer(serializers.Serializer):
    path = serializers.CharField(read_only=True)
    file_name = serializers.CharField(read_only=True)
    content_type = serializers.CharField(read_only=True)
    size = serializers.IntegerField(read_only=True)
    uploaded_at = serializers.CharField(read_only=True)
    url = serializers.SerializerMethodField()

    def get_url(self, obj):
        return report_image_url(obj['path'])


class MedicalRecordListSerializer(serializers.ModelSerializer):
    """Serializer for record list view (limited fields)"""
    patient_name = serializers.CharField(source='patient.full_name', read_only=True)
    doctor_name = serializers.CharField(source='doctor.full_name', read_only=True)

    class Meta:
        model = MedicalRecord
        fields = [
            'id',
            'patient_id',
            'patient_name',
            'doctor_id',
            'doctor_name',
            'visit_date',
            'diagnosed_disease',
            'case_status',
            'state',
            'correction_requested',
            'row_version',
            'created_at',
        ]
        read_only_fields = fields


class MedicalRecordDetailSerializer(serializers.ModelSerializer):
    """Serializer for record detail view"""
    patient = UserSummarySerializer(read_only=True)
    doctor = UserSummarySerializer(read_only=True)
    created_by = UserSummarySerializer(read_only=True)
    verified_by = UserSummarySerializer(read_only=True, allow_null=True)
    report_images = ReportImageSerializer(many=True, read_only=True)

    class Meta:
        model = MedicalRecord
        fields = [
            'id',
            'patient',
            'doctor',
            'created_by',
            'visit_date',
            'diagnosed_disease',
            'symptoms',
            'prescriptions',
            'recommendations',
            'case_status',
            'vital_signs',
            'report_images',
            'state',
            'verified_by',
            'verified_at',
            'rejected_at',
            'rejection_reason',
            'edited_at',
            'corrected_at',
            'correction_requested',
            'row_version',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class PrescriptionSerializer(serializers.Serializer):
    medicine = serializers.CharField(max_length=255)
    dosage = serializers.CharField(max_length=255)
    frequency = serializers.CharField(max_length=255)
    interval = serializers.CharField(max_length=255, required=False, allow_blank=True)


class MedicalRecordCreateSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField()
    doctor_id = serializers.UUIDField()
    consent_id = serializers.UUIDField(required=False, allow_null=True)
    visit_date = serializers.DateField(required=False)
    diagnosed_disease = serializers.CharField(max_length=255)
    symptoms = serializers.CharField(required=False, allow_blank=True)
    prescriptions = PrescriptionSerializer(many=True, allow_empty=False)
    recommendations = serializers.CharField(required=False, allow_blank=True)
    case_status = serializers.CharField(required=False)
    vital_signs = serializers.DictField(required=False)

    def clinical_fields(self):
        return {k: v for k, v in self.validated_data.items() if k in CLINICAL_FIELDS}


class VersionedActionSerializer(serializers.Serializer):
    """Optional optimistic-lock token for state-changing actions"""
    row_version = serializers.IntegerField(required=False, min_value=1)


class RejectRecordSerializer(VersionedActionSerializer):
    reason = serializers.CharField()


class EditRecordSerializer(VersionedActionSerializer):
    """
    Field changes are passed through as-is; unknown keys are rejected by
    the lifecycle validator.
    """
    changes = serializers.DictField()
    reverify = serializers.BooleanField(required=False, default=False)

    def validate_changes(self, value):
        allowed = set(CLINICAL_FIELDS) | set(PRESCRIPTION_FIELDS) | {'prescription_index'}
        unknown = set(value) - allowed
        if unknown:
            raise serializers.ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
        return value


class ImageUploadSerializer(serializers.Serializer):
    file = serializers.FileField()


class CorrectionRequestSerializer(serializers.ModelSerializer):
    record = MedicalRecordListSerializer(read_only=True)
    patient_name = serializers.CharField(source='patient.full_name', read_only=True)
    doctor_name = serializers.CharField(source='doctor.full_name', read_only=True)

    class Meta:
        model = CorrectionRequest
        fields = [
            'id',
            'record',
            'patient_id',
            'patient_name',
            'doctor_id',
            'doctor_name',
            'reason',
            'description',
            'proposed_changes',
            'priority',
            'original_snapshot',
            'state',
            'doctor_response',
            'responded_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class CorrectionRequestCreateSerializer(serializers.Serializer):
    record_id = serializers.UUIDField()
    reason = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    proposed_changes = serializers.DictField(required=False, default=dict)
    priority = serializers.ChoiceField(
        choices=CorrectionPriorityChoices.choices,
        default=CorrectionPriorityChoices.MEDIUM,
    )


class ResolveCorrectionSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=['approve', 'reject'])
    response_text = serializers.CharField(required=False, allow_blank=True, default='')
    record_changes = serializers.DictField(required=False, allow_null=True)
