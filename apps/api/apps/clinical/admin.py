from django.contrib import admin
from .models import ClinicalAuditLog, CorrectionRequest, MedicalRecord


@admin.register(MedicalRecord)
class MedicalRecordAdmin(admin.ModelAdmin):
    list_display = ['visit_date', 'diagnosed_disease', 'patient', 'doctor', 'state', 'correction_requested', 'is_deleted']
    list_filter = ['state', 'case_status', 'correction_requested', 'is_deleted']
    search_fields = ['diagnosed_disease', 'patient__email', 'patient__last_name', 'doctor__email']
    readonly_fields = [
        'id', 'state', 'verified_by', 'verified_at', 'rejected_by', 'rejected_at',
        'edited_by', 'edited_at', 'corrected_by', 'corrected_at', 'row_version',
        'created_at', 'updated_at', 'deleted_at',
    ]
    raw_id_fields = ['patient', 'doctor', 'created_by', 'consent', 'deleted_by']

    fieldsets = (
        ('Parties', {
            'fields': ('id', 'patient', 'doctor', 'created_by', 'consent')
        }),
        ('Clinical', {
            'fields': (
                'visit_date', 'diagnosed_disease', 'symptoms', 'prescriptions',
                'recommendations', 'case_status', 'vital_signs', 'report_images',
            )
        }),
        ('Lifecycle', {
            'fields': (
                'state', 'verified_by', 'verified_at', 'rejected_by', 'rejected_at',
                'rejection_reason', 'edited_by', 'edited_at', 'corrected_by', 'corrected_at',
                'correction_requested',
            )
        }),
        ('Soft Delete', {
            'fields': ('is_deleted', 'deleted_at', 'deleted_by')
        }),
        ('Audit', {
            'fields': ('row_version', 'created_at', 'updated_at')
        }),
    )

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(CorrectionRequest)
class CorrectionRequestAdmin(admin.ModelAdmin):
    list_display = ['created_at', 'record', 'patient', 'doctor', 'priority', 'state']
    list_filter = ['state', 'priority']
    search_fields = ['reason', 'patient__email', 'doctor__email']
    readonly_fields = ['id', 'original_snapshot', 'responded_by', 'responded_at', 'created_at', 'updated_at']
    raw_id_fields = ['record', 'patient', 'doctor']

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(ClinicalAuditLog)
class ClinicalAuditLogAdmin(admin.ModelAdmin):
    list_display = ['created_at', 'action', 'entity_type', 'entity_id', 'actor_user', 'patient']
    list_filter = ['action', 'entity_type']
    search_fields = ['entity_id', 'actor_user__email', 'patient__email']
    readonly_fields = ['id', 'created_at', 'actor_user', 'action', 'entity_type', 'entity_id', 'patient', 'record', 'metadata']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
