from django.contrib import admin
from .models import RecordEntryConsent


@admin.register(RecordEntryConsent)
class RecordEntryConsentAdmin(admin.ModelAdmin):
    list_display = ['created_at', 'patient', 'requested_by', 'state', 'attempts', 'expires_at']
    list_filter = ['state']
    search_fields = ['patient__email', 'requested_by__email']
    exclude = ['otp_hash']
    readonly_fields = [
        'id', 'patient', 'requested_by', 'expires_at', 'attempts', 'resend_count',
        'state', 'verified_at', 'consumed_at', 'created_at', 'updated_at',
    ]
