from django.contrib import admin
from .models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['created_at', 'type', 'recipient', 'is_read', 'email_status', 'email_attempts']
    list_filter = ['type', 'is_read', 'email_status']
    search_fields = ['recipient__email', 'title']
    readonly_fields = [
        'id', 'created_at', 'recipient', 'type', 'title', 'message', 'record',
        'correction_request', 'metadata', 'read_at', 'emailed_at', 'email_error',
    ]
