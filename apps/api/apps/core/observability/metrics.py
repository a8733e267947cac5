"""
Metrics instrumentation (Prometheus).

All application metrics are declared once here and accessed through
the ``metrics`` registry instance.
"""
from prometheus_client import Counter, Histogram


class MetricsRegistry:
    """
    Central metrics registry for MedVerify.

    Provides typed access to all application metrics.
    """

    def __init__(self):
        self._setup_metrics()

    def _setup_metrics(self):
        # ===================================================================
        # HTTP Metrics
        # ===================================================================
        self.http_requests_total = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['path', 'method', 'status']
        )

        self.http_request_duration_seconds = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration in seconds',
            ['path', 'method'],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
        )

        self.exceptions_total = Counter(
            'exceptions_total',
            'Total exceptions',
            ['exception_type', 'location']
        )

        # ===================================================================
        # Record Lifecycle Metrics
        # ===================================================================
        self.record_transitions_total = Counter(
            'record_transitions_total',
            'Medical record lifecycle transitions',
            ['operation', 'from_state', 'to_state']
        )

        self.correction_requests_total = Counter(
            'correction_requests_total',
            'Correction request transitions',
            ['operation', 'result']  # operation: request|approve|reject
        )

        self.lifecycle_errors_total = Counter(
            'lifecycle_errors_total',
            'Rejected lifecycle operations',
            ['operation', 'error_code']
        )

        self.lifecycle_operation_duration_seconds = Histogram(
            'lifecycle_operation_duration_seconds',
            'Duration of record lifecycle operations',
            ['operation'],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
        )

        self.record_images_uploaded_total = Counter(
            'record_images_uploaded_total',
            'Report images attached to medical records',
            ['result']
        )

        # ===================================================================
        # Notification Metrics
        # ===================================================================
        self.notifications_created_total = Counter(
            'notifications_created_total',
            'In-app notifications created',
            ['type']
        )

        self.notification_emails_total = Counter(
            'notification_emails_total',
            'Notification e-mail delivery attempts',
            ['result']  # sent, failed, skipped
        )

        # ===================================================================
        # Consent / Account Metrics
        # ===================================================================
        self.consent_otp_events_total = Counter(
            'consent_otp_events_total',
            'Record entry consent OTP events',
            ['event', 'result']  # event: initiate|verify|resend
        )

        self.account_transitions_total = Counter(
            'account_transitions_total',
            'Account status and role changes performed by admins',
            ['action']
        )

        self.clinical_auditlog_created_total = Counter(
            'clinical_auditlog_created_total',
            'Clinical audit logs created',
            ['entity_type', 'action']
        )


# Global metrics instance
metrics = MetricsRegistry()
