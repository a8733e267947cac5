"""
Tests for request correlation, log redaction, metrics and health endpoints.
"""
import json
import logging

import pytest
from prometheus_client import REGISTRY

from apps.core.observability.correlation import clear_request_context, get_request_id, get_user_id, get_user_role
from apps.core.observability.logging import SanitizedJSONFormatter, sanitize_dict


@pytest.fixture(autouse=True)
def fresh_request_context():
    clear_request_context()
    yield
    clear_request_context()


def sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestSanitizeDict:

    def test_redacts_credentials_and_clinical_text(self):
        data = {
            'record_id': 'abc',
            'patient_password': 'secret',
            'otp': '123456',
            'changes': {'diagnosed_disease': 'Flu', 'case_status': 'stable'},
        }

        sanitized = sanitize_dict(data)

        assert sanitized['record_id'] == 'abc'
        assert sanitized['patient_password'] == '[REDACTED]'
        assert sanitized['otp'] == '[REDACTED]'
        assert sanitized['changes'] == {'diagnosed_disease': '[REDACTED]', 'case_status': 'stable'}

    def test_json_formatter_redacts_extra_fields(self):
        record = logging.LogRecord('apps.test', logging.INFO, __file__, 1, 'hello', None, None)
        record.email = 'patient@test.com'
        record.operation = 'verify_record'

        payload = json.loads(SanitizedJSONFormatter().format(record))

        assert payload['message'] == 'hello'
        assert payload['email'] == '[REDACTED]'
        assert payload['operation'] == 'verify_record'


@pytest.mark.django_db
class TestRequestCorrelation:

    def test_request_id_is_propagated(self, client):
        response = client.get('/healthz', HTTP_X_REQUEST_ID='req-123')

        assert response['X-Request-ID'] == 'req-123'
        assert get_request_id() == 'req-123'

    def test_request_id_is_generated(self, client):
        response = client.get('/healthz')

        assert len(response['X-Request-ID']) == 36

    def test_api_user_is_bound_to_log_context(self, doctor, doctor_client):
        response = doctor_client.get('/api/v1/clinical/records/')

        assert response.status_code == 200
        assert get_user_id() == str(doctor.id)
        assert get_user_role() == 'doctor'

    def test_anonymous_request_has_no_user_context(self, api_client):
        api_client.get('/api/v1/notifications/')

        assert get_user_id() is None

    def test_requests_are_counted_by_route(self, client):
        before = sample('http_requests_total', path='healthz', method='GET', status='200')

        client.get('/healthz')

        assert sample('http_requests_total', path='healthz', method='GET', status='200') == before + 1


@pytest.mark.django_db
class TestHealthEndpoints:

    def test_healthz(self, client):
        response = client.get('/healthz')

        assert response.status_code == 200
        assert response.json()['status'] == 'ok'

    def test_readyz_checks_database(self, client):
        response = client.get('/readyz')

        assert response.status_code == 200
        assert response.json() == {'status': 'ready', 'checks': {'database': True}}

    def test_metrics_exposes_lifecycle_counters(self, client, verified_record):
        response = client.get('/metrics')

        body = response.content.decode()
        assert response.status_code == 200
        assert 'record_transitions_total' in body
        assert 'notifications_created_total' in body


@pytest.mark.django_db
class TestLifecycleMetrics:

    def test_refused_operation_is_counted(self, verified_record, doctor_client):
        labels = {'operation': 'verify_record', 'error_code': 'invalid_state'}
        before = sample('lifecycle_errors_total', **labels)

        doctor_client.post(f'/api/v1/clinical/records/{verified_record.id}/verify/', {}, format='json')

        assert sample('lifecycle_errors_total', **labels) == before + 1

    def test_transition_is_counted(self, pending_record, doctor):
        from apps.clinical.services import verify_record

        labels = {'operation': 'verify_record', 'from_state': 'pending_verification', 'to_state': 'verified'}
        before = sample('record_transitions_total', **labels)

        verify_record(doctor, pending_record.id)

        assert sample('record_transitions_total', **labels) == before + 1
