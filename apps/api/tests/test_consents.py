"""
Tests for patient consent before record entry (password + e-mailed OTP).
"""
from datetime import timedelta

import pytest
from django.core.management import call_command
from django.utils import timezone

from apps.consents import services
from apps.consents.models import ConsentStateChoices, RecordEntryConsent
from apps.core.exceptions import AuthorizationError, InvalidStateError, NotFoundError, ValidationError
from apps.notifications.models import Notification

OTP = '123456'


@pytest.fixture(autouse=True)
def fixed_otp(monkeypatch):
    monkeypatch.setattr(services, 'generate_otp', lambda: OTP)


@pytest.fixture
def consent(manager, patient):
    return services.initiate_consent(manager, patient.email, 'testpass123')


@pytest.fixture
def verified_consent(consent, manager):
    return services.verify_consent(manager, consent.id, OTP)


@pytest.mark.django_db
class TestInitiateConsent:

    def test_otp_is_hashed_and_emailed_after_commit(self, manager, patient, mailoutbox,
                                                    django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            consent = services.initiate_consent(manager, patient.email, 'testpass123')

        assert consent.state == ConsentStateChoices.PENDING
        assert consent.otp_hash != OTP
        assert consent.expires_at > timezone.now() + timedelta(minutes=9)
        assert len(mailoutbox) == 1
        assert mailoutbox[0].to == [patient.email]
        assert OTP in mailoutbox[0].body

    def test_wrong_patient_password(self, manager, patient):
        with pytest.raises(AuthorizationError):
            services.initiate_consent(manager, patient.email, 'wrong')
        assert not RecordEntryConsent.objects.exists()

    def test_unknown_patient(self, manager):
        with pytest.raises(NotFoundError):
            services.initiate_consent(manager, 'nobody@test.com', 'x')

    def test_target_must_be_a_patient(self, manager, doctor):
        with pytest.raises(ValidationError):
            services.initiate_consent(manager, doctor.email, 'testpass123')

    def test_only_management_can_initiate(self, doctor, patient):
        with pytest.raises(AuthorizationError):
            services.initiate_consent(doctor, patient.email, 'testpass123')


@pytest.mark.django_db
class TestVerifyConsent:

    def test_correct_otp_verifies(self, consent, manager):
        verified = services.verify_consent(manager, consent.id, OTP)

        assert verified.state == ConsentStateChoices.VERIFIED
        assert verified.verified_at is not None

    def test_success_notifies_requesting_manager(self, consent, manager, patient):
        services.verify_consent(manager, consent.id, OTP)

        notification = Notification.objects.get(recipient=manager)
        assert notification.type == 'consent_verified'
        assert notification.metadata['consent_id'] == str(consent.id)
        assert notification.metadata['patient_id'] == str(patient.id)

    def test_wrong_otp_notifies_nobody(self, consent, manager):
        with pytest.raises(ValidationError):
            services.verify_consent(manager, consent.id, '000000')

        assert not Notification.objects.filter(recipient=manager).exists()

    def test_wrong_otp_counts_attempt(self, consent, manager):
        with pytest.raises(ValidationError):
            services.verify_consent(manager, consent.id, '000000')

        consent.refresh_from_db()
        assert consent.attempts == 1
        assert consent.state == ConsentStateChoices.PENDING

    def test_session_locks_after_max_attempts(self, consent, manager, settings):
        settings.RECORD_ENTRY_OTP_MAX_ATTEMPTS = 5
        for _ in range(5):
            with pytest.raises(ValidationError):
                services.verify_consent(manager, consent.id, '000000')

        consent.refresh_from_db()
        assert consent.state == ConsentStateChoices.LOCKED

        with pytest.raises(InvalidStateError):
            services.verify_consent(manager, consent.id, OTP)

    def test_expired_otp(self, consent, manager):
        RecordEntryConsent.objects.filter(id=consent.id).update(expires_at=timezone.now() - timedelta(seconds=1))

        with pytest.raises(InvalidStateError):
            services.verify_consent(manager, consent.id, OTP)

    def test_otp_cannot_be_reused(self, verified_consent, manager):
        with pytest.raises(InvalidStateError):
            services.verify_consent(manager, verified_consent.id, OTP)

    def test_other_manager_cannot_verify(self, consent, user_factory):
        other = user_factory('other.manager@test.com', 'management')

        with pytest.raises(AuthorizationError):
            services.verify_consent(other, consent.id, OTP)

    def test_resend_unlocks_with_new_code(self, consent, manager, settings):
        settings.RECORD_ENTRY_OTP_MAX_ATTEMPTS = 1
        with pytest.raises(ValidationError):
            services.verify_consent(manager, consent.id, '000000')

        resent = services.resend_otp(manager, consent.id)

        assert resent.state == ConsentStateChoices.PENDING
        assert resent.attempts == 0
        assert resent.resend_count == 1
        assert services.verify_consent(manager, consent.id, OTP).state == ConsentStateChoices.VERIFIED


@pytest.mark.django_db
class TestConsentGatedRecordEntry:

    def test_api_flow_binds_consent_to_one_record(self, manager_client, patient, doctor, record_fields):
        response = manager_client.post(
            '/api/v1/consents/initiate/',
            {'patient_email': patient.email, 'patient_password': 'testpass123'},
            format='json',
        )
        assert response.status_code == 201
        consent_id = response.data['id']

        response = manager_client.post(
            '/api/v1/consents/verify/', {'consent_id': consent_id, 'otp': OTP}, format='json'
        )
        assert response.status_code == 200
        assert response.data['state'] == 'verified'

        payload = {**record_fields, 'patient_id': str(patient.id), 'doctor_id': str(doctor.id), 'consent_id': consent_id}
        response = manager_client.post('/api/v1/clinical/records/', payload, format='json')
        assert response.status_code == 201
        assert RecordEntryConsent.objects.get(id=consent_id).state == ConsentStateChoices.CONSUMED

        response = manager_client.post('/api/v1/clinical/records/', payload, format='json')
        assert response.status_code == 400
        assert response.data['code'] == 'invalid_state'

    def test_record_entry_without_consent_is_refused(self, manager_client, patient, doctor, record_fields, settings):
        settings.RECORDS_REQUIRE_PATIENT_CONSENT = True
        payload = {**record_fields, 'patient_id': str(patient.id), 'doctor_id': str(doctor.id)}

        response = manager_client.post('/api/v1/clinical/records/', payload, format='json')

        assert response.status_code == 400
        assert response.data['code'] == 'validation_error'

    def test_consent_of_another_patient_is_refused(self, verified_consent, manager, other_patient, doctor,
                                                   record_fields):
        from apps.clinical.services import create_record

        with pytest.raises(ValidationError):
            create_record(manager, other_patient.id, doctor.id, record_fields, consent_id=verified_consent.id)

    def test_verified_consent_expires(self, verified_consent, manager, patient, doctor, record_fields, settings):
        from apps.clinical.services import create_record

        settings.RECORD_ENTRY_CONSENT_TTL_MINUTES = 30
        RecordEntryConsent.objects.filter(id=verified_consent.id).update(
            verified_at=timezone.now() - timedelta(minutes=31)
        )

        with pytest.raises(InvalidStateError):
            create_record(manager, patient.id, doctor.id, record_fields, consent_id=verified_consent.id)

    def test_purge_removes_expired_sessions_only(self, consent, verified_consent, manager, patient):
        expired = services.initiate_consent(manager, patient.email, 'testpass123')
        RecordEntryConsent.objects.filter(id=expired.id).update(expires_at=timezone.now() - timedelta(minutes=1))

        call_command('purge_expired_consents')

        assert set(RecordEntryConsent.objects.values_list('id', flat=True)) == {verified_consent.id}

    def test_otp_endpoints_are_management_only(self, doctor_client, patient):
        response = doctor_client.post(
            '/api/v1/consents/initiate/',
            {'patient_email': patient.email, 'patient_password': 'testpass123'},
            format='json',
        )
        assert response.status_code == 403
