"""
Tests for registration, JWT login and admin account decisions.
"""
import pytest
from django.core.management import call_command
from rest_framework_simplejwt.tokens import AccessToken

from apps.authz import services
from apps.authz.models import AccountStatusChoices, User, UserAuditLog
from apps.core.exceptions import AuthorizationError, InvalidStateError, ValidationError
from apps.notifications.models import Notification

REGISTER_URL = '/api/v1/auth/register/'
TOKEN_URL = '/api/auth/token/'
PASSWORD = 'Harbour-Lantern-42'


def registration(email, role, **extra):
    return {
        'email': email,
        'password': PASSWORD,
        'role': role,
        'first_name': 'Alex',
        'last_name': 'Morgan',
        **extra,
    }


@pytest.mark.django_db
class TestRegistration:

    def test_patient_waits_for_approval(self, api_client):
        response = api_client.post(REGISTER_URL, registration('alex@test.com', 'patient'), format='json')

        assert response.status_code == 201
        assert response.data['status'] == 'pending'
        assert 'password' not in response.data
        assert UserAuditLog.objects.filter(target_user__email='alex@test.com', action='register').exists()

    def test_registration_notifies_admins(self, admin_user, user_factory):
        inactive_admin = user_factory('old.admin@test.com', 'admin', is_active=False)

        user = services.register_user('alex@test.com', PASSWORD, 'patient', first_name='Alex', last_name='Morgan')

        notification = Notification.objects.get(type='user_approval')
        assert notification.recipient == admin_user
        assert notification.message == 'New patient account registered: Alex Morgan'
        assert notification.metadata['user_id'] == str(user.id)
        assert not Notification.objects.filter(recipient=inactive_admin).exists()

    def test_failed_registration_notifies_nobody(self, admin_user, patient):
        with pytest.raises(ValidationError):
            services.register_user(patient.email, PASSWORD, 'patient')

        assert not Notification.objects.filter(type='user_approval').exists()

    def test_registered_patient_logs_in_after_approval(self, api_client, admin_user):
        user = services.register_user('alex@test.com', PASSWORD, 'patient')
        credentials = {'email': 'alex@test.com', 'password': PASSWORD}

        assert api_client.post(TOKEN_URL, credentials, format='json').status_code == 401
        services.approve_user(admin_user, user.id)
        assert api_client.post(TOKEN_URL, credentials, format='json').status_code == 200

    def test_doctor_waits_for_approval(self, api_client):
        payload = registration('dr.alex@test.com', 'doctor', specialization='Neurology')

        response = api_client.post(REGISTER_URL, payload, format='json')

        assert response.status_code == 201
        assert response.data['status'] == 'pending'

    def test_doctor_needs_specialization(self, api_client):
        response = api_client.post(REGISTER_URL, registration('dr.alex@test.com', 'doctor'), format='json')

        assert response.status_code == 400
        assert 'specialization' in response.data

    def test_admin_cannot_self_register(self, api_client):
        response = api_client.post(REGISTER_URL, registration('root@test.com', 'admin'), format='json')

        assert response.status_code == 400
        assert not User.objects.filter(email='root@test.com').exists()

    def test_duplicate_email_is_rejected(self, patient):
        with pytest.raises(ValidationError):
            services.register_user('PATIENT@test.com', PASSWORD, 'patient')

    def test_weak_password_is_rejected(self, api_client):
        payload = {**registration('alex@test.com', 'patient'), 'password': '12345678'}

        response = api_client.post(REGISTER_URL, payload, format='json')

        assert response.status_code == 400
        assert 'password' in response.data


@pytest.mark.django_db
class TestLogin:

    def test_approved_user_gets_tokens_with_role_claim(self, api_client, doctor):
        response = api_client.post(TOKEN_URL, {'email': doctor.email, 'password': 'testpass123'}, format='json')

        assert response.status_code == 200
        assert AccessToken(response.data['access'])['role'] == 'doctor'
        assert 'refresh' in response.data

    def test_pending_user_cannot_log_in(self, api_client, user_factory):
        pending = user_factory('pending.doctor@test.com', 'doctor', status=AccountStatusChoices.PENDING)

        response = api_client.post(TOKEN_URL, {'email': pending.email, 'password': 'testpass123'}, format='json')

        assert response.status_code == 401

    def test_suspended_user_loses_api_access(self, admin_user, doctor, doctor_client):
        services.suspend_user(admin_user, doctor.id, 'Licence under review')
        doctor.refresh_from_db()

        response = doctor_client.get('/api/v1/clinical/records/')

        assert response.status_code == 403

    def test_me_is_available_while_pending(self, user_factory, client_factory):
        pending = user_factory('pending.doctor@test.com', 'doctor', status=AccountStatusChoices.PENDING)

        response = client_factory(pending).get('/api/v1/auth/me/')

        assert response.status_code == 200
        assert response.data['status'] == 'pending'


@pytest.mark.django_db
class TestAccountDecisions:

    @pytest.fixture
    def pending_doctor(self, user_factory):
        return user_factory('new.doctor@test.com', 'doctor', status=AccountStatusChoices.PENDING)

    def test_approve_notifies_user(self, admin_client, pending_doctor):
        response = admin_client.post(f'/api/v1/users/{pending_doctor.id}/approve/')

        assert response.status_code == 200
        assert response.data['status'] == 'approved'
        notification = Notification.objects.get(recipient=pending_doctor)
        assert notification.type == 'account_verified'
        assert UserAuditLog.objects.filter(target_user=pending_doctor, action='approve_user').exists()

    def test_reject_requires_reason(self, admin_client, pending_doctor):
        response = admin_client.post(f'/api/v1/users/{pending_doctor.id}/reject/', {}, format='json')
        assert response.status_code == 400

        response = admin_client.post(
            f'/api/v1/users/{pending_doctor.id}/reject/', {'reason': 'Licence not found'}, format='json'
        )
        assert response.status_code == 200
        assert response.data['status'] == 'rejected'
        assert Notification.objects.get(recipient=pending_doctor).type == 'account_rejected'

    def test_suspend_then_reinstate(self, admin_user, doctor):
        services.suspend_user(admin_user, doctor.id, 'Complaint')
        services.approve_user(admin_user, doctor.id)

        doctor.refresh_from_db()
        assert doctor.status == AccountStatusChoices.APPROVED
        assert list(
            Notification.objects.filter(recipient=doctor).order_by('created_at').values_list('type', flat=True)
        ) == ['account_suspended', 'account_verified']

    def test_pending_account_cannot_be_suspended(self, admin_user, pending_doctor):
        with pytest.raises(InvalidStateError):
            services.suspend_user(admin_user, pending_doctor.id, 'Spam')

    def test_change_role(self, admin_client, manager):
        response = admin_client.post(f'/api/v1/users/{manager.id}/change-role/', {'role': 'doctor'}, format='json')

        assert response.status_code == 200
        assert response.data['role'] == 'doctor'
        notification = Notification.objects.get(recipient=manager)
        assert notification.type == 'role_updated'
        assert notification.metadata['old_role'] == 'management'

    def test_admin_cannot_change_own_account(self, admin_user):
        with pytest.raises(AuthorizationError):
            services.change_role(admin_user, admin_user.id, 'doctor')
        with pytest.raises(AuthorizationError):
            services.suspend_user(admin_user, admin_user.id, 'Oops')

    def test_only_admin_can_decide(self, doctor_client, pending_doctor):
        response = doctor_client.post(f'/api/v1/users/{pending_doctor.id}/approve/')
        assert response.status_code == 403

    def test_list_filters_by_status(self, admin_client, pending_doctor, patient):
        response = admin_client.get('/api/v1/users/', {'status': 'pending'})

        assert [u['email'] for u in response.data['results']] == ['new.doctor@test.com']

    def test_statistics(self, admin_client, pending_doctor, patient, doctor):
        response = admin_client.get('/api/v1/users/statistics/')

        assert response.status_code == 200
        assert response.data['pending_approvals'] == 1
        assert response.data['by_role']['doctor'] == 2
        assert response.data['by_status']['approved'] == 3


@pytest.mark.django_db
class TestDirectories:

    def test_doctor_list_shows_approved_doctors_only(self, manager_client, doctor, user_factory):
        user_factory('pending.doctor@test.com', 'doctor', status=AccountStatusChoices.PENDING)

        response = manager_client.get('/api/v1/doctors/')

        assert [d['email'] for d in response.data['results']] == ['doctor@test.com']

    def test_patient_search(self, manager_client, patient, other_patient):
        response = manager_client.get('/api/v1/patients/search/', {'q': 'other'})

        assert [p['email'] for p in response.data['results']] == ['other.patient@test.com']

    def test_doctor_cannot_search_patients(self, doctor_client):
        assert doctor_client.get('/api/v1/patients/search/').status_code == 403


@pytest.mark.django_db
class TestAccountCommands:

    def test_ensure_admin_is_idempotent(self, monkeypatch):
        monkeypatch.setenv('DJANGO_SUPERUSER_EMAIL', 'root@test.com')
        monkeypatch.setenv('DJANGO_SUPERUSER_PASSWORD', PASSWORD)

        call_command('ensure_admin')
        call_command('ensure_admin')

        admin = User.objects.get(email='root@test.com')
        assert admin.role == 'admin'
        assert admin.status == AccountStatusChoices.APPROVED
        assert admin.check_password(PASSWORD)

    def test_seed_demo_users_repairs_existing_accounts(self, user_factory):
        user_factory('doctor@example.com', 'patient', status=AccountStatusChoices.SUSPENDED)

        call_command('seed_demo_users')

        assert User.objects.count() == 4
        doctor = User.objects.get(email='doctor@example.com')
        assert doctor.role == 'doctor'
        assert doctor.status == AccountStatusChoices.APPROVED
