"""
Global test fixtures for pytest.

Provides reusable fixtures for API testing:
- Approved users for every role and authenticated API clients
- Medical records in each lifecycle state
"""
import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from apps.authz.models import AccountStatusChoices, RoleChoices, User
from apps.clinical import services as clinical_services


RECORD_FIELDS = {
    'visit_date': '2024-01-15',
    'diagnosed_disease': 'Flu',
    'symptoms': 'Fever, cough',
    'prescriptions': [
        {'medicine': 'Paracetamol', 'dosage': '500mg', 'frequency': 'twice daily', 'interval': '5 days'},
    ],
    'recommendations': 'Rest and fluids',
    'case_status': 'stable',
}


def make_user(email, role, status=AccountStatusChoices.APPROVED, **extra):
    extra.setdefault('first_name', email.split('@')[0].title())
    extra.setdefault('last_name', 'Test')
    return User.objects.create_user(
        email=email,
        password='testpass123',
        role=role,
        status=status,
        **extra
    )


def client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture(autouse=True)
def clear_throttle_cache():
    """Throttle counters live in the cache; start every test from zero."""
    cache.clear()
    yield
    cache.clear()


# ============================================================================
# Users
# ============================================================================

@pytest.fixture
def user_factory(db):
    """Create an extra user: user_factory(email, role, status=..., **fields)."""
    return make_user


@pytest.fixture
def patient(db):
    return make_user('patient@test.com', RoleChoices.PATIENT, date_of_birth='1990-05-01')


@pytest.fixture
def other_patient(db):
    return make_user('other.patient@test.com', RoleChoices.PATIENT)


@pytest.fixture
def doctor(db):
    return make_user('doctor@test.com', RoleChoices.DOCTOR, specialization='General Medicine')


@pytest.fixture
def other_doctor(db):
    return make_user('other.doctor@test.com', RoleChoices.DOCTOR, specialization='Cardiology')


@pytest.fixture
def manager(db):
    return make_user('manager@test.com', RoleChoices.MANAGEMENT)


@pytest.fixture
def admin_user(db):
    return make_user('admin@test.com', RoleChoices.ADMIN, is_staff=True)


# ============================================================================
# API Clients
# ============================================================================

@pytest.fixture
def client_factory():
    """Authenticated client for any user: client_factory(user)."""
    return client_for


@pytest.fixture
def api_client():
    """Unauthenticated DRF API client."""
    return APIClient()


@pytest.fixture
def patient_client(patient):
    return client_for(patient)


@pytest.fixture
def doctor_client(doctor):
    return client_for(doctor)


@pytest.fixture
def other_doctor_client(other_doctor):
    return client_for(other_doctor)


@pytest.fixture
def manager_client(manager):
    return client_for(manager)


@pytest.fixture
def admin_client(admin_user):
    return client_for(admin_user)


# ============================================================================
# Records
# ============================================================================

@pytest.fixture
def record_fields():
    return {
        **RECORD_FIELDS,
        'prescriptions': [dict(p) for p in RECORD_FIELDS['prescriptions']],
    }


@pytest.fixture
def pending_record(manager, patient, doctor, record_fields):
    return clinical_services.create_record(manager, patient.id, doctor.id, record_fields)


@pytest.fixture
def verified_record(pending_record, doctor):
    return clinical_services.verify_record(doctor, pending_record.id)


@pytest.fixture
def rejected_record(pending_record, doctor):
    return clinical_services.reject_record(doctor, pending_record.id, 'Wrong patient')
