"""
REST API tests for medical records, correction requests, dashboards and
patient history: role scoping, error rendering and pagination.
"""
import io

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from PIL import Image

from apps.clinical import services as clinical_services
from apps.clinical.models import ClinicalAuditLog, CorrectionRequest, MedicalRecord

RECORDS_URL = '/api/v1/clinical/records/'
CORRECTIONS_URL = '/api/v1/clinical/corrections/'


@pytest.fixture(autouse=True)
def record_entry_without_consent(settings):
    settings.RECORDS_REQUIRE_PATIENT_CONSENT = False


def record_url(record, suffix=''):
    return f'{RECORDS_URL}{record.id}/{suffix}'


def png_upload(name='scan.png'):
    buffer = io.BytesIO()
    Image.new('RGB', (8, 8), color='white').save(buffer, format='PNG')
    return SimpleUploadedFile(name, buffer.getvalue(), content_type='image/png')


@pytest.mark.django_db
class TestRecordCreateAPI:

    def test_manager_enters_record(self, manager_client, patient, doctor, record_fields):
        payload = {**record_fields, 'patient_id': str(patient.id), 'doctor_id': str(doctor.id)}

        response = manager_client.post(RECORDS_URL, payload, format='json')

        assert response.status_code == 201
        assert response.data['state'] == 'pending_verification'
        assert response.data['doctor']['id'] == str(doctor.id)
        assert response.data['prescriptions'][0]['medicine'] == 'Paracetamol'
        assert response.data['row_version'] == 1

    def test_missing_prescription_is_rejected(self, manager_client, patient, doctor, record_fields):
        payload = {**record_fields, 'patient_id': str(patient.id), 'doctor_id': str(doctor.id), 'prescriptions': []}

        response = manager_client.post(RECORDS_URL, payload, format='json')

        assert response.status_code == 400
        assert 'prescriptions' in response.data

    def test_unknown_doctor_is_not_found(self, manager_client, patient, record_fields):
        payload = {**record_fields, 'patient_id': str(patient.id), 'doctor_id': '00000000-0000-0000-0000-000000000000'}

        response = manager_client.post(RECORDS_URL, payload, format='json')

        assert response.status_code == 404
        assert response.data['code'] == 'not_found'

    @pytest.mark.parametrize('client_name', ['patient_client', 'doctor_client', 'admin_client'])
    def test_only_management_can_create(self, request, client_name, patient, doctor, record_fields):
        client = request.getfixturevalue(client_name)
        payload = {**record_fields, 'patient_id': str(patient.id), 'doctor_id': str(doctor.id)}

        response = client.post(RECORDS_URL, payload, format='json')

        assert response.status_code == 403
        assert not MedicalRecord.objects.exists()

    def test_pending_account_is_refused(self, user_factory, client_factory, patient, doctor, record_fields):
        pending_manager = user_factory('new.manager@test.com', 'management', status='pending')
        payload = {**record_fields, 'patient_id': str(patient.id), 'doctor_id': str(doctor.id)}

        response = client_factory(pending_manager).post(RECORDS_URL, payload, format='json')

        assert response.status_code == 403

    def test_anonymous_is_unauthorized(self, api_client):
        assert api_client.get(RECORDS_URL).status_code == 401


@pytest.mark.django_db
class TestRecordVisibility:

    def test_patient_sees_only_verified_records(self, pending_record, verified_record, patient_client,
                                                manager, patient, doctor, record_fields):
        clinical_services.create_record(manager, patient.id, doctor.id, record_fields)

        response = patient_client.get(RECORDS_URL)

        assert response.status_code == 200
        assert response.data['count'] == 1
        assert response.data['results'][0]['id'] == str(verified_record.id)

    def test_patient_cannot_open_pending_record(self, pending_record, patient_client):
        response = patient_client.get(record_url(pending_record))

        assert response.status_code == 404
        assert response.data == {'error': 'Medical record not found', 'code': 'not_found'}

    def test_doctor_sees_only_assigned_records(self, pending_record, other_doctor_client):
        response = other_doctor_client.get(RECORDS_URL)

        assert response.data['count'] == 0

    def test_filters(self, verified_record, manager, patient, doctor, record_fields, doctor_client):
        clinical_services.create_record(
            manager, patient.id, doctor.id, {**record_fields, 'diagnosed_disease': 'Migraine'}
        )

        pending = doctor_client.get(RECORDS_URL, {'state': 'pending_verification'})
        search = doctor_client.get(RECORDS_URL, {'q': 'flu'})
        by_patient = doctor_client.get(RECORDS_URL, {'patient_id': str(patient.id)})

        assert [r['diagnosed_disease'] for r in pending.data['results']] == ['Migraine']
        assert [r['id'] for r in search.data['results']] == [str(verified_record.id)]
        assert by_patient.data['count'] == 2

    def test_malformed_id_is_not_found(self, doctor_client):
        response = doctor_client.get(f'{RECORDS_URL}not-a-uuid/')
        assert response.status_code == 404


@pytest.mark.django_db
class TestRecordActionsAPI:

    def test_verify(self, pending_record, doctor_client):
        response = doctor_client.post(record_url(pending_record, 'verify/'), {'row_version': 1}, format='json')

        assert response.status_code == 200
        assert response.data['state'] == 'verified'
        assert response.data['verified_by']['email'] == 'doctor@test.com'

    def test_verify_with_stale_version_conflicts(self, pending_record, doctor_client):
        response = doctor_client.post(record_url(pending_record, 'verify/'), {'row_version': 7}, format='json')

        assert response.status_code == 409
        assert response.data['code'] == 'conflict'

    def test_verify_twice_is_invalid_state(self, verified_record, doctor_client):
        response = doctor_client.post(record_url(verified_record, 'verify/'), {}, format='json')

        assert response.status_code == 400
        assert response.data['code'] == 'invalid_state'

    def test_unassigned_doctor_cannot_verify(self, pending_record, other_doctor_client):
        response = other_doctor_client.post(record_url(pending_record, 'verify/'), {}, format='json')

        assert response.status_code == 403
        assert response.data['code'] == 'not_authorized'

    def test_reject_requires_reason(self, pending_record, doctor_client):
        response = doctor_client.post(record_url(pending_record, 'reject/'), {}, format='json')
        assert response.status_code == 400

        response = doctor_client.post(record_url(pending_record, 'reject/'), {'reason': 'Wrong patient'}, format='json')
        assert response.status_code == 200
        assert response.data['state'] == 'rejected'
        assert response.data['rejection_reason'] == 'Wrong patient'

    def test_edit_reopens_verified_record(self, verified_record, doctor_client):
        response = doctor_client.patch(
            record_url(verified_record, 'edit/'), {'changes': {'recommendations': 'Sleep'}}, format='json'
        )

        assert response.status_code == 200
        assert response.data['state'] == 'pending_verification'
        assert response.data['recommendations'] == 'Sleep'
        assert response.data['verified_by'] is None

    def test_edit_and_reverify(self, verified_record, doctor_client):
        response = doctor_client.patch(
            record_url(verified_record, 'edit/'),
            {'changes': {'recommendations': 'Sleep'}, 'reverify': True},
            format='json',
        )

        assert response.status_code == 200
        assert response.data['state'] == 'verified'
        assert response.data['recommendations'] == 'Sleep'

    def test_edit_unknown_field_is_rejected(self, pending_record, doctor_client):
        response = doctor_client.patch(
            record_url(pending_record, 'edit/'), {'changes': {'state': 'verified'}}, format='json'
        )

        assert response.status_code == 400
        assert 'changes' in response.data

    def test_admin_soft_delete_hides_record(self, verified_record, admin_client, patient_client):
        response = admin_client.delete(record_url(verified_record))

        assert response.status_code == 204
        assert MedicalRecord.objects.get(id=verified_record.id).is_deleted is True
        assert patient_client.get(RECORDS_URL).data['count'] == 0
        assert admin_client.delete(record_url(verified_record)).status_code == 404

    def test_doctor_cannot_delete(self, verified_record, doctor_client):
        assert doctor_client.delete(record_url(verified_record)).status_code == 403


@pytest.mark.django_db
class TestReportImagesAPI:

    def test_author_attaches_png(self, pending_record, manager_client):
        response = manager_client.post(
            record_url(pending_record, 'images/'), {'file': png_upload()}, format='multipart'
        )

        assert response.status_code == 201
        images = response.data['report_images']
        assert len(images) == 1
        assert images[0]['file_name'] == 'scan.png'
        assert images[0]['content_type'] == 'image/png'
        assert images[0]['path'].startswith(f'reports/{pending_record.patient_id}/')
        assert ClinicalAuditLog.objects.filter(record_id=pending_record.id, action='attach_image').exists()

    def test_fake_image_is_rejected(self, pending_record, doctor_client):
        upload = SimpleUploadedFile('scan.png', b'not really a png', content_type='image/png')

        response = doctor_client.post(record_url(pending_record, 'images/'), {'file': upload}, format='multipart')

        assert response.status_code == 400
        assert response.data['code'] == 'validation_error'

    def test_pdf_is_rejected(self, pending_record, doctor_client):
        upload = SimpleUploadedFile('scan.pdf', b'%PDF-1.4', content_type='application/pdf')

        response = doctor_client.post(record_url(pending_record, 'images/'), {'file': upload}, format='multipart')

        assert response.status_code == 400

    def test_verified_record_cannot_take_images(self, verified_record, doctor_client):
        response = doctor_client.post(
            record_url(verified_record, 'images/'), {'file': png_upload()}, format='multipart'
        )

        assert response.status_code == 400
        assert response.data['code'] == 'invalid_state'


@pytest.mark.django_db
class TestCorrectionsAPI:

    def _file(self, client, record, **extra):
        payload = {'record_id': str(record.id), 'reason': 'Wrong dosage', **extra}
        return client.post(CORRECTIONS_URL, payload, format='json')

    def test_patient_files_request(self, verified_record, patient_client):
        response = self._file(patient_client, verified_record, proposed_changes={'dosage': '250mg'}, priority='high')

        assert response.status_code == 201
        assert response.data['state'] == 'pending'
        assert response.data['priority'] == 'high'
        assert response.data['record']['correction_requested'] is True

    def test_second_pending_request_conflicts(self, verified_record, patient_client):
        self._file(patient_client, verified_record)

        response = self._file(patient_client, verified_record)

        assert response.status_code == 409
        assert CorrectionRequest.objects.count() == 1

    def test_list_filters_by_record(self, verified_record, patient_client):
        self._file(patient_client, verified_record)

        by_record = patient_client.get(CORRECTIONS_URL, {'record_id': str(verified_record.id)})
        malformed = patient_client.get(CORRECTIONS_URL, {'record_id': 'not-a-uuid'})

        assert by_record.status_code == 200
        assert len(by_record.data['results']) == 1
        assert malformed.status_code == 200

    def test_pending_record_cannot_be_corrected(self, pending_record, patient_client):
        response = self._file(patient_client, pending_record)

        assert response.status_code == 400
        assert response.data['code'] == 'invalid_state'

    def test_other_patient_is_refused(self, verified_record, other_patient, client_factory):
        response = self._file(client_factory(other_patient), verified_record)

        assert response.status_code == 403
        assert response.data['code'] == 'not_authorized'

    def test_doctor_lists_and_approves_with_changes(self, verified_record, patient_client, doctor_client):
        correction_id = self._file(patient_client, verified_record).data['id']

        listed = doctor_client.get(CORRECTIONS_URL)
        response = doctor_client.post(
            f'{CORRECTIONS_URL}{correction_id}/resolve/',
            {'action': 'approve', 'response_text': 'Fixed', 'record_changes': {'recommendations': 'Sleep'}},
            format='json',
        )

        assert listed.data['count'] == 1
        assert response.status_code == 200
        assert response.data['state'] == 'approved'
        assert response.data['doctor_response'] == 'Fixed'
        assert response.data['record']['state'] == 'pending_verification'
        assert response.data['record']['correction_requested'] is False

    def test_doctor_rejects(self, verified_record, patient_client, doctor_client):
        correction_id = self._file(patient_client, verified_record).data['id']

        response = doctor_client.post(
            f'{CORRECTIONS_URL}{correction_id}/resolve/', {'action': 'reject'}, format='json'
        )

        assert response.data['state'] == 'rejected'
        assert response.data['record']['state'] == 'verified'

    def test_unknown_action_is_rejected(self, verified_record, patient_client, doctor_client):
        correction_id = self._file(patient_client, verified_record).data['id']

        response = doctor_client.post(
            f'{CORRECTIONS_URL}{correction_id}/resolve/', {'action': 'ignore'}, format='json'
        )

        assert response.status_code == 400

    def test_patient_cannot_resolve(self, verified_record, patient_client):
        correction_id = self._file(patient_client, verified_record).data['id']

        response = patient_client.post(
            f'{CORRECTIONS_URL}{correction_id}/resolve/', {'action': 'approve'}, format='json'
        )

        assert response.status_code == 403

    def test_management_cannot_list(self, manager_client):
        assert manager_client.get(CORRECTIONS_URL).status_code == 403


@pytest.mark.django_db
class TestDashboardsAndHistory:

    def test_doctor_dashboard(self, pending_record, doctor_client):
        response = doctor_client.get('/api/v1/clinical/dashboard/')

        assert response.status_code == 200
        assert response.data['total_records'] == 1
        assert response.data['pending_verification'] == 1
        assert response.data['unread_notifications'] == 1

    def test_management_dashboard(self, verified_record, manager_client):
        response = manager_client.get('/api/v1/clinical/dashboard/')

        assert response.data['verified'] == 1
        assert response.data['records_today'] == 1
        assert response.data['recent_records'][0]['id'] == str(verified_record.id)

    def test_admin_dashboard(self, rejected_record, admin_client):
        response = admin_client.get('/api/v1/clinical/dashboard/')

        assert response.data['records']['rejected'] == 1
        assert response.data['users']['by_role']['doctor'] == 1
        assert response.data['activity']['reject'] == 1

    def test_patient_history(self, verified_record, patient_client):
        response = patient_client.get('/api/v1/clinical/history/')

        assert response.status_code == 200
        assert response.data['total_records'] == 1
        assert response.data['unique_diseases'] == 1
        assert response.data['doctors_consulted'] == ['Doctor Test']
        assert response.data['last_visit'] == '2024-01-15'

    def test_doctor_reads_history_of_own_patient(self, verified_record, patient, doctor_client):
        response = doctor_client.get('/api/v1/clinical/history/', {'patient_id': str(patient.id)})

        assert response.status_code == 200
        assert response.data['total_records'] == 1

    def test_unrelated_doctor_is_refused(self, verified_record, patient, other_doctor_client):
        response = other_doctor_client.get('/api/v1/clinical/history/', {'patient_id': str(patient.id)})

        assert response.status_code == 403

    def test_management_cannot_read_history(self, patient, manager_client):
        response = manager_client.get('/api/v1/clinical/history/', {'patient_id': str(patient.id)})

        assert response.status_code == 403
