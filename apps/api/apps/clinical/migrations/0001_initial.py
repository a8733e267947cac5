# Initial migration for clinical app: medical records, correction requests, audit log

import uuid
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('consents', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='MedicalRecord',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('visit_date', models.DateField(default=django.utils.timezone.localdate)),
                ('diagnosed_disease', models.CharField(max_length=255)),
                ('symptoms', models.TextField(blank=True)),
                ('prescriptions', models.JSONField(default=list)),
                ('recommendations', models.TextField(blank=True)),
                ('case_status', models.CharField(
                    choices=[
                        ('improving', 'Improving'),
                        ('stable', 'Stable'),
                        ('deteriorating', 'Deteriorating'),
                    ],
                    default='stable',
                    max_length=20,
                )),
                ('vital_signs', models.JSONField(blank=True, default=dict)),
                ('report_images', models.JSONField(blank=True, default=list)),
                ('state', models.CharField(
                    choices=[
                        ('pending_verification', 'Pending Verification'),
                        ('verified', 'Verified'),
                        ('rejected', 'Rejected'),
                    ],
                    default='pending_verification',
                    max_length=25,
                )),
                ('verified_at', models.DateTimeField(blank=True, null=True)),
                ('rejected_at', models.DateTimeField(blank=True, null=True)),
                ('rejection_reason', models.TextField(blank=True)),
                ('edited_at', models.DateTimeField(blank=True, null=True)),
                ('corrected_at', models.DateTimeField(blank=True, null=True)),
                ('correction_requested', models.BooleanField(default=False)),
                ('row_version', models.IntegerField(default=1)),
                ('is_deleted', models.BooleanField(default=False)),
                ('deleted_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('patient', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='patient_records',
                    to=settings.AUTH_USER_MODEL,
                )),
                ('doctor', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='doctor_records',
                    to=settings.AUTH_USER_MODEL,
                )),
                ('created_by', models.ForeignKey(
                    help_text='Management user who entered the record',
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='authored_records',
                    to=settings.AUTH_USER_MODEL,
                )),
                ('consent', models.OneToOneField(
                    blank=True,
                    help_text='Patient consent session consumed to create this record',
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='record',
                    to='consents.recordentryconsent',
                )),
                ('verified_by', models.ForeignKey(
                    blank=True, null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='+',
                    to=settings.AUTH_USER_MODEL,
                )),
                ('rejected_by', models.ForeignKey(
                    blank=True, null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='+',
                    to=settings.AUTH_USER_MODEL,
                )),
                ('edited_by', models.ForeignKey(
                    blank=True, null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='+',
                    to=settings.AUTH_USER_MODEL,
                )),
                ('corrected_by', models.ForeignKey(
                    blank=True, null=True,
                    help_text='Doctor who last applied an approved correction',
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='+',
                    to=settings.AUTH_USER_MODEL,
                )),
                ('deleted_by', models.ForeignKey(
                    blank=True, null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='+',
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                'verbose_name': 'Medical Record',
                'verbose_name_plural': 'Medical Records',
                'db_table': 'medical_record',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['patient', 'state'], name='idx_record_patient_state'),
                    models.Index(fields=['doctor', 'state'], name='idx_record_doctor_state'),
                    models.Index(fields=['created_by', '-created_at'], name='idx_record_author'),
                    models.Index(fields=['visit_date'], name='idx_record_visit_date'),
                    models.Index(fields=['is_deleted'], name='idx_record_deleted'),
                ],
                'constraints': [
                    models.CheckConstraint(
                        condition=(
                            models.Q(state='verified', verified_by__isnull=False, verified_at__isnull=False)
                            | (~models.Q(state='verified') & models.Q(verified_by__isnull=True, verified_at__isnull=True))
                        ),
                        name='chk_record_verified_pair',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='CorrectionRequest',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('reason', models.CharField(max_length=255)),
                ('description', models.TextField(blank=True)),
                ('proposed_changes', models.JSONField(blank=True, default=dict)),
                ('priority', models.CharField(
                    choices=[('low', 'Low'), ('medium', 'Medium'), ('high', 'High')],
                    default='medium',
                    max_length=10,
                )),
                ('original_snapshot', models.JSONField(
                    blank=True, default=dict,
                    help_text='Clinical fields of the record when the request was filed',
                )),
                ('state', models.CharField(
                    choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected')],
                    default='pending',
                    max_length=10,
                )),
                ('doctor_response', models.TextField(blank=True)),
                ('responded_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('record', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='correction_requests',
                    to='clinical.medicalrecord',
                )),
                ('patient', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='correction_requests',
                    to=settings.AUTH_USER_MODEL,
                )),
                ('doctor', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='assigned_correction_requests',
                    to=settings.AUTH_USER_MODEL,
                )),
                ('responded_by', models.ForeignKey(
                    blank=True, null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='+',
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                'verbose_name': 'Correction Request',
                'verbose_name_plural': 'Correction Requests',
                'db_table': 'correction_request',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['doctor', 'state'], name='idx_correction_doctor_state'),
                    models.Index(fields=['patient', '-created_at'], name='idx_correction_patient'),
                    models.Index(fields=['record'], name='idx_correction_record'),
                ],
                'constraints': [
                    models.UniqueConstraint(
                        condition=models.Q(state='pending'),
                        fields=('record',),
                        name='uniq_pending_correction_per_record',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='ClinicalAuditLog',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('action', models.CharField(
                    choices=[
                        ('create', 'Create'),
                        ('verify', 'Verify'),
                        ('reject', 'Reject'),
                        ('update', 'Update'),
                        ('attach_image', 'Attach Image'),
                        ('delete', 'Delete'),
                        ('request_correction', 'Request Correction'),
                        ('approve_correction', 'Approve Correction'),
                        ('reject_correction', 'Reject Correction'),
                    ],
                    max_length=20,
                )),
                ('entity_type', models.CharField(
                    choices=[
                        ('MedicalRecord', 'Medical Record'),
                        ('CorrectionRequest', 'Correction Request'),
                    ],
                    max_length=50,
                )),
                ('entity_id', models.UUIDField(help_text='UUID of the entity that was changed')),
                ('metadata', models.JSONField(
                    default=dict,
                    help_text='Changed fields, before/after snapshots, request metadata',
                )),
                ('actor_user', models.ForeignKey(
                    blank=True, null=True,
                    help_text='User who performed the action (null for system actions)',
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='clinical_audit_logs',
                    to=settings.AUTH_USER_MODEL,
                )),
                ('patient', models.ForeignKey(
                    blank=True, null=True,
                    help_text='Patient the audited entity belongs to',
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='+',
                    to=settings.AUTH_USER_MODEL,
                )),
                ('record', models.ForeignKey(
                    blank=True, null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='audit_logs',
                    to='clinical.medicalrecord',
                )),
            ],
            options={
                'verbose_name': 'Clinical Audit Log',
                'verbose_name_plural': 'Clinical Audit Logs',
                'db_table': 'clinical_audit_log',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['created_at'], name='idx_audit_created_at'),
                    models.Index(fields=['actor_user'], name='idx_audit_actor'),
                    models.Index(fields=['entity_type', 'entity_id'], name='idx_audit_entity'),
                    models.Index(fields=['patient'], name='idx_audit_patient'),
                    models.Index(fields=['action'], name='idx_audit_action'),
                ],
            },
        ),
    ]
