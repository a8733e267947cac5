# Initial migration for authz app: single-role users with account status

import uuid
from django.db import migrations, models
import django.db.models.deletion

import apps.authz.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('email', models.EmailField(max_length=255, unique=True)),
                ('first_name', models.CharField(blank=True, max_length=150)),
                ('last_name', models.CharField(blank=True, max_length=150)),
                ('phone', models.CharField(blank=True, max_length=32)),
                ('role', models.CharField(
                    choices=[
                        ('patient', 'Patient'),
                        ('doctor', 'Doctor'),
                        ('management', 'Management'),
                        ('admin', 'Admin'),
                    ],
                    default='patient',
                    max_length=20,
                )),
                ('status', models.CharField(
                    choices=[
                        ('pending', 'Pending'),
                        ('approved', 'Approved'),
                        ('rejected', 'Rejected'),
                        ('suspended', 'Suspended'),
                    ],
                    default='pending',
                    max_length=20,
                )),
                ('specialization', models.CharField(blank=True, max_length=150)),
                ('date_of_birth', models.DateField(blank=True, null=True)),
                ('rejection_reason', models.TextField(blank=True)),
                ('status_changed_at', models.DateTimeField(blank=True, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('is_staff', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('status_changed_by', models.ForeignKey(
                    blank=True,
                    help_text='Admin who made the last status decision',
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='+',
                    to='authz.user',
                )),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'User',
                'verbose_name_plural': 'Users',
                'db_table': 'auth_user',
                'indexes': [
                    models.Index(fields=['email'], name='idx_user_email'),
                    models.Index(fields=['role', 'status'], name='idx_user_role_status'),
                ],
            },
            managers=[
                ('objects', apps.authz.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='UserAuditLog',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('action', models.CharField(
                    choices=[
                        ('register', 'Register'),
                        ('update_user', 'Update User'),
                        ('approve_user', 'Approve User'),
                        ('reject_user', 'Reject User'),
                        ('suspend_user', 'Suspend User'),
                        ('change_role', 'Change Role'),
                    ],
                    max_length=20,
                )),
                ('metadata', models.JSONField(default=dict, help_text='Before/after values, reason, IP address, etc.')),
                ('actor_user', models.ForeignKey(
                    help_text='User who performed the action',
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='admin_actions',
                    to='authz.user',
                )),
                ('target_user', models.ForeignKey(
                    help_text='User who was affected by the action',
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='audit_logs',
                    to='authz.user',
                )),
            ],
            options={
                'verbose_name': 'User Audit Log',
                'verbose_name_plural': 'User Audit Logs',
                'db_table': 'user_audit_log',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['created_at'], name='idx_user_audit_created'),
                    models.Index(fields=['actor_user'], name='idx_user_audit_actor'),
                    models.Index(fields=['target_user'], name='idx_user_audit_target'),
                    models.Index(fields=['action'], name='idx_user_audit_action'),
                ],
            },
        ),
    ]
