"""
Management command to create one approved demo account per role.

Usage:
    python manage.py seed_demo_users

This command is idempotent and safe to run multiple times.
"""
from django.core.management.base import BaseCommand
from apps.authz.models import AccountStatusChoices, RoleChoices, User


DEMO_PASSWORD = 'demo-pass-123'

DEMO_USERS = [
    {'email': 'admin@example.com', 'first_name': 'Admin', 'last_name': 'User',
     'role': RoleChoices.ADMIN, 'is_staff': True},
    {'email': 'doctor@example.com', 'first_name': 'Dana', 'last_name': 'Doctor',
     'role': RoleChoices.DOCTOR, 'specialization': 'General Medicine'},
    {'email': 'management@example.com', 'first_name': 'Morgan', 'last_name': 'Desk',
     'role': RoleChoices.MANAGEMENT},
    {'email': 'patient@example.com', 'first_name': 'Pat', 'last_name': 'Patient',
     'role': RoleChoices.PATIENT},
]


class Command(BaseCommand):
    help = 'Ensure demo users exist, one per role, all approved'

    def handle(self, *args, **options):
        for data in DEMO_USERS:
            data = dict(data)
            email = data.pop('email')
            user, created = User.objects.get_or_create(
                email=email,
                defaults={**data, 'status': AccountStatusChoices.APPROVED},
            )
            if created:
                user.set_password(DEMO_PASSWORD)
                user.save(update_fields=['password'])
                self.stdout.write(self.style.SUCCESS(f'  Created {user.role}: {email}'))
                continue

            updates = []
            if user.role != data['role']:
                user.role = data['role']
                updates.append('role')
            if user.status != AccountStatusChoices.APPROVED:
                user.status = AccountStatusChoices.APPROVED
                updates.append('status')
            if updates:
                user.save(update_fields=updates)
                self.stdout.write(self.style.WARNING(f'  Fixed {", ".join(updates)}: {email}'))
            else:
                self.stdout.write(f'  - Exists: {email}')
