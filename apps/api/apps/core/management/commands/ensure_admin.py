"""
Management command to ensure an admin account exists (for Docker startup).
"""
import os

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand


class Command(BaseCommand):
    help = 'Create the bootstrap admin account if it does not exist'

    def handle(self, *args, **options):
        User = get_user_model()

        email = os.environ.get('DJANGO_SUPERUSER_EMAIL', 'admin@example.com')
        password = os.environ.get('DJANGO_SUPERUSER_PASSWORD', 'admin123dev')

        if User.objects.filter(email__iexact=email).exists():
            self.stdout.write(self.style.WARNING(f'Admin "{email}" already exists'))
            return

        # create_superuser sets role=admin and status=approved
        User.objects.create_superuser(email=email, password=password)
        self.stdout.write(self.style.SUCCESS(f'Admin "{email}" created successfully'))
