"""
Delete expired record entry consent sessions.
"""
from django.core.management.base import BaseCommand

from apps.consents.services import purge_expired_consents


class Command(BaseCommand):
    help = 'Delete expired, unused record entry consent sessions'

    def handle(self, *args, **options):
        deleted = purge_expired_consents()
        self.stdout.write(self.style.SUCCESS(f'Deleted {deleted} expired consent session(s)'))
