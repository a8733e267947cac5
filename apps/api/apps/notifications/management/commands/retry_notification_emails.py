"""
Re-attempt failed notification e-mails.
"""
from django.core.management.base import BaseCommand

from apps.notifications.services import retry_failed_emails


class Command(BaseCommand):
    help = 'Retry delivery of notification e-mails in failed state'

    def add_arguments(self, parser):
        parser.add_argument('--limit', type=int, default=500)

    def handle(self, *args, **options):
        attempted = retry_failed_emails(limit=options['limit'])
        self.stdout.write(self.style.SUCCESS(f'Retried {attempted} notification e-mail(s)'))
