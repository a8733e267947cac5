"""
Delete old notifications.
"""
from django.conf import settings
from django.core.management.base import BaseCommand

from apps.notifications.services import purge_old_notifications


class Command(BaseCommand):
    help = 'Delete read notifications older than --days (default NOTIFICATION_RETENTION_DAYS)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--days',
            type=int,
            default=settings.NOTIFICATION_RETENTION_DAYS,
            help='Age threshold in days',
        )
        parser.add_argument(
            '--include-unread',
            action='store_true',
            help='Also delete unread notifications past the threshold',
        )

    def handle(self, *args, **options):
        deleted = purge_old_notifications(
            days=options['days'],
            include_unread=options['include_unread'],
        )
        self.stdout.write(self.style.SUCCESS(f'Deleted {deleted} notification(s)'))
