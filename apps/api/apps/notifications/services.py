"""
Notification services.

``notify()`` is the single entry point used by every workflow that produces
a notification. The in-app row is inserted inside the caller's transaction,
so it commits or rolls back together with the state change it describes.
E-mail delivery is scheduled with ``transaction.on_commit`` and can never
undo or fail the transition.
"""
import logging
import smtplib
from datetime import timedelta

from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction
from django.utils import timezone
from kombu.exceptions import OperationalError

from apps.core.observability import metrics
from apps.notifications.models import EmailStatusChoices, Notification

logger = logging.getLogger(__name__)


def notify(
    recipient,
    notification_type,
    title,
    message,
    record=None,
    correction_request=None,
    metadata=None,
    send_email=True,
):
    """
    Record a notification for ``recipient`` and queue its e-mail.

    Must be called inside the transaction of the transition that caused it.
    """
    email_enabled = (
        send_email
        and settings.NOTIFICATION_EMAIL_ENABLED
        and bool(recipient.email)
    )

    notification = Notification.objects.create(
        recipient=recipient,
        type=notification_type,
        title=title,
        message=message,
        record=record,
        correction_request=correction_request,
        metadata=metadata or {},
        email_status=EmailStatusChoices.PENDING if email_enabled else EmailStatusChoices.SKIPPED,
    )
    metrics.notifications_created_total.labels(type=notification_type).inc()

    logger.info(
        'Notification created',
        extra={
            'event': 'notification_created',
            'notification_id': str(notification.id),
            'notification_type': notification_type,
            'recipient_id': str(recipient.id),
            'record_id': str(record.id) if record else None,
            'correction_request_id': str(correction_request.id) if correction_request else None,
        }
    )

    if email_enabled:
        notification_id = str(notification.id)
        transaction.on_commit(lambda: enqueue_notification_email(notification_id))
    else:
        metrics.notification_emails_total.labels(result=EmailStatusChoices.SKIPPED).inc()

    return notification


def enqueue_notification_email(notification_id):
    """
    Hand the e-mail to the task queue. Runs after commit.

    An unreachable broker marks the notification failed so the periodic
    retry picks it up; the committed transition is unaffected.
    """
    from apps.notifications.tasks import deliver_notification_email

    try:
        deliver_notification_email.delay(notification_id)
    except OperationalError as e:
        Notification.objects.filter(id=notification_id, email_status=EmailStatusChoices.PENDING).update(
            email_status=EmailStatusChoices.FAILED,
            email_error=f'Queue unavailable: {e}'[:500],
        )
        metrics.notification_emails_total.labels(result=EmailStatusChoices.FAILED).inc()
        logger.error(
            'Notification e-mail could not be queued',
            exc_info=True,
            extra={'event': 'notification_email_enqueue_failed', 'notification_id': notification_id}
        )


def send_notification_email(notification_id):
    """
    Deliver the e-mail for one notification.

    Delivery errors are recorded on the notification and logged; they are
    never raised, since the transition that produced the notification has
    already committed.

    Returns:
        Resulting email_status.
    """
    with transaction.atomic():
        notification = (
            Notification.objects
            .select_for_update()
            .select_related('recipient')
            .filter(id=notification_id)
            .first()
        )
        if notification is None:
            logger.warning(
                'Notification vanished before e-mail delivery',
                extra={'event': 'notification_email_missing', 'notification_id': str(notification_id)}
            )
            return None

        if notification.email_status in (EmailStatusChoices.SENT, EmailStatusChoices.SKIPPED):
            return notification.email_status

        notification.email_attempts += 1
        try:
            send_mail(
                subject=notification.title,
                message=notification.message,
                from_email=settings.DEFAULT_FROM_EMAIL,
                recipient_list=[notification.recipient.email],
                fail_silently=False,
            )
        except (smtplib.SMTPException, OSError) as e:
            notification.email_status = EmailStatusChoices.FAILED
            notification.email_error = str(e)[:500]
            notification.save(update_fields=['email_status', 'email_error', 'email_attempts'])
            metrics.notification_emails_total.labels(result=EmailStatusChoices.FAILED).inc()
            logger.error(
                'Notification e-mail delivery failed',
                exc_info=True,
                extra={
                    'event': 'notification_email_failed',
                    'notification_id': str(notification.id),
                    'notification_type': notification.type,
                    'attempt': notification.email_attempts,
                }
            )
            return notification.email_status

        notification.email_status = EmailStatusChoices.SENT
        notification.emailed_at = timezone.now()
        notification.email_error = ''
        notification.save(update_fields=['email_status', 'emailed_at', 'email_error', 'email_attempts'])

    metrics.notification_emails_total.labels(result=EmailStatusChoices.SENT).inc()
    logger.info(
        'Notification e-mail sent',
        extra={
            'event': 'notification_email_sent',
            'notification_id': str(notification.id),
            'notification_type': notification.type,
        }
    )
    return notification.email_status


def retry_failed_emails(max_attempts=None, limit=500):
    """
    Re-attempt delivery of failed notification e-mails.

    Returns:
        Number of notifications re-attempted.
    """
    if max_attempts is None:
        max_attempts = settings.NOTIFICATION_EMAIL_MAX_ATTEMPTS

    ids = list(
        Notification.objects
        .filter(email_status=EmailStatusChoices.FAILED, email_attempts__lt=max_attempts)
        .order_by('created_at')
        .values_list('id', flat=True)[:limit]
    )
    for notification_id in ids:
        send_notification_email(notification_id)
    return len(ids)


def unread_count(user):
    return Notification.objects.filter(recipient=user, is_read=False).count()


def mark_as_read(user, notification_id):
    """
    Mark one of ``user``'s notifications as read.

    Returns:
        The notification, or None if it does not belong to ``user``.
    """
    notification = Notification.objects.filter(id=notification_id, recipient=user).first()
    if notification is None:
        return None
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = timezone.now()
        notification.save(update_fields=['is_read', 'read_at'])
    return notification


def mark_all_as_read(user):
    """Returns number of notifications updated."""
    return Notification.objects.filter(recipient=user, is_read=False).update(
        is_read=True,
        read_at=timezone.now(),
    )


def purge_old_notifications(days=None, include_unread=False):
    """
    Delete notifications older than ``days``.

    Only read notifications are removed unless ``include_unread`` is set.

    Returns:
        Number of notifications deleted.
    """
    if days is None:
        days = settings.NOTIFICATION_RETENTION_DAYS
    cutoff = timezone.now() - timedelta(days=days)

    queryset = Notification.objects.filter(created_at__lt=cutoff)
    if not include_unread:
        queryset = queryset.filter(is_read=True)

    deleted, _ = queryset.delete()
    logger.info(
        'Old notifications purged',
        extra={'event': 'notifications_purged', 'deleted': deleted, 'days': days}
    )
    return deleted
