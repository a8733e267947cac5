"""
Celery tasks for notification delivery.
"""
from celery import shared_task


@shared_task(name='apps.notifications.tasks.deliver_notification_email')
def deliver_notification_email(notification_id):
    """
    Send the e-mail copy of a notification.

    Args:
        notification_id: Notification UUID as string
    """
    from .services import send_notification_email

    return send_notification_email(notification_id)


@shared_task(name='apps.notifications.tasks.retry_failed_notification_emails')
def retry_failed_notification_emails():
    """Periodic retry of failed notification e-mails."""
    from .services import retry_failed_emails

    return retry_failed_emails()
