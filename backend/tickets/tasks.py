from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def publish_pending_ticket_events(limit=100):
    """
    Redeliver outbox events whose post-commit delivery failed or never ran
    (for example when the process died between commit and publication).
    """
    from tickets.services.notification_service import EventNotifier

    published = EventNotifier().publish_pending(limit=limit)
    if published:
        logger.info(f"Redelivered {published} pending ticket events")
    return published
