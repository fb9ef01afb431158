"""Celery tasks for the common app."""

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(
    name="common.tasks.deliver_outbox_events_task",
    bind=True,
    max_retries=2,
    default_retry_delay=60,
)
def deliver_outbox_events_task(self):
    """Deliver due outbox events.

    Queued on commit by ``emit_event`` and run every minute by beat to
    pick up retries.

    Returns:
        dict: {"processed": int, "delivered": int, "failed": int, "remaining": int}
    """
    from common.services.outbox import process_pending_events

    result = process_pending_events()
    if result["processed"]:
        logger.info(
            "Outbox delivery: %d processed, %d delivered, %d failed, %d remaining.",
            result["processed"],
            result["delivered"],
            result["failed"],
            result["remaining"],
        )
    return result


@shared_task(
    name="common.tasks.cleanup_delivered_outbox_events_task",
    bind=True,
    max_retries=2,
    default_retry_delay=60,
)
def cleanup_delivered_outbox_events_task(self):
    """Purge terminal outbox events older than OUTBOX_RETENTION_HOURS.

    Returns:
        dict: {"deleted": int, "remaining": int}
    """
    from django.conf import settings

    from common.services.outbox import cleanup_delivered_events

    return cleanup_delivered_events(
        retention_hours=getattr(settings, "OUTBOX_RETENTION_HOURS", 168)
    )
