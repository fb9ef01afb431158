"""Transactional outbox: record domain events and deliver them to webhooks."""

import logging
import random
from datetime import timedelta

import httpx
from celery.exceptions import SoftTimeLimitExceeded
from django.db import transaction
from django.utils import timezone

from common.models import OutboxEvent, WebhookEndpoint
from common.services.webhook import WEBHOOK_TIMEOUT, post_event
from common.utils import safe_dispatch

logger = logging.getLogger(__name__)

DELIVERY_BATCH_SIZE = 20
CLEANUP_BATCH_SIZE = 1000
MAX_RETRY_DELAY_SECONDS = 3600


def emit_event(event_type, subject_id, payload=None, *, dedupe_key=None):
    """Record an outbox event and schedule its delivery after commit.

    Call inside the transaction that makes the change the event reports,
    so both are committed or neither is.

    Args:
        event_type: Dotted name, e.g. "upload.created".
        subject_id: Primary key of the record the event is about.
        payload: JSON-serializable dict.
        dedupe_key: Uniqueness key per event type. Defaults to subject_id.

    Returns:
        The pending OutboxEvent.
    """
    event = OutboxEvent.objects.create(
        event_type=event_type,
        subject_id=str(subject_id),
        payload=payload or {},
        dedupe_key=dedupe_key or str(subject_id),
        next_attempt_at=timezone.now(),
    )

    def _dispatch():
        with safe_dispatch("dispatch outbox delivery", logger):
            from common.tasks import deliver_outbox_events_task

            deliver_outbox_events_task.delay()

    transaction.on_commit(_dispatch)
    logger.info(
        "Outbox event emitted: pk=%s type=%s subject=%s",
        event.pk,
        event_type,
        subject_id,
    )
    return event


def retry_delay(attempts):
    """Seconds to wait before the next attempt: doubling from 60s, capped, jittered."""
    delay = min(60 * 2 ** max(attempts - 1, 0), MAX_RETRY_DELAY_SECONDS)
    return delay + random.uniform(0, delay * 0.1)


def _claim_due_events(batch_size):
    now = timezone.now()
    with transaction.atomic():
        return list(
            OutboxEvent.objects.filter(
                status=OutboxEvent.Status.PENDING,
                next_attempt_at__lte=now,
            )
            .order_by("next_attempt_at")
            .select_for_update(skip_locked=True)[:batch_size]
        )


def _deliver(events):
    """POST each event to its subscribers. Returns {pk: error_or_empty}."""
    endpoints = list(WebhookEndpoint.objects.filter(is_active=True))
    outcomes = {}
    try:
        with httpx.Client(timeout=WEBHOOK_TIMEOUT) as client:
            for event in events:
                errors = []
                for endpoint in endpoints:
                    if not endpoint.accepts(event.event_type):
                        continue
                    result = post_event(client, endpoint, event)
                    if not result.ok:
                        errors.append(f"{endpoint.url}: {result.error}")
                outcomes[event.pk] = "; ".join(errors)
    except SoftTimeLimitExceeded:
        logger.warning(
            "Soft time limit hit after %d/%d outbox events; rest left pending.",
            len(outcomes),
            len(events),
        )
    return outcomes


def _apply_outcome(event, error, now):
    event.attempts += 1
    event.last_error = error
    if not error:
        event.status = OutboxEvent.Status.DELIVERED
        event.delivered_at = now
        event.next_attempt_at = None
    elif event.attempts >= event.max_attempts:
        event.status = OutboxEvent.Status.FAILED
        event.next_attempt_at = None
    else:
        event.next_attempt_at = now + timedelta(seconds=retry_delay(event.attempts))
    event.save(
        update_fields=[
            "status",
            "attempts",
            "delivered_at",
            "next_attempt_at",
            "last_error",
            "updated_at",
        ]
    )


def process_pending_events(batch_size=DELIVERY_BATCH_SIZE):
    """Deliver due outbox events.

    Rows are claimed in a short transaction, delivered without holding
    locks, then updated. Events nobody subscribes to count as delivered.

    Returns:
        dict: {"processed": int, "delivered": int, "failed": int, "remaining": int}
    """
    events = _claim_due_events(batch_size)
    outcomes = _deliver(events) if events else {}

    now = timezone.now()
    with transaction.atomic():
        for event in events:
            if event.pk in outcomes:
                _apply_outcome(event, outcomes[event.pk], now)

    settled = [event for event in events if event.pk in outcomes]
    return {
        "processed": len(settled),
        "delivered": sum(
            1 for e in settled if e.status == OutboxEvent.Status.DELIVERED
        ),
        "failed": sum(1 for e in settled if e.status == OutboxEvent.Status.FAILED),
        "remaining": OutboxEvent.objects.filter(
            status=OutboxEvent.Status.PENDING
        ).count(),
    }


def cleanup_delivered_events(retention_hours=168):
    """Delete delivered or failed events older than ``retention_hours``.

    Returns:
        dict: {"deleted": int, "remaining": int}
    """
    cutoff = timezone.now() - timedelta(hours=retention_hours)
    terminal = OutboxEvent.objects.filter(
        status__in=[OutboxEvent.Status.DELIVERED, OutboxEvent.Status.FAILED],
        created_at__lt=cutoff,
    )
    total = terminal.count()
    if total == 0:
        return {"deleted": 0, "remaining": 0}

    pks = list(terminal.order_by("pk").values_list("pk", flat=True)[:CLEANUP_BATCH_SIZE])
    deleted, _ = OutboxEvent.objects.filter(pk__in=pks).delete()
    remaining = max(0, total - deleted)
    logger.info(
        "Cleaned up %d terminal outbox events, %d remaining.", deleted, remaining
    )
    return {"deleted": deleted, "remaining": remaining}
