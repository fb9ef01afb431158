"""Shared fixtures for common app tests."""

import pytest
from django.utils import timezone

from common.models import OutboxEvent, WebhookEndpoint


@pytest.fixture
def make_outbox_event(db):
    """Factory fixture to create OutboxEvent instances."""
    counter = {"n": 0}

    def _make(
        event_type="upload.created",
        subject_id=None,
        payload=None,
        status=OutboxEvent.Status.PENDING,
        dedupe_key=None,
        next_attempt_at=None,
        attempts=0,
    ):
        counter["n"] += 1
        if subject_id is None:
            subject_id = str(counter["n"])
        if payload is None:
            payload = {"fileKey": f"events/e/media/{subject_id}.jpg"}
        if next_attempt_at is None and status == OutboxEvent.Status.PENDING:
            next_attempt_at = timezone.now()
        return OutboxEvent.objects.create(
            event_type=event_type,
            subject_id=subject_id,
            payload=payload,
            status=status,
            dedupe_key=dedupe_key or subject_id,
            next_attempt_at=next_attempt_at,
            attempts=attempts,
        )

    return _make


@pytest.fixture
def make_webhook_endpoint(db):
    """Factory fixture to create WebhookEndpoint instances."""

    def _make(
        url="https://example.com/webhook",
        secret="test-secret",
        event_types=None,
        is_active=True,
    ):
        return WebhookEndpoint.objects.create(
            url=url,
            secret=secret,
            event_types=event_types or [],
            is_active=is_active,
        )

    return _make
