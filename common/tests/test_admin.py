"""Tests for common app admin actions."""

import pytest

from common.admin import requeue_failed
from common.models import OutboxEvent


@pytest.mark.django_db
class TestRequeueFailed:
    """Tests for the requeue action on failed outbox events."""

    def test_resets_failed_events(self, make_outbox_event):
        event = make_outbox_event(status=OutboxEvent.Status.FAILED, attempts=5)
        OutboxEvent.objects.filter(pk=event.pk).update(last_error="HTTP 500")

        updated = requeue_failed(OutboxEvent.objects.all())

        assert updated == 1
        event.refresh_from_db()
        assert event.status == OutboxEvent.Status.PENDING
        assert event.attempts == 0
        assert event.last_error == ""
        assert event.next_attempt_at is not None

    def test_leaves_other_statuses_alone(self, make_outbox_event):
        delivered = make_outbox_event(status=OutboxEvent.Status.DELIVERED, attempts=1)
        assert requeue_failed(OutboxEvent.objects.all()) == 0
        delivered.refresh_from_db()
        assert delivered.status == OutboxEvent.Status.DELIVERED

    def test_requeued_event_is_delivered_again(self, make_outbox_event):
        from common.services.outbox import process_pending_events

        make_outbox_event(status=OutboxEvent.Status.FAILED, attempts=5)
        requeue_failed(OutboxEvent.objects.all())
        assert process_pending_events()["delivered"] == 1
