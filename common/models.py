"""Shared abstract base models and the event outbox."""

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models

from common.utils import uuid7


class TimeStampedModel(models.Model):
    """Abstract base providing consistent created_at/updated_at timestamps."""

    created_at = models.DateTimeField(auto_now_add=True, verbose_name="created at")
    updated_at = models.DateTimeField(auto_now=True, verbose_name="updated at")

    class Meta:
        abstract = True


class OutboxEvent(TimeStampedModel):
    """Domain event written in the same transaction as the change it reports.

    Rows are picked up by the delivery task and POSTed to every active
    WebhookEndpoint subscribed to ``event_type``.

    Status lifecycle:
        pending -> delivered
        pending -> (retries with backoff) -> failed
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        DELIVERED = "delivered", "Delivered"
        FAILED = "failed", "Failed"

    id = models.UUIDField(primary_key=True, default=uuid7, editable=False)
    event_type = models.CharField(max_length=100)
    subject_id = models.CharField(
        max_length=100,
        help_text="Primary key of the record the event is about",
    )
    payload = models.JSONField(default=dict, encoder=DjangoJSONEncoder)
    dedupe_key = models.CharField(max_length=255)
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.PENDING
    )
    attempts = models.PositiveIntegerField(default=0)
    max_attempts = models.PositiveIntegerField(default=5)
    next_attempt_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    last_error = models.TextField(blank=True)

    class Meta:
        db_table = "outbox_event"
        verbose_name = "outbox event"
        verbose_name_plural = "outbox events"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["next_attempt_at"],
                condition=models.Q(status="pending"),
                name="idx_outbox_pending_due",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["event_type", "dedupe_key"],
                name="unique_outbox_event_type_dedupe_key",
            ),
        ]

    def __str__(self):
        return f"{self.event_type} ({self.get_status_display()})"


class WebhookEndpoint(TimeStampedModel):
    """HTTP destination for outbox events.

    An empty ``event_types`` list subscribes to every event type.
    """

    id = models.UUIDField(primary_key=True, default=uuid7, editable=False)
    url = models.URLField(max_length=2048)
    secret = models.CharField(
        max_length=255,
        help_text="Shared secret for the HMAC-SHA256 signature header",
    )
    event_types = models.JSONField(
        default=list,
        blank=True,
        encoder=DjangoJSONEncoder,
        help_text='e.g. ["upload.created"]; empty list matches all events',
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "webhook_endpoint"
        verbose_name = "webhook endpoint"
        verbose_name_plural = "webhook endpoints"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.url} ({'active' if self.is_active else 'inactive'})"

    def accepts(self, event_type):
        return not self.event_types or event_type in self.event_types
