"""Admin configuration for common app models."""

from django.contrib import admin
from django.utils import timezone

from common.models import OutboxEvent, WebhookEndpoint


@admin.register(OutboxEvent)
class OutboxEventAdmin(admin.ModelAdmin):
    """Admin interface for outbox events."""

    list_display = (
        "event_type",
        "subject_id",
        "status",
        "attempts",
        "next_attempt_at",
        "created_at",
    )
    list_filter = ("status", "event_type", "created_at")
    search_fields = ("event_type", "subject_id", "dedupe_key")
    readonly_fields = (
        "pk",
        "event_type",
        "subject_id",
        "payload",
        "dedupe_key",
        "attempts",
        "delivered_at",
        "last_error",
        "created_at",
        "updated_at",
    )
    date_hierarchy = "created_at"
    actions = ["requeue_failed_events"]

    @admin.action(description="Requeue selected failed events")
    def requeue_failed_events(self, request, queryset):
        """Put failed events back in the delivery queue with a fresh attempt budget."""
        updated = requeue_failed(queryset)
        self.message_user(request, f"{updated} event(s) requeued.")


@admin.register(WebhookEndpoint)
class WebhookEndpointAdmin(admin.ModelAdmin):
    list_display = ("url", "is_active", "created_at")
    list_filter = ("is_active",)
    search_fields = ("url",)


def requeue_failed(queryset):
    return queryset.filter(status=OutboxEvent.Status.FAILED).update(
        status=OutboxEvent.Status.PENDING,
        attempts=0,
        next_attempt_at=timezone.now(),
        last_error="",
    )
