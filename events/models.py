"""Event model: the target guests upload media to."""

from common.models import TimeStampedModel
from common.utils import uuid7
from django.conf import settings
from django.db import models
from django.utils import timezone


class Event(TimeStampedModel):
    """An event that collects guest photos, videos and voice messages.

    Guests may upload until ``upload_window_end``; after that only the
    owner can. When ``approve_uploads`` is set, new uploads wait for the
    owner's approval before they show in the gallery.
    """

    id = models.UUIDField(primary_key=True, default=uuid7, editable=False)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="events",
    )
    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True)
    upload_window_end = models.DateTimeField()
    approve_uploads = models.BooleanField(
        default=True,
        help_text="Hold new uploads for owner approval",
    )

    class Meta:
        db_table = "event"
        verbose_name = "event"
        verbose_name_plural = "events"
        ordering = ["-created_at"]

    def __str__(self):
        return self.name

    def is_upload_window_open(self, now=None):
        return self.upload_window_end > (now or timezone.now())

    def is_owned_by(self, user):
        return user is not None and user.pk == self.owner_id
