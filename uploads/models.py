"""Upload record model: the persisted trace of a finished upload."""

from common.models import TimeStampedModel
from common.utils import uuid7
from django.conf import settings
from django.db import models


class UploadRecord(TimeStampedModel):
    """A media file that has landed in object storage.

    Created only after the storage object exists (single PUT finished or
    multipart session completed). Aborted or abandoned uploads leave no row.
    """

    class MediaType(models.TextChoices):
        IMAGE = "image", "Image"
        VIDEO = "video", "Video"
        AUDIO = "audio", "Audio"

    id = models.UUIDField(primary_key=True, default=uuid7, editable=False)
    event = models.ForeignKey(
        "events.Event",
        on_delete=models.CASCADE,
        related_name="uploads",
    )
    uploaded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="upload_records",
    )
    uploader_name = models.CharField(max_length=255, blank=True)
    caption = models.TextField(blank=True)
    file_name = models.CharField(max_length=255)
    file_key = models.CharField(max_length=1024, unique=True)
    file_url = models.URLField(max_length=2048)
    media_type = models.CharField(max_length=10, choices=MediaType.choices)
    mime_type = models.CharField(max_length=100)
    file_size = models.PositiveBigIntegerField(help_text="File size in bytes")
    is_approved = models.BooleanField(default=True)

    class Meta:
        db_table = "upload_record"
        verbose_name = "upload record"
        verbose_name_plural = "upload records"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["event", "-created_at"], name="idx_upload_event_created"
            ),
            models.Index(
                fields=["event", "is_approved"], name="idx_upload_event_approved"
            ),
        ]

    def __str__(self):
        return f"{self.file_name} ({self.get_media_type_display()})"
