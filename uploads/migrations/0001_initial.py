import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import common.utils


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("events", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="UploadRecord",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="created at")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="updated at")),
                (
                    "id",
                    models.UUIDField(
                        default=common.utils.uuid7,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("uploader_name", models.CharField(blank=True, max_length=255)),
                ("caption", models.TextField(blank=True)),
                ("file_name", models.CharField(max_length=255)),
                ("file_key", models.CharField(max_length=1024, unique=True)),
                ("file_url", models.URLField(max_length=2048)),
                (
                    "media_type",
                    models.CharField(
                        choices=[("image", "Image"), ("video", "Video"), ("audio", "Audio")],
                        max_length=10,
                    ),
                ),
                ("mime_type", models.CharField(max_length=100)),
                ("file_size", models.PositiveBigIntegerField(help_text="File size in bytes")),
                ("is_approved", models.BooleanField(default=True)),
                (
                    "event",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="uploads",
                        to="events.event",
                    ),
                ),
                (
                    "uploaded_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="upload_records",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "upload record",
                "verbose_name_plural": "upload records",
                "db_table": "upload_record",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["event", "-created_at"], name="idx_upload_event_created"
                    ),
                    models.Index(
                        fields=["event", "is_approved"], name="idx_upload_event_approved"
                    ),
                ],
            },
        ),
    ]
