"""Admin configuration for upload records."""

from django.contrib import admin

from uploads.models import UploadRecord
from uploads.services.uploads import approve_upload


@admin.register(UploadRecord)
class UploadRecordAdmin(admin.ModelAdmin):
    """Admin interface for upload records."""

    list_display = (
        "file_name",
        "event",
        "media_type",
        "file_size",
        "uploader_name",
        "is_approved",
        "created_at",
    )
    list_filter = ("media_type", "is_approved", "created_at")
    search_fields = ("file_name", "file_key", "uploader_name", "event__name")
    readonly_fields = (
        "pk",
        "file_key",
        "file_url",
        "mime_type",
        "file_size",
        "created_at",
        "updated_at",
    )
    list_select_related = ("event", "uploaded_by")
    date_hierarchy = "created_at"
    actions = ["approve_selected"]

    @admin.action(description="Approve selected uploads")
    def approve_selected(self, request, queryset):
        """Approve on behalf of each event's owner so webhooks fire as usual."""
        approved = 0
        for record in queryset.select_related("event__owner").filter(is_approved=False):
            approve_upload(record.event.owner, record.pk)
            approved += 1
        self.message_user(request, f"{approved} upload(s) approved.")
