"""Admin configuration for events."""

from django.contrib import admin

from events.models import Event


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    """Admin interface for events."""

    list_display = (
        "name",
        "owner",
        "upload_window_end",
        "approve_uploads",
        "created_at",
    )
    list_filter = ("approve_uploads", "created_at")
    search_fields = ("name", "slug", "owner__email")
    prepopulated_fields = {"slug": ("name",)}
    readonly_fields = ("pk", "created_at", "updated_at")
    list_select_related = ("owner",)
    date_hierarchy = "created_at"
