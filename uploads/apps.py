"""Django AppConfig for the uploads app."""

from django.apps import AppConfig


class UploadsConfig(AppConfig):
    """Direct-to-storage upload sessions and guest media records."""

    name = "uploads"
    verbose_name = "Guest uploads"
    default_auto_field = "django.db.models.BigAutoField"
