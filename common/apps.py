"""Django AppConfig for the common app."""

from django.apps import AppConfig


class CommonConfig(AppConfig):
    """Shared base models, utilities and the event outbox."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "common"
