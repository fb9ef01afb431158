"""Django AppConfig for the accounts app."""

from django.apps import AppConfig


class AccountsConfig(AppConfig):
    """Event owners and signed-in uploaders."""

    name = "accounts"
    verbose_name = "Event owners"
    default_auto_field = "django.db.models.BigAutoField"
