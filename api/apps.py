"""Django AppConfig for the api app."""

from django.apps import AppConfig


class ApiConfig(AppConfig):
    name = "api"
    verbose_name = "Upload API"
    default_auto_field = "django.db.models.BigAutoField"
