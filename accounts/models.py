"""User model for GuestSnap event owners."""

from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """An account that owns events and moderates their uploads.

    Guests upload without an account; signed-in users are recorded as the
    uploader and may upload to their own events after the window closes.
    """

    class Meta:
        db_table = "user"
        verbose_name = "user"
        verbose_name_plural = "users"

    def __str__(self):
        return self.email or self.username
