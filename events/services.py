"""Read access to upload targets."""

from django.core.exceptions import ValidationError

from events.models import Event


def get_upload_target(event_id):
    """Return the Event for ``event_id``, or None if there is none.

    Malformed ids are treated as missing.
    """
    try:
        return Event.objects.filter(pk=event_id).first()
    except (ValidationError, ValueError):
        return None
