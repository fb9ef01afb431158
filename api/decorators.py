"""
Helpers shared by the JSON API views: error mapping, body parsing, identity.
"""

import json
import logging
from functools import wraps

from django.http import JsonResponse

from uploads.exceptions import InvalidRequestError, UploadError

logger = logging.getLogger(__name__)


def error_response(exc):
    return JsonResponse(
        {"success": False, "error": exc.message, "code": exc.code},
        status=exc.status_code,
    )


def json_endpoint(view_func):
    """
    Turn UploadError raised by a view into a JSON error response.

    Only the error's safe message and code reach the client; anything
    else propagates as a server error.
    """

    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except UploadError as exc:
            log = logger.warning if exc.status_code >= 500 else logger.info
            log(
                "%s %s -> %d %s: %s",
                request.method,
                request.path,
                exc.status_code,
                exc.code,
                exc.message,
            )
            return error_response(exc)

    return wrapper


def read_json(request, *required):
    """
    Parse a JSON object body and check that ``required`` fields are present.

    Raises:
        InvalidRequestError: Body is not a JSON object or a field is missing.
    """
    try:
        body = json.loads(request.body or b"{}")
    except (ValueError, UnicodeDecodeError) as exc:
        raise InvalidRequestError("Request body must be JSON.") from exc
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object.")

    missing = [name for name in required if body.get(name) in (None, "")]
    if missing:
        raise InvalidRequestError(f"{', '.join(required)} required.")
    return body


def current_identity(request):
    """The signed-in user, or None for guests."""
    user = getattr(request, "user", None)
    if user is not None and user.is_authenticated:
        return user
    return None
