"""Upload error taxonomy.

Every error carries the HTTP status the API responds with and a stable
wire ``code`` so the client can rebuild the same exception type from an
error response (see ``error_for_code``).
"""


class UploadError(Exception):
    """Base exception for upload errors."""

    status_code = 500
    code = "upload_error"
    default_message = "Upload failed."
    retryable = False

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


# Validation (400)


class InvalidRequestError(UploadError):
    status_code = 400
    code = "invalid_request"
    default_message = "Invalid request."


class InvalidSizeError(UploadError):
    status_code = 400
    code = "invalid_size"
    default_message = "File size must be a positive integer."


class FileTooLargeError(InvalidSizeError):
    code = "file_too_large"
    default_message = "File too large."


class UnsupportedTypeError(UploadError):
    status_code = 400
    code = "unsupported_type"
    default_message = "File type not allowed."


class InvalidPartNumberError(UploadError):
    status_code = 400
    code = "invalid_part_number"
    default_message = "Invalid part number."


class MalformedPartsError(UploadError):
    status_code = 400
    code = "malformed_parts"
    default_message = "Each part must have PartNumber (integer) and ETag (string)."


class InvalidUploadKeyError(UploadError):
    status_code = 400
    code = "invalid_file_key"
    default_message = "File key does not belong to this event."


class PartMismatchError(UploadError):
    """A supplied ETag does not match what storage recorded for that part."""

    status_code = 400
    code = "part_mismatch"
    default_message = "One or more parts are invalid. Please retry the upload."
    retryable = True


# Authentication / authorization (401, 403)


class NotAuthenticatedError(UploadError):
    status_code = 401
    code = "not_authenticated"
    default_message = "Unauthorized."


class UploadWindowClosedError(UploadError):
    status_code = 403
    code = "upload_window_closed"
    default_message = "Upload window closed."


class NotEventOwnerError(UploadError):
    status_code = 403
    code = "not_event_owner"
    default_message = "Not authorized to moderate uploads for this event."


# Not found / conflict (404, 409)


class TargetNotFoundError(UploadError):
    status_code = 404
    code = "event_not_found"
    default_message = "Event not found."


class SessionExpiredError(UploadError):
    """The multipart session is gone: expired, completed or aborted."""

    status_code = 404
    code = "no_such_upload"
    default_message = "Multipart upload not found or expired. Please start a new upload."


class UploadNotFoundError(UploadError):
    status_code = 404
    code = "upload_not_found"
    default_message = "Upload not found."


class DuplicateUploadError(UploadError):
    status_code = 409
    code = "duplicate_upload"
    default_message = "An upload with this file key already exists."


# Provider (500)


class StorageUnavailableError(UploadError):
    code = "storage_unavailable"
    default_message = "Object storage request failed."
    retryable = True


class SigningError(UploadError):
    code = "signing_failed"
    default_message = "Failed to generate presigned URL."


# Client side


class UploadRequestError(UploadError):
    """An API call failed with a status or code the client does not model."""

    code = "request_failed"

    def __init__(self, message=None, status_code=None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class PartUploadError(UploadError):
    """One or more part PUTs failed after every part settled.

    Attributes:
        failures: dict mapping part number to the exception it raised.
        completed: PartTokens of the parts that did succeed.
    """

    code = "part_upload_failed"
    retryable = True

    def __init__(self, failures, completed=()):
        self.failures = dict(failures)
        self.completed = list(completed)
        numbers = ", ".join(str(n) for n in sorted(self.failures))
        super().__init__(f"Upload failed for part(s): {numbers}")


class UploadCancelledError(UploadError):
    code = "cancelled"
    default_message = "Upload cancelled."

    def __init__(self, completed=()):
        self.completed = list(completed)
        super().__init__()


def _all_subclasses(cls):
    for sub in cls.__subclasses__():
        yield sub
        yield from _all_subclasses(sub)


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in _all_subclasses(UploadError)
    if cls not in (UploadRequestError, PartUploadError, UploadCancelledError)
}


def error_for_code(code, message=None, status_code=None):
    """Rebuild a typed error from a wire ``code``.

    Unknown codes become an ``UploadRequestError`` carrying the status.
    """
    cls = ERRORS_BY_CODE.get(code)
    if cls is None:
        return UploadRequestError(message, status_code=status_code)
    return cls(message)
