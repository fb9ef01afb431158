"""Direct-to-storage upload sessions.

The server never stores upload state: the object store owns the multipart
session and the client holds the part tokens. Each function here handles
one request and passes the session around as a value.
"""

import logging
import mimetypes
import re
from dataclasses import dataclass

from common.utils import random_token
from django.conf import settings
from django.utils import timezone

from events.services import get_upload_target
from uploads.exceptions import (
    InvalidPartNumberError,
    InvalidRequestError,
    SessionExpiredError,
    TargetNotFoundError,
    UploadWindowClosedError,
)
from uploads.services.planning import (
    MAX_PARTS,
    STRATEGY_MULTIPART,
    STRATEGY_SINGLE,
    PartPlan,
    parse_part_tokens,
    plan_parts,
    select_strategy,
)
from uploads.services.storage import get_object_store
from uploads.services.uploads import media_key_prefix, validate_declared_file

logger = logging.getLogger(__name__)

UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
UNSAFE_EXTENSION_CHARS = re.compile(r"[^a-z0-9]")


@dataclass(frozen=True)
class UploadSession:
    """An open multipart upload."""

    upload_id: str
    file_key: str
    file_url: str
    content_type: str
    plan: PartPlan
    expires_in: int

    def to_wire(self):
        return {
            "uploadId": self.upload_id,
            "fileKey": self.file_key,
            "fileUrl": self.file_url,
            "partSize": self.plan.part_size,
            "partCount": self.plan.part_count,
            "expiresIn": self.expires_in,
        }


@dataclass(frozen=True)
class SingleUpload:
    """A presigned PUT for the whole object."""

    upload_url: str
    file_key: str
    file_url: str
    content_type: str
    expires_in: int

    def to_wire(self):
        return {
            "uploadUrl": self.upload_url,
            "fileKey": self.file_key,
            "fileUrl": self.file_url,
            "expiresIn": self.expires_in,
        }


@dataclass(frozen=True)
class AbortOutcome:
    already_gone: bool = False


def sanitize_file_name(file_name):
    return UNSAFE_NAME_CHARS.sub("_", file_name)


def file_extension(file_name, content_type):
    """Lower-case extension for the object key.

    Falls back to the MIME type's registered extension, then ``bin``.
    """
    _, dot, extension = file_name.rpartition(".")
    extension = UNSAFE_EXTENSION_CHARS.sub("", extension.lower()) if dot else ""
    if not extension:
        guessed = mimetypes.guess_extension(content_type) or ""
        extension = guessed.lstrip(".") or "bin"
    return extension


def build_object_key(event_id, file_name, content_type, timestamp_ms):
    """``events/{eventId}/media/{randomToken}_{timestampMillis}.{ext}``.

    Uniqueness is probabilistic: a random token plus a millisecond
    timestamp, with no lookup against existing keys.
    """
    extension = file_extension(file_name, content_type)
    return f"{media_key_prefix(event_id)}{random_token()}_{timestamp_ms}.{extension}"


def _max_size_for(strategy):
    if strategy == STRATEGY_SINGLE:
        return settings.UPLOAD_SINGLE_MAX_SIZE
    return settings.UPLOAD_MULTIPART_MAX_SIZE


def _object_metadata(event_id, file_name, identity, file_size, timestamp_ms):
    return {
        "original-name": sanitize_file_name(file_name),
        "event-id": str(event_id),
        "uploader-id": str(identity.pk) if identity else "unknown",
        "upload-type": "media",
        "file-size": str(file_size),
        "upload-timestamp": str(timestamp_ms),
    }


def _initiate_multipart(store, key, file_type, file_size, metadata):
    plan = plan_parts(file_size, max_size=settings.UPLOAD_MULTIPART_MAX_SIZE)
    metadata = {
        **metadata,
        "part-size": str(plan.part_size),
        "part-count": str(plan.part_count),
    }
    opened = store.open_session(key, file_type, metadata)
    logger.info(
        "Multipart session opened: key=%s size=%d parts=%d part_size=%d",
        key,
        file_size,
        plan.part_count,
        plan.part_size,
    )
    return UploadSession(
        upload_id=opened.upload_id,
        file_key=key,
        file_url=store.public_url(key),
        content_type=file_type,
        plan=plan,
        expires_in=settings.UPLOAD_PRESIGNED_URL_TTL,
    )


def _initiate_single(store, key, file_type, file_size, metadata):
    ttl = settings.UPLOAD_PRESIGNED_URL_TTL
    url = store.sign_whole_object_upload(key, file_type, file_size, ttl)
    logger.info("Single upload signed: key=%s size=%d", key, file_size)
    return SingleUpload(
        upload_url=url,
        file_key=key,
        file_url=store.public_url(key),
        content_type=file_type,
        expires_in=ttl,
    )


STRATEGIES = {
    STRATEGY_MULTIPART: _initiate_multipart,
    STRATEGY_SINGLE: _initiate_single,
}


def initiate_upload(
    event_id,
    file_name,
    file_type,
    file_size,
    identity=None,
    strategy=None,
    store=None,
):
    """Authorize an upload and prepare its storage target.

    Checks run in order: MIME type, size, event exists, upload window
    (the owner may upload after it closes).

    Args:
        event_id: Target event id.
        file_name: Original file name.
        file_type: Declared MIME type.
        file_size: Declared size in bytes.
        identity: The requesting User, or None for guests.
        strategy: "multipart", "single", or None to pick by size.
        store: ObjectStore; defaults to the configured one.

    Returns:
        An UploadSession (multipart) or a SingleUpload.

    Raises:
        UnsupportedTypeError, InvalidSizeError, FileTooLargeError,
        TargetNotFoundError, UploadWindowClosedError,
        StorageUnavailableError, SigningError.
    """
    if strategy is not None and strategy not in STRATEGIES:
        raise ValueError(f"Unknown upload strategy: {strategy!r}")
    if not isinstance(file_name, str) or not file_name:
        raise InvalidRequestError("fileName required.")

    validate_declared_file(file_type, file_size, _max_size_for(strategy))
    strategy = strategy or select_strategy(file_size)

    event = get_upload_target(event_id)
    if event is None:
        raise TargetNotFoundError()
    if not event.is_upload_window_open() and not event.is_owned_by(identity):
        raise UploadWindowClosedError()

    timestamp_ms = int(timezone.now().timestamp() * 1000)
    key = build_object_key(event.pk, file_name, file_type, timestamp_ms)
    metadata = _object_metadata(event.pk, file_name, identity, file_size, timestamp_ms)

    store = store or get_object_store()
    return STRATEGIES[strategy](store, key, file_type, file_size, metadata)


def _require_session_ref(file_key, upload_id):
    if not isinstance(file_key, str) or not file_key:
        raise InvalidRequestError("fileKey and uploadId required.")
    if not isinstance(upload_id, str) or not upload_id:
        raise InvalidRequestError("fileKey and uploadId required.")


def sign_part_urls(file_key, upload_id, part_numbers, store=None):
    """Presign one PUT URL per requested part number.

    The whole batch is rejected if any number is invalid. Duplicates are
    signed independently; storage keeps the last PUT for a part slot.

    Returns:
        list of (part_number, url) tuples in request order.

    Raises:
        InvalidPartNumberError: A number is not an int in [1, 10000].
        SigningError: Presigning failed.
    """
    _require_session_ref(file_key, upload_id)
    if not isinstance(part_numbers, (list, tuple)) or not part_numbers:
        raise InvalidRequestError("partNumbers array required.")
    for number in part_numbers:
        if (
            isinstance(number, bool)
            or not isinstance(number, int)
            or not 1 <= number <= MAX_PARTS
        ):
            raise InvalidPartNumberError(
                f"Invalid part number: {number!r}. "
                f"Must be integer between 1-{MAX_PARTS}"
            )

    store = store or get_object_store()
    ttl = settings.UPLOAD_PRESIGNED_URL_TTL
    urls = [
        (number, store.sign_part_upload(file_key, upload_id, number, ttl))
        for number in part_numbers
    ]
    logger.info("Part URLs signed: key=%s count=%d", file_key, len(urls))
    return urls


def complete_upload_session(file_key, upload_id, parts, store=None):
    """Finalize a multipart session from its part tokens.

    Tokens may arrive in any order; they are submitted sorted by part
    number.

    Returns:
        The CompletedObject reported by storage.

    Raises:
        MalformedPartsError: Bad or empty manifest.
        PartMismatchError: Retry the affected part, then complete again.
        SessionExpiredError: Restart the whole upload.
    """
    _require_session_ref(file_key, upload_id)
    tokens = parse_part_tokens(parts)

    store = store or get_object_store()
    completed = store.complete_session(file_key, upload_id, tokens)
    logger.info(
        "Multipart session completed: key=%s parts=%d", file_key, len(tokens)
    )
    return completed


def abort_upload_session(file_key, upload_id, store=None):
    """Discard a multipart session and its uploaded parts.

    A session that no longer exists counts as aborted.

    Returns:
        An AbortOutcome.
    """
    _require_session_ref(file_key, upload_id)
    store = store or get_object_store()
    try:
        store.abort_session(file_key, upload_id)
    except SessionExpiredError:
        logger.info("Multipart session already gone: key=%s", file_key)
        return AbortOutcome(already_gone=True)

    logger.info("Multipart session aborted: key=%s", file_key)
    return AbortOutcome()
