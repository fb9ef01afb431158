"""Upload services for declared-file validation, records and moderation."""

import logging

from common.services.outbox import emit_event
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from events.services import get_upload_target
from uploads.exceptions import (
    DuplicateUploadError,
    InvalidRequestError,
    InvalidUploadKeyError,
    NotAuthenticatedError,
    NotEventOwnerError,
    TargetNotFoundError,
    UnsupportedTypeError,
    UploadNotFoundError,
)
from uploads.models import UploadRecord
from uploads.services.planning import check_file_size
from uploads.services.storage import public_url

logger = logging.getLogger(__name__)


def validate_declared_file(file_type, file_size, max_size):
    """Validate the MIME type and size a client declares before uploading.

    Shared by the single-PUT and multipart paths so both accept exactly
    the same files.

    Args:
        file_type: Declared MIME type.
        file_size: Declared size in bytes.
        max_size: Largest size accepted on this path.

    Raises:
        UnsupportedTypeError: MIME type not in UPLOAD_ALLOWED_TYPES.
        InvalidSizeError: Size is not a positive integer.
        FileTooLargeError: Size exceeds max_size.
    """
    if file_type not in settings.UPLOAD_ALLOWED_TYPES:
        raise UnsupportedTypeError(f"File type '{file_type}' is not allowed.")
    check_file_size(file_size, max_size)


def media_type_for(mime_type):
    """Map a MIME type to the gallery media type."""
    if mime_type.startswith("image/"):
        return UploadRecord.MediaType.IMAGE
    if mime_type.startswith("audio/"):
        return UploadRecord.MediaType.AUDIO
    return UploadRecord.MediaType.VIDEO


def media_key_prefix(event_id):
    return f"events/{event_id}/media/"


def upload_payload(record):
    """Public representation of an upload, used by the API and webhooks."""
    return {
        "id": str(record.pk),
        "eventId": str(record.event_id),
        "fileName": record.file_name,
        "fileKey": record.file_key,
        "fileUrl": record.file_url,
        "fileType": record.media_type,
        "mimeType": record.mime_type,
        "fileSize": record.file_size,
        "caption": record.caption,
        "uploaderName": record.uploader_name,
        "isApproved": record.is_approved,
        "createdAt": record.created_at.isoformat() if record.created_at else None,
    }


def create_upload_record(
    identity,
    event_id,
    file_key,
    file_name,
    file_size,
    mime_type,
    uploader_name="",
    caption="",
):
    """Persist the record of a file that is already in object storage.

    The public URL is derived from the key, and the key must sit under the
    event's media prefix. New uploads start unapproved when the event
    holds uploads for moderation.

    Args:
        identity: The requesting User, or None for guests.
        event_id: Target event id.
        file_key: Object key returned by initiate.
        file_name: Original file name.
        file_size: Size in bytes.
        mime_type: MIME type the object was uploaded with.
        uploader_name: Optional guest display name.
        caption: Optional caption.

    Returns:
        The created UploadRecord.
    """
    if not isinstance(file_name, str) or not file_name:
        raise InvalidRequestError("fileName required.")
    if not isinstance(file_key, str) or not file_key:
        raise InvalidRequestError("fileKey required.")
    validate_declared_file(mime_type, file_size, settings.UPLOAD_MULTIPART_MAX_SIZE)

    event = get_upload_target(event_id)
    if event is None:
        raise TargetNotFoundError()
    if not file_key.startswith(media_key_prefix(event.pk)):
        raise InvalidUploadKeyError()

    try:
        with transaction.atomic():
            record = UploadRecord.objects.create(
                event=event,
                uploaded_by=identity,
                uploader_name=uploader_name or "",
                caption=caption or "",
                file_name=file_name[:255],
                file_key=file_key,
                file_url=public_url(file_key),
                media_type=media_type_for(mime_type),
                mime_type=mime_type,
                file_size=file_size,
                is_approved=not event.approve_uploads,
            )
            emit_event("upload.created", record.pk, upload_payload(record))
    except IntegrityError as exc:
        raise DuplicateUploadError() from exc

    logger.info(
        "Upload record created: pk=%s event=%s user=%s size=%d approved=%s",
        record.pk,
        event.pk,
        identity.pk if identity else None,
        file_size,
        record.is_approved,
    )
    return record


def _get_moderated_record(identity, upload_id):
    if identity is None:
        raise NotAuthenticatedError()
    try:
        record = (
            UploadRecord.objects.select_related("event")
            .filter(pk=upload_id)
            .first()
        )
    except (ValidationError, ValueError):
        record = None
    if record is None:
        raise UploadNotFoundError()
    if not record.event.is_owned_by(identity):
        raise NotEventOwnerError()
    return record


def approve_upload(identity, upload_id):
    """Approve an upload for the gallery. Only the event owner may approve.

    Approving an already approved upload is a no-op.

    Returns:
        The updated UploadRecord.
    """
    record = _get_moderated_record(identity, upload_id)
    if record.is_approved:
        return record

    with transaction.atomic():
        record.is_approved = True
        record.save(update_fields=["is_approved", "updated_at"])
        emit_event("upload.approved", record.pk, upload_payload(record))
    logger.info("Upload approved: pk=%s user=%s", record.pk, identity.pk)
    return record


def reject_upload(identity, upload_id):
    """Delete an upload record. Only the event owner may reject.

    Returns:
        The primary key of the deleted record.
    """
    record = _get_moderated_record(identity, upload_id)
    pk = record.pk
    payload = upload_payload(record)

    with transaction.atomic():
        record.delete()
        emit_event("upload.rejected", pk, payload)
    logger.info("Upload rejected: pk=%s user=%s", pk, identity.pk)
    return pk
