"""Unit tests for upload record and moderation services."""

import uuid

import pytest
from common.models import OutboxEvent
from django.test import override_settings

from uploads.exceptions import (
    DuplicateUploadError,
    FileTooLargeError,
    InvalidUploadKeyError,
    NotAuthenticatedError,
    NotEventOwnerError,
    TargetNotFoundError,
    UnsupportedTypeError,
    UploadNotFoundError,
)
from uploads.models import UploadRecord
from uploads.services.planning import MiB
from uploads.services.uploads import (
    approve_upload,
    create_upload_record,
    media_type_for,
    reject_upload,
    upload_payload,
    validate_declared_file,
)


def key_for(event, name="abc123def456_1700000000000.jpg"):
    return f"events/{event.pk}/media/{name}"


class TestValidateDeclaredFile:
    def test_accepts_allowed_type(self):
        validate_declared_file("image/jpeg", MiB, 50 * MiB)

    def test_rejects_unlisted_type(self):
        with pytest.raises(UnsupportedTypeError, match="application/pdf"):
            validate_declared_file("application/pdf", MiB, 50 * MiB)

    @override_settings(UPLOAD_ALLOWED_TYPES=["application/pdf"])
    def test_allowed_types_come_from_settings(self):
        validate_declared_file("application/pdf", MiB, 50 * MiB)
        with pytest.raises(UnsupportedTypeError):
            validate_declared_file("image/jpeg", MiB, 50 * MiB)

    def test_size_ceiling(self):
        with pytest.raises(FileTooLargeError):
            validate_declared_file("image/jpeg", 50 * MiB + 1, 50 * MiB)


class TestMediaTypeFor:
    @pytest.mark.parametrize(
        ("mime", "expected"),
        [
            ("image/heic", UploadRecord.MediaType.IMAGE),
            ("audio/webm", UploadRecord.MediaType.AUDIO),
            ("video/quicktime", UploadRecord.MediaType.VIDEO),
        ],
    )
    def test_mapping(self, mime, expected):
        assert media_type_for(mime) == expected


@pytest.mark.django_db
class TestCreateUploadRecord:
    """Tests for create_upload_record."""

    def test_creates_record(self, event, other_user):
        record = create_upload_record(
            other_user,
            event.pk,
            key_for(event),
            "IMG_0001.jpg",
            3 * MiB,
            "image/jpeg",
            uploader_name="Ana",
            caption="First dance",
        )
        assert record.event == event
        assert record.uploaded_by == other_user
        assert record.file_url == f"https://media.guestsnap.example/{key_for(event)}"
        assert record.media_type == UploadRecord.MediaType.IMAGE
        assert record.caption == "First dance"
        assert record.is_approved is True

    def test_guest_upload(self, event):
        record = create_upload_record(
            None, event.pk, key_for(event), "a.jpg", MiB, "image/jpeg"
        )
        assert record.uploaded_by is None

    def test_moderated_event_holds_upload(self, make_event):
        event = make_event(approve_uploads=True)
        record = create_upload_record(
            None, event.pk, key_for(event), "a.jpg", MiB, "image/jpeg"
        )
        assert record.is_approved is False

    def test_emits_created_event(self, event):
        record = create_upload_record(
            None, event.pk, key_for(event), "a.jpg", MiB, "image/jpeg"
        )
        outbox = OutboxEvent.objects.get(event_type="upload.created")
        assert outbox.subject_id == str(record.pk)
        assert outbox.payload["fileKey"] == key_for(event)
        assert outbox.payload["eventId"] == str(event.pk)

    def test_key_outside_event_prefix(self, event, make_event):
        other = make_event()
        with pytest.raises(InvalidUploadKeyError):
            create_upload_record(
                None, event.pk, key_for(other), "a.jpg", MiB, "image/jpeg"
            )

    def test_duplicate_key(self, event):
        create_upload_record(None, event.pk, key_for(event), "a.jpg", MiB, "image/jpeg")
        with pytest.raises(DuplicateUploadError) as exc_info:
            create_upload_record(
                None, event.pk, key_for(event), "a.jpg", MiB, "image/jpeg"
            )
        assert exc_info.value.status_code == 409
        assert UploadRecord.objects.count() == 1
        assert OutboxEvent.objects.filter(event_type="upload.created").count() == 1

    def test_unknown_event(self, db):
        with pytest.raises(TargetNotFoundError):
            create_upload_record(
                None, uuid.uuid4(), "events/x/media/a.jpg", "a.jpg", MiB, "image/jpeg"
            )

    def test_unsupported_type(self, event):
        with pytest.raises(UnsupportedTypeError):
            create_upload_record(
                None, event.pk, key_for(event), "a.gif", MiB, "image/gif"
            )


@pytest.mark.django_db
class TestModeration:
    """Tests for approve_upload and reject_upload."""

    @pytest.fixture
    def pending(self, make_event):
        event = make_event(approve_uploads=True)
        return create_upload_record(
            None, event.pk, key_for(event), "a.jpg", MiB, "image/jpeg"
        )

    def test_owner_approves(self, pending, user):
        record = approve_upload(user, pending.pk)
        assert record.is_approved is True
        pending.refresh_from_db()
        assert pending.is_approved is True
        assert OutboxEvent.objects.filter(event_type="upload.approved").count() == 1

    def test_approve_is_idempotent(self, pending, user):
        approve_upload(user, pending.pk)
        approve_upload(user, str(pending.pk))
        assert OutboxEvent.objects.filter(event_type="upload.approved").count() == 1

    def test_guest_cannot_moderate(self, pending):
        with pytest.raises(NotAuthenticatedError):
            approve_upload(None, pending.pk)

    def test_non_owner_cannot_moderate(self, pending, other_user):
        with pytest.raises(NotEventOwnerError):
            reject_upload(other_user, pending.pk)
        assert UploadRecord.objects.filter(pk=pending.pk).exists()

    @pytest.mark.parametrize("upload_id", ["nope", "018f0000-0000-7000-8000-000000000000"])
    def test_unknown_upload(self, user, upload_id):
        with pytest.raises(UploadNotFoundError):
            approve_upload(user, upload_id)

    def test_owner_rejects(self, pending, user):
        pk = reject_upload(user, pending.pk)
        assert pk == pending.pk
        assert not UploadRecord.objects.filter(pk=pk).exists()
        rejected = OutboxEvent.objects.get(event_type="upload.rejected")
        assert rejected.subject_id == str(pk)
        assert rejected.payload["id"] == str(pk)


@pytest.mark.django_db
def test_upload_payload_is_camel_case(event):
    record = create_upload_record(
        None, event.pk, key_for(event), "a.jpg", 1234, "image/jpeg", caption="hi"
    )
    payload = upload_payload(record)
    assert payload["id"] == str(record.pk)
    assert payload["fileType"] == "image"
    assert payload["mimeType"] == "image/jpeg"
    assert payload["fileSize"] == 1234
    assert payload["isApproved"] is True
    assert payload["createdAt"]
