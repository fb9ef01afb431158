"""Unit tests for upload session services."""

import re

import pytest

from uploads.exceptions import (
    FileTooLargeError,
    InvalidPartNumberError,
    InvalidRequestError,
    InvalidSizeError,
    MalformedPartsError,
    PartMismatchError,
    SessionExpiredError,
    TargetNotFoundError,
    UnsupportedTypeError,
    UploadWindowClosedError,
)
from uploads.services.planning import MiB, PartToken
from uploads.services.sessions import (
    SingleUpload,
    UploadSession,
    abort_upload_session,
    build_object_key,
    complete_upload_session,
    file_extension,
    initiate_upload,
    sanitize_file_name,
    sign_part_urls,
)

KEY_PATTERN = r"events/{event}/media/[0-9a-f]{{12}}_\d{{13}}\.{ext}"


class TestObjectKeys:
    """Tests for object key and file name helpers."""

    def test_sanitize_file_name(self):
        assert sanitize_file_name("My Photo (1).JPG") == "My_Photo__1_.JPG"
        assert sanitize_file_name("clip-01.mp4") == "clip-01.mp4"

    @pytest.mark.parametrize(
        ("file_name", "content_type", "expected"),
        [
            ("IMG_001.JPG", "image/jpeg", "jpg"),
            ("archive.tar.gz", "application/gzip", "gz"),
            ("screenshot", "image/png", "png"),
            ("weird.!!", "image/png", "png"),
            ("noext", "application/x-unknown-thing", "bin"),
        ],
    )
    def test_file_extension(self, file_name, content_type, expected):
        assert file_extension(file_name, content_type) == expected

    def test_build_object_key(self):
        key = build_object_key("e1", "beach.PNG", "image/png", 1700000000123)
        assert key.startswith("events/e1/media/")
        assert key.endswith("_1700000000123.png")

    def test_keys_do_not_repeat(self):
        keys = {
            build_object_key("e1", "a.jpg", "image/jpeg", 1700000000123)
            for _ in range(50)
        }
        assert len(keys) == 50


@pytest.mark.django_db
class TestInitiateMultipart:
    """Tests for initiate_upload on the multipart path."""

    def test_opens_session_with_plan(self, event, store, user):
        session = initiate_upload(
            event.pk,
            "party video.mp4",
            "video/mp4",
            120 * MiB,
            identity=user,
            strategy="multipart",
            store=store,
        )
        assert isinstance(session, UploadSession)
        assert session.upload_id == "upload-1"
        assert re.fullmatch(KEY_PATTERN.format(event=event.pk, ext="mp4"), session.file_key)
        assert session.file_url == f"https://media.test/{session.file_key}"
        assert session.plan.part_size == 16 * MiB
        assert session.plan.part_count == 8
        assert session.expires_in == 3600

        opened = store.opened[0]
        assert opened["content_type"] == "video/mp4"
        metadata = opened["metadata"]
        assert metadata["original-name"] == "party_video.mp4"
        assert metadata["event-id"] == str(event.pk)
        assert metadata["uploader-id"] == str(user.pk)
        assert metadata["upload-type"] == "media"
        assert metadata["file-size"] == str(120 * MiB)
        assert metadata["part-size"] == str(16 * MiB)
        assert metadata["part-count"] == "8"

    def test_wire_format(self, event, store):
        session = initiate_upload(
            event.pk, "a.mp4", "video/mp4", 20 * MiB, strategy="multipart", store=store
        )
        wire = session.to_wire()
        assert set(wire) == {
            "uploadId",
            "fileKey",
            "fileUrl",
            "partSize",
            "partCount",
            "expiresIn",
        }
        assert wire["partCount"] == 3

    def test_guest_metadata(self, event, store):
        initiate_upload(
            event.pk, "a.jpg", "image/jpeg", 20 * MiB, strategy="multipart", store=store
        )
        assert store.opened[0]["metadata"]["uploader-id"] == "unknown"

    def test_unsupported_type(self, event, store):
        with pytest.raises(UnsupportedTypeError):
            initiate_upload(
                event.pk, "a.exe", "application/x-msdownload", MiB, store=store
            )
        assert store.opened == []

    def test_too_large(self, event, store):
        with pytest.raises(FileTooLargeError):
            initiate_upload(
                event.pk,
                "a.mp4",
                "video/mp4",
                500 * MiB + 1,
                strategy="multipart",
                store=store,
            )

    def test_invalid_size(self, event, store):
        with pytest.raises(InvalidSizeError):
            initiate_upload(event.pk, "a.mp4", "video/mp4", 0, store=store)

    def test_unknown_event(self, db, store):
        with pytest.raises(TargetNotFoundError):
            initiate_upload(
                "018f0000-0000-7000-8000-000000000000",
                "a.mp4",
                "video/mp4",
                MiB,
                store=store,
            )

    def test_malformed_event_id(self, db, store):
        with pytest.raises(TargetNotFoundError):
            initiate_upload("not-a-uuid", "a.mp4", "video/mp4", MiB, store=store)

    def test_type_checked_before_event(self, db, store):
        with pytest.raises(UnsupportedTypeError):
            initiate_upload("not-a-uuid", "a.txt", "text/plain", MiB, store=store)

    def test_closed_window_rejects_guest(self, closed_event, store, other_user):
        with pytest.raises(UploadWindowClosedError) as exc_info:
            initiate_upload(
                closed_event.pk,
                "a.mp4",
                "video/mp4",
                20 * MiB,
                identity=other_user,
                store=store,
            )
        assert exc_info.value.status_code == 403
        assert store.opened == []

    def test_closed_window_allows_owner(self, closed_event, store, user):
        session = initiate_upload(
            closed_event.pk,
            "a.mp4",
            "video/mp4",
            20 * MiB,
            identity=user,
            strategy="multipart",
            store=store,
        )
        assert session.upload_id == "upload-1"

    def test_missing_file_name(self, event, store):
        with pytest.raises(InvalidRequestError):
            initiate_upload(event.pk, "", "video/mp4", MiB, store=store)

    def test_unknown_strategy(self, event, store):
        with pytest.raises(ValueError):
            initiate_upload(event.pk, "a.mp4", "video/mp4", MiB, strategy="tus", store=store)


@pytest.mark.django_db
class TestInitiateSingle:
    """Tests for initiate_upload on the single-PUT path."""

    def test_signs_whole_object(self, event, store):
        signed = initiate_upload(
            event.pk, "photo.jpg", "image/jpeg", 2 * MiB, strategy="single", store=store
        )
        assert isinstance(signed, SingleUpload)
        assert signed.upload_url.startswith("https://storage.test/events/")
        assert store.signed_objects == [(signed.file_key, "image/jpeg", 2 * MiB, 3600)]
        assert store.opened == []
        assert set(signed.to_wire()) == {"uploadUrl", "fileKey", "fileUrl", "expiresIn"}

    def test_single_size_ceiling(self, event, store):
        with pytest.raises(FileTooLargeError):
            initiate_upload(
                event.pk, "a.mp4", "video/mp4", 50 * MiB + 1, strategy="single", store=store
            )

    def test_auto_strategy_by_size(self, event, store):
        small = initiate_upload(event.pk, "a.jpg", "image/jpeg", 10 * MiB, store=store)
        large = initiate_upload(event.pk, "a.mp4", "video/mp4", 10 * MiB + 1, store=store)
        assert isinstance(small, SingleUpload)
        assert isinstance(large, UploadSession)


class TestSignPartUrls:
    """Tests for sign_part_urls batch validation."""

    def test_signs_in_request_order(self, store):
        urls = sign_part_urls("events/e/media/k.mp4", "upload-1", [3, 1, 2], store=store)
        assert [number for number, _ in urls] == [3, 1, 2]
        assert all("uploadId=upload-1" in url for _, url in urls)
        assert [call[2] for call in store.signed_parts] == [3, 1, 2]

    def test_duplicates_signed_independently(self, store):
        urls = sign_part_urls("k", "upload-1", [2, 2], store=store)
        assert len(urls) == 2

    @pytest.mark.parametrize("bad", [0, 10001, -1, "1", 1.0, True, None])
    def test_invalid_number_rejects_whole_batch(self, store, bad):
        with pytest.raises(InvalidPartNumberError, match="Invalid part number"):
            sign_part_urls("k", "upload-1", [1, bad], store=store)
        assert store.signed_parts == []

    def test_boundaries(self, store):
        urls = sign_part_urls("k", "upload-1", [1, 10000], store=store)
        assert [number for number, _ in urls] == [1, 10000]

    @pytest.mark.parametrize("part_numbers", [[], None, "1,2"])
    def test_requires_array(self, store, part_numbers):
        with pytest.raises(InvalidRequestError):
            sign_part_urls("k", "upload-1", part_numbers, store=store)

    def test_requires_session_ref(self, store):
        with pytest.raises(InvalidRequestError):
            sign_part_urls("", "upload-1", [1], store=store)


class TestCompleteUploadSession:
    """Tests for complete_upload_session."""

    def test_completes_with_sorted_tokens(self, store):
        store.sessions.add("upload-1")
        completed = complete_upload_session(
            "k",
            "upload-1",
            [{"PartNumber": 2, "ETag": '"b"'}, {"PartNumber": 1, "ETag": '"a"'}],
            store=store,
        )
        assert completed.etag == '"final-2"'
        _, _, tokens = store.completed[0]
        assert tokens == [PartToken(1, '"a"'), PartToken(2, '"b"')]

    def test_malformed_manifest_never_reaches_storage(self, store):
        store.sessions.add("upload-1")
        with pytest.raises(MalformedPartsError):
            complete_upload_session("k", "upload-1", [], store=store)
        assert store.completed == []

    def test_mismatch_leaves_session_open(self, store):
        store.sessions.add("upload-1")
        store.complete_error = PartMismatchError()
        with pytest.raises(PartMismatchError):
            complete_upload_session(
                "k", "upload-1", [{"PartNumber": 1, "ETag": '"stale"'}], store=store
            )
        assert "upload-1" in store.sessions

        store.complete_error = None
        complete_upload_session(
            "k", "upload-1", [{"PartNumber": 1, "ETag": '"fresh"'}], store=store
        )
        assert store.completed[0][2] == [PartToken(1, '"fresh"')]

    def test_completed_session_cannot_complete_again(self, store):
        store.sessions.add("upload-1")
        parts = [{"PartNumber": 1, "ETag": '"a"'}]
        complete_upload_session("k", "upload-1", parts, store=store)
        with pytest.raises(SessionExpiredError):
            complete_upload_session("k", "upload-1", parts, store=store)


class TestAbortUploadSession:
    def test_aborts_open_session(self, store):
        store.sessions.add("upload-1")
        outcome = abort_upload_session("k", "upload-1", store=store)
        assert outcome.already_gone is False
        assert store.aborted == [("k", "upload-1")]

    def test_abort_is_idempotent(self, store):
        store.sessions.add("upload-1")
        abort_upload_session("k", "upload-1", store=store)
        outcome = abort_upload_session("k", "upload-1", store=store)
        assert outcome.already_gone is True

    def test_completed_session_is_already_gone(self, store):
        store.sessions.add("upload-1")
        complete_upload_session(
            "k", "upload-1", [{"PartNumber": 1, "ETag": '"a"'}], store=store
        )
        assert abort_upload_session("k", "upload-1", store=store).already_gone is True
