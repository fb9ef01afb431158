"""Object storage gateway for S3-compatible providers.

Wraps the boto3 S3 client behind the five operations the upload flow
needs. Provider responses are checked and turned into small result
records; provider exceptions are mapped onto ``uploads.exceptions``.
"""

import logging
from dataclasses import dataclass

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from uploads.exceptions import (
    PartMismatchError,
    SessionExpiredError,
    SigningError,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)

PART_MISMATCH_CODES = frozenset({"InvalidPart", "InvalidPartOrder"})
NO_SUCH_UPLOAD_CODE = "NoSuchUpload"


@dataclass(frozen=True)
class SessionOpened:
    upload_id: str


@dataclass(frozen=True)
class CompletedObject:
    location: str | None
    etag: str | None


def _error_code(exc):
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code", "")
    return ""


class ObjectStore:
    """Gateway to one bucket of an S3-compatible object store."""

    def __init__(self, client, bucket_name, public_domain):
        self.client = client
        self.bucket_name = bucket_name
        self.public_domain = public_domain

    def public_url(self, key):
        return public_url(key, self.public_domain)

    def open_session(self, key, content_type, metadata):
        """Start a multipart upload and return its SessionOpened record."""
        try:
            response = self.client.create_multipart_upload(
                Bucket=self.bucket_name,
                Key=key,
                ContentType=content_type,
                Metadata=metadata,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.warning("Multipart open failed: key=%s error=%s", key, exc)
            raise StorageUnavailableError(
                "Failed to initiate multipart upload."
            ) from exc

        upload_id = response.get("UploadId")
        if not isinstance(upload_id, str) or not upload_id:
            raise StorageUnavailableError(
                "Object storage returned no upload id."
            )
        return SessionOpened(upload_id=upload_id)

    def sign_part_upload(self, key, upload_id, part_number, expires_in):
        """Return a presigned URL for one PUT of ``part_number``."""
        return self._presign(
            "upload_part",
            {
                "Bucket": self.bucket_name,
                "Key": key,
                "UploadId": upload_id,
                "PartNumber": part_number,
            },
            expires_in,
        )

    def sign_whole_object_upload(self, key, content_type, content_length, expires_in):
        """Return a presigned URL for a single PUT of the whole object.

        The client must send the same Content-Type and Content-Length
        headers the URL was signed for.
        """
        return self._presign(
            "put_object",
            {
                "Bucket": self.bucket_name,
                "Key": key,
                "ContentType": content_type,
                "ContentLength": content_length,
            },
            expires_in,
        )

    def _presign(self, operation, params, expires_in):
        try:
            url = self.client.generate_presigned_url(
                operation, Params=params, ExpiresIn=expires_in
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("Presign failed: op=%s error=%s", operation, exc)
            raise SigningError() from exc
        if not isinstance(url, str) or not url:
            raise SigningError()
        return url

    def complete_session(self, key, upload_id, parts):
        """Finalize a multipart upload.

        Args:
            key: Object key of the session.
            upload_id: Provider upload id.
            parts: PartTokens, already sorted by part number.

        Returns:
            A CompletedObject.

        Raises:
            PartMismatchError: A part's ETag does not match storage.
            SessionExpiredError: The session no longer exists.
            StorageUnavailableError: Any other provider failure.
        """
        manifest = [
            {"PartNumber": part.part_number, "ETag": part.etag} for part in parts
        ]
        try:
            response = self.client.complete_multipart_upload(
                Bucket=self.bucket_name,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": manifest},
            )
        except ClientError as exc:
            code = _error_code(exc)
            logger.warning(
                "Multipart complete failed: key=%s code=%s", key, code or exc
            )
            if code in PART_MISMATCH_CODES:
                raise PartMismatchError() from exc
            if code == NO_SUCH_UPLOAD_CODE:
                raise SessionExpiredError() from exc
            raise StorageUnavailableError(
                "Failed to complete multipart upload."
            ) from exc
        except BotoCoreError as exc:
            logger.warning("Multipart complete failed: key=%s error=%s", key, exc)
            raise StorageUnavailableError(
                "Failed to complete multipart upload."
            ) from exc

        return CompletedObject(
            location=response.get("Location"), etag=response.get("ETag")
        )

    def abort_session(self, key, upload_id):
        """Discard a multipart upload and its uploaded parts.

        Raises:
            SessionExpiredError: The session no longer exists.
            StorageUnavailableError: Any other provider failure.
        """
        try:
            self.client.abort_multipart_upload(
                Bucket=self.bucket_name, Key=key, UploadId=upload_id
            )
        except ClientError as exc:
            if _error_code(exc) == NO_SUCH_UPLOAD_CODE:
                raise SessionExpiredError() from exc
            logger.warning("Multipart abort failed: key=%s error=%s", key, exc)
            raise StorageUnavailableError(
                "Failed to abort multipart upload."
            ) from exc
        except BotoCoreError as exc:
            logger.warning("Multipart abort failed: key=%s error=%s", key, exc)
            raise StorageUnavailableError(
                "Failed to abort multipart upload."
            ) from exc


def public_url(key, domain=None):
    """Public URL an object is served from once it exists."""
    return f"https://{domain or settings.OBJECT_STORAGE_PUBLIC_DOMAIN}/{key}"


def build_s3_client():
    """Create a boto3 S3 client from the OBJECT_STORAGE_* settings."""
    return boto3.client(
        "s3",
        endpoint_url=settings.OBJECT_STORAGE_ENDPOINT_URL or None,
        aws_access_key_id=settings.OBJECT_STORAGE_ACCESS_KEY_ID,
        aws_secret_access_key=settings.OBJECT_STORAGE_SECRET_ACCESS_KEY,
        region_name=settings.OBJECT_STORAGE_REGION,
        config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
    )


def get_object_store():
    """Return an ObjectStore for the configured bucket."""
    return ObjectStore(
        client=build_s3_client(),
        bucket_name=settings.OBJECT_STORAGE_BUCKET_NAME,
        public_domain=settings.OBJECT_STORAGE_PUBLIC_DOMAIN,
    )
