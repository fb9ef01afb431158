"""Upload client: talks to the upload API and drives files into storage.

Retry policy lives here, one layer above the driver: failed parts are
re-signed and re-uploaded with linear backoff while succeeded parts are
kept. Any failure that ends a multipart upload aborts its session.
"""

import asyncio
import logging
import mimetypes
from dataclasses import dataclass, field
from operator import attrgetter

import httpx

from uploads.client.driver import (
    DEFAULT_CONCURRENCY,
    STORAGE_TIMEOUT,
    ProgressTracker,
    UploadDriver,
    source_size,
)
from uploads.exceptions import PartUploadError, UploadError, error_for_code
from uploads.services.planning import (
    MULTIPART_THRESHOLD,
    STRATEGY_MULTIPART,
    select_strategy,
    slice_parts,
)

logger = logging.getLogger(__name__)

INITIATE_PATH = "/api/multipart/initiate/"
PARTS_PATH = "/api/multipart/parts/"
COMPLETE_PATH = "/api/multipart/complete/"
ABORT_PATH = "/api/multipart/abort/"
UPLOAD_URL_PATH = "/api/upload-url/"
RECORDS_PATH = "/api/uploads/"

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BACKOFF = 0.5  # seconds, multiplied by the attempt number
URL_BATCH_SIZE = 100
DEFAULT_BATCH_CONCURRENCY = 3


def guess_content_type(file_name):
    content_type, _ = mimetypes.guess_type(file_name)
    return content_type or "application/octet-stream"


@dataclass
class BatchItem:
    id: str
    source: object
    file_name: str
    file_type: str = ""
    caption: str = ""


@dataclass
class BatchResult:
    id: str
    success: bool
    upload: dict = field(default_factory=dict)
    error: str = ""


class UploadClient:
    """Upload files to an event through the upload API.

    Args:
        api: httpx.AsyncClient whose base_url points at the site. It carries
            the session cookie and CSRF header when the user is signed in.
        storage: httpx.AsyncClient for presigned storage PUTs. One is
            created (and closed by ``aclose``) when omitted.
        concurrency: Part uploads in flight per file.
        max_retries: Extra attempts per failed part.
        retry_backoff: Seconds of backoff per attempt number.
        multipart_threshold: Files larger than this use multipart.
    """

    def __init__(
        self,
        api,
        storage=None,
        concurrency=DEFAULT_CONCURRENCY,
        max_retries=DEFAULT_MAX_RETRIES,
        retry_backoff=DEFAULT_RETRY_BACKOFF,
        multipart_threshold=MULTIPART_THRESHOLD,
    ):
        self.api = api
        self._owns_storage = storage is None
        self.storage = storage or httpx.AsyncClient(timeout=STORAGE_TIMEOUT)
        self.driver = UploadDriver(self.storage, concurrency=concurrency)
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.multipart_threshold = multipart_threshold

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        if self._owns_storage:
            await self.storage.aclose()

    # API calls

    async def _post(self, path, payload=None):
        response = await self.api.post(path, json=payload or {})
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.is_success:
            return body
        message = body.get("error") or f"Request failed: {response.status_code}"
        raise error_for_code(
            body.get("code"), message, status_code=response.status_code
        )

    async def initiate_multipart(self, event_id, file_name, file_type, file_size):
        return await self._post(
            INITIATE_PATH,
            {
                "eventId": str(event_id),
                "fileName": file_name,
                "fileType": file_type,
                "fileSize": file_size,
            },
        )

    async def request_part_urls(self, file_key, upload_id, part_numbers):
        """Sign URLs for ``part_numbers``; returns {part_number: url}."""
        urls = {}
        for i in range(0, len(part_numbers), URL_BATCH_SIZE):
            body = await self._post(
                PARTS_PATH,
                {
                    "fileKey": file_key,
                    "uploadId": upload_id,
                    "partNumbers": list(part_numbers[i : i + URL_BATCH_SIZE]),
                },
            )
            urls.update((item["partNumber"], item["url"]) for item in body["urls"])
        return urls

    async def complete_multipart(self, file_key, upload_id, tokens):
        ordered = sorted(tokens, key=attrgetter("part_number"))
        return await self._post(
            COMPLETE_PATH,
            {
                "fileKey": file_key,
                "uploadId": upload_id,
                "parts": [token.to_wire() for token in ordered],
            },
        )

    async def abort_multipart(self, file_key, upload_id):
        return await self._post(ABORT_PATH, {"fileKey": file_key, "uploadId": upload_id})

    async def request_upload_url(self, event_id, file_name, file_type, file_size):
        return await self._post(
            UPLOAD_URL_PATH,
            {
                "eventId": str(event_id),
                "fileName": file_name,
                "fileType": file_type,
                "fileSize": file_size,
            },
        )

    async def create_record(
        self, event_id, file_key, file_name, file_size, mime_type, uploader_name="", caption=""
    ):
        body = await self._post(
            RECORDS_PATH,
            {
                "eventId": str(event_id),
                "fileKey": file_key,
                "fileName": file_name,
                "fileSize": file_size,
                "mimeType": mime_type,
                "uploaderName": uploader_name,
                "caption": caption,
            },
        )
        return body["upload"]

    # Flows

    async def _abort_quietly(self, file_key, upload_id):
        try:
            await self.abort_multipart(file_key, upload_id)
        except (UploadError, httpx.HTTPError) as exc:
            logger.error("Failed to abort multipart upload %s: %s", file_key, exc)

    async def _upload_parts_with_retry(
        self, source, parts, file_key, upload_id, content_type, tracker, signal, on_part_done
    ):
        urls = await self.request_part_urls(
            file_key, upload_id, [p.part_number for p in parts]
        )
        collected = {}
        remaining = list(parts)
        attempt = 0
        while True:
            try:
                tokens = await self.driver.upload_parts(
                    source,
                    remaining,
                    urls,
                    content_type,
                    tracker=tracker,
                    signal=signal,
                    on_part_done=on_part_done,
                )
            except PartUploadError as exc:
                collected.update((t.part_number, t) for t in exc.completed)
                attempt += 1
                if attempt > self.max_retries:
                    raise PartUploadError(
                        exc.failures,
                        completed=sorted(collected.values(), key=attrgetter("part_number")),
                    ) from exc
                remaining = [p for p in remaining if p.part_number in exc.failures]
                logger.warning(
                    "Retrying %d part(s) of %s (attempt %d/%d)",
                    len(remaining),
                    file_key,
                    attempt,
                    self.max_retries,
                )
                await asyncio.sleep(self.retry_backoff * attempt)
                # Fresh URLs: the old ones may have expired.
                urls.update(
                    await self.request_part_urls(
                        file_key, upload_id, [p.part_number for p in remaining]
                    )
                )
                continue
            collected.update((t.part_number, t) for t in tokens)
            return sorted(collected.values(), key=attrgetter("part_number"))

    async def upload_multipart(
        self,
        event_id,
        source,
        file_name,
        file_type=None,
        uploader_name="",
        caption="",
        on_progress=None,
        on_part_done=None,
        signal=None,
    ):
        """Initiate, upload every part, complete, then record the upload.

        Returns:
            The upload record dict returned by the API.
        """
        file_type = file_type or guess_content_type(file_name)
        size = source_size(source)
        session = await self.initiate_multipart(event_id, file_name, file_type, size)
        file_key, upload_id = session["fileKey"], session["uploadId"]
        parts = slice_parts(size, session["partSize"])
        tracker = ProgressTracker(size, [p.part_number for p in parts], on_progress)

        try:
            tokens = await self._upload_parts_with_retry(
                source, parts, file_key, upload_id, file_type, tracker, signal, on_part_done
            )
            await self.complete_multipart(file_key, upload_id, tokens)
            upload = await self.create_record(
                event_id, file_key, file_name, size, file_type, uploader_name, caption
            )
        except Exception:
            await self._abort_quietly(file_key, upload_id)
            raise

        logger.info("Multipart upload finished: key=%s parts=%d", file_key, len(tokens))
        return upload

    async def upload_single(
        self,
        event_id,
        source,
        file_name,
        file_type=None,
        uploader_name="",
        caption="",
        on_progress=None,
    ):
        """Upload a small file with one presigned PUT, then record it."""
        file_type = file_type or guess_content_type(file_name)
        size = source_size(source)
        signed = await self.request_upload_url(event_id, file_name, file_type, size)
        tracker = ProgressTracker(size, [1], on_progress)
        await self.driver.put_object(signed["uploadUrl"], source, file_type, tracker)
        return await self.create_record(
            event_id, signed["fileKey"], file_name, size, file_type, uploader_name, caption
        )

    async def upload(self, event_id, source, file_name, file_type=None, **kwargs):
        """Upload with single PUT or multipart depending on file size."""
        size = source_size(source)
        if select_strategy(size, self.multipart_threshold) == STRATEGY_MULTIPART:
            return await self.upload_multipart(
                event_id, source, file_name, file_type, **kwargs
            )
        kwargs.pop("on_part_done", None)
        kwargs.pop("signal", None)
        return await self.upload_single(event_id, source, file_name, file_type, **kwargs)

    async def upload_batch(
        self,
        event_id,
        items,
        uploader_name="",
        concurrency=DEFAULT_BATCH_CONCURRENCY,
        on_file_progress=None,
        on_file_complete=None,
    ):
        """Upload several files, at most ``concurrency`` at a time.

        A failing file does not stop the others.

        Returns:
            BatchResults in the order of ``items``.
        """
        semaphore = asyncio.Semaphore(concurrency)

        async def run(item):
            def progress(snapshot):
                if on_file_progress is not None:
                    on_file_progress(item.id, snapshot)

            async with semaphore:
                try:
                    upload = await self.upload(
                        event_id,
                        item.source,
                        item.file_name,
                        item.file_type or None,
                        uploader_name=uploader_name,
                        caption=item.caption,
                        on_progress=progress,
                    )
                    result = BatchResult(id=item.id, success=True, upload=upload)
                except (UploadError, httpx.HTTPError, OSError) as exc:
                    logger.warning("Batch upload of %s failed: %s", item.file_name, exc)
                    result = BatchResult(id=item.id, success=False, error=str(exc))
            if on_file_complete is not None:
                on_file_complete(item.id, result)
            return result

        return list(await asyncio.gather(*(run(item) for item in items)))
