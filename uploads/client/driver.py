"""Client-side driver that PUTs file parts straight to object storage.

Runs on one asyncio event loop. A semaphore bounds the number of part
uploads in flight; everything else (signing, completing, retrying) is the
caller's job. The driver never retries and never aborts the storage
session.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from operator import attrgetter

import httpx

from uploads.exceptions import (
    PartUploadError,
    UploadCancelledError,
    UploadRequestError,
)
from uploads.services.planning import PartToken, normalize_etag

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 4
STREAM_CHUNK_SIZE = 64 * 1024
STORAGE_TIMEOUT = httpx.Timeout(300.0, connect=10.0)


@dataclass(frozen=True)
class UploadProgress:
    uploaded_bytes: int
    total_bytes: int
    percent: int


class ProgressTracker:
    """Aggregate byte progress over the parts of one file.

    Percent stays below 100 until every expected part has finished, even
    when all bytes have been handed to the transport.
    """

    def __init__(self, total_bytes, part_numbers, callback=None):
        self.total_bytes = total_bytes
        self.expected = frozenset(part_numbers)
        self.callback = callback
        self._sent = {}
        self._finished = set()

    @property
    def uploaded_bytes(self):
        return min(sum(self._sent.values()), self.total_bytes)

    @property
    def complete(self):
        return self.expected <= self._finished

    def snapshot(self):
        uploaded = self.uploaded_bytes
        percent = uploaded * 100 // self.total_bytes if self.total_bytes else 100
        if not self.complete:
            percent = min(percent, 99)
        return UploadProgress(uploaded, self.total_bytes, percent)

    def start(self, part_number):
        # A retried part starts over from zero.
        self._sent[part_number] = 0
        self._finished.discard(part_number)
        self._emit()

    def advance(self, part_number, nbytes):
        self._sent[part_number] = self._sent.get(part_number, 0) + nbytes
        self._emit()

    def finish(self, part_number, size):
        self._sent[part_number] = size
        self._finished.add(part_number)
        self._emit()

    def _emit(self):
        if self.callback is not None:
            self.callback(self.snapshot())


def source_size(source):
    """Size in bytes of an in-memory buffer or a file path."""
    if isinstance(source, (bytes, bytearray, memoryview)):
        return memoryview(source).nbytes
    return os.path.getsize(source)


def read_range(source, start, end):
    """Read bytes ``[start, end)`` from an in-memory buffer or a file path."""
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(memoryview(source)[start:end])
    with open(source, "rb") as fh:
        fh.seek(start)
        return fh.read(end - start)


class UploadDriver:
    """Uploads byte ranges to presigned URLs with bounded concurrency.

    Args:
        client: httpx.AsyncClient used for storage PUTs. It must not carry
            application auth headers; the URLs are self-authorizing.
        concurrency: Maximum part uploads in flight.
        chunk_size: Body chunk size; progress advances per chunk.
    """

    def __init__(self, client, concurrency=DEFAULT_CONCURRENCY, chunk_size=STREAM_CHUNK_SIZE):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.client = client
        self.concurrency = concurrency
        self.chunk_size = chunk_size

    async def _body(self, data, on_bytes):
        view = memoryview(data)
        for offset in range(0, len(view), self.chunk_size):
            chunk = bytes(view[offset : offset + self.chunk_size])
            yield chunk
            if on_bytes is not None:
                on_bytes(len(chunk))

    async def put(self, url, data, content_type=None, on_bytes=None):
        """PUT ``data`` to a presigned URL, streaming it in chunks.

        Returns:
            The httpx.Response.

        Raises:
            UploadRequestError: Non-2xx status.
            httpx.RequestError: Transport failure.
        """
        headers = {"Content-Length": str(len(data))}
        if content_type:
            headers["Content-Type"] = content_type
        response = await self.client.put(
            url, content=self._body(data, on_bytes), headers=headers
        )
        if not response.is_success:
            raise UploadRequestError(
                f"Upload failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )
        return response

    async def put_object(self, url, source, content_type, tracker=None):
        """Upload a whole file with one PUT (single-upload path)."""
        size = source_size(source)
        tracker = tracker or ProgressTracker(size, [1])
        tracker.start(1)
        await self.put(
            url,
            read_range(source, 0, size),
            content_type,
            on_bytes=lambda n: tracker.advance(1, n),
        )
        tracker.finish(1, size)

    async def _upload_part(self, semaphore, source, part, url, content_type, tracker):
        async with semaphore:
            tracker.start(part.part_number)
            data = read_range(source, part.start, part.end)
            response = await self.put(
                url,
                data,
                content_type,
                on_bytes=lambda n: tracker.advance(part.part_number, n),
            )
            etag = normalize_etag(response.headers.get("ETag"))
            if not etag:
                raise UploadRequestError(
                    f"Storage returned no ETag for part {part.part_number}"
                )
            tracker.finish(part.part_number, part.size)
            return PartToken(part_number=part.part_number, etag=etag)

    async def upload_parts(
        self,
        source,
        parts,
        urls,
        content_type=None,
        tracker=None,
        signal=None,
        on_part_done=None,
    ):
        """Upload ``parts`` of ``source`` and collect their tokens.

        Args:
            source: bytes-like object or file path.
            parts: PartRanges to upload.
            urls: dict mapping part number to presigned URL.
            content_type: Content-Type header for every part.
            tracker: ProgressTracker shared across calls for one file.
            signal: asyncio.Event; setting it cancels unfinished parts.
            on_part_done: Called with the part number after each success.

        Returns:
            PartTokens sorted by part number.

        Raises:
            PartUploadError: Some parts failed; carries the succeeded tokens.
            UploadCancelledError: ``signal`` was set before all parts settled.
        """
        missing = [p.part_number for p in parts if p.part_number not in urls]
        if missing:
            raise ValueError(f"No URL for part(s): {missing}")
        if tracker is None:
            tracker = ProgressTracker(
                sum(p.size for p in parts), [p.part_number for p in parts]
            )

        semaphore = asyncio.Semaphore(self.concurrency)
        tokens = []
        failures = {}

        async def run(part):
            try:
                token = await self._upload_part(
                    semaphore, source, part, urls[part.part_number], content_type, tracker
                )
            except Exception as exc:
                logger.warning("Part %d failed: %s", part.part_number, exc)
                failures[part.part_number] = exc
                return
            tokens.append(token)
            if on_part_done is not None:
                on_part_done(part.part_number)

        tasks = [asyncio.create_task(run(part)) for part in parts]
        waiter = asyncio.ensure_future(signal.wait()) if signal is not None else None
        try:
            pending = set(tasks)
            while pending:
                watched = pending | {waiter} if waiter is not None else pending
                done, _ = await asyncio.wait(
                    watched, return_when=asyncio.FIRST_COMPLETED
                )
                pending -= done
                if waiter is not None and waiter in done and pending:
                    for task in pending:
                        task.cancel()
                    await asyncio.gather(*pending, return_exceptions=True)
                    raise UploadCancelledError(
                        completed=sorted(tokens, key=attrgetter("part_number"))
                    )
        finally:
            if waiter is not None:
                waiter.cancel()
            for task in tasks:
                if not task.done():
                    task.cancel()

        tokens.sort(key=attrgetter("part_number"))
        if failures:
            raise PartUploadError(failures, completed=tokens)
        return tokens
