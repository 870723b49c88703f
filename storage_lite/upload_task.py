"""Upload task for the storage REST API.

An ``UploadTask`` sends one payload to one object. Payloads below the simple
upload threshold go out as a single ``multipart/related`` request. Larger
payloads use the resumable protocol documented at
https://developers.google.com/android/over-the-air/v1/how-tos/create-package:
a session is negotiated first, then the payload is sent in sequential chunks
whose size is dictated by the server.

The task is awaitable and async-iterable:

    task = UploadTask("bucket", "path/to/file", payload, transport=transport)
    async for progress in task:
        print(progress.offset, progress.total)
    metadata = await task
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable, Generator, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

import aiohttp

from storage_lite.const import (
    API_URL,
    COMMAND_START,
    COMMAND_UPLOAD,
    COMMAND_UPLOAD_FINALIZE,
    JSON_CONTENT_TYPE,
    METADATA_PART_CONTENT_TYPE,
    PROTOCOL_MULTIPART,
    PROTOCOL_RESUMABLE,
    SIMPLE_UPLOAD_THRESHOLD,
    STATUS_FINAL,
    UPLOAD_CHUNK_GRANULARITY_HEADER,
    UPLOAD_COMMAND_HEADER,
    UPLOAD_CONTENT_LENGTH_HEADER,
    UPLOAD_CONTENT_TYPE_HEADER,
    UPLOAD_OFFSET_HEADER,
    UPLOAD_PROTOCOL_HEADER,
    UPLOAD_STATUS_HEADER,
    UPLOAD_URL_HEADER,
)
from storage_lite.exceptions import AlreadyStarted, SessionStartFailed, UploadFailed
from storage_lite.payload import Payload
from storage_lite.transport import HttpRequest, HttpResponse, Transport
from storage_lite.utils.http_errors import extract_error_detail
from storage_lite.utils.query import object_to_query

logger = logging.getLogger(__name__)


class UploadMode(str, Enum):
    """Lifecycle states for an upload task.

    State transitions:
    - PENDING -> SIMPLE_IN_FLIGHT -> COMPLETED | FAILED
    - PENDING -> RESUMABLE_NEGOTIATING -> RESUMABLE_UPLOADING
    - RESUMABLE_NEGOTIATING -> FAILED
    - RESUMABLE_UPLOADING -> COMPLETED | FAILED
    - PENDING -> FAILED (error before dispatch)
    """

    PENDING = "pending"
    SIMPLE_IN_FLIGHT = "simple_in_flight"
    RESUMABLE_NEGOTIATING = "resumable_negotiating"
    RESUMABLE_UPLOADING = "resumable_uploading"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS: dict[UploadMode, frozenset[UploadMode]] = {
    UploadMode.PENDING: frozenset({
        UploadMode.SIMPLE_IN_FLIGHT,
        UploadMode.RESUMABLE_NEGOTIATING,
        UploadMode.FAILED,
    }),
    UploadMode.SIMPLE_IN_FLIGHT: frozenset({UploadMode.COMPLETED, UploadMode.FAILED}),
    UploadMode.RESUMABLE_NEGOTIATING: frozenset({
        UploadMode.RESUMABLE_UPLOADING,
        UploadMode.FAILED,
    }),
    UploadMode.RESUMABLE_UPLOADING: frozenset({
        UploadMode.COMPLETED,
        UploadMode.FAILED,
    }),
    UploadMode.COMPLETED: frozenset(),
    UploadMode.FAILED: frozenset(),
}


@dataclass(frozen=True)
class UploadProgress:
    """Bytes acknowledged by the server after a completed round trip."""

    offset: int
    total: int

    @property
    def fraction(self) -> float:
        """Share of the payload acknowledged, 1.0 for an empty payload."""
        if self.total == 0:
            return 1.0
        return self.offset / self.total


def _parse_granularity(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        granularity = int(value.strip())
    except ValueError:
        return None
    return granularity if granularity > 0 else None


def _short_url(url: str) -> str:
    return url[:80] + "..." if len(url) > 80 else url


class UploadTask:
    """Upload a single payload to an object, simple or resumable.

    A task is bound to one destination and one payload and runs at most once.
    Its outcome is produced by a single ``asyncio.Task`` that owns the
    request sequence, so awaiting the task, calling ``start()`` and iterating
    progress all observe the same run.
    """

    def __init__(
        self,
        bucket: str,
        name: str,
        payload: Payload,
        metadata: Mapping[str, Any] | None = None,
        *,
        transport: Transport,
        api_url: str = API_URL,
        simple_upload_threshold: int = SIMPLE_UPLOAD_THRESHOLD,
        progress_callback: Callable[[UploadProgress], None] | None = None,
    ) -> None:
        """Initialize the upload task.

        Args:
            bucket: Name of the destination bucket.
            name: Full object name. One leading slash is dropped.
            payload: Bytes to upload.
            metadata: Custom metadata merged into the object's metadata.
                ``name`` and ``contentType`` are always set by the task.
            transport: Sends the HTTP requests.
            api_url: Base URL of the storage REST API.
            simple_upload_threshold: Payloads strictly smaller than this use
                a single multipart request.
            progress_callback: Called with every progress snapshot. Errors it
                raises are logged and do not fail the upload.
        """
        if name.startswith("/"):
            name = name[1:]

        self.payload = payload
        self._metadata: dict[str, Any] = {
            **(metadata or {}),
            "name": name,
            "contentType": payload.content_type,
        }
        self.base_url = f"{api_url.rstrip('/')}/b/{bucket}/o"
        self.simple_upload_threshold = simple_upload_threshold

        self.mode = UploadMode.PENDING
        self.upload_url: str | None = None
        self.chunk_granularity: int | None = None
        self.offset = 0

        self._transport = transport
        self._progress_callback = progress_callback
        self._runner: asyncio.Task[dict[str, Any]] | None = None
        self._progress: asyncio.Queue[UploadProgress | None] | None = None
        self._progress_iterated = False

    @property
    def metadata(self) -> Mapping[str, Any]:
        """Read-only view of the metadata sent with the upload."""
        return MappingProxyType(self._metadata)

    @property
    def name(self) -> str:
        """Object name the payload is uploaded to."""
        return self._metadata["name"]

    @property
    def total(self) -> int:
        """Payload size in bytes."""
        return self.payload.size

    @property
    def done(self) -> bool:
        """True once the task has completed or failed."""
        return self.mode in (UploadMode.COMPLETED, UploadMode.FAILED)

    async def start(self) -> dict[str, Any]:
        """Run the upload and return the final object metadata.

        Returns:
            The object metadata returned by the server.

        Raises:
            AlreadyStarted: If the task was started before.
            SessionStartFailed: If the resumable session could not be opened.
            UploadFailed: If the server rejected an upload request.
            aiohttp.ClientError: If the transport failed.
        """
        if self._runner is not None or self.mode is not UploadMode.PENDING:
            raise AlreadyStarted(f"Upload of {self.name} was already started")
        return await self._ensure_started()

    def cancel(self) -> bool:
        """Abort the in-flight request and stop sending chunks.

        Returns:
            True if a running upload was cancelled.
        """
        if self._runner is None or self._runner.done():
            return False
        return self._runner.cancel()

    def __await__(self) -> Generator[Any, None, dict[str, Any]]:
        """Start the task if it is pending and wait for its result."""
        return self._ensure_started().__await__()

    def __aiter__(self) -> AsyncIterator[UploadProgress]:
        """Iterate progress snapshots, starting the task if it is pending.

        Raises:
            RuntimeError: If progress was already iterated.
        """
        if self._progress_iterated:
            raise RuntimeError("Upload progress can only be iterated once")
        self._progress_iterated = True
        return self._iter_progress()

    def __repr__(self) -> str:
        return (
            f"UploadTask(name={self.name!r}, mode={self.mode.value}, "
            f"offset={self.offset}/{self.total})"
        )

    async def _iter_progress(self) -> AsyncIterator[UploadProgress]:
        runner = self._ensure_started()
        assert self._progress is not None
        while True:
            progress = await self._progress.get()
            if progress is None:
                break
            yield progress
        # Surface the failure, if any, to the consumer.
        await runner

    def _ensure_started(self) -> asyncio.Task[dict[str, Any]]:
        if self._runner is None:
            loop = asyncio.get_running_loop()
            self._progress = asyncio.Queue()
            self._runner = loop.create_task(self._run())
            self._runner.add_done_callback(self._on_runner_done)
        return self._runner

    def _on_runner_done(self, runner: asyncio.Task[dict[str, Any]]) -> None:
        # A runner cancelled before its first step never enters _run.
        if runner.cancelled() and self.mode is UploadMode.PENDING:
            logger.info("Upload cancelled for %s before it started", self.name)
            self._transition(UploadMode.FAILED)
        assert self._progress is not None
        self._progress.put_nowait(None)

    def _transition(self, mode: UploadMode) -> None:
        if mode not in _TRANSITIONS[self.mode]:
            raise RuntimeError(
                f"Invalid upload state transition: {self.mode.value} -> {mode.value}"
            )
        self.mode = mode

    def _report_progress(self) -> None:
        progress = UploadProgress(offset=self.offset, total=self.total)
        if self._progress is not None:
            self._progress.put_nowait(progress)
        if self._progress_callback is None:
            return
        try:
            self._progress_callback(progress)
        except Exception:
            # The server has already acknowledged these bytes.
            logger.exception(
                "Progress callback failed for %s at offset %d/%d",
                self.name,
                progress.offset,
                progress.total,
            )

    def _object_url(self) -> str:
        return self.base_url + object_to_query({"name": self.name})

    async def _run(self) -> dict[str, Any]:
        try:
            if self.total < self.simple_upload_threshold:
                logger.info(
                    "Starting simple upload for %s: %d bytes", self.name, self.total
                )
                result = await self._simple_upload()
            else:
                logger.info(
                    "Starting resumable upload for %s: %d bytes",
                    self.name,
                    self.total,
                )
                result = await self._resumable_upload()
        except asyncio.CancelledError:
            logger.info(
                "Upload cancelled for %s at offset %d/%d",
                self.name,
                self.offset,
                self.total,
            )
            self._transition(UploadMode.FAILED)
            raise
        except Exception as e:
            logger.error(
                "Upload failed for %s at offset %d/%d: %s",
                self.name,
                self.offset,
                self.total,
                e,
            )
            self._transition(UploadMode.FAILED)
            raise

        self._transition(UploadMode.COMPLETED)
        logger.info("Upload complete for %s: %d bytes", self.name, self.total)
        return result

    async def _simple_upload(self) -> dict[str, Any]:
        """Send metadata and payload in one multipart/related request."""
        self._transition(UploadMode.SIMPLE_IN_FLIGHT)

        body = aiohttp.MultipartWriter("related")
        body.append(
            json.dumps(self._metadata).encode("utf-8"),
            {"Content-Type": METADATA_PART_CONTENT_TYPE},
        )
        part_headers = {}
        if self.payload.content_type:
            part_headers["Content-Type"] = self.payload.content_type
        body.append(self.payload.read(), part_headers)

        request = HttpRequest(
            method="POST",
            url=self._object_url(),
            headers={
                "Content-Type": body.content_type,
                UPLOAD_PROTOCOL_HEADER: PROTOCOL_MULTIPART,
            },
            body=body,
        )
        response = await self._transport.send(request)
        if not response.ok:
            raise self._upload_failed("Simple upload failed", response)

        result = response.json()
        self.offset = self.total
        self._report_progress()
        return result

    async def _resumable_upload(self) -> dict[str, Any]:
        self._transition(UploadMode.RESUMABLE_NEGOTIATING)
        await self._start_session()
        self._transition(UploadMode.RESUMABLE_UPLOADING)
        return await self._upload_chunks()

    async def _start_session(self) -> None:
        """Negotiate a resumable session.

        The response headers carry the URL for every chunk request and the
        chunk granularity the server expects. Both are stored once.

        Raises:
            SessionStartFailed: If the server refused the session, or the
                response lacks a usable upload URL or granularity.
        """
        request = HttpRequest(
            method="POST",
            url=self._object_url(),
            headers={
                "Content-Type": JSON_CONTENT_TYPE,
                UPLOAD_PROTOCOL_HEADER: PROTOCOL_RESUMABLE,
                UPLOAD_COMMAND_HEADER: COMMAND_START,
                UPLOAD_CONTENT_LENGTH_HEADER: str(self.total),
                UPLOAD_CONTENT_TYPE_HEADER: self.payload.content_type,
            },
            body=json.dumps(self._metadata).encode("utf-8"),
        )
        response = await self._transport.send(request)
        if not response.ok:
            logger.warning(
                "Resumable session start failed for %s: HTTP %d",
                self.name,
                response.status,
            )
            raise SessionStartFailed(
                "Failed to start resumable upload session: "
                + extract_error_detail(response),
                response.status,
                response.text(),
            )

        upload_url = response.headers.get(UPLOAD_URL_HEADER)
        if not upload_url:
            raise SessionStartFailed(
                f"Session start response is missing the {UPLOAD_URL_HEADER} header",
                response.status,
                response.text(),
            )

        raw_granularity = response.headers.get(UPLOAD_CHUNK_GRANULARITY_HEADER)
        granularity = _parse_granularity(raw_granularity)
        if granularity is None:
            raise SessionStartFailed(
                f"Session start response has an invalid "
                f"{UPLOAD_CHUNK_GRANULARITY_HEADER} header: {raw_granularity!r}",
                response.status,
                response.text(),
            )

        self.upload_url = upload_url
        self.chunk_granularity = granularity
        self.offset = 0
        logger.info(
            "Resumable session ready for %s: granularity=%d upload_url=%s",
            self.name,
            granularity,
            _short_url(upload_url),
        )

    async def _upload_chunks(self) -> dict[str, Any]:
        """Send the payload chunk by chunk until the server reports final.

        One request is in flight at a time. A chunk shorter than the
        granularity is sent with the finalize command, but only the
        ``x-goog-upload-status: final`` response header ends the loop.

        Raises:
            UploadFailed: If a chunk is rejected, or the server does not
                finalize after the last chunk.
        """
        assert self.upload_url is not None
        assert self.chunk_granularity is not None
        granularity = self.chunk_granularity

        while True:
            chunk = self.payload.slice(self.offset, self.offset + granularity)
            is_last_chunk = chunk.size < granularity
            command = COMMAND_UPLOAD_FINALIZE if is_last_chunk else COMMAND_UPLOAD

            logger.debug(
                "Uploading chunk for %s: offset=%d size=%d command=%s",
                self.name,
                self.offset,
                chunk.size,
                command,
            )
            request = HttpRequest(
                method="POST",
                url=self.upload_url,
                headers={
                    UPLOAD_OFFSET_HEADER: str(self.offset),
                    UPLOAD_COMMAND_HEADER: command,
                },
                body=chunk.read(),
            )
            response = await self._transport.send(request)
            if not response.ok:
                raise self._upload_failed("Chunk upload failed", response)

            self.offset += chunk.size
            self._report_progress()

            if response.headers.get(UPLOAD_STATUS_HEADER) == STATUS_FINAL:
                return response.json()

            if is_last_chunk:
                raise UploadFailed(
                    "Server did not finalize the upload after the last chunk",
                    response.status,
                    response.text(),
                    offset=self.offset,
                )

    def _upload_failed(self, message: str, response: HttpResponse) -> UploadFailed:
        logger.warning(
            "%s for %s at offset %d: HTTP %d",
            message,
            self.name,
            self.offset,
            response.status,
        )
        return UploadFailed(
            f"{message}: {extract_error_detail(response)}",
            response.status,
            response.text(),
            offset=self.offset,
        )
