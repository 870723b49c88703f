"""References to buckets and objects in cloud storage.

A ``Reference`` resolves a user supplied locator into a bucket and an object
path and builds the REST requests for that object. Accepted locators:

- ``<project>.appspot.com``, the root of a default bucket
- ``gs://<bucket>/<object path>``
- ``https://firebasestorage.googleapis.com/v0/b/<bucket>/o/<encoded path>``
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Mapping
from typing import Any
from urllib.parse import unquote

from storage_lite.config import StorageConfig
from storage_lite.const import DEFAULT_BUCKET_SUFFIX, JSON_CONTENT_TYPE
from storage_lite.exceptions import InvalidReference, RequestFailed, StorageError
from storage_lite.payload import Payload
from storage_lite.transport import HttpRequest, HttpResponse, Transport
from storage_lite.upload_task import UploadProgress, UploadTask
from storage_lite.utils.http_errors import extract_error_detail
from storage_lite.utils.query import (
    GS_PATTERN,
    HTTP_PATTERN,
    encode_component,
    object_to_query,
)

logger = logging.getLogger(__name__)

_LAST_SEGMENT = re.compile(r"[^/]+/?$")


class Reference:
    """A bucket root, folder or object in cloud storage."""

    def __init__(
        self,
        path: str,
        *,
        transport: Transport,
        config: StorageConfig | None = None,
    ) -> None:
        """Parse a locator.

        Args:
            path: Default bucket name, ``gs://`` path or API URL.
            transport: Sends the HTTP requests.
            config: Client configuration; read from the environment if None.

        Raises:
            InvalidReference: If the locator is not recognised.
        """
        self._transport = transport
        self._config = config or StorageConfig.from_env()

        if path.endswith(DEFAULT_BUCKET_SUFFIX) and "/" not in path:
            self.bucket = path
            self.object_path = ""
            return

        is_gs_path = path.lower().startswith("gs://")
        pattern = GS_PATTERN if is_gs_path else HTTP_PATTERN
        match = pattern.match(path)
        if match is None:
            raise InvalidReference(f"Unrecognised storage location: {path!r}")

        bucket, object_path = match.groups()
        self.bucket: str = bucket
        # Object names are only percent-encoded inside URIs.
        self.object_path: str = (
            (object_path or "") if is_gs_path else unquote(object_path or "")
        )

    def _derive(self, path: str) -> Reference:
        return Reference(path, transport=self._transport, config=self._config)

    @property
    def is_root(self) -> bool:
        """True if the reference points at the root of the bucket."""
        return self.object_path == ""

    @property
    def gs_path(self) -> str:
        """The ``gs://`` form of the reference."""
        return f"gs://{self.bucket}/{self.object_path}"

    @property
    def parent(self) -> Reference:
        """Reference to the folder containing this object or folder.

        Raises:
            InvalidReference: On the root of the bucket.
        """
        if self.is_root:
            raise InvalidReference("Can't get parent of root")
        return self._derive(_LAST_SEGMENT.sub("", self.gs_path))

    @property
    def root(self) -> Reference:
        """Reference to the root of the bucket."""
        if self.is_root:
            return self
        return self._derive(f"gs://{self.bucket}/")

    @property
    def uri_path(self) -> str:
        """API path segments identifying the object.

        Raises:
            InvalidReference: On the root of the bucket.
        """
        if self.is_root:
            raise InvalidReference("Can't get URI path for root")
        return f"/b/{self.bucket}/o/{encode_component(self.object_path)}"

    @property
    def bucket_url(self) -> str:
        """URL of the bucket's object collection."""
        return f"{self._config.base_url}/b/{self.bucket}/o"

    def child(self, path: str) -> Reference:
        """Return a reference to ``path`` below this one."""
        base = self.gs_path.rstrip("/")
        return self._derive(f"{base}/{path.lstrip('/')}")

    def put(
        self,
        payload: Payload,
        metadata: Mapping[str, Any] | None = None,
        progress_callback: Callable[[UploadProgress], None] | None = None,
    ) -> UploadTask:
        """Create an upload task for this object.

        The task is not started; await it, iterate it or call ``start()``.

        Raises:
            InvalidReference: On the root of the bucket.
        """
        if self.is_root:
            raise InvalidReference("Can't upload to the root of a bucket")
        return UploadTask(
            self.bucket,
            self.object_path,
            payload,
            metadata,
            transport=self._transport,
            api_url=self._config.base_url,
            simple_upload_threshold=self._config.simple_upload_threshold,
            progress_callback=progress_callback,
        )

    async def delete(self) -> None:
        """Delete the object."""
        await self._request("DELETE", self._config.base_url + self.uri_path)
        logger.info("Deleted %s", self.gs_path)

    async def get_metadata(self) -> dict[str, Any]:
        """Return the object's metadata."""
        response = await self._request("GET", self._config.base_url + self.uri_path)
        return response.json()

    async def update_metadata(self, metadata: Mapping[str, Any]) -> dict[str, Any]:
        """Patch the object's metadata and return the updated metadata."""
        response = await self._request(
            "PATCH",
            self._config.base_url + self.uri_path,
            headers={"Content-Type": JSON_CONTENT_TYPE},
            body=json.dumps(dict(metadata)).encode("utf-8"),
        )
        return response.json()

    async def list(self) -> dict[str, Any]:
        """List the objects and prefixes directly below this reference."""
        query = object_to_query({"prefix": self.object_path, "delimiter": "/"})
        response = await self._request("GET", self.bucket_url + query)
        return response.json()

    async def get_download_url(self) -> str:
        """Return a tokenised download URL for the object.

        Raises:
            RequestFailed: If the metadata could not be fetched.
            StorageError: If the object has no download token.
        """
        metadata = await self.get_metadata()
        tokens = metadata.get("downloadTokens")
        if not tokens:
            raise StorageError(f"No download token for {self.gs_path}")
        token = tokens.split(",")[0]
        query = object_to_query({"alt": "media", "token": token})
        return self._config.base_url + self.uri_path + query

    async def _request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
    ) -> HttpResponse:
        response = await self._transport.send(
            HttpRequest(method=method, url=url, headers=headers or {}, body=body)
        )
        if not response.ok:
            logger.warning(
                "%s %s failed: HTTP %d", method, self.gs_path, response.status
            )
            raise RequestFailed(
                f"{method} {self.gs_path} failed: {extract_error_detail(response)}",
                response.status,
                response.text(),
            )
        return response

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Reference):
            return NotImplemented
        return (self.bucket, self.object_path) == (other.bucket, other.object_path)

    def __hash__(self) -> int:
        return hash((self.bucket, self.object_path))

    def __repr__(self) -> str:
        return f"Reference({self.gs_path!r})"
