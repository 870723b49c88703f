"""Sliceable payloads for uploads.

An upload only needs three things from its payload: the total size, a
content type, and the ability to cut out a contiguous byte range as a new
payload. Slicing never changes the source, so one payload can back several
upload tasks at once.
"""

import mimetypes
import os
from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class Payload(Protocol):
    """Byte source consumed by an upload task."""

    @property
    def size(self) -> int:
        """Total size in bytes."""
        ...

    @property
    def content_type(self) -> str:
        """MIME type, possibly empty."""
        ...

    def slice(self, start: int, end: int) -> "Payload":
        """Return the range ``[start, end)`` clamped to the payload bounds."""
        ...

    def read(self) -> bytes:
        """Return the full contents."""
        ...


def _clamp(start: int, end: int, size: int) -> tuple[int, int]:
    start = min(max(start, 0), size)
    end = min(max(end, start), size)
    return start, end


class BytesPayload:
    """In-memory payload."""

    def __init__(self, data: bytes, content_type: str = "") -> None:
        """Initialize the payload.

        Args:
            data: Payload bytes. Mutable buffers are copied.
            content_type: MIME type of the data.
        """
        self._data = bytes(data)
        self._content_type = content_type

    @property
    def size(self) -> int:
        """Total size in bytes."""
        return len(self._data)

    @property
    def content_type(self) -> str:
        """MIME type, possibly empty."""
        return self._content_type

    def slice(self, start: int, end: int) -> "BytesPayload":
        """Copy the range ``[start, end)`` into a new payload."""
        start, end = _clamp(start, end, self.size)
        return BytesPayload(self._data[start:end], self._content_type)

    def read(self) -> bytes:
        """Return the payload bytes."""
        return self._data

    def __repr__(self) -> str:
        return f"BytesPayload(size={self.size}, content_type={self._content_type!r})"


class FilePayload:
    """Payload backed by a file on disk.

    The size is captured once at construction. Slices are windows over the
    same file and only read their bytes when ``read()`` is called.
    """

    def __init__(
        self,
        path: str | os.PathLike,
        content_type: str | None = None,
        *,
        start: int = 0,
        end: int | None = None,
    ) -> None:
        """Initialize the payload.

        Args:
            path: Local filesystem path.
            content_type: MIME type; guessed from the file name when None.
            start: First byte of the window.
            end: End of the window (exclusive); defaults to the file size.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        self._path = Path(path)
        if not self._path.is_file():
            raise FileNotFoundError(f"File not found: {self._path}")

        if content_type is None:
            content_type = mimetypes.guess_type(self._path.name)[0] or ""
        self._content_type = content_type

        file_size = self._path.stat().st_size
        self._start, self._end = _clamp(
            start, file_size if end is None else end, file_size
        )

    @property
    def path(self) -> Path:
        """Path of the underlying file."""
        return self._path

    @property
    def size(self) -> int:
        """Size of the window in bytes."""
        return self._end - self._start

    @property
    def content_type(self) -> str:
        """MIME type, possibly empty."""
        return self._content_type

    def slice(self, start: int, end: int) -> "FilePayload":
        """Return a narrower window over the same file."""
        start, end = _clamp(start, end, self.size)
        return FilePayload(
            self._path,
            self._content_type,
            start=self._start + start,
            end=self._start + end,
        )

    def read(self) -> bytes:
        """Read the window from disk."""
        with open(self._path, "rb") as f:
            f.seek(self._start)
            return f.read(self.size)

    def __repr__(self) -> str:
        return (
            f"FilePayload(path={str(self._path)!r}, "
            f"range=[{self._start}, {self._end}))"
        )
