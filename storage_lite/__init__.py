"""Lightweight asyncio client for cloud object storage uploads."""

from .config import StorageConfig
from .exceptions import (
    AlreadyStarted,
    InvalidReference,
    RequestFailed,
    SessionStartFailed,
    StorageError,
    UploadFailed,
)
from .payload import BytesPayload, FilePayload, Payload
from .reference import Reference
from .transport import (
    AiohttpTransport,
    BearerTokenAuth,
    HttpRequest,
    HttpResponse,
    Transport,
)
from .upload_task import UploadMode, UploadProgress, UploadTask

__version__ = "0.3.0"

__all__ = [
    "AiohttpTransport",
    "AlreadyStarted",
    "BearerTokenAuth",
    "BytesPayload",
    "FilePayload",
    "HttpRequest",
    "HttpResponse",
    "InvalidReference",
    "Payload",
    "Reference",
    "RequestFailed",
    "SessionStartFailed",
    "StorageConfig",
    "StorageError",
    "Transport",
    "UploadFailed",
    "UploadMode",
    "UploadProgress",
    "UploadTask",
]
