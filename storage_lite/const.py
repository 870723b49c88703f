"""Constants for the storage client."""

import os

API_URL = os.getenv(
    "STORAGE_LITE_API_URL", "https://firebasestorage.googleapis.com/v0"
)

# Payloads strictly below this size are sent with a single multipart request.
# https://cloud.google.com/storage/docs/json_api/v1/how-tos/upload
SIMPLE_UPLOAD_THRESHOLD = 5_000_000

DEFAULT_BUCKET_SUFFIX = ".appspot.com"

# Request headers
UPLOAD_PROTOCOL_HEADER = "X-Goog-Upload-Protocol"
UPLOAD_COMMAND_HEADER = "X-Goog-Upload-Command"
UPLOAD_OFFSET_HEADER = "X-Goog-Upload-Offset"
UPLOAD_CONTENT_LENGTH_HEADER = "X-Goog-Upload-Header-Content-Length"
UPLOAD_CONTENT_TYPE_HEADER = "X-Goog-Upload-Header-Content-Type"

# Response headers
UPLOAD_URL_HEADER = "x-goog-upload-url"
UPLOAD_CHUNK_GRANULARITY_HEADER = "x-goog-upload-chunk-granularity"
UPLOAD_STATUS_HEADER = "x-goog-upload-status"

PROTOCOL_MULTIPART = "multipart"
PROTOCOL_RESUMABLE = "resumable"
COMMAND_START = "start"
COMMAND_UPLOAD = "upload"
COMMAND_UPLOAD_FINALIZE = "upload, finalize"
STATUS_FINAL = "final"

JSON_CONTENT_TYPE = "application/json; charset=utf-8"
METADATA_PART_CONTENT_TYPE = "application/json; charset=UTF-8"
