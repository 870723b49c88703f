"""HTTP error helpers for extracting server error details."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from storage_lite.transport import HttpResponse


def extract_error_detail(response: HttpResponse) -> str:
    """Extract a short error message from an error response.

    The storage API answers errors with ``{"error": {"code": ..., "message":
    ...}}``. Anything else falls back to the raw body text.
    """
    text = response.text()
    try:
        payload: Any = json.loads(text)
    except ValueError:
        return text

    if not isinstance(payload, dict):
        return str(payload)

    error = payload.get("error", payload)
    if not isinstance(error, dict):
        return str(error)

    return str(error.get("message") or text)
