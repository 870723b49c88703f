"""Locator patterns and query string helpers.

The patterns follow the naming rules at
https://cloud.google.com/storage/docs/naming and capture up to two groups:
the bucket name and, when present, the object name.

Bucket names only use characters that are safe in a URI, so ``[\\w.-]+`` is
enough for them. Object names may contain almost any character and are only
percent-encoded when embedded in a URI.
"""

import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

GS_PATTERN = re.compile(r"^gs://([\w.-]+)/?(.+)?$", re.IGNORECASE)
HTTP_PATTERN = re.compile(
    r"^https?://firebasestorage\.googleapis\.com/v\w+/b/([\w.-]+)/?"
    r"(?:o/?([^?#]+)?)?(?:[?#].*)?$",
    re.IGNORECASE,
)


def encode_component(value: Any) -> str:
    """Percent-encode a value for use inside a single URI component."""
    return quote(str(value), safe="")


def object_to_query(params: Mapping[str, Any] | None = None) -> str:
    """Convert a mapping to a URI query string.

    Entries whose value is None are skipped. Values are percent-encoded.

    Args:
        params: Query parameters in insertion order.

    Returns:
        The query string including the leading ``?``, or an empty string
        when there is nothing to encode.
    """
    if not params:
        return ""

    pairs = [
        f"{key}={encode_component(value)}"
        for key, value in params.items()
        if value is not None
    ]
    if not pairs:
        return ""
    return "?" + "&".join(pairs)
