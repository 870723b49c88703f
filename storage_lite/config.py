"""Pydantic models for storage client configuration."""

import os

from pydantic import BaseModel, Field

from storage_lite.const import API_URL, SIMPLE_UPLOAD_THRESHOLD


class StorageConfig(BaseModel):
    """Configuration options for the storage client.

    Attributes:
        api_url: base URL of the storage REST API, without a trailing slash.
        simple_upload_threshold: payloads strictly smaller than this many
            bytes use a single multipart request.
        request_timeout: total timeout in seconds applied by the transport
            to each request; None disables it.
        bearer_token: optional token sent as an Authorization header.
    """

    api_url: str = API_URL
    simple_upload_threshold: int = Field(default=SIMPLE_UPLOAD_THRESHOLD, gt=0)
    request_timeout: float | None = Field(default=None, gt=0)
    bearer_token: str | None = None

    @classmethod
    def from_env(cls) -> "StorageConfig":
        """Build a configuration from STORAGE_LITE_* environment variables.

        Returns:
            The configuration, with defaults for unset variables.

        Raises:
            pydantic.ValidationError: If a variable holds an invalid value.
        """
        values: dict[str, str] = {}
        env_map = {
            "api_url": "STORAGE_LITE_API_URL",
            "simple_upload_threshold": "STORAGE_LITE_SIMPLE_UPLOAD_THRESHOLD",
            "request_timeout": "STORAGE_LITE_REQUEST_TIMEOUT",
            "bearer_token": "STORAGE_LITE_TOKEN",
        }
        for field_name, env_name in env_map.items():
            value = os.getenv(env_name)
            if value:
                values[field_name] = value
        return cls(**values)

    @property
    def base_url(self) -> str:
        """API URL with any trailing slash removed."""
        return self.api_url.rstrip("/")
