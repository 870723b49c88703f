"""HTTP transport used by upload tasks and references.

The core never talks to aiohttp directly. It builds ``HttpRequest`` objects
and hands them to a ``Transport``, which returns a fully read
``HttpResponse``. Tests substitute their own transport.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any, Protocol, Union

import aiohttp
from multidict import CIMultiDict

logger = logging.getLogger(__name__)

RequestBody = Union[bytes, str, aiohttp.MultipartWriter, None]


@dataclass
class HttpRequest:
    """A request to be sent by a transport."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: RequestBody = None


@dataclass
class HttpResponse:
    """A response whose body has been read before the connection was released.

    Header lookups are case-insensitive.
    """

    status: int
    headers: CIMultiDict[str] = field(default_factory=CIMultiDict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        """True for 2xx statuses."""
        return 200 <= self.status < 300

    def text(self) -> str:
        """Decode the body as UTF-8."""
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            ValueError: If the body is not valid JSON.
        """
        return json.loads(self.body)


class Auth(Protocol):
    """Source of authorization headers."""

    def get_headers(self) -> dict[str, str]:
        """Return headers to attach to every request."""
        ...


class Transport(Protocol):
    """Anything that can send an ``HttpRequest``."""

    async def send(self, request: HttpRequest) -> HttpResponse:
        """Send the request and return the fully read response."""
        ...


class BearerTokenAuth:
    """Attach a static bearer token."""

    def __init__(self, token: str) -> None:
        """Store the token."""
        self._token = token

    def get_headers(self) -> dict[str, str]:
        """Return the Authorization header."""
        return {"Authorization": f"Bearer {self._token}"}


class AiohttpTransport:
    """Transport backed by an ``aiohttp.ClientSession``.

    When no session is given the transport creates one lazily and closes it
    in ``close()``. A session passed in by the caller is left open.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        auth: Auth | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            session: Existing client session to reuse.
            auth: Optional source of authorization headers.
            timeout: Total timeout in seconds for each request.
        """
        self._session = session
        self._owns_session = session is None
        self._auth = auth
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def send(self, request: HttpRequest) -> HttpResponse:
        """Send the request and read the whole response body.

        Args:
            request: Request to send. Authorization headers are merged in
                without overriding headers already set on the request.

        Returns:
            The response with its body already read.

        Raises:
            aiohttp.ClientError: If the request could not be completed.
            asyncio.TimeoutError: If the configured timeout expires.
        """
        headers = dict(self._auth.get_headers()) if self._auth else {}
        headers.update(request.headers)

        session = self._get_session()
        logger.debug("%s %s", request.method, request.url[:80])
        async with session.request(
            request.method,
            request.url,
            headers=headers,
            data=request.body,
            timeout=self._timeout,
        ) as response:
            body = await response.read()
            return HttpResponse(
                status=response.status,
                headers=CIMultiDict(response.headers),
                body=body,
            )

    async def close(self) -> None:
        """Close the session if this transport created it."""
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> AiohttpTransport:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
