"""Tests for the aiohttp transport and response wrapper."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from multidict import CIMultiDict

from storage_lite.transport import (
    AiohttpTransport,
    BearerTokenAuth,
    HttpRequest,
    HttpResponse,
)


def _mock_session(status: int = 200, headers=None, body: bytes = b"{}"):
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.headers = CIMultiDict(headers or {})
    mock_response.read = AsyncMock(return_value=body)
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)

    mock_session = MagicMock()
    mock_session.closed = False
    mock_session.request = MagicMock(return_value=mock_response)
    mock_session.close = AsyncMock()
    return mock_session


class TestHttpResponse:
    def test_ok_range(self):
        assert HttpResponse(status=200).ok
        assert HttpResponse(status=299).ok
        assert not HttpResponse(status=308).ok
        assert not HttpResponse(status=500).ok

    def test_text_and_json(self):
        response = HttpResponse(status=200, body=b'{"a": 1}')

        assert response.text() == '{"a": 1}'
        assert response.json() == {"a": 1}

    def test_invalid_json_raises_value_error(self):
        with pytest.raises(ValueError):
            HttpResponse(status=200, body=b"not json").json()

    def test_header_lookup_is_case_insensitive(self):
        response = HttpResponse(
            status=200, headers=CIMultiDict({"X-Goog-Upload-Status": "final"})
        )

        assert response.headers.get("x-goog-upload-status") == "final"


class TestAiohttpTransport:
    @pytest.mark.asyncio
    async def test_send_reads_body_and_headers(self):
        session = _mock_session(
            status=201, headers={"x-goog-upload-status": "final"}, body=b'{"a": 1}'
        )
        transport = AiohttpTransport(session=session)

        response = await transport.send(
            HttpRequest("POST", "https://upload", {"X-Test": "1"}, b"data")
        )

        assert response.status == 201
        assert response.json() == {"a": 1}
        assert response.headers["X-Goog-Upload-Status"] == "final"
        args, kwargs = session.request.call_args
        assert args == ("POST", "https://upload")
        assert kwargs["data"] == b"data"
        assert kwargs["headers"] == {"X-Test": "1"}

    @pytest.mark.asyncio
    async def test_auth_headers_are_merged(self):
        session = _mock_session()
        transport = AiohttpTransport(session=session, auth=BearerTokenAuth("tok"))

        await transport.send(HttpRequest("GET", "https://x", {"X-Test": "1"}))

        headers = session.request.call_args.kwargs["headers"]
        assert headers == {"Authorization": "Bearer tok", "X-Test": "1"}

    @pytest.mark.asyncio
    async def test_request_headers_win_over_auth(self):
        session = _mock_session()
        transport = AiohttpTransport(session=session, auth=BearerTokenAuth("tok"))

        await transport.send(
            HttpRequest("GET", "https://x", {"Authorization": "Firebase other"})
        )

        headers = session.request.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Firebase other"

    @pytest.mark.asyncio
    async def test_timeout_is_passed_to_aiohttp(self):
        session = _mock_session()
        transport = AiohttpTransport(session=session, timeout=12.5)

        await transport.send(HttpRequest("GET", "https://x"))

        assert session.request.call_args.kwargs["timeout"].total == 12.5

    @pytest.mark.asyncio
    async def test_borrowed_session_is_not_closed(self):
        session = _mock_session()

        async with AiohttpTransport(session=session):
            pass

        session.close.assert_not_called()

    @pytest.mark.asyncio
    async def test_owned_session_is_created_and_closed(self):
        session = _mock_session()
        with patch(
            "storage_lite.transport.aiohttp.ClientSession", return_value=session
        ) as session_cls:
            async with AiohttpTransport() as transport:
                await transport.send(HttpRequest("GET", "https://x"))

        session_cls.assert_called_once()
        session.close.assert_awaited_once()
