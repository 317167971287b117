"""Unit tests for the bounded HTTP fetcher.

Uses respx to mock httpx and ``httpx.MockTransport`` where a handler has to
stall to exercise the wall-clock deadline.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest
import respx

from altpocket.core.exceptions import (
    BadStatusError,
    FetchTimeoutError,
    NetworkError,
    ResponseTooLargeError,
    TooManyRedirectsError,
)
from altpocket.ingest.config import USER_AGENT
from altpocket.ingest.http_fetcher import (
    Fetcher,
    FetchResult,
    build_http_client,
    fetch_url,
)

_ARTICLE = (
    "<html><head><title>Hello</title></head>"
    "<body><article><p>First paragraph.</p><p>Second paragraph.</p></article></body></html>"
)


class _EndlessStream(httpx.AsyncByteStream):
    """Response body that never ends; counts the chunks read from it."""

    def __init__(self, chunk: bytes) -> None:
        self._chunk = chunk
        self.chunks_pulled = 0

    async def __aiter__(self):  # type: ignore[no-untyped-def]
        while True:
            self.chunks_pulled += 1
            yield self._chunk


# ---------------------------------------------------------------------------
# fetch_url
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestFetchUrl:
    async def test_successful_fetch(self) -> None:
        with respx.mock(base_url="https://example.com") as mock:
            route = mock.get("/article").mock(
                return_value=httpx.Response(200, text=_ARTICLE)
            )
            async with build_http_client(timeout=5.0) as client:
                result = await fetch_url(
                    "https://example.com/article",
                    client=client,
                    deadline=5.0,
                    max_bytes=10_000,
                )

        assert isinstance(result, FetchResult)
        assert result.status_code == 200
        assert result.body == _ARTICLE.encode("utf-8")
        assert route.calls.last.request.headers["User-Agent"] == USER_AGENT

    async def test_body_exactly_at_cap_is_accepted(self) -> None:
        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/exact").mock(return_value=httpx.Response(200, content=b"x" * 100))
            async with build_http_client(timeout=5.0) as client:
                result = await fetch_url(
                    "https://example.com/exact", client=client, deadline=5.0, max_bytes=100
                )
        assert len(result.body) == 100

    async def test_oversized_body_raises_size_limit(self) -> None:
        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/big").mock(return_value=httpx.Response(200, content=b"x" * 2001))
            async with build_http_client(timeout=5.0) as client:
                with pytest.raises(ResponseTooLargeError) as exc_info:
                    await fetch_url(
                        "https://example.com/big", client=client, deadline=5.0, max_bytes=100
                    )
        assert exc_info.value.reason == "size_limit"
        assert exc_info.value.max_bytes == 100

    async def test_size_cap_checked_while_streaming(self) -> None:
        stream = _EndlessStream(chunk=b"x" * 1024)
        transport = httpx.MockTransport(lambda request: httpx.Response(200, stream=stream))
        async with build_http_client(timeout=5.0, transport=transport) as client:
            with pytest.raises(ResponseTooLargeError) as exc_info:
                await fetch_url(
                    "https://example.com/endless",
                    client=client,
                    deadline=5.0,
                    max_bytes=10_000,
                )
        assert exc_info.value.reason == "size_limit"
        # 10 KiB crosses the cap on the tenth chunk.
        assert stream.chunks_pulled == 10

    @pytest.mark.parametrize("status", [400, 404, 410, 500, 503])
    async def test_error_status_raises_bad_status(self, status: int) -> None:
        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/missing").mock(return_value=httpx.Response(status))
            async with build_http_client(timeout=5.0) as client:
                with pytest.raises(BadStatusError) as exc_info:
                    await fetch_url(
                        "https://example.com/missing", client=client, deadline=5.0, max_bytes=100
                    )
        assert exc_info.value.reason == "bad_status"
        assert exc_info.value.status_code == status

    async def test_redirect_followed(self) -> None:
        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/old").mock(
                return_value=httpx.Response(301, headers={"Location": "https://example.com/new"})
            )
            mock.get("/new").mock(return_value=httpx.Response(200, text="moved"))
            async with build_http_client(timeout=5.0) as client:
                result = await fetch_url(
                    "https://example.com/old", client=client, deadline=5.0, max_bytes=100
                )
        assert result.body == b"moved"
        assert result.final_url == "https://example.com/new"

    async def test_redirect_loop_raises_redirect_limit(self) -> None:
        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/loop").mock(
                return_value=httpx.Response(302, headers={"Location": "https://example.com/loop"})
            )
            async with build_http_client(timeout=5.0, max_redirects=3) as client:
                with pytest.raises(TooManyRedirectsError) as exc_info:
                    await fetch_url(
                        "https://example.com/loop", client=client, deadline=5.0, max_bytes=100
                    )
        assert exc_info.value.reason == "redirect_limit"

    async def test_httpx_timeout_raises_timeout(self) -> None:
        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/slow").mock(side_effect=httpx.ConnectTimeout("timed out"))
            async with build_http_client(timeout=5.0) as client:
                with pytest.raises(FetchTimeoutError) as exc_info:
                    await fetch_url(
                        "https://example.com/slow", client=client, deadline=5.0, max_bytes=100
                    )
        assert exc_info.value.reason == "timeout"

    async def test_connect_error_raises_network_error(self) -> None:
        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/down").mock(side_effect=httpx.ConnectError("refused"))
            async with build_http_client(timeout=5.0) as client:
                with pytest.raises(NetworkError) as exc_info:
                    await fetch_url(
                        "https://example.com/down", client=client, deadline=5.0, max_bytes=100
                    )
        assert exc_info.value.reason == "fetch_failed"

    async def test_deadline_exceeded_raises_timeout(self) -> None:
        async def _stall(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, text="too late")

        transport = httpx.MockTransport(_stall)
        async with build_http_client(timeout=30.0, transport=transport) as client:
            with pytest.raises(FetchTimeoutError) as exc_info:
                await fetch_url(
                    "https://example.com/stall", client=client, deadline=0.05, max_bytes=100
                )
        assert exc_info.value.reason == "timeout"


# ---------------------------------------------------------------------------
# Fetcher (fetch + extract)
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestFetcher:
    async def test_fetch_returns_extracted_content(self) -> None:
        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/article").mock(return_value=httpx.Response(200, text=_ARTICLE))
            async with build_http_client(timeout=5.0) as client:
                fetcher = Fetcher(
                    client,
                    max_bytes=10_000,
                    content_full_limit=1_000,
                    content_search_limit=20,
                )
                content = await fetcher.fetch("https://example.com/article", 5.0)

        assert content.title == "Hello"
        assert content.content_full == "First paragraph.\n\nSecond paragraph."
        assert content.content_search == "First paragraph. Sec"
        assert content.content_bytes == len(content.content_full.encode("utf-8"))

    async def test_fetch_propagates_classified_errors(self) -> None:
        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/gone").mock(return_value=httpx.Response(404))
            async with build_http_client(timeout=5.0) as client:
                fetcher = Fetcher(
                    client, max_bytes=100, content_full_limit=100, content_search_limit=50
                )
                with pytest.raises(BadStatusError):
                    await fetcher.fetch("https://example.com/gone", 5.0)
