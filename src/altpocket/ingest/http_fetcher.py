"""Bounded async HTTP fetcher with failure classification.

Uses ``httpx`` for all HTTP requests.  Every fetch is bounded three ways:

- **Time**: one wall-clock deadline covers connecting, the request, and
  reading the whole body.
- **Redirects**: the shared client follows at most ``max_redirects`` hops;
  httpx raises before issuing the request that would exceed the cap.
- **Size**: the body is streamed and the running byte count checked after
  every chunk, so an oversized body is abandoned as soon as it crosses the
  cap instead of being buffered first.

Failures surface as :class:`altpocket.core.exceptions.FetchError`
subclasses whose ``reason`` attribute is the classified string recorded on
the job.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import httpx

from altpocket.core.exceptions import (
    BadStatusError,
    FetchTimeoutError,
    NetworkError,
    ResponseTooLargeError,
    TooManyRedirectsError,
)
from altpocket.ingest.config import DEFAULT_MAX_REDIRECTS, USER_AGENT
from altpocket.ingest.content_extractor import ExtractedContent, extract_from_html

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------


@dataclass
class FetchResult:
    """Raw outcome of a successful HTTP fetch.

    Attributes:
        body: Response body bytes (at most ``max_bytes`` long).
        status_code: HTTP status code of the final response.
        final_url: URL after following redirects.
    """

    body: bytes
    status_code: int
    final_url: str


# ---------------------------------------------------------------------------
# Client construction
# ---------------------------------------------------------------------------


def build_http_client(
    *,
    timeout: float,
    max_redirects: int = DEFAULT_MAX_REDIRECTS,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Return an ``httpx.AsyncClient`` configured for page fetching.

    Args:
        timeout: Per-operation httpx timeout in seconds.  The overall
            deadline is enforced separately by :func:`fetch_url`.
        max_redirects: Redirect cap.
        transport: Optional transport override (used by tests).
    """
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        max_redirects=max_redirects,
        headers={"User-Agent": USER_AGENT},
        transport=transport,
    )


# ---------------------------------------------------------------------------
# Public fetch function
# ---------------------------------------------------------------------------


async def _read_bounded(
    url: str,
    client: httpx.AsyncClient,
    max_bytes: int,
) -> FetchResult:
    try:
        async with client.stream(
            "GET",
            url,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        ) as response:
            if response.status_code >= 400:
                raise BadStatusError(
                    f"HTTP {response.status_code} for {url}",
                    url=url,
                    status_code=response.status_code,
                )

            body = bytearray()
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if len(body) > max_bytes:
                    raise ResponseTooLargeError(
                        f"Response body for {url} exceeds {max_bytes} bytes",
                        url=url,
                        max_bytes=max_bytes,
                    )

            return FetchResult(
                body=bytes(body),
                status_code=response.status_code,
                final_url=str(response.url),
            )
    except httpx.TimeoutException as exc:
        raise FetchTimeoutError(f"Timed out fetching {url}: {exc}", url=url) from exc
    except httpx.TooManyRedirects as exc:
        raise TooManyRedirectsError(f"Too many redirects for {url}", url=url) from exc
    except httpx.HTTPError as exc:
        raise NetworkError(f"Request error for {url}: {exc}", url=url) from exc


async def fetch_url(
    url: str,
    *,
    client: httpx.AsyncClient,
    deadline: float,
    max_bytes: int,
) -> FetchResult:
    """Fetch a single URL under a deadline and a body-size cap.

    Args:
        url: Target URL.
        client: Shared client from :func:`build_http_client`.
        deadline: Seconds allowed for the request and the full body read.
        max_bytes: Largest accepted body size in bytes.

    Returns:
        A :class:`FetchResult`.

    Raises:
        FetchTimeoutError: The deadline or an httpx timeout was hit.
        TooManyRedirectsError: The redirect chain exceeded the client's cap.
        BadStatusError: The final response had a status code >= 400.
        ResponseTooLargeError: The body exceeded ``max_bytes``.
        NetworkError: Any other transport failure.
    """
    try:
        return await asyncio.wait_for(
            _read_bounded(url, client, max_bytes), timeout=deadline
        )
    except asyncio.TimeoutError as exc:
        raise FetchTimeoutError(
            f"Fetch of {url} exceeded {deadline:.1f}s deadline", url=url
        ) from exc


# ---------------------------------------------------------------------------
# Fetch + extract
# ---------------------------------------------------------------------------


class Fetcher:
    """Fetches a page and hands its body to the readability extractor.

    Args:
        client: Shared HTTP client.  The caller owns its lifecycle.
        max_bytes: Response body cap in bytes.
        content_full_limit: Byte budget for ``content_full``.
        content_search_limit: Byte budget for ``content_search``.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        max_bytes: int,
        content_full_limit: int,
        content_search_limit: int,
    ) -> None:
        self._client = client
        self._max_bytes = max_bytes
        self._content_full_limit = content_full_limit
        self._content_search_limit = content_search_limit

    async def fetch(self, url: str, deadline: float) -> ExtractedContent:
        """Fetch *url* within *deadline* seconds and extract its content.

        Extraction runs in a worker thread so that parsing a large page does
        not stall sibling fetches on the event loop.

        Raises:
            FetchError: Classified retrieval failure (see :func:`fetch_url`).
            ContentParseError: The body could not be parsed.
        """
        result = await fetch_url(
            url,
            client=self._client,
            deadline=deadline,
            max_bytes=self._max_bytes,
        )
        if result.final_url != url:
            logger.debug("fetcher: %s redirected to %s", url, result.final_url)
        return await asyncio.to_thread(
            extract_from_html,
            result.body,
            self._content_full_limit,
            self._content_search_limit,
        )
