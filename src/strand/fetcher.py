"""Archive download over HTTP.

One streaming GET per plugin. Bodies are handed on chunk by chunk and never
held in memory whole, since many downloads run at once.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

from . import __version__
from .exceptions import FetchError

logger = logging.getLogger(__name__)

USER_AGENT = f"strand/{__version__}"
DEFAULT_HTTP_TIMEOUT = 30.0
CHUNK_SIZE = 64 * 1024


def build_client(
    timeout: float = DEFAULT_HTTP_TIMEOUT,
    user_agent: str = USER_AGENT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the HTTP client shared by every download in a run.

    Hosting providers redirect tarball requests, so redirects are followed.
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        follow_redirects=True,
        headers={"User-Agent": user_agent},
        transport=transport,
    )


async def _iter_body(response: httpx.Response, url: str) -> AsyncIterator[bytes]:
    try:
        async for chunk in response.aiter_bytes(CHUNK_SIZE):
            yield chunk
    except httpx.HTTPError as e:
        raise FetchError(f"Error reading response from {url}: {e}", context={"url": url}) from e


@asynccontextmanager
async def fetch(client: httpx.AsyncClient, url: str) -> AsyncIterator[AsyncIterator[bytes]]:
    """
    Download an archive, yielding its body as an async iterator of chunks.

    Args:
        client: HTTP client (see build_client)
        url: Archive URL

    Yields:
        Async iterator over the (still compressed) response body

    Raises:
        FetchError: On connection or DNS failure, a non-2xx final response,
            or an error while reading the body

    Example:
        >>> async with build_client() as client:
        ...     async with fetch(client, url) as chunks:
        ...         async for chunk in chunks:
        ...             ...
    """
    logger.debug(f"GET {url}")
    try:
        async with client.stream("GET", url) as response:
            if not response.is_success:
                raise FetchError(
                    f"HTTP {response.status_code} {response.reason_phrase} for {response.url}",
                    context={"url": url, "status_code": response.status_code},
                )
            yield _iter_body(response, url)
    except httpx.HTTPError as e:
        raise FetchError(f"Failed to download {url}: {e}", context={"url": url}) from e
