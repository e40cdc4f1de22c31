"""Conversion of image resources to inline base64 payloads.

Reference images can live anywhere: inline in a data URL, in the object
store, or on a third-party host. The generation gateway only accepts inline
data, so every reference is converted before a generation call.

Strategy Chain
--------------
Inline data URLs are split locally. Anything else is fetched by trying an
ordered list of strategies until one succeeds:

1. **Conversion proxy** - ``POST /convert-image`` on the gateway service,
   which fetches the resource server-side and returns base64 directly.
2. **Direct fetch** - a plain ``GET`` through the shared ``httpx`` client.
3. **Raw transport** - the request is sent straight through an ``httpx``
   transport, skipping client-level redirect and cookie handling.

Each strategy failure is logged and the next one is tried. Only when all of
them fail is :class:`~kilnworks.core.errors.EncodingError` raised. Results
are never cached.
"""

from __future__ import annotations

import base64
import logging
import re
from collections.abc import Awaitable, Callable

import httpx

from .errors import EncodingError, MalformedDataUrl

logger = logging.getLogger(__name__)

# Shape accepted by the generation gateway for inline reference images.
DATA_URL_PATTERN = re.compile(r"^data:(image/[a-z]+);base64,")


def is_data_url(url: str) -> bool:
    """Return True when *url* embeds its content inline."""
    return url.startswith("data:")


def extract_base64(data_url: str) -> str:
    """Return the payload of a data URL (everything after the first comma).

    Raises:
        MalformedDataUrl: If the URL contains no comma
    """
    header, sep, payload = data_url.partition(",")
    if not sep:
        raise MalformedDataUrl(f"Invalid data URL format: {header[:40]}")
    return payload


def split_data_url(data_url: str) -> tuple[str, str] | None:
    """Split a gateway-shaped data URL into ``(mime_type, payload)``.

    Returns None when the URL does not match ``data:image/<subtype>;base64,``.
    """
    match = DATA_URL_PATTERN.match(data_url)
    if not match:
        return None
    return match.group(1), data_url[match.end():]


def to_data_url(payload: str, mime_type: str = "image/jpeg") -> str:
    """Wrap a base64 payload as a data URL."""
    return f"data:{mime_type};base64,{payload}"


def _encode(content: bytes) -> str:
    if not content:
        raise EncodingError("Fetched resource is empty")
    return base64.b64encode(content).decode("ascii")


class ImageEncoder:
    """Convert image URLs to base64 payloads using an ordered strategy chain.

    Args:
        client: Shared async HTTP client used by the proxy and direct strategies
        proxy_url: URL of the conversion proxy, or None to skip that strategy
        transport: Transport used by the raw strategy (a fresh
            ``AsyncHTTPTransport`` owned by the encoder when omitted)
        timeout: Seconds allowed for a raw transport request (defaults to
            the client timeout)
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        proxy_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ) -> None:
        self.client = client
        self.proxy_url = proxy_url
        self._owns_transport = transport is None
        self.transport = transport or httpx.AsyncHTTPTransport()
        self.timeout = httpx.Timeout(timeout) if timeout is not None else client.timeout
        self.strategies: tuple[tuple[str, Callable[[str], Awaitable[str]]], ...] = (
            ("conversion proxy", self.via_conversion_proxy),
            ("direct fetch", self.via_direct_fetch),
            ("raw transport", self.via_raw_transport),
        )

    async def to_base64(self, source_url: str) -> str:
        """Return the base64 payload for *source_url*.

        Args:
            source_url: Inline data URL or fetchable HTTP(S) URL

        Returns:
            Base64 payload without any data URL header

        Raises:
            MalformedDataUrl: If an inline data URL has no comma
            EncodingError: If every fetch strategy failed
        """
        if is_data_url(source_url):
            return extract_base64(source_url)

        last_error: Exception | None = None
        for name, strategy in self.strategies:
            try:
                payload = await strategy(source_url)
            except (httpx.HTTPError, EncodingError, ValueError, KeyError, TypeError) as e:
                logger.warning(f"{name} failed for {source_url}: {e}")
                last_error = e
                continue
            logger.info(f"Converted {source_url} via {name} ({len(payload)} base64 chars)")
            return payload

        raise EncodingError(f"Failed to convert image to base64: {source_url} ({last_error})")

    async def aclose(self) -> None:
        """Close the raw transport if the encoder created it."""
        if self._owns_transport:
            await self.transport.aclose()

    async def to_base64_many(self, urls: list[str]) -> list[str]:
        """Convert several URLs in list order, failing on the first error."""
        logger.info(f"Converting {len(urls)} URLs to base64")
        return [await self.to_base64(url) for url in urls]

    async def via_conversion_proxy(self, url: str) -> str:
        if not self.proxy_url:
            raise EncodingError("No conversion proxy configured")
        response = await self.client.post(self.proxy_url, json={"imageUrl": url})
        if not response.is_success:
            raise EncodingError(f"Conversion proxy returned {response.status_code}")
        data = response.json()
        if not isinstance(data, dict):
            raise EncodingError(f"Conversion proxy returned {type(data).__name__}, expected an object")
        payload = data.get("base64")
        if not isinstance(payload, str) or not payload:
            raise EncodingError("Conversion proxy returned no data")
        return payload

    async def via_direct_fetch(self, url: str) -> str:
        response = await self.client.get(url)
        response.raise_for_status()
        return _encode(response.content)

    async def via_raw_transport(self, url: str) -> str:
        request = httpx.Request("GET", url, extensions={"timeout": self.timeout.as_dict()})
        response = await self.transport.handle_async_request(request)
        try:
            content = await response.aread()
        finally:
            await response.aclose()
        # Status 0 is what opaque local responses report.
        if response.status_code not in (0, 200):
            raise EncodingError(f"Raw request failed with status: {response.status_code}")
        return _encode(content)
