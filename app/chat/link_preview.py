"""
Link preview resolver.

Finds the first URL in a message body and fetches its page metadata
(Open Graph / Twitter card tags, falling back to <title> and
<meta name="description">).

Policy:
    One attempt with a short timeout. Any failure (network error, non-HTML
    response, HTTP error status, unparsable markup) yields "no preview";
    message delivery never waits on or fails because of this step.

Usage:
    resolver = LinkPreviewResolver()
    preview = resolver.resolve("see https://example.com/jobs/42")
    # {"title": ..., "description": ..., "image": ..., "url": "https://example.com/jobs/42"}

    preview = await resolver.aresolve(text)   # from the socket consumer
"""

from __future__ import annotations

import logging
import re
from html.parser import HTMLParser
from urllib.parse import urljoin

import httpx

from chat.constants import LINK_PREVIEW_CONFIG
from core.exceptions import LinkPreviewError

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r"https?://[^\s<>\"']+", re.IGNORECASE)

# Punctuation that commonly trails a URL in prose ("see https://x.com.")
TRAILING_PUNCTUATION = ".,;:!?)]}"


def extract_first_url(text: str | None) -> str | None:
    """Return the first http(s) URL in ``text``, or None."""
    if not text:
        return None
    match = URL_PATTERN.search(text)
    if not match:
        return None
    url = match.group(0).rstrip(TRAILING_PUNCTUATION)
    return url or None


class _MetaParser(HTMLParser):
    """Collects <meta> properties and the document <title>."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.meta: dict[str, str] = {}
        self.title = ""
        self._in_title = False

    def handle_starttag(self, tag, attrs):
        if tag == "title":
            self._in_title = True
            return
        if tag != "meta":
            return

        attributes = {name.lower(): (value or "") for name, value in attrs}
        key = attributes.get("property") or attributes.get("name")
        content = attributes.get("content")
        if key and content:
            self.meta.setdefault(key.lower(), content.strip())

    def handle_endtag(self, tag):
        if tag == "title":
            self._in_title = False

    def handle_data(self, data):
        if self._in_title:
            self.title += data


def parse_metadata(html: str, url: str) -> dict | None:
    """
    Extract {title, description, image, url} from an HTML document.

    Returns:
        Preview dict, or None when the page has neither a title nor a
        description worth showing
    """
    parser = _MetaParser()
    parser.feed(html)
    parser.close()
    meta = parser.meta

    title = (
        meta.get("og:title")
        or meta.get("twitter:title")
        or parser.title.strip()
    )
    description = (
        meta.get("og:description")
        or meta.get("twitter:description")
        or meta.get("description")
        or ""
    )
    image = meta.get("og:image") or meta.get("twitter:image") or ""

    if not title and not description:
        return None

    return {
        "title": title[: LINK_PREVIEW_CONFIG.MAX_TITLE_LENGTH],
        "description": description[: LINK_PREVIEW_CONFIG.MAX_DESCRIPTION_LENGTH],
        "image": urljoin(url, image) if image else "",
        "url": meta.get("og:url") or url,
    }


class LinkPreviewResolver:
    """
    Fetches page metadata for link previews.

    Args:
        timeout: Seconds for the whole request (connect + read)
        transport: Optional httpx transport, used by tests to stub the network
    """

    def __init__(
        self,
        timeout: float = LINK_PREVIEW_CONFIG.TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self.transport = transport

    def _client_options(self) -> dict:
        options = {
            "timeout": httpx.Timeout(self.timeout),
            "follow_redirects": True,
            "headers": {
                "User-Agent": LINK_PREVIEW_CONFIG.USER_AGENT,
                "Accept": "text/html,application/xhtml+xml",
            },
        }
        if self.transport is not None:
            options["transport"] = self.transport
        return options

    @staticmethod
    def _read_response(url: str, response: httpx.Response) -> dict | None:
        if response.status_code >= 400:
            raise LinkPreviewError(f"HTTP {response.status_code}", url=url)

        content_type = response.headers.get("content-type", "")
        if "html" not in content_type.lower():
            raise LinkPreviewError(f"Unsupported content type '{content_type}'", url=url)

        body = response.content[: LINK_PREVIEW_CONFIG.MAX_BYTES]
        html = body.decode(response.encoding or "utf-8", errors="replace")
        return parse_metadata(html, str(response.url))

    # ------------------------------------------------------------------
    # Fetch (raises LinkPreviewError)
    # ------------------------------------------------------------------

    def fetch(self, url: str) -> dict | None:
        """
        Fetch metadata for ``url``.

        Raises:
            LinkPreviewError: On timeout, transport error or a non-HTML response
        """
        try:
            with httpx.Client(**self._client_options()) as client:
                response = client.get(url)
        except httpx.HTTPError as e:
            raise LinkPreviewError(str(e) or e.__class__.__name__, url=url) from e
        return self._read_response(url, response)

    async def afetch(self, url: str) -> dict | None:
        """Async variant of fetch()."""
        try:
            async with httpx.AsyncClient(**self._client_options()) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            raise LinkPreviewError(str(e) or e.__class__.__name__, url=url) from e
        return self._read_response(url, response)

    # ------------------------------------------------------------------
    # Resolve (never raises)
    # ------------------------------------------------------------------

    def resolve(self, text: str | None) -> dict | None:
        """Preview for the first URL in ``text``, or None on any failure."""
        url = extract_first_url(text)
        if url is None:
            return None
        try:
            return self.fetch(url)
        except LinkPreviewError as e:
            logger.warning(f"Link preview skipped for {url}: {e.message}")
            return None

    async def aresolve(self, text: str | None) -> dict | None:
        """Async variant of resolve()."""
        url = extract_first_url(text)
        if url is None:
            return None
        try:
            return await self.afetch(url)
        except LinkPreviewError as e:
            logger.warning(f"Link preview skipped for {url}: {e.message}")
            return None
