"""Resolve an arbitrary web address to the URL of its RSS/Atom feed."""

import logging
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from feedsync.models import FeedType
from feedsync.transport import (
    PAGE_TIMEOUT,
    PROBE_TIMEOUT,
    REQUEST_ERRORS,
    get_with_deadline,
)

logger = logging.getLogger(__name__)

# Hosted platforms whose feed always lives at ``{origin}/feed``.
PLATFORM_FEED_TYPES: dict[str, FeedType] = {
    "substack.com": FeedType.SUBSTACK,
}

COMMON_FEED_PATHS = ("/feed", "/rss", "/atom.xml", "/feed.xml", "/rss.xml", "/index.xml")

FEED_LINK_TYPES = ("application/rss+xml", "application/atom+xml")


class DiscoveryError(Exception):
    """Raised when no feed can be resolved for a URL."""


def is_feed_content_type(content_type: str | None) -> bool:
    """Return True if a Content-Type header looks like RSS, Atom or XML."""
    if not content_type:
        return False
    lower = content_type.lower()
    return "xml" in lower or "rss" in lower or "atom" in lower


def _platform_for(hostname: str) -> FeedType | None:
    hostname = hostname.lower()
    for domain, feed_type in PLATFORM_FEED_TYPES.items():
        if hostname == domain or hostname.endswith("." + domain):
            return feed_type
    return None


def detect_feed_type(url: str) -> FeedType:
    """Classify a feed from its URL alone, using the platform table."""
    return _platform_for(urlparse(url).hostname or "") or FeedType.RSS


def _validate_url(url: str) -> tuple[str, str]:
    """Return (origin, hostname) or raise DiscoveryError for unusable URLs."""
    try:
        result = urlparse(url)
    except ValueError as e:
        raise DiscoveryError(f"Invalid URL: {url}") from e
    if result.scheme not in ("http", "https") or not result.netloc:
        raise DiscoveryError(f"Invalid URL: {url}")
    return f"{result.scheme}://{result.netloc}", result.hostname or ""


async def _probe(client: httpx.AsyncClient, url: str, timeout: float) -> httpx.Response | None:
    """GET ``url``; return the response on 2xx, None on any request failure."""
    try:
        response = await get_with_deadline(client, url, timeout)
        response.raise_for_status()
    except REQUEST_ERRORS as e:
        logger.debug("Probe %s failed: %s", url, e)
        return None
    return response


async def _probe_feed(client: httpx.AsyncClient, url: str) -> bool:
    response = await _probe(client, url, PROBE_TIMEOUT)
    return response is not None and is_feed_content_type(response.headers.get("content-type"))


def find_feed_link(html: str, page_url: str) -> str | None:
    """Return the first RSS, else Atom, auto-discovery link in a page.

    Relative hrefs are resolved against the page's ``<base>`` if it has
    one, otherwise against ``page_url``.
    """
    soup = BeautifulSoup(html, "html.parser")
    base_url = page_url
    base = soup.find("base", href=True)
    if base is not None:
        base_url = urljoin(page_url, base["href"])

    for link_type in FEED_LINK_TYPES:
        for link in soup.find_all("link", href=True):
            if (link.get("type") or "").strip().lower() == link_type:
                return urljoin(base_url, link["href"].strip())
    return None


async def discover_feed_url(client: httpx.AsyncClient, url: str) -> str | None:
    """Find the feed URL behind ``url``.

    Tries, in order: the URL itself, the hosted-platform convention, the
    page's ``<link>`` tags, then a list of conventional feed paths.

    Args:
        client: HTTP client from ``feedsync.transport.create_http_client``.
        url: Any http(s) address a user typed in.

    Returns:
        The resolved feed URL, or None if nothing was found.

    Raises:
        DiscoveryError: If the URL is malformed or the page itself cannot
            be fetched.
    """
    origin, hostname = _validate_url(url)

    # 1. The URL may already be a feed.
    direct = await _probe(client, url, PROBE_TIMEOUT)
    if direct is not None and is_feed_content_type(direct.headers.get("content-type")):
        return url

    # 2. Known platforms.
    if _platform_for(hostname) is not None:
        platform_feed = f"{origin}/feed"
        if await _probe_feed(client, platform_feed):
            return platform_feed

    # 3. Fetch the page as HTML, reusing the direct response when we have one.
    page = direct
    if page is None:
        try:
            page = await get_with_deadline(client, url, PAGE_TIMEOUT)
            page.raise_for_status()
        except REQUEST_ERRORS as e:
            logger.warning("Discovery for %s failed: %s", url, e)
            raise DiscoveryError(f"Failed to discover feed for {url}: {e}") from e
        if is_feed_content_type(page.headers.get("content-type")):
            return url

    # 4. Auto-discovery link tags.
    feed_link = find_feed_link(page.text, str(page.url))
    if feed_link:
        return feed_link

    # 5. Conventional paths.
    for path in COMMON_FEED_PATHS:
        candidate = origin + path
        if await _probe_feed(client, candidate):
            return candidate

    logger.info("No feed found for %s", url)
    return None
