"""Fetch and parse RSS/Atom documents using feedparser."""

import calendar
import hashlib
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from time import struct_time

import feedparser
import httpx

from feedsync.transport import FEED_TIMEOUT, REQUEST_ERRORS, get_with_deadline

SCORE_PATTERN = re.compile(r"Points:\s*(\d+)", re.IGNORECASE)
COMMENTS_PATTERN = re.compile(r"Comments:\s*(\d+)", re.IGNORECASE)


class FetchError(Exception):
    """Raised when a feed cannot be fetched or parsed."""


@dataclass
class ParsedEntry:
    """One entry as it came out of the feed document."""

    guid: str
    title: str
    link: str
    description: str | None
    content: str | None
    author: str | None
    published_at: datetime | None
    comments_link: str | None


@dataclass
class ParsedFeed:
    """Result of parsing an RSS/Atom feed."""

    title: str | None
    site_link: str | None
    icon: str | None
    version: str
    entries: list[ParsedEntry]
    warnings: list[str]

    @property
    def is_atom(self) -> bool:
        return self.version.startswith("atom")


@dataclass
class Engagement:
    score: int | None = None
    comments_count: int | None = None


def extract_engagement(description: str | None) -> Engagement:
    """Pull "Points: N" / "Comments: N" counters out of a description.

    Link-aggregator feeds put these in the item body. Missing counters
    are simply left as None.
    """
    if not description:
        return Engagement()
    score = SCORE_PATTERN.search(description)
    comments = COMMENTS_PATTERN.search(description)
    return Engagement(
        score=int(score.group(1)) if score else None,
        comments_count=int(comments.group(1)) if comments else None,
    )


def entry_guid(entry: dict) -> str:
    """Dedup key for an entry: guid, then link, then id.

    Entries carrying none of those get a hash of their title, description
    and date so that unrelated malformed entries do not collapse into a
    single record.
    """
    key = entry.get("guid") or entry.get("link") or entry.get("id")
    if key:
        return key
    fingerprint = "\x1f".join(
        str(entry.get(field) or "")
        for field in ("title", "summary", "published", "updated")
    )
    return "sha1:" + hashlib.sha1(fingerprint.encode("utf-8")).hexdigest()


async def fetch_and_parse(client: httpx.AsyncClient, url: str) -> ParsedFeed:
    """Fetch and parse an RSS or Atom feed from a URL.

    Args:
        client: HTTP client from ``feedsync.transport.create_http_client``.
        url: The feed URL to fetch and parse.

    Returns:
        ParsedFeed with feed metadata and entries in document order.

    Raises:
        FetchError: If the URL is unreachable, answers with an error status,
            or does not hold a valid feed.
    """
    try:
        response = await get_with_deadline(client, url, FEED_TIMEOUT)
    except REQUEST_ERRORS as e:
        raise FetchError(f"Could not reach URL: {e}") from e

    if response.status_code in (401, 403):
        raise FetchError(
            "Feed requires authentication. Ensure the URL is publicly accessible."
        )
    if response.status_code >= 400:
        raise FetchError(f"Could not reach URL: HTTP {response.status_code}")

    return parse_document(response.content)


def parse_document(document: bytes | str) -> ParsedFeed:
    """Parse a feed document that has already been downloaded.

    Raises:
        FetchError: If the document is not recognizable as RSS or Atom.
    """
    parsed = feedparser.parse(document)

    version = parsed.get("version") or ""
    if not version and not parsed.entries:
        raise FetchError("URL does not point to a valid RSS or Atom feed")

    warnings: list[str] = []
    if parsed.bozo:
        warnings.append(f"Feed has formatting issues: {parsed.bozo_exception}")

    feed_meta = parsed.feed
    image = feed_meta.get("image") or {}
    return ParsedFeed(
        title=feed_meta.get("title") or None,
        site_link=feed_meta.get("link"),
        icon=feed_meta.get("icon") or image.get("href"),
        version=version,
        entries=_extract_entries(parsed.entries),
        warnings=warnings,
    )


def _extract_entries(entries: list) -> list[ParsedEntry]:
    """Normalize feedparser entries, keeping document order."""
    result = []
    for entry in entries:
        content = None
        if entry.get("content"):
            content = entry["content"][0].get("value")
        result.append(
            ParsedEntry(
                guid=entry_guid(entry),
                title=entry.get("title") or "Untitled",
                link=entry.get("link") or "",
                description=entry.get("summary") or entry.get("description"),
                content=content,
                author=entry.get("author"),
                published_at=_parse_date(entry),
                comments_link=entry.get("comments"),
            )
        )
    return result


def _parse_date(entry: dict) -> datetime | None:
    """Parse publication date from a feedparser entry, in UTC."""
    for field in ("published_parsed", "updated_parsed"):
        time_struct = entry.get(field)
        if isinstance(time_struct, struct_time):
            try:
                return datetime.fromtimestamp(calendar.timegm(time_struct), tz=timezone.utc)
            except (ValueError, OverflowError):
                continue
    return None
