"""Feed operations exposed to the rest of the application.

These are the entry points used by the subscription flow, the "refresh
this feed" action and the presentation layer. Results are plain dicts
ready to be serialized.
"""

import logging
from urllib.parse import urlparse

import httpx

from feedsync.database import Database
from feedsync.discovery import DiscoveryError, detect_feed_type, discover_feed_url
from feedsync.feed_parser import fetch_and_parse
from feedsync.models import Feed, FeedItem, FeedType, utcnow
from feedsync.sync import merge_entries, sync_feed

logger = logging.getLogger(__name__)


async def discover(client: httpx.AsyncClient, url: str) -> str:
    """Resolve ``url`` to a feed URL.

    Raises:
        DiscoveryError: If no feed could be found.
    """
    feed_url = await discover_feed_url(client, url)
    if not feed_url:
        raise DiscoveryError("Could not discover feed")
    return feed_url


async def subscribe(db: Database, client: httpx.AsyncClient, url: str) -> dict:
    """Turn a user-entered URL into a stored, populated feed.

    Discovery runs first, so a failed discovery or first fetch leaves no
    rows behind. When the feed is already known it is reused; a feed that
    was switched off for repeated errors is put back into rotation, and a
    feed with no items yet is synced right away.

    Args:
        db: Connected database.
        client: HTTP client from ``feedsync.transport.create_http_client``.
        url: Any http(s) address.

    Returns:
        Dict with ``status`` ("created" or "existing"), ``feed`` and
        ``items_added``.

    Raises:
        DiscoveryError: If no feed could be found for ``url``.
        FetchError: If the discovered feed cannot be fetched or parsed.
    """
    feed_url = await discover(client, url)

    feed = db.get_feed_by_url(feed_url)
    if feed is not None:
        if not feed.is_active:
            db.reactivate_feed(feed.id)
            logger.info("Reactivated feed %s", feed.feed_url)
            feed = db.get_feed_by_id(feed.id)
        items_added = 0
        if db.get_item_count_for_feed(feed.id) == 0:
            items_added = await sync_feed(db, client, feed)
        return {
            "status": "existing",
            "feed": _feed_to_dict(db.get_feed_by_id(feed.id)),
            "items_added": items_added,
        }

    parsed = await fetch_and_parse(client, feed_url)

    feed_type = detect_feed_type(url)
    if feed_type is FeedType.RSS and parsed.is_atom:
        feed_type = FeedType.ATOM

    feed, created = db.get_or_create_feed(
        Feed(
            feed_url=feed_url,
            title=parsed.title or urlparse(url).hostname or feed_url,
            url=url,
            type=feed_type,
            icon=parsed.icon,
        )
    )
    items_added = merge_entries(db, feed, parsed)
    db.record_fetch_success(feed.id, utcnow())
    logger.info("Subscribed to '%s' (%s): %d items", feed.title, feed.feed_url, items_added)

    result = {
        "status": "created" if created else "existing",
        "feed": _feed_to_dict(db.get_feed_by_id(feed.id)),
        "items_added": items_added,
    }
    if parsed.warnings:
        result["warnings"] = parsed.warnings
    return result


async def refresh_feed(db: Database, client: httpx.AsyncClient, feed_id: int) -> dict:
    """Force a sync of one feed, outside the regular schedule.

    Raises:
        LookupError: If there is no feed with that id.
        FetchError: If the sync failed; the failure is recorded on the feed.
    """
    feed = db.get_feed_by_id(feed_id)
    if feed is None:
        raise LookupError(f"Feed {feed_id} not found")
    items_added = await sync_feed(db, client, feed)
    return {"message": "Feed refreshed", "items_added": items_added}


def list_feeds(db: Database, active_only: bool = False) -> dict:
    """List feeds with their current health status."""
    feeds = db.get_active_feeds() if active_only else db.get_all_feeds()
    return {
        "feeds": [_feed_to_dict(feed) for feed in feeds],
        "total": len(feeds),
    }


def get_items(db: Database, feed_id: int, limit: int = 20) -> dict:
    """Latest items of one feed plus its total item count."""
    items = db.get_items_by_feed_id(feed_id, limit=limit)
    total = db.get_item_count_for_feed(feed_id)
    return {
        "items": [_item_to_dict(item) for item in items],
        "total": total,
        "has_more": total > limit,
    }


def feed_status(feed: Feed) -> str:
    if not feed.is_active:
        return "inactive"
    return "erroring" if feed.error_count > 0 else "active"


def _feed_to_dict(feed: Feed) -> dict:
    return {
        "id": feed.id,
        "title": feed.title,
        "url": feed.url,
        "feed_url": feed.feed_url,
        "type": feed.type.value,
        "icon": feed.icon,
        "status": feed_status(feed),
        "last_fetched_at": feed.last_fetched_at.isoformat() if feed.last_fetched_at else None,
        "error_count": feed.error_count,
        **({"last_error": feed.last_error} if feed.last_error else {}),
    }


def _item_to_dict(item: FeedItem) -> dict:
    return {
        "id": item.id,
        "guid": item.guid,
        "title": item.title,
        "link": item.link,
        "description": (item.description or "")[:200],
        "author": item.author,
        "published_at": item.published_at.isoformat(),
        "score": item.score,
        "comments_count": item.comments_count,
        "comments_link": item.comments_link,
    }
