"""Fetch, parse and merge feeds into the item store."""

import asyncio
import logging
from dataclasses import dataclass, field

import httpx

from feedsync.database import Database
from feedsync.feed_parser import FetchError, ParsedFeed, extract_engagement, fetch_and_parse
from feedsync.models import EngagementPatch, Feed, FeedItem, utcnow

logger = logging.getLogger(__name__)

# Consecutive failed syncs after which a feed is switched off.
MAX_CONSECUTIVE_ERRORS = 5


@dataclass
class SyncSummary:
    """Outcome of one pass over all active feeds."""

    success: int = 0
    failed: int = 0
    items_added: int = 0
    deactivated: list[Feed] = field(default_factory=list)


def merge_entries(db: Database, feed: Feed, parsed: ParsedFeed) -> int:
    """Upsert parsed entries for ``feed``. Returns count of inserted items.

    New entries are inserted whole. Entries already stored only get their
    score, comment count and comments link refreshed, and only when those
    changed. The whole merge runs as one transaction.
    """
    added = 0
    with db.transaction():
        for entry in parsed.entries:
            engagement = extract_engagement(entry.description)
            existing = db.get_item(feed.id, entry.guid)
            if existing is None:
                inserted = db.insert_item(
                    FeedItem(
                        feed_id=feed.id,
                        guid=entry.guid,
                        title=entry.title,
                        link=entry.link,
                        description=entry.description,
                        content=entry.content,
                        author=entry.author,
                        published_at=entry.published_at or utcnow(),
                        comments_link=entry.comments_link,
                        comments_count=engagement.comments_count,
                        score=engagement.score,
                    )
                )
                if inserted:
                    added += 1
                continue

            patch = EngagementPatch.diff(
                existing,
                score=engagement.score,
                comments_count=engagement.comments_count,
                comments_link=entry.comments_link,
            )
            if patch:
                db.patch_item(existing.id, patch)
    return added


async def sync_feed(db: Database, client: httpx.AsyncClient, feed: Feed) -> int:
    """Fetch one feed and merge its entries.

    Args:
        db: Connected database.
        client: HTTP client from ``feedsync.transport.create_http_client``.
        feed: A stored feed (must have an id).

    Returns:
        Number of items added by this sync.

    Raises:
        FetchError: If the document could not be fetched or parsed. The
            failure is recorded on the feed before this is raised and
            nothing is merged.
    """
    try:
        parsed = await fetch_and_parse(client, feed.feed_url)
    except FetchError as e:
        _record_failure(db, feed, str(e))
        raise
    except Exception as e:
        _record_failure(db, feed, str(e) or type(e).__name__)
        raise FetchError(str(e)) from e

    for warning in parsed.warnings:
        logger.debug("Feed '%s': %s", feed.title, warning)

    added = merge_entries(db, feed, parsed)
    db.record_fetch_success(feed.id, utcnow())
    if added:
        logger.info("Feed '%s': %d new items", feed.title, added)
    return added


def _record_failure(db: Database, feed: Feed, message: str) -> None:
    error_count = db.record_fetch_failure(feed.id, message)
    logger.warning(
        "Feed '%s' error (%d in a row): %s", feed.title, error_count, message
    )


async def sync_active_feeds(
    db: Database, client: httpx.AsyncClient, max_concurrency: int = 1
) -> SyncSummary:
    """Sync every active feed, then switch off feeds that keep failing.

    A failing feed is counted and skipped; it never stops the others.
    At most ``max_concurrency`` feeds are fetched at once.
    """
    feeds = db.get_active_feeds()
    summary = SyncSummary()
    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def run_one(feed: Feed) -> None:
        async with semaphore:
            try:
                added = await sync_feed(db, client, feed)
            except FetchError:
                summary.failed += 1
                return
            except Exception as e:
                logger.warning("Feed '%s' unexpected error: %s", feed.title, e)
                summary.failed += 1
                return
        summary.success += 1
        summary.items_added += added

    await asyncio.gather(*(run_one(feed) for feed in feeds))

    summary.deactivated = db.deactivate_failing_feeds(MAX_CONSECUTIVE_ERRORS)
    for feed in summary.deactivated:
        logger.warning(
            "Disabled feed %s after %d consecutive errors",
            feed.feed_url,
            feed.error_count,
        )
    return summary
