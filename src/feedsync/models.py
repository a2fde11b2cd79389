"""Data models for the feed ingestion engine."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FeedType(str, Enum):
    """Kind of source a feed was added from."""

    RSS = "rss"
    ATOM = "atom"
    SUBSTACK = "substack"
    CUSTOM = "custom"


@dataclass
class Feed:
    """A machine-readable content source, unique by ``feed_url``."""

    feed_url: str
    title: str
    url: str
    type: FeedType = FeedType.RSS
    icon: str | None = None
    last_fetched_at: datetime | None = None
    fetch_interval_minutes: int = 60
    is_active: bool = True
    error_count: int = 0
    last_error: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    id: int | None = None


@dataclass
class FeedItem:
    """A single entry from a feed, unique by ``(feed_id, guid)``."""

    feed_id: int
    guid: str
    title: str
    link: str = ""
    description: str | None = None
    content: str | None = None
    author: str | None = None
    published_at: datetime = field(default_factory=utcnow)
    comments_link: str | None = None
    comments_count: int | None = None
    score: int | None = None
    fetched_at: datetime = field(default_factory=utcnow)
    id: int | None = None


@dataclass
class EngagementPatch:
    """Engagement fields that changed on an already-stored item.

    Only fields that are not None are written; everything else on the
    stored row (title, body, dates, enrichment added by other components)
    is left alone.
    """

    score: int | None = None
    comments_count: int | None = None
    comments_link: str | None = None

    @classmethod
    def diff(
        cls,
        existing: FeedItem,
        score: int | None,
        comments_count: int | None,
        comments_link: str | None,
    ) -> "EngagementPatch":
        """Build a patch holding only values that differ from ``existing``."""
        return cls(
            score=score if score is not None and score != existing.score else None,
            comments_count=(
                comments_count
                if comments_count is not None and comments_count != existing.comments_count
                else None
            ),
            comments_link=(
                comments_link
                if comments_link and comments_link != existing.comments_link
                else None
            ),
        )

    def as_columns(self) -> dict[str, object]:
        columns: dict[str, object] = {}
        if self.score is not None:
            columns["score"] = self.score
        if self.comments_count is not None:
            columns["comments_count"] = self.comments_count
        if self.comments_link is not None:
            columns["comments_link"] = self.comments_link
        return columns

    def __bool__(self) -> bool:
        return bool(self.as_columns())
