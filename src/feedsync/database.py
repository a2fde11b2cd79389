"""SQLite storage for feeds and feed items."""

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from feedsync.models import EngagementPatch, Feed, FeedItem, FeedType, utcnow

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS feeds (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    feed_url TEXT UNIQUE NOT NULL,
    title TEXT NOT NULL,
    url TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'rss',
    icon TEXT,
    last_fetched_at TEXT,
    fetch_interval_minutes INTEGER DEFAULT 60,
    is_active INTEGER DEFAULT 1,
    error_count INTEGER DEFAULT 0,
    last_error TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    feed_id INTEGER NOT NULL REFERENCES feeds(id) ON DELETE CASCADE,
    guid TEXT NOT NULL,
    title TEXT NOT NULL,
    link TEXT NOT NULL DEFAULT '',
    description TEXT,
    content TEXT,
    author TEXT,
    published_at TEXT NOT NULL,
    comments_link TEXT,
    comments_count INTEGER,
    score INTEGER,
    fetched_at TEXT NOT NULL,
    UNIQUE(feed_id, guid)
);

CREATE INDEX IF NOT EXISTS idx_feeds_active ON feeds(is_active, last_fetched_at);
CREATE INDEX IF NOT EXISTS idx_items_feed_published ON items(feed_id, published_at);
CREATE INDEX IF NOT EXISTS idx_items_link ON items(link);
"""

# Columns an existing item may have rewritten by a later sync.
PATCHABLE_ITEM_COLUMNS = ("score", "comments_count", "comments_link")


class Database:
    """SQLite database manager for feeds and items.

    A single connection is shared by the scheduler and by on-demand callers,
    so every statement runs under ``lock``.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None
        self._depth = 0

    def connect(self) -> None:
        """Open database connection and initialize schema."""
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA_SQL)
        self._conn.commit()

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Hold the lock and commit once the outermost block exits.

        Nested blocks join the enclosing transaction; an exception rolls
        the whole thing back.
        """
        with self.lock:
            conn = self.conn
            self._depth += 1
            try:
                yield conn
            except BaseException:
                if self._depth == 1:
                    conn.rollback()
                raise
            else:
                if self._depth == 1:
                    conn.commit()
            finally:
                self._depth -= 1

    # --- Feed operations ---

    def get_or_create_feed(self, feed: Feed) -> tuple[Feed, bool]:
        """Insert ``feed`` unless one with the same feed_url exists.

        Returns:
            Tuple of (stored Feed, whether it was created by this call).
        """
        with self.transaction() as conn:
            cursor = conn.execute(
                """INSERT INTO feeds (feed_url, title, url, type, icon, last_fetched_at,
                   fetch_interval_minutes, is_active, error_count, last_error, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(feed_url) DO NOTHING""",
                (
                    feed.feed_url,
                    feed.title,
                    feed.url,
                    FeedType(feed.type).value,
                    feed.icon,
                    _dt_to_str(feed.last_fetched_at),
                    feed.fetch_interval_minutes,
                    int(feed.is_active),
                    feed.error_count,
                    feed.last_error,
                    _dt_to_str(feed.created_at),
                ),
            )
            created = cursor.rowcount > 0
            stored = self.get_feed_by_url(feed.feed_url)
        if stored is None:
            raise RuntimeError(f"Feed {feed.feed_url} vanished after insert")
        return stored, created

    def get_feed_by_url(self, feed_url: str) -> Feed | None:
        """Look up a feed by its canonical feed URL."""
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM feeds WHERE feed_url = ?", (feed_url,)
            ).fetchone()
        return _row_to_feed(row) if row else None

    def get_feed_by_id(self, feed_id: int) -> Feed | None:
        """Look up a feed by its id."""
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM feeds WHERE id = ?", (feed_id,)
            ).fetchone()
        return _row_to_feed(row) if row else None

    def get_all_feeds(self) -> list[Feed]:
        """Return all feeds, active or not."""
        with self.transaction() as conn:
            rows = conn.execute("SELECT * FROM feeds ORDER BY id").fetchall()
        return [_row_to_feed(r) for r in rows]

    def get_active_feeds(self) -> list[Feed]:
        """Return all active feeds (for polling)."""
        with self.transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM feeds WHERE is_active = 1 ORDER BY id"
            ).fetchall()
        return [_row_to_feed(r) for r in rows]

    def record_fetch_success(self, feed_id: int, timestamp: datetime) -> None:
        """Stamp a successful sync and reset the error state."""
        with self.transaction() as conn:
            conn.execute(
                """UPDATE feeds SET last_fetched_at = ?, error_count = 0, last_error = NULL
                   WHERE id = ?""",
                (_dt_to_str(timestamp), feed_id),
            )

    def record_fetch_failure(self, feed_id: int, error_message: str) -> int:
        """Increment the error count, store the message, return the new count."""
        with self.transaction() as conn:
            conn.execute(
                """UPDATE feeds SET error_count = error_count + 1, last_error = ?
                   WHERE id = ?""",
                (error_message, feed_id),
            )
            row = conn.execute(
                "SELECT error_count FROM feeds WHERE id = ?", (feed_id,)
            ).fetchone()
        return row["error_count"] if row else 0

    def deactivate_failing_feeds(self, max_errors: int) -> list[Feed]:
        """Deactivate active feeds whose error count reached ``max_errors``.

        Returns the feeds that were switched off by this call.
        """
        with self.transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM feeds WHERE is_active = 1 AND error_count >= ?",
                (max_errors,),
            ).fetchall()
            if rows:
                conn.executemany(
                    "UPDATE feeds SET is_active = 0 WHERE id = ?",
                    [(r["id"],) for r in rows],
                )
        feeds = [_row_to_feed(r) for r in rows]
        for feed in feeds:
            feed.is_active = False
        return feeds

    def reactivate_feed(self, feed_id: int) -> bool:
        """Put a feed back into rotation with a clean error state."""
        with self.transaction() as conn:
            cursor = conn.execute(
                """UPDATE feeds SET is_active = 1, error_count = 0, last_error = NULL
                   WHERE id = ?""",
                (feed_id,),
            )
        return cursor.rowcount > 0

    # --- Item operations ---

    def get_item(self, feed_id: int, guid: str) -> FeedItem | None:
        """Look up an item by its per-feed dedup key."""
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM items WHERE feed_id = ? AND guid = ?",
                (feed_id, guid),
            ).fetchone()
        return _row_to_item(row) if row else None

    def insert_item(self, item: FeedItem) -> bool:
        """Insert an item unless its (feed_id, guid) is already stored.

        Returns True when a row was written.
        """
        with self.transaction() as conn:
            cursor = conn.execute(
                """INSERT INTO items (feed_id, guid, title, link, description, content,
                   author, published_at, comments_link, comments_count, score, fetched_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(feed_id, guid) DO NOTHING""",
                (
                    item.feed_id,
                    item.guid,
                    item.title,
                    item.link,
                    item.description,
                    item.content,
                    item.author,
                    _dt_to_str(item.published_at),
                    item.comments_link,
                    item.comments_count,
                    item.score,
                    _dt_to_str(item.fetched_at),
                ),
            )
        if cursor.rowcount > 0:
            item.id = cursor.lastrowid
            return True
        return False

    def patch_item(self, item_id: int, patch: EngagementPatch) -> bool:
        """Write the changed engagement columns of an item."""
        columns = patch.as_columns()
        if not columns:
            return False
        assignments = ", ".join(
            f"{name} = ?" for name in PATCHABLE_ITEM_COLUMNS if name in columns
        )
        values = [columns[name] for name in PATCHABLE_ITEM_COLUMNS if name in columns]
        with self.transaction() as conn:
            cursor = conn.execute(
                f"UPDATE items SET {assignments} WHERE id = ?",
                (*values, item_id),
            )
        return cursor.rowcount > 0

    def get_items_by_feed_id(self, feed_id: int, limit: int = 50) -> list[FeedItem]:
        """Get items for a specific feed, newest first."""
        with self.transaction() as conn:
            rows = conn.execute(
                """SELECT * FROM items WHERE feed_id = ?
                   ORDER BY published_at DESC, id DESC LIMIT ?""",
                (feed_id, limit),
            ).fetchall()
        return [_row_to_item(r) for r in rows]

    def get_item_count_for_feed(self, feed_id: int) -> int:
        """Get the number of items stored for a feed."""
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT COUNT(*) as cnt FROM items WHERE feed_id = ?", (feed_id,)
            ).fetchone()
        return row["cnt"] if row else 0


# --- Helper functions ---


def _dt_to_str(dt: datetime | None) -> str | None:
    """Convert datetime to a UTC ISO string for storage."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def _str_to_dt(s: str | None) -> datetime | None:
    """Convert stored ISO string back to datetime."""
    if not s:
        return None
    return datetime.fromisoformat(s)


def _row_to_feed(row: sqlite3.Row) -> Feed:
    """Convert a database row to a Feed dataclass."""
    return Feed(
        id=row["id"],
        feed_url=row["feed_url"],
        title=row["title"],
        url=row["url"],
        type=FeedType(row["type"]),
        icon=row["icon"],
        last_fetched_at=_str_to_dt(row["last_fetched_at"]),
        fetch_interval_minutes=row["fetch_interval_minutes"],
        is_active=bool(row["is_active"]),
        error_count=row["error_count"],
        last_error=row["last_error"],
        created_at=_str_to_dt(row["created_at"]) or utcnow(),
    )


def _row_to_item(row: sqlite3.Row) -> FeedItem:
    """Convert a database row to a FeedItem dataclass."""
    return FeedItem(
        id=row["id"],
        feed_id=row["feed_id"],
        guid=row["guid"],
        title=row["title"],
        link=row["link"],
        description=row["description"],
        content=row["content"],
        author=row["author"],
        published_at=_str_to_dt(row["published_at"]) or utcnow(),
        comments_link=row["comments_link"],
        comments_count=row["comments_count"],
        score=row["score"],
        fetched_at=_str_to_dt(row["fetched_at"]) or utcnow(),
    )
