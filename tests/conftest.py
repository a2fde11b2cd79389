"""Shared test fixtures for feedsync tests."""

import os
import tempfile

import httpx
import pytest

from feedsync.database import Database
from feedsync.models import Feed
from feedsync.transport import create_http_client

RSS_CONTENT_TYPE = "application/rss+xml; charset=utf-8"
HTML_CONTENT_TYPE = "text/html; charset=utf-8"


SAMPLE_RSS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Test Feed</title>
    <link>https://example.com</link>
    <description>A test RSS feed</description>
    <item>
      <title>First Article</title>
      <link>https://example.com/article-1</link>
      <guid>a</guid>
      <description>Description of the first article</description>
      <pubDate>Fri, 13 Feb 2026 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Second Article</title>
      <link>https://example.com/article-2</link>
      <guid>b</guid>
      <description>Description of the second article</description>
      <pubDate>Fri, 13 Feb 2026 09:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>"""

# Same feed later on: "a" picked up points and comments, "c" is new.
UPDATED_RSS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Test Feed</title>
    <link>https://example.com</link>
    <description>A test RSS feed</description>
    <item>
      <title>First Article (edited upstream)</title>
      <link>https://example.com/article-1</link>
      <guid>a</guid>
      <description>Points: 42 Comments: 7</description>
      <comments>https://example.com/article-1#comments</comments>
      <pubDate>Fri, 13 Feb 2026 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Second Article</title>
      <link>https://example.com/article-2</link>
      <guid>b</guid>
      <description>Description of the second article</description>
      <pubDate>Fri, 13 Feb 2026 09:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Third Article</title>
      <link>https://example.com/article-3</link>
      <guid>c</guid>
      <description>Description of the third article</description>
      <pubDate>Sat, 14 Feb 2026 08:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>"""

SAMPLE_ATOM_XML = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Test Atom Feed</title>
  <link href="https://example.com"/>
  <icon>https://example.com/icon.png</icon>
  <subtitle>A test Atom feed</subtitle>
  <entry>
    <title>Atom Entry 1</title>
    <link href="https://example.com/entry-1"/>
    <id>urn:uuid:entry-1</id>
    <summary>Summary of entry 1</summary>
    <content type="html">&lt;p&gt;Full body of entry 1&lt;/p&gt;</content>
    <author><name>Jane Writer</name></author>
    <updated>2026-02-13T10:00:00Z</updated>
  </entry>
</feed>"""

SAMPLE_NOT_A_FEED_HTML = """<!DOCTYPE html>
<html>
  <head><title>Just a page</title></head>
  <body>This is not a feed</body>
</html>"""


def html_page(head: str = "") -> str:
    return f"<!DOCTYPE html><html><head><title>Site</title>{head}</head><body>Hi</body></html>"


def make_client(routes: dict) -> httpx.AsyncClient:
    """Client whose requests are answered from ``routes``.

    ``routes`` maps a URL to ``(status, content_type, body)`` or to an
    exception instance to raise. Anything else gets a 404. The dict is
    read on every request, so tests may change it between calls.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        route = routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, text="not found")
        if isinstance(route, Exception):
            raise route
        status, content_type, body = route
        return httpx.Response(status, headers={"content-type": content_type}, text=body)

    return create_http_client(transport=httpx.MockTransport(handler))


@pytest.fixture
def tmp_db_path():
    """Provide a temporary SQLite database path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name
    yield path
    for suffix in ("", "-wal", "-shm"):
        try:
            os.unlink(path + suffix)
        except OSError:
            pass


@pytest.fixture
def db(tmp_db_path):
    """A connected database on a temporary file."""
    database = Database(tmp_db_path)
    database.connect()
    yield database
    database.close()


@pytest.fixture
def feed(db):
    """A stored feed pointing at https://example.com/rss."""
    stored, _ = db.get_or_create_feed(
        Feed(feed_url="https://example.com/rss", title="Test Feed", url="https://example.com")
    )
    return stored
