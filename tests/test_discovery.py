"""Tests for feed URL discovery."""

import asyncio
import time

import httpx
import pytest

from conftest import HTML_CONTENT_TYPE, RSS_CONTENT_TYPE, SAMPLE_RSS_XML, html_page, make_client
from feedsync.discovery import (
    DiscoveryError,
    detect_feed_type,
    discover_feed_url,
    find_feed_link,
    is_feed_content_type,
)
from feedsync.models import FeedType
from feedsync.transport import create_http_client

RSS_LINK = '<link rel="alternate" type="application/rss+xml" href="/feed.rss">'


def _discover(routes, url):
    async def scenario():
        async with make_client(routes) as client:
            return await discover_feed_url(client, url)

    return asyncio.run(scenario())


def test_is_feed_content_type():
    assert is_feed_content_type("application/rss+xml")
    assert is_feed_content_type("application/atom+xml; charset=utf-8")
    assert is_feed_content_type("text/xml")
    assert not is_feed_content_type("text/html")
    assert not is_feed_content_type(None)


def test_detect_feed_type():
    assert detect_feed_type("https://someone.substack.com/p/post") is FeedType.SUBSTACK
    assert detect_feed_type("https://example.com/feed") is FeedType.RSS


def test_find_feed_link_prefers_rss_and_resolves_relative():
    html = html_page(
        '<link rel="alternate" type="application/atom+xml" href="/atom.xml">'
        + RSS_LINK
    )
    assert find_feed_link(html, "https://blog.example/posts/") == "https://blog.example/feed.rss"


def test_find_feed_link_honors_base_href():
    html = html_page('<base href="https://cdn.example/site/">'
                     '<link type="application/atom+xml" href="atom.xml">')
    assert find_feed_link(html, "https://blog.example/") == "https://cdn.example/site/atom.xml"


def test_find_feed_link_none():
    assert find_feed_link(html_page(), "https://blog.example/") is None


def test_direct_feed_wins_over_link_tag():
    url = "https://example.com/rss"
    # The feed document itself advertises a different feed.
    body = SAMPLE_RSS_XML.replace(
        "<channel>",
        '<channel><link rel="alternate" type="application/rss+xml" '
        'href="https://example.com/other.xml"/>',
        1,
    )
    routes = {
        url: (200, RSS_CONTENT_TYPE, body),
        "https://example.com/other.xml": (200, RSS_CONTENT_TYPE, SAMPLE_RSS_XML),
    }
    assert find_feed_link(body, url) == "https://example.com/other.xml"
    assert _discover(routes, url) == url


def test_substack_platform_path():
    routes = {
        "https://writer.substack.com/about": (200, HTML_CONTENT_TYPE, html_page()),
        "https://writer.substack.com/feed": (200, RSS_CONTENT_TYPE, SAMPLE_RSS_XML),
    }
    assert _discover(routes, "https://writer.substack.com/about") == "https://writer.substack.com/feed"


def test_link_tag_discovery():
    routes = {"https://blog.example/": (200, HTML_CONTENT_TYPE, html_page(RSS_LINK))}
    assert _discover(routes, "https://blog.example/") == "https://blog.example/feed.rss"


def test_common_path_probe_order():
    routes = {
        "https://blog.example/": (200, HTML_CONTENT_TYPE, html_page()),
        "https://blog.example/feed": (200, HTML_CONTENT_TYPE, html_page()),
        "https://blog.example/atom.xml": (200, "application/atom+xml", SAMPLE_RSS_XML),
        "https://blog.example/index.xml": (200, RSS_CONTENT_TYPE, SAMPLE_RSS_XML),
    }
    assert _discover(routes, "https://blog.example/") == "https://blog.example/atom.xml"


def test_probe_failures_are_not_fatal():
    routes = {
        "https://blog.example/": (200, HTML_CONTENT_TYPE, html_page()),
        "https://blog.example/feed": httpx.ReadTimeout("slow"),
        "https://blog.example/rss": (200, RSS_CONTENT_TYPE, SAMPLE_RSS_XML),
    }
    assert _discover(routes, "https://blog.example/") == "https://blog.example/rss"


def test_not_found_returns_none():
    routes = {"https://news.example/": (200, HTML_CONTENT_TYPE, html_page())}
    assert _discover(routes, "https://news.example/") is None


def test_invalid_url_raises():
    with pytest.raises(DiscoveryError):
        _discover({}, "not a url")


def test_unreachable_page_raises():
    with pytest.raises(DiscoveryError):
        _discover({"https://down.example/": httpx.ConnectError("refused")}, "https://down.example/")


def test_malformed_host_raises_discovery_error():
    with pytest.raises(DiscoveryError):
        _discover({}, "https://exa\x00mple.com/")


def test_slow_candidate_is_abandoned_at_deadline(monkeypatch):
    monkeypatch.setattr("feedsync.discovery.PROBE_TIMEOUT", 0.2)

    async def handler(request):
        url = str(request.url)
        if url == "https://blog.example/feed":
            await asyncio.sleep(30)
        if url == "https://blog.example/":
            return httpx.Response(200, headers={"content-type": HTML_CONTENT_TYPE}, text=html_page())
        if url == "https://blog.example/rss":
            return httpx.Response(200, headers={"content-type": RSS_CONTENT_TYPE}, text=SAMPLE_RSS_XML)
        return httpx.Response(404)

    async def scenario():
        async with create_http_client(transport=httpx.MockTransport(handler)) as client:
            return await discover_feed_url(client, "https://blog.example/")

    started = time.monotonic()
    assert asyncio.run(scenario()) == "https://blog.example/rss"
    assert time.monotonic() - started < 5
