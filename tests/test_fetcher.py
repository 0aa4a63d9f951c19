import asyncio
import logging
from datetime import datetime, timezone

import pytest
from aiohttp import ClientSession, web, test_utils

import fetcher
from cache import FeedCache
from config import config
from errors import TransportError
from fetcher import FeedFetcher, HttpTransport, fetch_feeds
from models import Feed, SiteConfig

RSS_A = b"""<?xml version="1.0"?>
<rss version="2.0"><channel><title>A</title>
<item><title>Hello</title><link>http://a/hello</link><description>Hi</description>
<pubDate>Mon, 06 Oct 2025 10:00:00 +0000</pubDate></item>
</channel></rss>"""

ATOM_B = b"""<?xml version="1.0"?>
<feed xmlns="http://www.w3.org/2005/Atom"><title>B</title>
<entry><title>Bee</title><link href="http://b/bee"/><summary>buzz</summary>
<updated>2025-10-06T10:00:00Z</updated></entry></feed>"""


class FakeTransport:
    """Serves canned bodies or errors per URL and records what was requested."""

    def __init__(self, responses, delays=None):
        self.responses = responses
        self.delays = delays or {}
        self.requested = []

    async def get(self, url: str) -> bytes:
        self.requested.append(url)
        await asyncio.sleep(self.delays.get(url, 0))
        response = self.responses[url]
        if isinstance(response, Exception):
            raise response
        return response


class ExplodingTransport:
    async def get(self, url: str) -> bytes:  # pragma: no cover - must never be called
        raise AssertionError(f"unexpected request for {url}")


def _cached_feed(site_id: int) -> Feed:
    return Feed(
        id=site_id,
        title=f"Cached {site_id}",
        link=f"http://cached/{site_id}",
        description="from cache",
        updated=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


@pytest.mark.asyncio
async def test_rss_success_and_transport_failure_scenario(caplog):
    sites = [
        SiteConfig(id=1, feed_link="http://a/feed", feed_format="rss", site_name="Site A"),
        SiteConfig(id=2, feed_link="http://b/feed", feed_format="atom", site_name="Site B"),
    ]
    cache = FeedCache(timeout_seconds=600)
    transport = FakeTransport({
        "http://a/feed": RSS_A,
        "http://b/feed": TransportError("http://b/feed", "connection refused"),
    })

    with caplog.at_level(logging.INFO):
        feeds = await fetch_feeds(sites, cache, transport)

    assert len(feeds) == 1
    feed = feeds[0]
    assert feed.id == 1
    assert feed.title == "A"
    assert feed.link == "http://a/feed"
    assert [entry.title for entry in feed.entries] == ["Hello"]
    assert cache.get_cache_for_id(1) is feed
    assert cache.get_cache_for_id(2) is None
    assert any("Site B" in message and "connection refused" in message for message in caplog.messages)

    # Within the freshness window only the failed site is requested again
    transport.requested.clear()
    second = await fetch_feeds(sites, cache, transport)
    assert transport.requested == ["http://b/feed"]
    assert [f.id for f in second] == [1]
    assert second[0] is feed


@pytest.mark.asyncio
async def test_only_cache_misses_are_requested():
    sites = [SiteConfig(id=i, feed_link=f"http://site{i}/feed", feed_format="rss") for i in range(1, 5)]
    cache = FeedCache(timeout_seconds=600)
    cached = {1: _cached_feed(1), 3: _cached_feed(3)}
    for site_id, feed in cached.items():
        cache.set_cache_for_id(site_id, feed)
    transport = FakeTransport({
        "http://site2/feed": RSS_A,
        "http://site4/feed": RSS_A,
    })

    feeds = await FeedFetcher(cache, transport).fetch_feeds(sites)

    assert sorted(transport.requested) == ["http://site2/feed", "http://site4/feed"]
    assert len(feeds) == 4
    by_id = {feed.id: feed for feed in feeds}
    assert by_id[1] is cached[1]
    assert by_id[3] is cached[3]
    assert by_id[1].title == "Cached 1"
    assert by_id[2].link == "http://site2/feed"
    assert by_id[4].link == "http://site4/feed"


@pytest.mark.asyncio
async def test_all_cached_makes_no_requests():
    sites = [SiteConfig(id=1, feed_link="http://a/feed")]
    cache = FeedCache(timeout_seconds=600)
    cache.set_cache_for_id(1, _cached_feed(1))

    feeds = await fetch_feeds(sites, cache, ExplodingTransport())

    assert [feed.id for feed in feeds] == [1]


@pytest.mark.asyncio
async def test_parse_failure_is_isolated(caplog):
    sites = [
        SiteConfig(id=1, feed_link="http://a/feed", site_name="Good"),
        SiteConfig(id=2, feed_link="http://b/feed", site_name="Garbage"),
        SiteConfig(id=3, feed_link="http://c/feed", site_name="Empty", feed_format=None),
    ]
    cache = FeedCache(timeout_seconds=600)
    transport = FakeTransport({
        "http://a/feed": ATOM_B,
        "http://b/feed": b"<<<not xml",
        "http://c/feed": b"<html><body/></html>",
    })

    with caplog.at_level(logging.INFO):
        feeds = await fetch_feeds(sites, cache, transport)

    assert [feed.id for feed in feeds] == [1]
    assert feeds[0].entries[0].description == "buzz"
    assert cache.get_cache_for_id(2) is None
    assert cache.get_cache_for_id(3) is None
    assert any("Garbage" in message for message in caplog.messages)
    assert any("Empty" in message and "Could not detect feed format" in message for message in caplog.messages)


@pytest.mark.asyncio
async def test_unexpected_transport_exception_is_isolated():
    sites = [
        SiteConfig(id=1, feed_link="http://a/feed", feed_format="rss"),
        SiteConfig(id=2, feed_link="http://b/feed", feed_format="rss"),
    ]
    transport = FakeTransport({
        "http://a/feed": OSError("network unreachable"),
        "http://b/feed": RSS_A,
    })

    feeds = await fetch_feeds(sites, FeedCache(timeout_seconds=600), transport)

    assert [feed.id for feed in feeds] == [2]


@pytest.mark.asyncio
async def test_any_transport_exception_is_isolated(caplog):
    sites = [
        SiteConfig(id=1, feed_link="http://a/feed", feed_format="rss", site_name="Broken"),
        SiteConfig(id=2, feed_link="http://b/feed", feed_format="rss"),
    ]
    cache = FeedCache(timeout_seconds=600)
    transport = FakeTransport({
        "http://a/feed": KeyError("boom"),
        "http://b/feed": RSS_A,
    })

    feeds = await fetch_feeds(sites, cache, transport)

    assert [feed.id for feed in feeds] == [2]
    assert cache.get_cache_for_id(1) is None
    assert any("Broken" in message and "boom" in message for message in caplog.messages)


@pytest.mark.asyncio
async def test_unexpected_parser_exception_is_isolated(monkeypatch):
    real_parse_feed = fetcher.parse_feed

    def flaky_parse_feed(raw, site):
        if site.id == 1:
            raise IndexError("parser bug")
        return real_parse_feed(raw, site)

    monkeypatch.setattr(fetcher, "parse_feed", flaky_parse_feed)
    sites = [
        SiteConfig(id=1, feed_link="http://a/feed", feed_format="rss"),
        SiteConfig(id=2, feed_link="http://b/feed", feed_format="atom"),
    ]
    transport = FakeTransport({"http://a/feed": RSS_A, "http://b/feed": ATOM_B})

    feeds = await fetch_feeds(sites, FeedCache(timeout_seconds=600), transport)

    assert [feed.id for feed in feeds] == [2]


@pytest.mark.asyncio
async def test_results_are_collected_in_completion_order():
    sites = [
        SiteConfig(id=1, feed_link="http://slow/feed", feed_format="rss"),
        SiteConfig(id=2, feed_link="http://fast/feed", feed_format="atom"),
    ]
    transport = FakeTransport(
        {"http://slow/feed": RSS_A, "http://fast/feed": ATOM_B},
        delays={"http://slow/feed": 0.2},
    )

    feeds = await fetch_feeds(sites, FeedCache(timeout_seconds=600), transport)

    assert [feed.id for feed in feeds] == [2, 1]
    # Both requests were launched before either finished
    assert transport.requested == ["http://slow/feed", "http://fast/feed"]


@pytest.mark.asyncio
async def test_empty_site_list_returns_empty_result():
    assert await fetch_feeds([], FeedCache(timeout_seconds=600), ExplodingTransport()) == []


async def _serve_rss(request):
    return web.Response(body=RSS_A, content_type="application/rss+xml")


async def _serve_missing(request):
    return web.Response(status=404, text="nope")


async def _serve_slow(request):
    await asyncio.sleep(3)
    return web.Response(body=RSS_A, content_type="application/rss+xml")


async def _redirect_to_rss(request):
    raise web.HTTPFound("/rss")


async def _redirect_twice(request):
    raise web.HTTPFound("/hop")


def _app() -> web.Application:
    app = web.Application()
    app.router.add_get("/rss", _serve_rss)
    app.router.add_get("/missing", _serve_missing)
    app.router.add_get("/slow", _serve_slow)
    app.router.add_get("/hop", _redirect_to_rss)
    app.router.add_get("/hop2", _redirect_twice)
    return app


@pytest.mark.asyncio
async def test_http_transport_reads_body_and_rejects_non_200():
    async with test_utils.TestServer(_app()) as server:
        async with ClientSession() as session:
            transport = HttpTransport(session)

            body = await transport.get(str(server.make_url("/rss")))
            assert body == RSS_A

            missing_url = str(server.make_url("/missing"))
            with pytest.raises(TransportError) as excinfo:
                await transport.get(missing_url)
            assert "HTTP 404" in str(excinfo.value)
            assert excinfo.value.url == missing_url
            assert excinfo.value.details["status"] == 404


@pytest.mark.asyncio
async def test_fetch_feeds_over_real_http_session():
    async with test_utils.TestServer(_app()) as server:
        sites = [
            SiteConfig(id=1, feed_link=str(server.make_url("/rss"))),
            SiteConfig(id=2, feed_link=str(server.make_url("/missing"))),
        ]

        feeds = await fetch_feeds(sites, FeedCache(timeout_seconds=600))

    assert [feed.id for feed in feeds] == [1]
    assert feeds[0].title == "A"


@pytest.mark.asyncio
async def test_hung_site_times_out_without_blocking_others(monkeypatch, caplog):
    monkeypatch.setattr(config, "HTTP_TIMEOUT", 1)
    async with test_utils.TestServer(_app()) as server:
        sites = [
            SiteConfig(id=1, feed_link=str(server.make_url("/slow")), site_name="Slow Site"),
            SiteConfig(id=2, feed_link=str(server.make_url("/rss")), site_name="Fast Site"),
        ]
        cache = FeedCache(timeout_seconds=600)

        feeds = await fetch_feeds(sites, cache)

    assert [feed.id for feed in feeds] == [2]
    assert cache.get_cache_for_id(1) is None
    assert any("Slow Site" in message and "Timed out" in message for message in caplog.messages)


@pytest.mark.asyncio
async def test_zero_max_redirects_does_not_follow_redirects(monkeypatch, caplog):
    monkeypatch.setattr(config, "MAX_REDIRECTS", 0)
    async with test_utils.TestServer(_app()) as server:
        sites = [SiteConfig(id=1, feed_link=str(server.make_url("/hop")), site_name="Hop")]

        feeds = await fetch_feeds(sites, FeedCache(timeout_seconds=600))

    assert feeds == []
    assert any("Hop" in message and "HTTP 302" in message for message in caplog.messages)


@pytest.mark.asyncio
async def test_max_redirects_is_the_number_of_hops_followed(monkeypatch):
    monkeypatch.setattr(config, "MAX_REDIRECTS", 1)
    async with test_utils.TestServer(_app()) as server:
        sites = [
            SiteConfig(id=1, feed_link=str(server.make_url("/hop"))),
            SiteConfig(id=2, feed_link=str(server.make_url("/hop2"))),
        ]

        feeds = await fetch_feeds(sites, FeedCache(timeout_seconds=600))

    assert [feed.id for feed in feeds] == [1]
    assert feeds[0].title == "A"

    monkeypatch.setattr(config, "MAX_REDIRECTS", 2)
    async with test_utils.TestServer(_app()) as server:
        sites = [SiteConfig(id=2, feed_link=str(server.make_url("/hop2")))]

        feeds = await fetch_feeds(sites, FeedCache(timeout_seconds=600))

    assert [feed.id for feed in feeds] == [2]
