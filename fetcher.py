#!/usr/bin/env python3
"""
Cache-aware concurrent feed fetcher.

This module checks the freshness cache for every configured site, fetches the
misses concurrently over HTTP, parses the responses into canonical feeds and
writes fresh results back to the cache. A failing site is logged and dropped;
it never prevents the other sites' feeds from being returned.
"""

from asyncio import TimeoutError, as_completed, create_task, get_running_loop
from contextlib import asynccontextmanager
from functools import partial
from time import monotonic
from typing import AsyncIterator, List, Optional, Protocol, Sequence

from aiohttp import ClientError, ClientSession, ClientTimeout

from cache import FeedCacheProtocol
from config import config, get_logger
from errors import FeedParseError, TransportError
from formats import parse_feed
from models import Feed, FetchOutcome, SiteConfig
from telemetry import init_telemetry, trace_span
from utils import format_duration

# Module-specific logger
logger = get_logger("fetcher")
init_telemetry("feed-ingest-fetcher")

# HTTP status codes
HTTP_OK = 200


class Transport(Protocol):
    async def get(self, url: str) -> bytes:
        ...


def _format_client_error(error: ClientError) -> str:
    """Describe aiohttp client errors with any available status/errno."""
    parts: List[str] = [error.__class__.__name__]
    status = getattr(error, 'status', None)
    if status is not None:
        parts.append(f"status={status}")
    os_error = getattr(error, 'os_error', None)
    if os_error is not None:
        errno = getattr(os_error, 'errno', None)
        strerror = getattr(os_error, 'strerror', None)
        if errno is not None:
            parts.append(f"errno={errno}")
        if strerror:
            parts.append(str(strerror))
    message = str(error)
    if message:
        parts.append(message)
    return " ".join(parts)


class HttpTransport:
    """Single-attempt GET over a shared aiohttp session."""

    def __init__(self, session: ClientSession) -> None:
        self.session = session

    async def get(self, url: str) -> bytes:
        """Fetch a URL and return the full response body.

        Raises:
            TransportError: on connection errors, timeouts or a non-200 status.
        """
        try:
            async with self.session.get(
                url,
                headers={'User-Agent': config.USER_AGENT},
                # aiohttp stops once the hop count reaches max_redirects, and 0 means unlimited
                allow_redirects=config.MAX_REDIRECTS > 0,
                max_redirects=config.MAX_REDIRECTS + 1,
            ) as response:
                if response.status != HTTP_OK:
                    raise TransportError(url, f"HTTP {response.status}", {"status": response.status})
                return await response.read()
        except TimeoutError as e:
            raise TransportError(url, f"Timed out after {config.HTTP_TIMEOUT}s") from e
        except ClientError as e:
            raise TransportError(url, _format_client_error(e)) from e


@asynccontextmanager
async def open_http_transport() -> AsyncIterator[HttpTransport]:
    """Yield an HttpTransport backed by a session that is closed on exit."""
    timeout = ClientTimeout(total=max(int(config.HTTP_TIMEOUT), 1))
    async with ClientSession(timeout=timeout) as session:
        yield HttpTransport(session)


class FeedFetcher:
    """Fetch feeds for a list of sites, serving fresh ones from the cache."""

    def __init__(self, cache: FeedCacheProtocol, transport: Optional[Transport] = None) -> None:
        self.cache = cache
        self.transport = transport

    @asynccontextmanager
    async def _transport(self) -> AsyncIterator[Transport]:
        if self.transport is not None:
            yield self.transport
            return
        async with open_http_transport() as transport:
            yield transport

    @trace_span(
        "fetch_feeds",
        tracer_name="fetcher",
        attr_from_args=lambda self, sites: {"feed.sites.count": len(sites)},
    )
    async def fetch_feeds(self, sites: Sequence[SiteConfig]) -> List[Feed]:
        """Return cached feeds plus freshly fetched ones, in no particular order.

        Never raises for a single site's failure; failed sites are logged and
        left out of the result.
        """
        started = monotonic()
        results: List[Feed] = []
        pending: List[SiteConfig] = []

        for site in sites:
            cached = self.cache.get_cache_for_id(site.id)
            if cached is not None:
                logger.debug(f"Cache hit for {site.label}")
                results.append(cached)
            else:
                pending.append(site)

        logger.info(f"{len(results)} of {len(sites)} sites served from cache, fetching {len(pending)}")
        if not pending:
            return results

        fetched = 0
        async with self._transport() as transport:
            tasks = []
            for site in pending:
                logger.info(f"Launching fetch for {site.feed_link}")
                tasks.append(create_task(self._fetch_site(site, transport)))

            for next_outcome in as_completed(tasks):
                outcome = await next_outcome
                feed = await self._handle_outcome(outcome)
                if feed is None:
                    continue
                self.cache.set_cache_for_id(outcome.site.id, feed)
                results.append(feed)
                fetched += 1

        logger.info(
            "Fetch complete: %d cached, %d fetched, %d failed in %s",
            len(results) - fetched,
            fetched,
            len(pending) - fetched,
            format_duration(monotonic() - started),
        )
        return results

    @trace_span(
        "fetch_site",
        tracer_name="fetcher",
        attr_from_args=lambda self, site, transport: {
            "feed.id": str(site.id),
            "feed.url": site.feed_link,
        },
    )
    async def _fetch_site(self, site: SiteConfig, transport: Transport) -> FetchOutcome:
        """Fetch one site's feed body; failures are captured, not raised."""
        try:
            body = await transport.get(site.feed_link)
        except TransportError as e:
            return FetchOutcome(site, error=e)
        except Exception as e:
            logger.exception(f"Unexpected error fetching {site.label}")
            return FetchOutcome(site, error=TransportError(site.feed_link, f"Unexpected error: {e!r}"))
        return FetchOutcome(site, body=body)

    async def _handle_outcome(self, outcome: FetchOutcome) -> Optional[Feed]:
        site = outcome.site
        if not outcome.ok:
            logger.error(f"HTTP error for {site.label}: {outcome.error}")
            return None

        logger.info(f"Response received for {site.label} ({len(outcome.body)} bytes)")
        try:
            # Parse off the event loop
            feed = await get_running_loop().run_in_executor(None, partial(parse_feed, outcome.body, site))
        except FeedParseError as e:
            logger.error(f"Feed parsing error for {site.label}: {e}")
            return None
        except Exception as e:
            logger.exception(f"Unexpected error parsing feed for {site.label}: {e!r}")
            return None
        logger.info(f"Parsed {len(feed.entries)} entries for {site.label}")
        return feed


async def fetch_feeds(
    sites: Sequence[SiteConfig],
    cache: FeedCacheProtocol,
    transport: Optional[Transport] = None,
) -> List[Feed]:
    """Fetch feeds for sites using the given cache; see FeedFetcher.fetch_feeds."""
    return await FeedFetcher(cache, transport).fetch_feeds(sites)
