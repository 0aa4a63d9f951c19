#!/usr/bin/env python3
"""
Data model for the feed ingestion pipeline.

Site configuration comes in, canonical feeds go out. The raw RSS/Atom
document classes mirror the wire formats and only live between decoding and
normalization.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from errors import TransportError


@dataclass(frozen=True)
class SiteConfig:
    """A configured site whose feed should be ingested."""

    id: int
    feed_link: str
    feed_format: Optional[str] = None
    feed_name: str = ""
    site_name: str = ""
    site_link: str = ""
    description: str = ""

    @property
    def label(self) -> str:
        """Human-readable name for log lines."""
        return self.site_name or self.feed_name or self.feed_link


@dataclass
class FeedEntry:
    title: str
    link: str
    description: str
    created: datetime
    updated: datetime


@dataclass
class Feed:
    """Canonical feed, whatever the wire format was."""

    id: int
    title: str
    link: str
    description: str
    updated: datetime
    entries: List[FeedEntry] = field(default_factory=list)


# Raw wire-format documents

@dataclass
class RssItem:
    title: str = ""
    link: str = ""
    description: str = ""
    pub_date: str = ""


@dataclass
class RssChannel:
    title: str = ""
    link: str = ""
    description: str = ""
    pub_date: str = ""
    items: List[RssItem] = field(default_factory=list)


@dataclass
class RssDocument:
    channel: RssChannel = field(default_factory=RssChannel)

    def looks_populated(self) -> bool:
        return bool(self.channel.items) or self.channel.title != ""


@dataclass
class AtomLink:
    href: str = ""
    rel: str = ""


@dataclass
class AtomEntry:
    title: str = ""
    links: List[AtomLink] = field(default_factory=list)
    summary: str = ""
    content: str = ""
    updated: str = ""


@dataclass
class AtomDocument:
    title: str = ""
    subtitle: str = ""
    updated: str = ""
    entries: List[AtomEntry] = field(default_factory=list)

    def looks_populated(self) -> bool:
        return bool(self.entries) or self.title != ""


@dataclass
class FetchOutcome:
    """Result of one network fetch: a body or the transport error, never both."""

    site: SiteConfig
    body: Optional[bytes] = None
    error: Optional[TransportError] = None

    @property
    def ok(self) -> bool:
        return self.error is None
