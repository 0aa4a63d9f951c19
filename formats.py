#!/usr/bin/env python3
"""
RSS/Atom decoding, format detection and normalization.

Raw bytes are decoded into wire-format documents (RssDocument/AtomDocument),
then normalized into the canonical Feed. When a site does not declare its
format, both decoders run and the populated-ness heuristic picks the winner.
"""

from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Tuple, Union
import xml.etree.ElementTree as ET

from config import get_logger
from dates import parse_atom_time, parse_rss_time
from errors import DetectionError, StructuralParseError
from models import (
    AtomDocument,
    AtomEntry,
    AtomLink,
    Feed,
    FeedEntry,
    RssChannel,
    RssDocument,
    RssItem,
    SiteConfig,
)

logger = get_logger("formats")

FORMAT_RSS = "rss"
FORMAT_ATOM = "atom"

# RSS elements carry no namespace; Atom may be 1.0, the legacy 0.3 draft or bare
RSS_NAMESPACES: Tuple[str, ...] = ("",)
ATOM_NAMESPACES: Tuple[str, ...] = ("http://www.w3.org/2005/Atom", "http://purl.org/atom/ns#", "")

RawDocument = Union[RssDocument, AtomDocument]


def _tag_matches(tag: str, name: str, namespaces: Tuple[str, ...]) -> bool:
    if not isinstance(tag, str):
        # Comments and processing instructions
        return False
    for ns in namespaces:
        if tag == (f"{{{ns}}}{name}" if ns else name):
            return True
    return False


def _children(element: Optional[ET.Element], name: str, namespaces: Tuple[str, ...]) -> Iterator[ET.Element]:
    if element is None:
        return
    for child in element:
        if _tag_matches(child.tag, name, namespaces):
            yield child


def _child(element: Optional[ET.Element], name: str, namespaces: Tuple[str, ...]) -> Optional[ET.Element]:
    return next(_children(element, name, namespaces), None)


def _text(element: Optional[ET.Element]) -> str:
    """Concatenated character data of an element and its descendants."""
    if element is None:
        return ""
    return "".join(element.itertext())


def _child_text(element: Optional[ET.Element], name: str, namespaces: Tuple[str, ...]) -> str:
    return _text(_child(element, name, namespaces))


def _parse_xml(raw: Union[bytes, str], feed_format: str) -> ET.Element:
    try:
        return ET.fromstring(raw)
    except (ET.ParseError, ValueError) as e:
        raise StructuralParseError(feed_format, str(e)) from e


def decode_rss(raw: Union[bytes, str]) -> RssDocument:
    """Decode raw bytes as RSS 2.0.

    Raises StructuralParseError on malformed XML. Well-formed XML without an
    RSS channel yields an empty document. Text is kept untrimmed so that a
    whitespace-only title still counts as present during detection;
    normalization trims titles.
    """
    root = _parse_xml(raw, FORMAT_RSS)
    channel_el = _child(root, "channel", RSS_NAMESPACES)
    channel = RssChannel(
        title=_child_text(channel_el, "title", RSS_NAMESPACES),
        link=_child_text(channel_el, "link", RSS_NAMESPACES).strip(),
        description=_child_text(channel_el, "description", RSS_NAMESPACES),
        pub_date=_child_text(channel_el, "pubDate", RSS_NAMESPACES),
    )
    for item_el in _children(channel_el, "item", RSS_NAMESPACES):
        channel.items.append(RssItem(
            title=_child_text(item_el, "title", RSS_NAMESPACES),
            link=_child_text(item_el, "link", RSS_NAMESPACES).strip(),
            description=_child_text(item_el, "description", RSS_NAMESPACES),
            pub_date=_child_text(item_el, "pubDate", RSS_NAMESPACES),
        ))
    return RssDocument(channel=channel)


def decode_atom(raw: Union[bytes, str]) -> AtomDocument:
    """Decode raw bytes as Atom.

    Raises StructuralParseError on malformed XML. Well-formed XML without
    Atom elements yields an empty document.
    """
    root = _parse_xml(raw, FORMAT_ATOM)
    doc = AtomDocument(
        title=_child_text(root, "title", ATOM_NAMESPACES),
        subtitle=_child_text(root, "subtitle", ATOM_NAMESPACES),
        updated=_child_text(root, "updated", ATOM_NAMESPACES),
    )
    for entry_el in _children(root, "entry", ATOM_NAMESPACES):
        doc.entries.append(AtomEntry(
            title=_child_text(entry_el, "title", ATOM_NAMESPACES),
            links=[
                AtomLink(href=(link_el.get("href") or "").strip(), rel=link_el.get("rel") or "")
                for link_el in _children(entry_el, "link", ATOM_NAMESPACES)
            ],
            summary=_child_text(entry_el, "summary", ATOM_NAMESPACES),
            content=_child_text(entry_el, "content", ATOM_NAMESPACES),
            updated=_child_text(entry_el, "updated", ATOM_NAMESPACES),
        ))
    return doc


def normalize_rss(doc: RssDocument, site: SiteConfig) -> Feed:
    """Convert an RssDocument to a Feed."""
    channel = doc.channel
    feed = Feed(
        id=site.id,
        title=channel.title.strip(),
        link=site.feed_link,
        description=channel.description,
        updated=parse_rss_time(channel.pub_date),
    )
    for item in channel.items:
        date = parse_rss_time(item.pub_date)
        feed.entries.append(FeedEntry(
            title=item.title.strip(),
            link=item.link,
            description=item.description,
            created=date,
            updated=date,
        ))
    return feed


def normalize_atom(doc: AtomDocument, site: SiteConfig) -> Feed:
    """Convert an AtomDocument to a Feed."""
    feed = Feed(
        id=site.id,
        title=doc.title.strip(),
        link=site.feed_link,
        description=doc.subtitle,
        updated=parse_atom_time(doc.updated),
    )
    for entry in doc.entries:
        date = parse_atom_time(entry.updated)
        feed.entries.append(FeedEntry(
            title=entry.title.strip(),
            # First listed link wins, whatever its rel
            link=entry.links[0].href if entry.links else "",
            description=entry.summary if entry.summary != "" else entry.content,
            created=date,
            updated=date,
        ))
    return feed


@dataclass
class ParseAttempt:
    """Outcome of decoding raw bytes under one format: a document or an error."""

    feed_format: str
    document: Optional[RawDocument] = None
    error: Optional[StructuralParseError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def looks_populated(self) -> bool:
        return self.ok and self.document is not None and self.document.looks_populated()


def _attempt(feed_format: str, decoder: Callable[[Union[bytes, str]], RawDocument], raw: Union[bytes, str]) -> ParseAttempt:
    try:
        return ParseAttempt(feed_format, document=decoder(raw))
    except StructuralParseError as e:
        return ParseAttempt(feed_format, error=e)


def _classify(raw: Union[bytes, str]) -> ParseAttempt:
    """Decode under both formats and pick one, or raise the applicable error."""
    rss = _attempt(FORMAT_RSS, decode_rss, raw)
    atom = _attempt(FORMAT_ATOM, decode_atom, raw)

    if rss.looks_populated():
        return rss
    if atom.looks_populated():
        return atom
    if rss.error is not None:
        raise rss.error
    if atom.error is not None:
        raise atom.error
    raise DetectionError()


def detect_feed_format(raw: Union[bytes, str]) -> str:
    """Return "rss" or "atom" for raw feed content.

    Raises:
        StructuralParseError: the content is not well-formed XML.
        DetectionError: the content looks like neither a populated RSS nor Atom feed.
    """
    return _classify(raw).feed_format


_NORMALIZERS = {
    FORMAT_RSS: (decode_rss, normalize_rss),
    FORMAT_ATOM: (decode_atom, normalize_atom),
}


def parse_feed(raw: Union[bytes, str], site: SiteConfig) -> Feed:
    """Parse raw feed content for a site into a canonical Feed.

    A declared "rss" or "atom" format is parsed strictly with no fallback.
    Anything else is autodetected.

    Raises:
        StructuralParseError: the content is not well-formed XML.
        DetectionError: autodetection found no populated feed.
    """
    declared = (site.feed_format or "").strip().lower()
    if declared in _NORMALIZERS:
        decoder, normalizer = _NORMALIZERS[declared]
        return normalizer(decoder(raw), site)

    if declared:
        logger.debug(f"Unrecognized feed format '{site.feed_format}' for {site.label}; autodetecting")

    attempt = _classify(raw)
    logger.debug(f"Detected {attempt.feed_format} format for {site.label}")
    _, normalizer = _NORMALIZERS[attempt.feed_format]
    return normalizer(attempt.document, site)
