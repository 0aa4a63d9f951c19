#!/usr/bin/env python3
"""JSON rendering of feeds and site configuration for external consumers."""

import json
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from dates import is_unknown_time
from models import Feed, SiteConfig


def time_to_string(value: Optional[datetime]) -> Optional[str]:
    """ISO 8601 timestamp, or None for unknown times."""
    if is_unknown_time(value):
        return None
    return value.isoformat()


def feed_to_dict(feed: Feed) -> Dict[str, Any]:
    return {
        "id": feed.id,
        "name": feed.title,
        "link": feed.link,
        "items": [
            {
                "title": entry.title,
                "link": entry.link,
                "description": entry.description,
                "creation_date": time_to_string(entry.created),
            }
            for entry in feed.entries
        ],
    }


def site_to_dict(site: SiteConfig) -> Dict[str, Any]:
    return {
        "id": site.id,
        "description": site.description,
        "feed_link": site.feed_link,
        "feed_name": site.feed_name,
        "feed_format": site.feed_format,
        "site_link": site.site_link,
        "site_name": site.site_name,
    }


def feeds_to_json(feeds: Iterable[Feed], indent: Optional[int] = None) -> str:
    payload: List[Dict[str, Any]] = [feed_to_dict(feed) for feed in feeds]
    return json.dumps(payload, ensure_ascii=False, indent=indent)


def sites_to_json(sites: Iterable[SiteConfig], indent: Optional[int] = None) -> str:
    payload: List[Dict[str, Any]] = [site_to_dict(site) for site in sites]
    return json.dumps(payload, ensure_ascii=False, indent=indent)
