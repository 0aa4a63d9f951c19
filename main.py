#!/usr/bin/env python3
"""
Feed Ingest command line.

Modes:
  fetch   Fetch every configured site once and print the feeds as JSON
  parse   Parse a local feed file and print it as JSON
  detect  Print the detected format (rss/atom) of a local feed file
  sites   Print the configured sites as JSON

Periodic refreshes are left to the caller (cron, systemd timers, etc.).
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from cache import FeedCache
from config import config, get_logger
from errors import FeedParseError
from fetcher import fetch_feeds
from formats import detect_feed_format, parse_feed
from models import SiteConfig
from serialization import feeds_to_json, sites_to_json
from telemetry import init_telemetry, trace_span

# Module-specific logger
logger = get_logger("main")
init_telemetry("feed-ingest")


def _emit(text: str, output: Optional[str]) -> None:
    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
        logger.info(f"Wrote {len(text)} bytes to {output}")
    else:
        print(text)


def _select_sites(only_ids: Optional[List[int]]) -> List[SiteConfig]:
    if not only_ids:
        return list(config.SITES)
    wanted = set(only_ids)
    selected = [site for site in config.SITES if site.id in wanted]
    missing = wanted - {site.id for site in selected}
    if missing:
        logger.warning(f"Unknown site ids ignored: {sorted(missing)}")
    return selected


@trace_span("main.fetch", tracer_name="main")
async def run_fetch(
    only_ids: Optional[List[int]] = None,
    output: Optional[str] = None,
    cache: Optional[FeedCache] = None,
) -> int:
    """Fetch the selected sites once and emit them as JSON.

    The cache only saves requests for callers that keep the same FeedCache
    across calls; a one-shot CLI run starts empty and fetches every site.
    """
    sites = _select_sites(only_ids)
    if not sites:
        logger.warning("No sites configured; nothing to fetch")
    feeds = await fetch_feeds(sites, cache if cache is not None else FeedCache())
    _emit(feeds_to_json(feeds, indent=2), output)
    return 0


def run_parse(file_path: str, site_id: int, feed_format: Optional[str], output: Optional[str] = None) -> int:
    raw = Path(file_path).read_bytes()
    site = SiteConfig(id=site_id, feed_link=Path(file_path).resolve().as_uri(), feed_format=feed_format)
    try:
        feed = parse_feed(raw, site)
    except FeedParseError as e:
        logger.error(f"Could not parse {file_path}: {e}")
        return 1
    _emit(feeds_to_json([feed], indent=2), output)
    return 0


def run_detect(file_path: str) -> int:
    try:
        print(detect_feed_format(Path(file_path).read_bytes()))
    except FeedParseError as e:
        logger.error(f"Could not detect format of {file_path}: {e}")
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description='Feed Ingest')
    subparsers = parser.add_subparsers(dest='mode', required=True)

    fetch_parser = subparsers.add_parser('fetch', help='Fetch all configured sites once')
    fetch_parser.add_argument('--only', type=int, nargs='+', metavar='ID',
                              help='Only fetch these site ids')
    fetch_parser.add_argument('--output', type=str, help='Write JSON to this file instead of stdout')

    parse_parser = subparsers.add_parser('parse', help='Parse a local feed file')
    parse_parser.add_argument('file', type=str)
    parse_parser.add_argument('--site-id', type=int, default=0)
    parse_parser.add_argument('--format', choices=['rss', 'atom'], default=None,
                              help='Declared feed format (autodetected if omitted)')
    parse_parser.add_argument('--output', type=str, help='Write JSON to this file instead of stdout')

    detect_parser = subparsers.add_parser('detect', help='Detect the format of a local feed file')
    detect_parser.add_argument('file', type=str)

    subparsers.add_parser('sites', help='Print configured sites')

    args = parser.parse_args(argv)

    try:
        if args.mode == 'fetch':
            return asyncio.run(run_fetch(args.only, args.output))
        if args.mode == 'parse':
            return run_parse(args.file, args.site_id, args.format, args.output)
        if args.mode == 'detect':
            return run_detect(args.file)
        if args.mode == 'sites':
            print(sites_to_json(config.SITES, indent=2))
            return 0
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    except OSError as e:
        logger.error(f"{args.mode} failed: {e}")
        return 1
    return 2


if __name__ == "__main__":
    sys.exit(main())
