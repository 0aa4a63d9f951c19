#!/usr/bin/env python3
"""Common error types shared across modules.

Provides shared lightweight exceptions to avoid circular imports.
"""

from typing import Dict, Any, Optional


class FeedError(Exception):
    """Base class for per-site feed failures.

    Attributes:
        details: Optional payload for diagnostics.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class TransportError(FeedError):
    """Raised when a feed URL cannot be retrieved (network, timeout or HTTP status)."""

    def __init__(self, url: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.url = url


class FeedParseError(FeedError):
    """Raised when raw feed content cannot be turned into a feed."""


class StructuralParseError(FeedParseError):
    """Raised when raw bytes are not well-formed XML for the attempted format."""

    def __init__(self, feed_format: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"{feed_format} parse error: {message}", details)
        self.feed_format = feed_format


class DetectionError(FeedParseError):
    """Raised when content parses but looks like neither a populated RSS nor Atom feed."""

    def __init__(self, message: str = "Could not detect feed format", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


__all__ = [
    "FeedError",
    "TransportError",
    "FeedParseError",
    "StructuralParseError",
    "DetectionError",
]
