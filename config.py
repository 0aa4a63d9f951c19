#!/usr/bin/env python3
"""
Configuration management for Feed Ingest.

This module centralizes all configuration loading, validation, and management.
It handles environment variables, the optional .env file and the sites.yaml
site list, and provides a clean interface for accessing configuration values
throughout the application.
"""

from os import environ, path, access, R_OK
from typing import Dict, Any, List
from logging import getLogger, basicConfig, StreamHandler, INFO, DEBUG, WARNING, ERROR
import sys
import yaml
from dotenv import load_dotenv

from models import SiteConfig
from utils import validate_url

def _setup_global_logger():
    """Setup a single global logger for the entire application.

    Environment Variables:
        LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR) - defaults to INFO
        LOG_TIMESTAMPS: Enable/disable timestamps in logs (true/false) - defaults to true

    The logger outputs to stdout with line buffering for real-time logging.
    All modules should use get_logger() to create module-specific loggers that inherit this configuration.
    """
    level_str = environ.get("LOG_LEVEL", "INFO").upper()
    level_map = {
        "DEBUG": DEBUG,
        "INFO": INFO,
        "WARNING": WARNING,
        "ERROR": ERROR
    }
    level = level_map.get(level_str, INFO)

    show_timestamps = environ.get("LOG_TIMESTAMPS", "true").lower() != "false"

    if show_timestamps:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    else:
        log_format = '%(name)s - %(levelname)s - %(message)s'

    basicConfig(
        level=level,
        format=log_format,
        handlers=[StreamHandler(sys.stdout)],
        force=True  # Force reconfiguration if already configured
    )

    # aiohttp access/client chatter is only useful when debugging
    getLogger("aiohttp").setLevel(level if level == DEBUG else WARNING)

    return getLogger("FeedIngest")

def get_logger(name: str):
    """Get a module-specific logger with the unified configuration.

    Args:
        name: The logger name (e.g., "fetcher", "formats", "cache")

    Returns:
        A logger instance named "FeedIngest.{name}"

    Example:
        logger = get_logger("mymodule")
        logger.info("This will appear as 'FeedIngest.mymodule - INFO - ...'")
    """
    return getLogger(f"FeedIngest.{name}")

# Create single global logger instance
logger = _setup_global_logger()

SITES_FILE_SIZE_LIMIT = 5 * 1024 * 1024
KNOWN_FEED_FORMATS = ("rss", "atom")


class Config:
    """Configuration manager for Feed Ingest.

    Values are loaded from:
    1. Environment variables
    2. .env file (if present)
    3. sites.yaml (or SITES_CONFIG_PATH) for the list of sites

    Example sites.yaml format:
    ```yaml
    sites:
      - id: 1
        feed_link: "https://example.com/feed.xml"
        feed_format: rss
        site_name: "Example"
        site_link: "https://example.com"
    ```
    """

    def __init__(self):
        """Initialize configuration with environment variables and validation."""
        self._load_environment()
        self._validate_and_set_config()
        self._load_sites()

    def _load_environment(self):
        """Load environment variables from .env file if present."""
        dotenv_path = path.join(path.dirname(path.abspath(__file__)), '.env')
        if path.exists(dotenv_path):
            load_dotenv(dotenv_path)
            logger.info(f"Loaded environment variables from {dotenv_path}")

    def _validate_positive_int(self, env_var: str, default: int, min_val: int = 1) -> int:
        """Validate and parse a positive integer environment variable."""
        try:
            value = int(environ.get(env_var, str(default)))
            if value < min_val:
                logger.warning(f"{env_var} must be at least {min_val}, using default {default}")
                return default
            return value
        except (ValueError, TypeError):
            logger.warning(f"Invalid {env_var} value, using default {default}")
            return default

    def _validate_and_set_config(self):
        """Validate and set all configuration values."""
        self.USER_AGENT = environ.get("USER_AGENT", "feed-ingest/1.0 (+https://github.com/feed-ingest)")

        # HTTP request configuration
        self.HTTP_TIMEOUT = self._validate_positive_int("HTTP_TIMEOUT", 30, 1)
        self.MAX_REDIRECTS = self._validate_positive_int("MAX_REDIRECTS", 5, 0)

        # Freshness window for cached feeds
        self.CACHE_TIMEOUT_SECONDS = self._validate_positive_int("CACHE_TIMEOUT_SECONDS", 600, 1)

        base_dir = path.dirname(path.abspath(__file__))
        self.SITES_CONFIG_PATH = environ.get("SITES_CONFIG_PATH", path.join(base_dir, "sites.yaml"))

    def _safe_read_yaml(self, file_path: str, max_size: int, kind: str) -> Any | None:
        """Safely read a YAML file with consistent validation.

        Args:
            file_path: Path to the YAML file
            max_size: Maximum allowed file size in bytes
            kind: Short label for logging context (e.g. 'sites')

        Returns:
            Parsed YAML (mapping/list/primitive) or None on failure.
        """
        try:
            if not path.isfile(file_path):
                logger.warning(f"{kind.capitalize()} file not found at {file_path}")
                return None
            if not access(file_path, R_OK):
                logger.error(f"No read permission for {kind} file at {file_path}")
                return None
            size = path.getsize(file_path)
            if size > max_size:
                logger.error(f"{kind.capitalize()} file too large: {size} bytes (limit: {max_size} bytes)")
                return None
            with open(file_path, 'r') as f:
                data = yaml.safe_load(f)
            if not data:
                logger.warning(f"Empty or invalid YAML in {kind} file {file_path}")
                return None
            return data
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML in {kind} file {file_path}: {e}")
        except OSError as e:
            logger.error(f"Error loading {kind} file {file_path}: {e}")
        return None

    def _site_from_mapping(self, entry: Any, seen_ids: set) -> SiteConfig | None:
        """Build a SiteConfig from one sites.yaml entry, or None if it is unusable."""
        if not isinstance(entry, dict):
            logger.warning(f"Skipping invalid site configuration: {entry}")
            return None

        raw_id = entry.get('id')
        try:
            site_id = int(str(raw_id).strip())
        except (TypeError, ValueError):
            logger.warning(f"Skipping site with missing or non-integer id: {entry}")
            return None
        if site_id in seen_ids:
            logger.warning(f"Skipping site with duplicate id {site_id}")
            return None

        feed_link = str(entry.get('feed_link') or '').strip()
        if not validate_url(feed_link):
            logger.warning(f"Skipping site {site_id} with invalid feed_link '{feed_link}'")
            return None

        feed_format = entry.get('feed_format')
        if feed_format is not None:
            feed_format = str(feed_format).strip().lower() or None
        if feed_format and feed_format not in KNOWN_FEED_FORMATS:
            logger.warning(
                "Site %s declares unknown feed_format '%s'; format will be autodetected",
                site_id,
                feed_format,
            )

        return SiteConfig(
            id=site_id,
            feed_link=feed_link,
            feed_format=feed_format,
            feed_name=str(entry.get('feed_name') or ''),
            site_name=str(entry.get('site_name') or ''),
            site_link=str(entry.get('site_link') or ''),
            description=str(entry.get('description') or ''),
        )

    def load_sites(self, sites_path: str) -> List[SiteConfig]:
        """Read and validate the site list from a YAML file.

        Any failure results in an empty list; invalid entries are skipped.
        """
        config_data = self._safe_read_yaml(sites_path, SITES_FILE_SIZE_LIMIT, 'sites')
        if not config_data:
            return []

        sites_section = config_data.get('sites') if isinstance(config_data, dict) else None
        if not isinstance(sites_section, list):
            logger.warning(f"No valid sites found in {sites_path}")
            return []

        sites: List[SiteConfig] = []
        seen_ids: set = set()
        for entry in sites_section:
            site = self._site_from_mapping(entry, seen_ids)
            if site is None:
                continue
            seen_ids.add(site.id)
            sites.append(site)
            logger.debug(f"Loaded site {site.id}: {site.feed_link}")

        logger.info(f"Successfully loaded {len(sites)} sites from {sites_path}")
        return sites

    def _load_sites(self) -> None:
        """Populate self.SITES from SITES_CONFIG_PATH."""
        self.SITES = self.load_sites(self.SITES_CONFIG_PATH)

    def reload_sites(self):
        """Reload the site list from the configuration file."""
        logger.info("Reloading site configuration")
        self._load_sites()

    def get_config_summary(self) -> Dict[str, Any]:
        """Get a summary of current configuration for logging/debugging."""
        return {
            "sites_config_path": self.SITES_CONFIG_PATH,
            "site_count": len(self.SITES),
            "http_timeout": self.HTTP_TIMEOUT,
            "max_redirects": self.MAX_REDIRECTS,
            "cache_timeout_seconds": self.CACHE_TIMEOUT_SECONDS,
            "user_agent": self.USER_AGENT,
        }

# Global configuration instance
config = Config()
