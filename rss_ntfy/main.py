"""
Main entry point for RSS ntfy.

Checks each feed given on the command line once, in order, and exits
with the number of feeds that could not be processed.
"""

import argparse
import asyncio
import enum
import logging
import sys
from urllib.parse import urlparse

import coloredlogs
import yaml
from pydantic import ValidationError

from rss_ntfy.config import DEFAULT_SERVER, AppConfig, load_config
from rss_ntfy.errors import (
    ComputeError,
    DispatchError,
    FeedError,
    IncompleteFeedData,
    InvalidFeedUrl,
    NoFeedDiscovered,
    StoreError,
    ToolUnavailable,
    TransportError,
)
from rss_ntfy.fingerprint import fingerprint
from rss_ntfy.http_client import HttpClient, redact_proxy_url
from rss_ntfy.locator import FeedLocator
from rss_ntfy.notifier import DispatchResult, NtfyNotifier, shortcodify
from rss_ntfy.rss_parser import FeedSnapshot, parse_feed
from rss_ntfy.storage import Storage

logger = logging.getLogger(__name__)

# Allowed URL schemes for feed references
ALLOWED_URL_SCHEMES = frozenset({"http", "https"})

MAX_EXIT_STATUS = 255


class FeedOutcome(enum.Enum):
    """Result of checking one feed."""

    NOTIFIED = "notified"
    UNCHANGED = "unchanged"
    SUPPRESSED = "suppressed"
    DRY_RUN = "dry-run"


_DISPATCH_OUTCOMES = {
    DispatchResult.SENT: FeedOutcome.NOTIFIED,
    DispatchResult.SUPPRESSED: FeedOutcome.SUPPRESSED,
    DispatchResult.DRY_RUN: FeedOutcome.DRY_RUN,
}


def validate_feed_url(url: str) -> str:
    """
    Check that a feed reference is an http(s) URL with a host.

    Raises
    ------
    InvalidFeedUrl
        If the URL is unusable.
    """
    try:
        parsed = urlparse(url.strip())
    except ValueError as e:
        raise InvalidFeedUrl(f"Invalid feed URL '{url}': {e}") from e
    if parsed.scheme.lower() not in ALLOWED_URL_SCHEMES or not parsed.netloc:
        raise InvalidFeedUrl(f"Not an http(s) feed URL: '{url}'")
    return url.strip()


class FeedNotifier:
    """
    Main RSS ntfy application.

    Coordinates feed location, parsing, dedup storage and notifications.
    The topic is fixed by configuration or, if unset, taken from the first
    feed parsed in the run and kept for the following feeds.
    """

    def __init__(self, config: AppConfig):
        """
        Initialize the application.

        Parameters
        ----------
        config : AppConfig
            Validated configuration.
        """
        self.config = config
        self.topic: str | None = config.topic
        self.http: HttpClient | None = None
        self.locator: FeedLocator | None = None
        self.storage: Storage | None = None
        self.notifier: NtfyNotifier | None = None

    def start(self) -> None:
        """
        Create the components.

        Raises
        ------
        StoreError
            If the state directory cannot be created.
        """
        proxy_url = self.config.proxy
        if proxy_url:
            logger.info("Using proxy: %s", redact_proxy_url(proxy_url))

        self.http = HttpClient(
            timeout=self.config.request_timeout,
            max_retries=self.config.max_retries,
            user_agent=self.config.user_agent,
            proxy_url=proxy_url,
        )
        self.locator = FeedLocator(self.http, max_hops=self.config.max_hops)
        self.storage = Storage(self.config.state_path)
        self.storage.initialize()
        self.notifier = NtfyNotifier(
            self.http,
            server=self.config.server,
            priority=self.config.priority,
            dry_run=self.config.dry_run,
        )

    async def close(self) -> None:
        """Release network resources."""
        if self.http:
            await self.http.close()

    async def __aenter__(self) -> "FeedNotifier":
        """Async context manager entry."""
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def _topic_for(self, snapshot: FeedSnapshot) -> str:
        """Return the run's topic, deriving it from ``snapshot`` the first time."""
        if self.topic is None:
            derived = shortcodify(snapshot.feed_title)
            if not derived:
                raise IncompleteFeedData(
                    f"Cannot derive a topic from feed title '{snapshot.feed_title}'"
                )
            logger.info("Using topic '%s' derived from feed title", derived)
            self.topic = derived
        elif not shortcodify(self.topic):
            raise FeedError(f"Topic '{self.topic}' has no usable characters")
        return self.topic

    async def check_feed(self, url: str) -> FeedOutcome:
        """
        Run the whole pipeline for one feed.

        Parameters
        ----------
        url : str
            Feed or web page URL.

        Returns
        -------
        FeedOutcome
            What happened to the feed.

        Raises
        ------
        FeedError, TransportError, DispatchError
            If this feed cannot be processed this time.
        ToolUnavailable, ComputeError, StoreError
            If the environment is broken and the run must stop.
        """
        if not self.locator or not self.storage or not self.notifier:
            raise RuntimeError("Components not initialized")

        url = validate_feed_url(url)
        resolved = await self.locator.resolve(url)
        snapshot = parse_feed(resolved.content)
        topic = self._topic_for(snapshot)

        content = fingerprint(
            snapshot.feed_title, snapshot.entry_title, snapshot.entry_link
        )
        previous = self.storage.read(topic, snapshot.feed_title)
        if previous == content:
            logger.info(
                "Feed '%s' unchanged since last check", snapshot.feed_title
            )
            return FeedOutcome.UNCHANGED

        logger.info(
            "Feed '%s' has a new entry: %s", snapshot.feed_title, snapshot.entry_title
        )
        self.storage.write(topic, snapshot.feed_title, content)
        recorded = self.storage.read(topic, snapshot.feed_title)
        if recorded is None:
            raise StoreError(
                f"Record for '{snapshot.feed_title}' vanished right after writing"
            )

        try:
            result = await self.notifier.reconcile_and_send(topic, snapshot, recorded)
        except DispatchError:
            # Let the next run try again
            self.storage.restore(topic, snapshot.feed_title, previous)
            raise

        return _DISPATCH_OUTCOMES[result]

    async def run(self, urls: list[str]) -> int:
        """
        Check every feed in order.

        Parameters
        ----------
        urls : list[str]
            Feed or web page URLs.

        Returns
        -------
        int
            Number of feeds that failed. When the run is aborted, the
            feed being processed and all remaining feeds count as failed.
        """
        failures = 0
        for index, url in enumerate(urls):
            try:
                outcome = await self.check_feed(url)
            except (ToolUnavailable, ComputeError, StoreError) as e:
                logger.critical("Aborting run while processing '%s': %s", url, e)
                return failures + len(urls) - index
            except NoFeedDiscovered as e:
                failures += 1
                logger.error(
                    "No feed for '%s' (fallback %s): %s", url, e.fallback_url, e
                )
            except (TransportError, FeedError, DispatchError) as e:
                failures += 1
                logger.error("Failed to process feed '%s': %s", url, e)
            else:
                logger.info("Feed '%s': %s", url, outcome.value)

        if failures:
            logger.warning("%d of %d feed(s) failed", failures, len(urls))
        return failures


async def run(config: AppConfig, urls: list[str]) -> int:
    """Check ``urls`` once with ``config``; return the failure count."""
    try:
        async with FeedNotifier(config) as app:
            return await app.run(urls)
    except StoreError as e:
        logger.critical("%s", e)
        return len(urls)


def setup_logging(verbosity: int = 0, quiet: bool = False) -> None:
    """
    Configure application logging.

    Parameters
    ----------
    verbosity : int
        0 logs warnings, 1 adds info, 2 or more adds debug messages.
    quiet : bool
        If True, log errors only; overrides ``verbosity``.
    """
    if quiet:
        level = logging.ERROR
    elif verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    coloredlogs.install(
        level=level,
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    """Command-line parser."""
    parser = argparse.ArgumentParser(
        prog="rss-ntfy",
        description="Push the newest entry of RSS/Atom feeds to an ntfy topic",
    )
    parser.add_argument(
        "urls",
        nargs="+",
        metavar="URL",
        help="Feed URL, or web page advertising a feed",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Do everything except sending the notification",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only log errors",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (repeatable)",
    )
    parser.add_argument(
        "-p",
        "--priority",
        type=int,
        choices=range(1, 6),
        metavar="{1-5}",
        help="Notification priority (default: 3)",
    )
    parser.add_argument(
        "-s",
        "--server",
        help=f"ntfy server URL (default: {DEFAULT_SERVER})",
    )
    parser.add_argument(
        "-t",
        "--topic",
        help="ntfy topic (default: derived from the first feed title)",
    )
    parser.add_argument(
        "-c",
        "--config",
        help="Optional YAML configuration file",
    )
    parser.add_argument(
        "--state-dir",
        help="Directory for dedup records",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    setup_logging(args.verbose, args.quiet)

    overrides = {
        "server": args.server,
        "priority": args.priority,
        "topic": args.topic,
        "state_dir": args.state_dir,
        "dry_run": True if args.debug else None,
    }
    try:
        config = load_config(args.config, overrides)
    except FileNotFoundError as e:
        logger.error("%s", e)
        sys.exit(1)
    except (yaml.YAMLError, ValidationError, ValueError) as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)

    failures = asyncio.run(run(config, args.urls))
    sys.exit(min(failures, MAX_EXIT_STATUS))


if __name__ == "__main__":
    main()
