"""
Feed location discovery.

Turns a URL that may point at an HTML page into the URL of the feed it
advertises through a ``<link rel="alternate">`` tag in its ``<head>``.
"""

import logging
import re
from dataclasses import dataclass
from urllib.parse import urlparse

from rss_ntfy.errors import NoFeedDiscovered, TooManyHops, TransportError
from rss_ntfy.http_client import HttpClient

logger = logging.getLogger(__name__)

# Leading markup that identifies a document as a feed
FEED_PREFIXES = ("<?xml", "<rss", "<feed")

FEED_LINK_TYPES = frozenset({"application/rss+xml", "application/atom+xml"})

LINK_TAG_PATTERN = re.compile(r"<link\b[^>]*>", re.IGNORECASE)
TYPE_ATTR_PATTERN = re.compile(r"""\btype\s*=\s*["']([^"']*)["']""", re.IGNORECASE)
HREF_ATTR_PATTERN = re.compile(r"""\bhref\s*=\s*["']([^"']*)["']""", re.IGNORECASE)


@dataclass(frozen=True)
class ResolvedFeed:
    """
    A URL known to serve feed content.

    Attributes
    ----------
    url : str
        URL the feed content was fetched from.
    content : str
        The fetched feed document.
    hops : int
        Number of discovery hops followed to reach ``url``.
    """

    url: str
    content: str
    hops: int = 0


def is_feed_content(content: str) -> bool:
    """Tell whether a response body is a feed rather than a web page."""
    head = content.lstrip("\ufeff \t\r\n")
    return head.startswith(FEED_PREFIXES)


def find_feed_link(content: str) -> str | None:
    """
    Find the first advertised RSS/Atom feed link in an HTML ``<head>``.

    Parameters
    ----------
    content : str
        HTML page.

    Returns
    -------
    str | None
        The raw ``href`` value, or None if the head advertises no feed.
    """
    end = content.lower().find("</head>")
    head = content if end == -1 else content[:end]

    for tag in LINK_TAG_PATTERN.findall(head):
        type_match = TYPE_ATTR_PATTERN.search(tag)
        if not type_match or type_match.group(1).strip().lower() not in FEED_LINK_TYPES:
            continue
        href_match = HREF_ATTR_PATTERN.search(tag)
        if href_match and href_match.group(1).strip():
            return href_match.group(1).strip()
    return None


def absolutize(base_url: str, href: str) -> str:
    """
    Resolve a discovered ``href`` against the page it was found on.

    Absolute URLs are kept, root-relative paths get the page's scheme and
    host, anything else is appended to the page URL.
    """
    parsed_href = urlparse(href)
    if parsed_href.scheme and parsed_href.netloc:
        return href

    base = urlparse(base_url)
    if href.startswith("//"):
        return f"{base.scheme}:{href}"
    if href.startswith("/"):
        return f"{base.scheme}://{base.netloc}{href}"
    return f"{base_url.rstrip('/')}/{href}"


class FeedLocator:
    """
    Resolves feed references to feed content.

    Follows at most ``max_hops`` discovery links before giving up.
    """

    def __init__(self, http: HttpClient, max_hops: int = 1):
        """
        Initialize the locator.

        Parameters
        ----------
        http : HttpClient
            Client used to fetch pages and feeds.
        max_hops : int
            Maximum number of discovery links to follow.
        """
        self.http = http
        self.max_hops = max_hops

    async def resolve(self, url: str) -> ResolvedFeed:
        """
        Fetch ``url`` and follow feed discovery links until a feed is found.

        Parameters
        ----------
        url : str
            Feed or web page URL given by the operator.

        Returns
        -------
        ResolvedFeed
            The feed URL and its content.

        Raises
        ------
        TransportError
            If ``url`` itself cannot be fetched.
        NoFeedDiscovered
            If no feed can be reached from ``url``. ``fallback_url`` is
            set to ``url``.
        TooManyHops
            If discovery needs more than ``max_hops`` hops.
        """
        current = url
        for hop in range(self.max_hops + 1):
            try:
                content = await self.http.get_text(current)
            except TransportError as e:
                if hop == 0:
                    raise
                raise NoFeedDiscovered(
                    f"Discovered feed {current} could not be fetched: {e}",
                    fallback_url=url,
                ) from e

            if is_feed_content(content):
                if hop:
                    logger.info("Resolved %s to feed %s", url, current)
                return ResolvedFeed(url=current, content=content, hops=hop)

            href = find_feed_link(content)
            if href is None:
                raise NoFeedDiscovered(
                    f"No feed found at {current}", fallback_url=url
                )

            discovered = absolutize(current, href)
            logger.debug("Page %s advertises feed %s", current, discovered)
            current = discovered

        raise TooManyHops(
            f"Gave up locating a feed from {url} after {self.max_hops} hop(s)",
            fallback_url=url,
        )
