"""
ntfy notification dispatcher.

Before posting, the relay's cache of recent messages for the topic is
checked for a message carrying the same content, which keeps delivery
at most once even when local state was lost or another instance already
sent it.
"""

import base64
import enum
import json
import logging
import re
from typing import Any

from rss_ntfy.entities import decode_unicode_escapes
from rss_ntfy.errors import ComputeError, DispatchError, TransportError
from rss_ntfy.fingerprint import fingerprint
from rss_ntfy.http_client import HttpClient
from rss_ntfy.rss_parser import FeedSnapshot

logger = logging.getLogger(__name__)

SLUG_SEPARATORS = re.compile(r"""["'&<>,.()/\s]+""")


class DispatchResult(enum.Enum):
    """Outcome of a dispatch attempt."""

    SENT = "sent"
    SUPPRESSED = "suppressed"
    DRY_RUN = "dry-run"


def shortcodify(text: str) -> str:
    """
    Turn arbitrary text into a URL-safe topic name.

    Splits on quotes, ``& < > , . ( ) /`` and whitespace and joins the
    remaining fragments with ``-``.

    Examples
    --------
    >>> shortcodify("Example Blog (news)")
    'Example-Blog-news'
    """
    return "-".join(part for part in SLUG_SEPARATORS.split(text) if part)


def encode_header(value: str) -> str:
    """Encode a header value as an RFC 2047 word when it isn't plain ASCII."""
    if value.isascii():
        return value
    encoded = base64.b64encode(value.encode("utf-8")).decode("ascii")
    return f"=?UTF-8?B?{encoded}?="


def message_fingerprint(message: dict[str, Any]) -> int:
    """
    Fingerprint a cached relay message the way feed content is fingerprinted.

    ``url`` is read first, falling back to ntfy's ``click`` field.
    """
    title = str(message.get("title") or "")
    body = str(message.get("message") or "")
    url = str(message.get("url") or message.get("click") or "")
    return fingerprint(
        decode_unicode_escapes(title),
        decode_unicode_escapes(body),
        decode_unicode_escapes(url),
    )


class NtfyNotifier:
    """
    Sends feed updates to an ntfy server.

    Attributes
    ----------
    server : str
        Base URL of the ntfy server, without trailing slash.
    priority : int
        Priority for posted notifications (1-5).
    dry_run : bool
        Skip the final post.
    """

    def __init__(
        self,
        http: HttpClient,
        server: str,
        priority: int = 3,
        dry_run: bool = False,
    ):
        """
        Initialize the notifier.

        Parameters
        ----------
        http : HttpClient
            Client used to talk to the server.
        server : str
            Base URL of the ntfy server.
        priority : int
            Notification priority, 1 (min) to 5 (max).
        dry_run : bool
            If True, everything runs except the final post.
        """
        self.http = http
        self.server = server.rstrip("/")
        self.priority = priority
        self.dry_run = dry_run

    def topic_url(self, topic: str) -> str:
        """URL of ``topic`` on the server."""
        return f"{self.server}/{shortcodify(topic)}"

    async def fetch_cached(self, topic: str) -> list[dict[str, Any]]:
        """
        Fetch the server's cached messages for ``topic``.

        Raises
        ------
        DispatchError
            If the cache cannot be fetched.
        """
        url = f"{self.topic_url(topic)}/json"
        try:
            body = await self.http.get_text(url, params={"poll": "1"})
        except TransportError as e:
            raise DispatchError(f"Cannot poll relay cache for '{topic}': {e}") from e

        messages = []
        for line in body.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                message = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Skipping malformed cache line: %s", line[:80])
                continue
            if not isinstance(message, dict):
                continue
            if message.get("event", "message") != "message":
                continue
            messages.append(message)

        logger.debug("Relay holds %d cached message(s) for '%s'", len(messages), topic)
        return messages

    async def is_cached(self, topic: str, content_fingerprint: int) -> bool:
        """Tell whether the relay already holds a message with this content."""
        for message in await self.fetch_cached(topic):
            try:
                cached_fingerprint = message_fingerprint(message)
            except ComputeError as e:
                logger.debug("Skipping unusable cached message: %s", e)
                continue
            if cached_fingerprint == content_fingerprint:
                logger.debug("Found matching cached message %s", message.get("id", "?"))
                return True
        return False

    def build_headers(self, snapshot: FeedSnapshot) -> dict[str, str]:
        """Headers for a notification about ``snapshot``."""
        actions = json.dumps(
            [{"action": "view", "label": "Open", "url": snapshot.entry_link}],
            ensure_ascii=False,
        )
        return {
            "Title": encode_header(snapshot.feed_title),
            "Click": encode_header(snapshot.entry_link),
            "Actions": encode_header(actions),
            "Priority": str(self.priority),
        }

    async def send(self, topic: str, snapshot: FeedSnapshot) -> None:
        """
        Post a notification for ``snapshot`` to ``topic``.

        Raises
        ------
        DispatchError
            On transport failure or an error status.
        """
        url = self.topic_url(topic)
        try:
            status = await self.http.post(
                url,
                data=snapshot.entry_title.encode("utf-8"),
                headers=self.build_headers(snapshot),
            )
        except TransportError as e:
            raise DispatchError(f"Cannot notify '{topic}': {e}") from e
        logger.debug("Relay answered %d for %s", status, url)

    async def reconcile_and_send(
        self,
        topic: str,
        snapshot: FeedSnapshot,
        content_fingerprint: int,
    ) -> DispatchResult:
        """
        Send ``snapshot`` unless the relay already delivered it.

        Parameters
        ----------
        topic : str
            Topic to notify; turned into a URL-safe name.
        snapshot : FeedSnapshot
            Feed content to announce.
        content_fingerprint : int
            Fingerprint of ``snapshot`` as stored in the dedup record.

        Returns
        -------
        DispatchResult
            SENT, SUPPRESSED if a cached message matches, or DRY_RUN.

        Raises
        ------
        DispatchError
            If polling the cache or posting fails.
        """
        if await self.is_cached(topic, content_fingerprint):
            logger.info(
                "Relay already has '%s' on '%s', not sending",
                snapshot.entry_title,
                shortcodify(topic),
            )
            return DispatchResult.SUPPRESSED

        if self.dry_run:
            logger.warning(
                "Dry run: would notify '%s' of '%s' (%s)",
                shortcodify(topic),
                snapshot.entry_title,
                snapshot.entry_link,
            )
            return DispatchResult.DRY_RUN

        await self.send(topic, snapshot)
        logger.info(
            "Sent notification to '%s': %s", shortcodify(topic), snapshot.entry_title
        )
        return DispatchResult.SENT
