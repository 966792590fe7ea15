"""
File-backed storage of last notified content.

Each (topic, feed) pair owns one small text file holding the fingerprint
of the content last handed to the relay, so an unchanged feed is not
pushed again after a restart.

Layout::

    <root>/<fingerprint(topic)>/<fingerprint(feed_title)>

There is no locking: two runs working on the same topic and feed at the
same time may overwrite each other's record.
"""

import logging
import os
import tempfile
from pathlib import Path

from rss_ntfy.errors import StoreError
from rss_ntfy.fingerprint import fingerprint

logger = logging.getLogger(__name__)


class Storage:
    """
    Dedup records kept as files under a root directory.
    """

    def __init__(self, root: str | Path):
        """
        Initialize storage with its root directory.

        Parameters
        ----------
        root : str | Path
            Directory holding the records. ``~`` is expanded.
        """
        self.root = Path(root).expanduser()

    def initialize(self) -> None:
        """
        Create the root directory if it doesn't exist.

        Raises
        ------
        StoreError
            If the directory cannot be created.
        """
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot create state directory {self.root}: {e}") from e
        logger.debug("Using state directory %s", self.root)

    def record_path(self, topic: str, feed_title: str) -> Path:
        """Path of the record for ``topic`` and ``feed_title``."""
        return self.root / str(fingerprint(topic)) / str(fingerprint(feed_title))

    def read(self, topic: str, feed_title: str) -> int | None:
        """
        Read the last stored content fingerprint.

        Parameters
        ----------
        topic : str
            Relay topic.
        feed_title : str
            Feed title.

        Returns
        -------
        int | None
            The stored fingerprint, or None if there is no record.

        Raises
        ------
        StoreError
            If the record exists but cannot be read or parsed.
        """
        path = self.record_path(topic, feed_title)
        try:
            text = path.read_text(encoding="ascii")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise StoreError(f"Cannot read record {path}: {e}") from e

        try:
            return int(text.strip())
        except ValueError as e:
            raise StoreError(f"Corrupt record {path}: {text[:40]!r}") from e

    def write(self, topic: str, feed_title: str, value: int) -> None:
        """
        Store ``value`` as the content fingerprint for a topic and feed.

        The record is written to a temporary file next to it and renamed
        into place.

        Raises
        ------
        StoreError
            If the record cannot be written.
        """
        path = self.record_path(topic, feed_title)
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="ascii",
                dir=path.parent,
                prefix=f".{path.name}.",
                delete=False,
            ) as f:
                tmp_name = f.name
                f.write(f"{value}\n")
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise StoreError(f"Cannot write record {path}: {e}") from e
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)

        logger.debug("Stored fingerprint %d at %s", value, path)

    def forget(self, topic: str, feed_title: str) -> None:
        """
        Remove the record for a topic and feed, if any.

        Raises
        ------
        StoreError
            If an existing record cannot be removed.
        """
        path = self.record_path(topic, feed_title)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot remove record {path}: {e}") from e
        logger.debug("Removed record %s", path)

    def restore(self, topic: str, feed_title: str, value: int | None) -> None:
        """Put back a previously read record; None removes it."""
        if value is None:
            self.forget(topic, feed_title)
        else:
            self.write(topic, feed_title, value)
