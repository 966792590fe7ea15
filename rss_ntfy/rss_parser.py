"""
Tolerant RSS/Atom feed parsing.

Extracts the feed title and the first entry's title and link by plain
substring scanning, without an XML parser, so slightly broken markup
found in the wild still yields a result. Tolerated: attributes on any
tag, CDATA sections, entities, surrounding whitespace, arbitrary extra
entries. Anything that leaves one of the three fields empty (including
a missing closing tag) raises IncompleteFeedData.
"""

import logging
import re
from dataclasses import dataclass

from rss_ntfy.entities import decode
from rss_ntfy.errors import IncompleteFeedData

logger = logging.getLogger(__name__)

ATOM = "atom"
RSS = "rss"

HREF_ATTR_PATTERN = re.compile(r"""\bhref\s*=\s*["']([^"']*)["']""")


@dataclass(frozen=True)
class FeedSnapshot:
    """
    The newest entry of a feed, as seen in one fetch.

    Attributes
    ----------
    feed_title : str
        Channel-level title.
    entry_title : str
        Title of the first entry.
    entry_link : str
        Link of the first entry.
    kind : str
        ``"atom"`` or ``"rss"``.
    """

    feed_title: str
    entry_title: str
    entry_link: str
    kind: str = RSS


def _find_open_tag(text: str, tag: str, start: int = 0) -> tuple[int, int] | None:
    """
    Locate ``<tag>`` or ``<tag attr=...>`` in ``text``.

    Returns
    -------
    tuple[int, int] | None
        Offsets of the ``<`` and of the character after the closing ``>``.
    """
    needle = f"<{tag}"
    pos = text.find(needle, start)
    while pos != -1:
        after = pos + len(needle)
        if after < len(text) and (text[after] in ">/" or text[after].isspace()):
            end = text.find(">", after)
            if end == -1:
                return None
            return pos, end + 1
        pos = text.find(needle, after)
    return None


def _element_text(text: str, tag: str) -> str:
    """Raw text between the first ``<tag>`` and the following ``</tag>``."""
    found = _find_open_tag(text, tag)
    if found is None:
        return ""
    tag_start, content_start = found
    if text[tag_start:content_start].endswith("/>"):
        return ""
    content_end = text.find(f"</{tag}>", content_start)
    if content_end == -1:
        return ""
    # Another opening tag first means this one was never closed
    reopened = _find_open_tag(text, tag, content_start)
    if reopened is not None and reopened[0] < content_end:
        return ""
    return text[content_start:content_end]


def _first_link_href(text: str) -> str:
    """``href`` attribute of the first ``<link ...>`` tag."""
    found = _find_open_tag(text, "link")
    if found is None:
        return ""
    match = HREF_ATTR_PATTERN.search(text[found[0]:found[1]])
    return match.group(1) if match else ""


def _clean(raw: str) -> str:
    return decode(raw).strip()


def detect_kind(content: str) -> str:
    """Classify a feed document as Atom or RSS."""
    return ATOM if _find_open_tag(content, "entry") is not None else RSS


def parse_feed(content: str) -> FeedSnapshot:
    """
    Extract the feed title and first entry from a feed document.

    Parameters
    ----------
    content : str
        Raw feed document.

    Returns
    -------
    FeedSnapshot
        Decoded feed title, entry title and entry link.

    Raises
    ------
    IncompleteFeedData
        If any of the three fields cannot be extracted.
    """
    kind = detect_kind(content)
    entry_tag = "entry" if kind == ATOM else "item"

    close = content.find(f"</{entry_tag}>")
    channel = content if close == -1 else content[:close]
    feed_title = _clean(_element_text(channel, "title"))

    opened = _find_open_tag(content, entry_tag)
    entry = "" if opened is None else content[opened[0]:]
    entry_title = _clean(_element_text(entry, "title"))

    if kind == ATOM:
        entry_link = _clean(_first_link_href(entry))
    else:
        entry_link = _clean(_element_text(entry, "link"))

    missing = [
        name
        for name, value in (
            ("feed title", feed_title),
            ("entry title", entry_title),
            ("entry link", entry_link),
        )
        if not value
    ]
    if missing:
        raise IncompleteFeedData(
            f"{kind.upper()} feed is missing {', '.join(missing)}"
        )

    logger.debug(
        "Parsed %s feed '%s': first entry '%s' (%s)",
        kind,
        feed_title,
        entry_title,
        entry_link,
    )
    return FeedSnapshot(
        feed_title=feed_title,
        entry_title=entry_title,
        entry_link=entry_link,
        kind=kind,
    )
