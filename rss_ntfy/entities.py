"""
Character entity normalization.

Turns HTML named and numeric references, XML predefined entities and
literal ``\\uXXXX`` escapes into the characters they stand for, and
unwraps CDATA sections. Decoding runs until nothing decodable is left,
so decoding twice gives the same result as decoding once.
"""

import logging
import re
from html.entities import name2codepoint

logger = logging.getLogger(__name__)

CDATA_START = "<![CDATA["
CDATA_END = "]]>"

# HTML 4 names plus the one XML predefined entity HTML 4 lacks
NAMED_ENTITIES: dict[str, str] = {name: chr(cp) for name, cp in name2codepoint.items()}
NAMED_ENTITIES["apos"] = "'"

MAX_CODEPOINT = 0x10FFFF

ENTITY_PATTERN = re.compile(
    r"&(?:"
    r"#(?P<dec>[0-9]{1,8})"
    r"|#[xX](?P<hex>[0-9a-fA-F]{1,6})"
    r"|(?P<name>[A-Za-z][A-Za-z0-9]{1,31})"
    r");"
)

UNICODE_ESCAPE_PATTERN = re.compile(
    r"\\u(?P<high>[dD][89abAB][0-9a-fA-F]{2})\\u(?P<low>[dD][c-fC-F][0-9a-fA-F]{2})"
    r"|\\u(?P<single>[0-9a-fA-F]{4})"
)


def _is_surrogate(codepoint: int) -> bool:
    return 0xD800 <= codepoint <= 0xDFFF


def _codepoint_to_char(codepoint: int) -> str | None:
    if codepoint > MAX_CODEPOINT or _is_surrogate(codepoint):
        return None
    return chr(codepoint)


def _replace_entity(match: re.Match) -> str:
    if match.group("dec") is not None:
        char = _codepoint_to_char(int(match.group("dec")))
    elif match.group("hex") is not None:
        char = _codepoint_to_char(int(match.group("hex"), 16))
    else:
        char = NAMED_ENTITIES.get(match.group("name"))
    return match.group(0) if char is None else char


def _replace_unicode_escape(match: re.Match) -> str:
    if match.group("high") is not None:
        high = int(match.group("high"), 16)
        low = int(match.group("low"), 16)
        return chr(0x10000 + ((high - 0xD800) << 10) + (low - 0xDC00))
    codepoint = int(match.group("single"), 16)
    if _is_surrogate(codepoint):
        # Lone surrogates cannot be encoded later on
        return match.group(0)
    return chr(codepoint)


def extract_cdata(text: str) -> str:
    """
    Return the content of the first CDATA section, or ``text`` unchanged.

    Parameters
    ----------
    text : str
        Text possibly containing ``<![CDATA[ ... ]]>``.

    Returns
    -------
    str
        The section content when a complete section is present.
    """
    start = text.find(CDATA_START)
    if start == -1:
        return text
    start += len(CDATA_START)
    end = text.find(CDATA_END, start)
    if end == -1:
        return text
    return text[start:end]


def decode_unicode_escapes(text: str) -> str:
    """
    Decode literal ``\\uXXXX`` escapes until none are left.

    Surrogate pairs are combined; lone surrogates are kept as written.
    """
    while True:
        decoded = UNICODE_ESCAPE_PATTERN.sub(_replace_unicode_escape, text)
        if decoded == text:
            return decoded
        text = decoded


def decode(text: str) -> str:
    """
    Normalize entities, escapes and CDATA in ``text``.

    XML and HTML entities share a single table, so an XML-decoded result
    is itself HTML-decoded (``&amp;eacute;`` becomes ``é``). Unknown
    entities are left as they are.

    Parameters
    ----------
    text : str
        Raw text extracted from a feed or relay message.

    Returns
    -------
    str
        Text with no decodable entity, escape or CDATA section left.
    """
    while True:
        decoded = extract_cdata(text)
        decoded = ENTITY_PATTERN.sub(_replace_entity, decoded)
        decoded = UNICODE_ESCAPE_PATTERN.sub(_replace_unicode_escape, decoded)
        if decoded == text:
            return decoded
        text = decoded
