"""
Deterministic content fingerprints.

A fingerprint is the POSIX ``cksum`` of the concatenated strings
(CRC plus byte count), spread with an integer mixing step and wrapped
to a signed 64-bit integer. Values match what ``printf %s ... | cksum``
followed by 64-bit shell arithmetic would produce, so state written by
shell tooling stays valid.
"""

import logging
from collections.abc import Callable

from rss_ntfy.errors import ComputeError, ToolUnavailable

logger = logging.getLogger(__name__)

CRC_POLYNOMIAL = 0x04C11DB7
MASK_32 = 0xFFFFFFFF
MASK_64 = 0xFFFFFFFFFFFFFFFF
SIGN_BIT_64 = 1 << 63


def _build_crc_table() -> tuple[int, ...]:
    table = []
    for byte in range(256):
        crc = byte << 24
        for _ in range(8):
            if crc & 0x80000000:
                crc = ((crc << 1) ^ CRC_POLYNOMIAL) & MASK_32
            else:
                crc = (crc << 1) & MASK_32
        table.append(crc)
    return tuple(table)


CRC_TABLE = _build_crc_table()


def posix_cksum(data: bytes) -> tuple[int, int]:
    """
    Compute the POSIX ``cksum`` checksum of ``data``.

    Parameters
    ----------
    data : bytes
        Bytes to checksum.

    Returns
    -------
    tuple[int, int]
        The 32-bit CRC and the byte count, as ``cksum`` prints them.
    """
    crc = 0
    for byte in data:
        crc = ((crc << 8) & MASK_32) ^ CRC_TABLE[(crc >> 24) ^ byte]

    # The length is folded in least significant byte first
    length = len(data)
    while length:
        crc = ((crc << 8) & MASK_32) ^ CRC_TABLE[(crc >> 24) ^ (length & 0xFF)]
        length >>= 8

    return (~crc) & MASK_32, len(data)


def _to_signed_64(value: int) -> int:
    value &= MASK_64
    if value & SIGN_BIT_64:
        value -= 1 << 64
    return value


def mix(value: int) -> int:
    """Spread the bits of a checksum, wrapping at 64 bits."""
    return _to_signed_64(value + (value << 6) + (value << 16) - value)


def fingerprint(
    *parts: str,
    checksum: Callable[[bytes], tuple[int, int]] | None = posix_cksum,
) -> int:
    """
    Fingerprint one or more strings.

    The parts are concatenated without separator, so the result depends
    on their order but not on where one part ends and the next begins.

    Parameters
    ----------
    *parts : str
        Strings to fingerprint.
    checksum : Callable[[bytes], tuple[int, int]] | None
        Checksum primitive returning ``(check_value, size)``.

    Returns
    -------
    int
        Signed 64-bit fingerprint.

    Raises
    ------
    ToolUnavailable
        If no usable checksum primitive is given.
    ComputeError
        If the input cannot be encoded or the checksum fails.
    """
    if checksum is None or not callable(checksum):
        raise ToolUnavailable("No checksum primitive available for fingerprinting")

    try:
        data = "".join(parts).encode("utf-8")
    except UnicodeEncodeError as e:
        raise ComputeError(f"Cannot encode fingerprint input: {e}") from e

    try:
        check_value, size = checksum(data)
    except Exception as e:
        raise ComputeError(f"Checksum failed: {e}") from e

    return mix(check_value + size)
