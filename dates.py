"""Compact date helpers shared by the event reader and the refiner."""

from __future__ import annotations

from datetime import datetime

from errors import ParseError

_COMPACT_FORMAT = "%Y%m%d"
_ISO_FORMAT = "%Y-%m-%d"


def to_iso_date(compact: str) -> str:
    """Convert ``YYYYMMDD`` into ``YYYY-MM-DD``.

    Only the exact eight-digit form is accepted; ``strptime`` alone would
    also take unpadded values such as ``2024214``.
    """
    if not isinstance(compact, str) or len(compact) != 8 or not compact.isdigit():
        raise ParseError(f"Expected an 8-digit date, got {compact!r}")
    try:
        parsed = datetime.strptime(compact, _COMPACT_FORMAT)
    except ValueError as exc:
        raise ParseError(f"Invalid calendar date {compact!r}: {exc}") from exc
    return parsed.strftime(_ISO_FORMAT)


def derive_lookup_date(timestamp: str) -> str:
    """Turn a crawl timestamp such as ``"D20240214 103015"`` into ``2024-02-14``.

    The first whitespace-separated token carries the date behind a
    one-character prefix.
    """
    if not isinstance(timestamp, str) or not timestamp.strip():
        raise ParseError(f"Empty or non-string timestamp: {timestamp!r}")
    token = timestamp.split(" ")[0]
    return to_iso_date(token[1:])
