"""Admissibility check and text normalization for fetched catalog records."""

from __future__ import annotations

import logging
import re

from dates import to_iso_date
from errors import ParseError
from models import RawRecord, RefinedRecord

LOGGER = logging.getLogger(__name__)

_LINE_BREAK = re.compile(r"\r\n|[\r\n]")

# Quotes and backslashes break the downstream fixed-width consumer.
SUBSTITUTIONS: dict[str, str] = {
    "'": "^",
    '"': "^",
    "\\": " " * 11,
}


def escape_text(value: str) -> str:
    for old, new in SUBSTITUTIONS.items():
        value = value.replace(old, new)
    return value


def collapse_newlines(value: str | None) -> str | None:
    if value is None:
        return None
    return _LINE_BREAK.sub(" ", value)


def build_search_text(index_content: str, introduction: str | None, review: str | None) -> str:
    """Concatenate the content fields that feed full-text search.

    When both an introduction and a publisher review exist, only the
    introduction is appended.
    """
    if introduction is not None:
        return index_content + introduction
    if review is not None:
        return index_content + review
    return index_content


def refine(raw: RawRecord) -> RefinedRecord | None:
    """Return the index-ready record, or ``None`` when it has no table of contents."""
    if raw.index_content is None:
        LOGGER.info("Dropping isbn=%s: no table of contents", raw.isbn)
        return None

    title = _normalize(raw.title)
    index_content = _normalize(raw.index_content)
    introduction = _normalize_optional(raw.introduction)
    review = _normalize_optional(raw.publisher_review)

    try:
        pub_date: str | None = to_iso_date(raw.pub_date)
    except ParseError as exc:
        LOGGER.warning("Could not canonicalize pub date for isbn=%s: %s", raw.isbn, exc)
        pub_date = None

    return RefinedRecord(
        isbn=collapse_newlines(raw.isbn) or "",
        title=title,
        author=collapse_newlines(raw.author),
        price=raw.price,
        publisher=collapse_newlines(raw.publisher) or "",
        pub_date=pub_date,
        purchase_url=collapse_newlines(raw.purchase_url) or "",
        image_url=collapse_newlines(raw.image_url),
        index_content=index_content,
        introduction=introduction,
        publisher_review=review,
        middle_category=collapse_newlines(raw.middle_category),
        detail_category=collapse_newlines(raw.detail_category),
        search=build_search_text(index_content, introduction, review),
    )


def _normalize(value: str) -> str:
    return collapse_newlines(escape_text(value)) or ""


def _normalize_optional(value: str | None) -> str | None:
    return None if value is None else _normalize(value)
