"""Shared typed models for the enrichment pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Placeholder the book index has always stored for missing text fields.
ABSENT_PLACEHOLDER = "없음"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """One upstream change notification with its new attribute snapshot."""

    event_name: str
    new_image: dict[str, Any]


@dataclass(frozen=True, slots=True)
class IndexHit:
    """A single search hit; ``source`` is the opaque ``_source`` mapping."""

    doc_id: str | None
    source: dict[str, Any]


@dataclass(frozen=True, slots=True)
class SearchPage:
    total: int
    hits: list[IndexHit]


@dataclass(frozen=True, slots=True)
class RawRecord:
    """One catalog fetch result. ``None`` marks a field the source did not have."""

    isbn: str
    title: str
    author: str | None
    price: float
    publisher: str
    pub_date: str
    purchase_url: str
    image_url: str | None
    index_content: str | None
    introduction: str | None
    publisher_review: str | None
    middle_category: str | None
    detail_category: str | None


@dataclass(frozen=True, slots=True)
class RefinedRecord:
    """Admissible record ready for the book index."""

    isbn: str
    title: str
    author: str | None
    price: float
    publisher: str
    pub_date: str | None
    purchase_url: str
    image_url: str | None
    index_content: str
    introduction: str | None
    publisher_review: str | None
    middle_category: str | None
    detail_category: str | None
    search: str

    def to_document(self) -> dict[str, Any]:
        """Render the index document body."""
        return {
            "title": self.title,
            "purchaseUrl": self.purchase_url,
            "imageUrl": _or_placeholder(self.image_url),
            "author": _or_placeholder(self.author),
            "price": self.price,
            "publisher": self.publisher,
            "pubDate": self.pub_date,
            "isbn": self.isbn,
            "indexContent": self.index_content,
            "introduction": _or_placeholder(self.introduction),
            "publisherReview": _or_placeholder(self.publisher_review),
            "middleCategory": _or_placeholder(self.middle_category),
            "detailCategory": _or_placeholder(self.detail_category),
            "search": self.search,
        }


class IdentifierOutcome(str, Enum):
    UPSERTED = "upserted"
    SKIPPED = "skipped"
    FAILED = "failed"
    DRY_RUN = "dry_run"


@dataclass(slots=True)
class BatchSummary:
    """Counters for one trigger invocation."""

    records: int = 0
    abandoned_records: int = 0
    outcomes: dict[IdentifierOutcome, int] = field(
        default_factory=lambda: {outcome: 0 for outcome in IdentifierOutcome}
    )

    def record(self, outcome: IdentifierOutcome) -> None:
        self.outcomes[outcome] += 1

    def as_dict(self) -> dict[str, int]:
        return {
            "records": self.records,
            "abandoned_records": self.abandoned_records,
            **{outcome.value: count for outcome, count in self.outcomes.items()},
        }


def _or_placeholder(value: str | None) -> str:
    return ABSENT_PLACEHOLDER if value is None else value
