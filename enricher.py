"""Change-event driven enrichment of the book index."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterable

from catalog_client import CatalogClient
from change_events import INSERT_EVENT
from dates import derive_lookup_date
from errors import EnrichmentError, ParseError, QueryError
from models import BatchSummary, ChangeEvent, IdentifierOutcome
from refiner import refine
from search_index import SearchIndexClient, fetch_all
from settings import Settings

LOGGER = logging.getLogger(__name__)


class Enricher:
    """Run lookup -> fetch -> refine -> upsert for each change event.

    Identifiers are processed one at a time; each one's failure is logged
    and never affects its siblings.
    """

    def __init__(
        self,
        settings: Settings,
        index_client: SearchIndexClient,
        catalog: CatalogClient,
        *,
        dry_run: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.settings = settings
        self.index_client = index_client
        self.catalog = catalog
        self.dry_run = dry_run
        self.cancel_event = cancel_event

    def handle_batch(self, records: Iterable[ChangeEvent]) -> BatchSummary:
        """Process every record of one trigger invocation; never raises for bad data."""
        summary = BatchSummary()

        try:
            self.index_client.ping()
        except QueryError as exc:
            LOGGER.error("Search cluster unavailable, ending batch: %s", exc)
            return summary

        for record in records:
            summary.records += 1
            if not self.process_record(record, summary):
                summary.abandoned_records += 1

        LOGGER.info("Batch complete. %s", " ".join(f"{k}={v}" for k, v in summary.as_dict().items()))
        return summary

    def process_record(self, record: ChangeEvent, summary: BatchSummary) -> bool:
        """Enrich every identifier crawled on the record's date.

        Returns False when the record was abandoned before any identifier ran.
        """
        if record.event_name != INSERT_EVENT:
            LOGGER.info("Processing non-insert change event: %s", record.event_name)

        try:
            lookup_date = derive_lookup_date(record.new_image.get(self.settings.timestamp_attribute))
        except ParseError as exc:
            LOGGER.warning(
                "Abandoning record: cannot derive lookup date from %s: %s",
                self.settings.timestamp_attribute,
                exc,
            )
            return False

        try:
            hits = fetch_all(
                self.index_client,
                self.settings.isbn_index,
                self.settings.date_field,
                lookup_date,
                cancel_event=self.cancel_event,
            )
        except QueryError as exc:
            LOGGER.error("Abandoning record: identifier lookup for date=%s failed: %s", lookup_date, exc)
            return False

        LOGGER.info("Found %s identifiers crawled on %s", len(hits), lookup_date)

        for hit in hits:
            isbn = hit.source.get(self.settings.identifier_field)
            if not isinstance(isbn, str) or not isbn:
                LOGGER.warning("Skipping hit id=%s without a string %s field", hit.doc_id, self.settings.identifier_field)
                summary.record(IdentifierOutcome.SKIPPED)
                continue
            summary.record(self.enrich_identifier(isbn))

        return True

    def enrich_identifier(self, isbn: str) -> IdentifierOutcome:
        """Fetch, refine and upsert one identifier.

        Independent of every other identifier, so it may be scheduled on its
        own.
        """
        LOGGER.info("Enriching isbn=%s", isbn)
        try:
            raw = self.catalog.fetch(isbn)
        except EnrichmentError as exc:
            LOGGER.warning("Catalog fetch failed for isbn=%s: %s", isbn, exc)
            return IdentifierOutcome.FAILED

        refined = refine(raw)
        if refined is None:
            return IdentifierOutcome.SKIPPED

        # A refined record always serializes; let a failure here surface.
        document = json.dumps(refined.to_document(), ensure_ascii=False, allow_nan=False)

        if self.dry_run:
            LOGGER.info("[dry-run] Would upsert isbn=%s into %s", isbn, self.settings.book_index)
            return IdentifierOutcome.DRY_RUN

        try:
            result = self.index_client.index_document(
                self.settings.book_index,
                isbn,
                document,
                self.settings.ingest_pipeline,
            )
        except EnrichmentError as exc:
            LOGGER.error("Upsert failed for isbn=%s: %s", isbn, exc)
            return IdentifierOutcome.FAILED

        LOGGER.info("Upserted isbn=%s result=%s", isbn, result.get("result", "unknown"))
        return IdentifierOutcome.UPSERTED
