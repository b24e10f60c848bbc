"""Entrypoints for the book enrichment pipeline: Lambda handler and replay CLI."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from catalog_client import CatalogClient
from change_events import parse_stream_event
from enricher import Enricher
from errors import ConfigError
from models import BatchSummary, ChangeEvent
from search_index import SearchIndexClient
from settings import Settings


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line flags."""
    parser = argparse.ArgumentParser(description="Replay a DynamoDB stream event through the book enrichment pipeline")
    parser.add_argument(
        "--event",
        type=Path,
        default=Path("test-event.json"),
        help="Path to a saved DynamoDB stream event (default: test-event.json)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run lookups, fetches and refinement but skip index writes",
    )
    return parser.parse_args(argv)


def run(records: list[ChangeEvent], settings: Settings, dry_run: bool = False) -> BatchSummary:
    """Build the pipeline components from ``settings`` and process one batch."""
    logging.info("Received %s change records", len(records))

    with SearchIndexClient.from_settings(settings) as index_client, CatalogClient.from_settings(settings) as catalog:
        enricher = Enricher(settings, index_client, catalog, dry_run=dry_run)
        return enricher.handle_batch(records)


def handler(event: dict[str, Any], context: Any = None) -> dict[str, int]:
    """AWS Lambda entrypoint. Always reports success to the trigger."""
    load_dotenv()
    logging.getLogger().setLevel(logging.INFO)
    settings = Settings.from_env()
    summary = run(parse_stream_event(event), settings)
    return summary.as_dict()


def main(argv: list[str] | None = None) -> int:
    """Initialize config and replay one saved event."""
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    args = parse_args(argv)

    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        logging.error("Configuration error: %s", exc)
        return 2

    try:
        payload = json.loads(args.event.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logging.error("Failed to read test event %s: %s", args.event, exc)
        return 1

    try:
        records = parse_stream_event(payload)
    except ValueError as exc:
        logging.error("Malformed stream event %s: %s", args.event, exc)
        return 1

    try:
        summary = run(records, settings, dry_run=args.dry_run)
    except ConfigError as exc:
        logging.error("Configuration error: %s", exc)
        return 2

    logging.info("Run complete. %s", json.dumps(summary.as_dict()))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
