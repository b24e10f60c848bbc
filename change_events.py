"""Decoding of DynamoDB stream payloads into change events."""

from __future__ import annotations

import logging
from typing import Any

from models import ChangeEvent

INSERT_EVENT = "INSERT"

LOGGER = logging.getLogger(__name__)


def parse_stream_event(payload: Any) -> list[ChangeEvent]:
    """Decode ``{"Records": [...]}`` into change events.

    Records without a ``dynamodb.NewImage`` map (e.g. ``REMOVE``) are
    decoded with an empty image so the caller can log and abandon them.
    """
    if not isinstance(payload, dict):
        raise ValueError("Unexpected stream payload shape: expected an object")
    records = payload.get("Records")
    if not isinstance(records, list):
        raise ValueError("Unexpected stream payload shape: 'Records' is not a list")

    events: list[ChangeEvent] = []
    for record in records:
        if not isinstance(record, dict):
            LOGGER.warning("Ignoring non-object stream record: %r", record)
            continue
        change = record.get("dynamodb") if isinstance(record.get("dynamodb"), dict) else {}
        image = change.get("NewImage") if isinstance(change.get("NewImage"), dict) else {}
        events.append(
            ChangeEvent(
                event_name=str(record.get("eventName") or ""),
                new_image={name: unwrap_attribute(value) for name, value in image.items()},
            )
        )
    return events


def unwrap_attribute(value: Any) -> Any:
    """Strip DynamoDB type descriptors (``{"S": "x"}`` -> ``"x"``)."""
    if not isinstance(value, dict) or len(value) != 1:
        return value

    (kind, inner), = value.items()
    if kind in ("S", "N", "B", "BOOL"):
        return inner
    if kind == "NULL":
        return None
    if kind in ("SS", "NS", "BS"):
        return list(inner)
    if kind == "L":
        return [unwrap_attribute(item) for item in inner]
    if kind == "M":
        return {name: unwrap_attribute(item) for name, item in inner.items()}
    return value
