"""Explicit runtime configuration, built once at process entry."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from errors import ConfigError

_DEFAULT_IDENTIFIER_FIELD = "isbn"
_DEFAULT_TIMESTAMP_ATTRIBUTE = "crawling_time"
_DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True, slots=True)
class Settings:
    """Connection identities, index names and catalog credentials.

    Exactly one of ``cloud_id`` or ``es_url`` identifies the search cluster.
    """

    api_key: str
    isbn_index: str
    book_index: str
    date_field: str
    catalog_url: str
    client_id: str
    client_secret: str
    ingest_pipeline: str
    cloud_id: str | None = None
    es_url: str | None = None
    identifier_field: str = _DEFAULT_IDENTIFIER_FIELD
    timestamp_attribute: str = _DEFAULT_TIMESTAMP_ATTRIBUTE
    request_timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Read settings from ``environ`` (``os.environ`` by default)."""
        env = os.environ if environ is None else environ

        cloud_id = _optional(env, "CLOUD_ID")
        es_url = _optional(env, "ES_URL")
        if not cloud_id and not es_url:
            raise ConfigError("Either CLOUD_ID or ES_URL environment variable is required")

        timeout_raw = _optional(env, "REQUEST_TIMEOUT_SECONDS")
        try:
            timeout = float(timeout_raw) if timeout_raw else _DEFAULT_TIMEOUT_SECONDS
        except ValueError as exc:
            raise ConfigError(f"REQUEST_TIMEOUT_SECONDS must be a number, got {timeout_raw!r}") from exc

        return cls(
            api_key=_required(env, "API_KEY"),
            isbn_index=_required(env, "ISBN_INDEX_NAME"),
            book_index=_required(env, "BOOK_INDEX_NAME"),
            date_field=_required(env, "FIELD_NAME"),
            catalog_url=_required(env, "API_URL"),
            client_id=_required(env, "CLIENT_ID"),
            client_secret=_required(env, "CLIENT_SECRET"),
            ingest_pipeline=_required(env, "PIPE_LINE"),
            cloud_id=cloud_id,
            es_url=es_url,
            identifier_field=_optional(env, "IDENTIFIER_FIELD") or _DEFAULT_IDENTIFIER_FIELD,
            timestamp_attribute=_optional(env, "TIMESTAMP_ATTRIBUTE") or _DEFAULT_TIMESTAMP_ATTRIBUTE,
            request_timeout_seconds=timeout,
        )


def _required(env: Mapping[str, str], name: str) -> str:
    value = _optional(env, name)
    if not value:
        raise ConfigError(f"{name} environment variable is required")
    return value


def _optional(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(name)
    return value.strip() if isinstance(value, str) and value.strip() else None
