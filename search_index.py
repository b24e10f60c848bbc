"""Search-index REST client and exhaustive paginated retrieval."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import threading
from typing import Any

import requests

from errors import ConfigError, QueryError, UpsertError
from models import IndexHit, SearchPage
from settings import Settings

PAGE_SIZE = 1000
REQUEST_TIMEOUT_SECONDS = 30

LOGGER = logging.getLogger(__name__)


class SearchIndexClient:
    """Minimal client for the search cluster's ``_search`` and ``_doc`` APIs."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"ApiKey {api_key}",
                "Content-Type": "application/json",
            }
        )

    @classmethod
    def from_settings(cls, settings: Settings, session: requests.Session | None = None) -> SearchIndexClient:
        base_url = settings.es_url or cloud_id_to_url(settings.cloud_id or "")
        return cls(
            base_url,
            settings.api_key,
            timeout=settings.request_timeout_seconds,
            session=session,
        )

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> SearchIndexClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def ping(self) -> None:
        """Raise ``QueryError`` unless the cluster answers its root endpoint."""
        try:
            response = self._session.get(self.base_url + "/", timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise QueryError(f"Search cluster at {self.base_url} is unreachable: {exc}") from exc
        LOGGER.info("Connected to search cluster at %s", self.base_url)

    def search(self, index: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._session.post(
                f"{self.base_url}/{index}/_search",
                json=body,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise QueryError(f"Search request on index={index} failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise QueryError(f"Search response on index={index} is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise QueryError(f"Search response on index={index} is not a JSON object")
        return payload

    def index_document(self, index: str, doc_id: str, document: str, pipeline: str) -> dict[str, Any]:
        """Create or replace ``doc_id`` in ``index``, routed through ``pipeline``.

        ``document`` is the already-serialized JSON body.
        """
        try:
            response = self._session.put(
                f"{self.base_url}/{index}/_doc/{doc_id}",
                params={"pipeline": pipeline},
                data=document.encode("utf-8"),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            detail = ""
            if isinstance(exc, requests.HTTPError) and exc.response is not None:
                detail = exc.response.text
            raise UpsertError(f"Upsert of id={doc_id} into index={index} failed: {exc} {detail}".rstrip()) from exc

        try:
            return response.json()
        except ValueError:
            return {}


def fetch_all(
    client: SearchIndexClient,
    index: str,
    field: str,
    value: str,
    *,
    page_size: int = PAGE_SIZE,
    cancel_event: threading.Event | None = None,
) -> list[IndexHit]:
    """Return every document in ``index`` whose ``field`` matches ``value``.

    Pages are requested with an explicit ``size`` and an advancing ``from``
    until the collected count reaches the reported total. No sort key is
    applied, so result order is not stable between calls; a hit that shows
    up on two pages is kept once.
    """
    hits: list[IndexHit] = []
    seen_ids: set[str] = set()
    offset = 0
    requests_made = 0

    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise QueryError(f"Query on index={index} canceled after {requests_made} pages")

        body = {
            "query": {"match": {field: value}},
            "size": page_size,
            "from": offset,
        }
        page = decode_search_page(client.search(index, body))
        requests_made += 1

        for hit in page.hits:
            if hit.doc_id is not None:
                if hit.doc_id in seen_ids:
                    continue
                seen_ids.add(hit.doc_id)
            hits.append(hit)

        LOGGER.debug(
            "Index page: index=%s from=%s returned=%s collected=%s total=%s",
            index,
            offset,
            len(page.hits),
            len(hits),
            page.total,
        )

        offset += page_size
        if len(hits) >= page.total or offset >= page.total:
            break

    LOGGER.info(
        "Index query: index=%s %s=%s hits=%s pages=%s",
        index,
        field,
        value,
        len(hits),
        requests_made,
    )
    return hits


def decode_search_page(payload: dict[str, Any]) -> SearchPage:
    """Decode ``{hits: {total: {value}, hits: [{_source}]}}`` or raise ``QueryError``."""
    try:
        hits_block = payload["hits"]
        total = hits_block["total"]["value"]
        raw_hits = hits_block["hits"]
    except (KeyError, TypeError) as exc:
        raise QueryError(f"Unexpected search response shape: missing {exc}") from exc

    if isinstance(total, bool) or not isinstance(total, int):
        raise QueryError(f"Unexpected total hit count: {total!r}")
    if not isinstance(raw_hits, list):
        raise QueryError("Unexpected search response shape: hits.hits is not a list")

    hits: list[IndexHit] = []
    for raw in raw_hits:
        source = raw.get("_source") if isinstance(raw, dict) else None
        if not isinstance(source, dict):
            raise QueryError(f"Search hit without an object _source: {json.dumps(raw)[:200]}")
        doc_id = raw.get("_id")
        hits.append(IndexHit(doc_id=doc_id if isinstance(doc_id, str) else None, source=source))

    return SearchPage(total=total, hits=hits)


def cloud_id_to_url(cloud_id: str) -> str:
    """Resolve an Elastic Cloud ID (``name:base64(host$es$kibana)``) to a cluster URL."""
    _, sep, encoded = cloud_id.partition(":")
    if not sep or not encoded:
        raise ConfigError("CLOUD_ID must look like '<name>:<base64 payload>'")
    try:
        decoded = base64.b64decode(encoded).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise ConfigError(f"CLOUD_ID payload is not valid base64: {exc}") from exc

    parts = decoded.split("$")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise ConfigError("CLOUD_ID payload must contain '<host>$<es_uuid>'")

    host, es_uuid = parts[0], parts[1]
    port = "443"
    if ":" in host:
        host, port = host.rsplit(":", 1)
    return f"https://{es_uuid}.{host}:{port}"
