from __future__ import annotations

import base64
import math
import threading
from unittest.mock import MagicMock, patch

import pytest
import requests

from errors import ConfigError, QueryError, UpsertError
from search_index import SearchIndexClient, cloud_id_to_url, decode_search_page, fetch_all


class FakeIndex:
    """In-memory stand-in for ``SearchIndexClient.search`` over one predicate."""

    def __init__(self, docs: list[dict], empty_pages: set[int] | None = None) -> None:
        self.docs = docs
        self.empty_pages = empty_pages or set()
        self.bodies: list[dict] = []

    def search(self, index: str, body: dict) -> dict:
        self.bodies.append(body)
        start = body["from"]
        page = [] if start in self.empty_pages else self.docs[start : start + body["size"]]
        return {
            "hits": {
                "total": {"value": len(self.docs)},
                "hits": [{"_id": doc["isbn"], "_source": doc} for doc in page],
            }
        }


def _docs(count: int) -> list[dict]:
    return [{"isbn": f"978{i:010d}", "crawled": "2024-02-14"} for i in range(count)]


@pytest.mark.parametrize("count,page_size", [(1, 1000), (1000, 1000), (2500, 1000), (7, 3)])
def test_fetch_all_is_exhaustive_without_duplicates(count: int, page_size: int) -> None:
    index = FakeIndex(_docs(count))

    hits = fetch_all(index, "isbn-index", "crawled", "2024-02-14", page_size=page_size)

    isbns = [hit.source["isbn"] for hit in hits]
    assert len(isbns) == count
    assert len(set(isbns)) == count
    assert len(index.bodies) == math.ceil(count / page_size)


def test_fetch_all_sends_explicit_page_size_and_advancing_offset() -> None:
    index = FakeIndex(_docs(2500))

    fetch_all(index, "isbn-index", "crawled", "2024-02-14")

    assert [body["from"] for body in index.bodies] == [0, 1000, 2000]
    assert all(body["size"] == 1000 for body in index.bodies)
    assert index.bodies[0]["query"] == {"match": {"crawled": "2024-02-14"}}


def test_fetch_all_continues_past_empty_intermediate_page() -> None:
    index = FakeIndex(_docs(7), empty_pages={3})

    hits = fetch_all(index, "isbn-index", "crawled", "2024-02-14", page_size=3)

    assert [body["from"] for body in index.bodies] == [0, 3, 6]
    assert len(hits) == 4


def test_fetch_all_drops_hits_repeated_across_pages() -> None:
    first = {"isbn": "a"}
    pages = [
        {"hits": {"total": {"value": 2}, "hits": [{"_id": "a", "_source": first}]}},
        {"hits": {"total": {"value": 2}, "hits": [{"_id": "a", "_source": first}]}},
    ]
    client = MagicMock()
    client.search.side_effect = pages

    hits = fetch_all(client, "isbn-index", "crawled", "x", page_size=1)

    assert [hit.source for hit in hits] == [first]
    assert client.search.call_count == 2


def test_fetch_all_empty_result_makes_one_request() -> None:
    index = FakeIndex([])

    assert fetch_all(index, "isbn-index", "crawled", "2024-02-14") == []
    assert len(index.bodies) == 1


def test_fetch_all_raises_when_canceled() -> None:
    cancel = threading.Event()
    cancel.set()
    index = FakeIndex(_docs(3))

    with pytest.raises(QueryError, match="canceled"):
        fetch_all(index, "isbn-index", "crawled", "2024-02-14", cancel_event=cancel)
    assert index.bodies == []


def test_fetch_all_propagates_query_error_from_page() -> None:
    client = MagicMock()
    client.search.side_effect = QueryError("boom")

    with pytest.raises(QueryError, match="boom"):
        fetch_all(client, "isbn-index", "crawled", "2024-02-14")


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"hits": {"hits": []}},
        {"hits": {"total": {"value": "12"}, "hits": []}},
        {"hits": {"total": {"value": 1}, "hits": {"_source": {}}}},
        {"hits": {"total": {"value": 1}, "hits": [{"_id": "x"}]}},
    ],
)
def test_decode_search_page_rejects_unexpected_shapes(payload: dict) -> None:
    with pytest.raises(QueryError):
        decode_search_page(payload)


def test_decode_search_page_smoke() -> None:
    page = decode_search_page(
        {"hits": {"total": {"value": 5}, "hits": [{"_id": "1", "_source": {"isbn": "978"}}]}}
    )

    assert page.total == 5
    assert page.hits[0].doc_id == "1"
    assert page.hits[0].source == {"isbn": "978"}


def _session_with(response: MagicMock) -> MagicMock:
    session = MagicMock()
    session.headers = {}
    session.get.return_value = response
    session.post.return_value = response
    session.put.return_value = response
    return session


def test_client_sets_api_key_header() -> None:
    session = _session_with(MagicMock())

    SearchIndexClient("https://es.example.com/", "secret", session=session)

    assert session.headers["Authorization"] == "ApiKey secret"


def test_client_leaves_injected_session_open() -> None:
    session = _session_with(MagicMock())

    with SearchIndexClient("https://es.example.com", "secret", session=session):
        pass

    session.close.assert_not_called()


def test_client_closes_its_own_session() -> None:
    with patch("search_index.requests.Session") as mock_session_cls:
        mock_session_cls.return_value.headers = {}
        with SearchIndexClient("https://es.example.com", "secret"):
            pass

    mock_session_cls.return_value.close.assert_called_once()


def test_client_search_wraps_request_errors() -> None:
    response = MagicMock()
    response.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
    client = SearchIndexClient("https://es.example.com", "k", session=_session_with(response))

    with pytest.raises(QueryError, match="index=isbn-index"):
        client.search("isbn-index", {"query": {}})


def test_client_search_rejects_non_json_body() -> None:
    response = MagicMock()
    response.json.side_effect = ValueError("no json")
    client = SearchIndexClient("https://es.example.com", "k", session=_session_with(response))

    with pytest.raises(QueryError, match="not valid JSON"):
        client.search("isbn-index", {"query": {}})


def test_client_index_document_targets_id_and_pipeline() -> None:
    response = MagicMock()
    response.json.return_value = {"result": "created"}
    session = _session_with(response)
    client = SearchIndexClient("https://es.example.com", "k", session=session)

    result = client.index_document("books", "9788956609959", '{"title": "t"}', "book-pipeline")

    assert result == {"result": "created"}
    args, kwargs = session.put.call_args
    assert args[0] == "https://es.example.com/books/_doc/9788956609959"
    assert kwargs["params"] == {"pipeline": "book-pipeline"}
    assert kwargs["data"] == '{"title": "t"}'.encode("utf-8")


def test_client_index_document_raises_upsert_error() -> None:
    response = MagicMock()
    response.raise_for_status.side_effect = requests.ConnectionError("reset")
    client = SearchIndexClient("https://es.example.com", "k", session=_session_with(response))

    with pytest.raises(UpsertError, match="id=1"):
        client.index_document("books", "1", "{}", "p")


def test_client_ping_raises_query_error_when_unreachable() -> None:
    session = _session_with(MagicMock())
    session.get.side_effect = requests.ConnectionError("refused")
    client = SearchIndexClient("https://es.example.com", "k", session=session)

    with pytest.raises(QueryError, match="unreachable"):
        client.ping()


def _cloud_id(payload: str) -> str:
    return "deployment:" + base64.b64encode(payload.encode("utf-8")).decode("ascii")


def test_cloud_id_to_url_default_port() -> None:
    assert cloud_id_to_url(_cloud_id("us-east-1.aws.found.io$abc123$kib456")) == (
        "https://abc123.us-east-1.aws.found.io:443"
    )


def test_cloud_id_to_url_explicit_port() -> None:
    assert cloud_id_to_url(_cloud_id("eu-west-1.aws.found.io:9243$abc123$kib456")) == (
        "https://abc123.eu-west-1.aws.found.io:9243"
    )


@pytest.mark.parametrize("cloud_id", ["no-separator", "name:", _cloud_id("hostonly")])
def test_cloud_id_to_url_rejects_malformed_ids(cloud_id: str) -> None:
    with pytest.raises(ConfigError):
        cloud_id_to_url(cloud_id)
