"""Book catalog client: structured lookup plus detail-page scraping."""

from __future__ import annotations

import logging
import math
import xml.etree.ElementTree as ET
from collections.abc import Sequence
from dataclasses import dataclass

import requests
from bs4 import BeautifulSoup

from errors import NotFoundError, ParseError, TransportError
from models import RawRecord
from settings import Settings

REQUEST_TIMEOUT_SECONDS = 30
CLIENT_ID_HEADER = "X-Naver-Client-Id"
CLIENT_SECRET_HEADER = "X-Naver-Client-Secret"
ISBN_QUERY_PARAM = "d_isbn"

# Structural selectors of the rendered detail page template.
INFO_BLOCK_SELECTOR = "div.infoItem_data_text__bUgVI"
CATEGORY_SELECTOR = "a.bookCatalogTop_category__LIOY2"

# Only the first catalog item is ever considered for an identifier.
_MAX_CANDIDATES = 1

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CatalogItem:
    """One ``<item>`` of the catalog response, empty sub-fields as ``None``."""

    title: str
    link: str
    author: str | None
    discount: str | None
    publisher: str
    pub_date: str
    isbn: str
    description: str | None
    image: str | None


@dataclass(frozen=True, slots=True)
class DetailPage:
    info_blocks: list[str]
    categories: list[str]


class CatalogClient:
    """Fetch one :class:`RawRecord` per identifier from the catalog source."""

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        *,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self._credentials = {
            CLIENT_ID_HEADER: client_id,
            CLIENT_SECRET_HEADER: client_secret,
        }
        self._owns_session = session is None
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings, session: requests.Session | None = None) -> CatalogClient:
        return cls(
            settings.catalog_url,
            settings.client_id,
            settings.client_secret,
            timeout=settings.request_timeout_seconds,
            session=session,
        )

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> CatalogClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def fetch(self, isbn: str) -> RawRecord:
        """Look up ``isbn`` and assemble its raw record.

        Raises:
            TransportError: the catalog API could not be reached or decoded.
            NotFoundError: no candidate item produced a record.
            ParseError: the item's price is not numeric.
        """
        items = parse_catalog_items(self._query_catalog(isbn))
        if not items:
            raise NotFoundError(f"No catalog items for isbn={isbn}")

        for item in items[:_MAX_CANDIDATES]:
            try:
                page = self._load_detail_page(item.link)
            except TransportError as exc:
                LOGGER.warning("Detail page unavailable for isbn=%s link=%s: %s", isbn, item.link, exc)
                continue
            return build_raw_record(item, page)

        raise NotFoundError(f"No catalog item with a loadable detail page for isbn={isbn}")

    def _query_catalog(self, isbn: str) -> bytes:
        try:
            response = self._session.get(
                self.base_url,
                params={ISBN_QUERY_PARAM: isbn},
                headers=self._credentials,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise TransportError(f"Catalog request failed for isbn={isbn}: {exc}") from exc
        return response.content

    def _load_detail_page(self, url: str) -> DetailPage:
        if not url:
            raise TransportError("Catalog item has no detail link")
        try:
            response = self._session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise TransportError(f"Detail page request failed: {exc}") from exc
        return parse_detail_page(response.content)


def parse_catalog_items(xml_body: str | bytes) -> list[CatalogItem]:
    """Decode the ``rss/channel/item`` list of a catalog response.

    Raw bytes let the XML declaration pick the encoding.
    """
    try:
        root = ET.fromstring(xml_body)
    except ET.ParseError as exc:
        raise TransportError(f"Catalog response is not valid XML: {exc}") from exc

    channel = root if root.tag == "channel" else root.find("channel")
    if channel is None:
        return []

    return [
        CatalogItem(
            title=_text(node, "title") or "",
            link=_text(node, "link") or "",
            author=_text(node, "author"),
            discount=_text(node, "discount"),
            publisher=_text(node, "publisher") or "",
            pub_date=_text(node, "pubdate") or "",
            isbn=_text(node, "isbn") or "",
            description=_text(node, "description"),
            image=_text(node, "image"),
        )
        for node in channel.findall("item")
    ]


def parse_detail_page(html: str | bytes) -> DetailPage:
    soup = BeautifulSoup(html, "html.parser")
    return DetailPage(
        info_blocks=[node.get_text() for node in soup.select(INFO_BLOCK_SELECTOR)],
        categories=[node.get_text() for node in soup.select(CATEGORY_SELECTOR)],
    )


def assign_info_blocks(
    has_description: bool,
    blocks: Sequence[str],
) -> tuple[str | None, str | None]:
    """Map detail-page info blocks to ``(publisher_review, index_content)``.

    The page template renders the description block (when the catalog has
    one), then the publisher review (optional), then the table of contents.
    Block positions are trusted as-is; unknown counts yield nothing.
    """
    count = len(blocks)
    if not has_description:
        if count == 2:
            return blocks[0], blocks[1]
        if count == 1:
            return None, blocks[0]
    else:
        if count == 3:
            return blocks[1], blocks[2]
        if count == 2:
            return None, blocks[1]
    return None, None


def assign_categories(anchors: Sequence[str]) -> tuple[str | None, str | None]:
    """Return ``(middle_category, detail_category)`` from the breadcrumb anchors."""
    middle = anchors[1] if len(anchors) > 1 else None
    detail = anchors[2] if len(anchors) > 2 else None
    return middle, detail


def parse_price(raw: str | None) -> float:
    try:
        price = float(raw or "")
    except ValueError as exc:
        raise ParseError(f"Price is not numeric: {raw!r}") from exc
    if not math.isfinite(price):
        raise ParseError(f"Price is not a finite number: {raw!r}")
    return price


def build_raw_record(item: CatalogItem, page: DetailPage) -> RawRecord:
    review, index_content = assign_info_blocks(item.description is not None, page.info_blocks)
    middle, detail = assign_categories(page.categories)

    return RawRecord(
        isbn=item.isbn,
        title=item.title,
        author=item.author,
        price=parse_price(item.discount),
        publisher=item.publisher,
        pub_date=item.pub_date,
        purchase_url=item.link,
        image_url=item.image,
        index_content=index_content,
        introduction=item.description,
        publisher_review=review,
        middle_category=middle,
        detail_category=detail,
    )


def _text(node: ET.Element, tag: str) -> str | None:
    value = node.findtext(tag)
    return value if value else None
