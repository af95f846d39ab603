"""
Streaming parser for the supplier product feed (Google Shopping RSS).

Feed layout::

    <rss xmlns:g="http://base.google.com/ns/1.0">
      <channel>
        <item>
          <g:id>922</g:id>
          <g:title>...</g:title>
          <g:cenaVhumede>6.467</g:cenaVhumede>
          <g:price>11.931 EUR</g:price>
          <categories>
            <category><category_id>137</category_id><category_name>...</category_name></category>
          </categories>
          <g:additional_fields>
            <g:additional_field><n>Balenie</n><value>24</value></g:additional_field>
          </g:additional_fields>
        </item>
      </channel>
    </rss>

Items are consumed one at a time and detached from the tree once built, so
memory stays bounded by a single ``<item>`` regardless of feed size.
"""

from __future__ import annotations

import enum
import logging
import re
import xml.etree.ElementTree as ET
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from pathlib import Path
from typing import IO, Callable, Iterator

from catalog_app.feed.errors import FeedParseError
from catalog_app.utils.text import normalize

from .records import RawProductRecord, RecordBuilder

logger = logging.getLogger(__name__)

ITEM = "item"
CATEGORY = "category"
ADDITIONAL_FIELD = "additional_field"

PROGRESS_INTERVAL = 500

_CURRENCY_SUFFIX = re.compile(r"\s*(?:EUR|€|[A-Z]{3})\s*$")
_MASS_SUFFIX = re.compile(r"\s*(kg|g)\s*$", re.IGNORECASE)

# Top-level item elements and the record attribute they populate
_TEXT_FIELDS = {
    "id": "feed_id",
    "sku": "sku",
    "gtin": "gtin",
    "link": "link",
    "availability": "availability",
    "condition": "condition",
}
_NORMALIZED_FIELDS = {
    "title": "title",
    "description": "description",
}
_PRICE_FIELDS = {
    "cenaVhumede": "price_purchase",
    "price": "price_retail",
}
_IMAGE_FIELDS = frozenset({"image_link", "additional_image_link"})
# Feed emits <n> where <name> would be expected
_ATTRIBUTE_NAME_FIELDS = frozenset({"name", "n"})


class _Context(enum.Enum):
    ITEM = "item"
    CATEGORY = "category"
    ADDITIONAL_FIELD = "additional_field"


def parse_price(text: str | None) -> Decimal | None:
    """
    Parse a price token such as ``"11.931 EUR"`` into an exact ``Decimal``.

    Returns ``None`` (after logging a warning) when the token is not a number.
    """

    if text is None or not text.strip():
        return None
    cleaned = _CURRENCY_SUFFIX.sub("", text.strip()).strip()
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        logger.warning("Cannot parse price: %r", text)
        return None
    if not value.is_finite():
        logger.warning("Cannot parse price: %r", text)
        return None
    return value


def parse_weight(text: str | None) -> int | None:
    """
    Parse a weight token such as ``"450.00g"`` into whole grams.

    ``kg`` values are scaled to grams. Returns ``None`` (after logging a
    warning) when the token is not a number.
    """

    if text is None or not text.strip():
        return None
    token = text.strip()
    multiplier = Decimal(1)
    suffix = _MASS_SUFFIX.search(token)
    if suffix is not None:
        if suffix.group(1).lower() == "kg":
            multiplier = Decimal(1000)
        token = token[: suffix.start()].strip()
    try:
        value = Decimal(token)
    except InvalidOperation:
        logger.warning("Cannot parse weight: %r", text)
        return None
    if not value.is_finite():
        logger.warning("Cannot parse weight: %r", text)
        return None
    return int((value * multiplier).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _local_name(tag: str) -> str:
    if "}" in tag:
        return tag.rsplit("}", 1)[1]
    return tag


def _element_text(element: ET.Element) -> str:
    return "".join(element.itertext()).strip()


def _blank_to_none(value: str) -> str | None:
    return value if value else None


class FeedParser:
    """
    Turn a feed byte stream into ``RawProductRecord`` values.

    ``iter_records`` is the primitive: a lazy, single-use generator. The
    callback and list helpers are thin conveniences on top of it.
    """

    def __init__(self, *, progress_interval: int = PROGRESS_INTERVAL) -> None:
        self.progress_interval = progress_interval

    def iter_records(self, source: IO[bytes] | str | Path) -> Iterator[RawProductRecord]:
        """
        Yield one record per ``<item>`` carrying a non-empty id.

        Raises ``FeedParseError`` if the XML is malformed; records yielded
        before the error remain valid.
        """

        if isinstance(source, Path):
            source = str(source)

        stack: list[ET.Element] = []
        builder: RecordBuilder | None = None
        context = _Context.ITEM
        category_id: str | None = None
        category_name: str | None = None
        attribute_name: str | None = None
        attribute_value: str | None = None
        count = 0

        try:
            for event, element in ET.iterparse(source, events=("start", "end")):
                name = _local_name(element.tag)

                if event == "start":
                    stack.append(element)
                    if name == ITEM:
                        builder = RecordBuilder()
                        context = _Context.ITEM
                    elif builder is not None and name == CATEGORY:
                        context = _Context.CATEGORY
                        category_id = None
                        category_name = None
                    elif builder is not None and name == ADDITIONAL_FIELD:
                        context = _Context.ADDITIONAL_FIELD
                        attribute_name = None
                        attribute_value = None
                    continue

                stack.pop()
                if builder is None:
                    continue

                if name == ITEM:
                    record = builder.build()
                    builder = None
                    context = _Context.ITEM
                    element.clear()
                    if stack:
                        stack[-1].remove(element)
                    if record is None:
                        logger.debug("Skipping feed item without an id")
                        continue
                    count += 1
                    if self.progress_interval and count % self.progress_interval == 0:
                        logger.debug("Parsed %s products", count)
                    yield record
                    continue

                text = _element_text(element)

                if context is _Context.CATEGORY:
                    if name == "category_id":
                        category_id = _blank_to_none(text)
                    elif name == "category_name":
                        category_name = _blank_to_none(normalize(text))
                    elif name == CATEGORY:
                        builder.add_category(category_id, category_name)
                        context = _Context.ITEM
                elif context is _Context.ADDITIONAL_FIELD:
                    if name in _ATTRIBUTE_NAME_FIELDS:
                        attribute_name = _blank_to_none(normalize(text))
                    elif name == "value":
                        attribute_value = text
                    elif name == ADDITIONAL_FIELD:
                        builder.add_attribute(attribute_name, attribute_value)
                        context = _Context.ITEM
                elif stack and _local_name(stack[-1].tag) == ITEM:
                    # Direct children of <item> only; nested blocks such as <g:shipping> are ignored
                    self._apply_item_field(builder, name, text)
        except ET.ParseError as exc:
            logger.error("XML parsing error after %s products: %s", count, exc)
            raise FeedParseError(f"Malformed feed XML: {exc}", position=getattr(exc, "position", None)) from exc

        logger.info("Finished parsing feed. Total products: %s", count)

    @staticmethod
    def _apply_item_field(builder: RecordBuilder, name: str, text: str) -> None:
        if name in _TEXT_FIELDS:
            builder.set(_TEXT_FIELDS[name], _blank_to_none(text))
        elif name in _NORMALIZED_FIELDS:
            builder.set(_NORMALIZED_FIELDS[name], _blank_to_none(normalize(text)))
        elif name in _PRICE_FIELDS:
            builder.set(_PRICE_FIELDS[name], parse_price(text))
        elif name == "weight":
            builder.set("weight_grams", parse_weight(text))
        elif name in _IMAGE_FIELDS:
            builder.add_image(text)

    def parse(self, source: IO[bytes] | str | Path, consumer: Callable[[RawProductRecord], None]) -> int:
        """Feed every record to ``consumer``; return how many were delivered."""

        count = 0
        for record in self.iter_records(source):
            consumer(record)
            count += 1
        return count

    def parse_file(self, path: str | Path, consumer: Callable[[RawProductRecord], None]) -> int:
        path = Path(path)
        logger.info("Parsing feed from: %s", path)
        with path.open("rb") as handle:
            return self.parse(handle, consumer)

    def parse_all(self, path: str | Path) -> list[RawProductRecord]:
        """Materialize every record. Loads the whole feed; for small feeds and tests."""

        records: list[RawProductRecord] = []
        self.parse_file(path, records.append)
        return records
