import io
from decimal import Decimal

import pytest

from catalog_app.feed.errors import FeedParseError
from catalog_app.feed.pipeline.parser import FeedParser, parse_price, parse_weight
from catalog_app.feed.pipeline.records import FeedCategory

FULL_ITEM = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss xmlns:g="http://base.google.com/ns/1.0" version="2.0">
  <channel>
    <title>HUMED</title>
    <item>
      <g:id>922</g:id>
      <g:sku>HU-922</g:sku>
      <g:gtin>8585000000922</g:gtin>
      <g:title>  Hygienick\xc3\x83\xc2\xbd papier &amp;gt; 2-vrstvov\xc3\x83\xc2\xbd  </g:title>
      <g:description>Biely papier</g:description>
      <g:link>https://shop.example.com/922</g:link>
      <g:cenaVhumede>6.467</g:cenaVhumede>
      <g:price>11.931 EUR</g:price>
      <g:weight>450.00g</g:weight>
      <g:availability>in stock</g:availability>
      <g:condition>new</g:condition>
      <g:image_link>https://cdn.example.com/922.jpg</g:image_link>
      <g:additional_image_link>https://cdn.example.com/922-b.jpg</g:additional_image_link>
      <g:additional_image_link>https://cdn.example.com/922-b.jpg</g:additional_image_link>
      <g:additional_image_link>   </g:additional_image_link>
      <categories>
        <category><category_id>1</category_id><category_name>Hygiena</category_name></category>
        <category><category_id>101</category_id><category_name>Papier &amp;gt; Toaletn\xc3\xbd</category_name></category>
        <category><category_id></category_id><category_name></category_name></category>
      </categories>
      <g:additional_fields>
        <g:additional_field><n>Balenie</n><value>24</value></g:additional_field>
        <g:additional_field><name>Farba</name><value>biela</value></g:additional_field>
        <g:additional_field><n>Bez hodnoty</n></g:additional_field>
      </g:additional_fields>
    </item>
  </channel>
</rss>
"""


def _items(*bodies: str) -> bytes:
    inner = "".join(f"<item>{body}</item>" for body in bodies)
    return f'<rss xmlns:g="http://base.google.com/ns/1.0"><channel>{inner}</channel></rss>'.encode("utf-8")


def test_parse_full_item():
    records = list(FeedParser().iter_records(io.BytesIO(FULL_ITEM)))

    assert len(records) == 1
    record = records[0]
    assert record.feed_id == "922"
    assert record.sku == "HU-922"
    assert record.gtin == "8585000000922"
    assert record.title == "Hygienický papier > 2-vrstvový"
    assert record.description == "Biely papier"
    assert record.link == "https://shop.example.com/922"
    assert record.price_purchase == Decimal("6.467")
    assert record.price_retail == Decimal("11.931")
    assert record.weight_grams == 450
    assert record.availability == "in stock"
    assert record.condition == "new"


def test_parse_categories_keep_order_and_skip_empty_entries():
    record = next(FeedParser().iter_records(io.BytesIO(FULL_ITEM)))

    assert record.categories == (
        FeedCategory(id="1", name="Hygiena"),
        FeedCategory(id="101", name="Papier > Toaletný"),
    )
    assert record.deepest_category.id == "101"


def test_parse_images_keep_duplicates_and_drop_blanks():
    record = next(FeedParser().iter_records(io.BytesIO(FULL_ITEM)))

    assert record.images == (
        "https://cdn.example.com/922.jpg",
        "https://cdn.example.com/922-b.jpg",
        "https://cdn.example.com/922-b.jpg",
    )


def test_parse_attributes_accept_short_name_and_require_value():
    record = next(FeedParser().iter_records(io.BytesIO(FULL_ITEM)))

    assert dict(record.attributes) == {"Balenie": "24", "Farba": "biela"}
    with pytest.raises(TypeError):
        record.attributes["Balenie"] = "12"


def test_parse_multiple_items_in_document_order():
    feed = _items("<g:id>1</g:id>", "<g:id>2</g:id>", "<g:id>3</g:id>")
    records = list(FeedParser().iter_records(io.BytesIO(feed)))
    assert [record.feed_id for record in records] == ["1", "2", "3"]


def test_items_without_id_are_dropped():
    feed = _items("<g:title>No id</g:title>", "<g:id>   </g:id>", "<g:id>7</g:id>")
    records = list(FeedParser().iter_records(io.BytesIO(feed)))
    assert [record.feed_id for record in records] == ["7"]


def test_nested_item_blocks_do_not_override_item_fields():
    feed = _items(
        "<g:id>5</g:id><g:price>11.931 EUR</g:price><g:weight>450g</g:weight>"
        "<g:shipping><g:country>SK</g:country><g:price>3.50 EUR</g:price><g:weight>2kg</g:weight></g:shipping>"
    )

    (record,) = FeedParser().iter_records(io.BytesIO(feed))

    assert record.price_retail == Decimal("11.931")
    assert record.weight_grams == 450


def test_empty_feed_yields_nothing():
    feed = b'<rss xmlns:g="http://base.google.com/ns/1.0"><channel></channel></rss>'
    assert list(FeedParser().iter_records(io.BytesIO(feed))) == []


def test_bad_price_and_weight_drop_only_that_field(caplog):
    feed = _items(
        "<g:id>5</g:id><g:price>n/a</g:price><g:cenaVhumede>1.5</g:cenaVhumede><g:weight>heavy</g:weight>"
    )
    with caplog.at_level("WARNING", logger="catalog_app.feed.pipeline.parser"):
        (record,) = FeedParser().iter_records(io.BytesIO(feed))

    assert record.price_retail is None
    assert record.price_purchase == Decimal("1.5")
    assert record.weight_grams is None
    assert "Cannot parse price" in caplog.text
    assert "Cannot parse weight" in caplog.text


def test_malformed_xml_raises_after_earlier_records():
    feed = b'<rss xmlns:g="http://base.google.com/ns/1.0"><channel><item><g:id>1</g:id></item><item><g:id>2</g:id>'
    iterator = FeedParser().iter_records(io.BytesIO(feed))

    assert next(iterator).feed_id == "1"
    with pytest.raises(FeedParseError):
        list(iterator)


def test_parse_callback_and_parse_all(tmp_path):
    path = tmp_path / "feed.xml"
    path.write_bytes(_items("<g:id>1</g:id>", "<g:id>2</g:id>"))
    parser = FeedParser()

    seen = []
    assert parser.parse_file(path, seen.append) == 2
    assert [record.feed_id for record in seen] == ["1", "2"]
    assert [record.feed_id for record in parser.parse_all(path)] == ["1", "2"]


@pytest.mark.parametrize(
    "token, expected",
    [
        ("11.931 EUR", Decimal("11.931")),
        ("11.931EUR", Decimal("11.931")),
        (" 4.20 CZK ", Decimal("4.20")),
        ("0", Decimal("0")),
        ("", None),
        (None, None),
        ("abc EUR", None),
        ("NaN", None),
    ],
)
def test_parse_price(token, expected):
    assert parse_price(token) == expected


@pytest.mark.parametrize(
    "token, expected",
    [
        ("450.00g", 450),
        ("450 g", 450),
        ("0.5g", 1),
        ("2.5g", 3),
        ("1.2kg", 1200),
        ("120", 120),
        ("", None),
        ("grams", None),
    ],
)
def test_parse_weight(token, expected):
    assert parse_weight(token) == expected
