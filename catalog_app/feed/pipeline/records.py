"""Immutable value types produced by the feed parser."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Mapping


@dataclass(frozen=True)
class FeedCategory:
    """One ``<category>`` entry; later entries are more specific."""

    id: str | None
    name: str | None

    def as_dict(self) -> dict[str, str | None]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class RawProductRecord:
    """A single feed ``<item>``, exactly as recovered from the XML."""

    feed_id: str
    sku: str | None = None
    gtin: str | None = None
    title: str | None = None
    description: str | None = None
    link: str | None = None
    price_purchase: Decimal | None = None
    price_retail: Decimal | None = None
    weight_grams: int | None = None
    availability: str | None = None
    condition: str | None = None
    categories: tuple[FeedCategory, ...] = ()
    images: tuple[str, ...] = ()
    attributes: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        object.__setattr__(self, "categories", tuple(self.categories))
        object.__setattr__(self, "images", tuple(image for image in self.images if image and image.strip()))
        if not isinstance(self.attributes, MappingProxyType):
            object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    @property
    def deepest_category(self) -> FeedCategory | None:
        if not self.categories:
            return None
        return self.categories[-1]

    def categories_payload(self) -> list[dict[str, str | None]]:
        return [category.as_dict() for category in self.categories]

    def attributes_payload(self) -> dict[str, str]:
        return dict(self.attributes)


@dataclass
class RecordBuilder:
    """Mutable accumulator used while an ``<item>`` is still open."""

    values: dict[str, Any] = field(default_factory=dict)
    categories: list[FeedCategory] = field(default_factory=list)
    images: list[str] = field(default_factory=list)
    attributes: dict[str, str] = field(default_factory=dict)

    def set(self, name: str, value: Any) -> None:
        self.values[name] = value

    def add_category(self, category_id: str | None, category_name: str | None) -> None:
        if category_id or category_name:
            self.categories.append(FeedCategory(id=category_id or None, name=category_name or None))

    def add_image(self, url: str | None) -> None:
        if url and url.strip():
            self.images.append(url.strip())

    def add_attribute(self, name: str | None, value: str | None) -> None:
        if name is not None and value is not None:
            self.attributes[name] = value

    def build(self) -> RawProductRecord | None:
        feed_id = (self.values.get("feed_id") or "").strip()
        if not feed_id:
            return None
        values = {key: value for key, value in self.values.items() if key != "feed_id"}
        return RawProductRecord(
            feed_id=feed_id,
            categories=tuple(self.categories),
            images=tuple(self.images),
            attributes=MappingProxyType(dict(self.attributes)),
            **values,
        )
