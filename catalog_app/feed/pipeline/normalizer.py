"""
Fold staged feed records into canonical catalog products.

Each non-excluded staged record is resolved to an internal category, then
written as a ``CatalogProduct`` plus the ``ProductSource`` binding that ties
it back to the feed identity. Commercial fields (margin, pack size, weight
in kilograms, stock status) are derived here.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal, Mapping

from sqlalchemy.orm import Session

from catalog_app.models import CatalogProduct, ProductSource, StagedProduct, StockStatus, db
from catalog_app.utils.feed import get_batch_size, get_pack_quantity_attribute, metrics_enabled
from config.monitoring import FeedMonitoring

from .category_resolver import CategoryResolver, MatchResult

logger = logging.getLogger(__name__)

EXCLUSION_REASON = "Category excluded"
PROGRESS_INTERVAL = 500

_RATIO_QUANTUM = Decimal("0.0001")
_PERCENT_QUANTUM = Decimal("0.01")
_KG_QUANTUM = Decimal("0.0001")

_AVAILABILITY_MAP = {
    "in stock": StockStatus.INSTOCK,
    "in_stock": StockStatus.INSTOCK,
    "out of stock": StockStatus.OUTOFSTOCK,
    "out_of_stock": StockStatus.OUTOFSTOCK,
    "preorder": StockStatus.ONBACKORDER,
    "pre-order": StockStatus.ONBACKORDER,
}


class NormalizeOutcome(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED_EXCLUDED = "skipped_excluded"
    SKIPPED_UNMAPPED = "skipped_unmapped"
    FAILED = "failed"


@dataclass(frozen=True)
class NormalizeResult:
    """Counters for a normalization pass; ``processed`` counts every record seen."""

    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped_excluded: int = 0
    skipped_unmapped: int = 0
    failed: int = 0

    def __add__(self, other: "NormalizeResult") -> "NormalizeResult":
        if not isinstance(other, NormalizeResult):
            return NotImplemented
        return NormalizeResult(
            processed=self.processed + other.processed,
            created=self.created + other.created,
            updated=self.updated + other.updated,
            skipped_excluded=self.skipped_excluded + other.skipped_excluded,
            skipped_unmapped=self.skipped_unmapped + other.skipped_unmapped,
            failed=self.failed + other.failed,
        )

    def with_outcome(self, outcome: NormalizeOutcome) -> "NormalizeResult":
        return self + NormalizeResult(processed=1, **{outcome.value: 1})

    def as_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "created": self.created,
            "updated": self.updated,
            "skipped_excluded": self.skipped_excluded,
            "skipped_unmapped": self.skipped_unmapped,
            "failed": self.failed,
        }


def calculate_margin_percent(purchase: Decimal | None, retail: Decimal | None) -> Decimal | None:
    """
    Margin as a percentage of the retail price.

    The ratio ``(retail - purchase) / retail`` is rounded to four places
    before scaling, so ``6.467`` against ``11.931`` yields ``45.80``. Returns
    ``None`` when either price is missing or retail is zero.
    """

    if purchase is None or retail is None or retail == 0:
        return None
    ratio = ((retail - purchase) / retail).quantize(_RATIO_QUANTUM, rounding=ROUND_HALF_UP)
    return (ratio * 100).quantize(_PERCENT_QUANTUM, rounding=ROUND_HALF_UP)


def parse_pack_quantity(attributes: Mapping[str, str] | None, attribute_name: str = "Balenie") -> int | None:
    if not attributes:
        return None
    value = attributes.get(attribute_name)
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        logger.debug("Failed to parse pack quantity from %r", value)
        return None


def grams_to_kg(weight_grams: int | None) -> Decimal | None:
    if weight_grams is None:
        return None
    return (Decimal(weight_grams) / Decimal(1000)).quantize(_KG_QUANTUM, rounding=ROUND_HALF_UP)


def map_availability(availability: str | None) -> StockStatus:
    """Map a feed availability token to a stock status; unknown tokens count as in stock."""
    if availability is None:
        return StockStatus.INSTOCK
    return _AVAILABILITY_MAP.get(availability.strip().lower(), StockStatus.INSTOCK)


class MissingCatalogSku(ValueError):
    """Raised when a new binding would need a SKU the staged record does not carry."""

    def __init__(self, source: str, source_id: str) -> None:
        super().__init__(f"Staged record {source}:{source_id} has no SKU; cannot create or attach a catalog product.")
        self.source = source
        self.source_id = source_id


@dataclass(frozen=True)
class CatalogTarget:
    """
    Resolution outcome for a staged record.

    `action` values:
    - ``update``: a binding for ``(source, source_id)`` exists; update its product and the binding.
    - ``attach``: no binding, but a product with the same SKU exists; add a binding to it.
    - ``create``: neither exists; insert a product and its first binding.
    """

    action: Literal["update", "attach", "create"]
    product: CatalogProduct | None
    binding: ProductSource | None


def resolve_catalog_target(
    session: Session,
    *,
    source: str,
    source_id: str,
    sku: str | None,
) -> CatalogTarget:
    binding = session.query(ProductSource).filter_by(source=source, source_id=source_id).first()
    if binding is not None:
        return CatalogTarget(action="update", product=binding.product, binding=binding)

    if not sku:
        raise MissingCatalogSku(source, source_id)

    product = session.query(CatalogProduct).filter_by(sku=sku).first()
    if product is not None:
        return CatalogTarget(action="attach", product=product, binding=None)

    return CatalogTarget(action="create", product=None, binding=None)


class CatalogNormalizer:
    """Run category resolution and catalog upserts over the staging area."""

    def __init__(
        self,
        session: Session | None = None,
        *,
        resolver: CategoryResolver | None = None,
        batch_size: int | None = None,
        pack_quantity_attribute: str | None = None,
    ) -> None:
        self.session = session or db.session
        self.resolver = resolver or CategoryResolver(self.session)
        self.batch_size = batch_size or get_batch_size()
        self.pack_quantity_attribute = pack_quantity_attribute or get_pack_quantity_attribute()

    def normalize(self, source: str = "humed") -> NormalizeResult:
        logger.info("Starting %s product normalization", source)

        staged_ids = [
            row.id
            for row in self.session.query(StagedProduct.id)
            .filter(StagedProduct.source == source, StagedProduct.is_excluded.is_(False))
            .order_by(StagedProduct.feed_id)
            .all()
        ]
        logger.info("Loaded %s products from staging", len(staged_ids))

        result = NormalizeResult()
        for start in range(0, len(staged_ids), self.batch_size):
            chunk = staged_ids[start : start + self.batch_size]
            rows = (
                self.session.query(StagedProduct)
                .filter(StagedProduct.id.in_(chunk))
                .order_by(StagedProduct.feed_id)
                .all()
            )
            for staged in rows:
                result = result.with_outcome(self._normalize_record(staged, source))
                if result.processed % PROGRESS_INTERVAL == 0:
                    logger.info("Processed %s products", result.processed)
            self.session.commit()

        if metrics_enabled():
            FeedMonitoring.record_normalize(
                source=source,
                outcomes={key: value for key, value in result.as_dict().items() if key != "processed"},
            )
        logger.info("Normalization completed: %s", result.as_dict())
        return result

    def _normalize_record(self, staged: StagedProduct, source: str) -> NormalizeOutcome:
        feed_id = staged.feed_id
        try:
            category_name = staged.deepest_category_name
            match = self.resolver.match(source, category_name, staged.title)
            # The audit row survives a failed upsert
            with self.session.begin_nested():
                self.resolver.log_mapping(source, feed_id, staged.sku, category_name, match)
            with self.session.begin_nested():
                return self._apply(staged, source, match)
        except Exception:
            logger.exception("Failed to normalize product %s", feed_id)
            return NormalizeOutcome.FAILED

    def _apply(self, staged: StagedProduct, source: str, match: MatchResult) -> NormalizeOutcome:
        if match.is_excluded:
            staged.is_excluded = True
            staged.exclusion_reason = EXCLUSION_REASON
            self.session.flush()
            return NormalizeOutcome.SKIPPED_EXCLUDED

        if not match.is_matched:
            logger.debug("Unmapped product: %s - %s", staged.sku, staged.deepest_category_name)
            self.session.flush()
            return NormalizeOutcome.SKIPPED_UNMAPPED

        outcome = self._upsert_product(staged, source, match.target_category_id)
        self.session.flush()
        return outcome

    def _upsert_product(self, staged: StagedProduct, source: str, category_id: int) -> NormalizeOutcome:
        now = datetime.now(timezone.utc)
        target = resolve_catalog_target(self.session, source=source, source_id=staged.feed_id, sku=staged.sku)

        if target.action == "update":
            self._apply_product_fields(target.product, staged, category_id)
            target.binding.source_price_purchase = staged.price_purchase
            target.binding.source_price_retail = staged.price_retail
            target.binding.last_seen_at = now
            return NormalizeOutcome.UPDATED

        if target.action == "attach":
            self._add_binding(target.product, staged, source, now)
            return NormalizeOutcome.UPDATED

        product = CatalogProduct(sku=staged.sku, is_active=True)
        self._apply_product_fields(product, staged, category_id)
        self.session.add(product)
        self._add_binding(product, staged, source, now)
        return NormalizeOutcome.CREATED

    def _apply_product_fields(self, product: CatalogProduct, staged: StagedProduct, category_id: int) -> None:
        product.name = staged.title
        product.description = staged.description
        product.category_id = category_id
        product.price_cost = staged.price_purchase
        product.price_b2b = staged.price_retail
        product.margin_percent = calculate_margin_percent(staged.price_purchase, staged.price_retail)
        product.weight_kg = grams_to_kg(staged.weight_grams)
        product.pack_quantity = parse_pack_quantity(staged.attributes, self.pack_quantity_attribute)
        product.images = list(staged.images or [])
        product.attributes = dict(staged.attributes or {})
        product.stock_status = map_availability(staged.availability)

    @staticmethod
    def _add_binding(product: CatalogProduct, staged: StagedProduct, source: str, now: datetime) -> ProductSource:
        binding = ProductSource(
            source=source,
            source_id=staged.feed_id,
            source_sku=staged.sku,
            source_price_purchase=staged.price_purchase,
            source_price_retail=staged.price_retail,
            is_primary=True,
            priority=1,
            last_seen_at=now,
            is_active=True,
        )
        product.sources.append(binding)
        return binding
