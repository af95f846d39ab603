# catalog_app/models/catalog.py

import enum
from datetime import datetime, timezone

from sqlalchemy import Enum, Index

from .base import BaseModel, db


class StockStatus(str, enum.Enum):
    INSTOCK = "instock"
    OUTOFSTOCK = "outofstock"
    ONBACKORDER = "onbackorder"


class MatchType(str, enum.Enum):
    EXACT = "exact"
    PATTERN = "pattern"
    TITLE = "title"
    UNMAPPED = "unmapped"
    EXCLUDED = "excluded"


class Category(BaseModel):
    """Node of the internal product taxonomy"""

    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), unique=True, nullable=False, index=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    parent = db.relationship("Category", remote_side=[id], backref="children")

    def __repr__(self):
        return f"<Category {self.slug}>"


class CategoryRule(BaseModel):
    """Curated mapping from a source category or title pattern to a taxonomy node"""

    __tablename__ = "category_rules"

    id = db.Column(db.Integer, primary_key=True)
    source = db.Column(db.String(100), nullable=False, index=True)
    source_category_exact = db.Column(db.String(500), nullable=True)
    source_category_pattern = db.Column(db.String(500), nullable=True)
    title_pattern = db.Column(db.String(500), nullable=True)
    target_category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False)
    priority = db.Column(db.Integer, nullable=False, default=100)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    target_category = db.relationship("Category")

    __table_args__ = (Index("idx_category_rules_source_active", "source", "is_active", "priority"),)

    def __repr__(self):
        return f"<CategoryRule {self.id} {self.source} -> {self.target_category_id}>"

    @property
    def is_dead(self):
        """A rule without any match field can never match."""
        return not (self.source_category_exact or self.source_category_pattern or self.title_pattern)


class CategoryExclusion(BaseModel):
    """Source category pattern whose products never reach the catalog"""

    __tablename__ = "category_exclusions"

    id = db.Column(db.Integer, primary_key=True)
    source = db.Column(db.String(100), nullable=False, index=True)
    source_category_pattern = db.Column(db.String(500), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<CategoryExclusion {self.source} {self.source_category_pattern!r}>"


class CategoryMappingLog(db.Model):
    """Append-only audit trail of category resolution decisions"""

    __tablename__ = "category_mapping_log"

    id = db.Column(db.Integer, primary_key=True)
    source = db.Column(db.String(100), nullable=False)
    source_product_id = db.Column(db.String(255), nullable=True)
    source_sku = db.Column(db.String(255), nullable=True)
    source_category_raw = db.Column(db.Text, nullable=True)
    matched_rule_id = db.Column(db.Integer, nullable=True)
    target_category_id = db.Column(db.Integer, nullable=True)
    match_type = db.Column(Enum(MatchType, name="category_match_type_enum"), nullable=False)
    mapped_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (Index("idx_category_mapping_log_source_type", "source", "match_type"),)


class CatalogProduct(BaseModel):
    """Canonical catalog product, possibly supplied by several sources"""

    __tablename__ = "catalog_products"

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.Text, nullable=True)
    description = db.Column(db.Text, nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    price_cost = db.Column(db.Numeric(14, 4), nullable=True)
    price_b2b = db.Column(db.Numeric(14, 4), nullable=True)
    margin_percent = db.Column(db.Numeric(7, 2), nullable=True)
    weight_kg = db.Column(db.Numeric(12, 4), nullable=True)
    pack_quantity = db.Column(db.Integer, nullable=True)
    images = db.Column(db.JSON, nullable=False, default=list)
    attributes = db.Column(db.JSON, nullable=False, default=dict)
    stock_status = db.Column(
        Enum(StockStatus, name="stock_status_enum"),
        default=StockStatus.INSTOCK,
        nullable=False,
    )
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    category = db.relationship("Category")
    sources = db.relationship("ProductSource", back_populates="product", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<CatalogProduct {self.sku}>"


class ProductSource(BaseModel):
    """Binding of a catalog product to one upstream feed identity"""

    __tablename__ = "product_sources"

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("catalog_products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    source = db.Column(db.String(100), nullable=False)
    source_id = db.Column(db.String(255), nullable=False)
    source_sku = db.Column(db.String(255), nullable=True)
    source_price_purchase = db.Column(db.Numeric(14, 4), nullable=True)
    source_price_retail = db.Column(db.Numeric(14, 4), nullable=True)
    is_primary = db.Column(db.Boolean, nullable=False, default=True)
    priority = db.Column(db.Integer, nullable=False, default=1)
    last_seen_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    product = db.relationship("CatalogProduct", back_populates="sources")

    __table_args__ = (db.UniqueConstraint("source", "source_id", name="uq_product_sources_source_source_id"),)

    def __repr__(self):
        return f"<ProductSource {self.source}:{self.source_id} -> {self.product_id}>"
