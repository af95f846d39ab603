# catalog_app/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .catalog import (
    CatalogProduct,
    Category,
    CategoryExclusion,
    CategoryMappingLog,
    CategoryRule,
    MatchType,
    ProductSource,
    StockStatus,
)
from .staging import FeedSyncRun, StagedProduct, SyncRunStatus

__all__ = [
    "db",
    "BaseModel",
    # Staging
    "FeedSyncRun",
    "StagedProduct",
    "SyncRunStatus",
    # Catalog
    "CatalogProduct",
    "Category",
    "CategoryExclusion",
    "CategoryMappingLog",
    "CategoryRule",
    "MatchType",
    "ProductSource",
    "StockStatus",
]
