"""
SQLAlchemy models for the feed staging area.

Staging keeps the latest-known raw form of every feed record, keyed by the
supplier-assigned identity, alongside the content checksum used to detect
changes between syncs. ``FeedSyncRun`` records one row per sync attempt.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Enum, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, db


class SyncRunStatus(str, enum.Enum):
    """Lifecycle states for a feed sync run."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FeedSyncRun(BaseModel):
    """Audit row describing a single feed sync execution."""

    __tablename__ = "feed_sync_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    source: Mapped[str] = mapped_column(db.String(100), nullable=False, index=True)
    status: Mapped[SyncRunStatus] = mapped_column(
        Enum(SyncRunStatus, name="feed_sync_run_status_enum"),
        nullable=False,
        default=SyncRunStatus.RUNNING,
        index=True,
    )
    started_at: Mapped[datetime] = mapped_column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    finished_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    products_total: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    products_new: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    products_updated: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    products_unchanged: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    products_failed: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    feed_checksum: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    error_message: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    counts_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)

    __table_args__ = (Index("idx_feed_sync_runs_source_status", "source", "status"),)

    def __repr__(self):
        return f"<FeedSyncRun {self.id} {self.source} {self.status}>"

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        started = self.started_at
        finished = self.finished_at
        # SQLite hands back naive datetimes
        if started.tzinfo is None:
            started = started.replace(tzinfo=timezone.utc)
        if finished.tzinfo is None:
            finished = finished.replace(tzinfo=timezone.utc)
        return (finished - started).total_seconds()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source,
            "status": self.status.value if hasattr(self.status, "value") else str(self.status),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "products_total": self.products_total,
            "products_new": self.products_new,
            "products_updated": self.products_updated,
            "products_unchanged": self.products_unchanged,
            "products_failed": self.products_failed,
            "feed_checksum": self.feed_checksum,
            "error_message": self.error_message,
            "counts": dict(self.counts_json or {}),
        }


class StagedProduct(BaseModel):
    """
    Latest-known raw payload for one feed record.

    Rows are inserted on first sighting of a ``feed_id``, rewritten only when
    the checksum changes, and flagged ``is_excluded`` by the catalog
    normalizer once their category hits an exclusion pattern.
    """

    __tablename__ = "staging_products"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    source: Mapped[str] = mapped_column(db.String(100), nullable=False, index=True)
    feed_id: Mapped[str] = mapped_column(db.String(255), nullable=False)
    sku: Mapped[str | None] = mapped_column(db.String(255), nullable=True, index=True)
    gtin: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    title: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    description: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    link: Mapped[str | None] = mapped_column(db.String(1000), nullable=True)
    price_purchase: Mapped[Decimal | None] = mapped_column(db.Numeric(14, 4), nullable=True)
    price_retail: Mapped[Decimal | None] = mapped_column(db.Numeric(14, 4), nullable=True)
    weight_grams: Mapped[int | None] = mapped_column(db.Integer, nullable=True)
    availability: Mapped[str | None] = mapped_column(db.String(100), nullable=True)
    condition: Mapped[str | None] = mapped_column(db.String(100), nullable=True)
    categories: Mapped[list] = mapped_column(db.JSON, nullable=False, default=list)
    images: Mapped[list] = mapped_column(db.JSON, nullable=False, default=list)
    attributes: Mapped[dict] = mapped_column(db.JSON, nullable=False, default=dict)
    checksum: Mapped[str] = mapped_column(db.String(64), nullable=False)
    is_excluded: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False, index=True)
    exclusion_reason: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    imported_at: Mapped[datetime] = mapped_column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("source", "feed_id", name="uq_staging_products_source_feed_id"),
    )

    def __repr__(self):
        return f"<StagedProduct {self.source}:{self.feed_id}>"

    @property
    def deepest_category_name(self) -> str | None:
        """Name of the last (most specific) category entry, if any."""
        if not self.categories:
            return None
        deepest = self.categories[-1]
        if not isinstance(deepest, dict):
            return None
        return deepest.get("name")
