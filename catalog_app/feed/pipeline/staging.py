"""Change detection and staging upserts for parsed feed records."""

from __future__ import annotations

import enum
import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import IO, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from catalog_app.models import StagedProduct, db

from .records import RawProductRecord

logger = logging.getLogger(__name__)

CHECKSUM_DELIMITER = "|"
_FEED_CHUNK_SIZE = 1024 * 1024


class UpsertOutcome(str, enum.Enum):
    """Result of staging a single record."""

    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass(frozen=True)
class UpsertResult:
    """Outcome counts for one or more staging upserts."""

    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated + self.unchanged + self.failed

    @property
    def changed(self) -> int:
        return self.inserted + self.updated

    def __add__(self, other: "UpsertResult") -> "UpsertResult":
        if not isinstance(other, UpsertResult):
            return NotImplemented
        return UpsertResult(
            inserted=self.inserted + other.inserted,
            updated=self.updated + other.updated,
            unchanged=self.unchanged + other.unchanged,
            failed=self.failed + other.failed,
        )

    def with_outcome(self, outcome: UpsertOutcome) -> "UpsertResult":
        return self + UpsertResult(**{outcome.value: 1})

    def as_dict(self) -> dict[str, int]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "failed": self.failed,
            "total": self.total,
        }


def _canonical_json(payload: object, *, sort_keys: bool = False) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), sort_keys=sort_keys)


def _plain_decimal(value: Decimal | None) -> str:
    if value is None:
        return ""
    return format(value, "f")


def canonical_payload(record: RawProductRecord) -> str:
    """
    Build the delimiter-joined string the record checksum is taken over.

    Categories keep feed order with ``id`` before ``name``; images keep feed
    order; attribute keys are sorted so insertion order never matters.
    """

    return CHECKSUM_DELIMITER.join(
        (
            (record.sku or "").strip(),
            record.title or "",
            record.description or "",
            _plain_decimal(record.price_purchase),
            _plain_decimal(record.price_retail),
            str(record.weight_grams) if record.weight_grams is not None else "",
            record.availability or "",
            _canonical_json(record.categories_payload()),
            _canonical_json(list(record.images)),
            _canonical_json(record.attributes_payload(), sort_keys=True),
        )
    )


def compute_checksum(record: RawProductRecord) -> str:
    """Return the SHA-256 hex digest of a record's business fields."""

    return hashlib.sha256(canonical_payload(record).encode("utf-8")).hexdigest()


def compute_feed_checksum(source: str | Path | bytes | IO[bytes]) -> str:
    """Return the SHA-256 hex digest of the raw feed bytes."""

    digest = hashlib.sha256()
    if isinstance(source, bytes):
        digest.update(source)
        return digest.hexdigest()
    if isinstance(source, (str, Path)):
        with Path(source).open("rb") as handle:
            for chunk in iter(lambda: handle.read(_FEED_CHUNK_SIZE), b""):
                digest.update(chunk)
        return digest.hexdigest()
    for chunk in iter(lambda: source.read(_FEED_CHUNK_SIZE), b""):
        digest.update(chunk)
    return digest.hexdigest()


def _staging_values(record: RawProductRecord, checksum: str) -> dict[str, object]:
    return {
        "sku": record.sku,
        "gtin": record.gtin,
        "title": record.title,
        "description": record.description,
        "link": record.link,
        "price_purchase": record.price_purchase,
        "price_retail": record.price_retail,
        "weight_grams": record.weight_grams,
        "availability": record.availability,
        "condition": record.condition,
        "categories": record.categories_payload(),
        "images": list(record.images),
        "attributes": record.attributes_payload(),
        "checksum": checksum,
    }


class StagingStore:
    """
    Content-addressed staging upserts keyed by ``(source, feed_id)``.

    Unchanged records are detected from the stored checksum and never
    rewritten. Each record is written inside its own savepoint so a storage
    failure only discards that record.
    """

    def __init__(self, session: Session | None = None, *, source: str = "humed") -> None:
        self.session = session or db.session
        self.source = source

    def upsert(self, record: RawProductRecord) -> UpsertOutcome:
        """Stage one record. Storage failures are logged and reported as ``FAILED``."""

        checksum = compute_checksum(record)
        try:
            with self.session.begin_nested():
                return self._write(record, checksum)
        except SQLAlchemyError as exc:
            logger.error("Failed to stage product %s: %s", record.feed_id, exc)
            return UpsertOutcome.FAILED

    def upsert_batch(self, records: Iterable[RawProductRecord], *, commit: bool = True) -> UpsertResult:
        """
        Stage a batch of records and commit them as one transaction.

        A failure while committing rolls back the whole in-flight batch and
        propagates; batches committed earlier are unaffected.
        """

        result = UpsertResult()
        for record in records:
            result = result.with_outcome(self.upsert(record))

        if commit:
            try:
                self.session.commit()
            except SQLAlchemyError:
                self.session.rollback()
                raise
        return result

    def _write(self, record: RawProductRecord, checksum: str) -> UpsertOutcome:
        existing = (
            self.session.query(StagedProduct.id, StagedProduct.checksum)
            .filter(StagedProduct.source == self.source, StagedProduct.feed_id == record.feed_id)
            .first()
        )
        now = datetime.now(timezone.utc)

        if existing is None:
            staged = StagedProduct(
                source=self.source,
                feed_id=record.feed_id,
                imported_at=now,
                updated_at=now,
                **_staging_values(record, checksum),
            )
            self.session.add(staged)
            self.session.flush()
            return UpsertOutcome.INSERTED

        if existing.checksum == checksum:
            return UpsertOutcome.UNCHANGED

        staged = self.session.get(StagedProduct, existing.id)
        for attribute, value in _staging_values(record, checksum).items():
            setattr(staged, attribute, value)
        staged.updated_at = now
        self.session.flush()
        return UpsertOutcome.UPDATED
