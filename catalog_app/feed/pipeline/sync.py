"""
Orchestration of a feed sync run.

``FeedSyncJob.sync`` obtains the feed, streams it through the parser in
fixed-size batches, and stages each batch in its own transaction. Every run
is recorded in ``feed_sync_runs``; a fatal error marks the run failed and is
re-raised as ``FeedSyncError``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from itertools import islice
from typing import Iterable, Iterator

from sqlalchemy.orm import Session

from catalog_app.feed.errors import FeedSyncError
from catalog_app.feed.source import FeedSource
from catalog_app.models import FeedSyncRun, SyncRunStatus, db
from catalog_app.utils.feed import get_batch_size, get_feed_source, is_feed_enabled, metrics_enabled
from config.monitoring import FeedMonitoring

from .normalizer import CatalogNormalizer, NormalizeResult
from .parser import FeedParser
from .records import RawProductRecord
from .staging import StagingStore, UpsertResult, compute_feed_checksum

logger = logging.getLogger(__name__)


def batched(records: Iterable[RawProductRecord], size: int) -> Iterator[list[RawProductRecord]]:
    iterator = iter(records)
    while True:
        batch = list(islice(iterator, size))
        if not batch:
            return
        yield batch


@dataclass(frozen=True)
class PipelineResult:
    run_id: int | None
    sync: UpsertResult
    normalize: NormalizeResult | None = None

    def as_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "sync": self.sync.as_dict(),
            "normalize": self.normalize.as_dict() if self.normalize is not None else None,
        }


class FeedSyncJob:
    """Sync one feed source into the staging area."""

    def __init__(
        self,
        *,
        source: str | None = None,
        feed_source: FeedSource | None = None,
        parser: FeedParser | None = None,
        batch_size: int | None = None,
        session: Session | None = None,
    ) -> None:
        self.session = session or db.session
        self.source = source or get_feed_source()
        self.feed_source = feed_source or FeedSource.from_config()
        self.parser = parser or FeedParser()
        self.batch_size = batch_size or get_batch_size()
        self.store = StagingStore(self.session, source=self.source)
        self.last_run_id: int | None = None

    def sync(self) -> UpsertResult:
        if not is_feed_enabled():
            logger.info("Feed sync for %s is disabled", self.source)
            return UpsertResult()

        logger.info("Starting %s sync job", self.source)
        run = self._start_run()
        run_id = run.id
        started = time.monotonic()
        result = UpsertResult()

        try:
            with self.feed_source.open() as feed_path:
                feed_checksum = compute_feed_checksum(feed_path)
                with feed_path.open("rb") as handle:
                    for batch in batched(self.parser.iter_records(handle), self.batch_size):
                        result = result + self.store.upsert_batch(batch)
                        logger.debug("Staged %s products so far", result.total)
        except Exception as exc:
            self.session.rollback()
            logger.exception("%s sync failed after %s staged products", self.source, result.total)
            self._fail_run(run_id, result, str(exc))
            self._record_metrics(result, SyncRunStatus.FAILED, time.monotonic() - started)
            raise FeedSyncError(run_id, str(exc)) from exc

        self._complete_run(run_id, result, feed_checksum)
        self._record_metrics(result, SyncRunStatus.SUCCEEDED, time.monotonic() - started)
        logger.info(
            "%s sync completed. Inserted: %s, Updated: %s, Unchanged: %s, Failed: %s",
            self.source,
            result.inserted,
            result.updated,
            result.unchanged,
            result.failed,
        )
        return result

    def run_pipeline(self, *, normalize: bool = True) -> PipelineResult:
        """Sync, then normalize when the sync saw any records."""

        sync_result = self.sync()
        normalize_result = None
        if normalize and sync_result.total > 0:
            normalize_result = CatalogNormalizer(self.session).normalize(self.source)
            self._attach_normalize_counts(normalize_result)
        return PipelineResult(run_id=self.last_run_id, sync=sync_result, normalize=normalize_result)

    def _start_run(self) -> FeedSyncRun:
        run = FeedSyncRun(
            source=self.source,
            status=SyncRunStatus.RUNNING,
            started_at=datetime.now(timezone.utc),
        )
        self.session.add(run)
        self.session.commit()
        self.last_run_id = run.id
        return run

    def _complete_run(self, run_id: int, result: UpsertResult, feed_checksum: str) -> None:
        run = self.session.get(FeedSyncRun, run_id)
        run.status = SyncRunStatus.SUCCEEDED
        run.finished_at = datetime.now(timezone.utc)
        run.feed_checksum = feed_checksum
        self._apply_counts(run, result)
        self.session.commit()

    def _fail_run(self, run_id: int, result: UpsertResult, message: str) -> None:
        run = self.session.get(FeedSyncRun, run_id)
        run.status = SyncRunStatus.FAILED
        run.finished_at = datetime.now(timezone.utc)
        run.error_message = message
        self._apply_counts(run, result)
        self.session.commit()

    @staticmethod
    def _apply_counts(run: FeedSyncRun, result: UpsertResult) -> None:
        run.products_total = result.total
        run.products_new = result.inserted
        run.products_updated = result.updated
        run.products_unchanged = result.unchanged
        run.products_failed = result.failed
        run.counts_json = {"staging": result.as_dict()}

    def _attach_normalize_counts(self, normalize_result: NormalizeResult) -> None:
        if self.last_run_id is None:
            return
        run = self.session.get(FeedSyncRun, self.last_run_id)
        counts = dict(run.counts_json or {})
        counts["normalize"] = normalize_result.as_dict()
        run.counts_json = counts
        self.session.commit()

    def _record_metrics(self, result: UpsertResult, status: SyncRunStatus, duration: float) -> None:
        if not metrics_enabled():
            return
        FeedMonitoring.record_staging(
            source=self.source,
            inserted=result.inserted,
            updated=result.updated,
            unchanged=result.unchanged,
            failed=result.failed,
        )
        FeedMonitoring.record_sync_run(source=self.source, status=status.value, duration_seconds=duration)
