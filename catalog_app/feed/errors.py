"""Exception hierarchy for the feed pipeline."""

from __future__ import annotations


class FeedError(Exception):
    """Base exception for feed pipeline failures."""


class FeedParseError(FeedError):
    """Raised when the feed XML is structurally malformed and cannot be streamed."""

    def __init__(self, message: str, *, position: tuple[int, int] | None = None) -> None:
        if position is not None:
            message = f"{message} (line {position[0]}, column {position[1]})"
        super().__init__(message)
        self.position = position


class FeedSourceError(FeedError):
    """Raised when no feed could be obtained from the configured source."""


class FeedSyncError(FeedError):
    """Raised when a sync run aborts; the run log has already been marked failed."""

    def __init__(self, run_id: int | None, message: str) -> None:
        super().__init__(f"Feed sync run {run_id} failed: {message}")
        self.run_id = run_id


class RulesLoadError(FeedError):
    """Raised when a curated category rules file cannot be loaded or validated."""
