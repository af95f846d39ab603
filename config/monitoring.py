# config/monitoring.py

import os

from prometheus_client import Counter, Histogram


class MonitoringConfig:
    """Logging and metrics configuration"""

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")  # 'json' or 'text'
    LOG_DIR = os.environ.get("LOG_DIR", "logs")
    LOG_FILE_MAX_BYTES = int(os.environ.get("LOG_FILE_MAX_BYTES", 10485760))  # 10MB
    LOG_FILE_BACKUP_COUNT = int(os.environ.get("LOG_FILE_BACKUP_COUNT", 10))

    ENABLE_FILE_LOGGING = os.environ.get("ENABLE_FILE_LOGGING", "true").lower() == "true"
    ENABLE_CONSOLE_LOGGING = os.environ.get("ENABLE_CONSOLE_LOGGING", "true").lower() == "true"

    APP_NAME = os.environ.get("APP_NAME", "feedcatalog")


class DevelopmentMonitoringConfig(MonitoringConfig):
    """Development-specific monitoring configuration"""

    LOG_LEVEL = "DEBUG"
    LOG_FORMAT = "text"
    ENABLE_FILE_LOGGING = True
    ENABLE_CONSOLE_LOGGING = True


class ProductionMonitoringConfig(MonitoringConfig):
    """Production-specific monitoring configuration"""

    LOG_LEVEL = "INFO"
    LOG_FORMAT = "json"
    ENABLE_FILE_LOGGING = True
    ENABLE_CONSOLE_LOGGING = False  # Usually handled by container orchestration


class TestingMonitoringConfig(MonitoringConfig):
    """Testing-specific monitoring configuration"""

    LOG_LEVEL = "WARNING"
    LOG_FORMAT = "text"
    ENABLE_FILE_LOGGING = False
    ENABLE_CONSOLE_LOGGING = False


class FeedMonitoring:
    """Prometheus metric helpers for feed sync and catalog normalization."""

    STAGING_OUTCOMES = Counter(
        "feed_staging_records_total",
        "Staged feed records by change-detection outcome.",
        labelnames=("source", "outcome"),
    )
    NORMALIZE_OUTCOMES = Counter(
        "feed_normalize_records_total",
        "Staged records processed by the catalog normalizer, by outcome.",
        labelnames=("source", "outcome"),
    )
    CATEGORY_MATCHES = Counter(
        "feed_category_matches_total",
        "Category resolution decisions by match type.",
        labelnames=("source", "match_type"),
    )
    SYNC_RUNS = Counter(
        "feed_sync_runs_total",
        "Feed sync runs by final status.",
        labelnames=("source", "status"),
    )
    SYNC_DURATION = Histogram(
        "feed_sync_duration_seconds",
        "Wall-clock duration of a feed sync run.",
        labelnames=("source",),
        buckets=(1, 5, 10, 30, 60, 120, 300, 600, 1200),
    )

    @classmethod
    def record_staging(cls, *, source: str, inserted: int, updated: int, unchanged: int, failed: int):
        for outcome, count in (
            ("inserted", inserted),
            ("updated", updated),
            ("unchanged", unchanged),
            ("failed", failed),
        ):
            if count:
                cls.STAGING_OUTCOMES.labels(source=source, outcome=outcome).inc(count)

    @classmethod
    def record_normalize(cls, *, source: str, outcomes: dict[str, int]):
        for outcome, count in outcomes.items():
            if count:
                cls.NORMALIZE_OUTCOMES.labels(source=source, outcome=outcome).inc(count)

    @classmethod
    def record_category_match(cls, *, source: str, match_type: str):
        cls.CATEGORY_MATCHES.labels(source=source, match_type=match_type).inc()

    @classmethod
    def record_sync_run(cls, *, source: str, status: str, duration_seconds: float):
        cls.SYNC_RUNS.labels(source=source, status=status).inc()
        cls.SYNC_DURATION.labels(source=source).observe(max(duration_seconds, 0.0))
