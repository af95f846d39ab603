"""
Utility helpers for feed configuration lookups.
"""

from __future__ import annotations

from flask import current_app


def _get_config(app=None):
    if app is not None:
        return app.config
    return current_app.config


def is_feed_enabled(app=None) -> bool:
    """Return True when feed syncing is enabled."""
    config = _get_config(app)
    return bool(config.get("FEED_ENABLED", False))


def get_feed_source(app=None) -> str:
    """Return the configured feed source identifier (e.g. ``humed``)."""
    config = _get_config(app)
    return str(config.get("FEED_SOURCE") or "humed").strip().lower()


def get_batch_size(app=None) -> int:
    """Return the staging batch size, never less than one."""
    config = _get_config(app)
    try:
        return max(1, int(config.get("FEED_BATCH_SIZE", 100)))
    except (TypeError, ValueError):
        return 100


def metrics_enabled(app=None) -> bool:
    """Return True when Prometheus feed metrics should be recorded."""
    config = _get_config(app)
    return bool(config.get("FEED_METRICS_ENABLED", False))


def get_pack_quantity_attribute(app=None) -> str:
    """Return the feed attribute name that carries the pack size."""
    config = _get_config(app)
    return config.get("FEED_PACK_QUANTITY_ATTRIBUTE") or "Balenie"
