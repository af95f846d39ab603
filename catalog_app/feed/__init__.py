"""
Supplier feed package: CLI group and JSON blueprint registration.
"""

from __future__ import annotations

from flask import Flask

from catalog_app.utils.feed import get_feed_source, is_feed_enabled

FEED_EXTENSION_KEY = "feed"

__all__ = ["init_feed", "FEED_EXTENSION_KEY"]


def init_feed(app: Flask) -> None:
    """
    Mount the ``flask feed`` CLI group and the ``/feed`` blueprint.

    State is recorded in ``app.extensions['feed']``. The CLI is always
    registered so operators can inspect stats even while syncing is disabled.
    """
    from .cli import feed_cli
    from .views import feed_blueprint

    state = app.extensions.setdefault(FEED_EXTENSION_KEY, {})
    state.update({"enabled": is_feed_enabled(app), "source": get_feed_source(app)})

    if "feed" not in app.cli.commands:
        app.cli.add_command(feed_cli)
    if "feed" not in app.blueprints:
        app.register_blueprint(feed_blueprint)

    if not state["enabled"]:
        app.logger.info("Feed sync disabled via FEED_ENABLED flag; CLI stays available for inspection.")
