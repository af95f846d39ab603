"""
CLI commands for the supplier feed pipeline, mounted as ``flask feed``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click
from flask import current_app
from flask.cli import with_appcontext

from catalog_app.feed.errors import FeedSyncError, RulesLoadError
from catalog_app.feed.pipeline import (
    CatalogNormalizer,
    CategoryResolver,
    FeedSyncJob,
    NormalizeResult,
    UpsertResult,
)
from catalog_app.feed.rules import apply_rules, load_rules_file
from catalog_app.feed.source import FeedSource
from catalog_app.feed.strategy import STRATEGIES, classify_strategy
from catalog_app.models import FeedSyncRun, db
from catalog_app.utils.feed import get_feed_source, is_feed_enabled


@click.group(name="feed")
def feed_cli():
    """Supplier feed sync, normalization and rule management."""


def _build_job(file_path: Optional[Path], url: Optional[str]) -> FeedSyncJob:
    feed_source = FeedSource.from_config()
    if file_path is not None:
        feed_source.path = file_path
    elif url is not None:
        feed_source.path = None
    if url is not None:
        feed_source.url = url
    return FeedSyncJob(feed_source=feed_source)


def _format_sync_summary(run_id: Optional[int], result: UpsertResult) -> str:
    return (
        f"Sync run {run_id} completed.\n"
        f"  products_total    : {result.total}\n"
        f"  products_new      : {result.inserted}\n"
        f"  products_updated  : {result.updated}\n"
        f"  products_unchanged: {result.unchanged}\n"
        f"  products_failed   : {result.failed}"
    )


def _format_normalize_summary(result: NormalizeResult) -> str:
    return (
        "Normalization completed.\n"
        f"  processed       : {result.processed}\n"
        f"  created         : {result.created}\n"
        f"  updated         : {result.updated}\n"
        f"  skipped_excluded: {result.skipped_excluded}\n"
        f"  skipped_unmapped: {result.skipped_unmapped}\n"
        f"  failed          : {result.failed}"
    )


_source_options = [
    click.option(
        "--file",
        "file_path",
        type=click.Path(path_type=Path, exists=True, dir_okay=False),
        help="Read the feed from this file instead of FEED_PATH/FEED_URL.",
    ),
    click.option("--url", help="Download the feed from this URL instead of FEED_URL."),
    click.option("--summary-json", is_flag=True, help="Emit a machine-readable summary payload."),
]


def _with_source_options(func):
    for option in reversed(_source_options):
        func = option(func)
    return func


@feed_cli.command("sync")
@_with_source_options
@with_appcontext
def feed_sync(file_path: Optional[Path], url: Optional[str], summary_json: bool):
    """Download/parse the feed and stage changed records."""
    if not is_feed_enabled():
        click.echo("Feed sync is disabled via FEED_ENABLED=false.")
        return

    job = _build_job(file_path, url)
    try:
        result = job.sync()
    except FeedSyncError as exc:
        raise click.ClickException(str(exc)) from exc

    if summary_json:
        click.echo(json.dumps({"run_id": job.last_run_id, "sync": result.as_dict()}, indent=2, sort_keys=True))
    else:
        click.echo(_format_sync_summary(job.last_run_id, result))


@feed_cli.command("normalize")
@click.option("--source", "source_name", help="Source identifier (defaults to FEED_SOURCE).")
@click.option("--summary-json", is_flag=True, help="Emit a machine-readable summary payload.")
@with_appcontext
def feed_normalize(source_name: Optional[str], summary_json: bool):
    """Resolve categories and upsert staged records into the catalog."""
    result = CatalogNormalizer().normalize(source_name or get_feed_source())
    if summary_json:
        click.echo(json.dumps({"normalize": result.as_dict()}, indent=2, sort_keys=True))
    else:
        click.echo(_format_normalize_summary(result))


@feed_cli.command("run")
@_with_source_options
@click.option("--normalize/--no-normalize", default=True, help="Normalize after a sync that saw any records.")
@with_appcontext
def feed_run(file_path: Optional[Path], url: Optional[str], summary_json: bool, normalize: bool):
    """Sync the feed, then normalize (the scheduled job)."""
    if not is_feed_enabled():
        click.echo("Feed sync is disabled via FEED_ENABLED=false.")
        return

    job = _build_job(file_path, url)
    try:
        outcome = job.run_pipeline(normalize=normalize)
    except FeedSyncError as exc:
        raise click.ClickException(str(exc)) from exc

    if summary_json:
        click.echo(json.dumps(outcome.as_dict(), indent=2, sort_keys=True))
        return
    click.echo(_format_sync_summary(outcome.run_id, outcome.sync))
    if outcome.normalize is not None:
        click.echo(_format_normalize_summary(outcome.normalize))
    else:
        click.echo("Normalization skipped.")


@feed_cli.command("stats")
@click.option("--source", "source_name", help="Source identifier (defaults to FEED_SOURCE).")
@with_appcontext
def feed_stats(source_name: Optional[str]):
    """Show category mapping statistics and the latest sync run."""
    source = source_name or get_feed_source()
    stats = CategoryResolver().get_stats(source)
    latest = (
        db.session.query(FeedSyncRun)
        .filter(FeedSyncRun.source == source)
        .order_by(FeedSyncRun.started_at.desc(), FeedSyncRun.id.desc())
        .first()
    )
    payload = {
        "source": source,
        "mapping": stats.as_dict(),
        "latest_run": latest.to_dict() if latest is not None else None,
    }
    click.echo(json.dumps(payload, indent=2, sort_keys=True))


@feed_cli.command("load-rules")
@click.argument("path", required=False, type=click.Path(path_type=Path, dir_okay=False))
@with_appcontext
def feed_load_rules(path: Optional[Path]):
    """Load curated categories, rules and exclusions from YAML."""
    rules_path = path or current_app.config.get("FEED_RULES_PATH")
    if not rules_path:
        raise click.ClickException("No rules file given and FEED_RULES_PATH is not configured.")
    try:
        spec = load_rules_file(rules_path)
        result = apply_rules(spec)
    except RulesLoadError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(json.dumps({"source": spec.source, **result.as_dict()}, indent=2, sort_keys=True))


@feed_cli.command("strategies")
@click.option("--category", help="Category name to classify.")
@click.option("--name", "product_name", help="Product name to classify.")
def feed_strategies(category: Optional[str], product_name: Optional[str]):
    """List enrichment strategies, or classify a product into one."""
    if category or product_name:
        click.echo(json.dumps(classify_strategy(category, product_name).as_dict(), indent=2, ensure_ascii=False))
        return
    for strategy in STRATEGIES.values():
        warning = " (safety warning)" if strategy.has_safety_warning else ""
        click.echo(f"{strategy.id.value}: {', '.join(strategy.required_specs)}{warning}")
