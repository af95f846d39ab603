"""
Read-only JSON endpoints for feed sync runs and category mapping statistics.
"""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from catalog_app.feed.pipeline import CategoryResolver
from catalog_app.models import FeedSyncRun, SyncRunStatus, db
from catalog_app.utils.feed import get_feed_source

feed_blueprint = Blueprint("feed", __name__, url_prefix="/feed")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _json_error(message: str, status: HTTPStatus):
    return jsonify({"error": message}), status


def _parse_int(value, default: int, *, minimum: int = 1, maximum: int | None = None) -> int:
    if value is None or str(value).strip() == "":
        return default
    number = int(value)
    if number < minimum:
        raise ValueError(f"Value must be at least {minimum}.")
    if maximum is not None:
        number = min(number, maximum)
    return number


@feed_blueprint.get("/runs")
def feed_runs_list():
    try:
        page = _parse_int(request.args.get("page"), 1)
        page_size = _parse_int(request.args.get("page_size"), DEFAULT_PAGE_SIZE, maximum=MAX_PAGE_SIZE)
        status = SyncRunStatus(request.args["status"]) if request.args.get("status") else None
    except ValueError as exc:
        return _json_error(str(exc), HTTPStatus.BAD_REQUEST)

    source = request.args.get("source") or get_feed_source()
    query = db.session.query(FeedSyncRun).filter(FeedSyncRun.source == source)
    if status is not None:
        query = query.filter(FeedSyncRun.status == status)

    try:
        total = query.count()
        runs = (
            query.order_by(FeedSyncRun.started_at.desc(), FeedSyncRun.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
    except SQLAlchemyError as exc:
        current_app.logger.exception("Feed runs list failed.", exc_info=exc)
        return _json_error("Failed to load runs.", HTTPStatus.INTERNAL_SERVER_ERROR)

    return (
        jsonify(
            {
                "runs": [run.to_dict() for run in runs],
                "total": total,
                "page": page,
                "page_size": page_size,
                "source": source,
            }
        ),
        HTTPStatus.OK,
    )


@feed_blueprint.get("/runs/<int:run_id>")
def feed_run_detail(run_id: int):
    run = db.session.get(FeedSyncRun, run_id)
    if run is None:
        return _json_error(f"Feed sync run {run_id} not found.", HTTPStatus.NOT_FOUND)
    return jsonify(run.to_dict()), HTTPStatus.OK


@feed_blueprint.get("/stats")
def feed_stats():
    source = request.args.get("source") or get_feed_source()
    stats = CategoryResolver().get_stats(source)
    return jsonify({"source": source, "mapping": stats.as_dict()}), HTTPStatus.OK
