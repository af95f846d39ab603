from datetime import datetime, timedelta, timezone

from catalog_app.models import CategoryMappingLog, FeedSyncRun, MatchType, SyncRunStatus, db


def _add_run(status=SyncRunStatus.SUCCEEDED, *, minutes_ago=0, source="humed", **fields):
    started = datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)
    run = FeedSyncRun(
        source=source,
        status=status,
        started_at=started,
        finished_at=started + timedelta(seconds=30),
        **fields,
    )
    db.session.add(run)
    db.session.commit()
    return run


def test_runs_list_returns_newest_first(client):
    older = _add_run(minutes_ago=60, products_total=5)
    newer = _add_run(SyncRunStatus.FAILED, minutes_ago=1, error_message="boom")
    _add_run(source="other")

    response = client.get("/feed/runs")

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["total"] == 2
    assert [run["id"] for run in payload["runs"]] == [newer.id, older.id]
    assert payload["runs"][0]["status"] == "failed"
    assert payload["runs"][0]["error_message"] == "boom"
    assert payload["runs"][1]["duration_seconds"] == 30.0


def test_runs_list_filters_and_paginates(client):
    for minutes in range(3):
        _add_run(minutes_ago=minutes)
    _add_run(SyncRunStatus.FAILED, minutes_ago=10)

    response = client.get("/feed/runs?status=succeeded&page=2&page_size=2")

    payload = response.get_json()
    assert payload["total"] == 3
    assert payload["page"] == 2
    assert len(payload["runs"]) == 1


def test_runs_list_rejects_bad_parameters(client):
    assert client.get("/feed/runs?status=exploded").status_code == 400
    assert client.get("/feed/runs?page=0").status_code == 400
    assert client.get("/feed/runs?page=abc").status_code == 400


def test_run_detail(client):
    run = _add_run(products_total=3, products_new=3, feed_checksum="ab" * 32)

    response = client.get(f"/feed/runs/{run.id}")

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["id"] == run.id
    assert payload["products_new"] == 3
    assert payload["feed_checksum"] == "ab" * 32


def test_run_detail_not_found(client):
    response = client.get("/feed/runs/999")
    assert response.status_code == 404
    assert "999" in response.get_json()["error"]


def test_stats_endpoint(client):
    db.session.add_all(
        [
            CategoryMappingLog(source="humed", match_type=MatchType.EXACT),
            CategoryMappingLog(source="humed", match_type=MatchType.UNMAPPED),
            CategoryMappingLog(source="other", match_type=MatchType.EXACT),
        ]
    )
    db.session.commit()

    payload = client.get("/feed/stats").get_json()

    assert payload["source"] == "humed"
    assert payload["mapping"]["total"] == 2
    assert payload["mapping"]["matched_percent"] == 50.0


def test_unknown_route_returns_json_404(client):
    response = client.get("/nowhere")
    assert response.status_code == 404
    assert response.get_json() == {"error": "Not found."}
